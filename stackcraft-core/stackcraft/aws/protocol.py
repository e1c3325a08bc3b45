"""
Wire encodings of the AWS APIs stackcraft talks to, and the decoding of their replies.

Two request encodings are supported:

* the query protocol (CloudFormation, SQS, IAM, ...): a form-encoded body with ``Action``, ``Version`` and the
  parameters flattened into ``Name.member.N.Key`` style keys
* the JSON protocol (DynamoDB, ...): a JSON body, the operation in the ``X-Amz-Target`` header

Replies are decoded into plain dicts regardless of their format. The format is sniffed from the first non-whitespace
character of the body, since services do not reliably set a content type.
"""
import json
import logging
from typing import Any, Dict, List, Optional, Union
from urllib.parse import urlencode
from xml.parsers.expat import ExpatError

from stackcraft.exceptions import TransportError
from stackcraft.utils.strings import to_str
from stackcraft.utils.xml import parse_xml

LOG = logging.getLogger(__name__)


def flatten_params(params: Any, prefix: str = "") -> Dict[str, str]:
    """
    Flattens a nested structure into query protocol parameters. For example::

        {"Parameters": [{"ParameterKey": "Env", "ParameterValue": "prod"}], "Capabilities": ["CAPABILITY_IAM"]}

    turns into::

        {
            "Parameters.member.1.ParameterKey": "Env",
            "Parameters.member.1.ParameterValue": "prod",
            "Capabilities.member.1": "CAPABILITY_IAM",
        }

    ``None`` values are omitted, booleans are rendered as ``true`` / ``false``.
    """
    result = {}
    if params is None:
        return result
    if isinstance(params, dict):
        for key, value in params.items():
            result.update(flatten_params(value, f"{prefix}.{key}" if prefix else key))
        return result
    if isinstance(params, (list, tuple)):
        for index, item in enumerate(params, start=1):
            result.update(flatten_params(item, f"{prefix}.member.{index}"))
        return result
    if isinstance(params, bool):
        result[prefix] = "true" if params else "false"
    else:
        result[prefix] = str(params)
    return result


def encode_query(action: str, version: str, params: Optional[Dict[str, Any]] = None) -> str:
    payload = {"Action": action, "Version": version}
    payload.update(flatten_params(params or {}))
    return urlencode(payload)


def encode_json(payload: Optional[Dict[str, Any]]) -> str:
    return json.dumps(payload or {})


def members(value: Any) -> List[Any]:
    """
    Returns the items of a query protocol list. xmltodict yields ``{"member": {...}}`` for a single item,
    ``{"member": [...]}`` for several and ``None`` for an empty list element.
    """
    if value is None:
        return []
    if isinstance(value, dict):
        value = value.get("member")
        if value is None:
            return []
    if isinstance(value, list):
        return value
    return [value]


def parse_body(body: Optional[str]) -> Any:
    """
    Decodes a response body: XML if it starts with ``<``, JSON if it starts with ``{`` or ``[``, otherwise the raw
    text. An empty body decodes to ``None``.
    """
    text = to_str(body or "")
    stripped = text.lstrip()
    if not stripped:
        return None
    if stripped.startswith("<"):
        return parse_xml(stripped)
    if stripped[0] in "{[":
        return json.loads(stripped)
    return text


def extract_error(parsed: Any) -> Optional[Dict[str, Optional[str]]]:
    """
    Returns ``{"code": ..., "message": ...}`` if the decoded body is an error envelope, otherwise ``None``.

    Recognized envelopes are ``<Error>``, ``<ErrorResponse><Error>``, ``<Response><Errors><Error>`` and JSON bodies
    carrying a ``__type``.
    """
    if not isinstance(parsed, dict):
        return None

    if "__type" in parsed:
        code = str(parsed.get("__type") or "").rpartition("#")[2]
        message = parsed.get("message") or parsed.get("Message")
        return {"code": code or None, "message": message}

    error = None
    if "ErrorResponse" in parsed:
        error = (parsed.get("ErrorResponse") or {}).get("Error")
    elif "Error" in parsed:
        error = parsed.get("Error")
    elif "Response" in parsed:
        errors = (parsed.get("Response") or {}).get("Errors")
        error = (errors or {}).get("Error") if isinstance(errors, dict) else None
    if isinstance(error, list):
        error = error[0] if error else None
    if not isinstance(error, dict):
        return None
    return {"code": error.get("Code"), "message": error.get("Message")}


def parse_response(status_code: int, body: Optional[Union[str, bytes]]) -> Any:
    """
    Decodes the reply of a remote call and raises for failures.

    :param status_code: the HTTP status of the reply
    :param body: the raw reply body
    :return: the decoded body (dict, list, str) or ``None`` for an empty body
    :raises TransportError: for an error envelope or any non-2xx status
    """
    # kept for error reports, even if the body is not valid UTF-8
    text = to_str(body or "", errors="replace")
    try:
        parsed = parse_body(to_str(body or ""))
    except (ValueError, ExpatError) as e:
        if 200 <= status_code < 300:
            raise TransportError(status_code, message=f"Unable to parse response: {e}", body=text) from e
        raise TransportError(status_code, body=text) from e

    error = extract_error(parsed)
    if error:
        LOG.debug("Remote call failed with %s %s: %s", status_code, error["code"], error["message"])
        raise TransportError(status_code, code=error["code"], message=error["message"], body=text)
    if not 200 <= status_code < 300:
        raise TransportError(status_code, body=text)
    return parsed

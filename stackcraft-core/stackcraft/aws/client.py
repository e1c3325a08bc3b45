import logging
from typing import Any, Dict, Optional
from urllib.parse import urlparse

import requests

from stackcraft import config
from stackcraft.aws.protocol import encode_json, encode_query, parse_response
from stackcraft.aws.signing import AwsRequest, Credentials, SigV4Signer
from stackcraft.constants import (
    APPLICATION_AMZ_JSON_1_0,
    APPLICATION_AMZ_JSON_1_1,
    APPLICATION_X_WWW_FORM_URLENCODED,
    HEADER_AMZ_TARGET,
    HEADER_CONTENT_TYPE,
)
from stackcraft.exceptions import TransportError
from stackcraft.utils.strings import to_bytes

LOG = logging.getLogger(__name__)
LOG_REQUEST = logging.getLogger("stackcraft.request")

JSON_CONTENT_TYPES = {
    "1.0": APPLICATION_AMZ_JSON_1_0,
    "1.1": APPLICATION_AMZ_JSON_1_1,
}


def endpoint_for(service: str, region: str) -> str:
    """
    Returns the endpoint of the given service in the given region, or ``STACKCRAFT_ENDPOINT_URL`` if it is set (for
    example, to talk to a local emulator).
    """
    if config.STACKCRAFT_ENDPOINT_URL:
        return config.STACKCRAFT_ENDPOINT_URL.rstrip("/")
    suffix = ".cn" if region.startswith("cn-") else ""
    return f"https://{service}.{region}.amazonaws.com{suffix}"


class SigningHttpClient:
    """
    A wrapper around ``requests`` that signs every request with a ``SigV4Signer`` and decodes the reply into plain
    python objects.

    For example, to send a raw ``DescribeStacks`` call::

        signer = SigV4Signer(Credentials.from_env(), "cloudformation", "us-east-1")
        client = SigningHttpClient(signer)
        client.post_query("DescribeStacks", "2010-05-15", {"StackName": "my-stack"})

    Requests are sent exactly once, failures surface as ``TransportError``.
    """

    def __init__(
        self,
        signer: SigV4Signer,
        endpoint_url: str = None,
        session: requests.Session = None,
        timeout: float = None,
    ):
        self.signer = signer
        self.endpoint_url = (endpoint_url or endpoint_for(signer.service, signer.region)).rstrip("/")
        self.session = session or requests.Session()
        self.timeout = timeout if timeout is not None else config.HTTP_TIMEOUT

        parsed = urlparse(self.endpoint_url)
        if not parsed.scheme or not parsed.netloc:
            raise ValueError(f"Invalid endpoint URL: {self.endpoint_url}")
        self._scheme = parsed.scheme
        self._host = parsed.netloc
        self._base_path = parsed.path.rstrip("/")

    @classmethod
    def for_service(
        cls,
        service: str,
        region: str = None,
        credentials: Credentials = None,
        endpoint_url: str = None,
    ) -> "SigningHttpClient":
        """Creates a client for the given service, with credentials and region taken from the environment."""
        region = region or config.AWS_REGION
        signer = SigV4Signer(credentials or Credentials.from_env(), service, region)
        return cls(signer, endpoint_url=endpoint_url)

    def build_request(
        self,
        method: str,
        path: str = "/",
        query_params: Dict[str, str] = None,
        headers: Dict[str, str] = None,
        body=b"",
    ) -> AwsRequest:
        if not path.startswith("/"):
            path = "/" + path
        return AwsRequest(
            method=method,
            host=self._host,
            path=(self._base_path + path) or "/",
            query_params=dict(query_params or {}),
            headers=dict(headers or {}),
            body=to_bytes(body or b""),
            scheme=self._scheme,
        )

    def send(self, request: AwsRequest) -> Optional[Any]:
        """
        Signs and sends the given request.

        :param request: the logical request
        :return: the decoded reply (see ``stackcraft.aws.protocol.parse_body``), ``None`` for an empty reply
        :raises TransportError: if the request could not be sent, or the reply is an error
        """
        headers = self.signer.sign(request)
        url = request.url
        try:
            response = self.session.request(
                request.method,
                url,
                data=request.body or None,
                headers=headers,
                timeout=self.timeout,
                verify=config.HTTP_VERIFY_SSL,
            )
        except requests.RequestException as e:
            raise TransportError(0, message=f"Error sending {request.method} request to {url}: {e}") from e

        LOG_REQUEST.debug(
            "%s %s",
            request.method,
            url,
            extra={
                "method": request.method,
                "url": url,
                "status_code": response.status_code,
                "request_body": request.body,
                "response_body": response.content,
            },
        )
        return parse_response(response.status_code, response.content)

    def post_query(self, action: str, version: str, params: Dict[str, Any] = None) -> Optional[Any]:
        """Invokes an operation of a query protocol API, e.g. ``post_query("DescribeStacks", "2010-05-15")``."""
        LOG.debug("Invoking %s (version %s) on %s", action, version, self.endpoint_url)
        request = self.build_request(
            "POST",
            headers={HEADER_CONTENT_TYPE: f"{APPLICATION_X_WWW_FORM_URLENCODED}; charset=utf-8"},
            body=encode_query(action, version, params),
        )
        return self.send(request)

    def post_json(self, target: str, payload: Dict[str, Any] = None, json_version: str = "1.0") -> Optional[Any]:
        """Invokes an operation of a JSON protocol API, e.g. ``post_json("DynamoDB_20120810.ListTables", {})``."""
        content_type = JSON_CONTENT_TYPES.get(json_version)
        if not content_type:
            raise ValueError(f"Unknown JSON protocol version: {json_version}")
        LOG.debug("Invoking %s on %s", target, self.endpoint_url)
        request = self.build_request(
            "POST",
            headers={HEADER_CONTENT_TYPE: content_type, HEADER_AMZ_TARGET: target},
            body=encode_json(payload),
        )
        return self.send(request)

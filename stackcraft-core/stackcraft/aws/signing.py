"""
AWS Signature Version 4, implemented with ``hashlib`` and ``hmac`` only.

The signer turns a logical ``AwsRequest`` into the headers (or, for presigned URLs, the query string) that authenticate
it. Every step of the algorithm is exposed separately so it can be checked against the published test vectors:

1. ``canonical_request``: method, encoded path, sorted query, canonical headers, signed header list, payload hash
2. ``string_to_sign``: algorithm, timestamp, credential scope, hash of the canonical request
3. ``derive_signing_key``: four chained HMAC-SHA256 operations seeded with ``"AWS4" + secret``
4. ``sign``: hex HMAC of the string to sign, rendered into the ``Authorization`` header
"""
import hashlib
import hmac
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Optional, Union
from urllib.parse import quote

from stackcraft.constants import (
    HEADER_AMZ_CONTENT_SHA256,
    HEADER_AMZ_DATE,
    HEADER_AMZ_SECURITY_TOKEN,
    HEADER_AUTHORIZATION,
    PRESIGNED_URL_MAX_EXPIRES,
    SIGV4_ALGORITHM,
    SIGV4_DATE_FORMAT,
    SIGV4_KEY_PREFIX,
    SIGV4_TERMINATOR,
    SIGV4_TIMESTAMP_FORMAT,
    UNSIGNED_PAYLOAD,
)
from stackcraft.exceptions import SigningError
from stackcraft.utils.strings import to_bytes

LOG = logging.getLogger(__name__)

# characters that are never percent-encoded (RFC 3986 unreserved set)
_UNRESERVED = "-_.~"


@dataclass(frozen=True)
class Credentials:
    access_key_id: str
    secret_access_key: str
    session_token: Optional[str] = None

    def __post_init__(self):
        if not self.access_key_id or not self.secret_access_key:
            raise SigningError("AWS credentials require both an access key id and a secret access key")

    @classmethod
    def from_env(cls, env: Dict[str, str] = None) -> "Credentials":
        """
        Reads the credentials from ``AWS_ACCESS_KEY_ID``, ``AWS_SECRET_ACCESS_KEY`` and ``AWS_SESSION_TOKEN``.

        :raises SigningError: if the access key or the secret is missing
        """
        env = os.environ if env is None else env
        return cls(
            access_key_id=env.get("AWS_ACCESS_KEY_ID", "").strip(),
            secret_access_key=env.get("AWS_SECRET_ACCESS_KEY", "").strip(),
            session_token=env.get("AWS_SESSION_TOKEN", "").strip() or None,
        )

    def __repr__(self):
        return f"Credentials(access_key_id={self.access_key_id!r})"


@dataclass
class AwsRequest:
    method: str
    host: str
    path: str = "/"
    query_params: Dict[str, str] = field(default_factory=dict)
    headers: Dict[str, str] = field(default_factory=dict)
    body: Union[str, bytes] = b""
    scheme: str = "https"

    @property
    def url(self) -> str:
        url = f"{self.scheme}://{self.host}{self.path or '/'}"
        if self.query_params:
            url += "?" + canonical_query_string(self.query_params)
        return url


def uri_encode(value: str) -> str:
    return quote(str(value), safe=_UNRESERVED)


def encode_path(path: str) -> str:
    return "/".join(uri_encode(segment) for segment in (path or "/").split("/"))


def canonical_query_string(params: Dict[str, str]) -> str:
    encoded = sorted((uri_encode(key), uri_encode(value)) for key, value in params.items())
    return "&".join(f"{key}={value}" for key, value in encoded)


def canonical_header_value(value: str) -> str:
    return " ".join(str(value).split())


def sha256_hex(data: Union[str, bytes]) -> str:
    return hashlib.sha256(to_bytes(data or b"")).hexdigest()


def _hmac(key: bytes, msg: str) -> bytes:
    return hmac.new(key, to_bytes(msg), hashlib.sha256).digest()


def _to_utc(timestamp: Optional[datetime]) -> datetime:
    if timestamp is None:
        return datetime.now(tz=timezone.utc)
    if timestamp.tzinfo is None:
        return timestamp.replace(tzinfo=timezone.utc)
    return timestamp.astimezone(timezone.utc)


class SigV4Signer:
    """
    Signs requests for one service in one region. The signer holds no state besides its configuration, the signing
    key is derived again for every request.
    """

    def __init__(self, credentials: Credentials, service: str, region: str):
        if not service:
            raise SigningError("A service name is required for signing")
        if not region:
            raise SigningError("A region is required for signing")
        self.credentials = credentials
        self.service = service
        self.region = region

    def credential_scope(self, timestamp: datetime) -> str:
        date = _to_utc(timestamp).strftime(SIGV4_DATE_FORMAT)
        return f"{date}/{self.region}/{self.service}/{SIGV4_TERMINATOR}"

    def payload_hash(self, request: AwsRequest) -> str:
        return sha256_hex(request.body)

    def headers_to_sign(self, request: AwsRequest, timestamp: datetime) -> Dict[str, str]:
        """Returns the lower-cased headers which take part in the signature (always ``host`` and ``x-amz-date``)."""
        headers = {"host": request.host}
        for name, value in request.headers.items():
            if name.lower() == HEADER_AUTHORIZATION.lower():
                continue
            headers[name.lower()] = value
        headers["x-amz-date"] = _to_utc(timestamp).strftime(SIGV4_TIMESTAMP_FORMAT)
        if self.credentials.session_token:
            headers["x-amz-security-token"] = self.credentials.session_token
        if self.service == "s3":
            headers.setdefault("x-amz-content-sha256", self.payload_hash(request))
        return headers

    def canonical_request(self, request: AwsRequest, timestamp: datetime) -> str:
        headers = self.headers_to_sign(request, timestamp)
        names = sorted(headers)
        canonical_headers = "".join(f"{name}:{canonical_header_value(headers[name])}\n" for name in names)
        return "\n".join(
            [
                request.method.upper(),
                encode_path(request.path),
                canonical_query_string(request.query_params),
                canonical_headers,
                ";".join(names),
                headers.get("x-amz-content-sha256") or self.payload_hash(request),
            ]
        )

    def string_to_sign(self, request: AwsRequest, timestamp: datetime) -> str:
        return self._string_to_sign(self.canonical_request(request, timestamp), timestamp)

    def _string_to_sign(self, canonical_request: str, timestamp: datetime) -> str:
        return "\n".join(
            [
                SIGV4_ALGORITHM,
                _to_utc(timestamp).strftime(SIGV4_TIMESTAMP_FORMAT),
                self.credential_scope(timestamp),
                sha256_hex(canonical_request),
            ]
        )

    def derive_signing_key(self, timestamp: datetime) -> bytes:
        date = _to_utc(timestamp).strftime(SIGV4_DATE_FORMAT)
        key = to_bytes(SIGV4_KEY_PREFIX + self.credentials.secret_access_key)
        for part in (date, self.region, self.service, SIGV4_TERMINATOR):
            key = _hmac(key, part)
        return key

    def signature(self, string_to_sign: str, timestamp: datetime) -> str:
        key = self.derive_signing_key(timestamp)
        return hmac.new(key, to_bytes(string_to_sign), hashlib.sha256).hexdigest()

    def sign(self, request: AwsRequest, timestamp: datetime = None) -> Dict[str, str]:
        """
        Signs the given request and returns the full set of headers to send with it, including ``Authorization``,
        ``X-Amz-Date`` and, if the credentials carry one, ``X-Amz-Security-Token``. The ``Host`` header is part of
        the signature but not of the result, the HTTP client derives it from the URL.

        :param request: the request to sign
        :param timestamp: the signing time, defaults to now (UTC)
        :return: the headers of the signed request
        """
        timestamp = _to_utc(timestamp)
        canonical_headers = self.headers_to_sign(request, timestamp)
        canonical_request = self.canonical_request(request, timestamp)
        string_to_sign = self._string_to_sign(canonical_request, timestamp)
        signature = self.signature(string_to_sign, timestamp)
        LOG.debug("Signed %s %s%s for %s/%s", request.method, request.host, request.path, self.service, self.region)

        signed_headers = ";".join(sorted(canonical_headers))
        authorization = (
            f"{SIGV4_ALGORITHM} Credential={self.credentials.access_key_id}/{self.credential_scope(timestamp)}, "
            f"SignedHeaders={signed_headers}, Signature={signature}"
        )

        headers = {
            name: value
            for name, value in request.headers.items()
            if name.lower() not in ("host", HEADER_AUTHORIZATION.lower())
        }
        headers[HEADER_AMZ_DATE] = canonical_headers["x-amz-date"]
        if self.credentials.session_token:
            headers[HEADER_AMZ_SECURITY_TOKEN] = self.credentials.session_token
        if "x-amz-content-sha256" in canonical_headers:
            headers[HEADER_AMZ_CONTENT_SHA256] = canonical_headers["x-amz-content-sha256"]
        headers[HEADER_AUTHORIZATION] = authorization
        return headers

    def presign_url(self, request: AwsRequest, expires_in: int = 3600, timestamp: datetime = None) -> str:
        """
        Creates a presigned URL for the given request: the signature travels in ``X-Amz-*`` query parameters and
        only the ``host`` header is signed. S3 URLs use an unsigned payload.

        :param request: the request to presign
        :param expires_in: validity in seconds, clamped to 1 second and 7 days
        :param timestamp: the signing time, defaults to now (UTC)
        :return: the presigned URL
        """
        timestamp = _to_utc(timestamp)
        expires_in = max(1, min(int(expires_in), PRESIGNED_URL_MAX_EXPIRES))
        if self.service == "s3":
            payload_hash = UNSIGNED_PAYLOAD
        else:
            payload_hash = self.payload_hash(request)

        params = dict(request.query_params)
        params["X-Amz-Algorithm"] = SIGV4_ALGORITHM
        params["X-Amz-Credential"] = f"{self.credentials.access_key_id}/{self.credential_scope(timestamp)}"
        params["X-Amz-Date"] = timestamp.strftime(SIGV4_TIMESTAMP_FORMAT)
        params["X-Amz-Expires"] = str(expires_in)
        params["X-Amz-SignedHeaders"] = "host"
        if self.service == "s3":
            params["X-Amz-Content-Sha256"] = payload_hash
        if self.credentials.session_token:
            params["X-Amz-Security-Token"] = self.credentials.session_token

        canonical_request = "\n".join(
            [
                request.method.upper(),
                encode_path(request.path),
                canonical_query_string(params),
                f"host:{canonical_header_value(request.host)}\n",
                "host",
                payload_hash,
            ]
        )
        string_to_sign = self._string_to_sign(canonical_request, timestamp)
        params["X-Amz-Signature"] = self.signature(string_to_sign, timestamp)

        return f"{request.scheme}://{request.host}{request.path or '/'}?{canonical_query_string(params)}"

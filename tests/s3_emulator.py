"""Minimal S3-compatible endpoint that honours presigned URLs.

Verifies query-string SigV4 auth the way a storage provider does (credential
scope, expiry window, signature over the canonical request) and keeps
objects in memory. Written independently of ``presigner.signing`` so the
two implementations check each other.
"""

import hashlib
import hmac
import urllib.parse
from collections.abc import Mapping
from datetime import datetime, timezone

_REQUIRED = (
    "X-Amz-Algorithm",
    "X-Amz-Credential",
    "X-Amz-Date",
    "X-Amz-Expires",
    "X-Amz-SignedHeaders",
    "X-Amz-Signature",
)


class InvalidSignature(Exception):
    """Raised when a presigned URL is malformed, expired, or forged."""


def _quote(value: str) -> str:
    return urllib.parse.quote(value, safe="-_.~")


def _hmac(key: bytes, msg: str) -> bytes:
    return hmac.new(key, msg.encode(), hashlib.sha256).digest()


class S3Emulator:
    """In-memory object store with presigned-URL authentication.

    Args:
        credentials: Mapping of access key -> secret key accepted.
        region: Region the endpoint expects in the credential scope.
    """

    def __init__(self, credentials: Mapping[str, str], region: str = "auto") -> None:
        self._creds = dict(credentials)
        self._region = region
        self.objects: dict[str, bytes] = {}

    def verify(self, method: str, url: str, now: datetime) -> str:
        """Check a presigned URL; return the object path it addresses.

        Raises:
            InvalidSignature: On any authorization failure.
        """
        parsed = urllib.parse.urlsplit(url)
        pairs = urllib.parse.parse_qsl(parsed.query, keep_blank_values=True)
        params = dict(pairs)
        for name in _REQUIRED:
            if name not in params:
                raise InvalidSignature(f"missing {name}")
        if params["X-Amz-Algorithm"] != "AWS4-HMAC-SHA256":
            raise InvalidSignature("unsupported algorithm")
        if params["X-Amz-SignedHeaders"] != "host":
            raise InvalidSignature("unexpected signed headers")

        try:
            access_key, date, region, service, terminator = params["X-Amz-Credential"].split("/")
        except ValueError:
            raise InvalidSignature("malformed credential")
        if region != self._region or service != "s3" or terminator != "aws4_request":
            raise InvalidSignature("bad credential scope")
        secret = self._creds.get(access_key)
        if secret is None:
            raise InvalidSignature("unknown access key")

        amz_date = params["X-Amz-Date"]
        if amz_date[:8] != date:
            raise InvalidSignature("credential date mismatch")
        signed_at = datetime.strptime(amz_date, "%Y%m%dT%H%M%SZ").replace(tzinfo=timezone.utc)
        expires = int(params["X-Amz-Expires"])
        elapsed = (now - signed_at).total_seconds()
        if elapsed < -900 or elapsed > expires:
            raise InvalidSignature("request has expired")

        canonical_query = "&".join(
            f"{k}={v}"
            for k, v in sorted(
                (_quote(k), _quote(v)) for k, v in pairs if k != "X-Amz-Signature"
            )
        )
        canonical_request = "\n".join(
            [
                method,
                parsed.path,
                canonical_query,
                f"host:{parsed.netloc}\n",
                "host",
                "UNSIGNED-PAYLOAD",
            ]
        )
        string_to_sign = "\n".join(
            [
                "AWS4-HMAC-SHA256",
                amz_date,
                f"{date}/{region}/{service}/aws4_request",
                hashlib.sha256(canonical_request.encode()).hexdigest(),
            ]
        )
        key = _hmac(_hmac(_hmac(_hmac(("AWS4" + secret).encode(), date), region), service), "aws4_request")
        expected = hmac.new(key, string_to_sign.encode(), hashlib.sha256).hexdigest()
        if not hmac.compare_digest(expected, params["X-Amz-Signature"]):
            raise InvalidSignature("signature does not match")
        return urllib.parse.unquote(parsed.path)

    def handle(self, method: str, url: str, now: datetime, body: bytes = b"") -> tuple[int, bytes]:
        """Serve one request; returns (status, body)."""
        try:
            path = self.verify(method, url, now)
        except InvalidSignature as exc:
            return 403, str(exc).encode()
        if method == "PUT":
            self.objects[path] = body
            return 200, b""
        if method == "GET":
            if path not in self.objects:
                return 404, b""
            return 200, self.objects[path]
        return 405, b""

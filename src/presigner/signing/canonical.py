"""Canonical request construction for SigV4 query-string (presigned) auth.

Only the ``host`` header is signed and the payload is never hashed, which is
the scope a presigned single-object PUT or GET needs.

References:
    - https://docs.aws.amazon.com/AmazonS3/latest/API/sigv4-query-string-auth.html
"""

import hashlib
import urllib.parse
from collections.abc import Mapping
from dataclasses import dataclass

UNSIGNED_PAYLOAD = "UNSIGNED-PAYLOAD"
SIGNED_HEADERS = "host"

_DEFAULT_PORTS = {"http": 80, "https": 443}


@dataclass(frozen=True)
class CanonicalRequest:
    """The exact request description that gets hashed and signed.

    Attributes:
        method: HTTP method (uppercase).
        canonical_uri: URI-encoded path, slashes kept.
        canonical_query_string: Sorted, encoded query without the signature.
        canonical_headers: ``host:<host>\\n``.
        signed_headers: ``host``.
        payload_hash: Always ``UNSIGNED-PAYLOAD``.
    """

    method: str
    canonical_uri: str
    canonical_query_string: str
    canonical_headers: str
    signed_headers: str = SIGNED_HEADERS
    payload_hash: str = UNSIGNED_PAYLOAD

    def to_string(self) -> str:
        return "\n".join(
            [
                self.method,
                self.canonical_uri,
                self.canonical_query_string,
                self.canonical_headers,
                self.signed_headers,
                self.payload_hash,
            ]
        )

    def hexdigest(self) -> str:
        """SHA-256 hex digest of the canonical request string."""
        return hashlib.sha256(self.to_string().encode("utf-8")).hexdigest()


def uri_encode(value: str, encode_slash: bool = True) -> str:
    """S3-compatible URI encoding.

    Characters A-Z, a-z, 0-9, '-', '_', '.', '~' are not encoded. All other
    characters are percent-encoded as UTF-8 with uppercase hex; spaces become
    %20 (not +).

    Args:
        value: The string to encode.
        encode_slash: If True (default), '/' is encoded as %2F.

    Returns:
        The URI-encoded string.
    """
    safe = "-_.~" if encode_slash else "-_.~/"
    return urllib.parse.quote(value, safe=safe)


def uri_encode_path(path: str) -> str:
    """URI-encode a path segment by segment, keeping '/' literally."""
    if not path:
        return "/"
    result = "/".join(uri_encode(seg, encode_slash=False) for seg in path.split("/"))
    if not result.startswith("/"):
        result = "/" + result
    return result


def canonical_query_string(params: Mapping[str, str]) -> str:
    """Build the canonical query string from decoded parameters.

    Names and values are encoded first, then sorted by encoded name and value
    (byte order), then joined with '&'.
    """
    encoded = sorted((uri_encode(name), uri_encode(value)) for name, value in params.items())
    return "&".join(f"{name}={value}" for name, value in encoded)


def host_for(endpoint: str) -> str:
    """Return the ``host`` header value a client will send to ``endpoint``.

    The port is kept unless it is the scheme's default.

    Raises:
        ValueError: If the endpoint has no scheme or host.
    """
    parsed = urllib.parse.urlsplit(endpoint)
    if parsed.scheme not in _DEFAULT_PORTS or not parsed.hostname:
        raise ValueError(f"Invalid storage endpoint: {endpoint!r}")
    host = parsed.hostname
    if ":" in host:
        host = f"[{host}]"
    if parsed.port is not None and parsed.port != _DEFAULT_PORTS[parsed.scheme]:
        host = f"{host}:{parsed.port}"
    return host


def build_canonical_request(
    method: str,
    bucket: str,
    key: str,
    query_params: Mapping[str, str],
    host: str,
    base_path: str = "",
) -> CanonicalRequest:
    """Build the canonical request for a presigned object URL.

    Args:
        method: HTTP method, ``PUT`` or ``GET``.
        bucket: Bucket name.
        key: Resolved object key (not yet encoded).
        query_params: All ``X-Amz-*`` parameters except the signature.
        host: Value of the ``host`` header.
        base_path: Path prefix of the endpoint, if it has one.

    Returns:
        The canonical request. Identical inputs give an identical request.
    """
    return CanonicalRequest(
        method=method.upper(),
        canonical_uri=uri_encode_path(f"{base_path.rstrip('/')}/{bucket}/{key}"),
        canonical_query_string=canonical_query_string(query_params),
        canonical_headers=f"host:{host}\n",
    )

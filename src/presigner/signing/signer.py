"""String-to-sign, signature, and presigned URL assembly.

``presign()`` runs the whole chain for one object: query parameters,
canonical request, signing key, signature, URL.
"""

import hashlib
import hmac
import logging
import urllib.parse
from dataclasses import dataclass
from datetime import datetime, timezone

from presigner.errors import PresignError, SigningError
from presigner.models import Mode, PresignedURL, SigningIdentity
from presigner.signing.canonical import (
    SIGNED_HEADERS,
    CanonicalRequest,
    build_canonical_request,
    host_for,
)
from presigner.signing.keys import SCOPE_TERMINATOR, derive_signing_key

logger = logging.getLogger(__name__)

ALGORITHM = "AWS4-HMAC-SHA256"
DEFAULT_REGION = "auto"
DEFAULT_SERVICE = "s3"
CONTENT_TYPE_PARAM = "X-Amz-Content-Type"
SIGNATURE_PARAM = "X-Amz-Signature"


@dataclass(frozen=True)
class SigningContext:
    """Per-request signing instant, scope, and lifetime.

    Attributes:
        timestamp: Signing instant, ``YYYYMMDDTHHMMSSZ``.
        datestamp: ``YYYYMMDD`` part of the timestamp.
        region: Credential-scope region.
        service: Credential-scope service.
        expires_in: URL lifetime in seconds.
    """

    timestamp: str
    datestamp: str
    region: str = DEFAULT_REGION
    service: str = DEFAULT_SERVICE
    expires_in: int = 3600

    @classmethod
    def at(
        cls,
        now: datetime,
        expires_in: int = 3600,
        region: str = DEFAULT_REGION,
        service: str = DEFAULT_SERVICE,
    ) -> "SigningContext":
        """Build a context for the instant ``now`` (converted to UTC)."""
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        timestamp = now.astimezone(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
        return cls(
            timestamp=timestamp,
            datestamp=timestamp[:8],
            region=region,
            service=service,
            expires_in=expires_in,
        )

    @property
    def credential_scope(self) -> str:
        return f"{self.datestamp}/{self.region}/{self.service}/{SCOPE_TERMINATOR}"

    def credential(self, access_key_id: str) -> str:
        return f"{access_key_id}/{self.credential_scope}"


def build_string_to_sign(timestamp: str, scope: str, canonical_request: CanonicalRequest) -> str:
    """Build the string to sign.

    Args:
        timestamp: ISO 8601 basic timestamp (YYYYMMDDTHHMMSSZ).
        scope: Credential scope (YYYYMMDD/region/service/aws4_request).
        canonical_request: The canonical request.

    Returns:
        The string to sign.
    """
    return f"{ALGORITHM}\n{timestamp}\n{scope}\n{canonical_request.hexdigest()}"


def compute_signature(signing_key: bytes, string_to_sign: str) -> str:
    """Compute the final HMAC-SHA256 signature as 64 lowercase hex chars."""
    return hmac.new(signing_key, string_to_sign.encode("utf-8"), hashlib.sha256).hexdigest()


def sign(canonical_request: CanonicalRequest, signing_key: bytes, context: SigningContext) -> str:
    """Sign a canonical request under the context's credential scope."""
    string_to_sign = build_string_to_sign(
        context.timestamp, context.credential_scope, canonical_request
    )
    return compute_signature(signing_key, string_to_sign)


def presign_query_params(
    identity: SigningIdentity,
    context: SigningContext,
    method: str,
    content_type: str | None = None,
) -> dict[str, str]:
    """Return the query parameters covered by the signature.

    ``X-Amz-Content-Type`` is added only for PUT with a content type. It is a
    signed query parameter; the signed header set stays ``host``.
    """
    params = {
        "X-Amz-Algorithm": ALGORITHM,
        "X-Amz-Credential": context.credential(identity.access_key_id),
        "X-Amz-Date": context.timestamp,
        "X-Amz-Expires": str(context.expires_in),
        "X-Amz-SignedHeaders": SIGNED_HEADERS,
    }
    if content_type and method.upper() == "PUT":
        params[CONTENT_TYPE_PARAM] = content_type
    return params


def assemble_url(endpoint: str, canonical_uri: str, canonical_query: str, signature: str) -> str:
    """Join endpoint origin, canonical URI, query string and signature.

    The query string is emitted exactly as it was signed.
    """
    parsed = urllib.parse.urlsplit(endpoint)
    query = f"{canonical_query}&{SIGNATURE_PARAM}={signature}"
    return urllib.parse.urlunsplit((parsed.scheme, parsed.netloc, canonical_uri, query, ""))


def presign(
    identity: SigningIdentity,
    mode: Mode,
    key: str,
    context: SigningContext,
    content_type: str | None = None,
) -> PresignedURL:
    """Produce a presigned URL for one object.

    Args:
        identity: Signing identity of the object store.
        mode: PUT or GET.
        key: Resolved object key.
        context: Signing instant and scope for this request.
        content_type: Upload MIME type; ignored for GET.

    Returns:
        The presigned URL and the key it addresses.

    Raises:
        SigningError: If any step of the signing pipeline fails.
    """
    method = mode.http_method
    try:
        params = presign_query_params(identity, context, method, content_type)
        canonical = build_canonical_request(
            method=method,
            bucket=identity.bucket,
            key=key,
            query_params=params,
            host=host_for(identity.endpoint),
            base_path=urllib.parse.urlsplit(identity.endpoint).path,
        )
        signing_key = derive_signing_key(
            identity.secret_key, context.datestamp, context.region, context.service
        )
        signature = sign(canonical, signing_key, context)
        url = assemble_url(
            identity.endpoint,
            canonical.canonical_uri,
            canonical.canonical_query_string,
            signature,
        )
    except PresignError:
        raise
    except (TypeError, ValueError) as exc:
        raise SigningError(str(exc)) from exc

    logger.debug("Signed %s %s scope=%s", method, key, context.credential_scope)
    return PresignedURL(url=url, path=key)

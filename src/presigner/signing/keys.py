"""SigV4 signing key derivation.

Each step of the HMAC-SHA256 chain is its own function so the intermediate
keys can be checked against published reference vectors.

References:
    - https://docs.aws.amazon.com/IAM/latest/UserGuide/reference_sigv-create-signed-request.html
"""

import hashlib
import hmac

from presigner.errors import SigningError

KEY_PREFIX = "AWS4"
SCOPE_TERMINATOR = "aws4_request"


def hmac_sha256(key: bytes, data: str) -> bytes:
    """Return the raw HMAC-SHA256 of ``data`` (UTF-8) under ``key``."""
    return hmac.new(key, data.encode("utf-8"), hashlib.sha256).digest()


def derive_date_key(secret_key: str, datestamp: str) -> bytes:
    """kDate = HMAC("AWS4" + secret, YYYYMMDD)."""
    return hmac_sha256((KEY_PREFIX + secret_key).encode("utf-8"), datestamp)


def derive_region_key(date_key: bytes, region: str) -> bytes:
    """kRegion = HMAC(kDate, region)."""
    return hmac_sha256(date_key, region)


def derive_service_key(region_key: bytes, service: str) -> bytes:
    """kService = HMAC(kRegion, service)."""
    return hmac_sha256(region_key, service)


def derive_signing_key_from_service(service_key: bytes) -> bytes:
    """kSigning = HMAC(kService, "aws4_request")."""
    return hmac_sha256(service_key, SCOPE_TERMINATOR)


def derive_signing_key(secret_key: str, datestamp: str, region: str, service: str) -> bytes:
    """Derive the SigV4 signing key via the HMAC-SHA256 chain.

    Keys are derived fresh for every request; nothing is cached.

    Args:
        secret_key: The secret access key.
        datestamp: Date string (YYYYMMDD) of the signing instant.
        region: Region of the credential scope ("auto" for R2).
        service: Service of the credential scope ("s3").

    Returns:
        The 32-byte signing key.

    Raises:
        SigningError: If any input cannot be encoded or hashed.
    """
    try:
        k_date = derive_date_key(secret_key, datestamp)
        k_region = derive_region_key(k_date, region)
        k_service = derive_service_key(k_region, service)
        return derive_signing_key_from_service(k_service)
    except (TypeError, ValueError, AttributeError) as exc:
        raise SigningError(f"Signing key derivation failed: {exc}") from exc

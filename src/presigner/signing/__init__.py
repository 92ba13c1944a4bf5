"""AWS Signature Version 4 presigning for S3-compatible object stores."""

from presigner.signing.canonical import (
    UNSIGNED_PAYLOAD,
    CanonicalRequest,
    build_canonical_request,
    canonical_query_string,
    host_for,
    uri_encode,
    uri_encode_path,
)
from presigner.signing.keys import derive_signing_key, hmac_sha256
from presigner.signing.signer import (
    ALGORITHM,
    SigningContext,
    assemble_url,
    build_string_to_sign,
    compute_signature,
    presign,
    presign_query_params,
    sign,
)

__all__ = [
    "ALGORITHM",
    "assemble_url",
    "build_canonical_request",
    "build_string_to_sign",
    "canonical_query_string",
    "CanonicalRequest",
    "compute_signature",
    "derive_signing_key",
    "hmac_sha256",
    "host_for",
    "presign",
    "presign_query_params",
    "sign",
    "SigningContext",
    "UNSIGNED_PAYLOAD",
    "uri_encode",
    "uri_encode_path",
]

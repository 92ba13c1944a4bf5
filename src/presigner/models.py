"""Data model types for the presign service.

``PresignRequest`` is the validated request body. The dataclasses carry the
per-request caller identity, the process-wide signing identity, and the
final response.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Mode(str, Enum):
    """Presign mode. Only single-object PUT and GET are supported."""

    PUT = "put"
    GET = "get"

    @property
    def http_method(self) -> str:
        return self.value.upper()


class PresignRequest(BaseModel):
    """JSON body of a presign call.

    Attributes:
        mode: ``put`` or ``get`` (case-insensitive on input).
        path: Object key template with ``<user>`` / ``<yyyy>`` placeholders.
        content_type: MIME type of the upload; only used when mode is ``put``.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    mode: Mode
    path: str = Field(min_length=1)
    content_type: str | None = Field(default=None, alias="contentType")

    @field_validator("mode", mode="before")
    @classmethod
    def _lower_mode(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @field_validator("content_type")
    @classmethod
    def _blank_content_type(cls, value: str | None) -> str | None:
        if value is not None and not value.strip():
            return None
        return value

    def effective_content_type(self) -> str | None:
        """Return the content type only when it participates in signing."""
        return self.content_type if self.mode is Mode.PUT else None


@dataclass(frozen=True)
class CallerIdentity:
    """The authenticated caller, as reported by the identity provider."""

    user_id: str
    email: str | None = None


@dataclass(frozen=True)
class SigningIdentity:
    """Credentials and target of the object store.

    Attributes:
        access_key_id: Access key id placed in ``X-Amz-Credential``.
        secret_key: Secret access key. Excluded from repr; never logged.
        endpoint: Base URL of the S3-compatible endpoint, no trailing slash.
        bucket: Bucket name, addressed path-style.
    """

    access_key_id: str
    secret_key: str = field(repr=False)
    endpoint: str
    bucket: str


@dataclass(frozen=True)
class PresignedURL:
    """A presigned URL and the object key it grants access to."""

    url: str
    path: str

    def to_dict(self) -> dict[str, str]:
        return {"url": self.url, "path": self.path}

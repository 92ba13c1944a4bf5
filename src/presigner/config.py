"""Configuration loading and Pydantic models for the presign service.

Configuration is read once at process start: an optional YAML file first,
then environment variables on top. The resulting models are frozen and are
passed explicitly into the signing pipeline.
"""

import os
import re
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator

from presigner.errors import ConfigError
from presigner.models import SigningIdentity
from presigner.paths import USER_PLACEHOLDER

# Environment variable -> (section, field). Names match the deployment the
# service was built for (Supabase identity, R2 storage).
ENV_OVERRIDES: dict[str, tuple[str, str]] = {
    "SUPABASE_URL": ("identity", "base_url"),
    "SUPABASE_ANON_KEY": ("identity", "api_key"),
    "R2_ENDPOINT": ("storage", "endpoint"),
    "R2_BUCKET": ("storage", "bucket"),
    "R2_KEY": ("storage", "access_key_id"),
    "R2_SECRET": ("storage", "secret_key"),
    "PRESIGNER_HOST": ("server", "host"),
    "PRESIGNER_PORT": ("server", "port"),
    "PRESIGNER_LOG_LEVEL": ("observability", "log_level"),
    "PRESIGNER_LOG_FORMAT": ("observability", "log_format"),
}

MAX_EXPIRES_SECONDS = 3600


class ServerConfig(BaseModel):
    """Server binding and runtime configuration."""

    model_config = ConfigDict(frozen=True)

    host: str = "0.0.0.0"
    port: int = 9000
    route: str = "/s3-presign"
    shutdown_timeout: int = 10


class IdentityConfig(BaseModel):
    """Identity provider used to turn bearer tokens into caller ids."""

    model_config = ConfigDict(frozen=True)

    base_url: str = ""
    api_key: SecretStr = SecretStr("")
    timeout_seconds: float = Field(default=5.0, gt=0, le=30)


class StorageConfig(BaseModel):
    """Signing identity for the S3-compatible object store."""

    model_config = ConfigDict(frozen=True)

    endpoint: str = ""
    bucket: str = ""
    access_key_id: str = ""
    secret_key: SecretStr = SecretStr("")

    def missing_fields(self) -> list[str]:
        """Return the names of required storage settings that are empty."""
        missing = []
        if not self.endpoint:
            missing.append("endpoint")
        if not self.bucket:
            missing.append("bucket")
        if not self.access_key_id:
            missing.append("access_key_id")
        if not self.secret_key.get_secret_value():
            missing.append("secret_key")
        return missing

    def signing_identity(self) -> SigningIdentity:
        """Build the immutable signing identity.

        Raises:
            ConfigError: If any of the four storage values is absent.
        """
        missing = self.missing_fields()
        if missing:
            raise ConfigError("Storage configuration missing")
        return SigningIdentity(
            access_key_id=self.access_key_id,
            secret_key=self.secret_key.get_secret_value(),
            endpoint=self.endpoint.rstrip("/"),
            bucket=self.bucket,
        )


class SigningConfig(BaseModel):
    """Signature scope, lifetime, and key-scoping rules."""

    model_config = ConfigDict(frozen=True)

    region: str = "auto"
    service: str = "s3"
    expires_seconds: int = Field(default=MAX_EXPIRES_SECONDS, ge=1, le=MAX_EXPIRES_SECONDS)
    strict_placeholders: bool = True
    enforce_tenant_prefix: bool = True
    tenant_prefix: str = "u/<user>/"

    @field_validator("tenant_prefix")
    @classmethod
    def _check_tenant_prefix(cls, value: str) -> str:
        # Without the trailing '/', caller "abc" would also own "abc1/...".
        if value and not value.endswith("/"):
            raise ValueError("tenant_prefix must be empty or end with '/'")
        unknown = [tok for tok in re.findall(r"<[^<>/]*>", value) if tok != USER_PLACEHOLDER]
        if unknown:
            raise ValueError(f"tenant_prefix may only use {USER_PLACEHOLDER}, got {unknown[0]}")
        return value


class ObservabilityConfig(BaseModel):
    """Metrics, health probes, and logging."""

    model_config = ConfigDict(frozen=True)

    metrics: bool = True
    health_check: bool = True
    log_level: str = "INFO"
    log_format: str = "text"


class PresignerConfig(BaseModel):
    """Top-level presign service configuration."""

    model_config = ConfigDict(frozen=True)

    server: ServerConfig = Field(default_factory=ServerConfig)
    identity: IdentityConfig = Field(default_factory=IdentityConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    signing: SigningConfig = Field(default_factory=SigningConfig)
    observability: ObservabilityConfig = Field(default_factory=ObservabilityConfig)


def _section(raw: dict[str, Any], name: str) -> dict[str, Any]:
    """Return a YAML section as a dict, treating null as empty."""
    data = raw.get(name)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"Config section '{name}' must be a mapping")
    return dict(data)


def _apply_env(sections: dict[str, dict[str, Any]], environ: Mapping[str, str]) -> None:
    """Overlay environment variables onto the parsed YAML sections."""
    for var, (section, field) in ENV_OVERRIDES.items():
        value = environ.get(var)
        if value:
            sections[section][field] = value


def load_config(path: Path | None = None, environ: Mapping[str, str] | None = None) -> PresignerConfig:
    """Load a PresignerConfig from an optional YAML file and the environment.

    Args:
        path: Path to the YAML configuration file, or None for env-only.
        environ: Environment mapping. Defaults to ``os.environ``.

    Returns:
        A fully populated, frozen PresignerConfig validated by Pydantic.

    Raises:
        FileNotFoundError: If ``path`` is given but does not exist.
        yaml.YAMLError: If the file is not valid YAML.
        pydantic.ValidationError: If a value has the wrong type or range.
    """
    raw: dict[str, Any] = {}
    if path is not None:
        with open(path, "r") as fh:
            raw = yaml.safe_load(fh) or {}

    sections = {
        name: _section(raw, name)
        for name in ("server", "identity", "storage", "signing", "observability")
    }
    _apply_env(sections, os.environ if environ is None else environ)

    return PresignerConfig(
        server=ServerConfig(**sections["server"]),
        identity=IdentityConfig(**sections["identity"]),
        storage=StorageConfig(**sections["storage"]),
        signing=SigningConfig(**sections["signing"]),
        observability=ObservabilityConfig(**sections["observability"]),
    )

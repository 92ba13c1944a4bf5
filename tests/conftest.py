"""Shared pytest fixtures for presigner tests.

A single FastAPI app with metrics enabled is created per test session to
avoid duplicate Prometheus metric registration errors (the instrumentator
registers collectors in the global prometheus_client registry). Tests that
need a different configuration build their own app with metrics disabled.

The identity provider is replaced by an ``httpx.MockTransport`` that knows a
handful of tokens.
"""

from datetime import datetime, timezone

import httpx
import pytest
from httpx import ASGITransport, AsyncClient

from presigner.config import (
    IdentityConfig,
    ObservabilityConfig,
    PresignerConfig,
    ServerConfig,
    StorageConfig,
)
from presigner.server import create_app

FIXED_NOW = datetime(2024, 5, 17, 12, 30, 45, tzinfo=timezone.utc)

ACCESS_KEY = "AKIDPRESIGNTEST"
SECRET_KEY = "presign/test+secret"
ENDPOINT = "https://acct.r2.example.com"
BUCKET = "user-files"

# token -> user record returned by the mock identity provider
USERS = {
    "good-token": {"id": "abc123", "email": "abc@example.com"},
    "other-token": {"id": "zzz999", "email": "zzz@example.com"},
    "no-id-token": {"email": "ghost@example.com"},
}


def identity_provider(request: httpx.Request) -> httpx.Response:
    """Mock Supabase ``GET /auth/v1/user``."""
    if request.url.path != "/auth/v1/user":
        return httpx.Response(404)
    auth = request.headers.get("authorization", "")
    token = auth.removeprefix("Bearer ")
    if token == "slow-token":
        raise httpx.ReadTimeout("timed out", request=request)
    if token == "broken-token":
        raise httpx.ConnectError("connection refused", request=request)
    if token == "garbage-token":
        return httpx.Response(200, content=b"<html>")
    user = USERS.get(token)
    if user is None:
        return httpx.Response(401, json={"msg": "invalid JWT"})
    return httpx.Response(200, json=user)


def make_config(**overrides) -> PresignerConfig:
    """Return a complete test config with optional section overrides."""
    kwargs = dict(
        server=ServerConfig(host="127.0.0.1", port=9010),
        identity=IdentityConfig(base_url="https://idp.example.com", api_key="anon-key"),
        storage=StorageConfig(
            endpoint=ENDPOINT,
            bucket=BUCKET,
            access_key_id=ACCESS_KEY,
            secret_key=SECRET_KEY,
        ),
        observability=ObservabilityConfig(metrics=False),
    )
    kwargs.update(overrides)
    return PresignerConfig(**kwargs)


def make_app(config: PresignerConfig, now: datetime = FIXED_NOW):
    """Create an app with a fixed clock and the mock identity provider."""
    return create_app(
        config,
        clock=lambda: now,
        identity_transport=httpx.MockTransport(identity_provider),
    )


def make_client(app) -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver")


@pytest.fixture(scope="session")
def config() -> PresignerConfig:
    """The session config: complete storage settings, metrics enabled."""
    return make_config(observability=ObservabilityConfig(metrics=True))


@pytest.fixture(scope="session")
def app(config: PresignerConfig):
    """Create a single test FastAPI application for the whole session."""
    return make_app(config)


@pytest.fixture
async def client(app) -> AsyncClient:
    """Async test client for the session app."""
    async with make_client(app) as ac:
        yield ac


@pytest.fixture
def auth_headers() -> dict[str, str]:
    return {"Authorization": "Bearer good-token"}

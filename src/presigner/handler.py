"""Presign request handler.

A request moves through ``received -> authenticated -> path_resolved ->
signed -> responded``. Any error moves it to ``failed``; the error is
re-raised and rendered by the app's exception handler as
``{"error": message}``.

Authentication always comes first, so an anonymous request is answered 401
whatever its body says.
"""

import json
import logging
from enum import Enum

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError

from presigner import metrics
from presigner.config import PresignerConfig
from presigner.errors import AuthError, PresignError, ValidationError
from presigner.identity import IdentityVerifier, extract_bearer_token
from presigner.models import CallerIdentity, PresignRequest
from presigner.paths import enforce_tenant_prefix, resolve_object_key, validate_object_key
from presigner.signing import SigningContext, presign

logger = logging.getLogger(__name__)


class PresignState(str, Enum):
    """Lifecycle of one presign request."""

    RECEIVED = "received"
    AUTHENTICATED = "authenticated"
    PATH_RESOLVED = "path_resolved"
    SIGNED = "signed"
    RESPONDED = "responded"
    FAILED = "failed"


def parse_presign_request(body: bytes) -> PresignRequest:
    """Parse and validate the JSON body of a presign call.

    Raises:
        ValidationError: On invalid JSON, a missing or empty ``path``, or a
            ``mode`` other than put/get.
    """
    try:
        data = json.loads(body or b"null")
    except (ValueError, UnicodeDecodeError):
        raise ValidationError("Request body must be valid JSON")
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")

    try:
        return PresignRequest.model_validate(data)
    except PydanticValidationError as exc:
        fields = sorted({str(err["loc"][0]) for err in exc.errors() if err.get("loc")})
        if "mode" in fields:
            raise ValidationError("mode must be 'put' or 'get'")
        if fields:
            raise ValidationError(f"Invalid field(s): {', '.join(fields)}")
        raise ValidationError("Invalid request body")


class PresignHandler:
    """Handles presign calls.

    Configuration, the identity verifier, and the clock are read from
    ``app.state`` so tests can swap them.

    Attributes:
        app: The parent FastAPI application.
    """

    def __init__(self, app: FastAPI) -> None:
        """Initialize the presign handler.

        Args:
            app: The FastAPI application instance.
        """
        self.app = app

    @property
    def config(self) -> PresignerConfig:
        return self.app.state.config

    @property
    def verifier(self) -> IdentityVerifier:
        return self.app.state.identity_verifier

    async def authenticate(self, request: Request) -> CallerIdentity:
        """Verify the request's bearer credential.

        Raises:
            AuthError: If the credential is missing or rejected.
            ConfigError: If no identity provider is configured.
        """
        token = extract_bearer_token(request.headers.get("authorization"))
        try:
            caller = await self.verifier.verify(token)
        except AuthError:
            metrics.record_identity_check("rejected")
            raise
        except PresignError:
            metrics.record_identity_check("error")
            raise
        metrics.record_identity_check("ok")
        return caller

    async def presign(self, request: Request) -> Response:
        """Handle POST <route> -- issue a presigned URL.

        Returns:
            200 JSON ``{"url": ..., "path": ...}``.

        Raises:
            PresignError subclass: Rendered by the app's exception handler.
        """
        state = PresignState.RECEIVED
        mode = "unknown"
        try:
            caller = await self.authenticate(request)
            state = PresignState.AUTHENTICATED
            request.state.user_id = caller.user_id

            config = self.config
            identity = config.storage.signing_identity()

            body = parse_presign_request(await request.body())
            mode = body.mode.value

            now = self.app.state.clock()
            key = resolve_object_key(
                body.path, caller, now, strict=config.signing.strict_placeholders
            )
            validate_object_key(key)
            if config.signing.enforce_tenant_prefix:
                enforce_tenant_prefix(key, caller, config.signing.tenant_prefix)
            state = PresignState.PATH_RESOLVED

            context = SigningContext.at(
                now,
                expires_in=config.signing.expires_seconds,
                region=config.signing.region,
                service=config.signing.service,
            )
            result = presign(
                identity,
                body.mode,
                key,
                context,
                content_type=body.effective_content_type(),
            )
            state = PresignState.SIGNED
        except PresignError as exc:
            logger.info(
                "Presign %s after %s: %s (%s)",
                PresignState.FAILED.value,
                state.value,
                exc.kind,
                exc.message,
                extra={"mode": mode, "status": exc.http_status},
            )
            metrics.record_presign(mode, exc.kind)
            raise
        except Exception:
            logger.error(
                "Presign %s after %s: unexpected error",
                PresignState.FAILED.value,
                state.value,
                extra={"mode": mode, "status": 500},
            )
            metrics.record_presign(mode, "InternalError")
            raise

        logger.info(
            "Generated presigned URL for %s %s",
            body.mode.http_method,
            result.path,
            extra={"user_id": caller.user_id, "mode": mode, "key": result.path},
        )
        metrics.record_presign(mode, "ok")
        logger.debug("Presign %s", PresignState.RESPONDED.value)
        return JSONResponse(content=result.to_dict())

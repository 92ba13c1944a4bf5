"""Bearer-token verification against the external identity provider.

The provider is a Supabase-style auth server: ``GET /auth/v1/user`` with the
caller's access token returns the user record. Every presign call verifies
its token again; nothing is cached and nothing is retried.
"""

import logging

import httpx

from presigner.errors import AuthError, ConfigError
from presigner.models import CallerIdentity

logger = logging.getLogger(__name__)

USER_ENDPOINT = "/auth/v1/user"
DEFAULT_TIMEOUT = 5.0


def extract_bearer_token(header: str | None) -> str:
    """Extract the token from an ``Authorization: Bearer <token>`` header.

    Args:
        header: Raw header value, or None when absent.

    Returns:
        The bearer token.

    Raises:
        AuthError: "missing header" when absent, "unauthorized" when the
            scheme is not Bearer or the token is empty.
    """
    if not header:
        raise AuthError("missing header")
    scheme, _, token = header.strip().partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise AuthError("unauthorized")
    return token.strip()


class IdentityVerifier:
    """Exchanges bearer tokens for caller identities.

    Attributes:
        base_url: Base URL of the identity provider.
        timeout: Upper bound in seconds for the whole round-trip.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the verifier.

        Args:
            base_url: Identity provider base URL (e.g. the Supabase project URL).
            api_key: Public (anon) key sent as the ``apikey`` header.
            timeout: Request timeout in seconds.
            transport: Optional httpx transport, used by tests.
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._api_key = api_key
        self._transport = transport

    async def verify(self, token: str) -> CallerIdentity:
        """Verify ``token`` with the identity provider.

        Args:
            token: The bearer token from the request.

        Returns:
            The caller identity.

        Raises:
            ConfigError: If no identity provider is configured.
            AuthError: On timeout, transport failure, rejection, or a user
                record without an id.
        """
        if not self.base_url:
            raise ConfigError("Identity provider configuration missing")

        headers = {"Authorization": f"Bearer {token}"}
        if self._api_key:
            headers["apikey"] = self._api_key

        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self._transport,
            ) as client:
                response = await client.get(USER_ENDPOINT, headers=headers)
        except httpx.TimeoutException:
            logger.warning("Identity provider timed out after %.1fs", self.timeout)
            raise AuthError("unauthorized")
        except httpx.HTTPError as exc:
            logger.warning("Identity provider request failed: %s", exc)
            raise AuthError("unauthorized")

        if response.status_code != 200:
            logger.info("Identity provider rejected token: HTTP %d", response.status_code)
            raise AuthError("unauthorized")

        try:
            user = response.json()
        except ValueError:
            logger.warning("Identity provider returned a non-JSON body")
            raise AuthError("unauthorized")

        user_id = user.get("id") if isinstance(user, dict) else None
        if not isinstance(user_id, str) or not user_id:
            raise AuthError("unauthorized")

        email = user.get("email")
        return CallerIdentity(user_id=user_id, email=email if isinstance(email, str) else None)

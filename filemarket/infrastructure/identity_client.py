"""Identity provider client.

Resolves a bearer session token to the verified e-mail address of the
signed-in member.
"""

from typing import Protocol

import httpx
import structlog

from filemarket.domain import DependencyError
from filemarket.infrastructure.config import settings

logger = structlog.get_logger()


class IdentityResolver(Protocol):
    async def resolve(self, session_token: str | None) -> str | None: ...


class IdentityClient:
    """Looks up the session owner via ``GET {identity_api_url}/user``."""

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = (base_url or settings.identity_api_url).rstrip("/")
        self.timeout = timeout or settings.http_timeout_seconds
        self._client = client

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout)
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def resolve(self, session_token: str | None) -> str | None:
        """Return the verified identity for ``session_token``.

        Returns:
            The member's e-mail address, or None when the token is missing,
            invalid or expired.

        Raises:
            DependencyError: If the identity service is unreachable or errors.
        """
        if not session_token:
            return None

        client = await self._get_client()
        try:
            response = await client.get(
                "/user",
                headers={"Authorization": f"Bearer {session_token}"},
            )
        except httpx.HTTPError as e:
            logger.error("Identity lookup failed", error=str(e))
            raise DependencyError("identity", "lookup failed") from e

        if response.status_code in (401, 403):
            return None
        if response.status_code >= 400:
            raise DependencyError(
                "identity",
                "lookup rejected",
                {"status_code": response.status_code},
            )

        try:
            email = response.json().get("email")
        except ValueError:
            email = None
        return email or None


class StaticIdentityResolver:
    """Maps fixed session tokens to identities; for tests and local runs."""

    def __init__(self, sessions: dict[str, str] | None = None) -> None:
        self.sessions = dict(sessions or {})

    async def resolve(self, session_token: str | None) -> str | None:
        if not session_token:
            return None
        return self.sessions.get(session_token)

"""Object storage client.

Creates short-lived signed download locations for purchased files.
"""

from typing import Protocol
from urllib.parse import quote

import httpx
import structlog

from filemarket.domain import DependencyError
from filemarket.infrastructure.config import settings

logger = structlog.get_logger()


class ObjectStorage(Protocol):
    async def create_signed_download_location(self, path: str, ttl_seconds: int) -> str: ...


class StorageClient:
    """HTTP client for the storage service's object signing endpoint.

    Single attempt per call; any transport error or non-2xx response is
    raised as ``DependencyError``.
    """

    def __init__(
        self,
        base_url: str | None = None,
        bucket: str | None = None,
        service_key: str | None = None,
        timeout: float | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = (base_url or settings.storage_api_url).rstrip("/")
        self.bucket = bucket or settings.storage_bucket
        self.service_key = service_key or settings.storage_service_key
        self.timeout = timeout or settings.http_timeout_seconds
        self._client = client

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                headers={
                    "Authorization": f"Bearer {self.service_key}",
                    "apikey": self.service_key,
                },
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def create_signed_download_location(self, path: str, ttl_seconds: int) -> str:
        """Sign ``path`` in the configured bucket for ``ttl_seconds``.

        Returns:
            Absolute URL granting read access until the TTL elapses.

        Raises:
            DependencyError: If the storage service fails or returns no URL.
        """
        client = await self._get_client()
        object_path = quote(path.lstrip("/"))
        try:
            response = await client.post(
                f"/object/sign/{self.bucket}/{object_path}",
                json={"expiresIn": ttl_seconds},
            )
        except httpx.HTTPError as e:
            logger.error("Storage signing request failed", path=path, error=str(e))
            raise DependencyError("storage", "signing request failed", {"path": path}) from e

        if response.status_code >= 400:
            logger.error(
                "Storage signing rejected",
                path=path,
                status_code=response.status_code,
            )
            raise DependencyError(
                "storage",
                "signing request rejected",
                {"path": path, "status_code": response.status_code},
            )

        try:
            data = response.json()
            signed = data.get("signedURL") or data.get("signedUrl")
        except (ValueError, AttributeError):
            signed = None
        if not signed:
            raise DependencyError("storage", "signing response had no URL", {"path": path})

        if signed.startswith("http://") or signed.startswith("https://"):
            return signed
        return f"{self.base_url}/{signed.lstrip('/')}"

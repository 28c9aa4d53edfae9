"""Transactional e-mail client.

Sends download delivery notices. Delivery is best effort: failures are
logged and reported as ``False``, never raised.
"""

from dataclasses import dataclass
from typing import Protocol
from urllib.parse import urlencode

import httpx
import structlog

from filemarket.infrastructure.config import settings

logger = structlog.get_logger()


@dataclass(frozen=True)
class DeliveryContext:
    """Details rendered into a delivery notice."""

    order_id: str
    listing_title: str
    expires_at_iso: str
    renewal: bool = False


class EmailSender(Protocol):
    async def send_delivery_notice(
        self,
        recipient: str,
        context: DeliveryContext,
        redemption_reference: str,
    ) -> bool: ...


def download_link(redemption_reference: str, site_url: str | None = None) -> str:
    """Public redemption URL for a download token."""
    base = (site_url or settings.public_site_url).rstrip("/")
    return f"{base}/downloads?{urlencode({'token': redemption_reference})}"


class EmailClient:
    """HTTP client for a Resend-compatible ``POST /emails`` API."""

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        sender: str | None = None,
        timeout: float | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = (base_url or settings.email_api_url).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.email_api_key
        self.sender = sender or settings.email_sender
        self.timeout = timeout or settings.http_timeout_seconds
        self._client = client

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                headers={"Authorization": f"Bearer {self.api_key}"},
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def send_delivery_notice(
        self,
        recipient: str,
        context: DeliveryContext,
        redemption_reference: str,
    ) -> bool:
        """Send the download link for an order.

        Args:
            recipient: Buyer e-mail address.
            context: Order details for the message body.
            redemption_reference: Current download token.

        Returns:
            True if the provider accepted the message.
        """
        if not self.api_key:
            logger.warning("E-mail API key not configured", order_id=context.order_id)
            return False

        link = download_link(redemption_reference)
        subject = (
            f"New download link: {context.listing_title}"
            if context.renewal
            else f"Your download is ready: {context.listing_title}"
        )
        text = (
            f"Download {context.listing_title}: {link}\n"
            f"The link expires at {context.expires_at_iso}."
        )

        try:
            client = await self._get_client()
            response = await client.post(
                "/emails",
                json={
                    "from": self.sender,
                    "to": [recipient],
                    "subject": subject,
                    "text": text,
                },
            )
        except httpx.HTTPError as e:
            logger.error("Delivery e-mail failed", order_id=context.order_id, error=str(e))
            return False

        if response.status_code >= 400:
            logger.error(
                "Delivery e-mail rejected",
                order_id=context.order_id,
                status_code=response.status_code,
            )
            return False

        logger.info("Delivery e-mail sent", order_id=context.order_id, renewal=context.renewal)
        return True

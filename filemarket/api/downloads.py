"""Download endpoints.

Provides:
- GET /downloads?token=... - redeem a download token (302 to signed URL)
- POST /orders/{order_id}/download-renewals - rotate the token (owner only)
"""

from typing import Annotated

import structlog
from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import RedirectResponse

from filemarket.api.dependencies import (
    Flags,
    Identity,
    OptionalIdentity,
    get_credential_service,
)
from filemarket.api.schemas import ErrorResponse, RenewalResponse
from filemarket.application import CredentialService

logger = structlog.get_logger()

router = APIRouter(tags=["Downloads"])


@router.get(
    "/downloads",
    status_code=status.HTTP_302_FOUND,
    response_class=RedirectResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Missing token"},
        403: {"model": ErrorResponse, "description": "Downloads are disabled"},
        404: {"model": ErrorResponse, "description": "Unknown or superseded token"},
        410: {"model": ErrorResponse, "description": "Token expired"},
        422: {"model": ErrorResponse, "description": "Order not paid"},
        502: {"model": ErrorResponse, "description": "Storage unavailable"},
    },
    summary="Redeem download token",
)
async def redeem_download(
    flags: Flags,
    identity: OptionalIdentity,
    service: Annotated[CredentialService, Depends(get_credential_service)],
    token: Annotated[str | None, Query()] = None,
) -> RedirectResponse:
    """Redirect to a short-lived signed location of the purchased file.

    An expired token still works for the signed-in owner of the order.
    """
    result = await service.redeem(token or "", flags, requester_identity=identity)
    response = RedirectResponse(result.location, status_code=status.HTTP_302_FOUND)
    response.headers["Cache-Control"] = "no-store"
    return response


@router.post(
    "/orders/{order_id}/download-renewals",
    response_model=RenewalResponse,
    responses={
        401: {"model": ErrorResponse, "description": "Not signed in"},
        403: {"model": ErrorResponse, "description": "Not the buyer, or downloads disabled"},
        404: {"model": ErrorResponse, "description": "Order not found"},
        409: {"model": ErrorResponse, "description": "Concurrent update"},
        422: {"model": ErrorResponse, "description": "Order not paid"},
        429: {"model": ErrorResponse, "description": "Renewal limit reached"},
    },
    summary="Renew download link",
)
async def renew_download(
    order_id: str,
    identity: Identity,
    flags: Flags,
    service: Annotated[CredentialService, Depends(get_credential_service)],
) -> RenewalResponse:
    """Rotate the order's download token and e-mail the new link.

    Args:
        order_id: Order identifier.
        identity: Signed-in caller.
        flags: Override snapshot.
        service: Credential service.

    Returns:
        RenewalResponse with the new expiry and remaining renewals.
    """
    credential = await service.renew(order_id, identity, flags)
    order = await service.orders.get(order_id)
    retry_count = order.delivery_retry_count if order else 0
    return RenewalResponse(
        order_id=order_id,
        expires_at=credential.expires_at,
        delivery_retry_count=retry_count,
        retries_remaining=max(service.retry_limit - retry_count, 0),
    )

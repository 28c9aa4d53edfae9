"""Checkout API endpoints.

Provides:
- POST /checkouts - open a checkout session and a pending order
"""

from typing import Annotated

import structlog
from fastapi import APIRouter, Depends, status

from filemarket.api.dependencies import Flags, get_checkout_service
from filemarket.api.schemas import (
    CheckoutRequest,
    CheckoutResponse,
    ErrorResponse,
    PricingSchema,
)
from filemarket.application import CheckoutService

logger = structlog.get_logger()

router = APIRouter(prefix="/checkouts", tags=["Checkouts"])


@router.post(
    "",
    response_model=CheckoutResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"model": ErrorResponse, "description": "Invalid request"},
        403: {"model": ErrorResponse, "description": "Purchasing is disabled"},
        404: {"model": ErrorResponse, "description": "Listing not found"},
        422: {"model": ErrorResponse, "description": "Listing not for sale"},
        500: {"model": ErrorResponse, "description": "Listing misconfigured"},
        502: {"model": ErrorResponse, "description": "Payment provider unavailable"},
    },
    summary="Open checkout",
    description="Price a listing, open a hosted checkout session and record a pending order.",
)
async def open_checkout(
    body: CheckoutRequest,
    flags: Flags,
    service: Annotated[CheckoutService, Depends(get_checkout_service)],
) -> CheckoutResponse:
    """Open a checkout for a listing.

    Args:
        body: Listing and buyer.
        flags: Override snapshot.
        service: Checkout service.

    Returns:
        CheckoutResponse with the hosted checkout URL.
    """
    result = await service.open_checkout(body.listing_id, body.buyer_identity, flags)
    return CheckoutResponse(
        order_id=result.order_id,
        checkout_handle=result.checkout_handle,
        checkout_url=result.checkout_url,
        pricing=PricingSchema(
            base_price_minor=result.pricing.base_price_minor,
            platform_fee_minor=result.pricing.platform_fee_minor,
            total_charged_minor=result.pricing.total_charged_minor,
        ),
    )

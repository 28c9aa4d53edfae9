"""Administrative endpoints.

Provides:
- GET /admin/orders/{id} - order details with payouts
- GET /admin/orders/{id}/payouts - payout batch
- POST /admin/orders/{id}/payouts/reconcile - create a missing payout batch
- POST /admin/orders/{id}/payouts/{participant_id}/transfer - record a sent payout
- GET /admin/overrides - list override controls
- PUT /admin/overrides/{feature_key} - flip an override control

All endpoints require a signed-in administrator.
"""

from typing import Annotated

import structlog
from fastapi import APIRouter, Depends

from filemarket.api.dependencies import (
    AdminIdentity,
    Flags,
    get_order_service,
    get_override_service,
    get_payment_event_service,
)
from filemarket.api.schemas import (
    ErrorResponse,
    OrderResponse,
    OverrideSchema,
    OverridesResponse,
    OverrideUpdateRequest,
    PayoutSchema,
    PayoutsResponse,
    ReconcileResponse,
)
from filemarket.application import OrderService, OverrideService, PaymentEventService

logger = structlog.get_logger()

router = APIRouter(
    prefix="/admin",
    tags=["Admin"],
    responses={
        401: {"model": ErrorResponse, "description": "Not signed in"},
        403: {"model": ErrorResponse, "description": "Not an administrator"},
    },
)


# ============================================================================
# Orders
# ============================================================================


@router.get(
    "/orders/{order_id}",
    response_model=OrderResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_order(
    order_id: str,
    admin: AdminIdentity,
    service: Annotated[OrderService, Depends(get_order_service)],
) -> OrderResponse:
    """Get an order with its credential state and payouts."""
    view = await service.get_order(order_id)
    return OrderResponse.from_view(view)


@router.get(
    "/orders/{order_id}/payouts",
    response_model=PayoutsResponse,
    responses={404: {"model": ErrorResponse}},
)
async def list_payouts(
    order_id: str,
    admin: AdminIdentity,
    service: Annotated[OrderService, Depends(get_order_service)],
) -> PayoutsResponse:
    payouts = await service.list_payouts(order_id)
    return PayoutsResponse(
        order_id=order_id,
        payouts=[PayoutSchema.from_payout(p) for p in payouts],
        total_minor=sum(p.amount_minor for p in payouts),
    )


@router.post(
    "/orders/{order_id}/payouts/reconcile",
    response_model=ReconcileResponse,
    responses={
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse, "description": "Order not paid"},
        500: {"model": ErrorResponse, "description": "Listing misconfigured"},
        502: {"model": ErrorResponse, "description": "Payout store failed"},
    },
)
async def reconcile_payouts(
    order_id: str,
    admin: AdminIdentity,
    service: Annotated[PaymentEventService, Depends(get_payment_event_service)],
) -> ReconcileResponse:
    """Create the payout batch for a paid order that is missing one.

    No-op when the batch already exists.
    """
    result = await service.reconcile_payouts(order_id)
    logger.info(
        "Payout reconciliation requested",
        order_id=order_id,
        created=result.created,
        requested_by=admin,
    )
    return ReconcileResponse(
        order_id=order_id,
        payouts=[PayoutSchema.from_payout(p) for p in result.payouts],
        total_minor=sum(p.amount_minor for p in result.payouts),
        created=result.created,
    )


@router.post(
    "/orders/{order_id}/payouts/{participant_id}/transfer",
    response_model=PayoutSchema,
    responses={
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse, "description": "Payout not pending"},
    },
)
async def record_payout_transfer(
    order_id: str,
    participant_id: str,
    admin: AdminIdentity,
    service: Annotated[OrderService, Depends(get_order_service)],
) -> PayoutSchema:
    """Mark a pending payout as transferred once the money has been sent."""
    payout = await service.record_payout_transfer(order_id, participant_id)
    logger.info(
        "Payout transfer marked",
        order_id=order_id,
        participant_id=participant_id,
        requested_by=admin,
    )
    return PayoutSchema.from_payout(payout)


# ============================================================================
# Override Controls
# ============================================================================


@router.get("/overrides", response_model=OverridesResponse)
async def list_overrides(
    admin: AdminIdentity,
    flags: Flags,
    service: Annotated[OverrideService, Depends(get_override_service)],
) -> OverridesResponse:
    controls = await service.list_controls()
    return OverridesResponse(
        overrides=[
            OverrideSchema.from_control(c, flags.is_enabled(c.feature_key)) for c in controls
        ]
    )


@router.put(
    "/overrides/{feature_key}",
    response_model=OverrideSchema,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def update_override(
    feature_key: str,
    body: OverrideUpdateRequest,
    admin: AdminIdentity,
    service: Annotated[OverrideService, Depends(get_override_service)],
) -> OverrideSchema:
    """Enable or disable an override control."""
    control = await service.set_control(
        feature_key, body.enabled, actor=admin, description=body.description
    )
    flags = await service.current_flags()
    return OverrideSchema.from_control(control, flags.is_enabled(feature_key))

"""Webhook receiver endpoints.

Provides:
- POST /webhooks/payments - receive payment provider notifications
- HMAC signature verification on the raw body

Every authenticated notification is acknowledged with 200, including ones
that could not be applied; those are logged and alerted instead so the
provider does not retry them forever.
"""

from typing import Annotated

import structlog
from fastapi import APIRouter, Depends, Header, HTTPException, Request, status

from filemarket.api.dependencies import Container, get_payment_event_service
from filemarket.api.schemas import ErrorResponse, PaymentWebhookResponse
from filemarket.application import PaymentEventService
from filemarket.domain import UnauthenticatedEventError

logger = structlog.get_logger()

router = APIRouter(prefix="/webhooks", tags=["Webhooks"])

SIGNATURE_HEADER = "Stripe-Signature"


@router.post(
    "/payments",
    response_model=PaymentWebhookResponse,
    responses={401: {"model": ErrorResponse}},
    summary="Receive payment notification",
    description="Receive and apply payment provider notifications with HMAC verification.",
)
async def receive_payment_webhook(
    request: Request,
    container: Container,
    service: Annotated[PaymentEventService, Depends(get_payment_event_service)],
    stripe_signature: Annotated[str | None, Header()] = None,
) -> PaymentWebhookResponse:
    """Receive and process a payment notification.

    Args:
        request: The incoming request; the raw body is verified.
        container: Service container holding the payment gateway.
        service: Payment event service.
        stripe_signature: Signature header ``t=<unix>,v1=<hex>``.

    Returns:
        PaymentWebhookResponse with the handling outcome.

    Raises:
        HTTPException: 401 if the notification fails authentication.
    """
    body = await request.body()

    try:
        event = container.gateway.parse_event(body, stripe_signature)
    except UnauthenticatedEventError as e:
        logger.warning("Payment notification rejected", reason=e.message)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={
                "error_code": e.error_code,
                "message": "Payment notification failed authentication",
            },
        ) from e

    if event is None:
        return PaymentWebhookResponse(status="ignored", message="Event type not handled")

    result = await service.handle_payment_outcome(event)
    return PaymentWebhookResponse(
        status=result.status.value,
        order_id=result.order_id,
        message=result.message,
    )

"""Order query and payout bookkeeping service for operators."""

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime

import structlog

from filemarket.domain import (
    DEFAULT_RETRY_LIMIT,
    CredentialState,
    NotFoundError,
    Order,
    OrderNotFoundError,
    Payout,
    utc_now,
)
from filemarket.infrastructure.repositories import OrderRepository, PayoutRepository

logger = structlog.get_logger()


@dataclass
class OrderView:
    """Order together with its derived credential state."""

    order: Order
    credential_state: CredentialState
    payouts: list[Payout] = field(default_factory=list)


class OrderService:
    """Operator access to orders and their payouts."""

    def __init__(
        self,
        orders: OrderRepository,
        payouts: PayoutRepository,
        retry_limit: int = DEFAULT_RETRY_LIMIT,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.orders = orders
        self.payouts = payouts
        self.retry_limit = retry_limit
        self.clock = clock

    async def get_order(self, order_id: str) -> OrderView:
        """Load an order with its payouts.

        Raises:
            OrderNotFoundError: If the order does not exist.
        """
        order = await self.orders.get(order_id)
        if order is None:
            raise OrderNotFoundError(order_id=order_id)
        return OrderView(
            order=order,
            credential_state=order.credential_state(self.clock(), self.retry_limit),
            payouts=await self.payouts.list_for_order(order_id),
        )

    async def list_payouts(self, order_id: str) -> list[Payout]:
        if await self.orders.get(order_id) is None:
            raise OrderNotFoundError(order_id=order_id)
        return await self.payouts.list_for_order(order_id)

    async def record_payout_transfer(self, order_id: str, participant_id: str) -> Payout:
        """Record that a participant's payout has been sent.

        Transfers happen outside the marketplace; this only moves the payout
        row from pending to transferred.

        Raises:
            OrderNotFoundError: If the order does not exist.
            NotFoundError: If the order has no payout for the participant.
            InvalidStateTransitionError: If the payout is not pending.
        """
        payouts = await self.list_payouts(order_id)
        payout = next((p for p in payouts if p.participant_id == participant_id), None)
        if payout is None:
            raise NotFoundError(
                f"Order {order_id} has no payout for participant {participant_id}",
                details={"order_id": order_id, "participant_id": participant_id},
            )

        payout.mark_transferred(self.clock())
        await self.payouts.save(payout)
        logger.info(
            "Payout transfer recorded",
            order_id=order_id,
            participant_id=participant_id,
            amount_minor=payout.amount_minor,
        )
        return payout

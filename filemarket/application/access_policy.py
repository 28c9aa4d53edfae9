"""Access policy for order-scoped and administrative operations."""

from collections.abc import Iterable

from filemarket.domain import ForbiddenError, Order


class AccessPolicy:
    """Decides whether a verified identity may act on an order.

    The buyer of an order owns it. Configured administrators may act on any
    order and reach the admin endpoints.
    """

    def __init__(self, admin_identities: Iterable[str] = ()) -> None:
        self._admins = frozenset(a.strip().casefold() for a in admin_identities if a.strip())

    def is_admin(self, identity: str | None) -> bool:
        return identity is not None and identity.strip().casefold() in self._admins

    def can_access_order(self, identity: str | None, order: Order) -> bool:
        if identity is None:
            return False
        return order.is_owned_by(identity) or self.is_admin(identity)

    def require_order_access(self, identity: str | None, order: Order) -> None:
        """Raise ``ForbiddenError`` unless ``identity`` may act on ``order``."""
        if not self.can_access_order(identity, order):
            raise ForbiddenError(
                "Not authorized to access this order",
                details={"order_id": order.id},
            )

    def require_admin(self, identity: str | None) -> None:
        if not self.is_admin(identity):
            raise ForbiddenError("Administrator access required")

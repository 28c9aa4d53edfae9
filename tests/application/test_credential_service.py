"""Tests for the download credential manager."""

import pytest

from filemarket.domain import (
    CheckoutCompleted,
    ChargeRefunded,
    DependencyError,
    ExpiredError,
    FeatureDisabledError,
    FeatureFlags,
    ForbiddenError,
    InvalidTokenError,
    MisconfiguredListingError,
    OrderNotFoundError,
    PaymentIncompleteError,
    RetryLimitExceededError,
    ValidationError,
)

BUYER = "buyer@example.com"
OTHER = "someone-else@example.com"
ADMIN = "ops@filemarket.test"


async def paid_order(checkout_service, payment_service, container, flags):
    """Open and pay an order; return it as stored."""
    result = await checkout_service.open_checkout("listing-1", BUYER, flags)
    await payment_service.handle_payment_outcome(CheckoutCompleted(result.checkout_handle))
    return await container.orders.get(result.order_id)


class FlakyOrderRepository:
    """Delegates reads; every write fails with a database error."""

    def __init__(self, inner) -> None:
        self.inner = inner

    def __getattr__(self, name):
        return getattr(self.inner, name)

    async def save(self, order, expected_version, expected_state) -> None:
        raise DependencyError("database", "connection lost")


class UnreachableListingRepository:
    """Listing store whose reads fail with a database error."""

    async def get(self, listing_id):
        raise DependencyError("database", "listing store unreachable")


# ============================================================================
# Renew
# ============================================================================


class TestRenew:
    @pytest.mark.asyncio
    async def test_owner_renews(
        self, checkout_service, payment_service, credential_service, container, email, flags, clock
    ) -> None:
        """Renewal rotates the token, spends one retry and mails the new link."""
        order = await paid_order(checkout_service, payment_service, container, flags)
        old_token = order.download_credential.token
        clock.advance(hours=1)

        credential = await credential_service.renew(order.id, BUYER, flags)

        stored = await container.orders.get(order.id)
        assert stored.delivery_retry_count == 1
        assert stored.download_credential == credential
        assert credential.token != old_token
        assert credential.expires_at == clock.now + credential_service.credential_ttl
        assert email.tokens[-1] == credential.token
        assert email.sent[-1][1].renewal is True

        with pytest.raises(InvalidTokenError):
            await credential_service.redeem(old_token, flags)

    @pytest.mark.asyncio
    async def test_owner_match_ignores_case(
        self, checkout_service, payment_service, credential_service, container, flags
    ) -> None:
        order = await paid_order(checkout_service, payment_service, container, flags)
        await credential_service.renew(order.id, "BUYER@example.com", flags)

    @pytest.mark.asyncio
    async def test_fifth_renewal_allowed_sixth_refused(
        self, checkout_service, payment_service, credential_service, container, flags
    ) -> None:
        order = await paid_order(checkout_service, payment_service, container, flags)
        for _ in range(5):
            await credential_service.renew(order.id, BUYER, flags)
        assert (await container.orders.get(order.id)).delivery_retry_count == 5

        with pytest.raises(RetryLimitExceededError):
            await credential_service.renew(order.id, BUYER, flags)
        assert (await container.orders.get(order.id)).delivery_retry_count == 5

    @pytest.mark.asyncio
    async def test_non_owner_forbidden_regardless_of_count(
        self, checkout_service, payment_service, credential_service, container, flags
    ) -> None:
        """Ownership is checked before the retry budget."""
        order = await paid_order(checkout_service, payment_service, container, flags)
        with pytest.raises(ForbiddenError):
            await credential_service.renew(order.id, OTHER, flags)

        for _ in range(5):
            await credential_service.renew(order.id, BUYER, flags)
        with pytest.raises(ForbiddenError):
            await credential_service.renew(order.id, OTHER, flags)

    @pytest.mark.asyncio
    async def test_administrator_may_renew(
        self, checkout_service, payment_service, credential_service, container, email, flags
    ) -> None:
        order = await paid_order(checkout_service, payment_service, container, flags)
        await credential_service.renew(order.id, ADMIN, flags)
        assert email.sent[-1][0] == BUYER

    @pytest.mark.asyncio
    async def test_delivery_gate_checked_first(self, credential_service) -> None:
        """A closed gate wins over an unknown order."""
        with pytest.raises(FeatureDisabledError):
            await credential_service.renew("missing", BUYER, FeatureFlags.enabled("marketplace_purchase"))

    @pytest.mark.asyncio
    async def test_unknown_order(self, credential_service, flags) -> None:
        with pytest.raises(OrderNotFoundError):
            await credential_service.renew("missing", BUYER, flags)

    @pytest.mark.asyncio
    async def test_pending_order_cannot_renew(
        self, checkout_service, credential_service, flags
    ) -> None:
        result = await checkout_service.open_checkout("listing-1", BUYER, flags)
        with pytest.raises(PaymentIncompleteError):
            await credential_service.renew(result.order_id, BUYER, flags)

    @pytest.mark.asyncio
    async def test_refunded_order_cannot_renew(
        self, checkout_service, payment_service, credential_service, container, flags
    ) -> None:
        order = await paid_order(checkout_service, payment_service, container, flags)
        await payment_service.handle_payment_outcome(ChargeRefunded(order.payment_reference))
        with pytest.raises(PaymentIncompleteError):
            await credential_service.renew(order.id, BUYER, flags)

    @pytest.mark.asyncio
    async def test_renewal_survives_mail_failure(
        self, checkout_service, payment_service, credential_service, container, email, flags
    ) -> None:
        order = await paid_order(checkout_service, payment_service, container, flags)
        email.fail = True
        credential = await credential_service.renew(order.id, BUYER, flags)
        assert (await container.orders.get(order.id)).download_credential == credential

    @pytest.mark.asyncio
    async def test_renewal_mails_link_when_listing_lookup_fails(
        self, checkout_service, payment_service, credential_service, container, email, flags
    ) -> None:
        """The rotated token is still delivered, under a generic title."""
        order = await paid_order(checkout_service, payment_service, container, flags)
        credential_service.listings = UnreachableListingRepository()

        credential = await credential_service.renew(order.id, BUYER, flags)

        recipient, context, token = email.sent[-1]
        assert (recipient, token) == (BUYER, credential.token)
        assert context.listing_title == "your purchase"
        assert context.renewal is True
        assert (await container.orders.get(order.id)).delivery_retry_count == 1


class TestIssue:
    @pytest.mark.asyncio
    async def test_issue_keeps_budget(
        self, checkout_service, payment_service, credential_service, container, flags
    ) -> None:
        order = await paid_order(checkout_service, payment_service, container, flags)
        credential = await credential_service.issue(order.id)
        stored = await container.orders.get(order.id)
        assert stored.download_credential == credential
        assert stored.delivery_retry_count == 0


# ============================================================================
# Redeem
# ============================================================================


class TestRedeem:
    @pytest.mark.asyncio
    async def test_valid_token_signs_location(
        self, checkout_service, payment_service, credential_service, container, storage, flags
    ) -> None:
        order = await paid_order(checkout_service, payment_service, container, flags)

        result = await credential_service.redeem(order.download_credential.token, flags)

        assert result.order_id == order.id
        assert result.past_expiry is False
        assert result.location.startswith("https://storage.test/signed/files/listing-1/")
        assert storage.calls == [("files/listing-1/model.stl", 600)]
        stored = await container.orders.get(order.id)
        assert stored.download_attempt_count == 1
        assert stored.downloaded_at is not None

    @pytest.mark.asyncio
    async def test_token_is_reusable_until_expiry(
        self, checkout_service, payment_service, credential_service, container, flags
    ) -> None:
        order = await paid_order(checkout_service, payment_service, container, flags)
        token = order.download_credential.token
        await credential_service.redeem(token, flags)
        await credential_service.redeem(token, flags)
        assert (await container.orders.get(order.id)).download_attempt_count == 2

    @pytest.mark.asyncio
    async def test_blank_token(self, credential_service, flags) -> None:
        with pytest.raises(ValidationError):
            await credential_service.redeem("  ", flags)

    @pytest.mark.asyncio
    async def test_unknown_token(self, credential_service, flags) -> None:
        with pytest.raises(InvalidTokenError):
            await credential_service.redeem("not-a-token", flags)

    @pytest.mark.asyncio
    async def test_delivery_gate(self, credential_service) -> None:
        with pytest.raises(FeatureDisabledError):
            await credential_service.redeem("anything", FeatureFlags())

    @pytest.mark.asyncio
    async def test_expired_token_refused_for_anonymous_and_others(
        self, checkout_service, payment_service, credential_service, container, clock, flags
    ) -> None:
        order = await paid_order(checkout_service, payment_service, container, flags)
        clock.advance(hours=73)

        with pytest.raises(ExpiredError):
            await credential_service.redeem(order.download_credential.token, flags)
        with pytest.raises(ExpiredError):
            await credential_service.redeem(
                order.download_credential.token, flags, requester_identity=OTHER
            )

    @pytest.mark.asyncio
    async def test_expired_token_honoured_for_owner(
        self, checkout_service, payment_service, credential_service, container, clock, flags
    ) -> None:
        """The signed-in owner bypasses expiry without spending a retry."""
        order = await paid_order(checkout_service, payment_service, container, flags)
        clock.advance(hours=73)

        result = await credential_service.redeem(
            order.download_credential.token, flags, requester_identity=BUYER
        )

        assert result.past_expiry is True
        stored = await container.orders.get(order.id)
        assert stored.delivery_retry_count == 0
        assert stored.download_attempt_count == 1
        assert stored.download_credential == order.download_credential

    @pytest.mark.asyncio
    async def test_signing_failure_propagates(
        self, checkout_service, payment_service, credential_service, container, storage, flags
    ) -> None:
        order = await paid_order(checkout_service, payment_service, container, flags)
        storage.fail = True

        with pytest.raises(DependencyError):
            await credential_service.redeem(order.download_credential.token, flags)
        assert (await container.orders.get(order.id)).download_attempt_count == 0

    @pytest.mark.asyncio
    async def test_missing_file_alerts(
        self, checkout_service, payment_service, credential_service, container, alerts, flags,
        listing_factory,
    ) -> None:
        order = await paid_order(checkout_service, payment_service, container, flags)
        await container.listings.add(listing_factory(storage_path=""))

        with pytest.raises(MisconfiguredListingError):
            await credential_service.redeem(order.download_credential.token, flags)
        assert "LISTING_FILE_MISSING" in alerts.codes()

    @pytest.mark.asyncio
    async def test_tracking_failure_is_not_fatal(
        self, checkout_service, payment_service, credential_service, container, flags
    ) -> None:
        """The buyer still gets the file when the download counter cannot be written."""
        order = await paid_order(checkout_service, payment_service, container, flags)
        credential_service.orders = FlakyOrderRepository(container.orders)

        result = await credential_service.redeem(order.download_credential.token, flags)

        assert result.location
        assert (await container.orders.get(order.id)).download_attempt_count == 0

"""End-to-end purchase scenarios through the HTTP surface.

Scenarios:
1. Happy path: checkout, payment, payout batch, download
2. Duplicate payment notifications
3. Shared royalty split with rounding residual
4. Expired link renewed by the buyer
5. Refund after delivery
6. Refund notification arriving before payment
"""

import pytest
from fastapi import status

from filemarket.domain import RoyaltyShare

BUYER_AUTH = {"Authorization": "Bearer buyer-session"}
ADMIN_AUTH = {"Authorization": "Bearer admin-session"}


def checkout(client, listing_id: str = "listing-1") -> dict:
    response = client.post(
        "/checkouts",
        json={"listing_id": listing_id, "buyer_identity": "buyer@example.com"},
        headers={"X-Request-ID": "e2e-test-request"},
    )
    assert response.status_code == status.HTTP_201_CREATED
    return response.json()


def deliver(client, sign_event, event_type: str, reference: str, event_id: str) -> dict:
    body, headers = sign_event(
        event_type,
        reference,
        metadata={"checkout_session_id": reference},
        event_id=event_id,
    )
    response = client.post("/webhooks/payments", content=body, headers=headers)
    assert response.status_code == status.HTTP_200_OK
    return response.json()


# ============================================================================
# Scenario 1: Happy Path
# ============================================================================


class TestScenario1HappyPath:
    """A single-originator listing bought and downloaded."""

    def test_full_flow(self, client, sign_event, email, storage) -> None:
        created = checkout(client)
        assert created["pricing"] == {
            "base_price_minor": 500,
            "platform_fee_minor": 50,
            "total_charged_minor": 550,
        }

        result = deliver(
            client, sign_event, "checkout.session.completed", created["checkout_handle"], "evt_1"
        )
        assert result["status"] == "processed"

        recipient, context, token = email.sent[0]
        assert recipient == "buyer@example.com"
        assert context.listing_title == "Parametric Vase"

        download = client.get("/downloads", params={"token": token}, follow_redirects=False)
        assert download.status_code == status.HTTP_302_FOUND
        assert storage.calls == [("files/listing-1/model.stl", 600)]

        order = client.get(f"/admin/orders/{created['order_id']}", headers=ADMIN_AUTH).json()
        assert order["payment_state"] == "paid"
        assert order["download_attempt_count"] == 1
        assert order["downloaded_at"] is not None
        assert [(p["participant_id"], p["amount_minor"]) for p in order["payouts"]] == [
            ("originator-1", 500)
        ]


# ============================================================================
# Scenario 2: Duplicate Notifications
# ============================================================================


class TestScenario2DuplicateNotifications:
    def test_second_completion_has_no_effect(self, client, sign_event, email) -> None:
        created = checkout(client)
        reference = created["checkout_handle"]

        first = deliver(client, sign_event, "checkout.session.completed", reference, "evt_1")
        second = deliver(client, sign_event, "checkout.session.completed", reference, "evt_2")

        assert first["status"] == "processed"
        assert second["status"] == "duplicate"
        assert len(email.sent) == 1
        payouts = client.get(
            f"/admin/orders/{created['order_id']}/payouts", headers=ADMIN_AUTH
        ).json()
        assert len(payouts["payouts"]) == 1


# ============================================================================
# Scenario 3: Shared Split
# ============================================================================


class TestScenario3SharedSplit:
    @pytest.mark.asyncio
    async def test_payouts_round_down(self, client, container, sign_event, listing_factory) -> None:
        await container.listings.add(
            listing_factory(
                "listing-2",
                base_price_minor=999,
                storage_path="files/listing-2/remix.stl",
                split=[RoyaltyShare("remixer-1", 6000), RoyaltyShare("originator-1", 4000)],
            )
        )

        created = checkout(client, "listing-2")
        assert created["pricing"]["total_charged_minor"] == 1099

        deliver(client, sign_event, "checkout.session.completed", created["checkout_handle"], "evt_1")

        payouts = client.get(
            f"/admin/orders/{created['order_id']}/payouts", headers=ADMIN_AUTH
        ).json()
        amounts = {p["participant_id"]: p["amount_minor"] for p in payouts["payouts"]}
        assert amounts == {"remixer-1": 599, "originator-1": 399}
        assert payouts["total_minor"] == 998


# ============================================================================
# Scenario 4: Expired Link Renewal
# ============================================================================


class TestScenario4Renewal:
    def test_buyer_renews_expired_link(self, client, sign_event, email, clock) -> None:
        created = checkout(client)
        deliver(client, sign_event, "checkout.session.completed", created["checkout_handle"], "evt_1")
        clock.advance(hours=80)

        expired = client.get("/downloads", params={"token": email.tokens[-1]}, follow_redirects=False)
        assert expired.status_code == status.HTTP_410_GONE

        renewal = client.post(
            f"/orders/{created['order_id']}/download-renewals", headers=BUYER_AUTH
        )
        assert renewal.status_code == status.HTTP_200_OK
        assert renewal.json()["retries_remaining"] == 4

        fresh = client.get("/downloads", params={"token": email.tokens[-1]}, follow_redirects=False)
        assert fresh.status_code == status.HTTP_302_FOUND


# ============================================================================
# Scenario 5: Refund
# ============================================================================


class TestScenario5Refund:
    def test_refund_revokes_download_and_voids_payouts(self, client, sign_event, email) -> None:
        created = checkout(client)
        reference = created["checkout_handle"]
        deliver(client, sign_event, "checkout.session.completed", reference, "evt_1")

        refunded = deliver(client, sign_event, "charge.refunded", "ch_1", "evt_2")
        assert refunded["status"] == "processed"

        download = client.get("/downloads", params={"token": email.tokens[-1]}, follow_redirects=False)
        assert download.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
        assert download.json()["error_code"] == "PAYMENT_INCOMPLETE"

        renewal = client.post(
            f"/orders/{created['order_id']}/download-renewals", headers=BUYER_AUTH
        )
        assert renewal.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

        payouts = client.get(
            f"/admin/orders/{created['order_id']}/payouts", headers=ADMIN_AUTH
        ).json()
        assert [p["status"] for p in payouts["payouts"]] == ["failed"]

        again = deliver(client, sign_event, "charge.refunded", "ch_1", "evt_3")
        assert again["status"] == "duplicate"


# ============================================================================
# Scenario 6: Out-of-Order Refund
# ============================================================================


class TestScenario6RefundBeforePayment:
    def test_refund_of_pending_order_is_ignored(self, client, sign_event, email) -> None:
        created = checkout(client)
        reference = created["checkout_handle"]

        early = deliver(client, sign_event, "charge.refunded", "ch_1", "evt_1")
        assert early["status"] == "ignored"

        paid = deliver(client, sign_event, "checkout.session.completed", reference, "evt_2")
        assert paid["status"] == "processed"
        assert len(email.sent) == 1

"""Tests for the payment webhook receiver.

Tests:
- Signature verification (401 on failure)
- Every authenticated notification is acknowledged with 200
- Redelivery is reported as duplicate
"""

import pytest
from fastapi import status


def open_checkout(client) -> dict:
    response = client.post(
        "/checkouts", json={"listing_id": "listing-1", "buyer_identity": "buyer@example.com"}
    )
    assert response.status_code == status.HTTP_201_CREATED
    return response.json()


class TestWebhookAuthentication:
    def test_missing_signature(self, client, sign_event) -> None:
        body, _ = sign_event("checkout.session.completed", "cs_test_1")
        response = client.post(
            "/webhooks/payments", content=body, headers={"Content-Type": "application/json"}
        )
        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert response.json()["error_code"] == "UNAUTHENTICATED_EVENT"

    def test_wrong_secret(self, client, sign_event) -> None:
        body, headers = sign_event("checkout.session.completed", "cs_test_1", secret="nope")
        response = client.post("/webhooks/payments", content=body, headers=headers)
        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_stale_timestamp(self, client, sign_event) -> None:
        body, headers = sign_event("checkout.session.completed", "cs_test_1", timestamp=1_000_000)
        response = client.post("/webhooks/payments", content=body, headers=headers)
        assert response.status_code == status.HTTP_401_UNAUTHORIZED


class TestWebhookProcessing:
    def test_completion_marks_paid(self, client, container, sign_event, email) -> None:
        checkout = open_checkout(client)
        body, headers = sign_event(
            "checkout.session.completed",
            checkout["checkout_handle"],
            metadata={"order_id": checkout["order_id"]},
        )

        response = client.post("/webhooks/payments", content=body, headers=headers)

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data == {
            "received": True,
            "status": "processed",
            "order_id": checkout["order_id"],
            "message": "Order paid",
        }
        assert len(email.sent) == 1

    def test_redelivery_is_duplicate(self, client, sign_event) -> None:
        checkout = open_checkout(client)
        body, headers = sign_event("checkout.session.completed", checkout["checkout_handle"])

        first = client.post("/webhooks/payments", content=body, headers=headers)
        second = client.post("/webhooks/payments", content=body, headers=headers)

        assert first.json()["status"] == "processed"
        assert second.status_code == status.HTTP_200_OK
        assert second.json()["status"] == "duplicate"

    def test_unknown_order_acknowledged(self, client, sign_event, alerts) -> None:
        """Unmatched notifications are acknowledged and alerted, not retried."""
        body, headers = sign_event("checkout.session.completed", "cs_test_unknown")
        response = client.post("/webhooks/payments", content=body, headers=headers)

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["status"] == "failed"
        assert alerts.codes() == ["PAYMENT_ORDER_NOT_FOUND"]

    def test_unhandled_type_ignored(self, client, sign_event) -> None:
        body, headers = sign_event("customer.subscription.created", "sub_1")
        response = client.post("/webhooks/payments", content=body, headers=headers)
        assert response.status_code == status.HTTP_200_OK
        assert response.json()["status"] == "ignored"

    @pytest.mark.asyncio
    async def test_refund(self, client, container, sign_event) -> None:
        checkout = open_checkout(client)
        for event_type in ("checkout.session.completed", "charge.refunded"):
            body, headers = sign_event(
                event_type,
                checkout["checkout_handle"] if event_type.startswith("checkout") else "ch_1",
                metadata={"checkout_session_id": checkout["checkout_handle"]},
            )
            response = client.post("/webhooks/payments", content=body, headers=headers)
            assert response.json()["status"] == "processed"

        order = await container.orders.get(checkout["order_id"])
        assert order.payment_state.value == "refunded"

"""Tests for administrative endpoints."""

import pytest
from fastapi import status

from filemarket.domain import RoyaltyShare

ADMIN_AUTH = {"Authorization": "Bearer admin-session"}
BUYER_AUTH = {"Authorization": "Bearer buyer-session"}


def buy(client, sign_event) -> str:
    checkout = client.post(
        "/checkouts", json={"listing_id": "listing-1", "buyer_identity": "buyer@example.com"}
    ).json()
    body, headers = sign_event("checkout.session.completed", checkout["checkout_handle"])
    client.post("/webhooks/payments", content=body, headers=headers)
    return checkout["order_id"]


class TestAdminAccess:
    def test_anonymous_rejected(self, client) -> None:
        assert client.get("/admin/overrides").status_code == status.HTTP_401_UNAUTHORIZED

    def test_member_forbidden(self, client) -> None:
        response = client.get("/admin/overrides", headers=BUYER_AUTH)
        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_unknown_session_rejected(self, client) -> None:
        response = client.get("/admin/overrides", headers={"Authorization": "Bearer forged"})
        assert response.status_code == status.HTTP_401_UNAUTHORIZED


class TestAdminOrders:
    def test_order_view(self, client, sign_event) -> None:
        order_id = buy(client, sign_event)

        response = client.get(f"/admin/orders/{order_id}", headers=ADMIN_AUTH)

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["payment_state"] == "paid"
        assert data["credential_state"] == "issued"
        assert data["pricing"]["total_charged_minor"] == 550
        assert [p["amount_minor"] for p in data["payouts"]] == [500]

    def test_unknown_order(self, client) -> None:
        response = client.get("/admin/orders/missing", headers=ADMIN_AUTH)
        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.json()["error_code"] == "ORDER_NOT_FOUND"

    def test_payouts(self, client, sign_event) -> None:
        order_id = buy(client, sign_event)
        response = client.get(f"/admin/orders/{order_id}/payouts", headers=ADMIN_AUTH)
        data = response.json()
        assert data["total_minor"] == 500
        assert data["payouts"][0]["participant_id"] == "originator-1"
        assert data["payouts"][0]["status"] == "pending"

    @pytest.mark.asyncio
    async def test_misconfigured_listing_refuses_checkout(
        self, client, container, alerts, listing_factory
    ) -> None:
        await container.listings.add(listing_factory(split=[RoyaltyShare("originator-1", 5000)]))
        checkout = client.post(
            "/checkouts", json={"listing_id": "listing-1", "buyer_identity": "buyer@example.com"}
        )
        assert checkout.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
        assert checkout.json()["error_code"] == "MISCONFIGURED_LISTING"
        assert alerts.codes() == ["LISTING_MISCONFIGURED"]

    def test_reconcile_existing_batch(self, client, sign_event) -> None:
        order_id = buy(client, sign_event)
        response = client.post(f"/admin/orders/{order_id}/payouts/reconcile", headers=ADMIN_AUTH)
        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["created"] is False
        assert data["total_minor"] == 500

    def test_reconcile_unpaid_conflicts(self, client) -> None:
        checkout = client.post(
            "/checkouts", json={"listing_id": "listing-1", "buyer_identity": "buyer@example.com"}
        ).json()
        response = client.post(
            f"/admin/orders/{checkout['order_id']}/payouts/reconcile", headers=ADMIN_AUTH
        )
        assert response.status_code == status.HTTP_409_CONFLICT

    def test_record_payout_transfer(self, client, sign_event) -> None:
        order_id = buy(client, sign_event)
        url = f"/admin/orders/{order_id}/payouts/originator-1/transfer"

        response = client.post(url, headers=ADMIN_AUTH)
        assert response.status_code == status.HTTP_200_OK
        assert response.json()["status"] == "transferred"
        assert response.json()["transferred_at"] is not None

        payouts = client.get(f"/admin/orders/{order_id}/payouts", headers=ADMIN_AUTH).json()
        assert payouts["payouts"][0]["status"] == "transferred"

        again = client.post(url, headers=ADMIN_AUTH)
        assert again.status_code == status.HTTP_409_CONFLICT
        assert again.json()["error_code"] == "INVALID_TRANSITION"

    def test_transfer_unknown_participant(self, client, sign_event) -> None:
        order_id = buy(client, sign_event)
        response = client.post(
            f"/admin/orders/{order_id}/payouts/stranger/transfer", headers=ADMIN_AUTH
        )
        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.json()["error_code"] == "NOT_FOUND"


class TestAdminOverrides:
    def test_list(self, client) -> None:
        response = client.get("/admin/overrides", headers=ADMIN_AUTH)
        assert response.status_code == status.HTTP_200_OK
        by_key = {o["feature_key"]: o for o in response.json()["overrides"]}
        assert by_key["marketplace_purchase"]["effective"] is True
        assert set(by_key) == {"master_switch", "marketplace_purchase", "download_delivery"}

    def test_master_switch_off_disables_everything(self, client) -> None:
        response = client.put(
            "/admin/overrides/master_switch", json={"enabled": False}, headers=ADMIN_AUTH
        )
        assert response.status_code == status.HTTP_200_OK
        assert response.json()["updated_by"] == "ops@filemarket.test"

        overrides = client.get("/admin/overrides", headers=ADMIN_AUTH).json()["overrides"]
        assert all(o["effective"] is False for o in overrides)

        checkout = client.post(
            "/checkouts", json={"listing_id": "listing-1", "buyer_identity": "buyer@example.com"}
        )
        assert checkout.status_code == status.HTTP_403_FORBIDDEN

    def test_unknown_key(self, client) -> None:
        response = client.put(
            "/admin/overrides/time_travel", json={"enabled": True}, headers=ADMIN_AUTH
        )
        assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_malformed_body(self, client) -> None:
        response = client.put(
            "/admin/overrides/payouts", json={"enabled": "maybe"}, headers=ADMIN_AUTH
        )
        assert response.status_code == status.HTTP_400_BAD_REQUEST

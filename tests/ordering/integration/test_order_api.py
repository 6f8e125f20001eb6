"""Integration tests for the order API endpoints via TestClient."""

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from protean.integrations.fastapi import register_exception_handlers

from marketplace.api.routes import checkout_router, order_router


@pytest.fixture()
def client(seeded):
    app = FastAPI()
    app.include_router(checkout_router)
    app.include_router(order_router)
    register_exception_handlers(app)
    return TestClient(app)


@pytest.fixture()
def order_id(client, personal_address):
    response = client.post(
        "/checkout/sessions",
        json={"user_id": "buyer-001", "items": [{"listing_id": "listing-b1", "quantity": 1}]},
    )
    session_id = response.json()["session_id"]
    client.put(f"/checkout/sessions/{session_id}", json={"delivery_address": personal_address})
    return client.post(f"/checkout/sessions/{session_id}/orders").json()["order_ids"][0]


class TestGetOrderAPI:
    def test_buyer_can_view(self, client, order_id):
        response = client.get(f"/orders/{order_id}", params={"user_id": "buyer-001"})

        assert response.status_code == 200
        data = response.json()
        assert data["id"] == order_id
        assert data["status"] == "pending"
        assert data["can_cancel"] is True
        assert data["seller"]["shop_name"] == "Mei's Crafts"

    def test_seller_can_view(self, client, order_id):
        response = client.get(f"/orders/{order_id}", params={"user_id": "seller-b"})
        assert response.status_code == 200

    def test_admin_can_view(self, client, order_id, directory):
        directory.register("staff-1", "Support Desk", "support@example.com", role="admin")

        response = client.get(f"/orders/{order_id}", params={"user_id": "staff-1"})
        assert response.status_code == 200

    def test_role_in_request_is_ignored(self, client, order_id):
        response = client.get(f"/orders/{order_id}", params={"user_id": "buyer-002", "role": "admin"})
        assert response.status_code == 403

    def test_stranger_gets_403(self, client, order_id):
        response = client.get(f"/orders/{order_id}", params={"user_id": "buyer-002"})
        assert response.status_code == 403

    def test_unknown_order_returns_404(self, client, seeded):
        response = client.get("/orders/nonexistent", params={"user_id": "buyer-001"})
        assert response.status_code == 404


class TestUpdateOrderStatusAPI:
    def test_seller_confirms(self, client, order_id):
        response = client.put(
            f"/orders/{order_id}/status",
            json={"new_status": "confirmed", "actor_id": "seller-b", "note": "Packed"},
        )

        assert response.status_code == 200
        assert response.json()["status"] == "confirmed"
        data = client.get(f"/orders/{order_id}", params={"user_id": "seller-b"}).json()
        assert data["confirmed_at"] is not None

    def test_invalid_transition_returns_400(self, client, order_id):
        response = client.put(
            f"/orders/{order_id}/status",
            json={"new_status": "delivered", "actor_id": "seller-b"},
        )
        assert response.status_code == 400

    def test_stranger_returns_400(self, client, order_id):
        response = client.put(
            f"/orders/{order_id}/status",
            json={"new_status": "confirmed", "actor_id": "buyer-002"},
        )
        assert response.status_code == 400

    def test_claimed_admin_role_does_not_authorize(self, client, order_id):
        response = client.put(
            f"/orders/{order_id}/status",
            json={"new_status": "confirmed", "actor_id": "buyer-002", "actor_role": "admin"},
        )
        assert response.status_code == 400

    def test_unknown_status_returns_400(self, client, order_id):
        response = client.put(
            f"/orders/{order_id}/status",
            json={"new_status": "teleported", "actor_id": "seller-b"},
        )
        assert response.status_code == 400

"""Integration tests for Cart API endpoints via TestClient."""

from decimal import Decimal

import pytest
from checkout.api import cart_router
from checkout.cart.cart import Cart, CartMode
from fastapi import FastAPI
from fastapi.testclient import TestClient
from protean import current_domain
from protean.integrations.fastapi import register_exception_handlers


@pytest.fixture()
def client():
    app = FastAPI()
    app.include_router(cart_router)
    register_exception_handlers(app)
    return TestClient(app)


def _create_cart(client, customer_id="cust-api-001"):
    """Helper: POST /carts and return the cart_id."""
    response = client.post("/carts", json={"customer_id": customer_id})
    assert response.status_code == 201
    return response.json()["cart_id"]


def _add_item(client, cart_id, product_id="prod-001", quantity=1, unit_price="50000", **extra):
    """Helper: POST /carts/{cart_id}/items."""
    response = client.post(
        f"/carts/{cart_id}/items",
        json={"product_id": product_id, "quantity": quantity, "unit_price": unit_price, **extra},
    )
    assert response.status_code == 200
    return response


class TestCreateCartEndpoint:
    def test_create_customer_cart(self, client):
        cart_id = _create_cart(client)
        cart = current_domain.repository_for(Cart).get(cart_id)
        assert cart.mode == CartMode.REMOTE.value

    def test_create_guest_cart(self, client):
        response = client.post("/carts", json={"session_id": "sess-001"})
        assert response.status_code == 201

        cart = current_domain.repository_for(Cart).get(response.json()["cart_id"])
        assert cart.mode == CartMode.LOCAL.value
        assert cart.session_id == "sess-001"


class TestCartItemEndpoints:
    def test_add_item(self, client):
        cart_id = _create_cart(client)
        _add_item(client, cart_id, quantity=2, title="Blocks", images=["a.jpg"], seller_label="ToyCo")

        cart = current_domain.repository_for(Cart).get(cart_id)
        assert cart.find_item("prod-001").quantity == 2
        assert cart.find_item("prod-001").snapshot.image_list() == ["a.jpg"]

    def test_add_item_with_zero_quantity(self, client):
        cart_id = _create_cart(client)
        response = client.post(
            f"/carts/{cart_id}/items",
            json={"product_id": "prod-001", "quantity": 0, "unit_price": "50000"},
        )
        assert response.status_code == 400

    def test_update_quantity(self, client):
        cart_id = _create_cart(client)
        _add_item(client, cart_id)

        response = client.put(f"/carts/{cart_id}/items/prod-001", json={"quantity": 5})
        assert response.status_code == 200
        assert current_domain.repository_for(Cart).get(cart_id).item_count == 5

    def test_remove_item(self, client):
        cart_id = _create_cart(client)
        _add_item(client, cart_id)

        response = client.delete(f"/carts/{cart_id}/items/prod-001")
        assert response.status_code == 200
        assert current_domain.repository_for(Cart).get(cart_id).is_empty

    def test_clear_cart(self, client):
        cart_id = _create_cart(client)
        _add_item(client, cart_id, "prod-001")
        _add_item(client, cart_id, "prod-002")

        response = client.delete(f"/carts/{cart_id}/items")
        assert response.status_code == 200
        assert current_domain.repository_for(Cart).get(cart_id).is_empty


class TestGetCartEndpoint:
    def test_default_currency_quote(self, client):
        cart_id = _create_cart(client)
        _add_item(client, cart_id, quantity=2, title="Blocks")

        data = client.get(f"/carts/{cart_id}").json()

        assert data["item_count"] == 2
        assert data["items"][0]["title"] == "Blocks"
        assert data["pricing"]["currency_code"] == "UZS"
        assert Decimal(data["pricing"]["grand_total"]) == Decimal("100000")
        assert data["pricing"]["formatted_total"] == "100,000 so'm"

    def test_quote_with_selections(self, client):
        cart_id = _create_cart(client)
        _add_item(client, cart_id, quantity=2)

        data = client.get(f"/carts/{cart_id}", params={"currency": "USD", "promo": "SAFE20"}).json()

        assert data["pricing"]["currency_code"] == "USD"
        assert Decimal(data["pricing"]["subtotal"]) == Decimal("8.60")
        assert Decimal(data["pricing"]["discount_amount"]) == Decimal("1.72")
        assert Decimal(data["pricing"]["grand_total"]) == Decimal("6.88")

    def test_unknown_currency(self, client):
        cart_id = _create_cart(client)
        response = client.get(f"/carts/{cart_id}", params={"currency": "XYZ"})
        assert response.status_code == 400


class TestReconcileEndpoint:
    def test_reconcile_browser_cart(self, client):
        cart_id = _create_cart(client)
        _add_item(client, cart_id, "prod-001", 1)

        response = client.post(
            f"/carts/{cart_id}/reconcile",
            json={
                "token": "login-1",
                "local_items": {"items": [{"productId": "prod-001", "quantity": 2, "price": 50000}]},
            },
        )

        assert response.status_code == 200
        assert response.json() == {"merged": True, "item_count": 3}

    def test_reconcile_is_idempotent_per_token(self, client):
        cart_id = _create_cart(client)
        body = {"token": "login-1", "local_items": [{"productId": "prod-001", "quantity": 2, "price": 50000}]}

        client.post(f"/carts/{cart_id}/reconcile", json=body)
        response = client.post(f"/carts/{cart_id}/reconcile", json=body)

        assert response.json() == {"merged": False, "item_count": 2}

    def test_reconcile_server_guest_cart(self, client):
        cart_id = _create_cart(client)
        guest_id = client.post("/carts", json={"session_id": "sess-guest"}).json()["cart_id"]
        _add_item(client, guest_id, "prod-002", 3)

        response = client.post(f"/carts/{cart_id}/reconcile", json={"token": "login-1", "local_cart_id": guest_id})

        assert response.json()["item_count"] == 3
        assert current_domain.repository_for(Cart).get(guest_id).is_empty

    def test_malformed_guest_cart(self, client):
        cart_id = _create_cart(client)
        response = client.post(
            f"/carts/{cart_id}/reconcile",
            json={"token": "login-1", "local_items": [{"quantity": 1}]},
        )
        assert response.status_code == 400

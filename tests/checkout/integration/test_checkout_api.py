"""Integration tests for Checkout API endpoints via TestClient."""

import os
from decimal import Decimal
from unittest.mock import patch

import pytest
from checkout.api import cart_router, checkout_router
from checkout.session.session import CheckoutSession
from checkout.submission import get_order_service
from fastapi import FastAPI
from fastapi.testclient import TestClient
from protean import current_domain
from protean.integrations.fastapi import register_exception_handlers

ADDRESS = {
    "first_name": "Aziza",
    "last_name": "Karimova",
    "address_line1": "12 Amir Temur St",
    "city": "Tashkent",
    "phone": "+998901234567",
}


@pytest.fixture()
def client():
    app = FastAPI()
    app.include_router(cart_router)
    app.include_router(checkout_router)
    register_exception_handlers(app)
    return TestClient(app)


def _start(client, quantity=2, unit_price="40000", **body):
    cart_id = client.post("/carts", json={"customer_id": "cust-api-001"}).json()["cart_id"]
    client.post(
        f"/carts/{cart_id}/items",
        json={"product_id": "prod-001", "quantity": quantity, "unit_price": unit_price, "title": "Blocks"},
    )
    response = client.post("/checkouts", json={"cart_id": cart_id, **body})
    assert response.status_code == 201
    return response.json()["session_id"]


def _advance(client, session_id):
    response = client.post(f"/checkouts/{session_id}/advance")
    assert response.status_code == 200
    return response.json()["step"]


def _to_review(client, session_id, method="click"):
    _advance(client, session_id)
    client.put(f"/checkouts/{session_id}/shipping-address", json=ADDRESS)
    _advance(client, session_id)
    client.put(f"/checkouts/{session_id}/payment-method", json={"payment_method_id": method})
    _advance(client, session_id)
    client.post(f"/checkouts/{session_id}/terms")


class TestStartAndRead:
    def test_start_checkout(self, client):
        session_id = _start(client)
        data = client.get(f"/checkouts/{session_id}").json()

        assert data["step"] == "Cart"
        assert data["status"] == "Active"
        assert data["currency_code"] == "UZS"
        assert Decimal(data["pricing"]["grand_total"]) == Decimal("80000")
        assert data["approval"] == {"required": False, "status": "NotRequired", "reason": None}

    def test_eligible_methods_follow_currency(self, client):
        session_id = _start(client, currency_code="USD", unit_price="800000")
        data = client.get(f"/checkouts/{session_id}").json()
        assert {m["id"] for m in data["eligible_payment_methods"]} == {"visa", "mastercard", "paypal"}


class TestNavigation:
    def test_walk_to_review(self, client):
        session_id = _start(client)
        assert _advance(client, session_id) == "Shipping"

        response = client.put(f"/checkouts/{session_id}/shipping-address", json=ADDRESS)
        assert response.status_code == 200
        assert response.json()["shipping_address"]["city"] == "Tashkent"
        assert _advance(client, session_id) == "Payment"

        response = client.put(f"/checkouts/{session_id}/payment-method", json={"payment_method_id": "payme"})
        assert Decimal(response.json()["pricing"]["fee_amount"]) == Decimal("400")
        assert _advance(client, session_id) == "Review"

        data = client.post(f"/checkouts/{session_id}/terms").json()
        assert data["terms_accepted"] is True
        assert data["idempotency_key"]

    def test_missing_address_is_rejected(self, client):
        session_id = _start(client)
        _advance(client, session_id)
        response = client.post(f"/checkouts/{session_id}/advance")
        assert response.status_code == 400

    def test_back(self, client):
        session_id = _start(client)
        _advance(client, session_id)
        response = client.post(f"/checkouts/{session_id}/back")
        assert response.json() == {"step": "Cart"}

    def test_back_to_step(self, client):
        session_id = _start(client)
        _to_review(client, session_id)
        response = client.post(f"/checkouts/{session_id}/back", json={"to_step": "Shipping"})
        assert response.json() == {"step": "Shipping"}

    def test_change_items_on_cart_step(self, client):
        session_id = _start(client)
        data = client.put(f"/checkouts/{session_id}/items/prod-001", json={"quantity": 1}).json()
        assert Decimal(data["pricing"]["grand_total"]) == Decimal("40000")

        data = client.delete(f"/checkouts/{session_id}/items/prod-001").json()
        assert data["pricing"]["grand_total"] == "0"


class TestSelections:
    def test_currency_and_promo(self, client):
        session_id = _start(client)
        client.put(f"/checkouts/{session_id}/currency", json={"currency_code": "USD"})
        data = client.put(f"/checkouts/{session_id}/promo", json={"promo_code": "SAFE20"}).json()

        assert data["pricing"]["currency_code"] == "USD"
        assert Decimal(data["pricing"]["grand_total"]) == Decimal("5.50")

        data = client.delete(f"/checkouts/{session_id}/promo").json()
        assert data["promo_code"] is None

    def test_invalid_promo(self, client):
        session_id = _start(client)
        response = client.put(f"/checkouts/{session_id}/promo", json={"promo_code": "NOPE"})
        assert response.status_code == 400

    def test_unsupported_method_for_currency(self, client):
        session_id = _start(client)
        response = client.put(f"/checkouts/{session_id}/payment-method", json={"payment_method_id": "paypal"})
        assert response.status_code == 400


class TestApproval:
    def test_pending_approval_blocks_payment_step(self, client):
        session_id = _start(client, unit_price="75000")
        _advance(client, session_id)
        client.put(f"/checkouts/{session_id}/shipping-address", json=ADDRESS)
        _advance(client, session_id)
        client.put(f"/checkouts/{session_id}/payment-method", json={"payment_method_id": "uzcard"})

        response = client.post(f"/checkouts/{session_id}/advance")
        assert response.status_code == 400

        data = client.post(f"/checkouts/{session_id}/approval", json={"approver_id": "parent-001"}).json()
        assert data["approval"]["status"] == "Approved"
        assert _advance(client, session_id) == "Review"

    def test_request_approval(self, client):
        session_id = _start(client, unit_price="75000")
        response = client.post(f"/checkouts/{session_id}/approval-request")
        assert response.status_code == 200
        assert response.json() == {"status": "approval_requested"}

    def test_request_approval_when_not_required(self, client):
        session_id = _start(client)
        response = client.post(f"/checkouts/{session_id}/approval-request")
        assert response.status_code == 400


class TestSubmission:
    def test_submit_places_order(self, client):
        session_id = _start(client)
        _to_review(client, session_id)

        response = client.post(f"/checkouts/{session_id}/submit")

        assert response.status_code == 201
        data = response.json()
        assert data["success"] is True
        assert data["order_id"].startswith("fake_ord_")

        session = current_domain.repository_for(CheckoutSession).get(session_id)
        assert session.order_id == data["order_id"]

    def test_failed_submission_returns_502(self, client):
        session_id = _start(client)
        _to_review(client, session_id)
        client.post(
            "/checkouts/order-service/configure",
            json={"failures": 1, "retryable": False, "code": "out_of_stock", "message": "Sold out"},
        )

        response = client.post(f"/checkouts/{session_id}/submit")

        assert response.status_code == 502
        assert response.json()["error"]["code"] == "out_of_stock"
        assert client.get(f"/checkouts/{session_id}").json()["last_error"]["code"] == "out_of_stock"

    def test_reinitiate_after_exhaustion(self, client):
        session_id = _start(client)
        _to_review(client, session_id)
        client.post("/checkouts/order-service/configure", json={"failures": 3})
        key = client.get(f"/checkouts/{session_id}").json()["idempotency_key"]

        response = client.post(f"/checkouts/{session_id}/submit")
        assert response.json()["exhausted"] is True

        data = client.post(f"/checkouts/{session_id}/reinitiate").json()
        assert data["idempotency_key"] != key
        assert data["submission_exhausted"] is False

        assert client.post(f"/checkouts/{session_id}/submit").status_code == 201

    def test_submit_without_terms(self, client):
        session_id = _start(client)
        _advance(client, session_id)
        client.put(f"/checkouts/{session_id}/shipping-address", json=ADDRESS)
        _advance(client, session_id)
        client.put(f"/checkouts/{session_id}/payment-method", json={"payment_method_id": "click"})
        _advance(client, session_id)

        response = client.post(f"/checkouts/{session_id}/submit")
        assert response.status_code == 400
        assert get_order_service().calls == []


class TestConfigureOrderService:
    def test_forbidden_in_production(self, client):
        with patch.dict(os.environ, {"PROTEAN_ENV": "production"}):
            response = client.post("/checkouts/order-service/configure", json={"failures": 1})
        assert response.status_code == 403

    def test_rejects_negative_failures(self, client):
        response = client.post("/checkouts/order-service/configure", json={"failures": -1})
        assert response.status_code == 422


class TestLifecycle:
    def test_abandon(self, client):
        session_id = _start(client)
        response = client.post(f"/checkouts/{session_id}/abandon")
        assert response.json() == {"status": "abandoned"}
        assert client.get(f"/checkouts/{session_id}").json()["status"] == "Abandoned"

    def test_start_over(self, client):
        session_id = _start(client)
        _to_review(client, session_id)

        data = client.post(f"/checkouts/{session_id}/start-over").json()

        assert data["step"] == "Cart"
        assert data["shipping_address"] is None
        assert data["terms_accepted"] is False

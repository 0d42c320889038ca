"""Tests for guest → customer cart reconciliation."""

from decimal import Decimal

import pytest
from checkout.cart.cart import MAX_ITEM_QUANTITY, Cart
from checkout.cart.events import CartCleared, CartsReconciled
from checkout.cart.reconciliation import reconcile_items
from protean.exceptions import ValidationError


def _line(product_id, quantity, unit_price="1000", title=""):
    return {"product_id": product_id, "quantity": quantity, "unit_price": Decimal(unit_price), "title": title}


def _quantities(lines):
    return {line["product_id"]: line["quantity"] for line in lines}


class TestReconcileItems:
    def test_quantities_are_summed(self):
        merged = reconcile_items([_line("A", 2)], [_line("A", 3)])
        assert _quantities(merged) == {"A": 5}

    def test_disjoint_products_are_kept(self):
        merged = reconcile_items([_line("B", 1)], [_line("A", 3)])
        assert _quantities(merged) == {"A": 3, "B": 1}

    def test_remote_lines_come_first(self):
        merged = reconcile_items([_line("B", 1), _line("A", 1)], [_line("A", 3), _line("C", 2)])
        assert [line["product_id"] for line in merged] == ["A", "C", "B"]

    def test_commutative_per_product(self):
        local = [_line("A", 2), _line("B", 7)]
        remote = [_line("A", 3), _line("C", 1)]
        assert _quantities(reconcile_items(local, remote)) == _quantities(reconcile_items(remote, local))

    def test_sum_is_capped(self):
        merged = reconcile_items([_line("A", 60)], [_line("A", 60)])
        assert merged[0]["quantity"] == MAX_ITEM_QUANTITY

    def test_remote_snapshot_wins(self):
        merged = reconcile_items(
            [_line("A", 1, "900", title="Guest title")],
            [_line("A", 1, "1000", title="Customer title")],
        )
        assert merged[0]["title"] == "Customer title"
        assert merged[0]["unit_price"] == Decimal("1000")

    def test_empty_carts(self):
        assert reconcile_items([], []) == []


def _remote_cart():
    cart = Cart.create_remote(customer_id="cust-001")
    cart.add_item("A", 3, "1000", title="Blocks")
    cart._events.clear()
    return cart


def _local_cart():
    cart = Cart.create_local(session_id="sess-guest-001")
    cart.add_item("A", 2, "900")
    cart.add_item("B", 1, "5000", title="Puzzle")
    cart._events.clear()
    return cart


class TestReconcileFrom:
    def test_merges_guest_cart(self):
        remote, local = _remote_cart(), _local_cart()

        assert remote.reconcile_from(local, token="login-1") is True
        assert remote.find_item("A").quantity == 5
        assert remote.find_item("B").quantity == 1
        assert remote.find_item("B").snapshot.title == "Puzzle"
        assert remote.item_count == 6
        assert Decimal(remote.raw_total) == Decimal("10000")

    def test_existing_line_keeps_remote_price(self):
        remote, local = _remote_cart(), _local_cart()
        remote.reconcile_from(local, token="login-1")
        assert remote.find_item("A").price == Decimal("1000")

    def test_guest_cart_is_emptied(self):
        remote, local = _remote_cart(), _local_cart()
        remote.reconcile_from(local, token="login-1")

        assert local.is_empty
        assert local._events[-1].reason == "reconciled"
        assert isinstance(local._events[-1], CartCleared)

    def test_records_token_and_event(self):
        remote, local = _remote_cart(), _local_cart()
        remote.reconcile_from(local, token="login-1")

        assert remote.applied_merge_tokens() == ["login-1"]
        event = remote._events[-1]
        assert isinstance(event, CartsReconciled)
        assert event.token == "login-1"
        assert event.source_cart_id == str(local.id)

    def test_replayed_token_is_ignored(self):
        remote = _remote_cart()
        remote.reconcile_from(_local_cart(), token="login-1")
        events = len(remote._events)

        assert remote.reconcile_from(_local_cart(), token="login-1") is False
        assert remote.find_item("A").quantity == 5
        assert len(remote._events) == events

    def test_new_token_merges_again(self):
        remote = _remote_cart()
        remote.reconcile_from(_local_cart(), token="login-1")
        remote.reconcile_from(_local_cart(), token="login-2")

        assert remote.find_item("A").quantity == 7
        assert remote.applied_merge_tokens() == ["login-1", "login-2"]

    def test_empty_guest_cart(self):
        remote = _remote_cart()
        guest = Cart.create_local()

        assert remote.reconcile_from(guest, token="login-1") is True
        assert remote.item_count == 3

    def test_only_customer_carts_absorb(self):
        local = _local_cart()
        with pytest.raises(ValidationError) as exc:
            local.reconcile_from(Cart.create_local(), token="login-1")
        assert "mode" in exc.value.messages

    def test_customer_cart_cannot_be_absorbed(self):
        remote = _remote_cart()
        other = Cart.create_remote(customer_id="cust-002")
        other.add_item("Z", 1, "2000")

        with pytest.raises(ValidationError) as exc:
            remote.reconcile_from(other, token="login-1")
        assert "local_cart_id" in exc.value.messages
        assert other.find_item("Z").quantity == 1
        assert remote.applied_merge_tokens() == []

    def test_cart_cannot_absorb_itself(self):
        remote = _remote_cart()
        with pytest.raises(ValidationError) as exc:
            remote.reconcile_from(remote, token="login-1")
        assert "local_cart_id" in exc.value.messages
        assert remote.find_item("A").quantity == 3

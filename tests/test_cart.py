# tests/test_cart.py
from decimal import Decimal

import pytest

from bazaar.extensions import db
from bazaar.model import Cart
from bazaar.services.cart_service import CartService
from bazaar.services.errors import ErrorKind


@pytest.fixture
def svc(app):
    return CartService(db.session, delivery_fee="50.00")


@pytest.fixture
def user(make_user):
    return make_user()


def test_add_item_creates_cart_with_stored_totals(svc, user, make_product):
    p = make_product(price="500.00", discount="10", stock=5)

    res = svc.add_item(user.id, p.id, 2)

    assert res.ok
    cart = res.value.cart
    assert cart.invoice_id.startswith("INV-") and cart.invoice_id.endswith(f"-{user.id}")
    assert cart.email == user.email
    assert cart.bag_total == Decimal("1000.00")
    assert cart.product_discount_total == Decimal("100.00")
    assert cart.coupon_discount == Decimal("0.00")
    assert cart.delivery_fee == Decimal("50.00")
    assert cart.amount_payable == Decimal("950.00")

    line = cart.items[0]
    assert line.unit_discount() == Decimal("50.00")
    assert line.line_subtotal() == Decimal("900.00")

def test_adding_same_product_merges_lines(svc, user, make_product):
    p = make_product(stock=10)
    svc.add_item(user.id, p.id, 1)
    res = svc.add_item(user.id, p.id, 3)

    cart = res.value.cart
    assert len(cart.items) == 1
    assert cart.items[0].quantity == 4
    assert cart.item_count() == 4

@pytest.mark.parametrize("qty", [0, -2, "abc", 1.5, None])
def test_add_rejects_bad_quantity(svc, user, make_product, qty):
    p = make_product()
    res = svc.add_item(user.id, p.id, qty)
    assert res.error.kind is ErrorKind.INVALID_QUANTITY
    assert db.session.query(Cart).count() == 0

def test_add_rejects_unknown_or_inactive_product(svc, user, make_product):
    hidden = make_product(status=False)
    assert svc.add_item(user.id, 999, 1).error.kind is ErrorKind.PRODUCT_NOT_FOUND
    assert svc.add_item(user.id, hidden.id, 1).error.kind is ErrorKind.PRODUCT_NOT_FOUND

def test_add_rejects_bad_price_data(svc, user, make_product):
    negative = make_product(price="-1.00")
    silly = make_product(discount="150")
    assert svc.add_item(user.id, negative.id, 1).error.kind is ErrorKind.INVALID_PRICE
    assert svc.add_item(user.id, silly.id, 1).error.kind is ErrorKind.INVALID_DISCOUNT

def test_add_checks_combined_quantity_against_stock(svc, user, make_product):
    p = make_product(stock=3)
    assert svc.add_item(user.id, p.id, 2).ok

    res = svc.add_item(user.id, p.id, 2)

    assert res.error.kind is ErrorKind.INSUFFICIENT_STOCK
    assert not res.error.conflict
    assert res.error.data == {"product_id": p.id, "available": 3, "requested": 4}
    assert svc.active_cart(user.id).items[0].quantity == 2

def test_update_to_zero_removes_line(svc, user, make_product):
    a, b = make_product(name="A"), make_product(name="B")
    svc.add_item(user.id, a.id, 1)
    svc.add_item(user.id, b.id, 1)

    res = svc.update_item(user.id, a.id, 0)

    assert res.ok
    assert res.value.cart.product_ids() == [b.id]

def test_update_missing_line_and_stock(svc, user, make_product):
    p = make_product(stock=2)
    assert svc.update_item(user.id, p.id, 1).error.kind is ErrorKind.LINE_NOT_FOUND

    svc.add_item(user.id, p.id, 1)
    assert svc.update_item(user.id, p.id, 3).error.kind is ErrorKind.INSUFFICIENT_STOCK
    assert svc.update_item(user.id, p.id, 2).value.cart.items[0].quantity == 2

def test_remove_is_idempotent(svc, user, make_product):
    p, keep = make_product(), make_product(name="Keep")
    svc.add_item(user.id, p.id, 1)
    svc.add_item(user.id, keep.id, 2)

    first = svc.remove_item(user.id, p.id)
    snapshot = first.value.as_api()
    second = svc.remove_item(user.id, p.id)

    assert first.value.removed is True
    assert second.ok and second.value.removed is False
    again = second.value.as_api()
    assert again["items"] == snapshot["items"]
    assert again["payment_details"] == snapshot["payment_details"]

def test_get_cart_without_cart_is_empty_snapshot(svc, user):
    data = svc.get_cart(user.id).value.as_api()
    assert data["items"] == []
    assert data["item_count"] == 0
    assert data["payment_details"]["amount_payable"] == "50.00"
    assert db.session.query(Cart).count() == 0

def test_clear_cart_drops_lines_and_coupon(svc, user, make_product, make_coupon):
    p = make_product(price="1000.00")
    make_coupon("TENOFF", "10", product_id=p.id)
    svc.add_item(user.id, p.id, 1)
    svc.apply_coupon(user.id, "tenoff")

    cart = svc.clear_cart(user.id).value.cart

    assert cart.is_empty()
    assert cart.applied_coupon is None
    assert cart.amount_payable == Decimal("50.00")

def test_malformed_coupon_json_reads_as_no_coupon(svc, user, make_product):
    p = make_product()
    cart = svc.add_item(user.id, p.id, 1).value.cart
    cart.coupon_json = {"code": "BROKEN"}
    db.session.commit()

    assert cart.applied_coupon is None
    assert cart.payment_details()["applied_coupon"] is None

# tests/test_coupon_policy.py
from datetime import timedelta
from decimal import Decimal

import pytest

from bazaar.extensions import db
from bazaar.model import Coupon
from bazaar.services.cart_service import CartService
from bazaar.services.coupon_service import validate_coupon
from bazaar.services.errors import ErrorKind
from bazaar.utils.dates import utcnow


def _coupon(**kw):
    base = dict(
        code="X", scope="collection", collection_id=1, kind="percentage", value=Decimal("20"),
        expires_at=utcnow() + timedelta(days=1), usage_limit=None, used_count=0,
        minimum_order_amount=None, is_active=True,
    )
    base.update(kw)
    return Coupon(**base)


class TestEvaluate:
    def test_percentage(self):
        check = _coupon().evaluate("1000.00", collection_ids={1})
        assert check.ok and check.discount == Decimal("200.00")
        assert _coupon().can_be_applied()
        assert not _coupon(is_active=False).can_be_applied()

    def test_flat_never_exceeds_amount(self):
        check = _coupon(kind="flat", value=Decimal("1000")).evaluate("300.00", collection_ids={1})
        assert check.discount == Decimal("300.00")

    def test_availability_failures_come_first(self):
        now = utcnow()
        assert _coupon(is_active=False).evaluate("1", collection_ids={1}).failure is ErrorKind.COUPON_INACTIVE
        expired = _coupon(expires_at=now, minimum_order_amount=Decimal("5000"))
        assert expired.evaluate("1", collection_ids={1}, now=now).failure is ErrorKind.COUPON_EXPIRED
        used_up = _coupon(usage_limit=2, used_count=2)
        assert used_up.evaluate("1000", collection_ids={1}).failure is ErrorKind.COUPON_LIMIT_REACHED
        assert used_up.state() == "limit_reached"

    def test_minimum_then_scope(self):
        c = _coupon(minimum_order_amount=Decimal("500"))
        assert c.evaluate("499.99", collection_ids=set()).failure is ErrorKind.BELOW_MINIMUM_ORDER
        assert c.evaluate("500.00", collection_ids=set()).failure is ErrorKind.SCOPE_MISMATCH
        assert c.evaluate("500.00", collection_ids={1}).discount == Decimal("100.00")

    def test_product_scope(self):
        c = _coupon(scope="product", collection_id=None, product_id=7)
        assert c.evaluate("100", product_ids=[3]).failure is ErrorKind.SCOPE_MISMATCH
        assert c.evaluate("100", product_ids=[3, 7]).discount == Decimal("20.00")
        assert c.evaluate("100", product_ids=[]).failure is ErrorKind.SCOPE_MISMATCH

    def test_failed_check_has_zero_discount(self):
        check = _coupon(is_active=False).evaluate("1000", collection_ids={1})
        assert not check.ok and check.discount == Decimal("0.00")


# ---- applying to a cart --------------------------------------------------

@pytest.fixture
def shopper(make_user):
    return make_user()

@pytest.fixture
def svc(app):
    return CartService(db.session, delivery_fee="50.00")


def test_percentage_coupon_scenario(svc, shopper, make_product, make_category, make_coupon):
    shoes = make_category("Shoes")
    p = make_product(price="1000.00", category_id=shoes.id)
    make_coupon("SAVE20", "20", collection_id=shoes.id, minimum_order_amount=Decimal("500"))
    svc.add_item(shopper.id, p.id, 1)

    res = svc.apply_coupon(shopper.id, "save20")

    assert res.ok
    details = res.value.cart.payment_details()
    assert details["coupon_discount"] == "200.00"
    assert details["amount_payable"] == "850.00"
    assert details["bag_discount"] == "200.00"
    assert details["applied_coupon"]["code"] == "SAVE20"

def test_below_minimum_leaves_cart_untouched(svc, shopper, make_product, make_category, make_coupon):
    shoes = make_category("Shoes")
    p = make_product(price="400.00", category_id=shoes.id)
    make_coupon("SAVE20", "20", collection_id=shoes.id, minimum_order_amount=Decimal("500"))
    before = svc.add_item(shopper.id, p.id, 1).value.cart.payment_details()

    res = svc.apply_coupon(shopper.id, "SAVE20")

    assert res.error.kind is ErrorKind.BELOW_MINIMUM_ORDER
    assert "500.00" in res.error.message
    assert svc.active_cart(shopper.id).payment_details() == before

def test_flat_coupon_clamps_to_subtotal(svc, shopper, make_product, make_coupon):
    p = make_product(price="300.00")
    make_coupon("BIGFLAT", "1000", kind="flat", product_id=p.id)
    svc.add_item(shopper.id, p.id, 1)

    cart = svc.apply_coupon(shopper.id, "BIGFLAT").value.cart

    assert cart.coupon_discount == Decimal("300.00")
    assert cart.amount_payable == Decimal("50.00")

def test_collection_coupon_needs_matching_product(svc, shopper, make_product, make_category, make_coupon):
    shoes, hats = make_category("Shoes"), make_category("Hats")
    p = make_product(category_id=hats.id)
    make_coupon("SHOES10", "10", collection_id=shoes.id)
    svc.add_item(shopper.id, p.id, 1)

    assert svc.apply_coupon(shopper.id, "SHOES10").error.kind is ErrorKind.SCOPE_MISMATCH

def test_apply_errors(svc, shopper, make_product, make_coupon):
    p = make_product()
    make_coupon("OLD", "10", product_id=p.id, expires_at=utcnow() - timedelta(days=1))
    assert svc.apply_coupon(shopper.id, "OLD").error.kind is ErrorKind.EMPTY_CART

    svc.add_item(shopper.id, p.id, 1)
    assert svc.apply_coupon(shopper.id, "NOPE").error.kind is ErrorKind.COUPON_NOT_FOUND
    assert svc.apply_coupon(shopper.id, "OLD").error.kind is ErrorKind.COUPON_EXPIRED

def test_coupon_follows_cart_changes(svc, shopper, make_product, make_coupon):
    p = make_product(price="600.00")
    make_coupon("BIG10", "10", product_id=p.id, minimum_order_amount=Decimal("1000"))
    svc.add_item(shopper.id, p.id, 2)
    assert svc.apply_coupon(shopper.id, "BIG10").value.cart.coupon_discount == Decimal("120.00")

    grown = svc.update_item(shopper.id, p.id, 3).value
    assert grown.coupon_removed is None
    assert grown.cart.coupon_discount == Decimal("180.00")

    shrunk = svc.update_item(shopper.id, p.id, 1).value
    assert shrunk.coupon_removed == {"code": "BIG10", "reason": "below_minimum_order"}
    assert shrunk.cart.applied_coupon is None
    assert shrunk.cart.amount_payable == Decimal("650.00")

def test_remove_coupon(svc, shopper, make_product, make_coupon):
    p = make_product(price="100.00")
    make_coupon("TEN", "10", product_id=p.id)
    svc.add_item(shopper.id, p.id, 1)
    svc.apply_coupon(shopper.id, "TEN")

    res = svc.remove_coupon(shopper.id)

    assert res.value.removed is True
    assert res.value.cart.coupon_discount == Decimal("0.00")
    assert res.value.cart.amount_payable == Decimal("150.00")


# ---- read-only preview ---------------------------------------------------

def test_validate_previews_without_touching_usage(app, make_product, make_coupon):
    p = make_product()
    c = make_coupon("PREVIEW", "15", product_id=p.id, usage_limit=1)

    res = validate_coupon(db.session, "preview", "333.33", [p.id])

    assert res.value["discount_amount"] == "50.00"
    assert res.value["final_amount"] == "283.33"
    db.session.refresh(c)
    assert c.used_count == 0

def test_validate_rejects(app, make_product, make_coupon):
    p = make_product()
    make_coupon("PREVIEW", "15", product_id=p.id)
    assert validate_coupon(db.session, "PREVIEW", "0", [p.id]).error.kind is ErrorKind.VALIDATION_ERROR
    assert validate_coupon(db.session, "PREVIEW", "100", [p.id + 1]).error.kind is ErrorKind.SCOPE_MISMATCH
    assert validate_coupon(db.session, "MISSING", "100", [p.id]).error.kind is ErrorKind.COUPON_NOT_FOUND

def test_validate_rejects_non_finite_amounts(app, make_product, make_coupon):
    p = make_product()
    make_coupon("PREVIEW", "15", product_id=p.id)
    for amount in ("NaN", "sNaN", "Infinity", float("inf")):
        res = validate_coupon(db.session, "PREVIEW", amount, [p.id])
        assert res.error.kind is ErrorKind.VALIDATION_ERROR

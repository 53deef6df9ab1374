# bazaar/cart/routes.py
from __future__ import annotations
from flask import current_app, request

from ..extensions import db
from ..services.cart_service import CartService
from ..utils.api import err, fail, ok
from ..utils.decorators import current_user, login_required
from . import bp


def _service() -> CartService:
    return CartService(db.session, current_app.config.get("DELIVERY_FEE", "0.00"))

def _answer(result, msg, status=200):
    if not result.ok:
        return fail(result.error)
    return ok(msg, result.value.as_api(), status=status)

# ---- cart ------------------------------------------------------------------

@bp.get("")
@login_required
def get_cart():
    return _answer(_service().get_cart(current_user().id), "cart")

@bp.get("/count")
@login_required
def cart_count():
    return ok("cart count", {"count": _service().item_count(current_user().id)})

@bp.get("/payment-details")
@login_required
def payment_details():
    result = _service().payment_details(current_user().id)
    return ok("payment details", result.value)

# ---- lines -----------------------------------------------------------------

@bp.post("/items")
@login_required
def add_item():
    """
    Body: { "product_id": int, "quantity": int (default 1) }
    """
    data = request.get_json(silent=True) or {}
    product_id = data.get("product_id")
    if product_id is None:
        return err("product_id is required", 422, {"error_kind": "validation_error"})
    try:
        product_id = int(product_id)
    except (TypeError, ValueError):
        return err("product_id must be an integer", 422, {"error_kind": "validation_error"})

    result = _service().add_item(current_user().id, product_id, data.get("quantity", 1))
    return _answer(result, "item added", status=201)

@bp.patch("/items/<int:product_id>")
@login_required
def update_item(product_id: int):
    """
    Body: { "quantity": int }; 0 or less removes the line.
    """
    data = request.get_json(silent=True) or {}
    if "quantity" not in data:
        return err("quantity is required", 422, {"error_kind": "validation_error"})
    result = _service().update_item(current_user().id, product_id, data.get("quantity"))
    return _answer(result, "cart updated")

@bp.delete("/items/<int:product_id>")
@login_required
def remove_item(product_id: int):
    result = _service().remove_item(current_user().id, product_id)
    msg = "item removed" if result.value.removed else "item not in cart"
    return _answer(result, msg)

@bp.delete("/items")
@login_required
def clear_cart():
    return _answer(_service().clear_cart(current_user().id), "cart cleared")

# ---- coupon ----------------------------------------------------------------

@bp.post("/coupon")
@login_required
def apply_coupon():
    data = request.get_json(silent=True) or {}
    code = (data.get("code") or "").strip()
    if not code:
        return err("code is required", 422, {"error_kind": "validation_error"})
    return _answer(_service().apply_coupon(current_user().id, code), "coupon applied")

@bp.delete("/coupon")
@login_required
def remove_coupon():
    return _answer(_service().remove_coupon(current_user().id), "coupon removed")

# bazaar/coupon/routes.py
from __future__ import annotations
from flask import current_app, request

from ..extensions import db
from ..model import Coupon
from ..services.coupon_ledger import CouponLedger
from ..services.coupon_service import CouponService, validate_coupon
from ..utils.api import err, fail, ok, page_args
from ..utils.dates import parse_iso8601
from ..utils.decorators import current_user, login_required, role_at_least
from . import bp


def _answer(result, msg, status=200):
    if not result.ok:
        return fail(result.error)
    return ok(msg, result.value, status=status)

def _service() -> CouponService:
    return CouponService(db.session)

# ---- any signed-in user ----------------------------------------------------

@bp.post("/validate")
@login_required
def validate():
    """
    Body: { "code": str, "order_amount": "1000.00", "product_ids": [int] }
    Preview only; usage counters are untouched.
    """
    data = request.get_json(silent=True) or {}
    code = (data.get("code") or "").strip()
    if not code or data.get("order_amount") is None:
        return err("code and order_amount are required", 422, {"error_kind": "validation_error"})
    product_ids = data.get("product_ids") or []
    if not isinstance(product_ids, list):
        return err("product_ids must be a list", 422, {"error_kind": "validation_error"})

    return _answer(validate_coupon(db.session, code, data["order_amount"], product_ids), "coupon is valid")

# ---- vendor / admin --------------------------------------------------------

@bp.post("")
@role_at_least("vendor")
def create_coupon():
    data = request.get_json(silent=True) or {}
    return _answer(_service().create(current_user(), data), "Coupon created", status=201)

@bp.get("")
@role_at_least("vendor")
def list_coupons():
    """
    Query params: page, per_page, status=active|inactive, search=<code fragment>
    """
    page, per = page_args(request, current_app.config.get("MAX_PAGE_SIZE", 100))
    result = _service().list(
        current_user(),
        status=request.args.get("status"),
        search=request.args.get("search"),
        page=page,
        per_page=per,
    )
    return _answer(result, "ok")

@bp.get("/usage")
@role_at_least("vendor")
def usage_history():
    """
    Query params: page, per_page, coupon_id, start, end (ISO 8601, end exclusive)
    """
    user = current_user()
    page, per = page_args(request, current_app.config.get("MAX_PAGE_SIZE", 100))

    start = parse_iso8601(request.args.get("start"))
    end = parse_iso8601(request.args.get("end"))
    if (request.args.get("start") and not start) or (request.args.get("end") and not end):
        return err("Invalid datetime format for start/end", 422, {"error_kind": "validation_error"})

    coupon_ids = None
    if not user.is_admin:
        coupon_ids = [cid for (cid,) in db.session.query(Coupon.id).filter(Coupon.vendor_id == user.id)]
    coupon_id = request.args.get("coupon_id", type=int)
    if coupon_id is not None:
        coupon_ids = [coupon_id] if coupon_ids is None or coupon_id in coupon_ids else []

    return _answer(CouponLedger(db.session).usage_history(coupon_ids, start, end, page, per), "coupon usage")

@bp.get("/<int:coupon_id>")
@role_at_least("vendor")
def get_coupon(coupon_id: int):
    return _answer(_service().get(current_user(), coupon_id), "coupon")

@bp.patch("/<int:coupon_id>")
@role_at_least("vendor")
def update_coupon(coupon_id: int):
    data = request.get_json(silent=True) or {}
    return _answer(_service().update(current_user(), coupon_id, data), "Coupon updated")

@bp.post("/<int:coupon_id>/deactivate")
@role_at_least("vendor")
def deactivate_coupon(coupon_id: int):
    return _answer(_service().deactivate(current_user(), coupon_id), "Coupon deactivated")

@bp.delete("/<int:coupon_id>")
@role_at_least("vendor")
def delete_coupon(coupon_id: int):
    return _answer(_service().delete(current_user(), coupon_id), "Coupon deleted")

@bp.get("/<int:coupon_id>/stats")
@role_at_least("vendor")
def coupon_stats(coupon_id: int):
    owned = _service().get(current_user(), coupon_id)
    if not owned.ok:
        return fail(owned.error)
    return _answer(CouponLedger(db.session).usage_stats(coupon_id), "coupon stats")

# bazaar/services/coupon_service.py
from __future__ import annotations
import logging
import re
from datetime import datetime
from decimal import Decimal, InvalidOperation

from sqlalchemy import func, or_

from ..model import Cart, Category, Coupon, CouponCheck, CouponUsage, Product, User
from ..model.coupon import KIND_FLAT, KIND_PERCENTAGE, KINDS, SCOPE_PRODUCT, SCOPES
from ..utils.dates import parse_iso8601, utcnow
from ..utils.money import D, round_money, subtract, to_string_money
from ..utils.pagination import paginate
from .errors import ErrorKind, failure, success

log = logging.getLogger(__name__)

_CODE_RE = re.compile(r"^[A-Z0-9]{3,50}$")

# older clients send the original names
_KIND_ALIASES = {"discount": KIND_PERCENTAGE, "percent": KIND_PERCENTAGE, "flat_off": KIND_FLAT, "fixed": KIND_FLAT}

_EDITABLE = (
    "code", "scope", "product_id", "collection_id", "kind", "value",
    "expires_at", "usage_limit", "minimum_order_amount", "is_active",
)


# ---- eligibility helpers ---------------------------------------------------

def collection_ids_for(session, product_ids) -> set[int]:
    pids = {int(p) for p in product_ids if p is not None}
    if not pids:
        return set()
    rows = session.query(Product.category_id).filter(Product.id.in_(pids)).all()
    return {cat_id for (cat_id,) in rows if cat_id is not None}


def evaluate_for_cart(session, coupon: Coupon, cart: Cart, now=None) -> CouponCheck:
    """Evaluate against the cart's post-product-discount subtotal and its products."""
    product_ids = cart.product_ids()
    return coupon.evaluate(
        cart.subtotal(),
        product_ids=product_ids,
        collection_ids=collection_ids_for(session, product_ids),
        now=now,
    )


def check_failure(coupon: Coupon, check: CouponCheck, *, conflict: bool = False):
    return failure(
        check.failure,
        coupon.failure_message(check.failure),
        conflict=conflict,
        coupon_code=coupon.code,
    )


def validate_coupon(session, code, order_amount, product_ids=(), now=None):
    """Read-only preview: what would this code take off this order? Never touches usage."""
    try:
        amount = D(order_amount)
    except (InvalidOperation, TypeError, ValueError):
        return failure(ErrorKind.VALIDATION_ERROR, "order_amount must be numeric")
    if not amount.is_finite():
        return failure(ErrorKind.VALIDATION_ERROR, "order_amount must be numeric")
    amount = round_money(amount)
    if amount <= 0:
        return failure(ErrorKind.VALIDATION_ERROR, "order_amount must be > 0")
    try:
        product_ids = [int(p) for p in (product_ids or [])]
    except (TypeError, ValueError):
        return failure(ErrorKind.VALIDATION_ERROR, "product_ids must be integers")

    coupon = Coupon.find_by_code(code, session)
    if not coupon:
        return failure(ErrorKind.COUPON_NOT_FOUND)

    check = coupon.evaluate(amount, product_ids, collection_ids_for(session, product_ids), now or utcnow())
    if not check.ok:
        return check_failure(coupon, check)

    return success({
        "coupon_id": coupon.id,
        "code": coupon.code,
        "kind": coupon.kind,
        "value": str(coupon.value),
        "discount_amount": to_string_money(check.discount),
        "final_amount": to_string_money(subtract(amount, check.discount, clamp=True)),
    })


# ---- payload parsing -------------------------------------------------------

def _opt_int(value, field):
    if value is None or value == "":
        return None, None
    try:
        return int(value), None
    except (TypeError, ValueError):
        return None, f"{field} must be an integer"

def _opt_decimal(value, field):
    if value is None or value == "":
        return None, None
    try:
        parsed = Decimal(str(value))
    except InvalidOperation:
        return None, f"{field} must be numeric"
    # NaN and Infinity parse but cannot be compared or rounded
    if not parsed.is_finite():
        return None, f"{field} must be numeric"
    return parsed, None

def _invalid(message):
    return failure(ErrorKind.INVALID_COUPON, message)


class CouponService:
    """Vendor/admin coupon management. Vendors only ever see and touch their own coupons."""

    def __init__(self, session, clock=utcnow):
        self.session = session
        self.clock = clock

    # ---- access --------------------------------------------------------
    def _owned(self, actor: User, coupon_id):
        coupon = self.session.get(Coupon, coupon_id)
        if not coupon:
            return None, failure(ErrorKind.COUPON_NOT_FOUND, "coupon not found")
        if not actor.is_admin and coupon.vendor_id != actor.id:
            return None, failure(ErrorKind.FORBIDDEN, "you can only manage your own coupons")
        return coupon, None

    def _can_manage(self, actor: User):
        if actor is None or actor.role not in ("vendor", "admin"):
            return failure(ErrorKind.FORBIDDEN, "vendor or admin role required")
        return None

    # ---- validation ----------------------------------------------------
    def _clean(self, actor: User, data: dict, current: Coupon | None = None):
        """Merge payload over the current values and validate the whole coupon."""
        base = {k: getattr(current, k) for k in _EDITABLE} if current else {}
        merged = {**base, **{k: v for k, v in data.items() if k in _EDITABLE}}

        code = str(merged.get("code") or "").strip().upper()
        if not _CODE_RE.match(code):
            return None, _invalid("code must be 3-50 letters or digits")

        scope = str(merged.get("scope") or "").strip().lower()
        if scope not in SCOPES:
            return None, _invalid("scope must be 'product' or 'collection'")

        product_id, msg = _opt_int(merged.get("product_id"), "product_id")
        if msg:
            return None, _invalid(msg)
        collection_id, msg = _opt_int(merged.get("collection_id"), "collection_id")
        if msg:
            return None, _invalid(msg)
        # the field that belongs to the other scope is dropped, never kept alongside
        if scope == SCOPE_PRODUCT:
            collection_id = None
            if product_id is None:
                return None, _invalid("product_id is required when scope is product")
        else:
            product_id = None
            if collection_id is None:
                return None, _invalid("collection_id is required when scope is collection")

        kind = str(merged.get("kind") or "").strip().lower()
        kind = _KIND_ALIASES.get(kind, kind)
        if kind not in KINDS:
            return None, _invalid("kind must be 'percentage' or 'flat'")

        value, msg = _opt_decimal(merged.get("value"), "value")
        if msg or value is None:
            return None, _invalid(msg or "value is required")
        if value <= 0:
            return None, _invalid("value must be > 0")
        if kind == KIND_PERCENTAGE and value > 100:
            return None, _invalid("percentage discount must be between 0 and 100")

        expires_at = merged.get("expires_at")
        if not isinstance(expires_at, datetime):
            raw = expires_at
            expires_at = parse_iso8601(raw)
            if raw and not expires_at:
                return None, _invalid("invalid datetime format for expires_at")
        if not expires_at:
            return None, _invalid("expires_at is required")
        if "expires_at" in data and expires_at <= self.clock():
            return None, _invalid("expires_at must be in the future")

        usage_limit, msg = _opt_int(merged.get("usage_limit"), "usage_limit")
        if msg:
            return None, _invalid(msg)
        if usage_limit is not None and usage_limit < 1:
            return None, _invalid("usage_limit must be at least 1")
        if current is not None and usage_limit is not None and usage_limit < (current.used_count or 0):
            return None, _invalid(f"usage_limit cannot be below the {current.used_count} uses already recorded")

        minimum, msg = _opt_decimal(merged.get("minimum_order_amount"), "minimum_order_amount")
        if msg:
            return None, _invalid(msg)
        if minimum is not None and minimum < 0:
            return None, _invalid("minimum_order_amount cannot be negative")

        if scope == SCOPE_PRODUCT:
            product = self.session.get(Product, product_id)
            if not product:
                return None, failure(ErrorKind.PRODUCT_NOT_FOUND)
            if not actor.is_admin and product.vendor_id != actor.id:
                return None, failure(ErrorKind.FORBIDDEN, "you can only create coupons for your own products")
        elif not self.session.get(Category, collection_id):
            return None, _invalid("collection not found")

        q = self.session.query(Coupon.id).filter(func.upper(Coupon.code) == code)
        if current is not None:
            q = q.filter(Coupon.id != current.id)
        if q.first():
            return None, failure(ErrorKind.COUPON_CODE_TAKEN)

        is_active = merged.get("is_active")
        return {
            "code": code,
            "scope": scope,
            "product_id": product_id,
            "collection_id": collection_id,
            "kind": kind,
            "value": round_money(value),
            "expires_at": expires_at,
            "usage_limit": usage_limit,
            "minimum_order_amount": round_money(minimum) if minimum is not None else None,
            "is_active": True if is_active is None else bool(is_active),
        }, None

    # ---- operations ----------------------------------------------------
    def create(self, actor: User, data: dict):
        denied = self._can_manage(actor)
        if denied:
            return denied
        data = dict(data or {})
        data.setdefault("expires_at", None)
        fields, error = self._clean(actor, data)
        if error:
            return error

        coupon = Coupon(vendor_id=None if actor.is_admin else actor.id, used_count=0, **fields)
        self.session.add(coupon)
        self.session.commit()
        log.info("coupon created", extra={"coupon_code": coupon.code, "user_id": actor.id})
        return success(coupon.as_api(self.clock()))

    def update(self, actor: User, coupon_id, data: dict):
        denied = self._can_manage(actor)
        if denied:
            return denied
        coupon, error = self._owned(actor, coupon_id)
        if error:
            return error
        fields, error = self._clean(actor, dict(data or {}), current=coupon)
        if error:
            return error

        for key, value in fields.items():
            setattr(coupon, key, value)
        self.session.commit()
        return success(coupon.as_api(self.clock()))

    def get(self, actor: User, coupon_id):
        denied = self._can_manage(actor)
        if denied:
            return denied
        coupon, error = self._owned(actor, coupon_id)
        if error:
            return error
        return success(coupon.as_api(self.clock()))

    def list(self, actor: User, status=None, search=None, page=1, per_page=10):
        denied = self._can_manage(actor)
        if denied:
            return denied
        now = self.clock()
        q = self.session.query(Coupon)
        if not actor.is_admin:
            q = q.filter(Coupon.vendor_id == actor.id)
        if status == "active":
            q = q.filter(Coupon.is_active.is_(True), Coupon.expires_at > now)
        elif status == "inactive":
            q = q.filter(or_(Coupon.is_active.is_(False), Coupon.expires_at <= now))
        if search:
            q = q.filter(Coupon.code.ilike(f"%{search.strip()}%"))

        items, meta = paginate(q.order_by(Coupon.created_at.desc(), Coupon.id.desc()), page, per_page)
        return success({"coupons": [c.as_api(now) for c in items], "pagination": meta})

    def deactivate(self, actor: User, coupon_id):
        denied = self._can_manage(actor)
        if denied:
            return denied
        coupon, error = self._owned(actor, coupon_id)
        if error:
            return error
        coupon.is_active = False
        self.session.commit()
        log.info("coupon deactivated", extra={"coupon_code": coupon.code, "user_id": actor.id})
        return success(coupon.as_api(self.clock()))

    def delete(self, actor: User, coupon_id):
        denied = self._can_manage(actor)
        if denied:
            return denied
        coupon, error = self._owned(actor, coupon_id)
        if error:
            return error
        uses = self.session.query(func.count(CouponUsage.id)).filter(CouponUsage.coupon_id == coupon.id).scalar()
        if (coupon.used_count or 0) > 0 or uses:
            return failure(ErrorKind.COUPON_IN_USE, coupon_code=coupon.code)

        code = coupon.code
        self.session.delete(coupon)
        self.session.commit()
        log.info("coupon deleted", extra={"coupon_code": code, "user_id": actor.id})
        return success({"id": coupon_id, "code": code})

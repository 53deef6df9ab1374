# --- bazaar/model/coupon.py ---
from __future__ import annotations
from decimal import Decimal
from typing import NamedTuple

from sqlalchemy.sql import func
from ..extensions import db
from ..services.errors import ErrorKind
from ..utils.dates import isoformat, utcnow
from ..utils.money import D, ZERO, percentage_of, round_money, to_string_money

SCOPE_PRODUCT = "product"
SCOPE_COLLECTION = "collection"
KIND_PERCENTAGE = "percentage"
KIND_FLAT = "flat"

SCOPES = (SCOPE_PRODUCT, SCOPE_COLLECTION)
KINDS = (KIND_PERCENTAGE, KIND_FLAT)


class CouponCheck(NamedTuple):
    discount: Decimal
    failure: ErrorKind | None = None

    @property
    def ok(self) -> bool:
        return self.failure is None


class Coupon(db.Model):
    __tablename__ = "coupons"

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(50), unique=True, nullable=False, index=True)  # stored upper-case
    vendor_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=True, index=True)

    # "product" -> product_id, "collection" -> collection_id; never both
    scope = db.Column(db.String(16), nullable=False)
    product_id = db.Column(db.Integer, db.ForeignKey("product.id"), nullable=True)
    collection_id = db.Column(db.Integer, db.ForeignKey("category.id"), nullable=True)

    # "percentage" or "flat"
    kind = db.Column(db.String(16), nullable=False, default=KIND_PERCENTAGE)
    value = db.Column(db.Numeric(10, 2), nullable=False)

    expires_at = db.Column(db.DateTime, nullable=False)
    usage_limit = db.Column(db.Integer, nullable=True)     # null = unlimited
    used_count = db.Column(db.Integer, nullable=False, default=0)
    minimum_order_amount = db.Column(db.Numeric(10, 2), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime, server_default=func.now())
    updated_at = db.Column(db.DateTime, onupdate=func.now(), server_default=func.now())

    product = db.relationship("Product", lazy="joined")
    collection = db.relationship("Category", lazy="joined")

    __table_args__ = (
        db.CheckConstraint(
            "(product_id IS NOT NULL AND collection_id IS NULL) OR "
            "(product_id IS NULL AND collection_id IS NOT NULL)",
            name="ck_coupon_single_scope",
        ),
        db.CheckConstraint(
            "usage_limit IS NULL OR used_count <= usage_limit",
            name="ck_coupon_used_within_limit",
        ),
        db.CheckConstraint("used_count >= 0", name="ck_coupon_used_count_non_negative"),
    )

    @classmethod
    def find_by_code(cls, code: str | None, session=None) -> "Coupon | None":
        code = (code or "").strip().upper()
        if not code:
            return None
        return (session or db.session).query(cls).filter(func.upper(cls.code) == code).first()

    # ---- derived state -----------------------------------------------------
    def is_expired(self, now=None) -> bool:
        return (now or utcnow()) >= self.expires_at

    def is_limit_reached(self) -> bool:
        return self.usage_limit is not None and (self.used_count or 0) >= self.usage_limit

    def can_be_applied(self, now=None) -> bool:
        return bool(self.is_active) and not self.is_expired(now) and not self.is_limit_reached()

    def state(self, now=None) -> str:
        if not self.is_active:
            return "inactive"
        if self.is_expired(now):
            return "expired"
        if self.is_limit_reached():
            return "limit_reached"
        return "active"

    def availability_failure(self, now=None) -> ErrorKind | None:
        if not self.is_active:
            return ErrorKind.COUPON_INACTIVE
        if self.is_expired(now):
            return ErrorKind.COUPON_EXPIRED
        if self.is_limit_reached():
            return ErrorKind.COUPON_LIMIT_REACHED
        return None

    # ---- discount ----------------------------------------------------------
    def discount_for(self, order_amount) -> Decimal:
        """Raw discount for an amount; never more than the amount itself."""
        amount = round_money(order_amount)
        if amount <= 0:
            return ZERO
        if self.kind == KIND_PERCENTAGE:
            return min(percentage_of(amount, self.value), amount)
        if self.kind == KIND_FLAT:
            return min(round_money(self.value), amount)
        return ZERO

    def evaluate(self, order_amount, product_ids=(), collection_ids=(), now=None) -> CouponCheck:
        """
        Eligibility + discount, checked in order: availability, minimum order,
        product scope, collection scope. `collection_ids` are the categories
        of the products in the order.
        """
        failure = self.availability_failure(now)
        if failure:
            return CouponCheck(ZERO, failure)

        amount = round_money(order_amount)
        if self.minimum_order_amount is not None and amount < D(self.minimum_order_amount):
            return CouponCheck(ZERO, ErrorKind.BELOW_MINIMUM_ORDER)

        if self.scope == SCOPE_PRODUCT and self.product_id not in set(product_ids):
            return CouponCheck(ZERO, ErrorKind.SCOPE_MISMATCH)
        if self.scope == SCOPE_COLLECTION and self.collection_id not in set(collection_ids):
            return CouponCheck(ZERO, ErrorKind.SCOPE_MISMATCH)

        return CouponCheck(self.discount_for(amount))

    def failure_message(self, kind: ErrorKind) -> str | None:
        if kind is ErrorKind.BELOW_MINIMUM_ORDER:
            return f"minimum order amount of {to_string_money(self.minimum_order_amount)} required"
        if kind is ErrorKind.SCOPE_MISMATCH:
            if self.scope == SCOPE_PRODUCT:
                return "this coupon is only valid for specific products"
            return "this coupon is only valid for products in its collection"
        return None

    def as_api(self, now=None):
        return {
            "id": self.id,
            "code": self.code,
            "vendor_id": self.vendor_id,
            "scope": self.scope,
            "product_id": self.product_id,
            "collection_id": self.collection_id,
            "product": {"id": self.product.id, "name": self.product.name} if self.product else None,
            "collection": self.collection.as_dict() if self.collection else None,
            "kind": self.kind,
            "value": str(self.value),
            "expires_at": isoformat(self.expires_at),
            "usage_limit": self.usage_limit,
            "used_count": self.used_count,
            "minimum_order_amount": (
                to_string_money(self.minimum_order_amount)
                if self.minimum_order_amount is not None else None
            ),
            "is_active": self.is_active,
            "state": self.state(now),
            "created_at": isoformat(self.created_at),
        }


class CouponUsage(db.Model):
    """Append-only redemption ledger: one row per checkout that consumed a coupon."""
    __tablename__ = "coupon_usage"

    id = db.Column(db.Integer, primary_key=True)
    coupon_id = db.Column(db.Integer, db.ForeignKey("coupons.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=False, index=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True, index=True)
    discount_amount = db.Column(db.Numeric(10, 2), nullable=False)
    order_amount = db.Column(db.Numeric(10, 2), nullable=False)
    used_at = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)

    coupon = db.relationship("Coupon", lazy="joined")

    def as_api(self):
        return {
            "id": self.id,
            "coupon_id": self.coupon_id,
            "code": self.coupon.code if self.coupon else None,
            "user_id": self.user_id,
            "order_id": self.order_id,
            "discount_amount": to_string_money(self.discount_amount),
            "order_amount": to_string_money(self.order_amount),
            "used_at": isoformat(self.used_at),
        }

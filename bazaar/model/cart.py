# bazaar/model/cart.py
from __future__ import annotations
import logging
import uuid as _uuid
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation

from sqlalchemy import text
from sqlalchemy.sql import func
from ..extensions import db
from ..utils.dates import isoformat, parse_iso8601
from ..utils.money import (
    D, ZERO, clamp_zero, multiply, percentage_of, round_money, subtract, sum_of, to_string_money,
)

log = logging.getLogger(__name__)

STATUS_ACTIVE = "active"
STATUS_CHECKED_OUT = "checked_out"


@dataclass(frozen=True)
class CouponApplication:
    """The coupon currently applied to a cart, stored as JSON on the cart row."""
    coupon_id: int
    code: str
    kind: str
    value: Decimal
    discount_amount: Decimal
    applied_at: datetime

    def to_json(self) -> dict:
        return {
            "coupon_id": self.coupon_id,
            "code": self.code,
            "kind": self.kind,
            "value": str(self.value),
            "discount_amount": to_string_money(self.discount_amount),
            "applied_at": isoformat(self.applied_at),
        }

    @classmethod
    def from_json(cls, raw) -> "CouponApplication":
        if not isinstance(raw, dict):
            raise ValueError("coupon application must be an object")
        try:
            coupon_id = int(raw["coupon_id"])
            code = str(raw["code"])
            kind = str(raw["kind"])
            value = Decimal(str(raw["value"]))
            discount = round_money(Decimal(str(raw["discount_amount"])))
        except (KeyError, TypeError, ValueError, InvalidOperation) as e:
            raise ValueError(f"malformed coupon application: {e}") from e
        applied_at = parse_iso8601(raw.get("applied_at"))
        if applied_at is None:
            raise ValueError("malformed coupon application: applied_at")
        if discount < 0:
            raise ValueError("malformed coupon application: negative discount")
        return cls(coupon_id, code, kind, value, discount, applied_at)

    def with_discount(self, discount) -> "CouponApplication":
        return CouponApplication(
            self.coupon_id, self.code, self.kind, self.value, round_money(discount), self.applied_at
        )

    def as_api(self):
        return self.to_json()


class Cart(db.Model):
    __tablename__ = "cart"

    id = db.Column(db.Integer, primary_key=True)
    uuid = db.Column(db.String(36), unique=True, index=True, default=lambda: str(_uuid.uuid4()))
    invoice_id = db.Column(db.String(64), nullable=True)
    user_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=False, index=True)
    email = db.Column(db.String(255), nullable=True)
    status = db.Column(db.String(16), nullable=False, default=STATUS_ACTIVE, index=True)

    coupon_json = db.Column("applied_coupon", db.JSON, nullable=True)

    # persisted totals, rewritten by recompute_totals() after every mutation
    bag_total = db.Column(db.Numeric(12, 2), nullable=False, default=ZERO)
    product_discount_total = db.Column(db.Numeric(12, 2), nullable=False, default=ZERO)
    coupon_discount = db.Column(db.Numeric(12, 2), nullable=False, default=ZERO)
    delivery_fee = db.Column(db.Numeric(12, 2), nullable=False, default=ZERO)
    amount_payable = db.Column(db.Numeric(12, 2), nullable=False, default=ZERO)

    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True)
    checked_out_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, server_default=func.now())
    updated_at = db.Column(db.DateTime, onupdate=func.now(), server_default=func.now())

    items = db.relationship(
        "CartItem",
        backref="cart",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="CartItem.id.asc()"
    )

    __table_args__ = (
        # one active cart per user
        db.Index(
            "uq_cart_active_user",
            "user_id",
            unique=True,
            sqlite_where=text("status = 'active'"),
            postgresql_where=text("status = 'active'"),
        ),
    )

    # --------- applied coupon ----------
    @property
    def applied_coupon(self) -> CouponApplication | None:
        if not self.coupon_json:
            return None
        try:
            return CouponApplication.from_json(self.coupon_json)
        except ValueError:
            log.warning("dropping unreadable coupon application on cart %s", self.id, exc_info=True)
            return None

    @applied_coupon.setter
    def applied_coupon(self, application: CouponApplication | None):
        self.coupon_json = application.to_json() if application else None

    # --------- lines ----------
    def find_line(self, product_id) -> "CartItem | None":
        return next((i for i in self.items if i.product_id == product_id), None)

    def product_ids(self) -> list[int]:
        return [i.product_id for i in self.items]

    def item_count(self) -> int:
        return sum(int(i.quantity or 0) for i in self.items)

    def is_empty(self) -> bool:
        return len(self.items) == 0

    # --------- money ----------
    def subtotal(self) -> Decimal:
        """Post-product-discount, pre-coupon subtotal."""
        return subtract(self.bag_total or 0, self.product_discount_total or 0)

    def recompute_totals(self):
        bag = sum_of(i.line_total_before() for i in self.items)
        product_discount = sum_of(i.line_discount() for i in self.items)
        subtotal = subtract(bag, product_discount, clamp=True)

        application = self.applied_coupon
        coupon = ZERO
        if application:
            coupon = min(application.discount_amount, subtotal)
            if coupon != application.discount_amount:
                self.applied_coupon = application.with_discount(coupon)

        self.bag_total = bag
        self.product_discount_total = product_discount
        self.coupon_discount = coupon
        self.delivery_fee = round_money(self.delivery_fee or 0)
        self.amount_payable = clamp_zero(bag - product_discount - coupon + D(self.delivery_fee))
        return self.amount_payable

    def payment_details(self):
        application = self.applied_coupon
        return {
            "bag_total": to_string_money(self.bag_total),
            "bag_discount": to_string_money(D(self.product_discount_total) + D(self.coupon_discount)),
            "product_discount": to_string_money(self.product_discount_total),
            "coupon_discount": to_string_money(self.coupon_discount),
            "delivery_fee": to_string_money(self.delivery_fee),
            "amount_payable": to_string_money(self.amount_payable),
            "applied_coupon": application.as_api() if application else None,
        }

    def as_api(self):
        return {
            "id": self.id,
            "uuid": self.uuid,
            "invoice_id": self.invoice_id,
            "status": self.status,
            "items": [i.as_api() for i in self.items],
            "item_count": self.item_count(),
            "payment_details": self.payment_details(),
            "created_at": isoformat(self.created_at),
            "updated_at": isoformat(self.updated_at),
        }


class CartItem(db.Model):
    __tablename__ = "cart_item"

    id = db.Column(db.Integer, primary_key=True)
    cart_id = db.Column(db.Integer, db.ForeignKey("cart.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("product.id"), nullable=False, index=True)

    product_name = db.Column(db.String(255), nullable=False)
    unit_price = db.Column(db.Numeric(12, 2), nullable=False, default=ZERO)
    discount_percent = db.Column(db.Numeric(5, 2), nullable=False, default=ZERO)
    quantity = db.Column(db.Integer, nullable=False, default=1)
    product_image = db.Column(db.String(500), nullable=True)
    attributes = db.Column(db.JSON, nullable=True)

    added_at = db.Column(db.DateTime, server_default=func.now())
    updated_at = db.Column(db.DateTime, onupdate=func.now(), server_default=func.now())

    __table_args__ = (
        db.UniqueConstraint("cart_id", "product_id", name="uq_cart_item_product"),
        db.CheckConstraint("quantity > 0", name="ck_cart_item_quantity_positive"),
    )

    # ---- price helpers ----
    def unit_discount(self) -> Decimal:
        return percentage_of(self.unit_price or 0, self.discount_percent or 0)

    def discounted_unit_price(self) -> Decimal:
        return subtract(self.unit_price or 0, self.unit_discount(), clamp=True)

    def line_total_before(self) -> Decimal:
        return multiply(self.unit_price or 0, int(self.quantity or 0))

    def line_subtotal(self) -> Decimal:
        return multiply(self.discounted_unit_price(), int(self.quantity or 0))

    def line_discount(self) -> Decimal:
        return subtract(self.line_total_before(), self.line_subtotal())

    def as_api(self):
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "unit_price": to_string_money(self.unit_price),
            "discount_percent": str(self.discount_percent or 0),
            "unit_discount": to_string_money(self.unit_discount()),
            "discounted_unit_price": to_string_money(self.discounted_unit_price()),
            "quantity": self.quantity,
            "line_total_before": to_string_money(self.line_total_before()),
            "subtotal": to_string_money(self.line_subtotal()),
            "product_image": self.product_image,
            "attributes": self.attributes,
            "added_at": isoformat(self.added_at),
        }

from sqlalchemy.sql import func
from ..extensions import db
from ..utils.dates import isoformat
from ..utils.money import to_string_money

FULFILLMENT_UNFULFILLED = "unfulfilled"
FULFILLMENT_FULFILLED = "fulfilled"

class Order(db.Model):
    """Immutable snapshot of a cart at checkout; only fulfillment_status changes afterwards."""
    __tablename__ = "orders"

    id = db.Column(db.Integer, primary_key=True)
    order_number = db.Column(db.String(64), unique=True, nullable=False, index=True)  # e.g. "ORD-20261018101500-7-3f9a1c"
    user_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=False, index=True)

    # Customer snapshot
    customer_name = db.Column(db.String(255))
    customer_email = db.Column(db.String(255))
    customer_phone = db.Column(db.String(20))
    shipping_address = db.Column(db.JSON, nullable=False)

    # Money snapshot: total_amount = subtotal - discount_amount + delivery_fee
    subtotal = db.Column(db.Numeric(12, 2), nullable=False)         # after product discounts, before coupon
    discount_amount = db.Column(db.Numeric(12, 2), nullable=False)  # coupon discount
    delivery_fee = db.Column(db.Numeric(12, 2), nullable=False)
    tax_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    total_amount = db.Column(db.Numeric(12, 2), nullable=False)
    coupon_code = db.Column(db.String(50), nullable=True)

    payment_method = db.Column(db.String(50), nullable=False)
    payment_status = db.Column(db.String(16), nullable=False, default="paid")
    fulfillment_status = db.Column(db.String(16), nullable=False, default=FULFILLMENT_UNFULFILLED, index=True)

    # Link back for audit/debug (not a FK constraint)
    cart_uuid = db.Column(db.String(36), index=True)

    created_at = db.Column(db.DateTime, server_default=func.now(), index=True)
    updated_at = db.Column(db.DateTime, onupdate=func.now(), server_default=func.now())

    items = db.relationship(
        "OrderItem",
        backref="order",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="OrderItem.id.asc()",
    )

    def as_api(self):
        return {
            "id": self.id,
            "order_number": self.order_number,
            "user_id": self.user_id,
            "customer": {
                "name": self.customer_name,
                "email": self.customer_email,
                "phone": self.customer_phone,
            },
            "shipping_address": self.shipping_address,
            "money": {
                "subtotal": to_string_money(self.subtotal),
                "discount_amount": to_string_money(self.discount_amount),
                "delivery_fee": to_string_money(self.delivery_fee),
                "tax_amount": to_string_money(self.tax_amount),
                "total_amount": to_string_money(self.total_amount),
            },
            "coupon_code": self.coupon_code,
            "payment_method": self.payment_method,
            "payment_status": self.payment_status,
            "fulfillment_status": self.fulfillment_status,
            "items": [i.as_api() for i in self.items],
            "created_at": isoformat(self.created_at),
            "cart_uuid": self.cart_uuid,
        }

class OrderItem(db.Model):
    __tablename__ = "order_items"

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)

    product_id = db.Column(db.Integer, nullable=False, index=True)  # historical, not a live reference
    vendor_id = db.Column(db.Integer, index=True)
    product_name = db.Column(db.String(255), nullable=False)
    product_image = db.Column(db.String(500))
    sku = db.Column(db.String(100))

    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.Numeric(12, 2), nullable=False)
    discount_percent = db.Column(db.Numeric(5, 2), nullable=False, default=0)
    discount_per_item = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    final_price = db.Column(db.Numeric(12, 2), nullable=False)
    line_total = db.Column(db.Numeric(12, 2), nullable=False)
    product_attributes = db.Column(db.JSON)

    def as_api(self):
        return {
            "product_id": self.product_id,
            "product_name": self.product_name,
            "product_image": self.product_image,
            "sku": self.sku,
            "quantity": self.quantity,
            "unit_price": to_string_money(self.unit_price),
            "discount_percent": str(self.discount_percent or 0),
            "discount_per_item": to_string_money(self.discount_per_item),
            "final_price": to_string_money(self.final_price),
            "line_total": to_string_money(self.line_total),
            "attributes": self.product_attributes,
        }

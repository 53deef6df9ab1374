# bazaar/model/product.py
from decimal import Decimal
from sqlalchemy.sql import func
from ..extensions import db

class Product(db.Model):
    """Catalog row. The catalog owns it; checkout only reads price data and moves `stock`."""
    __tablename__ = "product"

    id = db.Column(db.Integer, primary_key=True)
    vendor_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=True, index=True)
    category_id = db.Column(db.Integer, db.ForeignKey("category.id"), nullable=True, index=True)

    name = db.Column(db.String(255), nullable=False, index=True)
    sku = db.Column(db.String(100), unique=True, nullable=True)
    price = db.Column(db.Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    discount = db.Column(db.Numeric(5, 2), nullable=False, default=Decimal("0.00"))  # percent off
    stock = db.Column(db.Integer, nullable=False, default=0)
    image_url = db.Column(db.String(500))
    attributes = db.Column(db.JSON)           # size, color, ...
    status = db.Column(db.Boolean, default=True)

    created_at = db.Column(db.DateTime, server_default=func.now())
    updated_at = db.Column(db.DateTime, onupdate=func.now(), server_default=func.now())

    __table_args__ = (
        db.CheckConstraint("stock >= 0", name="ck_product_stock_non_negative"),
    )

    @property
    def is_available(self) -> bool:
        return self.status is not False


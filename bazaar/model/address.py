# bazaar/model/address.py
from sqlalchemy.sql import func
from ..extensions import db

class Address(db.Model):
    """Shipping address from the user directory; checkout snapshots it into the order."""
    __tablename__ = "addresses"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=False, index=True)
    name = db.Column(db.String(100), nullable=False)       # label, e.g. Home / Office
    first_name = db.Column(db.String(100), nullable=False)
    last_name = db.Column(db.String(100), nullable=False)
    address_line_1 = db.Column(db.String(255), nullable=False)
    address_line_2 = db.Column(db.String(255))
    city = db.Column(db.String(100), nullable=False)
    state = db.Column(db.String(100), nullable=False)
    postal_code = db.Column(db.String(20), nullable=False)
    country = db.Column(db.String(100), nullable=False, default="India")
    phone = db.Column(db.String(20))
    is_default = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime, server_default=func.now())

    @classmethod
    def find_for_user(cls, user_id, address_id, session=None):
        if address_id is None:
            return None
        return (session or db.session).query(cls).filter_by(id=address_id, user_id=user_id).first()

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    def formatted(self) -> str:
        parts = [self.address_line_1]
        if self.address_line_2:
            parts.append(self.address_line_2)
        parts.append(f"{self.city}, {self.state} {self.postal_code}, {self.country}")
        return ", ".join(parts)

    def as_api(self):
        return {
            "id": self.id,
            "name": self.name,
            "full_name": self.full_name,
            "address_line_1": self.address_line_1,
            "address_line_2": self.address_line_2,
            "city": self.city,
            "state": self.state,
            "postal_code": self.postal_code,
            "country": self.country,
            "phone": self.phone,
            "formatted": self.formatted(),
        }

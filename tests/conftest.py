# tests/conftest.py
from datetime import timedelta
from decimal import Decimal

import pytest
from flask_jwt_extended import create_access_token

from bazaar import create_app
from bazaar.config import TestingConfig
from bazaar.extensions import db
from bazaar.model import Address, Category, Coupon, Product, User
from bazaar.utils.dates import utcnow


@pytest.fixture
def app(tmp_path):
    class _Config(TestingConfig):
        SQLALCHEMY_DATABASE_URI = f"sqlite:///{tmp_path / 'bazaar-test.db'}"

    app = create_app(_Config)
    with app.app_context():
        yield app
        db.session.remove()
        db.engine.dispose()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_user(app):
    counter = {"n": 0}

    def _make(role="customer", **kw):
        counter["n"] += 1
        u = User(email=kw.pop("email", f"user{counter['n']}@example.com"), name=kw.pop("name", "Test User"), role=role, **kw)
        db.session.add(u)
        db.session.commit()
        return u
    return _make


@pytest.fixture
def make_category(app):
    def _make(name="Shoes"):
        c = Category(name=name)
        db.session.add(c)
        db.session.commit()
        return c
    return _make


@pytest.fixture
def make_product(app):
    def _make(price="500.00", discount="0", stock=10, **kw):
        p = Product(
            name=kw.pop("name", "Sneaker"),
            price=Decimal(price),
            discount=Decimal(discount),
            stock=stock,
            **kw,
        )
        db.session.add(p)
        db.session.commit()
        return p
    return _make


@pytest.fixture
def make_address(app):
    def _make(user, **kw):
        a = Address(
            user_id=user.id,
            name=kw.pop("name", "Home"),
            first_name="Asha",
            last_name="Rao",
            address_line_1="12 MG Road",
            city="Pune",
            state="MH",
            postal_code="411001",
            phone="9800000000",
            **kw,
        )
        db.session.add(a)
        db.session.commit()
        return a
    return _make


@pytest.fixture
def make_coupon(app):
    def _make(code="SAVE20", value="20", kind="percentage", **kw):
        scope = kw.pop("scope", "product" if "product_id" in kw else "collection")
        c = Coupon(
            code=code,
            kind=kind,
            value=Decimal(value),
            scope=scope,
            expires_at=kw.pop("expires_at", utcnow() + timedelta(days=30)),
            used_count=kw.pop("used_count", 0),
            is_active=kw.pop("is_active", True),
            **kw,
        )
        db.session.add(c)
        db.session.commit()
        return c
    return _make


@pytest.fixture
def auth_headers(app):
    def _headers(user):
        token = create_access_token(identity=str(user.id))
        return {"Authorization": f"Bearer {token}"}
    return _headers

# tests/test_cli.py
from bazaar.extensions import db
from bazaar.model import User
from bazaar.services.coupon_ledger import CouponLedger


def test_create_user(app):
    runner = app.test_cli_runner()

    result = runner.invoke(args=["create-user", "--email", "Owner@Example.com", "--name", "Owner", "--role", "vendor"])

    assert result.exit_code == 0
    assert "User created" in result.output
    u = db.session.query(User).filter_by(email="owner@example.com").one()
    assert u.role == "vendor"

    again = runner.invoke(args=["create-user", "--email", "owner@example.com", "--name", "Owner"])
    assert "already exists" in again.output

def test_coupon_stats(app, make_user, make_product, make_coupon):
    u = make_user()
    c = make_coupon("CLI10", "10", product_id=make_product().id)
    CouponLedger(db.session).record_usage(c, u.id, None, "5.00", "50.00")
    db.session.commit()

    result = app.test_cli_runner().invoke(args=["coupon-stats", "cli10"])

    assert result.exit_code == 0
    assert "total_uses: 1" in result.output
    assert "total_discount_given: 5.00" in result.output

    missing = app.test_cli_runner().invoke(args=["coupon-stats", "NOPE"])
    assert missing.exit_code != 0

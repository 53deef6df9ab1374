# bazaar/cli.py
import click
from flask.cli import with_appcontext

from .extensions import db
from .model import Coupon, User
from .model.user import ROLES
from .services.coupon_ledger import CouponLedger

@click.command("create-user")
@with_appcontext
@click.option("--email", required=True)
@click.option("--name", required=True)
@click.option("--role", type=click.Choice(ROLES), default="customer", show_default=True)
def create_user(email, name, role):
    email = email.strip().lower()
    if db.session.query(User).filter_by(email=email).first():
        click.echo("Email already exists"); return
    u = User(email=email, name=name, role=role)
    db.session.add(u); db.session.commit()
    click.echo(f"User created: {u.id} {u.email} ({u.role})")

@click.command("coupon-stats")
@with_appcontext
@click.argument("code")
def coupon_stats(code):
    coupon = Coupon.find_by_code(code, db.session)
    if not coupon:
        raise click.ClickException(f"coupon {code} not found")
    stats = CouponLedger(db.session).usage_stats(coupon.id).value
    for key, value in stats.items():
        click.echo(f"{key}: {value if value is not None else '-'}")

def register_cli(app):
    app.cli.add_command(create_user)
    app.cli.add_command(coupon_stats)

# --- bazaar/__init__.py ---
import logging

from flask import Flask, jsonify
from sqlalchemy.exc import SQLAlchemyError

from .config import Config
from .extensions import configure_sqlite_locking, cors, db, jwt, migrate
from .utils.api import api_error
from .utils.logging import init_logging, request_context

def create_app(config_object=None):
    app = Flask(__name__, instance_relative_config=True)

    config_object = config_object or Config
    app.config.from_object(config_object)
    config_object.init_app(app)
    init_logging(app)

    # Init extensions
    db.init_app(app)
    jwt.init_app(app)
    cors.init_app(app, resources={r"/*": {"origins": "*"}})
    migrate.init_app(app, db)

    # Register blueprints
    from .cart import bp as cart_bp; app.register_blueprint(cart_bp)
    from .checkout import bp as checkout_bp; app.register_blueprint(checkout_bp)
    from .coupon import bp as coupon_bp; app.register_blueprint(coupon_bp)
    from .order import bp as order_bp; app.register_blueprint(order_bp)

    from .cli import register_cli
    register_cli(app)

    @app.errorhandler(SQLAlchemyError)
    def handle_storage_error(e):
        db.session.rollback()
        logging.getLogger("bazaar").error("storage failure", exc_info=e, extra=request_context())
        return jsonify(api_error("internal server error", {"error_kind": "internal_error"})), 500

    @app.get("/")
    def health():
        return jsonify(ok=True, msg="API running")

    with app.app_context():
        from . import model  # noqa: F401  (register tables)
        configure_sqlite_locking(db.engine)
        db.create_all()

    return app

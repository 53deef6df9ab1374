import os
from datetime import timedelta

def _csv(value):
    return tuple(x.strip().lower() for x in value.split(",") if x.strip())

class Config:
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    JSON_SORT_KEYS = False
    TESTING = False

    JWT_SECRET_KEY = os.environ.get("JWT_SECRET_KEY", "dev-secret-change-me")
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(days=1)

    # store settings
    DELIVERY_FEE = os.environ.get("DELIVERY_FEE", "0.00")
    PAYMENT_METHODS = _csv(os.environ.get("PAYMENT_METHODS", "cod,card,upi,netbanking,wallet"))
    MAX_PAGE_SIZE = int(os.environ.get("MAX_PAGE_SIZE", 100))

    # logging
    SERVICE_NAME = "bazaar"
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
    LOG_JSON = os.environ.get("LOG_JSON", "true").lower() == "true"

    SQLITE_BUSY_TIMEOUT = 30

    @classmethod
    def init_app(cls, app):
        uri = app.config.get("SQLALCHEMY_DATABASE_URI") or os.getenv("DATABASE_URL")
        if not uri:
            os.makedirs(app.instance_path, exist_ok=True)
            uri = f"sqlite:///{os.path.join(app.instance_path, 'bazaar.db')}"
        app.config["SQLALCHEMY_DATABASE_URI"] = uri

        if uri.startswith("sqlite"):
            opts = dict(app.config.get("SQLALCHEMY_ENGINE_OPTIONS") or {})
            connect_args = dict(opts.get("connect_args") or {})
            connect_args.setdefault("check_same_thread", False)
            connect_args.setdefault("timeout", app.config.get("SQLITE_BUSY_TIMEOUT", cls.SQLITE_BUSY_TIMEOUT))
            opts["connect_args"] = connect_args
            app.config["SQLALCHEMY_ENGINE_OPTIONS"] = opts

class TestingConfig(Config):
    TESTING = True
    JWT_SECRET_KEY = "test-secret-key-with-enough-length-for-hs256"
    DELIVERY_FEE = "0.00"
    LOG_LEVEL = "WARNING"

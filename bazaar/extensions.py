# bazaar/extensions.py
from flask_cors import CORS
from flask_jwt_extended import JWTManager
from flask_migrate import Migrate
from flask_sqlalchemy import SQLAlchemy
from sqlalchemy import event

db = SQLAlchemy()
jwt = JWTManager()
cors = CORS()
migrate = Migrate()


def configure_sqlite_locking(engine):
    """
    SQLite ignores SELECT ... FOR UPDATE. Take the database write lock when a
    transaction begins so concurrent checkouts are serialized there too.
    Must run before the engine hands out its first connection.
    """
    if engine.dialect.name != "sqlite":
        return

    @event.listens_for(engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection, connection_record):
        # let the "begin" hook below emit BEGIN itself
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

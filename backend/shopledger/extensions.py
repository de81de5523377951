# Overview: Flask extension instances for database and migrations.

from flask_migrate import Migrate
from flask_sqlalchemy import SQLAlchemy
from sqlalchemy import event

db = SQLAlchemy()
migrate = Migrate()


def enable_sqlite_savepoints(engine) -> None:
    """
    Make SQLite honour the session's transaction boundaries.

    pysqlite only sends BEGIN before DML, so a SAVEPOINT can open outside
    any transaction and its RELEASE commits for good. Turning off the
    driver's own handling and emitting BEGIN ourselves keeps savepoints
    nested inside the outer transaction.
    """

    @event.listens_for(engine, "connect")
    def _disable_driver_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        # An in-memory database shares one connection between sessions
        if not conn.connection.dbapi_connection.in_transaction:
            conn.exec_driver_sql("BEGIN")

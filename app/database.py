"""
Database engine and session. SQLite by default, Postgres via DATABASE_URL.

get_db is the request-scoped dependency used by the drive router; services
receive the session explicitly and commit their own StorageLink mutations.
"""
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker, declarative_base

from config import DATABASE_URL

# SQLite needs check_same_thread=False for FastAPI's threadpool; Postgres does not
_connect_args = {}
if DATABASE_URL.startswith("sqlite"):
    _connect_args["check_same_thread"] = False

engine = create_engine(DATABASE_URL, connect_args=_connect_args)
SessionLocal = sessionmaker(bind=engine, expire_on_commit=False)

Base = declarative_base()


def enable_sqlite_foreign_keys(target_engine) -> None:
    """Turn on FK enforcement for every new SQLite connection (off by default)."""
    if target_engine.dialect.name != "sqlite":
        return

    @event.listens_for(target_engine, "connect")
    def _set_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


enable_sqlite_foreign_keys(engine)


def init_db(target_engine=engine) -> None:
    """Create tables for all models (dev/test; production uses migrations)."""
    import models  # noqa: F401  registers tables on Base.metadata

    Base.metadata.create_all(bind=target_engine)


def get_db():
    """FastAPI dependency: yields a DB session and closes it after the request."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

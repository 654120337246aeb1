# subtrack/db.py

import logging
from typing import Generator

from sqlalchemy import create_engine, event, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool

from subtrack.config import DATABASE_URL, DB_ECHO

log = logging.getLogger("subtrack.db")

engine_kwargs = {
    "echo": DB_ECHO,
    "future": True,
}

if DATABASE_URL.startswith("sqlite"):
    engine_kwargs["connect_args"] = {"check_same_thread": False}
    # in-memory databases live on a single shared connection
    if DATABASE_URL in ("sqlite://", "sqlite:///:memory:"):
        engine_kwargs["poolclass"] = StaticPool
else:
    engine_kwargs["pool_pre_ping"] = True

engine = create_engine(DATABASE_URL, **engine_kwargs)

if DATABASE_URL.startswith("sqlite"):
    # pysqlite defers BEGIN on its own, which breaks SAVEPOINT; take over transaction control
    @event.listens_for(engine, "connect")
    def _sqlite_on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _sqlite_on_begin(conn):
        conn.exec_driver_sql("BEGIN")


SessionLocal = sessionmaker(bind=engine, autoflush=False, future=True, expire_on_commit=False)

# Base class for all models
Base = declarative_base()


def init_db() -> None:
    """
    Create every table registered on Base.
    """
    log.info("Initializing the database...")
    import subtrack.models  # noqa: F401

    Base.metadata.create_all(bind=engine)
    log.info("Database tables created (if not already present).")


def is_db_available() -> bool:
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except SQLAlchemyError as e:
        log.warning("Database ping failed: %s", e)
        return False


def get_db() -> Generator:
    """
    FastAPI dependency generator that yields a SQLAlchemy session and ensures it is closed.
    Usage in FastAPI endpoints:
        from fastapi import Depends
        def endpoint(db = Depends(get_db)): ...
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

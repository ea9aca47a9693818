# db.py
# Role: Database bootstrap for the household ledger.
#       Defines the SQLAlchemy engine, session factory, and declarative Base.
#       Also ensures the on-disk database directory exists for the default SQLite URL.

"""
Database setup for the ledger.

- Uses DATABASE_URL from the environment, or SQLite at <project_root>/database/finance.db
- Ensures the 'database' folder exists when the default SQLite file is used.
"""

import os

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, declarative_base

from ledger.settings import DATABASE_URL, DB_DIR


def _unicode_lower(value):
    return value.lower() if isinstance(value, str) else value


def configure_sqlite(engine: Engine) -> Engine:
    """
    Make a pysqlite engine behave like a real transactional store:
    foreign keys enforced and SAVEPOINT usable (needed by the ingestion
    pipeline, which relies on per-row savepoints around the unique-hash insert).

    SQLite's built-in lower() only folds ASCII; it is replaced with Python's
    str.lower so SQL-side merchant matching agrees with MerchantMatcher
    on names like "ÅHLENS".
    """

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.create_function("lower", 1, _unicode_lower, deterministic=True)
        # Let SQLAlchemy emit BEGIN itself instead of the driver
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys = ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")

    return engine


def build_engine(url: str, **kwargs) -> Engine:
    """
    Create an engine for `url`. SQLite URLs get check_same_thread=False
    (FastAPI serves requests from a thread pool) and the pragmas above.
    """
    if url.startswith("sqlite"):
        connect_args = kwargs.pop("connect_args", {})
        connect_args.setdefault("check_same_thread", False)
        return configure_sqlite(create_engine(url, connect_args=connect_args, **kwargs))
    return create_engine(url, pool_pre_ping=True, **kwargs)


# Folder for SQLite DB (created on startup if missing)
if DATABASE_URL.startswith("sqlite:///") and DATABASE_URL.startswith(f"sqlite:///{DB_DIR}"):
    os.makedirs(DB_DIR, exist_ok=True)

engine = build_engine(DATABASE_URL)

# Standard session factory used via dependency injection (see ledger/deps.py:get_db)
SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

# Declarative base class for ORM models
Base = declarative_base()

"""
Database engine initialisation, table definitions and store-call guards.
"""

import sys
from contextlib import contextmanager

from sqlalchemy import (
    Column, Date, DateTime, ForeignKey, Integer, MetaData, String, Table, Text,
    create_engine, insert, select, text,
)
from sqlalchemy import exc as sa_exc

from clinic.config import get_env, STORE_TIMEOUT_SECONDS
from clinic.errors import Unavailable

metadata = MetaData()

accounts = Table(
    "accounts", metadata,
    Column("id", String(36), primary_key=True),
    Column("email", String(255), nullable=False, unique=True, index=True),
    Column("password_hash", String(128), nullable=False),
    Column("full_name", String(200), nullable=False),
    # Role requested at sign-up; used to repair a missing user_roles row.
    Column("user_type", String(20), nullable=True),
    Column("verification", String(16), nullable=False),
    Column("created_at", DateTime, nullable=False),
    Column("verified_at", DateTime, nullable=True),
)

user_roles = Table(
    "user_roles", metadata,
    Column("account_id", String(36), ForeignKey("accounts.id"), primary_key=True),
    Column("role", String(20), nullable=False),
)

token_counter = Table(
    "token_counter", metadata,
    Column("id", Integer, primary_key=True),
    Column("value", Integer, nullable=False),
)

patients = Table(
    "patients", metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("token", String(16), nullable=False, unique=True, index=True),
    Column("name", String(200), nullable=False),
    Column("age", Integer, nullable=False),
    Column("gender", String(16), nullable=False, default=""),
    Column("contact", String(60), nullable=False),
    Column("symptoms", Text, nullable=False),
    Column("charges", Integer, nullable=False, default=0),
    Column("status", String(20), nullable=False),
    Column("created_at", DateTime, nullable=False, index=True),
)

prescriptions = Table(
    "prescriptions", metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("patient_id", Integer, ForeignKey("patients.id"), nullable=False, index=True),
    Column("author_id", String(36), nullable=False),
    Column("body", Text, nullable=False),
    Column("created_at", DateTime, nullable=False),
)

patient_history = Table(
    "patient_history", metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("patient_id", Integer, ForeignKey("patients.id"), nullable=False, index=True),
    Column("visit_date", Date, nullable=False),
    Column("symptoms", Text, nullable=False),
    Column("prescription", Text, nullable=False),
    Column("charges", Integer, nullable=False),
    Column("created_at", DateTime, nullable=False),
)

COUNTER_ROW_ID = 1


def _connect_args(db_uri: str) -> dict:
    """Driver-level timeouts so a stalled store surfaces as Unavailable."""
    if db_uri.startswith("sqlite"):
        return {"timeout": STORE_TIMEOUT_SECONDS, "check_same_thread": False}
    if db_uri.startswith("postgresql"):
        return {
            "connect_timeout": STORE_TIMEOUT_SECONDS,
            "options": f"-c statement_timeout={STORE_TIMEOUT_SECONDS * 1000}",
        }
    return {}


def make_engine(db_uri: str, **kwargs):
    """Create a SQLAlchemy engine without touching the network."""
    if not db_uri.startswith("sqlite"):
        kwargs.setdefault("pool_timeout", STORE_TIMEOUT_SECONDS)
        kwargs.setdefault("pool_pre_ping", True)
    return create_engine(
        db_uri, echo=False, future=True, connect_args=_connect_args(db_uri), **kwargs
    )


def init_engine():
    """Create a SQLAlchemy engine from DB_URI and verify the connection."""
    db_uri = get_env("DB_URI")
    engine = make_engine(db_uri)
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except Exception as e:
        print("ERROR: could not connect to DB:", e, file=sys.stderr)
        sys.exit(1)
    print("[init] Connected to DB.")
    return engine


def init_schema(engine) -> None:
    """Create missing tables and seed the token counter row."""
    metadata.create_all(engine)
    with engine.begin() as conn:
        row = conn.execute(
            select(token_counter.c.value).where(token_counter.c.id == COUNTER_ROW_ID)
        ).first()
        if row is None:
            conn.execute(insert(token_counter).values(id=COUNTER_ROW_ID, value=0))


@contextmanager
def store_call(what: str):
    """
    Translate driver connectivity failures into ``Unavailable``.

    Integrity errors are re-raised untouched; callers decide what a
    constraint violation means for them.
    """
    try:
        yield
    except sa_exc.IntegrityError:
        raise
    except (sa_exc.DBAPIError, sa_exc.TimeoutError) as e:
        print(f"[ERROR] Store call failed during {what}: {e}", file=sys.stderr)
        raise Unavailable(f"Storage unavailable during {what}.") from e

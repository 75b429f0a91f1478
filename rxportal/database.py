"""
Database engine initialisation and connectivity checks.
"""

import sys
from concurrent.futures import ThreadPoolExecutor

from sqlalchemy import create_engine, event, text
from sqlalchemy.pool import StaticPool

from rxportal.config import (
    DB_CONNECT_TIMEOUT_SECONDS,
    DB_POOL_SIZE,
    READY_TIMEOUT_SECONDS,
)


def _enable_sqlite_foreign_keys(dbapi_conn, _record):
    cur = dbapi_conn.cursor()
    cur.execute("PRAGMA foreign_keys=ON")
    cur.close()


def init_engine(db_uri: str):
    """Create a pooled SQLAlchemy engine and verify the connection."""
    if db_uri.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in db_uri or db_uri.rstrip("/") in ("sqlite:", "sqlite+pysqlite:"):
            kwargs["poolclass"] = StaticPool
        engine = create_engine(db_uri, echo=False, future=True, **kwargs)
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
    else:
        engine = create_engine(
            db_uri,
            echo=False,
            future=True,
            pool_size=DB_POOL_SIZE,
            pool_pre_ping=True,
            connect_args={"connect_timeout": DB_CONNECT_TIMEOUT_SECONDS},
        )
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except Exception as e:
        print("ERROR: could not connect to DB:", e, file=sys.stderr)
        sys.exit(1)
    print("[init] Connected to DB.")
    return engine


# One worker for every readiness check; a hung database holds at most one thread.
_PING_EXECUTOR = ThreadPoolExecutor(max_workers=1, thread_name_prefix="db-ping")


def ping(engine, timeout: float = READY_TIMEOUT_SECONDS) -> bool:
    """Run `SELECT 1`, giving up after *timeout* seconds."""
    def _select_one():
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))

    future = _PING_EXECUTOR.submit(_select_one)
    try:
        future.result(timeout=timeout)
        return True
    except Exception as e:
        # Drop the check if it is still queued behind a hung one.
        future.cancel()
        print(f"[WARN] Database ping failed: {e!r}", file=sys.stderr)
        return False

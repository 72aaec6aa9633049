# =============================================================================================
# MASTERYMAP/CORE/DB.PY - SQLALCHEMY ENGINE AND SESSION MANAGEMENT
# =============================================================================================
# - Engine: one per application, built from Settings.DATABASE_URL
# - Session factory: stored on app.state, one session per request
# - Base: parent class for User and AuthToken
# - get_db(): FastAPI dependency yielding the request's session
#
# FLOW:
# 1. create_app() calls create_db_engine() + make_session_factory()
# 2. Each request calls get_db() → fresh session from app.state.session_factory
# 3. Session closes after the response (even on error)
# 4. On startup, init_db() creates missing tables
# =============================================================================================

from collections.abc import Iterator

from fastapi import Request
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

Base = declarative_base()


def _is_sqlite(url: str) -> bool:
    return url.startswith("sqlite")


def _is_memory_sqlite(url: str) -> bool:
    return _is_sqlite(url) and (":memory:" in url or url.rstrip("/") in ("sqlite:", "sqlite+pysqlite:"))


def create_db_engine(url: str) -> Engine:
    """
    Build the SQLAlchemy engine for the given URL.

    SQLITE SPECIFICS:
    - check_same_thread=False: FastAPI serves sync routes from a thread pool
    - in-memory databases use StaticPool so every session sees the same tables
    - foreign_keys=ON so deleting a user cascades to its ledger rows
    """
    kwargs: dict = {"pool_pre_ping": True}
    if _is_sqlite(url):
        kwargs["connect_args"] = {"check_same_thread": False}
        if _is_memory_sqlite(url):
            kwargs["poolclass"] = StaticPool

    engine = create_engine(url, **kwargs)

    if _is_sqlite(url):

        @event.listens_for(engine, "connect")
        def set_sqlite_pragma(dbapi_conn, connection_record):
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA foreign_keys=ON;")
            cursor.execute("PRAGMA journal_mode=WAL;")
            cursor.execute("PRAGMA synchronous=NORMAL;")
            cursor.close()

    return engine


def make_session_factory(engine: Engine) -> sessionmaker:
    # Explicit commits: each ledger/user write commits on its own
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db(request: Request) -> Iterator[Session]:
    """
    FastAPI dependency that provides a database session for each request.

    The factory comes from request.app.state, so an app built with test
    settings never touches the production database.
    """
    db = request.app.state.session_factory()
    try:
        yield db
    finally:
        db.close()


def init_db(engine: Engine) -> None:
    """
    Create all tables (users, auth_tokens) that don't exist yet.

    Fine for development and tests; deployments should run migrations instead.
    """
    # Register models with Base.metadata before create_all()
    from masterymap.models import token, user  # noqa: F401

    Base.metadata.create_all(bind=engine)

"""
Module: billing_kernel.db.engine
Responsibility: Process-wide engine and session factory for the recurring
    billing engine, plus the transactional ``session_scope`` helper and
    table creation.
Architecture position: Kernel > DB.  May import from db/base.py only
    (create_tables imports the ORM models so their tables are registered).

Invariants enforced:
    - PostgreSQL is the production backend: READ COMMITTED with explicit
      row locks where a recurrence cursor is advanced.  SQLite URLs are
      accepted for local runs; server pool options are not applied to them.
    - Sessions do not expire attributes on commit, so DTOs read after a
      commit stay usable.

Failure modes:
    - RuntimeError from every accessor before init_engine_from_url().
"""

from contextlib import contextmanager
from typing import Any, Generator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from billing_kernel.logging_config import configure_logging, get_logger

logger = get_logger("db.engine")

_engine: Engine | None = None
_SessionFactory: sessionmaker[Session] | None = None

_NOT_INITIALISED = "Engine not initialized. Call init_engine_from_url() first."


def _engine_options(
    database_url: str,
    pool_size: int,
    max_overflow: int,
    pool_pre_ping: bool,
    pool_recycle: int,
) -> dict[str, Any]:
    if database_url.startswith("sqlite"):
        return {}
    return {
        "pool_size": pool_size,
        "max_overflow": max_overflow,
        "pool_pre_ping": pool_pre_ping,
        "pool_recycle": pool_recycle,
        "isolation_level": "READ COMMITTED",
    }


def init_engine_from_url(
    database_url: str,
    echo: bool = False,
    pool_size: int = 10,
    max_overflow: int = 5,
    pool_pre_ping: bool = True,
    pool_recycle: int = 1800,
) -> Engine:
    """
    Create the module-level engine and session factory.

    A second call replaces the first.  Pool arguments only apply to
    server databases.
    """
    global _engine, _SessionFactory

    _engine = create_engine(
        database_url,
        echo=echo,
        **_engine_options(database_url, pool_size, max_overflow, pool_pre_ping, pool_recycle),
    )
    _SessionFactory = sessionmaker(bind=_engine, expire_on_commit=False)

    configure_logging()
    logger.info(
        "engine_initialized",
        extra={"dialect": _engine.dialect.name, "echo": echo},
    )
    return _engine


def get_engine() -> Engine:
    if _engine is None:
        raise RuntimeError(_NOT_INITIALISED)
    return _engine


def get_session_factory() -> sessionmaker[Session]:
    """The factory the scheduled job opens one session per run from."""
    if _SessionFactory is None:
        raise RuntimeError(_NOT_INITIALISED)
    return _SessionFactory


def get_session() -> Session:
    return get_session_factory()()


@contextmanager
def session_scope() -> Generator[Session, None, None]:
    """
    Commit on success, roll back on error, always close.

    Usage:
        with session_scope() as session:
            orchestrator = RecurringBillingOrchestrator.from_session(session, ...)
            orchestrator.create_lifecycle().pause(record_id, owner_id, scope)
    """
    session = get_session()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        logger.warning("transaction_rolled_back", exc_info=True)
        raise
    finally:
        session.close()


def create_tables() -> None:
    """Create every recurring billing table that does not exist yet."""
    from billing_kernel.db.base import Base

    # Registers the model tables on Base.metadata.
    import recurring_billing.models  # noqa: F401

    Base.metadata.create_all(get_engine())


def reset_engine() -> None:
    """Dispose the engine and forget the session factory (test cleanup)."""
    global _engine, _SessionFactory

    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionFactory = None

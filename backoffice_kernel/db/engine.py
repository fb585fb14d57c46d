"""
Process-wide engine and session factory.

``init_engine_from_url`` is called once at startup (``backoffice_config
.bridges.init_runtime`` does it from the loaded config).  Everything else
asks for sessions through ``session_scope``, which owns commit and rollback;
services underneath only ever flush.

Backends:
    PostgreSQL  READ COMMITTED, pooled.  Stock check-then-write paths take
                row locks with SELECT ... FOR UPDATE.
    SQLite      tests and local runs.  ``sqlite://`` and ``:memory:`` use a
                single shared connection so every session sees the same data.
"""

from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from backoffice_kernel.logging_config import get_logger

logger = get_logger("db.engine")

_NOT_READY = "Database engine not initialized; call init_engine_from_url() first"

_engine: Engine | None = None
_factory: sessionmaker[Session] | None = None


def _sqlite_options(url) -> dict:
    options: dict = {"connect_args": {"check_same_thread": False}}
    if url.database in (None, "", ":memory:"):
        options["poolclass"] = StaticPool
    return options


def _server_options(pool_size: int, max_overflow: int) -> dict:
    return {
        "pool_size": pool_size,
        "max_overflow": max_overflow,
        "pool_pre_ping": True,
        "pool_recycle": 1800,
        "isolation_level": "READ COMMITTED",
    }


def init_engine_from_url(
    database_url: str,
    *,
    echo: bool = False,
    pool_size: int = 20,
    max_overflow: int = 10,
) -> Engine:
    """Create the engine and session factory, replacing any previous pair.

    Pool settings only apply to server databases.
    """
    global _engine, _factory

    url = make_url(database_url)
    backend = url.get_backend_name()
    if backend == "sqlite":
        options = _sqlite_options(url)
    else:
        options = _server_options(pool_size, max_overflow)

    if _engine is not None:
        _engine.dispose()
    _engine = create_engine(url, echo=echo, **options)
    _factory = sessionmaker(bind=_engine, expire_on_commit=False)

    logger.info("engine_initialized", extra={"backend": backend, "echo": echo})
    return _engine


def get_engine() -> Engine:
    if _engine is None:
        raise RuntimeError(_NOT_READY)
    return _engine


def get_session_factory() -> sessionmaker[Session]:
    if _factory is None:
        raise RuntimeError(_NOT_READY)
    return _factory


@contextmanager
def session_scope(factory: sessionmaker[Session] | None = None) -> Iterator[Session]:
    """One transaction: commit when the block exits cleanly, else roll back.

    ``factory`` defaults to the process-wide one.  The exception that caused
    a rollback is re-raised unchanged.

        with session_scope() as session:
            ledger = InventoryLedgerService(session, clock)
            ledger.adjust(ctx, item_id, Decimal("-2"), "Breakage")
    """
    session = (factory or get_session_factory())()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        logger.debug("transaction_rolled_back", exc_info=True)
        raise
    finally:
        session.close()


def create_tables() -> None:
    """Create every kernel and module table on the initialized engine."""
    from backoffice_kernel.db.base import Base
    from backoffice_modules._orm_registry import import_all_orm_models

    import_all_orm_models()
    Base.metadata.create_all(get_engine())
    logger.info("tables_created", extra={"table_count": len(Base.metadata.tables)})


def reset_engine() -> None:
    """Dispose of the engine and forget the factory."""
    global _engine, _factory
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _factory = None

"""
Module: approval_kernel.db.engine
Responsibility: SQLAlchemy engine construction, session factories and
    transactional scope.
Architecture position: Kernel > DB.  May import from db/base.py;
    create_tables/drop_tables import models to register their tables.

Invariants enforced:
    - No module-level engine.  Callers construct an engine, hand a session
      factory to the store, and dispose of the engine themselves.  Two
      stores in the same process never share hidden state.
    - session_scope() commits on success and rolls back on any exception.
    - SQLite connections enforce foreign keys.

Failure modes:
    - sqlalchemy.exc.ArgumentError for a malformed URL.
    - OperationalError when the database is unreachable (surfaced by the
      store as PersistenceFailureError).
"""

from collections.abc import Generator
from contextlib import contextmanager

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.engine.url import make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from approval_kernel.logging_config import get_logger

logger = get_logger("db.engine")


def init_engine_from_url(
    database_url: str,
    echo: bool = False,
    pool_pre_ping: bool = True,
) -> Engine:
    """
    Create an engine for ``database_url``.

    In-memory SQLite URLs get a single shared connection (StaticPool) so
    every session sees the same database; file-backed SQLite allows use
    from worker threads.
    """
    url = make_url(database_url)
    kwargs: dict = {"echo": echo, "pool_pre_ping": pool_pre_ping}

    if url.get_backend_name() == "sqlite":
        kwargs["connect_args"] = {"check_same_thread": False}
        if url.database in (None, "", ":memory:"):
            kwargs["poolclass"] = StaticPool

    engine = create_engine(url, **kwargs)

    if url.get_backend_name() == "sqlite":
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)

    logger.info(
        "engine_initialized",
        extra={"dialect": url.get_backend_name(), "echo": echo},
    )
    return engine


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def make_session_factory(engine: Engine) -> sessionmaker[Session]:
    """Session factory bound to ``engine``; one session per unit of work."""
    return sessionmaker(bind=engine, expire_on_commit=False)


@contextmanager
def session_scope(factory: sessionmaker[Session]) -> Generator[Session, None, None]:
    """
    Transactional scope around a series of operations.

    Usage:
        with session_scope(factory) as session:
            session.add(model)
            # Commits on success, rolls back on exception
    """
    session = factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def create_tables(engine: Engine) -> None:
    """Create all approval tables on ``engine``."""
    import approval_kernel.models  # noqa: F401  (registers tables)
    from approval_kernel.db.base import Base

    Base.metadata.create_all(engine)
    logger.info("tables_created", extra={"tables": sorted(Base.metadata.tables)})


def drop_tables(engine: Engine) -> None:
    """Drop all approval tables on ``engine``. FOR TESTING ONLY."""
    import approval_kernel.models  # noqa: F401
    from approval_kernel.db.base import Base

    Base.metadata.drop_all(engine)
    logger.info("tables_dropped")

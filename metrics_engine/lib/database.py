"""Database Connection Module

Provides the declarative Base shared by every ORM model, SQLAlchemy engine
creation with connection pooling, and transactional session helpers.
"""

from contextlib import contextmanager
from typing import Generator

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.orm import Session, declarative_base, sessionmaker

Base = declarative_base()


def create_metrics_engine(
    database_url: str,
    pool_size: int = 10,
    max_overflow: int = 10,
    pool_pre_ping: bool = True,
    echo: bool = False,
) -> Engine:
    """Create SQLAlchemy engine for the metrics store.

    SQLite URLs are configured for use from the background worker threads
    (no same-thread check, generous busy timeout, foreign keys enforced).
    Every other backend gets a QueuePool sized by pool_size/max_overflow.

    Args:
        database_url: SQLAlchemy database URL
        pool_size: Number of connections to maintain in pool
        max_overflow: Maximum overflow connections beyond pool_size
        pool_pre_ping: Test connections before use to detect stale connections
        echo: Log emitted SQL (debugging)

    Returns:
        Configured SQLAlchemy engine

    Example:
        engine = create_metrics_engine('postgresql+psycopg://user:pw@host/metrics')
    """
    if database_url.startswith('sqlite'):
        engine = create_engine(
            database_url,
            connect_args={'check_same_thread': False, 'timeout': 30},
            echo=echo,
        )

        @event.listens_for(engine, 'connect')
        def enable_sqlite_foreign_keys(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute('PRAGMA foreign_keys=ON')
            cursor.close()

        return engine

    return create_engine(
        database_url,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_pre_ping=pool_pre_ping,  # Verify connections before use
        pool_recycle=3600,  # Recycle connections after 1 hour
        echo=echo,
    )


def create_session_factory(engine: Engine) -> sessionmaker:
    """Get session factory for ORM operations.

    Objects stay usable after commit (expire_on_commit=False) because stored
    records are handed to background workers once their session is closed.

    Args:
        engine: Engine to bind sessions to

    Returns:
        Session factory bound to the engine
    """
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


def create_schema(engine: Engine) -> None:
    """Create every table registered on Base (tests and local development).

    Production schemas are managed by Alembic migrations.
    """
    # Model modules register themselves on Base when imported
    import metrics_engine.models  # noqa: F401

    Base.metadata.create_all(engine)


@contextmanager
def session_scope(session_factory: sessionmaker) -> Generator[Session, None, None]:
    """Provide a transactional scope around a series of operations.

    Commits on success, rolls back on any exception (re-raised), always closes.

    Usage:
        with session_scope(SessionFactory) as session:
            session.add(metric)
    """
    session = session_factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()

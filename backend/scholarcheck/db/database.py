"""
Database engine lifecycle and session management.

The engine (and its connection pool) is created once at process start with
``init_engine`` and disposed at shutdown with ``dispose_engine``. Request
handlers receive sessions through the ``get_db`` dependency.
"""

from typing import Generator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker, Session
from sqlalchemy.pool import StaticPool

from scholarcheck.utils.logger import get_logger

logger = get_logger(__name__)

# Base class for ORM models
Base = declarative_base()

_engine: Optional[Engine] = None
SessionLocal = sessionmaker(autocommit=False, autoflush=False)


class DatabaseNotInitializedError(RuntimeError):
    """Raised when a session is requested before the engine exists."""
    pass


def build_engine(database_url: str) -> Engine:
    """Create an engine suited to the given database URL."""
    if database_url.startswith("sqlite"):
        return create_engine(
            database_url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_engine(
        database_url,
        echo=False,
        pool_pre_ping=True,  # Verify connections before use
        pool_recycle=300,  # Recycle connections every 5 minutes
    )


def init_engine(database_url: str) -> Engine:
    """
    Create the process-wide engine and bind the session factory to it.

    Args:
        database_url: SQLAlchemy database URL

    Returns:
        The initialized engine
    """
    global _engine
    if _engine is not None:
        return _engine

    _engine = build_engine(database_url)
    SessionLocal.configure(bind=_engine)
    logger.info("Database engine initialized", dialect=_engine.dialect.name)
    return _engine


def get_engine() -> Engine:
    if _engine is None:
        raise DatabaseNotInitializedError("Database engine has not been initialized")
    return _engine


def dispose_engine() -> None:
    """Close all pooled connections. Called at shutdown."""
    global _engine
    if _engine is not None:
        _engine.dispose()
        logger.info("Database engine disposed")
        _engine = None


def get_db() -> Generator[Session, None, None]:
    """
    Dependency to get database session.

    Yields:
        Database session that is automatically closed after use
    """
    get_engine()
    db = SessionLocal()
    try:
        yield db
    except Exception as e:
        logger.error("Database session error", error=str(e))
        db.rollback()
        raise
    finally:
        db.close()


def init_db() -> None:
    """
    Initialize the database by creating all tables.
    This should be called during application startup, after ``init_engine``.
    """
    # Models must be imported so their tables are registered on Base.metadata
    import scholarcheck.models.fact_check  # noqa: F401
    import scholarcheck.models.paper  # noqa: F401

    try:
        logger.info("Initializing database tables")
        Base.metadata.create_all(bind=get_engine())
        logger.info("Database tables initialized successfully")
    except Exception as e:
        logger.error("Failed to initialize database", error=str(e))
        raise

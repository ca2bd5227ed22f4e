# backend/portfolio_analytics/database.py
"""
Database connection and session management.

The engine backs two read paths of the performance API: the ledger store
(transactions, lots, assets, accounts) and the price cache. Writes happen
only when the price store caches freshly fetched closes.

Pool Configuration (configurable via environment variables):
- DB_POOL_SIZE: Persistent connections (default: 5)
- DB_POOL_MAX_OVERFLOW: Burst capacity (default: 10)
- DB_POOL_RECYCLE: Connection lifetime (default: 3600s)
- DB_POOL_PRE_PING: Health checks (default: True)
"""

import logging
from collections.abc import Generator

from sqlalchemy import Engine, create_engine, text
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool, QueuePool

from .config import settings

logger = logging.getLogger(__name__)


def _create_engine() -> Engine:
    """
    Create the SQLAlchemy engine for the configured database.

    - SQLite (tests): StaticPool so an in-memory database is shared by
      every session, check_same_thread disabled for FastAPI's threadpool
    - PostgreSQL: QueuePool sized from settings
    """
    if settings.is_sqlite:
        logger.info("Configuring SQLite database (test mode)")
        return create_engine(
            settings.database_url,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
            echo=settings.debug,
        )

    logger.info(
        f"Configuring PostgreSQL database pool: "
        f"size={settings.db_pool_size}, "
        f"max_overflow={settings.db_pool_max_overflow}, "
        f"recycle={settings.db_pool_recycle}s, "
        f"pre_ping={settings.db_pool_pre_ping}"
    )

    return create_engine(
        settings.database_url,
        poolclass=QueuePool,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_pool_max_overflow,
        pool_recycle=settings.db_pool_recycle,
        pool_pre_ping=settings.db_pool_pre_ping,
        pool_timeout=30,
        echo=settings.debug,
    )


engine = _create_engine()
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Generator[Session, None, None]:
    """
    FastAPI dependency that yields a session and closes it afterwards.

    Usage:
        @router.get("/performance/reports")
        def get_report(db: Session = Depends(get_db)):
            ...
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def check_database_health(db: Session) -> dict:
    """
    Run a trivial query on the given session.

    Returns:
        {"status": "healthy", "database": ...} or {"status": "unhealthy", "error": ...}
    """
    try:
        db.execute(text("SELECT 1"))
        return {
            "status": "healthy",
            "database": "sqlite" if settings.is_sqlite else "postgresql",
        }
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        return {
            "status": "unhealthy",
            "error": str(e),
        }

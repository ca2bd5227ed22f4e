#!/usr/bin/env python3
# backend/init_db.py
"""
Create the performance engine's tables directly from the models.

For a fresh development database; managed databases use the Alembic
revisions in alembic/versions/.

This script can be run from any directory:
    python backend/init_db.py
    cd backend && python init_db.py
"""
import logging
import sys
from pathlib import Path

# Make the portfolio_analytics package importable without installing it
backend_dir = Path(__file__).parent
sys.path.insert(0, str(backend_dir))

from portfolio_analytics.database import engine
from portfolio_analytics.models import Base

logger = logging.getLogger(__name__)


def init_db() -> None:
    """Create every table defined on Base (existing tables are left alone)."""
    logger.info(f"Creating database tables on {engine.url.render_as_string(hide_password=True)}")
    Base.metadata.create_all(bind=engine)
    logger.info(f"Tables ready: {', '.join(sorted(Base.metadata.tables))}")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    init_db()

"""
Database Initialization Script

Creates the fixed part of The Reader's schema (dataset registry, API and
agent configuration singletons, scoring and processed results) without going
through alembic. Useful for local runs and throwaway databases; dynamic
dataset tables are left to the upload, snapshot and sampling services.

Usage:
    python -m qa_reader.common.init_db

Author: The Reader Team
Date: 2026-10-19
"""

import logging
from typing import List, Optional

from sqlalchemy import Engine

from qa_reader.common.db import Base, init_engine
from qa_reader.common import models  # noqa: F401 - Import needed to register models

logger = logging.getLogger("init_db")


def create_tables(engine: Optional[Engine] = None) -> List[str]:
    """
    Create the fixed tables that do not exist yet.

    Args:
        engine: Target engine, defaults to the configured one

    Returns:
        List[str]: names of the fixed tables
    """
    engine = engine or init_engine()
    Base.metadata.create_all(bind=engine, checkfirst=True)
    names = sorted(Base.metadata.tables)
    logger.info(f"Fixed tables ready: {', '.join(names)}")
    return names


if __name__ == '__main__':
    logging.basicConfig(level=logging.INFO)
    create_tables()

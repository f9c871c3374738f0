"""
Database Connection Management

This module provides database engine setup and table helpers for The
Reader using SQLAlchemy.

The engine is created once per process and handed to components
explicitly; request handlers receive it through FastAPI dependencies.
Sessions are opened per operation with ``Session(engine)``.

Author: The Reader Team
Date: 2026-10-19
"""

from sqlalchemy import Connection, Engine, create_engine, inspect, text
from sqlalchemy.orm import DeclarativeBase

from qa_reader.common.config import settings


class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy models.

    All model classes inherit from this base to provide
    consistent metadata and configuration.
    """
    pass


# Global database engine
_engine = None


def init_engine() -> Engine:
    """
    Initialize the database engine.

    Creates a singleton database engine with connection pooling
    configured for the application.

    Returns:
        sqlalchemy.Engine: The database engine instance

    Raises:
        RuntimeError: If DATABASE_URL is not configured
    """
    global _engine

    if _engine is None:
        if not settings.database_url:
            raise RuntimeError(
                "DATABASE_URL not configured. Please set the database_url "
                "in your .env file or environment variables."
            )

        # Create engine with connection health checks
        _engine = create_engine(
            settings.database_url,
            pool_pre_ping=True,
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            echo=False  # Set to True for SQL logging in development
        )

    return _engine


def table_exists(conn: Connection, name: str) -> bool:
    """Check the live catalog for a table in the default schema."""
    return inspect(conn).has_table(name)


def lock_table(conn: Connection, name: str) -> None:
    """
    Serialize destructive rebuilds of one table.

    Takes a transaction-scoped advisory lock keyed by the table name on
    Postgres. The lock is released when the surrounding transaction
    commits or rolls back. Other dialects rely on their own locking.
    """
    if conn.dialect.name != "postgresql":
        return
    conn.execute(text("select pg_advisory_xact_lock(hashtext(:name))"), {"name": name})

"""
Database configuration and connection management.

This module provides:
- SQLAlchemy engine and session management
- Connection pooling with sane defaults
- Test database support (SQLite in-memory)
- Table definitions for accounts, usage and billing
"""
from typing import Optional
from contextlib import contextmanager
import logging
import os

from sqlalchemy import create_engine, MetaData, Table, Column, Integer, String, DateTime, Boolean, Text, Index, ForeignKey, UniqueConstraint, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import QueuePool, StaticPool
from sqlalchemy.orm import sessionmaker
from sqlalchemy.sql import func

from archilex.core.config import settings

logger = logging.getLogger("archilex.database")

# SQLAlchemy metadata for table definitions
metadata = MetaData()

# Connection pooling configuration
POOL_SIZE = 10
MAX_OVERFLOW = 20
POOL_TIMEOUT = 30
POOL_RECYCLE = 3600  # Recycle connections after 1 hour
SQLITE_BUSY_TIMEOUT = 30  # seconds

# Global engine and session factory
_engine: Optional[Engine] = None
_SessionLocal = None


def get_database_url() -> Optional[str]:
    """
    Get the database URL from settings or environment.

    For testing, use TEST_DATABASE_URL if available.
    """
    test_url = os.getenv("TEST_DATABASE_URL")
    if test_url:
        return test_url

    return settings.DATABASE_URL


def init_engine(database_url: Optional[str] = None) -> Engine:
    """
    Initialize the SQLAlchemy engine.

    Args:
        database_url: Optional override for DATABASE_URL
    """
    global _engine, _SessionLocal

    url = database_url or get_database_url()

    if not url:
        raise ValueError(
            "DATABASE_URL is not configured. "
            "Set DATABASE_URL in environment or .env file."
        )

    if url in ("sqlite://", "sqlite:///:memory:"):
        # Single shared connection so in-memory databases survive across sessions
        _engine = create_engine(
            url,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
            echo=False,
        )
    elif url.startswith("sqlite"):
        # File database: one connection per thread, writers wait on the lock
        _engine = create_engine(
            url,
            connect_args={"check_same_thread": False, "timeout": SQLITE_BUSY_TIMEOUT},
            echo=False,
        )
    else:
        _engine = create_engine(
            url,
            poolclass=QueuePool,
            pool_size=POOL_SIZE,
            max_overflow=MAX_OVERFLOW,
            pool_timeout=POOL_TIMEOUT,
            pool_recycle=POOL_RECYCLE,
            echo=False,  # Set to True for SQL query logging
        )

    # Create session factory
    _SessionLocal = sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=_engine
    )

    return _engine


def dispose_engine() -> None:
    """Dispose the current engine (tests, shutdown)."""
    global _engine, _SessionLocal
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionLocal = None


def get_engine() -> Engine:
    """Get the current SQLAlchemy engine."""
    if _engine is None:
        init_engine()
    return _engine


def get_session_factory():
    """Get the session factory."""
    if _SessionLocal is None:
        init_engine()
    return _SessionLocal


@contextmanager
def get_db_session():
    """
    Context manager for database sessions.

    Usage:
        with get_db_session() as session:
            session.execute(...)

    Commits on success, rolls back on any exception.
    """
    SessionLocal = get_session_factory()
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def create_all_tables():
    """
    Create all tables defined in metadata.

    This is idempotent - tables that already exist will not be recreated.
    """
    metadata.create_all(bind=get_engine())


def drop_all_tables():
    """
    Drop all tables defined in metadata.

    WARNING: This is destructive! Only use in tests or development.
    """
    metadata.drop_all(bind=get_engine())


def check_connection() -> bool:
    """
    Check if database connection is available.

    Returns:
        True if connection successful, False otherwise
    """
    try:
        engine = get_engine()
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except (SQLAlchemyError, ValueError) as e:
        logger.warning("database.check_failed", extra={"error_type": type(e).__name__})
        return False


# Accounts: plan tier plus the monthly usage counter and its reset anchor
accounts = Table(
    'accounts',
    metadata,
    Column('account_id', String(64), primary_key=True),
    Column('email', String(320), nullable=False, unique=True),
    Column('full_name', Text, nullable=False),
    Column('profession', String(50), nullable=False, server_default='architect'),
    Column('role', String(20), nullable=False, server_default='user'),
    Column('plan', String(50), nullable=False, server_default='free'),
    Column('usage_count', Integer, nullable=False, server_default='0'),
    Column('period_anchor', DateTime(timezone=True), nullable=False),
    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    Index('idx_accounts_plan', 'plan'),
    Index('idx_accounts_created_at', 'created_at'),
)

# One row per allowed consumption (admin analytics only, not used for enforcement)
usage_events = Table(
    'usage_events',
    metadata,
    Column('id', Integer, primary_key=True, autoincrement=True),
    Column('account_id', String(64), ForeignKey('accounts.account_id', ondelete='CASCADE'), nullable=False),
    Column('tool', String(50), nullable=False),
    Column('amount', Integer, nullable=False, server_default='1'),
    Column('occurred_at', DateTime(timezone=True), nullable=False),
    # Composite index for usage queries: (account_id, occurred_at)
    Index('idx_usage_events_account_occurred', 'account_id', 'occurred_at'),
    # Index for per-tool period breakdowns
    Index('idx_usage_events_tool_occurred', 'tool', 'occurred_at'),
)

# Threshold notification ledger: at most one row per (account, threshold, period)
usage_notifications = Table(
    'usage_notifications',
    metadata,
    Column('id', Integer, primary_key=True, autoincrement=True),
    Column('account_id', String(64), ForeignKey('accounts.account_id', ondelete='CASCADE'), nullable=False),
    Column('threshold', String(20), nullable=False),  # usage_80 | usage_100
    Column('period', String(7), nullable=False),  # YYYY-MM
    Column('usage_count', Integer, nullable=False),
    Column('quota', Integer, nullable=False),
    Column('delivered', Boolean, nullable=False, server_default='false'),
    Column('error', Text, nullable=True),
    Column('sent_at', DateTime(timezone=True), nullable=False),
    UniqueConstraint('account_id', 'threshold', 'period', name='uq_usage_notifications_account_threshold_period'),
    Index('idx_usage_notifications_account', 'account_id'),
)

# Plan transitions (audit)
plan_changes = Table(
    'plan_changes',
    metadata,
    Column('id', Integer, primary_key=True, autoincrement=True),
    Column('account_id', String(64), ForeignKey('accounts.account_id', ondelete='CASCADE'), nullable=False),
    Column('from_plan', String(50), nullable=False),
    Column('to_plan', String(50), nullable=False),
    Column('source', String(20), nullable=False),  # admin | payment | cancellation
    Column('actor', String(100), nullable=True),
    Column('changed_at', DateTime(timezone=True), nullable=False),
    Index('idx_plan_changes_account_changed', 'account_id', 'changed_at'),
)

# Billing events (Stripe webhook idempotency)
billing_events = Table(
    'billing_events',
    metadata,
    Column('id', Integer, primary_key=True, autoincrement=True),
    Column('stripe_event_id', String(100), nullable=False, unique=True),
    Column('event_type', String(100), nullable=False, index=True),
    Column('received_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    Column('payload_hash', String(64), nullable=False),  # SHA256 hash for deduplication
    Column('processed', Boolean, nullable=False, server_default='false', index=True),
    Column('processed_at', DateTime(timezone=True), nullable=True),
    Column('error', Text, nullable=True),
    Index('idx_billing_events_received_at', 'received_at'),
)

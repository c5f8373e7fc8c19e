"""Database-agnostic type definitions for SQLAlchemy models.

This module provides type definitions that work with both SQLite and PostgreSQL.
"""
from datetime import datetime, timezone

from sqlalchemy import JSON, DateTime, Uuid
from sqlalchemy.types import TypeDecorator

# Use JSON instead of JSONB for cross-database compatibility
# JSONB is PostgreSQL-specific, JSON works with both SQLite and PostgreSQL
JSONType = JSON

# UUID type that works with both databases (native on PostgreSQL, CHAR(32) on SQLite)
UUIDType = Uuid


class UTCDateTime(TypeDecorator):
    """
    Timezone-aware timestamp stored as UTC.

    SQLite has no timezone support and hands back naive values, so naive
    results are tagged as UTC on the way out and aware values are converted
    to UTC on the way in.
    """
    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


def utc_now() -> datetime:
    """Column default for created/updated timestamps."""
    return datetime.now(timezone.utc)

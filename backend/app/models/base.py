"""Base model, column types and mixins for SQLAlchemy models.

This module provides the declarative base plus reusable mixins for
integer keys, timestamps and soft deletion.
"""

from datetime import UTC, datetime

from sqlalchemy import DateTime, Dialect, Integer, func
from sqlalchemy.orm import DeclarativeBase, Mapped, declared_attr, mapped_column
from sqlalchemy.types import TypeDecorator


def utc_now() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(UTC)


class UTCDateTime(TypeDecorator[datetime]):
    """Timezone-aware timestamp that always round-trips as UTC.

    PostgreSQL stores ``timestamptz`` natively. SQLite drops the offset,
    so values are normalised to UTC on the way in and re-tagged with UTC
    on the way out; comparisons in SQL stay consistent because every
    stored value is UTC.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(
        self,
        value: datetime | None,
        dialect: Dialect,  # noqa: ARG002 - Part of SQLAlchemy API
    ) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError(f"Naive datetime is not allowed: {value!r}")
        return value.astimezone(UTC)

    def process_result_value(
        self,
        value: datetime | None,
        dialect: Dialect,  # noqa: ARG002 - Part of SQLAlchemy API
    ) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""


class IntegerIDMixin:
    """Mixin that adds an autoincrementing integer primary key."""

    @declared_attr
    def id(cls) -> Mapped[int]:
        """Integer primary key assigned by the database."""
        return mapped_column(
            Integer,
            primary_key=True,
            autoincrement=True,
        )


class TimestampMixin:
    """Mixin that adds created_at and updated_at timestamp fields.

    Both fields are timezone-aware and automatically managed:
    - created_at: Set on record creation, never changes
    - updated_at: Updated on every modification
    """

    @declared_attr
    def created_at(cls) -> Mapped[datetime]:
        """Timestamp when record was created."""
        return mapped_column(
            UTCDateTime(),
            default=utc_now,
            server_default=func.now(),
            nullable=False,
        )

    @declared_attr
    def updated_at(cls) -> Mapped[datetime]:
        """Timestamp when record was last updated."""
        return mapped_column(
            UTCDateTime(),
            default=utc_now,
            server_default=func.now(),
            onupdate=utc_now,
            nullable=False,
        )


class SoftDeleteMixin:
    """Mixin that adds soft delete functionality to models.

    Deleted rows are kept so that records referencing them (execution
    history) stay intact; queries filter on ``deleted_at IS NULL``.
    """

    @declared_attr
    def deleted_at(cls) -> Mapped[datetime | None]:
        """Timestamp when record was soft-deleted, None if live."""
        return mapped_column(
            UTCDateTime(),
            default=None,
            nullable=True,
        )

    @property
    def is_deleted(self) -> bool:
        """Check if the record has been soft-deleted."""
        return self.deleted_at is not None

    def soft_delete(self, when: datetime | None = None) -> None:
        """Mark the record as soft-deleted.

        Also sets is_active to False if the field exists, so deleted
        schedules can never be picked up by a due scan.
        """
        self.deleted_at = when or utc_now()
        if hasattr(self, "is_active"):
            self.is_active = False


__all__ = [
    "Base",
    "SoftDeleteMixin",
    "TimestampMixin",
    "UTCDateTime",
    "IntegerIDMixin",
    "utc_now",
]

"""
Module: approval_kernel.db.base
Responsibility: Declarative base and portable column types for all
    SQLAlchemy ORM models.
Architecture position: Kernel > DB.  Lowest-level import target for the
    persistence layer.  MUST NOT import from models/, stores/ or outer
    packages.

Invariants enforced:
    - Surrogate primary keys: every model inherits a uuid4 ``id``.
    - Exact timestamps: ``AwareDateTime`` stores timezone-aware datetimes as
      fixed-width UTC ISO-8601 strings.  Microseconds survive on every
      backend (SQLite included) and lexical order equals time order, so
      ``ORDER BY`` and range filters work on the raw column.
    - Naive datetimes are refused at bind time.

Failure modes:
    - ValueError (wrapped by SQLAlchemy in StatementError) when a naive
      datetime is bound to an ``AwareDateTime`` column.
"""

from datetime import UTC, datetime
from typing import ClassVar
from uuid import UUID as PyUUID, uuid4

from sqlalchemy import BigInteger, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

_TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%f+00:00"


class UUIDString(TypeDecorator):
    """
    UUID type stored as String(36) for cross-database portability.

    Guarantees:
        - process_bind_param: UUID -> str on INSERT/UPDATE.
        - process_result_value: str -> UUID on SELECT.
    """

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None:
            return str(value)
        return None

    def process_result_value(self, value, dialect):
        if value is not None:
            return PyUUID(value)
        return None


class AwareDateTime(TypeDecorator):
    """
    Timezone-aware datetime stored as a UTC ISO-8601 string.

    Contract:
        Values are normalized to UTC on the way in and come back as UTC
        datetimes; the instant (and therefore equality) is preserved.
    """

    impl = String(32)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError(f"Naive datetime cannot be stored: {value!r}")
        return value.astimezone(UTC).strftime(_TIMESTAMP_FORMAT)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return datetime.fromisoformat(value)


class Base(DeclarativeBase):
    """
    Declarative base for all SQLAlchemy models.

    Guarantees:
        - id is always a uuid4-generated UUID stored as String(36).
        - datetime maps to AwareDateTime.
        - int maps to BigInteger.
    """

    type_annotation_map: ClassVar[dict] = {
        datetime: AwareDateTime(),
        PyUUID: UUIDString(),
        int: BigInteger,
    }

    id: Mapped[PyUUID] = mapped_column(
        UUIDString(),
        primary_key=True,
        default=uuid4,
    )

"""
Declarative base for every docpost table.

All models inherit from ``Base`` (or ``TrackedBase`` when they carry audit
columns).  Nothing here imports from models/, services/ or domain/.

Column conventions:
    - Primary keys are uuid4 values stored as 36-character strings so the
      same schema runs on PostgreSQL and SQLite.
    - ``Decimal`` annotations become ``Numeric(38, 9)``; money and quantities
      are never floats.
    - ``datetime`` annotations are timezone-aware.
    - Constraint and index names follow ``NAMING_CONVENTION`` so migrations
      can address them by name.
"""

from datetime import datetime
from decimal import Decimal
from typing import ClassVar
from uuid import UUID as PyUUID, uuid4

from sqlalchemy import BigInteger, DateTime, MetaData, Numeric, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


class UUIDString(TypeDecorator):
    """UUID stored as String(36); loaded back as ``uuid.UUID``."""

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return None if value is None else str(value)

    def process_result_value(self, value, dialect):
        if value is None or isinstance(value, PyUUID):
            return value
        return PyUUID(value)


class Base(DeclarativeBase):
    metadata = MetaData(naming_convention=NAMING_CONVENTION)

    type_annotation_map: ClassVar[dict] = {
        Decimal: Numeric(38, 9),
        datetime: DateTime(timezone=True),
        PyUUID: UUIDString(),
        int: BigInteger,
    }

    id: Mapped[PyUUID] = mapped_column(UUIDString(), primary_key=True, default=uuid4)


class TrackedBase(Base):
    """
    Adds who/when audit columns.

    ``created_*`` are written once on INSERT.  ``updated_*`` are audit
    metadata and may change even on rows that are otherwise immutable
    (db/immutability.py skips them).
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(server_default=func.now(), onupdate=func.now())
    created_by_id: Mapped[PyUUID] = mapped_column()
    updated_by_id: Mapped[PyUUID | None] = mapped_column()


# Actor recorded when a caller does not identify itself.
SYSTEM_ACTOR_ID = PyUUID(int=0)

UUID = PyUUID

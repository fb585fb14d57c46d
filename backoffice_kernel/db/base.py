"""
ORM base classes shared by every backoffice table.

All mapped classes import ``Base`` or ``TrackedBase`` from here and nothing
in this module imports back into models, services or selectors.

Column conventions fixed here, so model files never spell them out:

    - ids are uuid4 values kept as 36-character strings;
    - stock quantities, costs and prices are ``Numeric(38, 9)``, never float;
    - timestamps come back timezone-aware in UTC on every backend, SQLite
      included, because SQLite forgets tzinfo on write.

``TrackedBase`` adds who/when columns.  They are bookkeeping and may change
on rows that are otherwise frozen (see ``db/immutability.py``).
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import ClassVar
from uuid import UUID as PyUUID, uuid4

from sqlalchemy import DateTime, Numeric, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

QUANTITY = Numeric(38, 9)


class UUIDString(TypeDecorator):
    """A ``uuid.UUID`` column backed by ``String(36)``."""

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return None if value is None else str(value)

    def process_result_value(self, value, dialect):
        return None if value is None else PyUUID(value)


class UTCDateTime(TypeDecorator):
    """Aware datetimes in, aware UTC datetimes out."""

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None or value.tzinfo is None:
            return value
        return value.astimezone(timezone.utc)

    def process_result_value(self, value, dialect):
        if value is None or value.tzinfo is not None:
            return value
        return value.replace(tzinfo=timezone.utc)


def _actor_column(*, required: bool):
    return mapped_column(UUIDString(), nullable=not required)


def _stamp_column(*, on_update: bool):
    if on_update:
        return mapped_column(UTCDateTime(), server_default=func.now(), onupdate=func.now(), nullable=False)
    return mapped_column(UTCDateTime(), server_default=func.now(), nullable=False)


class Base(DeclarativeBase):
    """Root of the mapping.  Supplies the ``id`` primary key."""

    type_annotation_map: ClassVar[dict] = {
        PyUUID: UUIDString(),
        Decimal: QUANTITY,
        datetime: UTCDateTime(),
    }

    id: Mapped[PyUUID] = mapped_column(UUIDString(), primary_key=True, default=uuid4)


class TrackedBase(Base):
    """Abstract base recording which user created or last touched a row.

    ``created_at`` is stamped by the database on insert and ``updated_at``
    on every update.  ``created_by_id`` is mandatory; ``updated_by_id`` stays
    NULL until the first edit.
    """

    __abstract__ = True

    created_at: Mapped[datetime] = _stamp_column(on_update=False)
    updated_at: Mapped[datetime] = _stamp_column(on_update=True)
    created_by_id: Mapped[PyUUID] = _actor_column(required=True)
    updated_by_id: Mapped[PyUUID | None] = _actor_column(required=False)


UUID = PyUUID

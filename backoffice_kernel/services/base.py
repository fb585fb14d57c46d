"""
Shared constructor and helpers for services that write.

A service works inside the caller's transaction.  It adds rows and calls
``session.flush()`` so ids and constraint errors surface early, but it never
commits or rolls back.  ``CommandExecutor`` (or ``session_scope``, or a
test) decides the outcome.  That is what keeps a transfer acceptance, which
touches two businesses' items and writes several movements, all-or-nothing.

Each public method starts by authorizing the caller's ``SessionContext``
against the permission it needs.
"""

from abc import ABC
from typing import Generic, TypeVar
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from backoffice_kernel.db.base import Base
from backoffice_kernel.domain.clock import Clock, SystemClock
from backoffice_kernel.domain.session import SessionContext
from backoffice_kernel.services.authority import PermissionAuthority

ModelType = TypeVar("ModelType", bound=Base)
RowType = TypeVar("RowType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """``ModelType`` is the table the service primarily owns."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        authority: PermissionAuthority | None = None,
    ):
        self.session = session
        self.clock = clock or SystemClock()
        self.authority = authority or PermissionAuthority()

    def _authorize(self, ctx: SessionContext, permission: str) -> SessionContext:
        return self.authority.require(ctx, permission, self.clock.now())

    def _lock(self, model: type[RowType], row_id: UUID) -> RowType | None:
        # SQLite ignores FOR UPDATE; its writer lock serializes instead.
        query = select(model).where(model.id == row_id).with_for_update()
        return self.session.execute(query).scalar_one_or_none()

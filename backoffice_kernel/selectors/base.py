"""
Read side.

Selectors answer list, detail and report queries.  They never add, flush or
commit, and they hand back frozen DTOs from ``domain/dtos.py`` rather than
ORM rows, so nothing a caller does with a result can reach the database.

Every query is filtered to the caller's business.  A row that belongs to
someone else is reported exactly like a row that does not exist.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from backoffice_kernel.db.base import Base
from backoffice_kernel.domain.clock import Clock, SystemClock
from backoffice_kernel.domain.policies import PaginationPolicy
from backoffice_kernel.domain.session import SessionContext
from backoffice_kernel.services.authority import PermissionAuthority

ModelType = TypeVar("ModelType", bound=Base)


class BaseSelector(ABC, Generic[ModelType]):
    """Holds the session plus the clock, page limits and authority to check against."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        pagination: PaginationPolicy | None = None,
        authority: PermissionAuthority | None = None,
    ):
        self.session = session
        self.clock = clock or SystemClock()
        self.pagination = pagination or PaginationPolicy()
        self.authority = authority or PermissionAuthority()

    def _authorize(self, ctx: SessionContext, permission: str) -> SessionContext:
        return self.authority.require(ctx, permission, self.clock.now())

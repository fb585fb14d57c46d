"""
SessionContext -- explicit, immutable caller identity.

Responsibility:
    Carries who is acting (user, business, role) and until when, into every
    service call.  Replaces any process-wide "current user" state: a service
    only knows the caller through the context it is handed.

Lifecycle:
    anonymous --authenticate--> authenticated --expire / time passes--> expired

Architecture position:
    Kernel > Domain -- pure value object, zero I/O.

Invariants enforced:
    - An anonymous context never carries a user, business or role.
    - ``require_active(now)`` is the single gate services call; it raises
      SessionNotAuthenticatedError or SessionExpiredError.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from uuid import UUID

from backoffice_kernel.domain.dtos import UserRole
from backoffice_kernel.exceptions import (
    SessionExpiredError,
    SessionNotAuthenticatedError,
)


class SessionState(str, Enum):
    ANONYMOUS = "anonymous"
    AUTHENTICATED = "authenticated"
    EXPIRED = "expired"


@dataclass(frozen=True)
class SessionContext:
    """
    Who is calling, on behalf of which business.

    Contract:
        Constructed via ``anonymous()`` and ``authenticate()``; every
        transition returns a new instance.
    """

    state: SessionState = SessionState.ANONYMOUS
    user_id: UUID | None = None
    business_id: UUID | None = None
    role: UserRole | None = None
    expires_at: datetime | None = None
    correlation_id: str | None = None

    @classmethod
    def anonymous(cls, correlation_id: str | None = None) -> SessionContext:
        return cls(correlation_id=correlation_id)

    def authenticate(
        self,
        *,
        user_id: UUID,
        business_id: UUID,
        role: UserRole | str,
        expires_at: datetime | None = None,
    ) -> SessionContext:
        return replace(
            self,
            state=SessionState.AUTHENTICATED,
            user_id=user_id,
            business_id=business_id,
            role=UserRole(role),
            expires_at=expires_at,
        )

    def expire(self) -> SessionContext:
        if self.state == SessionState.ANONYMOUS:
            return self
        return replace(self, state=SessionState.EXPIRED)

    def is_expired(self, now: datetime) -> bool:
        if self.state == SessionState.EXPIRED:
            return True
        return self.expires_at is not None and now >= self.expires_at

    def require_active(self, now: datetime) -> SessionContext:
        """Return self if authenticated and unexpired at ``now``."""
        if self.state == SessionState.ANONYMOUS:
            raise SessionNotAuthenticatedError()
        if self.is_expired(now):
            raise SessionExpiredError(
                user_id=str(self.user_id),
                expired_at=self.expires_at,
            )
        return self

    @property
    def is_authenticated(self) -> bool:
        return self.state == SessionState.AUTHENTICATED

    @property
    def is_manager(self) -> bool:
        return self.role is not None and self.role.is_manager

    @property
    def is_owner(self) -> bool:
        return self.role == UserRole.OWNER

    def log_fields(self) -> dict[str, str | None]:
        """Fields bound into LogContext for the duration of a command."""
        return {
            "correlation_id": self.correlation_id,
            "actor_id": str(self.user_id) if self.user_id else None,
            "business_id": str(self.business_id) if self.business_id else None,
        }

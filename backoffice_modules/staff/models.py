"""
Staff Domain Models (``backoffice_modules.staff.models``).

Frozen value objects returned by the staff services.  Zero I/O.
"""

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from backoffice_kernel.domain.dtos import UserInfo


@dataclass(frozen=True)
class EmployeeCreated:
    """A new employee, plus the generated password when one was generated.

    ``temporary_password`` is only ever available here; it is not stored
    in clear anywhere.
    """

    employee: UserInfo
    temporary_password: str | None = None


@dataclass(frozen=True)
class AttendanceInfo:
    id: UUID
    user_id: UUID
    business_id: UUID
    check_in: datetime
    check_out: datetime | None = None

    @property
    def is_open(self) -> bool:
        return self.check_out is None

    @property
    def worked_minutes(self) -> int | None:
        if self.check_out is None:
            return None
        return int((self.check_out - self.check_in).total_seconds() // 60)

"""
Staff ORM Persistence Models (``backoffice_modules.staff.orm``).

Responsibility:
    Persists attendance records.  Employees themselves are kernel ``User``
    rows.

Invariants enforced:
    - check_out, when set, is not before check_in
      (ck_attendance_check_out_after_check_in).
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column

from backoffice_kernel.db.base import TrackedBase
from backoffice_modules.staff.models import AttendanceInfo


class AttendanceRecordModel(TrackedBase):
    """One work shift of one user.  Open while ``check_out`` is NULL."""

    __tablename__ = "attendance_records"

    __table_args__ = (
        CheckConstraint(
            "check_out IS NULL OR check_out >= check_in",
            name="ck_attendance_check_out_after_check_in",
        ),
        Index("idx_attendance_user", "user_id", "check_in"),
        Index("idx_attendance_business", "business_id", "check_in"),
    )

    user_id: Mapped[UUID] = mapped_column(ForeignKey("users.id"), nullable=False)

    business_id: Mapped[UUID] = mapped_column(ForeignKey("businesses.id"), nullable=False)

    check_in: Mapped[datetime] = mapped_column(nullable=False)

    check_out: Mapped[datetime | None] = mapped_column(nullable=True)

    def to_dto(self) -> AttendanceInfo:
        return AttendanceInfo(
            id=self.id,
            user_id=self.user_id,
            business_id=self.business_id,
            check_in=self.check_in,
            check_out=self.check_out,
        )

    def __repr__(self) -> str:
        return f"<AttendanceRecord user={self.user_id} in={self.check_in} out={self.check_out}>"

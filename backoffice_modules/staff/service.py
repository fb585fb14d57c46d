"""
Staff Module Service (``backoffice_modules.staff.service``).

Responsibility
--------------
Employee administration and attendance tracking for one business.

Architecture position
---------------------
**Modules layer** -- builds on kernel primitives (``User``, the permission
authority, the password hashing utilities) and owns
``AttendanceRecordModel``.

Invariants enforced
-------------------
* Tenant isolation: an employee of another business is reported as not
  found.
* Role grants: creating an employee, changing a role, or deactivating
  someone requires that the actor may assign the role involved.
* Self-protection: nobody changes their own role, deactivates, or deletes
  themselves.
* One open attendance record per user.

Failure modes
-------------
* ``UserNotFoundError``, ``DuplicateEmailError``, ``RoleAssignmentError``,
  ``InvalidFieldError``, ``AttendanceAlreadyOpenError``,
  ``NoOpenAttendanceError``.

Audit relevance
---------------
Employee create / update / deactivate / delete and every check-in and
check-out is logged with the acting user.
"""

from __future__ import annotations

from typing import Any
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from backoffice_kernel.db.types import to_choice
from backoffice_kernel.domain.clock import Clock
from backoffice_kernel.domain.dtos import UserInfo, UserRole
from backoffice_kernel.domain.policies import PaginationPolicy, PasswordPolicy
from backoffice_kernel.domain.session import SessionContext
from backoffice_kernel.exceptions import (
    AttendanceAlreadyOpenError,
    DuplicateEmailError,
    InvalidFieldError,
    NoOpenAttendanceError,
    UserNotFoundError,
)
from backoffice_kernel.logging_config import get_logger
from backoffice_kernel.models.business import User
from backoffice_kernel.services.auth_service import normalize_email, validate_password
from backoffice_kernel.services.authority import PermissionAuthority
from backoffice_kernel.services.base import BaseService
from backoffice_kernel.utils.hashing import generate_temporary_password, hash_password
from backoffice_modules.staff.models import AttendanceInfo, EmployeeCreated
from backoffice_modules.staff.orm import AttendanceRecordModel

logger = get_logger("modules.staff")

_UPDATABLE_FIELDS = frozenset({"full_name", "phone", "document", "role"})


class EmployeeService(BaseService[User]):
    """
    Employees of the caller's business.

    Contract:
        ``create_employee`` returns the generated password exactly once;
        only its hash is persisted.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        authority: PermissionAuthority | None = None,
        passwords: PasswordPolicy | None = None,
        pagination: PaginationPolicy | None = None,
    ):
        super().__init__(session, clock, authority)
        self.passwords = passwords or PasswordPolicy()
        self.pagination = pagination or PaginationPolicy()

    def list_employees(
        self,
        ctx: SessionContext,
        skip: int = 0,
        limit: int | None = None,
        active_only: bool = False,
        role: UserRole | str | None = None,
    ) -> list[UserInfo]:
        self._authorize(ctx, "employee.view")
        offset, size = self.pagination.clamp(skip, limit)
        stmt = select(User).where(User.business_id == ctx.business_id)
        if active_only:
            stmt = stmt.where(User.is_active.is_(True))
        if role is not None:
            stmt = stmt.where(User.role == to_choice(UserRole, role, "role").value)
        stmt = stmt.order_by(User.full_name, User.email).offset(offset).limit(size)
        return [u.to_dto() for u in self.session.execute(stmt).scalars().all()]

    def get_employee(self, ctx: SessionContext, user_id: UUID) -> UserInfo:
        self._authorize(ctx, "employee.view")
        return self._get(ctx, user_id).to_dto()

    def create_employee(
        self,
        ctx: SessionContext,
        full_name: str,
        email: str,
        role: UserRole | str,
        password: str | None = None,
        phone: str | None = None,
        document: str | None = None,
    ) -> EmployeeCreated:
        """
        Add an employee to the caller's business.

        When ``password`` is omitted a temporary one is generated and
        returned in ``EmployeeCreated.temporary_password``.

        Raises:
            RoleAssignmentError: the actor may not grant ``role``.
            DuplicateEmailError: email already registered anywhere.
            InvalidFieldError: missing name, bad email, short password.
        """
        self._authorize(ctx, "employee.manage")
        role_value = to_choice(UserRole, role, "role").value
        self.authority.require_can_assign(ctx, role_value)

        full_name = (full_name or "").strip()
        if not full_name:
            raise InvalidFieldError("full_name", "is required")
        email = normalize_email(email)

        temporary = None
        if password is None:
            temporary = generate_temporary_password(self.passwords.temporary_password_length)
            password = temporary
        else:
            validate_password(password, self.passwords)

        existing = self.session.execute(
            select(User.id).where(User.email == email)
        ).scalar_one_or_none()
        if existing is not None:
            raise DuplicateEmailError(email)

        user = User(
            business_id=ctx.business_id,
            email=email,
            full_name=full_name,
            role=role_value,
            password_hash=hash_password(password, self.passwords.hash_iterations),
            phone=(phone or "").strip() or None,
            document=(document or "").strip() or None,
            is_active=True,
            created_by_id=ctx.user_id,
        )
        self.session.add(user)
        self.session.flush()

        logger.info(
            "employee_created",
            extra={
                "employee_id": str(user.id),
                "role": role_value,
                "password_generated": temporary is not None,
            },
        )
        return EmployeeCreated(employee=user.to_dto(), temporary_password=temporary)

    def update_employee(self, ctx: SessionContext, user_id: UUID, **changes: Any) -> UserInfo:
        """Update name, phone, document or role."""
        self._authorize(ctx, "employee.manage")
        unknown = set(changes) - _UPDATABLE_FIELDS
        if unknown:
            raise InvalidFieldError(sorted(unknown)[0], "field cannot be updated")

        user = self._get(ctx, user_id)
        if user.id != ctx.user_id:
            self.authority.require_can_assign(ctx, UserRole(user.role).value)

        for key, value in changes.items():
            if key == "full_name":
                value = (value or "").strip()
                if not value:
                    raise InvalidFieldError("full_name", "is required")
            elif key == "role":
                value = to_choice(UserRole, value, "role").value
                if value == UserRole(user.role).value:
                    continue
                if user.id == ctx.user_id:
                    raise InvalidFieldError("role", "cannot change your own role", value)
                self.authority.require_can_assign(ctx, value)
            else:
                value = (value or "").strip() or None
            setattr(user, key, value)

        user.updated_by_id = ctx.user_id
        self.session.flush()
        logger.info(
            "employee_updated",
            extra={"employee_id": str(user.id), "fields": sorted(changes)},
        )
        return user.to_dto()

    def deactivate_employee(self, ctx: SessionContext, user_id: UUID) -> UserInfo:
        self._authorize(ctx, "employee.manage")
        user = self._get(ctx, user_id)
        if user.id == ctx.user_id:
            raise InvalidFieldError("user_id", "cannot deactivate your own account")
        self.authority.require_can_assign(ctx, UserRole(user.role).value)

        user.is_active = False
        user.updated_by_id = ctx.user_id
        self.session.flush()
        logger.info("employee_deactivated", extra={"employee_id": str(user.id)})
        return user.to_dto()

    def delete_permanently(self, ctx: SessionContext, user_id: UUID) -> None:
        """
        Remove an employee and their attendance history.

        Movements the employee performed keep their ``actor_id``; it is not
        a foreign key.
        """
        self._authorize(ctx, "employee.delete")
        user = self._get(ctx, user_id)
        if user.id == ctx.user_id:
            raise InvalidFieldError("user_id", "cannot delete your own account")

        self.session.execute(
            delete(AttendanceRecordModel).where(AttendanceRecordModel.user_id == user.id)
        )
        self.session.delete(user)
        self.session.flush()
        logger.warning("employee_deleted", extra={"employee_id": str(user_id)})

    def _get(self, ctx: SessionContext, user_id: UUID) -> User:
        user = self.session.get(User, user_id)
        if user is None or user.business_id != ctx.business_id:
            raise UserNotFoundError(str(user_id))
        return user


class AttendanceService(BaseService[AttendanceRecordModel]):
    """Check-in / check-out of the calling user."""

    def check_in(self, ctx: SessionContext) -> AttendanceInfo:
        self._authorize(ctx, "attendance.record")
        if self._open_record(ctx) is not None:
            raise AttendanceAlreadyOpenError(str(ctx.user_id))

        record = AttendanceRecordModel(
            user_id=ctx.user_id,
            business_id=ctx.business_id,
            check_in=self.clock.now(),
            created_by_id=ctx.user_id,
        )
        self.session.add(record)
        self.session.flush()
        logger.info("attendance_check_in", extra={"attendance_id": str(record.id)})
        return record.to_dto()

    def check_out(self, ctx: SessionContext) -> AttendanceInfo:
        self._authorize(ctx, "attendance.record")
        record = self._open_record(ctx)
        if record is None:
            raise NoOpenAttendanceError(str(ctx.user_id))

        record.check_out = self.clock.now()
        record.updated_by_id = ctx.user_id
        self.session.flush()
        info = record.to_dto()
        logger.info(
            "attendance_check_out",
            extra={"attendance_id": str(record.id), "worked_minutes": info.worked_minutes},
        )
        return info

    def history(
        self,
        ctx: SessionContext,
        user_id: UUID | None = None,
        limit: int = 50,
    ) -> list[AttendanceInfo]:
        """Latest records first.  Another user's history needs employee.view."""
        self._authorize(ctx, "attendance.record")
        target = user_id or ctx.user_id
        if target != ctx.user_id:
            self._authorize(ctx, "employee.view")
        rows = self.session.execute(
            select(AttendanceRecordModel)
            .where(
                AttendanceRecordModel.business_id == ctx.business_id,
                AttendanceRecordModel.user_id == target,
            )
            .order_by(AttendanceRecordModel.check_in.desc())
            .limit(limit)
        ).scalars().all()
        return [r.to_dto() for r in rows]

    def _open_record(self, ctx: SessionContext) -> AttendanceRecordModel | None:
        return self.session.execute(
            select(AttendanceRecordModel)
            .where(
                AttendanceRecordModel.user_id == ctx.user_id,
                AttendanceRecordModel.check_out.is_(None),
            )
            .with_for_update()
        ).scalar_one_or_none()

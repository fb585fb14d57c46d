"""
Module: backoffice_kernel.models.business
Responsibility: ORM persistence for tenants (Business) and the people who act
    inside them (User).  Every other business-scoped row carries a
    business_id that points here.
Architecture position: Kernel > Models.  May import from db/ and domain/dtos.
    MUST NOT import from services/, selectors/, or outer layers.

Invariants enforced:
    - email is globally unique and stored lower-cased (uq_user_email).
    - role is one of UserRole; OWNER and ADMIN are manager roles.

Failure modes:
    - IntegrityError on duplicate email.
"""

from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from backoffice_kernel.db.base import TrackedBase
from backoffice_kernel.domain.dtos import BusinessInfo, UserInfo, UserRole


class Business(TrackedBase):
    """A tenant.  All inventory, catalog and staff data is partitioned by it."""

    __tablename__ = "businesses"

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def to_dto(self) -> BusinessInfo:
        return BusinessInfo(id=self.id, name=self.name, is_active=self.is_active)

    def __repr__(self) -> str:
        return f"<Business {self.id}: {self.name}>"


class User(TrackedBase):
    """
    A staff member able to authenticate.

    Contract:
        A user belongs to exactly one business and holds exactly one role.
        Deactivated users cannot log in; their historical movements keep
        referencing them as actor.
    """

    __tablename__ = "users"

    __table_args__ = (
        UniqueConstraint("email", name="uq_user_email"),
        Index("idx_user_business", "business_id"),
        Index("idx_user_role", "business_id", "role"),
    )

    business_id: Mapped[UUID] = mapped_column(
        ForeignKey("businesses.id"),
        nullable=False,
    )

    email: Mapped[str] = mapped_column(String(255), nullable=False)

    full_name: Mapped[str] = mapped_column(String(255), nullable=False)

    role: Mapped[UserRole] = mapped_column(String(20), nullable=False)

    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)

    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)

    # National ID / passport number
    document: Mapped[str | None] = mapped_column(String(50), nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    @property
    def is_manager(self) -> bool:
        return UserRole(self.role).is_manager

    def to_dto(self) -> UserInfo:
        return UserInfo(
            id=self.id,
            business_id=self.business_id,
            email=self.email,
            full_name=self.full_name,
            role=UserRole(self.role),
            phone=self.phone,
            document=self.document,
            is_active=self.is_active,
        )

    def __repr__(self) -> str:
        return f"<User {self.email} ({self.role}) business={self.business_id}>"

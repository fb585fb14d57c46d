"""
Module: backoffice_kernel.models.supplier
Responsibility: ORM persistence for the suppliers a business buys from.
    Inventory items may reference a supplier of the same business.
Architecture position: Kernel > Models.  May import from db/ and domain/dtos.

Invariants enforced:
    - A supplier referenced by any inventory item is never hard-deleted
      (enforced by SupplierService.delete_permanently).

Failure modes:
    - IntegrityError if the referenced business does not exist.
"""

from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from backoffice_kernel.db.base import TrackedBase
from backoffice_kernel.domain.dtos import SupplierInfo


class Supplier(TrackedBase):
    """
    External vendor of inventory items.

    Non-goals:
        - Purchase orders and payables are not modelled here.
    """

    __tablename__ = "suppliers"

    __table_args__ = (
        Index("idx_supplier_business", "business_id"),
        Index("idx_supplier_active", "business_id", "is_active"),
    )

    business_id: Mapped[UUID] = mapped_column(
        ForeignKey("businesses.id"),
        nullable=False,
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    # Free-form classification (e.g. "distributor", "producer")
    supplier_type: Mapped[str | None] = mapped_column(String(50), nullable=True)

    tax_id: Mapped[str | None] = mapped_column(String(50), nullable=True)

    legal_representative: Mapped[str | None] = mapped_column(String(255), nullable=True)

    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)

    email: Mapped[str | None] = mapped_column(String(255), nullable=True)

    address: Mapped[str | None] = mapped_column(String(500), nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def to_dto(self) -> SupplierInfo:
        return SupplierInfo(
            id=self.id,
            business_id=self.business_id,
            name=self.name,
            supplier_type=self.supplier_type,
            tax_id=self.tax_id,
            legal_representative=self.legal_representative,
            phone=self.phone,
            email=self.email,
            address=self.address,
            is_active=self.is_active,
        )

    def __repr__(self) -> str:
        return f"<Supplier {self.name} business={self.business_id}>"

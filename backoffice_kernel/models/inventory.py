"""
Module: backoffice_kernel.models.inventory
Responsibility: ORM persistence for the inventory ledger: InventoryItem (the
    current-stock projection) and Movement (the append-only log every stock
    change is written to).
Architecture position: Kernel > Models.  May import from db/ and domain/dtos.
    MUST NOT import from services/, selectors/, or outer layers.

Invariants enforced:
    - quantity_in_stock >= 0 (ck_item_stock_non_negative).
    - quantity_in_stock == sum(quantity_delta) over the item's movements.
      Maintained by InventoryLedgerService, which writes the movement and the
      new stock in one transaction; audited by verify_item_balance().
    - Movement rows are immutable except ``reverted`` (False -> True),
      enforced by db/immutability.py.
    - SKU is unique within a business (uq_item_business_sku).

Failure modes:
    - IntegrityError on duplicate SKU or negative stock written directly.
    - ImmutabilityViolationError on any edit/delete of a Movement.

Audit relevance:
    The movement log is the audit trail for stock.  A reversal is a new
    ``revert`` row pointing at the original through reverts_movement_id.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from backoffice_kernel.db.base import TrackedBase
from backoffice_kernel.domain.dtos import InventoryItemInfo, MovementInfo, MovementType


class InventoryItem(TrackedBase):
    """
    A stock-keeping item of one business.

    Contract:
        quantity_in_stock is a projection of the movement log and is only
        written by the ledger service.  Items are soft-deleted through
        is_active and never hard-deleted while movements reference them.

    Non-goals:
        - Multi-location stock (one quantity per item per business).
        - Lot / expiry tracking.
    """

    __tablename__ = "inventory_items"

    __table_args__ = (
        UniqueConstraint("business_id", "sku", name="uq_item_business_sku"),
        CheckConstraint("quantity_in_stock >= 0", name="ck_item_stock_non_negative"),
        Index("idx_item_business", "business_id"),
        Index("idx_item_category", "business_id", "category"),
        Index("idx_item_supplier", "supplier_id"),
    )

    business_id: Mapped[UUID] = mapped_column(
        ForeignKey("businesses.id"),
        nullable=False,
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    category: Mapped[str | None] = mapped_column(String(100), nullable=True)

    # e.g. "kg", "l", "unit"
    unit_of_measure: Mapped[str] = mapped_column(String(20), nullable=False)

    sku: Mapped[str | None] = mapped_column(String(100), nullable=True)

    unit_price: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    tax_percentage: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    include_tax: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    min_stock: Mapped[Decimal | None] = mapped_column(nullable=True)

    max_stock: Mapped[Decimal | None] = mapped_column(nullable=True)

    quantity_in_stock: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    supplier_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("suppliers.id"),
        nullable=True,
    )

    last_restock_at: Mapped[datetime | None] = mapped_column(nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    @property
    def is_low_stock(self) -> bool:
        return self.min_stock is not None and self.quantity_in_stock < self.min_stock

    def to_dto(self) -> InventoryItemInfo:
        return InventoryItemInfo(
            id=self.id,
            business_id=self.business_id,
            name=self.name,
            category=self.category,
            unit_of_measure=self.unit_of_measure,
            sku=self.sku,
            unit_price=self.unit_price,
            tax_percentage=self.tax_percentage,
            include_tax=self.include_tax,
            min_stock=self.min_stock,
            max_stock=self.max_stock,
            quantity_in_stock=self.quantity_in_stock,
            supplier_id=self.supplier_id,
            last_restock_at=self.last_restock_at,
            is_active=self.is_active,
        )

    def __repr__(self) -> str:
        return (
            f"<InventoryItem {self.name} qty={self.quantity_in_stock} "
            f"{self.unit_of_measure} business={self.business_id}>"
        )


class Movement(TrackedBase):
    """
    One signed stock change.  Append-only.

    Contract:
        Every field is frozen at INSERT except ``reverted``, which may flip
        False -> True exactly once when a compensating ``revert`` movement
        is written.

    Guarantees:
        - stock_after == stock_before + quantity_delta.
        - A ``revert`` row has reverts_movement_id set and the negated delta
          of its original.
        - Transfer rows carry transfer_id.
    """

    __tablename__ = "inventory_movements"

    __table_args__ = (
        CheckConstraint("quantity_delta <> 0", name="ck_movement_delta_non_zero"),
        UniqueConstraint("reverts_movement_id", name="uq_movement_reverts_once"),
        Index("idx_movement_item", "item_id", "occurred_at"),
        Index("idx_movement_business", "business_id", "occurred_at"),
        Index("idx_movement_type", "business_id", "movement_type"),
        Index("idx_movement_transfer", "transfer_id"),
    )

    business_id: Mapped[UUID] = mapped_column(
        ForeignKey("businesses.id"),
        nullable=False,
    )

    item_id: Mapped[UUID] = mapped_column(
        ForeignKey("inventory_items.id"),
        nullable=False,
    )

    movement_type: Mapped[MovementType] = mapped_column(String(30), nullable=False)

    quantity_delta: Mapped[Decimal] = mapped_column(nullable=False)

    stock_before: Mapped[Decimal] = mapped_column(nullable=False)

    stock_after: Mapped[Decimal] = mapped_column(nullable=False)

    reason: Mapped[str | None] = mapped_column(String(500), nullable=True)

    actor_id: Mapped[UUID] = mapped_column(nullable=False)

    occurred_at: Mapped[datetime] = mapped_column(nullable=False)

    reverted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    reverts_movement_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("inventory_movements.id"),
        nullable=True,
    )

    transfer_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("transfers.id"),
        nullable=True,
    )

    @property
    def is_revert(self) -> bool:
        return MovementType(self.movement_type) == MovementType.REVERT

    def to_dto(self) -> MovementInfo:
        return MovementInfo(
            id=self.id,
            business_id=self.business_id,
            item_id=self.item_id,
            movement_type=MovementType(self.movement_type),
            quantity_delta=self.quantity_delta,
            stock_before=self.stock_before,
            stock_after=self.stock_after,
            reason=self.reason,
            actor_id=self.actor_id,
            occurred_at=self.occurred_at,
            reverted=self.reverted,
            reverts_movement_id=self.reverts_movement_id,
            transfer_id=self.transfer_id,
        )

    def __repr__(self) -> str:
        return (
            f"<Movement {self.movement_type} {self.quantity_delta} "
            f"item={self.item_id} reverted={self.reverted}>"
        )

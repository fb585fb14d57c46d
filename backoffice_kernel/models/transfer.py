"""
Module: backoffice_kernel.models.transfer
Responsibility: ORM persistence for cross-tenant stock transfers (Transfer,
    TransferLine) and for the explicit item equivalence table that maps a
    source business's item to the destination business's item.
Architecture position: Kernel > Models.  May import from db/ and domain/dtos.

Invariants enforced:
    - TransferLine.quantity > 0 (ck_transfer_line_quantity_positive).
    - One equivalence per (source item, destination business)
      (uq_item_equivalence_source_destination).
    - destination_item_id on a line is filled only when the transfer
      completes, from the equivalence table.

Audit relevance:
    The transfer_out / transfer_in movements written on completion carry
    transfer_id, linking both ledgers back to this row.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backoffice_kernel.db.base import TrackedBase
from backoffice_kernel.domain.dtos import (
    ItemEquivalenceInfo,
    TransferInfo,
    TransferLineInfo,
    TransferStatus,
)


class Transfer(TrackedBase):
    """
    A request to move stock from one business to another.

    Contract:
        PENDING until the destination accepts or rejects it, or the source
        cancels it.  All three outcomes are terminal.  Only acceptance
        touches the ledgers.
    """

    __tablename__ = "transfers"

    __table_args__ = (
        CheckConstraint(
            "from_business_id <> to_business_id",
            name="ck_transfer_not_self",
        ),
        Index("idx_transfer_from", "from_business_id", "status"),
        Index("idx_transfer_to", "to_business_id", "status"),
    )

    from_business_id: Mapped[UUID] = mapped_column(
        ForeignKey("businesses.id"),
        nullable=False,
    )

    to_business_id: Mapped[UUID] = mapped_column(
        ForeignKey("businesses.id"),
        nullable=False,
    )

    status: Mapped[TransferStatus] = mapped_column(
        String(20),
        nullable=False,
        default=TransferStatus.PENDING,
    )

    notes: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    requested_at: Mapped[datetime] = mapped_column(nullable=False)

    responded_by_id: Mapped[UUID | None] = mapped_column(nullable=True)

    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)

    lines: Mapped[list["TransferLine"]] = relationship(
        back_populates="transfer",
        cascade="all, delete-orphan",
        order_by="TransferLine.line_number",
        lazy="selectin",
    )

    @property
    def is_pending(self) -> bool:
        return TransferStatus(self.status) == TransferStatus.PENDING

    def to_dto(self) -> TransferInfo:
        return TransferInfo(
            id=self.id,
            from_business_id=self.from_business_id,
            to_business_id=self.to_business_id,
            status=TransferStatus(self.status),
            created_by_id=self.created_by_id,
            created_at=self.requested_at,
            lines=tuple(line.to_dto() for line in self.lines),
            notes=self.notes,
            responded_by_id=self.responded_by_id,
            completed_at=self.completed_at,
        )

    def __repr__(self) -> str:
        return (
            f"<Transfer {self.id} {self.from_business_id} -> "
            f"{self.to_business_id} ({self.status})>"
        )


class TransferLine(TrackedBase):
    __tablename__ = "transfer_lines"

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_transfer_line_quantity_positive"),
        UniqueConstraint("transfer_id", "line_number", name="uq_transfer_line_number"),
    )

    transfer_id: Mapped[UUID] = mapped_column(
        ForeignKey("transfers.id"),
        nullable=False,
    )

    line_number: Mapped[int] = mapped_column(Integer, nullable=False)

    source_item_id: Mapped[UUID] = mapped_column(
        ForeignKey("inventory_items.id"),
        nullable=False,
    )

    quantity: Mapped[Decimal] = mapped_column(nullable=False)

    notes: Mapped[str | None] = mapped_column(String(500), nullable=True)

    destination_item_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("inventory_items.id"),
        nullable=True,
    )

    transfer: Mapped["Transfer"] = relationship(back_populates="lines")

    def to_dto(self) -> TransferLineInfo:
        return TransferLineInfo(
            id=self.id,
            line_number=self.line_number,
            source_item_id=self.source_item_id,
            quantity=self.quantity,
            notes=self.notes,
            destination_item_id=self.destination_item_id,
        )

    def __repr__(self) -> str:
        return f"<TransferLine #{self.line_number} item={self.source_item_id} qty={self.quantity}>"


class ItemEquivalence(TrackedBase):
    """
    Declared mapping: "their item X is our item Y".

    Contract:
        Declared by the destination business.  Transfers never match items
        by name or SKU; a line without an equivalence cannot complete.
    """

    __tablename__ = "item_equivalences"

    __table_args__ = (
        UniqueConstraint(
            "source_item_id",
            "destination_business_id",
            name="uq_item_equivalence_source_destination",
        ),
        Index("idx_item_equivalence_destination", "destination_business_id"),
    )

    source_item_id: Mapped[UUID] = mapped_column(
        ForeignKey("inventory_items.id"),
        nullable=False,
    )

    source_business_id: Mapped[UUID] = mapped_column(
        ForeignKey("businesses.id"),
        nullable=False,
    )

    destination_item_id: Mapped[UUID] = mapped_column(
        ForeignKey("inventory_items.id"),
        nullable=False,
    )

    destination_business_id: Mapped[UUID] = mapped_column(
        ForeignKey("businesses.id"),
        nullable=False,
    )

    def to_dto(self) -> ItemEquivalenceInfo:
        return ItemEquivalenceInfo(
            id=self.id,
            source_item_id=self.source_item_id,
            source_business_id=self.source_business_id,
            destination_item_id=self.destination_item_id,
            destination_business_id=self.destination_business_id,
        )

    def __repr__(self) -> str:
        return f"<ItemEquivalence {self.source_item_id} -> {self.destination_item_id}>"

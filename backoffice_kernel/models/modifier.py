"""
Module: backoffice_kernel.models.modifier
Responsibility: ORM persistence for product customizations: ModifierGroup,
    Modifier, the modifier's signed inventory deltas (ModifierItem), and the
    product assignment link (ProductModifier).
Architecture position: Kernel > Models.  May import from db/ and domain/dtos.

Invariants enforced:
    - price_extra >= 0 (ck_modifier_price_extra_non_negative).
    - ModifierItem.quantity != 0; one delta per (modifier, item).
    - One assignment per (product, modifier) (uq_product_modifier).
    - Assigned modifiers only reference the product's ingredient items
      (checked by ModifierService.assign, not by the database).
"""

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
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backoffice_kernel.db.base import TrackedBase
from backoffice_kernel.domain.dtos import ModifierGroupInfo, ModifierInfo, ModifierItemSpec


class ModifierGroup(TrackedBase):
    """A named set of modifiers (e.g. "Size", "Extras")."""

    __tablename__ = "modifier_groups"

    __table_args__ = (Index("idx_modifier_group_business", "business_id", "is_active"),)

    business_id: Mapped[UUID] = mapped_column(
        ForeignKey("businesses.id"),
        nullable=False,
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    description: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    # More than one modifier of the group may be chosen per sale line
    allow_multiple: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # At least one modifier of the group must be chosen per sale line
    is_required: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def to_dto(self, modifiers_count: int = 0) -> ModifierGroupInfo:
        return ModifierGroupInfo(
            id=self.id,
            business_id=self.business_id,
            name=self.name,
            description=self.description,
            allow_multiple=self.allow_multiple,
            is_required=self.is_required,
            is_active=self.is_active,
            modifiers_count=modifiers_count,
        )

    def __repr__(self) -> str:
        return f"<ModifierGroup {self.name} business={self.business_id}>"


class Modifier(TrackedBase):
    """
    An optional customization with its own price and inventory deltas.

    Contract:
        inventory_items is fixed at creation.  Positive quantities consume
        more stock; negative quantities consume less.
    """

    __tablename__ = "modifiers"

    __table_args__ = (
        CheckConstraint("price_extra >= 0", name="ck_modifier_price_extra_non_negative"),
        Index("idx_modifier_group", "group_id"),
    )

    group_id: Mapped[UUID] = mapped_column(
        ForeignKey("modifier_groups.id"),
        nullable=False,
    )

    business_id: Mapped[UUID] = mapped_column(
        ForeignKey("businesses.id"),
        nullable=False,
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    description: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    price_extra: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    inventory_items: Mapped[list["ModifierItem"]] = relationship(
        back_populates="modifier",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def to_dto(self) -> ModifierInfo:
        return ModifierInfo(
            id=self.id,
            group_id=self.group_id,
            business_id=self.business_id,
            name=self.name,
            description=self.description,
            price_extra=self.price_extra,
            is_active=self.is_active,
            inventory_items=tuple(
                ModifierItemSpec(item_id=mi.item_id, quantity=mi.quantity)
                for mi in self.inventory_items
            ),
        )

    def __repr__(self) -> str:
        return f"<Modifier {self.name} +{self.price_extra} group={self.group_id}>"


class ModifierItem(TrackedBase):
    __tablename__ = "modifier_items"

    __table_args__ = (
        CheckConstraint("quantity <> 0", name="ck_modifier_item_quantity_non_zero"),
        UniqueConstraint("modifier_id", "item_id", name="uq_modifier_item"),
    )

    modifier_id: Mapped[UUID] = mapped_column(
        ForeignKey("modifiers.id"),
        nullable=False,
    )

    item_id: Mapped[UUID] = mapped_column(
        ForeignKey("inventory_items.id"),
        nullable=False,
    )

    quantity: Mapped[Decimal] = mapped_column(nullable=False)

    modifier: Mapped["Modifier"] = relationship(back_populates="inventory_items")


class ProductModifier(TrackedBase):
    __tablename__ = "product_modifiers"

    __table_args__ = (
        UniqueConstraint("product_id", "modifier_id", name="uq_product_modifier"),
        Index("idx_product_modifier_modifier", "modifier_id"),
    )

    product_id: Mapped[UUID] = mapped_column(
        ForeignKey("products.id"),
        nullable=False,
    )

    modifier_id: Mapped[UUID] = mapped_column(
        ForeignKey("modifiers.id"),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<ProductModifier product={self.product_id} modifier={self.modifier_id}>"

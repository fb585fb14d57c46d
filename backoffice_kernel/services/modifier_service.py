"""
ModifierService -- modifier groups, modifiers and product assignment.

Responsibility:
    Maintains modifier groups and modifiers, and attaches modifiers to
    products.

Architecture position:
    Kernel > Services.

Invariants enforced:
    - A modifier can only be assigned to a product whose ingredient items
      include every item the modifier adjusts.  Applying such a modifier
      at sale time therefore never consumes stock outside the recipe.
    - A (product, modifier) pair is assigned at most once.
    - A modifier's inventory deltas are fixed at creation.

Failure modes:
    - IngredientMismatchError: lists the modifier items missing from the
      product's recipe.
    - ModifierAlreadyAssignedError: duplicate assignment.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Sequence
from uuid import UUID

from sqlalchemy import func, select

from backoffice_kernel.db.types import to_decimal
from backoffice_kernel.domain.dtos import (
    ModifierGroupInfo,
    ModifierInfo,
    ModifierItemSpec,
)
from backoffice_kernel.domain.session import SessionContext
from backoffice_kernel.exceptions import (
    DuplicateIngredientError,
    IngredientMismatchError,
    InvalidFieldError,
    InvalidQuantityError,
    InventoryItemNotFoundError,
    ModifierAlreadyAssignedError,
    ModifierGroupNotFoundError,
    ModifierNotFoundError,
    ProductNotFoundError,
)
from backoffice_kernel.logging_config import get_logger
from backoffice_kernel.models.inventory import InventoryItem
from backoffice_kernel.models.modifier import (
    Modifier,
    ModifierGroup,
    ModifierItem,
    ProductModifier,
)
from backoffice_kernel.models.product import Product
from backoffice_kernel.services.base import BaseService

logger = get_logger("services.modifier")

_GROUP_FIELDS = frozenset({"name", "description", "allow_multiple", "is_required", "is_active"})
_MODIFIER_FIELDS = frozenset({"name", "description", "price_extra", "is_active"})


class ModifierService(BaseService[Modifier]):
    """
    Modifier catalogue writer.

    Contract:
        ``remove`` is an unconditional detach and never validates
        ingredients; it returns False when nothing was assigned.

    Non-goals:
        - Applying modifiers to sales or consuming their deltas.
    """

    # -------------------------------------------------------------------------
    # Groups
    # -------------------------------------------------------------------------

    def create_group(
        self,
        ctx: SessionContext,
        name: str,
        description: str | None = None,
        allow_multiple: bool = False,
        is_required: bool = False,
    ) -> ModifierGroupInfo:
        self._authorize(ctx, "modifier.manage")
        group = ModifierGroup(
            business_id=ctx.business_id,
            name=_required_text("name", name),
            description=(description or "").strip() or None,
            allow_multiple=allow_multiple,
            is_required=is_required,
            is_active=True,
            created_by_id=ctx.user_id,
        )
        self.session.add(group)
        self.session.flush()
        logger.info("modifier_group_created", extra={"group_id": str(group.id)})
        return group.to_dto(0)

    def update_group(self, ctx: SessionContext, group_id: UUID, **changes: Any) -> ModifierGroupInfo:
        self._authorize(ctx, "modifier.manage")
        unknown = set(changes) - _GROUP_FIELDS
        if unknown:
            raise InvalidFieldError(sorted(unknown)[0], "field cannot be updated")

        group = self._get_group(ctx, group_id)
        for key, value in changes.items():
            if key == "name":
                value = _required_text("name", value)
            elif key == "description":
                value = (value or "").strip() or None
            else:
                value = bool(value)
            setattr(group, key, value)
        group.updated_by_id = ctx.user_id
        self.session.flush()
        return group.to_dto(self._count_modifiers(group.id))

    # -------------------------------------------------------------------------
    # Modifiers
    # -------------------------------------------------------------------------

    def create_modifier(
        self,
        ctx: SessionContext,
        group_id: UUID,
        name: str,
        price_extra: Decimal | int | str = Decimal("0"),
        inventory_items: Sequence[ModifierItemSpec] = (),
        description: str | None = None,
    ) -> ModifierInfo:
        """
        Create a modifier with its signed inventory deltas.

        Raises:
            InvalidFieldError: no deltas, or negative ``price_extra``.
            InvalidQuantityError: a zero delta.
            DuplicateIngredientError: an item appears twice.
            InventoryItemNotFoundError: item of another business.
        """
        self._authorize(ctx, "modifier.manage")
        group = self._get_group(ctx, group_id)

        if not inventory_items:
            raise InvalidFieldError("inventory_items", "at least one inventory delta is required")
        price = _non_negative_price(price_extra)

        modifier = Modifier(
            group_id=group.id,
            business_id=ctx.business_id,
            name=_required_text("name", name),
            description=(description or "").strip() or None,
            price_extra=price,
            is_active=True,
            created_by_id=ctx.user_id,
        )

        seen: set[UUID] = set()
        for index, spec in enumerate(inventory_items):
            if spec.item_id in seen:
                raise DuplicateIngredientError(str(spec.item_id))
            seen.add(spec.item_id)
            quantity = to_decimal(spec.quantity, "quantity")
            if quantity == 0:
                raise InvalidQuantityError(
                    f"inventory_items[{index}].quantity", quantity, "must not be zero"
                )
            item = self.session.get(InventoryItem, spec.item_id)
            if item is None or item.business_id != ctx.business_id:
                raise InventoryItemNotFoundError(str(spec.item_id))
            modifier.inventory_items.append(
                ModifierItem(item_id=item.id, quantity=quantity, created_by_id=ctx.user_id)
            )

        self.session.add(modifier)
        self.session.flush()
        logger.info(
            "modifier_created",
            extra={
                "modifier_id": str(modifier.id),
                "group_id": str(group.id),
                "item_count": len(seen),
            },
        )
        return modifier.to_dto()

    def update_modifier(self, ctx: SessionContext, modifier_id: UUID, **changes: Any) -> ModifierInfo:
        """Update name, description, price or active flag; deltas are fixed."""
        self._authorize(ctx, "modifier.manage")
        unknown = set(changes) - _MODIFIER_FIELDS
        if unknown:
            raise InvalidFieldError(sorted(unknown)[0], "field cannot be updated")

        modifier = self._get_modifier(ctx, modifier_id)
        for key, value in changes.items():
            if key == "name":
                value = _required_text("name", value)
            elif key == "description":
                value = (value or "").strip() or None
            elif key == "price_extra":
                value = _non_negative_price(value)
            else:
                value = bool(value)
            setattr(modifier, key, value)
        modifier.updated_by_id = ctx.user_id
        self.session.flush()
        return modifier.to_dto()

    # -------------------------------------------------------------------------
    # Assignment
    # -------------------------------------------------------------------------

    def assign(self, ctx: SessionContext, product_id: UUID, modifier_id: UUID) -> ModifierInfo:
        """
        Attach a modifier to a product.

        Raises:
            IngredientMismatchError: some modifier item is not an
                ingredient of the product.
            ModifierAlreadyAssignedError: already attached.
        """
        self._authorize(ctx, "modifier.manage")
        product = self._get_product(ctx, product_id)
        modifier = self._get_modifier(ctx, modifier_id)

        ingredient_ids = {i.item_id for i in product.ingredients}
        missing = sorted(
            str(mi.item_id)
            for mi in modifier.inventory_items
            if mi.item_id not in ingredient_ids
        )
        if missing:
            logger.warning(
                "modifier_assignment_rejected",
                extra={
                    "product_id": str(product.id),
                    "modifier_id": str(modifier.id),
                    "missing_item_ids": missing,
                },
            )
            raise IngredientMismatchError(str(product.id), str(modifier.id), missing)

        if self._assignment(product.id, modifier.id) is not None:
            raise ModifierAlreadyAssignedError(str(product.id), str(modifier.id))

        self.session.add(
            ProductModifier(
                product_id=product.id,
                modifier_id=modifier.id,
                created_by_id=ctx.user_id,
            )
        )
        self.session.flush()
        logger.info(
            "modifier_assigned",
            extra={"product_id": str(product.id), "modifier_id": str(modifier.id)},
        )
        return modifier.to_dto()

    def remove(self, ctx: SessionContext, product_id: UUID, modifier_id: UUID) -> bool:
        """Detach a modifier.  Returns False when it was not assigned."""
        self._authorize(ctx, "modifier.manage")
        product = self._get_product(ctx, product_id)
        link = self._assignment(product.id, modifier_id)
        if link is None:
            return False
        self.session.delete(link)
        self.session.flush()
        logger.info(
            "modifier_removed",
            extra={"product_id": str(product.id), "modifier_id": str(modifier_id)},
        )
        return True

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _assignment(self, product_id: UUID, modifier_id: UUID) -> ProductModifier | None:
        return self.session.execute(
            select(ProductModifier).where(
                ProductModifier.product_id == product_id,
                ProductModifier.modifier_id == modifier_id,
            )
        ).scalar_one_or_none()

    def _count_modifiers(self, group_id: UUID) -> int:
        return self.session.execute(
            select(func.count()).select_from(Modifier).where(Modifier.group_id == group_id)
        ).scalar_one()

    def _get_group(self, ctx: SessionContext, group_id: UUID) -> ModifierGroup:
        group = self.session.get(ModifierGroup, group_id)
        if group is None or group.business_id != ctx.business_id:
            raise ModifierGroupNotFoundError(str(group_id))
        return group

    def _get_modifier(self, ctx: SessionContext, modifier_id: UUID) -> Modifier:
        modifier = self.session.get(Modifier, modifier_id)
        if modifier is None or modifier.business_id != ctx.business_id:
            raise ModifierNotFoundError(str(modifier_id))
        return modifier

    def _get_product(self, ctx: SessionContext, product_id: UUID) -> Product:
        product = self.session.get(Product, product_id)
        if product is None or product.business_id != ctx.business_id:
            raise ProductNotFoundError(str(product_id))
        return product


def _required_text(field: str, value: str | None) -> str:
    text = (value or "").strip()
    if not text:
        raise InvalidFieldError(field, "is required")
    return text


def _non_negative_price(value: Decimal | int | str) -> Decimal:
    price = to_decimal(value, "price_extra")
    if price < 0:
        raise InvalidFieldError("price_extra", "must not be negative", price)
    return price

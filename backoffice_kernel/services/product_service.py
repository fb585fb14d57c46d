"""
ProductService -- sellable products and their recipes.

Responsibility:
    Creates and edits products, replaces ingredient lists, toggles
    products active/inactive and prices recipes.

Architecture position:
    Kernel > Services.  Costing itself is the pure
    ``domain.costing.build_cost_breakdown``; this service only loads the
    rows it needs.

Invariants enforced:
    - Ingredients reference active items of the caller's business, with a
      positive quantity and at most one line per item.
    - An ingredient still used by an assigned modifier cannot be dropped
      from the recipe.
    - A loss-making price is allowed; it is logged as a warning.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Sequence
from uuid import UUID

from sqlalchemy import select

from backoffice_kernel.db.types import to_choice, to_decimal
from backoffice_kernel.domain.costing import build_cost_breakdown
from backoffice_kernel.domain.dtos import (
    CostBasis,
    CostBreakdown,
    IngredientSpec,
    ProductInfo,
)
from backoffice_kernel.domain.session import SessionContext
from backoffice_kernel.exceptions import (
    DuplicateIngredientError,
    IngredientMismatchError,
    InvalidFieldError,
    InvalidQuantityError,
    InventoryItemInactiveError,
    InventoryItemNotFoundError,
    ProductNotFoundError,
)
from backoffice_kernel.logging_config import get_logger
from backoffice_kernel.models.inventory import InventoryItem
from backoffice_kernel.models.modifier import ModifierItem, ProductModifier
from backoffice_kernel.models.product import Ingredient, Product
from backoffice_kernel.services.base import BaseService

logger = get_logger("services.product")

_UPDATABLE_FIELDS = frozenset({
    "name",
    "category",
    "description",
    "sale_price",
    "profit_margin_percentage",
    "image_url",
})

_HUNDRED = Decimal("100")


class ProductService(BaseService[Product]):
    """
    Product catalogue writer.

    Contract:
        Ingredient lists are replaced wholesale; there is no per-line edit.
        Products are never hard-deleted.
    """

    def create_product(
        self,
        ctx: SessionContext,
        name: str,
        sale_price: Decimal | int | str,
        ingredients: Sequence[IngredientSpec] = (),
        category: str | None = None,
        description: str | None = None,
        profit_margin_percentage: Decimal | int | str | None = None,
        image_url: str | None = None,
    ) -> ProductInfo:
        self._authorize(ctx, "product.manage")
        values = self._validated_fields({
            "name": name,
            "sale_price": sale_price,
            "category": category,
            "description": description,
            "profit_margin_percentage": profit_margin_percentage,
            "image_url": image_url,
        })

        product = Product(
            business_id=ctx.business_id,
            is_active=True,
            created_by_id=ctx.user_id,
            **values,
        )
        self.session.add(product)
        self.session.flush()

        self._write_ingredients(ctx, product, ingredients)
        breakdown = self._breakdown(product, CostBasis.LIVE)

        logger.info(
            "product_created",
            extra={
                "product_id": str(product.id),
                "product_name": product.name,
                "ingredient_count": len(product.ingredients),
            },
        )
        self._warn_if_loss(breakdown)
        return product.to_dto()

    def update_product(
        self,
        ctx: SessionContext,
        product_id: UUID,
        **changes: Any,
    ) -> ProductInfo:
        """Update catalogue fields.  Use ``replace_ingredients`` for the recipe."""
        self._authorize(ctx, "product.manage")
        unknown = set(changes) - _UPDATABLE_FIELDS
        if unknown:
            raise InvalidFieldError(sorted(unknown)[0], "field cannot be updated")

        product = self._get_product(ctx, product_id)
        for key, value in self._validated_fields(changes).items():
            setattr(product, key, value)
        product.updated_by_id = ctx.user_id
        self.session.flush()

        if "sale_price" in changes:
            self._warn_if_loss(self._breakdown(product, CostBasis.LIVE))
        return product.to_dto()

    def replace_ingredients(
        self,
        ctx: SessionContext,
        product_id: UUID,
        ingredients: Sequence[IngredientSpec],
    ) -> ProductInfo:
        """
        Delete the current recipe and write ``ingredients`` in its place.

        Raises:
            IngredientMismatchError: an assigned modifier references an
                item the new recipe no longer contains.
            DuplicateIngredientError: an item appears twice.
        """
        self._authorize(ctx, "product.manage")
        product = self._get_product(ctx, product_id)

        new_item_ids = {spec.item_id for spec in ingredients}
        rows = self.session.execute(
            select(ProductModifier.modifier_id, ModifierItem.item_id)
            .join(ModifierItem, ModifierItem.modifier_id == ProductModifier.modifier_id)
            .where(ProductModifier.product_id == product.id)
        ).all()
        orphaned: dict[UUID, list[str]] = {}
        for modifier_id, item_id in rows:
            if item_id not in new_item_ids:
                orphaned.setdefault(modifier_id, []).append(str(item_id))
        if orphaned:
            modifier_id = sorted(orphaned, key=str)[0]
            raise IngredientMismatchError(
                str(product.id), str(modifier_id), sorted(orphaned[modifier_id])
            )

        product.ingredients.clear()
        self.session.flush()
        self._write_ingredients(ctx, product, ingredients)
        product.updated_by_id = ctx.user_id
        self.session.flush()

        logger.info(
            "product_ingredients_replaced",
            extra={
                "product_id": str(product.id),
                "ingredient_count": len(product.ingredients),
            },
        )
        self._warn_if_loss(self._breakdown(product, CostBasis.LIVE))
        return product.to_dto()

    def deactivate_product(self, ctx: SessionContext, product_id: UUID) -> ProductInfo:
        return self._set_active(ctx, product_id, False)

    def activate_product(self, ctx: SessionContext, product_id: UUID) -> ProductInfo:
        return self._set_active(ctx, product_id, True)

    # -------------------------------------------------------------------------
    # Costing
    # -------------------------------------------------------------------------

    def cost_breakdown(
        self,
        ctx: SessionContext,
        product_id: UUID,
        basis: CostBasis = CostBasis.LIVE,
    ) -> CostBreakdown:
        """Per-ingredient cost lines, total cost, profit and loss flag."""
        self._authorize(ctx, "product.view")
        basis = to_choice(CostBasis, basis, "basis")
        return self._breakdown(self._get_product(ctx, product_id), basis)

    def total_cost(
        self,
        ctx: SessionContext,
        product_id: UUID,
        basis: CostBasis = CostBasis.LIVE,
    ) -> Decimal:
        return self.cost_breakdown(ctx, product_id, basis).total_cost

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _set_active(self, ctx: SessionContext, product_id: UUID, active: bool) -> ProductInfo:
        self._authorize(ctx, "product.manage")
        product = self._get_product(ctx, product_id)
        product.is_active = active
        product.updated_by_id = ctx.user_id
        self.session.flush()
        logger.info(
            "product_activated" if active else "product_deactivated",
            extra={"product_id": str(product.id)},
        )
        return product.to_dto()

    def _get_product(self, ctx: SessionContext, product_id: UUID) -> Product:
        product = self.session.get(Product, product_id)
        if product is None or product.business_id != ctx.business_id:
            raise ProductNotFoundError(str(product_id))
        return product

    def _write_ingredients(
        self,
        ctx: SessionContext,
        product: Product,
        ingredients: Sequence[IngredientSpec],
    ) -> None:
        seen: set[UUID] = set()
        for number, spec in enumerate(ingredients, start=1):
            if spec.item_id in seen:
                raise DuplicateIngredientError(str(spec.item_id))
            seen.add(spec.item_id)

            quantity = to_decimal(spec.quantity, "quantity")
            if quantity <= 0:
                raise InvalidQuantityError(
                    f"ingredients[{number - 1}].quantity", quantity, "must be positive"
                )

            item = self.session.get(InventoryItem, spec.item_id)
            if item is None or item.business_id != ctx.business_id:
                raise InventoryItemNotFoundError(str(spec.item_id))
            if not item.is_active:
                raise InventoryItemInactiveError(str(item.id))

            product.ingredients.append(
                Ingredient(
                    item_id=item.id,
                    line_number=number,
                    quantity=quantity,
                    unit_price_snapshot=item.unit_price,
                    created_by_id=ctx.user_id,
                )
            )
        self.session.flush()

    def _breakdown(self, product: Product, basis: CostBasis) -> CostBreakdown:
        info = product.to_dto()
        item_ids = [i.item_id for i in info.ingredients]
        items = {}
        if item_ids:
            rows = self.session.execute(
                select(InventoryItem).where(InventoryItem.id.in_(item_ids))
            ).scalars().all()
            items = {row.id: row.to_dto() for row in rows}
        return build_cost_breakdown(info, items, basis)

    @staticmethod
    def _warn_if_loss(breakdown: CostBreakdown) -> None:
        if breakdown.is_loss:
            logger.warning(
                "product_priced_below_cost",
                extra={
                    "product_id": str(breakdown.product_id),
                    "sale_price": str(breakdown.sale_price),
                    "total_cost": str(breakdown.total_cost),
                },
            )

    @staticmethod
    def _validated_fields(raw: dict[str, Any]) -> dict[str, Any]:
        values: dict[str, Any] = {}
        for key, value in raw.items():
            if key == "name":
                text = (value or "").strip()
                if not text:
                    raise InvalidFieldError("name", "is required")
                values[key] = text
            elif key == "sale_price":
                price = to_decimal(value, key)
                if price < 0:
                    raise InvalidFieldError("sale_price", "must not be negative", price)
                values[key] = price
            elif key == "profit_margin_percentage":
                if value is None:
                    values[key] = None
                    continue
                pct = to_decimal(value, key)
                if pct < 0 or pct > _HUNDRED:
                    raise InvalidFieldError(key, "must be between 0 and 100", pct)
                values[key] = pct
            else:
                values[key] = (value or "").strip() or None
        return values

"""
Module: backoffice_kernel.selectors.catalog_selector
Responsibility: Read-only queries over products, modifier groups and
    modifiers, including the modifiers assigned to a product.
Architecture position: Kernel > Selectors.
"""

from uuid import UUID

from sqlalchemy import func, select

from backoffice_kernel.domain.dtos import ModifierGroupInfo, ModifierInfo, ProductInfo
from backoffice_kernel.domain.session import SessionContext
from backoffice_kernel.exceptions import (
    ModifierGroupNotFoundError,
    ModifierNotFoundError,
    ProductNotFoundError,
)
from backoffice_kernel.models.modifier import Modifier, ModifierGroup, ProductModifier
from backoffice_kernel.models.product import Product
from backoffice_kernel.selectors.base import BaseSelector


class CatalogSelector(BaseSelector[Product]):
    """Reads over the caller's product catalogue."""

    # -------------------------------------------------------------------------
    # Products
    # -------------------------------------------------------------------------

    def get_product(self, ctx: SessionContext, product_id: UUID) -> ProductInfo:
        self._authorize(ctx, "product.view")
        product = self.session.get(Product, product_id)
        if product is None or product.business_id != ctx.business_id:
            raise ProductNotFoundError(str(product_id))
        return product.to_dto()

    def list_products(
        self,
        ctx: SessionContext,
        skip: int = 0,
        limit: int | None = None,
        active_only: bool = True,
        category: str | None = None,
    ) -> list[ProductInfo]:
        self._authorize(ctx, "product.view")
        offset, size = self.pagination.clamp(skip, limit)
        stmt = select(Product).where(Product.business_id == ctx.business_id)
        if active_only:
            stmt = stmt.where(Product.is_active == True)  # noqa: E712
        if category is not None:
            stmt = stmt.where(Product.category == category)
        stmt = stmt.order_by(Product.name, Product.id).offset(offset).limit(size)
        return [p.to_dto() for p in self.session.execute(stmt).scalars().all()]

    def categories(self, ctx: SessionContext) -> list[str]:
        """Distinct non-empty product categories, sorted."""
        self._authorize(ctx, "product.view")
        rows = self.session.execute(
            select(Product.category)
            .where(Product.business_id == ctx.business_id, Product.category.is_not(None))
            .distinct()
        ).scalars().all()
        return sorted(rows)

    # -------------------------------------------------------------------------
    # Modifiers
    # -------------------------------------------------------------------------

    def get_group(self, ctx: SessionContext, group_id: UUID) -> ModifierGroupInfo:
        self._authorize(ctx, "modifier.view")
        group = self.session.get(ModifierGroup, group_id)
        if group is None or group.business_id != ctx.business_id:
            raise ModifierGroupNotFoundError(str(group_id))
        return group.to_dto(self._counts([group.id]).get(group.id, 0))

    def list_groups(
        self,
        ctx: SessionContext,
        skip: int = 0,
        limit: int | None = None,
        active_only: bool = True,
    ) -> list[ModifierGroupInfo]:
        self._authorize(ctx, "modifier.view")
        offset, size = self.pagination.clamp(skip, limit)
        stmt = select(ModifierGroup).where(ModifierGroup.business_id == ctx.business_id)
        if active_only:
            stmt = stmt.where(ModifierGroup.is_active == True)  # noqa: E712
        stmt = stmt.order_by(ModifierGroup.name, ModifierGroup.id).offset(offset).limit(size)
        groups = self.session.execute(stmt).scalars().all()
        counts = self._counts([g.id for g in groups])
        return [g.to_dto(counts.get(g.id, 0)) for g in groups]

    def get_modifier(self, ctx: SessionContext, modifier_id: UUID) -> ModifierInfo:
        self._authorize(ctx, "modifier.view")
        modifier = self.session.get(Modifier, modifier_id)
        if modifier is None or modifier.business_id != ctx.business_id:
            raise ModifierNotFoundError(str(modifier_id))
        return modifier.to_dto()

    def list_by_group(
        self,
        ctx: SessionContext,
        group_id: UUID,
        active_only: bool = True,
    ) -> list[ModifierInfo]:
        group = self.get_group(ctx, group_id)
        stmt = select(Modifier).where(Modifier.group_id == group.id)
        if active_only:
            stmt = stmt.where(Modifier.is_active == True)  # noqa: E712
        stmt = stmt.order_by(Modifier.name, Modifier.id)
        return [m.to_dto() for m in self.session.execute(stmt).scalars().all()]

    def product_modifiers(self, ctx: SessionContext, product_id: UUID) -> list[ModifierInfo]:
        """Modifiers currently assigned to ``product_id``."""
        product = self.get_product(ctx, product_id)
        stmt = (
            select(Modifier)
            .join(ProductModifier, ProductModifier.modifier_id == Modifier.id)
            .where(ProductModifier.product_id == product.id)
            .order_by(Modifier.name, Modifier.id)
        )
        return [m.to_dto() for m in self.session.execute(stmt).scalars().all()]

    def _counts(self, group_ids: list[UUID]) -> dict[UUID, int]:
        if not group_ids:
            return {}
        rows = self.session.execute(
            select(Modifier.group_id, func.count())
            .where(Modifier.group_id.in_(group_ids))
            .group_by(Modifier.group_id)
        ).all()
        return {group_id: count for group_id, count in rows}

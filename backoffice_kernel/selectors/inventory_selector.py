"""
Module: backoffice_kernel.selectors.inventory_selector
Responsibility: Read-only queries over inventory items: listing, low-stock
    alerts, the valuation summary, and the ledger balance check that compares
    stored stock with the movement log.
Architecture position: Kernel > Selectors.  May import from models/,
    domain/ and selectors/base.py.

Invariants enforced:
    - Low stock is derived here (quantity_in_stock < min_stock), never
      stored.
    - verify_item_balance sums deltas in Python with Decimal so the check
      does not depend on the database's numeric aggregation.

Failure modes:
    - InventoryItemNotFoundError for an unknown item or one belonging to
      another business.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import select

from backoffice_kernel.domain.dtos import (
    InventoryItemInfo,
    InventorySummary,
    LedgerBalanceCheck,
    LowStockAlert,
    MovementType,
)
from backoffice_kernel.domain.session import SessionContext
from backoffice_kernel.exceptions import InventoryItemNotFoundError
from backoffice_kernel.logging_config import get_logger
from backoffice_kernel.models.inventory import InventoryItem, Movement
from backoffice_kernel.selectors.base import BaseSelector

logger = get_logger("selectors.inventory")


class InventorySelector(BaseSelector[InventoryItem]):
    """Reads over the caller's inventory items."""

    def get_item(self, ctx: SessionContext, item_id: UUID) -> InventoryItemInfo:
        self._authorize(ctx, "inventory.item.view")
        return self._load(ctx, item_id).to_dto()

    def list_items(
        self,
        ctx: SessionContext,
        skip: int = 0,
        limit: int | None = None,
        category: str | None = None,
        supplier_id: UUID | None = None,
        active_only: bool = True,
    ) -> list[InventoryItemInfo]:
        """
        List items ordered by name.

        Args:
            skip: Rows to skip.
            limit: Page size; clamped by the pagination policy.
            category: Only items of this category.
            supplier_id: Only items bought from this supplier.
            active_only: Exclude deactivated items.
        """
        self._authorize(ctx, "inventory.item.view")
        offset, size = self.pagination.clamp(skip, limit)

        stmt = select(InventoryItem).where(InventoryItem.business_id == ctx.business_id)
        if active_only:
            stmt = stmt.where(InventoryItem.is_active == True)  # noqa: E712
        if category is not None:
            stmt = stmt.where(InventoryItem.category == category)
        if supplier_id is not None:
            stmt = stmt.where(InventoryItem.supplier_id == supplier_id)
        stmt = stmt.order_by(InventoryItem.name, InventoryItem.id).offset(offset).limit(size)

        return [item.to_dto() for item in self.session.execute(stmt).scalars().all()]

    def low_stock_alerts(self, ctx: SessionContext) -> list[LowStockAlert]:
        """Active items strictly below their minimum, largest shortfall first."""
        self._authorize(ctx, "inventory.item.view")
        stmt = select(InventoryItem).where(
            InventoryItem.business_id == ctx.business_id,
            InventoryItem.is_active == True,  # noqa: E712
            InventoryItem.min_stock.is_not(None),
            InventoryItem.quantity_in_stock < InventoryItem.min_stock,
        )
        alerts = [
            LowStockAlert(
                item_id=item.id,
                name=item.name,
                unit_of_measure=item.unit_of_measure,
                quantity_in_stock=item.quantity_in_stock,
                min_stock=item.min_stock,
            )
            for item in self.session.execute(stmt).scalars().all()
        ]
        return sorted(alerts, key=lambda a: (-a.shortfall, a.name))

    def inventory_summary(self, ctx: SessionContext) -> InventorySummary:
        self._authorize(ctx, "inventory.item.view")
        items = self.session.execute(
            select(InventoryItem).where(
                InventoryItem.business_id == ctx.business_id,
                InventoryItem.is_active == True,  # noqa: E712
            )
        ).scalars().all()

        total = sum((i.quantity_in_stock * i.unit_price for i in items), Decimal("0"))
        return InventorySummary(
            business_id=ctx.business_id,
            total_value=total,
            active_items=len(items),
            low_stock_count=sum(1 for i in items if i.is_low_stock),
        )

    def verify_item_balance(self, ctx: SessionContext, item_id: UUID) -> LedgerBalanceCheck:
        """Compare stored stock with the movement log for one item."""
        self._authorize(ctx, "inventory.movement.view")
        item = self._load(ctx, item_id)

        movements = self.session.execute(
            select(Movement).where(Movement.item_id == item.id)
        ).scalars().all()

        movement_sum = sum((m.quantity_delta for m in movements), Decimal("0"))
        effective_sum = sum(
            (
                m.quantity_delta
                for m in movements
                if not m.reverted and m.movement_type != MovementType.REVERT.value
            ),
            Decimal("0"),
        )
        check = LedgerBalanceCheck(
            item_id=item.id,
            stored_quantity=item.quantity_in_stock,
            movement_sum=movement_sum,
            effective_sum=effective_sum,
            movement_count=len(movements),
        )
        if not check.is_consistent:
            logger.error(
                "ledger_balance_mismatch",
                extra={
                    "item_id": str(item.id),
                    "stored_quantity": str(check.stored_quantity),
                    "movement_sum": str(movement_sum),
                    "effective_sum": str(effective_sum),
                },
            )
        return check

    def _load(self, ctx: SessionContext, item_id: UUID) -> InventoryItem:
        item = self.session.get(InventoryItem, item_id)
        if item is None or item.business_id != ctx.business_id:
            raise InventoryItemNotFoundError(str(item_id))
        return item

"""
InventoryLedgerService -- the only writer of stock.

Responsibility:
    Creates and maintains inventory items, applies signed stock deltas
    through the append-only movement log, and reverts movements with
    compensating entries.  TransferService reuses ``apply_movement`` so
    every stock change in the system shares one check-then-write path.

Architecture position:
    Kernel > Services -- imperative shell.  Flushes only; the caller owns
    the transaction.

Invariants enforced:
    - quantity_in_stock >= 0 after every write (InsufficientStockError
      otherwise, raised before anything is written).
    - quantity_in_stock == sum of all movement deltas for the item: the
      movement row and the new stock are written in the same flush.
    - A movement is reverted at most once; the original is never edited
      except for its ``reverted`` flag.
    - The item row is locked (SELECT ... FOR UPDATE) for the duration of
      the check-then-write.

Failure modes:
    - InvalidQuantityError: zero delta / negative initial quantity.
    - InsufficientStockError: current + delta < 0.
    - InventoryItemInactiveError: movement against a deactivated item.
    - MovementAlreadyRevertedError / MovementNotRevertibleError.
    - ReasonTooShortError: revert reason below the configured minimum.
    - PermissionDeniedError / TenantMismatchError.

Audit relevance:
    Every write logs a structured event; the movement rows themselves are
    the audit trail (actor, reason, before/after stock).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from backoffice_kernel.db.types import to_decimal
from backoffice_kernel.domain.clock import Clock
from backoffice_kernel.domain.dtos import InventoryItemInfo, MovementInfo, MovementType
from backoffice_kernel.domain.policies import LedgerPolicy
from backoffice_kernel.domain.session import SessionContext
from backoffice_kernel.exceptions import (
    DuplicateSkuError,
    InsufficientStockError,
    InvalidFieldError,
    InvalidQuantityError,
    InventoryItemInactiveError,
    InventoryItemNotFoundError,
    MovementAlreadyRevertedError,
    MovementNotFoundError,
    MovementNotRevertibleError,
    ReasonTooShortError,
    SupplierNotFoundError,
)
from backoffice_kernel.logging_config import get_logger
from backoffice_kernel.models.inventory import InventoryItem, Movement
from backoffice_kernel.models.supplier import Supplier
from backoffice_kernel.services.authority import PermissionAuthority
from backoffice_kernel.services.base import BaseService

logger = get_logger("services.inventory_ledger")

_HUNDRED = Decimal("100")

# Fields update_item() may change; stock is never among them
_UPDATABLE_FIELDS = frozenset({
    "name",
    "category",
    "unit_of_measure",
    "sku",
    "unit_price",
    "tax_percentage",
    "include_tax",
    "min_stock",
    "max_stock",
    "supplier_id",
})


@dataclass(frozen=True)
class RevertResult:
    """Immutable result of a successful revert."""

    original_movement_id: UUID
    revert_movement: MovementInfo
    item: InventoryItemInfo


class InventoryLedgerService(BaseService[InventoryItem]):
    """
    Stock writer for one business at a time.

    Contract:
        Every public method takes a SessionContext and acts on the
        context's business only.

    Non-goals:
        - Sale-time consumption of recipes or modifiers.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        authority: PermissionAuthority | None = None,
        policy: LedgerPolicy | None = None,
    ):
        super().__init__(session, clock, authority)
        self.policy = policy or LedgerPolicy()

    # -------------------------------------------------------------------------
    # Item maintenance
    # -------------------------------------------------------------------------

    def create_item(
        self,
        ctx: SessionContext,
        *,
        name: str,
        unit_of_measure: str,
        unit_price: Decimal | int | str = Decimal("0"),
        category: str | None = None,
        sku: str | None = None,
        tax_percentage: Decimal | int | str = Decimal("0"),
        include_tax: bool = False,
        min_stock: Decimal | int | str | None = None,
        max_stock: Decimal | int | str | None = None,
        supplier_id: UUID | None = None,
        initial_quantity: Decimal | int | str = Decimal("0"),
    ) -> InventoryItemInfo:
        """Create an item.  A positive initial quantity is booked as manual_in."""
        self._authorize(ctx, "inventory.item.manage")

        values = self._validated_fields(
            ctx,
            {
                "name": name,
                "unit_of_measure": unit_of_measure,
                "unit_price": unit_price,
                "category": category,
                "sku": sku,
                "tax_percentage": tax_percentage,
                "include_tax": include_tax,
                "min_stock": min_stock,
                "max_stock": max_stock,
                "supplier_id": supplier_id,
            },
        )
        self._check_stock_bounds(values.get("min_stock"), values.get("max_stock"))

        initial = to_decimal(initial_quantity, "initial_quantity")
        if initial < 0:
            raise InvalidQuantityError("initial_quantity", initial, "must not be negative")

        item = InventoryItem(
            business_id=ctx.business_id,
            quantity_in_stock=Decimal("0"),
            is_active=True,
            created_by_id=ctx.user_id,
            **values,
        )
        self.session.add(item)
        self.session.flush()

        if initial > 0:
            self.apply_movement(
                item,
                initial,
                MovementType.MANUAL_IN,
                actor_id=ctx.user_id,
                reason="Initial stock",
            )

        logger.info(
            "inventory_item_created",
            extra={
                "item_id": str(item.id),
                "item_name": item.name,
                "initial_quantity": str(initial),
            },
        )
        return item.to_dto()

    def update_item(
        self,
        ctx: SessionContext,
        item_id: UUID,
        **changes: Any,
    ) -> InventoryItemInfo:
        """Update item metadata.  Stock can only change through movements."""
        self._authorize(ctx, "inventory.item.manage")

        unknown = set(changes) - _UPDATABLE_FIELDS
        if unknown:
            field = sorted(unknown)[0]
            raise InvalidFieldError(field, "field cannot be updated")

        item = self._get_item(ctx, item_id, for_update=True)
        values = self._validated_fields(ctx, changes, current_item=item)
        min_stock = values.get("min_stock", item.min_stock)
        max_stock = values.get("max_stock", item.max_stock)
        self._check_stock_bounds(min_stock, max_stock)

        for key, value in values.items():
            setattr(item, key, value)
        item.updated_by_id = ctx.user_id
        self.session.flush()

        logger.info(
            "inventory_item_updated",
            extra={"item_id": str(item.id), "fields": sorted(values)},
        )
        return item.to_dto()

    def deactivate_item(self, ctx: SessionContext, item_id: UUID) -> InventoryItemInfo:
        """Soft-delete: the item keeps its movements and stock."""
        self._authorize(ctx, "inventory.item.manage")
        item = self._get_item(ctx, item_id, for_update=True)
        item.is_active = False
        item.updated_by_id = ctx.user_id
        self.session.flush()
        logger.info("inventory_item_deactivated", extra={"item_id": str(item.id)})
        return item.to_dto()

    # -------------------------------------------------------------------------
    # Stock writes
    # -------------------------------------------------------------------------

    def adjust(
        self,
        ctx: SessionContext,
        item_id: UUID,
        delta: Decimal | int | str,
        reason: str | None,
    ) -> MovementInfo:
        """Apply a signed manual adjustment.

        Raises:
            InsufficientStockError: if current stock + delta < 0.  Nothing
                is written in that case.
        """
        self._authorize(ctx, "inventory.adjust")

        amount = to_decimal(delta, "delta")
        if amount == 0:
            raise InvalidQuantityError("delta", amount, "must not be zero")
        reason = (reason or "").strip() or None
        if self.policy.adjust_reason_required and reason is None:
            raise InvalidFieldError("reason", "an adjustment reason is required")

        item = self._get_item(ctx, item_id, for_update=True)
        if not item.is_active:
            raise InventoryItemInactiveError(str(item.id))

        movement_type = MovementType.MANUAL_IN if amount > 0 else MovementType.MANUAL_OUT
        movement = self.apply_movement(
            item,
            amount,
            movement_type,
            actor_id=ctx.user_id,
            reason=reason,
        )
        logger.info(
            "stock_adjusted",
            extra={
                "item_id": str(item.id),
                "movement_id": str(movement.id),
                "delta": str(amount),
                "stock_after": str(movement.stock_after),
            },
        )
        return movement.to_dto()

    def revert(
        self,
        ctx: SessionContext,
        movement_id: UUID,
        reason: str,
    ) -> RevertResult:
        """Compensate a movement with a new ``revert`` movement.

        The original is flagged reverted; its other fields never change.
        """
        self._authorize(ctx, "inventory.movement.revert")

        reason = (reason or "").strip()
        if len(reason) < self.policy.revert_reason_min_length:
            raise ReasonTooShortError(self.policy.revert_reason_min_length, len(reason))

        original = self._lock(Movement, movement_id)
        if original is None or original.business_id != ctx.business_id:
            raise MovementNotFoundError(str(movement_id))

        if original.reverted:
            logger.warning(
                "movement_revert_rejected",
                extra={"movement_id": str(movement_id), "reason": "already_reverted"},
            )
            raise MovementAlreadyRevertedError(str(movement_id))

        movement_type = MovementType(original.movement_type)
        if not movement_type.is_revertible:
            raise MovementNotRevertibleError(str(movement_id), movement_type.value)

        item = self._get_item(ctx, original.item_id, for_update=True)
        compensating = self.apply_movement(
            item,
            -original.quantity_delta,
            MovementType.REVERT,
            actor_id=ctx.user_id,
            reason=reason,
            reverts_movement_id=original.id,
        )
        original.reverted = True
        original.updated_by_id = ctx.user_id
        self.session.flush()

        logger.info(
            "movement_reverted",
            extra={
                "movement_id": str(original.id),
                "revert_movement_id": str(compensating.id),
                "item_id": str(item.id),
                "stock_after": str(item.quantity_in_stock),
            },
        )
        return RevertResult(
            original_movement_id=original.id,
            revert_movement=compensating.to_dto(),
            item=item.to_dto(),
        )

    def apply_movement(
        self,
        item: InventoryItem,
        delta: Decimal,
        movement_type: MovementType,
        *,
        actor_id: UUID,
        reason: str | None = None,
        transfer_id: UUID | None = None,
        reverts_movement_id: UUID | None = None,
        occurred_at: datetime | None = None,
    ) -> Movement:
        """Append a movement and move the stock projection with it.

        Preconditions:
            ``item`` was loaded with a row lock in the current transaction.

        Raises:
            InsufficientStockError: if the result would be negative.
        """
        before = item.quantity_in_stock
        after = before + delta
        if after < 0:
            logger.warning(
                "stock_movement_rejected",
                extra={
                    "item_id": str(item.id),
                    "movement_type": movement_type.value,
                    "available": str(before),
                    "delta": str(delta),
                },
            )
            raise InsufficientStockError(str(item.id), available=before, requested=-delta)

        now = occurred_at or self.clock.now()
        movement = Movement(
            business_id=item.business_id,
            item_id=item.id,
            movement_type=movement_type.value,
            quantity_delta=delta,
            stock_before=before,
            stock_after=after,
            reason=reason,
            actor_id=actor_id,
            occurred_at=now,
            reverted=False,
            transfer_id=transfer_id,
            reverts_movement_id=reverts_movement_id,
            created_by_id=actor_id,
        )
        self.session.add(movement)

        was_low = item.is_low_stock
        item.quantity_in_stock = after
        item.updated_by_id = actor_id
        if delta > 0 and movement_type in (MovementType.MANUAL_IN, MovementType.TRANSFER_IN):
            item.last_restock_at = now
        self.session.flush()

        if item.is_low_stock and not was_low:
            logger.warning(
                "low_stock_threshold_crossed",
                extra={
                    "item_id": str(item.id),
                    "quantity_in_stock": str(after),
                    "min_stock": str(item.min_stock),
                },
            )
        return movement

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def lock_item(self, item_id: UUID) -> InventoryItem:
        """Lock an item of any business (cross-tenant transfer use)."""
        item = self._lock(InventoryItem, item_id)
        if item is None:
            raise InventoryItemNotFoundError(str(item_id))
        return item

    def _get_item(
        self,
        ctx: SessionContext,
        item_id: UUID,
        for_update: bool = False,
    ) -> InventoryItem:
        if for_update:
            item = self._lock(InventoryItem, item_id)
        else:
            item = self.session.get(InventoryItem, item_id)
        if item is None:
            raise InventoryItemNotFoundError(str(item_id))
        self.authority.require_same_business(ctx, "InventoryItem", item.id, item.business_id)
        return item

    def _validated_fields(
        self,
        ctx: SessionContext,
        raw: dict[str, Any],
        current_item: InventoryItem | None = None,
    ) -> dict[str, Any]:
        values: dict[str, Any] = {}
        for key, value in raw.items():
            if key in ("name", "unit_of_measure"):
                text = (value or "").strip()
                if not text:
                    raise InvalidFieldError(key, "is required")
                values[key] = text
            elif key in ("category", "sku"):
                values[key] = (value or "").strip() or None
            elif key == "unit_price":
                price = to_decimal(value, key)
                if price < 0:
                    raise InvalidFieldError("unit_price", "must not be negative", price)
                values[key] = price
            elif key == "tax_percentage":
                pct = to_decimal(value, key)
                if pct < 0 or pct > _HUNDRED:
                    raise InvalidFieldError("tax_percentage", "must be between 0 and 100", pct)
                values[key] = pct
            elif key in ("min_stock", "max_stock"):
                if value is None:
                    values[key] = None
                    continue
                threshold = to_decimal(value, key)
                if threshold < 0:
                    raise InvalidFieldError(key, "must not be negative", threshold)
                values[key] = threshold
            elif key == "include_tax":
                values[key] = bool(value)
            elif key == "supplier_id":
                if value is not None:
                    supplier = self.session.get(Supplier, value)
                    if supplier is None or supplier.business_id != ctx.business_id:
                        raise SupplierNotFoundError(str(value))
                values[key] = value

        sku = values.get("sku")
        if sku is not None:
            self._check_sku_unique(ctx.business_id, sku, current_item)
        return values

    def _check_sku_unique(
        self,
        business_id: UUID,
        sku: str,
        current_item: InventoryItem | None,
    ) -> None:
        stmt = select(func.count()).select_from(InventoryItem).where(
            InventoryItem.business_id == business_id,
            InventoryItem.sku == sku,
        )
        if current_item is not None:
            stmt = stmt.where(InventoryItem.id != current_item.id)
        if self.session.execute(stmt).scalar_one() > 0:
            raise DuplicateSkuError(str(business_id), sku)

    @staticmethod
    def _check_stock_bounds(min_stock: Decimal | None, max_stock: Decimal | None) -> None:
        if min_stock is not None and max_stock is not None and max_stock < min_stock:
            raise InvalidFieldError("max_stock", "must be greater than or equal to min_stock", max_stock)

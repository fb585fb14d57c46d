"""
Module: backoffice_kernel.selectors.movement_selector
Responsibility: Read-only access to the append-only movement log.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Newest first: ordered by occurred_at descending.
    - Only movements of the caller's business are visible.
"""

from uuid import UUID

from sqlalchemy import select

from backoffice_kernel.db.types import to_choice
from backoffice_kernel.domain.dtos import MovementInfo, MovementType
from backoffice_kernel.domain.session import SessionContext
from backoffice_kernel.exceptions import (
    InvalidFieldError,
    InventoryItemNotFoundError,
    MovementNotFoundError,
)
from backoffice_kernel.models.inventory import InventoryItem, Movement
from backoffice_kernel.selectors.base import BaseSelector

DIRECTIONS = ("all", "in", "out", "manual")

_MANUAL_TYPES = (MovementType.MANUAL_IN.value, MovementType.MANUAL_OUT.value)


class MovementSelector(BaseSelector[Movement]):
    """Reads over the movement log."""

    def get_movement(self, ctx: SessionContext, movement_id: UUID) -> MovementInfo:
        self._authorize(ctx, "inventory.movement.view")
        movement = self.session.get(Movement, movement_id)
        if movement is None or movement.business_id != ctx.business_id:
            raise MovementNotFoundError(str(movement_id))
        return movement.to_dto()

    def list_movements(
        self,
        ctx: SessionContext,
        skip: int = 0,
        limit: int | None = None,
        movement_type: MovementType | str | None = None,
    ) -> list[MovementInfo]:
        self._authorize(ctx, "inventory.movement.view")
        offset, size = self.pagination.clamp(skip, limit)

        stmt = select(Movement).where(Movement.business_id == ctx.business_id)
        if movement_type is not None:
            chosen = to_choice(MovementType, movement_type, "movement_type")
            stmt = stmt.where(Movement.movement_type == chosen.value)
        stmt = (
            stmt.order_by(Movement.occurred_at.desc(), Movement.created_at.desc())
            .offset(offset)
            .limit(size)
        )
        return [m.to_dto() for m in self.session.execute(stmt).scalars().all()]

    def movements_for_item(
        self,
        ctx: SessionContext,
        item_id: UUID,
        skip: int = 0,
        limit: int | None = None,
        direction: str = "all",
    ) -> list[MovementInfo]:
        """
        Movement history of one item.

        Args:
            direction: ``all``, ``in`` (positive deltas), ``out`` (negative
                deltas) or ``manual`` (manual_in / manual_out only).
        """
        self._authorize(ctx, "inventory.movement.view")
        if direction not in DIRECTIONS:
            raise InvalidFieldError("direction", f"must be one of {', '.join(DIRECTIONS)}", direction)

        item = self.session.get(InventoryItem, item_id)
        if item is None or item.business_id != ctx.business_id:
            raise InventoryItemNotFoundError(str(item_id))

        offset, size = self.pagination.clamp(skip, limit or self.pagination.item_movements_limit)
        stmt = select(Movement).where(Movement.item_id == item.id)
        if direction == "in":
            stmt = stmt.where(Movement.quantity_delta > 0)
        elif direction == "out":
            stmt = stmt.where(Movement.quantity_delta < 0)
        elif direction == "manual":
            stmt = stmt.where(Movement.movement_type.in_(_MANUAL_TYPES))
        stmt = (
            stmt.order_by(Movement.occurred_at.desc(), Movement.created_at.desc())
            .offset(offset)
            .limit(size)
        )
        return [m.to_dto() for m in self.session.execute(stmt).scalars().all()]

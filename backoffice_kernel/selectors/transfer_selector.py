"""
Module: backoffice_kernel.selectors.transfer_selector
Responsibility: Read-only access to transfers from either party's side.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - A transfer is visible to its source and destination businesses only;
      anyone else gets TransferNotFoundError.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import or_, select

from backoffice_kernel.db.types import to_choice
from backoffice_kernel.domain.dtos import (
    ItemEquivalenceInfo,
    TransferDirection,
    TransferInfo,
    TransferStatus,
)
from backoffice_kernel.domain.session import SessionContext
from backoffice_kernel.exceptions import TransferNotFoundError
from backoffice_kernel.models.transfer import ItemEquivalence, Transfer
from backoffice_kernel.selectors.base import BaseSelector


class TransferSelector(BaseSelector[Transfer]):

    def get(self, ctx: SessionContext, transfer_id: UUID) -> TransferInfo:
        self._authorize(ctx, "transfer.view")
        transfer = self.session.get(Transfer, transfer_id)
        if transfer is None or ctx.business_id not in (
            transfer.from_business_id,
            transfer.to_business_id,
        ):
            raise TransferNotFoundError(str(transfer_id))
        return transfer.to_dto()

    def list(
        self,
        ctx: SessionContext,
        status: TransferStatus | str | None = None,
        direction: TransferDirection | str | None = None,
        skip: int = 0,
        limit: int | None = None,
    ) -> list[TransferInfo]:
        """
        Transfers involving the caller, newest first.

        Args:
            status: Only transfers in this state.
            direction: INCOMING (caller is destination), OUTGOING (caller
                is source) or None for both.
        """
        self._authorize(ctx, "transfer.view")
        offset, size = self.pagination.clamp(skip, limit)

        if direction is None:
            stmt = select(Transfer).where(
                or_(
                    Transfer.from_business_id == ctx.business_id,
                    Transfer.to_business_id == ctx.business_id,
                )
            )
        elif to_choice(TransferDirection, direction, "direction") == TransferDirection.INCOMING:
            stmt = select(Transfer).where(Transfer.to_business_id == ctx.business_id)
        else:
            stmt = select(Transfer).where(Transfer.from_business_id == ctx.business_id)

        if status is not None:
            stmt = stmt.where(Transfer.status == to_choice(TransferStatus, status, "status").value)
        stmt = stmt.order_by(Transfer.requested_at.desc(), Transfer.id).offset(offset).limit(size)
        return [t.to_dto() for t in self.session.execute(stmt).scalars().all()]

    def equivalences(self, ctx: SessionContext) -> list[ItemEquivalenceInfo]:
        """Item equivalences declared by the caller's business."""
        self._authorize(ctx, "transfer.view")
        rows = self.session.execute(
            select(ItemEquivalence)
            .where(ItemEquivalence.destination_business_id == ctx.business_id)
            .order_by(ItemEquivalence.source_business_id, ItemEquivalence.source_item_id)
        ).scalars().all()
        return [row.to_dto() for row in rows]

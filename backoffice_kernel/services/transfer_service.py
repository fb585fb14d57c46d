"""
TransferService -- cross-business stock transfers.

Responsibility:
    Creates transfer requests from the source business and drives them
    through TRANSFER_WORKFLOW: acceptance by the destination (the only
    transition that touches stock), rejection by the destination, and
    cancellation by the source.  Also maintains the item equivalence table
    that tells a destination which of its own items receives each source
    item.

Architecture position:
    Kernel > Services -- imperative shell.  Stock moves exclusively through
    ``InventoryLedgerService.apply_movement`` so the ledger invariants hold
    for transfer legs exactly as for manual adjustments.

Invariants enforced:
    - A transfer can only be created while the two businesses have an
      ACTIVE relationship.
    - Acceptance is all-or-nothing.  Mappings, item states and aggregated
      stock for every line are validated before the first movement is
      written; a failure raises with the ledgers untouched and the caller
      rolls the transaction back.
    - Each completed line produces exactly one ``transfer_out`` on the
      source item and one ``transfer_in`` on the mapped destination item,
      both carrying ``transfer_id``.
    - Items are locked in id order so two acceptances sharing items cannot
      deadlock.

Failure modes:
    - RelationshipNotActiveError: no active relationship.
    - EmptyTransferError / InvalidQuantityError: bad lines.
    - InsufficientStockError: aggregated request exceeds stock.
    - ItemMappingMissingError: a line has no destination item.
    - InvalidTransitionError: transfer no longer PENDING.
    - PermissionDeniedError: wrong side of the transfer for the action.

Audit relevance:
    transfer_requested / transfer_completed / transfer_rejected /
    transfer_cancelled events, plus the movement rows on both ledgers.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import datetime
from decimal import Decimal
from typing import Mapping, Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from backoffice_kernel.db.types import to_decimal
from backoffice_kernel.domain.clock import Clock
from backoffice_kernel.domain.dtos import (
    ItemEquivalenceInfo,
    MovementType,
    TransferInfo,
    TransferLineSpec,
    TransferStatus,
)
from backoffice_kernel.domain.policies import LedgerPolicy
from backoffice_kernel.domain.session import SessionContext
from backoffice_kernel.domain.workflow import Transition
from backoffice_kernel.domain.workflow_definitions import STOCK_AVAILABLE, TRANSFER_WORKFLOW
from backoffice_kernel.exceptions import (
    BusinessNotFoundError,
    EmptyTransferError,
    InsufficientStockError,
    InvalidQuantityError,
    InvalidTransitionError,
    InventoryItemInactiveError,
    InventoryItemNotFoundError,
    ItemMappingMissingError,
    PermissionDeniedError,
    RelationshipNotActiveError,
    TransferNotFoundError,
)
from backoffice_kernel.logging_config import get_logger
from backoffice_kernel.models.business import Business
from backoffice_kernel.models.inventory import InventoryItem
from backoffice_kernel.models.transfer import ItemEquivalence, Transfer, TransferLine
from backoffice_kernel.services.authority import PermissionAuthority
from backoffice_kernel.services.base import BaseService
from backoffice_kernel.services.inventory_ledger import InventoryLedgerService
from backoffice_kernel.services.relationship_service import has_active_relationship

logger = get_logger("services.transfer")

# Guard name -> TransferService method that enforces it under lock.
_GUARD_CHECKS = {STOCK_AVAILABLE: "_stock_available"}


class TransferService(BaseService[Transfer]):
    """
    Write side of the transfer workflow.

    Contract:
        ``create`` is called by the source business; ``accept`` and
        ``reject`` by the destination; ``cancel`` by the source.  Every
        method returns a TransferInfo reflecting the persisted state.

    Guarantees:
        - A rejected or cancelled transfer never wrote a movement.
        - A completed transfer wrote exactly two movements per line.

    Non-goals:
        - Partial acceptance of a subset of lines.
        - Matching items across businesses by name or SKU.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        authority: PermissionAuthority | None = None,
        ledger: InventoryLedgerService | None = None,
    ):
        super().__init__(session, clock, authority)
        self.ledger = ledger or InventoryLedgerService(
            session, self.clock, self.authority, LedgerPolicy()
        )

    # -------------------------------------------------------------------------
    # Create
    # -------------------------------------------------------------------------

    def create(
        self,
        ctx: SessionContext,
        to_business_id: UUID,
        lines: Sequence[TransferLineSpec],
        notes: str | None = None,
    ) -> TransferInfo:
        """
        Request a transfer of stock to a related business.

        Preconditions:
            - Caller holds ``transfer.create``.
            - The two businesses have an ACTIVE relationship.

        Postconditions:
            - A PENDING transfer with one line per requested line, numbered from 1.
            - No stock has moved.

        Raises:
            RelationshipNotActiveError: no active relationship.
            EmptyTransferError: ``lines`` is empty.
            InvalidQuantityError: a line quantity is not positive.
            InsufficientStockError: aggregated quantity for an item
                exceeds its current stock.
        """
        self._authorize(ctx, "transfer.create")

        destination = self.session.get(Business, to_business_id)
        if destination is None or not destination.is_active:
            raise BusinessNotFoundError(str(to_business_id))
        if to_business_id == ctx.business_id or not has_active_relationship(
            self.session, ctx.business_id, to_business_id
        ):
            raise RelationshipNotActiveError(str(ctx.business_id), str(to_business_id))

        if not lines:
            raise EmptyTransferError()

        quantities: list[Decimal] = []
        requested: dict[UUID, Decimal] = defaultdict(lambda: Decimal("0"))
        for index, spec in enumerate(lines):
            quantity = to_decimal(spec.quantity, "quantity")
            if quantity <= 0:
                raise InvalidQuantityError(
                    f"lines[{index}].quantity", quantity, "must be positive"
                )
            quantities.append(quantity)
            requested[spec.item_id] += quantity

        for item_id, total in requested.items():
            item = self._source_item(ctx, item_id)
            if item.quantity_in_stock < total:
                raise InsufficientStockError(
                    str(item.id), available=item.quantity_in_stock, requested=total
                )

        transfer = Transfer(
            from_business_id=ctx.business_id,
            to_business_id=to_business_id,
            status=TRANSFER_WORKFLOW.initial_state,
            notes=(notes or "").strip() or None,
            requested_at=self.clock.now(),
            created_by_id=ctx.user_id,
        )
        for number, (spec, quantity) in enumerate(zip(lines, quantities), start=1):
            transfer.lines.append(
                TransferLine(
                    line_number=number,
                    source_item_id=spec.item_id,
                    quantity=quantity,
                    notes=spec.notes,
                    created_by_id=ctx.user_id,
                )
            )
        self.session.add(transfer)
        self.session.flush()

        logger.info(
            "transfer_requested",
            extra={
                "transfer_id": str(transfer.id),
                "to_business_id": str(to_business_id),
                "line_count": len(quantities),
            },
        )
        return transfer.to_dto()

    # -------------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------------

    def accept(
        self,
        ctx: SessionContext,
        transfer_id: UUID,
        item_mapping: Mapping[UUID, UUID] | None = None,
    ) -> TransferInfo:
        """
        Complete a pending transfer and move the stock.

        Args:
            ctx: Destination business session.
            transfer_id: Transfer to accept.
            item_mapping: Optional ``{source_item_id: destination_item_id}``
                entries.  They are stored as item equivalences and so also
                apply to later transfers.

        Postconditions:
            - Status COMPLETED, ``completed_at`` and ``responded_by_id`` set.
            - Per line: ``transfer_out`` on the source item and
              ``transfer_in`` on the destination item.

        Raises:
            ItemMappingMissingError: a source item has no equivalence.
            InsufficientStockError: source stock dropped since creation.
            InventoryItemInactiveError: a source or destination item was
                deactivated.
            InvalidTransitionError: transfer is not PENDING.
        """
        transfer, transition = self._begin_transition(ctx, transfer_id, "accept")

        if not has_active_relationship(
            self.session, transfer.from_business_id, transfer.to_business_id
        ):
            raise RelationshipNotActiveError(
                str(transfer.from_business_id), str(transfer.to_business_id)
            )

        source_ids = {line.source_item_id for line in transfer.lines}
        for source_item_id, destination_item_id in (item_mapping or {}).items():
            if source_item_id not in source_ids:
                raise InventoryItemNotFoundError(str(source_item_id))
            self._upsert_equivalence(
                ctx, source_item_id, transfer.from_business_id, destination_item_id
            )

        resolved = self._resolve_destinations(ctx.business_id, source_ids)
        missing = sorted(str(i) for i in source_ids if i not in resolved)
        if missing:
            logger.warning(
                "transfer_mapping_missing",
                extra={"transfer_id": str(transfer.id), "source_item_ids": missing},
            )
            raise ItemMappingMissingError(str(transfer.id), missing)

        # Lock every touched item in a stable order before validating
        locked: dict[UUID, InventoryItem] = {}
        for item_id in sorted(source_ids | set(resolved.values()), key=str):
            locked[item_id] = self.ledger.lock_item(item_id)

        for item in locked.values():
            if not item.is_active:
                raise InventoryItemInactiveError(str(item.id))

        self._check_guard(transition, transfer, locked, resolved)

        now = self.clock.now()
        if transition.moves_stock:
            self._book_lines(ctx, transfer, locked, resolved, now)

        transfer.completed_at = now
        self._finish(ctx, transfer, transition)
        return transfer.to_dto()

    def reject(self, ctx: SessionContext, transfer_id: UUID) -> TransferInfo:
        """Decline a pending transfer.  No ledger effect."""
        transfer, transition = self._begin_transition(ctx, transfer_id, "reject")
        self._finish(ctx, transfer, transition)
        return transfer.to_dto()

    def cancel(self, ctx: SessionContext, transfer_id: UUID) -> TransferInfo:
        """Withdraw a pending transfer (source side).  No ledger effect."""
        transfer, transition = self._begin_transition(ctx, transfer_id, "cancel")
        self._finish(ctx, transfer, transition)
        return transfer.to_dto()

    # -------------------------------------------------------------------------
    # Item equivalences
    # -------------------------------------------------------------------------

    def declare_equivalence(
        self,
        ctx: SessionContext,
        source_item_id: UUID,
        destination_item_id: UUID,
    ) -> ItemEquivalenceInfo:
        """Declare that ``source_item_id`` is received into ``destination_item_id``.

        The source item must belong to a business with an ACTIVE
        relationship to the caller's.  Redeclaring replaces the mapping.
        """
        self._authorize(ctx, "transfer.respond")
        source = self.session.get(InventoryItem, source_item_id)
        if source is None or source.business_id == ctx.business_id:
            raise InventoryItemNotFoundError(str(source_item_id))
        if not has_active_relationship(self.session, source.business_id, ctx.business_id):
            raise RelationshipNotActiveError(str(source.business_id), str(ctx.business_id))

        equivalence = self._upsert_equivalence(
            ctx, source.id, source.business_id, destination_item_id
        )
        return equivalence.to_dto()

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _check_guard(
        self,
        transition: Transition,
        transfer: Transfer,
        locked: Mapping[UUID, InventoryItem],
        resolved: Mapping[UUID, UUID],
    ) -> None:
        if transition.guard is None:
            return
        check_name = _GUARD_CHECKS.get(transition.guard)
        if check_name is None:
            raise LookupError(f"No check registered for guard {transition.guard!r}")
        getattr(self, check_name)(transfer, locked, resolved)

    def _stock_available(
        self,
        transfer: Transfer,
        locked: Mapping[UUID, InventoryItem],
        resolved: Mapping[UUID, UUID],
    ) -> None:
        """Source stock still covers every line, summed per source item."""
        required: dict[UUID, Decimal] = defaultdict(lambda: Decimal("0"))
        for line in transfer.lines:
            required[line.source_item_id] += line.quantity

        for source_item_id, total in required.items():
            source = locked[source_item_id]
            if source.quantity_in_stock < total:
                logger.warning(
                    "transfer_stock_insufficient",
                    extra={
                        "transfer_id": str(transfer.id),
                        "item_id": str(source.id),
                        "available": str(source.quantity_in_stock),
                        "requested": str(total),
                    },
                )
                raise InsufficientStockError(
                    str(source.id), available=source.quantity_in_stock, requested=total
                )

    def _book_lines(
        self,
        ctx: SessionContext,
        transfer: Transfer,
        locked: Mapping[UUID, InventoryItem],
        resolved: Mapping[UUID, UUID],
        now: datetime,
    ) -> None:
        reason = f"Transfer {transfer.id}"
        for line in transfer.lines:
            destination_item_id = resolved[line.source_item_id]
            self.ledger.apply_movement(
                locked[line.source_item_id],
                -line.quantity,
                MovementType.TRANSFER_OUT,
                actor_id=ctx.user_id,
                reason=reason,
                transfer_id=transfer.id,
                occurred_at=now,
            )
            self.ledger.apply_movement(
                locked[destination_item_id],
                line.quantity,
                MovementType.TRANSFER_IN,
                actor_id=ctx.user_id,
                reason=reason,
                transfer_id=transfer.id,
                occurred_at=now,
            )
            line.destination_item_id = destination_item_id
            line.updated_by_id = ctx.user_id

    def _begin_transition(
        self,
        ctx: SessionContext,
        transfer_id: UUID,
        action: str,
    ) -> tuple[Transfer, Transition]:
        self.authority.require_transition(ctx, TRANSFER_WORKFLOW.name, action, self.clock.now())

        transfer = self._lock(Transfer, transfer_id)
        if transfer is None or ctx.business_id not in (
            transfer.from_business_id,
            transfer.to_business_id,
        ):
            raise TransferNotFoundError(str(transfer_id))

        current = TransferStatus(transfer.status).value
        transition = TRANSFER_WORKFLOW.find_transition(current, action)
        if transition is None:
            logger.warning(
                "transfer_transition_rejected",
                extra={
                    "transfer_id": str(transfer.id),
                    "action": action,
                    "from_state": current,
                },
            )
            raise InvalidTransitionError(
                TRANSFER_WORKFLOW.name, str(transfer.id), current, action
            )

        side_business = (
            transfer.to_business_id
            if transition.actor_side == "destination"
            else transfer.from_business_id
        )
        if side_business != ctx.business_id:
            raise PermissionDeniedError(
                role=ctx.role.value if ctx.role else None,
                permission=f"transfer.{action}",
                reason=f"only the {transition.actor_side} business can {action}",
            )
        return transfer, transition

    def _finish(self, ctx: SessionContext, transfer: Transfer, transition: Transition) -> None:
        transfer.status = transition.to_state
        transfer.responded_by_id = ctx.user_id
        transfer.updated_by_id = ctx.user_id
        self.session.flush()

        logger.info(
            f"transfer_{transition.to_state}",
            extra={
                "transfer_id": str(transfer.id),
                "action": transition.action,
                "from_state": transition.from_state,
                "to_state": transition.to_state,
            },
        )

    def _source_item(self, ctx: SessionContext, item_id: UUID) -> InventoryItem:
        item = self.session.get(InventoryItem, item_id)
        if item is None:
            raise InventoryItemNotFoundError(str(item_id))
        self.authority.require_same_business(ctx, "InventoryItem", item.id, item.business_id)
        if not item.is_active:
            raise InventoryItemInactiveError(str(item.id))
        return item

    def _resolve_destinations(
        self,
        destination_business_id: UUID,
        source_item_ids: set[UUID],
    ) -> dict[UUID, UUID]:
        rows = self.session.execute(
            select(ItemEquivalence).where(
                ItemEquivalence.destination_business_id == destination_business_id,
                ItemEquivalence.source_item_id.in_(source_item_ids),
            )
        ).scalars().all()
        return {row.source_item_id: row.destination_item_id for row in rows}

    def _upsert_equivalence(
        self,
        ctx: SessionContext,
        source_item_id: UUID,
        source_business_id: UUID,
        destination_item_id: UUID,
    ) -> ItemEquivalence:
        destination = self.session.get(InventoryItem, destination_item_id)
        if destination is None:
            raise InventoryItemNotFoundError(str(destination_item_id))
        self.authority.require_same_business(
            ctx, "InventoryItem", destination.id, destination.business_id
        )

        equivalence = self.session.execute(
            select(ItemEquivalence).where(
                ItemEquivalence.source_item_id == source_item_id,
                ItemEquivalence.destination_business_id == ctx.business_id,
            )
        ).scalar_one_or_none()

        if equivalence is None:
            equivalence = ItemEquivalence(
                source_item_id=source_item_id,
                source_business_id=source_business_id,
                destination_item_id=destination.id,
                destination_business_id=ctx.business_id,
                created_by_id=ctx.user_id,
            )
            self.session.add(equivalence)
        else:
            equivalence.destination_item_id = destination.id
            equivalence.updated_by_id = ctx.user_id
        self.session.flush()

        logger.info(
            "item_equivalence_declared",
            extra={
                "source_item_id": str(source_item_id),
                "destination_item_id": str(destination.id),
            },
        )
        return equivalence

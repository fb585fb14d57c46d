"""
Tests for TransferService and TransferSelector -- inter-business transfers.

Covers:
- create(): relationship, line and stock validation; no stock moves
- accept(): item mapping, paired transfer_out / transfer_in movements,
  stored equivalences reused by later transfers
- reject() / cancel(): side checks, no ledger effect, terminal states
- all-or-nothing acceptance through CommandExecutor
"""

from dataclasses import replace
from decimal import Decimal
from uuid import uuid4

import pytest

from backoffice_kernel.domain.commands import CommandStatus
from backoffice_kernel.domain.dtos import (
    MovementType,
    TransferDirection,
    TransferLineSpec,
    TransferStatus,
    UserRole,
)
from backoffice_kernel.domain.workflow_definitions import STOCK_AVAILABLE, TRANSFER_WORKFLOW
from backoffice_kernel.exceptions import (
    EmptyTransferError,
    InsufficientStockError,
    InvalidFieldError,
    InvalidQuantityError,
    InvalidTransitionError,
    InventoryItemInactiveError,
    ItemMappingMissingError,
    PermissionDeniedError,
    RelationshipNotActiveError,
    TenantMismatchError,
    TransferNotFoundError,
)
from backoffice_kernel.models.inventory import InventoryItem
from backoffice_kernel.models.transfer import Transfer
from backoffice_kernel.selectors.movement_selector import MovementSelector
from backoffice_kernel.selectors.transfer_selector import TransferSelector
from backoffice_kernel.services import transfer_service
from backoffice_kernel.services.command_executor import CommandExecutor
from backoffice_kernel.services.inventory_ledger import InventoryLedgerService
from backoffice_kernel.services.transfer_service import TransferService


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def stock(linked, make_item, clock):
    """Source holds Flour 100 and Sugar 5; destination holds Harina 5 and Azucar 0."""
    source, destination = linked
    items = {
        "flour": make_item(source, "Flour", initial_quantity=Decimal("100")),
        "sugar": make_item(source, "Sugar", initial_quantity=Decimal("5")),
        "harina": make_item(destination, "Harina", initial_quantity=Decimal("5")),
        "azucar": make_item(destination, "Azucar"),
    }
    clock.tick()
    return items


@pytest.fixture
def transfer_views(session, clock, authority):
    return TransferSelector(session, clock, authority=authority)


@pytest.fixture
def movements(session, clock, authority):
    return MovementSelector(session, clock, authority=authority)


def _stock(session, item_id) -> Decimal:
    return session.get(InventoryItem, item_id).quantity_in_stock


# ---------------------------------------------------------------------------
# create()
# ---------------------------------------------------------------------------


class TestCreateTransfer:

    def test_create_pending_without_moving_stock(self, linked, stock, transfers, session):
        source, destination = linked
        transfer = transfers.create(
            source,
            destination.business_id,
            [
                TransferLineSpec(stock["flour"].id, Decimal("30"), notes="Sacks"),
                TransferLineSpec(stock["sugar"].id, Decimal("2")),
            ],
            notes="Weekly top-up",
        )

        assert transfer.status == TransferStatus.PENDING
        assert transfer.from_business_id == source.business_id
        assert transfer.to_business_id == destination.business_id
        assert transfer.items_count == 2
        assert [line.line_number for line in transfer.lines] == [1, 2]
        assert transfer.lines[0].notes == "Sacks"
        assert transfer.notes == "Weekly top-up"
        assert _stock(session, stock["flour"].id) == Decimal("100")

    def test_requires_active_relationship(self, owner, partner, make_item, transfers, relationships):
        flour = make_item(owner, "Flour", initial_quantity=Decimal("10"))
        lines = [TransferLineSpec(flour.id, Decimal("1"))]
        with pytest.raises(RelationshipNotActiveError):
            transfers.create(owner, partner.business_id, lines)

        # A pending relationship is not enough
        relationships.request(owner, partner.business_id)
        with pytest.raises(RelationshipNotActiveError):
            transfers.create(owner, partner.business_id, lines)

    def test_transfer_to_self_rejected(self, linked, stock, transfers):
        source, _ = linked
        with pytest.raises(RelationshipNotActiveError):
            transfers.create(
                source, source.business_id, [TransferLineSpec(stock["flour"].id, Decimal("1"))]
            )

    def test_empty_lines(self, linked, transfers):
        source, destination = linked
        with pytest.raises(EmptyTransferError):
            transfers.create(source, destination.business_id, [])

    def test_non_positive_quantity(self, linked, stock, transfers):
        source, destination = linked
        with pytest.raises(InvalidQuantityError) as exc_info:
            transfers.create(
                source,
                destination.business_id,
                [
                    TransferLineSpec(stock["flour"].id, Decimal("1")),
                    TransferLineSpec(stock["sugar"].id, Decimal("0")),
                ],
            )
        assert exc_info.value.field == "lines[1].quantity"

    def test_quantities_aggregated_per_item(self, linked, stock, transfers):
        source, destination = linked
        with pytest.raises(InsufficientStockError) as exc_info:
            transfers.create(
                source,
                destination.business_id,
                [
                    TransferLineSpec(stock["flour"].id, Decimal("60")),
                    TransferLineSpec(stock["flour"].id, Decimal("60")),
                ],
            )
        assert exc_info.value.requested == Decimal("120")

    def test_cannot_send_another_business_item(self, linked, stock, transfers):
        source, destination = linked
        with pytest.raises(TenantMismatchError):
            transfers.create(
                source, destination.business_id, [TransferLineSpec(stock["harina"].id, Decimal("1"))]
            )

    def test_cashier_cannot_create(self, linked, stock, make_user, transfers):
        source, destination = linked
        cashier = make_user(source, UserRole.CASHIER)
        with pytest.raises(PermissionDeniedError):
            transfers.create(
                cashier, destination.business_id, [TransferLineSpec(stock["flour"].id, Decimal("1"))]
            )


# ---------------------------------------------------------------------------
# accept()
# ---------------------------------------------------------------------------


class TestAcceptTransfer:

    @pytest.fixture
    def pending(self, linked, stock, transfers, clock):
        source, destination = linked
        transfer = transfers.create(
            source, destination.business_id, [TransferLineSpec(stock["flour"].id, Decimal("30"))]
        )
        clock.tick()
        return transfer

    def test_accept_moves_stock(self, linked, stock, pending, transfers, session, clock):
        _, destination = linked
        accepted = transfers.accept(
            destination, pending.id, item_mapping={stock["flour"].id: stock["harina"].id}
        )

        assert accepted.status == TransferStatus.COMPLETED
        assert accepted.completed_at == clock.now()
        assert accepted.responded_by_id == destination.user_id
        assert accepted.lines[0].destination_item_id == stock["harina"].id
        assert _stock(session, stock["flour"].id) == Decimal("70")
        assert _stock(session, stock["harina"].id) == Decimal("35")

    def test_accept_writes_paired_movements(self, linked, stock, pending, transfers, movements):
        source, destination = linked
        transfers.accept(destination, pending.id, {stock["flour"].id: stock["harina"].id})

        out = movements.movements_for_item(source, stock["flour"].id, direction="out")
        inbound = movements.movements_for_item(destination, stock["harina"].id, direction="in")
        assert out[0].movement_type == MovementType.TRANSFER_OUT
        assert out[0].quantity_delta == Decimal("-30")
        assert out[0].transfer_id == pending.id
        assert inbound[0].movement_type == MovementType.TRANSFER_IN
        assert inbound[0].quantity_delta == Decimal("30")
        assert inbound[0].actor_id == destination.user_id
        assert out[0].occurred_at == inbound[0].occurred_at

    def test_mapping_remembered_for_next_transfer(
        self, linked, stock, pending, transfers, transfer_views, clock, session
    ):
        source, destination = linked
        transfers.accept(destination, pending.id, {stock["flour"].id: stock["harina"].id})
        clock.tick()

        second = transfers.create(
            source, destination.business_id, [TransferLineSpec(stock["flour"].id, Decimal("10"))]
        )
        clock.tick()
        transfers.accept(destination, second.id)

        assert _stock(session, stock["harina"].id) == Decimal("45")
        equivalences = transfer_views.equivalences(destination)
        assert len(equivalences) == 1
        assert equivalences[0].source_business_id == source.business_id

    def test_declared_equivalence_used(self, linked, stock, pending, transfers, session):
        _, destination = linked
        transfers.declare_equivalence(destination, stock["flour"].id, stock["harina"].id)
        transfers.accept(destination, pending.id)
        assert _stock(session, stock["harina"].id) == Decimal("35")

    def test_missing_mapping(self, linked, stock, pending, transfers, captured_logs):
        _, destination = linked
        with pytest.raises(ItemMappingMissingError) as exc_info:
            transfers.accept(destination, pending.id)
        assert exc_info.value.source_item_ids == [str(stock["flour"].id)]
        assert any(r["message"] == "transfer_mapping_missing" for r in captured_logs())

    def test_mapping_to_foreign_item_blocked(self, linked, stock, pending, transfers):
        _, destination = linked
        with pytest.raises(TenantMismatchError):
            transfers.accept(destination, pending.id, {stock["flour"].id: stock["sugar"].id})

    def test_inactive_destination_item(self, linked, stock, pending, transfers, ledger):
        _, destination = linked
        ledger.deactivate_item(destination, stock["harina"].id)
        with pytest.raises(InventoryItemInactiveError):
            transfers.accept(destination, pending.id, {stock["flour"].id: stock["harina"].id})

    def test_stock_rechecked_at_acceptance(self, linked, stock, pending, transfers, ledger, session):
        source, destination = linked
        ledger.adjust(source, stock["flour"].id, Decimal("-80"), "Sold out")
        with pytest.raises(InsufficientStockError):
            transfers.accept(destination, pending.id, {stock["flour"].id: stock["harina"].id})
        assert _stock(session, stock["flour"].id) == Decimal("20")

    def test_accept_edge_drives_stock_check_and_booking(
        self, linked, stock, pending, transfers, ledger, session, monkeypatch
    ):
        source, destination = linked
        edge = TRANSFER_WORKFLOW.find_transition("pending", "accept")
        assert edge.guard == STOCK_AVAILABLE and edge.moves_stock

        bookless = replace(edge, guard=None, moves_stock=False)
        workflow = replace(
            TRANSFER_WORKFLOW,
            transitions=tuple(bookless if t is edge else t for t in TRANSFER_WORKFLOW.transitions),
        )
        monkeypatch.setattr(transfer_service, "TRANSFER_WORKFLOW", workflow)
        ledger.adjust(source, stock["flour"].id, Decimal("-80"), "Sold out")

        accepted = transfers.accept(destination, pending.id, {stock["flour"].id: stock["harina"].id})

        assert accepted.status == TransferStatus.COMPLETED
        assert _stock(session, stock["flour"].id) == Decimal("20")
        assert _stock(session, stock["harina"].id) == Decimal("5")

    def test_unregistered_guard_refuses_acceptance(
        self, linked, stock, pending, transfers, session, monkeypatch
    ):
        _, destination = linked
        edge = TRANSFER_WORKFLOW.find_transition("pending", "accept")
        guarded = replace(edge, guard="supervisor_signed_off")
        workflow = replace(
            TRANSFER_WORKFLOW,
            transitions=tuple(guarded if t is edge else t for t in TRANSFER_WORKFLOW.transitions),
        )
        monkeypatch.setattr(transfer_service, "TRANSFER_WORKFLOW", workflow)

        with pytest.raises(LookupError, match="supervisor_signed_off"):
            transfers.accept(destination, pending.id, {stock["flour"].id: stock["harina"].id})
        assert _stock(session, stock["harina"].id) == Decimal("5")

    def test_source_cannot_accept(self, linked, stock, pending, transfers):
        source, _ = linked
        with pytest.raises(PermissionDeniedError):
            transfers.accept(source, pending.id, {stock["flour"].id: stock["harina"].id})

    def test_outsider_sees_not_found(self, pending, transfers, make_tenant):
        with pytest.raises(TransferNotFoundError):
            transfers.accept(make_tenant("Outsider"), pending.id)

    def test_accept_twice_rejected(self, linked, stock, pending, transfers):
        _, destination = linked
        transfers.accept(destination, pending.id, {stock["flour"].id: stock["harina"].id})
        with pytest.raises(InvalidTransitionError) as exc_info:
            transfers.accept(destination, pending.id)
        assert exc_info.value.from_state == "completed"


# ---------------------------------------------------------------------------
# reject() / cancel()
# ---------------------------------------------------------------------------


class TestRejectAndCancel:

    @pytest.fixture
    def pending(self, linked, stock, transfers):
        source, destination = linked
        return transfers.create(
            source, destination.business_id, [TransferLineSpec(stock["flour"].id, Decimal("30"))]
        )

    def test_destination_rejects(self, linked, stock, pending, transfers, movements, captured_logs):
        source, destination = linked
        rejected = transfers.reject(destination, pending.id)
        assert rejected.status == TransferStatus.REJECTED
        assert rejected.is_terminal
        assert movements.movements_for_item(source, stock["flour"].id, direction="out") == []
        assert any(r["message"] == "transfer_rejected" for r in captured_logs())

    def test_source_cancels(self, linked, pending, transfers):
        source, _ = linked
        cancelled = transfers.cancel(source, pending.id)
        assert cancelled.status == TransferStatus.CANCELLED

    def test_destination_cannot_cancel(self, linked, pending, transfers):
        _, destination = linked
        with pytest.raises(PermissionDeniedError):
            transfers.cancel(destination, pending.id)

    def test_cancelled_cannot_be_accepted(self, linked, stock, pending, transfers):
        source, destination = linked
        transfers.cancel(source, pending.id)
        with pytest.raises(InvalidTransitionError):
            transfers.accept(destination, pending.id, {stock["flour"].id: stock["harina"].id})


# ---------------------------------------------------------------------------
# Selector
# ---------------------------------------------------------------------------


class TestTransferSelector:

    def test_directions_and_status(self, linked, stock, transfers, transfer_views, clock):
        source, destination = linked
        first = transfers.create(
            source, destination.business_id, [TransferLineSpec(stock["flour"].id, Decimal("1"))]
        )
        clock.tick()
        second = transfers.create(
            source, destination.business_id, [TransferLineSpec(stock["sugar"].id, Decimal("1"))]
        )
        clock.tick()
        transfers.cancel(source, first.id)

        outgoing = transfer_views.list(source, direction=TransferDirection.OUTGOING)
        assert [t.id for t in outgoing] == [second.id, first.id]
        assert transfer_views.list(source, direction="incoming") == []
        incoming_pending = transfer_views.list(destination, status="pending", direction="incoming")
        assert [t.id for t in incoming_pending] == [second.id]

    def test_unknown_filter_values(self, linked, transfer_views):
        source, _ = linked
        with pytest.raises(InvalidFieldError) as exc_info:
            transfer_views.list(source, status="lost")
        assert exc_info.value.field == "status"
        with pytest.raises(InvalidFieldError):
            transfer_views.list(source, direction="sideways")

    def test_get_hidden_from_outsiders(self, linked, stock, transfers, transfer_views, make_tenant):
        source, destination = linked
        transfer = transfers.create(
            source, destination.business_id, [TransferLineSpec(stock["flour"].id, Decimal("1"))]
        )
        assert transfer_views.get(destination, transfer.id).id == transfer.id
        with pytest.raises(TransferNotFoundError):
            transfer_views.get(make_tenant("Outsider"), uuid4())


# ---------------------------------------------------------------------------
# Atomicity through CommandExecutor
# ---------------------------------------------------------------------------


class TestAcceptAtomicity:

    def test_failed_accept_leaves_nothing_behind(
        self, linked, stock, transfers, session, session_factory, clock, authority, transfer_views
    ):
        """A mapping stored during a failed accept is rolled back with it."""
        source, destination = linked
        transfer = transfers.create(
            source,
            destination.business_id,
            [
                TransferLineSpec(stock["flour"].id, Decimal("30")),
                TransferLineSpec(stock["sugar"].id, Decimal("4")),
            ],
        )
        session.commit()
        clock.tick()

        def accept(s):
            service = TransferService(
                s, clock, authority, InventoryLedgerService(s, clock, authority)
            )
            # Sugar has no destination mapping
            return service.accept(destination, transfer.id, {stock["flour"].id: stock["harina"].id})

        result = CommandExecutor(session_factory).execute("transfer.accept", accept, destination)

        assert result.status == CommandStatus.REJECTED
        assert result.error_code == "ITEM_MAPPING_MISSING"

        session.expire_all()
        assert TransferStatus(session.get(Transfer, transfer.id).status) == TransferStatus.PENDING
        assert _stock(session, stock["flour"].id) == Decimal("100")
        assert _stock(session, stock["harina"].id) == Decimal("5")
        assert transfer_views.equivalences(destination) == []

    def test_insufficient_stock_rejects_whole_transfer(
        self, linked, stock, transfers, ledger, session, session_factory, clock, authority
    ):
        source, destination = linked
        transfer = transfers.create(
            source,
            destination.business_id,
            [
                TransferLineSpec(stock["flour"].id, Decimal("30")),
                TransferLineSpec(stock["sugar"].id, Decimal("4")),
            ],
        )
        clock.tick()
        ledger.adjust(source, stock["sugar"].id, Decimal("-3"), "Used for cakes")
        session.commit()
        clock.tick()

        mapping = {
            stock["flour"].id: stock["harina"].id,
            stock["sugar"].id: stock["azucar"].id,
        }

        def accept(s):
            return TransferService(s, clock, authority).accept(destination, transfer.id, mapping)

        result = CommandExecutor(session_factory).execute("transfer.accept", accept, destination)

        assert result.status == CommandStatus.REJECTED
        assert result.error_code == "INSUFFICIENT_STOCK"
        assert result.error_category == "conflict"

        session.expire_all()
        assert TransferStatus(session.get(Transfer, transfer.id).status) == TransferStatus.PENDING
        assert _stock(session, stock["flour"].id) == Decimal("100")
        assert _stock(session, stock["sugar"].id) == Decimal("2")
        assert _stock(session, stock["harina"].id) == Decimal("5")
        assert _stock(session, stock["azucar"].id) == Decimal("0")

    def test_successful_accept_commits(
        self, linked, stock, transfers, session, session_factory, clock, authority
    ):
        source, destination = linked
        transfer = transfers.create(
            source, destination.business_id, [TransferLineSpec(stock["flour"].id, Decimal("30"))]
        )
        session.commit()
        clock.tick()

        def accept(s):
            return TransferService(s, clock, authority).accept(
                destination, transfer.id, {stock["flour"].id: stock["harina"].id}
            )

        result = CommandExecutor(session_factory).execute("transfer.accept", accept, destination)

        assert result.is_success
        assert result.value.status == TransferStatus.COMPLETED
        session.expire_all()
        assert _stock(session, stock["flour"].id) == Decimal("70")
        assert _stock(session, stock["harina"].id) == Decimal("35")

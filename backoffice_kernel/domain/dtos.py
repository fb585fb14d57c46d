"""
DTOs -- Pure domain data transfer objects.

Responsibility:
    Defines the immutable data structures returned by services and
    selectors: one ``*Info`` DTO per persisted entity plus the derived
    read models (low-stock alerts, inventory summary, cost breakdown,
    ledger balance check).

Architecture position:
    Kernel > Domain -- pure, zero I/O.  ORM models convert themselves to
    these DTOs via ``to_dto()``; callers never receive ORM instances.

Invariants enforced:
    - Every quantity and price field is Decimal.
    - Derived flags (low stock, loss) are computed from stored fields on
      read, never stored.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID


# =============================================================================
# Enumerations (stored as strings by the ORM)
# =============================================================================


class UserRole(str, Enum):
    """Staff roles.  OWNER and ADMIN are manager roles."""

    OWNER = "owner"
    ADMIN = "admin"
    CASHIER = "cashier"
    WAITER = "waiter"
    COOK = "cook"

    @property
    def is_manager(self) -> bool:
        return self in (UserRole.OWNER, UserRole.ADMIN)


class MovementType(str, Enum):
    """Classification of stock-affecting events."""

    MANUAL_IN = "manual_in"
    MANUAL_OUT = "manual_out"
    SALE = "sale"
    TRANSFER_IN = "transfer_in"
    TRANSFER_OUT = "transfer_out"
    RECIPE_CONSUMPTION = "recipe_consumption"
    REVERT = "revert"

    @property
    def is_revertible(self) -> bool:
        """Compensating rows and transfer legs cannot be reverted directly."""
        return self not in (
            MovementType.REVERT,
            MovementType.TRANSFER_IN,
            MovementType.TRANSFER_OUT,
        )


class RelationshipStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    REJECTED = "rejected"


class TransferStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    REJECTED = "rejected"


class TransferDirection(str, Enum):
    """Point of view of the calling business on a transfer."""

    INCOMING = "incoming"
    OUTGOING = "outgoing"


class CostBasis(str, Enum):
    """Which unit price feeds recipe costing."""

    LIVE = "live"
    SNAPSHOT = "snapshot"


# =============================================================================
# Tenancy & people
# =============================================================================


@dataclass(frozen=True)
class BusinessInfo:
    id: UUID
    name: str
    is_active: bool = True


@dataclass(frozen=True)
class UserInfo:
    id: UUID
    business_id: UUID
    email: str
    full_name: str
    role: UserRole
    phone: str | None = None
    document: str | None = None
    is_active: bool = True

    @property
    def is_manager(self) -> bool:
        return self.role.is_manager


@dataclass(frozen=True)
class SupplierInfo:
    id: UUID
    business_id: UUID
    name: str
    supplier_type: str | None = None
    tax_id: str | None = None
    legal_representative: str | None = None
    phone: str | None = None
    email: str | None = None
    address: str | None = None
    is_active: bool = True


# =============================================================================
# Inventory ledger
# =============================================================================


@dataclass(frozen=True)
class InventoryItemInfo:
    """Read model of an inventory item."""

    id: UUID
    business_id: UUID
    name: str
    unit_of_measure: str
    quantity_in_stock: Decimal
    unit_price: Decimal
    category: str | None = None
    sku: str | None = None
    tax_percentage: Decimal = Decimal("0")
    include_tax: bool = False
    min_stock: Decimal | None = None
    max_stock: Decimal | None = None
    supplier_id: UUID | None = None
    last_restock_at: datetime | None = None
    is_active: bool = True

    @property
    def is_low_stock(self) -> bool:
        """Derived on read: stock strictly below the minimum threshold."""
        return self.min_stock is not None and self.quantity_in_stock < self.min_stock

    @property
    def stock_value(self) -> Decimal:
        return self.quantity_in_stock * self.unit_price


@dataclass(frozen=True)
class MovementInfo:
    """Read model of one append-only movement row."""

    id: UUID
    business_id: UUID
    item_id: UUID
    movement_type: MovementType
    quantity_delta: Decimal
    stock_before: Decimal
    stock_after: Decimal
    actor_id: UUID
    occurred_at: datetime
    reason: str | None = None
    reverted: bool = False
    reverts_movement_id: UUID | None = None
    transfer_id: UUID | None = None

    @property
    def is_inbound(self) -> bool:
        return self.quantity_delta > 0


@dataclass(frozen=True)
class LowStockAlert:
    item_id: UUID
    name: str
    unit_of_measure: str
    quantity_in_stock: Decimal
    min_stock: Decimal

    @property
    def shortfall(self) -> Decimal:
        return self.min_stock - self.quantity_in_stock


@dataclass(frozen=True)
class InventorySummary:
    business_id: UUID
    total_value: Decimal
    active_items: int
    low_stock_count: int


@dataclass(frozen=True)
class LedgerBalanceCheck:
    """Stored stock compared with the movement log for one item.

    ``movement_sum`` is the sum of every delta; ``effective_sum`` excludes
    reverted originals and their compensating revert rows.  Both must equal
    ``stored_quantity``.
    """

    item_id: UUID
    stored_quantity: Decimal
    movement_sum: Decimal
    effective_sum: Decimal
    movement_count: int

    @property
    def is_consistent(self) -> bool:
        return self.stored_quantity == self.movement_sum == self.effective_sum


# =============================================================================
# Relationships & transfers
# =============================================================================


@dataclass(frozen=True)
class RelationshipInfo:
    id: UUID
    requester_business_id: UUID
    target_business_id: UUID
    status: RelationshipStatus
    requested_by_id: UUID
    responded_by_id: UUID | None = None
    responded_at: datetime | None = None

    def counterpart_of(self, business_id: UUID) -> UUID:
        if business_id == self.requester_business_id:
            return self.target_business_id
        return self.requester_business_id


@dataclass(frozen=True)
class TransferLineInfo:
    id: UUID
    line_number: int
    source_item_id: UUID
    quantity: Decimal
    notes: str | None = None
    destination_item_id: UUID | None = None


@dataclass(frozen=True)
class TransferInfo:
    id: UUID
    from_business_id: UUID
    to_business_id: UUID
    status: TransferStatus
    created_by_id: UUID
    created_at: datetime
    lines: tuple[TransferLineInfo, ...] = field(default_factory=tuple)
    notes: str | None = None
    responded_by_id: UUID | None = None
    completed_at: datetime | None = None

    @property
    def items_count(self) -> int:
        return len(self.lines)

    @property
    def is_terminal(self) -> bool:
        return self.status != TransferStatus.PENDING


@dataclass(frozen=True)
class TransferLineSpec:
    """Input line for creating a transfer."""

    item_id: UUID
    quantity: Decimal
    notes: str | None = None


@dataclass(frozen=True)
class ItemEquivalenceInfo:
    id: UUID
    source_item_id: UUID
    source_business_id: UUID
    destination_item_id: UUID
    destination_business_id: UUID


# =============================================================================
# Products, costing & modifiers
# =============================================================================


@dataclass(frozen=True)
class IngredientSpec:
    """Input ingredient line: inventory item and quantity per product unit."""

    item_id: UUID
    quantity: Decimal


@dataclass(frozen=True)
class IngredientInfo:
    item_id: UUID
    quantity: Decimal
    unit_price_snapshot: Decimal
    line_number: int


@dataclass(frozen=True)
class ProductInfo:
    id: UUID
    business_id: UUID
    name: str
    sale_price: Decimal
    ingredients: tuple[IngredientInfo, ...] = field(default_factory=tuple)
    category: str | None = None
    description: str | None = None
    profit_margin_percentage: Decimal | None = None
    image_url: str | None = None
    is_active: bool = True

    @property
    def ingredient_item_ids(self) -> frozenset[UUID]:
        return frozenset(i.item_id for i in self.ingredients)

    @property
    def ingredients_count(self) -> int:
        return len(self.ingredients)


@dataclass(frozen=True)
class CostLine:
    item_id: UUID
    item_name: str
    quantity: Decimal
    unit_price: Decimal

    @property
    def line_cost(self) -> Decimal:
        return self.quantity * self.unit_price


@dataclass(frozen=True)
class CostBreakdown:
    """Recipe cost and margin for one product.

    A negative profit is a warning state (``is_loss``), never an error.
    """

    product_id: UUID
    basis: CostBasis
    sale_price: Decimal
    lines: tuple[CostLine, ...]

    @property
    def total_cost(self) -> Decimal:
        return sum((line.line_cost for line in self.lines), Decimal("0"))

    @property
    def profit(self) -> Decimal:
        return self.sale_price - self.total_cost

    @property
    def is_loss(self) -> bool:
        return self.profit < 0

    @property
    def margin_percentage(self) -> Decimal | None:
        if self.sale_price == 0:
            return None
        return self.profit / self.sale_price * Decimal("100")


@dataclass(frozen=True)
class ModifierGroupInfo:
    id: UUID
    business_id: UUID
    name: str
    allow_multiple: bool
    is_required: bool
    description: str | None = None
    is_active: bool = True
    modifiers_count: int = 0


@dataclass(frozen=True)
class ModifierItemSpec:
    """Signed inventory delta carried by a modifier (+ consumes more)."""

    item_id: UUID
    quantity: Decimal


@dataclass(frozen=True)
class ModifierInfo:
    id: UUID
    group_id: UUID
    business_id: UUID
    name: str
    price_extra: Decimal
    inventory_items: tuple[ModifierItemSpec, ...] = field(default_factory=tuple)
    description: str | None = None
    is_active: bool = True

    @property
    def item_ids(self) -> frozenset[UUID]:
        return frozenset(i.item_id for i in self.inventory_items)

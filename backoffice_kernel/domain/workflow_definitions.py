"""
Lifecycle definitions for transfers and business relationships.

Transfer:      pending --accept--> completed
               pending --reject--> rejected
               pending --cancel--> cancelled

Relationship:  pending --accept--> active
               pending --reject--> rejected
"""

from backoffice_kernel.domain.dtos import RelationshipStatus, TransferStatus
from backoffice_kernel.domain.workflow import Transition, Workflow

# Every line still has enough source stock when the destination accepts.
STOCK_AVAILABLE = "stock_available"


# -----------------------------------------------------------------------------
# Transfer Workflow
# -----------------------------------------------------------------------------

TRANSFER_WORKFLOW = Workflow(
    name="inventory_transfer",
    description="Cross-business stock transfer requiring destination acceptance",
    initial_state=TransferStatus.PENDING.value,
    states=tuple(s.value for s in TransferStatus),
    transitions=(
        Transition(
            from_state=TransferStatus.PENDING.value,
            to_state=TransferStatus.COMPLETED.value,
            action="accept",
            actor_side="destination",
            guard=STOCK_AVAILABLE,
            moves_stock=True,
        ),
        Transition(
            from_state=TransferStatus.PENDING.value,
            to_state=TransferStatus.REJECTED.value,
            action="reject",
            actor_side="destination",
        ),
        Transition(
            from_state=TransferStatus.PENDING.value,
            to_state=TransferStatus.CANCELLED.value,
            action="cancel",
            actor_side="source",
        ),
    ),
    terminal_states=(
        TransferStatus.COMPLETED.value,
        TransferStatus.REJECTED.value,
        TransferStatus.CANCELLED.value,
    ),
)


# -----------------------------------------------------------------------------
# Relationship Workflow
# -----------------------------------------------------------------------------

RELATIONSHIP_WORKFLOW = Workflow(
    name="business_relationship",
    description="Mutual-consent link gating transfers between two businesses",
    initial_state=RelationshipStatus.PENDING.value,
    states=tuple(s.value for s in RelationshipStatus),
    transitions=(
        Transition(
            from_state=RelationshipStatus.PENDING.value,
            to_state=RelationshipStatus.ACTIVE.value,
            action="accept",
            actor_side="target",
        ),
        Transition(
            from_state=RelationshipStatus.PENDING.value,
            to_state=RelationshipStatus.REJECTED.value,
            action="reject",
            actor_side="target",
        ),
    ),
    terminal_states=(RelationshipStatus.REJECTED.value,),
)

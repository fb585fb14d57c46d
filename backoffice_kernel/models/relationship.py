"""
Module: backoffice_kernel.models.relationship
Responsibility: ORM persistence for mutual-consent links between two
    businesses.  An ACTIVE relationship is the precondition for transfers.
Architecture position: Kernel > Models.  May import from db/ and domain/dtos.

Invariants enforced:
    - requester_business_id != target_business_id (ck_relationship_not_self).
    - At most one non-rejected relationship per unordered pair.  Checked by
      RelationshipService under a lock on both business rows; the ordered
      pair_key column makes lookups independent of who asked first.

Failure modes:
    - IntegrityError on self-relationship written directly.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from backoffice_kernel.db.base import TrackedBase
from backoffice_kernel.domain.dtos import RelationshipInfo, RelationshipStatus


def make_pair_key(business_a: UUID, business_b: UUID) -> str:
    """Order-independent key for a pair of businesses."""
    low, high = sorted((str(business_a), str(business_b)))
    return f"{low}:{high}"


class BusinessRelationship(TrackedBase):
    """
    Link between a requester and a target business.

    Contract:
        Created PENDING by the requester's owner; moved to ACTIVE or
        REJECTED only by the target's owner.  REJECTED is terminal.
    """

    __tablename__ = "business_relationships"

    __table_args__ = (
        CheckConstraint(
            "requester_business_id <> target_business_id",
            name="ck_relationship_not_self",
        ),
        Index("idx_relationship_pair", "pair_key", "status"),
        Index("idx_relationship_requester", "requester_business_id", "status"),
        Index("idx_relationship_target", "target_business_id", "status"),
    )

    requester_business_id: Mapped[UUID] = mapped_column(
        ForeignKey("businesses.id"),
        nullable=False,
    )

    target_business_id: Mapped[UUID] = mapped_column(
        ForeignKey("businesses.id"),
        nullable=False,
    )

    pair_key: Mapped[str] = mapped_column(String(80), nullable=False)

    status: Mapped[RelationshipStatus] = mapped_column(
        String(20),
        nullable=False,
        default=RelationshipStatus.PENDING,
    )

    requested_by_id: Mapped[UUID] = mapped_column(nullable=False)

    responded_by_id: Mapped[UUID | None] = mapped_column(nullable=True)

    responded_at: Mapped[datetime | None] = mapped_column(nullable=True)

    @property
    def is_active(self) -> bool:
        return RelationshipStatus(self.status) == RelationshipStatus.ACTIVE

    def involves(self, business_id: UUID) -> bool:
        return business_id in (self.requester_business_id, self.target_business_id)

    def to_dto(self) -> RelationshipInfo:
        return RelationshipInfo(
            id=self.id,
            requester_business_id=self.requester_business_id,
            target_business_id=self.target_business_id,
            status=RelationshipStatus(self.status),
            requested_by_id=self.requested_by_id,
            responded_by_id=self.responded_by_id,
            responded_at=self.responded_at,
        )

    def __repr__(self) -> str:
        return (
            f"<BusinessRelationship {self.requester_business_id} -> "
            f"{self.target_business_id} ({self.status})>"
        )

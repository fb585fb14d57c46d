"""
Module: backoffice_kernel.selectors.relationship_selector
Responsibility: Read-only views of the caller's relationship graph: active
    partners, requests waiting for the caller, and requests the caller sent.
Architecture position: Kernel > Selectors.
"""

from uuid import UUID

from sqlalchemy import or_, select

from backoffice_kernel.domain.dtos import RelationshipInfo, RelationshipStatus
from backoffice_kernel.domain.session import SessionContext
from backoffice_kernel.exceptions import RelationshipNotFoundError
from backoffice_kernel.models.relationship import BusinessRelationship
from backoffice_kernel.selectors.base import BaseSelector


class RelationshipSelector(BaseSelector[BusinessRelationship]):

    def get(self, ctx: SessionContext, relationship_id: UUID) -> RelationshipInfo:
        self._authorize(ctx, "relationship.view")
        rel = self.session.get(BusinessRelationship, relationship_id)
        if rel is None or not rel.involves(ctx.business_id):
            raise RelationshipNotFoundError(str(relationship_id))
        return rel.to_dto()

    def active(self, ctx: SessionContext) -> list[RelationshipInfo]:
        self._authorize(ctx, "relationship.view")
        stmt = select(BusinessRelationship).where(
            BusinessRelationship.status == RelationshipStatus.ACTIVE.value,
            or_(
                BusinessRelationship.requester_business_id == ctx.business_id,
                BusinessRelationship.target_business_id == ctx.business_id,
            ),
        )
        return self._run(stmt)

    def pending_received(self, ctx: SessionContext) -> list[RelationshipInfo]:
        self._authorize(ctx, "relationship.view")
        stmt = select(BusinessRelationship).where(
            BusinessRelationship.status == RelationshipStatus.PENDING.value,
            BusinessRelationship.target_business_id == ctx.business_id,
        )
        return self._run(stmt)

    def pending_sent(self, ctx: SessionContext) -> list[RelationshipInfo]:
        self._authorize(ctx, "relationship.view")
        stmt = select(BusinessRelationship).where(
            BusinessRelationship.status == RelationshipStatus.PENDING.value,
            BusinessRelationship.requester_business_id == ctx.business_id,
        )
        return self._run(stmt)

    def partner_ids(self, ctx: SessionContext) -> list[UUID]:
        """Businesses the caller may transfer stock to or from."""
        return [rel.counterpart_of(ctx.business_id) for rel in self.active(ctx)]

    def _run(self, stmt) -> list[RelationshipInfo]:
        stmt = stmt.order_by(BusinessRelationship.created_at.desc(), BusinessRelationship.id)
        return [rel.to_dto() for rel in self.session.execute(stmt).scalars().all()]

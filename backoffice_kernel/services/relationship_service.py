"""
RelationshipService -- mutual-consent links between businesses.

Responsibility:
    Requests, accepts and rejects business relationships.  An ACTIVE
    relationship is the precondition TransferService checks before any
    transfer is created.

Architecture position:
    Kernel > Services -- imperative shell.  Transitions are looked up in
    RELATIONSHIP_WORKFLOW; this service never hard-codes "pending -> x".

Invariants enforced:
    - At most one non-rejected relationship per unordered pair.  Both
      business rows are locked (in id order) before the check so two
      concurrent requests for the same pair serialize.
    - Only an owner may request; only the target's owner may respond,
      and only while PENDING.
    - REJECTED is terminal.  Whether a rejected pair may file a new
      request is a policy decision (RelationshipPolicy).

Failure modes:
    - SelfRelationshipError, BusinessNotFoundError.
    - DuplicateRelationshipError: a pending or active link exists.
    - RelationshipRejectedError: pair was rejected and re-request is off.
    - InvalidTransitionError: respond to a non-pending relationship.
    - PermissionDeniedError: non-owner, or requester trying to respond.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from backoffice_kernel.domain.clock import Clock
from backoffice_kernel.domain.dtos import RelationshipInfo, RelationshipStatus
from backoffice_kernel.domain.policies import RelationshipPolicy
from backoffice_kernel.domain.session import SessionContext
from backoffice_kernel.domain.workflow_definitions import RELATIONSHIP_WORKFLOW
from backoffice_kernel.exceptions import (
    BusinessNotFoundError,
    DuplicateRelationshipError,
    InvalidTransitionError,
    PermissionDeniedError,
    RelationshipNotFoundError,
    RelationshipRejectedError,
    SelfRelationshipError,
)
from backoffice_kernel.logging_config import get_logger
from backoffice_kernel.models.business import Business
from backoffice_kernel.models.relationship import BusinessRelationship, make_pair_key
from backoffice_kernel.services.authority import PermissionAuthority
from backoffice_kernel.services.base import BaseService

logger = get_logger("services.relationship")


def has_active_relationship(session: Session, business_a: UUID, business_b: UUID) -> bool:
    """True iff the unordered pair has an ACTIVE relationship."""
    stmt = select(BusinessRelationship.id).where(
        BusinessRelationship.pair_key == make_pair_key(business_a, business_b),
        BusinessRelationship.status == RelationshipStatus.ACTIVE.value,
    )
    return session.execute(stmt.limit(1)).first() is not None


class RelationshipService(BaseService[BusinessRelationship]):
    """
    Write side of the relationship graph.

    Contract:
        ``request`` creates PENDING; ``accept`` / ``reject`` fire the
        corresponding RELATIONSHIP_WORKFLOW transitions.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        authority: PermissionAuthority | None = None,
        policy: RelationshipPolicy | None = None,
    ):
        super().__init__(session, clock, authority)
        self.policy = policy or RelationshipPolicy()

    def request(self, ctx: SessionContext, target_business_id: UUID) -> RelationshipInfo:
        """Ask ``target_business_id`` for a relationship."""
        self._authorize(ctx, "relationship.manage")
        requester_id = ctx.business_id

        if target_business_id == requester_id:
            raise SelfRelationshipError(str(requester_id))

        # Lock both tenants in a stable order to serialize pair checks
        for business_id in sorted((requester_id, target_business_id), key=str):
            business = self._lock(Business, business_id)
            if business is None or not business.is_active:
                raise BusinessNotFoundError(str(business_id))

        pair_key = make_pair_key(requester_id, target_business_id)
        existing = self.session.execute(
            select(BusinessRelationship).where(BusinessRelationship.pair_key == pair_key)
        ).scalars().all()

        for rel in existing:
            status = RelationshipStatus(rel.status)
            if status != RelationshipStatus.REJECTED:
                logger.warning(
                    "relationship_request_rejected",
                    extra={
                        "target_business_id": str(target_business_id),
                        "existing_relationship_id": str(rel.id),
                        "existing_status": status.value,
                    },
                )
                raise DuplicateRelationshipError(
                    str(requester_id), str(target_business_id), status.value
                )

        if existing and not self.policy.allow_rerequest_after_rejection:
            raise RelationshipRejectedError(str(requester_id), str(target_business_id))

        relationship = BusinessRelationship(
            requester_business_id=requester_id,
            target_business_id=target_business_id,
            pair_key=pair_key,
            status=RELATIONSHIP_WORKFLOW.initial_state,
            requested_by_id=ctx.user_id,
            created_by_id=ctx.user_id,
        )
        self.session.add(relationship)
        self.session.flush()

        logger.info(
            "relationship_requested",
            extra={
                "relationship_id": str(relationship.id),
                "target_business_id": str(target_business_id),
            },
        )
        return relationship.to_dto()

    def accept(self, ctx: SessionContext, relationship_id: UUID) -> RelationshipInfo:
        return self._respond(ctx, relationship_id, "accept")

    def reject(self, ctx: SessionContext, relationship_id: UUID) -> RelationshipInfo:
        return self._respond(ctx, relationship_id, "reject")

    def _respond(
        self,
        ctx: SessionContext,
        relationship_id: UUID,
        action: str,
    ) -> RelationshipInfo:
        self.authority.require_transition(
            ctx, RELATIONSHIP_WORKFLOW.name, action, self.clock.now()
        )

        relationship = self._lock(BusinessRelationship, relationship_id)
        if relationship is None or not relationship.involves(ctx.business_id):
            raise RelationshipNotFoundError(str(relationship_id))

        if relationship.target_business_id != ctx.business_id:
            raise PermissionDeniedError(
                role=ctx.role.value if ctx.role else None,
                permission="relationship.manage",
                reason="only the target business can respond",
            )

        transition = RELATIONSHIP_WORKFLOW.find_transition(
            RelationshipStatus(relationship.status).value, action
        )
        if transition is None:
            raise InvalidTransitionError(
                RELATIONSHIP_WORKFLOW.name,
                str(relationship.id),
                RelationshipStatus(relationship.status).value,
                action,
            )

        relationship.status = transition.to_state
        relationship.responded_by_id = ctx.user_id
        relationship.responded_at = self.clock.now()
        relationship.updated_by_id = ctx.user_id
        self.session.flush()

        logger.info(
            "relationship_transitioned",
            extra={
                "relationship_id": str(relationship.id),
                "action": action,
                "from_state": transition.from_state,
                "to_state": transition.to_state,
            },
        )
        return relationship.to_dto()

"""
Tests for RelationshipService and RelationshipSelector.

Covers:
- request(): PENDING creation, self and duplicate guards, unknown target
- accept() / reject(): only the target responds, terminal states
- re-request after rejection (policy controlled)
- selector views: active, pending received / sent, partner ids
"""

from uuid import uuid4

import pytest

from backoffice_kernel.domain.dtos import RelationshipStatus, UserRole
from backoffice_kernel.domain.policies import RelationshipPolicy
from backoffice_kernel.exceptions import (
    BusinessNotFoundError,
    DuplicateRelationshipError,
    InvalidTransitionError,
    PermissionDeniedError,
    RelationshipNotFoundError,
    RelationshipRejectedError,
    SelfRelationshipError,
)
from backoffice_kernel.selectors.relationship_selector import RelationshipSelector
from backoffice_kernel.services.relationship_service import (
    RelationshipService,
    has_active_relationship,
)


@pytest.fixture
def graph(session, clock, authority):
    return RelationshipSelector(session, clock, authority=authority)


class TestRequest:

    def test_request_creates_pending(self, owner, partner, relationships):
        rel = relationships.request(owner, partner.business_id)
        assert rel.status == RelationshipStatus.PENDING
        assert rel.requester_business_id == owner.business_id
        assert rel.target_business_id == partner.business_id
        assert rel.requested_by_id == owner.user_id
        assert rel.responded_at is None

    def test_self_request_rejected(self, owner, relationships):
        with pytest.raises(SelfRelationshipError):
            relationships.request(owner, owner.business_id)

    def test_unknown_target(self, owner, relationships):
        with pytest.raises(BusinessNotFoundError):
            relationships.request(owner, uuid4())

    def test_duplicate_pending_in_either_direction(self, owner, partner, relationships):
        relationships.request(owner, partner.business_id)
        with pytest.raises(DuplicateRelationshipError) as exc_info:
            relationships.request(partner, owner.business_id)
        assert exc_info.value.existing_status == "pending"

    def test_duplicate_active(self, linked, relationships):
        source, destination = linked
        with pytest.raises(DuplicateRelationshipError) as exc_info:
            relationships.request(source, destination.business_id)
        assert exc_info.value.existing_status == "active"

    def test_waiter_cannot_request(self, owner, partner, make_user, relationships):
        waiter = make_user(owner, UserRole.WAITER)
        with pytest.raises(PermissionDeniedError):
            relationships.request(waiter, partner.business_id)


class TestRespond:

    def test_target_accepts(self, owner, partner, relationships, clock, session):
        rel = relationships.request(owner, partner.business_id)
        clock.tick()
        accepted = relationships.accept(partner, rel.id)

        assert accepted.status == RelationshipStatus.ACTIVE
        assert accepted.responded_by_id == partner.user_id
        assert accepted.responded_at == clock.now()
        assert has_active_relationship(session, owner.business_id, partner.business_id)
        assert has_active_relationship(session, partner.business_id, owner.business_id)

    def test_requester_cannot_accept_own_request(self, owner, partner, relationships):
        rel = relationships.request(owner, partner.business_id)
        with pytest.raises(PermissionDeniedError) as exc_info:
            relationships.accept(owner, rel.id)
        assert "target" in exc_info.value.reason

    def test_outsider_sees_not_found(self, owner, partner, make_tenant, relationships):
        outsider = make_tenant("Pizzeria")
        rel = relationships.request(owner, partner.business_id)
        with pytest.raises(RelationshipNotFoundError):
            relationships.accept(outsider, rel.id)

    def test_admin_cannot_respond(self, owner, partner, make_user, relationships):
        rel = relationships.request(owner, partner.business_id)
        admin = make_user(partner, UserRole.ADMIN)
        with pytest.raises(PermissionDeniedError):
            relationships.reject(admin, rel.id)

    def test_reject_is_terminal(self, owner, partner, relationships, clock, session):
        rel = relationships.request(owner, partner.business_id)
        clock.tick()
        rejected = relationships.reject(partner, rel.id)
        assert rejected.status == RelationshipStatus.REJECTED
        assert not has_active_relationship(session, owner.business_id, partner.business_id)

        with pytest.raises(InvalidTransitionError) as exc_info:
            relationships.accept(partner, rel.id)
        assert exc_info.value.from_state == "rejected"

    def test_accept_twice_rejected(self, owner, partner, relationships):
        rel = relationships.request(owner, partner.business_id)
        relationships.accept(partner, rel.id)
        with pytest.raises(InvalidTransitionError):
            relationships.accept(partner, rel.id)

    def test_transition_logged(self, owner, partner, relationships, captured_logs):
        rel = relationships.request(owner, partner.business_id)
        relationships.accept(partner, rel.id)
        transitions = [r for r in captured_logs() if r["message"] == "relationship_transitioned"]
        assert transitions[-1]["from_state"] == "pending"
        assert transitions[-1]["to_state"] == "active"


class TestRerequest:

    def test_rerequest_after_rejection_blocked_by_default(self, owner, partner, relationships):
        rel = relationships.request(owner, partner.business_id)
        relationships.reject(partner, rel.id)
        with pytest.raises(RelationshipRejectedError):
            relationships.request(owner, partner.business_id)

    def test_rerequest_allowed_by_policy(self, owner, partner, session, clock, authority):
        service = RelationshipService(
            session, clock, authority, RelationshipPolicy(allow_rerequest_after_rejection=True)
        )
        first = service.request(owner, partner.business_id)
        clock.tick()
        service.reject(partner, first.id)
        clock.tick()
        second = service.request(partner, owner.business_id)
        assert second.id != first.id
        assert second.status == RelationshipStatus.PENDING


class TestRelationshipSelector:

    def test_pending_views(self, owner, partner, relationships, graph):
        rel = relationships.request(owner, partner.business_id)
        assert [r.id for r in graph.pending_sent(owner)] == [rel.id]
        assert [r.id for r in graph.pending_received(partner)] == [rel.id]
        assert graph.pending_received(owner) == []
        assert graph.active(owner) == []

    def test_partner_ids(self, linked, graph, make_tenant):
        source, destination = linked
        make_tenant("Unrelated")
        assert graph.partner_ids(source) == [destination.business_id]
        assert graph.partner_ids(destination) == [source.business_id]

    def test_get_hidden_from_outsiders(self, owner, partner, make_tenant, relationships, graph):
        rel = relationships.request(owner, partner.business_id)
        assert graph.get(partner, rel.id).id == rel.id
        with pytest.raises(RelationshipNotFoundError):
            graph.get(make_tenant("Outsider"), rel.id)

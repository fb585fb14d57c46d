"""
backoffice_kernel.services.authority -- Role and tenant enforcement.

Responsibility:
    Decide whether the caller in a SessionContext may perform an action
    (required permission), may fire a workflow transition, may act on a
    row of a given business, and may grant a role to a new employee.

Architecture position:
    Kernel > Services.  Pure decision logic over an RbacPolicy; every
    write service calls ``require`` before touching the session.

Invariants:
    - Deny by default: a role missing from the policy has no permissions.
    - Tenant isolation: ``require_same_business`` is called on every row a
      service loads by id.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from backoffice_kernel.domain.policies import RbacPolicy
from backoffice_kernel.domain.session import SessionContext
from backoffice_kernel.exceptions import (
    PermissionDeniedError,
    RoleAssignmentError,
    TenantMismatchError,
)
from backoffice_kernel.logging_config import get_logger

logger = get_logger("services.authority")

# (workflow_name, action) -> permission
WORKFLOW_ACTION_TO_PERMISSION: dict[tuple[str, str], str] = {
    ("inventory_transfer", "accept"): "transfer.respond",
    ("inventory_transfer", "reject"): "transfer.respond",
    ("inventory_transfer", "cancel"): "transfer.cancel",
    ("business_relationship", "accept"): "relationship.manage",
    ("business_relationship", "reject"): "relationship.manage",
}


def get_permission_for_transition(workflow_name: str, action: str) -> str | None:
    """Return the permission required for this workflow transition, or None."""
    return WORKFLOW_ACTION_TO_PERMISSION.get((workflow_name, action))


def check_rbac(
    policy: RbacPolicy,
    role: str | None,
    required_permission: str,
) -> tuple[bool, str]:
    """Check whether ``role`` grants ``required_permission``.

    Returns:
        (allowed, reason).  reason is empty when allowed.
    """
    if not role:
        return (False, "RBAC: no role on session")
    granted = policy.role_permissions.get(role, frozenset())
    if required_permission not in granted:
        return (False, f"RBAC: permission '{required_permission}' not granted to role '{role}'")
    return (True, "")


class PermissionAuthority:
    """
    Gatekeeper used by every service.

    Contract:
        ``require`` returns the active context or raises; it never returns
        False.  Callers pass ``now`` from their injected Clock so session
        expiry is deterministic in tests.
    """

    def __init__(self, policy: RbacPolicy | None = None):
        self._policy = policy or RbacPolicy()

    @property
    def policy(self) -> RbacPolicy:
        return self._policy

    def has_permission(self, ctx: SessionContext, permission: str) -> bool:
        role = ctx.role.value if ctx.role else None
        allowed, _ = check_rbac(self._policy, role, permission)
        return allowed

    def require(
        self,
        ctx: SessionContext,
        permission: str,
        now: datetime,
    ) -> SessionContext:
        ctx.require_active(now)
        role = ctx.role.value if ctx.role else None
        allowed, reason = check_rbac(self._policy, role, permission)
        if not allowed:
            logger.warning(
                "permission_denied",
                extra={
                    "user_id": str(ctx.user_id),
                    "role": role,
                    "permission": permission,
                },
            )
            raise PermissionDeniedError(role=role, permission=permission, reason=reason)
        return ctx

    def require_transition(
        self,
        ctx: SessionContext,
        workflow_name: str,
        action: str,
        now: datetime,
    ) -> SessionContext:
        permission = get_permission_for_transition(workflow_name, action)
        if permission is None:
            ctx.require_active(now)
            return ctx
        return self.require(ctx, permission, now)

    def require_same_business(
        self,
        ctx: SessionContext,
        entity_type: str,
        entity_id: UUID,
        business_id: UUID,
    ) -> None:
        if business_id != ctx.business_id:
            logger.warning(
                "tenant_mismatch_blocked",
                extra={
                    "entity_type": entity_type,
                    "entity_id": str(entity_id),
                    "caller_business_id": str(ctx.business_id),
                },
            )
            raise TenantMismatchError(
                entity_type=entity_type,
                entity_id=str(entity_id),
                business_id=str(ctx.business_id),
            )

    def require_can_assign(self, ctx: SessionContext, target_role: str) -> None:
        actor_role = ctx.role.value if ctx.role else ""
        if target_role not in self._policy.assignable_roles.get(actor_role, frozenset()):
            raise RoleAssignmentError(actor_role=actor_role, target_role=target_role)

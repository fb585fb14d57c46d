"""
Policies -- tunable business rules handed to services.

Responsibility:
    Frozen value objects holding the knobs services need (revert reason
    length, re-request rule, page sizes, token lifetimes, role permissions).
    The kernel never reads configuration files; ``backoffice_config.bridges``
    builds these from the active YAML configuration, and the defaults below
    match the shipped default set.

Architecture position:
    Kernel > Domain -- pure, zero I/O.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping

from backoffice_kernel.domain.dtos import UserRole


@dataclass(frozen=True)
class LedgerPolicy:
    """Inventory ledger rules."""

    revert_reason_min_length: int = 10
    adjust_reason_required: bool = True

    def __post_init__(self) -> None:
        if self.revert_reason_min_length < 0:
            raise ValueError("revert_reason_min_length cannot be negative")


@dataclass(frozen=True)
class RelationshipPolicy:
    # A rejected pair may ask again only when this is enabled
    allow_rerequest_after_rejection: bool = False


@dataclass(frozen=True)
class PaginationPolicy:
    default_limit: int = 100
    max_limit: int = 500
    item_movements_limit: int = 50

    def __post_init__(self) -> None:
        if self.default_limit <= 0 or self.max_limit <= 0:
            raise ValueError("Pagination limits must be positive")
        if self.default_limit > self.max_limit:
            raise ValueError("default_limit cannot exceed max_limit")

    def clamp(self, skip: int, limit: int | None) -> tuple[int, int]:
        """Return a valid (offset, limit) pair."""
        offset = max(skip, 0)
        if limit is None or limit <= 0:
            return offset, self.default_limit
        return offset, min(limit, self.max_limit)


@dataclass(frozen=True)
class TokenPolicy:
    """JWT signing and lifetime settings."""

    secret_key: str = "change-me-in-production"
    algorithm: str = "HS256"
    access_token_ttl_minutes: int = 30
    refresh_token_ttl_minutes: int = 60 * 24 * 7
    issuer: str = "backoffice"


@dataclass(frozen=True)
class PasswordPolicy:
    min_length: int = 8
    hash_iterations: int = 260_000
    temporary_password_length: int = 12


DEFAULT_ROLE_PERMISSIONS: Mapping[str, frozenset[str]] = MappingProxyType({
    UserRole.OWNER.value: frozenset({
        "inventory.item.view",
        "inventory.item.manage",
        "inventory.adjust",
        "inventory.movement.view",
        "inventory.movement.revert",
        "relationship.view",
        "relationship.manage",
        "transfer.view",
        "transfer.create",
        "transfer.respond",
        "transfer.cancel",
        "product.view",
        "product.manage",
        "modifier.view",
        "modifier.manage",
        "supplier.view",
        "supplier.manage",
        "employee.view",
        "employee.manage",
        "employee.delete",
        "attendance.record",
    }),
    UserRole.ADMIN.value: frozenset({
        "inventory.item.view",
        "inventory.item.manage",
        "inventory.adjust",
        "inventory.movement.view",
        "relationship.view",
        "transfer.view",
        "transfer.create",
        "transfer.respond",
        "transfer.cancel",
        "product.view",
        "product.manage",
        "modifier.view",
        "modifier.manage",
        "supplier.view",
        "supplier.manage",
        "employee.view",
        "employee.manage",
        "attendance.record",
    }),
    UserRole.CASHIER.value: frozenset({
        "inventory.item.view",
        "inventory.movement.view",
        "product.view",
        "modifier.view",
        "attendance.record",
    }),
    UserRole.WAITER.value: frozenset({
        "product.view",
        "modifier.view",
        "attendance.record",
    }),
    UserRole.COOK.value: frozenset({
        "inventory.item.view",
        "product.view",
        "modifier.view",
        "attendance.record",
    }),
})

DEFAULT_ASSIGNABLE_ROLES: Mapping[str, frozenset[str]] = MappingProxyType({
    UserRole.OWNER.value: frozenset({"admin", "cashier", "waiter", "cook"}),
    UserRole.ADMIN.value: frozenset({"cashier", "waiter", "cook"}),
})


@dataclass(frozen=True)
class RbacPolicy:
    """Role -> permission grants and role -> assignable roles."""

    role_permissions: Mapping[str, frozenset[str]] = field(
        default_factory=lambda: DEFAULT_ROLE_PERMISSIONS
    )
    assignable_roles: Mapping[str, frozenset[str]] = field(
        default_factory=lambda: DEFAULT_ASSIGNABLE_ROLES
    )

"""
Config -> Kernel Bridges.

Functions that convert a BackofficeConfig into the policy objects kernel
services take.  They live here (the producer) because the kernel never
imports backoffice_config.

Usage:
    from backoffice_config.bridges import build_ledger_policy, build_rbac_policy

    config = get_active_config()
    ledger = InventoryLedgerService(session, clock, authority, build_ledger_policy(config))
"""

from __future__ import annotations

from types import MappingProxyType

from sqlalchemy.engine import Engine

from backoffice_config.schema import BackofficeConfig
from backoffice_kernel.db.engine import init_engine_from_url
from backoffice_kernel.domain.policies import (
    DEFAULT_ASSIGNABLE_ROLES,
    DEFAULT_ROLE_PERMISSIONS,
    LedgerPolicy,
    PaginationPolicy,
    PasswordPolicy,
    RbacPolicy,
    RelationshipPolicy,
    TokenPolicy,
)
from backoffice_kernel.logging_config import configure_logging
from backoffice_kernel.services.authority import PermissionAuthority


def build_ledger_policy(config: BackofficeConfig) -> LedgerPolicy:
    return LedgerPolicy(
        revert_reason_min_length=config.inventory.revert_reason_min_length,
        adjust_reason_required=config.inventory.adjust_reason_required,
    )


def build_relationship_policy(config: BackofficeConfig) -> RelationshipPolicy:
    return RelationshipPolicy(
        allow_rerequest_after_rejection=config.relationships.allow_rerequest_after_rejection,
    )


def build_pagination_policy(config: BackofficeConfig) -> PaginationPolicy:
    return PaginationPolicy(
        default_limit=config.pagination.default_limit,
        max_limit=config.pagination.max_limit,
        item_movements_limit=config.pagination.item_movements_limit,
    )


def build_token_policy(config: BackofficeConfig) -> TokenPolicy:
    auth = config.auth
    return TokenPolicy(
        secret_key=auth.secret_key,
        algorithm=auth.algorithm,
        access_token_ttl_minutes=auth.access_token_ttl_minutes,
        refresh_token_ttl_minutes=auth.refresh_token_ttl_minutes,
        issuer=auth.issuer,
    )


def build_password_policy(config: BackofficeConfig) -> PasswordPolicy:
    auth = config.auth
    return PasswordPolicy(
        min_length=auth.password_min_length,
        hash_iterations=auth.password_hash_iterations,
        temporary_password_length=auth.temporary_password_length,
    )


def build_rbac_policy(config: BackofficeConfig) -> RbacPolicy:
    """Role grants from config; a section left empty keeps the defaults."""
    rbac = config.rbac
    permissions = (
        MappingProxyType({role: frozenset(perms) for role, perms in rbac.role_permissions})
        if rbac.role_permissions
        else DEFAULT_ROLE_PERMISSIONS
    )
    assignable = (
        MappingProxyType({role: frozenset(roles) for role, roles in rbac.assignable_roles})
        if rbac.assignable_roles
        else DEFAULT_ASSIGNABLE_ROLES
    )
    return RbacPolicy(role_permissions=permissions, assignable_roles=assignable)


def build_authority(config: BackofficeConfig) -> PermissionAuthority:
    return PermissionAuthority(build_rbac_policy(config))


def init_runtime(config: BackofficeConfig) -> Engine:
    """Configure logging and the database engine from ``config``."""
    configure_logging(level=config.logging.level)
    return init_engine_from_url(
        config.database.url,
        echo=config.database.echo,
        pool_size=config.database.pool_size,
        max_overflow=config.database.max_overflow,
    )

"""
BackofficeConfig schema.

The typed, frozen form of a configuration set.  YAML files are parsed into
these dataclasses by the loader; bridges turn them into kernel policies.
Nothing here imports the kernel's services.
"""

from __future__ import annotations

from dataclasses import dataclass, field

# ---------------------------------------------------------------------------
# Infrastructure
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DatabaseSettings:
    url: str = "sqlite:///:memory:"
    echo: bool = False
    pool_size: int = 20
    max_overflow: int = 10


@dataclass(frozen=True)
class LoggingSettings:
    level: str = "INFO"


# ---------------------------------------------------------------------------
# Domain knobs
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AuthSettings:
    """Token signing and password rules."""

    secret_key: str
    algorithm: str = "HS256"
    issuer: str = "backoffice"
    access_token_ttl_minutes: int = 30
    refresh_token_ttl_minutes: int = 60 * 24 * 7
    password_min_length: int = 8
    password_hash_iterations: int = 260_000
    temporary_password_length: int = 12


@dataclass(frozen=True)
class InventorySettings:
    revert_reason_min_length: int = 10
    adjust_reason_required: bool = True


@dataclass(frozen=True)
class RelationshipSettings:
    allow_rerequest_after_rejection: bool = False


@dataclass(frozen=True)
class PaginationSettings:
    default_limit: int = 100
    max_limit: int = 500
    item_movements_limit: int = 50


@dataclass(frozen=True)
class RbacSettings:
    """Role grants as sorted tuples, so the settings stay hashable."""

    role_permissions: tuple[tuple[str, tuple[str, ...]], ...] = ()
    assignable_roles: tuple[tuple[str, tuple[str, ...]], ...] = ()


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class BackofficeConfig:
    """A complete, validated configuration set."""

    config_id: str
    version: int
    auth: AuthSettings
    database: DatabaseSettings = field(default_factory=DatabaseSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)
    inventory: InventorySettings = field(default_factory=InventorySettings)
    relationships: RelationshipSettings = field(default_factory=RelationshipSettings)
    pagination: PaginationSettings = field(default_factory=PaginationSettings)
    rbac: RbacSettings = field(default_factory=RbacSettings)
    checksum: str = ""

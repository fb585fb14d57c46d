"""
Configuration Loader (``backoffice_config.loader``).

Responsibility
--------------
Loads a YAML configuration set and parses it into the frozen
``backoffice_config.schema`` dataclasses.  Runtime callers go through
``backoffice_config.get_active_config()`` instead of calling this module.

Invariants enforced
-------------------
* Unknown roles in the RBAC section are rejected; every role granted or
  assignable must be a known staff role.
* Numeric knobs are validated (positive TTLs, limits, lengths).
* ``compute_checksum`` produces a deterministic SHA-256 hash of the raw
  document for change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
* Out-of-range values  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

from backoffice_config.schema import (
    AuthSettings,
    BackofficeConfig,
    DatabaseSettings,
    InventorySettings,
    LoggingSettings,
    PaginationSettings,
    RbacSettings,
    RelationshipSettings,
)

KNOWN_ROLES = frozenset({"owner", "admin", "cashier", "waiter", "cook"})


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Postconditions:
        - Returns a ``dict`` (possibly empty if the YAML is empty).
    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def _positive(name: str, value: Any) -> int:
    number = int(value)
    if number <= 0:
        raise ValueError(f"{name} must be positive, got {value!r}")
    return number


def parse_database(data: dict[str, Any]) -> DatabaseSettings:
    return DatabaseSettings(
        url=data.get("url", DatabaseSettings.url),
        echo=bool(data.get("echo", False)),
        pool_size=_positive("database.pool_size", data.get("pool_size", 20)),
        max_overflow=int(data.get("max_overflow", 10)),
    )


def parse_logging(data: dict[str, Any]) -> LoggingSettings:
    level = str(data.get("level", "INFO")).upper()
    if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
        raise ValueError(f"Unknown logging level {level!r}")
    return LoggingSettings(level=level)


def parse_auth(data: dict[str, Any]) -> AuthSettings:
    """Parse the auth section.  ``secret_key`` is required."""
    secret = data["secret_key"]
    if not secret:
        raise ValueError("auth.secret_key must not be empty")
    return AuthSettings(
        secret_key=str(secret),
        algorithm=data.get("algorithm", "HS256"),
        issuer=data.get("issuer", "backoffice"),
        access_token_ttl_minutes=_positive(
            "auth.access_token_ttl_minutes", data.get("access_token_ttl_minutes", 30)
        ),
        refresh_token_ttl_minutes=_positive(
            "auth.refresh_token_ttl_minutes", data.get("refresh_token_ttl_minutes", 10080)
        ),
        password_min_length=_positive(
            "auth.password_min_length", data.get("password_min_length", 8)
        ),
        password_hash_iterations=_positive(
            "auth.password_hash_iterations", data.get("password_hash_iterations", 260_000)
        ),
        temporary_password_length=_positive(
            "auth.temporary_password_length", data.get("temporary_password_length", 12)
        ),
    )


def parse_inventory(data: dict[str, Any]) -> InventorySettings:
    min_length = int(data.get("revert_reason_min_length", 10))
    if min_length < 0:
        raise ValueError("inventory.revert_reason_min_length cannot be negative")
    return InventorySettings(
        revert_reason_min_length=min_length,
        adjust_reason_required=bool(data.get("adjust_reason_required", True)),
    )


def parse_relationships(data: dict[str, Any]) -> RelationshipSettings:
    return RelationshipSettings(
        allow_rerequest_after_rejection=bool(
            data.get("allow_rerequest_after_rejection", False)
        ),
    )


def parse_pagination(data: dict[str, Any]) -> PaginationSettings:
    settings = PaginationSettings(
        default_limit=_positive("pagination.default_limit", data.get("default_limit", 100)),
        max_limit=_positive("pagination.max_limit", data.get("max_limit", 500)),
        item_movements_limit=_positive(
            "pagination.item_movements_limit", data.get("item_movements_limit", 50)
        ),
    )
    if settings.default_limit > settings.max_limit:
        raise ValueError("pagination.default_limit cannot exceed pagination.max_limit")
    return settings


def _role_map(section: str, data: dict[str, Any]) -> tuple[tuple[str, tuple[str, ...]], ...]:
    entries = []
    for role, values in sorted(data.items()):
        if role not in KNOWN_ROLES:
            raise ValueError(f"rbac.{section}: unknown role {role!r}")
        entries.append((role, tuple(sorted(set(values or ())))))
    return tuple(entries)


def parse_rbac(data: dict[str, Any]) -> RbacSettings:
    """
    Parse role grants.

    Raises:
        ValueError: unknown role, or an assignable role that is not known.
    """
    permissions = _role_map("role_permissions", data.get("role_permissions", {}))
    assignable = _role_map("assignable_roles", data.get("assignable_roles", {}))
    for role, targets in assignable:
        unknown = set(targets) - KNOWN_ROLES
        if unknown:
            raise ValueError(f"rbac.assignable_roles.{role}: unknown roles {sorted(unknown)}")
        if "owner" in targets:
            raise ValueError(f"rbac.assignable_roles.{role}: owner cannot be assigned")
    return RbacSettings(role_permissions=permissions, assignable_roles=assignable)


def parse_config(data: dict[str, Any]) -> BackofficeConfig:
    """
    Parse a whole configuration document.

    Postconditions:
        - ``checksum`` is the checksum of ``data`` as given.
    """
    return BackofficeConfig(
        config_id=data["config_id"],
        version=int(data.get("version", 1)),
        auth=parse_auth(data["auth"]),
        database=parse_database(data.get("database", {})),
        logging=parse_logging(data.get("logging", {})),
        inventory=parse_inventory(data.get("inventory", {})),
        relationships=parse_relationships(data.get("relationships", {})),
        pagination=parse_pagination(data.get("pagination", {})),
        rbac=parse_rbac(data.get("rbac", {})),
        checksum=compute_checksum(data),
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """
    Compute SHA-256 checksum of canonical JSON serialization.

    Postconditions:
        - Identical ``data`` always produces identical checksums.
    """
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()

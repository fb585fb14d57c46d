"""
ORM-Level Immutability Enforcement for the movement log.

===============================================================================
WHY THIS EXISTS
===============================================================================

Stock history must be tamper-proof.  A wrong adjustment is never edited or
deleted; it is reverted by a new compensating movement, leaving a visible
trail.  SQLAlchemy fires events before UPDATE/DELETE operations reach the
database, and these listeners reject anything that would rewrite history:

    session.flush()
         |
         v
    [before_update] --> _check_movement_immutability() --> ImmutabilityViolationError
         |
    [before_delete] --> _check_movement_delete() ---------> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity          | Rule
----------------|---------------------------------------------------------
Movement        | Every field frozen at INSERT except ``reverted``
                | (False -> True only) and audit metadata
                | (updated_at / updated_by_id).  DELETE always blocked.

===============================================================================
USAGE
===============================================================================

    from backoffice_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # once at startup

Tests that need to bypass the listeners call
``unregister_immutability_listeners()`` and re-register afterwards.
"""

from sqlalchemy import event, inspect

from backoffice_kernel.exceptions import ImmutabilityViolationError
from backoffice_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

# Audit metadata may change on any row
_AUDIT_FIELDS = frozenset({"updated_at", "updated_by_id"})


def _check_movement_immutability(mapper, connection, target):
    """Block any UPDATE of a Movement other than flagging it reverted."""
    insp = inspect(target)
    for attr in insp.attrs:
        if attr.key in _AUDIT_FIELDS:
            continue
        hist = attr.history
        if not hist.has_changes():
            continue

        if attr.key == "reverted":
            old = hist.deleted[0] if hist.deleted else False
            new = hist.added[0] if hist.added else None
            if old is False and new is True:
                continue
            reason = "The reverted flag can only change from False to True"
        else:
            reason = f"Cannot modify field '{attr.key}' on a movement"

        logger.error(
            "immutability_violation_blocked",
            extra={
                "entity_type": "Movement",
                "entity_id": str(target.id),
                "operation": "UPDATE",
                "field": attr.key,
            },
        )
        raise ImmutabilityViolationError(
            entity_type="Movement",
            entity_id=str(target.id),
            reason=reason,
        )


def _check_movement_delete(mapper, connection, target):
    """Movements are never deleted."""
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": "Movement",
            "entity_id": str(target.id),
            "operation": "DELETE",
        },
    )
    raise ImmutabilityViolationError(
        entity_type="Movement",
        entity_id=str(target.id),
        reason="Movements are append-only and cannot be deleted",
    )


def register_immutability_listeners():
    """Register all immutability enforcement event listeners (idempotent)."""
    from backoffice_kernel.models.inventory import Movement

    if not event.contains(Movement, "before_update", _check_movement_immutability):
        event.listen(Movement, "before_update", _check_movement_immutability)
    if not event.contains(Movement, "before_delete", _check_movement_delete):
        event.listen(Movement, "before_delete", _check_movement_delete)


def _safe_remove_listener(target, event_name, listener_fn):
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """Remove immutability enforcement event listeners. FOR TESTING ONLY."""
    from backoffice_kernel.models.inventory import Movement

    _safe_remove_listener(Movement, "before_update", _check_movement_immutability)
    _safe_remove_listener(Movement, "before_delete", _check_movement_delete)

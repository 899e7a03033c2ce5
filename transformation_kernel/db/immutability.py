"""
ORM-level immutability enforcement for the stock journal and lineage.

Stock transactions, their lines and lineage edges are append-only.  A posted
movement is corrected by recording a new reversing movement, never by editing
or deleting the original row.  This module registers SQLAlchemy mapper
listeners that fire before an UPDATE or DELETE reaches the database:

    session.flush()
         |
         v
    [before_update event] --> _block_update() --> ImmutabilityViolationError
         |
    [before_delete event] --> _block_delete() --> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

Protected entities
------------------
Entity                     | When immutable
---------------------------|----------------
StockTransactionModel      | Always (from creation)
StockTransactionItemModel  | Always (from creation)
LineageEdgeModel           | Always (from creation)

Usage
-----
Called once at startup (the HTTP app factory and the test suite do this):

    from transformation_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()

To temporarily disable (TESTS ONLY):

    unregister_immutability_listeners()
"""

from sqlalchemy import event

from transformation_kernel.exceptions import ImmutabilityViolationError
from transformation_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

# Attributes SQLAlchemy may touch on flush without changing the record.
_AUDIT_ONLY_FIELDS = frozenset({"updated_at", "updated_by_id"})


def _protected_models() -> tuple[type, ...]:
    # Inline import: models import from db, db must not import models at load.
    from transformation_kernel.models.lineage import LineageEdgeModel
    from transformation_kernel.models.stock import (
        StockTransactionItemModel,
        StockTransactionModel,
    )

    return (StockTransactionModel, StockTransactionItemModel, LineageEdgeModel)


def _changed_fields(target) -> list[str]:
    from sqlalchemy import inspect

    state = inspect(target)
    changed = []
    for attr in state.mapper.column_attrs:
        if attr.key in _AUDIT_ONLY_FIELDS:
            continue
        if state.attrs[attr.key].history.has_changes():
            changed.append(attr.key)
    return changed


def _block_update(mapper, connection, target):
    """Reject any content change to an append-only row."""
    changed = _changed_fields(target)
    if not changed:
        return

    entity_type = type(target).__name__
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(target.id),
            "operation": "UPDATE",
            "fields": changed,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(target.id),
        reason=f"append-only record cannot be modified (fields: {', '.join(changed)})",
    )


def _block_delete(mapper, connection, target):
    """Reject deletion of an append-only row."""
    entity_type = type(target).__name__
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(target.id),
            "operation": "DELETE",
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(target.id),
        reason="append-only record cannot be deleted; record a reversal instead",
    )


def register_immutability_listeners() -> None:
    """Register the UPDATE/DELETE guards. Safe to call more than once."""
    for model in _protected_models():
        if not event.contains(model, "before_update", _block_update):
            event.listen(model, "before_update", _block_update)
        if not event.contains(model, "before_delete", _block_delete):
            event.listen(model, "before_delete", _block_delete)

    logger.info(
        "immutability_listeners_registered",
        extra={"models": [m.__name__ for m in _protected_models()]},
    )


def _safe_remove_listener(target, event_name, listener_fn):
    """Remove an event listener, ignoring it if not registered."""
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners() -> None:
    """Remove the guards.  Tests only."""
    for model in _protected_models():
        _safe_remove_listener(model, "before_update", _block_update)
        _safe_remove_listener(model, "before_delete", _block_delete)

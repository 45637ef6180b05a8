"""Reverse the most recent effective action of a product."""
from __future__ import annotations

import logging
from typing import Optional

from packages.freshness import (
    ActionEntry,
    ActionType,
    Clock,
    DomainError,
    NotFoundError,
    civil_day_diff,
)

from .store import ExpiryStore

LOGGER = logging.getLogger("shelfwatch.expiry.undo")


class UndoEngine:
    """Flag ledger entries as undone.

    The live expiry date is never rolled back; the reverted entry keeps the
    prior date for display. Undoing a deactivation re-enables the expiry check
    for that product.
    """

    def __init__(self, store: ExpiryStore, clock: Clock, *, logger: Optional[logging.Logger] = None) -> None:
        self._store = store
        self._clock = clock
        self._logger = logger or LOGGER

    def undo(self, action_id: int, admin_id: str) -> ActionEntry:
        target = self._store.get_action(action_id)
        if target is None:
            raise NotFoundError(f"Action {action_id} not found")

        with self._store.product_scope(target.product_id) as scope:
            target = scope.action(action_id)
            if target is None:
                raise NotFoundError(f"Action {action_id} not found")
            if target.action_type is ActionType.UNDONE:
                raise DomainError("undo markers cannot be undone")
            if target.is_undone:
                raise DomainError(f"action {action_id} is already undone")
            last = scope.last_action()
            if last is None or last.id != target.id:
                raise DomainError("only the most recent action of a product can be undone")

            now = self._clock.now()
            reverted = scope.mark_undone(action_id, at=now, by=admin_id)
            if target.action_type is ActionType.REMOVED and target.excluded_from_check:
                scope.set_excluded(False)
            product = scope.product
            scope.append(
                admin_id=admin_id,
                action_type=ActionType.UNDONE,
                created_at=now,
                note=f"Rückgängig gemacht: {target.action_type.value}",
                expiry_date_at_action=product.expiry_date,
                days_until_expiry_at_action=(
                    civil_day_diff(product.expiry_date, now.date()) if product.expiry_date else None
                ),
                previous_action_id=action_id,
            )
        self._logger.info("Action %s (%s) undone by %s", action_id, target.action_type.value, admin_id)
        return reverted


__all__ = ["UndoEngine"]

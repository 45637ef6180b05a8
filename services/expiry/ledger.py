"""Append-only ledger of expiry actions."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Dict, List, Optional

from packages.freshness import (
    ActionEntry,
    ActionType,
    Clock,
    DomainError,
    ValidationError,
    civil_day_diff,
)

from .store import ExpiryStore

LOGGER = logging.getLogger("shelfwatch.expiry.ledger")

DEFAULT_LABEL_NOTE = "Reduziert"
DEFAULT_DEACTIVATE_NOTE = "Produkt deaktiviert"
DEFAULT_DATE_UPDATE_NOTE = "MHD aktualisiert"


@dataclass
class HistoryPage:
    actions: List[ActionEntry] = field(default_factory=list)
    total: int = 0
    limit: int = 100
    offset: int = 0

    def to_dict(self) -> Dict[str, object]:
        return {
            "actions": [action.to_dict() for action in self.actions],
            "total": self.total,
            "limit": self.limit,
            "offset": self.offset,
        }


class ActionLedger:
    """Record label, remove, deactivate and date-correction actions."""

    def __init__(self, store: ExpiryStore, clock: Clock, *, logger: Optional[logging.Logger] = None) -> None:
        self._store = store
        self._clock = clock
        self._logger = logger or LOGGER

    def label(self, product_id: str, admin_id: str, note: Optional[str] = None) -> ActionEntry:
        """Mark a warning-band product as discount-labelled."""

        with self._store.product_scope(product_id) as scope:
            product = scope.product
            if product.expiry_date is None:
                raise ValidationError(f"Product {product_id} has no expiry date")
            if product.exclude_from_expiry_check:
                raise DomainError("cannot label a deactivated product")
            now = self._clock.now()
            entry = scope.append(
                admin_id=admin_id,
                action_type=ActionType.LABELED,
                created_at=now,
                note=note or DEFAULT_LABEL_NOTE,
                expiry_date_at_action=product.expiry_date,
                days_until_expiry_at_action=civil_day_diff(product.expiry_date, now.date()),
            )
        self._logger.info("Product %s labelled by %s (action %s)", product_id, admin_id, entry.id)
        return entry

    def remove_critical(
        self,
        product_id: str,
        admin_id: str,
        new_expiry_date: Optional[date],
        note: Optional[str] = None,
    ) -> ActionEntry:
        """Sort a product out of the critical shelf, replacing its expiry date."""

        if new_expiry_date is None:
            raise ValidationError("new_expiry_date is required to remove a product")
        with self._store.product_scope(product_id) as scope:
            product = scope.product
            if product.expiry_date is None:
                raise ValidationError(f"Product {product_id} has no expiry date")
            now = self._clock.now()
            scope.set_expiry_date(new_expiry_date)
            entry = scope.append(
                admin_id=admin_id,
                action_type=ActionType.REMOVED,
                created_at=now,
                excluded_from_check=False,
                note=note,
                expiry_date_at_action=new_expiry_date,
                days_until_expiry_at_action=civil_day_diff(new_expiry_date, now.date()),
                prior_expiry_date=product.expiry_date,
            )
        self._logger.info(
            "Product %s removed by %s; expiry %s -> %s",
            product_id,
            admin_id,
            product.expiry_date,
            new_expiry_date,
        )
        return entry

    def deactivate(self, product_id: str, admin_id: str, note: Optional[str] = None) -> ActionEntry:
        """Remove a product and exclude it from the expiry check."""

        with self._store.product_scope(product_id) as scope:
            product = scope.product
            now = self._clock.now()
            scope.set_excluded(True)
            entry = scope.append(
                admin_id=admin_id,
                action_type=ActionType.REMOVED,
                created_at=now,
                excluded_from_check=True,
                note=note or DEFAULT_DEACTIVATE_NOTE,
                expiry_date_at_action=product.expiry_date,
                days_until_expiry_at_action=_days_or_none(product.expiry_date, now),
            )
        self._logger.info("Product %s deactivated by %s (action %s)", product_id, admin_id, entry.id)
        return entry

    def update_expiry_date(
        self,
        product_id: str,
        admin_id: str,
        new_expiry_date: Optional[date],
        note: Optional[str] = None,
    ) -> ActionEntry:
        """Correct a product's expiry date; exclusion is left untouched."""

        if new_expiry_date is None:
            raise ValidationError("new_expiry_date is required")
        with self._store.product_scope(product_id) as scope:
            product = scope.product
            now = self._clock.now()
            scope.set_expiry_date(new_expiry_date)
            entry = scope.append(
                admin_id=admin_id,
                action_type=ActionType.DATE_UPDATED,
                created_at=now,
                note=note or DEFAULT_DATE_UPDATE_NOTE,
                expiry_date_at_action=new_expiry_date,
                days_until_expiry_at_action=civil_day_diff(new_expiry_date, now.date()),
                prior_expiry_date=product.expiry_date,
            )
        self._logger.info(
            "Product %s expiry updated by %s; %s -> %s",
            product_id,
            admin_id,
            product.expiry_date,
            new_expiry_date,
        )
        return entry

    def history(
        self,
        *,
        day: Optional[date] = None,
        limit: int = 100,
        offset: int = 0,
        admin_id: Optional[str] = None,
        product_id: Optional[str] = None,
        action_type: Optional[ActionType] = None,
        latest_only: bool = False,
    ) -> HistoryPage:
        """Return ledger entries, newest first, optionally for one civil day."""

        if limit < 1:
            raise ValidationError("limit must be at least 1")
        if offset < 0:
            raise ValidationError("offset must not be negative")
        start, end = self._clock.day_bounds(day) if day is not None else (None, None)
        actions, total = self._store.list_actions(
            start=start,
            end=end,
            admin_id=admin_id,
            product_id=product_id,
            action_type=action_type,
            limit=limit,
            offset=offset,
            latest_only=latest_only,
        )
        return HistoryPage(actions=actions, total=total, limit=limit, offset=offset)


def _days_or_none(expiry_date: Optional[date], now: datetime) -> Optional[int]:
    if expiry_date is None:
        return None
    return civil_day_diff(expiry_date, now.date())


__all__ = [
    "ActionLedger",
    "DEFAULT_DATE_UPDATE_NOTE",
    "DEFAULT_DEACTIVATE_NOTE",
    "DEFAULT_LABEL_NOTE",
    "HistoryPage",
]

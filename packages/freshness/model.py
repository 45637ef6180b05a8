"""Core data structures for expiry-date management."""
from __future__ import annotations

import enum
import re
from dataclasses import dataclass, replace
from datetime import date, datetime, timezone
from typing import Dict, Mapping, Optional

from .errors import ValidationError

_DEADLINE_RE = re.compile(r"^(?:[01]\d|2[0-3]):[0-5]\d$")
_SETTINGS_FIELDS = ("enabled", "warning_days", "critical_days", "processing_deadline")


class Band(str, enum.Enum):
    """Urgency classification derived from days until expiry."""

    CRITICAL = "critical"
    WARNING = "warning"
    NORMAL = "normal"

    @property
    def urgency(self) -> int:
        return _URGENCY[self]

    @property
    def at_risk(self) -> bool:
        return self is not Band.NORMAL


_URGENCY = {Band.NORMAL: 0, Band.WARNING: 1, Band.CRITICAL: 2}


class ActionType(str, enum.Enum):
    """Closed set of ledger action kinds."""

    LABELED = "labeled"
    REMOVED = "removed"
    DATE_UPDATED = "date_updated"
    UNDONE = "undone"


@dataclass(frozen=True)
class ProductRecord:
    """Read-only view of a catalog product."""

    id: str
    name: str
    category_id: Optional[str] = None
    category_name: Optional[str] = None
    barcode: Optional[str] = None
    expiry_date: Optional[date] = None
    exclude_from_expiry_check: bool = False

    def to_dict(self) -> Dict[str, object]:
        return {
            "id": self.id,
            "name": self.name,
            "category_id": self.category_id,
            "category_name": self.category_name,
            "barcode": self.barcode,
            "expiry_date": self.expiry_date.isoformat() if self.expiry_date else None,
            "exclude_from_expiry_check": self.exclude_from_expiry_check,
        }


@dataclass(frozen=True)
class ActionEntry:
    """Single immutable row of the action ledger."""

    id: int
    product_id: str
    admin_id: str
    action_type: ActionType
    created_at: datetime
    excluded_from_check: bool = False
    note: Optional[str] = None
    expiry_date_at_action: Optional[date] = None
    days_until_expiry_at_action: Optional[int] = None
    prior_expiry_date: Optional[date] = None
    previous_action_id: Optional[int] = None
    is_undone: bool = False
    undone_at: Optional[datetime] = None
    undone_by: Optional[str] = None

    @property
    def is_effective(self) -> bool:
        """True when the entry can act as a product's last action."""

        return not self.is_undone and self.action_type is not ActionType.UNDONE

    def to_dict(self) -> Dict[str, object]:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "admin_id": self.admin_id,
            "action_type": self.action_type.value,
            "excluded_from_check": self.excluded_from_check,
            "note": self.note,
            "expiry_date_at_action": _iso(self.expiry_date_at_action),
            "days_until_expiry_at_action": self.days_until_expiry_at_action,
            "prior_expiry_date": _iso(self.prior_expiry_date),
            "previous_action_id": self.previous_action_id,
            "created_at": self.created_at.astimezone(timezone.utc).isoformat(),
            "is_undone": self.is_undone,
            "undone_at": self.undone_at.astimezone(timezone.utc).isoformat() if self.undone_at else None,
            "undone_by": self.undone_by,
        }


@dataclass(frozen=True)
class ExpirySettings:
    """Threshold settings record."""

    enabled: bool = True
    warning_days: int = 3
    critical_days: int = 0
    processing_deadline: str = "20:00"

    def validate(self) -> "ExpirySettings":
        if self.warning_days < 0 or self.critical_days < 0:
            raise ValidationError("warning_days and critical_days must be >= 0")
        if self.critical_days > self.warning_days:
            raise ValidationError("critical_days must not exceed warning_days")
        if not _DEADLINE_RE.match(self.processing_deadline):
            raise ValidationError("processing_deadline must use HH:MM")
        return self

    def merged(self, updates: Mapping[str, object]) -> "ExpirySettings":
        """Return a copy with ``updates`` applied; unknown keys are ignored."""

        known = {key: updates[key] for key in _SETTINGS_FIELDS if key in updates}
        return replace(self, **known)

    def to_dict(self) -> Dict[str, object]:
        return {
            "enabled": self.enabled,
            "warning_days": self.warning_days,
            "critical_days": self.critical_days,
            "processing_deadline": self.processing_deadline,
        }


@dataclass(frozen=True)
class Classification:
    days_until_expiry: Optional[int]
    band: Band


@dataclass(frozen=True)
class BandEntry:
    """A product as surfaced by one of the band queries."""

    product: ProductRecord
    classification: Classification
    last_action: Optional[ActionEntry] = None

    @property
    def product_id(self) -> str:
        return self.product.id

    def to_dict(self) -> Dict[str, object]:
        payload = self.product.to_dict()
        payload["days_until_expiry"] = self.classification.days_until_expiry
        payload["band"] = self.classification.band.value
        payload["last_action"] = self.last_action.to_dict() if self.last_action else None
        return payload


def _iso(value: Optional[date]) -> Optional[str]:
    return value.isoformat() if value else None


__all__ = [
    "ActionEntry",
    "ActionType",
    "Band",
    "BandEntry",
    "Classification",
    "ExpirySettings",
    "ProductRecord",
]

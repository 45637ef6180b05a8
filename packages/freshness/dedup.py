"""Resolve products surfaced by both band queries into disjoint lists."""
from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, List, Optional, Sequence

from .classifier import band_for_date, band_for_days
from .model import ActionEntry, Band, BandEntry, ExpirySettings


class DedupFallback(str, enum.Enum):
    """Placement for a product seen in both lists with no recoverable prior band."""

    WARNING = "warning"
    CRITICAL = "critical"
    DROP = "drop"

    @classmethod
    def parse(cls, value: object) -> "DedupFallback":
        if isinstance(value, cls):
            return value
        text = str(value or "").strip().lower()
        try:
            return cls(text)
        except ValueError:
            raise ValueError(f"Invalid dedup fallback policy: {value!r}") from None


@dataclass
class ResolvedBands:
    unique_critical: List[BandEntry] = field(default_factory=list)
    unique_warning: List[BandEntry] = field(default_factory=list)

    def all_entries(self) -> List[BandEntry]:
        return [*self.unique_critical, *self.unique_warning]


@dataclass
class _Sighting:
    entry: BandEntry
    seen_in_critical: bool = False
    seen_in_warning: bool = False


def resolve_bands(
    critical: Sequence[BandEntry],
    warning: Sequence[BandEntry],
    settings: ExpirySettings,
    today: date,
    *,
    fallback: DedupFallback = DedupFallback.WARNING,
) -> ResolvedBands:
    """Assign every surfaced product to exactly one of critical or warning."""

    sightings: Dict[str, _Sighting] = {}
    for entry in critical:
        sightings.setdefault(entry.product_id, _Sighting(entry)).seen_in_critical = True
    for entry in warning:
        sightings.setdefault(entry.product_id, _Sighting(entry)).seen_in_warning = True

    result = ResolvedBands()
    for sighting in sightings.values():
        band = _resolve(sighting, settings, today, fallback)
        if band is Band.CRITICAL:
            result.unique_critical.append(sighting.entry)
        elif band is Band.WARNING:
            result.unique_warning.append(sighting.entry)
    return result


def prior_band(action: Optional[ActionEntry], settings: ExpirySettings, today: date) -> Optional[Band]:
    """Band the product occupied before ``action`` changed its date, if recoverable."""

    if action is None:
        return None
    if action.prior_expiry_date is not None:
        return band_for_date(action.prior_expiry_date, settings, today)
    if action.days_until_expiry_at_action is not None:
        return band_for_days(action.days_until_expiry_at_action, settings)
    return None


def _resolve(
    sighting: _Sighting,
    settings: ExpirySettings,
    today: date,
    fallback: DedupFallback,
) -> Optional[Band]:
    current = sighting.entry.classification.band
    if current.at_risk:
        return current
    if sighting.seen_in_critical != sighting.seen_in_warning:
        return Band.CRITICAL if sighting.seen_in_critical else Band.WARNING

    recovered = prior_band(sighting.entry.last_action, settings, today)
    if recovered is not None and recovered.at_risk:
        return recovered
    if fallback is DedupFallback.DROP:
        return None
    return Band.CRITICAL if fallback is DedupFallback.CRITICAL else Band.WARNING


__all__ = ["DedupFallback", "ResolvedBands", "prior_band", "resolve_bands"]

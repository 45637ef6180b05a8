"""Freshness lifecycle engine: classification, gating and band resolution."""
from .aggregate import DashboardItem, action_badge, build_dashboard, evaluate_items
from .classifier import band_for_date, band_for_days, civil_day_diff, classify
from .clock import Clock, fixed_clock
from .dedup import DedupFallback, ResolvedBands, resolve_bands
from .errors import DependencyError, DomainError, ExpiryError, NotFoundError, ValidationError
from .gate import is_unprocessed
from .model import (
    ActionEntry,
    ActionType,
    Band,
    BandEntry,
    Classification,
    ExpirySettings,
    ProductRecord,
)

__all__ = [
    "ActionEntry",
    "ActionType",
    "Band",
    "BandEntry",
    "Classification",
    "Clock",
    "DashboardItem",
    "DedupFallback",
    "DependencyError",
    "DomainError",
    "ExpiryError",
    "ExpirySettings",
    "NotFoundError",
    "ProductRecord",
    "ResolvedBands",
    "ValidationError",
    "action_badge",
    "band_for_date",
    "band_for_days",
    "build_dashboard",
    "civil_day_diff",
    "classify",
    "evaluate_items",
    "fixed_clock",
    "is_unprocessed",
    "resolve_bands",
]

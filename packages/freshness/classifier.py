"""Threshold classification of products into risk bands."""
from __future__ import annotations

from datetime import date
from typing import Optional

from .model import Band, Classification, ExpirySettings, ProductRecord


def civil_day_diff(expiry_date: date, today: date) -> int:
    """Whole civil days from ``today`` until ``expiry_date``; negative when expired."""

    return (expiry_date - today).days


def band_for_days(days_until_expiry: Optional[int], settings: ExpirySettings) -> Band:
    if days_until_expiry is None:
        return Band.NORMAL
    if days_until_expiry <= settings.critical_days:
        return Band.CRITICAL
    if days_until_expiry <= settings.warning_days:
        return Band.WARNING
    return Band.NORMAL


def band_for_date(expiry_date: Optional[date], settings: ExpirySettings, today: date) -> Band:
    if expiry_date is None:
        return Band.NORMAL
    return band_for_days(civil_day_diff(expiry_date, today), settings)


def classify(product: ProductRecord, settings: ExpirySettings, today: date) -> Classification:
    """Compute days until expiry and the band for ``product`` as of ``today``.

    Excluded products are classified like any other; callers decide whether
    they count toward the worklist.
    """

    if product.expiry_date is None:
        return Classification(days_until_expiry=None, band=Band.NORMAL)
    days = civil_day_diff(product.expiry_date, today)
    return Classification(days_until_expiry=days, band=band_for_days(days, settings))


__all__ = ["band_for_date", "band_for_days", "civil_day_diff", "classify"]

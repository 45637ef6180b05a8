from __future__ import annotations

from datetime import date, datetime, timezone

import pytest

from packages.freshness import (
    ActionEntry,
    ActionType,
    BandEntry,
    DedupFallback,
    ExpirySettings,
    ProductRecord,
    classify,
    resolve_bands,
)

TODAY = date(2024, 6, 10)
SETTINGS = ExpirySettings(warning_days=3, critical_days=0)
ACTED_AT = datetime(2024, 6, 10, 8, 0, tzinfo=timezone.utc)


def _entry(product_id: str, expiry: date, last_action: ActionEntry | None = None) -> BandEntry:
    product = ProductRecord(id=product_id, name=product_id.title(), expiry_date=expiry)
    return BandEntry(product=product, classification=classify(product, SETTINGS, TODAY), last_action=last_action)


def _date_update(product_id: str, *, prior: date | None, days_at_action: int | None = None) -> ActionEntry:
    return ActionEntry(
        id=1,
        product_id=product_id,
        admin_id="admin-1",
        action_type=ActionType.DATE_UPDATED,
        created_at=ACTED_AT,
        prior_expiry_date=prior,
        days_until_expiry_at_action=days_at_action,
    )


def _ids(entries) -> list[str]:
    return [entry.product_id for entry in entries]


def test_products_in_one_list_keep_that_band() -> None:
    critical = [_entry("milk", date(2024, 6, 10))]
    warning = [_entry("bread", date(2024, 6, 12))]

    resolved = resolve_bands(critical, warning, SETTINGS, TODAY)

    assert _ids(resolved.unique_critical) == ["milk"]
    assert _ids(resolved.unique_warning) == ["bread"]


def test_current_band_wins_when_listed_twice() -> None:
    entry = _entry("milk", date(2024, 6, 11))

    resolved = resolve_bands([entry], [entry], SETTINGS, TODAY)

    assert _ids(resolved.unique_critical) == []
    assert _ids(resolved.unique_warning) == ["milk"]


def test_prior_date_recovers_band_for_normal_product_listed_twice() -> None:
    action = _date_update("milk", prior=date(2024, 6, 10))
    entry = _entry("milk", date(2024, 7, 1), last_action=action)

    resolved = resolve_bands([entry], [entry], SETTINGS, TODAY)

    assert _ids(resolved.unique_critical) == ["milk"]
    assert _ids(resolved.unique_warning) == []


def test_days_at_action_recover_band_when_prior_date_missing() -> None:
    action = _date_update("milk", prior=None, days_at_action=2)
    entry = _entry("milk", date(2024, 7, 1), last_action=action)

    resolved = resolve_bands([entry], [entry], SETTINGS, TODAY)

    assert _ids(resolved.unique_warning) == ["milk"]


@pytest.mark.parametrize(
    ("fallback", "expected_critical", "expected_warning"),
    [
        (DedupFallback.WARNING, [], ["milk"]),
        (DedupFallback.CRITICAL, ["milk"], []),
        (DedupFallback.DROP, [], []),
    ],
)
def test_fallback_policy_applies_without_prior_band(
    fallback: DedupFallback,
    expected_critical: list[str],
    expected_warning: list[str],
) -> None:
    entry = _entry("milk", date(2024, 7, 1))

    resolved = resolve_bands([entry], [entry], SETTINGS, TODAY, fallback=fallback)

    assert _ids(resolved.unique_critical) == expected_critical
    assert _ids(resolved.unique_warning) == expected_warning


def test_resolved_lists_are_disjoint_and_cover_inputs() -> None:
    shared_action = _date_update("cheese", prior=date(2024, 6, 9))
    critical = [
        _entry("milk", date(2024, 6, 10)),
        _entry("yogurt", date(2024, 6, 11)),
        _entry("cheese", date(2024, 8, 1), last_action=shared_action),
    ]
    warning = [
        _entry("yogurt", date(2024, 6, 11)),
        _entry("bread", date(2024, 6, 13)),
        _entry("cheese", date(2024, 8, 1), last_action=shared_action),
    ]

    resolved = resolve_bands(critical, warning, SETTINGS, TODAY)

    critical_ids = set(_ids(resolved.unique_critical))
    warning_ids = set(_ids(resolved.unique_warning))
    assert critical_ids.isdisjoint(warning_ids)
    assert critical_ids | warning_ids == {"milk", "yogurt", "cheese", "bread"}
    assert len(resolved.all_entries()) == 4


def test_fallback_parse_accepts_strings() -> None:
    assert DedupFallback.parse(" Critical ") is DedupFallback.CRITICAL
    assert DedupFallback.parse(DedupFallback.DROP) is DedupFallback.DROP
    with pytest.raises(ValueError):
        DedupFallback.parse("sometimes")

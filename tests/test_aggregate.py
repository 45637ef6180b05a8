from __future__ import annotations

from datetime import date, datetime, timezone

from packages.freshness import (
    ActionEntry,
    ActionType,
    Band,
    BandEntry,
    Classification,
    DashboardItem,
    ExpirySettings,
    ProductRecord,
    action_badge,
    build_dashboard,
)
from packages.freshness.aggregate import completion_rate

TODAY = date(2024, 6, 10)


def _action(action_type: ActionType, *, excluded: bool = False, undone: bool = False) -> ActionEntry:
    return ActionEntry(
        id=1,
        product_id="P1",
        admin_id="admin-1",
        action_type=action_type,
        created_at=datetime(2024, 6, 10, 8, 0, tzinfo=timezone.utc),
        excluded_from_check=excluded,
        is_undone=undone,
    )


def test_action_badges() -> None:
    assert action_badge(_action(ActionType.LABELED)) == "Reduziert"
    assert action_badge(_action(ActionType.DATE_UPDATED)) == "Neues Datum"
    assert action_badge(_action(ActionType.REMOVED)) == "Aussortiert"
    assert action_badge(_action(ActionType.REMOVED, excluded=True)) == "Deaktiviert"
    assert action_badge(_action(ActionType.LABELED, undone=True)) is None
    assert action_badge(None) is None


def test_completion_rate_handles_empty_worklist() -> None:
    assert completion_rate(0, 0) == 100
    assert completion_rate(1, 3) == 33
    assert completion_rate(2, 3) == 67


def test_empty_dashboard() -> None:
    dashboard = build_dashboard([], ExpirySettings(processing_deadline="18:00"), TODAY)

    assert dashboard["groups"] == []
    assert dashboard["deadline_label"] == "Bearbeitung bis 18:00 Uhr"
    assert dashboard["stats"]["completion_rate"] == 100
    assert dashboard["stats"]["progress_label"] == "0/0"


def test_uncategorized_products_share_a_group() -> None:
    items = [
        DashboardItem(
            entry=BandEntry(
                product=ProductRecord(id=product_id, name=product_id, expiry_date=TODAY),
                classification=Classification(days_until_expiry=0, band=Band.CRITICAL),
            ),
            band=Band.CRITICAL,
            is_processed=False,
        )
        for product_id in ("Brie", "Apfel")
    ]

    dashboard = build_dashboard(items, ExpirySettings(), TODAY)

    assert len(dashboard["groups"]) == 1
    group = dashboard["groups"][0]
    assert group["name"] == "Ohne Kategorie"
    assert [product["name"] for product in group["products"]] == ["Apfel", "Brie"]
    assert group["summary"]["remove_today"] == {"total": 2, "processed": 0}

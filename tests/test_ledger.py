from __future__ import annotations

from datetime import date, datetime, timezone
from pathlib import Path

import pytest
from sqlalchemy.exc import OperationalError

from packages.freshness import (
    ActionType,
    Clock,
    DependencyError,
    DomainError,
    NotFoundError,
    ProductRecord,
    ValidationError,
)
from services.expiry import ActionLedger, ExpiryStore
from services.expiry.store import ProductScope


class _MovableNow:
    def __init__(self, moment: datetime) -> None:
        self.moment = moment

    def __call__(self) -> datetime:
        return self.moment


def _setup(tmp_path: Path, now: datetime | None = None) -> tuple[ExpiryStore, ActionLedger, _MovableNow]:
    store = ExpiryStore(tmp_path / "shelfwatch.db")
    store.ensure_schema()
    store.save_product(
        ProductRecord(
            id="milk",
            name="Vollmilch",
            category_id="dairy",
            category_name="Molkerei",
            expiry_date=date(2024, 6, 12),
        )
    )
    store.save_product(ProductRecord(id="bread", name="Roggenbrot", expiry_date=date(2024, 6, 10)))
    store.save_product(ProductRecord(id="pasta", name="Spaghetti", expiry_date=None))
    current = _MovableNow(now or datetime(2024, 6, 10, 9, 0, tzinfo=timezone.utc))
    ledger = ActionLedger(store, Clock("Europe/Berlin", now=current))
    return store, ledger, current


def test_label_appends_entry_with_snapshot(tmp_path: Path) -> None:
    store, ledger, _ = _setup(tmp_path)

    entry = ledger.label("milk", "admin-1")

    assert entry.action_type is ActionType.LABELED
    assert entry.note == "Reduziert"
    assert entry.expiry_date_at_action == date(2024, 6, 12)
    assert entry.days_until_expiry_at_action == 2
    assert entry.is_undone is False
    assert store.last_actions(["milk"])["milk"].id == entry.id


def test_label_rejects_unknown_product(tmp_path: Path) -> None:
    _, ledger, _ = _setup(tmp_path)

    with pytest.raises(NotFoundError):
        ledger.label("does-not-exist", "admin-1")


def test_label_rejects_product_without_date(tmp_path: Path) -> None:
    _, ledger, _ = _setup(tmp_path)

    with pytest.raises(ValidationError):
        ledger.label("pasta", "admin-1")


def test_label_rejects_deactivated_product_without_writing(tmp_path: Path) -> None:
    store, ledger, _ = _setup(tmp_path)
    ledger.deactivate("milk", "admin-1")

    with pytest.raises(DomainError) as excinfo:
        ledger.label("milk", "admin-2")

    assert excinfo.value.reason == "cannot label a deactivated product"
    page = ledger.history(product_id="milk")
    assert page.total == 1
    assert page.actions[0].action_type is ActionType.REMOVED


def test_remove_requires_new_date(tmp_path: Path) -> None:
    store, ledger, _ = _setup(tmp_path)

    with pytest.raises(ValidationError):
        ledger.remove_critical("bread", "admin-1", None)

    assert ledger.history().total == 0
    assert store.get_product("bread").expiry_date == date(2024, 6, 10)


def test_remove_replaces_date_and_records_prior(tmp_path: Path) -> None:
    store, ledger, _ = _setup(tmp_path)

    entry = ledger.remove_critical("bread", "admin-1", date(2024, 6, 20), note="Aussortiert")

    assert entry.action_type is ActionType.REMOVED
    assert entry.excluded_from_check is False
    assert entry.prior_expiry_date == date(2024, 6, 10)
    assert entry.expiry_date_at_action == date(2024, 6, 20)
    assert entry.days_until_expiry_at_action == 10
    assert store.get_product("bread").expiry_date == date(2024, 6, 20)


def test_deactivate_excludes_product_and_allows_missing_date(tmp_path: Path) -> None:
    store, ledger, _ = _setup(tmp_path)

    entry = ledger.deactivate("pasta", "admin-1")

    assert entry.action_type is ActionType.REMOVED
    assert entry.excluded_from_check is True
    assert entry.days_until_expiry_at_action is None
    assert entry.note == "Produkt deaktiviert"
    assert store.get_product("pasta").exclude_from_expiry_check is True


def test_update_date_keeps_exclusion(tmp_path: Path) -> None:
    store, ledger, _ = _setup(tmp_path)
    ledger.deactivate("milk", "admin-1")

    entry = ledger.update_expiry_date("milk", "admin-1", date(2024, 7, 1))

    assert entry.action_type is ActionType.DATE_UPDATED
    assert entry.note == "MHD aktualisiert"
    assert entry.prior_expiry_date == date(2024, 6, 12)
    product = store.get_product("milk")
    assert product.expiry_date == date(2024, 7, 1)
    assert product.exclude_from_expiry_check is True


def test_update_date_requires_value(tmp_path: Path) -> None:
    _, ledger, _ = _setup(tmp_path)

    with pytest.raises(ValidationError):
        ledger.update_expiry_date("milk", "admin-1", None)


def test_storage_failure_mid_write_leaves_no_trace(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    store, ledger, _ = _setup(tmp_path)

    def _failing_append(self: ProductScope, **fields: object) -> None:
        raise OperationalError("INSERT INTO expiry_actions", {}, Exception("disk I/O error"))

    monkeypatch.setattr(ProductScope, "append", _failing_append)

    with pytest.raises(DependencyError):
        ledger.update_expiry_date("bread", "admin-1", date(2024, 6, 30))

    assert store.get_product("bread").expiry_date == date(2024, 6, 10)
    assert store.last_actions(["bread"]) == {}
    assert ledger.history().total == 0


def test_history_filters_by_civil_day_and_type(tmp_path: Path) -> None:
    _, ledger, current = _setup(tmp_path, datetime(2024, 6, 9, 20, 0, tzinfo=timezone.utc))
    ledger.label("milk", "admin-1")
    current.moment = datetime(2024, 6, 10, 6, 0, tzinfo=timezone.utc)
    ledger.update_expiry_date("bread", "admin-2", date(2024, 6, 11))
    ledger.label("bread", "admin-2")

    june_ninth = ledger.history(day=date(2024, 6, 9))
    june_tenth = ledger.history(day=date(2024, 6, 10))
    labels = ledger.history(action_type=ActionType.LABELED)
    by_admin = ledger.history(admin_id="admin-2")

    assert [entry.product_id for entry in june_ninth.actions] == ["milk"]
    assert june_tenth.total == 2
    assert [entry.action_type for entry in june_tenth.actions] == [ActionType.LABELED, ActionType.DATE_UPDATED]
    assert labels.total == 2
    assert by_admin.total == 2


def test_history_latest_only_and_paging(tmp_path: Path) -> None:
    _, ledger, current = _setup(tmp_path)
    ledger.update_expiry_date("bread", "admin-1", date(2024, 6, 11))
    current.moment = datetime(2024, 6, 10, 10, 0, tzinfo=timezone.utc)
    ledger.label("bread", "admin-1")
    current.moment = datetime(2024, 6, 10, 11, 0, tzinfo=timezone.utc)
    ledger.label("milk", "admin-1")

    latest = ledger.history(latest_only=True)
    first_page = ledger.history(limit=2)
    second_page = ledger.history(limit=2, offset=2)

    assert latest.total == 2
    assert [(entry.product_id, entry.action_type) for entry in latest.actions] == [
        ("milk", ActionType.LABELED),
        ("bread", ActionType.LABELED),
    ]
    assert first_page.total == 3
    assert len(first_page.actions) == 2
    assert [entry.action_type for entry in second_page.actions] == [ActionType.DATE_UPDATED]


def test_history_rejects_bad_paging(tmp_path: Path) -> None:
    _, ledger, _ = _setup(tmp_path)

    with pytest.raises(ValidationError):
        ledger.history(limit=0)
    with pytest.raises(ValidationError):
        ledger.history(offset=-1)

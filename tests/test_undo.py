from __future__ import annotations

import gc
import threading
from datetime import date, datetime, timezone
from pathlib import Path

import pytest

from packages.freshness import ActionType, DomainError, NotFoundError, ProductRecord, fixed_clock
from services.expiry import ActionLedger, ExpiryStore, UndoEngine
from services.expiry.store import _LOCKS, _ProductLocks

NOW = datetime(2024, 6, 10, 9, 0, tzinfo=timezone.utc)


def _setup(tmp_path: Path) -> tuple[ExpiryStore, ActionLedger, UndoEngine]:
    store = ExpiryStore(tmp_path / "shelfwatch.db")
    store.ensure_schema()
    store.save_product(ProductRecord(id="milk", name="Vollmilch", expiry_date=date(2024, 6, 12)))
    store.save_product(ProductRecord(id="bread", name="Roggenbrot", expiry_date=date(2024, 6, 10)))
    clock = fixed_clock(NOW, "Europe/Berlin")
    return store, ActionLedger(store, clock), UndoEngine(store, clock)


def test_undo_flags_entry_and_appends_marker(tmp_path: Path) -> None:
    store, ledger, engine = _setup(tmp_path)
    action = ledger.label("milk", "admin-1")

    reverted = engine.undo(action.id, "admin-2")

    assert reverted.id == action.id
    assert reverted.is_undone is True
    assert reverted.undone_by == "admin-2"
    assert reverted.undone_at == NOW
    history = ledger.history(product_id="milk")
    marker = history.actions[0]
    assert marker.action_type is ActionType.UNDONE
    assert marker.previous_action_id == action.id
    assert marker.note == "Rückgängig gemacht: labeled"
    assert store.last_actions(["milk"]) == {}


def test_second_undo_is_rejected(tmp_path: Path) -> None:
    store, ledger, engine = _setup(tmp_path)
    action = ledger.label("milk", "admin-1")
    engine.undo(action.id, "admin-1")

    with pytest.raises(DomainError) as excinfo:
        engine.undo(action.id, "admin-1")

    assert "already undone" in excinfo.value.reason
    assert store.get_action(action.id).is_undone is True


def test_undo_marker_cannot_be_undone(tmp_path: Path) -> None:
    _, ledger, engine = _setup(tmp_path)
    action = ledger.label("milk", "admin-1")
    engine.undo(action.id, "admin-1")
    marker = ledger.history(action_type=ActionType.UNDONE).actions[0]

    with pytest.raises(DomainError):
        engine.undo(marker.id, "admin-1")


def test_only_latest_action_can_be_undone(tmp_path: Path) -> None:
    _, ledger, engine = _setup(tmp_path)
    first = ledger.update_expiry_date("milk", "admin-1", date(2024, 6, 11))
    second = ledger.label("milk", "admin-1")

    with pytest.raises(DomainError):
        engine.undo(first.id, "admin-1")

    engine.undo(second.id, "admin-1")
    reverted = engine.undo(first.id, "admin-1")
    assert reverted.is_undone is True


def test_undo_unknown_action(tmp_path: Path) -> None:
    _, _, engine = _setup(tmp_path)

    with pytest.raises(NotFoundError):
        engine.undo(999, "admin-1")


def test_undo_keeps_live_expiry_date(tmp_path: Path) -> None:
    store, ledger, engine = _setup(tmp_path)
    action = ledger.remove_critical("bread", "admin-1", date(2024, 6, 20))

    reverted = engine.undo(action.id, "admin-1")

    assert reverted.prior_expiry_date == date(2024, 6, 10)
    assert store.get_product("bread").expiry_date == date(2024, 6, 20)


def test_undo_deactivation_clears_exclusion(tmp_path: Path) -> None:
    store, ledger, engine = _setup(tmp_path)
    action = ledger.deactivate("milk", "admin-1")
    assert store.get_product("milk").exclude_from_expiry_check is True

    engine.undo(action.id, "admin-1")

    assert store.get_product("milk").exclude_from_expiry_check is False
    ledger.label("milk", "admin-1")


def test_concurrent_undo_of_same_action_succeeds_once(tmp_path: Path) -> None:
    store, ledger, engine = _setup(tmp_path)
    action = ledger.label("milk", "admin-1")
    workers = 8
    barrier = threading.Barrier(workers)
    outcomes: list[str] = []
    outcomes_lock = threading.Lock()

    def _undo(n: int) -> None:
        barrier.wait()
        try:
            engine.undo(action.id, f"admin-{n}")
            outcome = "ok"
        except DomainError:
            outcome = "DomainError"
        with outcomes_lock:
            outcomes.append(outcome)

    threads = [threading.Thread(target=_undo, args=(n,)) for n in range(workers)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert sorted(outcomes) == ["DomainError"] * (workers - 1) + ["ok"]
    assert ledger.history(action_type=ActionType.UNDONE).total == 1
    assert store.get_action(action.id).is_undone is True


def test_product_locks_are_released_with_their_holders(tmp_path: Path) -> None:
    locks = _ProductLocks()
    lock = locks.get("milk")

    assert locks.get("milk") is lock
    assert len(locks) == 1
    del lock
    assert len(locks) == 0

    _, ledger, engine = _setup(tmp_path)
    engine.undo(ledger.label("milk", "admin-1").id, "admin-1")
    gc.collect()
    assert len(_LOCKS) == 0

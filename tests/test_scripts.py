from __future__ import annotations

import json
from datetime import date
from pathlib import Path

import pytest

from scripts import check_expiry
from scripts.db_migrate import run as run_migration
from scripts.seed_products import DEMO_PRODUCTS, build_products
from services.expiry import ExpiryStore


def test_build_products_offsets_from_today() -> None:
    products = build_products(date(2024, 6, 10))

    by_id = {product.id: product for product in products}
    assert len(products) == len(DEMO_PRODUCTS)
    assert by_id["demo-milk"].expiry_date == date(2024, 6, 10)
    assert by_id["demo-croissant"].expiry_date == date(2024, 6, 9)
    assert by_id["demo-pasta"].expiry_date is None


def test_db_migrate_creates_schema(tmp_path: Path) -> None:
    db_path = run_migration(tmp_path / "nested" / "shelfwatch.db")

    assert db_path.exists()
    assert ExpiryStore(db_path).load_settings().warning_days == 3


def test_check_expiry_prints_result(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    config_path = tmp_path / "expiry.yaml"
    config_path.write_text("log_level: warning\ntimezone: Europe/Berlin\n", encoding="utf-8")

    exit_code = check_expiry.main(
        ["--config", str(config_path), "--database", str(tmp_path / "shelfwatch.db"), "--mode", "check"]
    )

    assert exit_code == 0
    payload = json.loads(capsys.readouterr().out)
    assert payload["sent"] is True
    assert payload["counts"] == {"critical": 0, "warning": 0, "total": 0, "processed": 0}


def test_reminder_mode_skips_empty_worklist(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    exit_code = check_expiry.main(["--database", str(tmp_path / "shelfwatch.db"), "--mode", "reminder"])

    assert exit_code == 0
    payload = json.loads(capsys.readouterr().out)
    assert payload["reason"] == "nothing_pending"

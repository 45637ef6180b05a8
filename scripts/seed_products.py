"""Seed demo products with expiry dates relative to today."""
from __future__ import annotations

import argparse
import logging
from dataclasses import dataclass
from datetime import date, timedelta
from pathlib import Path
from typing import List, Optional, Sequence

from dotenv import load_dotenv

from packages.freshness import Clock, ProductRecord
from services.expiry import ExpiryStore, load_config

ROOT = Path(__file__).resolve().parents[1]
LOGGER = logging.getLogger("shelfwatch.scripts.seed")


@dataclass(frozen=True)
class DemoProduct:
    id: str
    name: str
    category_id: str
    category_name: str
    barcode: str
    days_from_today: Optional[int]


DEMO_PRODUCTS: Sequence[DemoProduct] = (
    DemoProduct("demo-milk", "Frische Vollmilch 1L", "dairy", "Molkereiprodukte", "4001234500011", 0),
    DemoProduct("demo-yogurt", "Naturjoghurt 500g", "dairy", "Molkereiprodukte", "4001234500028", 2),
    DemoProduct("demo-cheese", "Gouda in Scheiben", "dairy", "Molkereiprodukte", "4001234500035", 9),
    DemoProduct("demo-bread", "Roggenbrot 750g", "bakery", "Backwaren", "4001234500042", 1),
    DemoProduct("demo-croissant", "Buttercroissant", "bakery", "Backwaren", "4001234500059", -1),
    DemoProduct("demo-salad", "Rucola 125g", "produce", "Obst & Gemüse", "4001234500066", 3),
    DemoProduct("demo-pasta", "Spaghetti 500g", "pantry", "Vorratsschrank", "4001234500073", None),
)


def build_products(today: date, demo: Sequence[DemoProduct] = DEMO_PRODUCTS) -> List[ProductRecord]:
    products: List[ProductRecord] = []
    for item in demo:
        expiry = today + timedelta(days=item.days_from_today) if item.days_from_today is not None else None
        products.append(
            ProductRecord(
                id=item.id,
                name=item.name,
                category_id=item.category_id,
                category_name=item.category_name,
                barcode=item.barcode,
                expiry_date=expiry,
            )
        )
    return products


def main(argv: Sequence[str] | None = None) -> int:
    load_dotenv(ROOT / ".env")
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")
    parser = argparse.ArgumentParser(description="Seed ShelfWatch demo products.")
    parser.add_argument("--database", type=Path, help="Override the SQLite database path.")
    parser.add_argument("--config", type=Path, help="Path to the expiry configuration YAML.")
    args = parser.parse_args(argv)

    config = load_config(args.config)
    store = ExpiryStore(args.database, default_settings=config.defaults.to_settings())
    store.ensure_schema()
    today = Clock(config.timezone).today()
    for product in build_products(today):
        store.save_product(product)
        LOGGER.info("Seeded %s (expiry %s)", product.name, product.expiry_date)
    return 0


if __name__ == "__main__":  # pragma: no cover - manual execution
    raise SystemExit(main())

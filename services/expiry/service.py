"""Expiry management engine facade used by the web app and scripts."""
from __future__ import annotations

import json
import logging
from collections import defaultdict
from datetime import date, timedelta
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Tuple

from jsonschema import Draft202012Validator

from packages.freshness import (
    ActionEntry,
    ActionType,
    Band,
    BandEntry,
    Clock,
    DashboardItem,
    ExpirySettings,
    ResolvedBands,
    ValidationError,
    build_dashboard,
    classify,
    evaluate_items,
    resolve_bands,
)
from packages.freshness.aggregate import GROUP_BY_CATEGORY, GROUP_BY_CHOICES
from packages.freshness.dedup import prior_band

from .config import ExpiryConfig, load_config
from .ledger import ActionLedger, HistoryPage
from .notifier import (
    CHECK_AND_NOTIFY,
    DAILY_REMINDER,
    ExpiryNotification,
    LoggingNotifier,
    NotificationSender,
)
from .store import ExpiryStore
from .undo import UndoEngine

REPO_ROOT = Path(__file__).resolve().parents[2]
SETTINGS_SCHEMA_PATH = REPO_ROOT / "contracts" / "schemas" / "expiry_settings.schema.json"
OUT_OF_STOCK_SCENARIO = "out_of_stock"

with SETTINGS_SCHEMA_PATH.open("r", encoding="utf-8") as handle:
    _SETTINGS_VALIDATOR = Draft202012Validator(json.load(handle))

LOGGER = logging.getLogger("shelfwatch.expiry.service")


class ExpiryService:
    """Classify, gate and record expiry actions on demand."""

    def __init__(
        self,
        store: ExpiryStore,
        *,
        clock: Optional[Clock] = None,
        config: Optional[ExpiryConfig] = None,
        notifier: Optional[NotificationSender] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.config = config or ExpiryConfig()
        self.store = store
        self.clock = clock or Clock(self.config.timezone)
        self.notifier: NotificationSender = notifier or LoggingNotifier()
        self._logger = logger or LOGGER
        self.ledger = ActionLedger(store, self.clock, logger=self._logger.getChild("ledger"))
        self.undo_engine = UndoEngine(store, self.clock, logger=self._logger.getChild("undo"))

    @classmethod
    def from_config(
        cls,
        config: Optional[ExpiryConfig] = None,
        *,
        db_path: Path | None = None,
        notifier: Optional[NotificationSender] = None,
        clock: Optional[Clock] = None,
    ) -> "ExpiryService":
        resolved = config or load_config()
        store = ExpiryStore(db_path, default_settings=resolved.defaults.to_settings())
        store.ensure_schema()
        return cls(store, clock=clock, config=resolved, notifier=notifier)

    # Settings ------------------------------------------------------------- #

    def get_settings(self) -> ExpirySettings:
        return self.store.load_settings()

    def update_settings(self, payload: Mapping[str, object]) -> ExpirySettings:
        errors = sorted(_SETTINGS_VALIDATOR.iter_errors(dict(payload)), key=lambda error: list(error.path))
        if errors:
            raise ValidationError(f"Invalid settings: {errors[0].message}")
        settings = self.get_settings().merged(payload).validate()
        self.store.save_settings(settings)
        self._logger.info("Expiry settings updated: %s", settings.to_dict())
        return settings

    # Read side ------------------------------------------------------------ #

    def critical_products(self, today: Optional[date] = None) -> List[BandEntry]:
        critical, _ = self._band_queries(self._today(today), self.get_settings())
        return critical

    def warning_products(self, today: Optional[date] = None) -> List[BandEntry]:
        _, warning = self._band_queries(self._today(today), self.get_settings())
        return warning

    def resolved_bands(self, today: Optional[date] = None) -> ResolvedBands:
        day = self._today(today)
        settings = self.get_settings()
        critical, warning = self._band_queries(day, settings)
        return resolve_bands(critical, warning, settings, day, fallback=self.config.dedup_fallback)

    def worklist(self, today: Optional[date] = None) -> List[DashboardItem]:
        day = self._today(today)
        return evaluate_items(self.resolved_bands(day), day, self.clock)

    def dashboard(self, preview_date: Optional[date] = None, group_by: str = GROUP_BY_CATEGORY) -> Dict[str, object]:
        if group_by not in GROUP_BY_CHOICES:
            raise ValidationError(f"group_by must be one of {', '.join(GROUP_BY_CHOICES)}")
        real_today = self.clock.today()
        day = preview_date or real_today
        settings = self.get_settings()
        payload = build_dashboard(
            self.worklist(day),
            settings,
            day,
            group_by=group_by,
            preview=day != real_today,
        )
        payload["enabled"] = settings.enabled
        return payload

    def history(
        self,
        *,
        day: Optional[date] = None,
        limit: Optional[int] = None,
        offset: int = 0,
        admin_id: Optional[str] = None,
        product_id: Optional[str] = None,
        action_type: Optional[str] = None,
        latest_only: bool = False,
    ) -> HistoryPage:
        return self.ledger.history(
            day=day,
            limit=limit or self.config.history_limit,
            offset=offset,
            admin_id=admin_id,
            product_id=product_id,
            action_type=_parse_action_type(action_type),
            latest_only=latest_only,
        )

    # Mutations ------------------------------------------------------------ #

    def label(self, product_id: str, admin_id: str, note: Optional[str] = None) -> ActionEntry:
        return self.ledger.label(product_id, admin_id, note)

    def remove(
        self,
        product_id: str,
        admin_id: str,
        *,
        exclude_from_check: bool = False,
        new_expiry_date: Optional[date] = None,
        note: Optional[str] = None,
        scenario: Optional[str] = None,
    ) -> ActionEntry:
        """Sort a product out, or deactivate it when it is out of stock."""

        if scenario == OUT_OF_STOCK_SCENARIO or exclude_from_check:
            return self.ledger.deactivate(product_id, admin_id, note)
        return self.ledger.remove_critical(product_id, admin_id, new_expiry_date, note)

    def update_expiry_date(
        self,
        product_id: str,
        admin_id: str,
        new_expiry_date: Optional[date],
        note: Optional[str] = None,
    ) -> ActionEntry:
        return self.ledger.update_expiry_date(product_id, admin_id, new_expiry_date, note)

    def undo(self, action_id: int, admin_id: str) -> ActionEntry:
        return self.undo_engine.undo(action_id, admin_id)

    # Notifications -------------------------------------------------------- #

    def daily_reminder(self) -> Dict[str, object]:
        """Forward today's pending products to the notification sender."""

        day = self.clock.today()
        if not self.get_settings().enabled:
            return {"sent": False, "date": day.isoformat(), "reason": "disabled"}
        pending = [item for item in self.worklist(day) if _needs_action(item)]
        counts = _pending_counts(pending)
        if not pending:
            return {"sent": False, "date": day.isoformat(), "counts": counts, "reason": "nothing_pending"}
        notification = ExpiryNotification(
            kind=DAILY_REMINDER,
            subject=f"MHD-Erinnerung: {counts['total']} Produkte offen",
            date=day.isoformat(),
            counts=counts,
            products=[_notification_product(item) for item in pending],
        )
        return self._dispatch(notification)

    def check_and_notify(self) -> Dict[str, object]:
        """Forward the current unprocessed counts to the notification sender."""

        day = self.clock.today()
        if not self.get_settings().enabled:
            return {"sent": False, "date": day.isoformat(), "reason": "disabled"}
        items = self.worklist(day)
        pending = [item for item in items if _needs_action(item)]
        counts = _pending_counts(pending)
        counts["processed"] = sum(1 for item in items if item.is_processed)
        notification = ExpiryNotification(
            kind=CHECK_AND_NOTIFY,
            subject=f"MHD-Status {day.strftime('%d.%m.%Y')}",
            date=day.isoformat(),
            counts=counts,
        )
        return self._dispatch(notification)

    # Internals ------------------------------------------------------------ #

    def _dispatch(self, notification: ExpiryNotification) -> Dict[str, object]:
        result: Dict[str, object] = {
            "sent": False,
            "date": notification.date,
            "counts": dict(notification.counts),
        }
        try:
            self.notifier.send(notification)
        except Exception:
            self._logger.exception("Failed to send %s notification", notification.kind)
            result["error"] = "notification_failed"
            return result
        result["sent"] = True
        return result

    def _today(self, today: Optional[date]) -> date:
        return today or self.clock.today()

    def _band_queries(self, today: date, settings: ExpirySettings) -> Tuple[List[BandEntry], List[BandEntry]]:
        """Raw, non-deduplicated critical and warning lists.

        A product is listed under a band while its current date puts it there,
        and for the rest of the civil day under the band it occupied when one of
        today's actions was taken.
        """

        if not settings.enabled:
            return [], []
        cutoff = today + timedelta(days=settings.warning_days)
        products = {product.id: product for product in self.store.products_expiring_by(cutoff)}

        start, end = self.clock.day_bounds(today)
        acted_bands: Dict[str, set[Band]] = defaultdict(set)
        for action in self.store.effective_actions_between(start, end):
            band = prior_band(action, settings, today)
            if band is not None and band.at_risk:
                acted_bands[action.product_id].add(band)
        missing = [product_id for product_id in acted_bands if product_id not in products]
        for product in self.store.get_products(missing):
            products[product.id] = product

        last_actions = self.store.last_actions(products)
        critical: List[BandEntry] = []
        warning: List[BandEntry] = []
        for product in sorted(products.values(), key=_product_sort_key):
            classification = classify(product, settings, today)
            bands = set(acted_bands.get(product.id, ()))
            if classification.band.at_risk:
                bands.add(classification.band)
            entry = BandEntry(product=product, classification=classification, last_action=last_actions.get(product.id))
            if Band.CRITICAL in bands:
                critical.append(entry)
            if Band.WARNING in bands:
                warning.append(entry)
        return critical, warning


def _needs_action(item: DashboardItem) -> bool:
    return not item.is_processed and not item.entry.product.exclude_from_expiry_check


def _pending_counts(pending: List[DashboardItem]) -> Dict[str, int]:
    critical = sum(1 for item in pending if item.band is Band.CRITICAL)
    warning = sum(1 for item in pending if item.band is Band.WARNING)
    return {"critical": critical, "warning": warning, "total": critical + warning}


def _notification_product(item: DashboardItem) -> Dict[str, object]:
    product = item.entry.product
    return {
        "id": product.id,
        "name": product.name,
        "category": product.category_name,
        "band": item.band.value,
        "days_until_expiry": item.entry.classification.days_until_expiry,
    }


def _product_sort_key(product) -> tuple:
    return (product.expiry_date or date.max, product.name.lower())


def _parse_action_type(value: Optional[str]) -> Optional[ActionType]:
    if value in (None, ""):
        return None
    try:
        return ActionType(str(value).strip().lower())
    except ValueError:
        raise ValidationError(f"Unknown action type: {value!r}") from None


__all__ = ["ExpiryService", "OUT_OF_STOCK_SCENARIO", "SETTINGS_SCHEMA_PATH"]

"""Read-side grouping of the daily worklist by category or band."""
from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass
from datetime import date
from typing import Dict, Iterable, List, Optional

from .clock import Clock
from .dedup import ResolvedBands
from .gate import is_unprocessed
from .model import ActionEntry, ActionType, Band, BandEntry, ExpirySettings

GROUP_BY_CATEGORY = "category"
GROUP_BY_BAND = "band"
GROUP_BY_CHOICES = (GROUP_BY_CATEGORY, GROUP_BY_BAND)

TASK_REMOVE = "remove"
TASK_LABEL = "label"

UNCATEGORIZED_ID = "uncategorized"
UNCATEGORIZED_NAME = "Ohne Kategorie"
_BAND_NAMES = {Band.CRITICAL: "Heute aussortieren", Band.WARNING: "Bald reduzieren"}


@dataclass(frozen=True)
class DashboardItem:
    entry: BandEntry
    band: Band
    is_processed: bool

    @property
    def task_type(self) -> str:
        return TASK_REMOVE if self.band is Band.CRITICAL else TASK_LABEL

    @property
    def badge(self) -> Optional[str]:
        if not self.is_processed:
            return None
        return action_badge(self.entry.last_action)

    def to_dict(self) -> Dict[str, object]:
        payload = self.entry.to_dict()
        payload["resolved_band"] = self.band.value
        payload["is_processed"] = self.is_processed
        payload["task_type"] = self.task_type
        payload["badge"] = self.badge
        return payload


def action_badge(action: Optional[ActionEntry]) -> Optional[str]:
    """Display label for what was done to a product."""

    if action is None or not action.is_effective:
        return None
    if action.action_type is ActionType.LABELED:
        return "Reduziert"
    if action.action_type is ActionType.DATE_UPDATED:
        return "Neues Datum"
    if action.action_type is ActionType.REMOVED:
        return "Deaktiviert" if action.excluded_from_check else "Aussortiert"
    return None


def evaluate_items(resolved: ResolvedBands, today: date, clock: Clock) -> List[DashboardItem]:
    """Run the daily-processing gate over the deduplicated bands."""

    items: List[DashboardItem] = []
    for band, entries in ((Band.CRITICAL, resolved.unique_critical), (Band.WARNING, resolved.unique_warning)):
        for entry in entries:
            unprocessed = is_unprocessed(
                entry.product,
                entry.classification.band,
                entry.last_action,
                today,
                clock,
            )
            items.append(DashboardItem(entry=entry, band=band, is_processed=not unprocessed))
    return items


def completion_rate(processed: int, total: int) -> int:
    if total <= 0:
        return 100
    return int(round(processed * 100 / total))


def build_dashboard(
    items: Iterable[DashboardItem],
    settings: ExpirySettings,
    today: date,
    *,
    group_by: str = GROUP_BY_CATEGORY,
    preview: bool = False,
) -> Dict[str, object]:
    """Group worklist items and compute progress figures for the dashboard.

    ``pending`` and ``completion_rate`` count every listed product, deactivated
    ones included, because those need daily re-confirmation. ``excluded_pending``
    is the deactivated share of ``pending``; notification totals leave it out.
    """

    if group_by not in GROUP_BY_CHOICES:
        raise ValueError(f"group_by must be one of {', '.join(GROUP_BY_CHOICES)}")

    ordered = sorted(items, key=_sort_key)
    groups: "OrderedDict[str, Dict[str, object]]" = OrderedDict()
    for item in ordered:
        group_id, group_name = _group_key(item, group_by)
        group = groups.get(group_id)
        if group is None:
            group = {"id": group_id, "name": group_name, "items": []}
            groups[group_id] = group
        group["items"].append(item)

    group_payloads = [_summarize_group(group) for group in groups.values()]
    if group_by == GROUP_BY_CATEGORY:
        group_payloads.sort(key=lambda payload: str(payload["name"]).lower())

    processed = sum(1 for item in ordered if item.is_processed)
    excluded_pending = sum(
        1 for item in ordered if not item.is_processed and item.entry.product.exclude_from_expiry_check
    )
    total = len(ordered)
    day_label = today.strftime("%d.%m.%Y")
    return {
        "date": today.isoformat(),
        "date_label": f"Vorschau {day_label}" if preview else f"Heute, {day_label}",
        "deadline_label": f"Bearbeitung bis {settings.processing_deadline} Uhr",
        "preview": {"is_preview": preview, "date": today.isoformat() if preview else None},
        "settings": settings.to_dict(),
        "group_by": group_by,
        "groups": group_payloads,
        "action_summary": _band_summary(ordered),
        "stats": {
            "total_categories": len({_group_key(item, GROUP_BY_CATEGORY)[0] for item in ordered}),
            "total_products": total,
            "processed": processed,
            "pending": total - processed,
            "excluded_pending": excluded_pending,
            "completion_rate": completion_rate(processed, total),
            "progress_label": f"{processed}/{total}",
        },
    }


def _summarize_group(group: Dict[str, object]) -> Dict[str, object]:
    items: List[DashboardItem] = group["items"]  # type: ignore[assignment]
    processed = sum(1 for item in items if item.is_processed)
    return {
        "id": group["id"],
        "name": group["name"],
        "product_count": len(items),
        "pending_count": len(items) - processed,
        "processed_count": processed,
        "summary": _band_summary(items),
        "products": [item.to_dict() for item in items],
    }


def _band_summary(items: List[DashboardItem]) -> Dict[str, Dict[str, int]]:
    remove = [item for item in items if item.band is Band.CRITICAL]
    label = [item for item in items if item.band is Band.WARNING]
    return {
        "remove_today": {"total": len(remove), "processed": sum(1 for item in remove if item.is_processed)},
        "label_soon": {"total": len(label), "processed": sum(1 for item in label if item.is_processed)},
    }


def _group_key(item: DashboardItem, group_by: str) -> tuple[str, str]:
    if group_by == GROUP_BY_BAND:
        return item.band.value, _BAND_NAMES[item.band]
    product = item.entry.product
    return product.category_id or UNCATEGORIZED_ID, product.category_name or UNCATEGORIZED_NAME


def _sort_key(item: DashboardItem) -> tuple[int, int, str]:
    days = item.entry.classification.days_until_expiry
    return (-item.band.urgency, days if days is not None else 10**6, item.entry.product.name.lower())


__all__ = [
    "DashboardItem",
    "GROUP_BY_BAND",
    "GROUP_BY_CATEGORY",
    "GROUP_BY_CHOICES",
    "TASK_LABEL",
    "TASK_REMOVE",
    "action_badge",
    "build_dashboard",
    "completion_rate",
    "evaluate_items",
]

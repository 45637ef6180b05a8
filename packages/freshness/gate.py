"""Decide whether a product still needs staff attention today."""
from __future__ import annotations

from datetime import date
from typing import Optional

from .clock import Clock
from .model import ActionEntry, ActionType, Band, ProductRecord


def is_unprocessed(
    product: ProductRecord,
    band: Band,
    last_action: Optional[ActionEntry],
    today: date,
    clock: Clock,
) -> bool:
    """Return True while staff still have to act on ``product`` today.

    The result depends jointly on when the last effective action happened and
    on the band the product landed in afterwards:

    * an excluded product needs re-confirmation every day it was not acted on;
    * a date correction made today only counts as handled once the new date
      has moved the product out of the risk bands;
    * any other action made today marks the product as handled.
    """

    acted_today = (
        last_action is not None
        and last_action.is_effective
        and clock.is_today(last_action.created_at, today=today)
    )
    if product.exclude_from_expiry_check:
        return not acted_today
    if not acted_today:
        return True
    if last_action.action_type is ActionType.DATE_UPDATED:
        return band.at_risk
    return False


__all__ = ["is_unprocessed"]

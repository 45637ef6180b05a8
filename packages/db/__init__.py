"""SQLAlchemy persistence helpers for ShelfWatch."""
from __future__ import annotations

from .core import ensure_db_path, get_db_path
from .models import (
    Base,
    ExpiryActionRow,
    ExpirySettingsRow,
    ProductRow,
    create_all,
    expiry_session,
    get_engine,
    get_session_factory,
)

__all__ = [
    "ensure_db_path",
    "get_db_path",
    "Base",
    "ExpiryActionRow",
    "ExpirySettingsRow",
    "ProductRow",
    "create_all",
    "expiry_session",
    "get_engine",
    "get_session_factory",
]

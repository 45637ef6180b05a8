"""Expiry-date management (MHD-Verwaltung) services."""
from .config import DEFAULT_CONFIG_PATH, DefaultSettingsConfig, ExpiryConfig, load_config
from .ledger import ActionLedger, HistoryPage
from .notifier import CallbackNotifier, ExpiryNotification, LoggingNotifier, NotificationSender
from .service import OUT_OF_STOCK_SCENARIO, ExpiryService
from .store import ExpiryStore, ProductScope
from .undo import UndoEngine

__all__ = [
    "ActionLedger",
    "CallbackNotifier",
    "DEFAULT_CONFIG_PATH",
    "DefaultSettingsConfig",
    "ExpiryConfig",
    "ExpiryNotification",
    "ExpiryService",
    "ExpiryStore",
    "HistoryPage",
    "LoggingNotifier",
    "NotificationSender",
    "OUT_OF_STOCK_SCENARIO",
    "ProductScope",
    "UndoEngine",
    "load_config",
]

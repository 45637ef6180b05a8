"""Configuration helpers for the expiry management engine."""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, MutableMapping, Optional

import yaml

from packages.freshness import DedupFallback, ExpirySettings
from packages.freshness.clock import DEFAULT_TIMEZONE

REPO_ROOT = Path(__file__).resolve().parents[2]
DEFAULT_CONFIG_PATH = REPO_ROOT / "config" / "expiry.yaml"


@dataclass
class DefaultSettingsConfig:
    """Threshold settings used until an admin saves their own."""

    enabled: bool = True
    warning_days: int = 3
    critical_days: int = 0
    processing_deadline: str = "20:00"

    @classmethod
    def from_mapping(cls, data: Optional[Mapping[str, object]]) -> "DefaultSettingsConfig":
        if not data:
            return cls()
        return cls(
            enabled=_coerce_bool(data.get("enabled"), default=cls.enabled),
            warning_days=_coerce_non_negative(data.get("warning_days"), default=cls.warning_days),
            critical_days=_coerce_non_negative(data.get("critical_days"), default=cls.critical_days),
            processing_deadline=str(data.get("processing_deadline") or cls.processing_deadline),
        )

    def to_settings(self) -> ExpirySettings:
        return ExpirySettings(
            enabled=self.enabled,
            warning_days=self.warning_days,
            critical_days=self.critical_days,
            processing_deadline=self.processing_deadline,
        ).validate()


@dataclass
class ExpiryConfig:
    """Top-level configuration for the expiry engine."""

    log_level: str = "INFO"
    timezone: str = DEFAULT_TIMEZONE
    dedup_fallback: DedupFallback = DedupFallback.WARNING
    history_limit: int = 100
    defaults: DefaultSettingsConfig = field(default_factory=DefaultSettingsConfig)

    @classmethod
    def from_mapping(cls, data: Mapping[str, object]) -> "ExpiryConfig":
        log_level = str(data.get("log_level", cls.log_level)).strip() or cls.log_level
        timezone_name = os.getenv("SHELFWATCH_TIMEZONE") or str(data.get("timezone") or DEFAULT_TIMEZONE)
        fallback_raw = data.get("dedup_fallback")
        dedup_fallback = DedupFallback.parse(fallback_raw) if fallback_raw else cls.dedup_fallback
        history_limit = _coerce_non_negative(data.get("history_limit"), default=cls.history_limit)
        if history_limit == 0:
            history_limit = cls.history_limit
        defaults = DefaultSettingsConfig.from_mapping(_get_mapping(data, "defaults"))
        return cls(
            log_level=log_level.upper(),
            timezone=timezone_name,
            dedup_fallback=dedup_fallback,
            history_limit=history_limit,
            defaults=defaults,
        )


def resolve_config_path(path: Path | None = None) -> Path:
    if path is not None:
        return Path(path)
    override = os.getenv("SHELFWATCH_CONFIG_PATH")
    return Path(override) if override else DEFAULT_CONFIG_PATH


def load_config(path: Path | None = None) -> ExpiryConfig:
    """Load expiry configuration from YAML."""

    config_path = resolve_config_path(path)
    if not config_path.exists():
        return ExpiryConfig.from_mapping({})
    data = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
    if not isinstance(data, Mapping):
        raise ValueError("Expiry configuration must be a mapping")
    return ExpiryConfig.from_mapping(data)


def _get_mapping(data: Mapping[str, object], key: str) -> MutableMapping[str, object]:
    value = data.get(key)
    if isinstance(value, Mapping):
        return dict(value)
    return {}


def _coerce_bool(value: object, *, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    lowered = str(value).strip().lower()
    if lowered in {"true", "yes", "1"}:
        return True
    if lowered in {"false", "no", "0"}:
        return False
    raise ValueError(f"Invalid boolean value: {value!r}")


def _coerce_non_negative(value: object, *, default: int) -> int:
    if value in (None, ""):
        return default
    try:
        return max(0, int(value))  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return default


__all__ = [
    "DEFAULT_CONFIG_PATH",
    "DefaultSettingsConfig",
    "ExpiryConfig",
    "load_config",
    "resolve_config_path",
]

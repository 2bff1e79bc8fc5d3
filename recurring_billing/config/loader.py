"""
Configuration Loader (``recurring_billing.config.loader``).

Loads YAML configuration documents and parses them into the frozen
``BillingConfig`` dataclass.  Callers obtain configuration through
``recurring_billing.config.get_active_config()``, never from here.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Wrong value types or unknown time zone -> ``ValueError``.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml

from recurring_billing.config.schema import BillingConfig

_LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})


def load_yaml(path: Path) -> dict[str, Any]:
    """Read one YAML document; an empty file is an empty mapping."""
    with open(path, encoding="utf-8") as fh:
        data = yaml.safe_load(fh)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top-level YAML must be a mapping")
    return data


def merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursive dict merge; ``override`` wins on scalar conflicts."""
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _positive_int(section: dict[str, Any], key: str, default: int) -> int:
    value = section.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ValueError(f"{key} must be a positive integer, got {value!r}")
    return value


def _text(section: dict[str, Any], key: str, default: str) -> str:
    value = section.get(key, default)
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"{key} must be a non-empty string, got {value!r}")
    return value


def parse_config(data: dict[str, Any]) -> BillingConfig:
    """Parse a merged configuration mapping into ``BillingConfig``."""
    base = BillingConfig()
    defaults = data.get("defaults") or {}
    database = data.get("database") or {}
    logging_section = data.get("logging") or {}

    timezone_name = _text(defaults, "timezone", base.default_timezone)
    try:
        ZoneInfo(timezone_name)
    except (ZoneInfoNotFoundError, ValueError):
        raise ValueError(f"Unknown time zone: {timezone_name!r}") from None

    log_level = str(logging_section.get("level", base.log_level)).upper()
    if log_level not in _LOG_LEVELS:
        raise ValueError(f"Unknown log level: {log_level!r}")

    return BillingConfig(
        default_timezone=timezone_name,
        default_invoice_prefix=_text(defaults, "invoice_prefix", base.default_invoice_prefix),
        default_due_date_duration_days=_positive_int(
            defaults, "due_date_duration_days", base.default_due_date_duration_days,
        ),
        default_payment_terms=_text(defaults, "payment_terms", base.default_payment_terms),
        invoice_number_padding=_positive_int(
            defaults, "invoice_number_padding", base.invoice_number_padding,
        ),
        database_url=_text(database, "url", base.database_url),
        database_echo=bool(database.get("echo", base.database_echo)),
        log_level=log_level,
    )

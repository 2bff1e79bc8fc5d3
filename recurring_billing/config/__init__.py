"""
recurring_billing.config -- single public entrypoint for configuration.

Responsibility:
    ``get_active_config()`` is the ONLY way to obtain configuration at
    runtime.  No other component reads configuration files or environment
    variables.

Failure modes:
    - ``FileNotFoundError`` -- override file does not exist.
    - ``ValueError`` -- a value fails validation.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from recurring_billing.config.loader import load_yaml, merge, parse_config
from recurring_billing.config.schema import BillingConfig

_logger = logging.getLogger("billing_kernel.config")

_DEFAULTS_FILE = Path(__file__).parent / "defaults.yaml"

CONFIG_ENV_VAR = "RECURRING_BILLING_CONFIG"


def get_active_config(config_path: Path | str | None = None) -> BillingConfig:
    """Load packaged defaults, apply an optional override file, validate.

    Args:
        config_path: Override YAML file.  When None, the
            ``RECURRING_BILLING_CONFIG`` environment variable is consulted.
    """
    data = load_yaml(_DEFAULTS_FILE)

    override = config_path or os.environ.get(CONFIG_ENV_VAR)
    if override:
        data = merge(data, load_yaml(Path(override)))

    config = parse_config(data)
    _logger.info(
        "billing_config_loaded",
        extra={
            "override": str(override) if override else None,
            "default_timezone": config.default_timezone,
            "default_invoice_prefix": config.default_invoice_prefix,
        },
    )
    return config


__all__ = [
    "BillingConfig",
    "CONFIG_ENV_VAR",
    "get_active_config",
]

"""
Configuration schema (``recurring_billing.config.schema``).

Frozen dataclasses only; parsing lives in ``loader``.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class BillingConfig:
    """Runtime configuration of the recurring billing engine.

    The ``default_*`` values are the last link of every
    profile -> account -> default fallback chain.
    """

    default_timezone: str = "America/New_York"
    default_invoice_prefix: str = "INV"
    default_due_date_duration_days: int = 7
    default_payment_terms: str = "Due on receipt"
    invoice_number_padding: int = 5
    database_url: str = "sqlite:///recurring_billing.db"
    database_echo: bool = False
    log_level: str = "INFO"

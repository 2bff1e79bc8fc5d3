"""
recurring_billing.domain -- Pure types, cadence arithmetic and templates.

ZERO database I/O.  All types are frozen dataclasses.
"""

from recurring_billing.domain.cadence import next_occurrence, period_bounds
from recurring_billing.domain.period_template import expand_description, expand_line_items
from recurring_billing.domain.schedule import is_eligible, skip_reason
from recurring_billing.domain.settings import resolve_setting
from recurring_billing.domain.types import (
    Account,
    Customer,
    Frequency,
    GenerationFailed,
    GenerationOutcome,
    GenerationRunResult,
    GenerationRunStatus,
    GenerationSkipped,
    GenerationSuccess,
    Invoice,
    InvoicePayload,
    InvoiceSettings,
    LineItem,
    RecurrenceDraft,
    RecurrenceRecord,
    Scope,
    SkipReason,
)

__all__ = [
    "Account",
    "Customer",
    "Frequency",
    "GenerationFailed",
    "GenerationOutcome",
    "GenerationRunResult",
    "GenerationRunStatus",
    "GenerationSkipped",
    "GenerationSuccess",
    "Invoice",
    "InvoicePayload",
    "InvoiceSettings",
    "LineItem",
    "RecurrenceDraft",
    "RecurrenceRecord",
    "Scope",
    "SkipReason",
    "expand_description",
    "expand_line_items",
    "is_eligible",
    "next_occurrence",
    "period_bounds",
    "resolve_setting",
    "skip_reason",
]

"""
recurring_billing.models -- ORM models for recurring billing persistence.

Architecture: recurring_billing/models. Imports from billing_kernel.db.base
and recurring_billing.domain only.
"""

from recurring_billing.models.recurrence import (
    GenerationRunItemModel,
    GenerationRunModel,
    RecurrenceRecordModel,
)

__all__ = [
    "GenerationRunItemModel",
    "GenerationRunModel",
    "RecurrenceRecordModel",
]

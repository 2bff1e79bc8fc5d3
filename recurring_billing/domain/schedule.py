"""
Pure eligibility evaluation for generation runs.

Contract:
    ``skip_reason(record, as_of)`` is PURE -- it reads the record snapshot
    and the caller's clock value, with no side effects.  A record is
    eligible exactly when it returns ``None``.

Architecture: recurring_billing/domain.  ZERO I/O.

Rules, checked in order:
    - Inactive records never fire (covers indefinite pauses).
    - A ``paused_until`` in the future blocks generation.
    - A passed ``end_date`` blocks generation; the end date itself is
      still billable.
    - ``next_generation_date`` later than ``as_of`` is not due yet.
"""

from __future__ import annotations

from datetime import datetime

from recurring_billing.domain.types import RecurrenceRecord, SkipReason


def skip_reason(record: RecurrenceRecord, as_of: datetime) -> SkipReason | None:
    """Return why ``record`` must be skipped at ``as_of``, or None if eligible."""
    if not record.is_active:
        return SkipReason.INACTIVE

    if record.paused_until is not None and record.paused_until > as_of:
        return SkipReason.PAUSED

    if record.end_date is not None and record.end_date < as_of.date():
        return SkipReason.ENDED

    if record.next_generation_date > as_of:
        return SkipReason.NOT_DUE

    return None


def is_eligible(record: RecurrenceRecord, as_of: datetime) -> bool:
    return skip_reason(record, as_of) is None

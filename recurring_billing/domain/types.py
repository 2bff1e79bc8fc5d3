"""
recurring_billing.domain.types -- Pure frozen dataclasses for recurring billing.

ZERO I/O.  Status fields are str Enums; collections are tuples.

Invariants enforced:
    - All DTOs are frozen dataclasses (immutable); updates go through
      ``dataclasses.replace``.
    - ``Scope`` is the single carrier of the personal-vs-business partition;
      a business scope always has a non-empty profile id.
    - ``RecurrenceRecord.generated_invoice_ids`` length equals
      ``total_generated``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Union
from uuid import UUID

from billing_kernel.exceptions import InvalidFrequencyError, InvalidScopeError


# =============================================================================
# Enums
# =============================================================================


class Frequency(str, Enum):
    """Named repetition interval of a recurrence record."""

    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"

    @classmethod
    def parse(cls, value: Frequency | str) -> Frequency:
        """Coerce a raw value into a Frequency.

        Raises:
            InvalidFrequencyError: If value is not a known cadence.
        """
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            raise InvalidFrequencyError(value) from None


class SkipReason(str, Enum):
    """Why a due record was left untouched by a generation run."""

    INACTIVE = "inactive"
    PAUSED = "paused"
    ENDED = "ended"
    NOT_DUE = "not_due"


class GenerationRunStatus(str, Enum):
    """Run-level lifecycle status."""

    RUNNING = "running"
    COMPLETED = "completed"  # No record failed
    PARTIALLY_COMPLETED = "partially_completed"  # Some records failed
    FAILED = "failed"  # Every record failed, or the run was aborted


class OutcomeStatus(str, Enum):
    SUCCEEDED = "succeeded"
    SKIPPED = "skipped"
    FAILED = "failed"


# =============================================================================
# Scope
# =============================================================================


@dataclass(frozen=True)
class Scope:
    """Personal account vs. named business profile.

    ``Scope.personal()`` and ``Scope.business(profile_id)`` are the only
    two shapes; records, customers and invoices in one scope are never
    visible from the other.
    """

    profile_id: str | None = None

    def __post_init__(self) -> None:
        if self.profile_id is not None and not str(self.profile_id).strip():
            raise InvalidScopeError(self.profile_id)

    @classmethod
    def personal(cls) -> Scope:
        return cls(None)

    @classmethod
    def business(cls, profile_id: str) -> Scope:
        if not profile_id:
            raise InvalidScopeError(profile_id)
        return cls(profile_id)

    @classmethod
    def from_profile_id(cls, profile_id: str | None) -> Scope:
        """Build a scope from a nullable stored profile id."""
        return cls.personal() if profile_id is None else cls.business(profile_id)

    @property
    def is_personal(self) -> bool:
        return self.profile_id is None

    def __str__(self) -> str:
        return "personal" if self.is_personal else f"business:{self.profile_id}"


# =============================================================================
# Template payload
# =============================================================================


@dataclass(frozen=True)
class LineItem:
    """One billable line; ``description`` may hold period placeholders."""

    description: str
    quantity: Decimal = Decimal("1")
    rate: Decimal = Decimal("0")

    def to_dict(self) -> dict[str, str]:
        return {
            "description": self.description,
            "quantity": str(self.quantity),
            "rate": str(self.rate),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LineItem:
        return cls(
            description=data.get("description", ""),
            quantity=Decimal(str(data.get("quantity", "1"))),
            rate=Decimal(str(data.get("rate", "0"))),
        )


# =============================================================================
# Recurrence record
# =============================================================================


@dataclass(frozen=True)
class RecurrenceRecord:
    """Immutable snapshot of a recurring invoice template and its cursor."""

    record_id: UUID
    owner_id: str
    scope: Scope
    # Customer snapshot (taken at create/update time)
    customer_id: str
    customer_name: str
    customer_email: str
    # Invoice template
    line_items: tuple[LineItem, ...]
    tax_rate: Decimal
    notes: str
    payment_terms: str
    # Numbering
    invoice_prefix: str
    next_invoice_number: int
    last_invoice_number: int | None
    # Cadence
    frequency: Frequency
    start_date: date
    end_date: date | None
    due_date_duration_days: int
    # Generation cursor
    next_generation_date: datetime
    last_generated_date: datetime | None = None
    generated_invoice_ids: tuple[str, ...] = ()
    total_generated: int = 0
    # Lifecycle
    is_active: bool = True
    paused_until: datetime | None = None
    # Audit
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def last_generated_invoice_id(self) -> str | None:
        return self.generated_invoice_ids[-1] if self.generated_invoice_ids else None


@dataclass(frozen=True)
class RecurrenceDraft:
    """Caller input for creating a recurrence record.

    Unset optional fields are filled from the owner's settings and the
    active configuration by the lifecycle controller.
    """

    frequency: Frequency | str
    customer_id: str | None = None
    line_items: tuple[LineItem, ...] = ()
    tax_rate: Decimal = Decimal("0")
    notes: str = ""
    payment_terms: str | None = None
    invoice_prefix: str | None = None
    next_invoice_number: int | None = None
    start_date: date | None = None
    end_date: date | None = None
    due_date_duration_days: int | None = None


# =============================================================================
# Collaborator DTOs
# =============================================================================


@dataclass(frozen=True)
class InvoiceSettings:
    """Numbering and display settings of an account or business profile."""

    prefix: str | None = None
    next_number: int | None = None
    timezone: str | None = None
    due_date_duration_days: int | None = None


@dataclass(frozen=True)
class Account:
    """Owning account as resolved by the account directory."""

    owner_id: str
    settings: InvoiceSettings = field(default_factory=InvoiceSettings)
    profiles: dict[str, InvoiceSettings] = field(default_factory=dict)

    def has_profile(self, profile_id: str) -> bool:
        return profile_id in self.profiles


@dataclass(frozen=True)
class Customer:
    customer_id: str
    owner_id: str
    scope: Scope
    name: str
    email: str


@dataclass(frozen=True)
class Invoice:
    """Invoice as returned by the invoice-creation collaborator.

    ``invoice_number`` is an int for current data and may be a formatted
    string (``"INV-00042"``) for legacy invoices.  Legacy invoices may also
    carry a plain ``date``.
    """

    invoice_id: str
    invoice_number: int | str
    date: datetime | date
    customer_id: str | None = None
    recurrence_id: str | None = None
    line_items: tuple[LineItem, ...] = ()
    tax_rate: Decimal = Decimal("0")
    notes: str = ""
    payment_terms: str | None = None


@dataclass(frozen=True)
class InvoicePayload:
    """Everything the invoice-creation collaborator needs for one invoice."""

    customer_id: str
    customer_name: str
    customer_email: str
    line_items: tuple[LineItem, ...]
    tax_rate: Decimal
    notes: str
    payment_terms: str
    date: datetime
    due_date: datetime
    invoice_number: int
    invoice_prefix: str
    recurrence_id: str
    idempotency_key: str
    status: str = "pending"


# =============================================================================
# Generation outcomes
# =============================================================================


@dataclass(frozen=True)
class GenerationSuccess:
    record_id: UUID
    invoice_id: str
    invoice_number: int
    invoice_date: datetime
    next_generation_date: datetime

    status = OutcomeStatus.SUCCEEDED


@dataclass(frozen=True)
class GenerationSkipped:
    record_id: UUID
    reason: SkipReason

    status = OutcomeStatus.SKIPPED


@dataclass(frozen=True)
class GenerationFailed:
    """A record that could not be generated; carries operator-facing context."""

    record_id: UUID
    error_code: str
    message: str
    owner_id: str | None = None
    customer_id: str | None = None
    customer_name: str | None = None

    status = OutcomeStatus.FAILED


GenerationOutcome = Union[GenerationSuccess, GenerationSkipped, GenerationFailed]


@dataclass(frozen=True)
class GenerationRunResult:
    """Immutable result of one generation run.

    Returned by ``GenerationOrchestrator.run_due()``.
    """

    run_id: UUID
    status: GenerationRunStatus
    as_of: datetime
    outcomes: tuple[GenerationOutcome, ...] = ()
    started_at: datetime | None = None
    completed_at: datetime | None = None
    duration_ms: int = 0
    error_summary: str | None = None

    @property
    def successful(self) -> int:
        return sum(1 for o in self.outcomes if isinstance(o, GenerationSuccess))

    @property
    def failed(self) -> int:
        return sum(1 for o in self.outcomes if isinstance(o, GenerationFailed))

    @property
    def skipped(self) -> int:
        return sum(1 for o in self.outcomes if isinstance(o, GenerationSkipped))

    @property
    def errors(self) -> tuple[GenerationFailed, ...]:
        return tuple(o for o in self.outcomes if isinstance(o, GenerationFailed))

    def summary(self) -> dict[str, Any]:
        """Tri-part summary: counts plus per-failure records."""
        return {
            "successful": self.successful,
            "failed": self.failed,
            "errors": [
                {
                    "record_id": str(e.record_id),
                    "customer_name": e.customer_name,
                    "error_code": e.error_code,
                    "error": e.message,
                }
                for e in self.errors
            ],
        }

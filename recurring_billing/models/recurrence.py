"""
ORM models for recurring billing persistence.

Contract:
    RecurrenceRecordModel persists recurrence templates and their generation
    cursor.  GenerationRunModel and GenerationRunItemModel persist the history
    of generation runs and their per-record outcomes.  Each has ``to_dto()``
    (and, where the service layer creates rows from DTOs, ``from_dto()``).

Architecture: recurring_billing/models.  Imports from billing_kernel.db.base
    and recurring_billing.domain only.

Invariants enforced:
    - ``profile_id`` NULL means the personal scope.
    - ``generated_invoice_ids`` is stored as an ordered JSON list and only
      ever appended to by the store adapter.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import JSON, Boolean, Date, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from billing_kernel.db.base import TimestampedBase, UTCDateTime, UUIDString

from recurring_billing.domain.types import (
    Frequency,
    GenerationFailed,
    GenerationOutcome,
    GenerationRunResult,
    GenerationRunStatus,
    GenerationSkipped,
    GenerationSuccess,
    LineItem,
    OutcomeStatus,
    RecurrenceRecord,
    Scope,
    SkipReason,
)


class RecurrenceRecordModel(TimestampedBase):
    """Persistent recurring invoice template and generation cursor."""

    __tablename__ = "recurring_invoices"

    __table_args__ = (
        Index("ix_recurring_invoices_due", "is_active", "next_generation_date"),
        Index("ix_recurring_invoices_owner_scope", "owner_id", "profile_id"),
    )

    owner_id: Mapped[str] = mapped_column(String(128), nullable=False)
    profile_id: Mapped[str | None] = mapped_column(String(128), nullable=True)

    customer_id: Mapped[str] = mapped_column(String(128), nullable=False)
    customer_name: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    customer_email: Mapped[str] = mapped_column(String(255), default="", nullable=False)

    line_items: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    tax_rate: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)
    notes: Mapped[str] = mapped_column(Text, default="", nullable=False)
    payment_terms: Mapped[str] = mapped_column(String(255), default="", nullable=False)

    invoice_prefix: Mapped[str] = mapped_column(String(50), nullable=False)
    next_invoice_number: Mapped[int] = mapped_column(Integer, nullable=False)
    last_invoice_number: Mapped[int | None] = mapped_column(Integer, nullable=True)

    frequency: Mapped[str] = mapped_column(String(20), nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    due_date_duration_days: Mapped[int] = mapped_column(Integer, nullable=False)

    next_generation_date: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    last_generated_date: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    generated_invoice_ids: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    total_generated: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    paused_until: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    def to_dto(self) -> RecurrenceRecord:
        return RecurrenceRecord(
            record_id=self.id,
            owner_id=self.owner_id,
            scope=Scope.from_profile_id(self.profile_id),
            customer_id=self.customer_id,
            customer_name=self.customer_name,
            customer_email=self.customer_email,
            line_items=tuple(LineItem.from_dict(item) for item in self.line_items or []),
            tax_rate=Decimal(self.tax_rate),
            notes=self.notes,
            payment_terms=self.payment_terms,
            invoice_prefix=self.invoice_prefix,
            next_invoice_number=self.next_invoice_number,
            last_invoice_number=self.last_invoice_number,
            frequency=Frequency(self.frequency),
            start_date=self.start_date,
            end_date=self.end_date,
            due_date_duration_days=self.due_date_duration_days,
            next_generation_date=self.next_generation_date,
            last_generated_date=self.last_generated_date,
            generated_invoice_ids=tuple(self.generated_invoice_ids or []),
            total_generated=self.total_generated,
            is_active=self.is_active,
            paused_until=self.paused_until,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )

    @classmethod
    def from_dto(cls, dto: RecurrenceRecord) -> RecurrenceRecordModel:
        model = cls(
            id=dto.record_id,
            owner_id=dto.owner_id,
            profile_id=dto.scope.profile_id,
        )
        model.apply_dto(dto)
        if dto.created_at is not None:
            model.created_at = dto.created_at
        return model

    def apply_dto(self, dto: RecurrenceRecord) -> None:
        """Copy every mutable field from ``dto`` onto this row.

        Identity (id, owner, scope) and ``created_at`` are left alone.
        """
        self.customer_id = dto.customer_id
        self.customer_name = dto.customer_name
        self.customer_email = dto.customer_email
        self.line_items = [item.to_dict() for item in dto.line_items]
        self.tax_rate = dto.tax_rate
        self.notes = dto.notes
        self.payment_terms = dto.payment_terms
        self.invoice_prefix = dto.invoice_prefix
        self.next_invoice_number = dto.next_invoice_number
        self.last_invoice_number = dto.last_invoice_number
        self.frequency = dto.frequency.value
        self.start_date = dto.start_date
        self.end_date = dto.end_date
        self.due_date_duration_days = dto.due_date_duration_days
        self.next_generation_date = dto.next_generation_date
        self.last_generated_date = dto.last_generated_date
        self.generated_invoice_ids = list(dto.generated_invoice_ids)
        self.total_generated = dto.total_generated
        self.is_active = dto.is_active
        self.paused_until = dto.paused_until
        if dto.updated_at is not None:
            self.updated_at = dto.updated_at


class GenerationRunModel(TimestampedBase):
    """One execution of the scheduled generation loop."""

    __tablename__ = "generation_runs"

    __table_args__ = (
        Index("ix_generation_runs_status", "status"),
        Index("ix_generation_runs_started_at", "started_at"),
    )

    status: Mapped[str] = mapped_column(String(50), nullable=False)
    as_of: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    successful: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    failed: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    skipped: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    started_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    duration_ms: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    correlation_id: Mapped[str | None] = mapped_column(String(200), nullable=True)
    error_summary: Mapped[str | None] = mapped_column(Text, nullable=True)

    items: Mapped[list["GenerationRunItemModel"]] = relationship(
        "GenerationRunItemModel",
        back_populates="run",
        foreign_keys="GenerationRunItemModel.run_id",
        order_by="GenerationRunItemModel.item_index",
    )

    @property
    def run_status(self) -> GenerationRunStatus:
        return GenerationRunStatus(self.status)

    def to_dto(self) -> GenerationRunResult:
        return GenerationRunResult(
            run_id=self.id,
            status=GenerationRunStatus(self.status),
            as_of=self.as_of,
            outcomes=tuple(item.to_dto() for item in self.items),
            started_at=self.started_at,
            completed_at=self.completed_at,
            duration_ms=self.duration_ms,
            error_summary=self.error_summary,
        )


class GenerationRunItemModel(TimestampedBase):
    """Outcome of one recurrence record within a generation run."""

    __tablename__ = "generation_run_items"

    __table_args__ = (
        Index("ix_generation_run_items_run_status", "run_id", "status"),
        Index("ix_generation_run_items_record", "record_id"),
    )

    run_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("generation_runs.id", ondelete="CASCADE"),
        nullable=False,
    )
    item_index: Mapped[int] = mapped_column(Integer, nullable=False)
    # Weak reference: records may be stopped (deleted) after the run.
    record_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False)
    invoice_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    invoice_number: Mapped[int | None] = mapped_column(Integer, nullable=True)
    invoice_date: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    next_generation_date: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    skip_reason: Mapped[str | None] = mapped_column(String(50), nullable=True)
    error_code: Mapped[str | None] = mapped_column(String(100), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    owner_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    customer_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    customer_name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    run: Mapped["GenerationRunModel"] = relationship(
        "GenerationRunModel",
        back_populates="items",
        foreign_keys=[run_id],
    )

    def to_dto(self) -> GenerationOutcome:
        if self.status == OutcomeStatus.SUCCEEDED.value:
            return GenerationSuccess(
                record_id=self.record_id,
                invoice_id=self.invoice_id or "",
                invoice_number=self.invoice_number or 0,
                invoice_date=self.invoice_date,
                next_generation_date=self.next_generation_date,
            )
        if self.status == OutcomeStatus.SKIPPED.value:
            return GenerationSkipped(
                record_id=self.record_id,
                reason=SkipReason(self.skip_reason),
            )
        return GenerationFailed(
            record_id=self.record_id,
            error_code=self.error_code or "UNKNOWN",
            message=self.error_message or "",
            owner_id=self.owner_id,
            customer_id=self.customer_id,
            customer_name=self.customer_name,
        )

    @classmethod
    def from_dto(
        cls, dto: GenerationOutcome, run_id: UUID, item_index: int,
    ) -> GenerationRunItemModel:
        model = cls(
            run_id=run_id,
            item_index=item_index,
            record_id=dto.record_id,
            status=dto.status.value,
        )
        if isinstance(dto, GenerationSuccess):
            model.invoice_id = dto.invoice_id
            model.invoice_number = dto.invoice_number
            model.invoice_date = dto.invoice_date
            model.next_generation_date = dto.next_generation_date
        elif isinstance(dto, GenerationSkipped):
            model.skip_reason = dto.reason.value
        else:
            model.error_code = dto.error_code
            model.error_message = dto.message
            model.owner_id = dto.owner_id
            model.customer_id = dto.customer_id
            model.customer_name = dto.customer_name
        return model

"""
GenerationOrchestrator -- SAVEPOINT-per-record invoice generation.

Contract:
    ``run_due()`` selects due recurrence records, evaluates eligibility
    purely, and runs the single-record procedure for each eligible record
    inside its own SAVEPOINT.  ``generate()`` is the single-record
    procedure itself; manual generation calls it directly and lets its
    errors propagate.

Architecture: recurring_billing/services.  Imports from
    recurring_billing.domain, recurring_billing.models and the store and
    collaborator modules.

Invariants enforced:
    - One record's failure never rolls back or blocks another record.
    - Skipped records receive no writes.
    - The cursor advances only after the invoice collaborator succeeded,
      and ``next_generation_date`` is derived from the invoice date used.
    - A failure of the due query itself aborts the run with a single
      ``GenerationRunAbortedError``; no record is processed.
    - All timestamps from the injected Clock.

Non-goals:
    - Does NOT call ``session.commit()`` -- caller controls boundaries.
    - Does NOT deduplicate concurrent manual and scheduled generation of
      the same record.
"""

from __future__ import annotations

import time
from datetime import date, datetime, timedelta, timezone
from uuid import UUID

from sqlalchemy.orm import Session

from billing_kernel.domain.clock import Clock, SystemClock
from billing_kernel.exceptions import (
    CustomerNotFoundError,
    EmptyLineItemsError,
    GenerationRunAbortedError,
    OwnerNotFoundError,
)
from billing_kernel.logging_config import LogContext, get_logger

from recurring_billing.config.schema import BillingConfig
from recurring_billing.domain.numbering import format_invoice_number, next_number_after
from recurring_billing.domain.period_template import (
    expand_line_items,
    local_midnight,
    next_local_occurrence,
)
from recurring_billing.domain.schedule import skip_reason
from recurring_billing.domain.settings import resolve_timezone
from recurring_billing.domain.types import (
    Account,
    Customer,
    GenerationFailed,
    GenerationOutcome,
    GenerationRunResult,
    GenerationRunStatus,
    GenerationSkipped,
    GenerationSuccess,
    InvoicePayload,
    RecurrenceRecord,
)
from recurring_billing.models.recurrence import GenerationRunItemModel, GenerationRunModel
from recurring_billing.services.collaborators import (
    AccountDirectory,
    CustomerDirectory,
    InvoiceGateway,
)
from recurring_billing.services.store import RecurrenceStore

logger = get_logger("recurring.generator")


def _as_instant(value: date | datetime, tz_name: str, fallback: str) -> datetime:
    """Aware UTC instant of a collaborator-supplied invoice date.

    Plain dates are taken as local midnight; naive datetimes as UTC.
    """
    if not isinstance(value, datetime):
        return local_midnight(value, tz_name, fallback)
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def idempotency_key(record_id: UUID, invoice_number: int) -> str:
    """Stable key for one (record, invoice number) generation attempt."""
    return f"recurrence:{record_id}:{invoice_number}"


class GenerationOrchestrator:
    """Batch loop and single-record generation procedure.

    Contract:
        - ``generate()`` produces exactly one invoice or raises.
        - ``run_due()`` never raises for a per-record failure; it returns a
          ``GenerationRunResult`` and persists the run history.
        - ``get_run()`` reads a persisted run back.
    """

    def __init__(
        self,
        session: Session,
        store: RecurrenceStore,
        customers: CustomerDirectory,
        invoices: InvoiceGateway,
        accounts: AccountDirectory,
        clock: Clock | None = None,
        config: BillingConfig | None = None,
    ):
        self._session = session
        self._store = store
        self._customers = customers
        self._invoices = invoices
        self._accounts = accounts
        self._clock = clock or SystemClock()
        self._config = config or BillingConfig()

    # -------------------------------------------------------------------------
    # Single record
    # -------------------------------------------------------------------------

    def generate(self, record: RecurrenceRecord) -> GenerationSuccess:
        """Generate the next invoice of ``record`` and advance its cursor.

        Eligibility is not checked here; ``run_due`` does that before
        calling in.

        Raises:
            OwnerNotFoundError: Owning account is missing.
            ProfileNotFoundError: Business profile is missing on the account.
            CustomerNotFoundError: Customer missing or in another scope.
            EmptyLineItemsError: Nothing to bill.
            Exception: Whatever the invoice collaborator raises.
        """
        account = self._resolve_account(record)
        tz_name = resolve_timezone(account, record.scope, self._config.default_timezone)
        customer = self._resolve_customer(record)

        invoice_date, invoice_number = self._next_date_and_number(record, tz_name)

        line_items = expand_line_items(
            record.line_items,
            invoice_date,
            record.frequency,
            tz_name,
            fallback_timezone=self._config.default_timezone,
        )
        if not line_items:
            raise EmptyLineItemsError(str(record.record_id))

        payload = InvoicePayload(
            customer_id=record.customer_id,
            customer_name=customer.name,
            customer_email=customer.email,
            line_items=line_items,
            tax_rate=record.tax_rate,
            notes=record.notes,
            payment_terms=record.payment_terms,
            date=invoice_date,
            due_date=invoice_date + timedelta(days=record.due_date_duration_days),
            invoice_number=invoice_number,
            invoice_prefix=record.invoice_prefix,
            recurrence_id=str(record.record_id),
            idempotency_key=idempotency_key(record.record_id, invoice_number),
        )

        invoice = self._invoices.create_invoice(
            payload, record.owner_id, account, customer, record.scope,
        )

        next_date = next_local_occurrence(
            invoice_date, record.frequency, tz_name, self._config.default_timezone,
        )
        self._store.record_generation(
            record.record_id,
            invoice_id=invoice.invoice_id,
            invoice_number=invoice_number,
            invoice_date=invoice_date,
            next_generation_date=next_date,
            now=self._clock.now(),
        )
        self._accounts.increment_counter(record.owner_id, record.scope)

        logger.info(
            "invoice_generated",
            extra={
                "record_id": str(record.record_id),
                "invoice_id": invoice.invoice_id,
                "invoice_number": invoice_number,
                "invoice_label": format_invoice_number(
                    record.invoice_prefix, invoice_number, self._config.invoice_number_padding,
                ),
                "invoice_date": invoice_date,
                "next_generation_date": next_date,
            },
        )

        return GenerationSuccess(
            record_id=record.record_id,
            invoice_id=invoice.invoice_id,
            invoice_number=invoice_number,
            invoice_date=invoice_date,
            next_generation_date=next_date,
        )

    # -------------------------------------------------------------------------
    # Batch
    # -------------------------------------------------------------------------

    def run_due(self, as_of: datetime | None = None) -> GenerationRunResult:
        """Generate invoices for every due record with SAVEPOINT isolation.

        Raises:
            GenerationRunAbortedError: If the due-record query fails.  The
                run row is left FAILED in the session for the caller to
                commit.
        """
        start_time = time.monotonic()
        as_of = as_of or self._clock.now()
        started_at = self._clock.now()

        run_model = GenerationRunModel(
            status=GenerationRunStatus.RUNNING.value,
            as_of=as_of,
            started_at=started_at,
            correlation_id=LogContext.get_all().get("correlation_id"),
        )
        run_model.created_at = started_at
        run_model.updated_at = started_at
        self._session.add(run_model)
        self._session.flush()
        run_id = run_model.id

        with LogContext.bind(run_id=str(run_id)):
            logger.info("generation_run_started", extra={"as_of": as_of})

            try:
                with self._session.begin_nested():
                    records = self._store.list_due(as_of)
            except Exception as exc:
                self._abort_run(run_model, exc, start_time)
                raise GenerationRunAbortedError(str(run_id), str(exc)) from exc

            logger.info("due_records_found", extra={"count": len(records)})

            outcomes: list[GenerationOutcome] = []
            for index, record in enumerate(records):
                reason = skip_reason(record, as_of)
                if reason is not None:
                    logger.info(
                        "recurrence_skipped",
                        extra={"record_id": str(record.record_id), "reason": reason.value},
                    )
                    outcome: GenerationOutcome = GenerationSkipped(
                        record_id=record.record_id, reason=reason,
                    )
                else:
                    outcome = self._generate_isolated(record)

                outcomes.append(outcome)
                item_model = GenerationRunItemModel.from_dto(outcome, run_id, index)
                item_model.created_at = self._clock.now()
                item_model.updated_at = item_model.created_at
                self._session.add(item_model)

            result = self._complete_run(run_model, tuple(outcomes), start_time)

        return result

    def get_run(self, run_id: UUID) -> GenerationRunResult | None:
        run_model = self._session.get(GenerationRunModel, run_id)
        return run_model.to_dto() if run_model is not None else None

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _generate_isolated(self, record: RecurrenceRecord) -> GenerationOutcome:
        with LogContext.bind(record_id=str(record.record_id), owner_id=record.owner_id):
            savepoint = self._session.begin_nested()
            try:
                outcome = self.generate(record)
                savepoint.commit()
                return outcome
            except Exception as exc:
                savepoint.rollback()
                error_code = getattr(exc, "code", "UNHANDLED_EXCEPTION")
                logger.error(
                    "recurrence_generation_failed",
                    extra={
                        "record_id": str(record.record_id),
                        "customer_id": record.customer_id,
                        "customer_name": record.customer_name,
                        "error_code": error_code,
                        "error": str(exc),
                    },
                )
                return GenerationFailed(
                    record_id=record.record_id,
                    error_code=error_code,
                    message=str(exc),
                    owner_id=record.owner_id,
                    customer_id=record.customer_id,
                    customer_name=record.customer_name,
                )

    def _resolve_account(self, record: RecurrenceRecord) -> Account:
        account = self._accounts.get_account(record.owner_id)
        if account is None:
            raise OwnerNotFoundError(record.owner_id)
        return account

    def _resolve_customer(self, record: RecurrenceRecord) -> Customer:
        customer = self._customers.get_customer(
            record.customer_id, record.owner_id, record.scope,
        )
        # A customer from another owner or scope is treated as missing.
        if (
            customer is None
            or customer.owner_id != record.owner_id
            or customer.scope != record.scope
        ):
            raise CustomerNotFoundError(record.customer_id)
        return customer

    def _next_date_and_number(
        self,
        record: RecurrenceRecord,
        tz_name: str,
    ) -> tuple[datetime, int]:
        """Date and number of the invoice about to be generated.

        With a prior generation, both derive from the last generated
        invoice; any trouble reading it falls back to the stored cursor.
        The date never falls before the stored cursor, so a record resumed
        after a long pause bills from the resume point onward.
        """
        fallback = (record.next_generation_date, record.next_invoice_number)

        prior_id = record.last_generated_invoice_id
        if prior_id is None:
            return fallback

        try:
            prior = self._invoices.get_invoice(prior_id, record.owner_id, record.scope)
        except Exception as exc:
            logger.warning(
                "prior_invoice_fetch_failed",
                extra={"invoice_id": prior_id, "error": str(exc)},
            )
            return fallback

        if prior is None:
            logger.warning("prior_invoice_missing", extra={"invoice_id": prior_id})
            return fallback

        if not isinstance(prior.date, date):
            logger.warning(
                "prior_invoice_date_invalid",
                extra={"invoice_id": prior_id, "invoice_date": str(prior.date)},
            )
            return fallback

        fallback_tz = self._config.default_timezone
        derived = next_local_occurrence(
            _as_instant(prior.date, tz_name, fallback_tz), record.frequency, tz_name, fallback_tz,
        )
        invoice_date = max(derived, record.next_generation_date)
        invoice_number = next_number_after(prior.invoice_number)
        if invoice_number is None:
            logger.warning(
                "prior_invoice_number_unparseable",
                extra={"invoice_id": prior_id, "invoice_number": str(prior.invoice_number)},
            )
            invoice_number = record.next_invoice_number

        return invoice_date, invoice_number

    def _complete_run(
        self,
        run_model: GenerationRunModel,
        outcomes: tuple[GenerationOutcome, ...],
        start_time: float,
    ) -> GenerationRunResult:
        result = GenerationRunResult(
            run_id=run_model.id,
            status=GenerationRunStatus.RUNNING,
            as_of=run_model.as_of,
            outcomes=outcomes,
        )

        if result.failed == 0:
            status = GenerationRunStatus.COMPLETED
        elif result.successful == 0:
            status = GenerationRunStatus.FAILED
        else:
            status = GenerationRunStatus.PARTIALLY_COMPLETED

        completed_at = self._clock.now()
        duration_ms = int((time.monotonic() - start_time) * 1000)

        run_model.status = status.value
        run_model.successful = result.successful
        run_model.failed = result.failed
        run_model.skipped = result.skipped
        run_model.completed_at = completed_at
        run_model.updated_at = completed_at
        run_model.duration_ms = duration_ms
        if result.failed:
            run_model.error_summary = f"{result.failed} record(s) failed"
        self._session.flush()

        logger.info(
            "generation_run_completed",
            extra={
                "status": status.value,
                "successful": result.successful,
                "failed": result.failed,
                "skipped": result.skipped,
                "duration_ms": duration_ms,
            },
        )

        return GenerationRunResult(
            run_id=run_model.id,
            status=status,
            as_of=run_model.as_of,
            outcomes=outcomes,
            started_at=run_model.started_at,
            completed_at=completed_at,
            duration_ms=duration_ms,
            error_summary=run_model.error_summary,
        )

    def _abort_run(
        self,
        run_model: GenerationRunModel,
        exc: Exception,
        start_time: float,
    ) -> None:
        completed_at = self._clock.now()
        run_model.status = GenerationRunStatus.FAILED.value
        run_model.completed_at = completed_at
        run_model.updated_at = completed_at
        run_model.duration_ms = int((time.monotonic() - start_time) * 1000)
        run_model.error_summary = f"Scheduled generation failed: {exc}"
        self._session.flush()

        logger.error(
            "generation_run_aborted",
            extra={"error": str(exc), "error_type": type(exc).__name__},
        )

"""
LifecycleController -- create, edit, pause, resume, stop, manual generate.

Contract:
    Every operation is scoped by ``owner_id`` and ``Scope``.  A record that
    exists but belongs to another owner or scope is reported exactly like
    a missing one (``RecurrenceNotFoundError``).

Architecture: recurring_billing/services.  Uses the store adapter for
    persistence and the generator for manual generation.

Invariants enforced:
    - ``next_generation_date`` is derived from (``last_generated_date`` or
      ``start_date``) + one cadence step on create and on any frequency or
      start date change; only ``resume`` derives it from "now".
    - Identity and cursor fields are never writable through ``update``.
    - ``stop`` deletes the record only; generated invoices are untouched.
    - Does NOT call ``session.commit()`` -- caller controls boundaries.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Mapping
from uuid import UUID, uuid4

from billing_kernel.domain.clock import Clock, SystemClock
from billing_kernel.exceptions import (
    CustomerNotFoundError,
    InvoiceNotFoundError,
    MissingFieldError,
    OwnerNotFoundError,
    ProtectedFieldError,
    RecurrenceNotFoundError,
)
from billing_kernel.logging_config import get_logger

from recurring_billing.config.schema import BillingConfig
from recurring_billing.domain.cadence import next_occurrence
from recurring_billing.domain.numbering import next_number_after
from recurring_billing.domain.period_template import (
    DEFAULT_TIMEZONE,
    local_invoice_date,
    local_midnight,
    next_local_occurrence,
)
from recurring_billing.domain.settings import (
    resolve_prefix,
    resolve_setting,
    resolve_timezone,
    scope_next_number,
)
from recurring_billing.domain.types import (
    Account,
    Customer,
    Frequency,
    GenerationSuccess,
    Invoice,
    LineItem,
    RecurrenceDraft,
    RecurrenceRecord,
    Scope,
)
from recurring_billing.services.collaborators import (
    AccountDirectory,
    CustomerDirectory,
    InvoiceGateway,
)
from recurring_billing.services.generator import GenerationOrchestrator
from recurring_billing.services.store import RecurrenceStore

logger = get_logger("recurring.lifecycle")

UPDATABLE_FIELDS = frozenset({
    "customer_id",
    "line_items",
    "tax_rate",
    "notes",
    "payment_terms",
    "invoice_prefix",
    "next_invoice_number",
    "frequency",
    "start_date",
    "end_date",
    "due_date_duration_days",
})


def anchor_instant(record: RecurrenceRecord, tz_name: str | None,
                   fallback: str = DEFAULT_TIMEZONE) -> datetime:
    """Instant the next occurrence is counted from.

    The last generated invoice date when there is one, else local midnight
    of the start date in the owner's time zone.
    """
    if record.last_generated_date is not None:
        return record.last_generated_date
    return local_midnight(record.start_date, tz_name, fallback)


def _coerce_line_items(items: Any) -> tuple[LineItem, ...]:
    return tuple(
        item if isinstance(item, LineItem) else LineItem.from_dict(item)
        for item in items or ()
    )


def _coerce_date(value: Any) -> date | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value))


class LifecycleController:
    """User-facing operations on recurrence records.

    Contract:
        - ``create()`` / ``create_from_invoice()`` add a new active record.
        - ``get()`` / ``list_for_owner()`` read within one scope.
        - ``update()`` applies a whitelisted patch.
        - ``pause()`` / ``resume()`` / ``stop()`` drive the lifecycle.
        - ``manual_generate()`` runs the single-record procedure and lets
          its errors propagate.
        - ``list_generated_invoices()`` reads generated invoices back.
        - ``resume_expired_pauses()`` reactivates records whose pause
          window has passed.
    """

    def __init__(
        self,
        store: RecurrenceStore,
        generator: GenerationOrchestrator,
        customers: CustomerDirectory,
        invoices: InvoiceGateway,
        accounts: AccountDirectory,
        clock: Clock | None = None,
        config: BillingConfig | None = None,
    ):
        self._store = store
        self._generator = generator
        self._customers = customers
        self._invoices = invoices
        self._accounts = accounts
        self._clock = clock or SystemClock()
        self._config = config or BillingConfig()

    # -------------------------------------------------------------------------
    # Create
    # -------------------------------------------------------------------------

    def create(self, owner_id: str, scope: Scope, draft: RecurrenceDraft) -> RecurrenceRecord:
        """Create an active record from a draft.

        Unset draft fields fall back to the scope's settings and then to
        the configured defaults.

        Raises:
            InvalidFrequencyError: Unknown frequency.
            MissingFieldError: No customer id.
            OwnerNotFoundError: Owning account is missing.
            ProfileNotFoundError: Business profile is missing.
            CustomerNotFoundError: Customer missing or in another scope.
        """
        frequency = Frequency.parse(draft.frequency)
        if not draft.customer_id:
            raise MissingFieldError("customer_id")

        account = self._resolve_account(owner_id)
        tz_name = resolve_timezone(account, scope, self._config.default_timezone)
        customer = self._resolve_customer(draft.customer_id, owner_id, scope)
        now = self._clock.now()

        start_date = draft.start_date or local_invoice_date(
            now, tz_name, self._config.default_timezone,
        )

        record = RecurrenceRecord(
            record_id=uuid4(),
            owner_id=owner_id,
            scope=scope,
            customer_id=customer.customer_id,
            customer_name=customer.name,
            customer_email=customer.email,
            line_items=_coerce_line_items(draft.line_items),
            tax_rate=Decimal(str(draft.tax_rate or 0)),
            notes=draft.notes or "",
            payment_terms=resolve_setting(
                draft.payment_terms, default=self._config.default_payment_terms,
            ),
            invoice_prefix=resolve_setting(
                draft.invoice_prefix,
                default=resolve_prefix(account, scope, self._config.default_invoice_prefix),
            ),
            next_invoice_number=resolve_setting(
                draft.next_invoice_number,
                scope_next_number(account, scope),
                default=1,
            ),
            last_invoice_number=None,
            frequency=frequency,
            start_date=start_date,
            end_date=draft.end_date,
            due_date_duration_days=resolve_setting(
                draft.due_date_duration_days,
                account.settings.due_date_duration_days,
                default=self._config.default_due_date_duration_days,
            ),
            next_generation_date=next_local_occurrence(
                local_midnight(start_date, tz_name, self._config.default_timezone),
                frequency,
                tz_name,
                self._config.default_timezone,
            ),
            created_at=now,
            updated_at=now,
        )
        record = self._store.add(record)

        logger.info(
            "recurrence_created",
            extra={
                "record_id": str(record.record_id),
                "owner_id": owner_id,
                "scope": str(scope),
                "frequency": frequency.value,
                "next_generation_date": record.next_generation_date,
            },
        )
        return record

    def create_from_invoice(
        self,
        owner_id: str,
        scope: Scope,
        invoice_id: str,
        draft: RecurrenceDraft,
    ) -> RecurrenceRecord:
        """Create a record copying customer and billing content of an invoice.

        Numbering continues after the source invoice's number.

        Raises:
            InvoiceNotFoundError: Source invoice missing in this scope.
            Plus everything ``create()`` raises.
        """
        invoice = self._invoices.get_invoice(invoice_id, owner_id, scope)
        if invoice is None:
            raise InvoiceNotFoundError(invoice_id)

        copied = replace(
            draft,
            customer_id=invoice.customer_id,
            line_items=invoice.line_items,
            tax_rate=invoice.tax_rate,
            notes=invoice.notes,
            payment_terms=resolve_setting(invoice.payment_terms, default=draft.payment_terms),
            next_invoice_number=resolve_setting(
                next_number_after(invoice.invoice_number),
                default=draft.next_invoice_number,
            ),
        )
        return self.create(owner_id, scope, copied)

    # -------------------------------------------------------------------------
    # Read
    # -------------------------------------------------------------------------

    def get(self, record_id: UUID, owner_id: str, scope: Scope) -> RecurrenceRecord:
        """Raises RecurrenceNotFoundError outside the caller's scope."""
        record = self._store.get_scoped(record_id, owner_id, scope)
        if record is None:
            raise RecurrenceNotFoundError(str(record_id))
        return record

    def list_for_owner(self, owner_id: str, scope: Scope) -> tuple[RecurrenceRecord, ...]:
        return self._store.list_for_owner(owner_id, scope)

    def list_generated_invoices(
        self,
        record_id: UUID,
        owner_id: str,
        scope: Scope,
    ) -> tuple[Invoice, ...]:
        """Generated invoices in generation order.

        Invoices deleted since generation, or that fail to load, are skipped.
        """
        record = self.get(record_id, owner_id, scope)
        found: list[Invoice] = []
        for invoice_id in record.generated_invoice_ids:
            try:
                invoice = self._invoices.get_invoice(invoice_id, owner_id, scope)
            except Exception as exc:
                logger.warning(
                    "generated_invoice_fetch_failed",
                    extra={
                        "record_id": str(record_id),
                        "invoice_id": invoice_id,
                        "error": str(exc),
                    },
                )
                continue
            if invoice is None:
                logger.warning(
                    "generated_invoice_missing",
                    extra={"record_id": str(record_id), "invoice_id": invoice_id},
                )
                continue
            found.append(invoice)
        return tuple(found)

    # -------------------------------------------------------------------------
    # Update
    # -------------------------------------------------------------------------

    def update(
        self,
        record_id: UUID,
        owner_id: str,
        scope: Scope,
        patch: Mapping[str, Any],
    ) -> RecurrenceRecord:
        """Apply a field patch.

        Raises:
            RecurrenceNotFoundError: Record not visible in this scope.
            ProtectedFieldError: Patch names a non-editable field, or edits
                ``next_invoice_number`` after invoices were generated.
            InvalidFrequencyError: Unknown frequency.
            CustomerNotFoundError: New customer missing or in another scope.
            OwnerNotFoundError: Account missing when the cadence is re-anchored.
        """
        rejected = [name for name in patch if name not in UPDATABLE_FIELDS]
        if rejected:
            raise ProtectedFieldError(rejected)

        record = self.get(record_id, owner_id, scope)

        if "next_invoice_number" in patch and record.last_invoice_number is not None:
            raise ProtectedFieldError(["next_invoice_number"])

        changes: dict[str, Any] = dict(patch)
        if "frequency" in changes:
            changes["frequency"] = Frequency.parse(changes["frequency"])
        if "start_date" in changes:
            changes["start_date"] = _coerce_date(changes["start_date"])
        if "end_date" in changes:
            changes["end_date"] = _coerce_date(changes["end_date"])
        if "line_items" in changes:
            changes["line_items"] = _coerce_line_items(changes["line_items"])
        if "tax_rate" in changes:
            changes["tax_rate"] = Decimal(str(changes["tax_rate"]))

        if "customer_id" in changes and changes["customer_id"] != record.customer_id:
            customer = self._resolve_customer(changes["customer_id"], owner_id, scope)
            changes["customer_name"] = customer.name
            changes["customer_email"] = customer.email

        updated = replace(record, **changes, updated_at=self._clock.now())

        if "frequency" in changes or "start_date" in changes:
            tz_name = resolve_timezone(
                self._resolve_account(owner_id), scope, self._config.default_timezone,
            )
            anchor = anchor_instant(updated, tz_name, self._config.default_timezone)
            updated = replace(
                updated,
                next_generation_date=next_local_occurrence(
                    anchor, updated.frequency, tz_name, self._config.default_timezone,
                ),
            )

        updated = self._store.save(updated)
        logger.info(
            "recurrence_updated",
            extra={"record_id": str(record_id), "fields": sorted(patch)},
        )
        return updated

    # -------------------------------------------------------------------------
    # Lifecycle transitions
    # -------------------------------------------------------------------------

    def pause(
        self,
        record_id: UUID,
        owner_id: str,
        scope: Scope,
        until: datetime | None = None,
    ) -> RecurrenceRecord:
        """Deactivate a record; ``until=None`` pauses until an explicit resume."""
        if until is not None and until.tzinfo is None:
            raise ValueError(f"Naive pause-until datetime not allowed: {until!r}")
        record = self.get(record_id, owner_id, scope)
        updated = self._store.save(replace(
            record,
            is_active=False,
            paused_until=until,
            updated_at=self._clock.now(),
        ))
        logger.info(
            "recurrence_paused",
            extra={"record_id": str(record_id), "paused_until": until},
        )
        return updated

    def resume(self, record_id: UUID, owner_id: str, scope: Scope) -> RecurrenceRecord:
        """Reactivate a record; the next date counts from now, not the old cursor."""
        record = self.get(record_id, owner_id, scope)
        return self._resume(record, self._clock.now())

    def stop(self, record_id: UUID, owner_id: str, scope: Scope) -> None:
        """Hard-delete a record.  Its generated invoices are left alone."""
        record = self.get(record_id, owner_id, scope)
        self._store.delete(record.record_id)
        logger.info(
            "recurrence_stopped",
            extra={
                "record_id": str(record_id),
                "total_generated": record.total_generated,
            },
        )

    def manual_generate(self, record_id: UUID, owner_id: str, scope: Scope) -> GenerationSuccess:
        """Generate the next invoice now, outside the scheduled run.

        Pause and end-date rules are not applied.  Every error propagates
        to the caller unchanged.
        """
        record = self.get(record_id, owner_id, scope)
        logger.info("manual_generation_requested", extra={"record_id": str(record_id)})
        return self._generator.generate(record)

    def resume_expired_pauses(self, as_of: datetime | None = None) -> tuple[RecurrenceRecord, ...]:
        """Resume every record whose ``paused_until`` is at or before ``as_of``.

        Indefinite pauses (``paused_until`` None) are left alone.
        """
        as_of = as_of or self._clock.now()
        resumed = tuple(
            self._resume(record, as_of)
            for record in self._store.list_expired_pauses(as_of)
        )
        if resumed:
            logger.info("expired_pauses_resumed", extra={"count": len(resumed)})
        return resumed

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _resume(self, record: RecurrenceRecord, now: datetime) -> RecurrenceRecord:
        next_date = next_occurrence(now, record.frequency)
        updated = self._store.save(replace(
            record,
            is_active=True,
            paused_until=None,
            next_generation_date=next_date,
            updated_at=self._clock.now(),
        ))
        logger.info(
            "recurrence_resumed",
            extra={
                "record_id": str(record.record_id),
                "next_generation_date": next_date,
            },
        )
        return updated

    def _resolve_account(self, owner_id: str) -> Account:
        account = self._accounts.get_account(owner_id)
        if account is None:
            raise OwnerNotFoundError(owner_id)
        return account

    def _resolve_customer(self, customer_id: str, owner_id: str, scope: Scope) -> Customer:
        customer = self._customers.get_customer(customer_id, owner_id, scope)
        if customer is None or customer.owner_id != owner_id or customer.scope != scope:
            raise CustomerNotFoundError(customer_id)
        return customer

"""
RecurrenceStore -- SQLAlchemy adapter for recurrence records.

Contract:
    CRUD plus the two scoped queries the engine depends on: records by
    owner (within one scope) and records due for generation.  Every read
    returns frozen ``RecurrenceRecord`` DTOs; ORM rows never leave this
    module.

Architecture: recurring_billing/services.  Imports from
    recurring_billing.models and recurring_billing.domain.

Invariants enforced:
    - Personal scope matches ``profile_id IS NULL`` only; business scope
      matches its own profile id only.  The two are never merged.
    - ``record_generation`` appends to ``generated_invoice_ids`` and
      increments ``total_generated`` in the same write, under a row lock.
    - Does NOT call ``session.commit()`` -- caller controls boundaries.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from billing_kernel.exceptions import RecurrenceNotFoundError
from billing_kernel.logging_config import get_logger

from recurring_billing.domain.types import RecurrenceRecord, Scope
from recurring_billing.models.recurrence import RecurrenceRecordModel

logger = get_logger("recurring.store")


def _scope_clause(scope: Scope):
    if scope.is_personal:
        return RecurrenceRecordModel.profile_id.is_(None)
    return RecurrenceRecordModel.profile_id == scope.profile_id


class RecurrenceStore:
    """Persistence adapter for ``RecurrenceRecord``."""

    def __init__(self, session: Session):
        self._session = session

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def add(self, record: RecurrenceRecord) -> RecurrenceRecord:
        model = RecurrenceRecordModel.from_dto(record)
        self._session.add(model)
        self._session.flush()
        return model.to_dto()

    def save(self, record: RecurrenceRecord) -> RecurrenceRecord:
        """Overwrite the mutable fields of an existing record.

        Raises:
            RecurrenceNotFoundError: If the record no longer exists.
        """
        model = self._lock(record.record_id)
        model.apply_dto(record)
        self._session.flush()
        return model.to_dto()

    def record_generation(
        self,
        record_id: UUID,
        invoice_id: str,
        invoice_number: int,
        invoice_date: datetime,
        next_generation_date: datetime,
        now: datetime,
    ) -> RecurrenceRecord:
        """Advance the generation cursor after a successful invoice creation.

        Raises:
            RecurrenceNotFoundError: If the record no longer exists.
        """
        model = self._lock(record_id)
        model.generated_invoice_ids = [*(model.generated_invoice_ids or []), invoice_id]
        model.total_generated = model.total_generated + 1
        model.last_generated_date = invoice_date
        model.last_invoice_number = invoice_number
        model.next_invoice_number = invoice_number + 1
        model.next_generation_date = next_generation_date
        model.updated_at = now
        self._session.flush()
        return model.to_dto()

    def delete(self, record_id: UUID) -> None:
        """Hard-delete a record.  Generated invoices are not touched.

        Raises:
            RecurrenceNotFoundError: If the record does not exist.
        """
        model = self._lock(record_id)
        self._session.delete(model)
        self._session.flush()

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def get(self, record_id: UUID) -> RecurrenceRecord | None:
        model = self._session.get(RecurrenceRecordModel, record_id)
        return model.to_dto() if model is not None else None

    def get_scoped(
        self,
        record_id: UUID,
        owner_id: str,
        scope: Scope,
    ) -> RecurrenceRecord | None:
        """Record by id, visible only to its owner within its own scope."""
        model = self._session.execute(
            select(RecurrenceRecordModel).where(
                RecurrenceRecordModel.id == record_id,
                RecurrenceRecordModel.owner_id == owner_id,
                _scope_clause(scope),
            )
        ).scalar_one_or_none()
        return model.to_dto() if model is not None else None

    def list_for_owner(self, owner_id: str, scope: Scope) -> tuple[RecurrenceRecord, ...]:
        """All records of an owner within one scope, newest first."""
        rows = self._session.execute(
            select(RecurrenceRecordModel)
            .where(
                RecurrenceRecordModel.owner_id == owner_id,
                _scope_clause(scope),
            )
            .order_by(
                RecurrenceRecordModel.created_at.desc(),
                RecurrenceRecordModel.id,
            )
        ).scalars().all()
        return tuple(row.to_dto() for row in rows)

    def list_due(self, as_of: datetime) -> tuple[RecurrenceRecord, ...]:
        """Active records whose next generation date is at or before ``as_of``.

        Pause and end-date rules are NOT applied here; the generator
        evaluates them purely per record.
        """
        rows = self._session.execute(
            select(RecurrenceRecordModel)
            .where(
                RecurrenceRecordModel.is_active.is_(True),
                RecurrenceRecordModel.next_generation_date <= as_of,
            )
            .order_by(
                RecurrenceRecordModel.next_generation_date,
                RecurrenceRecordModel.id,
            )
        ).scalars().all()
        logger.debug("due_records_loaded", extra={"count": len(rows)})
        return tuple(row.to_dto() for row in rows)

    def list_expired_pauses(self, as_of: datetime) -> tuple[RecurrenceRecord, ...]:
        """Inactive records whose ``paused_until`` is at or before ``as_of``."""
        rows = self._session.execute(
            select(RecurrenceRecordModel)
            .where(
                RecurrenceRecordModel.is_active.is_(False),
                RecurrenceRecordModel.paused_until.is_not(None),
                RecurrenceRecordModel.paused_until <= as_of,
            )
            .order_by(RecurrenceRecordModel.paused_until, RecurrenceRecordModel.id)
        ).scalars().all()
        return tuple(row.to_dto() for row in rows)

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _lock(self, record_id: UUID) -> RecurrenceRecordModel:
        model = self._session.execute(
            select(RecurrenceRecordModel)
            .where(RecurrenceRecordModel.id == record_id)
            .with_for_update()
        ).scalar_one_or_none()
        if model is None:
            raise RecurrenceNotFoundError(str(record_id))
        return model

"""
Tests for ScheduledGenerationJob.

The job owns the transaction: it commits a finished run, commits the
FAILED run row of an aborted run, and rolls back on any other error.
"""

from datetime import datetime, timedelta, timezone

import pytest

from billing_kernel.exceptions import GenerationRunAbortedError

from recurring_billing.domain.types import GenerationRunStatus
from recurring_billing.models import GenerationRunModel
from recurring_billing.orchestrator import RecurringBillingOrchestrator
from recurring_billing.services.generator import GenerationOrchestrator
from recurring_billing.services.store import RecurrenceStore

NOW = datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def job(db_session, session_factory, customers, invoices, accounts, clock, config):
    orchestrator = RecurringBillingOrchestrator.from_session(
        db_session, customers, invoices, accounts, clock=clock, config=config,
    )
    return orchestrator.create_scheduled_job(session_factory)


@pytest.fixture
def seeded(add_record, db_session):
    """Persist records and commit so the job's own session can see them."""

    def _seed(**overrides):
        record = add_record(**overrides)
        db_session.commit()
        return record

    return _seed


@pytest.fixture
def fresh(session_factory):
    """Read committed state through a new session."""
    opened = []

    def _open():
        session = session_factory()
        opened.append(session)
        return session

    yield _open
    for session in opened:
        session.close()


class TestScheduledRun:
    def test_commits_generated_invoices_and_run(self, job, seeded, fresh, invoices):
        record = seeded()

        result = job.run()

        assert result.status is GenerationRunStatus.COMPLETED
        assert result.successful == 1
        assert result.as_of == NOW
        session = fresh()
        assert RecurrenceStore(session).get(record.record_id).total_generated == 1
        run = session.get(GenerationRunModel, result.run_id)
        assert run.status == "completed"
        assert run.successful == 1
        assert len(invoices.created) == 1

    def test_expired_pause_resumed_from_now_before_run(self, job, seeded, fresh, invoices):
        record = seeded(is_active=False, paused_until=NOW - timedelta(days=1))

        result = job.run()

        # Resumed records count forward from now, so nothing is due yet.
        assert result.outcomes == ()
        assert invoices.created == []
        reloaded = RecurrenceStore(fresh()).get(record.record_id)
        assert reloaded.is_active is True
        assert reloaded.paused_until is None
        assert reloaded.next_generation_date == datetime(2025, 2, 15, 12, tzinfo=timezone.utc)

    def test_failed_record_retried_on_next_run(self, job, seeded, customers, fresh):
        record = seeded()
        customers.raising.add("cust-1")
        assert job.run().failed == 1

        customers.raising.clear()
        assert job.run().successful == 1
        assert RecurrenceStore(fresh()).get(record.record_id).next_invoice_number == 2

    def test_correlation_id_shared_by_run_events(self, job, seeded, captured_logs):
        seeded()

        job.run()

        logs = captured_logs()
        started = [r for r in logs if r["message"] == "scheduled_generation_started"][0]
        finished = [r for r in logs if r["message"] == "scheduled_generation_finished"][0]
        run_done = [r for r in logs if r["message"] == "generation_run_completed"][0]
        assert started["correlation_id"] == finished["correlation_id"] == run_done["correlation_id"]
        assert finished["successful"] == 1


class TestScheduledRunFailures:
    def test_abort_commits_failed_run_row(self, job, seeded, fresh, monkeypatch, captured_logs):
        seeded()

        def _broken(self, as_of):
            raise RuntimeError("connection reset")

        monkeypatch.setattr(RecurrenceStore, "list_due", _broken)

        with pytest.raises(GenerationRunAbortedError) as exc_info:
            job.run()

        runs = fresh().query(GenerationRunModel).all()
        assert len(runs) == 1
        assert runs[0].run_status is GenerationRunStatus.FAILED
        assert str(runs[0].id) == exc_info.value.run_id
        assert runs[0].error_summary == "Scheduled generation failed: connection reset"
        assert any(r["message"] == "scheduled_generation_aborted" for r in captured_logs())

    def test_other_errors_roll_back_everything(self, job, seeded, fresh, monkeypatch, captured_logs):
        record = seeded(is_active=False, paused_until=NOW - timedelta(days=1))

        def _explode(self, as_of=None):
            raise RuntimeError("unexpected")

        monkeypatch.setattr(GenerationOrchestrator, "run_due", _explode)

        with pytest.raises(RuntimeError, match="unexpected"):
            job.run()

        # The pause sweep ran in the same unit of work and was undone.
        assert RecurrenceStore(fresh()).get(record.record_id).is_active is False
        failed = [r for r in captured_logs() if r["message"] == "scheduled_generation_failed"][0]
        assert failed["exc_type"] == "RuntimeError"

"""
Pytest fixtures for the recurring billing test suite.

Provides:
- Structured logging setup and a ``captured_logs`` fixture
- In-memory SQLite sessions (SAVEPOINT-capable pysqlite setup)
- A DeterministicClock pinned to 2025-01-15 12:00 UTC
- In-memory fakes for the customer, invoice and account collaborators
- A ``add_record`` factory that persists recurrence records directly
"""

import json
import logging
from dataclasses import replace
from datetime import date, datetime, timezone
from decimal import Decimal
from io import StringIO
from itertools import count
from uuid import uuid4

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from billing_kernel.db.base import Base
from billing_kernel.domain.clock import DeterministicClock
from billing_kernel.exceptions import CustomerNotFoundError
from billing_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)

import recurring_billing.models  # noqa: F401
from recurring_billing.config.schema import BillingConfig
from recurring_billing.domain.types import (
    Account,
    Customer,
    Frequency,
    Invoice,
    InvoiceSettings,
    LineItem,
    RecurrenceRecord,
    Scope,
)
from recurring_billing.services.generator import GenerationOrchestrator
from recurring_billing.services.lifecycle import LifecycleController
from recurring_billing.services.store import RecurrenceStore

OWNER_ID = "owner-1"
BUSINESS = Scope.business("biz-1")
PERSONAL = Scope.personal()
NOW = datetime(2025, 1, 15, 12, 0, 0, tzinfo=timezone.utc)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture billing_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, generator):
            generator.run_due()
            logs = captured_logs()
            assert any(r["message"] == "generation_run_completed" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("billing_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture
def engine():
    """In-memory SQLite engine shared by every session of one test.

    pysqlite's own transaction handling is switched off so that SQLAlchemy
    emits BEGIN itself and SAVEPOINT rollbacks really undo their writes.
    """
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(eng, "connect")
    def _do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(eng, "begin")
    def _do_begin(conn):
        conn.exec_driver_sql("BEGIN")

    Base.metadata.create_all(eng)
    try:
        yield eng
    finally:
        eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, expire_on_commit=False)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def clock():
    return DeterministicClock(fixed_time=NOW)


@pytest.fixture
def config():
    return BillingConfig()


# =============================================================================
# Collaborator fakes
# =============================================================================


class FakeCustomerDirectory:
    """Customers by id.  Returns customers of any scope; the services filter."""

    def __init__(self):
        self.customers: dict[str, Customer] = {}
        self.raising: set[str] = set()
        self.calls: list[tuple[str, str, Scope]] = []

    def add(self, customer: Customer) -> Customer:
        self.customers[customer.customer_id] = customer
        return customer

    def get_customer(self, customer_id, owner_id, scope):
        self.calls.append((customer_id, owner_id, scope))
        if customer_id in self.raising:
            raise CustomerNotFoundError(customer_id)
        return self.customers.get(customer_id)


class FakeInvoiceGateway:
    """Invoices kept in a dict; ids are ``inv-1``, ``inv-2``, ..."""

    def __init__(self):
        self.invoices: dict[str, Invoice] = {}
        self.created: list[dict] = []
        self.create_error: Exception | None = None
        self.lookup_error: Exception | None = None
        self.failing_lookups: dict[str, Exception] = {}
        self._ids = count(1)

    def seed(self, invoice: Invoice) -> Invoice:
        self.invoices[invoice.invoice_id] = invoice
        return invoice

    def create_invoice(self, payload, owner_id, account, customer, scope):
        if self.create_error is not None:
            raise self.create_error
        invoice = Invoice(
            invoice_id=f"inv-{next(self._ids)}",
            invoice_number=payload.invoice_number,
            date=payload.date,
            customer_id=payload.customer_id,
            recurrence_id=payload.recurrence_id,
            line_items=payload.line_items,
            tax_rate=payload.tax_rate,
            notes=payload.notes,
            payment_terms=payload.payment_terms,
        )
        self.invoices[invoice.invoice_id] = invoice
        self.created.append({
            "payload": payload,
            "owner_id": owner_id,
            "account": account,
            "customer": customer,
            "scope": scope,
            "invoice": invoice,
        })
        return invoice

    def get_invoice(self, invoice_id, owner_id, scope):
        if self.lookup_error is not None:
            raise self.lookup_error
        if invoice_id in self.failing_lookups:
            raise self.failing_lookups[invoice_id]
        return self.invoices.get(invoice_id)


class FakeAccountDirectory:
    """Accounts by owner id plus a counter per (owner, scope)."""

    def __init__(self):
        self.accounts: dict[str, Account] = {}
        self.counters: dict[tuple[str, Scope], int] = {}
        self.increment_error: Exception | None = None

    def add(self, account: Account) -> Account:
        self.accounts[account.owner_id] = account
        return account

    def get_account(self, owner_id):
        return self.accounts.get(owner_id)

    def increment_counter(self, owner_id, scope):
        if self.increment_error is not None:
            raise self.increment_error
        key = (owner_id, scope)
        self.counters[key] = self.counters.get(key, 0) + 1


@pytest.fixture
def customers():
    directory = FakeCustomerDirectory()
    directory.add(Customer("cust-1", OWNER_ID, PERSONAL, "Acme Co", "billing@acme.test"))
    directory.add(Customer("cust-2", OWNER_ID, PERSONAL, "Globex", "ap@globex.test"))
    directory.add(Customer("cust-3", OWNER_ID, PERSONAL, "Initech", "pay@initech.test"))
    directory.add(Customer("biz-cust", OWNER_ID, BUSINESS, "Umbrella Ltd", "ar@umbrella.test"))
    return directory


@pytest.fixture
def invoices():
    return FakeInvoiceGateway()


@pytest.fixture
def accounts():
    directory = FakeAccountDirectory()
    directory.add(Account(
        owner_id=OWNER_ID,
        settings=InvoiceSettings(prefix="INV", next_number=10, timezone="America/New_York"),
        profiles={
            "biz-1": InvoiceSettings(prefix="BIZ", next_number=500, timezone="Europe/London"),
        },
    ))
    return directory


# =============================================================================
# Service fixtures
# =============================================================================


@pytest.fixture
def store(db_session):
    return RecurrenceStore(db_session)


@pytest.fixture
def generator(db_session, store, customers, invoices, accounts, clock, config):
    return GenerationOrchestrator(
        session=db_session,
        store=store,
        customers=customers,
        invoices=invoices,
        accounts=accounts,
        clock=clock,
        config=config,
    )


@pytest.fixture
def lifecycle(store, generator, customers, invoices, accounts, clock, config):
    return LifecycleController(
        store=store,
        generator=generator,
        customers=customers,
        invoices=invoices,
        accounts=accounts,
        clock=clock,
        config=config,
    )


def build_record(**overrides) -> RecurrenceRecord:
    """A monthly personal record, due 2025-01-01 12:00 UTC, never generated."""
    created = datetime(2024, 12, 1, 12, 0, 0, tzinfo=timezone.utc)
    record = RecurrenceRecord(
        record_id=uuid4(),
        owner_id=OWNER_ID,
        scope=PERSONAL,
        customer_id="cust-1",
        customer_name="Acme Co",
        customer_email="billing@acme.test",
        line_items=(
            LineItem("Services for {{MONTH_NAME}} {{YEAR}}", Decimal("1"), Decimal("100.00")),
        ),
        tax_rate=Decimal("0"),
        notes="",
        payment_terms="Due on receipt",
        invoice_prefix="INV",
        next_invoice_number=1,
        last_invoice_number=None,
        frequency=Frequency.MONTHLY,
        start_date=date(2024, 12, 1),
        end_date=None,
        due_date_duration_days=7,
        next_generation_date=datetime(2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc),
        created_at=created,
        updated_at=created,
    )
    return replace(record, **overrides)


@pytest.fixture
def add_record(store, db_session):
    """Persist a record built from ``build_record`` defaults plus overrides."""

    def _add(**overrides) -> RecurrenceRecord:
        record = store.add(build_record(**overrides))
        db_session.flush()
        return record

    return _add


@pytest.fixture
def make_record():
    """Unpersisted ``build_record`` for pure domain tests."""
    return build_record

"""
RecurringBillingOrchestrator -- DI container for the recurring billing engine.

Contract:
    Wires the store adapter, the generator, the lifecycle controller and
    the scheduled job around one set of collaborators, one Clock and one
    configuration.  Single place where all dependencies are composed.

Architecture: recurring_billing (top-level).  The canonical entry point
    for embedding the engine in an application.

Invariants enforced:
    - Clock injection (all services receive the same Clock).
    - Configuration comes from ``get_active_config()`` unless injected.
"""

from __future__ import annotations

from typing import Callable

from sqlalchemy.orm import Session

from billing_kernel.domain.clock import Clock, SystemClock
from billing_kernel.db.engine import create_tables, init_engine_from_url
from billing_kernel.logging_config import configure_logging, get_logger

from recurring_billing.config import get_active_config
from recurring_billing.config.schema import BillingConfig
from recurring_billing.services.collaborators import (
    AccountDirectory,
    CustomerDirectory,
    InvoiceGateway,
)
from recurring_billing.services.generator import GenerationOrchestrator
from recurring_billing.services.lifecycle import LifecycleController
from recurring_billing.services.scheduler import ScheduledGenerationJob
from recurring_billing.services.store import RecurrenceStore

logger = get_logger("recurring.orchestrator")


def bootstrap(config: BillingConfig | None = None) -> BillingConfig:
    """Configure logging, initialise the engine and create missing tables.

    Returns the configuration that was applied.
    """
    config = config or get_active_config()
    configure_logging(level=config.log_level)
    init_engine_from_url(config.database_url, echo=config.database_echo)
    create_tables()
    logger.info("recurring_billing_bootstrapped", extra={"database_echo": config.database_echo})
    return config


class RecurringBillingOrchestrator:
    """DI container for the recurring billing engine.

    Contract:
        - ``from_session()`` factory creates a fully wired orchestrator.
        - ``create_generator()`` / ``create_lifecycle()`` return services
          bound to the orchestrator's session (or an override).
        - ``create_scheduled_job()`` returns the timer's unit of work.

    Non-goals:
        - Does NOT manage session lifecycle -- caller controls commits.
        - Does NOT run a timer.
    """

    def __init__(
        self,
        session: Session,
        customers: CustomerDirectory,
        invoices: InvoiceGateway,
        accounts: AccountDirectory,
        clock: Clock | None = None,
        config: BillingConfig | None = None,
    ) -> None:
        self._session = session
        self._customers = customers
        self._invoices = invoices
        self._accounts = accounts
        self._clock = clock or SystemClock()
        self._config = config or get_active_config()

    # -------------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------------

    @classmethod
    def from_session(
        cls,
        session: Session,
        customers: CustomerDirectory,
        invoices: InvoiceGateway,
        accounts: AccountDirectory,
        clock: Clock | None = None,
        config: BillingConfig | None = None,
    ) -> RecurringBillingOrchestrator:
        """Create a fully wired orchestrator from a session.

        Args:
            session: SQLAlchemy session for persistence.
            customers: Customer lookup collaborator.
            invoices: Invoice creation and lookup collaborator.
            accounts: Account settings and counter collaborator.
            clock: Optional clock for deterministic testing.
            config: Optional configuration; loaded via
                ``get_active_config()`` when omitted.
        """
        orchestrator = cls(
            session=session,
            customers=customers,
            invoices=invoices,
            accounts=accounts,
            clock=clock or SystemClock(),
            config=config,
        )
        logger.debug(
            "orchestrator_wired",
            extra={"default_timezone": orchestrator.config.default_timezone},
        )
        return orchestrator

    # -------------------------------------------------------------------------
    # Services
    # -------------------------------------------------------------------------

    def create_store(self, session: Session | None = None) -> RecurrenceStore:
        return RecurrenceStore(session or self._session)

    def create_generator(self, session: Session | None = None) -> GenerationOrchestrator:
        """Create a GenerationOrchestrator.

        Args:
            session: Optional session override. If None, uses the
                orchestrator's session.
        """
        target_session = session or self._session
        return GenerationOrchestrator(
            session=target_session,
            store=self.create_store(target_session),
            customers=self._customers,
            invoices=self._invoices,
            accounts=self._accounts,
            clock=self._clock,
            config=self._config,
        )

    def create_lifecycle(self, session: Session | None = None) -> LifecycleController:
        """Create a LifecycleController.

        Args:
            session: Optional session override. If None, uses the
                orchestrator's session.
        """
        target_session = session or self._session
        return LifecycleController(
            store=self.create_store(target_session),
            generator=self.create_generator(target_session),
            customers=self._customers,
            invoices=self._invoices,
            accounts=self._accounts,
            clock=self._clock,
            config=self._config,
        )

    # -------------------------------------------------------------------------
    # Scheduled job
    # -------------------------------------------------------------------------

    def create_scheduled_job(
        self,
        session_factory: Callable[[], Session],
    ) -> ScheduledGenerationJob:
        """Create the job an external timer calls once per tick.

        Args:
            session_factory: Callable returning a new session per run.
        """
        return ScheduledGenerationJob(
            session_factory=session_factory,
            generator_factory=self.create_generator,
            lifecycle_factory=self.create_lifecycle,
            clock=self._clock,
        )

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def session(self) -> Session:
        return self._session

    @property
    def clock(self) -> Clock:
        return self._clock

    @property
    def config(self) -> BillingConfig:
        return self._config

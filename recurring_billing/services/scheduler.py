"""
ScheduledGenerationJob -- the unit of work an external timer invokes.

Contract:
    ``run()`` opens a fresh session, resumes records whose pause window
    has passed, runs one generation pass over every due record and
    commits.  The timer itself (cron, cloud scheduler, ...) lives outside
    this package.

Architecture: recurring_billing/services.  Owns the transaction boundary
    that the generator and lifecycle controller leave to their caller.

Invariants enforced:
    - All timestamps from the injected Clock; one ``as_of`` per run.
    - An aborted run still commits its FAILED run row before re-raising.
    - Any other error rolls the whole unit of work back and re-raises.
"""

from __future__ import annotations

from typing import Callable
from uuid import uuid4

from sqlalchemy.orm import Session

from billing_kernel.domain.clock import Clock, SystemClock
from billing_kernel.exceptions import GenerationRunAbortedError
from billing_kernel.logging_config import LogContext, get_logger

from recurring_billing.domain.types import GenerationRunResult
from recurring_billing.services.generator import GenerationOrchestrator
from recurring_billing.services.lifecycle import LifecycleController

logger = get_logger("recurring.scheduler")


class ScheduledGenerationJob:
    """One scheduled generation pass per ``run()`` call.

    Non-goals:
        - No polling thread and no interval -- the caller's timer decides
          when to call ``run()``.
        - No retry of failed records; they are picked up again by the next
          run because their cursor did not advance.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        generator_factory: Callable[[Session], GenerationOrchestrator],
        lifecycle_factory: Callable[[Session], LifecycleController],
        clock: Clock | None = None,
    ):
        self._session_factory = session_factory
        self._generator_factory = generator_factory
        self._lifecycle_factory = lifecycle_factory
        self._clock = clock or SystemClock()

    def run(self) -> GenerationRunResult:
        """Execute one scheduled pass and commit it.

        Raises:
            GenerationRunAbortedError: The due-record query failed.
        """
        session = self._session_factory()
        as_of = self._clock.now()

        with LogContext.bind(correlation_id=str(uuid4())):
            logger.info("scheduled_generation_started", extra={"as_of": as_of})
            try:
                lifecycle = self._lifecycle_factory(session)
                generator = self._generator_factory(session)

                lifecycle.resume_expired_pauses(as_of)
                result = generator.run_due(as_of)
                session.commit()

                logger.info(
                    "scheduled_generation_finished",
                    extra={"run_id": str(result.run_id), **result.summary()},
                )
                return result
            except GenerationRunAbortedError as exc:
                session.commit()
                logger.error(
                    "scheduled_generation_aborted",
                    extra={"run_id": exc.run_id, "error": str(exc)},
                )
                raise
            except Exception:
                session.rollback()
                logger.exception("scheduled_generation_failed")
                raise
            finally:
                session.close()

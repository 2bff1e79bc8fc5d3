"""
recurring_billing.services -- Store adapter, collaborators, generation and lifecycle.

Nothing here calls ``session.commit()`` except ``ScheduledGenerationJob``.
"""

from recurring_billing.services.collaborators import (
    AccountDirectory,
    CustomerDirectory,
    InvoiceGateway,
)
from recurring_billing.services.generator import GenerationOrchestrator
from recurring_billing.services.lifecycle import LifecycleController
from recurring_billing.services.scheduler import ScheduledGenerationJob
from recurring_billing.services.store import RecurrenceStore

__all__ = [
    "AccountDirectory",
    "CustomerDirectory",
    "GenerationOrchestrator",
    "InvoiceGateway",
    "LifecycleController",
    "RecurrenceStore",
    "ScheduledGenerationJob",
]

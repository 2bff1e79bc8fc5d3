"""
Pure kernel domain layer.

Holds the clock abstraction.  Nothing here touches the ORM or the
database; ``SystemClock`` is the single sanctioned source of wall time.
"""

from billing_kernel.domain.clock import Clock, DeterministicClock, SystemClock

__all__ = [
    "Clock",
    "DeterministicClock",
    "SystemClock",
]

"""Background workers for periodic processing tasks."""

from fishit.workers.periodic import PeriodicTask
from fishit.workers.retry_scheduler import RetryScheduler, SweepResult

__all__ = [
    "PeriodicTask",
    "RetryScheduler",
    "SweepResult",
]

"""Services for dispatching, processing and scheduling notification delivery."""
from .dedup import TagDeduplicator
from .dispatch import DispatchPolicy, DispatchOutcome, Outcome
from .processor import BatchProcessor, CycleStats
from .queue import NotificationQueue
from .scheduler import SchedulerService
from .factory import Services, build_services

__all__ = [
    "TagDeduplicator",
    "DispatchPolicy",
    "DispatchOutcome",
    "Outcome",
    "BatchProcessor",
    "CycleStats",
    "NotificationQueue",
    "SchedulerService",
    "Services",
    "build_services",
]

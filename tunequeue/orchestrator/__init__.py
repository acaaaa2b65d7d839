"""Job queue orchestration: admission, scheduling, progress and maintenance."""

from tunequeue.orchestrator.job_queue import JobQueue
from tunequeue.orchestrator.progress import ProgressBus
from tunequeue.orchestrator.scheduler import Scheduler

__all__ = ["JobQueue", "ProgressBus", "Scheduler"]

"""
Workflow scheduler

Every reconciliation step is a separate Celery task that re-enqueues itself
(or the next step) with a countdown instead of sleeping. Workflow code only
sees the Scheduler protocol, so tests can swap in a recording fake.
"""
import logging
from datetime import timedelta
from enum import Enum
from typing import Any, Dict, Optional, Protocol, Union

logger = logging.getLogger("storefront.scheduler")

Delay = Union[timedelta, float, int, None]


class WorkflowUnit(str, Enum):
    SETUP = "domains.setup"
    MONITOR = "domains.monitor"
    CERT_RETRY = "domains.cert_retry"
    REBUILD_REMOVE = "domains.rebuild_remove"
    REBUILD_READD = "domains.rebuild_readd"
    VERIFY = "domains.verify"


def delay_seconds(delay: Delay) -> float:
    if delay is None:
        return 0.0
    if isinstance(delay, timedelta):
        return max(delay.total_seconds(), 0.0)
    return max(float(delay), 0.0)


class Scheduler(Protocol):
    def enqueue(self, unit: WorkflowUnit, params: Dict[str, Any], delay: Delay = None) -> None:
        ...


class CeleryScheduler:
    """Dispatches units by task name so workflow code never imports the task module."""

    def __init__(self, app=None, queue: Optional[str] = None):
        if app is None:
            from app.celery_app import celery_app as app
        self.app = app
        self.queue = queue

    def enqueue(self, unit: WorkflowUnit, params: Dict[str, Any], delay: Delay = None) -> None:
        countdown = delay_seconds(delay)
        options: Dict[str, Any] = {"kwargs": params}
        if countdown:
            options["countdown"] = countdown
        if self.queue:
            options["queue"] = self.queue
        self.app.send_task(WorkflowUnit(unit).value, **options)
        logger.debug("Enqueued %s %s in %.0fs", WorkflowUnit(unit).value, params, countdown)

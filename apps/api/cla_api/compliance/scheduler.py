"""Scheduling bulk rechecks as background tasks."""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from cla_api.celery_client import get_celery_app
from cla_api.compliance.recheck import RecheckTrigger
from cla_api.ledger.service import SignatureLedger
from cla_api.utils.metrics import recheck_schedule_failures

logger = logging.getLogger(__name__)

RECHECK_TASK_NAME = "cla_worker.tasks.recheck_open_pull_requests"


class TaskScheduler(ABC):
    """Fire-and-forget task dispatch. ``schedule`` may raise."""

    @abstractmethod
    def schedule(self, task_name: str, kwargs: dict) -> str:
        """Enqueue a task and return its run id."""
        pass


class CeleryTaskScheduler(TaskScheduler):
    """Enqueues tasks on the worker's Celery broker."""

    def schedule(self, task_name: str, kwargs: dict) -> str:
        result = get_celery_app().send_task(task_name, kwargs=kwargs)
        return result.id


@dataclass
class ScheduleResult:
    scheduled: bool
    run_id: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return {"scheduled": self.scheduled, "run_id": self.run_id, "error": self.error}


def schedule_recheck(
    ledger: SignatureLedger,
    scheduler: TaskScheduler,
    trigger: RecheckTrigger,
    org_id: Optional[int] = None,
) -> ScheduleResult:
    """Schedule a bulk recheck. Failures are audited and returned, never raised."""
    try:
        run_id = scheduler.schedule(RECHECK_TASK_NAME, {"trigger": trigger.to_kwargs()})
    except Exception as e:
        logger.error(
            f"Failed to schedule {trigger.kind} recheck for {trigger.org_slug}: {e}",
            extra={"org_slug": trigger.org_slug, "trigger": trigger.kind},
            exc_info=True,
        )
        recheck_schedule_failures.labels(trigger=trigger.kind).inc()
        ledger.append_audit_event(
            "recheck.schedule_failed",
            org_id=org_id,
            actor_github_id=trigger.actor_github_id,
            actor_github_username=trigger.actor_github_username,
            payload={"trigger": trigger.to_kwargs(), "error": str(e)},
        )
        return ScheduleResult(
            scheduled=False,
            error=f"Recheck could not be scheduled: {e}. Comment /recheck on affected pull requests to retry.",
        )

    logger.info(
        f"Scheduled {trigger.kind} recheck for {trigger.org_slug}",
        extra={"org_slug": trigger.org_slug, "trigger": trigger.kind, "run_id": run_id},
    )
    ledger.append_audit_event(
        "recheck.scheduled",
        org_id=org_id,
        actor_github_id=trigger.actor_github_id,
        actor_github_username=trigger.actor_github_username,
        payload={"trigger": trigger.to_kwargs(), "run_id": run_id},
    )
    return ScheduleResult(scheduled=True, run_id=run_id)


def get_task_scheduler() -> TaskScheduler:
    """FastAPI dependency for the task scheduler."""
    return CeleryTaskScheduler()

"""Celery tasks for async operations."""

import logging
from typing import Optional

from celery import Task
from sqlalchemy.orm import Session

from cla_api.compliance.recheck import BulkRecheckOrchestrator, RecheckTrigger
from cla_api.github.factory import GitHubClientFactory
from cla_api.settings import get_settings
from cla_worker.celery_app import celery_app
from cla_worker.db import get_db

logger = logging.getLogger(__name__)


class DatabaseTask(Task):
    """Task with database session."""

    _db: Optional[Session] = None

    @property
    def db(self) -> Session:
        """Get database session."""
        if self._db is None:
            self._db = next(get_db())
        return self._db

    def after_return(self, *args, **kwargs):
        """Close database session after task."""
        if self._db:
            self._db.close()
            self._db = None


@celery_app.task(base=DatabaseTask, bind=True, max_retries=3)
def recheck_open_pull_requests(self, trigger: dict):
    """Re-apply CLA compliance to every open PR of one organization.

    Per-PR failures are counted in the returned summary. Only a failure of the
    run itself (database unavailable) is retried.
    """
    settings = get_settings()
    recheck_trigger = RecheckTrigger.from_kwargs(trigger)
    log_extra = {
        "task": "recheck_open_pull_requests",
        "org_slug": recheck_trigger.org_slug,
        "trigger": recheck_trigger.kind,
        "task_id": self.request.id,
    }
    logger.info(f"Starting recheck for {recheck_trigger.org_slug}", extra=log_extra)

    try:
        orchestrator = BulkRecheckOrchestrator(
            self.db,
            GitHubClientFactory(settings),
            settings.app_base_url,
            error_detail_limit=settings.recheck_error_detail_limit,
        )
        summary = orchestrator.run(recheck_trigger)
    except Exception as exc:
        self.db.rollback()
        logger.error(f"Recheck for {recheck_trigger.org_slug} failed: {exc}", extra=log_extra, exc_info=True)
        raise self.retry(exc=exc, countdown=60 * (self.request.retries + 1))

    logger.info(
        f"Recheck for {recheck_trigger.org_slug} {summary.status}",
        extra={**log_extra, "rechecked": summary.rechecked, "errors": summary.errors},
    )
    return summary.to_dict()

"""Celery application configuration."""

from celery import Celery

from cla_api.settings import get_settings

settings = get_settings()

celery_app = Celery(
    "cla_worker",
    broker=settings.redis_url,
    backend=settings.redis_url,
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=settings.recheck_task_time_limit,
    task_soft_time_limit=settings.recheck_task_soft_time_limit,
)

# Import tasks to register them with Celery
from cla_worker import tasks  # noqa: F401, E402

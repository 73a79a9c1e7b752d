"""Celery application configuration."""

from celery import Celery

from bridge_worker.settings import get_settings

settings = get_settings()

celery_app = Celery(
    "bridge_worker",
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
    task_acks_late=True,
    # Attestation waits on the webhook path are unbounded; cap the task instead.
    task_time_limit=2 * 60 * 60,
    task_soft_time_limit=115 * 60,
)

# Import tasks to register them with Celery
from bridge_worker import tasks  # noqa: F401, E402

"""Shared Celery client for the API to enqueue worker tasks by name.

The API never imports worker code; tasks are sent with ``send_task`` using
the worker's registered names.
"""

import logging
from typing import Optional

from celery import Celery

from bridge_api.settings import get_settings

logger = logging.getLogger(__name__)

_celery_app: Optional[Celery] = None


def get_celery_app() -> Celery:
    """Get or create the singleton Celery client (JSON, UTC, Redis broker)."""
    global _celery_app

    if _celery_app is None:
        settings = get_settings()
        _celery_app = Celery("bridge_api")
        _celery_app.conf.update(
            broker_url=settings.redis_url,
            result_backend=settings.redis_url,
            task_serializer="json",
            accept_content=["json"],
            result_serializer="json",
            timezone="UTC",
            enable_utc=True,
        )
        logger.info("Initialized Celery client for bridge_api")

    return _celery_app

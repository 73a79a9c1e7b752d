"""Hand-off of confirmed burns to the completion step."""

import logging
from typing import Callable

logger = logging.getLogger(__name__)

COMPLETE_BURN_TASK = "bridge_worker.tasks.complete_bridge_burn"


class InlineBurnDispatcher:
    """Run burn completion in the calling process."""

    def __init__(self, complete: Callable[[str], object]):
        self._complete = complete

    def dispatch(self, burn_id: str) -> None:
        self._complete(burn_id)


class CeleryBurnDispatcher:
    """Enqueue burn completion on the worker by task name."""

    def __init__(self, celery_app=None):
        self._celery_app = celery_app

    def dispatch(self, burn_id: str) -> None:
        if self._celery_app is None:
            from bridge_api.celery_client import get_celery_app

            self._celery_app = get_celery_app()
        result = self._celery_app.send_task(COMPLETE_BURN_TASK, args=[burn_id])
        logger.info(f"Enqueued burn completion for {burn_id} (task_id={result.id})")

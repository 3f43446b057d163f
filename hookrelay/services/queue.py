"""Hand-off of webhook ids to the job queue."""

import logging
from collections.abc import Callable
from datetime import datetime
from typing import Optional

logger = logging.getLogger(__name__)

# submit(webhook_id, eta=None): run one delivery attempt now or at ``eta``
SubmitFn = Callable[..., None]


def submit_via_celery(webhook_id: str, eta: Optional[datetime] = None) -> None:
    # Imported here: the task module imports the services that call this
    from hookrelay.config import get_settings
    from hookrelay.tasks.webhook_tasks import process_webhook_task

    process_webhook_task.apply_async(
        args=[webhook_id],
        eta=eta,
        queue=get_settings().job_queue,
    )
    logger.debug(f"Submitted webhook {webhook_id} (eta={eta.isoformat() if eta else 'now'})")

"""Background tasks of the core module."""

import structlog
from celery import shared_task

logger = structlog.get_logger(__name__)


@shared_task(name="core.dispatch_outbox")
def dispatch_outbox_events():
    """Publish pending outbox events on the in-process event bus."""
    from modules.core.outbox import OutboxDispatcher

    result = OutboxDispatcher().dispatch_pending()
    logger.info("dispatch_outbox.executed", **result)
    return result

"""Transactional outbox: writer and dispatcher.

Repositories call ``record_domain_events`` inside the same
``transaction.atomic()`` block that persists the aggregate, so the state
change and the events describing it commit (or roll back) together.

``OutboxDispatcher`` runs after commit (Celery task or beat schedule),
rebuilds each pending event and publishes it on the in-process event bus.
A batch is claimed with ``SELECT ... FOR UPDATE SKIP LOCKED`` so the
on-commit task and the beat run never publish the same row at the same
time.  A row's handler writes run in a savepoint and roll back if any
handler fails.
Delivery is at-least-once: a row is marked ``PUBLISHED`` only after every
handler succeeded, otherwise ``FAILED`` with the error and retried until
``OUTBOX_MAX_RETRIES`` is reached.
"""

from __future__ import annotations

import json
from dataclasses import asdict
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional
from uuid import UUID

import structlog
from django.conf import settings
from django.db import transaction

from modules.core.models import OutboxEvent, OutboxQuerySet
from shared.domain.bus import IEventBus
from shared.domain.events import DomainEvent, DomainEventMixin

logger = structlog.get_logger(__name__)


def record_domain_events(entity: DomainEventMixin, topic: str) -> List[OutboxEvent]:
    """Persist the entity's pending domain events and clear them."""
    rows = []
    for event in entity.domain_events:
        rows.append(
            OutboxEvent.objects.create(
                event_type=event.event_name,
                aggregate_id=str(event.aggregate_id),
                payload=serialize_event_payload(event),
                topic=topic,
            )
        )
    entity.clear_domain_events()
    if rows:
        transaction.on_commit(_schedule_dispatch)
    return rows


def _schedule_dispatch() -> None:
    from modules.core.tasks import dispatch_outbox_events

    try:
        dispatch_outbox_events.delay()
    except Exception as exc:
        # The beat schedule picks the rows up later.
        logger.warning("outbox.schedule_failed", error=str(exc))


class OutboxDispatcher:
    """Publishes pending outbox rows on the event bus."""

    def __init__(
        self,
        bus: Optional[IEventBus] = None,
        batch_size: Optional[int] = None,
        max_retries: Optional[int] = None,
    ) -> None:
        if bus is None:
            from shared.infrastructure.bus import event_bus

            bus = event_bus
        self._bus = bus
        self._batch_size = batch_size or settings.OUTBOX_BATCH_SIZE
        self._max_retries = max_retries or settings.OUTBOX_MAX_RETRIES

    def claimable(self) -> OutboxQuerySet:
        """Deliverable rows, locked; rows another dispatcher holds are skipped."""
        return OutboxEvent.objects.deliverable(self._max_retries).select_for_update(
            skip_locked=True
        )

    def pending(self) -> List[OutboxEvent]:
        # Must run inside a transaction; the locks last until it ends.
        return list(self.claimable()[: self._batch_size])

    @transaction.atomic
    def dispatch_pending(self) -> Dict[str, int]:
        published = failed = 0
        for row in self.pending():
            if self.dispatch(row):
                published += 1
            else:
                failed += 1
        if published or failed:
            logger.info("outbox.dispatched", published=published, failed=failed)
        return {"published": published, "failed": failed}

    def dispatch(self, row: OutboxEvent) -> bool:
        log = logger.bind(
            outbox_id=str(row.id),
            event_type=row.event_type,
            aggregate_id=row.aggregate_id,
        )
        try:
            event = DomainEvent.from_payload(row.payload)
            with transaction.atomic():
                self._bus.publish(event)
        except Exception as exc:
            log.warning("outbox.dispatch_failed", error=str(exc), retry=row.retry_count + 1)
            row.mark_as_failed(str(exc))
            return False
        row.mark_as_published()
        return True


def serialize_event_payload(event: Any) -> Dict[str, Any]:
    data = asdict(event)
    normalized = _normalize_for_json(data)
    return json.loads(json.dumps(normalized))


def _normalize_for_json(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (list, tuple)):
        return [_normalize_for_json(item) for item in value]
    if isinstance(value, dict):
        return {key: _normalize_for_json(val) for key, val in value.items()}
    return value

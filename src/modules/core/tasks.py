"""Background tasks of the core module."""

from __future__ import annotations

import structlog
from celery import shared_task
from django.db import transaction

from modules.core.models import OutboxEvent
from shared.domain.events import event_from_payload
from shared.infrastructure.bus import event_bus

logger = structlog.get_logger(__name__)

RELAY_BATCH_SIZE = 100


@shared_task(name="core.relay_outbox_events")
def relay_outbox_events(batch_size: int = RELAY_BATCH_SIZE) -> dict[str, int]:
    """Deliver pending outbox events to the in-process event bus.

    Events are processed oldest first.  A delivery failure is recorded on
    the outbox row (``mark_as_failed``) and the remaining events are still
    relayed; failed rows are not picked up again automatically.
    """
    published = 0
    failed = 0

    with transaction.atomic():
        pending = list(OutboxEvent.objects.pending_batch(batch_size))
        for outbox_event in pending:
            log = logger.bind(
                outbox_id=str(outbox_event.id),
                event_type=outbox_event.event_type,
                aggregate_id=outbox_event.aggregate_id,
            )
            try:
                event = event_from_payload(outbox_event.event_type, outbox_event.payload)
                event_bus.publish(event)
            except Exception as exc:
                outbox_event.mark_as_failed(f"{type(exc).__name__}: {exc}")
                log.exception("outbox.relay_failed")
                failed += 1
                continue
            outbox_event.mark_as_published()
            published += 1

    logger.info("outbox.relay_completed", published=published, failed=failed)
    return {"published": published, "failed": failed}

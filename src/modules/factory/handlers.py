"""Event handlers for factory routing domain events."""

from __future__ import annotations

import structlog

from modules.factory.events import (
    DepartmentCompleted,
    OrderCompleted,
    OrderQueued,
    WorkerAssigned,
)
from shared.domain.bus import IEventHandler

logger = structlog.get_logger(__name__)


class WorkerAssignedHandler(IEventHandler[WorkerAssigned]):
    def handle(self, event: WorkerAssigned) -> None:
        logger.info(
            f"Order {event.aggregate_id} assigned in {event.department}",
            order_id=str(event.aggregate_id),
            worker_id=event.worker_id,
            manual=event.manual,
        )


class OrderQueuedHandler(IEventHandler[OrderQueued]):
    def handle(self, event: OrderQueued) -> None:
        logger.warning(
            f"Order {event.aggregate_id} waiting for a worker in {event.department}",
            order_id=str(event.aggregate_id),
            queue_position=event.queue_position,
        )


class DepartmentCompletedHandler(IEventHandler[DepartmentCompleted]):
    def handle(self, event: DepartmentCompleted) -> None:
        logger.info(
            f"Order {event.aggregate_id} left {event.department}",
            order_id=str(event.aggregate_id),
            next_department=event.next_department,
            skipped=event.skipped,
        )


class OrderCompletedHandler(IEventHandler[OrderCompleted]):
    def handle(self, event: OrderCompleted) -> None:
        logger.info(
            f"Order {event.aggregate_id} finished all departments",
            order_id=str(event.aggregate_id),
        )


worker_assigned_handler = WorkerAssignedHandler()
order_queued_handler = OrderQueuedHandler()
department_completed_handler = DepartmentCompletedHandler()
order_completed_handler = OrderCompletedHandler()

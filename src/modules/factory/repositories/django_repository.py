"""Django ORM implementation of the factory repositories.

Concurrency control:

- Order rows and department queue rows are locked with
  ``select_for_update()``; the lock lives until the caller's
  ``transaction.atomic`` block ends.
- Tracking rows carry a ``version`` counter.  Updates are conditional on
  the version read, so a stale write affects zero rows.
- Lock failures reported by the database (``OperationalError``: lock
  timeout, deadlock victim, serialization failure) and stale versions are
  both raised as ``ConcurrentModificationError``.  Nothing is retried here.
"""

from __future__ import annotations

import json
from dataclasses import asdict
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional
from uuid import UUID

import structlog
from django.core.exceptions import ValidationError
from django.db import IntegrityError, OperationalError, transaction
from django.db.models import Count, F, Q, QuerySet
from django.utils import timezone

from modules.core.models import OutboxEvent
from modules.factory.constants import ACTIVE_ASSIGNMENT_STATES, OrderPriority
from modules.factory.exceptions import ConcurrentModificationError
from modules.factory.models import (
    DepartmentQueue,
    DepartmentTracking,
    Order,
    QueueEntry,
    Worker,
)
from modules.factory.repositories.interfaces import (
    IDepartmentQueueRepository,
    IFactoryOrderRepository,
    ITrackingRepository,
    IWorkerRepository,
)

logger = structlog.get_logger(__name__)

EVENT_TOPIC = "factory"


class FactoryOrderDjangoRepository(IFactoryOrderRepository):
    """Concrete Order repository backed by Django ORM."""

    @transaction.atomic
    def create(self, data: Dict[str, Any]) -> Order:
        order = Order(
            customer_name=data["customer_name"],
            priority=data.get("priority") or OrderPriority.NORMAL,
            due_date=data.get("due_date"),
            notes=data.get("notes") or "",
        )
        order.save()
        logger.info(
            "factory.order.created",
            order_id=str(order.id),
            order_number=order.order_number,
        )
        return order

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def get_by_id(self, id: str) -> Optional[Order]:
        """Return the order, or ``None`` for unknown, deleted or invalid IDs."""
        try:
            return Order.objects.alive().filter(id=id).first()
        except (ValueError, ValidationError):
            return None

    def get_for_update(self, id: str) -> Optional[Order]:
        """Retrieve an order with a row-level lock (SELECT FOR UPDATE).

        Returns ``None`` for non-existent, soft-deleted or invalid IDs.
        """
        try:
            return Order.objects.select_for_update().alive().filter(id=id).first()
        except (ValueError, ValidationError):
            return None
        except OperationalError as exc:
            logger.warning("factory.order.lock_failed", order_id=str(id), error=str(exc))
            raise ConcurrentModificationError(
                f"Order {id} is locked by another operation."
            ) from exc

    def list(self, filters: Optional[Dict[str, Any]] = None) -> QuerySet[Order]:
        """List live orders.

        Supported filter keys are any ``Order`` field lookups, e.g.
        ``status``, ``current_department`` or ``due_date__lte``.
        """
        queryset = Order.objects.alive()
        if filters:
            queryset = queryset.filter(**filters)
        return queryset

    # ------------------------------------------------------------------
    # Save / Delete (IRepository contract)
    # ------------------------------------------------------------------

    @transaction.atomic
    def save(self, entity: Order) -> Order:
        """Persist the order and write its domain events to the outbox."""
        entity.save()
        event_count = self.record_events(entity)
        logger.info(
            "factory.order.saved",
            order_id=str(entity.id),
            status=entity.status,
            current_department=entity.current_department,
            event_count=event_count,
        )
        return entity

    @transaction.atomic
    def record_events(self, entity: Order) -> int:
        events = entity.domain_events
        for event in events:
            OutboxEvent.objects.create(
                event_type=event.event_name,
                aggregate_id=str(event.aggregate_id),
                payload=_serialize_event_payload(event),
                topic=EVENT_TOPIC,
            )
        entity.clear_domain_events()
        return len(events)

    @transaction.atomic
    def delete(self, id: str) -> bool:
        """Soft-delete an order by ID.  Its tracking history is kept."""
        order = self.get_by_id(id)
        if not order:
            return False
        order.delete()
        logger.info("factory.order.soft_deleted", order_id=str(id))
        return True


class TrackingDjangoRepository(ITrackingRepository):
    """Ledger rows with optimistic version checks."""

    def create(self, data: Dict[str, Any]) -> DepartmentTracking:
        entry = DepartmentTracking(**data)
        try:
            # Savepoint so a constraint violation leaves the outer
            # transaction usable.
            with transaction.atomic():
                entry.save()
        except IntegrityError as exc:
            raise ConcurrentModificationError(
                f"Order {entry.order_id} already has an open department entry."
            ) from exc
        return entry

    def save(
        self, entry: DepartmentTracking, update_fields: Iterable[str]
    ) -> DepartmentTracking:
        fields = list(update_fields)
        values = {name: getattr(entry, name) for name in fields}
        now = timezone.now()
        try:
            updated = DepartmentTracking.objects.filter(
                pk=entry.pk, version=entry.version
            ).update(**values, version=F("version") + 1, updated_at=now)
        except OperationalError as exc:
            raise ConcurrentModificationError(
                f"Department entry {entry.pk} is locked by another operation."
            ) from exc

        if updated == 0:
            logger.warning(
                "factory.tracking.stale_version",
                entry_id=str(entry.pk),
                version=entry.version,
            )
            raise ConcurrentModificationError(
                f"Department entry {entry.pk} was modified concurrently."
            )

        entry.version += 1
        entry.updated_at = now
        return entry

    def get_by_id(self, id: str) -> Optional[DepartmentTracking]:
        try:
            return (
                DepartmentTracking.objects.select_related("order", "assigned_worker")
                .filter(id=id)
                .first()
            )
        except (ValueError, ValidationError):
            return None

    def get_open_for_order(self, order_id: UUID) -> Optional[DepartmentTracking]:
        return (
            DepartmentTracking.objects.select_related("assigned_worker")
            .filter(order_id=order_id, exited_at__isnull=True)
            .first()
        )

    def get_latest_for_order(
        self, order_id: UUID, department: Optional[str] = None
    ) -> Optional[DepartmentTracking]:
        queryset = DepartmentTracking.objects.select_related("assigned_worker").filter(
            order_id=order_id
        )
        if department is not None:
            queryset = queryset.filter(department=department)
        return queryset.order_by("-entered_at", "-id").first()

    def list_for_order(self, order_id: UUID) -> List[DepartmentTracking]:
        return list(
            DepartmentTracking.objects.select_related("assigned_worker")
            .filter(order_id=order_id)
            .order_by("entered_at", "id")
        )

    def list_open_in_department(self, department: str) -> List[DepartmentTracking]:
        return list(
            DepartmentTracking.objects.select_related("order", "assigned_worker")
            .filter(department=department, exited_at__isnull=True)
            .order_by("entered_at", "id")
        )

    def list_active_for_worker(self, worker_id: UUID) -> List[DepartmentTracking]:
        return list(
            DepartmentTracking.objects.select_related("order", "assigned_worker")
            .filter(
                assigned_worker_id=worker_id,
                status__in=ACTIVE_ASSIGNMENT_STATES,
            )
            .order_by("assigned_at", "entered_at", "id")
        )


class WorkerDjangoRepository(IWorkerRepository):
    """Worker roster.  Load is derived from tracking rows, never stored."""

    @staticmethod
    def _with_load() -> QuerySet[Worker]:
        return Worker.objects.annotate(
            active_assignments=Count(
                "assignments",
                filter=Q(assignments__status__in=ACTIVE_ASSIGNMENT_STATES),
            )
        )

    @transaction.atomic
    def create(self, data: Dict[str, Any]) -> Worker:
        worker = Worker(
            employee_code=data["employee_code"],
            name=data["name"],
            department=data["department"],
            is_active=data.get("is_active", True),
            user=data.get("user"),
        )
        worker.save()
        logger.info(
            "factory.worker.registered",
            worker_id=str(worker.id),
            employee_code=worker.employee_code,
            department=worker.department,
        )
        return worker

    def get_by_id(self, id: str) -> Optional[Worker]:
        try:
            return Worker.objects.filter(id=id).first()
        except (ValueError, ValidationError):
            return None

    def get_with_load(self, id: str) -> Optional[Worker]:
        try:
            return self._with_load().filter(id=id).first()
        except (ValueError, ValidationError):
            return None

    def list(self, filters: Optional[Dict[str, Any]] = None) -> QuerySet[Worker]:
        queryset = self._with_load().order_by("department", "employee_code")
        if filters:
            queryset = queryset.filter(**filters)
        return queryset

    def list_with_load(
        self, department: str, include_inactive: bool = False
    ) -> List[Worker]:
        queryset = self._with_load().filter(department=department)
        if not include_inactive:
            queryset = queryset.filter(is_active=True)
        return list(queryset.order_by("active_assignments", "employee_code"))

    @transaction.atomic
    def save(self, entity: Worker) -> Worker:
        entity.save()
        logger.info(
            "factory.worker.saved",
            worker_id=str(entity.id),
            is_active=entity.is_active,
        )
        return entity

    @transaction.atomic
    def delete(self, id: str) -> bool:
        """Deactivate a worker.

        Workers are referenced by tracking history and are never removed.
        """
        worker = self.get_by_id(id)
        if not worker:
            return False
        worker.is_active = False
        worker.save(update_fields=["is_active"])
        logger.info("factory.worker.deactivated", worker_id=str(id))
        return True


class DepartmentQueueDjangoRepository(IDepartmentQueueRepository):
    """FIFO waiting lists ordered by ``(enqueued_at, id)``."""

    def lock(self, department: str) -> DepartmentQueue:
        # get_or_create already resolves a concurrent first insert.
        queue, _ = DepartmentQueue.objects.get_or_create(department=department)
        try:
            return DepartmentQueue.objects.select_for_update().get(pk=queue.pk)
        except OperationalError as exc:
            logger.warning(
                "factory.queue.lock_failed", department=department, error=str(exc)
            )
            raise ConcurrentModificationError(
                f"Department {department} is locked by another operation."
            ) from exc

    def enqueue(self, queue: DepartmentQueue, entry: DepartmentTracking) -> int:
        queue_entry = QueueEntry.objects.create(
            queue=queue,
            tracking=entry,
            order_id=entry.order_id,
        )
        return self._position(queue_entry)

    def position_of(self, entry: DepartmentTracking) -> Optional[int]:
        queue_entry = QueueEntry.objects.filter(tracking=entry).first()
        if queue_entry is None:
            return None
        return self._position(queue_entry)

    def remove(self, entry: DepartmentTracking) -> bool:
        deleted, _ = QueueEntry.objects.filter(tracking=entry).delete()
        return deleted > 0

    def head(self, department: str) -> Optional[QueueEntry]:
        return (
            QueueEntry.objects.select_related(
                "tracking", "tracking__order", "tracking__assigned_worker"
            )
            .filter(queue__department=department)
            .order_by("enqueued_at", "id")
            .first()
        )

    def list_entries(self, department: str) -> List[QueueEntry]:
        return list(
            QueueEntry.objects.select_related("tracking")
            .filter(queue__department=department)
            .order_by("enqueued_at", "id")
        )

    def count(self, department: str) -> int:
        return QueueEntry.objects.filter(queue__department=department).count()

    @staticmethod
    def _position(queue_entry: QueueEntry) -> int:
        ahead = QueueEntry.objects.filter(queue_id=queue_entry.queue_id).filter(
            Q(enqueued_at__lt=queue_entry.enqueued_at)
            | Q(enqueued_at=queue_entry.enqueued_at, id__lt=queue_entry.id)
        )
        return ahead.count() + 1


def _serialize_event_payload(event: Any) -> Dict[str, Any]:
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
    if isinstance(value, list):
        return [_normalize_for_json(item) for item in value]
    if isinstance(value, dict):
        return {key: _normalize_for_json(val) for key, val in value.items()}
    return value

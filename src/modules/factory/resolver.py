"""Assignment Resolver.

Decides, for an order entering a department, whether a worker takes it
now or it waits in the department's FIFO queue.

Every decision runs under the department lock (``SELECT ... FOR UPDATE``
on the ``DepartmentQueue`` row) so concurrent entries into the same
department cannot both read the same worker load and over-assign.  The
queue is drained before a new entry is placed: a waiting order always
gets a free worker before a newcomer does.

Callers already hold the order row lock; department locks are always
taken after it.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, List

import structlog
from django.db import transaction

from modules.factory.constants import TrackingStatus
from modules.factory.dtos import AssignmentOutcome
from modules.factory.events import OrderQueued, WorkerAssigned
from modules.factory.exceptions import (
    InvalidStateError,
    InvalidTransitionError,
    NoOpenEntryError,
    WorkerUnavailable,
)

if TYPE_CHECKING:
    from modules.factory.directory import WorkerDirectory
    from modules.factory.ledger import DepartmentLedger
    from modules.factory.models import DepartmentTracking, Order, Worker
    from modules.factory.repositories.interfaces import (
        IDepartmentQueueRepository,
        IFactoryOrderRepository,
        ITrackingRepository,
    )

logger = structlog.get_logger(__name__)


class AssignmentResolver:
    """Assign-or-queue decisions for one department at a time.

    Domain events for the order being resolved are added to that order
    and written to the outbox when the caller saves it.  Orders picked
    from a queue during dispatch get their events written immediately.
    """

    def __init__(
        self,
        ledger: DepartmentLedger,
        directory: WorkerDirectory,
        queue_repository: IDepartmentQueueRepository,
        tracking_repository: ITrackingRepository,
        order_repository: IFactoryOrderRepository,
    ) -> None:
        self._ledger = ledger
        self._directory = directory
        self._queue_repo = queue_repository
        self._tracking_repo = tracking_repository
        self._order_repo = order_repository

    # ------------------------------------------------------------------
    # Automatic assignment
    # ------------------------------------------------------------------

    @transaction.atomic
    def resolve(
        self, order: Order, department: str, performed_by: Any = None
    ) -> AssignmentOutcome:
        """Assign the order's open entry at *department* or queue it.

        Calling it again for an already-resolved entry returns the existing
        worker or queue position without changing anything.

        Raises:
            NoOpenEntryError: the order has no open entry.
            InvalidTransitionError: the open entry is in another department.
            InvalidStateError: the open entry cannot take a worker.
        """
        log = logger.bind(order_id=str(order.id), department=str(department))
        queue = self._queue_repo.lock(department)
        self._drain(department)

        entry = self._open_entry_at(order, department)

        if entry.holds_worker:
            log.debug("factory.resolve.already_assigned")
            return AssignmentOutcome.for_assignment(order, entry, entry.assigned_worker)

        position = self._queue_repo.position_of(entry)
        if position is not None:
            log.debug("factory.resolve.already_queued", queue_position=position)
            return AssignmentOutcome.for_queue(order, entry, position)

        if entry.status != TrackingStatus.PENDING_ASSIGNMENT:
            raise InvalidStateError(
                f"Entry {entry.id} in status {entry.status} cannot be assigned."
            )

        worker = self._directory.least_loaded_worker(department)
        if worker is not None:
            self._ledger.assign(entry, worker, assigned_by=performed_by)
            order.add_domain_event(
                WorkerAssigned(
                    aggregate_id=order.id,
                    department=str(department),
                    worker_id=str(worker.id),
                )
            )
            log.info(
                "factory.resolve.assigned",
                worker_id=str(worker.id),
                active_assignments=worker.active_assignments,
            )
            return AssignmentOutcome.for_assignment(order, entry, worker)

        position = self._queue_repo.enqueue(queue, entry)
        order.add_domain_event(
            OrderQueued(
                aggregate_id=order.id,
                department=str(department),
                queue_position=position,
            )
        )
        log.info("factory.resolve.queued", queue_position=position)
        return AssignmentOutcome.for_queue(order, entry, position)

    @transaction.atomic
    def dispatch_queue(self, department: str) -> List[AssignmentOutcome]:
        """Hand waiting orders to free workers, oldest first.

        Stops when the queue is empty or no worker is assignable.
        """
        self._queue_repo.lock(department)
        return self._drain(department)

    # ------------------------------------------------------------------
    # Manual assignment
    # ------------------------------------------------------------------

    @transaction.atomic
    def assign_manually(
        self, order: Order, worker: Worker, assigned_by: Any = None
    ) -> AssignmentOutcome:
        """Give the order's waiting entry to a chosen worker.

        The entry leaves the queue if it was waiting there.

        Raises:
            WorkerUnavailable: the worker is inactive or at capacity.
            WorkerDepartmentMismatch: the worker works elsewhere.
            InvalidStateError: the entry already has a worker.
        """
        entry = self._require_open_entry(order)
        self._queue_repo.lock(entry.department)
        if not self._directory.is_assignable(worker):
            raise WorkerUnavailable(
                f"Worker {worker.employee_code} cannot take more work."
            )

        self._ledger.assign(entry, worker, assigned_by=assigned_by)
        self._queue_repo.remove(entry)
        order.add_domain_event(
            WorkerAssigned(
                aggregate_id=order.id,
                department=entry.department,
                worker_id=str(worker.id),
                manual=True,
            )
        )
        logger.info(
            "factory.assign.manual",
            order_id=str(order.id),
            department=entry.department,
            worker_id=str(worker.id),
        )
        return AssignmentOutcome.for_assignment(order, entry, worker)

    @transaction.atomic
    def reassign(
        self, order: Order, worker: Worker, assigned_by: Any = None
    ) -> AssignmentOutcome:
        """Move the order's ASSIGNED or IN_PROGRESS entry to another worker."""
        entry = self._require_open_entry(order)
        self._queue_repo.lock(entry.department)
        if entry.assigned_worker_id != worker.id and not self._directory.is_assignable(
            worker
        ):
            raise WorkerUnavailable(
                f"Worker {worker.employee_code} cannot take more work."
            )

        self._ledger.reassign(entry, worker, assigned_by=assigned_by)
        order.add_domain_event(
            WorkerAssigned(
                aggregate_id=order.id,
                department=entry.department,
                worker_id=str(worker.id),
                manual=True,
            )
        )
        return AssignmentOutcome.for_assignment(order, entry, worker)

    @transaction.atomic
    def withdraw(self, entry: DepartmentTracking) -> bool:
        """Take *entry* out of its department queue (e.g. before a skip)."""
        self._queue_repo.lock(entry.department)
        return self._queue_repo.remove(entry)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _drain(self, department: str) -> List[AssignmentOutcome]:
        """Dispatch loop.  The caller holds the department lock."""
        outcomes: List[AssignmentOutcome] = []
        while True:
            head = self._queue_repo.head(department)
            if head is None:
                break
            worker = self._directory.least_loaded_worker(department)
            if worker is None:
                break

            entry = head.tracking
            waiting_order = entry.order
            self._queue_repo.remove(entry)
            self._ledger.assign(entry, worker)
            waiting_order.add_domain_event(
                WorkerAssigned(
                    aggregate_id=waiting_order.id,
                    department=entry.department,
                    worker_id=str(worker.id),
                )
            )
            self._order_repo.record_events(waiting_order)
            outcomes.append(
                AssignmentOutcome.for_assignment(waiting_order, entry, worker)
            )
            logger.info(
                "factory.queue.dispatched",
                order_id=str(waiting_order.id),
                department=entry.department,
                worker_id=str(worker.id),
            )
        return outcomes

    def _require_open_entry(self, order: Order) -> DepartmentTracking:
        entry = self._tracking_repo.get_open_for_order(order.id)
        if entry is None:
            raise NoOpenEntryError(f"Order {order.order_number} has no open entry.")
        return entry

    def _open_entry_at(self, order: Order, department: str) -> DepartmentTracking:
        entry = self._require_open_entry(order)
        if entry.department != department:
            raise InvalidTransitionError(
                f"Order {order.order_number} is open at {entry.department}, "
                f"not {department}."
            )
        return entry

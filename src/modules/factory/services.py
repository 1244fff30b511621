"""Factory service layer (Transition Controller).

Entry points for every routing operation: factory intake, starting and
completing work, advancing through the nine departments, manual
assignment, batch intake and the read models (boards, progress).

Every command runs inside ``transaction.atomic`` and first takes the
order row lock, so operations on the same order are serialized.
Department locks are taken afterwards by the resolver, always in
production order (the department being left before the next one).
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Optional
from uuid import UUID

import structlog
from django.db import transaction
from django.db.models import QuerySet
from django.utils import timezone

from modules.factory.constants import (
    CLOSED_TRACKING_STATES,
    DEPARTMENT_SEQUENCE,
    OrderStatus,
    TrackingStatus,
)
from modules.factory.directory import WorkerDirectory
from modules.factory.dtos import (
    AdvanceResult,
    AssignmentOutcome,
    BatchItemResult,
    BoardEntry,
    DepartmentSummary,
    DepartmentVisitDTO,
    OrderProgress,
    WorkerAssignmentsDTO,
    WorkerLoadDTO,
)
from modules.factory.events import (
    DepartmentCompleted,
    OrderCompleted,
    OrderEnteredFactory,
)
from modules.factory.exceptions import (
    AlreadyInFactoryError,
    FactoryError,
    InvalidStateError,
    InvalidTransitionError,
    NoOpenEntryError,
    OrderNotFound,
    WorkerNotFound,
)
from modules.factory.ledger import DepartmentLedger
from modules.factory.resolver import AssignmentResolver
from modules.factory.sequence import (
    all_departments,
    first_department,
    next_department,
    sequence_of,
)

if TYPE_CHECKING:
    from modules.factory.dtos import (
        CompleteDepartmentDTO,
        CreateOrderDTO,
        RegisterWorkerDTO,
        SaveProgressDTO,
    )
    from modules.factory.models import DepartmentTracking, Order, Worker
    from modules.factory.repositories.interfaces import (
        IDepartmentQueueRepository,
        IFactoryOrderRepository,
        ITrackingRepository,
        IWorkerRepository,
    )

logger = structlog.get_logger(__name__)

# Board columns, left to right.
_BOARD_STATUS_RANK = {
    TrackingStatus.PENDING_ASSIGNMENT.value: 0,
    TrackingStatus.ASSIGNED.value: 1,
    TrackingStatus.IN_PROGRESS.value: 2,
}


class FactoryService:
    """Application service for factory routing use-cases.

    Receives repositories via constructor injection (DIP) and wires the
    ledger, worker directory and assignment resolver on top of them.
    """

    def __init__(
        self,
        order_repository: IFactoryOrderRepository,
        tracking_repository: ITrackingRepository,
        worker_repository: IWorkerRepository,
        queue_repository: IDepartmentQueueRepository,
        capacity: Optional[int] = None,
    ) -> None:
        self._order_repo = order_repository
        self._worker_repo = worker_repository
        self._queue_repo = queue_repository
        self.ledger = DepartmentLedger(tracking_repository)
        self.directory = WorkerDirectory(worker_repository, capacity=capacity)
        self.resolver = AssignmentResolver(
            ledger=self.ledger,
            directory=self.directory,
            queue_repository=queue_repository,
            tracking_repository=tracking_repository,
            order_repository=order_repository,
        )

    # ------------------------------------------------------------------
    # Orders
    # ------------------------------------------------------------------

    @transaction.atomic
    def create_order(self, dto: CreateOrderDTO) -> Order:
        """Register a DRAFT order.  It enters the factory separately."""
        return self._order_repo.create(dto.model_dump())

    def get_order(self, order_id: str) -> Order:
        """Raises ``OrderNotFound`` for unknown or deleted orders."""
        order = self._order_repo.get_by_id(str(order_id))
        if not order:
            raise OrderNotFound(f"Order {order_id} not found.")
        return order

    def list_orders(self, filters: Optional[Dict[str, Any]] = None) -> QuerySet[Order]:
        return self._order_repo.list(filters)

    # ------------------------------------------------------------------
    # Factory intake
    # ------------------------------------------------------------------

    @transaction.atomic
    def enter_factory(
        self, order_id: UUID, performed_by: Any = None
    ) -> AssignmentOutcome:
        """Open the first department (CAD) for an order and resolve it.

        Raises:
            OrderNotFound: order does not exist.
            AlreadyInFactoryError: the order already has an open entry.
            InvalidTransitionError: the order status cannot become
                IN_PROGRESS (e.g. a completed or cancelled order).
        """
        order = self._lock_order(order_id)
        log = logger.bind(order_id=str(order.id), order_number=order.order_number)

        if self.ledger.open_entry(order) is not None:
            log.warning("factory.enter.already_in_factory")
            raise AlreadyInFactoryError(
                f"Order {order.order_number} is already in the factory."
            )
        if not order.can_transition_to(OrderStatus.IN_PROGRESS):
            log.warning("factory.enter.invalid_status", status=order.status)
            raise InvalidTransitionError(
                f"Order {order.order_number} in status {order.status} "
                f"cannot enter the factory."
            )

        department = first_department()
        self.ledger.open(order, department, sequence_of(department))
        order.status = OrderStatus.IN_PROGRESS
        order.current_department = str(department)
        order.add_domain_event(
            OrderEnteredFactory(aggregate_id=order.id, department=str(department))
        )

        outcome = self.resolver.resolve(order, department, performed_by=performed_by)
        self._order_repo.save(order)

        log.info(
            "factory.enter.completed",
            department=str(department),
            assigned=outcome.assigned,
            queue_position=outcome.queue_position,
        )
        return outcome

    def send_batch_to_factory(
        self, order_ids: Iterable[UUID], performed_by: Any = None
    ) -> List[BatchItemResult]:
        """Send several orders to the factory independently.

        Each order runs in its own transaction; a failure is reported in
        that order's result and does not affect the others.
        """
        results: List[BatchItemResult] = []
        for order_id in order_ids:
            try:
                outcome = self.enter_factory(order_id, performed_by=performed_by)
            except FactoryError as exc:
                logger.warning(
                    "factory.batch.item_failed",
                    order_id=str(order_id),
                    error_code=exc.code,
                    error=str(exc),
                )
                results.append(BatchItemResult.failed(order_id, exc))
                continue
            results.append(BatchItemResult.from_outcome(outcome))

        logger.info(
            "factory.batch.completed",
            total=len(results),
            failed=sum(1 for r in results if r.outcome == "error"),
        )
        return results

    # ------------------------------------------------------------------
    # Work at the current department
    # ------------------------------------------------------------------

    @transaction.atomic
    def start_work(self, order_id: UUID) -> DepartmentTracking:
        """Mark the current department entry IN_PROGRESS."""
        order = self._lock_order(order_id)
        entry = self._require_open_entry(order)
        return self.ledger.mark_in_progress(entry)

    @transaction.atomic
    def complete_current(
        self,
        order_id: UUID,
        dto: CompleteDepartmentDTO,
        completed_by: Any = None,
    ) -> DepartmentTracking:
        """Close the current department entry as COMPLETED.

        The order stays at the department until ``advance`` is called.
        """
        order = self._lock_order(order_id)
        entry = self._require_open_entry(order)
        return self.ledger.mark_complete(
            entry,
            completed_by=completed_by,
            notes=dto.notes,
            issues=dto.issues,
            work_data=dto.work_data,
        )

    @transaction.atomic
    def save_progress(self, order_id: UUID, dto: SaveProgressDTO) -> DepartmentTracking:
        """Save draft work data on the current entry; starts ASSIGNED work."""
        order = self._lock_order(order_id)
        entry = self._require_open_entry(order)
        return self.ledger.save_work_data(entry, dto.work_data, notes=dto.notes)

    @transaction.atomic
    def advance(self, order_id: UUID, performed_by: Any = None) -> AdvanceResult:
        """Move the order to the next department, or finish it.

        Raises:
            NoOpenEntryError: the order is not at any department.
            InvalidStateError: the current entry is not closed yet.
        """
        order = self._lock_order(order_id)
        entry = self.ledger.current_entry(order)
        if entry is None:
            raise NoOpenEntryError(
                f"Order {order.order_number} is not at any department."
            )
        if entry.status not in CLOSED_TRACKING_STATES:
            raise InvalidStateError(
                f"Work at {entry.department} must be completed before advancing "
                f"(status {entry.status})."
            )
        return self._advance_from(order, entry, performed_by)

    @transaction.atomic
    def complete_and_advance(
        self,
        order_id: UUID,
        dto: CompleteDepartmentDTO,
        completed_by: Any = None,
    ) -> AdvanceResult:
        """``complete_current`` followed by ``advance`` as one unit of work."""
        order = self._lock_order(order_id)
        entry = self._require_open_entry(order)
        self.ledger.mark_complete(
            entry,
            completed_by=completed_by,
            notes=dto.notes,
            issues=dto.issues,
            work_data=dto.work_data,
        )
        return self._advance_from(order, entry, completed_by)

    @transaction.atomic
    def skip_current(
        self,
        order_id: UUID,
        performed_by: Any = None,
        notes: Optional[str] = None,
    ) -> AdvanceResult:
        """Administrative override: skip a department that has not started."""
        order = self._lock_order(order_id)
        entry = self._require_open_entry(order)
        if not entry.can_transition_to(TrackingStatus.SKIPPED):
            raise InvalidStateError(
                f"Cannot skip {entry.department} in status {entry.status}."
            )
        self.resolver.withdraw(entry)
        self.ledger.skip(entry, performed_by=performed_by, notes=notes)
        logger.info(
            "factory.department.skipped",
            order_id=str(order.id),
            department=entry.department,
        )
        return self._advance_from(order, entry, performed_by)

    # ------------------------------------------------------------------
    # Manual assignment
    # ------------------------------------------------------------------

    @transaction.atomic
    def assign_worker(
        self, order_id: UUID, worker_id: UUID, assigned_by: Any = None
    ) -> AssignmentOutcome:
        """Assign or hand over the current entry to a chosen worker.

        A waiting entry is assigned (and leaves the queue); an entry that
        already has a worker is reassigned.
        """
        order = self._lock_order(order_id)
        worker = self._get_worker(worker_id)
        entry = self._require_open_entry(order)
        if entry.status == TrackingStatus.PENDING_ASSIGNMENT:
            outcome = self.resolver.assign_manually(order, worker, assigned_by)
        else:
            outcome = self.resolver.reassign(order, worker, assigned_by)
        self._order_repo.save(order)
        return outcome

    @transaction.atomic
    def reassign_worker(
        self, order_id: UUID, worker_id: UUID, assigned_by: Any = None
    ) -> AssignmentOutcome:
        order = self._lock_order(order_id)
        worker = self._get_worker(worker_id)
        outcome = self.resolver.reassign(order, worker, assigned_by)
        self._order_repo.save(order)
        return outcome

    # ------------------------------------------------------------------
    # Workers
    # ------------------------------------------------------------------

    @transaction.atomic
    def register_worker(self, dto: RegisterWorkerDTO, user: Any = None) -> Worker:
        """Add a worker; an active one immediately serves its department queue."""
        worker = self._worker_repo.create({**dto.model_dump(), "user": user})
        if worker.is_active:
            self.resolver.dispatch_queue(worker.department)
        return worker

    @transaction.atomic
    def set_worker_active(self, worker_id: UUID, active: bool) -> Worker:
        """Activate or deactivate a worker.

        Deactivation keeps current assignments; the worker just stops
        receiving new ones.  Activation dispatches the department queue.
        """
        worker = self._get_worker(worker_id)
        if worker.is_active != active:
            worker.is_active = active
            self._worker_repo.save(worker)
        if active:
            self.resolver.dispatch_queue(worker.department)
        return worker

    def get_worker_assignments(self, worker_id: UUID) -> WorkerAssignmentsDTO:
        """The orders a worker currently holds, with their load count."""
        worker = self._worker_repo.get_with_load(str(worker_id))
        if not worker:
            raise WorkerNotFound(f"Worker {worker_id} not found.")
        now = timezone.now()
        return WorkerAssignmentsDTO(
            worker=WorkerLoadDTO.from_entity(worker),
            assignments=[
                BoardEntry.from_entity(entry, now=now)
                for entry in self.ledger.active_for_worker(worker)
            ],
        )

    def list_workers(self, filters: Optional[Dict[str, Any]] = None) -> QuerySet[Worker]:
        return self._worker_repo.list(filters)

    def dispatch_queue(self, department: str) -> List[AssignmentOutcome]:
        sequence_of(department)
        return self.resolver.dispatch_queue(department)

    # ------------------------------------------------------------------
    # Read models
    # ------------------------------------------------------------------

    def list_departments(self) -> List[DepartmentSummary]:
        """Every department in production order with its current load."""
        summaries: List[DepartmentSummary] = []
        for department in all_departments():
            summaries.append(
                DepartmentSummary(
                    code=department.value,
                    name=department.label,
                    sequence_order=sequence_of(department),
                    active_workers=len(self.directory.workers_in(department)),
                    open_entries=len(self.ledger.open_entries_in(department)),
                    queue_length=self._queue_repo.count(department),
                )
            )
        return summaries

    def get_department_board(self, department: str) -> List[BoardEntry]:
        """Open entries at *department*.

        Waiting orders come first in queue order, then assigned and
        in-progress work by arrival time.
        """
        entries = self.ledger.open_entries_in(department)
        positions = {
            queue_entry.tracking_id: index
            for index, queue_entry in enumerate(
                self._queue_repo.list_entries(department), start=1
            )
        }
        now = timezone.now()
        board = [
            BoardEntry.from_entity(entry, now=now, queue_position=positions.get(entry.id))
            for entry in entries
        ]
        board.sort(
            key=lambda card: (
                _BOARD_STATUS_RANK.get(card.status, len(_BOARD_STATUS_RANK)),
                card.queue_position or 0,
                card.entered_at,
            )
        )
        return board

    def get_order_progress(self, order_id: UUID) -> OrderProgress:
        order = self.get_order(str(order_id))
        visits = [
            DepartmentVisitDTO.from_entity(entry, self.ledger.duration_hours(entry))
            for entry in self.ledger.history(order)
        ]
        completed = sum(1 for v in visits if v.status == TrackingStatus.COMPLETED)
        skipped = sum(1 for v in visits if v.status == TrackingStatus.SKIPPED)
        hours = [v.duration_hours for v in visits if v.duration_hours is not None]
        total = len(DEPARTMENT_SEQUENCE)
        return OrderProgress(
            order_id=order.id,
            order_number=order.order_number,
            status=order.status,
            current_department=order.current_department,
            total_departments=total,
            completed_departments=completed,
            skipped_departments=skipped,
            completion_percentage=round(completed / total * 100),
            total_actual_hours=round(sum(hours), 2) if hours else None,
            departments=visits,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _advance_from(
        self, order: Order, entry: DepartmentTracking, performed_by: Any
    ) -> AdvanceResult:
        left = entry.department
        upcoming = next_department(left)
        log = logger.bind(
            order_id=str(order.id),
            from_department=left,
            next_department=str(upcoming) if upcoming else None,
        )

        # The worker who just finished may serve someone waiting here.
        dispatched = self.resolver.dispatch_queue(left)
        order.add_domain_event(
            DepartmentCompleted(
                aggregate_id=order.id,
                department=left,
                next_department=str(upcoming) if upcoming else None,
                skipped=entry.status == TrackingStatus.SKIPPED,
            )
        )

        if upcoming is None:
            if not order.can_transition_to(OrderStatus.COMPLETED):
                raise InvalidTransitionError(
                    f"Order {order.order_number} in status {order.status} "
                    f"cannot be completed."
                )
            order.status = OrderStatus.COMPLETED
            order.current_department = None
            order.completed_at = timezone.now()
            order.add_domain_event(OrderCompleted(aggregate_id=order.id))
            self._order_repo.save(order)
            log.info("factory.order.completed")
            return AdvanceResult(
                order_id=order.id,
                order_number=order.order_number,
                from_department=left,
                completed=True,
                dispatched=dispatched,
            )

        self.ledger.open(order, upcoming, sequence_of(upcoming))
        order.current_department = str(upcoming)
        outcome = self.resolver.resolve(order, upcoming, performed_by=performed_by)
        self._order_repo.save(order)
        log.info(
            "factory.order.advanced",
            assigned=outcome.assigned,
            queue_position=outcome.queue_position,
        )
        return AdvanceResult(
            order_id=order.id,
            order_number=order.order_number,
            from_department=left,
            completed=False,
            next_department=str(upcoming),
            assignment=outcome,
            dispatched=dispatched,
        )

    def _lock_order(self, order_id: UUID) -> Order:
        order = self._order_repo.get_for_update(str(order_id))
        if not order:
            raise OrderNotFound(f"Order {order_id} not found.")
        return order

    def _require_open_entry(self, order: Order) -> DepartmentTracking:
        entry = self.ledger.open_entry(order)
        if entry is None:
            raise NoOpenEntryError(f"Order {order.order_number} has no open entry.")
        return entry

    def _get_worker(self, worker_id: UUID) -> Worker:
        worker = self._worker_repo.get_by_id(str(worker_id))
        if not worker:
            raise WorkerNotFound(f"Worker {worker_id} not found.")
        return worker


def build_factory_service() -> FactoryService:
    """A ``FactoryService`` wired to the Django ORM repositories."""
    from modules.factory.repositories.django_repository import (
        DepartmentQueueDjangoRepository,
        FactoryOrderDjangoRepository,
        TrackingDjangoRepository,
        WorkerDjangoRepository,
    )

    return FactoryService(
        order_repository=FactoryOrderDjangoRepository(),
        tracking_repository=TrackingDjangoRepository(),
        worker_repository=WorkerDjangoRepository(),
        queue_repository=DepartmentQueueDjangoRepository(),
    )

"""Department Tracking Ledger.

Owns the lifecycle of tracking entries: the append-only record of every
department visit.  Transitions are forward-only and validated against
``TRACKING_VALID_TRANSITIONS``; every write goes through the tracking
repository's version check.

The ledger does not lock anything itself.  Callers (the resolver and the
transition controller) hold the order and department locks.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any, Dict, List, Optional

import structlog
from django.utils import timezone

from modules.factory.constants import TrackingStatus
from modules.factory.exceptions import (
    DuplicateOpenEntryError,
    InvalidStateError,
    InvalidTransitionError,
    UnassignedEntryError,
    WorkerDepartmentMismatch,
    WorkerUnavailable,
)
from modules.factory.sequence import sequence_of

if TYPE_CHECKING:
    from modules.factory.models import DepartmentTracking, Order, Worker
    from modules.factory.repositories.interfaces import ITrackingRepository

logger = structlog.get_logger(__name__)


class DepartmentLedger:
    def __init__(self, tracking_repository: ITrackingRepository) -> None:
        self._tracking_repo = tracking_repository

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def open(
        self,
        order: Order,
        department: str,
        sequence_order: int,
        entered_at: Optional[datetime] = None,
    ) -> DepartmentTracking:
        """Open a PENDING_ASSIGNMENT entry for *order* at *department*.

        Raises:
            DuplicateOpenEntryError: the order already has an open entry.
            InvalidTransitionError: *sequence_order* does not match the
                department's position in the production path.
        """
        existing = self._tracking_repo.get_open_for_order(order.id)
        if existing is not None:
            raise DuplicateOpenEntryError(
                f"Order {order.order_number} already has an open entry "
                f"at {existing.department}."
            )
        if sequence_of(department) != sequence_order:
            raise InvalidTransitionError(
                f"{department} is at position {sequence_of(department)}, "
                f"not {sequence_order}."
            )

        entry = self._tracking_repo.create(
            {
                "order": order,
                "department": str(department),
                "sequence_order": sequence_order,
                "status": TrackingStatus.PENDING_ASSIGNMENT,
                "entered_at": entered_at or timezone.now(),
            }
        )
        logger.info(
            "factory.tracking.opened",
            order_id=str(order.id),
            entry_id=str(entry.id),
            department=department,
        )
        return entry

    def assign(
        self,
        entry: DepartmentTracking,
        worker: Worker,
        assigned_by: Any = None,
        assigned_at: Optional[datetime] = None,
    ) -> DepartmentTracking:
        """PENDING_ASSIGNMENT -> ASSIGNED.

        Raises:
            InvalidStateError: the entry is not waiting for a worker.
            WorkerUnavailable: the worker is inactive.
            WorkerDepartmentMismatch: the worker works elsewhere.
        """
        if not entry.can_transition_to(TrackingStatus.ASSIGNED):
            raise InvalidStateError(
                f"Cannot assign entry {entry.id} in status {entry.status}."
            )
        self._check_worker(entry, worker)

        entry.assigned_worker = worker
        entry.assigned_at = assigned_at or timezone.now()
        entry.assigned_by = assigned_by
        entry.status = TrackingStatus.ASSIGNED
        self._tracking_repo.save(
            entry, ["assigned_worker", "assigned_at", "assigned_by", "status"]
        )
        logger.info(
            "factory.tracking.assigned",
            entry_id=str(entry.id),
            department=entry.department,
            worker_id=str(worker.id),
        )
        return entry

    def reassign(
        self,
        entry: DepartmentTracking,
        worker: Worker,
        assigned_by: Any = None,
    ) -> DepartmentTracking:
        """Hand an ASSIGNED or IN_PROGRESS entry to another worker."""
        if not entry.is_open or not entry.holds_worker:
            raise InvalidStateError(
                f"Cannot reassign entry {entry.id} in status {entry.status}."
            )
        self._check_worker(entry, worker)

        previous_worker_id = entry.assigned_worker_id
        entry.assigned_worker = worker
        entry.assigned_at = timezone.now()
        entry.assigned_by = assigned_by
        self._tracking_repo.save(
            entry, ["assigned_worker", "assigned_at", "assigned_by"]
        )
        logger.info(
            "factory.tracking.reassigned",
            entry_id=str(entry.id),
            department=entry.department,
            previous_worker_id=str(previous_worker_id),
            worker_id=str(worker.id),
        )
        return entry

    def mark_in_progress(
        self, entry: DepartmentTracking, started_at: Optional[datetime] = None
    ) -> DepartmentTracking:
        """ASSIGNED -> IN_PROGRESS."""
        if not entry.can_transition_to(TrackingStatus.IN_PROGRESS):
            raise InvalidStateError(
                f"Cannot start entry {entry.id} in status {entry.status}."
            )
        entry.status = TrackingStatus.IN_PROGRESS
        entry.started_at = started_at or timezone.now()
        self._tracking_repo.save(entry, ["status", "started_at"])
        logger.info(
            "factory.tracking.started",
            entry_id=str(entry.id),
            department=entry.department,
        )
        return entry

    def save_work_data(
        self,
        entry: DepartmentTracking,
        work_data: Dict[str, Any],
        notes: Optional[str] = None,
    ) -> DepartmentTracking:
        """Store a draft of the work done so far without closing the entry.

        An ASSIGNED entry is started by its first save.  The draft replaces
        any earlier one; ``mark_complete`` writes the final version.

        Raises:
            UnassignedEntryError: nobody is assigned yet.
            InvalidStateError: the entry is already closed.
        """
        if entry.assigned_worker_id is None:
            raise UnassignedEntryError(
                f"Entry {entry.id} at {entry.department} has no assigned worker."
            )
        if entry.status not in (TrackingStatus.ASSIGNED, TrackingStatus.IN_PROGRESS):
            raise InvalidStateError(
                f"Cannot save work on entry {entry.id} in status {entry.status}."
            )

        fields = ["work_data"]
        entry.work_data = work_data
        if entry.status == TrackingStatus.ASSIGNED:
            entry.status = TrackingStatus.IN_PROGRESS
            entry.started_at = timezone.now()
            fields += ["status", "started_at"]
        if notes is not None:
            entry.notes = notes
            fields.append("notes")
        self._tracking_repo.save(entry, fields)
        logger.info(
            "factory.tracking.work_saved",
            entry_id=str(entry.id),
            department=entry.department,
            keys=sorted(work_data),
        )
        return entry

    def mark_complete(
        self,
        entry: DepartmentTracking,
        exited_at: Optional[datetime] = None,
        completed_by: Any = None,
        notes: Optional[str] = None,
        issues: Optional[str] = None,
        work_data: Optional[Dict[str, Any]] = None,
    ) -> DepartmentTracking:
        """IN_PROGRESS -> COMPLETED and close the entry.

        Raises:
            UnassignedEntryError: no worker was ever assigned.
            InvalidStateError: the entry is not IN_PROGRESS.
        """
        if entry.assigned_worker_id is None:
            raise UnassignedEntryError(
                f"Entry {entry.id} at {entry.department} has no assigned worker."
            )
        if not entry.can_transition_to(TrackingStatus.COMPLETED):
            raise InvalidStateError(
                f"Cannot complete entry {entry.id} in status {entry.status}."
            )

        entry.status = TrackingStatus.COMPLETED
        entry.exited_at = exited_at or timezone.now()
        entry.completed_by = completed_by
        fields = ["status", "exited_at", "completed_by"]
        if notes is not None:
            entry.notes = notes
            fields.append("notes")
        if issues is not None:
            entry.issues = issues
            fields.append("issues")
        if work_data is not None:
            entry.work_data = work_data
            fields.append("work_data")
        self._tracking_repo.save(entry, fields)
        logger.info(
            "factory.tracking.completed",
            entry_id=str(entry.id),
            department=entry.department,
            duration_hours=self.duration_hours(entry),
        )
        return entry

    def skip(
        self,
        entry: DepartmentTracking,
        performed_by: Any = None,
        notes: Optional[str] = None,
    ) -> DepartmentTracking:
        """Administrative override: close a not-yet-started entry as SKIPPED."""
        if not entry.can_transition_to(TrackingStatus.SKIPPED):
            raise InvalidStateError(
                f"Cannot skip entry {entry.id} in status {entry.status}."
            )
        entry.status = TrackingStatus.SKIPPED
        entry.exited_at = timezone.now()
        entry.completed_by = performed_by
        fields = ["status", "exited_at", "completed_by"]
        if notes is not None:
            entry.notes = notes
            fields.append("notes")
        self._tracking_repo.save(entry, fields)
        logger.info(
            "factory.tracking.skipped",
            entry_id=str(entry.id),
            department=entry.department,
        )
        return entry

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @staticmethod
    def time_in_department(
        entry: DepartmentTracking, now: Optional[datetime] = None
    ) -> timedelta:
        return entry.time_in_department(now)

    @staticmethod
    def duration_hours(entry: DepartmentTracking) -> Optional[float]:
        """Hours between start of work and exit, rounded to 2 decimals."""
        if entry.started_at is None or entry.exited_at is None:
            return None
        seconds = (entry.exited_at - entry.started_at).total_seconds()
        return round(seconds / 3600, 2)

    def open_entry(self, order: Order) -> Optional[DepartmentTracking]:
        return self._tracking_repo.get_open_for_order(order.id)

    def current_entry(self, order: Order) -> Optional[DepartmentTracking]:
        """Latest entry at the order's current department.

        Unlike ``open_entry`` this also returns a COMPLETED or SKIPPED entry
        the order has not yet advanced from.
        """
        if not order.current_department:
            return None
        return self._tracking_repo.get_latest_for_order(
            order.id, department=order.current_department
        )

    def history(self, order: Order) -> List[DepartmentTracking]:
        return self._tracking_repo.list_for_order(order.id)

    def open_entries_in(self, department: str) -> List[DepartmentTracking]:
        sequence_of(department)
        return self._tracking_repo.list_open_in_department(department)

    def active_for_worker(self, worker: Worker) -> List[DepartmentTracking]:
        """Entries the worker currently holds (ASSIGNED or IN_PROGRESS)."""
        return self._tracking_repo.list_active_for_worker(worker.id)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _check_worker(entry: DepartmentTracking, worker: Worker) -> None:
        if not worker.is_active:
            raise WorkerUnavailable(f"Worker {worker.employee_code} is inactive.")
        if worker.department != entry.department:
            raise WorkerDepartmentMismatch(
                f"Worker {worker.employee_code} belongs to {worker.department}, "
                f"not {entry.department}."
            )

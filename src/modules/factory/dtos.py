"""Factory DTOs for the Service Layer.

Framework-agnostic data transfer objects using Pydantic v2.  Input DTOs
are built by the API layer from validated serializer data; output DTOs
are what the engine returns to its callers.  DTOs are immutable
(``frozen=True``).
"""

from __future__ import annotations

from datetime import date, datetime
from typing import TYPE_CHECKING, Any, Dict, List, Literal, Optional
from uuid import UUID

from django.utils import timezone
from pydantic import BaseModel, ConfigDict, field_validator

from modules.factory.constants import DEPARTMENT_SEQUENCE, Department, OrderPriority

if TYPE_CHECKING:
    from modules.factory.exceptions import FactoryError
    from modules.factory.models import DepartmentTracking, Order, Worker


# ---------------------------------------------------------------------------
# Input DTOs
# ---------------------------------------------------------------------------


class CreateOrderDTO(BaseModel):
    """Immutable DTO for order intake.  Orders start as DRAFT."""

    model_config = ConfigDict(frozen=True)

    customer_name: str
    priority: str = OrderPriority.NORMAL.value
    due_date: Optional[date] = None
    notes: str = ""

    @field_validator("customer_name")
    @classmethod
    def customer_name_must_not_be_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Customer name is required.")
        return v

    @field_validator("priority")
    @classmethod
    def priority_must_be_known(cls, v: str) -> str:
        v = v.upper()
        if v not in OrderPriority.values:
            raise ValueError(f"Unknown priority: {v}.")
        return v


class SendToFactoryDTO(BaseModel):
    """Immutable DTO for batch factory intake.

    Validates:
    - at least one order ID.
    - no duplicate order IDs.
    """

    model_config = ConfigDict(frozen=True)

    order_ids: List[UUID]

    @field_validator("order_ids")
    @classmethod
    def order_ids_must_be_unique(cls, v: List[UUID]) -> List[UUID]:
        if not v:
            raise ValueError("At least one order is required.")
        if len(v) != len(set(v)):
            raise ValueError("Duplicate order IDs are not allowed.")
        return v


class CompleteDepartmentDTO(BaseModel):
    """Immutable DTO for finishing work at the current department."""

    model_config = ConfigDict(frozen=True)

    notes: Optional[str] = None
    issues: Optional[str] = None
    work_data: Optional[Dict[str, Any]] = None


class SaveProgressDTO(BaseModel):
    """Draft work data saved while a department entry is still open."""

    model_config = ConfigDict(frozen=True)

    work_data: Dict[str, Any]
    notes: Optional[str] = None


class RegisterWorkerDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    employee_code: str
    name: str
    department: str
    is_active: bool = True

    @field_validator("employee_code", "name")
    @classmethod
    def must_not_be_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Value must not be blank.")
        return v

    @field_validator("department")
    @classmethod
    def department_must_be_known(cls, v: str) -> str:
        v = v.upper()
        if v not in DEPARTMENT_SEQUENCE:
            raise ValueError(f"Unknown department: {v}.")
        return v


# ---------------------------------------------------------------------------
# Output DTOs
# ---------------------------------------------------------------------------


class AssignmentOutcome(BaseModel):
    """Result of an assign-or-queue decision for one department entry.

    Exactly one of ``assigned`` / ``queued`` is true.
    """

    model_config = ConfigDict(frozen=True)

    order_id: UUID
    order_number: str
    entry_id: UUID
    department: str
    assigned: bool
    queued: bool
    worker_id: Optional[UUID] = None
    worker_name: Optional[str] = None
    queue_position: Optional[int] = None

    @classmethod
    def for_assignment(
        cls, order: Order, entry: DepartmentTracking, worker: Worker
    ) -> AssignmentOutcome:
        return cls(
            order_id=order.id,
            order_number=order.order_number,
            entry_id=entry.id,
            department=entry.department,
            assigned=True,
            queued=False,
            worker_id=worker.id,
            worker_name=worker.name,
        )

    @classmethod
    def for_queue(
        cls, order: Order, entry: DepartmentTracking, position: int
    ) -> AssignmentOutcome:
        return cls(
            order_id=order.id,
            order_number=order.order_number,
            entry_id=entry.id,
            department=entry.department,
            assigned=False,
            queued=True,
            queue_position=position,
        )


class AdvanceResult(BaseModel):
    """Result of moving an order past its current department.

    ``completed`` is true when the order left the last department; then
    ``next_department`` and ``assignment`` are ``None``.  ``dispatched``
    lists queued orders that received the worker freed by this move.
    """

    model_config = ConfigDict(frozen=True)

    order_id: UUID
    order_number: str
    from_department: str
    completed: bool
    next_department: Optional[str] = None
    assignment: Optional[AssignmentOutcome] = None
    dispatched: List[AssignmentOutcome] = []


class BatchItemResult(BaseModel):
    """Per-order result of a batch send-to-factory request."""

    model_config = ConfigDict(frozen=True)

    order_id: UUID
    outcome: Literal["assigned", "queued", "error"]
    department: Optional[str] = None
    worker_id: Optional[UUID] = None
    worker_name: Optional[str] = None
    queue_position: Optional[int] = None
    error_code: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def from_outcome(cls, outcome: AssignmentOutcome) -> BatchItemResult:
        return cls(
            order_id=outcome.order_id,
            outcome="assigned" if outcome.assigned else "queued",
            department=outcome.department,
            worker_id=outcome.worker_id,
            worker_name=outcome.worker_name,
            queue_position=outcome.queue_position,
        )

    @classmethod
    def failed(cls, order_id: UUID, exc: FactoryError) -> BatchItemResult:
        return cls(
            order_id=order_id,
            outcome="error",
            error_code=exc.code,
            error=str(exc),
        )


class BoardEntry(BaseModel):
    """One card on a department's Kanban board."""

    model_config = ConfigDict(frozen=True)

    entry_id: UUID
    order_id: UUID
    order_number: str
    customer_name: str
    priority: str
    due_date: Optional[date]
    is_overdue: bool
    department: str
    status: str
    worker_id: Optional[UUID]
    worker_name: Optional[str]
    entered_at: datetime
    assigned_at: Optional[datetime]
    started_at: Optional[datetime]
    time_in_department_seconds: float
    queue_position: Optional[int]

    @classmethod
    def from_entity(
        cls,
        entry: DepartmentTracking,
        now: datetime,
        queue_position: Optional[int] = None,
    ) -> BoardEntry:
        """Assumes ``order`` and ``assigned_worker`` are select-related."""
        order = entry.order
        worker = entry.assigned_worker
        return cls(
            entry_id=entry.id,
            order_id=order.id,
            order_number=order.order_number,
            customer_name=order.customer_name,
            priority=order.priority,
            due_date=order.due_date,
            is_overdue=order.is_overdue(timezone.localdate(now)),
            department=entry.department,
            status=entry.status,
            worker_id=worker.id if worker else None,
            worker_name=worker.name if worker else None,
            entered_at=entry.entered_at,
            assigned_at=entry.assigned_at,
            started_at=entry.started_at,
            time_in_department_seconds=entry.time_in_department(now).total_seconds(),
            queue_position=queue_position,
        )


class DepartmentVisitDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    entry_id: UUID
    department: str
    display_name: str
    sequence_order: int
    status: str
    worker_id: Optional[UUID]
    worker_name: Optional[str]
    entered_at: datetime
    assigned_at: Optional[datetime]
    started_at: Optional[datetime]
    exited_at: Optional[datetime]
    duration_hours: Optional[float]
    notes: str
    issues: str

    @classmethod
    def from_entity(
        cls, entry: DepartmentTracking, duration_hours: Optional[float]
    ) -> DepartmentVisitDTO:
        worker = entry.assigned_worker
        return cls(
            entry_id=entry.id,
            department=entry.department,
            display_name=Department(entry.department).label,
            sequence_order=entry.sequence_order,
            status=entry.status,
            worker_id=worker.id if worker else None,
            worker_name=worker.name if worker else None,
            entered_at=entry.entered_at,
            assigned_at=entry.assigned_at,
            started_at=entry.started_at,
            exited_at=entry.exited_at,
            duration_hours=duration_hours,
            notes=entry.notes,
            issues=entry.issues,
        )


class OrderProgress(BaseModel):
    """An order's route so far: visits, counts and completion percentage."""

    model_config = ConfigDict(frozen=True)

    order_id: UUID
    order_number: str
    status: str
    current_department: Optional[str]
    total_departments: int
    completed_departments: int
    skipped_departments: int
    completion_percentage: int
    total_actual_hours: Optional[float]
    departments: List[DepartmentVisitDTO]


class WorkerLoadDTO(BaseModel):
    """Immutable DTO for worker roster responses."""

    model_config = ConfigDict(frozen=True)

    id: UUID
    employee_code: str
    name: str
    department: str
    is_active: bool
    active_assignments: int

    @classmethod
    def from_entity(cls, worker: Worker) -> WorkerLoadDTO:
        return cls(
            id=worker.id,
            employee_code=worker.employee_code,
            name=worker.name,
            department=worker.department,
            is_active=worker.is_active,
            active_assignments=getattr(worker, "active_assignments", 0),
        )


class WorkerAssignmentsDTO(BaseModel):
    """A worker's current workload: the cards they hold right now."""

    model_config = ConfigDict(frozen=True)

    worker: WorkerLoadDTO
    assignments: List[BoardEntry]


class DepartmentSummary(BaseModel):
    """One row of the department overview."""

    model_config = ConfigDict(frozen=True)

    code: str
    name: str
    sequence_order: int
    active_workers: int
    open_entries: int
    queue_length: int

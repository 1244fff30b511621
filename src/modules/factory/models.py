"""Order, Worker, DepartmentTracking and DepartmentQueue models.

Rules implemented at model level:
- Order number auto-generated as a human-readable, year-scoped sequence
  (``ORD-2026-00042``).
- Order status changes are validated against ``ORDER_VALID_TRANSITIONS``
  (enforced at service layer through ``can_transition_to``).
- DepartmentTracking is the append-only ledger: rows are closed by setting
  ``exited_at`` and are never deleted.  At most one open row per order
  (partial unique constraint where the backend supports it).
- DepartmentTracking carries a ``version`` counter for optimistic
  concurrency checks at the repository boundary.
- Worker load is **not** stored: it is derived from ASSIGNED/IN_PROGRESS
  tracking rows at read time.
- QueueEntry rows exist only while their tracking row is
  PENDING_ASSIGNMENT; FIFO order is ``(enqueued_at, id)``.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Any, Optional

from django.conf import settings
from django.db import IntegrityError, models, transaction
from django.utils import timezone

from modules.core.models import BaseModel, SoftDeleteModel
from modules.factory.constants import (
    ACTIVE_ASSIGNMENT_STATES,
    ORDER_NUMBER_DIGITS,
    ORDER_NUMBER_MAX_RETRIES,
    ORDER_VALID_TRANSITIONS,
    TERMINAL_ORDER_STATES,
    TRACKING_VALID_TRANSITIONS,
    Department,
    OrderPriority,
    OrderStatus,
    TrackingStatus,
)
from shared.domain.events import DomainEventMixin


class Order(DomainEventMixin, SoftDeleteModel):
    """Order aggregate root: one customer job moving through the factory.

    ``current_department`` is ``None`` before the order is sent to the
    factory and after the last department is finished.  Domain events
    produced by routing operations are collected here and written to the
    outbox when the order is saved through the repository.
    """

    order_number: models.CharField = models.CharField(
        max_length=32, unique=True, editable=False
    )
    # Numeric parts of a generated order_number; empty for imported numbers.
    order_year: models.PositiveSmallIntegerField = models.PositiveSmallIntegerField(
        null=True, blank=True, editable=False
    )
    order_sequence: models.PositiveIntegerField = models.PositiveIntegerField(
        null=True, blank=True, editable=False
    )
    customer_name: models.CharField = models.CharField(max_length=255)
    notes: models.TextField = models.TextField(blank=True, default="")
    priority: models.CharField = models.CharField(
        max_length=10,
        choices=OrderPriority.choices,
        default=OrderPriority.NORMAL,
    )
    due_date: models.DateField = models.DateField(null=True, blank=True)
    status: models.CharField = models.CharField(
        max_length=20,
        choices=OrderStatus.choices,
        default=OrderStatus.DRAFT,
    )
    current_department: models.CharField = models.CharField(  # noqa: DJ01
        max_length=20,
        choices=Department.choices,
        null=True,
        blank=True,
    )
    completed_at: models.DateTimeField = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = "factory_orders"
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["status"], name="factory_orders_status_idx"),
            models.Index(
                fields=["current_department"], name="factory_orders_dept_idx"
            ),
            models.Index(
                fields=["order_year", "order_sequence"],
                name="factory_orders_number_idx",
            ),
        ]

    # ------------------------------------------------------------------
    # State Machine helpers
    # ------------------------------------------------------------------

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_ORDER_STATES

    def can_transition_to(self, new_status: str) -> bool:
        """Check whether moving the order to *new_status* is valid."""
        return new_status in ORDER_VALID_TRANSITIONS.get(self.status, set())

    def is_overdue(self, today: Optional[date] = None) -> bool:
        """``True`` when the due date has passed and the order is unfinished."""
        if self.due_date is None or self.completed_at is not None:
            return False
        return self.due_date < (today or timezone.localdate())

    # ------------------------------------------------------------------
    # Order number generation
    # ------------------------------------------------------------------

    @classmethod
    def next_order_sequence(cls, attempt: int = 0) -> tuple[int, int]:
        """``(year, sequence)`` for the next order of the current year.

        The maximum is taken over the integer ``order_sequence`` column, so
        numbering keeps going past the zero-padded width.  *attempt*
        offsets the candidate so a retry after a collision moves forward
        even when a concurrent insert is not yet visible.
        """
        year = timezone.now().year
        last = cls.objects.filter(order_year=year).aggregate(
            last=models.Max("order_sequence")
        )["last"]
        return year, (last or 0) + 1 + attempt

    @staticmethod
    def format_order_number(year: int, sequence: int) -> str:
        return (
            f"{settings.FACTORY_ORDER_NUMBER_PREFIX}-{year}-"
            f"{sequence:0{ORDER_NUMBER_DIGITS}d}"
        )

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def save(self, *args: Any, **kwargs: Any) -> None:
        if self.order_number:
            super().save(*args, **kwargs)
            return

        for attempt in range(ORDER_NUMBER_MAX_RETRIES):
            self.order_year, self.order_sequence = self.next_order_sequence(attempt)
            self.order_number = self.format_order_number(
                self.order_year, self.order_sequence
            )
            try:
                # Savepoint: a lost race must not break the caller's transaction.
                with transaction.atomic():
                    super().save(*args, **kwargs)
                return
            except IntegrityError:
                continue

        self.order_number = ""
        self.order_year = self.order_sequence = None
        raise RuntimeError(
            f"Failed to generate unique order_number after "
            f"{ORDER_NUMBER_MAX_RETRIES} attempts"
        )

    def __str__(self) -> str:
        return f"{self.order_number} ({self.status})"


class Worker(BaseModel):
    """A person working in exactly one department.

    ``employee_code`` is the stable identity used to break load ties, so
    assignment is reproducible for identical input state.
    """

    employee_code: models.CharField = models.CharField(max_length=32, unique=True)
    name: models.CharField = models.CharField(max_length=255)
    department: models.CharField = models.CharField(
        max_length=20,
        choices=Department.choices,
    )
    is_active: models.BooleanField = models.BooleanField(default=True)
    user: models.OneToOneField = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="factory_worker",
    )

    class Meta:
        db_table = "factory_workers"
        ordering = ["department", "employee_code"]
        indexes = [
            models.Index(
                fields=["department", "is_active"],
                name="factory_workers_dept_idx",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.name} [{self.employee_code}] ({self.department})"


class DepartmentTracking(BaseModel):
    """One order's visit to one department: the unit of the audit ledger.

    Forward-only status machine::

        PENDING_ASSIGNMENT -> ASSIGNED -> IN_PROGRESS -> COMPLETED
        PENDING_ASSIGNMENT | ASSIGNED -> SKIPPED   (administrative override)

    ``work_data`` holds photos/files references; it is opaque to routing.
    """

    order: models.ForeignKey = models.ForeignKey(
        "factory.Order",
        on_delete=models.PROTECT,
        related_name="department_tracking",
    )
    department: models.CharField = models.CharField(
        max_length=20,
        choices=Department.choices,
    )
    sequence_order: models.PositiveSmallIntegerField = (
        models.PositiveSmallIntegerField()
    )
    status: models.CharField = models.CharField(
        max_length=20,
        choices=TrackingStatus.choices,
        default=TrackingStatus.PENDING_ASSIGNMENT,
    )
    assigned_worker: models.ForeignKey = models.ForeignKey(
        "factory.Worker",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="assignments",
    )
    entered_at: models.DateTimeField = models.DateTimeField(default=timezone.now)
    assigned_at: models.DateTimeField = models.DateTimeField(null=True, blank=True)
    started_at: models.DateTimeField = models.DateTimeField(null=True, blank=True)
    exited_at: models.DateTimeField = models.DateTimeField(null=True, blank=True)
    notes: models.TextField = models.TextField(blank=True, default="")
    issues: models.TextField = models.TextField(blank=True, default="")
    work_data: models.JSONField = models.JSONField(default=dict, blank=True)
    assigned_by: models.ForeignKey = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    completed_by: models.ForeignKey = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    version: models.PositiveIntegerField = models.PositiveIntegerField(default=1)

    class Meta:
        db_table = "factory_department_tracking"
        ordering = ["entered_at", "id"]
        constraints = [
            models.UniqueConstraint(
                fields=["order"],
                condition=models.Q(exited_at__isnull=True),
                name="dept_tracking_one_open_per_order",
            ),
            models.CheckConstraint(
                condition=models.Q(sequence_order__gte=1, sequence_order__lte=9),
                name="dept_tracking_sequence_range",
            ),
        ]
        indexes = [
            models.Index(
                fields=["department", "exited_at"],
                name="dept_tracking_dept_open_idx",
            ),
            models.Index(
                fields=["assigned_worker", "status"],
                name="dept_tracking_worker_idx",
            ),
            models.Index(
                fields=["order", "entered_at"],
                name="dept_tracking_order_idx",
            ),
        ]

    @property
    def is_open(self) -> bool:
        return self.exited_at is None

    @property
    def holds_worker(self) -> bool:
        """``True`` while the entry counts toward its worker's load."""
        return self.status in ACTIVE_ASSIGNMENT_STATES

    def can_transition_to(self, new_status: str) -> bool:
        return new_status in TRACKING_VALID_TRANSITIONS.get(self.status, set())

    def time_in_department(self, now: Optional[datetime] = None) -> timedelta:
        """``now - entered_at`` while open, ``exited_at - entered_at`` once closed."""
        end = self.exited_at or now or timezone.now()
        return end - self.entered_at

    def __str__(self) -> str:
        return f"{self.order_id}@{self.department} [{self.status}]"


class DepartmentQueue(BaseModel):
    """Waiting list header for one department.

    The row itself is the lock target that makes the assign-or-queue
    decision atomic per department (``SELECT ... FOR UPDATE``).
    """

    department: models.CharField = models.CharField(
        max_length=20,
        choices=Department.choices,
        unique=True,
    )

    class Meta:
        db_table = "factory_department_queues"
        ordering = ["department"]

    def __str__(self) -> str:
        return f"Queue<{self.department}>"


class QueueEntry(BaseModel):
    """An order waiting for a worker in a department (FIFO)."""

    queue: models.ForeignKey = models.ForeignKey(
        "factory.DepartmentQueue",
        on_delete=models.CASCADE,
        related_name="entries",
    )
    tracking: models.OneToOneField = models.OneToOneField(
        "factory.DepartmentTracking",
        on_delete=models.CASCADE,
        related_name="queue_entry",
    )
    order: models.ForeignKey = models.ForeignKey(
        "factory.Order",
        on_delete=models.CASCADE,
        related_name="queue_entries",
    )
    enqueued_at: models.DateTimeField = models.DateTimeField(default=timezone.now)

    class Meta:
        db_table = "factory_queue_entries"
        ordering = ["enqueued_at", "id"]
        indexes = [
            models.Index(
                fields=["queue", "enqueued_at"],
                name="factory_queue_fifo_idx",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.order_id} waiting since {self.enqueued_at:%Y-%m-%d %H:%M}"

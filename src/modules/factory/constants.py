"""Factory routing constants.

Defines the nine production departments in their canonical order, the
order-level status machine, and the per-department tracking status
machine.  Presentation metadata (icons, colours) is a UI concern and is
not kept here.
"""

from django.db import models


class Department(models.TextChoices):
    CAD = "CAD", "CAD Design"
    PRINT = "PRINT", "3D Printing"
    CASTING = "CASTING", "Casting"
    FILLING = "FILLING", "Filling"
    MEENA = "MEENA", "Meena Work"
    POLISH_1 = "POLISH_1", "First Polish"
    SETTING = "SETTING", "Stone Setting"
    POLISH_2 = "POLISH_2", "Final Polish"
    ADDITIONAL = "ADDITIONAL", "Additional Work"


# Canonical production path; position in this tuple + 1 is the sequence order.
DEPARTMENT_SEQUENCE: tuple[str, ...] = (
    Department.CAD,
    Department.PRINT,
    Department.CASTING,
    Department.FILLING,
    Department.MEENA,
    Department.POLISH_1,
    Department.SETTING,
    Department.POLISH_2,
    Department.ADDITIONAL,
)


# ---------------------------------------------------------------------------
# Order
# ---------------------------------------------------------------------------


class OrderStatus(models.TextChoices):
    DRAFT = "DRAFT", "Draft"
    PENDING = "PENDING", "Pending"
    IN_PROGRESS = "IN_PROGRESS", "In Progress"
    QUALITY_CHECK = "QUALITY_CHECK", "Quality Check"
    COMPLETED = "COMPLETED", "Completed"
    DELIVERED = "DELIVERED", "Delivered"
    CANCELLED = "CANCELLED", "Cancelled"


class OrderPriority(models.TextChoices):
    LOW = "LOW", "Low"
    NORMAL = "NORMAL", "Normal"
    HIGH = "HIGH", "High"
    URGENT = "URGENT", "Urgent"


ORDER_VALID_TRANSITIONS: dict[str, set[str]] = {
    OrderStatus.DRAFT: {
        OrderStatus.PENDING,
        OrderStatus.IN_PROGRESS,
        OrderStatus.CANCELLED,
    },
    OrderStatus.PENDING: {OrderStatus.IN_PROGRESS, OrderStatus.CANCELLED},
    OrderStatus.IN_PROGRESS: {
        OrderStatus.QUALITY_CHECK,
        OrderStatus.COMPLETED,
        OrderStatus.CANCELLED,
    },
    OrderStatus.QUALITY_CHECK: {OrderStatus.IN_PROGRESS, OrderStatus.COMPLETED},
    OrderStatus.COMPLETED: {OrderStatus.DELIVERED},
    OrderStatus.DELIVERED: set(),
    OrderStatus.CANCELLED: set(),
}

TERMINAL_ORDER_STATES: set[str] = {OrderStatus.DELIVERED, OrderStatus.CANCELLED}

ORDER_NUMBER_MAX_RETRIES = 5
ORDER_NUMBER_DIGITS = 5


# ---------------------------------------------------------------------------
# Department tracking
# ---------------------------------------------------------------------------


class TrackingStatus(models.TextChoices):
    PENDING_ASSIGNMENT = "PENDING_ASSIGNMENT", "Pending Assignment"
    ASSIGNED = "ASSIGNED", "Assigned"
    IN_PROGRESS = "IN_PROGRESS", "In Progress"
    COMPLETED = "COMPLETED", "Completed"
    SKIPPED = "SKIPPED", "Skipped"


# Forward-only.  SKIPPED is an administrative override.
TRACKING_VALID_TRANSITIONS: dict[str, set[str]] = {
    TrackingStatus.PENDING_ASSIGNMENT: {
        TrackingStatus.ASSIGNED,
        TrackingStatus.SKIPPED,
    },
    TrackingStatus.ASSIGNED: {TrackingStatus.IN_PROGRESS, TrackingStatus.SKIPPED},
    TrackingStatus.IN_PROGRESS: {TrackingStatus.COMPLETED},
    TrackingStatus.COMPLETED: set(),
    TrackingStatus.SKIPPED: set(),
}

# Statuses that count toward a worker's active load.
ACTIVE_ASSIGNMENT_STATES: tuple[str, ...] = (
    TrackingStatus.ASSIGNED,
    TrackingStatus.IN_PROGRESS,
)

# Statuses after which an order may advance to the next department.
CLOSED_TRACKING_STATES: tuple[str, ...] = (
    TrackingStatus.COMPLETED,
    TrackingStatus.SKIPPED,
)

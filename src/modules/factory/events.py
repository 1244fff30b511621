"""Domain events for the factory routing bounded context."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from shared.domain.events import DomainEvent


@dataclass(frozen=True)
class OrderEnteredFactory(DomainEvent):
    """Raised when an order opens its first department entry."""

    department: str = ""


@dataclass(frozen=True)
class WorkerAssigned(DomainEvent):
    """Raised when a department entry is given to a worker."""

    department: str = ""
    worker_id: str = ""
    manual: bool = False


@dataclass(frozen=True)
class OrderQueued(DomainEvent):
    """Raised when no worker is assignable and the order waits in a queue."""

    department: str = ""
    queue_position: int = 0


@dataclass(frozen=True)
class DepartmentCompleted(DomainEvent):
    """Raised when an order leaves a department for the next one."""

    department: str = ""
    next_department: Optional[str] = None
    skipped: bool = False


@dataclass(frozen=True)
class OrderCompleted(DomainEvent):
    """Raised when an order finishes the last department."""

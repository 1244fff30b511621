"""Factory repository interfaces.

Four contracts back the routing engine:

- ``IFactoryOrderRepository``: the Order aggregate root, with a
  row-locking read and outbox-writing save.
- ``ITrackingRepository``: the department tracking ledger rows, saved with
  an optimistic ``version`` check.
- ``IWorkerRepository``: the worker roster, read with derived load counts.
- ``IDepartmentQueueRepository``: per-department FIFO waiting lists and
  the department lock.

The engine components depend exclusively on these contracts (DIP).
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Optional
from uuid import UUID

from modules.core.repositories.interfaces import IRepository

if TYPE_CHECKING:
    from modules.factory.models import (
        DepartmentQueue,
        DepartmentTracking,
        Order,
        QueueEntry,
        Worker,
    )


class IFactoryOrderRepository(IRepository["Order"]):
    """Repository contract for the Order aggregate root."""

    @abstractmethod
    def create(self, data: Dict[str, Any]) -> Order:
        """Create a DRAFT order.

        ``data`` must include ``customer_name`` and may include
        ``priority``, ``due_date`` and ``notes``.
        """

    @abstractmethod
    def get_for_update(self, id: str) -> Optional[Order]:
        """Retrieve an order holding its row lock until the transaction ends.

        Raises:
            ConcurrentModificationError: the lock could not be acquired.
        """

    @abstractmethod
    def record_events(self, entity: Order) -> int:
        """Write the order's pending domain events to the outbox.

        Used for orders touched as a side effect (queue dispatch) whose row
        is not locked by the caller.  Returns the number of events written.
        """


class ITrackingRepository(ABC):
    """Repository contract for department tracking ledger rows.

    Rows are never deleted; there is no ``delete`` operation.
    """

    @abstractmethod
    def create(self, data: Dict[str, Any]) -> DepartmentTracking:
        """Insert a new open entry.

        Raises:
            ConcurrentModificationError: another open entry was inserted
                for the same order concurrently.
        """

    @abstractmethod
    def save(
        self, entry: DepartmentTracking, update_fields: Iterable[str]
    ) -> DepartmentTracking:
        """Persist *update_fields* if ``entry.version`` is still current.

        Increments ``entry.version`` on success.

        Raises:
            ConcurrentModificationError: the stored version differs.
        """

    @abstractmethod
    def get_by_id(self, id: str) -> Optional[DepartmentTracking]:
        """Retrieve an entry by primary key."""

    @abstractmethod
    def get_open_for_order(self, order_id: UUID) -> Optional[DepartmentTracking]:
        """The order's single open entry, if any."""

    @abstractmethod
    def get_latest_for_order(
        self, order_id: UUID, department: Optional[str] = None
    ) -> Optional[DepartmentTracking]:
        """The most recently entered entry, optionally in *department*."""

    @abstractmethod
    def list_for_order(self, order_id: UUID) -> List[DepartmentTracking]:
        """All entries of an order in the order they were entered."""

    @abstractmethod
    def list_open_in_department(self, department: str) -> List[DepartmentTracking]:
        """Open entries at *department* with order and worker loaded."""

    @abstractmethod
    def list_active_for_worker(self, worker_id: UUID) -> List[DepartmentTracking]:
        """ASSIGNED and IN_PROGRESS entries held by a worker, oldest first."""


class IWorkerRepository(IRepository["Worker"]):
    """Repository contract for the worker roster.

    Workers returned by the ``*_with_load`` methods carry an
    ``active_assignments`` attribute: the number of ASSIGNED or
    IN_PROGRESS entries they hold.
    """

    @abstractmethod
    def create(self, data: Dict[str, Any]) -> Worker:
        """Register a worker."""

    @abstractmethod
    def list_with_load(
        self, department: str, include_inactive: bool = False
    ) -> List[Worker]:
        """Workers of *department* ordered by load, then ``employee_code``."""

    @abstractmethod
    def get_with_load(self, id: str) -> Optional[Worker]:
        """A single worker annotated with its load."""


class IDepartmentQueueRepository(ABC):
    """Repository contract for department waiting lists."""

    @abstractmethod
    def lock(self, department: str) -> DepartmentQueue:
        """Get (or create) the department's queue row and lock it.

        Raises:
            ConcurrentModificationError: the lock could not be acquired.
        """

    @abstractmethod
    def enqueue(self, queue: DepartmentQueue, entry: DepartmentTracking) -> int:
        """Append *entry* at the tail and return its 1-based position."""

    @abstractmethod
    def position_of(self, entry: DepartmentTracking) -> Optional[int]:
        """1-based queue position of *entry*, or ``None`` when not queued."""

    @abstractmethod
    def remove(self, entry: DepartmentTracking) -> bool:
        """Drop *entry* from its queue.  Returns ``False`` if it was not queued."""

    @abstractmethod
    def head(self, department: str) -> Optional[QueueEntry]:
        """The oldest queue entry of *department*."""

    @abstractmethod
    def list_entries(self, department: str) -> List[QueueEntry]:
        """All queue entries of *department* in FIFO order."""

    @abstractmethod
    def count(self, department: str) -> int:
        """Number of entries waiting at *department*."""

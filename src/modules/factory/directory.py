"""Worker Directory.

Answers "who works in department D and how busy are they".  Load is the
number of ASSIGNED or IN_PROGRESS entries a worker holds, derived at read
time.  Read-only: nothing here writes to the database.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Iterable, List, Optional, Protocol, TypeVar

from django.conf import settings

from modules.factory.sequence import sequence_of

if TYPE_CHECKING:
    from modules.factory.models import Worker
    from modules.factory.repositories.interfaces import IWorkerRepository


class LoadedWorker(Protocol):
    employee_code: str
    active_assignments: int


W = TypeVar("W", bound=LoadedWorker)


def select_least_loaded(workers: Iterable[W], capacity: int = 0) -> Optional[W]:
    """Pick the worker with the fewest active assignments.

    Ties are broken by ``employee_code`` ascending, so the choice is the
    same for the same input regardless of iteration order.  A positive
    *capacity* excludes workers already holding that many assignments.
    """
    candidates = [
        worker
        for worker in workers
        if capacity <= 0 or worker.active_assignments < capacity
    ]
    if not candidates:
        return None
    return min(candidates, key=lambda w: (w.active_assignments, w.employee_code))


class WorkerDirectory:
    """Roster queries for the assignment resolver and the API."""

    def __init__(
        self,
        worker_repository: IWorkerRepository,
        capacity: Optional[int] = None,
    ) -> None:
        self._worker_repo = worker_repository
        self._capacity = (
            settings.FACTORY_MAX_ACTIVE_ASSIGNMENTS if capacity is None else capacity
        )

    @property
    def capacity(self) -> int:
        return self._capacity

    def workers_in(
        self, department: str, include_inactive: bool = False
    ) -> List[Worker]:
        """Workers of *department* annotated with ``active_assignments``.

        Raises:
            UnknownDepartment: *department* is not a production department.
        """
        sequence_of(department)
        return self._worker_repo.list_with_load(
            department, include_inactive=include_inactive
        )

    def least_loaded_worker(self, department: str) -> Optional[Worker]:
        """The active worker of *department* to assign next, or ``None``."""
        return select_least_loaded(self.workers_in(department), self._capacity)

    def is_assignable(self, worker: Worker) -> bool:
        """``True`` if *worker* is active and below the capacity cap."""
        if not worker.is_active:
            return False
        if self._capacity <= 0:
            return True
        loaded = self._worker_repo.get_with_load(str(worker.id))
        return loaded is not None and loaded.active_assignments < self._capacity

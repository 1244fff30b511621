"""Factory repositories package."""

from modules.factory.repositories.django_repository import (
    DepartmentQueueDjangoRepository,
    FactoryOrderDjangoRepository,
    TrackingDjangoRepository,
    WorkerDjangoRepository,
)
from modules.factory.repositories.interfaces import (
    IDepartmentQueueRepository,
    IFactoryOrderRepository,
    ITrackingRepository,
    IWorkerRepository,
)

__all__ = [
    "DepartmentQueueDjangoRepository",
    "FactoryOrderDjangoRepository",
    "IDepartmentQueueRepository",
    "IFactoryOrderRepository",
    "ITrackingRepository",
    "IWorkerRepository",
    "TrackingDjangoRepository",
    "WorkerDjangoRepository",
]

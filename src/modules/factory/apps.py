from django.apps import AppConfig


class FactoryConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "modules.factory"
    label = "factory"

    def ready(self) -> None:
        from modules.factory.events import (
            DepartmentCompleted,
            OrderCompleted,
            OrderQueued,
            WorkerAssigned,
        )
        from modules.factory.handlers import (
            department_completed_handler,
            order_completed_handler,
            order_queued_handler,
            worker_assigned_handler,
        )
        from shared.infrastructure.bus import event_bus

        event_bus.subscribe(WorkerAssigned, worker_assigned_handler)
        event_bus.subscribe(OrderQueued, order_queued_handler)
        event_bus.subscribe(DepartmentCompleted, department_completed_handler)
        event_bus.subscribe(OrderCompleted, order_completed_handler)

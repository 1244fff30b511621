"""Factory URL configuration."""

from __future__ import annotations

from rest_framework.routers import DefaultRouter

from modules.factory.views import (
    DepartmentViewSet,
    FactoryOrderViewSet,
    WorkerViewSet,
)

router = DefaultRouter(trailing_slash=True)
router.register("orders", FactoryOrderViewSet, basename="factory-order")
router.register("departments", DepartmentViewSet, basename="factory-department")
router.register("workers", WorkerViewSet, basename="factory-worker")

urlpatterns = router.urls

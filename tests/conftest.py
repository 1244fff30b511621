import itertools

import pytest
from django.contrib.auth import get_user_model
from django.utils import timezone
from rest_framework.test import APIClient

from modules.factory.constants import Department, OrderStatus, TrackingStatus
from modules.factory.models import DepartmentTracking, Order, Worker
from modules.factory.sequence import sequence_of
from modules.factory.services import build_factory_service


@pytest.fixture(autouse=True)
def _use_db(db):
    """Automatically use the test database for all tests."""


@pytest.fixture()
def api_client():
    """DRF APIClient for testing API endpoints."""
    return APIClient()


@pytest.fixture()
def api_client_with_correlation(api_client):
    """APIClient pre-configured with a known correlation ID header."""
    cid = "test-correlation-id-fixture"
    api_client.defaults["HTTP_X_REQUEST_ID"] = cid
    return api_client, cid


@pytest.fixture()
def supervisor():
    return get_user_model().objects.create_user(
        username="supervisor", password="testpass123"
    )


@pytest.fixture()
def auth_client(supervisor):
    """APIClient with a force-authenticated Django user."""
    client = APIClient()
    client.force_authenticate(user=supervisor)
    return client


@pytest.fixture()
def service():
    return build_factory_service()


@pytest.fixture()
def make_order():
    def _make(**kwargs) -> Order:
        kwargs.setdefault("customer_name", "Zaveri Jewellers")
        return Order.objects.create(**kwargs)

    return _make


@pytest.fixture()
def make_worker():
    counter = itertools.count(1)

    def _make(department: str = Department.CAD, employee_code=None, **kwargs) -> Worker:
        number = next(counter)
        kwargs.setdefault("name", f"Worker {number}")
        return Worker.objects.create(
            employee_code=employee_code or f"{str(department)}-{number:03d}",
            department=str(department),
            **kwargs,
        )

    return _make


@pytest.fixture()
def place_at(make_order):
    """Put a new order at *department* with an open entry.

    With a worker the entry defaults to IN_PROGRESS, without one to
    PENDING_ASSIGNMENT (not queued).
    """

    def _place(department: str, worker=None, status=None, **order_kwargs):
        order = make_order(
            status=OrderStatus.IN_PROGRESS,
            current_department=str(department),
            **order_kwargs,
        )
        if status is None:
            status = (
                TrackingStatus.IN_PROGRESS
                if worker
                else TrackingStatus.PENDING_ASSIGNMENT
            )
        now = timezone.now()
        entry = DepartmentTracking.objects.create(
            order=order,
            department=str(department),
            sequence_order=sequence_of(department),
            status=status,
            assigned_worker=worker,
            assigned_at=now if worker else None,
            started_at=now if status == TrackingStatus.IN_PROGRESS else None,
        )
        return order, entry

    return _place

"""Integration tests for filtering, search and ordering on list endpoints."""

from __future__ import annotations

from datetime import date

import pytest

from modules.factory.constants import Department, OrderPriority, OrderStatus

pytestmark = pytest.mark.integration

ORDERS_URL = "/api/v1/factory/orders/"
WORKERS_URL = "/api/v1/factory/workers/"


@pytest.fixture()
def order_batch(make_order):
    early = make_order(
        customer_name="Ratna Gems",
        priority=OrderPriority.HIGH,
        due_date=date(2026, 3, 1),
    )
    at_setting = make_order(
        customer_name="Zaveri Jewellers",
        status=OrderStatus.IN_PROGRESS,
        current_department=Department.SETTING,
        due_date=date(2026, 6, 1),
    )
    cancelled = make_order(
        customer_name="Kundan House",
        status=OrderStatus.CANCELLED,
        priority=OrderPriority.LOW,
    )
    return early, at_setting, cancelled


@pytest.fixture()
def worker_batch(make_worker):
    return (
        make_worker(Department.CAD, employee_code="CAD-01", name="Anita Desai"),
        make_worker(
            Department.CAD, employee_code="CAD-02", name="Vikram Shah", is_active=False
        ),
        make_worker(Department.MEENA, employee_code="MEE-01", name="Farah Khan"),
    )


def _numbers(response):
    return [item["order_number"] for item in response.data["results"]]


class TestOrderFiltering:
    def test_filter_by_status(self, auth_client, order_batch):
        response = auth_client.get(f"{ORDERS_URL}?status=in_progress")
        assert response.status_code == 200
        assert _numbers(response) == [order_batch[1].order_number]

    def test_filter_by_current_department(self, auth_client, order_batch):
        response = auth_client.get(f"{ORDERS_URL}?department=SETTING")
        assert _numbers(response) == [order_batch[1].order_number]

    def test_unknown_department_is_rejected(self, auth_client, order_batch):
        response = auth_client.get(f"{ORDERS_URL}?department=ENGRAVING")
        assert response.status_code == 400

    def test_filter_by_priority(self, auth_client, order_batch):
        response = auth_client.get(f"{ORDERS_URL}?priority=high")
        assert _numbers(response) == [order_batch[0].order_number]

    def test_filter_due_date_range(self, auth_client, order_batch):
        response = auth_client.get(f"{ORDERS_URL}?due_after=2026-04-01&due_before=2026-12-31")
        assert _numbers(response) == [order_batch[1].order_number]

    def test_filter_by_customer(self, auth_client, order_batch):
        response = auth_client.get(f"{ORDERS_URL}?customer=zaveri")
        assert _numbers(response) == [order_batch[1].order_number]

    def test_search_by_order_number(self, auth_client, order_batch):
        number = order_batch[2].order_number
        response = auth_client.get(f"{ORDERS_URL}?search={number}")
        assert _numbers(response) == [number]

    def test_ordering_by_due_date(self, auth_client, order_batch):
        response = auth_client.get(f"{ORDERS_URL}?ordering=due_date&due_after=2000-01-01")
        assert _numbers(response) == [
            order_batch[0].order_number,
            order_batch[1].order_number,
        ]

    def test_deleted_orders_are_hidden(self, auth_client, order_batch):
        order_batch[2].delete()
        response = auth_client.get(ORDERS_URL)
        assert order_batch[2].order_number not in _numbers(response)
        assert response.data["count"] == 2


class TestWorkerFiltering:
    def test_filter_by_department(self, auth_client, worker_batch):
        response = auth_client.get(f"{WORKERS_URL}?department=CAD")
        codes = [item["employee_code"] for item in response.data["results"]]
        assert codes == ["CAD-01", "CAD-02"]

    def test_filter_active_only(self, auth_client, worker_batch):
        response = auth_client.get(f"{WORKERS_URL}?department=CAD&is_active=true")
        codes = [item["employee_code"] for item in response.data["results"]]
        assert codes == ["CAD-01"]

    def test_search_by_name(self, auth_client, worker_batch):
        response = auth_client.get(f"{WORKERS_URL}?search=farah")
        codes = [item["employee_code"] for item in response.data["results"]]
        assert codes == ["MEE-01"]

    def test_ordering_by_name(self, auth_client, worker_batch):
        response = auth_client.get(f"{WORKERS_URL}?ordering=name")
        names = [item["name"] for item in response.data["results"]]
        assert names == sorted(names)

"""Unit tests for Order, Worker, DepartmentTracking and queue models.

Covers:
- Order number format (``ORD-YYYY-NNNNN``), numeric sequence, year rollover
  and retry when the INSERT collides.
- Order status machine and overdue flag.
- One open tracking entry per order (database constraint).
- Tracking status machine and time in department.
- __str__ representations.
"""

from __future__ import annotations

import uuid
from datetime import date, timedelta
from unittest.mock import patch

import pytest
from django.db import IntegrityError, transaction
from django.utils import timezone
from freezegun import freeze_time

from modules.factory.constants import (
    ORDER_VALID_TRANSITIONS,
    TRACKING_VALID_TRANSITIONS,
    Department,
    OrderStatus,
    TrackingStatus,
)
from modules.factory.models import DepartmentQueue, DepartmentTracking, Order

pytestmark = pytest.mark.unit


# ---------------------------------------------------------------------------
# Order
# ---------------------------------------------------------------------------


class TestOrderCreation:
    def test_defaults(self, make_order):
        order = make_order()
        order.refresh_from_db()
        assert order.status == OrderStatus.DRAFT
        assert order.priority == "NORMAL"
        assert order.current_department is None
        assert order.completed_at is None
        assert order.is_deleted is False

    def test_id_is_uuid7(self, make_order):
        order = make_order()
        assert isinstance(order.id, uuid.UUID)
        assert order.id.version == 7


class TestOrderNumber:
    @freeze_time("2026-05-04 10:00:00")
    def test_format(self, make_order):
        order = make_order()
        assert order.order_number == "ORD-2026-00001"

    @freeze_time("2026-05-04 10:00:00")
    def test_sequence_increments(self, make_order):
        numbers = [make_order().order_number for _ in range(3)]
        assert numbers == ["ORD-2026-00001", "ORD-2026-00002", "ORD-2026-00003"]

    def test_sequence_restarts_each_year(self, make_order):
        with freeze_time("2025-12-31 23:00:00"):
            make_order()
            make_order()
        with freeze_time("2026-01-01 08:00:00"):
            assert make_order().order_number == "ORD-2026-00001"

    def test_explicit_number_preserved(self):
        order = Order.objects.create(customer_name="A", order_number="LEGACY-7")
        assert order.order_number == "LEGACY-7"
        assert order.order_sequence is None

    def test_duplicate_number_raises(self):
        Order.objects.create(customer_name="A", order_number="DUP-1")
        with pytest.raises(IntegrityError):
            Order.objects.create(customer_name="B", order_number="DUP-1")

    @freeze_time("2026-05-04 10:00:00")
    def test_sequence_is_stored_numerically(self, make_order):
        order = make_order()
        assert (order.order_year, order.order_sequence) == (2026, 1)

    @freeze_time("2026-05-04 10:00:00")
    def test_sequence_grows_past_the_padded_width(self, make_order):
        Order.objects.create(
            customer_name="Year end rush",
            order_number="ORD-2026-99999",
            order_year=2026,
            order_sequence=99999,
        )
        numbers = [make_order().order_number for _ in range(3)]
        assert numbers == ["ORD-2026-100000", "ORD-2026-100001", "ORD-2026-100002"]

    @freeze_time("2026-05-04 10:00:00")
    def test_insert_collision_moves_to_next_number(self, make_order):
        # A number taken after the maximum was read: only the INSERT sees it.
        Order.objects.create(customer_name="Imported", order_number="ORD-2026-00001")

        order = make_order()

        assert order.order_number == "ORD-2026-00002"
        assert Order.objects.count() == 2

    @freeze_time("2026-05-04 10:00:00")
    def test_retry_on_collision(self, make_order):
        make_order()
        with patch.object(
            Order, "next_order_sequence", side_effect=[(2026, 1), (2026, 2)]
        ) as generate:
            order = make_order()
        assert order.order_number == "ORD-2026-00002"
        assert generate.call_count == 2

    def test_gives_up_after_retries(self, make_order):
        existing = make_order()
        with patch.object(
            Order,
            "next_order_sequence",
            return_value=(existing.order_year, existing.order_sequence),
        ):
            with pytest.raises(RuntimeError, match="Failed to generate"):
                make_order()
        # The failed inserts were rolled back to their savepoints.
        assert Order.objects.count() == 1

    def test_str(self, make_order):
        order = make_order()
        assert str(order) == f"{order.order_number} (DRAFT)"


class TestOrderStatusMachine:
    def test_draft_can_enter_factory(self, make_order):
        assert make_order().can_transition_to(OrderStatus.IN_PROGRESS)

    def test_in_progress_can_complete(self, make_order):
        order = make_order(status=OrderStatus.IN_PROGRESS)
        assert order.can_transition_to(OrderStatus.COMPLETED)

    @pytest.mark.parametrize("status", [OrderStatus.COMPLETED, OrderStatus.CANCELLED])
    def test_finished_orders_cannot_restart(self, make_order, status):
        assert not make_order(status=status).can_transition_to(OrderStatus.IN_PROGRESS)

    def test_terminal_states(self, make_order):
        assert make_order(status=OrderStatus.DELIVERED).is_terminal
        assert not make_order(status=OrderStatus.COMPLETED).is_terminal

    def test_every_status_has_transitions(self):
        for status in OrderStatus:
            assert status in ORDER_VALID_TRANSITIONS


class TestOverdue:
    def test_no_due_date(self, make_order):
        assert make_order().is_overdue() is False

    def test_past_due(self, make_order):
        order = make_order(due_date=date(2026, 1, 10))
        assert order.is_overdue(today=date(2026, 1, 11)) is True

    def test_due_today_is_not_overdue(self, make_order):
        order = make_order(due_date=date(2026, 1, 10))
        assert order.is_overdue(today=date(2026, 1, 10)) is False

    def test_completed_order_is_never_overdue(self, make_order):
        order = make_order(due_date=date(2026, 1, 10), completed_at=timezone.now())
        assert order.is_overdue(today=date(2026, 2, 1)) is False


# ---------------------------------------------------------------------------
# DepartmentTracking
# ---------------------------------------------------------------------------


class TestDepartmentTracking:
    def test_one_open_entry_per_order(self, place_at):
        order, _ = place_at(Department.CAD)
        with pytest.raises(IntegrityError), transaction.atomic():
            DepartmentTracking.objects.create(
                order=order, department=Department.PRINT, sequence_order=2
            )

    def test_closed_entries_do_not_count(self, place_at):
        order, entry = place_at(Department.CAD)
        entry.exited_at = timezone.now()
        entry.status = TrackingStatus.SKIPPED
        entry.save()

        DepartmentTracking.objects.create(
            order=order, department=Department.PRINT, sequence_order=2
        )
        assert DepartmentTracking.objects.filter(order=order).count() == 2

    def test_status_machine_is_forward_only(self):
        assert TRACKING_VALID_TRANSITIONS[TrackingStatus.COMPLETED] == set()
        assert TRACKING_VALID_TRANSITIONS[TrackingStatus.SKIPPED] == set()
        assert TrackingStatus.PENDING_ASSIGNMENT not in TRACKING_VALID_TRANSITIONS[
            TrackingStatus.ASSIGNED
        ]

    def test_holds_worker(self, place_at, make_worker):
        _, waiting = place_at(Department.CAD)
        _, working = place_at(Department.CAD, worker=make_worker(Department.CAD))
        assert waiting.holds_worker is False
        assert working.holds_worker is True

    def test_time_in_department(self, place_at):
        _, entry = place_at(Department.MEENA)
        later = entry.entered_at + timedelta(minutes=90)

        assert entry.time_in_department(now=later) == timedelta(minutes=90)

        entry.exited_at = entry.entered_at + timedelta(minutes=30)
        assert entry.time_in_department(now=later) == timedelta(minutes=30)

    def test_version_starts_at_one(self, place_at):
        _, entry = place_at(Department.CAD)
        assert entry.version == 1


def test_department_queue_is_unique_per_department():
    DepartmentQueue.objects.create(department=Department.CAD)
    with pytest.raises(IntegrityError):
        DepartmentQueue.objects.create(department=Department.CAD)

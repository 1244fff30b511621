"""Unit tests for FactoryService (transition controller and read models)."""

from __future__ import annotations

import uuid

import pytest

from modules.core.models import OutboxEvent
from modules.factory.constants import (
    DEPARTMENT_SEQUENCE,
    Department,
    OrderStatus,
    TrackingStatus,
)
from modules.factory.dtos import (
    CompleteDepartmentDTO,
    RegisterWorkerDTO,
    SaveProgressDTO,
)
from modules.factory.exceptions import (
    AlreadyInFactoryError,
    InvalidStateError,
    InvalidTransitionError,
    NoOpenEntryError,
    OrderNotFound,
    UnassignedEntryError,
    UnknownDepartment,
    WorkerNotFound,
)
from modules.factory.models import DepartmentTracking, QueueEntry
from modules.factory.services import build_factory_service

pytestmark = pytest.mark.unit


DONE = CompleteDepartmentDTO(notes="done")


@pytest.fixture()
def capped_service(settings):
    settings.FACTORY_MAX_ACTIVE_ASSIGNMENTS = 1
    return build_factory_service()


def _work_through(service, order):
    """Start and finish the order's current department, then advance."""
    service.start_work(order.id)
    return service.complete_and_advance(order.id, DONE)


# ---------------------------------------------------------------------------
# Factory intake
# ---------------------------------------------------------------------------


class TestEnterFactory:
    def test_assigns_least_loaded_cad_worker(
        self, service, make_order, make_worker, place_at
    ):
        worker_a = make_worker(Department.CAD, employee_code="CAD-A")
        worker_b = make_worker(Department.CAD, employee_code="CAD-B")
        place_at(Department.CAD, worker=worker_b)
        place_at(Department.CAD, worker=worker_b)
        order = make_order()

        outcome = service.enter_factory(order.id)

        assert outcome.assigned is True
        assert outcome.worker_id == worker_a.id
        order.refresh_from_db()
        assert order.status == OrderStatus.IN_PROGRESS
        assert order.current_department == Department.CAD
        entry = DepartmentTracking.objects.get(order=order)
        assert entry.status == TrackingStatus.ASSIGNED
        assert entry.sequence_order == 1

    def test_load_is_rederived_for_each_new_order(
        self, service, make_order, make_worker, place_at
    ):
        worker_a = make_worker(Department.CAD, employee_code="CAD-07")
        worker_b = make_worker(Department.CAD, employee_code="CAD-03")
        place_at(Department.CAD, worker=worker_b)
        place_at(Department.CAD, worker=worker_b)

        outcomes = [service.enter_factory(make_order().id) for _ in range(3)]

        # A stays strictly below B twice; the 2 == 2 tie goes to the lower code.
        assert [o.worker_id for o in outcomes] == [worker_a.id, worker_a.id, worker_b.id]
        assert service.directory.least_loaded_worker(Department.CAD).id == worker_a.id

    def test_queues_when_cad_has_no_worker(self, service, make_order):
        order = make_order()

        outcome = service.enter_factory(order.id)

        assert outcome.queued is True
        assert outcome.queue_position == 1
        assert QueueEntry.objects.filter(order=order).exists()

    def test_writes_outbox_events(self, service, make_order, make_worker):
        make_worker(Department.CAD)
        order = make_order()

        service.enter_factory(order.id)

        event_types = list(
            OutboxEvent.objects.filter(aggregate_id=str(order.id)).values_list(
                "event_type", flat=True
            )
        )
        assert sorted(event_types) == ["OrderEnteredFactory", "WorkerAssigned"]
        assert set(OutboxEvent.objects.values_list("topic", flat=True)) == {"factory"}

    def test_second_entry_is_rejected(self, service, make_order):
        order = make_order()
        service.enter_factory(order.id)

        with pytest.raises(AlreadyInFactoryError):
            service.enter_factory(order.id)
        assert DepartmentTracking.objects.filter(order=order).count() == 1

    def test_unknown_order(self, service):
        with pytest.raises(OrderNotFound):
            service.enter_factory(uuid.uuid4())

    def test_deleted_order(self, service, make_order):
        order = make_order()
        order.delete()
        with pytest.raises(OrderNotFound):
            service.enter_factory(order.id)

    def test_completed_order_cannot_reenter(self, service, make_order):
        order = make_order(status=OrderStatus.COMPLETED)
        with pytest.raises(InvalidTransitionError):
            service.enter_factory(order.id)
        assert not DepartmentTracking.objects.filter(order=order).exists()


class TestBatchIntake:
    def test_partial_failure_is_reported_per_order(
        self, service, make_order, make_worker
    ):
        make_worker(Department.CAD)
        fresh = make_order()
        waiting = make_order()
        already_in = make_order()
        service.enter_factory(already_in.id)
        missing = uuid.uuid4()

        results = service.send_batch_to_factory(
            [fresh.id, already_in.id, missing, waiting.id]
        )

        assert [r.outcome for r in results] == ["assigned", "error", "error", "queued"]
        assert results[1].error_code == "already_in_factory"
        assert results[2].error_code == "order_not_found"
        assert results[2].order_id == missing
        fresh.refresh_from_db()
        assert fresh.status == OrderStatus.IN_PROGRESS

    def test_queue_positions_follow_request_order(self, service, make_order):
        orders = [make_order() for _ in range(3)]

        results = service.send_batch_to_factory([o.id for o in orders])

        assert [r.queue_position for r in results] == [1, 2, 3]


# ---------------------------------------------------------------------------
# Work at a department
# ---------------------------------------------------------------------------


class TestDepartmentWork:
    def test_start_requires_a_worker(self, service, make_order):
        order = make_order()
        service.enter_factory(order.id)
        with pytest.raises(InvalidStateError):
            service.start_work(order.id)

    def test_complete_keeps_order_at_department(
        self, service, make_worker, place_at, supervisor
    ):
        order, entry = place_at(Department.CASTING, worker=make_worker(Department.CASTING))

        closed = service.complete_current(
            order.id,
            CompleteDepartmentDTO(notes="cast ok", work_data={"photos": ["a.jpg"]}),
            completed_by=supervisor,
        )

        assert closed.status == TrackingStatus.COMPLETED
        assert closed.exited_at is not None
        assert closed.work_data == {"photos": ["a.jpg"]}
        order.refresh_from_db()
        assert order.current_department == Department.CASTING

    def test_saved_draft_survives_until_completion(self, service, make_worker, make_order):
        make_worker(Department.CAD)
        order = make_order()
        service.enter_factory(order.id)

        draft = service.save_progress(
            order.id, SaveProgressDTO(work_data={"cad_file": "pendant-v1.stl"})
        )
        assert draft.status == TrackingStatus.IN_PROGRESS
        assert draft.is_open

        closed = service.complete_current(
            order.id, CompleteDepartmentDTO(work_data={"cad_file": "pendant-v2.stl"})
        )
        assert closed.work_data == {"cad_file": "pendant-v2.stl"}

    def test_save_progress_on_queued_order(self, service, make_order):
        order = make_order()
        service.enter_factory(order.id)
        with pytest.raises(UnassignedEntryError):
            service.save_progress(order.id, SaveProgressDTO(work_data={}))

    def test_save_progress_outside_factory(self, service, make_order):
        with pytest.raises(NoOpenEntryError):
            service.save_progress(make_order().id, SaveProgressDTO(work_data={}))

    def test_advance_before_completion(self, service, make_worker, place_at):
        order, _ = place_at(Department.CAD, worker=make_worker(Department.CAD))
        with pytest.raises(InvalidStateError):
            service.advance(order.id)

    def test_advance_without_department(self, service, make_order):
        order = make_order()
        with pytest.raises(NoOpenEntryError):
            service.advance(order.id)

    def test_advance_opens_next_department(self, service, make_worker, place_at):
        order, _ = place_at(Department.CAD, worker=make_worker(Department.CAD))
        print_worker = make_worker(Department.PRINT)
        service.complete_current(order.id, DONE)

        result = service.advance(order.id)

        assert result.completed is False
        assert result.from_department == Department.CAD
        assert result.next_department == Department.PRINT
        assert result.assignment.worker_id == print_worker.id
        order.refresh_from_db()
        assert order.current_department == Department.PRINT
        next_entry = DepartmentTracking.objects.get(order=order, exited_at__isnull=True)
        assert next_entry.sequence_order == 2

    def test_polish_2_moves_to_additional(self, service, make_worker, place_at):
        order, _ = place_at(Department.POLISH_2, worker=make_worker(Department.POLISH_2))

        result = service.complete_and_advance(order.id, DONE)

        assert result.next_department == Department.ADDITIONAL
        assert result.assignment.queued is True

    def test_additional_is_terminal(self, service, make_worker, place_at):
        order, _ = place_at(
            Department.ADDITIONAL, worker=make_worker(Department.ADDITIONAL)
        )

        result = service.complete_and_advance(order.id, DONE)

        assert result.completed is True
        assert result.next_department is None
        assert result.assignment is None
        order.refresh_from_db()
        assert order.status == OrderStatus.COMPLETED
        assert order.current_department is None
        assert order.completed_at is not None
        assert not DepartmentTracking.objects.filter(
            order=order, exited_at__isnull=True
        ).exists()
        assert OutboxEvent.objects.filter(event_type="OrderCompleted").count() == 1

    def test_finished_worker_serves_the_queue(
        self, capped_service, make_order, make_worker, place_at
    ):
        worker = make_worker(Department.CAD)
        order, _ = place_at(Department.CAD, worker=worker)
        waiting = make_order()
        assert capped_service.enter_factory(waiting.id).queued is True

        result = capped_service.complete_and_advance(order.id, DONE)

        assert [d.order_id for d in result.dispatched] == [waiting.id]
        assert result.dispatched[0].worker_id == worker.id
        assert not QueueEntry.objects.filter(order=waiting).exists()

    def test_full_route_through_every_department(
        self, service, make_order, make_worker
    ):
        for department in DEPARTMENT_SEQUENCE:
            make_worker(department)
        order = make_order()
        service.enter_factory(order.id)

        visited = []
        result = None
        for _ in DEPARTMENT_SEQUENCE:
            result = _work_through(service, order)
            visited.append(result.from_department)

        assert visited == list(DEPARTMENT_SEQUENCE)
        assert result.completed is True
        statuses = DepartmentTracking.objects.filter(order=order).values_list(
            "status", flat=True
        )
        assert list(statuses) == [TrackingStatus.COMPLETED] * 9


class TestSkip:
    def test_skip_waiting_department(self, service, make_order, make_worker):
        order = make_order()
        service.enter_factory(order.id)
        make_worker(Department.PRINT)

        result = service.skip_current(order.id, notes="design supplied by customer")

        assert result.from_department == Department.CAD
        assert result.assignment.assigned is True
        assert not QueueEntry.objects.filter(order=order).exists()
        skipped = DepartmentTracking.objects.get(order=order, department=Department.CAD)
        assert skipped.status == TrackingStatus.SKIPPED
        assert skipped.notes == "design supplied by customer"

    def test_cannot_skip_started_work(self, service, make_worker, place_at):
        order, _ = place_at(Department.CAD, worker=make_worker(Department.CAD))
        with pytest.raises(InvalidStateError):
            service.skip_current(order.id)

    def test_skipped_departments_count_in_progress(self, service, make_order):
        order = make_order()
        service.enter_factory(order.id)
        service.skip_current(order.id)

        progress = service.get_order_progress(order.id)

        assert progress.skipped_departments == 1
        assert progress.completed_departments == 0


# ---------------------------------------------------------------------------
# Manual assignment and workers
# ---------------------------------------------------------------------------


class TestManualAssignment:
    def test_assign_waiting_order(self, service, make_order, make_worker, supervisor):
        order = make_order()
        service.enter_factory(order.id)
        worker = make_worker(Department.CAD, is_active=True)

        outcome = service.assign_worker(order.id, worker.id, assigned_by=supervisor)

        assert outcome.worker_id == worker.id
        entry = DepartmentTracking.objects.get(order=order)
        assert entry.assigned_by == supervisor
        assert not QueueEntry.objects.exists()

    def test_hand_over_started_work(self, service, make_worker, place_at):
        first = make_worker(Department.MEENA)
        second = make_worker(Department.MEENA)
        order, entry = place_at(Department.MEENA, worker=first)

        service.assign_worker(order.id, second.id)

        entry.refresh_from_db()
        assert entry.assigned_worker == second
        assert entry.status == TrackingStatus.IN_PROGRESS

    def test_unknown_worker(self, service, make_order):
        order = make_order()
        service.enter_factory(order.id)
        with pytest.raises(WorkerNotFound):
            service.assign_worker(order.id, uuid.uuid4())


class TestWorkers:
    def test_registering_a_worker_serves_the_queue(self, service, make_order):
        order = make_order()
        service.enter_factory(order.id)

        worker = service.register_worker(
            RegisterWorkerDTO(employee_code="CAD-77", name="Meera Iyer", department="cad")
        )

        entry = DepartmentTracking.objects.get(order=order)
        assert entry.assigned_worker == worker
        assert entry.status == TrackingStatus.ASSIGNED

    def test_deactivated_worker_keeps_assignments(
        self, service, make_order, make_worker
    ):
        worker = make_worker(Department.CAD)
        order = make_order()
        service.enter_factory(order.id)

        service.set_worker_active(worker.id, False)

        entry = DepartmentTracking.objects.get(order=order)
        assert entry.assigned_worker == worker
        assert service.enter_factory(make_order().id).queued is True

    def test_reactivation_dispatches(self, service, make_order, make_worker):
        worker = make_worker(Department.CAD, is_active=False)
        order = make_order()
        service.enter_factory(order.id)

        service.set_worker_active(worker.id, True)

        assert DepartmentTracking.objects.get(order=order).assigned_worker == worker

    def test_worker_assignments_list_held_orders(self, service, make_worker, place_at):
        worker = make_worker(Department.MEENA)
        held, _ = place_at(Department.MEENA, worker=worker)
        place_at(Department.MEENA, worker=worker, status=TrackingStatus.COMPLETED)
        place_at(Department.MEENA, worker=make_worker(Department.MEENA))

        workload = service.get_worker_assignments(worker.id)

        assert workload.worker.active_assignments == 1
        assert [card.order_id for card in workload.assignments] == [held.id]
        assert workload.assignments[0].worker_id == worker.id

    def test_worker_assignments_unknown_worker(self, service):
        with pytest.raises(WorkerNotFound):
            service.get_worker_assignments(uuid.uuid4())

    def test_dispatch_unknown_department(self, service):
        with pytest.raises(UnknownDepartment):
            service.dispatch_queue("ENGRAVING")


# ---------------------------------------------------------------------------
# Read models
# ---------------------------------------------------------------------------


class TestReadModels:
    def test_departments_in_production_order(self, service, make_worker):
        make_worker(Department.SETTING)

        summaries = service.list_departments()

        assert [s.code for s in summaries] == list(DEPARTMENT_SEQUENCE)
        assert [s.sequence_order for s in summaries] == list(range(1, 10))
        setting = summaries[6]
        assert setting.name == "Stone Setting"
        assert setting.active_workers == 1

    def test_board_accounts_for_every_order_at_department(
        self, capped_service, make_order, make_worker
    ):
        make_worker(Department.CAD)
        orders = [make_order() for _ in range(3)]
        capped_service.send_batch_to_factory([o.id for o in orders])

        board = capped_service.get_department_board(Department.CAD)

        assert [card.status for card in board] == [
            TrackingStatus.PENDING_ASSIGNMENT,
            TrackingStatus.PENDING_ASSIGNMENT,
            TrackingStatus.ASSIGNED,
        ]
        assert [card.queue_position for card in board] == [1, 2, None]
        assert [card.order_id for card in board] == [
            orders[1].id,
            orders[2].id,
            orders[0].id,
        ]
        queued = QueueEntry.objects.filter(queue__department=Department.CAD).count()
        working = sum(
            1
            for card in board
            if card.status in (TrackingStatus.ASSIGNED, TrackingStatus.IN_PROGRESS)
        )
        at_department = sum(
            1 for o in orders if capped_service.get_order(o.id).current_department == "CAD"
        )
        assert queued + working == at_department == 3

    def test_board_flags_overdue_orders(self, service, place_at):
        place_at(Department.FILLING, due_date="2000-01-01")

        board = service.get_department_board(Department.FILLING)

        assert board[0].is_overdue is True

    def test_order_progress(self, service, make_order, make_worker):
        make_worker(Department.CAD)
        make_worker(Department.PRINT)
        order = make_order()
        service.enter_factory(order.id)
        _work_through(service, order)
        _work_through(service, order)

        progress = service.get_order_progress(order.id)

        assert progress.completed_departments == 2
        assert progress.completion_percentage == 22
        assert progress.current_department == Department.CASTING
        assert [v.department for v in progress.departments] == [
            Department.CAD,
            Department.PRINT,
            Department.CASTING,
        ]
        assert progress.departments[0].duration_hours is not None
        assert progress.departments[2].duration_hours is None

"""Factory API views.

Exposes the ``FactoryService`` via HTTP using DRF ViewSets.
Routing exceptions are caught and translated into HTTP status codes
by ``_error_response``; the view never swallows generic exceptions.
"""

from __future__ import annotations

from typing import Any

from django_filters.rest_framework import DjangoFilterBackend
from pydantic import ValidationError as PydanticValidationError
from rest_framework import status
from rest_framework.decorators import action
from rest_framework.filters import OrderingFilter, SearchFilter
from rest_framework.mixins import ListModelMixin
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.throttling import BaseThrottle
from rest_framework.viewsets import GenericViewSet, ViewSet

from modules.core.pagination import StandardResultsSetPagination
from modules.factory.dtos import (
    CompleteDepartmentDTO,
    CreateOrderDTO,
    RegisterWorkerDTO,
    SaveProgressDTO,
    SendToFactoryDTO,
    WorkerLoadDTO,
)
from modules.factory.exceptions import (
    AlreadyInFactoryError,
    ConcurrentModificationError,
    DuplicateOpenEntryError,
    FactoryError,
    OrderNotFound,
    UnknownDepartment,
    WorkerNotFound,
)
from modules.factory.filters import OrderFilter, WorkerFilter
from modules.factory.models import Order, Worker
from modules.factory.serializers import (
    AssignWorkerSerializer,
    CompleteDepartmentSerializer,
    CreateOrderSerializer,
    OrderSerializer,
    RegisterWorkerSerializer,
    SaveProgressSerializer,
    SendToFactorySerializer,
    SkipDepartmentSerializer,
    TrackingEntrySerializer,
    WorkerSerializer,
)
from modules.factory.services import build_factory_service

_NOT_FOUND = (OrderNotFound, WorkerNotFound, UnknownDepartment)
_CONFLICT = (
    AlreadyInFactoryError,
    DuplicateOpenEntryError,
    ConcurrentModificationError,
)


def _error_response(exc: FactoryError) -> Response:
    """404 for unknown resources, 409 for conflicts, 400 otherwise."""
    if isinstance(exc, _NOT_FOUND):
        http_status = status.HTTP_404_NOT_FOUND
    elif isinstance(exc, _CONFLICT):
        http_status = status.HTTP_409_CONFLICT
    else:
        http_status = status.HTTP_400_BAD_REQUEST
    return Response({"detail": str(exc), "code": exc.code}, status=http_status)


def _actor(request: Request) -> Any:
    user = request.user
    return user if user and user.is_authenticated else None


class FactoryOrderViewSet(GenericViewSet):
    """Order intake and routing through the departments.

    Does **not** extend ``ModelViewSet``: all ORM access goes through the
    service/repository layer.
    """

    queryset = Order.objects.all()
    filterset_class = OrderFilter
    search_fields = ["order_number", "customer_name"]
    ordering_fields = ["created_at", "due_date", "priority", "status"]
    ordering = ["-created_at", "-id"]
    filter_backends = [DjangoFilterBackend, SearchFilter, OrderingFilter]

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._service = build_factory_service()

    def get_throttles(self) -> list[BaseThrottle]:
        self.throttle_scope = (
            "factory_dispatch" if self.action == "send_to_factory" else None
        )
        return super().get_throttles()

    def get_queryset(self):
        return self._service.list_orders()

    # ------------------------------------------------------------------
    # Intake / read
    # ------------------------------------------------------------------

    def create(self, request: Request) -> Response:
        """POST /api/v1/factory/orders/"""
        serializer = CreateOrderSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            dto = CreateOrderDTO(**serializer.validated_data)
        except PydanticValidationError as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_400_BAD_REQUEST)

        order = self._service.create_order(dto)
        return Response(OrderSerializer(order).data, status=status.HTTP_201_CREATED)

    def list(self, request: Request) -> Response:
        """GET /api/v1/factory/orders/"""
        queryset = self.filter_queryset(self.get_queryset())
        paginator = StandardResultsSetPagination()
        page = paginator.paginate_queryset(queryset, request)
        serializer = OrderSerializer(page, many=True)
        return paginator.get_paginated_response(serializer.data)

    def retrieve(self, request: Request, pk: str | None = None) -> Response:
        """GET /api/v1/factory/orders/{pk}/"""
        try:
            order = self._service.get_order(str(pk))
        except FactoryError as exc:
            return _error_response(exc)
        return Response(OrderSerializer(order).data)

    @action(detail=False, methods=["post"], url_path="send-to-factory")
    def send_to_factory(self, request: Request) -> Response:
        """POST /api/v1/factory/orders/send-to-factory/

        Each order is processed independently; the response lists one
        result per requested order, in request order.
        """
        serializer = SendToFactorySerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            dto = SendToFactoryDTO(order_ids=serializer.validated_data["order_ids"])
        except PydanticValidationError as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_400_BAD_REQUEST)

        results = self._service.send_batch_to_factory(
            dto.order_ids, performed_by=_actor(request)
        )
        return Response(
            {
                "results": [r.model_dump(mode="json") for r in results],
                "sent": sum(1 for r in results if r.outcome != "error"),
                "failed": sum(1 for r in results if r.outcome == "error"),
            }
        )

    # ------------------------------------------------------------------
    # Department work
    # ------------------------------------------------------------------

    @action(detail=True, methods=["post"])
    def start(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/factory/orders/{pk}/start/"""
        try:
            entry = self._service.start_work(pk)
        except FactoryError as exc:
            return _error_response(exc)
        return Response(TrackingEntrySerializer(entry).data)

    @action(detail=True, methods=["post"])
    def complete(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/factory/orders/{pk}/complete/

        With ``{"advance": true}`` the order also moves on to the next
        department in the same transaction.
        """
        serializer = CompleteDepartmentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = dict(serializer.validated_data)
        advance = data.pop("advance")
        dto = CompleteDepartmentDTO(**data)

        try:
            if advance:
                result = self._service.complete_and_advance(
                    pk, dto, completed_by=_actor(request)
                )
                return Response(result.model_dump(mode="json"))
            entry = self._service.complete_current(
                pk, dto, completed_by=_actor(request)
            )
        except FactoryError as exc:
            return _error_response(exc)
        return Response(TrackingEntrySerializer(entry).data)

    @action(detail=True, methods=["post"], url_path="save-progress")
    def save_progress(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/factory/orders/{pk}/save-progress/

        Stores draft work data on the open entry.  The first save of an
        ASSIGNED entry starts it.
        """
        serializer = SaveProgressSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        dto = SaveProgressDTO(**serializer.validated_data)
        try:
            entry = self._service.save_progress(pk, dto)
        except FactoryError as exc:
            return _error_response(exc)
        return Response(TrackingEntrySerializer(entry).data)

    @action(detail=True, methods=["post"])
    def advance(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/factory/orders/{pk}/advance/"""
        try:
            result = self._service.advance(pk, performed_by=_actor(request))
        except FactoryError as exc:
            return _error_response(exc)
        return Response(result.model_dump(mode="json"))

    @action(detail=True, methods=["post"])
    def assign(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/factory/orders/{pk}/assign/"""
        serializer = AssignWorkerSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            outcome = self._service.assign_worker(
                pk,
                serializer.validated_data["worker_id"],
                assigned_by=_actor(request),
            )
        except FactoryError as exc:
            return _error_response(exc)
        return Response(outcome.model_dump(mode="json"))

    @action(detail=True, methods=["post"])
    def skip(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/factory/orders/{pk}/skip/"""
        serializer = SkipDepartmentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            result = self._service.skip_current(
                pk,
                performed_by=_actor(request),
                notes=serializer.validated_data.get("notes"),
            )
        except FactoryError as exc:
            return _error_response(exc)
        return Response(result.model_dump(mode="json"))

    # ------------------------------------------------------------------
    # Read models
    # ------------------------------------------------------------------

    @action(detail=True, methods=["get"])
    def progress(self, request: Request, pk: str | None = None) -> Response:
        """GET /api/v1/factory/orders/{pk}/progress/"""
        try:
            progress = self._service.get_order_progress(pk)
        except FactoryError as exc:
            return _error_response(exc)
        return Response(progress.model_dump(mode="json"))


class DepartmentViewSet(ViewSet):
    """Department overview, Kanban boards and queue dispatch."""

    lookup_field = "code"
    lookup_value_regex = "[A-Za-z0-9_]+"

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._service = build_factory_service()

    def get_throttles(self) -> list[BaseThrottle]:
        self.throttle_scope = (
            "factory_dispatch" if self.action == "dispatch_queue" else None
        )
        return super().get_throttles()

    def list(self, request: Request) -> Response:
        """GET /api/v1/factory/departments/"""
        summaries = self._service.list_departments()
        return Response([s.model_dump(mode="json") for s in summaries])

    @action(detail=True, methods=["get"])
    def board(self, request: Request, code: str | None = None) -> Response:
        """GET /api/v1/factory/departments/{code}/board/"""
        try:
            board = self._service.get_department_board(str(code).upper())
        except FactoryError as exc:
            return _error_response(exc)
        return Response([card.model_dump(mode="json") for card in board])

    @action(detail=True, methods=["get"])
    def workers(self, request: Request, code: str | None = None) -> Response:
        """GET /api/v1/factory/departments/{code}/workers/"""
        include_inactive = request.query_params.get("include_inactive") == "true"
        try:
            workers = self._service.directory.workers_in(
                str(code).upper(), include_inactive=include_inactive
            )
        except FactoryError as exc:
            return _error_response(exc)
        return Response(
            [WorkerLoadDTO.from_entity(w).model_dump(mode="json") for w in workers]
        )

    @action(detail=True, methods=["post"], url_path="dispatch")
    def dispatch_queue(self, request: Request, code: str | None = None) -> Response:
        """POST /api/v1/factory/departments/{code}/dispatch/"""
        try:
            outcomes = self._service.dispatch_queue(str(code).upper())
        except FactoryError as exc:
            return _error_response(exc)
        return Response(
            {
                "department": str(code).upper(),
                "dispatched": [o.model_dump(mode="json") for o in outcomes],
            }
        )


class WorkerViewSet(ListModelMixin, GenericViewSet):
    """Worker roster: registration and activation."""

    queryset = Worker.objects.all()
    serializer_class = WorkerSerializer
    filterset_class = WorkerFilter
    search_fields = ["employee_code", "name"]
    ordering_fields = ["employee_code", "name", "department"]
    filter_backends = [DjangoFilterBackend, SearchFilter, OrderingFilter]
    pagination_class = StandardResultsSetPagination

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._service = build_factory_service()

    def get_queryset(self):
        return self._service.list_workers()

    def create(self, request: Request) -> Response:
        """POST /api/v1/factory/workers/"""
        serializer = RegisterWorkerSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            dto = RegisterWorkerDTO(**serializer.validated_data)
        except PydanticValidationError as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_400_BAD_REQUEST)

        if Worker.objects.filter(employee_code=dto.employee_code).exists():
            return Response(
                {"detail": f"Employee code {dto.employee_code} is already in use."},
                status=status.HTTP_409_CONFLICT,
            )
        worker = self._service.register_worker(dto)
        return Response(WorkerSerializer(worker).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=["get"])
    def assignments(self, request: Request, pk: str | None = None) -> Response:
        """GET /api/v1/factory/workers/{pk}/assignments/"""
        try:
            workload = self._service.get_worker_assignments(pk)
        except FactoryError as exc:
            return _error_response(exc)
        return Response(workload.model_dump(mode="json"))

    @action(detail=True, methods=["post"])
    def activate(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/factory/workers/{pk}/activate/"""
        return self._set_active(pk, True)

    @action(detail=True, methods=["post"])
    def deactivate(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/factory/workers/{pk}/deactivate/"""
        return self._set_active(pk, False)

    def _set_active(self, pk: str | None, active: bool) -> Response:
        try:
            worker = self._service.set_worker_active(pk, active)
        except FactoryError as exc:
            return _error_response(exc)
        return Response(WorkerSerializer(worker).data)

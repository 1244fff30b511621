"""Factory DRF serializers for API input/output.

Input serializers validate request payloads; views convert their
``validated_data`` into Pydantic DTOs for the Service Layer.  Engine
results (assignment outcomes, boards, progress) are DTOs and are
rendered with ``model_dump(mode="json")`` instead of serializers.
"""

from __future__ import annotations

from rest_framework import serializers

from modules.factory.constants import Department, OrderPriority
from modules.factory.models import DepartmentTracking, Order, Worker

# ---------------------------------------------------------------------------
# Input Serializers
# ---------------------------------------------------------------------------


class CreateOrderSerializer(serializers.Serializer):
    customer_name = serializers.CharField(max_length=255)
    priority = serializers.ChoiceField(
        choices=OrderPriority.choices, default=OrderPriority.NORMAL
    )
    due_date = serializers.DateField(required=False, allow_null=True, default=None)
    notes = serializers.CharField(required=False, default="", allow_blank=True)


class SendToFactorySerializer(serializers.Serializer):
    order_ids = serializers.ListField(
        child=serializers.UUIDField(), allow_empty=False, max_length=200
    )


class CompleteDepartmentSerializer(serializers.Serializer):
    notes = serializers.CharField(required=False, allow_blank=True)
    issues = serializers.CharField(required=False, allow_blank=True)
    work_data = serializers.DictField(required=False)
    advance = serializers.BooleanField(required=False, default=False)


class SaveProgressSerializer(serializers.Serializer):
    work_data = serializers.DictField()
    notes = serializers.CharField(required=False, allow_blank=True)


class AssignWorkerSerializer(serializers.Serializer):
    worker_id = serializers.UUIDField()


class SkipDepartmentSerializer(serializers.Serializer):
    notes = serializers.CharField(required=False, allow_blank=True)


class RegisterWorkerSerializer(serializers.Serializer):
    employee_code = serializers.CharField(max_length=32)
    name = serializers.CharField(max_length=255)
    department = serializers.ChoiceField(choices=Department.choices)
    is_active = serializers.BooleanField(required=False, default=True)


# ---------------------------------------------------------------------------
# Output Serializers (Read)
# ---------------------------------------------------------------------------


class OrderSerializer(serializers.ModelSerializer):
    """Read serializer for orders."""

    class Meta:
        model = Order
        fields = [
            "id",
            "order_number",
            "customer_name",
            "priority",
            "due_date",
            "status",
            "current_department",
            "notes",
            "completed_at",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class TrackingEntrySerializer(serializers.ModelSerializer):
    """Read serializer for a single department visit."""

    assigned_worker_name = serializers.CharField(
        source="assigned_worker.name", read_only=True, default=None
    )

    class Meta:
        model = DepartmentTracking
        fields = [
            "id",
            "order_id",
            "department",
            "sequence_order",
            "status",
            "assigned_worker_id",
            "assigned_worker_name",
            "entered_at",
            "assigned_at",
            "started_at",
            "exited_at",
            "notes",
            "issues",
            "work_data",
            "version",
        ]
        read_only_fields = fields


class WorkerSerializer(serializers.ModelSerializer):
    """Read serializer for workers, with load when annotated."""

    active_assignments = serializers.IntegerField(read_only=True, default=0)

    class Meta:
        model = Worker
        fields = [
            "id",
            "employee_code",
            "name",
            "department",
            "is_active",
            "active_assignments",
            "created_at",
        ]
        read_only_fields = fields

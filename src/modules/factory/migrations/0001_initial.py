import django.db.models.deletion
import django.utils.timezone
import uuid6
from django.conf import settings
from django.db import migrations, models

DEPARTMENT_CHOICES = [
    ("CAD", "CAD Design"),
    ("PRINT", "3D Printing"),
    ("CASTING", "Casting"),
    ("FILLING", "Filling"),
    ("MEENA", "Meena Work"),
    ("POLISH_1", "First Polish"),
    ("SETTING", "Stone Setting"),
    ("POLISH_2", "Final Polish"),
    ("ADDITIONAL", "Additional Work"),
]


def _base_fields():
    return [
        (
            "id",
            models.UUIDField(
                default=uuid6.uuid7,
                editable=False,
                primary_key=True,
                serialize=False,
            ),
        ),
        ("created_at", models.DateTimeField(auto_now_add=True)),
        ("updated_at", models.DateTimeField(auto_now=True)),
    ]


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Order",
            fields=[
                *_base_fields(),
                (
                    "deleted_at",
                    models.DateTimeField(
                        blank=True, db_index=True, default=None, null=True
                    ),
                ),
                (
                    "order_number",
                    models.CharField(editable=False, max_length=32, unique=True),
                ),
                ("customer_name", models.CharField(max_length=255)),
                ("notes", models.TextField(blank=True, default="")),
                (
                    "priority",
                    models.CharField(
                        choices=[
                            ("LOW", "Low"),
                            ("NORMAL", "Normal"),
                            ("HIGH", "High"),
                            ("URGENT", "Urgent"),
                        ],
                        default="NORMAL",
                        max_length=10,
                    ),
                ),
                ("due_date", models.DateField(blank=True, null=True)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("DRAFT", "Draft"),
                            ("PENDING", "Pending"),
                            ("IN_PROGRESS", "In Progress"),
                            ("QUALITY_CHECK", "Quality Check"),
                            ("COMPLETED", "Completed"),
                            ("DELIVERED", "Delivered"),
                            ("CANCELLED", "Cancelled"),
                        ],
                        default="DRAFT",
                        max_length=20,
                    ),
                ),
                (
                    "current_department",
                    models.CharField(
                        blank=True, choices=DEPARTMENT_CHOICES, max_length=20, null=True
                    ),
                ),
                ("completed_at", models.DateTimeField(blank=True, null=True)),
            ],
            options={
                "db_table": "factory_orders",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["status"], name="factory_orders_status_idx"),
                    models.Index(
                        fields=["current_department"], name="factory_orders_dept_idx"
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="Worker",
            fields=[
                *_base_fields(),
                ("employee_code", models.CharField(max_length=32, unique=True)),
                ("name", models.CharField(max_length=255)),
                (
                    "department",
                    models.CharField(choices=DEPARTMENT_CHOICES, max_length=20),
                ),
                ("is_active", models.BooleanField(default=True)),
                (
                    "user",
                    models.OneToOneField(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="factory_worker",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "db_table": "factory_workers",
                "ordering": ["department", "employee_code"],
                "indexes": [
                    models.Index(
                        fields=["department", "is_active"],
                        name="factory_workers_dept_idx",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="DepartmentQueue",
            fields=[
                *_base_fields(),
                (
                    "department",
                    models.CharField(
                        choices=DEPARTMENT_CHOICES, max_length=20, unique=True
                    ),
                ),
            ],
            options={
                "db_table": "factory_department_queues",
                "ordering": ["department"],
            },
        ),
        migrations.CreateModel(
            name="DepartmentTracking",
            fields=[
                *_base_fields(),
                (
                    "department",
                    models.CharField(choices=DEPARTMENT_CHOICES, max_length=20),
                ),
                ("sequence_order", models.PositiveSmallIntegerField()),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("PENDING_ASSIGNMENT", "Pending Assignment"),
                            ("ASSIGNED", "Assigned"),
                            ("IN_PROGRESS", "In Progress"),
                            ("COMPLETED", "Completed"),
                            ("SKIPPED", "Skipped"),
                        ],
                        default="PENDING_ASSIGNMENT",
                        max_length=20,
                    ),
                ),
                (
                    "entered_at",
                    models.DateTimeField(default=django.utils.timezone.now),
                ),
                ("assigned_at", models.DateTimeField(blank=True, null=True)),
                ("started_at", models.DateTimeField(blank=True, null=True)),
                ("exited_at", models.DateTimeField(blank=True, null=True)),
                ("notes", models.TextField(blank=True, default="")),
                ("issues", models.TextField(blank=True, default="")),
                ("work_data", models.JSONField(blank=True, default=dict)),
                ("version", models.PositiveIntegerField(default=1)),
                (
                    "order",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="department_tracking",
                        to="factory.order",
                    ),
                ),
                (
                    "assigned_worker",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="assignments",
                        to="factory.worker",
                    ),
                ),
                (
                    "assigned_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="+",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "completed_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="+",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "db_table": "factory_department_tracking",
                "ordering": ["entered_at", "id"],
                "indexes": [
                    models.Index(
                        fields=["department", "exited_at"],
                        name="dept_tracking_dept_open_idx",
                    ),
                    models.Index(
                        fields=["assigned_worker", "status"],
                        name="dept_tracking_worker_idx",
                    ),
                    models.Index(
                        fields=["order", "entered_at"],
                        name="dept_tracking_order_idx",
                    ),
                ],
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(exited_at__isnull=True),
                        fields=("order",),
                        name="dept_tracking_one_open_per_order",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(
                            sequence_order__gte=1, sequence_order__lte=9
                        ),
                        name="dept_tracking_sequence_range",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="QueueEntry",
            fields=[
                *_base_fields(),
                (
                    "enqueued_at",
                    models.DateTimeField(default=django.utils.timezone.now),
                ),
                (
                    "queue",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="entries",
                        to="factory.departmentqueue",
                    ),
                ),
                (
                    "tracking",
                    models.OneToOneField(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="queue_entry",
                        to="factory.departmenttracking",
                    ),
                ),
                (
                    "order",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="queue_entries",
                        to="factory.order",
                    ),
                ),
            ],
            options={
                "db_table": "factory_queue_entries",
                "ordering": ["enqueued_at", "id"],
                "indexes": [
                    models.Index(
                        fields=["queue", "enqueued_at"],
                        name="factory_queue_fifo_idx",
                    ),
                ],
            },
        ),
    ]

import django_filters

from modules.factory.constants import Department
from modules.factory.models import Order, Worker


class OrderFilter(django_filters.FilterSet):
    status = django_filters.CharFilter(field_name="status", lookup_expr="iexact")
    priority = django_filters.CharFilter(field_name="priority", lookup_expr="iexact")
    department = django_filters.ChoiceFilter(
        field_name="current_department", choices=Department.choices
    )
    due_before = django_filters.DateFilter(field_name="due_date", lookup_expr="lte")
    due_after = django_filters.DateFilter(field_name="due_date", lookup_expr="gte")
    customer = django_filters.CharFilter(
        field_name="customer_name", lookup_expr="icontains"
    )

    class Meta:
        model = Order
        fields = [
            "status",
            "priority",
            "department",
            "due_before",
            "due_after",
            "customer",
        ]


class WorkerFilter(django_filters.FilterSet):
    department = django_filters.ChoiceFilter(choices=Department.choices)
    is_active = django_filters.BooleanFilter()

    class Meta:
        model = Worker
        fields = ["department", "is_active"]

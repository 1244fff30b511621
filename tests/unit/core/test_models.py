"""Unit tests for BaseModel and SoftDeleteModel.

Exercised through the concrete factory models: ``Worker`` (BaseModel)
and ``Order`` (SoftDeleteModel).
"""

from __future__ import annotations

import uuid

import pytest
from django.utils import timezone
from freezegun import freeze_time

from modules.core.models import SoftDeleteManager, SoftDeleteQuerySet
from modules.factory.models import Order

pytestmark = pytest.mark.unit


# ---------------------------------------------------------------------------
# BaseModel
# ---------------------------------------------------------------------------


class TestBaseModel:
    """UUIDv7 primary key and timestamp bookkeeping."""

    def test_id_is_uuid_version_7(self, make_worker):
        worker = make_worker()
        assert isinstance(worker.id, uuid.UUID)
        assert worker.id.version == 7

    def test_ids_are_time_ordered(self, make_worker):
        """Later rows sort after earlier ones, so ``id`` breaks timestamp ties."""
        first = make_worker()
        second = make_worker()
        assert first.id < second.id

    def test_timestamps_set_on_create(self, make_worker):
        worker = make_worker()
        assert worker.created_at is not None
        assert worker.updated_at is not None

    def test_save_with_update_fields_refreshes_updated_at(self, make_worker):
        with freeze_time("2026-03-01 09:00:00"):
            worker = make_worker()
        with freeze_time("2026-03-01 10:00:00"):
            worker.is_active = False
            worker.save(update_fields=["is_active"])
        worker.refresh_from_db()
        assert worker.updated_at > worker.created_at
        assert worker.is_active is False

    def test_id_is_not_editable(self):
        assert Order._meta.get_field("id").editable is False


# ---------------------------------------------------------------------------
# SoftDeleteModel
# ---------------------------------------------------------------------------


class TestSoftDeleteModel:
    def test_new_instance_is_not_deleted(self, make_order):
        order = make_order()
        assert order.is_deleted is False
        assert order.deleted_at is None

    @freeze_time("2026-06-15 12:00:00")
    def test_delete_records_timestamp(self, make_order):
        order = make_order()
        result = order.delete()
        order.refresh_from_db()
        assert order.deleted_at == timezone.now()
        assert result == (1, {"factory.Order": 1})

    def test_delete_is_noop_if_already_deleted(self, make_order):
        order = make_order()
        order.delete()
        assert order.delete() == (0, {})

    def test_deleted_rows_stay_in_objects(self, make_order):
        order = make_order()
        order.delete()
        assert Order.objects.filter(pk=order.pk).exists()

    def test_alive_and_dead(self, make_order):
        alive = make_order()
        dead = make_order()
        dead.delete()
        assert list(Order.objects.alive().filter(pk__in=[alive.pk, dead.pk])) == [alive]
        assert list(Order.objects.dead()) == [dead]

    def test_manager_types(self):
        assert isinstance(Order.objects, SoftDeleteManager)
        assert isinstance(Order.objects.all(), SoftDeleteQuerySet)

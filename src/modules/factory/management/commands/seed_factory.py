from __future__ import annotations

import random
from datetime import timedelta

from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand
from django.utils import timezone

from modules.factory.constants import OrderPriority
from modules.factory.dtos import CreateOrderDTO
from modules.factory.models import Order, Worker
from modules.factory.sequence import all_departments
from modules.factory.services import build_factory_service

WORKER_NAMES = [
    "Aarav Mehta",
    "Diya Shah",
    "Kabir Soni",
    "Isha Patel",
    "Rohan Verma",
    "Ananya Joshi",
    "Vihaan Rao",
    "Meera Kapoor",
    "Arjun Nair",
    "Saanvi Gupta",
    "Reyansh Iyer",
    "Kiara Desai",
    "Aditya Kulkarni",
    "Myra Chopra",
    "Dhruv Malhotra",
    "Tara Menon",
    "Yash Pillai",
    "Riya Bhatt",
]

CUSTOMER_NAMES = [
    "Zaveri Jewellers",
    "Lakshmi Gold House",
    "Rajkot Ornaments",
    "Shree Diamonds",
    "Surat Gems & Co",
    "Kundan Kala",
    "Navratna Traders",
    "Heritage Bridal Sets",
]


class Command(BaseCommand):
    help = "Seed database with factory workers and sample orders."

    def add_arguments(self, parser):
        parser.add_argument(
            "--orders",
            type=int,
            default=12,
            help="Number of DRAFT orders to create.",
        )
        parser.add_argument(
            "--send",
            action="store_true",
            help="Send the created orders into the factory.",
        )

    def handle(self, *args, **options):
        random.seed(42)
        self.stdout.write("Seeding factory data...")

        users_created = self._seed_users()
        workers_created = self._seed_workers()
        orders = self._seed_orders(options["orders"])

        sent = 0
        if options["send"]:
            service = build_factory_service()
            results = service.send_batch_to_factory([order.id for order in orders])
            sent = sum(1 for r in results if r.outcome != "error")

        self.stdout.write(
            self.style.SUCCESS(
                "Seed completed: "
                f"users={users_created}, "
                f"workers={workers_created}, "
                f"orders={len(orders)}, "
                f"sent={sent}"
            )
        )

    def _seed_users(self) -> int:
        User = get_user_model()
        created = 0
        if not User.objects.filter(username="admin").exists():
            User.objects.create_superuser("admin", password="admin123")
            created += 1
        if not User.objects.filter(username="supervisor").exists():
            User.objects.create_user("supervisor", password="supervisor123", is_staff=True)
            created += 1
        return created

    def _seed_workers(self) -> int:
        self.stdout.write("Creating workers...")
        created = 0
        names = iter(WORKER_NAMES)
        for department in all_departments():
            for index in (1, 2):
                _, was_created = Worker.objects.get_or_create(
                    employee_code=f"{department.value}-{index:02d}",
                    defaults={
                        "name": next(names),
                        "department": department.value,
                        "is_active": True,
                    },
                )
                created += int(was_created)
        return created

    def _seed_orders(self, count: int) -> list[Order]:
        self.stdout.write("Creating orders...")
        service = build_factory_service()
        today = timezone.localdate()
        orders: list[Order] = []
        for _ in range(count):
            dto = CreateOrderDTO(
                customer_name=random.choice(CUSTOMER_NAMES),
                priority=random.choice(OrderPriority.values),
                due_date=today + timedelta(days=random.randint(3, 30)),
            )
            orders.append(service.create_order(dto))
        return orders

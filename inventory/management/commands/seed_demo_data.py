from datetime import timedelta

from django.core.management.base import BaseCommand, CommandError
from django.db import transaction
from django.utils import timezone

from common.exceptions import DomainError
from inventory import transfers
from inventory.models import Item, Lot, Movement, Warehouse

OPENING_STOCK_NOTE = "Opening stock"


class Command(BaseCommand):
    help = "Seed demo warehouses, items, lots and opening stock for local development."

    @staticmethod
    def _has_opening_entry(warehouse, lot):
        return Movement.objects.filter(
            origin_warehouse__isnull=True,
            destination_warehouse=warehouse,
            destination_lot=lot,
            note=OPENING_STOCK_NOTE,
        ).exists()

    def add_arguments(self, parser):
        parser.add_argument(
            "--responsible",
            required=True,
            help="Name recorded as responsible for the opening stock entries.",
        )

    def handle(self, *args, **options):
        responsible = (options.get("responsible") or "").strip()
        if not responsible:
            raise CommandError("--responsible must not be blank.")

        today = timezone.localdate()

        try:
            with transaction.atomic():
                central, _ = Warehouse.objects.get_or_create(
                    name="Central Warehouse",
                    defaults={"location": "Building A", "contact_email": "central@example.com", "is_active": True},
                )
                pharmacy, _ = Warehouse.objects.get_or_create(
                    name="Pharmacy",
                    defaults={"location": "Building B", "contact_email": "pharmacy@example.com", "is_active": True},
                )
                Warehouse.objects.get_or_create(name="Old Annex", defaults={"location": "Building C", "is_active": False})

                gloves, _ = Item.objects.get_or_create(
                    name="Nitrile gloves",
                    defaults={
                        "description": "Box of 100 disposable gloves",
                        "unit_of_measure": "box",
                        "minimum_quantity": 20,
                        "maximum_quantity": 200,
                        "reorder_point": 40,
                    },
                )
                saline, _ = Item.objects.get_or_create(
                    name="Saline solution 500ml",
                    defaults={"description": "Sodium chloride 0.9%", "unit_of_measure": "bottle", "reorder_point": 15},
                )

                opening_stock = [
                    (gloves, "GLV-2024-01", today - timedelta(days=90), today + timedelta(days=365), 120),
                    (saline, "SAL-2024-07", today - timedelta(days=200), today + timedelta(days=20), 60),
                    (saline, "SAL-2023-11", today - timedelta(days=400), today - timedelta(days=5), 8),
                ]

                created_entries = 0
                for item, lot_name, manufactured_on, expires_on, quantity in opening_stock:
                    lot, lot_created = Lot.objects.get_or_create(
                        item=item,
                        name=lot_name,
                        defaults={"manufactured_on": manufactured_on, "expires_on": expires_on, "quantity": quantity},
                    )
                    if not lot_created and self._has_opening_entry(central, lot):
                        continue
                    transfers.register_entry(
                        item_id=item.id,
                        destination_warehouse_id=central.id,
                        destination_lot_id=lot.id,
                        quantity=quantity,
                        responsible=responsible,
                        note=OPENING_STOCK_NOTE,
                    )
                    created_entries += 1
        except DomainError as exc:
            raise CommandError(exc.message)

        self.stdout.write(self.style.SUCCESS(f"Warehouses ready: {central.name}, {pharmacy.name}."))
        self.stdout.write(self.style.SUCCESS(f"Demo data seeded. Opening stock entries recorded: {created_entries}."))

import uuid

from django.db import migrations, models
import django.db.models.deletion


class Migration(migrations.Migration):
    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Item",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("name", models.CharField(max_length=100)),
                ("description", models.CharField(blank=True, default="", max_length=250)),
                ("unit_of_measure", models.CharField(blank=True, default="", max_length=20)),
                ("minimum_quantity", models.PositiveIntegerField(blank=True, null=True)),
                ("maximum_quantity", models.PositiveIntegerField(blank=True, null=True)),
                ("reorder_point", models.PositiveIntegerField(default=0)),
                ("is_active", models.BooleanField(default=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "indexes": [
                    models.Index(fields=["name"], name="item_name_idx"),
                    models.Index(fields=["is_active"], name="item_active_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="Warehouse",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("name", models.CharField(max_length=100, unique=True)),
                ("location", models.CharField(blank=True, default="", max_length=250)),
                ("contact_phone", models.CharField(blank=True, default="", max_length=20)),
                ("contact_email", models.EmailField(blank=True, default="", max_length=100)),
                ("is_active", models.BooleanField(default=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "indexes": [models.Index(fields=["is_active"], name="warehouse_active_idx")],
            },
        ),
        migrations.CreateModel(
            name="Lot",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("purchase_order_ref", models.CharField(blank=True, max_length=64, null=True)),
                ("name", models.CharField(max_length=50)),
                ("quantity", models.PositiveIntegerField(blank=True, null=True)),
                ("manufactured_on", models.DateField(blank=True, null=True)),
                ("expires_on", models.DateField(blank=True, null=True)),
                ("note", models.CharField(blank=True, default="", max_length=500)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "derived_from",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="derived_lots",
                        to="inventory.lot",
                    ),
                ),
                (
                    "item",
                    models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="lots", to="inventory.item"),
                ),
            ],
            options={
                "indexes": [models.Index(fields=["expires_on"], name="lot_expires_on_idx")],
            },
        ),
        migrations.CreateModel(
            name="StockLedgerEntry",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("quantity", models.PositiveIntegerField(default=0)),
                ("minimum_quantity", models.PositiveIntegerField(blank=True, null=True)),
                ("maximum_quantity", models.PositiveIntegerField(blank=True, null=True)),
                ("is_active", models.BooleanField(default=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "item",
                    models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="ledger_entries", to="inventory.item"),
                ),
                (
                    "lot",
                    models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="ledger_entries", to="inventory.lot"),
                ),
                (
                    "warehouse",
                    models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="ledger_entries", to="inventory.warehouse"),
                ),
            ],
            options={
                "indexes": [models.Index(fields=["warehouse", "item"], name="ledger_warehouse_item_idx")],
                "constraints": [
                    models.UniqueConstraint(fields=("warehouse", "item", "lot"), name="uniq_ledger_warehouse_item_lot"),
                    models.CheckConstraint(condition=models.Q(("quantity__gte", 0)), name="ledger_quantity_non_negative"),
                ],
            },
        ),
        migrations.CreateModel(
            name="Movement",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("quantity", models.PositiveIntegerField()),
                ("moved_at", models.DateTimeField()),
                ("responsible", models.CharField(max_length=100)),
                ("note", models.CharField(blank=True, default="", max_length=500)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "destination_lot",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="incoming_movements",
                        to="inventory.lot",
                    ),
                ),
                (
                    "destination_warehouse",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="incoming_movements",
                        to="inventory.warehouse",
                    ),
                ),
                (
                    "item",
                    models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="movements", to="inventory.item"),
                ),
                (
                    "origin_lot",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="outgoing_movements",
                        to="inventory.lot",
                    ),
                ),
                (
                    "origin_warehouse",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="outgoing_movements",
                        to="inventory.warehouse",
                    ),
                ),
            ],
            options={
                "ordering": ["-moved_at"],
                "indexes": [
                    models.Index(fields=["origin_warehouse", "moved_at"], name="movement_origin_moved_idx"),
                    models.Index(fields=["destination_warehouse", "moved_at"], name="movement_dest_moved_idx"),
                    models.Index(fields=["item", "moved_at"], name="movement_item_moved_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(condition=models.Q(("quantity__gt", 0)), name="movement_quantity_positive"),
                    models.CheckConstraint(
                        condition=models.Q(("origin_warehouse__isnull", False), ("destination_warehouse__isnull", False), _connector="OR"),
                        name="movement_has_origin_or_destination",
                    ),
                ],
            },
        ),
    ]

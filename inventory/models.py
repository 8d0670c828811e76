import uuid

from django.db import models
from django.db.models import Q

from inventory.exceptions import InvalidOperation


class Item(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=100)
    description = models.CharField(max_length=250, blank=True, default="")
    unit_of_measure = models.CharField(max_length=20, blank=True, default="")
    minimum_quantity = models.PositiveIntegerField(null=True, blank=True)
    maximum_quantity = models.PositiveIntegerField(null=True, blank=True)
    reorder_point = models.PositiveIntegerField(default=0)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [
            models.Index(fields=["name"], name="item_name_idx"),
            models.Index(fields=["is_active"], name="item_active_idx"),
        ]

    def __str__(self):
        return self.name


class Warehouse(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=100, unique=True)
    location = models.CharField(max_length=250, blank=True, default="")
    contact_phone = models.CharField(max_length=20, blank=True, default="")
    contact_email = models.EmailField(max_length=100, blank=True, default="")
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [
            models.Index(fields=["is_active"], name="warehouse_active_idx"),
        ]

    def __str__(self):
        return self.name


class Lot(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    item = models.ForeignKey(Item, on_delete=models.PROTECT, related_name="lots")
    purchase_order_ref = models.CharField(max_length=64, null=True, blank=True)
    name = models.CharField(max_length=50)
    # Nominal size of the batch; ledger rows hold the authoritative balances.
    quantity = models.PositiveIntegerField(null=True, blank=True)
    manufactured_on = models.DateField(null=True, blank=True)
    expires_on = models.DateField(null=True, blank=True)
    note = models.CharField(max_length=500, blank=True, default="")
    derived_from = models.ForeignKey(
        "self",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="derived_lots",
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        indexes = [
            models.Index(fields=["expires_on"], name="lot_expires_on_idx"),
        ]

    def __str__(self):
        return self.name


class StockLedgerEntry(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    warehouse = models.ForeignKey(Warehouse, on_delete=models.PROTECT, related_name="ledger_entries")
    item = models.ForeignKey(Item, on_delete=models.PROTECT, related_name="ledger_entries")
    lot = models.ForeignKey(Lot, on_delete=models.PROTECT, related_name="ledger_entries")
    quantity = models.PositiveIntegerField(default=0)
    minimum_quantity = models.PositiveIntegerField(null=True, blank=True)
    maximum_quantity = models.PositiveIntegerField(null=True, blank=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=["warehouse", "item", "lot"], name="uniq_ledger_warehouse_item_lot"),
            models.CheckConstraint(condition=Q(quantity__gte=0), name="ledger_quantity_non_negative"),
        ]
        indexes = [
            models.Index(fields=["warehouse", "item"], name="ledger_warehouse_item_idx"),
        ]

    @property
    def is_below_minimum(self):
        return self.minimum_quantity is not None and self.quantity < self.minimum_quantity

    @property
    def is_above_maximum(self):
        return self.maximum_quantity is not None and self.quantity > self.maximum_quantity


class Movement(models.Model):
    class Kind(models.TextChoices):
        ENTRY = "entry", "Entry"
        EXIT = "exit", "Exit"
        TRANSFER = "transfer", "Transfer"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    origin_warehouse = models.ForeignKey(
        Warehouse,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="outgoing_movements",
    )
    destination_warehouse = models.ForeignKey(
        Warehouse,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="incoming_movements",
    )
    item = models.ForeignKey(Item, on_delete=models.PROTECT, related_name="movements")
    origin_lot = models.ForeignKey(
        Lot,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="outgoing_movements",
    )
    destination_lot = models.ForeignKey(
        Lot,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="incoming_movements",
    )
    quantity = models.PositiveIntegerField()
    moved_at = models.DateTimeField()
    responsible = models.CharField(max_length=100)
    note = models.CharField(max_length=500, blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-moved_at"]
        constraints = [
            models.CheckConstraint(condition=Q(quantity__gt=0), name="movement_quantity_positive"),
            models.CheckConstraint(
                condition=Q(origin_warehouse__isnull=False) | Q(destination_warehouse__isnull=False),
                name="movement_has_origin_or_destination",
            ),
        ]
        indexes = [
            models.Index(fields=["origin_warehouse", "moved_at"], name="movement_origin_moved_idx"),
            models.Index(fields=["destination_warehouse", "moved_at"], name="movement_dest_moved_idx"),
            models.Index(fields=["item", "moved_at"], name="movement_item_moved_idx"),
        ]

    @property
    def kind(self):
        if self.origin_warehouse_id is None:
            return self.Kind.ENTRY
        if self.destination_warehouse_id is None:
            return self.Kind.EXIT
        return self.Kind.TRANSFER

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise InvalidOperation("Movements are immutable once recorded.")
        super().save(*args, **kwargs)

from rest_framework import serializers

from inventory.lots import is_expired, is_near_expiry
from inventory.models import Item, Lot, Movement, StockLedgerEntry, Warehouse


class ItemSerializer(serializers.ModelSerializer):
    class Meta:
        model = Item
        fields = [
            "id",
            "name",
            "description",
            "unit_of_measure",
            "minimum_quantity",
            "maximum_quantity",
            "reorder_point",
            "is_active",
            "created_at",
            "updated_at",
        ]
        read_only_fields = ["id", "created_at", "updated_at"]


class WarehouseSerializer(serializers.ModelSerializer):
    class Meta:
        model = Warehouse
        fields = ["id", "name", "location", "contact_phone", "contact_email", "is_active", "created_at", "updated_at"]
        read_only_fields = ["id", "created_at", "updated_at"]


class LotSerializer(serializers.ModelSerializer):
    item_name = serializers.CharField(source="item.name", read_only=True)
    expired = serializers.SerializerMethodField()
    near_expiry = serializers.SerializerMethodField()

    class Meta:
        model = Lot
        fields = [
            "id",
            "item",
            "item_name",
            "purchase_order_ref",
            "name",
            "quantity",
            "manufactured_on",
            "expires_on",
            "note",
            "derived_from",
            "expired",
            "near_expiry",
            "created_at",
        ]
        read_only_fields = ["id", "created_at"]

    def get_expired(self, obj):
        return is_expired(obj)

    def get_near_expiry(self, obj):
        return is_near_expiry(obj)


class StockLedgerEntrySerializer(serializers.ModelSerializer):
    warehouse_name = serializers.CharField(source="warehouse.name", read_only=True)
    item_name = serializers.CharField(source="item.name", read_only=True)
    lot_name = serializers.CharField(source="lot.name", read_only=True)
    is_below_minimum = serializers.BooleanField(read_only=True)
    is_above_maximum = serializers.BooleanField(read_only=True)

    class Meta:
        model = StockLedgerEntry
        fields = [
            "id",
            "warehouse",
            "warehouse_name",
            "item",
            "item_name",
            "lot",
            "lot_name",
            "quantity",
            "minimum_quantity",
            "maximum_quantity",
            "is_below_minimum",
            "is_above_maximum",
            "is_active",
            "updated_at",
        ]
        read_only_fields = fields


class LotStockSerializer(serializers.Serializer):
    lot_id = serializers.UUIDField()
    lot_name = serializers.CharField()
    item_id = serializers.UUIDField()
    item_name = serializers.CharField()
    expires_on = serializers.DateField(allow_null=True)
    available_quantity = serializers.IntegerField()
    warehouse_id = serializers.UUIDField()
    warehouse_name = serializers.CharField()
    expired = serializers.BooleanField()
    near_expiry = serializers.BooleanField()


class MovementSerializer(serializers.ModelSerializer):
    kind = serializers.CharField(read_only=True)
    item_name = serializers.CharField(source="item.name", read_only=True)
    origin_warehouse_name = serializers.CharField(source="origin_warehouse.name", read_only=True, default=None)
    destination_warehouse_name = serializers.CharField(source="destination_warehouse.name", read_only=True, default=None)

    class Meta:
        model = Movement
        fields = [
            "id",
            "kind",
            "item",
            "item_name",
            "origin_warehouse",
            "origin_warehouse_name",
            "destination_warehouse",
            "destination_warehouse_name",
            "origin_lot",
            "destination_lot",
            "quantity",
            "moved_at",
            "responsible",
            "note",
        ]
        read_only_fields = fields


class MovementRequestSerializer(serializers.Serializer):
    """Shape checks only; business rules are enforced by the transfer engine."""

    quantity = serializers.IntegerField()
    responsible = serializers.CharField(max_length=100, allow_blank=True, trim_whitespace=False)
    note = serializers.CharField(max_length=500, required=False, allow_blank=True, allow_null=True)


class TransferRequestSerializer(MovementRequestSerializer):
    item_id = serializers.UUIDField()
    origin_warehouse_id = serializers.UUIDField(required=False, allow_null=True)
    destination_warehouse_id = serializers.UUIDField()
    origin_lot_id = serializers.UUIDField(required=False, allow_null=True)
    destination_lot_id = serializers.UUIDField()


class EntryRequestSerializer(MovementRequestSerializer):
    item_id = serializers.UUIDField()
    destination_warehouse_id = serializers.UUIDField()
    destination_lot_id = serializers.UUIDField()


class ExitRequestSerializer(MovementRequestSerializer):
    item_id = serializers.UUIDField()
    origin_warehouse_id = serializers.UUIDField()
    origin_lot_id = serializers.UUIDField()


class LotTransferRequestSerializer(MovementRequestSerializer):
    source_lot_id = serializers.UUIDField()
    origin_warehouse_id = serializers.UUIDField()
    destination_warehouse_id = serializers.UUIDField()

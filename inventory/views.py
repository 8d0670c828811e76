import uuid

from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.exceptions import NotFound, ValidationError
from rest_framework.response import Response
from rest_framework.views import APIView

from inventory import history, ledger, lots, transfers
from inventory.models import Item, Lot, Warehouse
from inventory.serializers import (
    EntryRequestSerializer,
    ExitRequestSerializer,
    ItemSerializer,
    LotSerializer,
    LotStockSerializer,
    LotTransferRequestSerializer,
    MovementSerializer,
    StockLedgerEntrySerializer,
    TransferRequestSerializer,
    WarehouseSerializer,
)


def _uuid_param(request, name, required=False):
    raw_value = request.query_params.get(name)
    if raw_value in (None, ""):
        if required:
            raise ValidationError({name: "This query parameter is required."})
        return None
    try:
        return uuid.UUID(raw_value)
    except ValueError:
        raise ValidationError({name: "Must be a valid UUID."})


def _uuid_path_param(value):
    try:
        return uuid.UUID(str(value))
    except ValueError:
        raise NotFound()


def _int_param(request, name, default=None, required=False):
    raw_value = request.query_params.get(name)
    if raw_value in (None, ""):
        if required:
            raise ValidationError({name: "This query parameter is required."})
        return default
    try:
        return int(raw_value)
    except (TypeError, ValueError):
        raise ValidationError({name: "Must be an integer."})


class ItemViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = Item.objects.order_by("name")
    serializer_class = ItemSerializer

    @action(detail=True, methods=["get"], url_path="total-stock")
    def total_stock(self, request, pk=None):
        item_id = _uuid_path_param(pk)
        return Response({"item_id": str(item_id), "total_quantity": ledger.total_for_item(item_id)})


class WarehouseViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = Warehouse.objects.order_by("name")
    serializer_class = WarehouseSerializer


class LotViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = Lot.objects.select_related("item").order_by("-created_at")
    serializer_class = LotSerializer

    @action(detail=False, methods=["get"], url_path="expired")
    def expired(self, request):
        return Response(self.get_serializer(lots.expired_lots(), many=True).data)

    @action(detail=False, methods=["get"], url_path="near-expiry")
    def near_expiry(self, request):
        days = _int_param(request, "days")
        if days is not None and days < 0:
            raise ValidationError({"days": "Must be >= 0."})
        return Response(self.get_serializer(lots.near_expiry_lots(horizon_days=days), many=True).data)

    @action(detail=False, methods=["get"], url_path="available")
    def available(self, request):
        rows = lots.lots_with_stock(warehouse_id=_uuid_param(request, "warehouse_id"))
        return Response(LotStockSerializer(rows, many=True).data)


class MovementViewSet(viewsets.ReadOnlyModelViewSet):
    serializer_class = MovementSerializer

    def get_throttles(self):
        # Stock movements are never rate limited; only history reads are.
        if self.request.method == "POST":
            return []
        return super().get_throttles()

    def get_queryset(self):
        warehouse_id = _uuid_param(self.request, "warehouse_id") if self.action == "list" else None
        if warehouse_id:
            return history.movements_for_warehouse(warehouse_id)
        return history.all_movements()

    def _created(self, movement):
        return Response(MovementSerializer(movement).data, status=status.HTTP_201_CREATED)

    @action(detail=False, methods=["post"], url_path="transfer")
    def transfer(self, request):
        serializer = TransferRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        movement = transfers.transfer(
            item_id=data["item_id"],
            origin_warehouse_id=data.get("origin_warehouse_id"),
            destination_warehouse_id=data["destination_warehouse_id"],
            origin_lot_id=data.get("origin_lot_id"),
            destination_lot_id=data["destination_lot_id"],
            quantity=data["quantity"],
            responsible=data["responsible"],
            note=data.get("note"),
        )
        return self._created(movement)

    @action(detail=False, methods=["post"], url_path="entry")
    def entry(self, request):
        serializer = EntryRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        movement = transfers.register_entry(
            item_id=data["item_id"],
            destination_warehouse_id=data["destination_warehouse_id"],
            destination_lot_id=data["destination_lot_id"],
            quantity=data["quantity"],
            responsible=data["responsible"],
            note=data.get("note"),
        )
        return self._created(movement)

    @action(detail=False, methods=["post"], url_path="exit")
    def exit(self, request):
        serializer = ExitRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        movement = transfers.register_exit(
            item_id=data["item_id"],
            origin_warehouse_id=data["origin_warehouse_id"],
            origin_lot_id=data["origin_lot_id"],
            quantity=data["quantity"],
            responsible=data["responsible"],
            note=data.get("note"),
        )
        return self._created(movement)

    @action(detail=False, methods=["post"], url_path="transfer-lot")
    def transfer_lot(self, request):
        serializer = LotTransferRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        movement = transfers.transfer_lot(
            source_lot_id=data["source_lot_id"],
            origin_warehouse_id=data["origin_warehouse_id"],
            destination_warehouse_id=data["destination_warehouse_id"],
            quantity=data["quantity"],
            responsible=data["responsible"],
            note=data.get("note"),
        )
        return self._created(movement)


class StockBalanceView(APIView):
    def get(self, request):
        rows = ledger.list_balances(
            warehouse_id=_uuid_param(request, "warehouse_id"),
            item_id=_uuid_param(request, "item_id"),
        )
        return Response(StockLedgerEntrySerializer(rows, many=True).data)


class LowStockView(APIView):
    def get(self, request):
        rows = ledger.low_stock_entries(warehouse_id=_uuid_param(request, "warehouse_id"))
        return Response(StockLedgerEntrySerializer(rows, many=True).data)


class StockAvailabilityView(APIView):
    def get(self, request):
        warehouse_id = _uuid_param(request, "warehouse_id", required=True)
        item_id = _uuid_param(request, "item_id", required=True)
        lot_id = _uuid_param(request, "lot_id", required=True)
        quantity = _int_param(request, "quantity", required=True)

        payload = ledger.check_availability(warehouse_id, item_id, lot_id, quantity)
        return Response(
            {
                "warehouse_id": str(warehouse_id),
                "item_id": str(item_id),
                "lot_id": str(lot_id),
                **payload,
            }
        )


class LotQuantityView(APIView):
    def get(self, request):
        warehouse_id = _uuid_param(request, "warehouse_id", required=True)
        lot_id = _uuid_param(request, "lot_id", required=True)
        return Response(
            {
                "warehouse_id": str(warehouse_id),
                "lot_id": str(lot_id),
                "available_quantity": transfers.available_in_lot(warehouse_id, lot_id),
            }
        )

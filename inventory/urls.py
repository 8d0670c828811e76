from django.urls import path
from rest_framework.routers import DefaultRouter

from inventory.views import (
    ItemViewSet,
    LotQuantityView,
    LotViewSet,
    LowStockView,
    MovementViewSet,
    StockAvailabilityView,
    StockBalanceView,
    WarehouseViewSet,
)

router = DefaultRouter()
router.register(r"items", ItemViewSet, basename="item")
router.register(r"warehouses", WarehouseViewSet, basename="warehouse")
router.register(r"lots", LotViewSet, basename="lot")
router.register(r"movements", MovementViewSet, basename="movement")

urlpatterns = router.urls + [
    path("stock/", StockBalanceView.as_view(), name="stock-balances"),
    path("stock/low/", LowStockView.as_view(), name="stock-low"),
    path("stock/availability/", StockAvailabilityView.as_view(), name="stock-availability"),
    path("stock/lot-quantity/", LotQuantityView.as_view(), name="stock-lot-quantity"),
]

from django.urls import path
from rest_framework.routers import DefaultRouter

from inventory.views import (
    InventorySummaryView,
    ProductViewSet,
    SerializedUnitViewSet,
    StockAlertViewSet,
    StockMovementViewSet,
)

router = DefaultRouter()
router.register(r"products", ProductViewSet, basename="product")
router.register(r"units", SerializedUnitViewSet, basename="unit")
router.register(r"movements", StockMovementViewSet, basename="movement")
router.register(r"alerts", StockAlertViewSet, basename="alert")

urlpatterns = router.urls + [
    path("inventory/summary/", InventorySummaryView.as_view(), name="inventory-summary"),
]

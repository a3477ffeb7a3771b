from rest_framework.routers import DefaultRouter

from sales.views import CustomerViewSet, ExchangeRateViewSet, SaleViewSet

router = DefaultRouter()
router.register(r"customers", CustomerViewSet, basename="customer")
router.register(r"exchange-rates", ExchangeRateViewSet, basename="exchange-rate")
router.register(r"sales", SaleViewSet, basename="sale")

urlpatterns = router.urls

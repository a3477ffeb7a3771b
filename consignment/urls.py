from rest_framework.routers import DefaultRouter

from consignment.views import ConsigneeViewSet, ConsignmentPaymentViewSet, ConsignmentViewSet

router = DefaultRouter()
router.register(r"consignees", ConsigneeViewSet, basename="consignee")
router.register(r"consignments", ConsignmentViewSet, basename="consignment")
router.register(r"consignment-payments", ConsignmentPaymentViewSet, basename="consignment-payment")

urlpatterns = router.urls

from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from common.audit import audit_context
from common.permissions import RoleCapabilityPermission
from inventory.models import Product, SerializedUnit, StockAlert, StockMovement
from inventory.serializers import (
    ProductSerializer,
    SerializedUnitSerializer,
    StockAdjustmentSerializer,
    StockAlertSerializer,
    StockMovementSerializer,
    ThresholdSerializer,
    UnitNoteSerializer,
    UnitRegistrationSerializer,
)
from inventory.services import adjust_stock, inventory_summary, resolve_alert, set_thresholds, verify_product_ledger
from inventory.units import lookup_unit, mark_defective, register_units, restock_unit, return_unit


class ProductViewSet(
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    mixins.CreateModelMixin,
    mixins.UpdateModelMixin,
    viewsets.GenericViewSet,
):
    queryset = Product.objects.all()
    serializer_class = ProductSerializer
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {
        "list": "inventory.view",
        "retrieve": "inventory.view",
        "create": "stock.adjust",
        "update": "stock.adjust",
        "partial_update": "stock.adjust",
        "adjust": "stock.adjust",
        "thresholds": "stock.thresholds",
        "ledger_check": "inventory.view",
    }

    def get_queryset(self):
        qs = self.queryset.order_by("code")
        params = self.request.query_params
        if params.get("status"):
            qs = qs.filter(stock_status=params["status"])
        if params.get("active") in ("true", "false"):
            qs = qs.filter(is_active=params["active"] == "true")
        if params.get("q"):
            qs = qs.filter(name__icontains=params["q"]) | qs.filter(code__icontains=params["q"])
        return qs

    @action(detail=True, methods=["post"], url_path="adjust")
    def adjust(self, request, pk=None):
        product = self.get_object()
        serializer = StockAdjustmentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        change = adjust_stock(product.id, **serializer.validated_data)
        return Response(
            {
                "product": ProductSerializer(change.product).data,
                "movement": StockMovementSerializer(change.movement).data,
                "alerts": StockAlertSerializer(change.alerts, many=True).data,
            },
            status=status.HTTP_201_CREATED,
        )

    @action(detail=True, methods=["post"], url_path="thresholds")
    def thresholds(self, request, pk=None):
        product = self.get_object()
        serializer = ThresholdSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        product = set_thresholds(
            product.id,
            data["minimum_stock"],
            data["warning_stock"],
            data.get("maximum_stock"),
            **audit_context(request),
        )
        return Response(ProductSerializer(product).data)

    @action(detail=True, methods=["get"], url_path="ledger-check")
    def ledger_check(self, request, pk=None):
        product = self.get_object()
        issues = verify_product_ledger(product)
        return Response({"product": product.code, "consistent": not issues, "issues": issues})


class SerializedUnitViewSet(mixins.ListModelMixin, viewsets.GenericViewSet):
    queryset = SerializedUnit.objects.select_related("product", "sale")
    serializer_class = SerializedUnitSerializer
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    lookup_field = "serial"
    lookup_value_regex = "[^/]+"
    permission_action_map = {
        "list": "inventory.view",
        "retrieve": "inventory.view",
        "register": "units.register",
        "returned": "units.manage",
        "restock": "units.manage",
        "defective": "units.manage",
    }

    def get_queryset(self):
        qs = self.queryset.order_by("serial")
        params = self.request.query_params
        if params.get("product"):
            qs = qs.filter(product_id=params["product"])
        if params.get("status"):
            qs = qs.filter(status=params["status"])
        return qs

    def retrieve(self, request, serial=None):
        warranty = lookup_unit(serial)
        payload = SerializedUnitSerializer(warranty.unit).data
        payload.update(
            {
                "sold_by_us": warranty.sold_by_us,
                "in_warranty": warranty.in_warranty,
                "warranty_days_left": warranty.warranty_days_left,
            }
        )
        return Response(payload)

    @action(detail=False, methods=["post"], url_path="register")
    def register(self, request):
        serializer = UnitRegistrationSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = dict(serializer.validated_data)
        created = register_units(
            data.pop("product"),
            data.pop("serials"),
            data.pop("unit_cost"),
            data.pop("warranty_months", None),
            data.pop("origin"),
            **data,
        )
        return Response({"registered": created}, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=["post"], url_path="return")
    def returned(self, request, serial=None):
        serializer = UnitNoteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        unit = return_unit(serial, serializer.validated_data["reason"])
        return Response(SerializedUnitSerializer(unit).data)

    @action(detail=True, methods=["post"], url_path="restock")
    def restock(self, request, serial=None):
        return Response(SerializedUnitSerializer(restock_unit(serial)).data)

    @action(detail=True, methods=["post"], url_path="defective")
    def defective(self, request, serial=None):
        serializer = UnitNoteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        unit = mark_defective(serial, serializer.validated_data["reason"])
        return Response(SerializedUnitSerializer(unit).data)


class StockMovementViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = StockMovement.objects.select_related("product")
    serializer_class = StockMovementSerializer
    permission_classes = [IsAuthenticated]

    def get_queryset(self):
        qs = self.queryset.order_by("-id")
        params = self.request.query_params
        if params.get("product"):
            qs = qs.filter(product_id=params["product"])
        if params.get("reference"):
            qs = qs.filter(reference=params["reference"])
        if params.get("type"):
            qs = qs.filter(movement_type=params["type"])
        return qs


class StockAlertViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = StockAlert.objects.select_related("product")
    serializer_class = StockAlertSerializer
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {"resolve": "alerts.resolve"}

    def get_queryset(self):
        qs = self.queryset.order_by("-created_at")
        if self.request.query_params.get("include_resolved") != "true":
            qs = qs.filter(is_resolved=False)
        return qs

    @action(detail=True, methods=["post"], url_path="resolve")
    def resolve(self, request, pk=None):
        alert = resolve_alert(pk, **audit_context(request))
        return Response(StockAlertSerializer(alert).data)


class InventorySummaryView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        return Response(inventory_summary())

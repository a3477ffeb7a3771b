from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from common.permissions import RoleCapabilityPermission
from consignment.models import Consignee, Consignment, ConsignmentPayment
from consignment.serializers import (
    ConsigneeSerializer,
    ConsignmentCreateSerializer,
    ConsignmentPaymentSerializer,
    ConsignmentReportSerializer,
    ConsignmentSerializer,
)
from consignment.services import create_consignment, register_payment, report_returned, report_sold
from sales.serializers import SaleSerializer


class ConsigneeViewSet(
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    mixins.CreateModelMixin,
    mixins.UpdateModelMixin,
    viewsets.GenericViewSet,
):
    queryset = Consignee.objects.all()
    serializer_class = ConsigneeSerializer
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {
        "create": "consignment.manage",
        "update": "consignment.manage",
        "partial_update": "consignment.manage",
    }

    def get_queryset(self):
        qs = self.queryset.order_by("name")
        if self.request.query_params.get("active") == "true":
            qs = qs.filter(is_active=True)
        return qs


class ConsignmentViewSet(mixins.ListModelMixin, mixins.RetrieveModelMixin, viewsets.GenericViewSet):
    queryset = Consignment.objects.select_related("consignee").prefetch_related("lines__unit", "lines__product")
    serializer_class = ConsignmentSerializer
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {
        "list": "consignment.view",
        "retrieve": "consignment.view",
        "create": "consignment.manage",
        "report_sold": "consignment.manage",
        "report_returned": "consignment.manage",
    }

    def get_queryset(self):
        qs = self.queryset.order_by("-delivered_at")
        params = self.request.query_params
        if params.get("consignee"):
            qs = qs.filter(consignee_id=params["consignee"])
        if params.get("status"):
            qs = qs.filter(status=params["status"])
        return qs

    def create(self, request):
        serializer = ConsignmentCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        consignment = create_consignment(
            data["consignee"],
            serializer.to_lines(),
            delivered_at=data["delivered_at"],
            due_date=data["due_date"],
            notes=data["notes"],
        )
        return Response(self.get_serializer(self.get_queryset().get(id=consignment.id)).data, status=status.HTTP_201_CREATED)

    @action(detail=False, methods=["post"], url_path="report-sold")
    def report_sold(self, request):
        serializer = ConsignmentReportSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        sale = report_sold(serializer.validated_data["lines"], serializer.validated_data["at"], user_id=request.user.id)
        return Response(SaleSerializer(sale).data, status=status.HTTP_201_CREATED)

    @action(detail=False, methods=["post"], url_path="report-returned")
    def report_returned(self, request):
        serializer = ConsignmentReportSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        consignment = report_returned(serializer.validated_data["lines"], serializer.validated_data["at"])
        return Response(self.get_serializer(self.get_queryset().get(id=consignment.id)).data)


class ConsignmentPaymentViewSet(mixins.ListModelMixin, mixins.CreateModelMixin, viewsets.GenericViewSet):
    queryset = ConsignmentPayment.objects.select_related("consignee", "consignment")
    serializer_class = ConsignmentPaymentSerializer
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {"list": "consignment.view", "create": "consignment.manage"}

    def get_queryset(self):
        qs = self.queryset.order_by("-paid_at")
        if self.request.query_params.get("consignee"):
            qs = qs.filter(consignee_id=self.request.query_params["consignee"])
        return qs

    def create(self, request):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        payment = register_payment(
            data["consignee"].id,
            data["amount"],
            data["method"],
            data["consignment"].id if data.get("consignment") else None,
            reference=data.get("reference", ""),
            paid_at=data.get("paid_at"),
            notes=data.get("notes", ""),
        )
        return Response(self.get_serializer(payment).data, status=status.HTTP_201_CREATED)

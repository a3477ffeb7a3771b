from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from common.audit import audit_context
from common.permissions import RoleCapabilityPermission
from sales.models import Customer, ExchangeRate, Sale
from sales.serializers import (
    CustomerSerializer,
    ExchangeRateSerializer,
    SaleCancelSerializer,
    SaleCreateSerializer,
    SalePaymentSerializer,
    SaleSerializer,
)
from sales.services import cancel_sale, create_sale, record_payments, void_sale


class CustomerViewSet(
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    mixins.CreateModelMixin,
    mixins.UpdateModelMixin,
    viewsets.GenericViewSet,
):
    queryset = Customer.objects.all()
    serializer_class = CustomerSerializer
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {
        "create": "customers.manage",
        "update": "customers.manage",
        "partial_update": "customers.manage",
    }

    def get_queryset(self):
        qs = self.queryset.order_by("name")
        search = self.request.query_params.get("q")
        if search:
            qs = qs.filter(name__icontains=search) | qs.filter(document_id__icontains=search)
        return qs


class ExchangeRateViewSet(mixins.ListModelMixin, mixins.CreateModelMixin, viewsets.GenericViewSet):
    queryset = ExchangeRate.objects.all()
    serializer_class = ExchangeRateSerializer
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {"create": "rates.manage"}

    def get_queryset(self):
        qs = self.queryset.order_by("-effective_at")
        currency = self.request.query_params.get("currency")
        if currency:
            qs = qs.filter(currency=currency.upper())
        return qs


class SaleViewSet(mixins.ListModelMixin, mixins.RetrieveModelMixin, viewsets.GenericViewSet):
    queryset = Sale.objects.select_related("customer").prefetch_related("lines__product", "payments")
    serializer_class = SaleSerializer
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {
        "list": "sales.view",
        "retrieve": "sales.view",
        "create": "sales.create",
        "cancel": "sales.cancel",
        "void": "sales.void",
        "payments": "sales.collect",
    }

    def get_queryset(self):
        qs = self.queryset.order_by("-sold_at")
        params = self.request.query_params
        for param, field in (("status", "status"), ("payment_status", "payment_status"), ("customer", "customer_id")):
            if params.get(param):
                qs = qs.filter(**{field: params[param]})
        return qs

    def create(self, request):
        serializer = SaleCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        sale = create_sale(user_id=request.user.id, **serializer.settlement_kwargs())
        return Response(SaleSerializer(self.get_queryset().get(id=sale.id)).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=["post"], url_path="cancel")
    def cancel(self, request, pk=None):
        serializer = SaleCancelSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        sale = cancel_sale(pk, reason=serializer.validated_data["reason"], **audit_context(request))
        return Response(SaleSerializer(self.get_queryset().get(id=sale.id)).data)

    @action(detail=True, methods=["post"], url_path="payments")
    def payments(self, request, pk=None):
        serializer = SalePaymentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        sale = record_payments(pk, serializer.to_payments(), **audit_context(request))
        return Response(SaleSerializer(self.get_queryset().get(id=sale.id)).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=["post"], url_path="void")
    def void(self, request, pk=None):
        void_sale(pk, **audit_context(request))
        return Response(status=status.HTTP_204_NO_CONTENT)

from rest_framework import serializers

from inventory.alerts import validate_thresholds
from inventory.models import Product, SerializedUnit, StockAlert, StockMovement
from common.exceptions import InvalidThresholds

THRESHOLD_FIELDS = ("minimum_stock", "warning_stock", "maximum_stock")


class ProductSerializer(serializers.ModelSerializer):
    class Meta:
        model = Product
        fields = [
            "id",
            "code",
            "name",
            "description",
            "sale_price",
            "cost_price",
            "stock_on_hand",
            "minimum_stock",
            "warning_stock",
            "maximum_stock",
            "stock_status",
            "is_serialized",
            "is_active",
            "created_at",
            "updated_at",
        ]
        # Stock only changes through ledger operations.
        read_only_fields = ["id", "stock_on_hand", "stock_status", "created_at", "updated_at"]

    def validate_code(self, value):
        code = value.strip().upper()
        queryset = Product.objects.filter(code=code)
        if self.instance is not None:
            queryset = queryset.exclude(id=self.instance.id)
        if queryset.exists():
            raise serializers.ValidationError("A product with this code already exists.")
        return code

    def validate(self, attrs):
        if self.instance is not None:
            self._check_locked_fields(attrs)
        minimum = attrs.get("minimum_stock", getattr(self.instance, "minimum_stock", 0))
        warning = attrs.get("warning_stock", getattr(self.instance, "warning_stock", 0))
        maximum = attrs.get("maximum_stock", getattr(self.instance, "maximum_stock", None))
        try:
            validate_thresholds(minimum, warning, maximum)
        except InvalidThresholds as exc:
            raise serializers.ValidationError(exc.details) from exc
        return attrs

    def _check_locked_fields(self, attrs):
        # Thresholds drive status and alerts, so they change only through set_thresholds.
        errors = {
            name: "Use the thresholds action to change stock thresholds."
            for name in THRESHOLD_FIELDS
            if name in attrs and attrs[name] != getattr(self.instance, name)
        }
        product = self.instance
        if (
            "is_serialized" in attrs
            and attrs["is_serialized"] != product.is_serialized
            and (product.units.exists() or product.movements.exists())
        ):
            errors["is_serialized"] = "Cannot change once the product has units or stock movements."
        if errors:
            raise serializers.ValidationError(errors)


class SerializedUnitSerializer(serializers.ModelSerializer):
    product_code = serializers.CharField(source="product.code", read_only=True)
    order_number = serializers.CharField(source="sale.order_number", read_only=True, default=None)

    class Meta:
        model = SerializedUnit
        fields = [
            "id",
            "serial",
            "product",
            "product_code",
            "status",
            "unit_cost",
            "warranty_months",
            "origin",
            "batch",
            "received_at",
            "sale",
            "order_number",
            "customer",
            "sale_price",
            "profit",
            "sold_at",
            "warranty_expires_at",
            "notes",
        ]
        read_only_fields = fields


class StockMovementSerializer(serializers.ModelSerializer):
    product_code = serializers.CharField(source="product.code", read_only=True)

    class Meta:
        model = StockMovement
        fields = [
            "id",
            "product",
            "product_code",
            "movement_type",
            "quantity",
            "stock_before",
            "stock_after",
            "reference",
            "reason",
            "created_at",
        ]
        read_only_fields = fields


class StockAlertSerializer(serializers.ModelSerializer):
    product_code = serializers.CharField(source="product.code", read_only=True)
    product_name = serializers.CharField(source="product.name", read_only=True)

    class Meta:
        model = StockAlert
        fields = [
            "id",
            "product",
            "product_code",
            "product_name",
            "alert_type",
            "stock_at_creation",
            "threshold_at_creation",
            "message",
            "is_resolved",
            "resolved_at",
            "created_at",
        ]
        read_only_fields = fields


class StockAdjustmentSerializer(serializers.Serializer):
    quantity = serializers.IntegerField()
    movement_type = serializers.ChoiceField(choices=StockMovement.Type.choices, default=StockMovement.Type.ADJUSTMENT)
    reference = serializers.CharField(max_length=128, required=False, allow_blank=True, default="")
    reason = serializers.CharField(max_length=255, required=False, allow_blank=True, default="")


class ThresholdSerializer(serializers.Serializer):
    minimum_stock = serializers.IntegerField(min_value=0)
    warning_stock = serializers.IntegerField(min_value=0)
    maximum_stock = serializers.IntegerField(min_value=0, required=False, allow_null=True, default=None)


class UnitRegistrationSerializer(serializers.Serializer):
    product = serializers.UUIDField()
    serials = serializers.ListField(child=serializers.CharField(max_length=128), allow_empty=False)
    unit_cost = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0)
    warranty_months = serializers.IntegerField(min_value=0, required=False)
    origin = serializers.ChoiceField(choices=SerializedUnit.Origin.choices, default=SerializedUnit.Origin.DOMESTIC)
    batch = serializers.CharField(max_length=64, required=False, allow_blank=True, default="")
    notes = serializers.CharField(required=False, allow_blank=True, default="")


class UnitNoteSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, allow_blank=True, default="")

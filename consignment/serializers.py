from rest_framework import serializers

from consignment.models import Consignee, Consignment, ConsignmentLine, ConsignmentPayment
from consignment.services import ConsignmentLineInput
from sales.models import Payment


class ConsigneeSerializer(serializers.ModelSerializer):
    class Meta:
        model = Consignee
        fields = [
            "id",
            "name",
            "phone",
            "email",
            "address",
            "customer",
            "is_active",
            "total_consigned",
            "total_paid",
            "balance_due",
            "created_at",
            "updated_at",
        ]
        read_only_fields = ["id", "total_consigned", "total_paid", "balance_due", "created_at", "updated_at"]


class ConsignmentLineSerializer(serializers.ModelSerializer):
    serial = serializers.CharField(source="unit.serial", read_only=True)
    product_code = serializers.CharField(source="product.code", read_only=True)

    class Meta:
        model = ConsignmentLine
        fields = ["id", "product", "product_code", "unit", "serial", "price", "status", "sale", "sold_at", "returned_at"]
        read_only_fields = fields


class ConsignmentSerializer(serializers.ModelSerializer):
    lines = ConsignmentLineSerializer(many=True, read_only=True)
    consignee_name = serializers.CharField(source="consignee.name", read_only=True)
    is_overdue = serializers.BooleanField(read_only=True)

    class Meta:
        model = Consignment
        fields = [
            "id",
            "number",
            "consignee",
            "consignee_name",
            "status",
            "delivered_at",
            "due_date",
            "is_overdue",
            "total_value",
            "paid_value",
            "pending_value",
            "notes",
            "lines",
        ]
        read_only_fields = fields


class ConsignmentLineInputSerializer(serializers.Serializer):
    serial = serializers.CharField(max_length=128)
    price = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0)
    product = serializers.UUIDField(required=False, allow_null=True, default=None)


class ConsignmentCreateSerializer(serializers.Serializer):
    consignee = serializers.UUIDField()
    lines = ConsignmentLineInputSerializer(many=True, allow_empty=False)
    delivered_at = serializers.DateTimeField(required=False, allow_null=True, default=None)
    due_date = serializers.DateField(required=False, allow_null=True, default=None)
    notes = serializers.CharField(required=False, allow_blank=True, default="")

    def to_lines(self):
        return [
            ConsignmentLineInput(serial=line["serial"], price=line["price"], product_id=line["product"])
            for line in self.validated_data["lines"]
        ]


class ConsignmentReportSerializer(serializers.Serializer):
    lines = serializers.ListField(child=serializers.UUIDField(), allow_empty=False)
    at = serializers.DateTimeField(required=False, allow_null=True, default=None)


class ConsignmentPaymentSerializer(serializers.ModelSerializer):
    class Meta:
        model = ConsignmentPayment
        fields = ["id", "consignee", "consignment", "amount", "method", "reference", "notes", "paid_at", "created_at"]
        read_only_fields = ["id", "created_at"]
        extra_kwargs = {
            "method": {"choices": Payment.Method.choices},
            "paid_at": {"required": False},
        }

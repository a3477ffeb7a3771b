from rest_framework import serializers

from sales.models import Customer, ExchangeRate, Payment, Sale, SaleLine
from sales.services import PaymentInput, SaleLineInput


class CustomerSerializer(serializers.ModelSerializer):
    class Meta:
        model = Customer
        fields = [
            "id",
            "name",
            "document_id",
            "phone",
            "email",
            "address",
            "total_purchases",
            "order_count",
            "created_at",
            "updated_at",
        ]
        read_only_fields = ["id", "total_purchases", "order_count", "created_at", "updated_at"]


class ExchangeRateSerializer(serializers.ModelSerializer):
    class Meta:
        model = ExchangeRate
        fields = ["id", "currency", "rate", "source", "effective_at", "created_at"]
        read_only_fields = ["id", "created_at"]

    def validate_rate(self, value):
        if value <= 0:
            raise serializers.ValidationError("Rate must be greater than zero.")
        return value


class SaleLineSerializer(serializers.ModelSerializer):
    product_code = serializers.CharField(source="product.code", read_only=True)

    class Meta:
        model = SaleLine
        fields = ["id", "product", "product_code", "serial", "quantity", "unit_price", "discount", "subtotal"]
        read_only_fields = fields


class PaymentSerializer(serializers.ModelSerializer):
    class Meta:
        model = Payment
        fields = ["id", "method", "currency", "amount", "exchange_rate", "amount_base", "reference", "paid_at"]
        read_only_fields = fields


class SaleSerializer(serializers.ModelSerializer):
    lines = SaleLineSerializer(many=True, read_only=True)
    payments = PaymentSerializer(many=True, read_only=True)
    customer_name = serializers.CharField(source="customer.name", read_only=True, default=None)

    class Meta:
        model = Sale
        fields = [
            "id",
            "order_number",
            "customer",
            "customer_name",
            "user",
            "sale_type",
            "status",
            "payment_status",
            "subtotal",
            "discount",
            "tax",
            "total",
            "from_consignment",
            "notes",
            "sold_at",
            "cancelled_at",
            "lines",
            "payments",
        ]
        read_only_fields = fields


class SaleLineInputSerializer(serializers.Serializer):
    product = serializers.UUIDField()
    quantity = serializers.IntegerField(min_value=1, default=1)
    unit_price = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0)
    discount = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0, default=0)
    serial = serializers.CharField(max_length=128, required=False, allow_blank=True, default="")

    def to_input(self, data):
        return SaleLineInput(
            product_id=data["product"],
            quantity=data["quantity"],
            unit_price=data["unit_price"],
            discount=data["discount"],
            serial=data["serial"],
        )


class PaymentInputSerializer(serializers.Serializer):
    method = serializers.ChoiceField(choices=Payment.Method.choices)
    amount = serializers.DecimalField(max_digits=14, decimal_places=2)
    currency = serializers.ChoiceField(choices=Payment.Currency.choices, default=Payment.Currency.USD)
    exchange_rate = serializers.DecimalField(max_digits=18, decimal_places=6, required=False, allow_null=True, default=None)
    reference = serializers.CharField(max_length=128, required=False, allow_blank=True, default="")


class SaleCreateSerializer(serializers.Serializer):
    customer = serializers.UUIDField(required=False, allow_null=True, default=None)
    sale_type = serializers.ChoiceField(choices=Sale.Type.choices, default=Sale.Type.SALE)
    lines = SaleLineInputSerializer(many=True, allow_empty=False)
    payments = PaymentInputSerializer(many=True, required=False, default=list)
    discount = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0, default=0)
    tax = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0, default=0)
    total = serializers.DecimalField(max_digits=12, decimal_places=2, required=False, allow_null=True, default=None)
    order_number = serializers.CharField(max_length=64, required=False, allow_blank=True, default="")
    notes = serializers.CharField(required=False, allow_blank=True, default="")

    def settlement_kwargs(self):
        data = self.validated_data
        line_serializer = SaleLineInputSerializer()
        return {
            "customer_id": data["customer"],
            "lines": [line_serializer.to_input(line) for line in data["lines"]],
            "payments": [PaymentInput(**payment) for payment in data["payments"]],
            "discount": data["discount"],
            "tax": data["tax"],
            "sale_type": data["sale_type"],
            "expected_total": data["total"],
            "order_number": data["order_number"] or None,
            "notes": data["notes"],
        }


class SaleCancelSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, allow_blank=True, default="")


class SalePaymentSerializer(serializers.Serializer):
    payments = PaymentInputSerializer(many=True, allow_empty=False)

    def to_payments(self):
        return [PaymentInput(**payment) for payment in self.validated_data["payments"]]

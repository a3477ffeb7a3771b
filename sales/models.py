import uuid

from django.db import models

from core.models import User
from inventory.models import Product, SerializedUnit


class Customer(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=255)
    document_id = models.CharField(max_length=32, null=True, blank=True, unique=True)
    phone = models.CharField(max_length=64, null=True, blank=True)
    email = models.EmailField(null=True, blank=True)
    address = models.CharField(max_length=255, blank=True, default="")
    total_purchases = models.DecimalField(max_digits=14, decimal_places=2, default=0)
    order_count = models.PositiveIntegerField(default=0)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [
            models.Index(fields=["phone"], name="customer_phone_idx"),
            models.Index(fields=["email"], name="customer_email_idx"),
        ]

    def __str__(self):
        return self.name


class ExchangeRate(models.Model):
    """Units of ``currency`` per one unit of the base currency."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    currency = models.CharField(max_length=3, default="VES")
    rate = models.DecimalField(max_digits=18, decimal_places=6)
    source = models.CharField(max_length=64, blank=True, default="")
    effective_at = models.DateTimeField()
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        indexes = [
            models.Index(fields=["currency", "effective_at"], name="rate_currency_effective_idx"),
        ]
        constraints = [
            models.CheckConstraint(condition=models.Q(rate__gt=0), name="exchange_rate_positive"),
        ]


class Sale(models.Model):
    class Status(models.TextChoices):
        CONFIRMED = "CONFIRMADA", "Confirmed"
        CANCELLED = "ANULADA", "Cancelled"

    class PaymentStatus(models.TextChoices):
        PENDING = "PENDIENTE", "Pending"
        PARTIAL = "PARCIAL", "Partially paid"
        PAID = "PAGADO", "Paid"

    class Type(models.TextChoices):
        SALE = "VENTA", "Sale"
        CONSIGNMENT = "CONSIGNACION", "Consignment"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    order_number = models.CharField(max_length=64, unique=True)
    customer = models.ForeignKey(Customer, on_delete=models.PROTECT, null=True, blank=True, related_name="sales")
    user = models.ForeignKey(User, on_delete=models.PROTECT, null=True, blank=True)
    sale_type = models.CharField(max_length=16, choices=Type.choices, default=Type.SALE)
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.CONFIRMED)
    payment_status = models.CharField(max_length=16, choices=PaymentStatus.choices, default=PaymentStatus.PENDING)
    subtotal = models.DecimalField(max_digits=12, decimal_places=2)
    discount = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    tax = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    total = models.DecimalField(max_digits=12, decimal_places=2)
    # Set when the sale records consigned units reported sold by a consignee.
    from_consignment = models.BooleanField(default=False)
    notes = models.TextField(blank=True, default="")
    sold_at = models.DateTimeField()
    cancelled_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [
            models.Index(fields=["sold_at"], name="sale_sold_at_idx"),
            models.Index(fields=["status", "sold_at"], name="sale_status_sold_at_idx"),
            models.Index(fields=["customer", "sold_at"], name="sale_customer_sold_at_idx"),
        ]

    def __str__(self):
        return self.order_number


class SaleLine(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    sale = models.ForeignKey(Sale, on_delete=models.CASCADE, related_name="lines")
    product = models.ForeignKey(Product, on_delete=models.PROTECT)
    unit = models.ForeignKey(SerializedUnit, on_delete=models.PROTECT, null=True, blank=True, related_name="sale_lines")
    serial = models.CharField(max_length=128, blank=True, default="")
    quantity = models.PositiveIntegerField()
    unit_price = models.DecimalField(max_digits=12, decimal_places=2)
    discount = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    subtotal = models.DecimalField(max_digits=12, decimal_places=2)

    class Meta:
        indexes = [
            models.Index(fields=["sale"], name="saleline_sale_idx"),
            models.Index(fields=["product"], name="saleline_product_idx"),
        ]


class Payment(models.Model):
    class Method(models.TextChoices):
        CASH_USD = "EFECTIVO_USD", "Cash (USD)"
        CASH_BS = "EFECTIVO_BS", "Cash (Bs)"
        ZELLE = "ZELLE", "Zelle"
        BINANCE = "BINANCE", "Binance"
        BANK_TRANSFER_BS = "TRANSFERENCIA_BS", "Bank transfer (Bs)"
        MOBILE_PAYMENT = "PAGO_MOVIL", "Pago movil"
        CARD_TERMINAL = "PUNTO_VENTA", "Card terminal"
        OTHER = "OTRO", "Other"

    class Currency(models.TextChoices):
        USD = "USD", "US dollar"
        VES = "VES", "Bolivar"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    sale = models.ForeignKey(Sale, on_delete=models.CASCADE, related_name="payments")
    method = models.CharField(max_length=20, choices=Method.choices)
    currency = models.CharField(max_length=3, choices=Currency.choices, default=Currency.USD)
    amount = models.DecimalField(max_digits=14, decimal_places=2)
    exchange_rate = models.DecimalField(max_digits=18, decimal_places=6, default=1)
    amount_base = models.DecimalField(max_digits=12, decimal_places=2)
    reference = models.CharField(max_length=128, blank=True, default="")
    paid_at = models.DateTimeField()

    class Meta:
        indexes = [
            models.Index(fields=["sale", "paid_at"], name="payment_sale_paid_at_idx"),
            models.Index(fields=["method", "paid_at"], name="payment_method_paid_at_idx"),
        ]

import uuid

from django.db import models
from django.utils import timezone

from inventory.models import Product, SerializedUnit
from sales.models import Customer, Payment, Sale


class Consignee(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=255)
    phone = models.CharField(max_length=64, blank=True, default="")
    email = models.EmailField(blank=True, default="")
    address = models.CharField(max_length=255, blank=True, default="")
    # Sales reported by the consignee are booked against this customer.
    customer = models.ForeignKey(Customer, on_delete=models.SET_NULL, null=True, blank=True, related_name="consignees")
    is_active = models.BooleanField(default=True)
    total_consigned = models.DecimalField(max_digits=14, decimal_places=2, default=0)
    total_paid = models.DecimalField(max_digits=14, decimal_places=2, default=0)
    balance_due = models.DecimalField(max_digits=14, decimal_places=2, default=0)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.name


class Consignment(models.Model):
    class Status(models.TextChoices):
        PENDING = "PENDIENTE", "Pending"
        IN_PROGRESS = "EN_PROCESO", "In progress"
        SETTLED = "LIQUIDADA", "Settled"
        CANCELLED = "CANCELADA", "Cancelled"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    number = models.CharField(max_length=32, unique=True)
    consignee = models.ForeignKey(Consignee, on_delete=models.PROTECT, related_name="consignments")
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.PENDING)
    delivered_at = models.DateTimeField()
    due_date = models.DateField(null=True, blank=True)
    total_value = models.DecimalField(max_digits=14, decimal_places=2, default=0)
    paid_value = models.DecimalField(max_digits=14, decimal_places=2, default=0)
    pending_value = models.DecimalField(max_digits=14, decimal_places=2, default=0)
    notes = models.TextField(blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [
            models.Index(fields=["consignee", "status"], name="consignment_consignee_idx"),
            models.Index(fields=["status", "due_date"], name="consignment_status_due_idx"),
        ]

    def __str__(self):
        return self.number

    @property
    def is_overdue(self):
        if self.due_date is None or self.status in (self.Status.SETTLED, self.Status.CANCELLED):
            return False
        return timezone.localdate() > self.due_date


class ConsignmentLine(models.Model):
    class Status(models.TextChoices):
        DELIVERED = "ENTREGADO", "Delivered"
        SOLD = "VENDIDO", "Sold"
        RETURNED = "DEVUELTO", "Returned"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    consignment = models.ForeignKey(Consignment, on_delete=models.CASCADE, related_name="lines")
    product = models.ForeignKey(Product, on_delete=models.PROTECT)
    unit = models.ForeignKey(SerializedUnit, on_delete=models.PROTECT, related_name="consignment_lines")
    price = models.DecimalField(max_digits=12, decimal_places=2)
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.DELIVERED)
    sale = models.ForeignKey(Sale, on_delete=models.SET_NULL, null=True, blank=True, related_name="consignment_lines")
    sold_at = models.DateTimeField(null=True, blank=True)
    returned_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        indexes = [
            models.Index(fields=["consignment", "status"], name="cline_consignment_status_idx"),
        ]


class ConsignmentPayment(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    consignee = models.ForeignKey(Consignee, on_delete=models.PROTECT, related_name="payments")
    consignment = models.ForeignKey(Consignment, on_delete=models.PROTECT, null=True, blank=True, related_name="payments")
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    method = models.CharField(max_length=20, choices=Payment.Method.choices)
    reference = models.CharField(max_length=128, blank=True, default="")
    notes = models.TextField(blank=True, default="")
    paid_at = models.DateTimeField()
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        indexes = [
            models.Index(fields=["consignee", "paid_at"], name="cpayment_consignee_paid_idx"),
        ]

import uuid

from django.db import models
from django.db.models import F, Q


class Product(models.Model):
    class StockStatus(models.TextChoices):
        OK = "OK", "OK"
        WARNING = "ALERTA_W", "Warning"
        ALERT = "ALERTA", "Alert"
        OUT_OF_STOCK = "AGOTADO", "Out of stock"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    code = models.CharField(max_length=64, unique=True)
    name = models.CharField(max_length=255)
    description = models.TextField(blank=True, default="")
    sale_price = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    cost_price = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    # Written only through inventory.services.apply_delta.
    stock_on_hand = models.IntegerField(default=0)
    minimum_stock = models.IntegerField(default=0)
    warning_stock = models.IntegerField(default=0)
    maximum_stock = models.IntegerField(null=True, blank=True)
    stock_status = models.CharField(max_length=16, choices=StockStatus.choices, default=StockStatus.OUT_OF_STOCK)
    is_serialized = models.BooleanField(default=False)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [
            models.Index(fields=["stock_status", "is_active"], name="product_status_active_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=Q(minimum_stock__lte=F("warning_stock")),
                name="product_minimum_lte_warning",
            ),
        ]

    def __str__(self):
        return f"{self.code} {self.name}"

    def save(self, *args, **kwargs):
        from inventory.alerts import classify

        self.code = (self.code or "").strip().upper()
        # stock_status is always derived from the count and thresholds.
        self.stock_status = classify(self.stock_on_hand, self.minimum_stock, self.warning_stock)
        update_fields = kwargs.get("update_fields")
        if update_fields is not None and "stock_status" not in update_fields:
            kwargs["update_fields"] = [*update_fields, "stock_status"]
        super().save(*args, **kwargs)


class SerializedUnit(models.Model):
    class Status(models.TextChoices):
        AVAILABLE = "DISPONIBLE", "Available"
        SOLD = "VENDIDO", "Sold"
        DEFECTIVE = "DEFECTUOSO", "Defective"
        RETURNED = "DEVUELTO", "Returned"
        CONSIGNED = "CONSIGNADO", "Consigned"

    class Origin(models.TextChoices):
        DOMESTIC = "NACIONAL", "Domestic"
        IMPORT = "IMPORTACION", "Import"
        CONSIGNMENT_IN = "CONSIGNACION_RECIBIDA", "Received on consignment"
        OTHER = "OTRO", "Other"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    serial = models.CharField(max_length=128, unique=True)
    product = models.ForeignKey(Product, on_delete=models.PROTECT, related_name="units")
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.AVAILABLE)
    unit_cost = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    warranty_months = models.PositiveIntegerField(default=6)
    origin = models.CharField(max_length=32, choices=Origin.choices, default=Origin.DOMESTIC)
    batch = models.CharField(max_length=64, blank=True, default="")
    received_at = models.DateTimeField()
    sale = models.ForeignKey("sales.Sale", on_delete=models.SET_NULL, null=True, blank=True, related_name="units")
    customer = models.ForeignKey("sales.Customer", on_delete=models.SET_NULL, null=True, blank=True)
    sale_price = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    profit = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    sold_at = models.DateTimeField(null=True, blank=True)
    warranty_expires_at = models.DateTimeField(null=True, blank=True)
    notes = models.TextField(blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [
            models.Index(fields=["product", "status"], name="unit_product_status_idx"),
            models.Index(fields=["sale"], name="unit_sale_idx"),
        ]

    def __str__(self):
        return self.serial


class StockMovement(models.Model):
    class Type(models.TextChoices):
        ENTRY = "ENTRADA", "Entry"
        EXIT = "SALIDA", "Exit"
        ADJUSTMENT = "AJUSTE", "Adjustment"
        RETURN = "DEVOLUCION", "Return"

    id = models.BigAutoField(primary_key=True)
    product = models.ForeignKey(Product, on_delete=models.PROTECT, related_name="movements")
    movement_type = models.CharField(max_length=16, choices=Type.choices)
    quantity = models.IntegerField()
    stock_before = models.IntegerField()
    stock_after = models.IntegerField()
    reference = models.CharField(max_length=128, blank=True, default="")
    reason = models.CharField(max_length=255, blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["id"]
        indexes = [
            models.Index(fields=["product", "id"], name="movement_product_idx"),
            models.Index(fields=["reference"], name="movement_reference_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=Q(stock_after=F("stock_before") + F("quantity")),
                name="movement_after_eq_before_plus_qty",
            ),
        ]


class StockAlert(models.Model):
    class Type(models.TextChoices):
        LOW_STOCK = "STOCK_BAJO", "Low stock"
        MINIMUM_STOCK = "STOCK_MINIMO", "Minimum stock"
        OUT_OF_STOCK = "AGOTADO", "Out of stock"
        OVERSTOCK = "SOBRESTOCK", "Overstock"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    product = models.ForeignKey(Product, on_delete=models.PROTECT, related_name="alerts")
    alert_type = models.CharField(max_length=16, choices=Type.choices)
    stock_at_creation = models.IntegerField()
    threshold_at_creation = models.IntegerField()
    message = models.CharField(max_length=255, blank=True, default="")
    is_resolved = models.BooleanField(default=False)
    resolved_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        indexes = [
            models.Index(fields=["is_resolved", "created_at"], name="alert_resolved_created_idx"),
            models.Index(fields=["product", "is_resolved"], name="alert_product_resolved_idx"),
        ]

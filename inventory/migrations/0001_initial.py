import uuid

import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Product",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("code", models.CharField(max_length=64, unique=True)),
                ("name", models.CharField(max_length=255)),
                ("description", models.TextField(blank=True, default="")),
                ("sale_price", models.DecimalField(decimal_places=2, default=0, max_digits=12)),
                ("cost_price", models.DecimalField(decimal_places=2, default=0, max_digits=12)),
                ("stock_on_hand", models.IntegerField(default=0)),
                ("minimum_stock", models.IntegerField(default=0)),
                ("warning_stock", models.IntegerField(default=0)),
                ("maximum_stock", models.IntegerField(blank=True, null=True)),
                (
                    "stock_status",
                    models.CharField(
                        choices=[
                            ("OK", "OK"),
                            ("ALERTA_W", "Warning"),
                            ("ALERTA", "Alert"),
                            ("AGOTADO", "Out of stock"),
                        ],
                        default="AGOTADO",
                        max_length=16,
                    ),
                ),
                ("is_serialized", models.BooleanField(default=False)),
                ("is_active", models.BooleanField(default=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "indexes": [
                    models.Index(fields=["stock_status", "is_active"], name="product_status_active_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("minimum_stock__lte", models.F("warning_stock"))),
                        name="product_minimum_lte_warning",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="SerializedUnit",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("serial", models.CharField(max_length=128, unique=True)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("DISPONIBLE", "Available"),
                            ("VENDIDO", "Sold"),
                            ("DEFECTUOSO", "Defective"),
                            ("DEVUELTO", "Returned"),
                            ("CONSIGNADO", "Consigned"),
                        ],
                        default="DISPONIBLE",
                        max_length=16,
                    ),
                ),
                ("unit_cost", models.DecimalField(decimal_places=2, default=0, max_digits=12)),
                ("warranty_months", models.PositiveIntegerField(default=6)),
                (
                    "origin",
                    models.CharField(
                        choices=[
                            ("NACIONAL", "Domestic"),
                            ("IMPORTACION", "Import"),
                            ("CONSIGNACION_RECIBIDA", "Received on consignment"),
                            ("OTRO", "Other"),
                        ],
                        default="NACIONAL",
                        max_length=32,
                    ),
                ),
                ("batch", models.CharField(blank=True, default="", max_length=64)),
                ("received_at", models.DateTimeField()),
                ("sale_price", models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True)),
                ("profit", models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True)),
                ("sold_at", models.DateTimeField(blank=True, null=True)),
                ("warranty_expires_at", models.DateTimeField(blank=True, null=True)),
                ("notes", models.TextField(blank=True, default="")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "product",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT, related_name="units", to="inventory.product"
                    ),
                ),
            ],
        ),
        migrations.CreateModel(
            name="StockMovement",
            fields=[
                ("id", models.BigAutoField(primary_key=True, serialize=False)),
                (
                    "movement_type",
                    models.CharField(
                        choices=[
                            ("ENTRADA", "Entry"),
                            ("SALIDA", "Exit"),
                            ("AJUSTE", "Adjustment"),
                            ("DEVOLUCION", "Return"),
                        ],
                        max_length=16,
                    ),
                ),
                ("quantity", models.IntegerField()),
                ("stock_before", models.IntegerField()),
                ("stock_after", models.IntegerField()),
                ("reference", models.CharField(blank=True, default="", max_length=128)),
                ("reason", models.CharField(blank=True, default="", max_length=255)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "product",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT, related_name="movements", to="inventory.product"
                    ),
                ),
            ],
            options={
                "ordering": ["id"],
                "indexes": [
                    models.Index(fields=["product", "id"], name="movement_product_idx"),
                    models.Index(fields=["reference"], name="movement_reference_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("stock_after", models.F("stock_before") + models.F("quantity"))),
                        name="movement_after_eq_before_plus_qty",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="StockAlert",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                (
                    "alert_type",
                    models.CharField(
                        choices=[
                            ("STOCK_BAJO", "Low stock"),
                            ("STOCK_MINIMO", "Minimum stock"),
                            ("AGOTADO", "Out of stock"),
                            ("SOBRESTOCK", "Overstock"),
                        ],
                        max_length=16,
                    ),
                ),
                ("stock_at_creation", models.IntegerField()),
                ("threshold_at_creation", models.IntegerField()),
                ("message", models.CharField(blank=True, default="", max_length=255)),
                ("is_resolved", models.BooleanField(default=False)),
                ("resolved_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "product",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT, related_name="alerts", to="inventory.product"
                    ),
                ),
            ],
            options={
                "indexes": [
                    models.Index(fields=["is_resolved", "created_at"], name="alert_resolved_created_idx"),
                    models.Index(fields=["product", "is_resolved"], name="alert_product_resolved_idx"),
                ],
            },
        ),
    ]

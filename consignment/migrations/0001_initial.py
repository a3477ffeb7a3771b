import uuid

import django.db.models.deletion
from django.db import migrations, models

PAYMENT_METHODS = [
    ("EFECTIVO_USD", "Cash (USD)"),
    ("EFECTIVO_BS", "Cash (Bs)"),
    ("ZELLE", "Zelle"),
    ("BINANCE", "Binance"),
    ("TRANSFERENCIA_BS", "Bank transfer (Bs)"),
    ("PAGO_MOVIL", "Pago movil"),
    ("PUNTO_VENTA", "Card terminal"),
    ("OTRO", "Other"),
]


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        ("inventory", "0002_unit_sale_links"),
        ("sales", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="Consignee",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("name", models.CharField(max_length=255)),
                ("phone", models.CharField(blank=True, default="", max_length=64)),
                ("email", models.EmailField(blank=True, default="", max_length=254)),
                ("address", models.CharField(blank=True, default="", max_length=255)),
                ("is_active", models.BooleanField(default=True)),
                ("total_consigned", models.DecimalField(decimal_places=2, default=0, max_digits=14)),
                ("total_paid", models.DecimalField(decimal_places=2, default=0, max_digits=14)),
                ("balance_due", models.DecimalField(decimal_places=2, default=0, max_digits=14)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "customer",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="consignees",
                        to="sales.customer",
                    ),
                ),
            ],
        ),
        migrations.CreateModel(
            name="Consignment",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("number", models.CharField(max_length=32, unique=True)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("PENDIENTE", "Pending"),
                            ("EN_PROCESO", "In progress"),
                            ("LIQUIDADA", "Settled"),
                            ("CANCELADA", "Cancelled"),
                        ],
                        default="PENDIENTE",
                        max_length=16,
                    ),
                ),
                ("delivered_at", models.DateTimeField()),
                ("due_date", models.DateField(blank=True, null=True)),
                ("total_value", models.DecimalField(decimal_places=2, default=0, max_digits=14)),
                ("paid_value", models.DecimalField(decimal_places=2, default=0, max_digits=14)),
                ("pending_value", models.DecimalField(decimal_places=2, default=0, max_digits=14)),
                ("notes", models.TextField(blank=True, default="")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "consignee",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="consignments",
                        to="consignment.consignee",
                    ),
                ),
            ],
            options={
                "indexes": [
                    models.Index(fields=["consignee", "status"], name="consignment_consignee_idx"),
                    models.Index(fields=["status", "due_date"], name="consignment_status_due_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="ConsignmentLine",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("price", models.DecimalField(decimal_places=2, max_digits=12)),
                (
                    "status",
                    models.CharField(
                        choices=[("ENTREGADO", "Delivered"), ("VENDIDO", "Sold"), ("DEVUELTO", "Returned")],
                        default="ENTREGADO",
                        max_length=16,
                    ),
                ),
                ("sold_at", models.DateTimeField(blank=True, null=True)),
                ("returned_at", models.DateTimeField(blank=True, null=True)),
                (
                    "consignment",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="lines",
                        to="consignment.consignment",
                    ),
                ),
                (
                    "product",
                    models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, to="inventory.product"),
                ),
                (
                    "unit",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="consignment_lines",
                        to="inventory.serializedunit",
                    ),
                ),
                (
                    "sale",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="consignment_lines",
                        to="sales.sale",
                    ),
                ),
            ],
            options={
                "indexes": [
                    models.Index(fields=["consignment", "status"], name="cline_consignment_status_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="ConsignmentPayment",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("amount", models.DecimalField(decimal_places=2, max_digits=12)),
                ("method", models.CharField(choices=PAYMENT_METHODS, max_length=20)),
                ("reference", models.CharField(blank=True, default="", max_length=128)),
                ("notes", models.TextField(blank=True, default="")),
                ("paid_at", models.DateTimeField()),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "consignee",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="payments",
                        to="consignment.consignee",
                    ),
                ),
                (
                    "consignment",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="payments",
                        to="consignment.consignment",
                    ),
                ),
            ],
            options={
                "indexes": [
                    models.Index(fields=["consignee", "paid_at"], name="cpayment_consignee_paid_idx"),
                ],
            },
        ),
    ]

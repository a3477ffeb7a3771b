import uuid

import django.db.models.deletion
from django.conf import settings
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
        ("core", "0001_initial"),
        ("inventory", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Customer",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("name", models.CharField(max_length=255)),
                ("document_id", models.CharField(blank=True, max_length=32, null=True, unique=True)),
                ("phone", models.CharField(blank=True, max_length=64, null=True)),
                ("email", models.EmailField(blank=True, max_length=254, null=True)),
                ("address", models.CharField(blank=True, default="", max_length=255)),
                ("total_purchases", models.DecimalField(decimal_places=2, default=0, max_digits=14)),
                ("order_count", models.PositiveIntegerField(default=0)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "indexes": [
                    models.Index(fields=["phone"], name="customer_phone_idx"),
                    models.Index(fields=["email"], name="customer_email_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="ExchangeRate",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("currency", models.CharField(default="VES", max_length=3)),
                ("rate", models.DecimalField(decimal_places=6, max_digits=18)),
                ("source", models.CharField(blank=True, default="", max_length=64)),
                ("effective_at", models.DateTimeField()),
                ("created_at", models.DateTimeField(auto_now_add=True)),
            ],
            options={
                "indexes": [
                    models.Index(fields=["currency", "effective_at"], name="rate_currency_effective_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(condition=models.Q(("rate__gt", 0)), name="exchange_rate_positive"),
                ],
            },
        ),
        migrations.CreateModel(
            name="Sale",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("order_number", models.CharField(max_length=64, unique=True)),
                (
                    "sale_type",
                    models.CharField(
                        choices=[("VENTA", "Sale"), ("CONSIGNACION", "Consignment")], default="VENTA", max_length=16
                    ),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[("CONFIRMADA", "Confirmed"), ("ANULADA", "Cancelled")],
                        default="CONFIRMADA",
                        max_length=16,
                    ),
                ),
                (
                    "payment_status",
                    models.CharField(
                        choices=[("PENDIENTE", "Pending"), ("PAGADO", "Paid")], default="PENDIENTE", max_length=16
                    ),
                ),
                ("subtotal", models.DecimalField(decimal_places=2, max_digits=12)),
                ("discount", models.DecimalField(decimal_places=2, default=0, max_digits=12)),
                ("tax", models.DecimalField(decimal_places=2, default=0, max_digits=12)),
                ("total", models.DecimalField(decimal_places=2, max_digits=12)),
                ("from_consignment", models.BooleanField(default=False)),
                ("notes", models.TextField(blank=True, default="")),
                ("sold_at", models.DateTimeField()),
                ("cancelled_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "customer",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="sales",
                        to="sales.customer",
                    ),
                ),
                (
                    "user",
                    models.ForeignKey(
                        blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, to=settings.AUTH_USER_MODEL
                    ),
                ),
            ],
            options={
                "indexes": [
                    models.Index(fields=["sold_at"], name="sale_sold_at_idx"),
                    models.Index(fields=["status", "sold_at"], name="sale_status_sold_at_idx"),
                    models.Index(fields=["customer", "sold_at"], name="sale_customer_sold_at_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="SaleLine",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("serial", models.CharField(blank=True, default="", max_length=128)),
                ("quantity", models.PositiveIntegerField()),
                ("unit_price", models.DecimalField(decimal_places=2, max_digits=12)),
                ("discount", models.DecimalField(decimal_places=2, default=0, max_digits=12)),
                ("subtotal", models.DecimalField(decimal_places=2, max_digits=12)),
                (
                    "sale",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE, related_name="lines", to="sales.sale"
                    ),
                ),
                (
                    "product",
                    models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, to="inventory.product"),
                ),
                (
                    "unit",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="sale_lines",
                        to="inventory.serializedunit",
                    ),
                ),
            ],
            options={
                "indexes": [
                    models.Index(fields=["sale"], name="saleline_sale_idx"),
                    models.Index(fields=["product"], name="saleline_product_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="Payment",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("method", models.CharField(choices=PAYMENT_METHODS, max_length=20)),
                (
                    "currency",
                    models.CharField(choices=[("USD", "US dollar"), ("VES", "Bolivar")], default="USD", max_length=3),
                ),
                ("amount", models.DecimalField(decimal_places=2, max_digits=14)),
                ("exchange_rate", models.DecimalField(decimal_places=6, default=1, max_digits=18)),
                ("amount_base", models.DecimalField(decimal_places=2, max_digits=12)),
                ("reference", models.CharField(blank=True, default="", max_length=128)),
                ("paid_at", models.DateTimeField()),
                (
                    "sale",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE, related_name="payments", to="sales.sale"
                    ),
                ),
            ],
            options={
                "indexes": [
                    models.Index(fields=["sale", "paid_at"], name="payment_sale_paid_at_idx"),
                    models.Index(fields=["method", "paid_at"], name="payment_method_paid_at_idx"),
                ],
            },
        ),
    ]

import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):
    dependencies = [
        ("inventory", "0001_initial"),
        ("sales", "0001_initial"),
    ]

    operations = [
        migrations.AddField(
            model_name="serializedunit",
            name="sale",
            field=models.ForeignKey(
                blank=True,
                null=True,
                on_delete=django.db.models.deletion.SET_NULL,
                related_name="units",
                to="sales.sale",
            ),
        ),
        migrations.AddField(
            model_name="serializedunit",
            name="customer",
            field=models.ForeignKey(
                blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, to="sales.customer"
            ),
        ),
        migrations.AddIndex(
            model_name="serializedunit",
            index=models.Index(fields=["product", "status"], name="unit_product_status_idx"),
        ),
        migrations.AddIndex(
            model_name="serializedunit",
            index=models.Index(fields=["sale"], name="unit_sale_idx"),
        ),
    ]

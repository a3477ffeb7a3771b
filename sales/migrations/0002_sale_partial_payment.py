from django.db import migrations, models


class Migration(migrations.Migration):
    dependencies = [
        ("sales", "0001_initial"),
    ]

    operations = [
        migrations.AlterField(
            model_name="sale",
            name="payment_status",
            field=models.CharField(
                choices=[("PENDIENTE", "Pending"), ("PARCIAL", "Partially paid"), ("PAGADO", "Paid")],
                default="PENDIENTE",
                max_length=16,
            ),
        ),
    ]

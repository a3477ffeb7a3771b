from django.core.management.base import BaseCommand, CommandError

from inventory.models import Product
from inventory.services import verify_product_ledger


class Command(BaseCommand):
    help = "Check that stock movements, product counts and serialized units agree."

    def add_arguments(self, parser):
        parser.add_argument("--product", dest="product_code", help="Optional product code to check.")
        parser.add_argument("--database", default="default", help="Database alias (default: default).")

    def handle(self, *args, **options):
        using = options["database"]
        products = Product.objects.using(using).filter(is_active=True).order_by("code")
        if options.get("product_code"):
            products = products.filter(code=options["product_code"].strip().upper())

        checked = 0
        broken = 0
        for product in products:
            checked += 1
            issues = verify_product_ledger(product, using=using)
            if not issues:
                continue
            broken += 1
            self.stdout.write(self.style.WARNING(f"{product.code}:"))
            for issue in issues:
                self.stdout.write(f"  - {issue}")

        if broken:
            raise CommandError(f"{broken} of {checked} products have ledger inconsistencies.")
        self.stdout.write(self.style.SUCCESS(f"Stock ledger consistent for {checked} products."))

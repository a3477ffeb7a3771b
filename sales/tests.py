from decimal import Decimal

from django.contrib.auth import get_user_model
from django.test import TestCase, override_settings
from django.utils import timezone
from rest_framework.test import APIClient

from common.exceptions import (
    InsufficientStock,
    InvalidPaymentAmount,
    InvalidSaleLine,
    InvalidUnitTransition,
    MissingExchangeRate,
    PaymentMismatch,
    SaleNotCancellable,
    SaleNotPayable,
    TotalsMismatch,
    UnitNotAvailable,
)
from core.models import AuditLog
from inventory.models import Product, SerializedUnit, StockMovement
from inventory.services import apply_delta, verify_product_ledger
from inventory.units import mark_defective, register_units, return_unit
from sales.models import Customer, Payment, Sale
from sales.rates import record_rate
from sales.services import (
    PaymentInput,
    SaleLineInput,
    cancel_sale,
    create_sale,
    next_order_number,
    record_payments,
    void_sale,
)


class SaleFixtureMixin:
    def setUp(self):
        self.user_model = get_user_model()
        self.cashier = self.user_model.objects.create_user(username="cashier-sales", password="pass1234", role="cashier")
        self.customer = Customer.objects.create(name="Maria Perez", document_id="V-12345678")

        self.cable = Product.objects.create(
            code="CAB-01",
            name="Cable HDMI",
            sale_price=Decimal("35.00"),
            minimum_stock=2,
            warning_stock=4,
        )
        apply_delta(self.cable.id, 10, StockMovement.Type.ENTRY, reference="INICIAL")

        self.phone = Product.objects.create(
            code="PHN-01",
            name="Telefono",
            sale_price=Decimal("100.00"),
            minimum_stock=0,
            warning_stock=1,
            is_serialized=True,
        )
        register_units(self.phone.id, ["SN-1", "SN-2", "SN-3"], "60.00")

    def _stock(self, product):
        product.refresh_from_db()
        return product.stock_on_hand

    def _two_lines(self):
        return [
            SaleLineInput(product_id=self.cable.id, quantity=2, unit_price=Decimal("35.00")),
            SaleLineInput(product_id=self.phone.id, unit_price=Decimal("100.00"), serial="sn-1"),
        ]


class CreateSaleTests(SaleFixtureMixin, TestCase):
    def test_two_line_sale_debits_stock_and_records_payment(self):
        sale = create_sale(
            self.customer.id,
            self.cashier.id,
            self._two_lines(),
            [PaymentInput(method="ZELLE", amount=Decimal("170.00"))],
            expected_total=Decimal("170.00"),
        )

        self.assertEqual(sale.subtotal, Decimal("170.00"))
        self.assertEqual(sale.total, Decimal("170.00"))
        self.assertEqual(sale.status, Sale.Status.CONFIRMED)
        self.assertEqual(sale.payment_status, Sale.PaymentStatus.PAID)
        self.assertTrue(sale.order_number.startswith("V-"))
        self.assertTrue(sale.order_number.endswith("-0001"))

        exits = StockMovement.objects.filter(reference=sale.order_number, movement_type=StockMovement.Type.EXIT)
        self.assertEqual(exits.count(), 2)
        self.assertEqual(self._stock(self.cable), 8)
        self.assertEqual(self._stock(self.phone), 2)

        unit = SerializedUnit.objects.get(serial="SN-1")
        self.assertEqual(unit.status, SerializedUnit.Status.SOLD)
        self.assertEqual(unit.sale_id, sale.id)
        self.assertEqual(unit.customer_id, self.customer.id)
        self.assertEqual(unit.profit, Decimal("40.00"))

        self.customer.refresh_from_db()
        self.assertEqual(self.customer.total_purchases, Decimal("170.00"))
        self.assertEqual(self.customer.order_count, 1)

    def test_order_numbers_follow_daily_sequence(self):
        first = create_sale(None, None, [SaleLineInput(product_id=self.cable.id, unit_price=Decimal("35.00"))])
        second = create_sale(None, None, [SaleLineInput(product_id=self.cable.id, unit_price=Decimal("35.00"))])

        self.assertEqual(first.order_number[:-4], second.order_number[:-4])
        self.assertEqual(second.order_number[-4:], "0002")

    def test_sale_without_payments_is_pending(self):
        sale = create_sale(self.customer.id, None, self._two_lines())

        self.assertEqual(sale.payment_status, Sale.PaymentStatus.PENDING)
        self.assertFalse(Payment.objects.filter(sale=sale).exists())

    def test_failed_line_rolls_back_whole_sale(self):
        mark_defective("SN-3")
        cable_before = self._stock(self.cable)
        phone_before = self._stock(self.phone)
        movements_before = StockMovement.objects.count()

        lines = [
            SaleLineInput(product_id=self.cable.id, quantity=1, unit_price=Decimal("35.00")),
            SaleLineInput(product_id=self.phone.id, unit_price=Decimal("100.00"), serial="SN-2"),
            SaleLineInput(product_id=self.phone.id, unit_price=Decimal("100.00"), serial="SN-3"),
        ]
        with self.assertRaises(UnitNotAvailable):
            create_sale(self.customer.id, self.cashier.id, lines)

        self.assertEqual(self._stock(self.cable), cable_before)
        self.assertEqual(self._stock(self.phone), phone_before)
        self.assertEqual(StockMovement.objects.count(), movements_before)
        self.assertFalse(Sale.objects.exists())
        self.assertEqual(SerializedUnit.objects.get(serial="SN-2").status, SerializedUnit.Status.AVAILABLE)
        self.customer.refresh_from_db()
        self.assertEqual(self.customer.order_count, 0)

    def test_payments_must_cover_total(self):
        with self.assertRaises(PaymentMismatch):
            create_sale(
                self.customer.id,
                None,
                self._two_lines(),
                [PaymentInput(method="EFECTIVO_USD", amount=Decimal("100.00"))],
            )
        self.assertFalse(Sale.objects.exists())
        self.assertEqual(self._stock(self.cable), 10)

    def test_payment_within_tolerance_is_accepted(self):
        sale = create_sale(
            None,
            None,
            self._two_lines(),
            [
                PaymentInput(method="EFECTIVO_USD", amount=Decimal("100.00")),
                PaymentInput(method="PUNTO_VENTA", amount=Decimal("69.99")),
            ],
        )
        self.assertEqual(sale.payment_status, Sale.PaymentStatus.PAID)

    @override_settings(SALES_PAYMENT_TOLERANCE=Decimal("0"))
    def test_tolerance_is_configurable(self):
        with self.assertRaises(PaymentMismatch):
            create_sale(
                None,
                None,
                self._two_lines(),
                [PaymentInput(method="EFECTIVO_USD", amount=Decimal("169.99"))],
            )

    def test_foreign_currency_payment_uses_latest_rate(self):
        record_rate("VES", Decimal("40.000000"), source="BCV")

        sale = create_sale(
            None,
            None,
            [SaleLineInput(product_id=self.cable.id, unit_price=Decimal("35.00"))],
            [PaymentInput(method="PAGO_MOVIL", amount=Decimal("1400.00"), currency="VES")],
        )

        payment = Payment.objects.get(sale=sale)
        self.assertEqual(payment.exchange_rate, Decimal("40.000000"))
        self.assertEqual(payment.amount_base, Decimal("35.00"))

    def test_foreign_currency_without_rate_is_rejected(self):
        with self.assertRaises(MissingExchangeRate):
            create_sale(
                None,
                None,
                [SaleLineInput(product_id=self.cable.id, unit_price=Decimal("35.00"))],
                [PaymentInput(method="EFECTIVO_BS", amount=Decimal("1400.00"), currency="VES")],
            )

    def test_expected_total_must_match(self):
        with self.assertRaises(TotalsMismatch):
            create_sale(None, None, self._two_lines(), expected_total=Decimal("160.00"))

    def test_discount_and_tax_shape_total(self):
        sale = create_sale(None, None, self._two_lines(), discount=Decimal("20.00"), tax=Decimal("5.50"))
        self.assertEqual(sale.total, Decimal("155.50"))

    def test_serialized_product_needs_serial(self):
        with self.assertRaises(InvalidSaleLine):
            create_sale(None, None, [SaleLineInput(product_id=self.phone.id, unit_price=Decimal("100.00"))])

    def test_serial_must_belong_to_line_product(self):
        with self.assertRaises(InvalidSaleLine):
            create_sale(
                None,
                None,
                [SaleLineInput(product_id=self.cable.id, unit_price=Decimal("35.00"), serial="SN-1")],
            )

    def test_sale_never_drives_stock_negative(self):
        with self.assertRaises(InsufficientStock) as ctx:
            create_sale(
                None,
                None,
                [SaleLineInput(product_id=self.cable.id, quantity=11, unit_price=Decimal("35.00"))],
            )
        self.assertEqual(ctx.exception.details["available"], 10)
        self.assertEqual(self._stock(self.cable), 10)


class OrderNumberTests(TestCase):
    def test_daily_sequence_keeps_counting_past_four_digits(self):
        prefix = timezone.localdate().strftime("V-%Y%m%d-")
        for suffix in ("0002", "9999", "10000"):
            Sale.objects.create(order_number=f"{prefix}{suffix}", subtotal=0, total=0, sold_at=timezone.now())

        self.assertEqual(next_order_number(), f"{prefix}10001")


class RecordPaymentsTests(SaleFixtureMixin, TestCase):
    def _pending_sale(self, **kwargs):
        return create_sale(self.customer.id, self.cashier.id, self._two_lines(), **kwargs)

    def test_pending_sale_is_paid_in_installments(self):
        sale = self._pending_sale()
        self.assertEqual(sale.payment_status, Sale.PaymentStatus.PENDING)

        sale = record_payments(sale.id, [PaymentInput(method="ZELLE", amount=Decimal("100.00"))])
        self.assertEqual(sale.payment_status, Sale.PaymentStatus.PARTIAL)

        sale = record_payments(sale.id, [PaymentInput(method="EFECTIVO_USD", amount=Decimal("70.00"))])
        self.assertEqual(sale.payment_status, Sale.PaymentStatus.PAID)

        self.assertEqual(Payment.objects.filter(sale=sale).count(), 2)
        self.assertEqual(AuditLog.objects.filter(action="sale.payment", entity_id=sale.id).count(), 2)
        self.customer.refresh_from_db()
        self.assertEqual(self.customer.total_purchases, Decimal("170.00"))
        self.assertEqual(self.customer.order_count, 1)

    def test_consignment_sale_joins_customer_stats_when_paid(self):
        record_rate("VES", Decimal("40.000000"), source="BCV")
        sale = create_sale(
            self.customer.id,
            self.cashier.id,
            [SaleLineInput(product_id=self.cable.id, quantity=2, unit_price=Decimal("35.00"))],
            sale_type=Sale.Type.CONSIGNMENT,
        )
        self.customer.refresh_from_db()
        self.assertEqual(self.customer.order_count, 0)

        sale = record_payments(sale.id, [PaymentInput(method="PAGO_MOVIL", amount=Decimal("2800.00"), currency="VES")])

        self.assertEqual(sale.payment_status, Sale.PaymentStatus.PAID)
        self.assertEqual(Payment.objects.get(sale=sale).amount_base, Decimal("70.00"))
        self.customer.refresh_from_db()
        self.assertEqual(self.customer.total_purchases, Decimal("70.00"))
        self.assertEqual(self.customer.order_count, 1)

        cancel_sale(sale.id)
        self.customer.refresh_from_db()
        self.assertEqual(self.customer.total_purchases, Decimal("0.00"))
        self.assertEqual(self.customer.order_count, 0)

    def test_overpayment_is_rejected_without_side_effects(self):
        sale = self._pending_sale()
        record_payments(sale.id, [PaymentInput(method="ZELLE", amount=Decimal("100.00"))])

        with self.assertRaises(PaymentMismatch):
            record_payments(sale.id, [PaymentInput(method="ZELLE", amount=Decimal("70.02"))])

        sale.refresh_from_db()
        self.assertEqual(sale.payment_status, Sale.PaymentStatus.PARTIAL)
        self.assertEqual(Payment.objects.filter(sale=sale).count(), 1)

    def test_paid_and_cancelled_sales_take_no_payments(self):
        paid = self._pending_sale(payments=[PaymentInput(method="ZELLE", amount=Decimal("170.00"))])
        with self.assertRaises(SaleNotPayable):
            record_payments(paid.id, [PaymentInput(method="ZELLE", amount=Decimal("1.00"))])

        cancelled = cancel_sale(
            create_sale(
                None,
                None,
                [SaleLineInput(product_id=self.cable.id, unit_price=Decimal("35.00"))],
            ).id
        )
        with self.assertRaises(SaleNotPayable):
            record_payments(cancelled.id, [PaymentInput(method="ZELLE", amount=Decimal("35.00"))])
        with self.assertRaises(InvalidPaymentAmount):
            record_payments(cancelled.id, [])


class CancelAndVoidTests(SaleFixtureMixin, TestCase):
    def setUp(self):
        super().setUp()
        self.sale = create_sale(
            self.customer.id,
            self.cashier.id,
            self._two_lines(),
            [PaymentInput(method="ZELLE", amount=Decimal("170.00"))],
        )

    def test_cancel_restores_stock_units_and_customer(self):
        sale = cancel_sale(self.sale.id, reason="Cliente desistio", request_id="req-cancel")

        self.assertEqual(sale.status, Sale.Status.CANCELLED)
        self.assertIsNotNone(sale.cancelled_at)
        self.assertEqual(self._stock(self.cable), 10)
        self.assertEqual(self._stock(self.phone), 3)
        unit = SerializedUnit.objects.get(serial="SN-1")
        self.assertEqual(unit.status, SerializedUnit.Status.AVAILABLE)
        self.assertIsNone(unit.sale_id)

        self.customer.refresh_from_db()
        self.assertEqual(self.customer.total_purchases, Decimal("0.00"))
        self.assertEqual(self.customer.order_count, 0)

        returns = StockMovement.objects.filter(reference=sale.order_number, movement_type=StockMovement.Type.RETURN)
        self.assertEqual(returns.count(), 2)
        self.assertTrue(AuditLog.objects.filter(action="sale.cancel", entity_id=sale.id, request_id="req-cancel").exists())
        self.assertEqual(verify_product_ledger(self.cable), [])
        self.assertEqual(verify_product_ledger(self.phone), [])

    def test_cancel_twice_is_rejected(self):
        cancel_sale(self.sale.id)
        with self.assertRaises(SaleNotCancellable):
            cancel_sale(self.sale.id)
        self.assertEqual(self._stock(self.cable), 10)

    def test_cancel_after_unit_return_is_rejected(self):
        return_unit("SN-1", "Garantia")
        stock_before = self._stock(self.phone)

        with self.assertRaises(InvalidUnitTransition):
            cancel_sale(self.sale.id)

        self.sale.refresh_from_db()
        self.assertEqual(self.sale.status, Sale.Status.CONFIRMED)
        self.assertEqual(self._stock(self.phone), stock_before)

    def test_void_deletes_sale_and_keeps_movement_history(self):
        order_number = self.sale.order_number

        void_sale(self.sale.id)

        self.assertFalse(Sale.objects.filter(id=self.sale.id).exists())
        self.assertFalse(Payment.objects.exists())
        self.assertEqual(self._stock(self.cable), 10)
        self.assertEqual(self._stock(self.phone), 3)
        types = StockMovement.objects.filter(reference=order_number).values_list("movement_type", flat=True)
        self.assertEqual(sorted(types), ["DEVOLUCION", "DEVOLUCION", "SALIDA", "SALIDA"])
        log = AuditLog.objects.get(action="sale.void")
        self.assertEqual(log.before_snapshot["order_number"], order_number)
        self.assertEqual(len(log.before_snapshot["lines"]), 2)

    def test_void_of_cancelled_sale_does_not_credit_twice(self):
        cancel_sale(self.sale.id)
        void_sale(self.sale.id)

        self.assertEqual(self._stock(self.cable), 10)
        self.assertEqual(self._stock(self.phone), 3)
        self.assertEqual(verify_product_ledger(self.cable), [])


class SalesApiTests(SaleFixtureMixin, TestCase):
    def setUp(self):
        super().setUp()
        self.client = APIClient()
        self.supervisor = self.user_model.objects.create_user(
            username="supervisor-sales",
            password="pass1234",
            role="supervisor",
        )
        self.admin = self.user_model.objects.create_user(username="admin-sales", password="pass1234", role="admin")

    def _post_sale(self, **overrides):
        payload = {
            "customer": str(self.customer.id),
            "lines": [
                {"product": str(self.cable.id), "quantity": 2, "unit_price": "35.00"},
                {"product": str(self.phone.id), "unit_price": "100.00", "serial": "SN-2"},
            ],
            "payments": [{"method": "EFECTIVO_USD", "amount": "170.00"}],
            "total": "170.00",
        }
        payload.update(overrides)
        return self.client.post("/api/v1/sales/", payload, format="json")

    def test_cashier_creates_sale(self):
        self.client.force_authenticate(user=self.cashier)

        response = self._post_sale()

        self.assertEqual(response.status_code, 201)
        payload = response.json()
        self.assertEqual(payload["total"], "170.00")
        self.assertEqual(payload["payment_status"], "PAGADO")
        self.assertEqual(payload["customer_name"], "Maria Perez")
        self.assertEqual(len(payload["lines"]), 2)
        self.assertEqual(Sale.objects.get(id=payload["id"]).user_id, self.cashier.id)

    def test_payment_mismatch_uses_error_envelope(self):
        self.client.force_authenticate(user=self.cashier)

        response = self._post_sale(payments=[{"method": "ZELLE", "amount": "20.00"}])

        self.assertEqual(response.status_code, 422)
        self.assertEqual(response.json()["code"], "inconsistent")
        self.assertEqual(response.json()["errors"], {"total": "170.00", "paid": "20.00"})

    def test_empty_sale_is_a_validation_error(self):
        self.client.force_authenticate(user=self.cashier)

        response = self._post_sale(lines=[])

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["code"], "validation_error")
        self.assertIn("lines", response.json()["errors"])

    def test_cancel_requires_supervisor(self):
        sale = create_sale(None, None, [SaleLineInput(product_id=self.cable.id, unit_price=Decimal("35.00"))])

        self.client.force_authenticate(user=self.cashier)
        self.assertEqual(self.client.post(f"/api/v1/sales/{sale.id}/cancel/").status_code, 403)

        self.client.force_authenticate(user=self.supervisor)
        response = self.client.post(f"/api/v1/sales/{sale.id}/cancel/", {"reason": "Error de caja"}, format="json")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["status"], "ANULADA")

    def test_only_admin_can_void(self):
        sale = create_sale(None, None, [SaleLineInput(product_id=self.cable.id, unit_price=Decimal("35.00"))])

        self.client.force_authenticate(user=self.supervisor)
        self.assertEqual(self.client.post(f"/api/v1/sales/{sale.id}/void/").status_code, 403)

        self.client.force_authenticate(user=self.admin)
        response = self.client.post(f"/api/v1/sales/{sale.id}/void/", HTTP_X_REQUEST_ID="req-void")
        self.assertEqual(response.status_code, 204)
        self.assertFalse(Sale.objects.filter(id=sale.id).exists())
        self.assertEqual(AuditLog.objects.get(action="sale.void").actor, self.admin)

    def test_unknown_sale_returns_not_found(self):
        self.client.force_authenticate(user=self.admin)

        response = self.client.post("/api/v1/sales/00000000-0000-0000-0000-000000000000/void/")

        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["code"], "not_found")

    def test_exchange_rates_are_managed_by_supervisors(self):
        self.client.force_authenticate(user=self.cashier)
        payload = {"currency": "VES", "rate": "41.500000", "effective_at": "2026-01-02T12:00:00Z"}
        self.assertEqual(self.client.post("/api/v1/exchange-rates/", payload, format="json").status_code, 403)

        self.client.force_authenticate(user=self.supervisor)
        self.assertEqual(self.client.post("/api/v1/exchange-rates/", payload, format="json").status_code, 201)
        listing = self.client.get("/api/v1/exchange-rates/", {"currency": "ves"})
        self.assertEqual(listing.json()["count"], 1)

    def test_pending_sale_is_settled_over_api(self):
        self.client.force_authenticate(user=self.cashier)
        created = self._post_sale(payments=[])
        self.assertEqual(created.json()["payment_status"], "PENDIENTE")
        url = f"/api/v1/sales/{created.json()['id']}/payments/"

        response = self.client.post(url, {"payments": [{"method": "ZELLE", "amount": "170.00"}]}, format="json")

        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()["payment_status"], "PAGADO")
        self.assertEqual(len(response.json()["payments"]), 1)

        again = self.client.post(url, {"payments": [{"method": "ZELLE", "amount": "1.00"}]}, format="json")
        self.assertEqual(again.status_code, 409)
        self.assertEqual(again.json()["code"], "invalid_state")

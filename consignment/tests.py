from datetime import timedelta
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.test import TestCase
from django.utils import timezone
from rest_framework.test import APIClient

from common.exceptions import (
    ConsigneeInactive,
    ConsignmentMismatch,
    InvalidPaymentAmount,
    LineNotPending,
    MixedConsignmentLines,
    SaleNotCancellable,
    SaleNotVoidable,
    UnitNotAvailable,
)
from consignment.models import Consignee, Consignment, ConsignmentLine
from consignment.services import (
    ConsignmentLineInput,
    create_consignment,
    register_payment,
    report_returned,
    report_sold,
)
from inventory.models import Product, SerializedUnit, StockMovement
from inventory.services import verify_product_ledger
from inventory.units import register_units
from sales.models import Customer, Sale
from sales.services import PaymentInput, cancel_sale, record_payments, void_sale


class ConsignmentFixtureMixin:
    def setUp(self):
        self.customer = Customer.objects.create(name="Tienda Centro")
        self.consignee = Consignee.objects.create(name="Tienda Centro", customer=self.customer)
        self.phone = Product.objects.create(
            code="PHN-01",
            name="Telefono",
            minimum_stock=0,
            warning_stock=1,
            is_serialized=True,
        )
        register_units(self.phone.id, ["C-1", "C-2", "C-3", "C-4"], "60.00")

    def _stock(self):
        self.phone.refresh_from_db()
        return self.phone.stock_on_hand

    def _consign(self, *serials, price="100.00"):
        return create_consignment(
            self.consignee.id,
            [ConsignmentLineInput(serial=serial, price=Decimal(price)) for serial in serials],
            due_date=timezone.localdate() + timedelta(days=30),
        )

    def _line_ids(self, consignment, *serials):
        return list(
            ConsignmentLine.objects.filter(consignment=consignment, unit__serial__in=serials).values_list("id", flat=True)
        )


class CreateConsignmentTests(ConsignmentFixtureMixin, TestCase):
    def test_hand_over_debits_stock_once(self):
        consignment = self._consign("c-1", "C-2")

        self.assertTrue(consignment.number.startswith("CON-"))
        self.assertTrue(consignment.number.endswith("-001"))
        self.assertEqual(consignment.status, Consignment.Status.PENDING)
        self.assertEqual(consignment.total_value, Decimal("200.00"))
        self.assertEqual(self._stock(), 2)

        movement = StockMovement.objects.get(reference=consignment.number)
        self.assertEqual((movement.movement_type, movement.quantity), (StockMovement.Type.EXIT, -2))
        self.assertEqual(
            set(SerializedUnit.objects.filter(serial__in=["C-1", "C-2"]).values_list("status", flat=True)),
            {SerializedUnit.Status.CONSIGNED},
        )
        self.consignee.refresh_from_db()
        self.assertEqual(self.consignee.balance_due, Decimal("200.00"))
        self.assertEqual(verify_product_ledger(self.phone), [])

    def test_unavailable_unit_rejects_whole_consignment(self):
        self._consign("C-1")

        with self.assertRaises(UnitNotAvailable):
            self._consign("C-2", "C-1")

        self.assertEqual(Consignment.objects.count(), 1)
        self.assertEqual(SerializedUnit.objects.get(serial="C-2").status, SerializedUnit.Status.AVAILABLE)
        self.assertEqual(self._stock(), 3)

    def test_inactive_consignee_is_rejected(self):
        self.consignee.is_active = False
        self.consignee.save()

        with self.assertRaises(ConsigneeInactive):
            self._consign("C-1")

    def test_overdue_is_derived_from_due_date(self):
        consignment = self._consign("C-1")
        self.assertFalse(consignment.is_overdue)

        consignment.due_date = timezone.localdate() - timedelta(days=1)
        self.assertTrue(consignment.is_overdue)


class SettlementTests(ConsignmentFixtureMixin, TestCase):
    def setUp(self):
        super().setUp()
        self.consignment = self._consign("C-1", "C-2", "C-3")

    def test_report_sold_creates_pending_sale_without_second_debit(self):
        movements_before = StockMovement.objects.count()

        sale = report_sold(self._line_ids(self.consignment, "C-1", "C-2"))

        self.assertTrue(sale.from_consignment)
        self.assertEqual(sale.payment_status, Sale.PaymentStatus.PENDING)
        self.assertEqual(sale.total, Decimal("200.00"))
        self.assertEqual(sale.customer_id, self.customer.id)
        self.assertEqual(StockMovement.objects.count(), movements_before)
        self.assertEqual(self._stock(), 1)

        unit = SerializedUnit.objects.get(serial="C-1")
        self.assertEqual(unit.status, SerializedUnit.Status.SOLD)
        self.assertEqual(unit.sale_id, sale.id)

        self.consignment.refresh_from_db()
        self.assertEqual(self.consignment.status, Consignment.Status.IN_PROGRESS)
        self.assertEqual(verify_product_ledger(self.phone), [])

    def test_report_returned_credits_stock(self):
        consignment = report_returned(self._line_ids(self.consignment, "C-3"))

        self.assertEqual(self._stock(), 2)
        self.assertEqual(SerializedUnit.objects.get(serial="C-3").status, SerializedUnit.Status.AVAILABLE)
        self.assertEqual(consignment.total_value, Decimal("200.00"))
        self.assertEqual(consignment.pending_value, Decimal("200.00"))
        movement = StockMovement.objects.filter(reference=consignment.number).order_by("-id").first()
        self.assertEqual((movement.movement_type, movement.quantity), (StockMovement.Type.RETURN, 1))
        self.consignee.refresh_from_db()
        self.assertEqual(self.consignee.balance_due, Decimal("200.00"))
        self.assertEqual(verify_product_ledger(self.phone), [])

    def test_line_is_settled_only_once(self):
        line_ids = self._line_ids(self.consignment, "C-1")
        report_sold(line_ids)

        with self.assertRaises(LineNotPending):
            report_sold(line_ids)
        with self.assertRaises(LineNotPending):
            report_returned(line_ids)
        self.assertEqual(Sale.objects.count(), 1)

    def test_lines_from_different_consignments_are_rejected(self):
        other = self._consign("C-4")

        with self.assertRaises(MixedConsignmentLines):
            report_sold(self._line_ids(self.consignment, "C-1") + self._line_ids(other, "C-4"))

    def test_status_rolls_up_to_settled_and_cancelled(self):
        report_sold(self._line_ids(self.consignment, "C-1", "C-2"))
        report_returned(self._line_ids(self.consignment, "C-3"))
        self.consignment.refresh_from_db()
        self.assertEqual(self.consignment.status, Consignment.Status.IN_PROGRESS)

        register_payment(self.consignee.id, Decimal("200.00"), "ZELLE", self.consignment.id)

        self.consignment.refresh_from_db()
        self.assertEqual(self.consignment.status, Consignment.Status.SETTLED)
        self.assertEqual(self.consignment.pending_value, Decimal("0.00"))
        self.consignee.refresh_from_db()
        self.assertEqual(self.consignee.balance_due, Decimal("0.00"))

        returned = self._consign("C-3")
        report_returned(self._line_ids(returned, "C-3"))
        returned.refresh_from_db()
        self.assertEqual(returned.status, Consignment.Status.CANCELLED)

    def test_reported_sale_is_collected_after_consignee_pays(self):
        sale = report_sold(self._line_ids(self.consignment, "C-1", "C-2"))
        register_payment(self.consignee.id, Decimal("200.00"), "ZELLE", self.consignment.id)
        sale.refresh_from_db()
        self.assertEqual(sale.payment_status, Sale.PaymentStatus.PENDING)

        sale = record_payments(sale.id, [PaymentInput(method="ZELLE", amount=Decimal("200.00"))])

        self.assertEqual(sale.payment_status, Sale.PaymentStatus.PAID)
        self.customer.refresh_from_db()
        self.assertEqual(self.customer.total_purchases, Decimal("200.00"))
        self.assertEqual(self.customer.order_count, 1)

    def test_payment_must_match_consignee_and_be_positive(self):
        other = Consignee.objects.create(name="Otra Tienda")

        with self.assertRaises(ConsignmentMismatch):
            register_payment(other.id, Decimal("10.00"), "ZELLE", self.consignment.id)
        with self.assertRaises(InvalidPaymentAmount):
            register_payment(self.consignee.id, Decimal("0"), "ZELLE")

    def test_consigned_sale_cannot_be_cancelled_or_voided(self):
        sale = report_sold(self._line_ids(self.consignment, "C-1"))

        with self.assertRaises(SaleNotCancellable):
            cancel_sale(sale.id)
        with self.assertRaises(SaleNotVoidable):
            void_sale(sale.id)


class ConsignmentApiTests(ConsignmentFixtureMixin, TestCase):
    def setUp(self):
        super().setUp()
        self.client = APIClient()
        self.user = get_user_model().objects.create_user(username="cashier-con", password="pass1234", role="cashier")
        self.client.force_authenticate(user=self.user)

    def test_full_cycle_over_api(self):
        response = self.client.post(
            "/api/v1/consignments/",
            {
                "consignee": str(self.consignee.id),
                "lines": [
                    {"serial": "C-1", "price": "120.00"},
                    {"serial": "C-2", "price": "120.00", "product": str(self.phone.id)},
                ],
            },
            format="json",
        )
        self.assertEqual(response.status_code, 201)
        payload = response.json()
        self.assertEqual(payload["status"], "PENDIENTE")
        lines = {line["serial"]: line["id"] for line in payload["lines"]}

        sold = self.client.post("/api/v1/consignments/report-sold/", {"lines": [lines["C-1"]]}, format="json")
        self.assertEqual(sold.status_code, 201)
        self.assertTrue(sold.json()["from_consignment"])
        self.assertEqual(sold.json()["user"], str(self.user.id))

        returned = self.client.post("/api/v1/consignments/report-returned/", {"lines": [lines["C-2"]]}, format="json")
        self.assertEqual(returned.status_code, 200)
        self.assertEqual(returned.json()["pending_value"], "120.00")

        paid = self.client.post(
            "/api/v1/consignment-payments/",
            {
                "consignee": str(self.consignee.id),
                "consignment": payload["id"],
                "amount": "120.00",
                "method": "PAGO_MOVIL",
            },
            format="json",
        )
        self.assertEqual(paid.status_code, 201)

        detail = self.client.get(f"/api/v1/consignments/{payload['id']}/")
        self.assertEqual(detail.json()["status"], "LIQUIDADA")
        self.assertEqual(self._stock(), 3)

    def test_reporting_settled_line_conflicts(self):
        consignment = self._consign("C-1")
        line_ids = [str(pk) for pk in self._line_ids(consignment, "C-1")]
        self.client.post("/api/v1/consignments/report-sold/", {"lines": line_ids}, format="json")

        response = self.client.post("/api/v1/consignments/report-returned/", {"lines": line_ids}, format="json")

        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json()["code"], "invalid_state")

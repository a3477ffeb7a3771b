from datetime import timedelta
from decimal import Decimal
from io import StringIO
from unittest.mock import patch

from dateutil.relativedelta import relativedelta
from django.contrib.auth import get_user_model
from django.core.management import call_command
from django.core.management.base import CommandError
from django.test import SimpleTestCase, TestCase, override_settings
from django.utils import timezone
from rest_framework.test import APIClient

from common.exceptions import (
    AlertAlreadyResolved,
    DuplicateSerial,
    InsufficientStock,
    InvalidMovement,
    InvalidThresholds,
    InvalidUnitTransition,
    ProductNotFound,
    ProductNotSerialized,
    SerializedStockChange,
    UnitNotAvailable,
    UnitNotFound,
)
from inventory.alerts import classify, crosses_overstock, is_worse, validate_thresholds
from inventory.models import Product, SerializedUnit, StockAlert, StockMovement
from inventory.services import (
    adjust_stock,
    apply_delta,
    inventory_summary,
    lock_product,
    resolve_alert,
    set_thresholds,
    verify_product_ledger,
)
from inventory.units import (
    lock_unit,
    lookup_unit,
    mark_defective,
    register_units,
    restock_unit,
    return_unit,
    sell_unit,
)


class ClassifyTests(SimpleTestCase):
    def test_rules_apply_in_order(self):
        self.assertEqual(classify(0, 3, 5), Product.StockStatus.OUT_OF_STOCK)
        self.assertEqual(classify(-2, 3, 5), Product.StockStatus.OUT_OF_STOCK)
        self.assertEqual(classify(3, 3, 5), Product.StockStatus.ALERT)
        self.assertEqual(classify(4, 3, 5), Product.StockStatus.WARNING)
        self.assertEqual(classify(5, 3, 5), Product.StockStatus.WARNING)
        self.assertEqual(classify(6, 3, 5), Product.StockStatus.OK)

    def test_zero_thresholds_only_flag_out_of_stock(self):
        self.assertEqual(classify(1, 0, 0), Product.StockStatus.OK)
        self.assertEqual(classify(0, 0, 0), Product.StockStatus.OUT_OF_STOCK)

    def test_severity_never_improves_as_stock_drops(self):
        previous = classify(20, 3, 5)
        for stock in range(19, -3, -1):
            current = classify(stock, 3, 5)
            self.assertFalse(is_worse(current, previous), f"stock={stock}")
            previous = current

    def test_overstock_crossing_is_one_way(self):
        self.assertTrue(crosses_overstock(20, 21, 20))
        self.assertFalse(crosses_overstock(21, 25, 20))
        self.assertFalse(crosses_overstock(25, 10, 20))
        self.assertFalse(crosses_overstock(0, 100, None))

    def test_validate_thresholds_reports_each_field(self):
        with self.assertRaises(InvalidThresholds) as ctx:
            validate_thresholds(6, 5, 4)
        self.assertEqual(sorted(ctx.exception.details), ["maximum_stock", "warning_stock"])


class ApplyDeltaTests(TestCase):
    def setUp(self):
        self.product = Product.objects.create(
            code="cab-01",
            name="Cable",
            sale_price=Decimal("12.50"),
            minimum_stock=3,
            warning_stock=5,
        )

    def test_code_is_normalized_and_status_derived_on_save(self):
        self.product.refresh_from_db()
        self.assertEqual(self.product.code, "CAB-01")
        self.assertEqual(self.product.stock_status, Product.StockStatus.OUT_OF_STOCK)

    def test_status_walks_down_and_raises_one_alert_per_worsening(self):
        change = apply_delta(self.product.id, 10, StockMovement.Type.ENTRY, reference="PO-1")
        self.assertEqual(change.status_after, Product.StockStatus.OK)
        self.assertEqual(change.alerts, [])

        change = apply_delta(self.product.id, -6, StockMovement.Type.EXIT)
        self.assertEqual(change.stock_after, 4)
        self.assertEqual(change.status_after, Product.StockStatus.WARNING)
        self.assertEqual([alert.alert_type for alert in change.alerts], [StockAlert.Type.LOW_STOCK])
        self.assertEqual(change.alerts[0].threshold_at_creation, 5)
        self.assertEqual(change.alerts[0].message, "Stock bajo para CAB-01: 4 unidades")

        change = apply_delta(self.product.id, -2, StockMovement.Type.EXIT)
        self.assertEqual(change.status_after, Product.StockStatus.ALERT)
        self.assertEqual([alert.alert_type for alert in change.alerts], [StockAlert.Type.MINIMUM_STOCK])
        self.assertEqual(change.alerts[0].threshold_at_creation, 3)

        change = apply_delta(self.product.id, -2, StockMovement.Type.EXIT)
        self.assertEqual(change.status_after, Product.StockStatus.OUT_OF_STOCK)
        self.assertEqual([alert.alert_type for alert in change.alerts], [StockAlert.Type.OUT_OF_STOCK])

        self.product.refresh_from_db()
        self.assertEqual(self.product.stock_on_hand, 0)
        self.assertEqual(StockAlert.objects.filter(product=self.product).count(), 3)
        self.assertEqual(StockMovement.objects.filter(product=self.product).count(), 4)

    def test_improving_status_raises_no_alert(self):
        apply_delta(self.product.id, 4, StockMovement.Type.ENTRY)
        change = apply_delta(self.product.id, 10, StockMovement.Type.ENTRY)
        self.assertEqual(change.status_after, Product.StockStatus.OK)
        self.assertEqual(change.alerts, [])
        self.assertEqual(StockAlert.objects.filter(product=self.product).count(), 1)

    def test_movement_records_before_and_after(self):
        apply_delta(self.product.id, 7, StockMovement.Type.ENTRY)
        change = apply_delta(self.product.id, -3, StockMovement.Type.ADJUSTMENT, reason="Conteo fisico")

        movement = change.movement
        self.assertEqual((movement.stock_before, movement.quantity, movement.stock_after), (7, -3, 4))
        self.assertEqual(movement.reason, "Conteo fisico")

    def test_sign_must_match_movement_type(self):
        with self.assertRaises(InvalidMovement):
            apply_delta(self.product.id, -1, StockMovement.Type.ENTRY)
        with self.assertRaises(InvalidMovement):
            apply_delta(self.product.id, 1, StockMovement.Type.EXIT)
        with self.assertRaises(InvalidMovement):
            apply_delta(self.product.id, 0, StockMovement.Type.ADJUSTMENT)
        with self.assertRaises(InvalidMovement):
            apply_delta(self.product.id, 1, "TRASLADO")
        self.assertFalse(StockMovement.objects.exists())

    def test_negative_stock_allowed_by_default(self):
        change = apply_delta(self.product.id, -1, StockMovement.Type.EXIT)
        self.assertEqual(change.stock_after, -1)
        self.assertEqual(change.status_after, Product.StockStatus.OUT_OF_STOCK)

    @override_settings(INVENTORY_ALLOW_NEGATIVE_STOCK=False)
    def test_negative_stock_rejected_when_disabled(self):
        apply_delta(self.product.id, 2, StockMovement.Type.ENTRY)

        with self.assertRaises(InsufficientStock) as ctx:
            apply_delta(self.product.id, -3, StockMovement.Type.EXIT)

        self.assertEqual(ctx.exception.details["available"], 2)
        self.product.refresh_from_db()
        self.assertEqual(self.product.stock_on_hand, 2)
        self.assertEqual(StockMovement.objects.filter(product=self.product).count(), 1)

    def test_explicit_flag_overrides_setting(self):
        with self.assertRaises(InsufficientStock):
            apply_delta(self.product.id, -1, StockMovement.Type.EXIT, allow_negative=False)

    def test_overstock_alert_on_crossing_maximum(self):
        set_thresholds(self.product.id, 3, 5, 20)
        apply_delta(self.product.id, 15, StockMovement.Type.ENTRY)

        change = apply_delta(self.product.id, 10, StockMovement.Type.ENTRY)
        self.assertEqual([alert.alert_type for alert in change.alerts], [StockAlert.Type.OVERSTOCK])
        self.assertEqual(change.alerts[0].threshold_at_creation, 20)

        change = apply_delta(self.product.id, 1, StockMovement.Type.ENTRY)
        self.assertEqual(change.alerts, [])

    def test_unknown_or_inactive_product(self):
        self.product.is_active = False
        self.product.save()

        with self.assertRaises(ProductNotFound):
            apply_delta(self.product.id, 1, StockMovement.Type.ENTRY)
        with self.assertRaises(ProductNotFound):
            apply_delta("not-a-uuid", 1, StockMovement.Type.ENTRY)


class ThresholdAndAlertTests(TestCase):
    def setUp(self):
        self.product = Product.objects.create(code="MOU-01", name="Mouse", minimum_stock=1, warning_stock=2)
        apply_delta(self.product.id, 4, StockMovement.Type.ENTRY)

    def test_raising_thresholds_reclassifies_and_alerts(self):
        product = set_thresholds(self.product.id, 2, 6)

        self.assertEqual(product.stock_status, Product.StockStatus.WARNING)
        alert = StockAlert.objects.get(product=self.product)
        self.assertEqual(alert.alert_type, StockAlert.Type.LOW_STOCK)
        self.assertEqual(alert.threshold_at_creation, 6)

    def test_invalid_thresholds_leave_product_untouched(self):
        with self.assertRaises(InvalidThresholds):
            set_thresholds(self.product.id, 5, 2)

        self.product.refresh_from_db()
        self.assertEqual((self.product.minimum_stock, self.product.warning_stock), (1, 2))

    def test_resolve_alert_once(self):
        change = apply_delta(self.product.id, -3, StockMovement.Type.EXIT)
        alert = change.alerts[0]

        resolved = resolve_alert(alert.id)
        self.assertTrue(resolved.is_resolved)
        self.assertIsNotNone(resolved.resolved_at)

        with self.assertRaises(AlertAlreadyResolved):
            resolve_alert(alert.id)

    def test_summary_counts_statuses_and_value(self):
        Product.objects.create(code="EMPTY", name="Empty")
        Product.objects.filter(id=self.product.id).update(sale_price=Decimal("10.00"))

        summary = inventory_summary()

        self.assertEqual(summary["product_count"], 2)
        self.assertEqual(summary["by_status"][Product.StockStatus.OK], 1)
        self.assertEqual(summary["by_status"][Product.StockStatus.OUT_OF_STOCK], 1)
        self.assertEqual(summary["inventory_value"], Decimal("40.00"))


class SerializedUnitTests(TestCase):
    def setUp(self):
        self.product = Product.objects.create(
            code="PHN-01",
            name="Phone",
            sale_price=Decimal("150.00"),
            minimum_stock=0,
            warning_stock=1,
            is_serialized=True,
        )
        register_units(self.product.id, ["sn-001", "SN-002"], "100.00", batch="LOTE-1")

    def _stock(self):
        self.product.refresh_from_db()
        return self.product.stock_on_hand

    def test_register_credits_one_entry_for_the_batch(self):
        self.assertEqual(self._stock(), 2)
        self.assertEqual(
            sorted(SerializedUnit.objects.filter(product=self.product).values_list("serial", flat=True)),
            ["SN-001", "SN-002"],
        )
        movement = StockMovement.objects.get(product=self.product)
        self.assertEqual((movement.movement_type, movement.quantity), (StockMovement.Type.ENTRY, 2))
        self.assertEqual(movement.reference, "LOTE-1")
        self.assertEqual(SerializedUnit.objects.get(serial="SN-001").warranty_months, 6)

    def test_register_rejects_duplicates_without_side_effects(self):
        with self.assertRaises(DuplicateSerial) as ctx:
            register_units(self.product.id, ["SN-003", "sn-001"], "100.00")
        self.assertEqual(ctx.exception.details["serials"], ["SN-001"])

        with self.assertRaises(DuplicateSerial):
            register_units(self.product.id, ["SN-004", "sn-004"], "100.00")

        self.assertEqual(self._stock(), 2)
        self.assertFalse(SerializedUnit.objects.filter(serial__in=["SN-003", "SN-004"]).exists())

    def test_register_requires_serialized_product(self):
        plain = Product.objects.create(code="BAG-01", name="Bag")
        with self.assertRaises(ProductNotSerialized):
            register_units(plain.id, ["BAG-SN"], "5.00")

    def test_sell_return_restock_round_trip(self):
        sold_at = timezone.now()
        unit = sell_unit("sn-001", None, None, "150.00", sold_at, reference="V-TEST")

        self.assertEqual(unit.status, SerializedUnit.Status.SOLD)
        self.assertEqual(unit.profit, Decimal("50.00"))
        self.assertEqual(unit.warranty_expires_at, sold_at + relativedelta(months=6))
        self.assertEqual(self._stock(), 1)

        unit = return_unit("SN-001", "Cliente no lo quiso")
        self.assertEqual(unit.status, SerializedUnit.Status.RETURNED)
        self.assertIn("Cliente no lo quiso", unit.notes)
        self.assertEqual(self._stock(), 2)

        unit = restock_unit("SN-001")
        self.assertEqual(unit.status, SerializedUnit.Status.AVAILABLE)
        self.assertIsNone(unit.sale_price)
        self.assertIsNone(unit.sold_at)
        self.assertEqual(self._stock(), 2)

        types = list(StockMovement.objects.filter(product=self.product).values_list("movement_type", flat=True))
        self.assertEqual(types, [StockMovement.Type.ENTRY, StockMovement.Type.EXIT, StockMovement.Type.RETURN])
        self.assertEqual(verify_product_ledger(self.product), [])

    def test_transitions_are_enforced(self):
        with self.assertRaises(InvalidUnitTransition):
            restock_unit("SN-001")
        with self.assertRaises(InvalidUnitTransition):
            return_unit("SN-001")

        sell_unit("SN-001", None, None, "150.00")
        with self.assertRaises(UnitNotAvailable):
            sell_unit("SN-001", None, None, "150.00")
        with self.assertRaises(InvalidUnitTransition):
            mark_defective("SN-001")

    def test_defective_unit_leaves_stock_and_cannot_be_sold(self):
        mark_defective("SN-002", "Pantalla rota")

        self.assertEqual(self._stock(), 1)
        with self.assertRaises(UnitNotAvailable):
            sell_unit("SN-002", None, None, "150.00")
        self.assertEqual(verify_product_ledger(self.product), [])

    def test_unknown_serial(self):
        with self.assertRaises(UnitNotFound):
            sell_unit("NOPE", None, None, "1.00")
        with self.assertRaises(UnitNotFound):
            lookup_unit("NOPE")

    def test_lookup_reports_warranty(self):
        sell_unit("SN-001", None, None, "150.00", timezone.now() - timedelta(days=30))

        warranty = lookup_unit("sn-001")
        self.assertTrue(warranty.sold_by_us)
        self.assertTrue(warranty.in_warranty)
        self.assertGreater(warranty.warranty_days_left, 100)

        expired = lookup_unit("SN-001", now=timezone.now() + timedelta(days=400))
        self.assertFalse(expired.in_warranty)
        self.assertEqual(expired.warranty_days_left, 0)

        untouched = lookup_unit("SN-002")
        self.assertFalse(untouched.sold_by_us)

    def test_aggregate_adjustment_is_rejected_for_serialized_product(self):
        with self.assertRaises(SerializedStockChange):
            adjust_stock(self.product.id, 3, StockMovement.Type.ENTRY)

        self.assertEqual(self._stock(), 2)
        self.assertEqual(verify_product_ledger(self.product), [])

    def test_unit_changes_lock_product_before_unit(self):
        calls = []

        def recording(name, func):
            def wrapper(*args, **kwargs):
                calls.append(name)
                return func(*args, **kwargs)

            return wrapper

        with patch("inventory.units.lock_product", side_effect=recording("product", lock_product)), patch(
            "inventory.units.lock_unit", side_effect=recording("unit", lock_unit)
        ):
            sell_unit("SN-001", None, None, "150.00")
            return_unit("SN-001", "falla de fabrica")
            mark_defective("SN-002", "pantalla rota")

        self.assertEqual(calls, ["product", "unit"] * 3)
        self.assertEqual(self._stock(), 1)


class LedgerCheckTests(TestCase):
    def setUp(self):
        self.product = Product.objects.create(code="KBD-01", name="Keyboard", minimum_stock=1, warning_stock=2)
        apply_delta(self.product.id, 5, StockMovement.Type.ENTRY)
        apply_delta(self.product.id, -1, StockMovement.Type.EXIT)

    def test_consistent_ledger(self):
        self.assertEqual(verify_product_ledger(self.product), [])
        out = StringIO()
        call_command("check_stock_ledger", stdout=out)
        self.assertIn("consistent for 1 products", out.getvalue())

    def test_tampered_count_is_reported(self):
        Product.objects.filter(id=self.product.id).update(stock_on_hand=9)
        self.product.refresh_from_db()

        issues = verify_product_ledger(self.product)
        self.assertTrue(any("product holds 9" in issue for issue in issues))
        with self.assertRaises(CommandError):
            call_command("check_stock_ledger", "--product", "kbd-01", stdout=StringIO())


class InventoryApiTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.user_model = get_user_model()
        self.cashier = self.user_model.objects.create_user(username="cashier-inv", password="pass1234", role="cashier")
        self.supervisor = self.user_model.objects.create_user(
            username="supervisor-inv",
            password="pass1234",
            role="supervisor",
        )
        self.product = Product.objects.create(code="SSD-01", name="SSD", minimum_stock=3, warning_stock=5)

    def test_supervisor_adjust_returns_movement_and_alerts(self):
        self.client.force_authenticate(user=self.supervisor)
        url = f"/api/v1/products/{self.product.id}/adjust/"

        response = self.client.post(url, {"quantity": 10, "movement_type": "ENTRADA"}, format="json")
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()["product"]["stock_status"], "OK")

        response = self.client.post(url, {"quantity": -6, "movement_type": "SALIDA"}, format="json")
        payload = response.json()
        self.assertEqual(payload["movement"]["stock_after"], 4)
        self.assertEqual([alert["alert_type"] for alert in payload["alerts"]], ["STOCK_BAJO"])

    def test_cashier_cannot_adjust_and_denial_is_logged(self):
        self.client.force_authenticate(user=self.cashier)

        with self.assertLogs("security.authorization", level="WARNING") as cm:
            response = self.client.post(
                f"/api/v1/products/{self.product.id}/adjust/",
                {"quantity": 1, "movement_type": "ENTRADA"},
                format="json",
            )

        self.assertEqual(response.status_code, 403)
        self.assertTrue(any("permission_denied" in message for message in cm.output))

    def test_wrong_sign_uses_error_envelope(self):
        self.client.force_authenticate(user=self.supervisor)

        response = self.client.post(
            f"/api/v1/products/{self.product.id}/adjust/",
            {"quantity": -1, "movement_type": "ENTRADA"},
            format="json",
        )

        self.assertEqual(response.status_code, 422)
        payload = response.json()
        self.assertEqual(payload["code"], "inconsistent")
        self.assertEqual(payload["errors"], {"movement_type": "ENTRADA", "quantity": -1})

    def test_thresholds_endpoint_validates_order(self):
        self.client.force_authenticate(user=self.supervisor)

        response = self.client.post(
            f"/api/v1/products/{self.product.id}/thresholds/",
            {"minimum_stock": 6, "warning_stock": 2},
            format="json",
        )

        self.assertEqual(response.status_code, 422)
        self.assertIn("warning_stock", response.json()["errors"])

    def test_product_create_keeps_stock_read_only(self):
        self.client.force_authenticate(user=self.supervisor)

        response = self.client.post(
            "/api/v1/products/",
            {"code": "ram-01", "name": "RAM", "stock_on_hand": 50, "minimum_stock": 1, "warning_stock": 2},
            format="json",
        )

        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()["code"], "RAM-01")
        self.assertEqual(response.json()["stock_on_hand"], 0)
        self.assertEqual(response.json()["stock_status"], "AGOTADO")

    def test_alert_resolve_twice_conflicts(self):
        apply_delta(self.product.id, 4, StockMovement.Type.ENTRY)
        alert = apply_delta(self.product.id, -2, StockMovement.Type.EXIT).alerts[0]
        self.client.force_authenticate(user=self.supervisor)

        listing = self.client.get("/api/v1/alerts/")
        self.assertEqual([item["id"] for item in listing.json()["results"]], [str(alert.id)])

        first = self.client.post(f"/api/v1/alerts/{alert.id}/resolve/")
        second = self.client.post(f"/api/v1/alerts/{alert.id}/resolve/")

        self.assertEqual(first.status_code, 200)
        self.assertEqual(second.status_code, 409)
        self.assertEqual(second.json()["code"], "invalid_state")
        self.assertEqual(self.client.get("/api/v1/alerts/").json()["count"], 0)

    def test_register_and_lookup_units(self):
        self.product.is_serialized = True
        self.product.save()
        self.client.force_authenticate(user=self.supervisor)

        response = self.client.post(
            "/api/v1/units/register/",
            {"product": str(self.product.id), "serials": ["A1", "A2"], "unit_cost": "40.00", "origin": "IMPORTACION"},
            format="json",
        )
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json(), {"registered": 2})

        detail = self.client.get("/api/v1/units/A1/")
        self.assertEqual(detail.status_code, 200)
        self.assertEqual(detail.json()["origin"], "IMPORTACION")
        self.assertFalse(detail.json()["sold_by_us"])

        duplicate = self.client.post(
            "/api/v1/units/register/",
            {"product": str(self.product.id), "serials": ["a2"], "unit_cost": "40.00"},
            format="json",
        )
        self.assertEqual(duplicate.status_code, 409)
        self.assertEqual(duplicate.json()["code"], "duplicate")

    def test_ledger_check_endpoint(self):
        apply_delta(self.product.id, 3, StockMovement.Type.ENTRY)
        self.client.force_authenticate(user=self.cashier)

        response = self.client.get(f"/api/v1/products/{self.product.id}/ledger-check/")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"product": "SSD-01", "consistent": True, "issues": []})

    def test_product_update_cannot_change_thresholds(self):
        product = Product.objects.create(code="HDD-01", name="HDD", minimum_stock=1, warning_stock=2)
        apply_delta(product.id, 4, StockMovement.Type.ENTRY)
        self.client.force_authenticate(user=self.supervisor)
        url = f"/api/v1/products/{product.id}/"

        response = self.client.patch(url, {"minimum_stock": 5, "warning_stock": 8}, format="json")

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["code"], "validation_error")
        self.assertEqual(sorted(response.json()["errors"]), ["minimum_stock", "warning_stock"])
        product.refresh_from_db()
        self.assertEqual((product.minimum_stock, product.warning_stock), (1, 2))
        self.assertEqual(product.stock_status, Product.StockStatus.OK)

        renamed = self.client.patch(url, {"name": "HDD 1TB", "minimum_stock": 1}, format="json")
        self.assertEqual(renamed.status_code, 200)
        self.assertEqual(renamed.json()["name"], "HDD 1TB")

        response = self.client.post(
            f"/api/v1/products/{product.id}/thresholds/",
            {"minimum_stock": 5, "warning_stock": 8},
            format="json",
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["stock_status"], "ALERTA")
        self.assertEqual(StockAlert.objects.filter(product=product).count(), 1)

    def test_adjust_rejects_serialized_product(self):
        phone = Product.objects.create(code="PHN-09", name="Phone", minimum_stock=0, warning_stock=1, is_serialized=True)
        register_units(phone.id, ["S1"], "50.00")
        self.client.force_authenticate(user=self.supervisor)

        response = self.client.post(
            f"/api/v1/products/{phone.id}/adjust/",
            {"quantity": 5, "movement_type": "ENTRADA"},
            format="json",
        )

        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json()["code"], "invalid_state")
        phone.refresh_from_db()
        self.assertEqual(phone.stock_on_hand, 1)
        self.assertEqual(verify_product_ledger(phone), [])

    def test_is_serialized_is_fixed_once_product_has_movements(self):
        apply_delta(self.product.id, 3, StockMovement.Type.ENTRY)
        fresh = Product.objects.create(code="PHN-10", name="Phone")
        self.client.force_authenticate(user=self.supervisor)

        response = self.client.patch(f"/api/v1/products/{self.product.id}/", {"is_serialized": True}, format="json")
        self.assertEqual(response.status_code, 400)
        self.assertIn("is_serialized", response.json()["errors"])

        response = self.client.patch(f"/api/v1/products/{fresh.id}/", {"is_serialized": True}, format="json")
        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.json()["is_serialized"])

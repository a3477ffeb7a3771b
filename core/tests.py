from django.contrib.auth import get_user_model
from django.test import TestCase
from rest_framework.test import APIClient

from core.models import AuditLog
from inventory.models import Product


class HealthCheckTests(TestCase):
    def setUp(self):
        self.client = APIClient()

    def test_healthz_is_public_and_echoes_request_id(self):
        response = self.client.get("/api/v1/healthz/", HTTP_X_REQUEST_ID="req-health")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"status": "ok", "request_id": "req-health"})
        self.assertEqual(response["X-Request-ID"], "req-health")

    def test_readyz_reports_ready_database(self):
        response = self.client.get("/api/v1/readyz/")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["status"], "ready")


class TokenTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.user = get_user_model().objects.create_user(
            username="cashier-token",
            email="Cashier@Example.com",
            password="pass1234",
            role="cashier",
        )

    def test_email_is_normalized_on_save(self):
        self.user.refresh_from_db()
        self.assertEqual(self.user.email, "cashier@example.com")

    def test_token_can_be_obtained_with_email(self):
        response = self.client.post(
            "/api/v1/token/",
            {"username": "CASHIER@example.com", "password": "pass1234"},
            format="json",
        )

        self.assertEqual(response.status_code, 200)
        self.assertIn("access", response.json())

    def test_bad_credentials_use_error_envelope(self):
        response = self.client.post(
            "/api/v1/token/",
            {"username": "cashier-token", "password": "wrong"},
            format="json",
        )

        self.assertEqual(response.status_code, 401)
        payload = response.json()
        self.assertEqual(sorted(payload.keys()), ["code", "errors", "message", "status"])
        self.assertEqual(payload["status"], 401)


class AuditLogApiTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.user_model = get_user_model()
        self.admin = self.user_model.objects.create_user(
            username="admin-core",
            password="pass1234",
            role="admin",
            is_staff=True,
        )
        self.supervisor = self.user_model.objects.create_user(
            username="supervisor-core",
            password="pass1234",
            role="supervisor",
        )
        self.product = Product.objects.create(code="AUD-1", name="Audited", minimum_stock=1, warning_stock=2)

    def test_threshold_change_writes_audit_log_with_request_id(self):
        self.client.force_authenticate(user=self.supervisor)

        response = self.client.post(
            f"/api/v1/products/{self.product.id}/thresholds/",
            {"minimum_stock": 3, "warning_stock": 5},
            format="json",
            HTTP_X_REQUEST_ID="req-123",
        )

        self.assertEqual(response.status_code, 200)
        log = AuditLog.objects.get(action="product.thresholds")
        self.assertEqual(log.entity, "product")
        self.assertEqual(log.entity_id, self.product.id)
        self.assertEqual(log.request_id, "req-123")
        self.assertEqual(log.actor, self.supervisor)
        self.assertEqual(log.before_snapshot["warning_stock"], 2)
        self.assertEqual(log.after_snapshot["warning_stock"], 5)

    def test_audit_logs_are_admin_only(self):
        self.client.force_authenticate(user=self.supervisor)

        response = self.client.get("/api/v1/admin/audit-logs/")

        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json()["code"], "permission_denied")

    def test_audit_logs_are_read_only_and_filterable(self):
        AuditLog.objects.create(action="sale.void", entity="sale")
        AuditLog.objects.create(action="alert.resolve", entity="stock_alert")
        self.client.force_authenticate(user=self.admin)

        response = self.client.get("/api/v1/admin/audit-logs/", {"action": "sale.void"})
        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(sorted(payload.keys()), ["count", "next", "previous", "results"])
        self.assertEqual([item["action"] for item in payload["results"]], ["sale.void"])

        log_id = payload["results"][0]["id"]
        self.assertEqual(self.client.delete(f"/api/v1/admin/audit-logs/{log_id}/").status_code, 405)

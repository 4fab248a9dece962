"""Tests for the HTTP API."""

from datetime import timedelta
from decimal import Decimal
from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from university_payments.api import create_app
from university_payments.clock import utcnow
from university_payments.services import PaymentService

ADMIN_KEY = "admin_key_12345"
MANAGER_KEY = "manager_key_12345"
STAFF_KEY = "staff_key_12345"


def auth(key: str = ADMIN_KEY):
    return {"Authorization": f"Bearer {key}"}


STUDENT = {"student_number": "S12345", "full_name": "Jane Wanjiku", "program": "Computer Science"}


@pytest.fixture
def app(settings, publisher):
    return create_app(settings, publisher)


@pytest.fixture
def client(app):
    with TestClient(app) as client:
        yield client


@pytest.fixture
def enrolled(client):
    response = client.post("/students", json=STUDENT, headers=auth())
    assert response.status_code == 201
    return response.json()


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
        assert response.json()["database"] == "ok"


class TestAuthentication:
    """Tests for API key and role checks."""

    def test_missing_credentials(self, client):
        response = client.get("/payments")
        assert response.status_code in (401, 403)

    def test_invalid_key(self, client):
        response = client.get("/payments", headers=auth("wrong_key"))
        assert response.status_code == 401

    def test_no_keys_configured(self, settings):
        app = create_app(settings.model_copy(update={"api_keys": {}}))
        with TestClient(app) as client:
            response = client.get("/payments", headers=auth())
        assert response.status_code == 500

    def test_staff_can_read_but_not_create(self, client, payment_body):
        assert client.get("/payments", headers=auth(STAFF_KEY)).status_code == 200
        response = client.post("/payments", json=payment_body, headers=auth(STAFF_KEY))
        assert response.status_code == 403

    def test_manager_can_create_students(self, client):
        response = client.post("/students", json=STUDENT, headers=auth(MANAGER_KEY))
        assert response.status_code == 201


class TestPaymentEndpoints:
    """Tests for /payments."""

    def test_process_payment(self, client, enrolled, payment_body, publisher):
        response = client.post("/payments", json=payment_body, headers=auth())

        assert response.status_code == 201
        data = response.json()
        assert data["success"] is True
        assert data["student_exists"] is True
        assert data["student_is_active"] is True
        assert data["processed_payment"]["payment_reference"] == "REF001"
        assert Decimal(data["processed_payment"]["amount_paid"]) == Decimal("5000")
        assert publisher.messages[-1].message_type == "PaymentProcessed"

    def test_duplicate_payment(self, client, enrolled, payment_body):
        client.post("/payments", json=payment_body, headers=auth())
        response = client.post("/payments", json=payment_body, headers=auth())

        assert response.status_code == 400
        assert response.json()["success"] is False
        assert response.json()["message"] == "Payment reference REF001 already exists"

    def test_unknown_student(self, client, payment_body):
        payment_body.update(payment_reference="REF999", student_number="UNKNOWN1", amount_paid="100.00")
        response = client.post("/payments", json=payment_body, headers=auth())

        assert response.status_code == 400
        assert response.json()["student_exists"] is False

    def test_validate_payment(self, client, payment_body):
        payment_body["payment_reference"] = "123"
        response = client.post("/payments/validate", json=payment_body, headers=auth(STAFF_KEY))

        assert response.status_code == 200
        assert response.json()["is_valid"] is False
        assert "Payment reference must be between 5 and 50 characters" in response.json()["errors"]

    def test_malformed_body(self, client, payment_body):
        payment_body["amount_paid"] = "lots"
        response = client.post("/payments", json=payment_body, headers=auth())

        assert response.status_code == 422
        assert response.json()["error"]["code"] == "REQUEST_VALIDATION_ERROR"

    def test_missing_amount(self, client, enrolled, payment_body):
        del payment_body["amount_paid"]
        response = client.post("/payments", json=payment_body, headers=auth())

        assert response.status_code == 400
        assert response.json()["errors"] == ["Amount paid is required"]

    def test_storage_error_hides_sql(self, client, payment_body):
        """Database failures reach the client without SQL or driver text."""
        error = OperationalError(
            "SELECT secret FROM payment_notifications", {"p": "x"}, Exception("disk I/O error")
        )
        with patch.object(AsyncSession, "execute", AsyncMock(side_effect=error)):
            response = client.post("/payments", json=payment_body, headers=auth())

        assert response.status_code == 500
        assert response.json()["error"]["code"] == "DATABASE_ERROR"
        assert response.json()["error"]["message"] == "Database operation failed."
        assert "[SQL:" not in response.text
        assert "secret" not in response.text

    def test_batch(self, client, enrolled, payment_body):
        second = dict(payment_body, payment_reference="REF002", student_number="UNKNOWN1")
        response = client.post("/payments/batch", json=[payment_body, second], headers=auth())

        assert response.status_code == 200
        data = response.json()
        assert data["total_processed"] == 2
        assert data["successful"] == 1
        assert data["failed"] == 1
        assert data["errors"] == ["Payment REF002: Payment received but student not found."]

    def test_batch_too_large(self, settings, publisher, payment_body):
        app = create_app(settings.model_copy(update={"max_batch_size": 1}), publisher)
        with TestClient(app) as client:
            response = client.post("/payments/batch", json=[payment_body, payment_body], headers=auth())

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "BATCH_TOO_LARGE"

    def test_lookups(self, client, enrolled, payment_body):
        created = client.post("/payments", json=payment_body, headers=auth()).json()
        payment_id = created["processed_payment"]["id"]

        assert client.get(f"/payments/{payment_id}", headers=auth()).json()["payment_reference"] == "REF001"
        assert client.get("/payments/reference/REF001", headers=auth()).json()["id"] == payment_id
        assert len(client.get("/payments/student/S12345", headers=auth()).json()) == 1
        assert len(client.get("/payments", headers=auth()).json()) == 1

        available = client.get("/payments/validate-reference/REF001", headers=auth()).json()
        assert available == {"payment_reference": "REF001", "is_available": False}

        total = client.get("/payments/student/S12345/total", headers=auth()).json()
        assert Decimal(total["total_amount"]) == Decimal("5000")

    def test_payment_not_found(self, client):
        response = client.get("/payments/9999", headers=auth())

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "PAYMENT_NOT_FOUND"

    def test_summary(self, client, enrolled, payment_body):
        client.post("/payments", json=payment_body, headers=auth())
        response = client.get("/payments/student/S12345/summary", headers=auth())

        data = response.json()
        assert data["student_name"] == "Jane Wanjiku"
        assert data["total_payments"] == 1
        assert Decimal(data["total_amount"]) == Decimal("5000")
        assert Decimal(data["average_amount"]) == Decimal("5000")

    def test_date_range(self, client, enrolled, payment_body):
        client.post("/payments", json=payment_body, headers=auth())
        now = utcnow()
        params = {"start": (now - timedelta(days=2)).isoformat(), "end": now.isoformat()}

        response = client.get("/payments/range", params=params, headers=auth())
        assert [p["payment_reference"] for p in response.json()] == ["REF001"]

        inverted = {"start": params["end"], "end": params["start"]}
        assert client.get("/payments/range", params=inverted, headers=auth()).status_code == 400

    def test_unexpected_error_is_hidden(self, settings, publisher):
        app = create_app(settings, publisher)
        failure = AsyncMock(side_effect=RuntimeError("secret internals"))
        with patch.object(PaymentService, "get_payment_summary", failure):
            with TestClient(app, raise_server_exceptions=False) as client:
                response = client.get("/payments/student/S12345/summary", headers=auth())

        assert response.status_code == 500
        assert response.json()["error"]["code"] == "INTERNAL_ERROR"
        assert "secret" not in response.text


class TestStudentEndpoints:
    """Tests for /students."""

    def test_create_duplicate(self, client, enrolled):
        response = client.post("/students", json=STUDENT, headers=auth())
        assert response.status_code == 409
        assert response.json()["error"]["code"] == "DUPLICATE_STUDENT"

    def test_create_invalid(self, client):
        response = client.post("/students", json=dict(STUDENT, full_name="R2-D2"), headers=auth())
        assert response.status_code == 400
        assert response.json()["error"]["errors"] == [
            "Full name can only contain letters, spaces, hyphens, and apostrophes"
        ]

    def test_get_and_search(self, client, enrolled):
        assert client.get("/students/S12345", headers=auth(STAFF_KEY)).json()["full_name"] == "Jane Wanjiku"
        assert client.get("/students/S00000", headers=auth()).status_code == 404

        found = client.get("/students/search", params={"q": "wanjiku"}, headers=auth()).json()
        assert [s["student_number"] for s in found] == ["S12345"]

    def test_status_update(self, client, enrolled):
        response = client.patch("/students/S12345/status", json={"is_active": False}, headers=auth())
        assert response.status_code == 200
        assert response.json()["is_active"] is False

        assert client.get("/students", params={"active_only": True}, headers=auth()).json() == []
        assert len(client.get("/students", headers=auth()).json()) == 1

    def test_staff_cannot_update(self, client, enrolled):
        response = client.patch("/students/S12345/status", json={"is_active": False}, headers=auth(STAFF_KEY))
        assert response.status_code == 403

    def test_update(self, client, enrolled):
        response = client.put("/students/S12345", json={"program": "Data Science"}, headers=auth())
        assert response.status_code == 200
        assert response.json()["program"] == "Data Science"


FEES = {
    "program": "Computer Science",
    "academic_year": "2024/2025",
    "semester": "Semester 1",
    "tuition_fee": "4500.00",
    "registration_fee": "500.00",
    "due_date": "2020-01-15T00:00:00",
}


class TestFeeEndpoints:
    """Tests for /fees and /students/{student_number}/balance."""

    def test_create_and_get(self, client):
        response = client.post("/fees", json=FEES, headers=auth(MANAGER_KEY))
        assert response.status_code == 201
        created = response.json()
        assert Decimal(created["total_amount"]) == Decimal("5000")

        fetched = client.get(f"/fees/{created['id']}", headers=auth(STAFF_KEY))
        assert fetched.status_code == 200
        assert fetched.json()["semester"] == "Semester 1"

    def test_staff_cannot_create(self, client):
        assert client.post("/fees", json=FEES, headers=auth(STAFF_KEY)).status_code == 403

    def test_create_invalid(self, client):
        response = client.post("/fees", json=dict(FEES, tuition_fee="-1", registration_fee="0"), headers=auth())
        assert response.status_code == 400
        assert response.json()["error"]["errors"] == [
            "Tuition fee cannot be negative",
            "Total fees must be greater than 0",
        ]

    def test_duplicate_term(self, client):
        client.post("/fees", json=FEES, headers=auth())
        response = client.post("/fees", json=FEES, headers=auth())
        assert response.status_code == 409
        assert response.json()["error"]["code"] == "DUPLICATE_FEE_STRUCTURE"

    def test_list_and_update(self, client):
        fee_id = client.post("/fees", json=FEES, headers=auth()).json()["id"]
        client.post("/fees", json=dict(FEES, program="Economics"), headers=auth())

        listed = client.get("/fees", params={"program": "Economics"}, headers=auth()).json()
        assert [f["program"] for f in listed] == ["Economics"]

        response = client.put(f"/fees/{fee_id}", json={"is_active": False}, headers=auth())
        assert response.status_code == 200
        assert response.json()["is_active"] is False
        assert len(client.get("/fees", params={"active_only": True}, headers=auth()).json()) == 1

    def test_unknown_fee_structure(self, client):
        response = client.get("/fees/999", headers=auth())
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "FEE_STRUCTURE_NOT_FOUND"

    def test_student_balance(self, client, enrolled, payment_body):
        client.post("/fees", json=FEES, headers=auth())
        client.post("/payments", json=dict(payment_body, amount_paid="3000.00"), headers=auth())

        response = client.get("/students/S12345/balance", headers=auth(STAFF_KEY))

        assert response.status_code == 200
        balance = response.json()
        assert balance["student_name"] == "Jane Wanjiku"
        assert Decimal(balance["total_fees"]) == Decimal("5000")
        assert Decimal(balance["total_paid"]) == Decimal("3000")
        assert Decimal(balance["outstanding_balance"]) == Decimal("2000")
        assert balance["payment_status"] == "Overdue"
        assert balance["balances"][0]["status"] == "Overdue"

    def test_balance_unknown_student(self, client):
        response = client.get("/students/S00000/balance", headers=auth())
        assert response.status_code == 404


class TestReconciliationEndpoints:
    """Tests for /reconciliation."""

    def _bank_records(self, payment_body):
        return [
            {
                "payment_reference": "REF001",
                "amount": "4500.00",
                "payment_date": payment_body["payment_date"],
                "student_number": "S12345",
                "status": "Completed",
            },
            {
                "payment_reference": "REF777",
                "amount": "10.00",
                "payment_date": payment_body["payment_date"],
                "student_number": "S12345",
            },
        ]

    def test_reconcile(self, client, enrolled, payment_body):
        client.post("/payments", json=payment_body, headers=auth())
        response = client.post(
            "/reconciliation",
            json={"bank_records": self._bank_records(payment_body)},
            headers=auth(STAFF_KEY),
        )

        assert response.status_code == 200
        data = response.json()
        assert data["statistics"]["total_bank_records"] == 2
        assert data["statistics"]["matched_count"] == 1
        assert data["statistics"]["unmatched_count"] == 1
        assert data["reconciliation_successful"] is False
        assert "Payment reference REF777 not found in system" in data["discrepancies"]

    def test_reconcile_rejects_invalid_records(self, client, payment_body):
        records = self._bank_records(payment_body)
        records[0]["status"] = "Reversed"
        response = client.post("/reconciliation", json={"bank_records": records}, headers=auth())

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"

    def test_csv_report(self, client, enrolled, payment_body):
        response = client.post(
            "/reconciliation/report",
            params={"format": "csv"},
            json={"bank_records": self._bank_records(payment_body)},
            headers=auth(),
        )

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert response.text.startswith("type,payment_reference")

    def test_unknown_report_format(self, client, payment_body):
        response = client.post(
            "/reconciliation/report",
            params={"format": "xml"},
            json={"bank_records": []},
            headers=auth(),
        )
        assert response.status_code == 400


class TestRateLimiting:
    def test_limit_exceeded(self, settings):
        app = create_app(settings.model_copy(update={"rate_limit": "2/minute"}))
        with TestClient(app) as client:
            statuses = [client.get("/health").status_code for _ in range(3)]
        assert statuses == [200, 200, 429]

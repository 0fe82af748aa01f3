"""
Invoice tool tests: numbering, pricing, payments, e-mail delivery,
recurring schedules and templates.
"""

import asyncio
import datetime as dt
from unittest.mock import AsyncMock, patch

import pytest

from core.errors import DatastoreError, EmailDeliveryError
from orchestration.dispatcher import Dispatcher
from storage.owners import UserPreferences
from tools.invoices import (
    ITEMS_NOT_SAVED_WARNING,
    add_months,
    format_invoice_number,
    is_overdue,
    next_recurring_date,
    price_items,
)


ITEMS = [
    {"description": "Design", "quantity": 2, "rate": 150},
    {"description": "Hosting", "quantity": 1, "rate": 40, "taxRate": 0},
]


def _invoice(store, **overrides):
    record = {
        "user_id": "user-1",
        "invoice_number": "INV-001",
        "date": "2025-01-01",
        "due_date": "2025-01-31",
        "status": "sent",
        "currency": "USD",
        "subtotal": 1000.0,
        "tax_amount": 0.0,
        "total": 1000.0,
        "amount_paid": 0.0,
        "balance_due": 1000.0,
    }
    record.update(overrides)
    return store.insert("invoices", record)


class TestHelpers:
    """Pure invoice helpers."""

    def test_invoice_number_from_settings(self):
        prefs = UserPreferences(invoice_prefix="ACME-", next_invoice_number=7)
        assert format_invoice_number(prefs) == "ACME-007"

    def test_invoice_number_fallback(self):
        assert format_invoice_number(UserPreferences()).startswith("INV-")

    def test_add_months_clamps_to_month_end(self):
        assert add_months(dt.date(2025, 1, 31), 1) == dt.date(2025, 2, 28)
        assert add_months(dt.date(2024, 11, 30), 3) == dt.date(2025, 2, 28)
        assert add_months(dt.date(2024, 1, 31), 1) == dt.date(2024, 2, 29)

    @pytest.mark.parametrize("frequency,expected", [
        ("weekly", dt.date(2025, 1, 22)),
        ("biweekly", dt.date(2025, 1, 29)),
        ("monthly", dt.date(2025, 2, 15)),
        ("quarterly", dt.date(2025, 4, 15)),
        ("yearly", dt.date(2026, 1, 15)),
    ])
    def test_next_recurring_date(self, frequency, expected):
        assert next_recurring_date(dt.date(2025, 1, 15), frequency) == expected

    def test_price_items_uses_default_rate_per_line(self):
        items, totals = price_items(
            [
                {"description": "Design", "quantity": 2, "rate": 150, "tax_rate": None},
                {"description": "Hosting", "quantity": 1, "rate": 40, "tax_rate": 0},
            ],
            default_tax_rate=20,
        )
        assert items[0]["tax_amount"] == 60.0
        assert items[1]["tax_amount"] == 0.0
        assert [i["sort_order"] for i in items] == [0, 1]
        assert totals == {"subtotal": 340.0, "tax_amount": 60.0, "total": 400.0}

    def test_is_overdue(self):
        today = dt.date(2025, 3, 1)
        assert is_overdue({"due_date": "2025-02-01", "status": "sent"}, today)
        assert not is_overdue({"due_date": "2025-02-01", "status": "paid"}, today)
        assert not is_overdue({"due_date": "2025-03-05", "status": "sent"}, today)


class TestCreateInvoice:
    """createInvoice preview and apply."""

    def test_client_required(self, call):
        result = call("createInvoice", items=ITEMS)
        assert result["status"] == "error"
        assert result["errorKind"] == "validation_failure"

    def test_due_date_before_date_rejected(self, add_client, call):
        add_client("Acme Corp")
        result = call("createInvoice", clientName="Acme", items=ITEMS, date="2025-03-10", dueDate="2025-03-01")
        assert result["status"] == "error"
        assert "Due date" in result["message"]

    def test_preview_prices_items_without_writing(self, store, add_client, call):
        add_client("Acme Corp")
        store.insert("user_settings", {"user_id": "user-1", "default_tax_rate": 20})
        store.insert("invoice_settings", {"user_id": "user-1", "prefix": "INV-", "next_number": 12, "payment_terms": 14})

        result = call("createInvoice", clientName="Acme", items=ITEMS, date="2025-03-01")

        assert result["status"] == "preview"
        preview = result["preview"]
        assert preview["invoiceNumber"] == "INV-012"
        assert preview["client"]["matched"] is True
        assert preview["dueDate"] == "2025-03-15"
        assert preview["subtotal"] == 340.0
        assert preview["taxAmount"] == 60.0
        assert preview["total"] == 400.0
        assert store.count("invoices", "user-1") == 0

    def test_apply_writes_header_items_and_advances_number(self, store, add_client, call):
        client = add_client("Acme Corp")
        store.insert("invoice_settings", {"user_id": "user-1", "prefix": "INV-", "next_number": 1, "payment_terms": 30})

        result = call("createInvoice", clientName="Acme Corp", items=ITEMS, confirmed=True)

        assert result["status"] == "applied"
        assert result["result"]["number"] == "INV-001"
        invoice = store.find("invoices", "user-1")[0]
        assert invoice["client_id"] == client["id"]
        assert invoice["status"] == "draft"
        assert invoice["balance_due"] == invoice["total"] == 340.0
        assert store.count("invoice_items", "user-1", {"invoice_id": invoice["id"]}) == 2
        assert store.find("invoice_settings", "user-1")[0]["next_number"] == 2

    def test_apply_requires_matched_client(self, store, add_client, call):
        add_client("Acme Corp")
        add_client("Acme Labs")

        result = call("createInvoice", clientName="Acme", items=ITEMS, confirmed=True)

        assert result["status"] == "not_found"
        assert len(result["suggestions"]) == 2
        assert store.count("invoices", "user-1") == 0

    def test_item_failure_keeps_header_with_warning(self, store, add_client, call):
        add_client("Acme Corp")
        original = store.insert_many

        def failing_items(table, records):
            if table == "invoice_items":
                raise DatastoreError("disk full", table=table)
            return original(table, records)

        with patch.object(store, "insert_many", side_effect=failing_items):
            result = call("createInvoice", clientName="Acme Corp", items=ITEMS, confirmed=True)

        assert result["status"] == "applied"
        assert ITEMS_NOT_SAVED_WARNING in result["warnings"]
        assert store.count("invoices", "user-1") == 1
        assert store.count("invoice_items", "user-1") == 0

    def test_recurring_schedule_created(self, store, add_client, call):
        add_client("Acme Corp")

        result = call(
            "createInvoice", clientName="Acme Corp", items=ITEMS, date="2025-01-31",
            makeRecurring=True, frequency="monthly", confirmed=True,
        )

        assert result["result"]["isRecurring"] is True
        schedule = store.find("recurring_invoices", "user-1")[0]
        assert schedule["next_date"] == "2025-02-28"
        assert schedule["is_active"] is True
        assert schedule["template_data"]["total"] == 340.0


class TestMarkInvoicePaid:
    """Payments move an invoice to partially_paid then paid."""

    def test_partial_payment(self, store, call):
        invoice = _invoice(store)

        preview = call("markInvoicePaid", invoiceNumber="INV-001", paymentAmount=400)
        assert preview["status"] == "preview"
        assert preview["preview"]["newStatus"] == "partially_paid"
        assert preview["preview"]["newBalance"] == 600.0
        assert store.count("invoice_payments", "user-1") == 0

        result = call("markInvoicePaid", invoiceNumber="INV-001", paymentAmount=400, confirmed=True)
        assert result["status"] == "applied"
        row = store.get("invoices", invoice["id"], "user-1")
        assert row["status"] == "partially_paid"
        assert row["amount_paid"] == 400.0
        assert row["balance_due"] == 600.0
        assert row["paid_at"] is None

    def test_full_payment_defaults_to_balance(self, store, call):
        invoice = _invoice(store, amount_paid=250.0, balance_due=750.0, status="partially_paid")

        result = call("markInvoicePaid", invoiceId=invoice["id"], paymentDate="2025-02-03", confirmed=True)

        assert result["result"]["newStatus"] == "paid"
        row = store.get("invoices", invoice["id"], "user-1")
        assert row["status"] == "paid"
        assert row["balance_due"] == 0.0
        assert row["paid_at"] == "2025-02-03"
        payments = store.find("invoice_payments", "user-1")
        assert [p["amount"] for p in payments] == [750.0]

    def test_over_balance_rejected(self, store, call):
        _invoice(store)
        result = call("markInvoicePaid", invoiceNumber="INV-001", paymentAmount=1500, confirmed=True)
        assert result["status"] == "error"
        assert "exceeds balance due" in result["message"]
        assert store.count("invoice_payments", "user-1") == 0

    def test_already_paid_blocked(self, store, call):
        _invoice(store, status="paid", amount_paid=1000.0, balance_due=0.0)
        result = call("markInvoicePaid", invoiceNumber="INV-001")
        assert result["status"] == "blocked"
        assert result["message"] == "Invoice INV-001 is already fully paid."

    def test_stale_payment_preview_blocked(self, store, call):
        invoice = _invoice(store)
        preview = call("markInvoicePaid", invoiceNumber="INV-001", paymentAmount=100)
        store.update("invoices", invoice["id"], "user-1", {"amount_paid": 900.0, "balance_due": 100.0})

        result = call(
            "markInvoicePaid", invoiceNumber="INV-001", paymentAmount=100,
            confirmed=True, versionToken=preview["versionToken"],
        )
        assert result["status"] == "blocked"
        assert store.count("invoice_payments", "user-1") == 0

    def test_missing_reference(self, call):
        result = call("markInvoicePaid")
        assert result["status"] == "error"
        assert result["message"] == "Please provide invoice ID or number"


class TestSendInvoiceEmail:
    """E-mail delivery goes through the injected client."""

    def _send(self, store, settings, email_client, **params):
        dispatcher = Dispatcher(store, settings=settings, email_client=email_client)
        return asyncio.run(dispatcher.dispatch("sendInvoiceEmail", params, user_id="user-1"))

    def test_requires_client_email(self, store, settings, add_client):
        client = add_client("Acme Corp")
        _invoice(store, client_id=client["id"])

        result = self._send(store, settings, AsyncMock(), invoiceNumber="INV-001")

        assert result["status"] == "error"
        assert result["message"] == 'No email address found for client "Acme Corp". Please update client email first.'

    def test_preview_does_not_send(self, store, settings, add_client):
        client = add_client("Acme Corp", email="billing@acme.com")
        _invoice(store, client_id=client["id"], status="draft")
        email_client = AsyncMock()

        result = self._send(store, settings, email_client, invoiceNumber="INV-001")

        assert result["status"] == "preview"
        assert result["preview"]["clientEmail"] == "billing@acme.com"
        email_client.send_invoice.assert_not_called()

    def test_confirm_sends_and_marks_sent(self, store, settings, add_client):
        client = add_client("Acme Corp", email="billing@acme.com")
        invoice = _invoice(store, client_id=client["id"], status="draft")
        email_client = AsyncMock()

        result = self._send(store, settings, email_client, invoiceNumber="INV-001", confirmed=True)

        assert result["status"] == "applied"
        email_client.send_invoice.assert_awaited_once()
        assert email_client.send_invoice.call_args.kwargs["recipient_email"] == "billing@acme.com"
        row = store.get("invoices", invoice["id"], "user-1")
        assert row["status"] == "sent"
        assert row["sent_at"].endswith("+00:00")

    def test_delivery_failure_is_upstream_error(self, store, settings, add_client):
        client = add_client("Acme Corp", email="billing@acme.com")
        invoice = _invoice(store, client_id=client["id"], status="draft")
        email_client = AsyncMock()
        email_client.send_invoice.side_effect = EmailDeliveryError("503 from mailer", 503)

        result = self._send(store, settings, email_client, invoiceNumber="INV-001", confirmed=True)

        assert result["status"] == "error"
        assert result["errorKind"] == "upstream_failure"
        assert result["message"] == "Failed to send invoice email. Please try again later."
        assert store.get("invoices", invoice["id"], "user-1")["status"] == "draft"


class TestReadTools:
    """Listing and overdue reporting."""

    def test_overdue_invoices(self, store, call):
        past = (dt.date.today() - dt.timedelta(days=10)).isoformat()
        _invoice(store, invoice_number="INV-001", due_date=past, balance_due=300.0)
        _invoice(store, invoice_number="INV-002", due_date=past, status="paid", balance_due=0.0)
        _invoice(store, invoice_number="INV-003", due_date="2999-01-01")

        result = call("getOverdueInvoices")

        invoices = result["result"]["invoices"]
        assert [i["number"] for i in invoices] == ["INV-001"]
        assert invoices[0]["daysOverdue"] == 10
        assert result["result"]["totalOverdue"] == 300.0

    def test_get_invoices_overdue_status_is_computed(self, store, call):
        _invoice(store, due_date="2000-01-01")
        result = call("getInvoices", status="overdue")
        assert result["result"]["invoices"][0]["status"] == "overdue"

    def test_get_invoice_by_number_includes_items(self, store, add_client, call):
        add_client("Acme Corp")
        call("createInvoice", clientName="Acme Corp", items=ITEMS, confirmed=True)
        number = store.find("invoices", "user-1")[0]["invoice_number"]

        result = call("getInvoiceById", invoiceNumber=number)

        assert result["status"] == "success"
        assert [i["description"] for i in result["result"]["items"]] == ["Design", "Hosting"]
        assert result["result"]["client"]["name"] == "Acme Corp"


class TestRecurringAndTemplates:
    """Schedules and templates."""

    def _schedule(self, store, **overrides):
        record = {
            "user_id": "user-1", "invoice_id": "inv-1", "frequency": "monthly",
            "next_date": "2025-02-01", "end_date": "2025-12-31", "is_active": True,
            "template_data": {"total": 500, "currency": "USD"},
        }
        record.update(overrides)
        return store.insert("recurring_invoices", record)

    def test_toggle_pauses(self, store, call):
        schedule = self._schedule(store)
        result = call("toggleRecurring", recurringId=schedule["id"], isActive=False, confirmed=True)
        assert result["message"] == "Recurring invoice paused."
        assert store.get("recurring_invoices", schedule["id"], "user-1")["is_active"] is False

    def test_clear_end_date(self, store, call):
        schedule = self._schedule(store)
        result = call("updateRecurring", recurringId=schedule["id"], clearEndDate=True, confirmed=True)
        assert result["status"] == "applied"
        assert store.get("recurring_invoices", schedule["id"], "user-1")["end_date"] is None

    def test_end_date_and_clear_conflict(self, store, call):
        schedule = self._schedule(store)
        result = call("updateRecurring", recurringId=schedule["id"], endDate="2026-01-01", clearEndDate=True)
        assert result["status"] == "error"

    def test_active_filter(self, store, call):
        self._schedule(store)
        self._schedule(store, is_active=False)
        result = call("getRecurringInvoices", isActive=True)
        assert result["result"]["count"] == 1
        assert result["result"]["activeCount"] == 1

    def test_template_round_trip(self, store, add_client, call):
        add_client("Acme Corp")
        call("createInvoice", clientName="Acme Corp", items=ITEMS, confirmed=True)
        number = store.find("invoices", "user-1")[0]["invoice_number"]

        saved = call("saveAsTemplate", invoiceNumber=number, templateName="Monthly design", confirmed=True)
        assert saved["status"] == "applied"
        template_id = saved["result"]["id"]
        assert saved["result"]["itemCount"] == 2

        created = call("createFromTemplate", templateId=template_id, confirmed=True)
        assert created["status"] == "applied"
        assert created["result"]["total"] == 340.0
        assert store.count("invoices", "user-1") == 2

        renamed = call("updateTemplate", templateId=template_id, name="Design retainer", confirmed=True)
        assert renamed["status"] == "applied"
        listed = call("getInvoiceTemplates")
        assert [t["name"] for t in listed["result"]["templates"]] == ["Design retainer"]

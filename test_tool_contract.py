"""
Preview/confirm contract tests.

Runs the income, client and category tools end to end through the
dispatcher against a temporary datastore, checking that previews never
write, applies write exactly once, and guards/no-op/stale-preview paths
leave rows untouched.
"""

from tools.contract import CLEAR, compute_diff, compute_version_token
from tools.money import compute_tax, line_totals


class TestDiff:
    """Field-level change sets."""

    def test_none_means_not_supplied(self):
        assert compute_diff({"name": "Acme", "email": "a@acme.com"}, {"name": None, "email": None}) == {}

    def test_changed_fields_only(self):
        changes = compute_diff({"name": "Acme", "amount": 100.0}, {"name": "Acme", "amount": 120})
        assert changes == {"amount": {"old": 100.0, "new": 120}}

    def test_numeric_equality_ignores_type(self):
        assert compute_diff({"amount": 100.0}, {"amount": 100}) == {}

    def test_clear_nulls_a_column(self):
        assert compute_diff({"end_date": "2025-12-31"}, {"end_date": CLEAR}) == {
            "end_date": {"old": "2025-12-31", "new": None},
        }
        assert compute_diff({"end_date": None}, {"end_date": CLEAR}) == {}

    def test_version_token_tracks_row(self):
        row = {"id": "1", "name": "Acme", "updated_at": "2025-01-01T00:00:00"}
        assert compute_version_token(row) == compute_version_token(dict(row))
        assert compute_version_token(row) != compute_version_token({**row, "name": "Acme Corp"})


class TestMoney:
    """Tax arithmetic rounds half-up to cents."""

    def test_compute_tax(self):
        assert compute_tax(500, 10) == (50.0, 550.0)
        assert compute_tax(19.99, 7.5) == (1.5, 21.49)

    def test_line_totals(self):
        assert line_totals(3, 33.333, 0) == (100.0, 0.0, 100.0)
        assert line_totals(2, 150, 20) == (300.0, 60.0, 360.0)


class TestAddIncomeScenarios:
    """Income capture with a fuzzy client reference."""

    def _setup(self, store, add_client):
        store.insert("user_settings", {"user_id": "user-1", "base_currency": "USD", "default_tax_rate": 10})
        return add_client("Acme Corp")

    def test_preview_resolves_client_without_writing(self, store, add_client, call):
        self._setup(store, add_client)

        result = call("addIncome", amount=500, description="consulting", clientName="Acme", confirmed=False)

        assert result["status"] == "preview"
        preview = result["preview"]
        assert preview["client"]["name"] == "Acme Corp"
        assert preview["client"]["matched"] is True
        assert preview["taxRate"] == 10
        assert preview["taxAmount"] == 50.0
        assert preview["totalWithTax"] == 550.0
        assert store.count("income", "user-1") == 0

    def test_preview_is_idempotent(self, store, add_client, call):
        self._setup(store, add_client)
        params = dict(amount=500, description="consulting", clientName="Acme", confirmed=False)

        first = call("addIncome", **params)
        second = call("addIncome", **params)

        assert first["preview"] == second["preview"]
        assert store.count("income", "user-1") == 0

    def test_confirm_writes_one_record(self, store, add_client, call):
        client = self._setup(store, add_client)

        result = call("addIncome", amount=500, description="consulting", clientName="Acme", confirmed=True)

        assert result["status"] == "applied"
        rows = store.find("income", "user-1")
        assert len(rows) == 1
        assert rows[0]["client_id"] == client["id"]
        assert rows[0]["tax_amount"] == 50.0
        assert rows[0]["total_with_tax"] == rows[0]["amount"] + rows[0]["tax_amount"]

    def test_ambiguous_client_comes_back_as_suggestions(self, add_client, call):
        add_client("Acme Corp")
        add_client("Acme Labs")

        result = call("addIncome", amount=100, description="work", clientName="Acme")

        client = result["preview"]["client"]
        assert client["matched"] is False
        assert [s["name"] for s in client["suggestions"]] == ["Acme Corp", "Acme Labs"]
        assert any("Suggestions available" in w for w in result["warnings"])

    def test_explicit_tax_override(self, store, add_client, call):
        self._setup(store, add_client)
        result = call("addIncome", amount=200, description="talk", taxRate=0, confirmed=False)
        assert result["preview"]["taxAmount"] == 0.0
        assert result["preview"]["totalWithTax"] == 200.0


class TestUpdateProtocol:
    """run_update through updateIncome / updateClient."""

    def _income(self, store, amount=100.0, tax_rate=10.0):
        tax, total = compute_tax(amount, tax_rate)
        return store.insert("income", {
            "user_id": "user-1", "amount": amount, "description": "Design", "date": "2025-01-10",
            "tax_rate": tax_rate, "tax_amount": tax, "total_with_tax": total,
        })

    def test_preview_shows_changes_and_token(self, store, call):
        income = self._income(store)

        result = call("updateIncome", incomeId=income["id"], amount=200)

        assert result["status"] == "preview"
        assert result["changes"] == {"amount": {"old": 100.0, "new": 200.0}}
        assert result["versionToken"]
        assert store.get("income", income["id"], "user-1")["amount"] == 100.0

    def test_apply_recomputes_derived_totals(self, store, call):
        income = self._income(store)

        result = call("updateIncome", incomeId=income["id"], amount=200, confirmed=True)

        assert result["status"] == "applied"
        row = store.get("income", income["id"], "user-1")
        assert row["amount"] == 200.0
        assert row["tax_amount"] == 20.0
        assert row["total_with_tax"] == 220.0

    def test_same_values_are_no_changes(self, store, call):
        income = self._income(store)
        before = store.get("income", income["id"], "user-1")

        result = call("updateIncome", incomeId=income["id"], amount=100, description="Design", confirmed=True)

        assert result["status"] == "no_changes"
        assert store.get("income", income["id"], "user-1") == before

    def test_stale_preview_is_blocked(self, store, add_client, call):
        client = add_client("Acme Corp")

        preview = call("updateClient", clientId=client["id"], email="billing@acme.com")
        # Someone else edits the row in between
        store.update("clients", client["id"], "user-1", {"phone": "555-0100"})

        result = call(
            "updateClient", clientId=client["id"], email="billing@acme.com",
            confirmed=True, versionToken=preview["versionToken"],
        )

        assert result["status"] == "blocked"
        assert result["message"] == "Record changed since preview"
        assert store.get("clients", client["id"], "user-1")["email"] is None

    def test_matching_token_applies(self, add_client, store, call):
        client = add_client("Acme Corp")
        preview = call("updateClient", clientId=client["id"], email="billing@acme.com")

        result = call(
            "updateClient", clientId=client["id"], email="billing@acme.com",
            confirmed=True, versionToken=preview["versionToken"],
        )

        assert result["status"] == "applied"
        assert store.get("clients", client["id"], "user-1")["email"] == "billing@acme.com"

    def test_other_owner_sees_not_found(self, store, call):
        income = self._income(store)
        result = call("updateIncome", user_id="user-2", incomeId=income["id"], amount=5, confirmed=True)
        assert result["status"] == "not_found"
        assert store.get("income", income["id"], "user-1")["amount"] == 100.0


class TestPaidInvoiceGuard:
    """Paid invoices refuse edits and deletes."""

    def _paid_invoice(self, store):
        return store.insert("invoices", {
            "user_id": "user-1", "invoice_number": "INV-001", "date": "2025-01-01",
            "due_date": "2025-01-31", "status": "paid", "total": 500.0,
            "amount_paid": 500.0, "balance_due": 0.0, "notes": "Thanks",
        })

    def test_update_is_blocked_and_row_unchanged(self, store, call):
        invoice = self._paid_invoice(store)
        before = store.get("invoices", invoice["id"], "user-1")

        result = call("updateInvoice", invoiceId=invoice["id"], notes="Changed", confirmed=True)

        assert result["status"] == "blocked"
        assert result["reason"]
        assert result["suggestion"]
        assert store.get("invoices", invoice["id"], "user-1") == before

    def test_delete_is_blocked(self, store, call):
        invoice = self._paid_invoice(store)
        result = call("deleteInvoice", invoiceNumber="inv-001", confirmed=True)
        assert result["status"] == "blocked"
        assert store.get("invoices", invoice["id"], "user-1") is not None


class TestCreateAndDelete:
    """Duplicate guard and soft delete through the client/category tools."""

    def test_add_client_preview_then_apply(self, store, call):
        preview = call("addClient", name="Globex", email="ap@globex.com")
        assert preview["status"] == "preview"
        assert store.count("clients", "user-1") == 0

        applied = call("addClient", name="Globex", email="ap@globex.com", confirmed=True)
        assert applied["status"] == "applied"
        assert store.count("clients", "user-1") == 1

    def test_duplicate_name_returns_exists(self, add_client, store, call):
        existing = add_client("Globex")
        result = call("addClient", name="globex", confirmed=True)
        assert result["status"] == "exists"
        assert result["existing"]["id"] == existing["id"]
        assert store.count("clients", "user-1") == 1

    def test_invalid_email_fails_validation(self, call):
        result = call("addClient", name="Globex", email="not-an-email")
        assert result["status"] == "error"
        assert result["errorKind"] == "validation_failure"

    def test_category_uniqueness_is_per_type(self, store, call):
        call("addCategory", name="Consulting", type="income", confirmed=True)
        result = call("addCategory", name="Consulting", type="expense", confirmed=True)
        assert result["status"] == "applied"
        assert store.count("categories", "user-1") == 2

    def test_delete_preview_then_apply(self, add_client, store, call):
        client = add_client("Initech")

        preview = call("deleteClient", clientId=client["id"])
        assert preview["status"] == "preview"
        assert store.get("clients", client["id"], "user-1") is not None

        result = call("deleteClient", clientId=client["id"], confirmed=True)
        assert result["status"] == "applied"
        assert store.get("clients", client["id"], "user-1") is None

        again = call("deleteClient", clientId=client["id"], confirmed=True)
        assert again["status"] == "not_found"


class TestSearch:
    """searchClients classification."""

    def test_email_term_only_considers_email_field(self, add_client, call):
        add_client("Jo Bloggs", email="jo@x.co")
        add_client("jo@x.co Consulting", email="info@other.com")

        result = call("searchClients", searchTerm="jo@x.co")

        assert result["result"]["searchType"] == "email"
        assert [m["name"] for m in result["result"]["matches"]] == ["Jo Bloggs"]

    def test_empty_pool_offers_creation(self, call):
        result = call("searchClients", searchTerm="Acme")
        assert result["status"] == "success"
        assert "Would you like to create one?" in result["message"]

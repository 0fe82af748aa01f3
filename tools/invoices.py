"""Invoice tools.

Covers the invoice lifecycle (create, send, record payments, edit, delete),
recurring schedules, and reusable templates. Invoices are scoped to the
effective owner, so team members share one set of invoices.

Paid invoices are immutable: every update or delete attempt is BLOCKED,
whether or not it is confirmed.
"""

import calendar
import datetime as dt
import time
from decimal import Decimal
from typing import Any, Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel, Field

from core.errors import DatastoreError, EmailDeliveryError, ErrorKind
from core.formatting import format_currency
from core.observability.logging import get_logger
from storage.entities import CLIENT, INVOICE, PROJECT, RECURRING, TEMPLATE
from storage.owners import UserPreferences, advance_invoice_number
from tools.contract import (
    CLEAR,
    ToolContext,
    ToolResult,
    ToolStatus,
    compute_version_token,
    run_create,
    run_delete,
    run_update,
    RECORD_CHANGED_MESSAGE,
)
from tools.email import InvoiceEmailClient
from tools.money import line_totals, round_money, sum_money, to_decimal
from tools.references import Reference, display_name, resolve_reference
from tools.registry import MutatingInput, ToolInput, tool


logger = get_logger(__name__)

ITEMS_NOT_SAVED_WARNING = "Invoice created, but line items could not be saved"
PAID_SUGGESTION = "If you need to make corrections, create a credit note or a new invoice instead."

INVOICE_STATUSES = ("draft", "sent", "paid", "overdue", "partially_paid", "canceled")
CLOSED_STATUSES = ("paid", "canceled")

Frequency = Literal["weekly", "biweekly", "monthly", "quarterly", "yearly"]


# =============================================================================
# Helpers
# =============================================================================

def add_months(value: dt.date, months: int) -> dt.date:
    """Calendar month offset, clamping to the last day of the target month."""
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return dt.date(year, month, day)


def next_recurring_date(value: dt.date, frequency: str) -> dt.date:
    if frequency == "weekly":
        return value + dt.timedelta(days=7)
    if frequency == "biweekly":
        return value + dt.timedelta(days=14)
    if frequency == "monthly":
        return add_months(value, 1)
    if frequency == "quarterly":
        return add_months(value, 3)
    if frequency == "yearly":
        return add_months(value, 12)
    raise ValueError(f"Unknown frequency: {frequency}")


def format_invoice_number(prefs: UserPreferences) -> str:
    """Next number from invoice settings, or a timestamp-based fallback."""
    if prefs.next_invoice_number is None:
        return f"INV-{int(time.time() * 1000)}"
    return f"{prefs.invoice_prefix}{prefs.next_invoice_number:03d}"


def is_overdue(invoice: Dict[str, Any], today: Optional[dt.date] = None) -> bool:
    today = today or dt.date.today()
    due = invoice.get("due_date")
    return bool(due) and due < today.isoformat() and invoice["status"] not in CLOSED_STATUSES


def paid_invoice_guard(invoice: Dict[str, Any]) -> Optional[ToolResult]:
    if invoice["status"] == "paid":
        return ToolResult.blocked(
            "Cannot modify paid invoice",
            reason=(
                "Once an invoice is marked as paid, it cannot be edited or deleted. "
                "This keeps your financial records accurate for tax purposes."
            ),
            suggestion=PAID_SUGGESTION,
        )
    return None


class InvoiceItemInput(BaseModel):
    description: str = Field(..., min_length=1)
    quantity: float = Field(default=1, gt=0)
    rate: float = Field(..., gt=0, description="Rate per unit")
    tax_rate: Optional[float] = Field(default=None, ge=0, le=100, alias="taxRate")

    model_config = {"populate_by_name": True}


def price_items(items: List[Dict[str, Any]], default_tax_rate: float) -> Tuple[List[Dict[str, Any]], Dict[str, float]]:
    """Per-line net / tax / gross and invoice totals, all from authoritative inputs."""
    priced = []
    for position, item in enumerate(items):
        tax_rate = item.get("tax_rate")
        if tax_rate is None:
            tax_rate = default_tax_rate
        net, tax, gross = line_totals(item["quantity"], item["rate"], tax_rate)
        priced.append({
            "description": item["description"],
            "quantity": float(item["quantity"]),
            "rate": float(round_money(item["rate"])),
            "tax_rate": tax_rate,
            "net_amount": net,
            "tax_amount": tax,
            "gross_amount": gross,
            "sort_order": position,
        })

    subtotal = sum_money(i["net_amount"] for i in priced)
    tax_amount = sum_money(i["tax_amount"] for i in priced)
    totals = {"subtotal": subtotal, "tax_amount": tax_amount, "total": float(to_decimal(subtotal) + to_decimal(tax_amount))}
    return priced, totals


def _item_view(item: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "description": item["description"],
        "quantity": item["quantity"],
        "rate": item["rate"],
        "taxRate": item["tax_rate"],
        "netAmount": item["net_amount"],
        "taxAmount": item["tax_amount"],
        "grossAmount": item["gross_amount"],
    }


def _invoice_summary(ctx: ToolContext, invoice: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": invoice["id"],
        "number": invoice["invoice_number"],
        "client": display_name(ctx, CLIENT, invoice.get("client_id")) or "No client",
        "date": invoice["date"],
        "dueDate": invoice.get("due_date"),
        "status": "overdue" if is_overdue(invoice) else invoice["status"],
        "total": invoice["total"],
        "currency": invoice["currency"],
        "amountPaid": invoice.get("amount_paid") or 0,
        "balanceDue": invoice.get("balance_due"),
    }


def _find_invoice(ctx: ToolContext, invoice_id: Optional[str], invoice_number: Optional[str]) -> Optional[Dict[str, Any]]:
    if invoice_id:
        return ctx.store.get(INVOICE.table, invoice_id, ctx.owner_id)
    rows = ctx.store.find(INVOICE.table, ctx.owner_id, {"invoice_number__ieq": invoice_number}, limit=1)
    return rows[0] if rows else None


MISSING_INVOICE_REFERENCE = "Please provide invoice ID or number"


async def _persist_invoice(
    ctx: ToolContext,
    header: Dict[str, Any],
    items: List[Dict[str, Any]],
) -> Tuple[Dict[str, Any], List[str]]:
    """Insert the header, then the items on a best-effort basis.

    A failed item write does not roll the header back; it becomes a warning.
    Header failures propagate as ``DatastoreError``.
    """
    warnings: List[str] = []
    saved = ctx.store.insert(INVOICE.table, {**header, "user_id": ctx.owner_id})

    try:
        ctx.store.insert_many(
            "invoice_items",
            [{**item, "invoice_id": saved["id"], "user_id": ctx.owner_id} for item in items],
        )
    except DatastoreError:
        logger.exception("Invoice line items could not be saved", extra_fields={"invoice_id": saved["id"]})
        warnings.append(ITEMS_NOT_SAVED_WARNING)

    try:
        advance_invoice_number(ctx.store, ctx.owner_id)
    except DatastoreError:
        logger.exception("Could not advance invoice number")

    return saved, warnings


def _resolve_client(ctx: ToolContext, client_id: Optional[str], client_name: Optional[str]) -> Reference:
    return resolve_reference(ctx, CLIENT, client_id, client_name)


def _unresolved_client(client: Reference) -> ToolResult:
    return ToolResult.not_found(
        "Client",
        message=f'Client "{client.name}" not found. Pick one of the suggestions or create the client first.',
        suggestions=client.suggestions or None,
    )


# =============================================================================
# Read tools
# =============================================================================

class GetInvoicesInput(ToolInput):
    status: Literal["draft", "sent", "paid", "overdue", "partially_paid", "canceled", "all"] = "all"
    client_id: Optional[str] = None
    date_from: Optional[dt.date] = None
    date_to: Optional[dt.date] = None
    limit: int = Field(default=10, ge=1, le=200)


class InvoiceLookupInput(ToolInput):
    invoice_id: Optional[str] = None
    invoice_number: Optional[str] = Field(default=None, description="Invoice number like INV-001")


@tool("getInvoices", GetInvoicesInput, """
List invoices, newest first. status=overdue returns unpaid invoices past their due date.
""")
async def get_invoices(ctx: ToolContext, params: GetInvoicesInput) -> ToolResult:
    filters: Dict[str, Any] = {}
    if params.status == "overdue":
        filters["due_date__lt"] = dt.date.today().isoformat()
        filters["status__not_in"] = list(CLOSED_STATUSES)
    elif params.status != "all":
        filters["status"] = params.status
    if params.client_id:
        filters["client_id"] = params.client_id
    if params.date_from:
        filters["date__gte"] = params.date_from.isoformat()
    if params.date_to:
        filters["date__lte"] = params.date_to.isoformat()

    try:
        rows = ctx.store.find(INVOICE.table, ctx.owner_id, filters, order_by="-date", limit=params.limit)
    except DatastoreError:
        logger.exception("Failed to fetch invoices")
        return ToolResult.error("Failed to fetch invoices", ErrorKind.PERSISTENCE_FAILURE)

    invoices = [_invoice_summary(ctx, row) for row in rows]
    return ToolResult.success(
        f"Found {len(invoices)} invoice(s).",
        result={"invoices": invoices, "count": len(invoices)},
    )


@tool("getInvoiceById", InvoiceLookupInput, "Get one invoice by ID or number, with line items and payments.")
async def get_invoice_by_id(ctx: ToolContext, params: InvoiceLookupInput) -> ToolResult:
    if not params.invoice_id and not params.invoice_number:
        return ToolResult.invalid(MISSING_INVOICE_REFERENCE)

    try:
        invoice = _find_invoice(ctx, params.invoice_id, params.invoice_number)
        if invoice is None:
            return ToolResult.not_found("Invoice")
        items = ctx.store.find("invoice_items", ctx.owner_id, {"invoice_id": invoice["id"]}, order_by="sort_order")
        payments = ctx.store.find("invoice_payments", ctx.owner_id, {"invoice_id": invoice["id"]}, order_by="-payment_date")
        client = ctx.store.get(CLIENT.table, invoice["client_id"], ctx.owner_id) if invoice.get("client_id") else None
    except DatastoreError:
        logger.exception("Failed to get invoice")
        return ToolResult.error("Failed to get invoice", ErrorKind.PERSISTENCE_FAILURE)

    detail = _invoice_summary(ctx, invoice)
    detail.update({
        "client": {
            "name": client["name"],
            "company": client.get("company_name"),
            "email": client.get("email"),
        } if client else None,
        "items": [_item_view(item) for item in items],
        "subtotal": invoice["subtotal"],
        "taxAmount": invoice["tax_amount"],
        "notes": invoice.get("notes"),
        "payments": [
            {
                "id": p["id"],
                "amount": p["amount"],
                "paymentDate": p["payment_date"],
                "method": p.get("method"),
            }
            for p in payments
        ],
    })
    return ToolResult.success(f"Invoice {invoice['invoice_number']}", result=detail)


@tool("getOverdueInvoices", ToolInput, "List unpaid invoices past their due date, oldest first, with days overdue.")
async def get_overdue_invoices(ctx: ToolContext, params: ToolInput) -> ToolResult:
    today = dt.date.today()
    try:
        rows = ctx.store.find(
            INVOICE.table,
            ctx.owner_id,
            {"due_date__lt": today.isoformat(), "status__not_in": list(CLOSED_STATUSES)},
            order_by="due_date",
        )
    except DatastoreError:
        logger.exception("Failed to fetch overdue invoices")
        return ToolResult.error("Failed to fetch overdue invoices", ErrorKind.PERSISTENCE_FAILURE)

    overdue = []
    for row in rows:
        due = dt.date.fromisoformat(row["due_date"])
        overdue.append({
            "id": row["id"],
            "number": row["invoice_number"],
            "client": display_name(ctx, CLIENT, row.get("client_id")) or "No client",
            "dueDate": row["due_date"],
            "daysOverdue": (today - due).days,
            "total": row["total"],
            "balanceDue": row["balance_due"],
            "currency": row["currency"],
        })

    total_overdue = sum_money(inv["balanceDue"] for inv in overdue)
    currency = overdue[0]["currency"] if overdue else ctx.preferences.base_currency
    message = (
        f"{len(overdue)} overdue invoice(s) totalling {format_currency(total_overdue, currency)}."
        if overdue else "No overdue invoices."
    )
    return ToolResult.success(
        message,
        result={"invoices": overdue, "count": len(overdue), "totalOverdue": total_overdue, "currency": currency},
    )


# =============================================================================
# Create
# =============================================================================

class CreateInvoiceInput(MutatingInput):
    client_id: Optional[str] = Field(default=None, description="Client ID from searchClients")
    client_name: Optional[str] = Field(default=None, description="Client name, matched against existing clients")
    items: List[InvoiceItemInput] = Field(..., min_length=1, description="Line items")
    date: Optional[dt.date] = Field(default=None, description="Invoice date, default today")
    due_date: Optional[dt.date] = Field(default=None, description="Due date, default date + payment terms")
    notes: Optional[str] = None
    currency: Optional[str] = None
    project_id: Optional[str] = None
    make_recurring: bool = False
    frequency: Optional[Frequency] = None
    recurring_end_date: Optional[dt.date] = None


@tool("createInvoice", CreateInvoiceInput, """
Create an invoice from line items {description, quantity, rate, taxRate?}. Preview first
(confirmed=false), save after the user confirms. Optionally recurring (makeRecurring + frequency).
""")
async def create_invoice(ctx: ToolContext, params: CreateInvoiceInput) -> ToolResult:
    if not params.client_id and not params.client_name:
        return ToolResult.invalid("A client is required. Use searchClients or addClient first.")
    if params.make_recurring and not params.frequency:
        return ToolResult.invalid("A frequency is required for a recurring invoice.")

    prefs = ctx.preferences
    invoice_date = params.date or dt.date.today()
    due_date = params.due_date or invoice_date + dt.timedelta(days=prefs.payment_terms)
    if due_date < invoice_date:
        return ToolResult.invalid("Due date cannot be before the invoice date.")

    client = _resolve_client(ctx, params.client_id, params.client_name)
    currency = params.currency or prefs.base_currency
    items, totals = price_items([i.model_dump() for i in params.items], prefs.default_tax_rate)
    invoice_number = format_invoice_number(prefs)

    project_id = params.project_id
    warnings = [w for w in (client.warning("Client"),) if w]
    if project_id and ctx.store.get(PROJECT.table, project_id, ctx.owner_id) is None:
        warnings.append("Project not found. Will save without project.")
        project_id = None

    if not params.confirmed:
        return ToolResult(
            status=ToolStatus.PREVIEW,
            message="Preview ready. Say 'confirm' to create this invoice.",
            preview={
                "invoiceNumber": invoice_number,
                "client": client.preview(),
                "date": invoice_date.isoformat(),
                "dueDate": due_date.isoformat(),
                "items": [_item_view(i) for i in items],
                "subtotal": totals["subtotal"],
                "taxAmount": totals["tax_amount"],
                "total": totals["total"],
                "currency": currency,
                "notes": params.notes,
                "recurring": params.frequency if params.make_recurring else None,
            },
            warnings=warnings,
        )

    if not client.matched:
        return _unresolved_client(client)

    header = {
        "invoice_number": invoice_number,
        "client_id": client.id,
        "project_id": project_id,
        "date": invoice_date.isoformat(),
        "due_date": due_date.isoformat(),
        "status": "draft",
        "currency": currency,
        "subtotal": totals["subtotal"],
        "tax_amount": totals["tax_amount"],
        "total": totals["total"],
        "amount_paid": 0.0,
        "balance_due": totals["total"],
        "notes": params.notes,
    }

    try:
        saved, warnings = await _persist_invoice(ctx, header, items)
    except DatastoreError:
        logger.exception("Failed to create invoice")
        return ToolResult.persistence_failure()

    recurring_created = False
    if params.make_recurring:
        template_data = {
            "items": items,
            "subtotal": totals["subtotal"],
            "tax_amount": totals["tax_amount"],
            "total": totals["total"],
            "currency": currency,
            "notes": params.notes,
            "payment_terms": prefs.payment_terms,
        }
        try:
            ctx.store.insert(RECURRING.table, {
                "user_id": ctx.owner_id,
                "invoice_id": saved["id"],
                "client_id": client.id,
                "frequency": params.frequency,
                "next_date": next_recurring_date(invoice_date, params.frequency).isoformat(),
                "end_date": params.recurring_end_date.isoformat() if params.recurring_end_date else None,
                "is_active": True,
                "template_data": template_data,
            })
            recurring_created = True
        except DatastoreError:
            logger.exception("Recurring schedule could not be saved", extra_fields={"invoice_id": saved["id"]})
            warnings.append("Invoice created, but the recurring schedule could not be saved")

    recurring_msg = f" Set to recur {params.frequency}." if recurring_created else ""
    return ToolResult(
        status=ToolStatus.APPLIED,
        message=f"Invoice {saved['invoice_number']} created for {client.name}!{recurring_msg}",
        result={
            "id": saved["id"],
            "number": saved["invoice_number"],
            "total": saved["total"],
            "currency": currency,
            "isRecurring": recurring_created,
            "frequency": params.frequency if recurring_created else None,
        },
        warnings=warnings or None,
    )


# =============================================================================
# Payments and delivery
# =============================================================================

class MarkInvoicePaidInput(MutatingInput):
    invoice_id: Optional[str] = None
    invoice_number: Optional[str] = None
    payment_amount: Optional[float] = Field(default=None, gt=0, description="Amount paid, default: full balance")
    payment_date: Optional[dt.date] = None
    payment_method: Optional[str] = Field(default=None, description="bank, cash, card, ...")
    notes: Optional[str] = None


@tool("markInvoicePaid", MarkInvoicePaidInput, """
Record a payment on an invoice (full balance unless paymentAmount is given). Preview first, then confirm.
""")
async def mark_invoice_paid(ctx: ToolContext, params: MarkInvoicePaidInput) -> ToolResult:
    if not params.invoice_id and not params.invoice_number:
        return ToolResult.invalid(MISSING_INVOICE_REFERENCE)

    try:
        invoice = _find_invoice(ctx, params.invoice_id, params.invoice_number)
    except DatastoreError:
        logger.exception("Failed to load invoice")
        return ToolResult.error("Failed to record payment", ErrorKind.PERSISTENCE_FAILURE)
    if invoice is None:
        return ToolResult.not_found("Invoice")

    number = invoice["invoice_number"]
    if invoice["status"] == "paid":
        return ToolResult.blocked(f"Invoice {number} is already fully paid.")
    if invoice["status"] == "canceled":
        return ToolResult.blocked(f"Invoice {number} is canceled.")

    total = to_decimal(invoice["total"])
    already_paid = to_decimal(invoice.get("amount_paid"))
    balance = total - already_paid
    amount = round_money(params.payment_amount) if params.payment_amount is not None else balance

    if amount > balance:
        return ToolResult.invalid(f"Payment amount ({amount}) exceeds balance due ({balance})")

    new_amount_paid = already_paid + amount
    new_balance = total - new_amount_paid
    new_status = "paid" if new_balance <= 0 else "partially_paid"
    paid_date = (params.payment_date or dt.date.today()).isoformat()
    currency = invoice["currency"]
    token = compute_version_token(invoice)

    if not params.confirmed:
        return ToolResult(
            status=ToolStatus.PREVIEW,
            message=(
                f"Ready to record payment of {format_currency(amount, currency)} for invoice {number}. "
                f"New status will be: {new_status}. Say 'confirm' to proceed!"
            ),
            preview={
                "invoiceNumber": number,
                "client": display_name(ctx, CLIENT, invoice.get("client_id")) or "client",
                "currentBalance": float(balance),
                "paymentAmount": float(amount),
                "paymentDate": paid_date,
                "paymentMethod": params.payment_method or "Not specified",
                "newBalance": float(max(new_balance, Decimal("0"))),
                "newStatus": new_status,
                "currency": currency,
            },
            version_token=token,
        )

    if params.version_token and params.version_token != token:
        return ToolResult.blocked(RECORD_CHANGED_MESSAGE, suggestion="Preview the payment again before confirming.")

    try:
        ctx.store.insert("invoice_payments", {
            "user_id": ctx.owner_id,
            "invoice_id": invoice["id"],
            "amount": float(amount),
            "payment_date": paid_date,
            "method": params.payment_method,
            "notes": params.notes,
        })
        ctx.store.update(INVOICE.table, invoice["id"], ctx.owner_id, {
            "status": new_status,
            "amount_paid": float(new_amount_paid),
            "balance_due": float(new_balance),
            "paid_at": paid_date if new_status == "paid" else None,
        })
    except DatastoreError:
        logger.exception("Failed to record payment", extra_fields={"invoice_id": invoice["id"]})
        return ToolResult.persistence_failure()

    logger.info("Payment recorded", extra_fields={"invoice_id": invoice["id"], "new_status": new_status})
    message = (
        f"Invoice {number} marked as fully paid!"
        if new_status == "paid"
        else f"Payment of {format_currency(amount, currency)} recorded. "
             f"Balance remaining: {format_currency(new_balance, currency)}"
    )
    return ToolResult(
        status=ToolStatus.APPLIED,
        message=message,
        result={
            "invoiceNumber": number,
            "amountPaid": float(amount),
            "newBalance": float(new_balance),
            "newStatus": new_status,
            "currency": currency,
        },
    )


class SendInvoiceEmailInput(MutatingInput):
    invoice_id: Optional[str] = None
    invoice_number: Optional[str] = None
    custom_message: Optional[str] = None
    cc_emails: List[str] = Field(default_factory=list)
    attach_pdf: bool = False


DEFAULT_EMAIL_MESSAGE = "Thank you for your business! Please find your invoice details below."


@tool("sendInvoiceEmail", SendInvoiceEmailInput, """
E-mail an invoice to its client. Preview first (confirmed=false), send after the user confirms.
The client must have an e-mail address.
""")
async def send_invoice_email(ctx: ToolContext, params: SendInvoiceEmailInput) -> ToolResult:
    if not params.invoice_id and not params.invoice_number:
        return ToolResult.invalid(MISSING_INVOICE_REFERENCE)

    try:
        invoice = _find_invoice(ctx, params.invoice_id, params.invoice_number)
        client = None
        if invoice is not None and invoice.get("client_id"):
            client = ctx.store.get(CLIENT.table, invoice["client_id"], ctx.owner_id)
    except DatastoreError:
        logger.exception("Failed to load invoice for e-mail")
        return ToolResult.error("Failed to send invoice email", ErrorKind.PERSISTENCE_FAILURE)

    if invoice is None:
        return ToolResult.not_found("Invoice")

    number = invoice["invoice_number"]
    if not client or not client.get("email"):
        client_name = client["name"] if client else "Unknown"
        return ToolResult.invalid(
            f'No email address found for client "{client_name}". Please update client email first.'
        )

    amount = format_currency(invoice["total"], invoice["currency"])
    if not params.confirmed:
        return ToolResult(
            status=ToolStatus.PREVIEW,
            message=f"Ready to send invoice {number} ({amount}) to {client['name']} at {client['email']}. Say 'confirm' to send!",
            preview={
                "invoiceNumber": number,
                "client": client["name"],
                "clientEmail": client["email"],
                "amount": invoice["total"],
                "currency": invoice["currency"],
                "dueDate": invoice.get("due_date"),
                "ccEmails": params.cc_emails,
                "attachPdf": params.attach_pdf,
                "customMessage": params.custom_message or DEFAULT_EMAIL_MESSAGE,
            },
        )

    email_client = ctx.email_client or InvoiceEmailClient(ctx.settings.invoice_email_url)
    try:
        await email_client.send_invoice(
            invoice_id=invoice["id"],
            recipient_email=client["email"],
            subject=f"Invoice {number}",
            owner_id=ctx.owner_id,
            message=params.custom_message,
            cc_emails=params.cc_emails,
            attach_pdf=params.attach_pdf,
        )
    except EmailDeliveryError as e:
        logger.error("Invoice e-mail failed", extra_fields={"invoice_id": invoice["id"], "error": e.message})
        return ToolResult.error(
            "Failed to send invoice email. Please try again later.",
            ErrorKind.UPSTREAM_FAILURE,
        )

    if invoice["status"] == "draft":
        try:
            ctx.store.update(INVOICE.table, invoice["id"], ctx.owner_id, {
                "status": "sent",
                "sent_at": dt.datetime.now(dt.timezone.utc).isoformat(),
            })
        except DatastoreError:
            logger.exception("Invoice sent but status could not be updated")

    return ToolResult(
        status=ToolStatus.APPLIED,
        message=f"Invoice {number} sent to {client['name']} at {client['email']}!",
        result={"invoiceNumber": number, "sentTo": client["email"], "amount": invoice["total"], "currency": invoice["currency"]},
    )


# =============================================================================
# Edit / delete
# =============================================================================

class UpdateInvoiceInput(MutatingInput):
    invoice_id: Optional[str] = None
    invoice_number: Optional[str] = None
    date: Optional[dt.date] = None
    due_date: Optional[dt.date] = None
    notes: Optional[str] = None


class DeleteInvoiceInput(MutatingInput):
    invoice_id: Optional[str] = None
    invoice_number: Optional[str] = None


async def _invoice_id_for(ctx: ToolContext, invoice_id: Optional[str], invoice_number: Optional[str]) -> Optional[str]:
    if invoice_id:
        return invoice_id
    invoice = _find_invoice(ctx, None, invoice_number)
    return invoice["id"] if invoice else None


@tool("updateInvoice", UpdateInvoiceInput, """
Change an invoice's date, due date, or notes. Preview first, then confirm. Paid invoices cannot be changed.
To change line items, create a new invoice.
""")
async def update_invoice(ctx: ToolContext, params: UpdateInvoiceInput) -> ToolResult:
    if not params.invoice_id and not params.invoice_number:
        return ToolResult.invalid(MISSING_INVOICE_REFERENCE)

    try:
        invoice_id = await _invoice_id_for(ctx, params.invoice_id, params.invoice_number)
    except DatastoreError:
        logger.exception("Failed to load invoice")
        return ToolResult.persistence_failure()
    if invoice_id is None:
        return ToolResult.not_found("Invoice")

    requested = {
        "date": params.date.isoformat() if params.date else None,
        "due_date": params.due_date.isoformat() if params.due_date else None,
        "notes": params.notes,
    }
    return await run_update(
        ctx,
        INVOICE,
        invoice_id,
        requested,
        confirmed=params.confirmed,
        version_token=params.version_token,
        guard=paid_invoice_guard,
    )


@tool("deleteInvoice", DeleteInvoiceInput, "Delete an invoice. Preview first, then confirm. Paid invoices cannot be deleted.")
async def delete_invoice(ctx: ToolContext, params: DeleteInvoiceInput) -> ToolResult:
    if not params.invoice_id and not params.invoice_number:
        return ToolResult.invalid(MISSING_INVOICE_REFERENCE)

    try:
        invoice_id = await _invoice_id_for(ctx, params.invoice_id, params.invoice_number)
    except DatastoreError:
        logger.exception("Failed to load invoice")
        return ToolResult.persistence_failure()
    if invoice_id is None:
        return ToolResult.not_found("Invoice")

    return await run_delete(
        ctx,
        INVOICE,
        invoice_id,
        confirmed=params.confirmed,
        version_token=params.version_token,
        guard=paid_invoice_guard,
        describe=lambda inv: _invoice_summary(ctx, inv),
    )


# =============================================================================
# Recurring schedules
# =============================================================================

class GetRecurringInput(ToolInput):
    is_active: Optional[bool] = Field(default=None, description="true=active only, false=paused only")


class ToggleRecurringInput(MutatingInput):
    recurring_id: str
    is_active: bool = Field(..., description="true=resume, false=pause")


class UpdateRecurringInput(MutatingInput):
    recurring_id: str
    frequency: Optional[Frequency] = None
    next_date: Optional[dt.date] = None
    end_date: Optional[dt.date] = None
    clear_end_date: bool = Field(default=False, description="Remove the end date")


class DeleteRecurringInput(MutatingInput):
    recurring_id: str


def _recurring_view(ctx: ToolContext, row: Dict[str, Any]) -> Dict[str, Any]:
    template = row.get("template_data") or {}
    return {
        "id": row["id"],
        "client": display_name(ctx, CLIENT, row.get("client_id")) or "Unknown",
        "frequency": row["frequency"],
        "nextDate": row["next_date"],
        "endDate": row.get("end_date"),
        "isActive": row["is_active"],
        "amount": template.get("total", 0),
        "currency": template.get("currency", "USD"),
    }


@tool("getRecurringInvoices", GetRecurringInput, "List recurring invoice schedules.")
async def get_recurring_invoices(ctx: ToolContext, params: GetRecurringInput) -> ToolResult:
    filters = {} if params.is_active is None else {"is_active": params.is_active}
    try:
        rows = ctx.store.find(RECURRING.table, ctx.owner_id, filters, order_by="next_date")
    except DatastoreError:
        logger.exception("Failed to fetch recurring invoices")
        return ToolResult.error("Failed to fetch recurring invoices", ErrorKind.PERSISTENCE_FAILURE)

    schedules = [_recurring_view(ctx, row) for row in rows]
    return ToolResult.success(
        f"Found {len(schedules)} recurring invoice(s).",
        result={
            "recurring": schedules,
            "count": len(schedules),
            "activeCount": sum(1 for s in schedules if s["isActive"]),
        },
    )


@tool("toggleRecurring", ToggleRecurringInput, "Pause (isActive=false) or resume (isActive=true) a recurring invoice.")
async def toggle_recurring(ctx: ToolContext, params: ToggleRecurringInput) -> ToolResult:
    result = await run_update(
        ctx,
        RECURRING,
        params.recurring_id,
        {"is_active": params.is_active},
        confirmed=params.confirmed,
        version_token=params.version_token,
    )
    if result.status == ToolStatus.APPLIED:
        result.message = "Recurring invoice resumed." if params.is_active else "Recurring invoice paused."
    return result


@tool("updateRecurring", UpdateRecurringInput, "Change a recurring schedule's frequency, next date, or end date.")
async def update_recurring(ctx: ToolContext, params: UpdateRecurringInput) -> ToolResult:
    if params.end_date and params.clear_end_date:
        return ToolResult.invalid("Provide either endDate or clearEndDate, not both.")

    end_date: Any = params.end_date.isoformat() if params.end_date else None
    if params.clear_end_date:
        end_date = CLEAR

    requested = {
        "frequency": params.frequency,
        "next_date": params.next_date.isoformat() if params.next_date else None,
        "end_date": end_date,
    }
    return await run_update(
        ctx,
        RECURRING,
        params.recurring_id,
        requested,
        confirmed=params.confirmed,
        version_token=params.version_token,
    )


@tool("deleteRecurring", DeleteRecurringInput, """
Cancel a recurring invoice schedule. Already-created invoices are kept. Preview first, then confirm.
""")
async def delete_recurring(ctx: ToolContext, params: DeleteRecurringInput) -> ToolResult:
    return await run_delete(
        ctx,
        RECURRING,
        params.recurring_id,
        confirmed=params.confirmed,
        version_token=params.version_token,
        describe=lambda row: _recurring_view(ctx, row),
    )


# =============================================================================
# Templates
# =============================================================================

class SaveAsTemplateInput(MutatingInput):
    invoice_id: Optional[str] = None
    invoice_number: Optional[str] = None
    template_name: str = Field(..., min_length=1)


class CreateFromTemplateInput(MutatingInput):
    template_id: str
    client_id: Optional[str] = None
    client_name: Optional[str] = None
    date: Optional[dt.date] = None


class UpdateTemplateInput(MutatingInput):
    template_id: str
    name: str = Field(..., min_length=1)


def _template_view(row: Dict[str, Any]) -> Dict[str, Any]:
    data = row.get("template_data") or {}
    return {
        "id": row["id"],
        "name": row["name"],
        "itemCount": len(data.get("items", [])),
        "total": data.get("total", 0),
        "currency": data.get("currency", "USD"),
    }


@tool("getInvoiceTemplates", ToolInput, "List saved invoice templates.")
async def get_invoice_templates(ctx: ToolContext, params: ToolInput) -> ToolResult:
    try:
        rows = ctx.store.find(TEMPLATE.table, ctx.owner_id, order_by="-created_at")
    except DatastoreError:
        logger.exception("Failed to fetch templates")
        return ToolResult.error("Failed to fetch templates", ErrorKind.PERSISTENCE_FAILURE)

    templates = [_template_view(row) for row in rows]
    return ToolResult.success(f"Found {len(templates)} template(s).", result={"templates": templates, "count": len(templates)})


@tool("saveAsTemplate", SaveAsTemplateInput, "Save an existing invoice's items and totals as a reusable template.")
async def save_as_template(ctx: ToolContext, params: SaveAsTemplateInput) -> ToolResult:
    if not params.invoice_id and not params.invoice_number:
        return ToolResult.invalid(MISSING_INVOICE_REFERENCE)

    try:
        invoice = _find_invoice(ctx, params.invoice_id, params.invoice_number)
        if invoice is None:
            return ToolResult.not_found("Invoice")
        items = ctx.store.find("invoice_items", ctx.owner_id, {"invoice_id": invoice["id"]}, order_by="sort_order")
    except DatastoreError:
        logger.exception("Failed to load invoice for template")
        return ToolResult.error("Failed to save template", ErrorKind.PERSISTENCE_FAILURE)

    template_data = {
        "items": [
            {k: item[k] for k in ("description", "quantity", "rate", "tax_rate", "net_amount", "tax_amount", "gross_amount")}
            for item in items
        ],
        "subtotal": invoice["subtotal"],
        "tax_amount": invoice["tax_amount"],
        "total": invoice["total"],
        "currency": invoice["currency"],
        "notes": invoice.get("notes"),
        "payment_terms": ctx.preferences.payment_terms,
    }
    record = {"name": params.template_name.strip(), "client_id": invoice.get("client_id"), "template_data": template_data}

    result = await run_create(
        ctx,
        TEMPLATE,
        record,
        confirmed=params.confirmed,
        preview={
            "name": record["name"],
            "fromInvoice": invoice["invoice_number"],
            "itemCount": len(items),
            "total": invoice["total"],
            "currency": invoice["currency"],
        },
    )
    if result.status == ToolStatus.APPLIED:
        result.message = f'Template "{record["name"]}" saved from invoice {invoice["invoice_number"]}!'
        result.result = _template_view(result.result)
    return result


@tool("createFromTemplate", CreateFromTemplateInput, """
Create a new invoice from a saved template for a client. Totals are recomputed from the template's items.
""")
async def create_from_template(ctx: ToolContext, params: CreateFromTemplateInput) -> ToolResult:
    try:
        template = ctx.store.get(TEMPLATE.table, params.template_id, ctx.owner_id)
    except DatastoreError:
        logger.exception("Failed to load template")
        return ToolResult.error("Failed to create invoice from template", ErrorKind.PERSISTENCE_FAILURE)
    if template is None:
        return ToolResult.not_found("Template")

    data = template.get("template_data") or {}
    if params.client_id or params.client_name:
        client = _resolve_client(ctx, params.client_id, params.client_name)
    else:
        client = _resolve_client(ctx, template.get("client_id"), None)

    prefs = ctx.preferences
    invoice_date = params.date or dt.date.today()
    payment_terms = data.get("payment_terms") or prefs.payment_terms
    due_date = invoice_date + dt.timedelta(days=payment_terms)
    currency = data.get("currency") or prefs.base_currency
    items, totals = price_items(data.get("items", []), prefs.default_tax_rate)

    if not items:
        return ToolResult.invalid(f'Template "{template["name"]}" has no line items.')

    if not params.confirmed:
        return ToolResult(
            status=ToolStatus.PREVIEW,
            message=f'Ready to create invoice from template "{template["name"]}". Say \'confirm\' to create!',
            preview={
                "templateName": template["name"],
                "client": client.preview(),
                "date": invoice_date.isoformat(),
                "dueDate": due_date.isoformat(),
                "items": [_item_view(i) for i in items],
                "subtotal": totals["subtotal"],
                "taxAmount": totals["tax_amount"],
                "total": totals["total"],
                "currency": currency,
            },
            warnings=[w for w in (client.warning("Client"),) if w] or None,
        )

    if not client.matched:
        return _unresolved_client(client)

    header = {
        "invoice_number": format_invoice_number(prefs),
        "client_id": client.id,
        "date": invoice_date.isoformat(),
        "due_date": due_date.isoformat(),
        "status": "draft",
        "currency": currency,
        "subtotal": totals["subtotal"],
        "tax_amount": totals["tax_amount"],
        "total": totals["total"],
        "amount_paid": 0.0,
        "balance_due": totals["total"],
        "notes": data.get("notes"),
    }
    try:
        saved, warnings = await _persist_invoice(ctx, header, items)
    except DatastoreError:
        logger.exception("Failed to create invoice from template")
        return ToolResult.persistence_failure()

    return ToolResult(
        status=ToolStatus.APPLIED,
        message=f'Invoice {saved["invoice_number"]} created from template "{template["name"]}"!',
        result={"id": saved["id"], "number": saved["invoice_number"], "total": saved["total"], "currency": currency},
        warnings=warnings or None,
    )


@tool("updateTemplate", UpdateTemplateInput, "Rename an invoice template.")
async def update_template(ctx: ToolContext, params: UpdateTemplateInput) -> ToolResult:
    return await run_update(
        ctx,
        TEMPLATE,
        params.template_id,
        {"name": params.name.strip()},
        confirmed=params.confirmed,
        version_token=params.version_token,
    )

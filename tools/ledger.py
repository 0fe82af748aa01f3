"""Money records (income and expenses).

Income and expenses share one shape: an amount with tax, a counter-party
(client for income, vendor for expenses), a category of the matching type,
and an optional project. ``LedgerKind`` captures the differences so both
tool families run the same code.
"""

from dataclasses import dataclass
from datetime import date, timedelta
from typing import Any, Dict, List, Optional, Tuple

from core.errors import DatastoreError, ErrorKind
from core.formatting import format_currency, format_date
from core.observability.logging import get_logger
from storage.entities import CATEGORY, CLIENT, EXPENSE, INCOME, PROJECT, VENDOR, EntityType
from tools.contract import ToolContext, ToolResult, ToolStatus, run_delete, run_update
from tools.money import compute_tax, round_money, sum_money
from tools.references import display_name, resolve_reference


logger = get_logger(__name__)


@dataclass(frozen=True)
class LedgerKind:
    entity: EntityType
    party: EntityType
    party_column: str
    category_type: str
    noun: str


INCOME_LEDGER = LedgerKind(
    entity=INCOME,
    party=CLIENT,
    party_column="client_id",
    category_type="income",
    noun="Income",
)

EXPENSE_LEDGER = LedgerKind(
    entity=EXPENSE,
    party=VENDOR,
    party_column="vendor_id",
    category_type="expense",
    noun="Expense",
)

PERIODS = ("today", "week", "month", "quarter", "year", "custom")


def period_range(
    period: str,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    today: Optional[date] = None,
) -> Tuple[date, date]:
    """Inclusive date range for a named reporting period."""
    today = today or date.today()

    if period == "today":
        return today, today
    if period == "week":
        return today - timedelta(days=7), today
    if period == "quarter":
        quarter_month = ((today.month - 1) // 3) * 3 + 1
        return today.replace(month=quarter_month, day=1), today
    if period == "year":
        return today.replace(month=1, day=1), today
    if period == "custom":
        return date_from or today, date_to or today
    return today.replace(day=1), today


# =============================================================================
# Add
# =============================================================================

async def add_record(
    ctx: ToolContext,
    kind: LedgerKind,
    params,
    party_id: Optional[str],
    party_name: Optional[str],
) -> ToolResult:
    prefs = ctx.preferences
    currency = params.currency or prefs.base_currency
    tax_rate = params.tax_rate if params.tax_rate is not None else prefs.default_tax_rate
    record_date = (params.date or date.today()).isoformat()

    party = resolve_reference(ctx, kind.party, party_id, party_name)
    category = resolve_reference(
        ctx, CATEGORY, params.category_id, params.category_name,
        filters={"type": kind.category_type},
    )

    warnings = [w for w in (party.warning(kind.party.label), category.warning("Category")) if w]

    project_id = params.project_id
    if project_id and ctx.store.get(PROJECT.table, project_id, ctx.owner_id) is None:
        warnings.append("Project not found. Will save without project.")
        project_id = None

    tax_amount, total_with_tax = compute_tax(params.amount, tax_rate)

    preview = {
        "amount": float(round_money(params.amount)),
        "currency": currency,
        "description": params.description,
        "date": record_date,
        "taxRate": tax_rate,
        "taxAmount": tax_amount,
        "totalWithTax": total_with_tax,
        kind.party.key: party.preview(),
        "category": category.preview(),
        "projectId": project_id,
    }

    if not params.confirmed:
        return ToolResult(
            status=ToolStatus.PREVIEW,
            message=f"Review the {kind.noun.lower()} details above. Say 'confirm' or 'save' to proceed.",
            preview=preview,
            warnings=warnings,
        )

    # Derived figures are recomputed here from the authoritative rate, never
    # taken from an earlier preview
    tax_amount, total_with_tax = compute_tax(params.amount, tax_rate)
    record = {
        "user_id": ctx.owner_id,
        "amount": float(round_money(params.amount)),
        "description": params.description,
        "date": record_date,
        "currency": currency,
        "tax_rate": tax_rate,
        "tax_amount": tax_amount,
        "total_with_tax": total_with_tax,
        kind.party_column: party.id,
        "category_id": category.id,
        "project_id": project_id,
        "notes": params.notes,
    }

    try:
        saved = ctx.store.insert(kind.entity.table, record)
    except DatastoreError:
        logger.exception(f"Failed to save {kind.noun.lower()} record")
        return ToolResult.persistence_failure()

    logger.info(
        f"{kind.noun} recorded",
        extra_fields={"record_id": saved["id"], "total_with_tax": total_with_tax},
    )
    return ToolResult(
        status=ToolStatus.APPLIED,
        message=f"{kind.noun} of {format_currency(total_with_tax, currency)} recorded successfully!",
        result={
            "id": saved["id"],
            "amount": format_currency(saved["amount"], currency),
            "totalWithTax": format_currency(total_with_tax, currency),
            "description": saved["description"],
            "date": format_date(saved["date"]),
            kind.party.key: party.name if party.matched else None,
            "category": category.name if category.matched else None,
        },
        warnings=warnings,
    )


# =============================================================================
# Read
# =============================================================================

def _row_view(ctx: ToolContext, kind: LedgerKind, row: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": row["id"],
        "amount": row["amount"],
        "currency": row["currency"],
        "taxRate": row["tax_rate"],
        "taxAmount": row["tax_amount"],
        "totalWithTax": row["total_with_tax"],
        "description": row["description"],
        "date": row["date"],
        kind.party.key: display_name(ctx, kind.party, row.get(kind.party_column)),
        "category": display_name(ctx, CATEGORY, row.get("category_id")),
        "projectId": row.get("project_id"),
    }


async def list_records(ctx: ToolContext, kind: LedgerKind, params, party_id: Optional[str]) -> ToolResult:
    filters: Dict[str, Any] = {}
    if params.date_from:
        filters["date__gte"] = params.date_from.isoformat()
    if params.date_to:
        filters["date__lte"] = params.date_to.isoformat()
    if party_id:
        filters[kind.party_column] = party_id
    if params.category_id:
        filters["category_id"] = params.category_id
    if params.project_id:
        filters["project_id"] = params.project_id

    try:
        rows = ctx.store.find(kind.entity.table, ctx.owner_id, filters, order_by="-date", limit=params.limit)
        matching = ctx.store.count(kind.entity.table, ctx.owner_id, filters)
    except DatastoreError:
        logger.exception(f"Failed to fetch {kind.noun.lower()} records")
        return ToolResult.error(f"Failed to fetch {kind.noun.lower()} records", ErrorKind.PERSISTENCE_FAILURE)

    return ToolResult.success(
        f"Found {len(rows)} {kind.noun.lower()} record(s).",
        result={
            "baseCurrency": ctx.preferences.base_currency,
            "records": [_row_view(ctx, kind, row) for row in rows],
            "summary": {
                "count": len(rows),
                "totalMatching": matching,
                "totalAmount": sum_money(r["amount"] for r in rows),
                "totalWithTax": sum_money(r["total_with_tax"] for r in rows),
            },
        },
    )


async def record_stats(ctx: ToolContext, kind: LedgerKind, params) -> ToolResult:
    start, end = period_range(params.period, params.date_from, params.date_to)

    try:
        rows = ctx.store.find(
            kind.entity.table,
            ctx.owner_id,
            {"date__gte": start.isoformat(), "date__lte": end.isoformat()},
        )
    except DatastoreError:
        logger.exception(f"Failed to fetch {kind.noun.lower()} stats")
        return ToolResult.error(f"Failed to calculate {kind.noun.lower()} stats", ErrorKind.PERSISTENCE_FAILURE)

    total_amount = sum_money(r["amount"] for r in rows)
    total_with_tax = sum_money(r["total_with_tax"] for r in rows)
    record_count = len(rows)

    breakdown = None
    group_by = params.group_by
    if group_by in (kind.party.key, "category"):
        if group_by == "category":
            entity, column, fallback = CATEGORY, "category_id", "Uncategorized"
        else:
            entity, column, fallback = kind.party, kind.party_column, f"No {kind.party.label}"

        totals: Dict[str, List[float]] = {}
        for row in rows:
            name = display_name(ctx, entity, row.get(column)) or fallback
            totals.setdefault(name, []).append(row["amount"])
        breakdown = sorted(
            ({"name": name, "amount": sum_money(amounts)} for name, amounts in totals.items()),
            key=lambda item: item["amount"],
            reverse=True,
        )

    return ToolResult.success(
        f"{kind.noun} from {start.isoformat()} to {end.isoformat()}: "
        f"{format_currency(total_with_tax, ctx.preferences.base_currency)} across {record_count} record(s).",
        result={
            "period": {"from": start.isoformat(), "to": end.isoformat()},
            "stats": {
                "totalAmount": total_amount,
                "totalWithTax": total_with_tax,
                "recordCount": record_count,
                "averagePerRecord": round(total_amount / record_count, 2) if record_count else 0,
            },
            "breakdown": breakdown,
        },
    )


# =============================================================================
# Update / delete
# =============================================================================

def derive_totals(current: Dict[str, Any], fields: Dict[str, Any]) -> Dict[str, Any]:
    """Recompute tax and total from the current rate and amount at apply time."""
    if "amount" not in fields and "tax_rate" not in fields:
        return {}
    amount = fields.get("amount", current["amount"])
    tax_rate = fields.get("tax_rate", current["tax_rate"])
    tax_amount, total_with_tax = compute_tax(amount, tax_rate)
    return {"amount": float(round_money(amount)), "tax_amount": tax_amount, "total_with_tax": total_with_tax}


async def update_record(
    ctx: ToolContext,
    kind: LedgerKind,
    record_id: str,
    params,
    party_id: Optional[str],
) -> ToolResult:
    for entity, ref_id in ((kind.party, party_id), (CATEGORY, params.category_id), (PROJECT, params.project_id)):
        if ref_id and ctx.store.get(entity.table, ref_id, ctx.owner_id) is None:
            return ToolResult.not_found(entity.label)

    requested = {
        "amount": params.amount,
        "description": params.description,
        "date": params.date.isoformat() if params.date else None,
        kind.party_column: party_id,
        "category_id": params.category_id,
        "project_id": params.project_id,
        "tax_rate": params.tax_rate,
    }
    return await run_update(
        ctx,
        kind.entity,
        record_id,
        requested,
        confirmed=params.confirmed,
        version_token=params.version_token,
        derive=derive_totals,
    )


async def delete_record(ctx: ToolContext, kind: LedgerKind, record_id: str, params) -> ToolResult:
    def describe(row: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "id": row["id"],
            "amount": format_currency(row["total_with_tax"], row["currency"]),
            "description": row["description"],
            "date": row["date"],
        }

    return await run_delete(
        ctx,
        kind.entity,
        record_id,
        confirmed=params.confirmed,
        version_token=params.version_token,
        describe=describe,
    )

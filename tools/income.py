"""Income tools.

Uses the owner's base currency and default tax rate from settings unless the
user explicitly overrides them.
"""

import datetime as dt
from typing import Literal, Optional

from pydantic import Field

from tools.contract import ToolContext, ToolResult
from tools.ledger import (
    INCOME_LEDGER,
    add_record,
    delete_record,
    list_records,
    record_stats,
    update_record,
)
from tools.registry import MutatingInput, ToolInput, tool


class AddIncomeInput(MutatingInput):
    amount: float = Field(..., gt=0, description="Income amount")
    description: str = Field(..., min_length=1, description="What the income is for")
    date: Optional[dt.date] = Field(default=None, description="Date (YYYY-MM-DD). Default: today")
    client_id: Optional[str] = Field(default=None, description="Client ID if already known")
    client_name: Optional[str] = Field(default=None, description="Client name, matched against existing clients")
    category_id: Optional[str] = None
    category_name: Optional[str] = Field(default=None, description="Category name, matched against income categories")
    project_id: Optional[str] = None
    currency: Optional[str] = Field(default=None, description="Override currency (only if the user asks)")
    tax_rate: Optional[float] = Field(default=None, ge=0, le=100, description="Override tax rate in percent")
    notes: Optional[str] = None


class GetIncomeInput(ToolInput):
    date_from: Optional[dt.date] = None
    date_to: Optional[dt.date] = None
    client_id: Optional[str] = None
    category_id: Optional[str] = None
    project_id: Optional[str] = None
    limit: int = Field(default=20, ge=1, le=500)


class IncomeStatsInput(ToolInput):
    period: Literal["today", "week", "month", "quarter", "year", "custom"] = "month"
    date_from: Optional[dt.date] = None
    date_to: Optional[dt.date] = None
    group_by: Literal["client", "category", "none"] = "none"


class UpdateIncomeInput(MutatingInput):
    income_id: str
    amount: Optional[float] = Field(default=None, gt=0)
    description: Optional[str] = None
    date: Optional[dt.date] = None
    client_id: Optional[str] = None
    category_id: Optional[str] = None
    project_id: Optional[str] = None
    tax_rate: Optional[float] = Field(default=None, ge=0, le=100)


class DeleteIncomeInput(MutatingInput):
    income_id: str


@tool("addIncome", AddIncomeInput, """
Record new income. Preview first (confirmed=false), save after the user confirms (confirmed=true).
Pass clientName / categoryName as free text; close matches are picked automatically and
anything ambiguous comes back as suggestions.
""")
async def add_income(ctx: ToolContext, params: AddIncomeInput) -> ToolResult:
    return await add_record(ctx, INCOME_LEDGER, params, params.client_id, params.client_name)


@tool("getIncome", GetIncomeInput, "Fetch income records with optional date, client, category and project filters.")
async def get_income(ctx: ToolContext, params: GetIncomeInput) -> ToolResult:
    return await list_records(ctx, INCOME_LEDGER, params, params.client_id)


@tool("getIncomeStats", IncomeStatsInput, """
Income totals for a period ("how much did I earn this month"), optionally broken down by client or category.
""")
async def get_income_stats(ctx: ToolContext, params: IncomeStatsInput) -> ToolResult:
    return await record_stats(ctx, INCOME_LEDGER, params)


@tool("updateIncome", UpdateIncomeInput, """
Update an income record. confirmed=false shows current vs new values; confirmed=true applies them.
Tax and total are recomputed from the amount and tax rate.
""")
async def update_income(ctx: ToolContext, params: UpdateIncomeInput) -> ToolResult:
    return await update_record(ctx, INCOME_LEDGER, params.income_id, params, params.client_id)


@tool("deleteIncome", DeleteIncomeInput, "Delete an income record. Preview first, then confirm.")
async def delete_income(ctx: ToolContext, params: DeleteIncomeInput) -> ToolResult:
    return await delete_record(ctx, INCOME_LEDGER, params.income_id, params)

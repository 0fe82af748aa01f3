"""Expense tools."""

import datetime as dt
from typing import Literal, Optional

from pydantic import Field

from tools.contract import ToolContext, ToolResult
from tools.ledger import (
    EXPENSE_LEDGER,
    add_record,
    delete_record,
    list_records,
    record_stats,
    update_record,
)
from tools.registry import MutatingInput, ToolInput, tool


class AddExpenseInput(MutatingInput):
    amount: float = Field(..., gt=0, description="Expense amount")
    description: str = Field(..., min_length=1)
    date: Optional[dt.date] = Field(default=None, description="Date (YYYY-MM-DD). Default: today")
    vendor_id: Optional[str] = None
    vendor_name: Optional[str] = Field(default=None, description="Vendor name, matched against existing vendors")
    category_id: Optional[str] = None
    category_name: Optional[str] = Field(default=None, description="Category name, matched against expense categories")
    project_id: Optional[str] = None
    currency: Optional[str] = None
    tax_rate: Optional[float] = Field(default=None, ge=0, le=100)
    notes: Optional[str] = None


class GetExpensesInput(ToolInput):
    date_from: Optional[dt.date] = None
    date_to: Optional[dt.date] = None
    vendor_id: Optional[str] = None
    category_id: Optional[str] = None
    project_id: Optional[str] = None
    limit: int = Field(default=20, ge=1, le=500)


class ExpenseStatsInput(ToolInput):
    period: Literal["today", "week", "month", "quarter", "year", "custom"] = "month"
    date_from: Optional[dt.date] = None
    date_to: Optional[dt.date] = None
    group_by: Literal["vendor", "category", "none"] = "none"


class UpdateExpenseInput(MutatingInput):
    expense_id: str
    amount: Optional[float] = Field(default=None, gt=0)
    description: Optional[str] = None
    date: Optional[dt.date] = None
    vendor_id: Optional[str] = None
    category_id: Optional[str] = None
    project_id: Optional[str] = None
    tax_rate: Optional[float] = Field(default=None, ge=0, le=100)


class DeleteExpenseInput(MutatingInput):
    expense_id: str


@tool("addExpense", AddExpenseInput, """
Record a new expense. Preview first (confirmed=false), save after the user confirms (confirmed=true).
""")
async def add_expense(ctx: ToolContext, params: AddExpenseInput) -> ToolResult:
    return await add_record(ctx, EXPENSE_LEDGER, params, params.vendor_id, params.vendor_name)


@tool("getExpenses", GetExpensesInput, "Fetch expense records with optional filters.")
async def get_expenses(ctx: ToolContext, params: GetExpensesInput) -> ToolResult:
    return await list_records(ctx, EXPENSE_LEDGER, params, params.vendor_id)


@tool("getExpenseStats", ExpenseStatsInput, "Expense totals for a period, optionally broken down by vendor or category.")
async def get_expense_stats(ctx: ToolContext, params: ExpenseStatsInput) -> ToolResult:
    return await record_stats(ctx, EXPENSE_LEDGER, params)


@tool("updateExpense", UpdateExpenseInput, "Update an expense record. Preview first, then confirm.")
async def update_expense(ctx: ToolContext, params: UpdateExpenseInput) -> ToolResult:
    return await update_record(ctx, EXPENSE_LEDGER, params.expense_id, params, params.vendor_id)


@tool("deleteExpense", DeleteExpenseInput, "Delete an expense record. Preview first, then confirm.")
async def delete_expense(ctx: ToolContext, params: DeleteExpenseInput) -> ToolResult:
    return await delete_record(ctx, EXPENSE_LEDGER, params.expense_id, params)

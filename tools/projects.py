"""Project tools.

Projects group milestones, goals (a todo checklist), time entries and an
activity log of notes. Income and expenses link to a project through
``project_id``, which is how the details view computes profit and budget use.
"""

import datetime as dt
from typing import Any, Dict, List, Literal, Optional

from pydantic import Field

from core.errors import DatastoreError, ErrorKind
from core.formatting import format_currency
from core.observability.logging import get_logger
from entity_resolver import resolve
from storage.entities import CLIENT, GOAL, INVOICE, MILESTONE, NOTE, PROJECT, TIME_ENTRY
from tools.contract import ToolContext, ToolResult, ToolStatus, run_create, run_delete, run_update
from tools.money import round_money, sum_money
from tools.references import display_name, resolve_reference
from tools.registry import MutatingInput, ToolInput, tool


logger = get_logger(__name__)

DEFAULT_PROJECT_COLOR = "#6366F1"

ProjectStatus = Literal["active", "completed", "on_hold", "cancelled"]
MilestoneStatus = Literal["pending", "in_progress", "completed", "paid"]
GoalStatus = Literal["todo", "in_progress", "done"]
NoteType = Literal["note", "meeting", "call", "email", "change_request", "other"]

COMPLETED_MILESTONE_STATUSES = ("completed", "paid")


def _iso(value: Optional[dt.date]) -> Optional[str]:
    return value.isoformat() if value else None


def _percent(part: float, whole: float) -> str:
    return f"{round(part / whole * 100) if whole > 0 else 0}%"


def _load_project(ctx: ToolContext, project_id: str) -> Optional[Dict[str, Any]]:
    return ctx.store.get(PROJECT.table, project_id, ctx.owner_id)


def project_view(ctx: ToolContext, row: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": row["id"],
        "name": row["name"],
        "description": row.get("description"),
        "status": row["status"],
        "client": display_name(ctx, CLIENT, row.get("client_id")),
        "budget": row.get("budget"),
        "currency": row.get("currency"),
        "hourlyRate": row.get("hourly_rate"),
        "startDate": row.get("start_date"),
        "endDate": row.get("end_date"),
        "color": row.get("color"),
    }


def time_summary(entries: List[Dict[str, Any]]) -> Dict[str, float]:
    total_hours = sum(float(e["hours"] or 0) for e in entries)
    billable = [e for e in entries if e["is_billable"]]
    billable_hours = sum(float(e["hours"] or 0) for e in billable)
    return {
        "totalHours": total_hours,
        "billableHours": billable_hours,
        "nonBillableHours": total_hours - billable_hours,
        "totalAmount": sum_money(e["amount"] for e in billable if e.get("amount") is not None),
    }


# =============================================================================
# Projects
# =============================================================================

class SearchProjectsInput(ToolInput):
    search_term: Optional[str] = Field(default=None, description="Project name to fuzzy-match; omit to list all")
    status: Literal["active", "completed", "on_hold", "cancelled", "all"] = "all"
    client_id: Optional[str] = None
    limit: int = Field(default=10, ge=1, le=100)


class ProjectLookupInput(ToolInput):
    project_id: Optional[str] = None
    project_name: Optional[str] = Field(default=None, description="Project name (will search)")


class CreateProjectInput(MutatingInput):
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    client_id: Optional[str] = None
    client_name: Optional[str] = None
    start_date: Optional[dt.date] = None
    end_date: Optional[dt.date] = None
    budget: Optional[float] = Field(default=None, ge=0)
    hourly_rate: Optional[float] = Field(default=None, ge=0)
    currency: Optional[str] = None
    color: Optional[str] = Field(default=None, description="Hex color, default #6366F1")


class UpdateProjectInput(MutatingInput):
    project_id: str
    name: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    status: Optional[ProjectStatus] = None
    client_id: Optional[str] = None
    start_date: Optional[dt.date] = None
    end_date: Optional[dt.date] = None
    budget: Optional[float] = Field(default=None, ge=0)
    hourly_rate: Optional[float] = Field(default=None, ge=0)
    color: Optional[str] = None


class DeleteProjectInput(MutatingInput):
    project_id: str


@tool("searchProjects", SearchProjectsInput, """
Find projects by name (fuzzy) or list them, filtered by status or client.
""")
async def search_projects(ctx: ToolContext, params: SearchProjectsInput) -> ToolResult:
    filters: Dict[str, Any] = {}
    if params.status != "all":
        filters["status"] = params.status
    if params.client_id:
        filters["client_id"] = params.client_id

    try:
        pool = ctx.resolver.load_pool(PROJECT.table, ctx.owner_id, filters)
    except DatastoreError:
        logger.exception("Failed to search projects")
        return ToolResult.error("Failed to search projects", ErrorKind.PERSISTENCE_FAILURE)

    if not pool:
        return ToolResult.success(
            "No projects found. Would you like to create one?",
            result={"projects": [], "count": 0},
        )

    if params.search_term:
        resolution = resolve(params.search_term, pool, limit=params.limit, config=ctx.resolver.config)
        projects = [{**project_view(ctx, c.record), "score": c.score} for c in resolution.suggestions]
    else:
        projects = [project_view(ctx, row) for row in pool[: params.limit]]

    message = (
        f"Found {len(projects)} project(s)."
        if projects else f'No projects matching "{params.search_term}".'
    )
    return ToolResult.success(message, result={"projects": projects, "count": len(projects)})


@tool("getProjectDetails", ProjectLookupInput, """
Full project summary: milestones, goals, time tracking, recent notes, income and expenses, profit and budget use.
""")
async def get_project_details(ctx: ToolContext, params: ProjectLookupInput) -> ToolResult:
    if not params.project_id and not params.project_name:
        return ToolResult.invalid("Please provide projectId or projectName")

    try:
        reference = resolve_reference(ctx, PROJECT, params.project_id, params.project_name)
        if not reference.matched:
            name = params.project_name or params.project_id
            return ToolResult.not_found(
                "Project",
                message=f'Project "{name}" not found',
                suggestions=reference.suggestions or None,
            )

        project = _load_project(ctx, reference.id)
        if project is None:
            return ToolResult.not_found("Project")

        scope = {"project_id": project["id"]}
        milestones = ctx.store.find(MILESTONE.table, ctx.owner_id, scope, order_by="due_date")
        goals = ctx.store.find(GOAL.table, ctx.owner_id, scope, order_by="created_at")
        entries = ctx.store.find(TIME_ENTRY.table, ctx.owner_id, scope)
        notes = ctx.store.find(NOTE.table, ctx.owner_id, scope, order_by="-date", limit=5)
        income = ctx.store.find("income", ctx.owner_id, scope)
        expenses = ctx.store.find("expenses", ctx.owner_id, scope)
    except DatastoreError:
        logger.exception("Failed to load project details")
        return ToolResult.error("Failed to load project details", ErrorKind.PERSISTENCE_FAILURE)

    total_income = sum_money(r["amount"] for r in income)
    total_expenses = sum_money(r["amount"] for r in expenses)
    profit = float(round_money(total_income - total_expenses))
    budget = float(project.get("budget") or 0)

    milestones_done = sum(1 for m in milestones if m["status"] in COMPLETED_MILESTONE_STATUSES)
    goals_done = sum(1 for g in goals if g["status"] == "done")

    return ToolResult.success(
        f"Project {project['name']}",
        result={
            "project": project_view(ctx, project),
            "stats": {
                "totalIncome": total_income,
                "totalExpenses": total_expenses,
                "profit": profit,
                "margin": _percent(profit, total_income),
                "budgetAmount": budget,
                "budgetUsed": _percent(total_expenses, budget),
                "budgetRemaining": float(round_money(budget - total_expenses)),
            },
            "milestones": {
                "total": len(milestones),
                "completed": milestones_done,
                "progress": _percent(milestones_done, len(milestones)),
                "items": [milestone_view(m) for m in milestones],
            },
            "goals": {
                "total": len(goals),
                "done": goals_done,
                "progress": _percent(goals_done, len(goals)),
                "items": [goal_view(g) for g in goals],
            },
            "timeTracking": time_summary(entries),
            "recentNotes": [note_view(n) for n in notes],
        },
    )


@tool("createProject", CreateProjectInput, """
Create a project, optionally for a client, with budget and dates. Preview first, then confirm.
""")
async def create_project(ctx: ToolContext, params: CreateProjectInput) -> ToolResult:
    if params.start_date and params.end_date and params.end_date <= params.start_date:
        return ToolResult.invalid("End date must be after start date")

    client = resolve_reference(ctx, CLIENT, params.client_id, params.client_name)
    warnings = [w for w in (client.warning("Client"),) if w]
    currency = params.currency or ctx.preferences.base_currency

    record = {
        "name": params.name.strip(),
        "description": params.description,
        "client_id": client.id,
        "status": "active",
        "start_date": _iso(params.start_date),
        "end_date": _iso(params.end_date),
        "budget": params.budget,
        "hourly_rate": params.hourly_rate,
        "currency": currency,
        "color": params.color or DEFAULT_PROJECT_COLOR,
    }
    preview = {
        "name": record["name"],
        "description": params.description or "No description",
        "client": client.preview(),
        "budget": format_currency(params.budget, currency) if params.budget is not None else "Not set",
        "hourlyRate": params.hourly_rate,
        "startDate": record["start_date"],
        "endDate": record["end_date"],
        "color": record["color"],
    }

    result = await run_create(ctx, PROJECT, record, confirmed=params.confirmed, preview=preview, warnings=warnings)
    if result.status == ToolStatus.EXISTS:
        result.message = f'Project "{record["name"]}" already exists'
    elif result.status == ToolStatus.APPLIED:
        result.message = f'Project "{record["name"]}" created!'
        result.result = project_view(ctx, result.result)
    return result


@tool("updateProject", UpdateProjectInput, """
Change a project's details or status (active, completed, on_hold, cancelled). Preview first, then confirm.
""")
async def update_project(ctx: ToolContext, params: UpdateProjectInput) -> ToolResult:
    if params.start_date and params.end_date and params.end_date <= params.start_date:
        return ToolResult.invalid("End date must be after start date")

    if params.client_id:
        try:
            client = ctx.store.get(CLIENT.table, params.client_id, ctx.owner_id)
        except DatastoreError:
            logger.exception("Failed to load client")
            return ToolResult.persistence_failure()
        if client is None:
            return ToolResult.not_found("Client")

    requested = {
        "name": params.name.strip() if params.name else None,
        "description": params.description,
        "status": params.status,
        "client_id": params.client_id,
        "start_date": _iso(params.start_date),
        "end_date": _iso(params.end_date),
        "budget": params.budget,
        "hourly_rate": params.hourly_rate,
        "color": params.color,
    }
    return await run_update(
        ctx,
        PROJECT,
        params.project_id,
        requested,
        confirmed=params.confirmed,
        version_token=params.version_token,
    )


@tool("deleteProject", DeleteProjectInput, """
Delete a project. Linked income and expenses are kept. Preview first, then confirm.
""")
async def delete_project(ctx: ToolContext, params: DeleteProjectInput) -> ToolResult:
    return await run_delete(
        ctx,
        PROJECT,
        params.project_id,
        confirmed=params.confirmed,
        version_token=params.version_token,
        describe=lambda row: project_view(ctx, row),
    )


# =============================================================================
# Milestones
# =============================================================================

class CreateMilestoneInput(MutatingInput):
    project_id: str
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    due_date: Optional[dt.date] = None
    amount: Optional[float] = Field(default=None, ge=0, description="Payment amount tied to this milestone")


class UpdateMilestoneInput(MutatingInput):
    milestone_id: str
    name: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    due_date: Optional[dt.date] = None
    amount: Optional[float] = Field(default=None, ge=0)
    status: Optional[MilestoneStatus] = None
    invoice_id: Optional[str] = Field(default=None, description="Link to the invoice billing this milestone")


class DeleteMilestoneInput(MutatingInput):
    milestone_id: str


def milestone_view(row: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": row["id"],
        "name": row["name"],
        "description": row.get("description"),
        "dueDate": row.get("due_date"),
        "amount": row.get("amount"),
        "status": row["status"],
        "completionDate": row.get("completion_date"),
        "invoiceId": row.get("invoice_id"),
    }


def stamp_completion(current: Dict[str, Any], fields: Dict[str, Any]) -> Dict[str, Any]:
    """First transition into a completed status records the completion date."""
    if fields.get("status") in COMPLETED_MILESTONE_STATUSES and not current.get("completion_date"):
        return {"completion_date": dt.date.today().isoformat()}
    return {}


async def _require_project(ctx: ToolContext, project_id: str) -> Optional[Dict[str, Any]]:
    try:
        return _load_project(ctx, project_id)
    except DatastoreError:
        logger.exception("Failed to load project", extra_fields={"project_id": project_id})
        raise


@tool("createMilestone", CreateMilestoneInput, "Add a milestone (deliverable with optional due date and payment) to a project.")
async def create_milestone(ctx: ToolContext, params: CreateMilestoneInput) -> ToolResult:
    try:
        project = await _require_project(ctx, params.project_id)
    except DatastoreError:
        return ToolResult.persistence_failure()
    if project is None:
        return ToolResult.not_found("Project")

    record = {
        "project_id": project["id"],
        "name": params.name.strip(),
        "description": params.description,
        "due_date": _iso(params.due_date),
        "amount": params.amount,
        "status": "pending",
    }
    preview = {
        "project": project["name"],
        "name": record["name"],
        "description": params.description or "No description",
        "dueDate": record["due_date"],
        "amount": format_currency(params.amount, project.get("currency") or "USD") if params.amount else None,
    }
    result = await run_create(ctx, MILESTONE, record, confirmed=params.confirmed, preview=preview, check_duplicate=False)
    if result.status == ToolStatus.APPLIED:
        result.message = f'Milestone "{record["name"]}" added to {project["name"]}!'
        result.result = milestone_view(result.result)
    return result


@tool("updateMilestone", UpdateMilestoneInput, """
Update a milestone. Status: pending -> in_progress -> completed -> paid. Preview first, then confirm.
""")
async def update_milestone(ctx: ToolContext, params: UpdateMilestoneInput) -> ToolResult:
    if params.invoice_id and ctx.store.get(INVOICE.table, params.invoice_id, ctx.owner_id) is None:
        return ToolResult.not_found(INVOICE.label)

    requested = {
        "name": params.name.strip() if params.name else None,
        "description": params.description,
        "due_date": _iso(params.due_date),
        "amount": params.amount,
        "status": params.status,
        "invoice_id": params.invoice_id,
    }
    return await run_update(
        ctx,
        MILESTONE,
        params.milestone_id,
        requested,
        confirmed=params.confirmed,
        version_token=params.version_token,
        derive=stamp_completion,
    )


@tool("deleteMilestone", DeleteMilestoneInput, "Delete a milestone from a project. Preview first, then confirm.")
async def delete_milestone(ctx: ToolContext, params: DeleteMilestoneInput) -> ToolResult:
    return await run_delete(
        ctx,
        MILESTONE,
        params.milestone_id,
        confirmed=params.confirmed,
        version_token=params.version_token,
        describe=milestone_view,
    )


# =============================================================================
# Goals
# =============================================================================

class CreateGoalInput(MutatingInput):
    project_id: str
    title: str = Field(..., min_length=1)
    description: Optional[str] = None
    target_date: Optional[dt.date] = None


class UpdateGoalInput(MutatingInput):
    goal_id: str
    title: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    status: Optional[GoalStatus] = None
    target_date: Optional[dt.date] = None


class DeleteGoalInput(MutatingInput):
    goal_id: str


def goal_view(row: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": row["id"],
        "title": row["title"],
        "description": row.get("description"),
        "status": row["status"],
        "targetDate": row.get("target_date"),
    }


@tool("createGoal", CreateGoalInput, "Add a goal (todo checklist item) to a project.")
async def create_goal(ctx: ToolContext, params: CreateGoalInput) -> ToolResult:
    try:
        project = await _require_project(ctx, params.project_id)
    except DatastoreError:
        return ToolResult.persistence_failure()
    if project is None:
        return ToolResult.not_found("Project")

    record = {
        "project_id": project["id"],
        "title": params.title.strip(),
        "description": params.description,
        "status": "todo",
        "target_date": _iso(params.target_date),
    }
    preview = {
        "project": project["name"],
        "title": record["title"],
        "description": params.description or "No description",
        "targetDate": record["target_date"],
    }
    result = await run_create(ctx, GOAL, record, confirmed=params.confirmed, preview=preview, check_duplicate=False)
    if result.status == ToolStatus.APPLIED:
        result.message = f'Goal "{record["title"]}" added to {project["name"]}!'
        result.result = goal_view(result.result)
    return result


@tool("updateGoal", UpdateGoalInput, "Update a goal's title or status (todo -> in_progress -> done).")
async def update_goal(ctx: ToolContext, params: UpdateGoalInput) -> ToolResult:
    requested = {
        "title": params.title.strip() if params.title else None,
        "description": params.description,
        "status": params.status,
        "target_date": _iso(params.target_date),
    }
    return await run_update(
        ctx,
        GOAL,
        params.goal_id,
        requested,
        confirmed=params.confirmed,
        version_token=params.version_token,
    )


@tool("deleteGoal", DeleteGoalInput, "Delete a goal from a project. Preview first, then confirm.")
async def delete_goal(ctx: ToolContext, params: DeleteGoalInput) -> ToolResult:
    return await run_delete(
        ctx,
        GOAL,
        params.goal_id,
        confirmed=params.confirmed,
        version_token=params.version_token,
        describe=goal_view,
    )


# =============================================================================
# Time tracking
# =============================================================================

class LogTimeInput(MutatingInput):
    project_id: str
    date: Optional[dt.date] = Field(default=None, description="Date worked, default today")
    hours: float = Field(..., gt=0, le=24, description="Hours worked (e.g. 2.5)")
    description: Optional[str] = None
    billable: bool = True
    hourly_rate: Optional[float] = Field(default=None, ge=0, description="Defaults to the project's hourly rate")
    milestone_id: Optional[str] = None


class GetTimeEntriesInput(ToolInput):
    project_id: str
    date_from: Optional[dt.date] = None
    date_to: Optional[dt.date] = None
    billable_only: bool = False
    limit: int = Field(default=20, ge=1, le=500)


class DeleteTimeEntryInput(MutatingInput):
    time_entry_id: str


def time_entry_view(row: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": row["id"],
        "date": row["date"],
        "hours": row["hours"],
        "description": row.get("description"),
        "billable": row["is_billable"],
        "hourlyRate": row.get("hourly_rate"),
        "amount": row.get("amount"),
    }


@tool("logTime", LogTimeInput, "Log hours worked on a project, billable or not. Preview first, then confirm.")
async def log_time(ctx: ToolContext, params: LogTimeInput) -> ToolResult:
    try:
        project = await _require_project(ctx, params.project_id)
    except DatastoreError:
        return ToolResult.persistence_failure()
    if project is None:
        return ToolResult.not_found("Project")
    if params.milestone_id:
        milestone = ctx.store.get(MILESTONE.table, params.milestone_id, ctx.owner_id)
        if milestone is None or milestone["project_id"] != project["id"]:
            return ToolResult.not_found(MILESTONE.label)

    rate = params.hourly_rate if params.hourly_rate is not None else project.get("hourly_rate")
    amount = float(round_money(params.hours * rate)) if params.billable and rate is not None else None
    currency = project.get("currency") or "USD"

    record = {
        "project_id": project["id"],
        "milestone_id": params.milestone_id,
        "date": (params.date or dt.date.today()).isoformat(),
        "hours": params.hours,
        "description": params.description,
        "is_billable": params.billable,
        "hourly_rate": rate,
        "amount": amount,
    }
    preview = {
        "project": project["name"],
        "date": record["date"],
        "hours": params.hours,
        "description": params.description or "No description",
        "billable": "Yes" if params.billable else "No",
        "hourlyRate": rate,
        "amount": format_currency(amount, currency) if amount is not None else "N/A",
    }
    result = await run_create(ctx, TIME_ENTRY, record, confirmed=params.confirmed, preview=preview, check_duplicate=False)
    if result.status == ToolStatus.APPLIED:
        result.message = f"Logged {params.hours:g} hours on {project['name']}!"
        result.result = time_entry_view(result.result)
    return result


@tool("getTimeEntries", GetTimeEntriesInput, "List time entries for a project with totals.")
async def get_time_entries(ctx: ToolContext, params: GetTimeEntriesInput) -> ToolResult:
    filters: Dict[str, Any] = {"project_id": params.project_id}
    if params.date_from:
        filters["date__gte"] = params.date_from.isoformat()
    if params.date_to:
        filters["date__lte"] = params.date_to.isoformat()
    if params.billable_only:
        filters["is_billable"] = True

    try:
        entries = ctx.store.find(TIME_ENTRY.table, ctx.owner_id, filters, order_by="-date", limit=params.limit)
    except DatastoreError:
        logger.exception("Failed to fetch time entries")
        return ToolResult.error("Failed to fetch time entries", ErrorKind.PERSISTENCE_FAILURE)

    summary = time_summary(entries)
    return ToolResult.success(
        f"{len(entries)} time entr{'y' if len(entries) == 1 else 'ies'}, {summary['totalHours']:g} hours.",
        result={"entries": [time_entry_view(e) for e in entries], "summary": summary},
    )


@tool("deleteTimeEntry", DeleteTimeEntryInput, "Delete a time entry. Preview first, then confirm.")
async def delete_time_entry(ctx: ToolContext, params: DeleteTimeEntryInput) -> ToolResult:
    return await run_delete(
        ctx,
        TIME_ENTRY,
        params.time_entry_id,
        confirmed=params.confirmed,
        version_token=params.version_token,
        describe=time_entry_view,
    )


# =============================================================================
# Notes / activity log
# =============================================================================

class AddProjectNoteInput(MutatingInput):
    project_id: str
    type: NoteType = "note"
    title: str = Field(..., min_length=1)
    content: Optional[str] = None
    date: Optional[dt.date] = None


class GetProjectNotesInput(ToolInput):
    project_id: str
    type: Optional[NoteType] = None
    limit: int = Field(default=10, ge=1, le=100)


class DeleteProjectNoteInput(MutatingInput):
    note_id: str


def note_view(row: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": row["id"],
        "type": row["note_type"],
        "title": row["title"],
        "content": row.get("content"),
        "date": row["date"],
    }


@tool("addProjectNote", AddProjectNoteInput, """
Add a note or activity (meeting, call, email, change_request, other) to a project's log.
""")
async def add_project_note(ctx: ToolContext, params: AddProjectNoteInput) -> ToolResult:
    try:
        project = await _require_project(ctx, params.project_id)
    except DatastoreError:
        return ToolResult.persistence_failure()
    if project is None:
        return ToolResult.not_found("Project")

    record = {
        "project_id": project["id"],
        "note_type": params.type,
        "title": params.title.strip(),
        "content": params.content,
        "date": (params.date or dt.date.today()).isoformat(),
    }
    preview = {
        "project": project["name"],
        "type": params.type,
        "title": record["title"],
        "content": params.content or "No content",
        "date": record["date"],
    }
    result = await run_create(ctx, NOTE, record, confirmed=params.confirmed, preview=preview, check_duplicate=False)
    if result.status == ToolStatus.APPLIED:
        label = params.type.replace("_", " ").capitalize()
        result.message = f"{label} added to {project['name']}!"
        result.result = note_view(result.result)
    return result


@tool("getProjectNotes", GetProjectNotesInput, "Get a project's notes and activity log, newest first.")
async def get_project_notes(ctx: ToolContext, params: GetProjectNotesInput) -> ToolResult:
    filters: Dict[str, Any] = {"project_id": params.project_id}
    if params.type:
        filters["note_type"] = params.type

    try:
        notes = ctx.store.find(NOTE.table, ctx.owner_id, filters, order_by="-date", limit=params.limit)
    except DatastoreError:
        logger.exception("Failed to fetch project notes")
        return ToolResult.error("Failed to fetch project notes", ErrorKind.PERSISTENCE_FAILURE)

    return ToolResult.success(
        f"{len(notes)} note(s).",
        result={"notes": [note_view(n) for n in notes], "total": len(notes)},
    )


@tool("deleteProjectNote", DeleteProjectNoteInput, "Delete a project note. Preview first, then confirm.")
async def delete_project_note(ctx: ToolContext, params: DeleteProjectNoteInput) -> ToolResult:
    return await run_delete(
        ctx,
        NOTE,
        params.note_id,
        confirmed=params.confirmed,
        version_token=params.version_token,
        describe=note_view,
    )

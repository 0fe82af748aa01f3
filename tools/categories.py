"""Category tools.

Categories are typed (income / expense); names are unique per owner and type.
"""

from typing import Any, Dict, Literal, Optional

from pydantic import Field

from core.errors import DatastoreError, ErrorKind
from core.observability.logging import get_logger
from entity_resolver import resolve
from storage.entities import CATEGORY
from tools.contract import ToolContext, ToolResult, run_create, run_delete, run_update
from tools.registry import MutatingInput, ToolInput, tool


logger = get_logger(__name__)


class GetCategoriesInput(ToolInput):
    type: Literal["income", "expense", "all"] = "all"
    search_term: Optional[str] = Field(default=None, description="Optional name to fuzzy-match")


class AddCategoryInput(MutatingInput):
    name: str = Field(..., min_length=1)
    type: Literal["income", "expense"]
    color: Optional[str] = Field(default=None, description="Color code (hex)")
    description: Optional[str] = None


class UpdateCategoryInput(MutatingInput):
    category_id: str
    name: Optional[str] = Field(default=None, min_length=1)
    color: Optional[str] = None
    description: Optional[str] = None


class DeleteCategoryInput(MutatingInput):
    category_id: str


def category_view(record: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": record["id"],
        "name": record["name"],
        "type": record["type"],
        "color": record.get("color"),
    }


@tool("getCategories", GetCategoriesInput, """
List the user's categories, optionally by type. With searchTerm, returns fuzzy matches ranked by score.
""")
async def get_categories(ctx: ToolContext, params: GetCategoriesInput) -> ToolResult:
    filters = {} if params.type == "all" else {"type": params.type}
    try:
        rows = ctx.store.find(CATEGORY.table, ctx.owner_id, filters, order_by="name")
    except DatastoreError:
        logger.exception("Failed to fetch categories")
        return ToolResult.error("Failed to fetch categories", ErrorKind.PERSISTENCE_FAILURE)

    if params.search_term:
        resolution = resolve(params.search_term, rows, limit=len(rows) or None)
        categories = [{**category_view(c.record), "score": c.score} for c in resolution.suggestions]
    else:
        categories = [category_view(row) for row in rows]

    return ToolResult.success(
        f"Found {len(categories)} categor{'y' if len(categories) == 1 else 'ies'}.",
        result={"categories": categories, "count": len(categories)},
    )


@tool("addCategory", AddCategoryInput, """
Create an income or expense category. Returns status 'exists' when one with that name and type exists.
""")
async def add_category(ctx: ToolContext, params: AddCategoryInput) -> ToolResult:
    record = {
        "name": params.name.strip(),
        "type": params.type,
        "color": params.color,
        "description": params.description,
    }
    return await run_create(ctx, CATEGORY, record, confirmed=params.confirmed)


@tool("updateCategory", UpdateCategoryInput, "Rename or recolor a category. Preview first, then confirm.")
async def update_category(ctx: ToolContext, params: UpdateCategoryInput) -> ToolResult:
    requested = {
        "name": params.name.strip() if params.name else None,
        "color": params.color,
        "description": params.description,
    }
    return await run_update(
        ctx,
        CATEGORY,
        params.category_id,
        requested,
        confirmed=params.confirmed,
        version_token=params.version_token,
    )


@tool("deleteCategory", DeleteCategoryInput, "Delete a category. Preview first, then confirm.")
async def delete_category(ctx: ToolContext, params: DeleteCategoryInput) -> ToolResult:
    return await run_delete(
        ctx,
        CATEGORY,
        params.category_id,
        confirmed=params.confirmed,
        version_token=params.version_token,
        describe=category_view,
    )

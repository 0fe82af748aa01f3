"""Parties (clients and vendors).

Both kinds carry name, company name, email, phone and address, and are
searched the same way, so the tool families share these handlers.
"""

from typing import Any, Dict, Optional

from pydantic import Field

from core.errors import DatastoreError, ErrorKind
from core.observability.logging import get_logger
from entity_resolver import resolve
from storage.entities import EntityType
from tools.contract import ToolContext, ToolResult, run_create, run_delete, run_update
from tools.registry import MutatingInput, ToolInput


logger = get_logger(__name__)

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


class SearchPartyInput(ToolInput):
    search_term: str = Field(..., description="Name, email, phone, company, or any identifying info")
    limit: int = Field(default=5, ge=1, le=50)


class AddPartyInput(MutatingInput):
    name: str = Field(..., min_length=1)
    email: Optional[str] = Field(default=None, pattern=EMAIL_PATTERN)
    phone: Optional[str] = None
    company_name: Optional[str] = Field(default=None, description="Company name if different from the name")
    address: Optional[str] = None
    notes: Optional[str] = None


class UpdatePartyFields(MutatingInput):
    name: Optional[str] = Field(default=None, min_length=1)
    email: Optional[str] = Field(default=None, pattern=EMAIL_PATTERN)
    phone: Optional[str] = None
    company_name: Optional[str] = None
    address: Optional[str] = None
    notes: Optional[str] = None


def party_view(record: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": record["id"],
        "name": record["name"],
        "email": record.get("email"),
        "phone": record.get("phone"),
        "companyName": record.get("company_name"),
        "address": record.get("address"),
        "createdAt": record.get("created_at"),
    }


async def search_parties(ctx: ToolContext, entity: EntityType, params: SearchPartyInput) -> ToolResult:
    plural = f"{entity.label.lower()}s"
    try:
        pool = ctx.resolver.load_pool(entity.table, ctx.owner_id)
    except DatastoreError:
        logger.exception(f"Failed to search {plural}")
        return ToolResult.error(f"Failed to search {plural}", ErrorKind.PERSISTENCE_FAILURE)

    if not pool:
        return ToolResult.success(
            f"No {plural} found. Would you like to create one?",
            result={"matches": [], "searchType": "name"},
        )

    resolution = resolve(
        params.search_term,
        pool,
        limit=params.limit,
        secondary_fields=entity.secondary_fields,
        address_field=entity.address_field,
        config=ctx.resolver.config,
    )

    matches = [
        {**party_view(c.record), "score": c.score, "matchedOn": c.matched_field}
        for c in resolution.suggestions
    ]

    if not matches:
        return ToolResult.success(
            f'No {plural} matching "{params.search_term}". Would you like to create a new {entity.label.lower()}?',
            result={"matches": [], "searchType": resolution.search_type.value},
        )

    best = matches[0] if matches[0]["score"] >= ctx.resolver.config.best_match_threshold else None
    return ToolResult.success(
        f"Found {len(matches)} matching {plural}.",
        result={
            "matches": matches,
            "searchType": resolution.search_type.value,
            "bestMatch": best,
            "selected": resolution.selected.id if resolution.selected else None,
        },
    )


async def add_party(ctx: ToolContext, entity: EntityType, params: AddPartyInput) -> ToolResult:
    record = {
        "name": params.name.strip(),
        "email": str(params.email) if params.email else None,
        "phone": params.phone,
        "company_name": params.company_name,
        "address": params.address,
        "notes": params.notes,
    }
    return await run_create(ctx, entity, record, confirmed=params.confirmed)


async def get_party(ctx: ToolContext, entity: EntityType, record_id: str) -> ToolResult:
    try:
        record = ctx.store.get(entity.table, record_id, ctx.owner_id)
    except DatastoreError:
        logger.exception(f"Failed to get {entity.label.lower()}")
        return ToolResult.error(f"Failed to get {entity.label.lower()}", ErrorKind.PERSISTENCE_FAILURE)

    if record is None:
        return ToolResult.not_found(entity.label)
    return ToolResult.success(f"{entity.label}: {record['name']}", result=party_view(record))


async def update_party(
    ctx: ToolContext,
    entity: EntityType,
    record_id: str,
    params: UpdatePartyFields,
) -> ToolResult:
    requested = {
        "name": params.name.strip() if params.name else None,
        "email": str(params.email) if params.email else None,
        "phone": params.phone,
        "company_name": params.company_name,
        "address": params.address,
        "notes": params.notes,
    }
    return await run_update(
        ctx,
        entity,
        record_id,
        requested,
        confirmed=params.confirmed,
        version_token=params.version_token,
    )


async def delete_party(ctx: ToolContext, entity: EntityType, record_id: str, params: MutatingInput) -> ToolResult:
    return await run_delete(
        ctx,
        entity,
        record_id,
        confirmed=params.confirmed,
        version_token=params.version_token,
        describe=party_view,
    )

"""Resolution of entity references supplied by the model.

A tool may receive a reference either as an id (``clientId``) or as free
text (``clientName``). ``resolve_reference`` turns either form into a
``Reference`` carrying the chosen id (if any) and the preview fragment shown
to the user:

    {"id": ..., "name": ..., "matched": true}
    {"name": ..., "matched": false, "suggestions": [{id, name, score}, ...]}
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from storage.entities import EntityType
from tools.contract import ToolContext


class Reference(BaseModel):
    """Outcome of resolving one entity reference."""
    id: Optional[str] = None
    name: Optional[str] = None
    matched: bool = False
    supplied: bool = False
    suggestions: List[Dict[str, Any]] = Field(default_factory=list)

    def preview(self) -> Optional[Dict[str, Any]]:
        if not self.supplied:
            return None
        if self.matched:
            return {"id": self.id, "name": self.name, "matched": True}
        return {"name": self.name, "matched": False, "suggestions": self.suggestions}

    def warning(self, label: str) -> Optional[str]:
        if not self.supplied or self.matched:
            return None
        if self.suggestions:
            return f'{label} "{self.name}" not found exactly. Suggestions available.'
        return f'{label} "{self.name}" not found. Will save without {label.lower()} or create new.'


def resolve_reference(
    ctx: ToolContext,
    entity: EntityType,
    ref_id: Optional[str] = None,
    ref_name: Optional[str] = None,
    filters: Optional[Dict[str, Any]] = None,
) -> Reference:
    """Resolve an id or a free-text name to one of the owner's records."""
    if ref_id:
        record = ctx.store.get(entity.table, ref_id, ctx.owner_id)
        if record is None:
            return Reference(name=ref_id, supplied=True)
        return Reference(id=record["id"], name=record.get(entity.name_field), matched=True, supplied=True)

    if not ref_name:
        return Reference()

    resolution = ctx.resolver.resolve_in(
        entity.table,
        ref_name,
        ctx.owner_id,
        filters=filters,
        name_field=entity.name_field,
        secondary_fields=entity.secondary_fields,
        address_field=entity.address_field,
    )

    if resolution.is_resolved:
        chosen = resolution.selected
        return Reference(id=chosen.id, name=chosen.name, matched=True, supplied=True)

    return Reference(
        name=ref_name,
        supplied=True,
        suggestions=[c.summary() for c in resolution.suggestions],
    )


def display_name(ctx: ToolContext, entity: EntityType, record_id: Optional[str]) -> Optional[str]:
    """Name of a referenced record for list output, or None."""
    if not record_id:
        return None
    record = ctx.store.get(entity.table, record_id, ctx.owner_id, include_deleted=True)
    return record.get(entity.name_field) if record else None

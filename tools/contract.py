"""Tool Contract - the preview/confirm protocol shared by every mutating tool.

States:
    PREVIEW     confirmed=false; nothing is written
    APPLIED     confirmed=true and the change set is non-empty
    NOT_FOUND   target absent, deleted, or owned by someone else
    BLOCKED     a domain guard refused the operation (e.g. paid invoice)
    NO_CHANGES  requested values equal the current ones
    EXISTS      creation short-circuited by the duplicate-name guard
    ERROR       validation, persistence, or upstream failure

Every outcome is a ``ToolResult`` value. Nothing in this module raises
across the tool boundary; ``DatastoreError`` is translated into an error
result with a generic message.

Usage:
    result = await run_update(
        ctx, INVOICE, invoice_id,
        requested={"notes": "Net 15"},
        confirmed=False,
        guard=paid_invoice_guard,
    )
"""

import hashlib
import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from core.config import AppSettings, get_settings
from core.errors import DatastoreError, ErrorKind
from core.observability.logging import get_logger
from entity_resolver import EntityResolver
from storage.db import Datastore
from storage.entities import EntityType, SoftDeletable, UniqueByOwnerAndName
from storage.owners import UserPreferences, get_user_preferences


logger = get_logger(__name__)

PERSISTENCE_FAILURE_MESSAGE = "Could not save your changes. Please try again."
RECORD_CHANGED_MESSAGE = "Record changed since preview"


# =============================================================================
# Result model
# =============================================================================

class ToolStatus(str, Enum):
    PREVIEW = "preview"
    APPLIED = "applied"
    SUCCESS = "success"
    NOT_FOUND = "not_found"
    BLOCKED = "blocked"
    NO_CHANGES = "no_changes"
    EXISTS = "exists"
    ERROR = "error"


class ToolResult(BaseModel):
    """Tagged result returned by every tool.

    Serialized with camelCase keys and without empty fields; see ``to_payload``.
    """
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    status: ToolStatus
    message: str
    preview: Optional[Dict[str, Any]] = None
    changes: Optional[Dict[str, Dict[str, Any]]] = None
    result: Optional[Any] = None
    warnings: Optional[List[str]] = None
    version_token: Optional[str] = None
    reason: Optional[str] = None
    suggestion: Optional[str] = None
    suggestions: Optional[List[Dict[str, Any]]] = None
    existing: Optional[Dict[str, Any]] = None
    error_kind: Optional[ErrorKind] = None
    errors: Optional[List[Dict[str, Any]]] = None

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    @property
    def ok(self) -> bool:
        return self.status in (ToolStatus.PREVIEW, ToolStatus.APPLIED, ToolStatus.SUCCESS)

    # -------------------------------------------------------------------------
    # Constructors
    # -------------------------------------------------------------------------

    @classmethod
    def success(cls, message: str, result: Any = None, **kwargs) -> "ToolResult":
        return cls(status=ToolStatus.SUCCESS, message=message, result=result, **kwargs)

    @classmethod
    def not_found(cls, label: str, message: Optional[str] = None, **kwargs) -> "ToolResult":
        return cls(
            status=ToolStatus.NOT_FOUND,
            message=message or f"{label} not found",
            error_kind=ErrorKind.NOT_FOUND,
            **kwargs,
        )

    @classmethod
    def blocked(cls, message: str, reason: Optional[str] = None, suggestion: Optional[str] = None) -> "ToolResult":
        return cls(
            status=ToolStatus.BLOCKED,
            message=message,
            reason=reason or message,
            suggestion=suggestion,
            error_kind=ErrorKind.BLOCKED,
        )

    @classmethod
    def no_changes(cls, message: str = "No changes to apply. Values are the same as current.") -> "ToolResult":
        return cls(status=ToolStatus.NO_CHANGES, message=message, error_kind=ErrorKind.NO_CHANGES)

    @classmethod
    def exists(cls, label: str, record: Dict[str, Any]) -> "ToolResult":
        name = record.get("name") or record.get("title") or ""
        return cls(
            status=ToolStatus.EXISTS,
            message=f'{label} "{name}" already exists.',
            existing=record,
        )

    @classmethod
    def error(cls, message: str, kind: ErrorKind = ErrorKind.INTERNAL, **kwargs) -> "ToolResult":
        return cls(status=ToolStatus.ERROR, message=message, error_kind=kind, **kwargs)

    @classmethod
    def invalid(cls, message: str) -> "ToolResult":
        return cls.error(message, ErrorKind.VALIDATION_FAILURE)

    @classmethod
    def persistence_failure(cls) -> "ToolResult":
        return cls.error(PERSISTENCE_FAILURE_MESSAGE, ErrorKind.PERSISTENCE_FAILURE)


# =============================================================================
# Execution context
# =============================================================================

@dataclass
class ToolContext:
    """Everything a tool handler may touch.

    ``owner_id`` is the effective owner resolved by the dispatcher; tools scope
    every datastore call with it and never re-derive it.
    """
    store: Datastore
    user_id: str
    owner_id: str
    settings: AppSettings = field(default_factory=get_settings)
    email_client: Any = None
    _preferences: Optional[UserPreferences] = field(default=None, repr=False)
    _resolver: Optional[EntityResolver] = field(default=None, repr=False)

    @property
    def preferences(self) -> UserPreferences:
        if self._preferences is None:
            self._preferences = get_user_preferences(self.store, self.owner_id)
        return self._preferences

    @property
    def resolver(self) -> EntityResolver:
        if self._resolver is None:
            self._resolver = EntityResolver(self.store)
        return self._resolver


# =============================================================================
# Diff and version token
# =============================================================================

class _ClearValue:
    """Requested value meaning "set this column to NULL"."""

    def __repr__(self) -> str:
        return "CLEAR"


CLEAR = _ClearValue()


def _normalize(value: Any) -> Any:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return round(float(value), 6)
    return value


def compute_diff(current: Dict[str, Any], requested: Dict[str, Any]) -> Dict[str, Dict[str, Any]]:
    """Field-by-field change set.

    ``None`` in ``requested`` means "not supplied"; ``CLEAR`` explicitly nulls a column.
    """
    changes = {}
    for column, new_value in requested.items():
        if new_value is None:
            continue
        old_value = current.get(column)
        if new_value is CLEAR:
            if old_value is not None:
                changes[column] = {"old": old_value, "new": None}
            continue
        if _normalize(old_value) != _normalize(new_value):
            changes[column] = {"old": old_value, "new": new_value}
    return changes


def compute_version_token(record: Dict[str, Any]) -> str:
    """Stable hash of a loaded row; any change to the row changes the token."""
    encoded = json.dumps(record, sort_keys=True, default=str).encode("utf-8")
    return hashlib.sha256(encoded).hexdigest()[:16]


def camelize_changes(changes: Dict[str, Dict[str, Any]]) -> Dict[str, Dict[str, Any]]:
    return {to_camel(column): change for column, change in changes.items()}


# =============================================================================
# Generic protocol runners
# =============================================================================

Guard = Callable[[Dict[str, Any]], Optional[ToolResult]]
Derive = Callable[[Dict[str, Any], Dict[str, Any]], Dict[str, Any]]


async def run_update(
    ctx: ToolContext,
    entity: EntityType,
    record_id: str,
    requested: Dict[str, Any],
    confirmed: bool,
    version_token: Optional[str] = None,
    guard: Optional[Guard] = None,
    derive: Optional[Derive] = None,
    on_applied: Optional[Callable[[Dict[str, Any]], Awaitable[None]]] = None,
) -> ToolResult:
    """Load, guard, diff, then preview or apply.

    Args:
        requested: column -> new value; None values are ignored (no implicit nulling)
        guard: returns a BLOCKED result to refuse the edit
        derive: computes dependent columns (tax, totals) from the current row and
            the new values at apply time
        version_token: when supplied on apply, must match the token of the row
            as loaded now
    """
    try:
        current = SoftDeletable(entity, ctx.store).load(record_id, ctx.owner_id)
        if current is None:
            return ToolResult.not_found(entity.label)

        if guard:
            refusal = guard(current)
            if refusal is not None:
                return refusal

        changes = compute_diff(current, requested)
        if not changes:
            return ToolResult.no_changes()

        token = compute_version_token(current)
        current_view = {to_camel(k): current.get(k) for k in entity.editable_fields if k in current}

        if not confirmed:
            return ToolResult(
                status=ToolStatus.PREVIEW,
                message="Review the changes above. Say 'confirm' to apply.",
                preview={"id": current["id"], "current": current_view, "changes": camelize_changes(changes)},
                changes=camelize_changes(changes),
                version_token=token,
            )

        if version_token and version_token != token:
            return ToolResult.blocked(
                RECORD_CHANGED_MESSAGE,
                suggestion="Preview the change again before confirming.",
            )

        fields = {column: change["new"] for column, change in changes.items()}
        if derive:
            fields.update(derive(current, fields))

        updated = ctx.store.update(entity.table, record_id, ctx.owner_id, fields)
        if updated is None:
            return ToolResult.not_found(entity.label)

        if on_applied:
            await on_applied(updated)

        logger.info(
            f"{entity.label} updated",
            extra_fields={"record_id": record_id, "fields": sorted(fields)},
        )
        return ToolResult(
            status=ToolStatus.APPLIED,
            message=f"{entity.label} updated successfully.",
            changes=camelize_changes(changes),
            result={"id": record_id, "changes": [to_camel(c) for c in changes], "record": updated},
        )
    except DatastoreError:
        logger.exception(f"{entity.label} update failed")
        return ToolResult.persistence_failure()


async def run_delete(
    ctx: ToolContext,
    entity: EntityType,
    record_id: str,
    confirmed: bool,
    version_token: Optional[str] = None,
    guard: Optional[Guard] = None,
    describe: Optional[Callable[[Dict[str, Any]], Dict[str, Any]]] = None,
) -> ToolResult:
    """Soft delete with the same preview/confirm shape as updates."""
    lifecycle = SoftDeletable(entity, ctx.store)
    try:
        current = lifecycle.load(record_id, ctx.owner_id)
        if current is None:
            return ToolResult.not_found(entity.label)

        if guard:
            refusal = guard(current)
            if refusal is not None:
                return refusal

        token = compute_version_token(current)
        summary = describe(current) if describe else {
            "id": current["id"],
            "name": current.get(entity.name_field),
        }

        if not confirmed:
            return ToolResult(
                status=ToolStatus.PREVIEW,
                message=f"This will delete the {entity.label.lower()} below. Say 'confirm' to delete.",
                preview=summary,
                version_token=token,
            )

        if version_token and version_token != token:
            return ToolResult.blocked(
                RECORD_CHANGED_MESSAGE,
                suggestion="Preview the deletion again before confirming.",
            )

        if not lifecycle.delete(record_id, ctx.owner_id):
            return ToolResult.not_found(entity.label)

        logger.info(f"{entity.label} deleted", extra_fields={"record_id": record_id})
        return ToolResult(
            status=ToolStatus.APPLIED,
            message=f"{entity.label} deleted.",
            result={"id": record_id, "deleted": True},
        )
    except DatastoreError:
        logger.exception(f"{entity.label} delete failed")
        return ToolResult.persistence_failure()


async def run_create(
    ctx: ToolContext,
    entity: EntityType,
    record: Dict[str, Any],
    confirmed: bool,
    preview: Optional[Dict[str, Any]] = None,
    warnings: Optional[List[str]] = None,
    check_duplicate: bool = True,
) -> ToolResult:
    """Duplicate guard, then preview or insert.

    Args:
        record: columns to insert (without ``user_id``; the owner is added here)
        preview: camelCase view shown to the user (defaults to the record)
    """
    try:
        if check_duplicate:
            name = record.get(entity.name_field)
            scope = {column: record.get(column) for column in entity.unique_scope}
            existing = UniqueByOwnerAndName(entity, ctx.store).find_existing(ctx.owner_id, name, **scope)
            if existing is not None:
                return ToolResult.exists(entity.label, existing)

        shown = preview or {to_camel(k): v for k, v in record.items() if v is not None}

        if not confirmed:
            return ToolResult(
                status=ToolStatus.PREVIEW,
                message=f"Review the new {entity.label.lower()} above. Say 'confirm' to save.",
                preview=shown,
                warnings=warnings or None,
            )

        saved = ctx.store.insert(entity.table, {**record, "user_id": ctx.owner_id})
        logger.info(f"{entity.label} created", extra_fields={"record_id": saved["id"]})
        return ToolResult(
            status=ToolStatus.APPLIED,
            message=f"{entity.label} saved successfully.",
            result=saved,
            warnings=warnings or None,
        )
    except DatastoreError:
        logger.exception(f"{entity.label} create failed")
        return ToolResult.persistence_failure()

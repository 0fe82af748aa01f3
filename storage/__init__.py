"""Storage - owner-scoped SQLite persistence for the assistant."""

from storage.db import Datastore, init_assistant_db, DEFAULT_DB_PATH, TABLES
from storage.entities import (
    EntityType,
    ENTITY_TYPES,
    SoftDeletable,
    UniqueByOwnerAndName,
)
from storage.owners import (
    UserPreferences,
    resolve_effective_owner,
    get_user_preferences,
    advance_invoice_number,
)

__all__ = [
    "Datastore",
    "init_assistant_db",
    "DEFAULT_DB_PATH",
    "TABLES",
    "EntityType",
    "ENTITY_TYPES",
    "SoftDeletable",
    "UniqueByOwnerAndName",
    "UserPreferences",
    "resolve_effective_owner",
    "get_user_preferences",
    "advance_invoice_number",
]

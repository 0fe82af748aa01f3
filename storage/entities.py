"""Entity types and lifecycle building blocks.

Every kind of record the tools touch is described once by an ``EntityType``
(table, display label, name field, fuzzy-match fields, uniqueness scope).
The two lifecycle conventions shared by all kinds are implemented once here:

- ``SoftDeletable``: deletes tombstone the row, reads skip tombstones
- ``UniqueByOwnerAndName``: case-insensitive exact-name duplicate guard
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

from storage.db import Datastore


@dataclass(frozen=True)
class EntityType:
    """Static description of one entity kind."""
    key: str
    table: str
    label: str
    name_field: str = "name"
    secondary_fields: Tuple[str, ...] = ()
    address_field: Optional[str] = None
    # Extra columns that partition the uniqueness check (e.g. category type)
    unique_scope: Tuple[str, ...] = ()
    # Columns compared by update previews, in display order
    editable_fields: Tuple[str, ...] = field(default_factory=tuple)


CLIENT = EntityType(
    key="client",
    table="clients",
    label="Client",
    secondary_fields=("company_name",),
    address_field="address",
    editable_fields=("name", "company_name", "email", "phone", "address", "notes"),
)

VENDOR = EntityType(
    key="vendor",
    table="vendors",
    label="Vendor",
    secondary_fields=("company_name",),
    address_field="address",
    editable_fields=("name", "company_name", "email", "phone", "address", "notes"),
)

CATEGORY = EntityType(
    key="category",
    table="categories",
    label="Category",
    unique_scope=("type",),
    editable_fields=("name", "color", "description"),
)

PROJECT = EntityType(
    key="project",
    table="projects",
    label="Project",
    editable_fields=(
        "name", "description", "client_id", "status", "start_date",
        "end_date", "budget", "hourly_rate", "color",
    ),
)

INCOME = EntityType(
    key="income",
    table="income",
    label="Income",
    name_field="description",
    editable_fields=("amount", "description", "date", "client_id", "category_id", "project_id", "tax_rate"),
)

EXPENSE = EntityType(
    key="expense",
    table="expenses",
    label="Expense",
    name_field="description",
    editable_fields=("amount", "description", "date", "vendor_id", "category_id", "project_id", "tax_rate"),
)

INVOICE = EntityType(
    key="invoice",
    table="invoices",
    label="Invoice",
    name_field="invoice_number",
    editable_fields=("date", "due_date", "notes"),
)

MILESTONE = EntityType(
    key="milestone",
    table="project_milestones",
    label="Milestone",
    editable_fields=("name", "description", "due_date", "amount", "status", "invoice_id"),
)

GOAL = EntityType(
    key="goal",
    table="project_goals",
    label="Goal",
    name_field="title",
    editable_fields=("title", "description", "status", "target_date"),
)

TIME_ENTRY = EntityType(key="time_entry", table="project_time_entries", label="Time entry", name_field="description")

NOTE = EntityType(key="note", table="project_notes", label="Note", name_field="title")

RECURRING = EntityType(
    key="recurring",
    table="recurring_invoices",
    label="Recurring invoice",
    name_field="frequency",
    editable_fields=("frequency", "next_date", "end_date", "is_active"),
)

TEMPLATE = EntityType(key="template", table="invoice_templates", label="Invoice template")

ENTITY_TYPES: Dict[str, EntityType] = {
    et.key: et
    for et in (
        CLIENT, VENDOR, CATEGORY, PROJECT, INCOME, EXPENSE, INVOICE,
        MILESTONE, GOAL, TIME_ENTRY, NOTE, RECURRING, TEMPLATE,
    )
}


class SoftDeletable:
    """Tombstone-based delete for one entity type."""

    def __init__(self, entity: EntityType, store: Datastore):
        self.entity = entity
        self.store = store

    def load(self, record_id: str, owner_id: str) -> Optional[Dict[str, Any]]:
        """Live record or None (deleted rows count as absent)."""
        return self.store.get(self.entity.table, record_id, owner_id)

    def delete(self, record_id: str, owner_id: str) -> bool:
        return self.store.soft_delete(self.entity.table, record_id, owner_id)


class UniqueByOwnerAndName:
    """Case-insensitive exact-name duplicate guard for one entity type.

    Example:
        guard = UniqueByOwnerAndName(CATEGORY, store)
        existing = guard.find_existing(owner_id, "Travel", type="expense")
    """

    def __init__(self, entity: EntityType, store: Datastore):
        self.entity = entity
        self.store = store

    def find_existing(self, owner_id: str, name: str, **scope: Any) -> Optional[Dict[str, Any]]:
        filters: Dict[str, Any] = {f"{self.entity.name_field}__ieq": name.strip()}
        for column in self.entity.unique_scope:
            if scope.get(column) is not None:
                filters[column] = scope[column]

        rows = self.store.find(self.entity.table, owner_id, filters, limit=1)
        return rows[0] if rows else None

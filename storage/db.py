"""Assistant Datastore.

This module handles all persistence for the assistant core:
- Schema initialization for every entity table
- An owner-scoped ``Datastore`` with get / find / insert / update / soft_delete

Every table carries ``id`` (uuid4 text), ``user_id`` (the effective owner),
``created_at``, ``updated_at`` and a ``deleted_at`` tombstone. Queries never
run without an owner id, and tombstoned rows are invisible unless asked for.

Filter syntax for ``find`` / ``count`` (Django-style suffixes):
    {"status": "paid"}                   equality
    {"date__gte": "2025-01-01"}          >=   (also __lte, __gt, __lt)
    {"status__in": ["draft", "sent"]}    IN   (also __not_in)
    {"name__contains": "acme"}           case-insensitive substring
    {"name__ieq": "Acme Corp"}           case-insensitive equality
    {"client_id__isnull": True}          IS NULL / IS NOT NULL
"""

import json
import sqlite3
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

from core.errors import DatastoreError
from core.observability.logging import get_logger


logger = get_logger(__name__)

DEFAULT_DB_PATH = Path(__file__).resolve().parents[1] / "assistant.db"


# =============================================================================
# Schema
# =============================================================================

COMMON_COLUMNS = {
    "id": "TEXT PRIMARY KEY",
    "user_id": "TEXT NOT NULL",
    "created_at": "TEXT NOT NULL",
    "updated_at": "TEXT NOT NULL",
    "deleted_at": "TEXT",
}

_PARTY_COLUMNS = {
    "name": "TEXT NOT NULL",
    "company_name": "TEXT",
    "email": "TEXT",
    "phone": "TEXT",
    "address": "TEXT",
    "notes": "TEXT",
}

_MONEY_COLUMNS = {
    "amount": "REAL NOT NULL",
    "description": "TEXT",
    "date": "TEXT NOT NULL",
    "category_id": "TEXT",
    "project_id": "TEXT",
    "currency": "TEXT NOT NULL DEFAULT 'USD'",
    "tax_rate": "REAL NOT NULL DEFAULT 0",
    "tax_amount": "REAL NOT NULL DEFAULT 0",
    "total_with_tax": "REAL NOT NULL",
    "notes": "TEXT",
}

TABLES: Dict[str, Dict[str, str]] = {
    "clients": dict(_PARTY_COLUMNS),
    "vendors": dict(_PARTY_COLUMNS),
    "categories": {
        "name": "TEXT NOT NULL",
        "type": "TEXT NOT NULL",
        "color": "TEXT",
        "description": "TEXT",
    },
    "income": {**_MONEY_COLUMNS, "client_id": "TEXT"},
    "expenses": {**_MONEY_COLUMNS, "vendor_id": "TEXT"},
    "invoices": {
        "invoice_number": "TEXT NOT NULL",
        "client_id": "TEXT",
        "project_id": "TEXT",
        "date": "TEXT NOT NULL",
        "due_date": "TEXT",
        "status": "TEXT NOT NULL DEFAULT 'draft'",
        "currency": "TEXT NOT NULL DEFAULT 'USD'",
        "subtotal": "REAL NOT NULL DEFAULT 0",
        "tax_amount": "REAL NOT NULL DEFAULT 0",
        "total": "REAL NOT NULL DEFAULT 0",
        "amount_paid": "REAL NOT NULL DEFAULT 0",
        "balance_due": "REAL NOT NULL DEFAULT 0",
        "notes": "TEXT",
        "sent_at": "TEXT",
        "paid_at": "TEXT",
    },
    "invoice_items": {
        "invoice_id": "TEXT NOT NULL",
        "description": "TEXT NOT NULL",
        "quantity": "REAL NOT NULL DEFAULT 1",
        "rate": "REAL NOT NULL",
        "tax_rate": "REAL NOT NULL DEFAULT 0",
        "net_amount": "REAL NOT NULL",
        "tax_amount": "REAL NOT NULL DEFAULT 0",
        "gross_amount": "REAL NOT NULL",
        "sort_order": "INTEGER NOT NULL DEFAULT 0",
    },
    "invoice_payments": {
        "invoice_id": "TEXT NOT NULL",
        "amount": "REAL NOT NULL",
        "payment_date": "TEXT NOT NULL",
        "method": "TEXT",
        "notes": "TEXT",
    },
    "recurring_invoices": {
        "invoice_id": "TEXT NOT NULL",
        "client_id": "TEXT",
        "frequency": "TEXT NOT NULL",
        "next_date": "TEXT NOT NULL",
        "end_date": "TEXT",
        "is_active": "INTEGER NOT NULL DEFAULT 1",
        "template_data": "TEXT NOT NULL DEFAULT '{}'",
    },
    "invoice_templates": {
        "name": "TEXT NOT NULL",
        "client_id": "TEXT",
        "template_data": "TEXT NOT NULL DEFAULT '{}'",
    },
    "projects": {
        "name": "TEXT NOT NULL",
        "description": "TEXT",
        "client_id": "TEXT",
        "status": "TEXT NOT NULL DEFAULT 'active'",
        "start_date": "TEXT",
        "end_date": "TEXT",
        "budget": "REAL",
        "hourly_rate": "REAL",
        "currency": "TEXT NOT NULL DEFAULT 'USD'",
        "color": "TEXT",
    },
    "project_milestones": {
        "project_id": "TEXT NOT NULL",
        "name": "TEXT NOT NULL",
        "description": "TEXT",
        "due_date": "TEXT",
        "amount": "REAL",
        "status": "TEXT NOT NULL DEFAULT 'pending'",
        "completion_date": "TEXT",
        "invoice_id": "TEXT",
    },
    "project_goals": {
        "project_id": "TEXT NOT NULL",
        "title": "TEXT NOT NULL",
        "description": "TEXT",
        "status": "TEXT NOT NULL DEFAULT 'todo'",
        "target_date": "TEXT",
    },
    "project_time_entries": {
        "project_id": "TEXT NOT NULL",
        "milestone_id": "TEXT",
        "description": "TEXT",
        "hours": "REAL NOT NULL",
        "date": "TEXT NOT NULL",
        "hourly_rate": "REAL",
        "is_billable": "INTEGER NOT NULL DEFAULT 1",
        "amount": "REAL",
    },
    "project_notes": {
        "project_id": "TEXT NOT NULL",
        "title": "TEXT NOT NULL",
        "date": "TEXT NOT NULL",
        "content": "TEXT",
        "note_type": "TEXT NOT NULL DEFAULT 'note'",
    },
    "user_settings": {
        "base_currency": "TEXT NOT NULL DEFAULT 'USD'",
        "default_tax_rate": "REAL NOT NULL DEFAULT 0",
    },
    "invoice_settings": {
        "prefix": "TEXT NOT NULL DEFAULT 'INV-'",
        "next_number": "INTEGER NOT NULL DEFAULT 1",
        "payment_terms": "INTEGER NOT NULL DEFAULT 30",
    },
    "team_members": {
        "team_id": "TEXT NOT NULL",
        "role": "TEXT",
        "status": "TEXT NOT NULL DEFAULT 'active'",
    },
}

BOOL_COLUMNS = {"is_active", "is_billable"}
JSON_COLUMNS = {"template_data"}

# Tables queried by a foreign key, not only by owner
INDEXES = [
    ("invoice_items", "invoice_id"),
    ("invoice_payments", "invoice_id"),
    ("recurring_invoices", "invoice_id"),
    ("project_milestones", "project_id"),
    ("project_goals", "project_id"),
    ("project_time_entries", "project_id"),
    ("project_notes", "project_id"),
    ("income", "client_id"),
    ("expenses", "vendor_id"),
    ("invoices", "client_id"),
]


def init_assistant_db(db_path: Path = DEFAULT_DB_PATH) -> None:
    """Initialize every assistant table (idempotent).

    Args:
        db_path: Path to SQLite database file
    """
    conn = sqlite3.connect(db_path)
    try:
        cursor = conn.cursor()

        for table, columns in TABLES.items():
            all_columns = {**COMMON_COLUMNS, **columns}
            column_sql = ",\n    ".join(f"{name} {ddl}" for name, ddl in all_columns.items())
            cursor.execute(f"CREATE TABLE IF NOT EXISTS {table} (\n    {column_sql}\n)")
            cursor.execute(f"CREATE INDEX IF NOT EXISTS idx_{table}_owner ON {table}(user_id)")

        for table, column in INDEXES:
            cursor.execute(f"CREATE INDEX IF NOT EXISTS idx_{table}_{column} ON {table}({column})")

        conn.commit()
        logger.info("Assistant tables initialized", extra_fields={"db_path": str(db_path)})
    finally:
        conn.close()


# =============================================================================
# Filter compilation
# =============================================================================

_OPERATORS = ("gte", "lte", "gt", "lt", "in", "not_in", "contains", "ieq", "isnull")

_COMPARISONS = {"gte": ">=", "lte": "<=", "gt": ">", "lt": "<"}


def _split_filter_key(key: str) -> Tuple[str, str]:
    if "__" in key:
        column, op = key.rsplit("__", 1)
        if op in _OPERATORS:
            return column, op
    return key, "eq"


def _encode_value(column: str, value: Any) -> Any:
    if column in JSON_COLUMNS and not isinstance(value, str):
        return json.dumps(value)
    if isinstance(value, bool):
        return 1 if value else 0
    return value


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _compile_filters(table: str, filters: Optional[Dict[str, Any]]) -> Tuple[List[str], List[Any]]:
    clauses: List[str] = []
    params: List[Any] = []

    for key, value in (filters or {}).items():
        column, op = _split_filter_key(key)
        _check_column(table, column)

        if op == "eq":
            if value is None:
                clauses.append(f"{column} IS NULL")
            else:
                clauses.append(f"{column} = ?")
                params.append(_encode_value(column, value))
        elif op in _COMPARISONS:
            clauses.append(f"{column} {_COMPARISONS[op]} ?")
            params.append(value)
        elif op in ("in", "not_in"):
            values = list(value)
            if not values:
                # Empty IN matches nothing; empty NOT IN matches everything
                if op == "in":
                    clauses.append("0")
                continue
            placeholders = ", ".join("?" for _ in values)
            keyword = "IN" if op == "in" else "NOT IN"
            clauses.append(f"{column} {keyword} ({placeholders})")
            params.extend(_encode_value(column, v) for v in values)
        elif op == "contains":
            clauses.append(f"LOWER({column}) LIKE ? ESCAPE '\\'")
            params.append(f"%{_escape_like(str(value).lower())}%")
        elif op == "ieq":
            clauses.append(f"LOWER({column}) = ?")
            params.append(str(value).lower())
        elif op == "isnull":
            clauses.append(f"{column} IS NULL" if value else f"{column} IS NOT NULL")

    return clauses, params


def _check_table(table: str) -> Dict[str, str]:
    if table not in TABLES:
        raise DatastoreError(f"Unknown table: {table}", table=table)
    return TABLES[table]


def _check_column(table: str, column: str) -> None:
    if column not in COMMON_COLUMNS and column not in _check_table(table):
        raise DatastoreError(f"Unknown column {column!r} for {table}", table=table)


def _decode_row(row: sqlite3.Row) -> Dict[str, Any]:
    record = dict(row)
    for column in BOOL_COLUMNS.intersection(record):
        if record[column] is not None:
            record[column] = bool(record[column])
    for column in JSON_COLUMNS.intersection(record):
        if isinstance(record[column], str):
            record[column] = json.loads(record[column])
    return record


# =============================================================================
# Datastore
# =============================================================================

class Datastore:
    """Owner-scoped access to the assistant tables.

    Each call opens its own connection, so one instance can be shared across
    threads and concurrent tool calls. sqlite3 errors surface as
    ``DatastoreError``.

    Example:
        store = Datastore(db_path)
        client = store.insert("clients", {"user_id": owner_id, "name": "Acme Corp"})
        rows = store.find("clients", owner_id, {"name__contains": "acme"})
    """

    def __init__(self, db_path: Path = DEFAULT_DB_PATH, initialize: bool = True):
        self.db_path = Path(db_path)
        if initialize:
            init_assistant_db(self.db_path)

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _fail(self, action: str, table: str, exc: sqlite3.Error) -> DatastoreError:
        logger.error(
            f"Datastore {action} failed",
            extra_fields={"table": table, "error": str(exc)},
        )
        return DatastoreError(f"Datastore {action} failed on {table}", table=table)

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def get(
        self,
        table: str,
        record_id: str,
        owner_id: str,
        include_deleted: bool = False,
    ) -> Optional[Dict[str, Any]]:
        """Get one record by id, or None when absent, deleted, or owned by someone else."""
        rows = self.find(table, owner_id, {"id": record_id}, limit=1, include_deleted=include_deleted)
        return rows[0] if rows else None

    def find(
        self,
        table: str,
        owner_id: str,
        filters: Optional[Dict[str, Any]] = None,
        order_by: Optional[str] = None,
        limit: Optional[int] = None,
        include_deleted: bool = False,
    ) -> List[Dict[str, Any]]:
        """Find the owner's records matching ``filters``.

        Args:
            table: Table name
            owner_id: Effective owner (required)
            filters: Filter dict (see module docstring)
            order_by: Column name; prefix with ``-`` for descending
            limit: Max rows
            include_deleted: Include tombstoned rows
        """
        if not owner_id:
            raise DatastoreError("Owner id is required", table=table)
        _check_table(table)

        clauses, params = _compile_filters(table, filters)
        clauses.insert(0, "user_id = ?")
        params.insert(0, owner_id)
        if not include_deleted:
            clauses.append("deleted_at IS NULL")

        sql = f"SELECT * FROM {table} WHERE {' AND '.join(clauses)}"

        if order_by:
            descending = order_by.startswith("-")
            column = order_by.lstrip("-")
            _check_column(table, column)
            sql += f" ORDER BY {column} {'DESC' if descending else 'ASC'}, rowid ASC"
        else:
            sql += " ORDER BY rowid ASC"

        if limit is not None:
            sql += " LIMIT ?"
            params.append(int(limit))

        conn = self._connect()
        try:
            cursor = conn.execute(sql, params)
            return [_decode_row(row) for row in cursor.fetchall()]
        except sqlite3.Error as e:
            raise self._fail("query", table, e) from e
        finally:
            conn.close()

    def count(self, table: str, owner_id: str, filters: Optional[Dict[str, Any]] = None) -> int:
        """Count the owner's live records matching ``filters``."""
        if not owner_id:
            raise DatastoreError("Owner id is required", table=table)
        _check_table(table)

        clauses, params = _compile_filters(table, filters)
        clauses = ["user_id = ?", *clauses, "deleted_at IS NULL"]

        conn = self._connect()
        try:
            cursor = conn.execute(
                f"SELECT COUNT(*) FROM {table} WHERE {' AND '.join(clauses)}",
                [owner_id, *params],
            )
            return cursor.fetchone()[0]
        except sqlite3.Error as e:
            raise self._fail("count", table, e) from e
        finally:
            conn.close()

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def _prepare(self, table: str, record: Dict[str, Any]) -> Dict[str, Any]:
        if not record.get("user_id"):
            raise DatastoreError("Record must carry user_id", table=table)
        for column in record:
            _check_column(table, column)

        now = datetime.now(timezone.utc).isoformat()
        prepared = {"id": str(uuid.uuid4()), "created_at": now, "updated_at": now}
        prepared.update({k: _encode_value(k, v) for k, v in record.items()})
        return prepared

    def insert(self, table: str, record: Dict[str, Any]) -> Dict[str, Any]:
        """Insert one record (must carry ``user_id``) and return it as stored."""
        _check_table(table)
        return self.insert_many(table, [record])[0]

    def insert_many(self, table: str, records: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """Insert several records in one transaction (all or nothing)."""
        _check_table(table)
        prepared = [self._prepare(table, r) for r in records]
        if not prepared:
            return []

        conn = self._connect()
        try:
            for row in prepared:
                columns = ", ".join(row)
                placeholders = ", ".join("?" for _ in row)
                conn.execute(
                    f"INSERT INTO {table} ({columns}) VALUES ({placeholders})",
                    list(row.values()),
                )
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise self._fail("insert", table, e) from e
        finally:
            conn.close()

        owner_id = prepared[0]["user_id"]
        ids = [row["id"] for row in prepared]
        stored = {r["id"]: r for r in self.find(table, owner_id, {"id__in": ids})}
        return [stored[i] for i in ids]

    def update(
        self,
        table: str,
        record_id: str,
        owner_id: str,
        fields: Dict[str, Any],
    ) -> Optional[Dict[str, Any]]:
        """Update a live record's fields. Returns the updated record, or None if absent."""
        if not owner_id:
            raise DatastoreError("Owner id is required", table=table)
        _check_table(table)
        for column in fields:
            if column in COMMON_COLUMNS:
                raise DatastoreError(f"Column {column!r} is not updatable", table=table)
            _check_column(table, column)

        values = {k: _encode_value(k, v) for k, v in fields.items()}
        values["updated_at"] = datetime.now(timezone.utc).isoformat()
        assignments = ", ".join(f"{column} = ?" for column in values)

        conn = self._connect()
        try:
            cursor = conn.execute(
                f"UPDATE {table} SET {assignments} "
                f"WHERE id = ? AND user_id = ? AND deleted_at IS NULL",
                [*values.values(), record_id, owner_id],
            )
            conn.commit()
            updated = cursor.rowcount
        except sqlite3.Error as e:
            conn.rollback()
            raise self._fail("update", table, e) from e
        finally:
            conn.close()

        if not updated:
            return None
        return self.get(table, record_id, owner_id)

    def soft_delete(self, table: str, record_id: str, owner_id: str) -> bool:
        """Tombstone a live record. Returns False when there was nothing to delete."""
        if not owner_id:
            raise DatastoreError("Owner id is required", table=table)
        _check_table(table)

        now = datetime.now(timezone.utc).isoformat()
        conn = self._connect()
        try:
            cursor = conn.execute(
                f"UPDATE {table} SET deleted_at = ?, updated_at = ? "
                f"WHERE id = ? AND user_id = ? AND deleted_at IS NULL",
                [now, now, record_id, owner_id],
            )
            conn.commit()
            return cursor.rowcount > 0
        except sqlite3.Error as e:
            conn.rollback()
            raise self._fail("delete", table, e) from e
        finally:
            conn.close()

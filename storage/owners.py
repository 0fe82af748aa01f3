"""Ownership and per-owner preferences.

Records are owned by an *effective owner*: the caller's team when they are
an active team member, otherwise the caller. The dispatcher resolves it once
per tool call and passes it down; nothing below re-derives it.
"""

from typing import Optional

from pydantic import BaseModel, Field

from storage.db import Datastore


class UserPreferences(BaseModel):
    """Money and invoicing defaults for one owner."""
    base_currency: str = Field(default="USD")
    default_tax_rate: float = Field(default=0.0, ge=0)
    payment_terms: int = Field(default=30, description="Days until an invoice is due")
    invoice_prefix: str = Field(default="INV-")
    next_invoice_number: Optional[int] = Field(default=None, description="None when invoice settings are missing")


def resolve_effective_owner(store: Datastore, user_id: str) -> str:
    """Team id for an active team member, else the user id itself."""
    memberships = store.find("team_members", user_id, {"status": "active"}, order_by="created_at", limit=1)
    if memberships:
        return memberships[0]["team_id"]
    return user_id


def get_user_preferences(store: Datastore, owner_id: str) -> UserPreferences:
    prefs = UserPreferences()

    settings = store.find("user_settings", owner_id, limit=1)
    if settings:
        prefs.base_currency = settings[0]["base_currency"] or prefs.base_currency
        prefs.default_tax_rate = settings[0]["default_tax_rate"] or 0.0

    invoice_settings = store.find("invoice_settings", owner_id, limit=1)
    if invoice_settings:
        row = invoice_settings[0]
        prefs.payment_terms = row["payment_terms"] or prefs.payment_terms
        prefs.invoice_prefix = row["prefix"] or ""
        prefs.next_invoice_number = row["next_number"]

    return prefs


def advance_invoice_number(store: Datastore, owner_id: str) -> None:
    """Bump the owner's next invoice number after an invoice is created."""
    rows = store.find("invoice_settings", owner_id, limit=1)
    if rows:
        store.update("invoice_settings", rows[0]["id"], owner_id, {"next_number": rows[0]["next_number"] + 1})

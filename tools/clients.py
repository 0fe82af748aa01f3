"""Client tools."""

from pydantic import Field

from storage.entities import CLIENT
from tools.contract import ToolContext, ToolResult
from tools.parties import (
    AddPartyInput,
    SearchPartyInput,
    UpdatePartyFields,
    add_party,
    delete_party,
    get_party,
    search_parties,
    update_party,
)
from tools.registry import MutatingInput, ToolInput, tool


class GetClientInput(ToolInput):
    client_id: str


class UpdateClientInput(UpdatePartyFields):
    client_id: str = Field(..., description="Client ID to update")


class DeleteClientInput(MutatingInput):
    client_id: str


@tool("searchClients", SearchPartyInput, """
Find clients by name, company, email, phone, or address. Emails and phone numbers are
matched on that field only; names are fuzzy-matched. Use before any tool that needs a clientId.
""")
async def search_clients(ctx: ToolContext, params: SearchPartyInput) -> ToolResult:
    return await search_parties(ctx, CLIENT, params)


@tool("addClient", AddPartyInput, "Create a client. Returns status 'exists' when a client with that name exists.")
async def add_client(ctx: ToolContext, params: AddPartyInput) -> ToolResult:
    return await add_party(ctx, CLIENT, params)


@tool("getClient", GetClientInput, "Get one client's details by ID.")
async def get_client(ctx: ToolContext, params: GetClientInput) -> ToolResult:
    return await get_party(ctx, CLIENT, params.client_id)


@tool("updateClient", UpdateClientInput, "Update a client's details. Preview first, then confirm.")
async def update_client(ctx: ToolContext, params: UpdateClientInput) -> ToolResult:
    return await update_party(ctx, CLIENT, params.client_id, params)


@tool("deleteClient", DeleteClientInput, "Delete a client. Preview first, then confirm.")
async def delete_client(ctx: ToolContext, params: DeleteClientInput) -> ToolResult:
    return await delete_party(ctx, CLIENT, params.client_id, params)

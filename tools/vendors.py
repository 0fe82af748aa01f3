"""Vendor tools."""

from pydantic import Field

from storage.entities import VENDOR
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


class GetVendorInput(ToolInput):
    vendor_id: str


class UpdateVendorInput(UpdatePartyFields):
    vendor_id: str = Field(..., description="Vendor ID to update")


class DeleteVendorInput(MutatingInput):
    vendor_id: str


@tool("searchVendors", SearchPartyInput, "Find vendors by name, company, email, phone, or address.")
async def search_vendors(ctx: ToolContext, params: SearchPartyInput) -> ToolResult:
    return await search_parties(ctx, VENDOR, params)


@tool("addVendor", AddPartyInput, "Create a vendor. Returns status 'exists' when a vendor with that name exists.")
async def add_vendor(ctx: ToolContext, params: AddPartyInput) -> ToolResult:
    return await add_party(ctx, VENDOR, params)


@tool("getVendor", GetVendorInput, "Get one vendor's details by ID.")
async def get_vendor(ctx: ToolContext, params: GetVendorInput) -> ToolResult:
    return await get_party(ctx, VENDOR, params.vendor_id)


@tool("updateVendor", UpdateVendorInput, "Update a vendor's details. Preview first, then confirm.")
async def update_vendor(ctx: ToolContext, params: UpdateVendorInput) -> ToolResult:
    return await update_party(ctx, VENDOR, params.vendor_id, params)


@tool("deleteVendor", DeleteVendorInput, "Delete a vendor. Preview first, then confirm.")
async def delete_vendor(ctx: ToolContext, params: DeleteVendorInput) -> ToolResult:
    return await delete_party(ctx, VENDOR, params.vendor_id, params)

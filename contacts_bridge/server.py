"""
Contacts Bridge MCP Server

Exposes the contacts bridge methods as MCP tools:
- Permissions: request and inspect contacts access
- Reads: list, fetch and search contacts
- Writes: create, update and delete contacts

Every tool returns {"ok": true, "result": ...} or
{"ok": false, "error": {"code", "message", "details"}}; binary blobs
(thumbnail, photo) travel as base64 text.
"""

import logging
from typing import Any, Dict, Optional

from fastmcp import FastMCP

from contacts_bridge.bridge import ContactsBridge
from contacts_bridge.config import SERVER_HOST, SERVER_PORT
from contacts_bridge.services.contacts.manager import ContactsManager

logger = logging.getLogger(__name__)

mcp = FastMCP("Contacts Bridge")

_bridge: Optional[ContactsBridge] = None


def get_bridge() -> ContactsBridge:
    """Bridge over the configured accounts, created on first use."""
    global _bridge
    if _bridge is None:
        _bridge = ContactsBridge(ContactsManager())
    return _bridge


async def _call(method: str, arguments: Optional[Dict[str, Any]], account: Optional[str] = None) -> Dict[str, Any]:
    result = await get_bridge().handle(method, arguments, account)
    return result.to_dict()


# =============================================================================
# HEALTH
# =============================================================================
@mcp.tool()
def ping() -> str:
    """Health check. Returns pong if the contacts bridge is running."""
    return "pong from Contacts Bridge 📇"

@mcp.tool()
async def contacts_call(method: str, arguments: Optional[Dict[str, Any]] = None, account: Optional[str] = None) -> dict:
    """
    Invoke any bridge method by its wire name.

    Args:
        method: Method name (getAllContacts, getContact, searchContacts, createContact,
            updateContact, deleteContact, requestPermission, getPermissionStatus)
        arguments: Method arguments map
        account: Contacts account (default: configured default account)
    """
    return await _call(method, arguments, account)

# =============================================================================
# PERMISSIONS
# =============================================================================
@mcp.tool()
async def contacts_request_permission(read_only: bool = False, account: Optional[str] = None) -> dict:
    """
    Ask for access to the contacts store.

    Args:
        read_only: Only ask for read access (row store)
        account: Contacts account (default: configured default account)
    """
    return await _call("requestPermission", {"readOnly": read_only}, account)

@mcp.tool()
async def contacts_permission_status(account: Optional[str] = None) -> dict:
    """Current access status of the contacts store."""
    return await _call("getPermissionStatus", {}, account)

# =============================================================================
# READS
# =============================================================================
@mcp.tool()
async def contacts_get_all(
    with_properties: bool = False,
    with_thumbnail: bool = False,
    with_photo: bool = False,
    sorted: bool = True,
    account: Optional[str] = None
) -> dict:
    """
    List every contact.

    Args:
        with_properties: Include name, phones, emails, addresses, etc.
        with_thumbnail: Include the thumbnail image
        with_photo: Include the full-size photo
        sorted: Order by display name (default: True)
        account: Contacts account (default: configured default account)
    """
    return await _call("getAllContacts", {
        "withProperties": with_properties,
        "withThumbnail": with_thumbnail,
        "withPhoto": with_photo,
        "sorted": sorted,
    }, account)

@mcp.tool()
async def contacts_get(
    id: str,
    with_properties: bool = True,
    with_thumbnail: bool = False,
    with_photo: bool = False,
    account: Optional[str] = None
) -> dict:
    """
    Get one contact by ID. The result is null when the ID doesn't exist.

    Args:
        id: Contact ID
        with_properties: Include name, phones, emails, addresses, etc. (default: True)
        with_thumbnail: Include the thumbnail image
        with_photo: Include the full-size photo
        account: Contacts account (default: configured default account)
    """
    return await _call("getContact", {
        "id": id,
        "withProperties": with_properties,
        "withThumbnail": with_thumbnail,
        "withPhoto": with_photo,
    }, account)

@mcp.tool()
async def contacts_search(
    query: str,
    with_properties: bool = False,
    sorted: bool = True,
    account: Optional[str] = None
) -> dict:
    """
    Search contacts by display name (case-insensitive substring; "" matches all).

    Args:
        query: Text to look for
        with_properties: Include name, phones, emails, addresses, etc.
        sorted: Order by display name (default: True)
        account: Contacts account (default: configured default account)
    """
    return await _call("searchContacts", {
        "query": query,
        "withProperties": with_properties,
        "sorted": sorted,
    }, account)

# =============================================================================
# WRITES
# =============================================================================
@mcp.tool()
async def contacts_create(contact: Dict[str, Any], account: Optional[str] = None) -> dict:
    """
    Create a contact.

    Args:
        contact: Partial contact, e.g. {"name": {"givenName": "Ann"},
            "phones": [{"number": "555-1234", "label": "mobile"}]}; photo as base64
        account: Contacts account (default: configured default account)

    Returns:
        The contact as stored
    """
    return await _call("createContact", {"contact": contact}, account)

@mcp.tool()
async def contacts_update(contact: Dict[str, Any], account: Optional[str] = None) -> dict:
    """
    Update a contact. Only the groups present in `contact` are changed;
    lists given replace the stored lists.

    Args:
        contact: Partial contact including "id"
        account: Contacts account (default: configured default account)
    """
    return await _call("updateContact", {"contact": contact}, account)

@mcp.tool()
async def contacts_delete(id: str, account: Optional[str] = None) -> dict:
    """
    Delete a contact.

    Args:
        id: Contact ID
        account: Contacts account (default: configured default account)
    """
    return await _call("deleteContact", {"id": id}, account)

# =============================================================================
# MAIN
# =============================================================================
if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    mcp.run(transport="http", host=SERVER_HOST, port=SERVER_PORT)

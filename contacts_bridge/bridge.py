"""
Contacts Bridge Dispatch

Routes a method name plus an arguments map to the contacts manager and
turns the outcome into a structured result: either a success value or an
error carrying a code, a message and an optional detail string. Nothing a
backend raises escapes as an unhandled fault.
"""

import base64
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Tuple

from .services.contacts.interface import (
    ContactRecord, ContactsBridgeError, InvalidArgumentsError, groups_for,
)
from .services.contacts.manager import ContactsManager

logger = logging.getLogger(__name__)

NOT_IMPLEMENTED = "NOT_IMPLEMENTED"


@dataclass
class BridgeError:
    code: str
    message: str
    details: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}


@dataclass
class MethodResult:
    """Outcome of one bridge call."""
    ok: bool
    value: Any = None
    error: Optional[BridgeError] = None

    @classmethod
    def success(cls, value: Any = None) -> "MethodResult":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, code: str, message: str, details: Optional[str] = None) -> "MethodResult":
        return cls(ok=False, error=BridgeError(code, message, details))

    def to_dict(self) -> Dict[str, Any]:
        """Response envelope with blobs as base64 text."""
        if self.ok:
            return {"ok": True, "result": to_wire(self.value, encode_blobs=True)}
        return {"ok": False, "error": self.error.to_dict()}


# =============================================================================
# ARGUMENT VALIDATION
# =============================================================================

def _flag(args: Mapping[str, Any], key: str, default: bool) -> bool:
    value = args.get(key)
    if value is None:
        return default
    if not isinstance(value, bool):
        raise InvalidArgumentsError(f"{key} must be a boolean")
    return value


def _required_str(args: Mapping[str, Any], key: str) -> str:
    value = args.get(key)
    if value is None:
        raise InvalidArgumentsError(f"Missing required argument: {key}")
    if not isinstance(value, str):
        raise InvalidArgumentsError(f"{key} must be a string")
    return value


def _required_contact(args: Mapping[str, Any]) -> ContactRecord:
    data = args.get("contact")
    if data is None:
        raise InvalidArgumentsError("Missing required argument: contact")
    if not isinstance(data, Mapping):
        raise InvalidArgumentsError("contact must be a map")
    return ContactRecord.from_dict(data)


def to_wire(value: Any, encode_blobs: bool = False) -> Any:
    """
    JSON-shaped form of a bridge value.

    Records become wire maps; lists and maps are converted recursively.
    With encode_blobs, binary values (thumbnail, photo) become base64 text.
    """
    if isinstance(value, ContactRecord):
        value = value.to_dict()
    if isinstance(value, (bytes, bytearray)):
        return base64.b64encode(value).decode("ascii") if encode_blobs else value
    if isinstance(value, Mapping):
        return {k: to_wire(v, encode_blobs) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_wire(v, encode_blobs) for v in value]
    return value



# =============================================================================
# BRIDGE
# =============================================================================

Handler = Callable[[Mapping[str, Any], Optional[str]], Awaitable[Any]]


class ContactsBridge:
    """Method-name dispatch over a ContactsManager."""

    def __init__(self, manager: ContactsManager):
        self.manager = manager
        # method name -> (handler, catch-all error code)
        self.methods: Dict[str, Tuple[Handler, str]] = {
            "requestPermission": (self._request_permission, "PERMISSION_ERROR"),
            "getPermissionStatus": (self._permission_status, "PERMISSION_ERROR"),
            "getAllContacts": (self._get_all_contacts, "FETCH_ERROR"),
            "getContact": (self._get_contact, "FETCH_ERROR"),
            "searchContacts": (self._search_contacts, "SEARCH_ERROR"),
            "createContact": (self._create_contact, "CREATE_ERROR"),
            "updateContact": (self._update_contact, "UPDATE_ERROR"),
            "deleteContact": (self._delete_contact, "DELETE_ERROR"),
        }

    async def handle(
        self,
        method: str,
        arguments: Optional[Mapping[str, Any]] = None,
        account_name: Optional[str] = None
    ) -> MethodResult:
        """
        Run one bridge method.

        Args:
            method: Wire method name (getAllContacts, createContact, ...)
            arguments: Method arguments; None is treated as an empty map
            account_name: Contacts account (default: the manager's default)

        Returns:
            MethodResult with the JSON-shaped value, or a structured error
        """
        if method not in self.methods:
            return MethodResult.failure(NOT_IMPLEMENTED, f"Method not implemented: {method}")

        handler, fallback_code = self.methods[method]
        try:
            if arguments is None:
                arguments = {}
            if not isinstance(arguments, Mapping):
                raise InvalidArgumentsError("Arguments must be a map")
            value = await handler(arguments, account_name)
        except ContactsBridgeError as e:
            code = e.code or fallback_code
            logger.error(f"❌ {method} failed with {code}: {e.message}")
            return MethodResult.failure(code, e.message, e.details)
        except Exception as e:
            logger.error(f"❌ {method} failed with {fallback_code}: {e}")
            return MethodResult.failure(fallback_code, f"{method} failed", str(e))

        return MethodResult.success(to_wire(value))

    # Permissions

    async def _request_permission(self, args, account_name):
        read_only = _flag(args, "readOnly", False)
        return await self.manager.request_permission(read_only, account_name)

    async def _permission_status(self, args, account_name):
        return await self.manager.permission_status(account_name)

    # Reads

    async def _get_all_contacts(self, args, account_name):
        groups = groups_for(
            _flag(args, "withProperties", False),
            _flag(args, "withThumbnail", False),
            _flag(args, "withPhoto", False),
        )
        sort = _flag(args, "sorted", True)
        return await self.manager.get_all_contacts(groups, sort, account_name)

    async def _get_contact(self, args, account_name):
        contact_id = _required_str(args, "id")
        groups = groups_for(
            _flag(args, "withProperties", True),
            _flag(args, "withThumbnail", False),
            _flag(args, "withPhoto", False),
        )
        return await self.manager.get_contact(contact_id, groups, account_name)

    async def _search_contacts(self, args, account_name):
        query = _required_str(args, "query")
        groups = groups_for(_flag(args, "withProperties", False))
        sort = _flag(args, "sorted", True)
        return await self.manager.search_contacts(query, groups, sort, account_name)

    # Writes

    async def _create_contact(self, args, account_name):
        record = _required_contact(args)
        return await self.manager.create_contact(record, account_name)

    async def _update_contact(self, args, account_name):
        record = _required_contact(args)
        if not record.id:
            raise InvalidArgumentsError("contact.id is required for update")
        return await self.manager.update_contact(record, account_name)

    async def _delete_contact(self, args, account_name):
        contact_id = _required_str(args, "id")
        await self.manager.delete_contact(contact_id, account_name)
        return None

"""
Contacts Service

Platform-agnostic contact management over native address-book stores.
"""

from .interface import (
    Address, ContactRecord, ContactsAccount, ContactsBackend, ContactsBridgeError, Email, Event,
    Name, Note, Organization, Phone, PropertyGroup, Website,
)
from .manager import ContactsManager

__all__ = [
    "Address", "ContactRecord", "ContactsAccount", "ContactsBackend", "ContactsBridgeError",
    "Email", "Event", "Name", "Note", "Organization", "Phone", "PropertyGroup", "Website",
    "ContactsManager",
]

"""
Record Projector

Assembles neutral ContactRecords from native contacts, reading only the
requested property groups. Each group is read independently: a group that
fails to read degrades to its empty value instead of failing the record.
"""

import logging
from typing import Any, FrozenSet

from .interface import (
    ContactRecord, ContactsBackend, Name, NativeContact, PropertyGroup, PROPERTY_GROUPS
)

logger = logging.getLogger(__name__)


def empty_value(group: PropertyGroup) -> Any:
    """Value of a requested group that has nothing in it."""
    if group is PropertyGroup.NAME:
        return Name.empty()
    if group in (PropertyGroup.THUMBNAIL, PropertyGroup.PHOTO):
        return None
    return []


class RecordProjector:
    """Reads native contacts into neutral records."""

    def __init__(self, backend: ContactsBackend):
        self.backend = backend

    def project(self, contact: NativeContact, groups: FrozenSet[PropertyGroup]) -> ContactRecord:
        record = ContactRecord(
            id=contact.id,
            display_name=contact.display_name or "",
            is_starred=contact.is_starred,
            properties_fetched=PROPERTY_GROUPS <= groups,
            thumbnail_fetched=PropertyGroup.THUMBNAIL in groups,
            photo_fetched=PropertyGroup.PHOTO in groups,
        )

        for group in PropertyGroup:
            if group not in groups:
                continue
            setattr(record, group.value, self._read(contact, group))

        return record

    def _read(self, contact: NativeContact, group: PropertyGroup) -> Any:
        try:
            value = self.backend.read_group(contact, group)
        except Exception as e:
            logger.warning(
                f"Failed to read {group.value} of contact {contact.id} "
                f"({self.backend.adapter_type}): {e}"
            )
            return empty_value(group)

        if value is None:
            return empty_value(group)
        return value

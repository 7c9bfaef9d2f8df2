"""
Record Builder

Turns neutral write payloads into mutation batches for a backend. Only the
groups a payload carries are touched; everything is submitted as one batch
and the persisted record is read back afterwards.
"""

import logging
from typing import Optional

from .imaging import make_thumbnail
from .interface import (
    BackendError, ContactNotFoundError, ContactRecord, ContactsBackend, InvalidArgumentsError,
    MutationBatch, PROPERTY_GROUPS, PropertyGroup, iter_provided,
)
from .labels import LabelCategory
from .query import QueryEngine

logger = logging.getLogger(__name__)

# Order in which provided groups are staged
WRITE_ORDER = (
    PropertyGroup.NAME,
    PropertyGroup.PHONES,
    PropertyGroup.EMAILS,
    PropertyGroup.ADDRESSES,
    PropertyGroup.ORGANIZATIONS,
    PropertyGroup.WEBSITES,
    PropertyGroup.NOTES,
    PropertyGroup.EVENTS,
    PropertyGroup.SOCIAL_PROFILES,
    PropertyGroup.INSTANT_MESSAGES,
    PropertyGroup.PHOTO,
    PropertyGroup.THUMBNAIL,
)


class RecordBuilder:
    """Write-side operations over one backend."""

    def __init__(self, backend: ContactsBackend, query: Optional[QueryEngine] = None):
        self.backend = backend
        self.query = query or QueryEngine(backend)

    @property
    def vocabulary(self):
        return self.backend.vocabulary

    def create(self, record: ContactRecord) -> ContactRecord:
        """
        Persist a new contact from the provided groups.

        Returns:
            The contact as re-read from the store

        Raises:
            BackendError: If the store fails or the new contact can't be read back
        """
        batch = MutationBatch()
        root = batch.create()
        self.stage(batch, record, back_reference=root)

        results = self.backend.apply_batch(batch)
        created = results[root] if len(results) > root else None
        if not created:
            raise BackendError("Store did not return an identifier for the new contact")

        contact_id = self.backend.resolve_created_id(created)
        logger.info(f"✅ Created contact {contact_id} ({len(batch)} operations)")

        saved = self.query.get_by_id(contact_id, PROPERTY_GROUPS)
        if saved is None:
            raise BackendError(f"Failed to retrieve created contact {contact_id}")
        return saved

    def update(self, record: ContactRecord) -> ContactRecord:
        """
        Modify the provided groups of an existing contact.

        Raises:
            InvalidArgumentsError: If the record has no id
            ContactNotFoundError: If the id does not resolve
        """
        if not record.id:
            raise InvalidArgumentsError("Contact ID is required for update")

        if self.backend.lookup(record.id, frozenset()) is None:
            raise ContactNotFoundError(f"Contact not found with ID: {record.id}")

        batch = MutationBatch()
        self.stage(batch, record, contact_id=record.id, replace=True)

        if batch.operations:
            self.backend.apply_batch(batch)
            logger.info(f"✅ Updated contact {record.id} ({len(batch)} operations)")
        else:
            logger.info(f"Nothing to update for contact {record.id}")

        saved = self.query.get_by_id(record.id, PROPERTY_GROUPS)
        if saved is None:
            raise BackendError(f"Failed to retrieve updated contact {record.id}")
        return saved

    def delete(self, contact_id: str) -> None:
        """
        Remove a contact.

        Deleting an id that is already gone raises ContactNotFoundError on
        every backend; a second delete is never silently accepted.
        """
        if self.backend.lookup(contact_id, frozenset()) is None:
            raise ContactNotFoundError(f"Contact not found with ID: {contact_id}")
        self.backend.delete(contact_id)
        logger.info(f"✅ Deleted contact {contact_id}")

    # =========================================================================
    # STAGING
    # =========================================================================

    def stage(
        self,
        batch: MutationBatch,
        record: ContactRecord,
        contact_id: Optional[str] = None,
        back_reference: Optional[int] = None,
        replace: bool = False
    ) -> None:
        """
        Add the intents for every provided group of `record` to `batch`.

        With replace, multi-valued groups are cleared before the new values
        are inserted, so the payload's list becomes the stored list.
        """
        target = {"contact_id": contact_id, "back_reference": back_reference}

        for group in iter_provided(record, WRITE_ORDER):
            if group is PropertyGroup.NAME:
                fields = record.name.provided() if record.name else {}
                if fields:
                    batch.assign(group, fields, **target)
                continue

            if group is PropertyGroup.PHOTO:
                photo = record.photo
                batch.assign(group, {
                    "photo": photo,
                    "thumbnail": make_thumbnail(photo) if photo else None,
                }, **target)
                continue

            if group is PropertyGroup.THUMBNAIL:
                logger.debug("Ignoring thumbnail in write payload; thumbnails derive from photo")
                continue

            if replace:
                batch.clear(group, **target)
            for values in self._values(record, group):
                batch.insert(group, values, **target)

    def _values(self, record: ContactRecord, group: PropertyGroup):
        """Native-ready value maps for one multi-valued group, skipping blanks."""
        vocab = self.vocabulary

        if group is PropertyGroup.PHONES:
            for phone in record.phones or []:
                if phone.number.strip():
                    yield {
                        "number": phone.number,
                        "rawType": vocab.to_native(LabelCategory.PHONE, phone.label),
                    }

        elif group is PropertyGroup.EMAILS:
            for email in record.emails or []:
                if email.email.strip():
                    yield {
                        "email": email.email,
                        "rawType": vocab.to_native(LabelCategory.EMAIL, email.label),
                    }

        elif group is PropertyGroup.ADDRESSES:
            for address in record.addresses or []:
                if not address.is_empty():
                    values = address.to_dict()
                    values["rawType"] = vocab.to_native(LabelCategory.ADDRESS, address.label)
                    yield values

        elif group is PropertyGroup.ORGANIZATIONS:
            for org in record.organizations or []:
                if not org.is_empty():
                    yield org.to_dict()

        elif group is PropertyGroup.WEBSITES:
            for website in record.websites or []:
                if website.url.strip():
                    yield {
                        "url": website.url,
                        "rawType": vocab.to_native(LabelCategory.WEBSITE, website.label),
                    }

        elif group is PropertyGroup.NOTES:
            for note in record.notes or []:
                if note.note.strip():
                    yield {"note": note.note}

        elif group is PropertyGroup.EVENTS:
            for event in record.events or []:
                yield {
                    "year": event.year,
                    "month": event.month,
                    "day": event.day,
                    "rawType": vocab.to_native(LabelCategory.EVENT, event.label),
                }

        elif group is PropertyGroup.SOCIAL_PROFILES:
            for profile in record.social_profiles or []:
                if not profile.is_empty():
                    values = profile.to_dict()
                    values["rawType"] = vocab.to_native(LabelCategory.SOCIAL_PROFILE, profile.label)
                    yield values

        elif group is PropertyGroup.INSTANT_MESSAGES:
            for handle in record.instant_messages or []:
                if handle.username.strip():
                    yield {
                        "service": handle.service,
                        "username": handle.username,
                        "rawType": vocab.to_native(LabelCategory.INSTANT_MESSAGE, handle.label),
                    }

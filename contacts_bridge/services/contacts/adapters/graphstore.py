"""
Graph Store Contacts Adapter

Implements ContactsBackend over a keyed object graph persisted as JSON.
Each contact is an object whose properties are keys (givenName,
phoneNumbers, birthday, ...). Fetches name the keys they need; reading a
key that was not fetched raises PropertyNotFetchedError. Writes go through
save requests that are committed atomically under the store's lock.
"""

import base64
import copy
import functools
import json
import logging
import os
import threading
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, FrozenSet, Iterable, List, Optional, Set

from contacts_bridge.config import DATA_DIR

from ..interface import (
    Address, BackendError, ContactNotFoundError, ContactsAccount, ContactsBackend, Email, Event,
    Mutation, MutationBatch, MutationKind, Name, NAME_FIELDS, NativeContact, NoActivityError, Note,
    InstantMessage, Organization, PermissionDeniedError, PermissionPrompter, PermissionRequestError,
    Phone, PropertyGroup, SocialProfile, Website, format_display_name,
)
from ..labels import GRAPH_BIRTHDAY, GRAPH_VOCABULARY, LabelCategory, split_graph_label

logger = logging.getLogger(__name__)

# In-place change to one stored contact
Change = Callable[[Dict[str, Any]], None]

CONTACTS_ENTITY = "CONTACTS"

AUTHORIZED_STATUSES = ("authorized", "limited")
REFUSED_STATUSES = ("denied", "restricted")

NAME_KEYS = tuple(NAME_FIELDS.values())
ORGANIZATION_KEYS = ("organizationName", "jobTitle", "departmentName")

# Key descriptors fetched for each property group
GROUP_KEYS: Dict[PropertyGroup, tuple] = {
    PropertyGroup.NAME: NAME_KEYS,
    PropertyGroup.PHONES: ("phoneNumbers",),
    PropertyGroup.EMAILS: ("emailAddresses",),
    PropertyGroup.ADDRESSES: ("postalAddresses",),
    PropertyGroup.ORGANIZATIONS: ORGANIZATION_KEYS,
    PropertyGroup.WEBSITES: ("urlAddresses",),
    PropertyGroup.NOTES: ("note",),
    PropertyGroup.EVENTS: ("birthday", "dates"),
    PropertyGroup.SOCIAL_PROFILES: ("socialProfiles",),
    PropertyGroup.INSTANT_MESSAGES: ("instantMessageAddresses",),
    PropertyGroup.THUMBNAIL: ("thumbnailImageData",),
    PropertyGroup.PHOTO: ("imageData",),
}

# Needed by the display-name formatter on every fetch
DISPLAY_NAME_KEYS = ("namePrefix", "givenName", "middleName", "familyName", "nameSuffix")

# Labeled-value keys and the categories of their labels
LABELED_KEYS = {
    PropertyGroup.PHONES: ("phoneNumbers", LabelCategory.PHONE),
    PropertyGroup.EMAILS: ("emailAddresses", LabelCategory.EMAIL),
    PropertyGroup.ADDRESSES: ("postalAddresses", LabelCategory.ADDRESS),
    PropertyGroup.WEBSITES: ("urlAddresses", LabelCategory.WEBSITE),
    PropertyGroup.SOCIAL_PROFILES: ("socialProfiles", LabelCategory.SOCIAL_PROFILE),
    PropertyGroup.INSTANT_MESSAGES: ("instantMessageAddresses", LabelCategory.INSTANT_MESSAGE),
}


class PropertyNotFetchedError(BackendError):
    """A contact key was read without having been fetched."""


def keys_for(groups: Iterable[PropertyGroup]) -> FrozenSet[str]:
    keys: Set[str] = set(DISPLAY_NAME_KEYS)
    for group in groups:
        keys.update(GROUP_KEYS[group])
    return frozenset(keys)


def new_identifier() -> str:
    return f"{str(uuid.uuid4()).upper()}:ABPerson"


def new_labeled_value(label: str, value: Any) -> Dict[str, Any]:
    return {"identifier": str(uuid.uuid4()).upper(), "label": label, "value": value}


class GraphContact:
    """Immutable, partially fetched view of one stored contact."""

    def __init__(self, identifier: str, values: Dict[str, Any], fetched_keys: FrozenSet[str]):
        self.identifier = identifier
        self._values = {k: copy.deepcopy(v) for k, v in values.items() if k in fetched_keys}
        self.fetched_keys = fetched_keys

    def is_key_available(self, key: str) -> bool:
        return key in self.fetched_keys

    def __getitem__(self, key: str) -> Any:
        if key not in self.fetched_keys:
            raise PropertyNotFetchedError(
                f"A property was not requested when contact was fetched: {key}"
            )
        return self._values.get(key)

    def get(self, key: str, default: Any = None) -> Any:
        value = self[key]
        return default if value is None else value


@dataclass
class SaveRequest:
    """
    Pending adds, updates and deletes, executed as one unit.

    Updates are changes applied to the stored contact inside execute(), so
    they always see the latest committed values.
    """
    adds: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    updates: Dict[str, List[Change]] = field(default_factory=dict)
    deletes: List[str] = field(default_factory=list)

    def add(self, identifier: str, values: Dict[str, Any]) -> None:
        self.adds[identifier] = values

    def update(self, identifier: str, change: Change) -> None:
        self.updates.setdefault(identifier, []).append(change)

    def delete(self, identifier: str) -> None:
        self.deletes.append(identifier)

    def __len__(self) -> int:
        return len(self.adds) + len(self.updates) + len(self.deletes)


class GraphStore:
    """
    JSON-persisted contact graph.

    Layout: {"contacts": {identifier: {key: value}}}; insertion order is the
    store's native enumeration order.
    """

    def __init__(self, path: Path):
        self.path = path
        self._lock = threading.Lock()

    def _load(self) -> Dict[str, Dict[str, Any]]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text())
        except ValueError as e:
            raise BackendError(f"Contact store {self.path} is corrupt", details=str(e)) from e
        return data.get("contacts", {})

    def _write(self, contacts: Dict[str, Dict[str, Any]]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_name(self.path.name + ".tmp")
        tmp.write_text(json.dumps({"contacts": contacts}, indent=2))
        os.replace(tmp, self.path)

    def provision(self) -> None:
        with self._lock:
            if not self.path.exists():
                self._write({})

    def unified_contacts(
        self,
        keys: FrozenSet[str],
        identifier: Optional[str] = None
    ) -> List[GraphContact]:
        """Fetch contacts with the given keys, optionally just one identifier."""
        with self._lock:
            contacts = self._load()
        if identifier is not None:
            values = contacts.get(identifier)
            return [GraphContact(identifier, values, keys)] if values is not None else []
        return [GraphContact(ident, values, keys) for ident, values in contacts.items()]

    def execute(self, request: SaveRequest) -> None:
        """
        Apply a save request atomically.

        Raises:
            ContactNotFoundError: If an update or delete targets a missing contact
            BackendError: If the store cannot be written
        """
        with self._lock:
            contacts = self._load()
            for identifier in list(request.updates) + request.deletes:
                if identifier not in contacts:
                    raise ContactNotFoundError(f"Contact not found with ID: {identifier}")

            contacts.update(request.adds)
            for identifier, changes in request.updates.items():
                for change in changes:
                    change(contacts[identifier])
            for identifier in request.deletes:
                del contacts[identifier]

            try:
                self._write(contacts)
            except OSError as e:
                raise BackendError(f"Failed to save contact store {self.path}", details=str(e)) from e


def _b64encode(blob: Optional[bytes]) -> Optional[str]:
    return base64.b64encode(blob).decode("ascii") if blob else None


def _b64decode(text: Optional[str]) -> Optional[bytes]:
    return base64.b64decode(text) if text else None


def _date_value(year: Optional[int], month: int, day: int) -> Dict[str, int]:
    value = {"month": month, "day": day}
    if year is not None:
        value["year"] = year
    return value


class GraphStoreBackend(ContactsBackend):
    """
    Keyed-object-graph contacts store.

    Config:
        path: JSON file (default: <data dir>/<account name>.json)
        authorization: Initial status (notDetermined, restricted, denied,
            authorized, limited; default notDetermined)
    """

    adapter_type = "graphstore"
    vocabulary = GRAPH_VOCABULARY

    def __init__(self, account: ContactsAccount, prompter: Optional[PermissionPrompter] = None):
        super().__init__(account, prompter)
        config = account.config
        self.store = GraphStore(Path(config.get("path", str(DATA_DIR / f"{account.name}.json"))))
        self._authorization: str = config.get("authorization", "notDetermined")

    def connect(self) -> bool:
        try:
            self.store.provision()
        except OSError as e:
            logger.error(f"❌ Failed to open graph store {self.store.path}: {e}")
            return False
        logger.info(f"✅ Opened graph store: {self.store.path}")
        return True

    def disconnect(self) -> None:
        pass

    # =========================================================================
    # PERMISSIONS
    # =========================================================================

    def permission_status(self) -> str:
        return self._authorization

    def request_permission(self, read_only: bool = False) -> str:
        # The graph store has a single access level; read_only is irrelevant
        if self._authorization in AUTHORIZED_STATUSES:
            return "granted"
        if self._authorization in REFUSED_STATUSES:
            return "denied"

        if self.prompter is None:
            raise NoActivityError("No host available to request contacts access")

        try:
            answers = self.prompter([CONTACTS_ENTITY])
        except Exception as e:
            raise PermissionRequestError("Failed to request permission", details=str(e)) from e

        self._authorization = "authorized" if answers.get(CONTACTS_ENTITY) else "denied"
        logger.info(f"Contacts access request -> {self._authorization}")
        return "granted" if self._authorization == "authorized" else "denied"

    def check_access(self, write: bool = False) -> None:
        if self._authorization not in AUTHORIZED_STATUSES:
            raise PermissionDeniedError(f"Contacts access not authorized ({self._authorization})")

    # =========================================================================
    # READS
    # =========================================================================

    def enumerate(
        self,
        groups: FrozenSet[PropertyGroup],
        name_query: Optional[str] = None
    ) -> List[NativeContact]:
        contacts = [self._native(c) for c in self.store.unified_contacts(keys_for(groups))]
        if not name_query:
            return contacts
        needle = name_query.casefold()
        return [c for c in contacts if needle in c.display_name.casefold()]

    def lookup(self, contact_id: str, groups: FrozenSet[PropertyGroup]) -> Optional[NativeContact]:
        if not contact_id:
            return None
        found = self.store.unified_contacts(keys_for(groups), identifier=contact_id)
        return self._native(found[0]) if found else None

    def _native(self, contact: GraphContact) -> NativeContact:
        display_name = format_display_name({key: contact[key] for key in DISPLAY_NAME_KEYS})
        return NativeContact(id=contact.identifier, display_name=display_name, payload=contact)

    def read_group(self, contact: NativeContact, group: PropertyGroup) -> Any:
        graph: GraphContact = contact.payload

        if group is PropertyGroup.NAME:
            return Name.from_dict({key: graph.get(key, "") for key in NAME_KEYS})

        if group in LABELED_KEYS:
            key, category = LABELED_KEYS[group]
            return [self._labeled(group, category, item) for item in graph.get(key, [])]

        if group is PropertyGroup.ORGANIZATIONS:
            org = Organization(
                name=graph.get("organizationName", ""),
                job_title=graph.get("jobTitle", ""),
                department=graph.get("departmentName", ""),
            )
            return [] if org.is_empty() else [org]

        if group is PropertyGroup.NOTES:
            note = graph.get("note", "")
            return [Note(note)] if note else []

        if group is PropertyGroup.EVENTS:
            return self._read_events(graph)

        if group is PropertyGroup.THUMBNAIL:
            return _b64decode(graph["thumbnailImageData"])

        if group is PropertyGroup.PHOTO:
            return _b64decode(graph["imageData"])

        raise ValueError(f"Unknown property group: {group}")

    def _label(self, category: LabelCategory, native: Optional[str]) -> str:
        raw, custom_text = split_graph_label(native)
        return self.vocabulary.to_label(category, raw, custom_text)

    def _labeled(self, group: PropertyGroup, category: LabelCategory, item: Dict[str, Any]):
        native = item.get("label") or ""
        label = self._label(category, native)
        value = item["value"]

        if group is PropertyGroup.PHONES:
            return Phone(number=value, label=label, raw_type=native)
        if group is PropertyGroup.EMAILS:
            return Email(email=value, label=label, raw_type=native)
        if group is PropertyGroup.WEBSITES:
            return Website(url=value, label=label, raw_type=native)
        if group is PropertyGroup.SOCIAL_PROFILES:
            return SocialProfile(
                service=value.get("service", ""),
                username=value.get("username", ""),
                user_identifier=value.get("userIdentifier", ""),
                url=value.get("urlString", ""),
                label=label,
                raw_type=native,
            )
        if group is PropertyGroup.INSTANT_MESSAGES:
            return InstantMessage(
                username=value.get("username", ""),
                service=value.get("service", ""),
                label=label,
                raw_type=native,
            )
        return Address(
            street=value.get("street", ""),
            city=value.get("city", ""),
            state=value.get("state", ""),
            postal_code=value.get("postalCode", ""),
            country=value.get("country", ""),
            iso_country_code=value.get("isoCountryCode", ""),
            label=label,
            raw_type=native,
        )

    def _read_events(self, graph: GraphContact) -> List[Event]:
        events = []
        birthday = graph["birthday"]
        if birthday:
            events.append(Event(
                month=birthday["month"],
                day=birthday["day"],
                year=birthday.get("year"),
                label="birthday",
                raw_type=GRAPH_BIRTHDAY,
            ))
        for item in graph.get("dates", []):
            value = item["value"]
            native = item.get("label") or ""
            events.append(Event(
                month=value["month"],
                day=value["day"],
                year=value.get("year"),
                label=self._label(LabelCategory.EVENT, native),
                raw_type=native,
            ))
        return events

    # =========================================================================
    # WRITES
    # =========================================================================

    def apply_batch(self, batch: MutationBatch) -> List[Optional[str]]:
        """
        Stage every operation in one save request.

        New contacts are built up front; changes to existing contacts are
        replayed on the stored values under the store's lock.
        """
        request = SaveRequest()
        results: List[Optional[str]] = []

        for op in batch:
            if op.kind is MutationKind.CREATE:
                identifier = new_identifier()
                request.add(identifier, {})
                results.append(identifier)
                continue

            if op.back_reference is not None:
                self._stage(request.adds[results[op.back_reference]], op)
            else:
                request.update(op.contact_id, functools.partial(self._stage, op=op))
            results.append(None)

        if len(request):
            self.store.execute(request)
        return results

    def _stage(self, values: Dict[str, Any], op: Mutation) -> None:
        if op.kind is MutationKind.CLEAR:
            self._clear(values, op.group)
        elif op.kind is MutationKind.ASSIGN:
            self._assign(values, op.group, op.values)
        else:
            self._insert(values, op.group, op.values)

    def delete(self, contact_id: str) -> None:
        request = SaveRequest()
        request.delete(contact_id)
        self.store.execute(request)

    def _clear(self, values: Dict[str, Any], group: PropertyGroup) -> None:
        if group in LABELED_KEYS:
            values[LABELED_KEYS[group][0]] = []
        elif group is PropertyGroup.ORGANIZATIONS:
            for key in ORGANIZATION_KEYS:
                values[key] = ""
        elif group is PropertyGroup.NOTES:
            values["note"] = ""
        elif group is PropertyGroup.EVENTS:
            values["birthday"] = None
            values["dates"] = []
        elif group in (PropertyGroup.PHOTO, PropertyGroup.THUMBNAIL):
            values["imageData"] = None
            values["thumbnailImageData"] = None
        else:
            for key in NAME_KEYS:
                values[key] = ""

    def _assign(self, values: Dict[str, Any], group: PropertyGroup, fields: Dict[str, Any]) -> None:
        if group is PropertyGroup.NAME:
            for key, value in fields.items():
                if key in NAME_KEYS:
                    values[key] = value
        elif group is PropertyGroup.PHOTO:
            photo = fields.get("photo")
            values["imageData"] = _b64encode(photo)
            values["thumbnailImageData"] = _b64encode(fields.get("thumbnail")) if photo else None
        else:
            raise ValueError(f"Cannot assign {group.value}")

    def _insert(self, values: Dict[str, Any], group: PropertyGroup, fields: Dict[str, Any]) -> None:
        if group is PropertyGroup.PHONES:
            values.setdefault("phoneNumbers", []).append(
                new_labeled_value(fields["rawType"], fields["number"]))
        elif group is PropertyGroup.EMAILS:
            values.setdefault("emailAddresses", []).append(
                new_labeled_value(fields["rawType"], fields["email"]))
        elif group is PropertyGroup.WEBSITES:
            values.setdefault("urlAddresses", []).append(
                new_labeled_value(fields["rawType"], fields["url"]))
        elif group is PropertyGroup.ADDRESSES:
            address = {k: fields.get(k, "") for k in
                       ("street", "city", "state", "postalCode", "country", "isoCountryCode")}
            values.setdefault("postalAddresses", []).append(
                new_labeled_value(fields["rawType"], address))
        elif group is PropertyGroup.SOCIAL_PROFILES:
            profile = {
                "service": fields.get("service", ""),
                "username": fields.get("username", ""),
                "userIdentifier": fields.get("userIdentifier", ""),
                "urlString": fields.get("url", ""),
            }
            values.setdefault("socialProfiles", []).append(
                new_labeled_value(fields["rawType"], profile))
        elif group is PropertyGroup.INSTANT_MESSAGES:
            handle = {"service": fields.get("service", ""), "username": fields["username"]}
            values.setdefault("instantMessageAddresses", []).append(
                new_labeled_value(fields["rawType"], handle))
        elif group is PropertyGroup.ORGANIZATIONS:
            if any(values.get(key) for key in ORGANIZATION_KEYS):
                logger.debug("Graph store holds a single organization; ignoring extra entry")
                return
            values["organizationName"] = fields.get("name", "")
            values["jobTitle"] = fields.get("jobTitle", "")
            values["departmentName"] = fields.get("department", "")
        elif group is PropertyGroup.NOTES:
            existing = values.get("note") or ""
            values["note"] = f"{existing}\n{fields['note']}" if existing else fields["note"]
        elif group is PropertyGroup.EVENTS:
            date = _date_value(fields.get("year"), fields["month"], fields["day"])
            if fields["rawType"] == GRAPH_BIRTHDAY and not values.get("birthday"):
                values["birthday"] = date
            else:
                values.setdefault("dates", []).append(new_labeled_value(fields["rawType"], date))
        else:
            raise ValueError(f"Cannot insert values into {group.value}")

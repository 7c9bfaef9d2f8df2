"""
Contacts Service Interface

Core abstraction for native address-book backends. Adapters implement
ContactsBackend to expose one store (row store, graph store, ...) through
the neutral contact schema defined here.
"""

import base64
import binascii
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, FrozenSet, Iterable, Iterator, List, Mapping, Optional


# =============================================================================
# PROPERTY GROUPS
# =============================================================================

class PropertyGroup(Enum):
    """Independently fetchable subsets of a contact."""
    NAME = "name"
    PHONES = "phones"
    EMAILS = "emails"
    ADDRESSES = "addresses"
    ORGANIZATIONS = "organizations"
    WEBSITES = "websites"
    NOTES = "notes"
    EVENTS = "events"
    SOCIAL_PROFILES = "social_profiles"
    INSTANT_MESSAGES = "instant_messages"
    THUMBNAIL = "thumbnail"
    PHOTO = "photo"


PROPERTY_GROUPS: FrozenSet[PropertyGroup] = frozenset(
    g for g in PropertyGroup if g not in (PropertyGroup.THUMBNAIL, PropertyGroup.PHOTO)
)
ALL_GROUPS: FrozenSet[PropertyGroup] = frozenset(PropertyGroup)


def groups_for(
    with_properties: bool = False,
    with_thumbnail: bool = False,
    with_photo: bool = False
) -> FrozenSet[PropertyGroup]:
    """Translate the wire fetch flags into a set of property groups."""
    groups = set()
    if with_properties:
        groups |= PROPERTY_GROUPS
    if with_thumbnail:
        groups.add(PropertyGroup.THUMBNAIL)
    if with_photo:
        groups.add(PropertyGroup.PHOTO)
    return frozenset(groups)


# =============================================================================
# ERRORS
# =============================================================================

class ContactsBridgeError(Exception):
    """
    Base error carrying a structured result code.

    A code of None means "use the failing operation's catch-all code"
    (FETCH_ERROR, CREATE_ERROR, ...).
    """

    code: Optional[str] = None

    def __init__(self, message: str, details: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.details = details


class InvalidArgumentsError(ContactsBridgeError):
    code = "INVALID_ARGUMENTS"


class PermissionDeniedError(ContactsBridgeError):
    code = "PERMISSION_DENIED"


class PermissionRequestError(ContactsBridgeError):
    code = "PERMISSION_ERROR"


class ContactNotFoundError(ContactsBridgeError):
    code = "CONTACT_NOT_FOUND"


class NoContextError(ContactsBridgeError):
    code = "NO_CONTEXT"


class NoActivityError(ContactsBridgeError):
    code = "NO_ACTIVITY"


class BackendError(ContactsBridgeError):
    """Native store failure; reported under the operation's own code."""


# =============================================================================
# NEUTRAL SCHEMA
# =============================================================================

NAME_FIELDS = {
    "given_name": "givenName",
    "family_name": "familyName",
    "middle_name": "middleName",
    "name_prefix": "namePrefix",
    "name_suffix": "nameSuffix",
    "nickname": "nickname",
    "phonetic_given_name": "phoneticGivenName",
    "phonetic_middle_name": "phoneticMiddleName",
    "phonetic_family_name": "phoneticFamilyName",
}

_NON_DIGITS = re.compile(r"[^0-9]")


def normalize_number(number: str) -> str:
    """Digits-only form of a phone number."""
    return _NON_DIGITS.sub("", number or "")


def format_display_name(fields: Mapping[str, Optional[str]]) -> str:
    """Full name from wire-keyed name components, in Western order."""
    parts = [
        fields.get("namePrefix"),
        fields.get("givenName"),
        fields.get("middleName"),
        fields.get("familyName"),
        fields.get("nameSuffix"),
    ]
    return " ".join(p.strip() for p in parts if p and p.strip())


def _text(data: Mapping[str, Any], key: str, where: str) -> str:
    value = data.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise InvalidArgumentsError(f"{where}.{key} must be a string")
    return value


def _opt_int(data: Mapping[str, Any], key: str, where: str) -> Optional[int]:
    value = data.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidArgumentsError(f"{where}.{key} must be an integer")
    return value


def _maps(data: Mapping[str, Any], key: str) -> List[Mapping[str, Any]]:
    value = data.get(key)
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(v, dict) for v in value):
        raise InvalidArgumentsError(f"{key} must be a list of maps")
    return value


def _blob(value: Any, key: str) -> Optional[bytes]:
    if value is None:
        return None
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    if isinstance(value, str):
        try:
            return base64.b64decode(value, validate=True)
        except (binascii.Error, ValueError):
            raise InvalidArgumentsError(f"{key} must be binary data or base64 text")
    raise InvalidArgumentsError(f"{key} must be binary data or base64 text")


@dataclass
class Name:
    """
    Structured name.

    None means "not provided" (only meaningful for writes); projected names
    always carry strings.
    """
    given_name: Optional[str] = None
    family_name: Optional[str] = None
    middle_name: Optional[str] = None
    name_prefix: Optional[str] = None
    name_suffix: Optional[str] = None
    nickname: Optional[str] = None
    phonetic_given_name: Optional[str] = None
    phonetic_middle_name: Optional[str] = None
    phonetic_family_name: Optional[str] = None

    def __str__(self):
        return format_display_name(self.to_dict())

    @classmethod
    def empty(cls) -> "Name":
        return cls(**{attr: "" for attr in NAME_FIELDS})

    def provided(self) -> Dict[str, str]:
        """Wire-keyed fields that were explicitly set."""
        return {
            wire: getattr(self, attr)
            for attr, wire in NAME_FIELDS.items()
            if getattr(self, attr) is not None
        }

    def to_dict(self) -> Dict[str, str]:
        return {wire: getattr(self, attr) or "" for attr, wire in NAME_FIELDS.items()}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Name":
        values = {}
        for attr, wire in NAME_FIELDS.items():
            if wire in data and data[wire] is not None:
                values[attr] = _text(data, wire, "name")
        return cls(**values)


@dataclass
class Phone:
    """Phone number."""
    number: str
    label: str = "other"
    raw_type: Any = None

    @property
    def normalized_number(self) -> str:
        return normalize_number(self.number)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "number": self.number,
            "normalizedNumber": self.normalized_number,
            "label": self.label,
            "rawType": self.raw_type,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Phone":
        return cls(
            number=_text(data, "number", "phones"),
            label=_text(data, "label", "phones") or "other",
        )


@dataclass
class Email:
    """Email address."""
    email: str
    label: str = "other"
    raw_type: Any = None

    def to_dict(self) -> Dict[str, Any]:
        return {"email": self.email, "label": self.label, "rawType": self.raw_type}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Email":
        return cls(
            email=_text(data, "email", "emails"),
            label=_text(data, "label", "emails") or "other",
        )


@dataclass
class Address:
    """Postal address."""
    street: str = ""
    city: str = ""
    state: str = ""
    postal_code: str = ""
    country: str = ""
    iso_country_code: str = ""
    label: str = "other"
    raw_type: Any = None

    def is_empty(self) -> bool:
        return not any([self.street, self.city, self.state, self.postal_code, self.country])

    def to_dict(self) -> Dict[str, Any]:
        return {
            "street": self.street,
            "city": self.city,
            "state": self.state,
            "postalCode": self.postal_code,
            "country": self.country,
            "isoCountryCode": self.iso_country_code,
            "label": self.label,
            "rawType": self.raw_type,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Address":
        return cls(
            street=_text(data, "street", "addresses"),
            city=_text(data, "city", "addresses"),
            state=_text(data, "state", "addresses"),
            postal_code=_text(data, "postalCode", "addresses"),
            country=_text(data, "country", "addresses"),
            iso_country_code=_text(data, "isoCountryCode", "addresses"),
            label=_text(data, "label", "addresses") or "other",
        )


@dataclass
class Organization:
    """Organization/company info."""
    name: str = ""
    job_title: str = ""
    department: str = ""

    def is_empty(self) -> bool:
        return not (self.name or self.job_title or self.department)

    def to_dict(self) -> Dict[str, str]:
        return {"name": self.name, "jobTitle": self.job_title, "department": self.department}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Organization":
        return cls(
            name=_text(data, "name", "organizations"),
            job_title=_text(data, "jobTitle", "organizations"),
            department=_text(data, "department", "organizations"),
        )


@dataclass
class Website:
    """Website URL."""
    url: str
    label: str = "other"
    raw_type: Any = None

    def to_dict(self) -> Dict[str, Any]:
        return {"url": self.url, "label": self.label, "rawType": self.raw_type}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Website":
        return cls(
            url=_text(data, "url", "websites"),
            label=_text(data, "label", "websites") or "other",
        )


@dataclass
class SocialProfile:
    """Account on a social service (Twitter, LinkedIn, ...)."""
    service: str = ""
    username: str = ""
    user_identifier: str = ""
    url: str = ""
    label: str = "other"
    raw_type: Any = None

    def is_empty(self) -> bool:
        return not (self.username or self.user_identifier or self.url)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "service": self.service,
            "username": self.username,
            "userIdentifier": self.user_identifier,
            "url": self.url,
            "label": self.label,
            "rawType": self.raw_type,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SocialProfile":
        return cls(
            service=_text(data, "service", "socialProfiles"),
            username=_text(data, "username", "socialProfiles"),
            user_identifier=_text(data, "userIdentifier", "socialProfiles"),
            url=_text(data, "url", "socialProfiles"),
            label=_text(data, "label", "socialProfiles") or "other",
        )


@dataclass
class InstantMessage:
    """Instant messaging handle."""
    username: str
    service: str = ""
    label: str = "other"
    raw_type: Any = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "service": self.service,
            "username": self.username,
            "label": self.label,
            "rawType": self.raw_type,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "InstantMessage":
        return cls(
            username=_text(data, "username", "instantMessages"),
            service=_text(data, "service", "instantMessages"),
            label=_text(data, "label", "instantMessages") or "other",
        )


@dataclass
class Note:

    note: str

    def to_dict(self) -> Dict[str, str]:
        return {"note": self.note}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Note":
        return cls(note=_text(data, "note", "notes"))


@dataclass
class Event:
    """Dated event (birthday, anniversary, ...). Year may be open."""
    month: int
    day: int
    year: Optional[int] = None
    label: str = "other"
    raw_type: Any = None

    def to_dict(self) -> Dict[str, Any]:
        data = {"label": self.label, "month": self.month, "day": self.day, "rawType": self.raw_type}
        if self.year is not None:
            data["year"] = self.year
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], default_label: str = "other") -> "Event":
        month = _opt_int(data, "month", "events")
        day = _opt_int(data, "day", "events")
        if month is None or day is None:
            raise InvalidArgumentsError("events require both month and day")
        if not 1 <= month <= 12 or not 1 <= day <= 31:
            raise InvalidArgumentsError(f"Invalid event date: month={month} day={day}")
        return cls(
            month=month,
            day=day,
            year=_opt_int(data, "year", "events"),
            label=_text(data, "label", "events") or default_label,
        )


# Sequence groups: record attribute, wire key, accepted aliases, item parser
_SEQUENCE_FIELDS = {
    PropertyGroup.PHONES: ("phones", "phones", ("phoneNumbers",), Phone.from_dict),
    PropertyGroup.EMAILS: ("emails", "emails", ("emailAddresses",), Email.from_dict),
    PropertyGroup.ADDRESSES: ("addresses", "addresses", ("postalAddresses",), Address.from_dict),
    PropertyGroup.ORGANIZATIONS: ("organizations", "organizations", (), Organization.from_dict),
    PropertyGroup.WEBSITES: ("websites", "websites", ("urlAddresses",), Website.from_dict),
    PropertyGroup.NOTES: ("notes", "notes", (), Note.from_dict),
    PropertyGroup.EVENTS: ("events", "events", (), Event.from_dict),
    PropertyGroup.SOCIAL_PROFILES: ("social_profiles", "socialProfiles", (), SocialProfile.from_dict),
    PropertyGroup.INSTANT_MESSAGES: (
        "instant_messages", "instantMessages", ("instantMessageAddresses",), InstantMessage.from_dict
    ),
}



@dataclass
class ContactRecord:
    """
    Neutral contact record exchanged across the bridge.

    Group attributes are None when the group was not fetched (reads) or not
    provided (writes); provided_groups records which groups a write payload
    actually carried.
    """
    id: str = ""
    display_name: str = ""
    is_starred: bool = False
    name: Optional[Name] = None
    phones: Optional[List[Phone]] = None
    emails: Optional[List[Email]] = None
    addresses: Optional[List[Address]] = None
    organizations: Optional[List[Organization]] = None
    websites: Optional[List[Website]] = None
    notes: Optional[List[Note]] = None
    events: Optional[List[Event]] = None
    social_profiles: Optional[List[SocialProfile]] = None
    instant_messages: Optional[List[InstantMessage]] = None
    thumbnail: Optional[bytes] = None
    photo: Optional[bytes] = None
    properties_fetched: bool = False
    thumbnail_fetched: bool = False
    photo_fetched: bool = False
    provided_groups: FrozenSet[PropertyGroup] = field(default_factory=frozenset, repr=False)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "displayName": self.display_name,
            "isStarred": self.is_starred,
            "propertiesFetched": self.properties_fetched,
            "thumbnailFetched": self.thumbnail_fetched,
            "photoFetched": self.photo_fetched,
        }
        if self.name is not None:
            data["name"] = self.name.to_dict()
        for attr, key, _, _ in _SEQUENCE_FIELDS.values():
            items = getattr(self, attr)
            if items is not None:
                data[key] = [item.to_dict() for item in items]
        if self.thumbnail_fetched:
            data["thumbnail"] = self.thumbnail
        if self.photo_fetched:
            data["photo"] = self.photo
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ContactRecord":
        """
        Parse a (partial) wire payload.

        Raises:
            InvalidArgumentsError: If a field has the wrong shape
        """
        if not isinstance(data, Mapping):
            raise InvalidArgumentsError("Contact data must be a map")

        contact_id = data.get("id")
        if contact_id is not None and not isinstance(contact_id, str):
            raise InvalidArgumentsError("id must be a string")

        record = cls(id=contact_id or "")
        provided = set()

        if data.get("name") is not None:
            if not isinstance(data["name"], Mapping):
                raise InvalidArgumentsError("name must be a map")
            record.name = Name.from_dict(data["name"])
            provided.add(PropertyGroup.NAME)

        for group, (attr, key, aliases, parse) in _SEQUENCE_FIELDS.items():
            for wire_key in (key,) + aliases:
                if wire_key in data:
                    setattr(record, attr, [parse(item) for item in _maps(data, wire_key)])
                    provided.add(group)
                    break

        # Single-valued shorthands
        if "note" in data and PropertyGroup.NOTES not in provided:
            note = data["note"]
            if note is not None and not isinstance(note, str):
                raise InvalidArgumentsError("note must be a string")
            record.notes = [Note(note)] if note else []
            provided.add(PropertyGroup.NOTES)

        if "organization" in data and PropertyGroup.ORGANIZATIONS not in provided:
            org = data["organization"]
            if org is not None and not isinstance(org, Mapping):
                raise InvalidArgumentsError("organization must be a map")
            record.organizations = [Organization.from_dict(org)] if org else []
            provided.add(PropertyGroup.ORGANIZATIONS)

        if data.get("birthday") is not None:
            if not isinstance(data["birthday"], Mapping):
                raise InvalidArgumentsError("birthday must be a map")
            birthday = Event.from_dict(data["birthday"], default_label="birthday")
            birthday.label = "birthday"
            record.events = [e for e in (record.events or []) if e.label != "birthday"] + [birthday]
            provided.add(PropertyGroup.EVENTS)

        for group, key in ((PropertyGroup.PHOTO, "photo"), (PropertyGroup.THUMBNAIL, "thumbnail")):
            if key in data:
                setattr(record, key, _blob(data[key], key))
                provided.add(group)

        record.provided_groups = frozenset(provided)
        return record


# =============================================================================
# NATIVE HANDLES AND MUTATIONS
# =============================================================================

@dataclass
class NativeContact:
    """
    Reference to one contact inside a backend store.

    payload is backend-specific (e.g. a partially fetched graph object).
    """
    id: str
    display_name: str = ""
    is_starred: bool = False
    payload: Any = None


class MutationKind(Enum):
    CREATE = "create"   # new contact root
    INSERT = "insert"   # append one value to a group
    ASSIGN = "assign"   # set fields of a single-valued group
    CLEAR = "clear"     # remove every value of a group


@dataclass
class Mutation:
    """One staged write intent."""
    kind: MutationKind
    group: Optional[PropertyGroup] = None
    values: Dict[str, Any] = field(default_factory=dict)
    contact_id: Optional[str] = None
    back_reference: Optional[int] = None


class MutationBatch:
    """
    Ordered mutation intents submitted to a backend as one unit.

    Operations target either an existing contact id or a back-reference:
    the index of an earlier CREATE in the same batch, resolved by the
    backend once that CREATE has produced an identifier.
    """

    def __init__(self):
        self.operations: List[Mutation] = []

    def __len__(self) -> int:
        return len(self.operations)

    def __iter__(self) -> Iterator[Mutation]:
        return iter(self.operations)

    def create(self) -> int:
        """Stage a new contact root. Returns its back-reference index."""
        self.operations.append(Mutation(MutationKind.CREATE))
        return len(self.operations) - 1

    def insert(
        self,
        group: PropertyGroup,
        values: Dict[str, Any],
        contact_id: Optional[str] = None,
        back_reference: Optional[int] = None
    ) -> None:
        self._stage(MutationKind.INSERT, group, values, contact_id, back_reference)

    def assign(
        self,
        group: PropertyGroup,
        values: Dict[str, Any],
        contact_id: Optional[str] = None,
        back_reference: Optional[int] = None
    ) -> None:
        self._stage(MutationKind.ASSIGN, group, values, contact_id, back_reference)

    def clear(
        self,
        group: PropertyGroup,
        contact_id: Optional[str] = None,
        back_reference: Optional[int] = None
    ) -> None:
        self._stage(MutationKind.CLEAR, group, {}, contact_id, back_reference)

    def _stage(self, kind, group, values, contact_id, back_reference) -> None:
        if (contact_id is None) == (back_reference is None):
            raise ValueError("Mutation needs exactly one of contact_id or back_reference")
        if back_reference is not None:
            if not 0 <= back_reference < len(self.operations):
                raise ValueError(f"Back-reference {back_reference} does not point at an earlier operation")
            if self.operations[back_reference].kind is not MutationKind.CREATE:
                raise ValueError(f"Back-reference {back_reference} is not a CREATE operation")
        self.operations.append(Mutation(kind, group, dict(values), contact_id, back_reference))


# =============================================================================
# ACCOUNTS AND BACKENDS
# =============================================================================

# Receives the permissions being asked for, returns what the user granted
PermissionPrompter = Callable[[List[str]], Dict[str, bool]]


def policy_prompter(policy: str) -> PermissionPrompter:
    """Non-interactive prompter that answers every request the same way."""
    grant = policy == "grant"
    return lambda permissions: {p: grant for p in permissions}


@dataclass
class ContactsAccount:
    """A named contacts store configuration."""
    name: str
    adapter: str
    config: Dict[str, Any] = field(default_factory=dict)


class ContactsBackend(ABC):
    """
    Base class for native contact stores.

    Every method performs blocking I/O against the native store; callers
    are expected to run them off the event loop.
    """

    adapter_type: str = "base"
    vocabulary = None  # LabelVocabulary used to translate this store's labels

    def __init__(self, account: ContactsAccount, prompter: Optional[PermissionPrompter] = None):
        self.account = account
        self.prompter = prompter

    @abstractmethod
    def connect(self) -> bool:
        """Open the native store. Returns False if it cannot be used."""
        pass

    @abstractmethod
    def disconnect(self) -> None:
        pass

    # Permissions

    @abstractmethod
    def permission_status(self) -> str:
        """Current authorization, in this store's status vocabulary."""
        pass

    @abstractmethod
    def request_permission(self, read_only: bool = False) -> str:
        """
        Ask the host for access.

        Raises:
            NoActivityError: If there is no host able to prompt the user
            PermissionRequestError: If the prompt itself fails
        """
        pass

    @abstractmethod
    def check_access(self, write: bool = False) -> None:
        """Raise PermissionDeniedError unless the needed access is held."""
        pass

    # Reads

    @abstractmethod
    def enumerate(
        self,
        groups: FrozenSet[PropertyGroup],
        name_query: Optional[str] = None
    ) -> List[NativeContact]:
        """
        List contacts in native order, loading what `groups` needs.

        A name_query restricts results to display names containing it,
        case-insensitively; the empty string matches everything.
        """
        pass

    @abstractmethod
    def lookup(self, contact_id: str, groups: FrozenSet[PropertyGroup]) -> Optional[NativeContact]:
        pass

    @abstractmethod
    def read_group(self, contact: NativeContact, group: PropertyGroup) -> Any:
        """Read one property group of a contact as neutral values."""
        pass

    # Writes

    @abstractmethod
    def apply_batch(self, batch: MutationBatch) -> List[Optional[str]]:
        """
        Apply every operation atomically.

        Returns one entry per operation: the new identifier for CREATE
        operations, None otherwise.
        """
        pass

    def resolve_created_id(self, created_id: str) -> str:
        """Map the identifier returned by a CREATE to the contact id."""
        return created_id

    @abstractmethod
    def delete(self, contact_id: str) -> None:
        """
        Raises:
            ContactNotFoundError: If contact_id does not exist
        """
        pass


def iter_provided(record: ContactRecord, order: Iterable[PropertyGroup]) -> Iterator[PropertyGroup]:
    """Provided groups of a write payload, in a stable order."""
    for group in order:
        if group in record.provided_groups:
            yield group

"""
Row Store Contacts Adapter

Implements ContactsBackend over a content-provider style SQLite store:

    contacts       aggregate rows (display name, starred)
    raw_contacts   one per contact, pointing at its aggregate
    data           typed rows keyed by mimetype, generic data1..data15 columns
    photo_files    full-size photo blobs referenced from photo rows

Labels are integer type codes with free text in the label column for the
custom code. New raw contacts are aggregated and display names recomputed
when a batch commits.
"""

import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, FrozenSet, Iterator, List, Optional, Sequence, Set, Tuple

from contacts_bridge.config import DATA_DIR

from ..interface import (
    Address, BackendError, ContactNotFoundError, ContactsAccount, ContactsBackend, Email, Event,
    InstantMessage, MutationBatch, MutationKind, Name, NAME_FIELDS, NativeContact, NoActivityError,
    Note, Organization, PermissionDeniedError, PermissionPrompter, PermissionRequestError, Phone,
    PropertyGroup, SocialProfile, Website, format_display_name, normalize_number,
)
from ..labels import LabelCategory, ROW_VOCABULARY

logger = logging.getLogger(__name__)

READ_CONTACTS = "READ_CONTACTS"
WRITE_CONTACTS = "WRITE_CONTACTS"

MIMETYPE_NAME = "vnd.android.cursor.item/name"
MIMETYPE_NICKNAME = "vnd.android.cursor.item/nickname"
MIMETYPE_PHONE = "vnd.android.cursor.item/phone_v2"
MIMETYPE_EMAIL = "vnd.android.cursor.item/email_v2"
MIMETYPE_POSTAL = "vnd.android.cursor.item/postal-address_v2"
MIMETYPE_ORGANIZATION = "vnd.android.cursor.item/organization"
MIMETYPE_WEBSITE = "vnd.android.cursor.item/website"
MIMETYPE_NOTE = "vnd.android.cursor.item/note"
MIMETYPE_EVENT = "vnd.android.cursor.item/contact_event"
MIMETYPE_IM = "vnd.android.cursor.item/im"
MIMETYPE_PHOTO = "vnd.android.cursor.item/photo"
MIMETYPE_SOCIAL_PROFILE = "vnd.android.cursor.item/vnd.contacts_bridge.social_profile"

GROUP_MIMETYPES = {
    PropertyGroup.NAME: (MIMETYPE_NAME, MIMETYPE_NICKNAME),
    PropertyGroup.PHONES: (MIMETYPE_PHONE,),
    PropertyGroup.EMAILS: (MIMETYPE_EMAIL,),
    PropertyGroup.ADDRESSES: (MIMETYPE_POSTAL,),
    PropertyGroup.ORGANIZATIONS: (MIMETYPE_ORGANIZATION,),
    PropertyGroup.WEBSITES: (MIMETYPE_WEBSITE,),
    PropertyGroup.NOTES: (MIMETYPE_NOTE,),
    PropertyGroup.EVENTS: (MIMETYPE_EVENT,),
    PropertyGroup.SOCIAL_PROFILES: (MIMETYPE_SOCIAL_PROFILE,),
    PropertyGroup.INSTANT_MESSAGES: (MIMETYPE_IM,),
    PropertyGroup.THUMBNAIL: (MIMETYPE_PHOTO,),
    PropertyGroup.PHOTO: (MIMETYPE_PHOTO,),
}

# Structured name row; data1 holds the formatted name
NAME_COLUMNS = {
    "givenName": "data2",
    "familyName": "data3",
    "namePrefix": "data4",
    "middleName": "data5",
    "nameSuffix": "data6",
    "phoneticGivenName": "data7",
    "phoneticMiddleName": "data8",
    "phoneticFamilyName": "data9",
}

ORGANIZATION_TYPE_WORK = 1

# IM rows: data5 is a protocol code; custom protocols keep their name in data6
IM_PROTOCOL_CUSTOM = -1
IM_PROTOCOLS = {
    0: "AIM",
    1: "MSN",
    2: "Yahoo",
    3: "Skype",
    4: "QQ",
    5: "GoogleTalk",
    6: "ICQ",
    7: "Jabber",
}

# Where the aggregate display name comes from when there is no name row
DISPLAY_NAME_FALLBACKS = (
    MIMETYPE_NICKNAME,
    MIMETYPE_ORGANIZATION,
    MIMETYPE_EMAIL,
    MIMETYPE_PHONE,
)

# SQLite INTEGER is a signed 64-bit value
MAX_ROW_ID = 2 ** 63 - 1

SCHEMA = """
CREATE TABLE IF NOT EXISTS contacts (
    _id INTEGER PRIMARY KEY AUTOINCREMENT,
    display_name TEXT NOT NULL DEFAULT '',
    starred INTEGER NOT NULL DEFAULT 0
);
CREATE TABLE IF NOT EXISTS raw_contacts (
    _id INTEGER PRIMARY KEY AUTOINCREMENT,
    contact_id INTEGER REFERENCES contacts(_id),
    account_type TEXT,
    account_name TEXT
);
CREATE TABLE IF NOT EXISTS data (
    _id INTEGER PRIMARY KEY AUTOINCREMENT,
    raw_contact_id INTEGER NOT NULL REFERENCES raw_contacts(_id),
    mimetype TEXT NOT NULL,
    data1, data2, data3, data4, data5, data6, data7, data8,
    data9, data10, data11, data12, data13, data14, data15
);
CREATE TABLE IF NOT EXISTS photo_files (
    _id INTEGER PRIMARY KEY AUTOINCREMENT,
    data BLOB NOT NULL
);
CREATE INDEX IF NOT EXISTS data_raw_contact_mimetype ON data (raw_contact_id, mimetype);
CREATE VIEW IF NOT EXISTS view_data AS
    SELECT data.*, raw_contacts.contact_id AS contact_id
    FROM data JOIN raw_contacts ON data.raw_contact_id = raw_contacts._id;
"""


def _contains_ci(haystack: Optional[str], needle: Optional[str]) -> int:
    """SQL function: case-insensitive substring test (Unicode-aware, unlike LIKE)."""
    if not needle:
        return 1
    return int(needle.casefold() in (haystack or "").casefold())


def _row_id(contact_id: Optional[str]) -> Optional[int]:
    """Parse a row store contact id; None unless it is ASCII digits within INTEGER range."""
    if not contact_id or not (contact_id.isascii() and contact_id.isdecimal()):
        return None
    value = int(contact_id)
    return value if value <= MAX_ROW_ID else None


class ContentResolver:
    """
    Cursor access to the store's tables.

    query() yields None instead of a cursor while the store file does not
    exist, the way a provider with nothing to serve answers.
    """

    def __init__(self, path: Path):
        self.path = path

    def exists(self) -> bool:
        return self.path.exists()

    def open(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        conn.create_function("contains_ci", 2, _contains_ci, deterministic=True)
        return conn

    @contextmanager
    def query(
        self,
        table: str,
        projection: Sequence[str],
        selection: Optional[str] = None,
        selection_args: Sequence[Any] = (),
        sort_order: Optional[str] = None
    ) -> Iterator[Optional[sqlite3.Cursor]]:
        if not self.exists():
            yield None
            return

        sql = f"SELECT {', '.join(projection)} FROM {table}"
        if selection:
            sql += f" WHERE {selection}"
        if sort_order:
            sql += f" ORDER BY {sort_order}"

        conn = self.open()
        try:
            yield conn.execute(sql, tuple(selection_args))
        finally:
            conn.close()


def _format_event_date(year: Optional[int], month: int, day: int) -> str:
    if year is None:
        return f"--{month:02d}-{day:02d}"
    return f"{year:04d}-{month:02d}-{day:02d}"


def _parse_event_date(value: Optional[str]) -> Tuple[Optional[int], int, int]:
    """'YYYY-MM-DD' or yearless '--MM-DD'."""
    if not value:
        raise ValueError("event row has no start date")
    if value.startswith("--"):
        parts = value[2:].split("-")
        if len(parts) < 2:
            raise ValueError(f"Malformed event date: {value!r}")
        return None, int(parts[0]), int(parts[1][:2])
    parts = value.split("-")
    if len(parts) < 3:
        raise ValueError(f"Malformed event date: {value!r}")
    return int(parts[0]), int(parts[1]), int(parts[2][:2])


def _im_protocol(service: str) -> Dict[str, Any]:
    """IM protocol columns for a service name; unknown services are custom."""
    for code, name in IM_PROTOCOLS.items():
        if service.strip().lower() == name.lower():
            return {"data5": code}
    return {"data5": IM_PROTOCOL_CUSTOM, "data6": service}


class RowStoreBackend(ContactsBackend):

    """
    Content-provider style contacts store.

    Config:
        path: SQLite file (default: <data dir>/<account name>.db)
        provision: Create the schema on connect (default: True)
        granted: Permissions already held, e.g. ["READ_CONTACTS"]
        account_type, account_name: Stamped on new raw contacts
    """

    adapter_type = "rowstore"
    vocabulary = ROW_VOCABULARY

    def __init__(self, account: ContactsAccount, prompter: Optional[PermissionPrompter] = None):
        super().__init__(account, prompter)
        config = account.config
        self.path = Path(config.get("path", str(DATA_DIR / f"{account.name}.db")))
        self.resolver = ContentResolver(self.path)
        self._granted: Set[str] = set(config.get("granted", []))
        self._readers = {
            PropertyGroup.NAME: self._read_name,
            PropertyGroup.PHONES: self._read_phones,
            PropertyGroup.EMAILS: self._read_emails,
            PropertyGroup.ADDRESSES: self._read_addresses,
            PropertyGroup.ORGANIZATIONS: self._read_organizations,
            PropertyGroup.WEBSITES: self._read_websites,
            PropertyGroup.NOTES: self._read_notes,
            PropertyGroup.EVENTS: self._read_events,
            PropertyGroup.SOCIAL_PROFILES: self._read_social_profiles,
            PropertyGroup.INSTANT_MESSAGES: self._read_instant_messages,
            PropertyGroup.THUMBNAIL: self._read_thumbnail,
            PropertyGroup.PHOTO: self._read_photo,
        }

    def connect(self) -> bool:
        """Open the store, provisioning the schema unless disabled."""
        if not self.account.config.get("provision", True):
            logger.info(f"Row store {self.path} opened without provisioning")
            return True

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            conn = self.resolver.open()
            try:
                conn.executescript(SCHEMA)
            finally:
                conn.close()
        except (sqlite3.Error, OSError) as e:
            logger.error(f"❌ Failed to open row store {self.path}: {e}")
            return False

        logger.info(f"✅ Opened row store: {self.path}")
        return True

    def disconnect(self) -> None:
        """Connections are per operation; nothing to release."""
        pass

    # =========================================================================
    # PERMISSIONS
    # =========================================================================

    def permission_status(self) -> str:
        if READ_CONTACTS in self._granted and WRITE_CONTACTS in self._granted:
            return "granted"
        if READ_CONTACTS in self._granted:
            return "grantedReadOnly"
        return "denied"

    def request_permission(self, read_only: bool = False) -> str:
        wanted = [READ_CONTACTS] if read_only else [READ_CONTACTS, WRITE_CONTACTS]
        if all(p in self._granted for p in wanted):
            return "granted"

        if self.prompter is None:
            raise NoActivityError("Activity not available")

        try:
            answers = self.prompter(wanted)
        except Exception as e:
            raise PermissionRequestError("Failed to request permission", details=str(e)) from e

        self._granted.update(p for p in wanted if answers.get(p))
        logger.info(f"Permission request {wanted} -> {sorted(self._granted)}")

        if read_only:
            return "granted" if READ_CONTACTS in self._granted else "denied"
        return self.permission_status()

    def check_access(self, write: bool = False) -> None:
        if READ_CONTACTS not in self._granted:
            raise PermissionDeniedError("READ_CONTACTS permission not granted")
        if write and WRITE_CONTACTS not in self._granted:
            raise PermissionDeniedError("WRITE_CONTACTS permission not granted")

    # =========================================================================
    # READS
    # =========================================================================

    def enumerate(
        self,
        groups: FrozenSet[PropertyGroup],
        name_query: Optional[str] = None
    ) -> List[NativeContact]:
        selection, args = None, ()
        if name_query is not None:
            selection, args = "contains_ci(display_name, ?)", (name_query,)

        with self.resolver.query(
            "contacts", ("_id", "display_name", "starred"), selection, args, "_id"
        ) as cursor:
            if cursor is None:
                return []
            return [self._native(row) for row in cursor]

    def lookup(self, contact_id: str, groups: FrozenSet[PropertyGroup]) -> Optional[NativeContact]:
        row_id = _row_id(contact_id)
        if row_id is None:
            return None

        with self.resolver.query(
            "contacts", ("_id", "display_name", "starred"), "_id = ?", (row_id,)
        ) as cursor:
            if cursor is None:
                return None
            row = cursor.fetchone()
            return self._native(row) if row else None

    def read_group(self, contact: NativeContact, group: PropertyGroup) -> Any:
        return self._readers[group](int(contact.id))

    def _native(self, row: sqlite3.Row) -> NativeContact:
        return NativeContact(
            id=str(row["_id"]),
            display_name=row["display_name"] or "",
            is_starred=row["starred"] == 1,
        )

    def _rows(self, contact_id: int, mimetype: str, columns: Sequence[str]) -> List[sqlite3.Row]:
        with self.resolver.query(
            "view_data", columns, "contact_id = ? AND mimetype = ?", (contact_id, mimetype), "_id"
        ) as cursor:
            if cursor is None:
                return []
            return cursor.fetchall()

    def _label(self, category: LabelCategory, row: sqlite3.Row) -> Tuple[str, int]:
        raw = row["data2"]
        raw_type = self.vocabulary[category].other_code if raw is None else int(raw)
        return self.vocabulary.to_label(category, raw_type, row["data3"] or ""), raw_type

    def _read_name(self, contact_id: int) -> Name:
        fields = {wire: "" for wire in NAME_FIELDS.values()}

        rows = self._rows(contact_id, MIMETYPE_NAME, list(NAME_COLUMNS.values()))
        if rows:
            for wire, column in NAME_COLUMNS.items():
                fields[wire] = rows[0][column] or ""

        nicknames = self._rows(contact_id, MIMETYPE_NICKNAME, ("data1",))
        if nicknames:
            fields["nickname"] = nicknames[0]["data1"] or ""

        return Name.from_dict(fields)

    def _read_phones(self, contact_id: int) -> List[Phone]:
        phones = []
        for row in self._rows(contact_id, MIMETYPE_PHONE, ("data1", "data2", "data3")):
            label, raw_type = self._label(LabelCategory.PHONE, row)
            phones.append(Phone(number=row["data1"] or "", label=label, raw_type=raw_type))
        return phones

    def _read_emails(self, contact_id: int) -> List[Email]:
        emails = []
        for row in self._rows(contact_id, MIMETYPE_EMAIL, ("data1", "data2", "data3")):
            label, raw_type = self._label(LabelCategory.EMAIL, row)
            emails.append(Email(email=row["data1"] or "", label=label, raw_type=raw_type))
        return emails

    def _read_addresses(self, contact_id: int) -> List[Address]:
        addresses = []
        columns = ("data2", "data3", "data4", "data7", "data8", "data9", "data10")
        for row in self._rows(contact_id, MIMETYPE_POSTAL, columns):
            label, raw_type = self._label(LabelCategory.ADDRESS, row)
            addresses.append(Address(
                street=row["data4"] or "",
                city=row["data7"] or "",
                state=row["data8"] or "",
                postal_code=row["data9"] or "",
                country=row["data10"] or "",
                label=label,
                raw_type=raw_type,
            ))
        return addresses

    def _read_organizations(self, contact_id: int) -> List[Organization]:
        organizations = []
        for row in self._rows(contact_id, MIMETYPE_ORGANIZATION, ("data1", "data4", "data5")):
            org = Organization(
                name=row["data1"] or "",
                job_title=row["data4"] or "",
                department=row["data5"] or "",
            )
            if not org.is_empty():
                organizations.append(org)
        return organizations

    def _read_websites(self, contact_id: int) -> List[Website]:
        websites = []
        for row in self._rows(contact_id, MIMETYPE_WEBSITE, ("data1", "data2", "data3")):
            label, raw_type = self._label(LabelCategory.WEBSITE, row)
            websites.append(Website(url=row["data1"] or "", label=label, raw_type=raw_type))
        return websites

    def _read_notes(self, contact_id: int) -> List[Note]:
        rows = self._rows(contact_id, MIMETYPE_NOTE, ("data1",))
        return [Note(row["data1"]) for row in rows if row["data1"]]

    def _read_events(self, contact_id: int) -> List[Event]:
        events = []
        for row in self._rows(contact_id, MIMETYPE_EVENT, ("data1", "data2", "data3")):
            label, raw_type = self._label(LabelCategory.EVENT, row)
            year, month, day = _parse_event_date(row["data1"])
            events.append(Event(month=month, day=day, year=year, label=label, raw_type=raw_type))
        return events

    def _read_social_profiles(self, contact_id: int) -> List[SocialProfile]:
        profiles = []
        columns = ("data1", "data2", "data3", "data4", "data5", "data6")
        for row in self._rows(contact_id, MIMETYPE_SOCIAL_PROFILE, columns):
            label, raw_type = self._label(LabelCategory.SOCIAL_PROFILE, row)
            profiles.append(SocialProfile(
                service=row["data4"] or "",
                username=row["data1"] or "",
                user_identifier=row["data5"] or "",
                url=row["data6"] or "",
                label=label,
                raw_type=raw_type,
            ))
        return profiles

    def _read_instant_messages(self, contact_id: int) -> List[InstantMessage]:
        handles = []
        for row in self._rows(contact_id, MIMETYPE_IM, ("data1", "data2", "data3", "data5", "data6")):
            label, raw_type = self._label(LabelCategory.INSTANT_MESSAGE, row)
            protocol = IM_PROTOCOL_CUSTOM if row["data5"] is None else int(row["data5"])
            handles.append(InstantMessage(
                username=row["data1"] or "",
                service=IM_PROTOCOLS.get(protocol) or row["data6"] or "",
                label=label,
                raw_type=raw_type,
            ))
        return handles

    def _read_thumbnail(self, contact_id: int) -> Optional[bytes]:

        rows = self._rows(contact_id, MIMETYPE_PHOTO, ("data15",))
        if rows and rows[0]["data15"] is not None:
            return bytes(rows[0]["data15"])
        return None

    def _read_photo(self, contact_id: int) -> Optional[bytes]:
        rows = self._rows(contact_id, MIMETYPE_PHOTO, ("data14", "data15"))
        if not rows:
            return None

        file_id = rows[0]["data14"]
        if file_id is not None:
            with self.resolver.query("photo_files", ("data",), "_id = ?", (file_id,)) as cursor:
                row = cursor.fetchone() if cursor is not None else None
                if row is not None:
                    return bytes(row["data"])

        # No full-size file: the thumbnail is all there is
        thumbnail = rows[0]["data15"]
        return bytes(thumbnail) if thumbnail is not None else None

    # =========================================================================
    # WRITES
    # =========================================================================

    def apply_batch(self, batch: MutationBatch) -> List[Optional[str]]:
        """Apply every operation in one transaction; back-references resolve by index."""
        if not self.resolver.exists():
            raise BackendError(f"Contacts store is not provisioned: {self.path}")

        results: List[Optional[str]] = []
        touched: Set[int] = set()

        conn = self.resolver.open()
        try:
            with conn:
                for op in batch:
                    if op.kind is MutationKind.CREATE:
                        raw_id = conn.execute(
                            "INSERT INTO raw_contacts (account_type, account_name) VALUES (?, ?)",
                            (self.account.config.get("account_type"), self.account.config.get("account_name")),
                        ).lastrowid
                        touched.add(raw_id)
                        results.append(str(raw_id))
                        continue

                    raw_id = self._target_raw_id(conn, op, results)
                    touched.add(raw_id)

                    if op.kind is MutationKind.CLEAR:
                        self._clear(conn, raw_id, op.group)
                    elif op.kind is MutationKind.ASSIGN:
                        self._assign(conn, raw_id, op.group, op.values)
                    else:
                        mimetype, columns = self._encode(op.group, op.values)
                        self._insert_data(conn, raw_id, mimetype, columns)
                    results.append(None)

                for raw_id in touched:
                    self._aggregate(conn, raw_id)
        except sqlite3.Error as e:
            raise BackendError(
                f"Batch of {len(batch)} operations failed and was rolled back", details=str(e)
            ) from e
        finally:
            conn.close()

        return results

    def resolve_created_id(self, created_id: str) -> str:
        """Raw contact id -> aggregate contact id."""
        with self.resolver.query(
            "raw_contacts", ("contact_id",), "_id = ?", (int(created_id),)
        ) as cursor:
            row = cursor.fetchone() if cursor is not None else None
            if row is not None and row["contact_id"] is not None:
                return str(row["contact_id"])
        return created_id

    def delete(self, contact_id: str) -> None:
        row_id = _row_id(contact_id)
        if row_id is None or self.lookup(contact_id, frozenset()) is None:
            raise ContactNotFoundError(f"Contact not found with ID: {contact_id}")

        conn = self.resolver.open()
        try:
            with conn:
                raw_ids = [
                    row["_id"] for row in conn.execute(
                        "SELECT _id FROM raw_contacts WHERE contact_id = ?", (row_id,)
                    )
                ]
                for raw_id in raw_ids:
                    self._delete_photo_files(conn, raw_id)
                    conn.execute("DELETE FROM data WHERE raw_contact_id = ?", (raw_id,))
                conn.execute("DELETE FROM raw_contacts WHERE contact_id = ?", (row_id,))
                conn.execute("DELETE FROM contacts WHERE _id = ?", (row_id,))
        finally:
            conn.close()

    def _target_raw_id(self, conn: sqlite3.Connection, op, results: List[Optional[str]]) -> int:
        if op.back_reference is not None:
            return int(results[op.back_reference])

        contact_id = op.contact_id or ""
        row_id = _row_id(contact_id)
        row = None
        if row_id is not None:
            row = conn.execute(
                "SELECT _id FROM raw_contacts WHERE contact_id = ? ORDER BY _id LIMIT 1",
                (row_id,),
            ).fetchone()
        if row is None:
            raise ContactNotFoundError(f"Contact not found with ID: {contact_id}")
        return row["_id"]

    def _insert_data(self, conn: sqlite3.Connection, raw_id: int, mimetype: str, columns: Dict[str, Any]) -> int:
        names = ["raw_contact_id", "mimetype"] + list(columns)
        placeholders = ", ".join("?" for _ in names)
        return conn.execute(
            f"INSERT INTO data ({', '.join(names)}) VALUES ({placeholders})",
            [raw_id, mimetype, *columns.values()],
        ).lastrowid

    def _encode(self, group: PropertyGroup, values: Dict[str, Any]) -> Tuple[str, Dict[str, Any]]:
        """Neutral value map -> (mimetype, data columns)."""
        if group is PropertyGroup.PHONES:
            return MIMETYPE_PHONE, {
                "data1": values["number"],
                "data2": values["rawType"],
                "data4": normalize_number(values["number"]),
            }
        if group is PropertyGroup.EMAILS:
            return MIMETYPE_EMAIL, {"data1": values["email"], "data2": values["rawType"]}
        if group is PropertyGroup.ADDRESSES:
            locality = " ".join(p for p in (values.get("state"), values.get("postalCode")) if p)
            formatted = ", ".join(
                p for p in (values.get("street"), values.get("city"), locality, values.get("country")) if p
            )
            return MIMETYPE_POSTAL, {
                "data1": formatted,
                "data2": values["rawType"],
                "data4": values.get("street", ""),
                "data7": values.get("city", ""),
                "data8": values.get("state", ""),
                "data9": values.get("postalCode", ""),
                "data10": values.get("country", ""),
            }
        if group is PropertyGroup.ORGANIZATIONS:
            return MIMETYPE_ORGANIZATION, {
                "data1": values.get("name", ""),
                "data2": ORGANIZATION_TYPE_WORK,
                "data4": values.get("jobTitle", ""),
                "data5": values.get("department", ""),
            }
        if group is PropertyGroup.WEBSITES:
            return MIMETYPE_WEBSITE, {"data1": values["url"], "data2": values["rawType"]}
        if group is PropertyGroup.NOTES:
            return MIMETYPE_NOTE, {"data1": values["note"]}
        if group is PropertyGroup.EVENTS:
            return MIMETYPE_EVENT, {
                "data1": _format_event_date(values.get("year"), values["month"], values["day"]),
                "data2": values["rawType"],
            }
        if group is PropertyGroup.SOCIAL_PROFILES:
            return MIMETYPE_SOCIAL_PROFILE, {
                "data1": values.get("username", ""),
                "data2": values["rawType"],
                "data4": values.get("service", ""),
                "data5": values.get("userIdentifier", ""),
                "data6": values.get("url", ""),
            }
        if group is PropertyGroup.INSTANT_MESSAGES:
            return MIMETYPE_IM, {
                "data1": values["username"],
                "data2": values["rawType"],
                **_im_protocol(values.get("service", "")),
            }
        raise ValueError(f"Cannot insert values into {group.value}")

    def _assign(self
, conn: sqlite3.Connection, raw_id: int, group: PropertyGroup, values: Dict[str, Any]) -> None:
        if group is PropertyGroup.NAME:
            self._assign_name(conn, raw_id, values)
        elif group is PropertyGroup.PHOTO:
            self._clear(conn, raw_id, PropertyGroup.PHOTO)
            photo = values.get("photo")
            if photo:
                file_id = conn.execute("INSERT INTO photo_files (data) VALUES (?)", (photo,)).lastrowid
                self._insert_data(conn, raw_id, MIMETYPE_PHOTO, {
                    "data14": file_id,
                    "data15": values.get("thumbnail"),
                })
        else:
            raise ValueError(f"Cannot assign {group.value}")

    def _assign_name(self, conn: sqlite3.Connection, raw_id: int, fields: Dict[str, str]) -> None:
        columns = {NAME_COLUMNS[k]: v for k, v in fields.items() if k in NAME_COLUMNS}
        if columns:
            row = conn.execute(
                "SELECT _id FROM data WHERE raw_contact_id = ? AND mimetype = ? ORDER BY _id LIMIT 1",
                (raw_id, MIMETYPE_NAME),
            ).fetchone()
            if row is None:
                self._insert_data(conn, raw_id, MIMETYPE_NAME, columns)
            else:
                assignments = ", ".join(f"{column} = ?" for column in columns)
                conn.execute(
                    f"UPDATE data SET {assignments} WHERE _id = ?",
                    [*columns.values(), row["_id"]],
                )

        if "nickname" in fields:
            conn.execute(
                "DELETE FROM data WHERE raw_contact_id = ? AND mimetype = ?",
                (raw_id, MIMETYPE_NICKNAME),
            )
            if fields["nickname"]:
                self._insert_data(conn, raw_id, MIMETYPE_NICKNAME, {"data1": fields["nickname"]})

    def _clear(self, conn: sqlite3.Connection, raw_id: int, group: PropertyGroup) -> None:
        if group in (PropertyGroup.PHOTO, PropertyGroup.THUMBNAIL):
            self._delete_photo_files(conn, raw_id)
        for mimetype in GROUP_MIMETYPES[group]:
            conn.execute(
                "DELETE FROM data WHERE raw_contact_id = ? AND mimetype = ?",
                (raw_id, mimetype),
            )

    def _delete_photo_files(self, conn: sqlite3.Connection, raw_id: int) -> None:
        conn.execute(
            "DELETE FROM photo_files WHERE _id IN "
            "(SELECT data14 FROM data WHERE raw_contact_id = ? AND mimetype = ?)",
            (raw_id, MIMETYPE_PHOTO),
        )

    def _aggregate(self, conn: sqlite3.Connection, raw_id: int) -> None:
        """Attach a raw contact to its aggregate and recompute the display name."""
        row = conn.execute("SELECT contact_id FROM raw_contacts WHERE _id = ?", (raw_id,)).fetchone()
        contact_id = row["contact_id"]
        if contact_id is None:
            contact_id = conn.execute("INSERT INTO contacts (display_name, starred) VALUES ('', 0)").lastrowid
            conn.execute("UPDATE raw_contacts SET contact_id = ? WHERE _id = ?", (contact_id, raw_id))

        conn.execute(
            "UPDATE contacts SET display_name = ? WHERE _id = ?",
            (self._display_name(conn, raw_id), contact_id),
        )

    def _display_name(self, conn: sqlite3.Connection, raw_id: int) -> str:
        name_row = conn.execute(
            "SELECT * FROM data WHERE raw_contact_id = ? AND mimetype = ? ORDER BY _id LIMIT 1",
            (raw_id, MIMETYPE_NAME),
        ).fetchone()
        if name_row is not None:
            full_name = format_display_name({wire: name_row[col] for wire, col in NAME_COLUMNS.items()})
            conn.execute("UPDATE data SET data1 = ? WHERE _id = ?", (full_name, name_row["_id"]))
            if full_name:
                return full_name

        for mimetype in DISPLAY_NAME_FALLBACKS:
            row = conn.execute(
                "SELECT data1 FROM data WHERE raw_contact_id = ? AND mimetype = ? "
                "AND data1 IS NOT NULL AND data1 != '' ORDER BY _id LIMIT 1",
                (raw_id, mimetype),
            ).fetchone()
            if row is not None:
                return row["data1"]
        return ""

"""
Query/Lookup Engine

List, fetch and search contacts of one backend, projecting each with the
requested property groups and ordering by display name on request.
"""

import locale
import logging
from typing import Callable, FrozenSet, List, Optional, Tuple

from .interface import ContactRecord, ContactsBackend, PropertyGroup
from .projector import RecordProjector

logger = logging.getLogger(__name__)

SortKey = Callable[[str], Tuple]


def _casefold_key(name: str) -> Tuple:
    return (name.casefold(), name)


def _posix_locale(name: str) -> str:
    """'en-US' -> 'en_US.UTF-8'; names that already carry an encoding pass through."""
    if "." in name or name in ("C", "POSIX"):
        return name
    return f"{name.replace('-', '_')}.UTF-8"


def make_sort_key(collation_locale: Optional[str] = None) -> SortKey:
    """
    Case-insensitive display-name sort key.

    With a collation locale the casefolded name is also run through the
    locale's collation. This sets LC_COLLATE for the whole process, so call
    it once per process (ContactsManager does) and share the returned key.
    Unknown locales fall back to plain casefold ordering.
    """
    if not collation_locale:
        return _casefold_key

    try:
        locale.setlocale(locale.LC_COLLATE, _posix_locale(collation_locale))
    except locale.Error as e:
        logger.warning(f"Collation locale {collation_locale!r} unavailable ({e}), using casefold ordering")
        return _casefold_key

    return lambda name: (locale.strxfrm(name.casefold()), name)


class QueryEngine:
    """Read-side operations over one backend."""

    def __init__(
        self,
        backend: ContactsBackend,
        projector: Optional[RecordProjector] = None,
        sort_key: Optional[SortKey] = None
    ):
        self.backend = backend
        self.projector = projector or RecordProjector(backend)
        self.sort_key = sort_key or _casefold_key

    def list_all(self, groups: FrozenSet[PropertyGroup], sorted: bool = True) -> List[ContactRecord]:
        """Every contact in the store; native order unless sorted."""
        contacts = self.backend.enumerate(groups)
        records = [self.projector.project(c, groups) for c in contacts]
        return self._order(records, sorted)

    def get_by_id(self, contact_id: str, groups: FrozenSet[PropertyGroup]) -> Optional[ContactRecord]:
        """One contact, or None when the id does not resolve."""
        contact = self.backend.lookup(contact_id, groups)
        if contact is None:
            return None
        return self.projector.project(contact, groups)

    def search(
        self,
        query: str,
        groups: FrozenSet[PropertyGroup],
        sorted: bool = True
    ) -> List[ContactRecord]:
        """
        Contacts whose display name contains `query`, case-insensitively.

        The empty query matches every contact.
        """
        contacts = self.backend.enumerate(groups, name_query=query)
        records = [self.projector.project(c, groups) for c in contacts]
        return self._order(records, sorted)

    def _order(self, records: List[ContactRecord], sort: bool) -> List[ContactRecord]:
        if not sort:
            return records
        records.sort(key=lambda r: self.sort_key(r.display_name))
        return records

"""
Label Vocabulary

Translates between native label codes (integer type codes in the row store,
label strings in the graph store) and the neutral label vocabulary:
home, work, mobile, other, custom, ...

Round trips:
    raw -> label -> raw is the identity for every standard code.
    label -> raw -> label is NOT: labels outside the closed vocabulary
    (including verbatim custom text) come back as the category's "other".
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple

CUSTOM_LABEL = "custom"
OTHER_LABEL = "other"


class LabelCategory(Enum):
    PHONE = "phone"
    EMAIL = "email"
    ADDRESS = "address"
    WEBSITE = "website"
    EVENT = "event"
    SOCIAL_PROFILE = "socialProfile"
    INSTANT_MESSAGE = "instantMessage"


@dataclass
class LabelTable:
    """Lookup table for one category of one backend."""
    category: LabelCategory
    labels: Dict[Any, str]
    custom_code: Any
    other_code: Any
    synonyms: Dict[str, str] = field(default_factory=dict)
    _reverse: Dict[str, Any] = field(init=False, repr=False)

    def __post_init__(self):
        self._reverse = {label.lower(): raw for raw, label in self.labels.items()}

    def to_label(self, raw_type: Any, custom_text: Optional[str] = "") -> str:
        """
        Neutral label for a native code.

        The custom code yields the custom text verbatim, or "custom" when
        the text is empty. Unknown codes yield "other".
        """
        if raw_type == self.custom_code:
            return custom_text or CUSTOM_LABEL
        try:
            return self.labels.get(raw_type, OTHER_LABEL)
        except TypeError:
            # unhashable garbage from the store
            return OTHER_LABEL

    def to_native(self, label: Optional[str]) -> Any:
        """
        Native code for a neutral label, matched case-insensitively.

        Lossy: anything outside the vocabulary maps to the "other" code.
        """
        if not label:
            return self.other_code
        key = label.strip().lower()
        key = self.synonyms.get(key, key)
        return self._reverse.get(key, self.other_code)


class LabelVocabulary:
    """The label tables of one backend, one per category."""

    def __init__(self, *tables: LabelTable):
        self.tables: Dict[LabelCategory, LabelTable] = {t.category: t for t in tables}

    def __getitem__(self, category: LabelCategory) -> LabelTable:
        return self.tables[category]

    def to_label(self, category: LabelCategory, raw_type: Any, custom_text: Optional[str] = "") -> str:
        return self.tables[category].to_label(raw_type, custom_text)

    def to_native(self, category: LabelCategory, label: Optional[str]) -> Any:
        return self.tables[category].to_native(label)


# =============================================================================
# ROW STORE (integer type codes, 0 = custom with text in a label column)
# =============================================================================

ROW_TYPE_CUSTOM = 0

ROW_VOCABULARY = LabelVocabulary(
    LabelTable(
        LabelCategory.PHONE,
        {
            1: "home",
            2: "mobile",
            3: "work",
            4: "faxWork",
            5: "faxHome",
            6: "pager",
            7: "other",
            12: "main",
        },
        custom_code=ROW_TYPE_CUSTOM,
        other_code=7,
        synonyms={"cell": "mobile"},
    ),
    LabelTable(
        LabelCategory.EMAIL,
        {1: "home", 2: "work", 3: "other", 4: "mobile"},
        custom_code=ROW_TYPE_CUSTOM,
        other_code=3,
    ),
    LabelTable(
        LabelCategory.ADDRESS,
        {1: "home", 2: "work", 3: "other"},
        custom_code=ROW_TYPE_CUSTOM,
        other_code=3,
    ),
    LabelTable(
        LabelCategory.WEBSITE,
        {1: "homepage", 2: "blog", 3: "profile", 4: "home", 5: "work", 6: "ftp", 7: "other"},
        custom_code=ROW_TYPE_CUSTOM,
        other_code=7,
    ),
    LabelTable(
        LabelCategory.EVENT,
        {1: "anniversary", 2: "other", 3: "birthday"},
        custom_code=ROW_TYPE_CUSTOM,
        other_code=2,
    ),
    LabelTable(
        LabelCategory.SOCIAL_PROFILE,
        {1: "home", 2: "work", 3: "other"},
        custom_code=ROW_TYPE_CUSTOM,
        other_code=3,
    ),
    LabelTable(
        LabelCategory.INSTANT_MESSAGE,
        {1: "home", 2: "work", 3: "other"},
        custom_code=ROW_TYPE_CUSTOM,
        other_code=3,
    ),
)


# =============================================================================
# GRAPH STORE (label strings; system labels are wrapped as _$!<Name>!$_)
# =============================================================================

GRAPH_CUSTOM = "custom"
GRAPH_BIRTHDAY = "birthday"  # key of the dedicated birthday slot


def system_label(name: str) -> str:
    return f"_$!<{name}>!$_"


def is_system_label(native: str) -> bool:
    return native.startswith("_$!<") and native.endswith(">!$_")


def split_graph_label(native: Optional[str]) -> Tuple[str, str]:
    """
    Split a graph-store label into (raw code, custom text).

    System labels are their own code; any other non-empty string is
    user-entered text under the custom code.
    """
    if not native:
        return "", ""
    if is_system_label(native) or native == GRAPH_BIRTHDAY:
        return native, ""
    return GRAPH_CUSTOM, native


GRAPH_VOCABULARY = LabelVocabulary(
    LabelTable(
        LabelCategory.PHONE,
        {
            system_label("Home"): "home",
            system_label("Mobile"): "mobile",
            system_label("Work"): "work",
            system_label("WorkFAX"): "faxWork",
            system_label("HomeFAX"): "faxHome",
            system_label("Pager"): "pager",
            system_label("Other"): "other",
            system_label("Main"): "main",
        },
        custom_code=GRAPH_CUSTOM,
        other_code=system_label("Other"),
        synonyms={"cell": "mobile"},
    ),
    LabelTable(
        LabelCategory.EMAIL,
        {
            system_label("Home"): "home",
            system_label("Work"): "work",
            system_label("Other"): "other",
        },
        custom_code=GRAPH_CUSTOM,
        other_code=system_label("Other"),
    ),
    LabelTable(
        LabelCategory.ADDRESS,
        {
            system_label("Home"): "home",
            system_label("Work"): "work",
            system_label("Other"): "other",
        },
        custom_code=GRAPH_CUSTOM,
        other_code=system_label("Other"),
    ),
    LabelTable(
        LabelCategory.WEBSITE,
        {
            system_label("HomePage"): "homepage",
            system_label("Home"): "home",
            system_label("Work"): "work",
            system_label("Other"): "other",
        },
        custom_code=GRAPH_CUSTOM,
        other_code=system_label("Other"),
    ),
    LabelTable(
        LabelCategory.EVENT,
        {
            GRAPH_BIRTHDAY: "birthday",
            system_label("Anniversary"): "anniversary",
            system_label("Other"): "other",
        },
        custom_code=GRAPH_CUSTOM,
        other_code=system_label("Other"),
    ),
    LabelTable(
        LabelCategory.SOCIAL_PROFILE,
        {
            system_label("Home"): "home",
            system_label("Work"): "work",
            system_label("Other"): "other",
        },
        custom_code=GRAPH_CUSTOM,
        other_code=system_label("Other"),
    ),
    LabelTable(
        LabelCategory.INSTANT_MESSAGE,
        {
            system_label("Home"): "home",
            system_label("Work"): "work",
            system_label("Other"): "other",
        },
        custom_code=GRAPH_CUSTOM,
        other_code=system_label("Other"),
    ),
)


def native_to_label(
    category: LabelCategory,
    raw_type: Any,
    custom_text: Optional[str] = "",
    vocabulary: LabelVocabulary = ROW_VOCABULARY
) -> str:
    """Neutral label for a native code (see LabelTable.to_label)."""
    return vocabulary.to_label(category, raw_type, custom_text)


def label_to_native(
    category: LabelCategory,
    label: Optional[str],
    vocabulary: LabelVocabulary = ROW_VOCABULARY
) -> Any:
    """Native code for a neutral label (see LabelTable.to_native)."""
    return vocabulary.to_native(category, label)

"""Tests for the label vocabulary normalizer."""

from __future__ import annotations

import pytest

from contacts_bridge.services.contacts.labels import (
    GRAPH_BIRTHDAY,
    GRAPH_CUSTOM,
    GRAPH_VOCABULARY,
    ROW_TYPE_CUSTOM,
    ROW_VOCABULARY,
    LabelCategory,
    label_to_native,
    native_to_label,
    split_graph_label,
    system_label,
)

pytestmark = pytest.mark.unit


def _standard_codes(vocabulary):
    for category in LabelCategory:
        for raw_type in vocabulary[category].labels:
            yield category, raw_type


# ---------------------------------------------------------------------------
# Round trips
# ---------------------------------------------------------------------------


@pytest.mark.parametrize("category, raw_type", list(_standard_codes(ROW_VOCABULARY)))
def test_row_standard_codes_round_trip(category, raw_type):
    label = native_to_label(category, raw_type)
    assert label_to_native(category, label) == raw_type


@pytest.mark.parametrize("category, raw_type", list(_standard_codes(GRAPH_VOCABULARY)))
def test_graph_standard_codes_round_trip(category, raw_type):
    label = native_to_label(category, raw_type, vocabulary=GRAPH_VOCABULARY)
    assert label_to_native(category, label, vocabulary=GRAPH_VOCABULARY) == raw_type


def test_custom_label_does_not_survive_reverse_mapping():
    label = native_to_label(LabelCategory.PHONE, ROW_TYPE_CUSTOM, "Gym")
    assert label == "Gym"
    assert label_to_native(LabelCategory.PHONE, label) == 7
    assert native_to_label(LabelCategory.PHONE, 7) == "other"


# ---------------------------------------------------------------------------
# Forward mapping
# ---------------------------------------------------------------------------


def test_row_codes_map_to_neutral_labels():
    assert native_to_label(LabelCategory.PHONE, 2) == "mobile"
    assert native_to_label(LabelCategory.PHONE, 12) == "main"
    assert native_to_label(LabelCategory.EMAIL, 2) == "work"
    assert native_to_label(LabelCategory.WEBSITE, 1) == "homepage"
    assert native_to_label(LabelCategory.EVENT, 3) == "birthday"


def test_custom_code_uses_text_or_literal_custom():
    assert native_to_label(LabelCategory.EMAIL, ROW_TYPE_CUSTOM, "School") == "School"
    assert native_to_label(LabelCategory.EMAIL, ROW_TYPE_CUSTOM, "") == "custom"
    assert native_to_label(LabelCategory.EMAIL, ROW_TYPE_CUSTOM, None) == "custom"


def test_unknown_codes_normalize_to_other():
    assert native_to_label(LabelCategory.PHONE, 99) == "other"
    assert native_to_label(LabelCategory.ADDRESS, None) == "other"
    assert native_to_label(LabelCategory.PHONE, "_$!<Nope>!$_", vocabulary=GRAPH_VOCABULARY) == "other"


# ---------------------------------------------------------------------------
# Reverse mapping
# ---------------------------------------------------------------------------


@pytest.mark.parametrize("label", ["mobile", "Mobile", "MOBILE", "cell", "Cell", " cell "])
def test_phone_mobile_synonyms(label):
    assert label_to_native(LabelCategory.PHONE, label) == 2
    assert label_to_native(LabelCategory.PHONE, label, vocabulary=GRAPH_VOCABULARY) == system_label("Mobile")


def test_unmatched_labels_map_to_category_other():
    assert label_to_native(LabelCategory.EMAIL, "carrier pigeon") == 3
    assert label_to_native(LabelCategory.WEBSITE, "") == 7
    assert label_to_native(LabelCategory.EVENT, None) == 2
    assert label_to_native(LabelCategory.ADDRESS, "cottage", vocabulary=GRAPH_VOCABULARY) == system_label("Other")


def test_cell_is_not_a_synonym_outside_phones():
    assert label_to_native(LabelCategory.EMAIL, "cell") == 3


# ---------------------------------------------------------------------------
# Graph labels
# ---------------------------------------------------------------------------


def test_split_graph_label():
    assert split_graph_label("_$!<Home>!$_") == ("_$!<Home>!$_", "")
    assert split_graph_label(GRAPH_BIRTHDAY) == (GRAPH_BIRTHDAY, "")
    assert split_graph_label("Gym") == (GRAPH_CUSTOM, "Gym")
    assert split_graph_label(None) == ("", "")


def test_graph_user_text_normalizes_verbatim():
    raw, text = split_graph_label("Beach house")
    assert native_to_label(LabelCategory.ADDRESS, raw, text, vocabulary=GRAPH_VOCABULARY) == "Beach house"

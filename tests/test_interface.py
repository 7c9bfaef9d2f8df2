"""Tests for the neutral schema, wire parsing and mutation batches."""

from __future__ import annotations

import base64

import pytest

from contacts_bridge.services.contacts.interface import (
    ALL_GROUPS,
    PROPERTY_GROUPS,
    ContactRecord,
    Email,
    InstantMessage,
    InvalidArgumentsError,
    MutationBatch,
    MutationKind,
    Name,
    Phone,
    PropertyGroup,
    SocialProfile,
    format_display_name,
    groups_for,
    normalize_number,
    policy_prompter,
)

pytestmark = pytest.mark.unit


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def test_normalize_number_keeps_digits_only():
    assert normalize_number("555-1234") == "5551234"
    assert normalize_number("+1 (415) 555-0100") == "14155550100"
    assert normalize_number("") == ""


def test_format_display_name_skips_blank_parts():
    fields = {"namePrefix": "Dr.", "givenName": "Ann", "middleName": " ", "familyName": "Lee", "nameSuffix": None}
    assert format_display_name(fields) == "Dr. Ann Lee"
    assert format_display_name({}) == ""


def test_groups_for_flags():
    assert groups_for() == frozenset()
    assert groups_for(with_properties=True) == PROPERTY_GROUPS
    assert groups_for(True, True, True) == ALL_GROUPS
    assert groups_for(with_photo=True) == {PropertyGroup.PHOTO}


def test_policy_prompter_answers_every_permission():
    assert policy_prompter("grant")(["A", "B"]) == {"A": True, "B": True}
    assert policy_prompter("deny")(["A"]) == {"A": False}


# ---------------------------------------------------------------------------
# Wire parsing
# ---------------------------------------------------------------------------


def test_from_dict_records_provided_groups_only():
    record = ContactRecord.from_dict({
        "name": {"givenName": "Ann"},
        "phones": [{"number": "555-1234", "label": "mobile"}],
    })
    assert record.provided_groups == {PropertyGroup.NAME, PropertyGroup.PHONES}
    assert record.name.provided() == {"givenName": "Ann"}
    assert record.phones == [Phone(number="555-1234", label="mobile")]
    assert record.emails is None


def test_from_dict_ignores_input_raw_type_and_normalized_number():
    record = ContactRecord.from_dict({
        "phones": [{"number": "555-1234", "normalizedNumber": "999", "rawType": 12}],
    })
    assert record.phones[0].raw_type is None
    assert record.phones[0].normalized_number == "5551234"


def test_from_dict_accepts_aliases():
    record = ContactRecord.from_dict({
        "phoneNumbers": [{"number": "1"}],
        "emailAddresses": [{"email": "a@example.com", "label": "work"}],
        "postalAddresses": [{"street": "1 Main St"}],
        "urlAddresses": [{"url": "https://example.com"}],
        "note": "hello",
        "organization": {"name": "Acme", "jobTitle": "CEO"},
        "birthday": {"month": 4, "day": 1},
    })
    assert record.phones[0].number == "1"
    assert record.emails == [Email(email="a@example.com", label="work")]
    assert record.addresses[0].street == "1 Main St"
    assert record.websites[0].url == "https://example.com"
    assert [n.note for n in record.notes] == ["hello"]
    assert record.organizations[0].job_title == "CEO"
    assert record.events[0].label == "birthday"
    assert record.events[0].year is None


def test_social_profiles_and_instant_messages_parse():
    record = ContactRecord.from_dict({
        "socialProfiles": [{"service": "LinkedIn", "username": "ann", "rawType": 3}],
        "instantMessageAddresses": [{"service": "Jabber", "username": "ann@example.org", "label": "work"}],
    })
    assert record.provided_groups == {PropertyGroup.SOCIAL_PROFILES, PropertyGroup.INSTANT_MESSAGES}
    assert record.social_profiles == [SocialProfile(service="LinkedIn", username="ann")]
    assert record.instant_messages == [InstantMessage(username="ann@example.org", service="Jabber", label="work")]
    assert record.to_dict()["instantMessages"][0]["username"] == "ann@example.org"
    assert "instantMessageAddresses" not in record.to_dict()


def test_null_sequence_means_clear():
    record = ContactRecord.from_dict({"id": "1", "phones": None, "note": ""})
    assert record.phones == []
    assert record.notes == []
    assert record.provided_groups == {PropertyGroup.PHONES, PropertyGroup.NOTES}


def test_photo_accepts_base64_text():
    record = ContactRecord.from_dict({"photo": base64.b64encode(b"\x89PNG").decode()})
    assert record.photo == b"\x89PNG"
    assert PropertyGroup.PHOTO in record.provided_groups


@pytest.mark.parametrize(
    "payload",
    [
        {"id": 7},
        {"name": "Ann"},
        {"name": {"givenName": 1}},
        {"phones": {"number": "1"}},
        {"phones": ["555"]},
        {"events": [{"month": 2}]},
        {"events": [{"month": 13, "day": 1}]},
        {"events": [{"month": True, "day": 1}]},
        {"note": 5},
        {"photo": "not base64!"},
        {"socialProfiles": [{"username": 5}]},
        {"instantMessages": "ann"},
    ],
)
def test_from_dict_rejects_malformed_payloads(payload):
    with pytest.raises(InvalidArgumentsError):
        ContactRecord.from_dict(payload)


# ---------------------------------------------------------------------------
# Wire output
# ---------------------------------------------------------------------------


def test_to_dict_omits_groups_not_fetched():
    data = ContactRecord(id="1", display_name="Ann").to_dict()
    assert data == {
        "id": "1",
        "displayName": "Ann",
        "isStarred": False,
        "propertiesFetched": False,
        "thumbnailFetched": False,
        "photoFetched": False,
    }


def test_to_dict_includes_fetched_images_even_when_missing():
    record = ContactRecord(id="1", thumbnail_fetched=True, name=Name.empty(), phones=[])
    data = record.to_dict()
    assert data["thumbnail"] is None
    assert "photo" not in data
    assert data["name"]["givenName"] == ""
    assert data["phones"] == []


def test_phone_to_dict_derives_normalized_number():
    assert Phone(number="(555) 12-34", label="home", raw_type=1).to_dict() == {
        "number": "(555) 12-34",
        "normalizedNumber": "5551234",
        "label": "home",
        "rawType": 1,
    }


# ---------------------------------------------------------------------------
# Mutation batches
# ---------------------------------------------------------------------------


def test_batch_back_references_resolve_to_create():
    batch = MutationBatch()
    root = batch.create()
    batch.insert(PropertyGroup.PHONES, {"number": "1"}, back_reference=root)
    batch.clear(PropertyGroup.EMAILS, contact_id="42")

    kinds = [op.kind for op in batch]
    assert kinds == [MutationKind.CREATE, MutationKind.INSERT, MutationKind.CLEAR]
    assert batch.operations[1].back_reference == 0
    assert len(batch) == 3


def test_batch_rejects_forward_or_non_create_references():
    batch = MutationBatch()
    with pytest.raises(ValueError):
        batch.insert(PropertyGroup.PHONES, {}, back_reference=0)

    root = batch.create()
    batch.insert(PropertyGroup.PHONES, {}, back_reference=root)
    with pytest.raises(ValueError):
        batch.insert(PropertyGroup.PHONES, {}, back_reference=1)


def test_batch_requires_exactly_one_target():
    batch = MutationBatch()
    root = batch.create()
    with pytest.raises(ValueError):
        batch.assign(PropertyGroup.NAME, {})
    with pytest.raises(ValueError):
        batch.assign(PropertyGroup.NAME, {}, contact_id="1", back_reference=root)

"""Tests for the keyed-object-graph store."""

from __future__ import annotations

import json

import pytest

from contacts_bridge.services.contacts.adapters.graphstore import (
    GraphStoreBackend,
    PropertyNotFetchedError,
    SaveRequest,
    keys_for,
    new_labeled_value,
)
from contacts_bridge.services.contacts.builder import RecordBuilder
from contacts_bridge.services.contacts.interface import (
    PROPERTY_GROUPS,
    BackendError,
    ContactNotFoundError,
    ContactsAccount,
    MutationBatch,
    NoActivityError,
    PermissionDeniedError,
    PermissionRequestError,
    PropertyGroup,
)
from contacts_bridge.services.contacts.labels import system_label
from contacts_bridge.services.contacts.projector import RecordProjector
from contacts_bridge.services.contacts.query import QueryEngine
from tests.helpers import make_record

pytestmark = pytest.mark.unit


def _backend(tmp_path, prompter=None, **config) -> GraphStoreBackend:
    config.setdefault("path", str(tmp_path / "contacts.json"))
    return GraphStoreBackend(ContactsAccount("cloud", "graphstore", config), prompter)


def _stored(backend):
    return json.loads(backend.store.path.read_text())["contacts"]


# ---------------------------------------------------------------------------
# Key descriptors
# ---------------------------------------------------------------------------


def test_identifiers_are_person_ids(graphstore):
    created = RecordBuilder(graphstore).create(make_record(name={"givenName": "Ann"}))
    assert created.id.endswith(":ABPerson")
    assert created.id.split(":")[0] == created.id.split(":")[0].upper()


def test_unfetched_key_raises(graphstore):
    RecordBuilder(graphstore).create(make_record(name={"givenName": "Ann"}, phones=[{"number": "1"}]))

    [contact] = graphstore.store.unified_contacts(keys_for([]))

    assert contact["givenName"] == "Ann"
    with pytest.raises(PropertyNotFetchedError):
        contact["phoneNumbers"]


def test_social_keys_are_fetched_only_with_their_groups(graphstore):
    RecordBuilder(graphstore).create(make_record(
        name={"givenName": "Ann"},
        socialProfiles=[{"service": "Twitter", "url": "https://twitter.com/ann"}],
        instantMessages=[{"service": "Skype", "username": "ann.lee", "label": "work"}],
    ))

    [bare] = graphstore.store.unified_contacts(keys_for([PropertyGroup.PHONES]))
    with pytest.raises(PropertyNotFetchedError):
        bare["socialProfiles"]

    [stored] = _stored(graphstore).values()
    assert stored["socialProfiles"][0]["value"]["urlString"] == "https://twitter.com/ann"
    assert stored["instantMessageAddresses"][0]["label"] == system_label("Work")
    assert stored["instantMessageAddresses"][0]["value"] == {"service": "Skype", "username": "ann.lee"}


def test_projecting_unfetched_group_degrades_to_empty(graphstore):
    RecordBuilder(graphstore).create(make_record(name={"givenName": "Ann"}, phones=[{"number": "1"}]))
    [native] = graphstore.enumerate(frozenset())

    record = RecordProjector(graphstore).project(native, frozenset({PropertyGroup.PHONES}))

    assert record.phones == []


def test_display_name_uses_name_components_only(graphstore):
    created = RecordBuilder(graphstore).create(make_record(
        name={"nickname": "Annie"},
        organizations=[{"name": "Acme"}],
    ))
    assert created.display_name == ""


# ---------------------------------------------------------------------------
# Native values
# ---------------------------------------------------------------------------


def test_user_labels_read_verbatim(graphstore):
    request = SaveRequest()
    request.add("A:ABPerson", {
        "givenName": "Ann",
        "phoneNumbers": [
            new_labeled_value("Gym", "555"),
            new_labeled_value(system_label("Home"), "556"),
            new_labeled_value(None, "557"),
        ],
    })
    graphstore.store.execute(request)

    phones = QueryEngine(graphstore).get_by_id("A:ABPerson", PROPERTY_GROUPS).phones

    assert [(p.label, p.raw_type) for p in phones] == [
        ("Gym", "Gym"), ("home", system_label("Home")), ("other", ""),
    ]


def test_single_organization_and_joined_notes(graphstore):
    created = RecordBuilder(graphstore).create(make_record(
        organizations=[{"name": "Acme"}, {"name": "Globex"}],
        notes=[{"note": "one"}, {"note": "two"}],
    ))

    assert [o.name for o in created.organizations] == ["Acme"]
    assert [n.note for n in created.notes] == ["one\ntwo"]


def test_birthday_uses_dedicated_slot(graphstore):
    created = RecordBuilder(graphstore).create(make_record(
        birthday={"year": 1990, "month": 2, "day": 3},
        events=[{"label": "anniversary", "month": 6, "day": 1}],
    ))

    stored = _stored(graphstore)[created.id]
    assert stored["birthday"] == {"year": 1990, "month": 2, "day": 3}
    assert [d["label"] for d in stored["dates"]] == [system_label("Anniversary")]


def test_addresses_keep_iso_country_code(graphstore):
    created = RecordBuilder(graphstore).create(make_record(
        addresses=[{"street": "1 Rue", "country": "France", "isoCountryCode": "fr", "label": "home"}],
    ))
    assert created.addresses[0].iso_country_code == "fr"
    assert created.addresses[0].label == "home"


# ---------------------------------------------------------------------------
# Save requests
# ---------------------------------------------------------------------------


def test_batch_with_missing_target_saves_nothing(graphstore):
    batch = MutationBatch()
    root = batch.create()
    batch.insert(PropertyGroup.NOTES, {"note": "first"}, back_reference=root)
    batch.insert(PropertyGroup.NOTES, {"note": "second"}, contact_id="missing:ABPerson")

    with pytest.raises(ContactNotFoundError):
        graphstore.apply_batch(batch)

    assert _stored(graphstore) == {}


def _interleave(monkeypatch, backend, concurrent_write):
    """Run `concurrent_write` just before the next update request commits."""
    real_execute = backend.store.execute
    pending = [concurrent_write]

    def execute(request):
        if request.updates and pending:
            pending.pop()()
        real_execute(request)

    monkeypatch.setattr(backend.store, "execute", execute)


def test_concurrent_updates_to_different_groups_both_survive(graphstore, monkeypatch):
    builder = RecordBuilder(graphstore)
    created = builder.create(make_record(name={"givenName": "Ann"}))

    _interleave(monkeypatch, graphstore, lambda: builder.update(
        make_record(id=created.id, phones=[{"number": "555"}])))
    saved = builder.update(make_record(id=created.id, notes=[{"note": "hello"}]))

    assert [p.number for p in saved.phones] == ["555"]
    assert [n.note for n in saved.notes] == ["hello"]
    assert saved.name.given_name == "Ann"


def test_update_of_contact_deleted_meanwhile_is_not_found(graphstore, monkeypatch):
    builder = RecordBuilder(graphstore)
    created = builder.create(make_record(name={"givenName": "Ann"}))

    _interleave(monkeypatch, graphstore, lambda: graphstore.delete(created.id))

    with pytest.raises(ContactNotFoundError):
        builder.update(make_record(id=created.id, notes=[{"note": "hello"}]))
    assert _stored(graphstore) == {}


def test_delete_missing_contact(graphstore):
    with pytest.raises(ContactNotFoundError):
        graphstore.delete("missing:ABPerson")


def test_corrupt_store_is_a_backend_error(graphstore):
    graphstore.store.path.write_text("{not json")
    with pytest.raises(BackendError):
        graphstore.enumerate(frozenset())


def test_store_survives_reopen(tmp_path):
    first = _backend(tmp_path, authorization="authorized")
    first.connect()
    created = RecordBuilder(first).create(make_record(name={"givenName": "Ann"}))

    second = _backend(tmp_path, authorization="authorized")
    second.connect()

    assert QueryEngine(second).get_by_id(created.id, PROPERTY_GROUPS).name.given_name == "Ann"


# ---------------------------------------------------------------------------
# Permissions
# ---------------------------------------------------------------------------


def _never_prompt(permissions):
    raise AssertionError("should not prompt")


@pytest.mark.parametrize(
    "authorization, result",
    [("authorized", "granted"), ("limited", "granted"), ("denied", "denied"), ("restricted", "denied")],
)
def test_request_on_determined_status_does_not_prompt(tmp_path, authorization, result):
    backend = _backend(tmp_path, _never_prompt, authorization=authorization)
    assert backend.request_permission() == result
    assert backend.permission_status() == authorization


def test_request_on_undetermined_prompts(tmp_path):
    backend = _backend(tmp_path, lambda permissions: {p: True for p in permissions})

    assert backend.permission_status() == "notDetermined"
    assert backend.request_permission() == "granted"
    assert backend.permission_status() == "authorized"
    backend.check_access(write=True)


def test_request_refused(tmp_path):
    backend = _backend(tmp_path, lambda permissions: {})
    assert backend.request_permission() == "denied"
    assert backend.permission_status() == "denied"


def test_request_without_host(tmp_path):
    with pytest.raises(NoActivityError):
        _backend(tmp_path).request_permission()


def test_failing_prompter(tmp_path):
    def prompter(permissions):
        raise RuntimeError("boom")

    with pytest.raises(PermissionRequestError):
        _backend(tmp_path, prompter).request_permission()


@pytest.mark.parametrize("authorization", ["notDetermined", "denied", "restricted"])
def test_check_access_requires_authorization(tmp_path, authorization):
    with pytest.raises(PermissionDeniedError):
        _backend(tmp_path, authorization=authorization).check_access()

"""Shared fixtures: both native stores provisioned under tmp_path."""

from __future__ import annotations

import json

import pytest

from contacts_bridge.bridge import ContactsBridge
from contacts_bridge.services.contacts.adapters.graphstore import GraphStoreBackend
from contacts_bridge.services.contacts.adapters.rowstore import (
    READ_CONTACTS,
    WRITE_CONTACTS,
    RowStoreBackend,
)
from contacts_bridge.services.contacts.builder import RecordBuilder
from contacts_bridge.services.contacts.interface import ContactsAccount
from contacts_bridge.services.contacts.manager import ContactsManager
from contacts_bridge.services.contacts.query import QueryEngine


@pytest.fixture
def rowstore(tmp_path) -> RowStoreBackend:
    account = ContactsAccount(
        name="device",
        adapter="rowstore",
        config={"path": str(tmp_path / "contacts2.db"), "granted": [READ_CONTACTS, WRITE_CONTACTS]},
    )
    backend = RowStoreBackend(account)
    assert backend.connect()
    return backend


@pytest.fixture
def graphstore(tmp_path) -> GraphStoreBackend:
    account = ContactsAccount(
        name="cloud",
        adapter="graphstore",
        config={"path": str(tmp_path / "contacts.json"), "authorization": "authorized"},
    )
    backend = GraphStoreBackend(account)
    assert backend.connect()
    return backend


@pytest.fixture(params=["rowstore", "graphstore"])
def backend(request):
    return request.getfixturevalue(request.param)


@pytest.fixture
def query(backend) -> QueryEngine:
    return QueryEngine(backend)


@pytest.fixture
def builder(backend, query) -> RecordBuilder:
    return RecordBuilder(backend, query)


@pytest.fixture
def accounts_file(tmp_path):
    path = tmp_path / "config" / "contacts_accounts.json"
    path.parent.mkdir()
    path.write_text(json.dumps({
        "accounts": {
            "device": {
                "adapter": "rowstore",
                "config": {
                    "path": str(tmp_path / "device.db"),
                    "granted": [READ_CONTACTS, WRITE_CONTACTS],
                },
            },
            "cloud": {
                "adapter": "graphstore",
                "config": {"path": str(tmp_path / "cloud.json"), "authorization": "authorized"},
            },
            "locked": {
                "adapter": "rowstore",
                "config": {"path": str(tmp_path / "locked.db")},
            },
            "consenting": {
                "adapter": "rowstore",
                "config": {"path": str(tmp_path / "consenting.db"), "prompt_policy": "grant"},
            },
            "undetermined": {
                "adapter": "graphstore",
                "config": {"path": str(tmp_path / "undetermined.json")},
            },
        },
        "default_account": "device",
    }))
    return path


@pytest.fixture
def manager(accounts_file) -> ContactsManager:
    return ContactsManager(config_path=accounts_file, settings={"collation_locale": None})


@pytest.fixture
def bridge(manager) -> ContactsBridge:
    return ContactsBridge(manager)

"""
Shared pytest fixtures.

InMemoryGateway stands in for the Appwrite database so the provisioner can be
exercised against arbitrary remote states.
"""

from collections import defaultdict
from typing import Any, Dict, List

import pytest

from docpilot.core.errors import ConflictError, NotFoundError
from docpilot.core.reporting import ProvisioningReporter
from docpilot.models.schema import AttributeDeclaration, CollectionDeclaration, SchemaDeclaration
from docpilot.services.appwrite_gateway import DatabaseGateway


class InMemoryGateway(DatabaseGateway):
    """Dict-backed DatabaseGateway that records every call."""

    def __init__(self):
        self.databases: Dict[str, Dict[str, Any]] = {}
        self.collections: Dict[tuple, Dict[str, Any]] = {}
        self.calls: List[tuple] = []
        self.failures: Dict[str, Exception] = {}
        # (collection_id, key) -> statuses returned by successive get_attribute calls
        self.status_sequences: Dict[tuple, List[str]] = defaultdict(list)

    # -- helpers for arranging remote state --------------------------------

    def add_database(self, database_id, name="Existing"):
        self.databases[database_id] = {"$id": database_id, "name": name}

    def add_collection(self, database_id, collection_id, name=None, permissions=None):
        if database_id not in self.databases:
            self.add_database(database_id)
        self.collections[(database_id, collection_id)] = {
            "$id": collection_id,
            "name": name or collection_id,
            "permissions": permissions or [],
            "attributes": {},
        }

    def add_attribute(self, database_id, collection_id, key, status="available", **spec):
        attrs = self.collections[(database_id, collection_id)]["attributes"]
        attrs[key] = {"key": key, "status": status, **spec}

    def attributes(self, database_id, collection_id) -> Dict[str, Dict[str, Any]]:
        return self.collections[(database_id, collection_id)]["attributes"]

    def calls_to(self, name) -> List[tuple]:
        return [call for call in self.calls if call[0] == name]

    def _record(self, name, *args):
        self.calls.append((name, *args))
        if name in self.failures:
            raise self.failures[name]

    def _collection(self, database_id, collection_id):
        try:
            return self.collections[(database_id, collection_id)]
        except KeyError:
            raise NotFoundError("Collection with the requested ID could not be found.", code=404)

    def _add(self, database_id, collection_id, key, **spec):
        attrs = self._collection(database_id, collection_id)["attributes"]
        if key in attrs:
            raise ConflictError("Attribute with the requested key already exists.", code=409)
        attrs[key] = {"key": key, "status": "available", **spec}
        return attrs[key]

    # -- DatabaseGateway ----------------------------------------------------

    def get_database(self, database_id):
        self._record("get_database", database_id)
        if database_id not in self.databases:
            raise NotFoundError("Database not found", code=404)
        return self.databases[database_id]

    def create_database(self, database_id, name):
        self._record("create_database", database_id, name)
        self.databases[database_id] = {"$id": database_id, "name": name}
        return self.databases[database_id]

    def get_collection(self, database_id, collection_id):
        self._record("get_collection", database_id, collection_id)
        return self._collection(database_id, collection_id)

    def create_collection(self, database_id, collection_id, name, permissions):
        self._record("create_collection", database_id, collection_id, name, permissions)
        self.add_collection(database_id, collection_id, name, permissions)
        return self.collections[(database_id, collection_id)]

    def list_attributes(self, database_id, collection_id):
        self._record("list_attributes", database_id, collection_id)
        return [dict(attr) for attr in self._collection(database_id, collection_id)["attributes"].values()]

    def get_attribute(self, database_id, collection_id, key):
        self._record("get_attribute", database_id, collection_id, key)
        attr = self._collection(database_id, collection_id)["attributes"][key]
        sequence = self.status_sequences[(collection_id, key)]
        if sequence:
            attr["status"] = sequence.pop(0)
        return dict(attr)

    def create_string_attribute(self, database_id, collection_id, key, size, required, default=None, array=False):
        self._record("create_string_attribute", database_id, collection_id, key)
        return self._add(database_id, collection_id, key, type="string", size=size,
                         required=required, default=default, array=array)

    def create_integer_attribute(self, database_id, collection_id, key, required,
                                 min=None, max=None, default=None, array=False):
        self._record("create_integer_attribute", database_id, collection_id, key)
        return self._add(database_id, collection_id, key, type="integer", required=required,
                         min=min, max=max, default=default, array=array)

    def create_datetime_attribute(self, database_id, collection_id, key, required, default=None, array=False):
        self._record("create_datetime_attribute", database_id, collection_id, key)
        return self._add(database_id, collection_id, key, type="datetime", required=required,
                         default=default, array=array)

    def create_email_attribute(self, database_id, collection_id, key, required, default=None, array=False):
        self._record("create_email_attribute", database_id, collection_id, key)
        return self._add(database_id, collection_id, key, type="email", required=required,
                         default=default, array=array)

    def create_enum_attribute(self, database_id, collection_id, key, elements, required,
                              default=None, array=False):
        self._record("create_enum_attribute", database_id, collection_id, key)
        return self._add(database_id, collection_id, key, type="enum", elements=elements,
                         required=required, default=default, array=array)

    def create_boolean_attribute(self, database_id, collection_id, key, required, default=None, array=False):
        self._record("create_boolean_attribute", database_id, collection_id, key)
        return self._add(database_id, collection_id, key, type="boolean", required=required,
                         default=default, array=array)

    def create_relationship_attribute(self, database_id, collection_id, related_collection_id,
                                      type, two_way, key, two_way_key, on_delete):
        self._record("create_relationship_attribute", database_id, collection_id, key)
        self._collection(database_id, related_collection_id)
        return self._add(database_id, collection_id, key, type="relationship",
                         related_collection=related_collection_id, relation_type=type,
                         two_way=two_way, two_way_key=two_way_key, on_delete=on_delete)


class RecordingReporter(ProvisioningReporter):
    """Collects reporter calls for assertions."""

    def __init__(self):
        self.events: List[tuple] = []

    def step_started(self, step):
        self.events.append(("started", step))

    def step_succeeded(self, step, message):
        self.events.append(("succeeded", step, message))

    def warning(self, step, message):
        self.events.append(("warning", step, message))

    def step_failed(self, step, message):
        self.events.append(("failed", step, message))

    def summary(self, report):
        self.events.append(("summary", report))

    def of_kind(self, kind) -> List[tuple]:
        return [event for event in self.events if event[0] == kind]


@pytest.fixture
def gateway():
    return InMemoryGateway()


@pytest.fixture
def reporter():
    return RecordingReporter()


@pytest.fixture
def small_schema():
    """Two collections, one link each way."""
    return SchemaDeclaration(
        database_id="testdb",
        database_name="Test DB",
        collections=[
            CollectionDeclaration(
                id="owners",
                name="Owners",
                attributes=[
                    AttributeDeclaration(name="name", kind="string", required=True, size=100),
                    AttributeDeclaration(name="age", kind="integer", min=0, max=150),
                ],
            ),
            CollectionDeclaration(
                id="pets",
                name="Pets",
                attributes=[
                    AttributeDeclaration(name="kind", kind="enum", required=True, elements=["cat", "dog"]),
                    AttributeDeclaration(name="vaccinated", kind="boolean", default=False),
                ],
            ),
        ],
        relationships=[
            {"collection_id": "owners", "related_collection_id": "pets", "type": "oneToMany", "key": "pets"},
            {"collection_id": "pets", "related_collection_id": "owners", "type": "manyToOne", "key": "owner"},
        ],
    )


def make_attribute(name: str, kind: str = "string", **kwargs) -> AttributeDeclaration:
    return AttributeDeclaration(name=name, kind=kind, **kwargs)


@pytest.fixture
def attribute_factory():
    return make_attribute

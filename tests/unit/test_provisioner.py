"""
Unit tests for the schema provisioner.

Runs the provisioner against InMemoryGateway in various remote states.
"""
import copy

import pytest

from docpilot.core.errors import (
    AttributeNotReadyError,
    ConflictError,
    NotFoundError,
    ProvisioningError,
    RemoteServiceError,
)
from docpilot.models.schema import AttributeDeclaration, CollectionDeclaration, SchemaDeclaration
from docpilot.schema import DOCPILOT_SCHEMA
from docpilot.services.provisioner import (
    AttributeEnsurer,
    CollectionEnsurer,
    Provisioner,
    RelationshipEnsurer,
)


def make_provisioner(gateway, reporter=None, **kwargs):
    kwargs.setdefault("poll_interval", 0)
    kwargs.setdefault("poll_timeout", 5)
    return Provisioner(gateway, reporter=reporter, sleep=lambda _seconds: None, **kwargs)


def remote_state(gateway):
    return copy.deepcopy((gateway.databases, gateway.collections))


class TestFullSchema:
    """Provisioning the DocPilot schema into an empty project."""

    def test_empty_database_gets_everything(self, gateway, reporter):
        report = make_provisioner(gateway, reporter).run(DOCPILOT_SCHEMA)

        assert report.database_created is True
        assert [c.collection_id for c in report.collections] == [
            "patients", "doctors", "appointments", "prescriptions"
        ]
        assert all(c.created for c in report.collections)

        created = {c.collection_id: len(c.attributes_created) for c in report.collections}
        assert created == {"patients": 10, "doctors": 6, "appointments": 2, "prescriptions": 8}
        assert len(report.relationships_created) == 8
        assert report.relationships_existing == []

        patients = gateway.attributes("dbDocpilot", "patients")
        assert "patient_appointments" in patients
        assert patients["patient_appointments"]["relation_type"] == "oneToMany"
        assert patients["patient_appointments"]["on_delete"] == "cascade"

    def test_attributes_are_created_as_declared(self, gateway):
        make_provisioner(gateway).run(DOCPILOT_SCHEMA)

        patients = gateway.attributes("dbDocpilot", "patients")
        assert patients["full_name"]["type"] == "string"
        assert patients["full_name"]["size"] == 255
        assert patients["full_name"]["required"] is True
        assert patients["allergies"]["array"] is True
        assert patients["allergies"]["required"] is False
        assert patients["dob"]["type"] == "datetime"
        assert patients["contact_number"]["type"] == "integer"
        assert patients["email"]["type"] == "email"

        appointments = gateway.attributes("dbDocpilot", "appointments")
        assert appointments["status"]["elements"] == ["Scheduled", "Completed", "Cancelled"]

        prescriptions = gateway.attributes("dbDocpilot", "prescriptions")
        assert prescriptions["signed_by"]["size"] == 255
        assert prescriptions["is_signed"]["type"] == "boolean"
        assert prescriptions["is_signed"]["default"] is False
        assert prescriptions["symptoms"]["array"] is True

    def test_collections_get_baseline_permissions(self, gateway):
        make_provisioner(gateway).run(DOCPILOT_SCHEMA)

        for call in gateway.calls_to("create_collection"):
            permissions = call[4]
            assert permissions == [
                'read("any")',
                'create("users")',
                'update("users")',
                'delete("users")',
            ]

    def test_second_run_changes_nothing(self, gateway, reporter):
        make_provisioner(gateway).run(DOCPILOT_SCHEMA)
        before = remote_state(gateway)
        gateway.calls.clear()

        report = make_provisioner(gateway, reporter).run(DOCPILOT_SCHEMA)

        assert remote_state(gateway) == before
        assert report.changed is False
        assert report.database_created is False
        assert report.attributes_created == 0
        assert report.relationships_created == []
        assert len(report.relationships_existing) == 8
        assert gateway.calls_to("create_database") == []
        assert gateway.calls_to("create_collection") == []
        assert gateway.calls_to("get_attribute") == []
        assert reporter.of_kind("failed") == []


class TestNonDestructive:

    def test_custom_attribute_survives(self, gateway):
        gateway.add_collection("dbDocpilot", "patients", "Patients")
        gateway.add_attribute("dbDocpilot", "patients", "notes", type="string", size=5000)

        report = make_provisioner(gateway).run(DOCPILOT_SCHEMA)

        patients = gateway.attributes("dbDocpilot", "patients")
        assert patients["notes"] == {"key": "notes", "status": "available", "type": "string", "size": 5000}
        declared = {a.name for a in next(c for c in DOCPILOT_SCHEMA.collections if c.id == "patients").attributes}
        assert declared <= set(patients)
        assert report.collections[0].created is False

    def test_existing_declared_attribute_is_not_modified(self, gateway):
        gateway.add_collection("dbDocpilot", "patients", "Patients")
        gateway.add_attribute("dbDocpilot", "patients", "full_name", type="string", size=999, required=False)
        before = copy.deepcopy(gateway.attributes("dbDocpilot", "patients")["full_name"])

        report = make_provisioner(gateway).run(DOCPILOT_SCHEMA)

        assert gateway.attributes("dbDocpilot", "patients")["full_name"] == before
        patients_report = report.collections[0]
        assert "full_name" in patients_report.attributes_existing
        assert "full_name" not in patients_report.attributes_created
        assert len(patients_report.attributes_created) == 9

    def test_existing_database_is_reused(self, gateway):
        gateway.add_database("dbDocpilot", "Renamed by hand")

        report = make_provisioner(gateway).run(DOCPILOT_SCHEMA)

        assert report.database_created is False
        assert gateway.calls_to("create_database") == []
        assert gateway.databases["dbDocpilot"]["name"] == "Renamed by hand"


class TestUnsupportedKind:

    def test_geo_attribute_is_skipped_with_warning(self, gateway, reporter):
        schema = SchemaDeclaration(
            database_id="db",
            database_name="DB",
            collections=[
                CollectionDeclaration(
                    id="clinics",
                    name="Clinics",
                    attributes=[
                        AttributeDeclaration(name="name", kind="string", required=True),
                        AttributeDeclaration(name="location", kind="geo"),
                        AttributeDeclaration(name="active", kind="boolean", default=True),
                    ],
                )
            ],
        )

        report = make_provisioner(gateway, reporter).run(schema)

        clinic = report.collections[0]
        assert clinic.attributes_skipped == ["location"]
        assert clinic.attributes_created == ["name", "active"]
        assert set(gateway.attributes("db", "clinics")) == {"name", "active"}

        warnings = reporter.of_kind("warning")
        assert len(warnings) == 1
        assert "geo" in warnings[0][2]


class TestFatalErrors:

    def test_collection_lookup_failure_aborts(self, gateway, reporter, small_schema):
        gateway.failures["get_collection"] = RemoteServiceError("Unauthorized", code=401)

        with pytest.raises(ProvisioningError) as exc_info:
            make_provisioner(gateway, reporter).run(small_schema)

        assert exc_info.value.step == "collection 'owners'"
        assert "Unauthorized" in str(exc_info.value)
        assert gateway.calls_to("create_collection") == []
        assert gateway.calls_to("create_relationship_attribute") == []
        assert reporter.of_kind("failed")[0][1] == "collection 'owners'"

    def test_database_lookup_failure_aborts(self, gateway, small_schema):
        gateway.failures["get_database"] = RemoteServiceError("Network unreachable")

        with pytest.raises(ProvisioningError) as exc_info:
            make_provisioner(gateway).run(small_schema)

        assert exc_info.value.step == "database 'testdb'"
        assert gateway.calls_to("get_collection") == []

    def test_relationship_failure_stops_remaining_relationships(self, gateway, small_schema):
        gateway.failures["create_relationship_attribute"] = RemoteServiceError("Server error", code=500)

        with pytest.raises(ProvisioningError) as exc_info:
            make_provisioner(gateway).run(small_schema)

        assert exc_info.value.step == "relationships"
        assert len(gateway.calls_to("create_relationship_attribute")) == 1

    def test_rerun_after_failure_completes(self, gateway, small_schema):
        gateway.failures["create_relationship_attribute"] = RemoteServiceError("Server error", code=500)
        with pytest.raises(ProvisioningError):
            make_provisioner(gateway).run(small_schema)

        del gateway.failures["create_relationship_attribute"]
        report = make_provisioner(gateway).run(small_schema)

        assert report.attributes_created == 0
        assert len(report.relationships_created) == 2


class TestRelationships:

    def test_existing_relationship_counts_as_success(self, gateway, small_schema):
        gateway.add_collection("testdb", "owners")
        gateway.add_attribute("testdb", "owners", "pets", type="relationship")

        report = make_provisioner(gateway).run(small_schema)

        assert report.relationships_existing == ["owners.pets -> pets (oneToMany)"]
        assert report.relationships_created == ["pets.owner -> owners (manyToOne)"]

    def test_relationship_ensurer_passes_declaration_through(self, gateway, reporter, small_schema):
        gateway.add_collection("testdb", "owners")
        gateway.add_collection("testdb", "pets")

        created, existing = RelationshipEnsurer(gateway, reporter).ensure_all(
            "testdb", small_schema.relationships
        )

        assert len(created) == 2 and existing == []
        owner = gateway.attributes("testdb", "pets")["owner"]
        assert owner["related_collection"] == "owners"
        assert owner["relation_type"] == "manyToOne"
        assert owner["two_way"] is False


class TestReadiness:

    def test_waits_until_available(self, gateway, small_schema):
        gateway.status_sequences[("owners", "name")] = ["processing", "processing", "available"]

        make_provisioner(gateway).run(small_schema)

        polls = [c for c in gateway.calls_to("get_attribute") if c[3] == "name"]
        assert len(polls) == 3

    def test_relationships_wait_for_attributes(self, gateway, small_schema):
        gateway.status_sequences[("pets", "kind")] = ["processing", "available"]

        make_provisioner(gateway).run(small_schema)

        names = [call[0] for call in gateway.calls]
        last_poll = max(i for i, name in enumerate(names) if name == "get_attribute")
        first_relationship = names.index("create_relationship_attribute")
        assert last_poll < first_relationship

    def test_failed_attribute_is_fatal(self, gateway, small_schema):
        gateway.status_sequences[("owners", "age")] = ["failed"]

        with pytest.raises(ProvisioningError) as exc_info:
            make_provisioner(gateway).run(small_schema)

        assert exc_info.value.step == "readiness of 'owners'"
        assert isinstance(exc_info.value.cause, AttributeNotReadyError)
        assert exc_info.value.cause.key == "age"
        assert gateway.calls_to("create_relationship_attribute") == []

    def test_timeout_is_fatal(self, gateway, small_schema):
        gateway.status_sequences[("owners", "name")] = ["processing"] * 10

        with pytest.raises(ProvisioningError) as exc_info:
            make_provisioner(gateway, poll_timeout=0).run(small_schema)

        cause = exc_info.value.cause
        assert isinstance(cause, AttributeNotReadyError)
        assert "processing" in cause.status

    def test_existing_processing_attribute_is_awaited(self, gateway, small_schema):
        gateway.add_collection("testdb", "owners")
        gateway.add_attribute("testdb", "owners", "name", status="processing", type="string")
        gateway.status_sequences[("owners", "name")] = ["available"]

        make_provisioner(gateway).run(small_schema)

        assert ("get_attribute", "testdb", "owners", "name") in gateway.calls

    def test_no_wait_skips_polling(self, gateway, small_schema):
        make_provisioner(gateway, wait_for_attributes=False).run(small_schema)

        assert gateway.calls_to("get_attribute") == []
        assert len(gateway.calls_to("create_relationship_attribute")) == 2


class TestEnsurers:

    def test_collection_ensurer_creates_missing(self, gateway, reporter, small_schema):
        gateway.add_database("testdb")

        created = CollectionEnsurer(gateway, reporter).ensure("testdb", small_schema.collections[0])

        assert created is True
        assert gateway.collections[("testdb", "owners")]["name"] == "Owners"

    def test_collection_ensurer_propagates_other_errors(self, gateway, reporter, small_schema):
        gateway.failures["get_collection"] = RemoteServiceError("Forbidden", code=403)

        with pytest.raises(RemoteServiceError):
            CollectionEnsurer(gateway, reporter).ensure("testdb", small_schema.collections[0])

    def test_attribute_ensurer_requires_collection(self, gateway, reporter, attribute_factory):
        with pytest.raises(NotFoundError):
            AttributeEnsurer(gateway, reporter).ensure("testdb", "missing", [attribute_factory("x")])

    def test_attribute_ensurer_issues_one_call_per_missing_attribute(self, gateway, reporter, attribute_factory):
        gateway.add_collection("testdb", "things")
        gateway.add_attribute("testdb", "things", "a")

        outcome, pending = AttributeEnsurer(gateway, reporter).ensure(
            "testdb", "things",
            [attribute_factory("a"), attribute_factory("b"), attribute_factory("c", "email")],
        )

        assert outcome.created == ["b", "c"]
        assert outcome.existing == ["a"]
        assert pending == ["b", "c"]
        assert len(gateway.calls_to("create_string_attribute")) == 1
        assert len(gateway.calls_to("create_email_attribute")) == 1

    def test_attribute_created_concurrently_counts_as_existing(self, gateway, reporter, attribute_factory):
        gateway.add_collection("testdb", "things")
        # Listed as absent, but another client creates it before we do.
        gateway.failures["create_string_attribute"] = ConflictError(
            "Attribute with the requested key already exists.", code=409
        )

        outcome, pending = AttributeEnsurer(gateway, reporter).ensure(
            "testdb", "things", [attribute_factory("a"), attribute_factory("b", "boolean")]
        )

        assert outcome.existing == ["a"]
        assert outcome.created == ["b"]
        assert pending == ["b"]
        assert reporter.of_kind("warning") == []

"""
Declared DocPilot database schema and schema file loading.
"""

from pathlib import Path
from typing import Union
from pydantic import ValidationError

from docpilot.config import settings
from docpilot.core.errors import SchemaDeclarationError
from docpilot.models.schema import (
    AttributeDeclaration as A,
    CollectionDeclaration,
    RelationshipDeclaration,
    RelationshipType,
    SchemaDeclaration,
)


PATIENTS = CollectionDeclaration(
    id="patients",
    name="Patients",
    attributes=[
        A(name="full_name", kind="string", required=True, size=255),
        A(name="dob", kind="datetime", required=True),
        A(name="gender", kind="string", required=True, size=20),
        A(name="contact_number", kind="integer", required=True),
        A(name="email", kind="email", required=True),
        A(name="allergies", kind="string", size=255, array=True),
        A(name="medical_history", kind="string", size=2000),
        A(name="ongoing_medications", kind="string", size=255, array=True),
        A(name="lifestyle_habits", kind="string", size=500),
        A(name="insurance_id", kind="string", size=100),
    ],
)

DOCTORS = CollectionDeclaration(
    id="doctors",
    name="Doctors",
    attributes=[
        A(name="full_name", kind="string", required=True, size=255),
        A(name="sign_id", kind="string", required=True, size=100),
        A(name="specialization", kind="string", required=True, size=100),
        A(name="contact_number", kind="integer", required=True),
        A(name="email", kind="email", required=True),
        A(name="clinic_address", kind="string", required=True, size=500),
    ],
)

APPOINTMENTS = CollectionDeclaration(
    id="appointments",
    name="Appointments",
    attributes=[
        A(name="appointment_date", kind="datetime", required=True),
        A(name="status", kind="enum", required=True, elements=["Scheduled", "Completed", "Cancelled"]),
    ],
)

PRESCRIPTIONS = CollectionDeclaration(
    id="prescriptions",
    name="Prescriptions",
    attributes=[
        A(name="signed_by", kind="string"),
        A(name="signed_at", kind="datetime"),
        A(name="is_signed", kind="boolean", default=False),
        A(name="symptoms", kind="string", array=True),
        A(name="diagnosis", kind="string", array=True),
        A(name="medications", kind="string", array=True),
        A(name="tests", kind="string", array=True),
        A(name="additional_notes", kind="string", size=1000),
    ],
)


def _link(source: str, target: str, type: RelationshipType, key: str) -> RelationshipDeclaration:
    return RelationshipDeclaration(
        collection_id=source, related_collection_id=target, type=type, key=key
    )


# Two-way links are spelled out as two one-way declarations.
RELATIONSHIPS = [
    _link("patients", "appointments", RelationshipType.ONE_TO_MANY, "patient_appointments"),
    _link("appointments", "patients", RelationshipType.MANY_TO_ONE, "patient"),
    _link("appointments", "doctors", RelationshipType.MANY_TO_ONE, "doctor"),
    _link("doctors", "appointments", RelationshipType.ONE_TO_MANY, "doctor_appointments"),
    _link("doctors", "patients", RelationshipType.ONE_TO_MANY, "patients"),
    _link("prescriptions", "appointments", RelationshipType.MANY_TO_ONE, "appointment_id"),
    _link("prescriptions", "patients", RelationshipType.MANY_TO_ONE, "patient_id"),
    _link("prescriptions", "doctors", RelationshipType.MANY_TO_ONE, "doctor_id"),
]


DOCPILOT_SCHEMA = SchemaDeclaration(
    database_id=settings.database_id,
    database_name=settings.database_name,
    collections=[PATIENTS, DOCTORS, APPOINTMENTS, PRESCRIPTIONS],
    relationships=RELATIONSHIPS,
)


def load_schema(path: Union[str, Path]) -> SchemaDeclaration:
    """
    Load a schema declaration from a JSON file.

    The file mirrors SchemaDeclaration; collections omitting "permissions"
    get the baseline permission set.
    """
    path = Path(path)
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise SchemaDeclarationError(f"Cannot read schema file {path}: {e}") from e

    try:
        return SchemaDeclaration.model_validate_json(raw)
    except ValidationError as e:
        raise SchemaDeclarationError(f"Invalid schema file {path}: {e}") from e

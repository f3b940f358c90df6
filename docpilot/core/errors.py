"""
Exception hierarchy shared by the provisioner and the HTTP functions.
"""

from typing import Any, Optional


class DocPilotError(Exception):
    """Base class for all DocPilot errors."""


class RemoteServiceError(DocPilotError):
    """A call to the remote database/storage service failed."""

    def __init__(self, message: str, code: Optional[int] = None, response: Any = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.response = response


class NotFoundError(RemoteServiceError):
    """The requested remote entity does not exist (HTTP 404)."""


class ConflictError(RemoteServiceError):
    """The remote entity already exists (HTTP 409)."""


class SchemaDeclarationError(DocPilotError):
    """A schema declaration is malformed."""


class UnsupportedAttributeKindError(SchemaDeclarationError):
    """An attribute declaration uses a kind the engine cannot create.

    Raised per attribute; the attribute ensurer downgrades it to a warning.
    """

    def __init__(self, kind: str, attribute: str):
        super().__init__(f"Unsupported attribute type: {kind} (attribute '{attribute}')")
        self.kind = kind
        self.attribute = attribute


class AttributeNotReadyError(DocPilotError):
    """An attribute did not reach the 'available' state."""

    def __init__(self, collection_id: str, key: str, status: str):
        super().__init__(
            f"Attribute '{key}' on collection '{collection_id}' is '{status}', expected 'available'"
        )
        self.collection_id = collection_id
        self.key = key
        self.status = status


class ProvisioningError(DocPilotError):
    """Fatal error that aborted a provisioning run."""

    def __init__(self, step: str, cause: Exception):
        message = getattr(cause, "message", None) or str(cause)
        super().__init__(f"{step}: {message}")
        self.step = step
        self.cause = cause


class TranscriptionError(DocPilotError):
    """Speech-to-text failed or returned nothing usable."""


class PrescriptionGenerationError(DocPilotError):
    """The language model did not produce a valid prescription."""


class CertificateError(DocPilotError):
    """Certificate generation or upload failed."""

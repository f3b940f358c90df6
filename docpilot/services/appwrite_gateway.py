"""
Remote database and storage boundary.

The provisioner only talks to a DatabaseGateway; AppwriteDatabaseGateway is the
production implementation on top of the Appwrite Python SDK. SDK exceptions are
translated into NotFoundError / ConflictError / RemoteServiceError.
"""

from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Any, Dict, List, Optional

from appwrite.client import Client
from appwrite.enums.relation_mutate import RelationMutate
from appwrite.enums.relationship_type import RelationshipType
from appwrite.exception import AppwriteException
from appwrite.input_file import InputFile
from appwrite.services.databases import Databases
from appwrite.services.storage import Storage

from docpilot.core.errors import ConflictError, NotFoundError, RemoteServiceError
from docpilot.core.logging import get_logger

logger = get_logger(__name__)


def build_client(endpoint: str, project_id: str, api_key: str) -> Client:
    """Create an authenticated Appwrite client."""
    return (
        Client()
        .set_endpoint(endpoint)
        .set_project(project_id)
        .set_key(api_key)
    )


@contextmanager
def translate_errors():
    """Map Appwrite SDK exceptions onto the DocPilot error hierarchy."""
    try:
        yield
    except AppwriteException as e:
        message = getattr(e, "message", None) or str(e)
        code = getattr(e, "code", None)
        response = getattr(e, "response", None)
        if code == 404:
            raise NotFoundError(message, code=code, response=response) from e
        if code == 409:
            raise ConflictError(message, code=code, response=response) from e
        raise RemoteServiceError(message, code=code, response=response) from e


def _field(entity: Any, name: str) -> Any:
    # Older SDK releases return plain dicts, newer ones response models.
    if isinstance(entity, dict):
        return entity.get(name)
    return getattr(entity, name, None)


class DatabaseGateway(ABC):
    """Narrow view of the remote database service used by the provisioner."""

    @abstractmethod
    def get_database(self, database_id: str) -> Dict[str, Any]: ...

    @abstractmethod
    def create_database(self, database_id: str, name: str) -> Dict[str, Any]: ...

    @abstractmethod
    def get_collection(self, database_id: str, collection_id: str) -> Dict[str, Any]: ...

    @abstractmethod
    def create_collection(
        self, database_id: str, collection_id: str, name: str, permissions: List[str]
    ) -> Dict[str, Any]: ...

    @abstractmethod
    def list_attributes(self, database_id: str, collection_id: str) -> List[Dict[str, Any]]:
        """Return the collection's attributes, each with at least 'key' and 'status'."""

    @abstractmethod
    def get_attribute(self, database_id: str, collection_id: str, key: str) -> Dict[str, Any]: ...

    @abstractmethod
    def create_string_attribute(
        self, database_id: str, collection_id: str, key: str, size: int,
        required: bool, default: Optional[str] = None, array: bool = False,
    ) -> Dict[str, Any]: ...

    @abstractmethod
    def create_integer_attribute(
        self, database_id: str, collection_id: str, key: str, required: bool,
        min: Optional[int] = None, max: Optional[int] = None,
        default: Optional[int] = None, array: bool = False,
    ) -> Dict[str, Any]: ...

    @abstractmethod
    def create_datetime_attribute(
        self, database_id: str, collection_id: str, key: str, required: bool,
        default: Optional[str] = None, array: bool = False,
    ) -> Dict[str, Any]: ...

    @abstractmethod
    def create_email_attribute(
        self, database_id: str, collection_id: str, key: str, required: bool,
        default: Optional[str] = None, array: bool = False,
    ) -> Dict[str, Any]: ...

    @abstractmethod
    def create_enum_attribute(
        self, database_id: str, collection_id: str, key: str, elements: List[str],
        required: bool, default: Optional[str] = None, array: bool = False,
    ) -> Dict[str, Any]: ...

    @abstractmethod
    def create_boolean_attribute(
        self, database_id: str, collection_id: str, key: str, required: bool,
        default: Optional[bool] = None, array: bool = False,
    ) -> Dict[str, Any]: ...

    @abstractmethod
    def create_relationship_attribute(
        self, database_id: str, collection_id: str, related_collection_id: str,
        type: str, two_way: bool, key: str, two_way_key: Optional[str], on_delete: str,
    ) -> Dict[str, Any]: ...


class AppwriteDatabaseGateway(DatabaseGateway):
    """DatabaseGateway backed by the Appwrite Databases service."""

    def __init__(self, client: Client):
        self.databases = Databases(client)

    def get_database(self, database_id):
        with translate_errors():
            return self.databases.get(database_id=database_id)

    def create_database(self, database_id, name):
        with translate_errors():
            return self.databases.create(database_id=database_id, name=name)

    def get_collection(self, database_id, collection_id):
        with translate_errors():
            return self.databases.get_collection(database_id=database_id, collection_id=collection_id)

    def create_collection(self, database_id, collection_id, name, permissions):
        with translate_errors():
            return self.databases.create_collection(
                database_id=database_id,
                collection_id=collection_id,
                name=name,
                permissions=permissions,
            )

    def list_attributes(self, database_id, collection_id):
        with translate_errors():
            result = self.databases.list_attributes(database_id=database_id, collection_id=collection_id)
        return [
            {"key": _field(attr, "key"), "status": _field(attr, "status"), "type": _field(attr, "type")}
            for attr in (_field(result, "attributes") or [])
        ]

    def get_attribute(self, database_id, collection_id, key):
        with translate_errors():
            attr = self.databases.get_attribute(database_id=database_id, collection_id=collection_id, key=key)
        return {"key": _field(attr, "key"), "status": _field(attr, "status"), "type": _field(attr, "type")}

    def create_string_attribute(self, database_id, collection_id, key, size, required, default=None, array=False):
        with translate_errors():
            return self.databases.create_string_attribute(
                database_id=database_id, collection_id=collection_id, key=key,
                size=size, required=required, default=default, array=array,
            )

    def create_integer_attribute(self, database_id, collection_id, key, required,
                                 min=None, max=None, default=None, array=False):
        with translate_errors():
            return self.databases.create_integer_attribute(
                database_id=database_id, collection_id=collection_id, key=key,
                required=required, min=min, max=max, default=default, array=array,
            )

    def create_datetime_attribute(self, database_id, collection_id, key, required, default=None, array=False):
        with translate_errors():
            return self.databases.create_datetime_attribute(
                database_id=database_id, collection_id=collection_id, key=key,
                required=required, default=default, array=array,
            )

    def create_email_attribute(self, database_id, collection_id, key, required, default=None, array=False):
        with translate_errors():
            return self.databases.create_email_attribute(
                database_id=database_id, collection_id=collection_id, key=key,
                required=required, default=default, array=array,
            )

    def create_enum_attribute(self, database_id, collection_id, key, elements, required,
                              default=None, array=False):
        with translate_errors():
            return self.databases.create_enum_attribute(
                database_id=database_id, collection_id=collection_id, key=key,
                elements=elements, required=required, default=default, array=array,
            )

    def create_boolean_attribute(self, database_id, collection_id, key, required, default=None, array=False):
        with translate_errors():
            return self.databases.create_boolean_attribute(
                database_id=database_id, collection_id=collection_id, key=key,
                required=required, default=default, array=array,
            )

    def create_relationship_attribute(self, database_id, collection_id, related_collection_id,
                                      type, two_way, key, two_way_key, on_delete):
        with translate_errors():
            return self.databases.create_relationship_attribute(
                database_id=database_id,
                collection_id=collection_id,
                related_collection_id=related_collection_id,
                type=RelationshipType(type),
                two_way=two_way,
                key=key,
                two_way_key=two_way_key,
                on_delete=RelationMutate(on_delete),
            )


class AppwriteFileStore:
    """Uploads files to an Appwrite storage bucket."""

    def __init__(self, client: Client, endpoint: str, project_id: str):
        self.storage = Storage(client)
        self.endpoint = endpoint.rstrip("/")
        self.project_id = project_id

    def upload(
        self,
        bucket_id: str,
        file_id: str,
        data: bytes,
        filename: str,
        mime_type: str,
        permissions: Optional[List[str]] = None,
    ) -> str:
        """Upload bytes and return the stored file's id."""
        logger.info(f"Uploading {filename} ({len(data)} bytes) to bucket {bucket_id} as {file_id}")
        with translate_errors():
            result = self.storage.create_file(
                bucket_id=bucket_id,
                file_id=file_id,
                file=InputFile.from_bytes(data, filename=filename, mime_type=mime_type),
                permissions=permissions,
            )
        return _field(result, "$id") or _field(result, "id") or file_id

    def view_url(self, bucket_id: str, file_id: str) -> str:
        return (
            f"{self.endpoint}/storage/buckets/{bucket_id}/files/{file_id}"
            f"/view?project={self.project_id}"
        )

"""
Schema Provisioner

Converges a remote database toward a SchemaDeclaration. Every step is additive
and idempotent: missing entities are created, existing ones are left as they
are, so an interrupted run is repaired by running again.
"""

import time
from typing import Callable, Dict, List, Optional, Tuple

from tenacity import RetryError, Retrying, retry_if_result, stop_after_delay, wait_fixed

from docpilot.core.errors import (
    AttributeNotReadyError,
    ConflictError,
    NotFoundError,
    ProvisioningError,
    UnsupportedAttributeKindError,
)
from docpilot.core.reporting import LogReporter, ProvisioningReporter
from docpilot.models.provisioning import AttributeOutcome, CollectionReport, ProvisioningReport
from docpilot.models.schema import (
    AttributeDeclaration,
    AttributeKind,
    CollectionDeclaration,
    RelationshipDeclaration,
    SchemaDeclaration,
)
from docpilot.services.appwrite_gateway import DatabaseGateway

STATUS_AVAILABLE = "available"
PENDING_STATUSES = {"processing"}


class DatabaseEnsurer:
    """Makes sure the database container exists."""

    def __init__(self, gateway: DatabaseGateway, reporter: ProvisioningReporter):
        self.gateway = gateway
        self.reporter = reporter

    def ensure(self, database_id: str, name: str) -> bool:
        """Return True if the database had to be created."""
        step = f"database '{database_id}'"
        self.reporter.step_started(step)
        try:
            self.gateway.get_database(database_id)
        except NotFoundError:
            self.gateway.create_database(database_id, name)
            self.reporter.step_succeeded(step, f"Created database: {name}")
            return True
        self.reporter.step_succeeded(step, f"Database '{database_id}' already exists. Using it.")
        return False


class CollectionEnsurer:
    """Makes sure a collection exists with its declared permissions."""

    def __init__(self, gateway: DatabaseGateway, reporter: ProvisioningReporter):
        self.gateway = gateway
        self.reporter = reporter

    def ensure(self, database_id: str, collection: CollectionDeclaration) -> bool:
        """Return True if the collection had to be created."""
        step = f"collection '{collection.id}'"
        self.reporter.step_started(step)
        try:
            self.gateway.get_collection(database_id, collection.id)
        except NotFoundError:
            self.gateway.create_collection(
                database_id, collection.id, collection.name, list(collection.permissions)
            )
            self.reporter.step_succeeded(step, f"Created collection: {collection.name}")
            return True
        self.reporter.step_succeeded(step, f"Collection '{collection.id}' already exists. Using it.")
        return False


class AttributeEnsurer:
    """Adds declared attributes that are missing from a collection.

    Existing attributes are matched by key only and never altered.
    """

    def __init__(self, gateway: DatabaseGateway, reporter: ProvisioningReporter):
        self.gateway = gateway
        self.reporter = reporter
        self._creators: Dict[str, Callable[[str, str, AttributeDeclaration], object]] = {
            AttributeKind.STRING.value: self._create_string,
            AttributeKind.INTEGER.value: self._create_integer,
            AttributeKind.DATETIME.value: self._create_datetime,
            AttributeKind.EMAIL.value: self._create_email,
            AttributeKind.ENUM.value: self._create_enum,
            AttributeKind.BOOLEAN.value: self._create_boolean,
        }

    def ensure(
        self, database_id: str, collection_id: str, attributes: List[AttributeDeclaration]
    ) -> Tuple[AttributeOutcome, List[str]]:
        """
        Create every missing attribute.

        Returns the outcome and the keys that still have to become available
        before anything may depend on them.
        """
        step = f"attributes of '{collection_id}'"
        self.reporter.step_started(step)

        remote = self.gateway.list_attributes(database_id, collection_id)
        existing = {attr["key"]: attr.get("status") for attr in remote}

        outcome = AttributeOutcome()
        pending = [key for key, status in existing.items() if status in PENDING_STATUSES]

        for attribute in attributes:
            if attribute.name in existing:
                outcome.existing.append(attribute.name)
                continue
            try:
                self.create(database_id, collection_id, attribute)
            except UnsupportedAttributeKindError as e:
                self.reporter.warning(step, str(e))
                outcome.skipped.append(attribute.name)
                continue
            except ConflictError:
                # Appeared between listing and creating.
                outcome.existing.append(attribute.name)
                continue
            outcome.created.append(attribute.name)
            pending.append(attribute.name)

        self.reporter.step_succeeded(
            step,
            f"Attributes for {collection_id}: {len(outcome.created)} created, "
            f"{len(outcome.existing)} already present, {len(outcome.skipped)} skipped",
        )
        return outcome, pending

    def create(self, database_id: str, collection_id: str, attribute: AttributeDeclaration):
        if not attribute.is_supported:
            raise UnsupportedAttributeKindError(attribute.kind, attribute.name)
        return self._creators[attribute.kind](database_id, collection_id, attribute)

    def _create_string(self, database_id, collection_id, attr):
        return self.gateway.create_string_attribute(
            database_id, collection_id, attr.name, attr.effective_size,
            attr.required, default=attr.default, array=attr.array,
        )

    def _create_integer(self, database_id, collection_id, attr):
        return self.gateway.create_integer_attribute(
            database_id, collection_id, attr.name, attr.required,
            min=attr.min, max=attr.max, default=attr.default, array=attr.array,
        )

    def _create_datetime(self, database_id, collection_id, attr):
        return self.gateway.create_datetime_attribute(
            database_id, collection_id, attr.name, attr.required,
            default=attr.default, array=attr.array,
        )

    def _create_email(self, database_id, collection_id, attr):
        return self.gateway.create_email_attribute(
            database_id, collection_id, attr.name, attr.required,
            default=attr.default, array=attr.array,
        )

    def _create_enum(self, database_id, collection_id, attr):
        return self.gateway.create_enum_attribute(
            database_id, collection_id, attr.name, list(attr.elements), attr.required,
            default=attr.default, array=attr.array,
        )

    def _create_boolean(self, database_id, collection_id, attr):
        return self.gateway.create_boolean_attribute(
            database_id, collection_id, attr.name, attr.required,
            default=attr.default, array=attr.array,
        )


class AttributeReadinessWaiter:
    """Polls attributes until the backend reports them as available."""

    def __init__(
        self,
        gateway: DatabaseGateway,
        reporter: ProvisioningReporter,
        interval: float = 1.0,
        timeout: float = 60.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.gateway = gateway
        self.reporter = reporter
        self.interval = interval
        self.timeout = timeout
        self.sleep = sleep

    def wait(self, database_id: str, collection_id: str, keys: List[str]) -> None:
        if not keys:
            return
        step = f"readiness of '{collection_id}'"
        self.reporter.step_started(step)
        for key in keys:
            self.wait_for(database_id, collection_id, key)
        self.reporter.step_succeeded(step, f"{len(keys)} attribute(s) of {collection_id} available")

    def wait_for(self, database_id: str, collection_id: str, key: str) -> None:
        retryer = Retrying(
            stop=stop_after_delay(self.timeout),
            wait=wait_fixed(self.interval),
            retry=retry_if_result(lambda status: status in PENDING_STATUSES),
            sleep=self.sleep,
        )
        try:
            status = retryer(self._status, database_id, collection_id, key)
        except RetryError as e:
            last = e.last_attempt.result()
            raise AttributeNotReadyError(
                collection_id, key, f"{last} after {self.timeout:g}s"
            ) from e

        if status != STATUS_AVAILABLE:
            raise AttributeNotReadyError(collection_id, key, status)

    def _status(self, database_id: str, collection_id: str, key: str) -> Optional[str]:
        return self.gateway.get_attribute(database_id, collection_id, key).get("status")


class RelationshipEnsurer:
    """Creates relationship attributes; an existing one counts as success."""

    def __init__(self, gateway: DatabaseGateway, reporter: ProvisioningReporter):
        self.gateway = gateway
        self.reporter = reporter

    def ensure(self, database_id: str, relationship: RelationshipDeclaration) -> bool:
        """Return True if the relationship was created, False if it already existed."""
        try:
            self.gateway.create_relationship_attribute(
                database_id,
                relationship.collection_id,
                relationship.related_collection_id,
                type=relationship.type.value,
                two_way=relationship.two_way,
                key=relationship.key,
                two_way_key=relationship.two_way_key,
                on_delete=relationship.on_delete.value,
            )
        except ConflictError:
            return False
        return True

    def ensure_all(
        self, database_id: str, relationships: List[RelationshipDeclaration]
    ) -> Tuple[List[str], List[str]]:
        step = "relationships"
        self.reporter.step_started(step)
        created, existing = [], []
        for relationship in relationships:
            if self.ensure(database_id, relationship):
                created.append(relationship.describe())
            else:
                existing.append(relationship.describe())
        self.reporter.step_succeeded(
            step, f"Relationships: {len(created)} created, {len(existing)} already present"
        )
        return created, existing


class Provisioner:
    """
    Orchestrates a full run: database, then per collection the collection
    and its attributes, then attribute readiness, then relationships.

    The first fatal error aborts the run as a ProvisioningError naming the
    step that failed.
    """

    def __init__(
        self,
        gateway: DatabaseGateway,
        reporter: Optional[ProvisioningReporter] = None,
        wait_for_attributes: bool = True,
        poll_interval: float = 1.0,
        poll_timeout: float = 60.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.reporter = reporter or LogReporter()
        self.databases = DatabaseEnsurer(gateway, self.reporter)
        self.collections = CollectionEnsurer(gateway, self.reporter)
        self.attributes = AttributeEnsurer(gateway, self.reporter)
        self.readiness = AttributeReadinessWaiter(
            gateway, self.reporter, interval=poll_interval, timeout=poll_timeout, sleep=sleep
        )
        self.relationships = RelationshipEnsurer(gateway, self.reporter)
        self.wait_for_attributes = wait_for_attributes

    def run(self, schema: SchemaDeclaration) -> ProvisioningReport:
        report = ProvisioningReport(database_id=schema.database_id, database_name=schema.database_name)
        pending: Dict[str, List[str]] = {}

        report.database_created = self._step(
            f"database '{schema.database_id}'",
            self.databases.ensure, schema.database_id, schema.database_name,
        )

        for collection in schema.collections:
            created = self._step(
                f"collection '{collection.id}'",
                self.collections.ensure, schema.database_id, collection,
            )
            outcome, waiting = self._step(
                f"attributes of '{collection.id}'",
                self.attributes.ensure, schema.database_id, collection.id, collection.attributes,
            )
            pending[collection.id] = waiting
            report.collections.append(
                CollectionReport(
                    collection_id=collection.id,
                    name=collection.name,
                    created=created,
                    attributes_created=outcome.created,
                    attributes_existing=outcome.existing,
                    attributes_skipped=outcome.skipped,
                )
            )

        if self.wait_for_attributes:
            for collection_id, keys in pending.items():
                self._step(
                    f"readiness of '{collection_id}'",
                    self.readiness.wait, schema.database_id, collection_id, keys,
                )

        created, existing = self._step(
            "relationships", self.relationships.ensure_all, schema.database_id, schema.relationships
        )
        report.relationships_created = created
        report.relationships_existing = existing

        self.reporter.summary(report)
        return report

    def _step(self, step: str, func, *args):
        try:
            return func(*args)
        except ProvisioningError:
            raise
        except Exception as e:
            error = ProvisioningError(step, e)
            self.reporter.step_failed(step, str(error.cause))
            raise error from e

"""
Pydantic models describing the desired database schema
"""

from enum import Enum
from typing import Any, List, Optional
from pydantic import BaseModel, Field, model_validator
from appwrite.permission import Permission
from appwrite.role import Role


class AttributeKind(str, Enum):
    """Attribute kinds the provisioner knows how to create."""
    STRING = "string"
    INTEGER = "integer"
    DATETIME = "datetime"
    EMAIL = "email"
    ENUM = "enum"
    BOOLEAN = "boolean"


class RelationshipType(str, Enum):
    ONE_TO_ONE = "oneToOne"
    ONE_TO_MANY = "oneToMany"
    MANY_TO_ONE = "manyToOne"
    MANY_TO_MANY = "manyToMany"


class OnDeletePolicy(str, Enum):
    CASCADE = "cascade"
    SET_NULL = "setNull"
    RESTRICT = "restrict"


DEFAULT_STRING_SIZE = 255


def baseline_permissions() -> List[str]:
    """Public read, authenticated users may create, update and delete."""
    return [
        Permission.read(Role.any()),
        Permission.create(Role.users()),
        Permission.update(Role.users()),
        Permission.delete(Role.users()),
    ]


class AttributeDeclaration(BaseModel):
    """Desired state of a single attribute"""
    name: str = Field(min_length=1, description="Attribute key")
    # Kept as a plain string so unknown kinds survive loading and can be
    # skipped with a warning at provisioning time.
    kind: str = Field(description="Attribute kind, see AttributeKind")
    required: bool = Field(default=False)
    size: Optional[int] = Field(default=None, description="Maximum length (string only)")
    elements: Optional[List[str]] = Field(default=None, description="Allowed values (enum only)")
    min: Optional[int] = Field(default=None, description="Lower bound (integer only)")
    max: Optional[int] = Field(default=None, description="Upper bound (integer only)")
    default: Optional[Any] = Field(default=None)
    array: bool = Field(default=False)

    @model_validator(mode="after")
    def check_constraints(self):
        if self.required and self.default is not None:
            raise ValueError(f"attribute '{self.name}': a required attribute cannot have a default")
        if self.size is not None and self.size <= 0:
            raise ValueError(f"attribute '{self.name}': size must be positive")
        if self.kind == AttributeKind.ENUM.value and not self.elements:
            raise ValueError(f"attribute '{self.name}': enum attributes need at least one element")
        if self.min is not None and self.max is not None and self.min > self.max:
            raise ValueError(f"attribute '{self.name}': min is greater than max")
        return self

    @property
    def is_supported(self) -> bool:
        return self.kind in {kind.value for kind in AttributeKind}

    @property
    def effective_size(self) -> int:
        return self.size or DEFAULT_STRING_SIZE


class CollectionDeclaration(BaseModel):
    """Desired state of a collection and its attributes"""
    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    permissions: List[str] = Field(default_factory=baseline_permissions)
    attributes: List[AttributeDeclaration] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_unique_attributes(self):
        seen = set()
        for attribute in self.attributes:
            if attribute.name in seen:
                raise ValueError(f"collection '{self.id}': duplicate attribute '{attribute.name}'")
            seen.add(attribute.name)
        return self


class RelationshipDeclaration(BaseModel):
    """One direction of a link between two collections"""
    collection_id: str = Field(description="Source collection")
    related_collection_id: str = Field(description="Target collection")
    type: RelationshipType
    key: str = Field(min_length=1, description="Link attribute created on the source collection")
    two_way: bool = Field(default=False)
    two_way_key: Optional[str] = Field(default=None)
    on_delete: OnDeletePolicy = Field(default=OnDeletePolicy.CASCADE)

    def describe(self) -> str:
        return f"{self.collection_id}.{self.key} -> {self.related_collection_id} ({self.type.value})"


class SchemaDeclaration(BaseModel):
    """Complete desired end state of a database"""
    database_id: str = Field(min_length=1)
    database_name: str = Field(min_length=1)
    collections: List[CollectionDeclaration] = Field(default_factory=list)
    relationships: List[RelationshipDeclaration] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_references(self):
        ids = [collection.id for collection in self.collections]
        duplicates = {cid for cid in ids if ids.count(cid) > 1}
        if duplicates:
            raise ValueError(f"duplicate collections: {', '.join(sorted(duplicates))}")
        for relationship in self.relationships:
            for endpoint in (relationship.collection_id, relationship.related_collection_id):
                if endpoint not in ids:
                    raise ValueError(
                        f"relationship '{relationship.key}' references undeclared collection '{endpoint}'"
                    )
        return self

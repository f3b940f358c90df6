"""
Pydantic models for provisioning results
"""

from typing import List
from pydantic import BaseModel, Field


class AttributeOutcome(BaseModel):
    """Result of ensuring the attributes of one collection"""
    created: List[str] = Field(default_factory=list, description="Attributes created in this run")
    existing: List[str] = Field(default_factory=list, description="Declared attributes already present")
    skipped: List[str] = Field(default_factory=list, description="Declarations with an unsupported kind")


class CollectionReport(BaseModel):
    collection_id: str
    name: str
    created: bool = Field(description="Collection was created in this run")
    attributes_created: List[str] = Field(default_factory=list)
    attributes_existing: List[str] = Field(default_factory=list)
    attributes_skipped: List[str] = Field(default_factory=list)


class ProvisioningReport(BaseModel):
    """Summary of one provisioning run"""
    database_id: str
    database_name: str
    database_created: bool = False
    collections: List[CollectionReport] = Field(default_factory=list)
    relationships_created: List[str] = Field(default_factory=list)
    relationships_existing: List[str] = Field(default_factory=list)

    @property
    def attributes_created(self) -> int:
        return sum(len(c.attributes_created) for c in self.collections)

    @property
    def changed(self) -> bool:
        return bool(
            self.database_created
            or self.relationships_created
            or any(c.created or c.attributes_created for c in self.collections)
        )

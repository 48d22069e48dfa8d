"""
Request models for tool payloads.

Each tool argument is validated here before it reaches the store, so unknown
fields and missing required fields are rejected without a backend call.
"""

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class _Request(BaseModel):
    model_config = ConfigDict(extra='forbid', populate_by_name=True)


class EntityCreateRequest(_Request):
    """An entity to create, or merge into an existing one of the same name."""

    name: str = Field(..., min_length=1, description='Entity name')
    entity_type: str = Field(..., min_length=1, alias='entityType', description='Entity type')
    observations: Optional[List[str]] = Field(default=None, description='Observations about this entity')
    is_important: Optional[bool] = Field(default=None, alias='isImportant', description='Is entity important')


class EntityUpdateRequest(_Request):
    """Fields to change on an existing entity; omitted fields keep their values."""

    name: str = Field(..., min_length=1)
    entity_type: Optional[str] = Field(default=None, min_length=1, alias='entityType')
    observations: Optional[List[str]] = None
    is_important: Optional[bool] = Field(default=None, alias='isImportant')


class RelationRequest(_Request):
    """A relation as exposed to tool callers (``type`` is the relation type)."""

    from_entity: str = Field(..., min_length=1, alias='from', description='Source entity name')
    to_entity: str = Field(..., min_length=1, alias='to', description='Target entity name')
    relation_type: str = Field(..., min_length=1, alias='type', description='Relationship type')
    metadata: Optional[Dict[str, Any]] = Field(default=None, description='Additional relationship metadata')


class RelationKeyRequest(_Request):
    """Identifies a relation to delete."""

    from_entity: str = Field(..., min_length=1, alias='from')
    to_entity: str = Field(..., min_length=1, alias='to')
    relation_type: str = Field(..., min_length=1, alias='type')


class SearchRequest(_Request):
    """Ranked entity search."""

    query: str = Field(default='', description='Query text; empty matches every entity')
    entity_types: Optional[List[str]] = Field(default=None, alias='entityTypes')
    limit: int = Field(default=10, ge=1, description='Max results')
    sort_by: Literal['relevance', 'recency', 'recent', 'importance'] = Field(default='relevance', alias='sortBy')


class AddObservationsRequest(_Request):
    """Observations to append to an existing entity."""

    name: str = Field(..., min_length=1)
    observations: List[str] = Field(..., description='New observations to add')


class MarkImportantRequest(_Request):
    """Set or clear the importance flag of an entity."""

    name: str = Field(..., min_length=1)
    important: bool


class RelatedRequest(_Request):
    """Bounded traversal from one entity."""

    name: str = Field(..., min_length=1)
    depth: int = Field(default=1, ge=0, le=10)

"""
Core data models for the knowledge graph memory.

Entities and relations share one index and are told apart by the ``type``
field of their stored document.
"""

import hashlib
import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union

ENTITY_TYPE = 'entity'
RELATION_TYPE = 'relation'
DEFAULT_ENTITY_TYPE = 'unknown'


@dataclass
class Entity:
    """A named, typed node carrying free-text observations."""
    name: str  # Primary key
    entity_type: str = DEFAULT_ENTITY_TYPE
    observations: List[str] = field(default_factory=list)
    is_important: bool = False
    last_read: Optional[str] = None
    last_write: Optional[str] = None
    read_count: int = 0

    @property
    def doc_id(self) -> str:
        return entity_doc_id(self.name)

    def to_document(self) -> Dict[str, Any]:
        return {
            'type': ENTITY_TYPE,
            'name': self.name,
            'entityType': self.entity_type,
            'observations': list(self.observations),
            'isImportant': self.is_important,
            'lastRead': self.last_read,
            'lastWrite': self.last_write,
            'readCount': self.read_count
        }

    @classmethod
    def from_document(cls, source: Dict[str, Any]) -> 'Entity':
        return cls(name=source['name'],
                   entity_type=source.get('entityType') or DEFAULT_ENTITY_TYPE,
                   observations=list(source.get('observations') or []),
                   is_important=bool(source.get('isImportant', False)),
                   last_read=source.get('lastRead'),
                   last_write=source.get('lastWrite'),
                   read_count=int(source.get('readCount') or 0))

    def to_summary(self) -> Dict[str, Any]:
        """Shape returned to tool callers."""
        return {'name': self.name, 'entityType': self.entity_type, 'observations': list(self.observations)}


@dataclass
class Relation:
    """A typed directed edge between two entity names.

    Endpoints are not foreign keys; either side may name a deleted entity.
    """
    from_entity: str
    to_entity: str
    relation_type: str
    metadata: Optional[Dict[str, Any]] = None

    @property
    def key(self) -> tuple:
        return (self.from_entity, self.to_entity, self.relation_type)

    @property
    def doc_id(self) -> str:
        return relation_doc_id(self.from_entity, self.to_entity, self.relation_type)

    def to_document(self) -> Dict[str, Any]:
        document = {
            'type': RELATION_TYPE,
            'from': self.from_entity,
            'to': self.to_entity,
            'relationType': self.relation_type
        }
        if self.metadata:
            document['metadata'] = dict(self.metadata)
        return document

    @classmethod
    def from_document(cls, source: Dict[str, Any]) -> 'Relation':
        return cls(from_entity=source['from'],
                   to_entity=source['to'],
                   relation_type=source['relationType'],
                   metadata=source.get('metadata') or None)

    def to_summary(self) -> Dict[str, Any]:
        """Shape returned to tool callers (``relationType`` is exposed as ``type``)."""
        return {'from': self.from_entity, 'to': self.to_entity, 'type': self.relation_type}


GraphDocument = Union[Entity, Relation]


def entity_doc_id(name: str) -> str:
    return f'{ENTITY_TYPE}:{name}'


def relation_doc_id(from_entity: str, to_entity: str, relation_type: str) -> str:
    # Hash the triple so names containing separators cannot collide
    triple = json.dumps([from_entity, to_entity, relation_type], ensure_ascii=False)
    return f'{RELATION_TYPE}:{hashlib.sha1(triple.encode("utf-8")).hexdigest()}'


def document_from_source(source: Dict[str, Any]) -> GraphDocument:
    """Decode a stored document into an Entity or Relation.

    Raises:
        ValueError: If the discriminator is missing or unknown, or a key field is absent
    """
    doc_type = source.get('type')
    try:
        if doc_type == ENTITY_TYPE:
            return Entity.from_document(source)
        if doc_type == RELATION_TYPE:
            return Relation.from_document(source)
    except KeyError as e:
        raise ValueError(f'{doc_type} document is missing field {e}')
    raise ValueError(f'Unknown document type: {doc_type!r}')


class SortBy(str, Enum):
    """Ranking modes for entity search."""

    RELEVANCE = 'relevance'
    RECENCY = 'recency'
    IMPORTANCE = 'importance'

    @classmethod
    def parse(cls, value: Union[str, 'SortBy', None]) -> 'SortBy':
        """Normalize a caller-supplied sort mode.

        ``recent`` is accepted as a synonym of ``recency``.

        Raises:
            ValueError: If the value is not a known mode
        """
        if value is None or value == '':
            return cls.RELEVANCE
        if isinstance(value, cls):
            return value
        normalized = str(value).strip().lower()
        if normalized == 'recent':
            return cls.RECENCY
        return cls(normalized)


@dataclass
class SearchHit:
    """One ranked search result."""
    entity: Entity
    score: Optional[float]
    highlights: Dict[str, List[str]] = field(default_factory=dict)


@dataclass
class SearchResult:
    """Total match count plus the capped, ordered hits."""
    total: int
    hits: List[SearchHit]

    @property
    def entities(self) -> List[Entity]:
        return [hit.entity for hit in self.hits]


@dataclass
class GraphNeighborhood:
    """Entities reached by a traversal (origin included) and the edges walked."""
    entities: List[Entity]
    relations: List[Relation]


@dataclass
class ItemResult:
    """Outcome of one item in a batch operation."""
    target: Dict[str, Any]
    success: bool
    data: Optional[Dict[str, Any]] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        result = dict(self.target)
        result['success'] = self.success
        if self.data:
            result.update(self.data)
        if self.error is not None:
            result['error'] = self.error
        return result

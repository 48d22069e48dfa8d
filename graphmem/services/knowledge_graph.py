"""
Knowledge graph store backed by a single OpenSearch index.

Entities and relations live side by side in one index, discriminated by the
``type`` field. Every public operation issues its backend requests through
``OpenSearchClient``; backend failures surface as ``BackendError`` and are
never retried here.
"""

from functools import wraps
from typing import Any, Dict, Iterable, List, Optional

from ..models.core import (ENTITY_TYPE, RELATION_TYPE, DEFAULT_ENTITY_TYPE, Entity, GraphDocument, GraphNeighborhood,
                           Relation, SearchHit, SearchResult, SortBy, document_from_source, entity_doc_id,
                           relation_doc_id)
from ..utils.config import config
from ..utils.logging_config import get_logger
from ..utils.opensearch_client import OpenSearchClient, OpenSearchError
from ..utils.timestamp_utils import to_iso_str

logger = get_logger(__name__)

INDEX_BODY = {
    'settings': {
        'index': {
            'number_of_shards': 1
        }
    },
    'mappings': {
        'properties': {
            'type': {
                'type': 'keyword'
            },
            'name': {
                'type': 'text',
                'fields': {
                    'keyword': {
                        'type': 'keyword'
                    }
                }
            },
            'entityType': {
                'type': 'keyword'
            },
            'observations': {
                'type': 'text'
            },
            'isImportant': {
                'type': 'boolean'
            },
            'lastRead': {
                'type': 'date'
            },
            'lastWrite': {
                'type': 'date'
            },
            'readCount': {
                'type': 'integer'
            },
            'from': {
                'type': 'keyword'
            },
            'to': {
                'type': 'keyword'
            },
            'relationType': {
                'type': 'keyword'
            },
            'metadata': {
                'type': 'object',
                'enabled': False
            }
        }
    }
}

TEXT_FIELDS = ['name^3', 'observations']
EXACT_NAME_BOOST = 10.0

SORT_CLAUSES = {
    SortBy.RELEVANCE: [{
        '_score': {
            'order': 'desc'
        }
    }, {
        'name.keyword': {
            'order': 'asc'
        }
    }],
    SortBy.RECENCY: [{
        'lastRead': {
            'order': 'desc',
            'missing': '_last'
        }
    }, {
        'name.keyword': {
            'order': 'asc'
        }
    }],
    SortBy.IMPORTANCE: [{
        'isImportant': {
            'order': 'desc'
        }
    }, {
        'readCount': {
            'order': 'desc'
        }
    }, {
        '_score': {
            'order': 'desc'
        }
    }, {
        'name.keyword': {
            'order': 'asc'
        }
    }]
}

READ_ACCOUNTING_SCRIPT = ('ctx._source.readCount = (ctx._source.readCount == null ? 0 : ctx._source.readCount) + 1; '
                          'ctx._source.lastRead = params.now')


class KnowledgeGraphError(Exception):
    """Base error for store operations, carrying the operation and its target."""

    def __init__(self, operation: str, target: Any, message: str):
        self.operation = operation
        self.target = target
        super().__init__(f"{operation} failed for '{target}': {message}")


class BackendError(KnowledgeGraphError):
    """The search backend is unreachable, unauthenticated or rejected the request."""
    pass


class InvalidRequestError(KnowledgeGraphError):
    """Malformed input, rejected before any backend call."""
    pass


class EntityNotFoundError(KnowledgeGraphError):
    """An operation required an existing entity."""
    pass


def backend_operation(func):
    """Decorator to convert client wrapper failures into BackendError."""

    @wraps(func)
    def wrapper(self, *args, **kwargs):
        try:
            return func(self, *args, **kwargs)
        except OpenSearchError as e:
            target = args[0] if args else next(iter(kwargs.values()), self.opensearch.index_name)
            logger.error(f'Backend error in {func.__name__} for {target!r}: {e}')
            raise BackendError(func.__name__, target, str(e))

    return wrapper


def _require_text(operation: str, field_name: str, value: Any) -> str:
    if not isinstance(value, str) or not value.strip():
        raise InvalidRequestError(operation, value, f'{field_name} must be a non-empty string')
    return value


class KnowledgeGraphService:
    """Entity/relation CRUD, ranked search and bounded traversal."""

    def __init__(self, opensearch: Optional[OpenSearchClient] = None):
        """Initialize the knowledge graph service.

        Args:
            opensearch: Client wrapper to use (built from global config if None)
        """
        self.opensearch = opensearch if opensearch is not None else OpenSearchClient(config.opensearch)
        self.max_relations = self.opensearch.config.max_relations
        logger.info('Initialized KnowledgeGraphService')

    @backend_operation
    def initialize(self) -> str:
        """Create the index if missing. Safe to call on every start.

        Returns:
            'created' or 'exists'

        Raises:
            BackendError: If the backend cannot be reached or refuses the index
        """
        status = self.opensearch.create_index_if_not_exists(INDEX_BODY)
        if status == 'failed':
            raise OpenSearchError(f'Index creation for {self.opensearch.index_name} was not acknowledged')
        return status

    @backend_operation
    def reset(self) -> None:
        """Delete every document by dropping and recreating the index."""
        self.opensearch.delete_index()
        self.opensearch.create_index_if_not_exists(INDEX_BODY)
        logger.info(f'Reset index {self.opensearch.index_name}')

    # Entities

    @backend_operation
    def save_entity(self,
                    name: str,
                    entity_type: Optional[str] = None,
                    observations: Optional[List[str]] = None,
                    is_important: Optional[bool] = None,
                    upsert: bool = True) -> Optional[Entity]:
        """Create or update an entity by name.

        Provided fields are merged into the stored document; omitted ones keep
        their previous values. ``lastWrite`` is always refreshed, read
        accounting is left alone.

        Args:
            name: Entity name (primary key)
            entity_type: New entity type, or None to keep
            observations: Replacement observation list, or None to keep
            is_important: New importance flag, or None to keep
            upsert: Create the entity when it does not exist

        Returns:
            The stored entity, or None if ``upsert`` is False and the entity is missing

        Raises:
            InvalidRequestError: If a field is malformed
        """
        _require_text('save_entity', 'name', name)
        if entity_type is not None:
            _require_text('save_entity', 'entityType', entity_type)
        if observations is not None and (not isinstance(observations, list)
                                         or not all(isinstance(obs, str) for obs in observations)):
            raise InvalidRequestError('save_entity', name, 'observations must be a list of strings')

        now = to_iso_str()
        doc = {'type': ENTITY_TYPE, 'name': name, 'lastWrite': now}
        if entity_type is not None:
            doc['entityType'] = entity_type
        if observations is not None:
            doc['observations'] = list(observations)
        if is_important is not None:
            doc['isImportant'] = bool(is_important)

        body = {'doc': doc}
        if upsert:
            body['upsert'] = Entity(name=name,
                                    entity_type=entity_type or DEFAULT_ENTITY_TYPE,
                                    observations=list(observations or []),
                                    is_important=bool(is_important),
                                    last_read=now,
                                    last_write=now).to_document()

        source = self.opensearch.update_document(entity_doc_id(name), body)
        if source is None:
            logger.debug(f'Entity {name!r} not found, nothing updated')
            return None
        logger.debug(f'Saved entity {name!r}')
        return Entity.from_document(source)

    @backend_operation
    def get_entity(self, name: str) -> Optional[Entity]:
        """Look up an entity by name and record the read.

        Increments ``readCount`` and sets ``lastRead`` in the same request.

        Returns:
            The entity as stored after the increment, or None if absent
        """
        _require_text('get_entity', 'name', name)
        body = {'script': {'source': READ_ACCOUNTING_SCRIPT, 'lang': 'painless', 'params': {'now': to_iso_str()}}}
        source = self.opensearch.update_document(entity_doc_id(name), body)
        if source is None:
            return None
        return Entity.from_document(source)

    @backend_operation
    def fetch_entities(self, names: Iterable[str]) -> List[Entity]:
        """Load entities by name without touching read accounting.

        Missing names are skipped; order follows ``names``.
        """
        unique_names = list(dict.fromkeys(n for n in names if n))
        sources = self.opensearch.get_documents([entity_doc_id(n) for n in unique_names])
        return [Entity.from_document(s) for s in sources if s.get('type') == ENTITY_TYPE]

    @backend_operation
    def delete_entity(self, name: str) -> bool:
        """Delete an entity document. Relations naming it are kept.

        Returns:
            True if the entity existed
        """
        _require_text('delete_entity', 'name', name)
        return self.opensearch.delete_document(entity_doc_id(name))

    # Relations

    @backend_operation
    def save_relation(self,
                      from_entity: str,
                      to_entity: str,
                      relation_type: str,
                      metadata: Optional[Dict[str, Any]] = None) -> Relation:
        """Create or replace the relation identified by (from, to, relationType)."""
        _require_text('save_relation', 'from', from_entity)
        _require_text('save_relation', 'to', to_entity)
        _require_text('save_relation', 'relationType', relation_type)
        if metadata is not None and not isinstance(metadata, dict):
            raise InvalidRequestError('save_relation', from_entity, 'metadata must be an object')

        relation = Relation(from_entity=from_entity, to_entity=to_entity, relation_type=relation_type, metadata=metadata)
        if not self.opensearch.index_document(relation.doc_id, relation.to_document()):
            raise OpenSearchError(f'Relation {relation.key} was not stored')
        logger.debug(f'Saved relation {relation.key}')
        return relation

    @backend_operation
    def delete_relation(self, from_entity: str, to_entity: str, relation_type: str) -> bool:
        """Delete one relation.

        Returns:
            True if the relation existed
        """
        _require_text('delete_relation', 'from', from_entity)
        _require_text('delete_relation', 'to', to_entity)
        _require_text('delete_relation', 'relationType', relation_type)
        return self.opensearch.delete_document(relation_doc_id(from_entity, to_entity, relation_type))

    @backend_operation
    def get_relations_for_entities(self, names: Iterable[str]) -> List[Relation]:
        """Return every relation with either endpoint in ``names``, deduplicated."""
        unique_names = list(dict.fromkeys(n for n in names if n))
        if not unique_names:
            return []

        search_body = {
            'size': self.max_relations,
            'query': {
                'bool': {
                    'filter': [{
                        'term': {
                            'type': RELATION_TYPE
                        }
                    }, {
                        'bool': {
                            'should': [{
                                'terms': {
                                    'from': unique_names
                                }
                            }, {
                                'terms': {
                                    'to': unique_names
                                }
                            }],
                            'minimum_should_match': 1
                        }
                    }]
                }
            },
            'sort': [{
                'from': {
                    'order': 'asc'
                }
            }, {
                'relationType': {
                    'order': 'asc'
                }
            }, {
                'to': {
                    'order': 'asc'
                }
            }]
        }
        response = self.opensearch.search(search_body)

        relations = {}
        for hit in response['hits']['hits']:
            relation = Relation.from_document(hit['_source'])
            relations.setdefault(relation.key, relation)

        if len(response['hits']['hits']) >= self.max_relations:
            logger.warning(f'Relation lookup for {len(unique_names)} entities hit the cap of {self.max_relations}')
        return list(relations.values())

    @backend_operation
    def get_related_entities(self, name: str, depth: int = 1) -> GraphNeighborhood:
        """Breadth-first walk over relations in both directions.

        Issues one relation query per level and one multi-get for the reached
        entities. The origin is part of the result; depth 0 returns only the
        origin and no relations.

        Args:
            name: Origin entity name
            depth: Maximum number of hops

        Returns:
            Reached entities (dangling names omitted) and the relations walked
        """
        _require_text('get_related_entities', 'name', name)
        if not isinstance(depth, int) or isinstance(depth, bool) or depth < 0:
            raise InvalidRequestError('get_related_entities', name, 'depth must be a non-negative integer')

        visited = {name: None}
        frontier = [name]
        relations = {}

        for level in range(depth):
            if not frontier:
                break
            next_frontier = []
            for relation in self.get_relations_for_entities(frontier):
                relations.setdefault(relation.key, relation)
                for neighbor in (relation.from_entity, relation.to_entity):
                    if neighbor not in visited:
                        visited[neighbor] = None
                        next_frontier.append(neighbor)
            logger.debug(f'Traversal from {name!r}: level {level + 1} reached {len(next_frontier)} new entities')
            frontier = next_frontier

        entities = self.fetch_entities(visited)
        return GraphNeighborhood(entities=entities, relations=list(relations.values()))

    # Search and export

    def build_search_body(self,
                          query: str = '',
                          entity_types: Optional[List[str]] = None,
                          limit: int = 10,
                          sort_by: SortBy = SortBy.RELEVANCE,
                          highlight: bool = False) -> Dict[str, Any]:
        """Build the query DSL for an entity search."""
        filters = [{'term': {'type': ENTITY_TYPE}}]
        if entity_types:
            filters.append({'terms': {'entityType': list(entity_types)}})

        text = (query or '').strip()
        if text and text != '*':
            bool_query = {
                'must': [{
                    'simple_query_string': {
                        'query': text,
                        'fields': TEXT_FIELDS,
                        'default_operator': 'or'
                    }
                }],
                'should': [{
                    'term': {
                        'name.keyword': {
                            'value': text,
                            'boost': EXACT_NAME_BOOST
                        }
                    }
                }],
                'filter': filters
            }
        else:
            bool_query = {'must': [{'match_all': {}}], 'filter': filters}

        search_body = {
            'size': limit,
            'track_total_hits': True,
            'track_scores': True,
            'query': {
                'bool': bool_query
            },
            'sort': SORT_CLAUSES[sort_by]
        }
        if highlight:
            search_body['highlight'] = {
                'pre_tags': ['<em>'],
                'post_tags': ['</em>'],
                'fields': {
                    'name': {},
                    'observations': {}
                }
            }
        return search_body

    @backend_operation
    def search(self,
               query: str = '',
               entity_types: Optional[List[str]] = None,
               limit: int = 10,
               sort_by: Any = SortBy.RELEVANCE,
               highlight: bool = False) -> SearchResult:
        """Ranked search over entities.

        Args:
            query: Query text (simple query string syntax); empty matches everything
            entity_types: Only return entities of these types
            limit: Maximum number of hits
            sort_by: relevance, recency (or recent) or importance
            highlight: Attach highlighted name/observation fragments

        Returns:
            SearchResult with the total match count and ordered hits
        """
        if not isinstance(query, str):
            raise InvalidRequestError('search', query, 'query must be a string')
        if not isinstance(limit, int) or isinstance(limit, bool) or limit < 1:
            raise InvalidRequestError('search', query, 'limit must be a positive integer')
        try:
            mode = SortBy.parse(sort_by)
        except ValueError:
            raise InvalidRequestError('search', query, f'unknown sortBy {sort_by!r}')

        response = self.opensearch.search(self.build_search_body(query, entity_types, limit, mode, highlight))

        total = response['hits']['total']
        if isinstance(total, dict):
            total = total.get('value', 0)

        hits = []
        for hit in response['hits']['hits']:
            source = hit['_source']
            if source.get('type') != ENTITY_TYPE:
                continue
            hits.append(SearchHit(entity=Entity.from_document(source),
                                  score=hit.get('_score'),
                                  highlights=hit.get('highlight', {})))

        logger.debug(f'Search {query!r} ({mode.value}) matched {total}, returning {len(hits)}')
        return SearchResult(total=int(total), hits=hits)

    @backend_operation
    def export_data(self) -> List[GraphDocument]:
        """Return every entity and relation, unranked and unlimited."""
        documents = []
        for source in self.opensearch.scan_documents():
            try:
                documents.append(document_from_source(source))
            except ValueError as e:
                logger.warning(f'Skipping undecodable document during export: {e}')
        return documents

    @backend_operation
    def restore_document(self, document: GraphDocument) -> bool:
        """Store a complete entity or relation document verbatim (used by import)."""
        if isinstance(document, Entity):
            _require_text('restore_document', 'name', document.name)
        elif isinstance(document, Relation):
            _require_text('restore_document', 'from', document.from_entity)
            _require_text('restore_document', 'to', document.to_entity)
            _require_text('restore_document', 'relationType', document.relation_type)
        else:
            raise InvalidRequestError('restore_document', document, 'expected an Entity or Relation')
        return self.opensearch.index_document(document.doc_id, document.to_document())

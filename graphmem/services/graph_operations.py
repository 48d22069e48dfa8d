"""
Tool-level operations over the knowledge graph store.

Batch operations run item by item: each item is validated and applied on its
own, so one failure never prevents the others, and the result reports every
item individually.
"""

from typing import Any, Callable, Dict, List, Optional, Type

from pydantic import BaseModel, ValidationError

from ..models.core import Entity, ItemResult, SortBy
from ..models.requests import (AddObservationsRequest, EntityCreateRequest, EntityUpdateRequest, MarkImportantRequest,
                               RelatedRequest, RelationKeyRequest, RelationRequest, SearchRequest)
from ..utils.logging_config import get_logger
from .knowledge_graph import EntityNotFoundError, InvalidRequestError, KnowledgeGraphError, KnowledgeGraphService

logger = get_logger(__name__)


def format_validation_error(error: ValidationError) -> str:
    """Render pydantic errors as 'field: message; ...'."""
    parts = []
    for err in error.errors():
        location = '.'.join(str(p) for p in err.get('loc', ())) or 'payload'
        parts.append(f"{location}: {err.get('msg')}")
    return '; '.join(parts)


def _entity_target(raw: Any) -> Dict[str, Any]:
    return {'name': raw.get('name') if isinstance(raw, dict) else raw}


def _relation_target(raw: Any) -> Dict[str, Any]:
    if not isinstance(raw, dict):
        return {'relation': raw}
    return {'from': raw.get('from'), 'to': raw.get('to'), 'type': raw.get('type')}


class GraphOperations:
    """Operations backing the MCP tools."""

    def __init__(self, service: Optional[KnowledgeGraphService] = None):
        self.service = service if service is not None else KnowledgeGraphService()

    def _validate(self, operation: str, model: Type[BaseModel], payload: Any) -> Any:
        try:
            return model.model_validate(payload)
        except ValidationError as e:
            target = payload.get('name') if isinstance(payload, dict) else payload
            raise InvalidRequestError(operation, target, format_validation_error(e))

    def _run_batch(self,
                   operation: str,
                   items: List[Any],
                   model: Type[BaseModel],
                   describe: Callable[[Any], Dict[str, Any]],
                   handler: Callable[[Any], Dict[str, Any]]) -> Dict[str, Any]:
        if not isinstance(items, list):
            raise InvalidRequestError(operation, items, 'expected a list of items')

        results = []
        for raw in items:
            target = describe(raw)
            try:
                request = self._validate(operation, model, raw)
                results.append(ItemResult(target=target, success=True, data=handler(request)))
            except KnowledgeGraphError as e:
                logger.warning(f'{operation}: item {target} failed: {e}')
                results.append(ItemResult(target=target, success=False, error=str(e)))

        failed = sum(1 for r in results if not r.success)
        if failed:
            logger.info(f'{operation}: {len(results) - failed} succeeded, {failed} failed')
        return {'results': [r.to_dict() for r in results]}

    def _graph_view(self, entities: List[Entity]) -> Dict[str, Any]:
        """Entities plus every relation touching them."""
        relations = self.service.get_relations_for_entities(e.name for e in entities)
        return {'entities': [e.to_summary() for e in entities], 'relations': [r.to_summary() for r in relations]}

    # Entities

    def create_entities(self, entities: List[Dict[str, Any]]) -> Dict[str, Any]:
        """Create each entity; for an existing name only the given fields change."""

        def handle(request: EntityCreateRequest) -> Dict[str, Any]:
            entity = self.service.save_entity(request.name,
                                              entity_type=request.entity_type,
                                              observations=request.observations,
                                              is_important=request.is_important)
            return {'entity': entity.to_summary()}

        return self._run_batch('create_entities', entities, EntityCreateRequest, _entity_target, handle)

    def update_entities(self, entities: List[Dict[str, Any]]) -> Dict[str, Any]:
        """Update existing entities; omitted fields keep their stored values."""

        def handle(request: EntityUpdateRequest) -> Dict[str, Any]:
            entity = self.service.save_entity(request.name,
                                              entity_type=request.entity_type,
                                              observations=request.observations,
                                              is_important=request.is_important,
                                              upsert=False)
            if entity is None:
                raise EntityNotFoundError('update_entities', request.name, 'entity not found')
            return {'entity': entity.to_summary()}

        return self._run_batch('update_entities', entities, EntityUpdateRequest, _entity_target, handle)

    def delete_entities(self, names: List[str]) -> Dict[str, Any]:
        """Delete entities by name. Their relations are left in place."""
        if not isinstance(names, list):
            raise InvalidRequestError('delete_entities', names, 'expected a list of names')

        results = []
        for name in names:
            try:
                deleted = self.service.delete_entity(name)
                results.append(ItemResult(target={'name': name}, success=True, data={'deleted': deleted}))
            except KnowledgeGraphError as e:
                logger.warning(f'delete_entities: {name!r} failed: {e}')
                results.append(ItemResult(target={'name': name}, success=False, error=str(e)))
        return {'results': [r.to_dict() for r in results]}

    def add_observations(self, name: str, observations: List[str]) -> Dict[str, Any]:
        """Append observations to an existing entity, skipping ones already present."""
        request = self._validate('add_observations', AddObservationsRequest, {
            'name': name,
            'observations': observations
        })
        existing = self.service.fetch_entities([request.name])
        if not existing:
            raise EntityNotFoundError('add_observations', request.name, 'entity not found')

        current = existing[0].observations
        added = [obs for obs in dict.fromkeys(request.observations) if obs not in current]
        entity = self.service.save_entity(request.name, observations=current + added, upsert=False)
        if entity is None:
            raise EntityNotFoundError('add_observations', request.name, 'entity was deleted during update')
        return {'entity': entity.to_summary(), 'added': added}

    def mark_important(self, name: str, important: bool) -> Dict[str, Any]:
        """Set or clear the importance flag of an existing entity."""
        request = self._validate('mark_important', MarkImportantRequest, {'name': name, 'important': important})
        entity = self.service.save_entity(request.name, is_important=request.important, upsert=False)
        if entity is None:
            raise EntityNotFoundError('mark_important', request.name, 'entity not found')
        return {'entity': entity.to_summary(), 'isImportant': entity.is_important}

    # Relations

    def create_relations(self, relations: List[Dict[str, Any]]) -> Dict[str, Any]:
        """Create each relation; an existing identical triple is overwritten."""

        def handle(request: RelationRequest) -> Dict[str, Any]:
            relation = self.service.save_relation(request.from_entity,
                                                  request.to_entity,
                                                  request.relation_type,
                                                  metadata=request.metadata)
            return {'relation': relation.to_summary()}

        return self._run_batch('create_relations', relations, RelationRequest, _relation_target, handle)

    def delete_relations(self, relations: List[Dict[str, Any]]) -> Dict[str, Any]:

        def handle(request: RelationKeyRequest) -> Dict[str, Any]:
            deleted = self.service.delete_relation(request.from_entity, request.to_entity, request.relation_type)
            return {'deleted': deleted}

        return self._run_batch('delete_relations', relations, RelationKeyRequest, _relation_target, handle)

    # Queries

    def search_nodes(self,
                     query: str = '',
                     entity_types: Optional[List[str]] = None,
                     limit: int = 10,
                     sort_by: str = 'relevance') -> Dict[str, Any]:
        """Ranked search, returning matching entities and their relations."""
        request = self._validate('search_nodes', SearchRequest, {
            'query': query,
            'entityTypes': entity_types,
            'limit': limit,
            'sortBy': sort_by
        })
        result = self.service.search(request.query,
                                     entity_types=request.entity_types,
                                     limit=request.limit,
                                     sort_by=SortBy.parse(request.sort_by))
        return self._graph_view(result.entities)

    def open_nodes(self, names: List[str]) -> Dict[str, Any]:
        """Read entities by name (counted as reads) with their relations."""
        if not isinstance(names, list):
            raise InvalidRequestError('open_nodes', names, 'expected a list of names')

        entities = []
        for name in dict.fromkeys(names):
            entity = self.service.get_entity(name)
            if entity is not None:
                entities.append(entity)
        return self._graph_view(entities)

    def get_recent(self, limit: int = 10) -> Dict[str, Any]:
        """Most recently read entities with their relations."""
        return self.search_nodes(query='', limit=limit, sort_by=SortBy.RECENCY.value)

    def get_related(self, name: str, depth: int = 1) -> Dict[str, Any]:
        """Entities within ``depth`` hops of ``name`` and the relations between them."""
        request = self._validate('get_related', RelatedRequest, {'name': name, 'depth': depth})
        neighborhood = self.service.get_related_entities(request.name, request.depth)
        return {
            'entities': [e.to_summary() for e in neighborhood.entities],
            'relations': [r.to_summary() for r in neighborhood.relations]
        }

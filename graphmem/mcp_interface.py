"""
MCP Interface Layer exposing the knowledge graph memory through fastmcp.
"""
from typing import Any, Dict, List, Optional

from fastmcp import FastMCP

from .services.graph_operations import GraphOperations
from .services.knowledge_graph import BackendError, KnowledgeGraphError
from .utils.config import config
from .utils.logging_config import get_logger

logger = get_logger(__name__)

# Initialize FastMCP application
mcp = FastMCP('memory')
operations = GraphOperations()


def _call(tool_name: str, func, *args, **kwargs) -> Dict[str, Any]:
    logger.debug(f'Tool request received: {tool_name}')
    try:
        return func(*args, **kwargs)
    except KnowledgeGraphError as e:
        logger.error(f'Knowledge graph error in {tool_name}: {e}')
        raise Exception(f'{tool_name} failed: {e}')
    except Exception as e:
        logger.error(f'Unexpected error in {tool_name}: {e}')
        raise Exception(f'{tool_name} failed: {e}')


@mcp.tool()
def create_entities(entities: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Create entities in knowledge graph (memory).

    Args:
        entities: Objects with name, entityType, optional observations and isImportant

    Returns:
        Per-entity results with the stored entity or an error
    """
    return _call('create_entities', operations.create_entities, entities)


@mcp.tool()
def update_entities(entities: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Update entities in knowledge graph (memory). Omitted fields keep their values.

    Args:
        entities: Objects with name and any of entityType, observations, isImportant

    Returns:
        Per-entity results with the updated entity or an error
    """
    return _call('update_entities', operations.update_entities, entities)


@mcp.tool()
def delete_entities(names: List[str]) -> Dict[str, Any]:
    """Delete entities from knowledge graph (memory). Relations are kept.

    Args:
        names: Names of entities to delete
    """
    return _call('delete_entities', operations.delete_entities, names)


@mcp.tool()
def create_relations(relations: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Create relationships between entities in knowledge graph (memory).

    Args:
        relations: Objects with from, to, type and optional metadata
    """
    return _call('create_relations', operations.create_relations, relations)


@mcp.tool()
def delete_relations(relations: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Delete relationships from knowledge graph (memory).

    Args:
        relations: Objects with from, to and type
    """
    return _call('delete_relations', operations.delete_relations, relations)


@mcp.tool()
def search_nodes(query: str,
                 entityTypes: Optional[List[str]] = None,
                 limit: int = 10,
                 sortBy: str = 'relevance') -> Dict[str, Any]:
    """Search for entities in knowledge graph (memory). Returns matching entities and their relations.

    Args:
        query: Query text (supports +, |, - operators, "phrases", prefix* and fuzzy~)
        entityTypes: Filter by entity types
        limit: Max results (default: 10)
        sortBy: relevance, recency or importance
    """
    return _call('search_nodes', operations.search_nodes, query, entity_types=entityTypes, limit=limit, sort_by=sortBy)


@mcp.tool()
def open_nodes(names: List[str]) -> Dict[str, Any]:
    """Get details about specific entities in knowledge graph (memory) and their relations.

    Args:
        names: Names of entities to retrieve
    """
    return _call('open_nodes', operations.open_nodes, names)


@mcp.tool()
def add_observations(name: str, observations: List[str]) -> Dict[str, Any]:
    """Add observations to an existing entity in knowledge graph (memory).

    Args:
        name: Entity name
        observations: New observations to add
    """
    return _call('add_observations', operations.add_observations, name, observations)


@mcp.tool()
def mark_important(name: str, important: bool) -> Dict[str, Any]:
    """Mark entity as important in knowledge graph (memory).

    Args:
        name: Entity name
        important: Set as important (true) or not (false)
    """
    return _call('mark_important', operations.mark_important, name, important)


@mcp.tool()
def get_recent(limit: int = 10) -> Dict[str, Any]:
    """Get recently accessed entities from knowledge graph (memory) and their relations.

    Args:
        limit: Max results (default: 10)
    """
    return _call('get_recent', operations.get_recent, limit)


@mcp.tool()
def get_related(name: str, depth: int = 1) -> Dict[str, Any]:
    """Get entities connected to an entity within a number of hops, and the relations between them.

    Args:
        name: Entity name to start from
        depth: Number of hops to follow in either direction (default: 1)
    """
    return _call('get_related', operations.get_related, name, depth)


def main() -> None:
    """Entry point for the MCP server."""
    try:
        operations.service.initialize()
        logger.info('Knowledge graph index initialized')
    except BackendError as e:
        logger.warning(f'Failed to connect to the search backend: {e}')
        logger.warning('The memory server will still start, but operations requiring the backend will fail')

    transport = config.mcp.transport
    logger.info(f'Starting MCP server ({transport})')
    if transport == 'stdio':
        mcp.run(transport=transport)
    else:
        mcp.run(transport=transport, host=config.mcp.host, port=config.mcp.port)


if __name__ == '__main__':
    main()

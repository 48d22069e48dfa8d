"""Admin CLI for the knowledge graph index"""

import argparse
import json
import sys
from collections import Counter
from typing import List, Optional

from .models.core import Entity, Relation
from .services.json_transfer import JsonTransferError, export_to_json_file, import_from_json_file
from .services.knowledge_graph import KnowledgeGraphError, KnowledgeGraphService
from .utils.health_check import get_system_info
from .utils.logging_config import get_logger
from .utils.timestamp_utils import to_date_str

logger = get_logger(__name__)


def cmd_init(service: KnowledgeGraphService) -> None:
    status = service.initialize()
    print(f'Index {service.opensearch.index_name}: {status}')


def cmd_import(service: KnowledgeGraphService, path: str) -> bool:
    """Import records; returns False if any record failed."""
    summary = import_from_json_file(service, path)
    print(f'Imported {summary.entities} entities and {summary.relations} relations from {path}')
    for failure in summary.failures:
        print(f"  record {failure['index']}: {failure['error']}", file=sys.stderr)
    return not summary.failures


def cmd_export(service: KnowledgeGraphService, path: str) -> None:
    summary = export_to_json_file(service, path)
    print(f'Exported {summary.entities} entities and {summary.relations} relations to {summary.path}')


def cmd_stats(service: KnowledgeGraphService) -> None:
    """Print entity and relation counts, broken down by type"""
    service.initialize()
    documents = service.export_data()
    entities = [d for d in documents if isinstance(d, Entity)]
    relations = [d for d in documents if isinstance(d, Relation)]

    print('Knowledge Graph Statistics')
    print('=' * 26)
    print(f'Total entities: {len(entities)}')
    print(f'Total relations: {len(relations)}')
    print(f'Important entities: {sum(1 for e in entities if e.is_important)}')
    print()

    print('Entity types:')
    for entity_type, count in Counter(e.entity_type for e in entities).most_common():
        print(f'  {entity_type}: {count}')
    print()

    print('Relation types:')
    for relation_type, count in Counter(r.relation_type for r in relations).most_common():
        print(f'  {relation_type}: {count}')


def cmd_search(service: KnowledgeGraphService,
               query: str,
               limit: int = 10,
               sort_by: str = 'relevance',
               entity_types: Optional[List[str]] = None) -> None:
    service.initialize()
    result = service.search(query, entity_types=entity_types, limit=limit, sort_by=sort_by, highlight=True)

    print(f'Search Results for "{query}"')
    print('=' * 40)
    print(f'Found {result.total} matches')
    print()

    for position, hit in enumerate(result.hits, start=1):
        entity = hit.entity
        score = f'{hit.score:.2f}' if hit.score is not None else '-'
        print(f'{position}. {entity.name} ({entity.entity_type}) [Score: {score}]')
        print(f'   Observations: {len(entity.observations)}')
        if hit.highlights:
            print('   Matches:')
            for field_name, fragments in hit.highlights.items():
                for fragment in fragments:
                    print(f'   - {field_name}: {fragment}')
        print()


def cmd_reset(service: KnowledgeGraphService, assume_yes: bool = False) -> bool:
    """Drop all data; returns False if the user declined."""
    if not assume_yes:
        answer = input('Are you sure you want to delete all data? This cannot be undone. (y/N) ')
        if answer.strip().lower() != 'y':
            print('Operation cancelled')
            return False
    service.reset()
    print('Knowledge graph has been reset')
    return True


def cmd_entity(service: KnowledgeGraphService, name: str) -> bool:
    """Show one entity and its direct relations; returns False if not found"""
    service.initialize()
    entity = service.get_entity(name)
    if entity is None:
        print(f'Entity "{name}" not found', file=sys.stderr)
        return False

    related = service.get_related_entities(name, 1)

    print(f'Entity: {entity.name}')
    print(f'Type: {entity.entity_type}')
    print(f"Important: {'Yes' if entity.is_important else 'No'}")
    print(f'Last read: {to_date_str(entity.last_read)}')
    print(f'Last write: {to_date_str(entity.last_write)}')
    print(f'Read count: {entity.read_count}')
    print()

    print('Observations:')
    for position, observation in enumerate(entity.observations, start=1):
        print(f'  {position}. {observation}')
    print()

    print('Relations:')
    for relation in related.relations:
        if relation.from_entity == name:
            print(f'  -> {relation.relation_type} -> {relation.to_entity}')
        else:
            print(f'  <- {relation.relation_type} <- {relation.from_entity}')
    return True


def cmd_health(service: KnowledgeGraphService) -> bool:
    info = get_system_info(service.opensearch)
    print(json.dumps(info, indent=2))
    return all(component.get('healthy', False) for component in info['health_status'].values())


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='graphmem-admin',
        description='Knowledge Graph Admin CLI',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Environment Variables:
  OPENSEARCH_NODE      Search backend URL (default: http://localhost:9200)
  OPENSEARCH_USERNAME  Username (if authentication is required)
  OPENSEARCH_PASSWORD  Password (if authentication is required)
  OPENSEARCH_INDEX     Index name (default: knowledge-graph)
        """,
    )
    subparsers = parser.add_subparsers(dest='command', metavar='command')

    subparsers.add_parser('init', help='Initialize the index')

    import_parser = subparsers.add_parser('import', help='Import data from a JSON file')
    import_parser.add_argument('file')

    export_parser = subparsers.add_parser('export', help='Export data to a JSON file')
    export_parser.add_argument('file')

    subparsers.add_parser('stats', help='Display statistics about the knowledge graph')

    search_parser = subparsers.add_parser('search', help='Search the knowledge graph')
    search_parser.add_argument('query')
    search_parser.add_argument('--limit', type=int, default=10, help='Result limit (default: 10)')
    search_parser.add_argument('--sort-by',
                               choices=['relevance', 'recency', 'recent', 'importance'],
                               default='relevance')
    search_parser.add_argument('--type', dest='entity_types', action='append', help='Filter by entity type')

    reset_parser = subparsers.add_parser('reset', help='Reset the knowledge graph (delete all data)')
    reset_parser.add_argument('--yes', action='store_true', help='Do not ask for confirmation')

    entity_parser = subparsers.add_parser('entity', help='Display information about a specific entity')
    entity_parser.add_argument('name')

    subparsers.add_parser('health', help='Check backend connectivity')
    return parser


def main(argv: Optional[List[str]] = None, service: Optional[KnowledgeGraphService] = None) -> int:
    """CLI entrypoint"""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 0

    service = service if service is not None else KnowledgeGraphService()
    try:
        if args.command == 'init':
            cmd_init(service)
        elif args.command == 'import':
            return 0 if cmd_import(service, args.file) else 1
        elif args.command == 'export':
            cmd_export(service, args.file)
        elif args.command == 'stats':
            cmd_stats(service)
        elif args.command == 'search':
            cmd_search(service, args.query, limit=args.limit, sort_by=args.sort_by, entity_types=args.entity_types)
        elif args.command == 'reset':
            cmd_reset(service, assume_yes=args.yes)
        elif args.command == 'entity':
            return 0 if cmd_entity(service, args.name) else 1
        elif args.command == 'health':
            return 0 if cmd_health(service) else 1
    except (KnowledgeGraphError, JsonTransferError) as e:
        logger.debug(f'{args.command} failed: {e}')
        print(f'Error: {e}', file=sys.stderr)
        return 1
    return 0


def run() -> None:
    sys.exit(main())


if __name__ == '__main__':
    run()

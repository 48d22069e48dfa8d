"""
Import and export of knowledge graph records as JSON files.

Export writes a JSON array of documents, each keeping its ``type``
discriminator. Import reads that array back, and also accepts an object with
``entities``/``relations`` lists or JSON Lines with one record per line.
"""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Union

from ..models.core import ENTITY_TYPE, RELATION_TYPE, Entity, Relation, document_from_source
from ..utils.logging_config import get_logger
from .knowledge_graph import KnowledgeGraphError, KnowledgeGraphService

logger = get_logger(__name__)


class JsonTransferError(Exception):
    """Custom exception for unreadable import files."""
    pass


@dataclass
class ImportSummary:
    """Counts of restored records and per-record failures."""
    entities: int = 0
    relations: int = 0
    failures: List[Dict[str, Any]] = field(default_factory=list)


@dataclass
class ExportSummary:
    entities: int
    relations: int
    path: str


def _relation_record(relation: Any) -> Any:
    """Tag a relation with the discriminator; tool output carries the relation type in ``type``."""
    if not isinstance(relation, dict):
        return relation
    record = dict(relation)
    if 'relationType' not in record and 'type' in record:
        record['relationType'] = record['type']
    record['type'] = RELATION_TYPE
    return record


def read_records(path: Union[str, Path]) -> List[Dict[str, Any]]:
    """Read raw records from a JSON array, an entities/relations object, or JSON Lines.

    Raises:
        JsonTransferError: If the file cannot be read or parsed
    """
    path = Path(path)
    try:
        text = path.read_text(encoding='utf-8')
    except OSError as e:
        raise JsonTransferError(f'Cannot read {path}: {e}')

    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        data = None

    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        if 'entities' in data or 'relations' in data:
            records = [dict(e, type=ENTITY_TYPE) if isinstance(e, dict) else e for e in data.get('entities', [])]
            records += [_relation_record(r) for r in data.get('relations', [])]
            return records
        return [data]

    records = []
    for line_number, line in enumerate(text.splitlines(), start=1):
        line = line.strip()
        if not line:
            continue
        try:
            records.append(json.loads(line))
        except json.JSONDecodeError as e:
            raise JsonTransferError(f'{path}:{line_number} is not valid JSON: {e}')
    return records


def import_records(service: KnowledgeGraphService, records: List[Any]) -> ImportSummary:
    """Restore each record individually; failures are collected, not raised."""
    summary = ImportSummary()
    for position, record in enumerate(records):
        try:
            if not isinstance(record, dict):
                raise ValueError('record is not an object')
            document = document_from_source(record)
            if not service.restore_document(document):
                raise ValueError('backend did not acknowledge the write')
        except (ValueError, TypeError, KnowledgeGraphError) as e:
            logger.warning(f'Import record {position} failed: {e}')
            summary.failures.append({'index': position, 'error': str(e)})
            continue

        if isinstance(document, Entity):
            summary.entities += 1
        elif isinstance(document, Relation):
            summary.relations += 1

    logger.info(f'Imported {summary.entities} entities and {summary.relations} relations '
                f'({len(summary.failures)} failures)')
    return summary


def import_from_json_file(service: KnowledgeGraphService, path: Union[str, Path]) -> ImportSummary:
    """Initialize the index and import every record from ``path``."""
    records = read_records(path)
    service.initialize()
    return import_records(service, records)


def export_to_json_file(service: KnowledgeGraphService, path: Union[str, Path]) -> ExportSummary:
    """Write every entity and relation to ``path`` as a JSON array."""
    documents = service.export_data()
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, 'w', encoding='utf-8') as f:
        json.dump([d.to_document() for d in documents], f, indent=2, ensure_ascii=False)

    entities = sum(1 for d in documents if isinstance(d, Entity))
    summary = ExportSummary(entities=entities, relations=len(documents) - entities, path=str(path))
    logger.info(f'Exported {summary.entities} entities and {summary.relations} relations to {path}')
    return summary

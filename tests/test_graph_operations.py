"""Tests for tool-level operations"""

import pytest

from graphmem.services.knowledge_graph import EntityNotFoundError, InvalidRequestError


@pytest.fixture
def populated(operations):
    operations.create_entities([
        {'name': 'Ada', 'entityType': 'person', 'observations': ['writes programs']},
        {'name': 'Analytical Engine', 'entityType': 'machine', 'observations': ['designed by Babbage']},
        {'name': 'Babbage', 'entityType': 'person', 'observations': ['mathematician'], 'isImportant': True},
    ])
    operations.create_relations([
        {'from': 'Ada', 'to': 'Analytical Engine', 'type': 'programs'},
        {'from': 'Babbage', 'to': 'Analytical Engine', 'type': 'designed'},
    ])
    return operations


class TestBatchEntities:

    def test_create_reports_each_item(self, operations):
        result = operations.create_entities([
            {'name': 'Ada', 'entityType': 'person', 'observations': ['writes programs']},
            {'name': 'Babbage', 'entityType': 'person'},
        ])

        assert [r['success'] for r in result['results']] == [True, True]
        assert result['results'][0]['entity'] == {
            'name': 'Ada',
            'entityType': 'person',
            'observations': ['writes programs']
        }
        assert result['results'][1]['entity']['observations'] == []

    def test_invalid_item_does_not_block_others(self, operations, service):
        result = operations.create_entities([
            {'name': 'Ada', 'entityType': 'person'},
            {'name': 'NoType'},
            {'name': 'Babbage', 'entityType': 'person', 'unexpected': 1},
            'not an object',
            {'name': 'Lovelace', 'entityType': 'person'},
        ])

        outcomes = [(r.get('name'), r['success']) for r in result['results']]
        assert outcomes == [('Ada', True), ('NoType', False), ('Babbage', False), ('not an object', False),
                            ('Lovelace', True)]
        assert 'entityType' in result['results'][1]['error']
        assert {e.name for e in service.fetch_entities(['Ada', 'NoType', 'Babbage', 'Lovelace'])} == {'Ada', 'Lovelace'}

    def test_create_again_keeps_omitted_fields(self, operations, service):
        operations.create_entities([{
            'name': 'Ada',
            'entityType': 'person',
            'observations': ['writes programs', 'countess'],
            'isImportant': True
        }])

        result = operations.create_entities([{'name': 'Ada', 'entityType': 'mathematician'}])

        assert result['results'][0]['entity']['observations'] == ['writes programs', 'countess']
        entity = service.fetch_entities(['Ada'])[0]
        assert entity.entity_type == 'mathematician'
        assert entity.observations == ['writes programs', 'countess']
        assert entity.is_important is True

    def test_update_keeps_omitted_fields(self, populated, service):
        result = populated.update_entities([{'name': 'Ada', 'entityType': 'countess'}])

        assert result['results'][0]['entity']['observations'] == ['writes programs']
        entity = service.fetch_entities(['Ada'])[0]
        assert entity.entity_type == 'countess'

    def test_update_missing_entity_fails_that_item_only(self, populated, service):
        result = populated.update_entities([
            {'name': 'Nobody', 'observations': ['x']},
            {'name': 'Ada', 'isImportant': True},
        ])

        assert result['results'][0]['success'] is False
        assert 'not found' in result['results'][0]['error']
        assert result['results'][1]['success'] is True
        assert service.fetch_entities(['Nobody']) == []
        assert service.fetch_entities(['Ada'])[0].is_important is True

    def test_delete_reports_deleted_flag(self, populated):
        result = populated.delete_entities(['Ada', 'Ghost'])

        assert result['results'] == [
            {'name': 'Ada', 'success': True, 'deleted': True},
            {'name': 'Ghost', 'success': True, 'deleted': False},
        ]

    def test_delete_entity_leaves_its_relations(self, populated, service):
        populated.delete_entities(['Ada'])

        keys = {r.key for r in service.get_relations_for_entities(['Ada'])}
        assert keys == {('Ada', 'Analytical Engine', 'programs')}

    def test_non_list_payload_rejected(self, operations):
        with pytest.raises(InvalidRequestError):
            operations.create_entities({'name': 'Ada'})


class TestBatchRelations:

    def test_create_maps_type_field(self, operations, service):
        result = operations.create_relations([{'from': 'A', 'to': 'B', 'type': 'knows', 'metadata': {'w': 1}}])

        assert result['results'][0]['relation'] == {'from': 'A', 'to': 'B', 'type': 'knows'}
        assert service.get_relations_for_entities(['A'])[0].relation_type == 'knows'

    def test_missing_type_is_reported(self, operations):
        result = operations.create_relations([{'from': 'A', 'to': 'B'}, {'from': 'A', 'to': 'C', 'type': 'knows'}])

        assert [r['success'] for r in result['results']] == [False, True]
        assert result['results'][0]['type'] is None

    def test_delete_relations(self, populated, service):
        result = populated.delete_relations([
            {'from': 'Ada', 'to': 'Analytical Engine', 'type': 'programs'},
            {'from': 'Ada', 'to': 'Analytical Engine', 'type': 'programs'},
        ])

        assert [r['deleted'] for r in result['results']] == [True, False]
        assert [r.key for r in service.get_relations_for_entities(['Ada'])] == []


class TestSingleEntityOperations:

    def test_add_observations_appends_new_only(self, populated):
        result = populated.add_observations('Ada', ['writes programs', 'first programmer', 'first programmer'])

        assert result['added'] == ['first programmer']
        assert result['entity']['observations'] == ['writes programs', 'first programmer']

    def test_add_observations_to_missing_entity(self, operations):
        with pytest.raises(EntityNotFoundError) as exc_info:
            operations.add_observations('Nobody', ['x'])

        assert exc_info.value.operation == 'add_observations'
        assert exc_info.value.target == 'Nobody'

    def test_mark_important(self, populated, service):
        result = populated.mark_important('Ada', True)

        assert result['isImportant'] is True
        assert service.fetch_entities(['Ada'])[0].is_important is True

    def test_mark_important_missing_entity(self, operations):
        with pytest.raises(EntityNotFoundError):
            operations.mark_important('Nobody', True)

    def test_mark_important_requires_bool(self, populated):
        with pytest.raises(InvalidRequestError):
            populated.mark_important('Ada', 'very')


class TestQueries:

    def test_search_returns_entities_and_their_relations(self, populated):
        result = populated.search_nodes('Babbage')

        names = [e['name'] for e in result['entities']]
        assert names[0] == 'Babbage'
        assert 'Analytical Engine' in names
        assert {'from': 'Babbage', 'to': 'Analytical Engine', 'type': 'designed'} in result['relations']

    def test_search_importance(self, populated):
        result = populated.search_nodes('', sort_by='importance')

        assert result['entities'][0]['name'] == 'Babbage'

    def test_search_rejects_unknown_sort(self, populated):
        with pytest.raises(InvalidRequestError):
            populated.search_nodes('Ada', sort_by='popularity')

    def test_open_nodes_counts_reads_and_skips_missing(self, populated, service):
        result = populated.open_nodes(['Ada', 'Ghost', 'Ada'])

        assert [e['name'] for e in result['entities']] == ['Ada']
        assert result['relations'] == [{'from': 'Ada', 'to': 'Analytical Engine', 'type': 'programs'}]
        assert service.fetch_entities(['Ada'])[0].read_count == 1

    def test_get_recent_orders_by_last_read(self, ticking_clock, populated):
        populated.open_nodes(['Babbage'])
        populated.open_nodes(['Ada'])

        result = populated.get_recent(limit=2)

        assert [e['name'] for e in result['entities']] == ['Ada', 'Babbage']

    def test_get_related(self, populated):
        result = populated.get_related('Ada', depth=2)

        assert {e['name'] for e in result['entities']} == {'Ada', 'Analytical Engine', 'Babbage'}
        assert len(result['relations']) == 2

    def test_get_related_validates_depth(self, populated):
        with pytest.raises(InvalidRequestError):
            populated.get_related('Ada', depth=-1)

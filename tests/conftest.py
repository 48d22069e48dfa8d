import pytest

from graphmem.services.graph_operations import GraphOperations
from graphmem.services.knowledge_graph import KnowledgeGraphService
from graphmem.utils.config import OpenSearchConfig
from graphmem.utils.opensearch_client import OpenSearchClient

from .fake_opensearch import FakeOpenSearch


@pytest.fixture
def opensearch_config():
    return OpenSearchConfig(node='http://localhost:9200',
                            username=None,
                            password=None,
                            index_name='knowledge-graph-test',
                            auth_mode='basic',
                            region='us-east-1',
                            aws_service='es',
                            verify_certs=True,
                            refresh='wait_for',
                            max_relations=10000,
                            timeout=30)


@pytest.fixture
def fake_client():
    return FakeOpenSearch()


@pytest.fixture
def make_service(opensearch_config):
    """Build an initialized service around a given fake client"""

    def _make(client):
        service = KnowledgeGraphService(OpenSearchClient(opensearch_config, client=client))
        service.initialize()
        return service

    return _make


@pytest.fixture
def service(make_service, fake_client):
    return make_service(fake_client)


@pytest.fixture
def operations(service):
    return GraphOperations(service)


@pytest.fixture
def ticking_clock(monkeypatch):
    """Make every timestamp the store takes strictly later than the previous one"""
    ticks = iter(range(1, 100000))

    def fake_now(timestamp=None):
        return f'2024-01-01T00:00:00.{next(ticks):06d}+00:00'

    monkeypatch.setattr('graphmem.services.knowledge_graph.to_iso_str', fake_now)

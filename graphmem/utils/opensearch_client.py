"""
OpenSearch client wrapper for document storage and full-text search.
"""

from typing import Any, Dict, Iterator, List, Optional

import boto3
from opensearchpy import OpenSearch, RequestsHttpConnection, helpers
from opensearchpy.exceptions import NotFoundError, OpenSearchException
from requests_aws4auth import AWS4Auth

from .config import OpenSearchConfig
from .logging_config import get_logger

logger = get_logger(__name__)


class OpenSearchError(Exception):
    """Custom exception for OpenSearch errors."""
    pass


def build_client(config: OpenSearchConfig) -> OpenSearch:
    """Create the low-level OpenSearch client from configuration.

    ``basic`` auth passes username/password when both are set. ``aws`` auth signs
    requests with the default boto3 session credentials.
    """
    http_auth = None
    if config.auth_mode == 'aws':
        credentials = boto3.Session().get_credentials()
        http_auth = AWS4Auth(region=config.region, service=config.aws_service, refreshable_credentials=credentials)
    elif config.username and config.password:
        http_auth = (config.username, config.password)

    return OpenSearch(hosts=[config.node],
                      http_auth=http_auth,
                      use_ssl=config.node.startswith('https://'),
                      verify_certs=config.verify_certs,
                      timeout=config.timeout,
                      connection_class=RequestsHttpConnection)


class OpenSearchClient:
    """OpenSearch client bound to a single index, with error handling."""

    def __init__(self, config: OpenSearchConfig, client: Optional[OpenSearch] = None):
        """
        Initialize OpenSearch client.

        Args:
            config: OpenSearchConfig instance with connection parameters
            client: Pre-built low-level client (built from config if None)
        """
        self.config = config
        self.index_name = config.index_name
        self.client = client if client is not None else build_client(config)

        logger.info(f'Initialized OpenSearch client for node: {config.node} (index {self.index_name})')

    def create_index_if_not_exists(self, index_body: Dict[str, Any]) -> str:
        """
        Create the index if it doesn't exist.

        Args:
            index_body: Settings and mappings for the index

        Returns:
            'exists', 'created' or 'failed'
        """
        try:
            if self.client.indices.exists(index=self.index_name):
                logger.debug(f'Index {self.index_name} already exists')
                return 'exists'

            response = self.client.indices.create(index=self.index_name, body=index_body)
            if response.get('acknowledged', False):
                logger.info(f'Created index {self.index_name}')
                return 'created'
            return 'failed'
        except OpenSearchException as e:
            logger.error(f'Error creating index {self.index_name}: {e}')
            raise OpenSearchError(f'Failed to create index: {e}')
        except Exception as e:
            logger.error(f'Unexpected error creating index {self.index_name}: {e}')
            raise OpenSearchError(f'Unexpected error creating index: {e}')

    def delete_index(self) -> bool:
        """
        Delete the index.

        Returns:
            True if the index existed and was deleted, False if it did not exist
        """
        try:
            if not self.client.indices.exists(index=self.index_name):
                logger.info(f'Index {self.index_name} does not exist')
                return False
            self.client.indices.delete(index=self.index_name)
            logger.info(f'Deleted index: {self.index_name}')
            return True
        except OpenSearchException as e:
            logger.error(f'Error deleting index {self.index_name}: {e}')
            raise OpenSearchError(f'Failed to delete index: {e}')
        except Exception as e:
            logger.error(f'Unexpected error deleting index {self.index_name}: {e}')
            raise OpenSearchError(f'Unexpected error deleting index: {e}')

    def index_document(self, doc_id: str, document: Dict[str, Any]) -> bool:
        """
        Index (create or replace) a document under a fixed id.

        Args:
            doc_id: Document id
            document: Document body

        Returns:
            True if indexing was successful, False otherwise
        """
        try:
            response = self.client.index(index=self.index_name, id=doc_id, body=document, refresh=self.config.refresh)

            success = response.get('result') in ['created', 'updated']
            if success:
                logger.debug(f'Indexed document {doc_id} in {self.index_name}')
            else:
                logger.warning(f'Unexpected result indexing document {doc_id}: {response}')

            return success

        except OpenSearchException as e:
            logger.error(f'Error indexing document {doc_id}: {e}')
            raise OpenSearchError(f'Failed to index document: {e}')
        except Exception as e:
            logger.error(f'Unexpected error indexing document {doc_id}: {e}')
            raise OpenSearchError(f'Unexpected error indexing document: {e}')

    def update_document(self, doc_id: str, body: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """
        Apply a partial or scripted update and return the resulting source.

        Args:
            doc_id: Document id
            body: Update body ('doc'/'upsert' or 'script')

        Returns:
            The document source after the update, or None if the document is missing
            and the body has no upsert
        """
        try:
            response = self.client.update(index=self.index_name,
                                          id=doc_id,
                                          body=body,
                                          refresh=self.config.refresh,
                                          retry_on_conflict=3,
                                          _source=True)
            logger.debug(f"Updated document {doc_id}: {response.get('result')}")
            return response.get('get', {}).get('_source')

        except NotFoundError:
            logger.debug(f'Document {doc_id} not found for update')
            return None
        except OpenSearchException as e:
            logger.error(f'Error updating document {doc_id}: {e}')
            raise OpenSearchError(f'Failed to update document: {e}')
        except Exception as e:
            logger.error(f'Unexpected error updating document {doc_id}: {e}')
            raise OpenSearchError(f'Unexpected error updating document: {e}')

    def get_documents(self, doc_ids: List[str]) -> List[Dict[str, Any]]:
        """
        Fetch several documents by id in one request.

        Args:
            doc_ids: Document ids

        Returns:
            Sources of the documents that exist, in request order
        """
        if not doc_ids:
            return []

        try:
            response = self.client.mget(index=self.index_name, body={'ids': doc_ids})
            return [doc['_source'] for doc in response.get('docs', []) if doc.get('found')]

        except NotFoundError:
            logger.warning(f'Index {self.index_name} not found while fetching documents')
            return []
        except OpenSearchException as e:
            logger.error(f'Error fetching {len(doc_ids)} documents: {e}')
            raise OpenSearchError(f'Failed to get documents: {e}')
        except Exception as e:
            logger.error(f'Unexpected error fetching documents: {e}')
            raise OpenSearchError(f'Unexpected error getting documents: {e}')

    def delete_document(self, doc_id: str) -> bool:
        """
        Delete a document from the index.

        Args:
            doc_id: Document ID to delete

        Returns:
            True if deletion was successful, False otherwise
        """
        try:
            response = self.client.delete(index=self.index_name, id=doc_id, refresh=self.config.refresh)

            success = response.get('result') == 'deleted'
            if success:
                logger.debug(f'Deleted document {doc_id} from {self.index_name}')
            else:
                logger.warning(f'Document {doc_id} not found for deletion')

            return success

        except NotFoundError:
            logger.debug(f'Document {doc_id} not found for deletion')
            return False
        except OpenSearchException as e:
            logger.error(f'Error deleting document {doc_id}: {e}')
            raise OpenSearchError(f'Failed to delete document: {e}')
        except Exception as e:
            logger.error(f'Unexpected error deleting document {doc_id}: {e}')
            raise OpenSearchError(f'Unexpected error deleting document: {e}')

    def search(self, search_body: Dict[str, Any]) -> Dict[str, Any]:
        """
        Run a search request against the index.

        Args:
            search_body: Query DSL body

        Returns:
            Raw search response
        """
        try:
            response = self.client.search(index=self.index_name, body=search_body)
            logger.debug(f"Search returned {len(response['hits']['hits'])} hits")
            return response

        except OpenSearchException as e:
            logger.error(f'Error performing search: {e}')
            raise OpenSearchError(f'Search failed: {e}')
        except Exception as e:
            logger.error(f'Unexpected error in search: {e}')
            raise OpenSearchError(f'Unexpected error in search: {e}')

    def scan_documents(self, query: Optional[Dict[str, Any]] = None) -> Iterator[Dict[str, Any]]:
        """
        Iterate over every matching document using the scroll API.

        Args:
            query: Query DSL body (match_all if None)

        Yields:
            Document sources in index order
        """
        query = query or {'query': {'match_all': {}}}
        try:
            for hit in helpers.scan(self.client, query=query, index=self.index_name):
                yield hit['_source']

        except OpenSearchException as e:
            logger.error(f'Error scanning {self.index_name}: {e}')
            raise OpenSearchError(f'Scan failed: {e}')
        except Exception as e:
            logger.error(f'Unexpected error scanning {self.index_name}: {e}')
            raise OpenSearchError(f'Unexpected error in scan: {e}')

    def health_check(self) -> bool:
        """
        Perform a health check on the OpenSearch service.

        Returns:
            True if service is healthy, False otherwise
        """
        try:
            return bool(self.client.ping())

        except Exception as e:
            logger.error(f'OpenSearch health check failed: {e}')
            return False

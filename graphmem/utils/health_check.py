"""
Health check utilities for the application.
"""

from typing import Any, Dict, Optional

from .config import config
from .logging_config import get_logger
from .opensearch_client import OpenSearchClient

logger = get_logger(__name__)


def get_health_status(opensearch: Optional[OpenSearchClient] = None) -> Dict[str, Any]:
    """Get detailed health status of each component.

    Args:
        opensearch: Client to probe (built from global config if None)

    Returns:
        Dictionary with health status of each component
    """
    health_status = {}

    try:
        opensearch = opensearch or OpenSearchClient(config.opensearch)
        health_status['opensearch'] = {
            'healthy': opensearch.health_check(),
            'service': 'OpenSearch',
            'endpoint': opensearch.config.node,
            'index': opensearch.index_name
        }
    except Exception as e:
        logger.error(f'Health check failed: {e}')
        health_status['opensearch'] = {'healthy': False, 'service': 'OpenSearch', 'error': str(e)}

    return health_status


def get_system_info(opensearch: Optional[OpenSearchClient] = None) -> Dict[str, Any]:
    """Get system information and configuration.

    Returns:
        Dictionary with system information
    """
    from .. import __version__

    return {
        'service_name': 'GraphMem',
        'version': __version__,
        'configuration': {
            'environment': config.environment,
            'index': config.opensearch.index_name,
            'auth_mode': config.opensearch.auth_mode,
            'mcp_transport': config.mcp.transport
        },
        'health_status': get_health_status(opensearch)
    }

"""
Configuration management for the search backend and application settings.
"""

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ('1', 'true', 'yes', 'on')


@dataclass
class OpenSearchConfig:
    """Configuration for the OpenSearch (or Elasticsearch-compatible) backend."""
    node: str
    username: Optional[str]
    password: Optional[str]
    index_name: str
    auth_mode: str  # 'basic' or 'aws'
    region: str
    aws_service: str
    verify_certs: bool
    refresh: str
    max_relations: int
    timeout: int


@dataclass
class MCPConfig:
    """Configuration for MCP interface."""
    transport: str
    host: str
    port: int


@dataclass
class AppConfig:
    """Main application configuration."""
    environment: str
    log_level: str
    debug: bool
    opensearch: OpenSearchConfig
    mcp: MCPConfig


def load_config() -> AppConfig:
    """Load configuration from environment variables with defaults."""
    environment = os.getenv('ENVIRONMENT', 'development')
    debug = _env_bool('DEBUG', 'false')

    opensearch_config = OpenSearchConfig(node=os.getenv('OPENSEARCH_NODE', 'http://localhost:9200'),
                                         username=os.getenv('OPENSEARCH_USERNAME') or None,
                                         password=os.getenv('OPENSEARCH_PASSWORD') or None,
                                         index_name=os.getenv('OPENSEARCH_INDEX', 'knowledge-graph'),
                                         auth_mode=os.getenv('OPENSEARCH_AUTH', 'basic').lower(),
                                         region=os.getenv('OPENSEARCH_AWS_REGION', 'us-east-1'),
                                         aws_service=os.getenv('OPENSEARCH_AWS_SERVICE', 'es'),
                                         verify_certs=_env_bool('OPENSEARCH_VERIFY_CERTS', 'true'),
                                         refresh=os.getenv('OPENSEARCH_REFRESH', 'wait_for'),
                                         max_relations=int(os.getenv('OPENSEARCH_MAX_RELATIONS', '10000')),
                                         timeout=int(os.getenv('OPENSEARCH_TIMEOUT', '30')))

    # MCP configuration
    mcp_config = MCPConfig(transport=os.getenv('MCP_TRANSPORT', 'stdio'),
                           host=os.getenv('MCP_HOST', '127.0.0.1'),
                           port=int(os.getenv('MCP_PORT', '8000')))

    return AppConfig(environment=environment,
                     log_level='DEBUG' if debug else os.getenv('LOG_LEVEL', 'INFO'),
                     debug=debug,
                     opensearch=opensearch_config,
                     mcp=mcp_config)


# Global configuration instance
config = load_config()

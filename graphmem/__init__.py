"""
GraphMem package initialization.
"""

__version__ = '1.0.0'

# Setup logging configuration on package import
from .utils.logging_config import setup_logging  # noqa: E402

setup_logging()

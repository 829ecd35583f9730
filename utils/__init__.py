"""
Utilities package for the metrics history service.
"""

from .logger import (
    log,
    get_storage_logger,
    get_collector_logger,
    get_query_logger,
    configure_logging
)

from .config import (
    ConfigManager,
    CollectorConfig,
    GroupConfig,
    StorageConfig
)

__all__ = [
    # Logger exports
    'log',
    'get_storage_logger',
    'get_collector_logger',
    'get_query_logger',
    'configure_logging',

    # Config exports
    'ConfigManager',
    'CollectorConfig',
    'GroupConfig',
    'StorageConfig'
]

"""
Configuration utilities for the metrics history service.
"""

import os
import yaml
from pathlib import Path
from typing import Dict, Any, List
from dotenv import load_dotenv
from dataclasses import dataclass, field

from utils.logger import log


DEFAULT_GROUPS: Dict[str, Dict[str, List[str]]] = {
    'jvm': {
        'counters': [],
        'gauges': ['memory.heap.used', 'os.processCpuLoad', 'os.systemLoadAverage']
    },
    'core': {
        'counters': ['QUERY./select.requests', 'UPDATE./update.requests'],
        'gauges': ['INDEX.sizeInBytes']
    },
    'node': {
        'counters': [],
        'gauges': ['CONTAINER.fs.coreRoot.usableSpace']
    }
}

DEFAULT_COLLECT_PERIOD = 60
DEFAULT_MAX_SERIES = 500


@dataclass
class GroupConfig:
    """Metric names collected for one group."""
    name: str
    counters: List[str] = field(default_factory=list)
    gauges: List[str] = field(default_factory=list)


@dataclass
class CollectorConfig:
    """Collection scheduler configuration."""
    collect_period: int = DEFAULT_COLLECT_PERIOD
    enabled: bool = True
    groups: List[GroupConfig] = field(default_factory=list)

    def __post_init__(self):
        if not self.groups:
            self.groups = [
                GroupConfig(name, list(spec['counters']), list(spec['gauges']))
                for name, spec in DEFAULT_GROUPS.items()
            ]


@dataclass
class StorageConfig:
    """Series store and backend configuration."""
    backend: str = 'memory'
    path: str = 'data/metrics_history.db'
    sync_period: int = 0
    max_series: int = DEFAULT_MAX_SERIES


class ConfigManager:
    """Manages system configuration."""

    def __init__(self, config_path: str = "config/config.yaml"):
        """Initialize configuration manager."""
        self.config_path = Path(config_path)
        self.config: Dict[str, Any] = {}
        self.load_config()

    def load_config(self):
        """Load configuration from file, falling back to defaults."""
        load_dotenv()  # Load environment variables

        if not self.config_path.exists():
            log.warning("Configuration file not found: {}, using defaults", self.config_path)
            self.config = {}
            return

        with open(self.config_path, 'r') as f:
            self.config = yaml.safe_load(f) or {}

        # Replace environment variable placeholders
        self._replace_env_vars(self.config)

        log.info("Configuration loaded from {}", self.config_path)

    def _replace_env_vars(self, config: Any) -> Any:
        """Replace environment variable placeholders in configuration."""
        if isinstance(config, dict):
            for key, value in config.items():
                if isinstance(value, str) and value.startswith('${') and value.endswith('}'):
                    env_var = value[2:-1]  # Remove ${ and }
                    config[key] = os.getenv(env_var, value)
                elif isinstance(value, (dict, list)):
                    self._replace_env_vars(value)
        elif isinstance(config, list):
            for item in config:
                if isinstance(item, (dict, list)):
                    self._replace_env_vars(item)

        return config

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value."""
        keys = key.split('.')
        value = self.config

        for k in keys:
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default

        return value

    def get_collector_config(self) -> CollectorConfig:
        """Get collection scheduler configuration."""
        collector = self.get('collector', {}) or {}
        groups_config = collector.get('groups') or {}
        groups = [
            GroupConfig(
                name=name,
                counters=list((spec or {}).get('counters') or []),
                gauges=list((spec or {}).get('gauges') or [])
            )
            for name, spec in groups_config.items()
        ]
        return CollectorConfig(
            collect_period=int(collector.get('collect_period', DEFAULT_COLLECT_PERIOD)),
            enabled=bool(collector.get('enabled', True)),
            groups=groups
        )

    def get_storage_config(self) -> StorageConfig:
        """Get series store configuration."""
        storage = self.get('storage', {}) or {}
        return StorageConfig(
            backend=storage.get('backend', 'memory'),
            path=storage.get('path', 'data/metrics_history.db'),
            sync_period=int(storage.get('sync_period', 0)),
            max_series=int(storage.get('max_series', DEFAULT_MAX_SERIES))
        )

    def validate_config(self) -> bool:
        """Validate configuration values."""
        collector = self.get_collector_config()
        if collector.collect_period <= 0:
            log.error("Invalid collect period: {}", collector.collect_period)
            return False

        storage = self.get_storage_config()
        if storage.backend not in ('memory', 'sqlite'):
            log.error("Unknown storage backend: {}", storage.backend)
            return False
        if storage.sync_period < 0:
            log.error("Invalid sync period: {}", storage.sync_period)
            return False

        log.info("Configuration validation passed")
        return True

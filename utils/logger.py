"""
Logging configuration using loguru for the metrics history service.
"""

import sys
from pathlib import Path
from typing import Optional
from loguru import logger
import yaml


class HistoryLogger:
    """Custom logger configuration for the metrics history service."""

    def __init__(self, config_path: Optional[str] = None):
        """
        Initialize the history logger.

        Args:
            config_path: Path to the configuration file
        """
        self.config = self._load_config(config_path)
        self._configured = False

    def _load_config(self, config_path: Optional[str] = None) -> dict:
        """Load logging configuration from yaml file."""
        settings = {
            'level': 'INFO',
            'format': '{time:YYYY-MM-DD HH:mm:ss} | {level} | {extra[name]} | {message}',
            'rotation': '100 MB',
            'retention': '30 days',
            'compression': 'zip',
            'files': {
                'main': 'logs/metrics_history.log',
                'errors': 'logs/errors.log'
            }
        }

        if config_path and Path(config_path).exists():
            with open(config_path, 'r') as f:
                config = yaml.safe_load(f) or {}
            settings.update(config.get('logging') or {})

        return settings

    def setup(self):
        """Configure the logger with the specified settings."""
        if self._configured:
            return

        # Records logged without a bound name still render
        logger.configure(extra={'name': 'MetricsHistory'})

        # Remove default handler
        logger.remove()

        logger.add(
            sys.stdout,
            level=self.config['level'],
            format=self.config['format'],
            colorize=True,
            backtrace=True,
            diagnose=False
        )

        for log_type, log_path in self.config.get('files', {}).items():
            Path(log_path).parent.mkdir(parents=True, exist_ok=True)

            level = 'ERROR' if log_type == 'errors' else self.config['level']

            logger.add(
                log_path,
                level=level,
                format=self.config['format'],
                rotation=self.config['rotation'],
                retention=self.config['retention'],
                compression=self.config['compression'],
                backtrace=True,
                diagnose=False,
                enqueue=True  # Thread-safe
            )

        self._configured = True
        logger.debug("Metrics history logger initialized")

    def get_logger(self, name: str = None):
        """
        Get a logger instance with optional name binding.

        Args:
            name: Optional name for the logger context

        Returns:
            Logger instance
        """
        if not self._configured:
            self.setup()

        if name:
            return logger.bind(name=name)
        return logger


history_logger = HistoryLogger()

# Export logger for easy access
log = history_logger.get_logger()


def get_storage_logger():
    """Get logger for the series store and backends."""
    return history_logger.get_logger('SeriesStore')


def get_collector_logger():
    """Get logger for the collection scheduler."""
    return history_logger.get_logger('Collector')


def get_query_logger():
    """Get logger for status and fetch requests."""
    return history_logger.get_logger('Query')


def configure_logging(config_path: Optional[str] = None):
    """Reload logging settings from a configuration file."""
    history_logger.config = history_logger._load_config(config_path)
    history_logger._configured = False
    history_logger.setup()

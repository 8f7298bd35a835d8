"""
Logging utilities for the focused crawler.
"""

import logging
import logging.handlers
import json
import os
import platform
import sys
from pathlib import Path
from typing import Dict, Any, Optional
from datetime import datetime, timezone

import psutil

from .config import LoggingConfig


class JSONFormatter(logging.Formatter):
    """JSON log formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_entry = {
            'timestamp': datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno
        }

        if record.exc_info:
            log_entry['exception'] = self.formatException(record.exc_info)

        # Context attached by CrawlerLogAdapter
        for key in ('worker_id', 'url', 'depth'):
            if hasattr(record, key):
                log_entry[key] = getattr(record, key)

        return json.dumps(log_entry, ensure_ascii=False)


class CrawlerLogAdapter(logging.LoggerAdapter):
    """Logger adapter that prefixes messages with the worker id."""

    def process(self, msg: str, kwargs: Dict[str, Any]) -> tuple:
        extra = kwargs.setdefault('extra', {})
        extra.update(self.extra)
        worker_id = self.extra.get('worker_id')
        if worker_id:
            msg = f"[{worker_id}] {msg}"
        return msg, kwargs


class NoiseFilter(logging.Filter):
    """Filter to suppress noisy third-party connection logs."""

    def __init__(self, suppress_modules: Optional[list] = None):
        super().__init__()
        self.suppress_modules = suppress_modules or [
            'aiohttp.access',
            'urllib3.connectionpool',
        ]

    def filter(self, record: logging.LogRecord) -> bool:
        if any(record.name.startswith(module) for module in self.suppress_modules):
            return False

        if record.levelno == logging.DEBUG:
            if 'connection pool' in record.getMessage().lower():
                return False

        return True


def _rotating_handler(path: Path, max_mb: int, backups: int) -> logging.Handler:
    return logging.handlers.RotatingFileHandler(
        path, maxBytes=max_mb * 1024 * 1024, backupCount=backups, encoding='utf-8'
    )


def setup_logging(config: LoggingConfig, enable_noise_filtering: bool = True) -> logging.Logger:
    """
    Setup logging for the crawler.

    Args:
        config: Logging configuration section
        enable_noise_filtering: Drop records from chatty client libraries

    Returns:
        Configured root logger
    """
    log_file = Path(config.file)
    log_file.parent.mkdir(parents=True, exist_ok=True)

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, config.level.upper(), logging.INFO))
    root_logger.handlers.clear()

    formatter = JSONFormatter() if config.json else logging.Formatter(config.format)
    noise_filter = NoiseFilter() if enable_noise_filtering else None

    handlers = [
        (logging.StreamHandler(sys.stdout), logging.INFO, noise_filter),
        (_rotating_handler(log_file, max_mb=50, backups=5), logging.DEBUG, noise_filter),
        (_rotating_handler(log_file.parent / 'errors.log', max_mb=10, backups=3), logging.ERROR, None),
    ]
    for handler, level, record_filter in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
        if record_filter:
            handler.addFilter(record_filter)
        root_logger.addHandler(handler)

    for logger_name in ('aiohttp', 'urllib3', 'asyncio', 'charset_normalizer'):
        logging.getLogger(logger_name).setLevel(logging.WARNING)

    root_logger.info(f"Logging initialized: level={config.level}, file={log_file}, json={config.json}")
    return root_logger


def get_crawler_logger(name: str, **extra_context) -> CrawlerLogAdapter:
    """
    Get a logger that carries crawler context (e.g. worker_id) on every record.

    Args:
        name: Logger name
        **extra_context: Fields added to each record

    Returns:
        CrawlerLogAdapter instance
    """
    return CrawlerLogAdapter(logging.getLogger(name), extra_context)


def log_system_info():
    """Log system and environment information."""
    logger = logging.getLogger(__name__)

    logger.info("=== SYSTEM INFORMATION ===")
    logger.info(f"Platform: {platform.platform()}")
    logger.info(f"Python version: {sys.version.split()[0]}")
    logger.info(f"CPU cores: {psutil.cpu_count()}")
    logger.info(f"Memory: {psutil.virtual_memory().total / 1024**3:.1f} GB")
    logger.debug(f"Working directory: {os.getcwd()}")

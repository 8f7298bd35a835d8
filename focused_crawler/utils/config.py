"""
Configuration management for the focused crawler.
"""

import yaml
import logging
from pathlib import Path
from typing import Dict, List, Any, Optional
from dataclasses import dataclass, field, fields


DEFAULT_USER_AGENT = "Mozilla/5.0 (compatible; MyWebCrawler/1.0)"


class ConfigError(ValueError):
    """Raised when a configuration value is invalid."""
    pass


@dataclass(frozen=True)
class CrawlerConfig:
    """Configuration for crawler behavior."""
    seed_urls: List[str] = field(default_factory=list)
    max_workers: int = 5
    timeout_minutes: float = 10
    max_depth: int = 3
    politeness_delay: float = 1.0
    max_retries: int = 2
    respect_robots_txt: bool = True
    user_agent: str = DEFAULT_USER_AGENT
    min_relevance_score: float = 1.0
    max_links_per_page: int = 50
    request_timeout: float = 10.0
    timeout_increment: float = 5.0
    retry_backoff: float = 1.0
    robots_timeout: float = 3.0
    shutdown_grace: float = 5.0
    share_content_fingerprints: bool = False

    @property
    def timeout_seconds(self) -> float:
        return self.timeout_minutes * 60


@dataclass(frozen=True)
class OutputConfig:
    """Configuration for the result store."""
    file: str = "output/results.json"


@dataclass(frozen=True)
class SearchConfig:
    """Configuration for the optional seed-discovery search API."""
    api_key: Optional[str] = None
    engine_id: Optional[str] = None
    endpoint: str = "https://www.googleapis.com/customsearch/v1"


@dataclass(frozen=True)
class LoggingConfig:
    """Configuration for logging."""
    level: str = "INFO"
    file: str = "logs/crawler.log"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    json: bool = False


@dataclass(frozen=True)
class MonitoringConfig:
    """Configuration for monitoring."""
    metrics_enabled: bool = False
    prometheus_port: int = 8000


@dataclass(frozen=True)
class Config:
    """Main configuration class."""
    crawler: CrawlerConfig = field(default_factory=CrawlerConfig)
    output: OutputConfig = field(default_factory=OutputConfig)
    search: SearchConfig = field(default_factory=SearchConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    monitoring: MonitoringConfig = field(default_factory=MonitoringConfig)


def _build_section(section_cls, data: Optional[Dict[str, Any]], name: str):
    """Instantiate a config section, rejecting unknown keys."""
    if data is None:
        return section_cls()
    if not isinstance(data, dict):
        raise ConfigError(f"Section '{name}' must be a mapping, got {type(data).__name__}")

    known = {f.name for f in fields(section_cls)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigError(f"Unknown keys in section '{name}': {', '.join(unknown)}")
    return section_cls(**data)


def config_from_dict(config_data: Optional[Dict[str, Any]]) -> Config:
    """Build and validate a Config from a parsed mapping."""
    config_data = config_data or {}
    if not isinstance(config_data, dict):
        raise ConfigError("Top level of the configuration must be a mapping")

    crawler_data = dict(config_data.get('crawler') or {})
    seeds = crawler_data.get('seed_urls')
    if isinstance(seeds, str):
        # "a, b, c" form from property-style configs
        crawler_data['seed_urls'] = [s.strip() for s in seeds.split(',') if s.strip()]

    config = Config(
        crawler=_build_section(CrawlerConfig, crawler_data, 'crawler'),
        output=_build_section(OutputConfig, config_data.get('output'), 'output'),
        search=_build_section(SearchConfig, config_data.get('search'), 'search'),
        logging=_build_section(LoggingConfig, config_data.get('logging'), 'logging'),
        monitoring=_build_section(MonitoringConfig, config_data.get('monitoring'), 'monitoring'),
    )
    validate_config(config)
    return config


def validate_config(config: Config):
    """Validate configuration values."""
    crawler = config.crawler

    if crawler.max_workers <= 0:
        raise ConfigError("max_workers must be greater than 0")

    if crawler.timeout_minutes <= 0:
        raise ConfigError("timeout_minutes must be greater than 0")

    if crawler.max_depth <= 0:
        raise ConfigError("max_depth must be greater than 0")

    if crawler.politeness_delay < 0:
        raise ConfigError("politeness_delay must be non-negative")

    if crawler.max_retries < 0:
        raise ConfigError("max_retries must be non-negative")

    if crawler.min_relevance_score < 0:
        raise ConfigError("min_relevance_score must be non-negative")

    if crawler.max_links_per_page < 0:
        raise ConfigError("max_links_per_page must be non-negative")

    if not crawler.user_agent:
        raise ConfigError("user_agent must not be empty")

    if not config.output.file:
        raise ConfigError("output.file must not be empty")


class ConfigManager:
    """Manages configuration loading and validation."""

    def __init__(self, config_path: str = "config.yaml"):
        self.config_path = Path(config_path)
        self._config: Optional[Config] = None
        self.logger = logging.getLogger(__name__)

    def load_config(self) -> Config:
        """
        Load configuration from YAML file.

        A missing file is not an error: the built-in defaults are used.
        """
        if not self.config_path.exists():
            self.logger.warning(f"Configuration file not found: {self.config_path}. Using defaults.")
            self._config = Config()
            return self._config

        try:
            with open(self.config_path, 'r', encoding='utf-8') as file:
                config_data = yaml.safe_load(file)
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {self.config_path}: {e}") from e

        self._config = config_from_dict(config_data)
        self.logger.info(f"Configuration loaded successfully from {self.config_path}")
        return self._config

    @property
    def config(self) -> Config:
        """Get the loaded configuration."""
        if not self._config:
            raise ValueError("Configuration not loaded. Call load_config() first.")
        return self._config


def load_config(config_path: str = "config.yaml") -> Config:
    """Load configuration from file."""
    return ConfigManager(config_path).load_config()

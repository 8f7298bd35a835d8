"""
Utility modules for the focused crawler.
"""

from .config import Config, ConfigError, ConfigManager, CrawlerConfig, load_config, config_from_dict

__all__ = ['Config', 'ConfigError', 'ConfigManager', 'CrawlerConfig', 'load_config', 'config_from_dict']

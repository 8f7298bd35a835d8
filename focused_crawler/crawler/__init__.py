"""
Crawl engine components.
"""

from .url_frontier import FrontierEntry, URLFrontier, VisitedRegistry
from .politeness import DomainPolicyGate, DomainState, parse_robots_txt
from .url_filter import UrlFilter, is_crawlable_url
from .fetcher import WebFetcher, FetchResult, FailureKind, classify_failure
from .parser import ContentParser, ProcessedPage, ScoredContentItem, calculate_relevance_score
from .scheduler import CrawlerScheduler, CrawlWorker, CrawlReport, StopReason

__all__ = [
    'FrontierEntry', 'URLFrontier', 'VisitedRegistry',
    'DomainPolicyGate', 'DomainState', 'parse_robots_txt',
    'UrlFilter', 'is_crawlable_url',
    'WebFetcher', 'FetchResult', 'FailureKind', 'classify_failure',
    'ContentParser', 'ProcessedPage', 'ScoredContentItem', 'calculate_relevance_score',
    'CrawlerScheduler', 'CrawlWorker', 'CrawlReport', 'StopReason',
]

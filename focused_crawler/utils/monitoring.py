"""
Monitoring and metrics collection for the focused crawler.
"""

import logging
import time
from typing import Dict, Any

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, start_http_server


class MetricsCollector:
    """Owns the Prometheus metrics of one crawl run."""

    def __init__(self, enable_exporter: bool = False, prometheus_port: int = 8000):
        self.logger = logging.getLogger(__name__)
        self.enable_exporter = enable_exporter
        self.prometheus_port = prometheus_port

        # Private registry so several crawls (and tests) never collide
        self.registry = CollectorRegistry()

        self.urls_processed = Counter(
            'crawler_urls_processed_total',
            'Total number of URLs claimed and fetched',
            registry=self.registry
        )
        self.matches_found = Counter(
            'crawler_matches_found_total',
            'Total number of content items persisted',
            registry=self.registry
        )
        self.fetch_failures = Counter(
            'crawler_fetch_failures_total',
            'Fetches that ended without a document',
            ['kind'],
            registry=self.registry
        )
        self.duplicates_skipped = Counter(
            'crawler_duplicates_skipped_total',
            'Content blocks skipped as duplicates',
            registry=self.registry
        )
        self.queue_size = Gauge(
            'crawler_queue_size',
            'Number of entries waiting in the frontier',
            registry=self.registry
        )
        self.active_workers = Gauge(
            'crawler_active_workers',
            'Workers currently processing a URL',
            registry=self.registry
        )
        self.fetch_time = Histogram(
            'crawler_fetch_time_seconds',
            'Wall time of a fetch including retries',
            registry=self.registry
        )

    def start_exporter(self):
        """Start Prometheus metrics HTTP server."""
        if not self.enable_exporter:
            return

        try:
            start_http_server(self.prometheus_port, registry=self.registry)
            self.logger.info(f"Prometheus metrics server started on port {self.prometheus_port}")
        except OSError as e:
            self.logger.error(f"Failed to start Prometheus server: {e}")

    def sample(self, name: str) -> float:
        """Read the current value of a metric sample (0.0 when absent)."""
        value = self.registry.get_sample_value(name)
        return value if value is not None else 0.0


class CrawlerMonitor:
    """High-level monitoring interface for the crawler."""

    def __init__(self, metrics_collector: MetricsCollector):
        self.metrics = metrics_collector
        self.start_time = time.time()

    def record_url_processed(self, fetch_time: float):
        self.metrics.urls_processed.inc()
        self.metrics.fetch_time.observe(fetch_time)

    def record_matches(self, count: int):
        if count:
            self.metrics.matches_found.inc(count)

    def record_fetch_failure(self, kind: str):
        self.metrics.fetch_failures.labels(kind=kind).inc()

    def record_duplicates(self, count: int):
        if count:
            self.metrics.duplicates_skipped.inc(count)

    def update_queue_size(self, size: int):
        self.metrics.queue_size.set(size)

    def update_active_workers(self, count: int):
        self.metrics.active_workers.set(count)

    def get_summary(self) -> Dict[str, Any]:
        """Get a summary of the main counters."""
        runtime = time.time() - self.start_time
        processed = self.metrics.sample('crawler_urls_processed_total')

        return {
            'runtime_seconds': runtime,
            'urls_processed': processed,
            'matches_found': self.metrics.sample('crawler_matches_found_total'),
            'duplicates_skipped': self.metrics.sample('crawler_duplicates_skipped_total'),
            'urls_per_second': processed / runtime if runtime > 0 else 0,
        }


def initialize_monitoring(enable_exporter: bool = False, prometheus_port: int = 8000) -> CrawlerMonitor:
    """Create a monitor for one crawl run and start the exporter if enabled."""
    collector = MetricsCollector(enable_exporter, prometheus_port)
    collector.start_exporter()
    return CrawlerMonitor(collector)

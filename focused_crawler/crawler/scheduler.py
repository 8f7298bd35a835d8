"""
Crawl coordination: the worker loop and the scheduler that owns all shared
crawl state, seeds the frontier, enforces the deadline and shuts down.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Optional

from .fetcher import FetchResult, WebFetcher
from .parser import ContentParser
from .politeness import DomainPolicyGate
from .search import SearchClient
from .url_filter import UrlFilter
from .url_frontier import FrontierEntry, URLFrontier, VisitedRegistry
from ..storage.database import ResultSink
from ..storage.duplicate_detector import ContentFingerprints
from ..utils.config import Config
from ..utils.logger import get_crawler_logger
from ..utils.monitoring import CrawlerMonitor, initialize_monitoring


class StopReason(Enum):
    """Why a crawl ended. All of these are normal completions."""
    DEADLINE = "deadline"
    STOPPED = "stopped"
    EXHAUSTED = "exhausted"
    NO_SEEDS = "no_seeds"


class WorkerState(Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    SCORING = "scoring"
    EXTRACTING = "extracting"
    ENQUEUING = "enqueuing"


@dataclass
class CrawlStats:
    """Statistics for crawl operations."""
    start_time: float = field(default_factory=time.monotonic)
    urls_processed: int = 0
    matches_found: int = 0
    fetch_failures: int = 0
    duplicates_skipped: int = 0
    errors: int = 0

    @property
    def elapsed_time(self) -> float:
        return time.monotonic() - self.start_time

    @property
    def urls_per_second(self) -> float:
        elapsed = self.elapsed_time
        return self.urls_processed / elapsed if elapsed > 0 else 0.0


@dataclass(frozen=True)
class CrawlReport:
    """Final outcome of a crawl run."""
    urls_processed: int
    matches_found: int
    stop_reason: StopReason
    drained: bool
    elapsed_seconds: float

    @property
    def timed_out(self) -> bool:
        return self.stop_reason is StopReason.DEADLINE

    def to_dict(self) -> Dict:
        return {
            'urls_processed': self.urls_processed,
            'matches_found': self.matches_found,
            'stop_reason': self.stop_reason.value,
            'drained': self.drained,
            'elapsed_seconds': round(self.elapsed_seconds, 2),
        }


def _failure_kind(result: FetchResult) -> str:
    if 400 <= result.status_code < 500:
        return 'client_error'
    if result.status_code >= 500 or result.status_code == 0:
        return 'transient'
    return 'unsupported'


class CrawlWorker:
    """
    One crawl loop: dequeue, filter, claim, fetch, score, persist, enqueue.

    All shared state is handed in by the scheduler; only the content
    fingerprints may be private to this worker.
    """

    def __init__(self, worker_id: str, frontier: URLFrontier, visited: VisitedRegistry,
                 url_filter: UrlFilter, fetcher: WebFetcher, parser: ContentParser,
                 sink: ResultSink, stats: CrawlStats, monitor: CrawlerMonitor,
                 fingerprints: ContentFingerprints, max_depth: int, deadline: float,
                 stop_event: asyncio.Event, poll_interval: float = 0.5):
        self.worker_id = worker_id
        self.frontier = frontier
        self.visited = visited
        self.url_filter = url_filter
        self.fetcher = fetcher
        self.parser = parser
        self.sink = sink
        self.stats = stats
        self.monitor = monitor
        self.fingerprints = fingerprints
        self.max_depth = max_depth
        self.deadline = deadline
        self.stop_event = stop_event
        self.poll_interval = poll_interval

        self.state = WorkerState.IDLE
        self.busy = False
        self.logger = get_crawler_logger(__name__, worker_id=worker_id)

    def should_stop(self) -> bool:
        return self.stop_event.is_set() or time.monotonic() >= self.deadline

    async def run(self):
        """Loop until the deadline passes or the stop signal is set."""
        self.logger.debug("Worker started")

        try:
            while not self.should_stop():
                entry = await self.frontier.dequeue(self.poll_interval)
                if entry is None:
                    continue

                # Marked before any await so the scheduler never sees an
                # empty frontier with this entry in flight and nobody busy
                self.busy = True
                try:
                    await self._handle(entry)
                except Exception as e:
                    self.stats.errors += 1
                    self.logger.error(f"Error processing {entry.url}: {e}", exc_info=True)
                finally:
                    self.state = WorkerState.IDLE
                    self.busy = False

        except asyncio.CancelledError:
            self.logger.debug("Worker cancelled")
            return

        self.logger.debug("Worker finished")

    async def _handle(self, entry: FrontierEntry):
        if entry.depth > self.max_depth:
            self.logger.debug(f"Skipping URL beyond max depth: {entry.url}")
            return

        if not await self.url_filter.is_eligible(entry.url):
            return

        if not self.visited.try_claim(entry.url):
            return

        await self._process(entry)

    async def _process(self, entry: FrontierEntry):
        url, depth = entry.url, entry.depth
        self.logger.info(f"Crawling: {url} (depth: {depth})")

        self.state = WorkerState.FETCHING
        result = await self.fetcher.fetch(url)

        self.stats.urls_processed += 1
        self.monitor.record_url_processed(result.fetch_time)
        if self.stats.urls_processed % 100 == 0:
            self.logger.info(
                f"Progress: {self.stats.urls_processed} URLs processed, "
                f"{self.stats.matches_found} matches found"
            )

        if not result.ok:
            self.stats.fetch_failures += 1
            self.monitor.record_fetch_failure(_failure_kind(result))
            return

        self.state = WorkerState.SCORING
        page = self.parser.process(url, result.document, depth, self.fingerprints)

        self.state = WorkerState.EXTRACTING
        self.stats.duplicates_skipped += page.duplicates_skipped
        self.monitor.record_duplicates(page.duplicates_skipped)
        if page.items:
            if await self.sink.append_results(page.items):
                self.stats.matches_found += len(page.items)
                self.monitor.record_matches(len(page.items))
                self.logger.info(
                    f"Saved {len(page.items)} matches from {url} (score {page.relevance_score:.2f})"
                )

        self.state = WorkerState.ENQUEUING
        if depth < self.max_depth:
            queued = await self._enqueue_links(page.links, depth + 1)
            self.logger.debug(f"Queued {queued} new URLs from {url}")

    async def _enqueue_links(self, links: Iterable[str], depth: int) -> int:
        queued = 0
        for link in links:
            if self.visited.is_visited(link):
                continue
            if await self.url_filter.is_eligible(link):
                await self.frontier.enqueue(FrontierEntry(link, depth))
                queued += 1
        return queued


class CrawlerScheduler:
    """
    Owns the shared crawl state and coordinates the workers of one run.

    Every registry (frontier, visited set, per-host domain state, counters)
    is an attribute of this object, so separate schedulers never share state.
    """

    def __init__(self, config: Config, keyword: str, sink: Optional[ResultSink] = None,
                 search_client: Optional[SearchClient] = None,
                 monitor: Optional[CrawlerMonitor] = None,
                 poll_interval: float = 0.5, report_interval: float = 30.0):
        if not keyword or not keyword.strip():
            raise ValueError("keyword must not be empty")

        self.config = config
        self.keyword = keyword.strip()
        self.poll_interval = poll_interval
        self.report_interval = report_interval
        self.logger = logging.getLogger(__name__)

        crawler = config.crawler
        self.max_depth = crawler.max_depth

        self.frontier = URLFrontier()
        self.visited = VisitedRegistry()
        self.gate = DomainPolicyGate(
            user_agent=crawler.user_agent,
            politeness_delay=crawler.politeness_delay,
            robots_timeout=crawler.robots_timeout,
            respect_robots_txt=crawler.respect_robots_txt,
        )
        self.url_filter = UrlFilter(self.gate, self.visited)
        self.fetcher = WebFetcher(
            gate=self.gate,
            user_agent=crawler.user_agent,
            max_retries=crawler.max_retries,
            request_timeout=crawler.request_timeout,
            timeout_increment=crawler.timeout_increment,
            retry_backoff=crawler.retry_backoff,
        )
        self.parser = ContentParser(
            keyword=self.keyword,
            min_relevance_score=crawler.min_relevance_score,
            max_links_per_page=crawler.max_links_per_page,
        )
        self.sink = sink or ResultSink(config.output.file)
        self.search_client = search_client
        self.monitor = monitor or initialize_monitoring(
            config.monitoring.metrics_enabled, config.monitoring.prometheus_port
        )

        self.stats = CrawlStats()
        self.stop_event = asyncio.Event()
        self.workers: List[CrawlWorker] = []
        self._tasks: List[asyncio.Task] = []
        self.is_running = False

    async def __aenter__(self):
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def initialize(self):
        """Open the HTTP sessions."""
        await self.gate.start()
        await self.fetcher.start()
        self.logger.info("Crawler scheduler initialized")

    async def close(self):
        """Stop workers and close all connections."""
        if self.is_running:
            self.stop()
        await self._cancel_tasks()
        await self.fetcher.close()
        await self.gate.close()
        self.logger.info("Crawler scheduler closed")

    def stop(self):
        """External stop signal; workers exit after their current URL."""
        if not self.stop_event.is_set():
            self.logger.info("Stop requested")
            self.stop_event.set()

    async def seed(self, urls: Iterable[str], depth: int = 0) -> int:
        """Add eligible seed URLs to the frontier. Returns the number added."""
        added = 0
        for url in urls:
            url = url.strip()
            if await self.url_filter.is_eligible(url):
                await self.frontier.enqueue(FrontierEntry(url, depth))
                added += 1
            else:
                self.logger.debug(f"Ignoring ineligible seed URL: {url!r}")

        self.logger.info(f"Added {added} seed URLs to frontier at depth {depth}")
        return added

    async def discover_seeds(self) -> int:
        """Seed the frontier from the search API at depth 1."""
        if self.search_client is None:
            self.logger.warning("No seed URLs and no search API credentials configured")
            return 0

        self.logger.info(f"No seed URLs given, searching for '{self.keyword}'")
        results = await self.search_client.search(self.keyword)
        return await self.seed([r.url for r in results], depth=1)

    def _make_workers(self, deadline: float) -> List[CrawlWorker]:
        crawler = self.config.crawler
        shared_fingerprints = ContentFingerprints() if crawler.share_content_fingerprints else None

        workers = []
        for i in range(crawler.max_workers):
            workers.append(CrawlWorker(
                worker_id=f"worker-{i}",
                frontier=self.frontier,
                visited=self.visited,
                url_filter=self.url_filter,
                fetcher=self.fetcher,
                parser=self.parser,
                sink=self.sink,
                stats=self.stats,
                monitor=self.monitor,
                fingerprints=shared_fingerprints if shared_fingerprints is not None else ContentFingerprints(),
                max_depth=self.max_depth,
                deadline=deadline,
                stop_event=self.stop_event,
                poll_interval=self.poll_interval,
            ))
        return workers

    async def run(self, seed_urls: Optional[Iterable[str]] = None,
                  timeout: Optional[float] = None) -> CrawlReport:
        """
        Run one crawl to completion.

        Args:
            seed_urls: Seeds entering at depth 0 (defaults to the configured ones)
            timeout: Crawl duration in seconds (defaults to the configured one)

        Returns:
            CrawlReport describing why and how the crawl ended
        """
        if self.is_running:
            raise RuntimeError("Crawler is already running")

        crawler = self.config.crawler
        timeout = timeout if timeout is not None else crawler.timeout_seconds
        self.stats.start_time = time.monotonic()
        deadline = self.stats.start_time + timeout

        self.logger.info(f"Starting crawl for keyword '{self.keyword}'")
        self.logger.info(
            f"Max workers: {crawler.max_workers}, max depth: {self.max_depth}, "
            f"timeout: {timeout:.0f}s, output: {self.sink.output_file}"
        )

        await self.seed(crawler.seed_urls if seed_urls is None else seed_urls, depth=0)
        if self.frontier.empty():
            await self.discover_seeds()
        if self.frontier.empty():
            self.logger.warning("Nothing to crawl: no eligible seed URLs")
            return self._report(StopReason.NO_SEEDS, drained=True)

        self.is_running = True
        self.workers = self._make_workers(deadline)
        self._tasks = [asyncio.create_task(w.run(), name=w.worker_id) for w in self.workers]
        reporter = asyncio.create_task(self._stats_reporter())

        try:
            stop_reason = await self._watch(deadline)
            # Make every worker notice promptly, whatever ended the crawl
            self.stop_event.set()
            drained = await self._drain(crawler.shutdown_grace)
        finally:
            reporter.cancel()
            await asyncio.gather(reporter, return_exceptions=True)
            self.is_running = False

        report = self._report(stop_reason, drained)
        self._log_final_stats(report)
        return report

    async def _watch(self, deadline: float) -> StopReason:
        idle_polls = 0
        while True:
            if self.stop_event.is_set():
                return StopReason.STOPPED

            remaining = deadline - time.monotonic()
            if remaining <= 0:
                self.logger.info("Crawl deadline reached")
                return StopReason.DEADLINE

            if self.frontier.empty() and not any(w.busy for w in self.workers):
                idle_polls += 1
                if idle_polls >= 2:
                    self.logger.info("Frontier exhausted")
                    return StopReason.EXHAUSTED
            else:
                idle_polls = 0

            self.monitor.update_queue_size(self.frontier.qsize())
            self.monitor.update_active_workers(sum(1 for w in self.workers if w.busy))
            await asyncio.sleep(min(self.poll_interval, remaining))

    async def _drain(self, grace: float) -> bool:
        """Wait up to `grace` seconds for workers to exit. True if all did."""
        if not self._tasks:
            return True

        _, pending = await asyncio.wait(self._tasks, timeout=grace)
        if pending:
            self.logger.warning(f"{len(pending)} workers did not finish within {grace:.1f}s, cancelling")
        await self._cancel_tasks()
        return not pending

    async def _cancel_tasks(self):
        for task in self._tasks:
            if not task.done():
                task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []

    def _report(self, stop_reason: StopReason, drained: bool) -> CrawlReport:
        return CrawlReport(
            urls_processed=self.stats.urls_processed,
            matches_found=self.stats.matches_found,
            stop_reason=stop_reason,
            drained=drained,
            elapsed_seconds=self.stats.elapsed_time,
        )

    async def _stats_reporter(self):
        """Periodically log crawl statistics."""
        while True:
            await asyncio.sleep(self.report_interval)
            self.logger.info(
                f"Status: {len(self.visited)} URLs visited, "
                f"{self.stats.urls_processed} processed, "
                f"{self.stats.matches_found} matches, "
                f"{self.frontier.qsize()} queued "
                f"({self.stats.urls_per_second:.2f} URLs/sec)"
            )

    def _log_final_stats(self, report: CrawlReport):
        self.logger.info("=== CRAWL COMPLETED ===")
        self.logger.info(
            f"Crawling {'timed out' if report.timed_out else 'completed'} "
            f"({report.stop_reason.value}) after {report.elapsed_seconds:.0f} seconds"
        )
        self.logger.info(f"URLs processed: {report.urls_processed}")
        self.logger.info(f"Matches found: {report.matches_found}")
        self.logger.info(f"Fetch failures: {self.stats.fetch_failures}")
        self.logger.info(f"Duplicates skipped: {self.stats.duplicates_skipped}")
        self.logger.info(f"URLs remaining in queue: {self.frontier.qsize()}")
        self.logger.info(f"Fetcher stats: {self.fetcher.get_stats()}")
        self.logger.info(f"Domain policy stats: {self.gate.get_stats()}")
        self.logger.info(f"Storage stats: {self.sink.get_stats()}")
        if not report.drained:
            self.logger.warning("Not all workers drained before the grace period ended")

    def get_stats(self) -> Dict:
        """Get current crawl statistics."""
        return {
            'urls_processed': self.stats.urls_processed,
            'matches_found': self.stats.matches_found,
            'fetch_failures': self.stats.fetch_failures,
            'duplicates_skipped': self.stats.duplicates_skipped,
            'errors': self.stats.errors,
            'elapsed_time': self.stats.elapsed_time,
            'urls_in_queue': self.frontier.qsize(),
            'urls_visited': len(self.visited),
            'is_running': self.is_running,
        }

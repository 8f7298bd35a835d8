"""
URL Frontier implementation for managing URLs to crawl.
Dequeues shallow entries first so breadth-first expansion dominates.
"""

import asyncio
import itertools
import logging
from dataclasses import dataclass
from typing import Dict, Optional, Set


@dataclass(frozen=True)
class FrontierEntry:
    """A URL waiting to be crawled at a given depth."""
    url: str
    depth: int

    def __post_init__(self):
        if self.depth < 0:
            raise ValueError(f"depth must be >= 0, got {self.depth}")


class URLFrontier:
    """
    Concurrent work queue of FrontierEntry objects.

    Entries come out in non-decreasing depth order, ties broken by arrival
    order. The frontier never drops an entry; depth filtering is the
    worker's job.
    """

    def __init__(self, maxsize: int = 0):
        self._queue: asyncio.PriorityQueue = asyncio.PriorityQueue(maxsize=maxsize)
        self._sequence = itertools.count()
        self.logger = logging.getLogger(__name__)

        self.total_enqueued = 0
        self.total_dequeued = 0

    async def enqueue(self, entry: FrontierEntry):
        """
        Add an entry to the frontier.

        Never blocks when the frontier is unbounded (the default).
        """
        await self._queue.put((entry.depth, next(self._sequence), entry))
        self.total_enqueued += 1
        self.logger.debug(f"Enqueued {entry.url} at depth {entry.depth}")

    async def dequeue(self, timeout: float) -> Optional[FrontierEntry]:
        """
        Wait up to `timeout` seconds for the next entry.

        Returns:
            The shallowest queued entry, or None if none arrived in time
        """
        try:
            _, _, entry = await asyncio.wait_for(self._queue.get(), timeout=timeout)
        except asyncio.TimeoutError:
            return None

        self._queue.task_done()
        self.total_dequeued += 1
        return entry

    def qsize(self) -> int:
        return self._queue.qsize()

    def empty(self) -> bool:
        return self._queue.empty()

    def get_stats(self) -> Dict[str, int]:
        """Get frontier statistics."""
        return {
            'total_queued': self.qsize(),
            'total_enqueued': self.total_enqueued,
            'total_dequeued': self.total_dequeued,
        }


class VisitedRegistry:
    """
    Set of URLs already claimed for processing.

    try_claim is the only URL-level deduplication gate. It performs the
    membership test and the insert without yielding to the event loop, so
    two tasks racing on the same URL can never both win.
    """

    def __init__(self):
        self._visited: Set[str] = set()

    def try_claim(self, url: str) -> bool:
        """Record `url` and return True for the first caller only."""
        if url in self._visited:
            return False
        self._visited.add(url)
        return True

    def is_visited(self, url: str) -> bool:
        return url in self._visited

    def __len__(self) -> int:
        return len(self._visited)

    def __contains__(self, url: str) -> bool:
        return url in self._visited

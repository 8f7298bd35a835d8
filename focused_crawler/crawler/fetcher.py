"""
Web page fetcher with politeness gating and linear-backoff retries.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional

import aiohttp
from aiohttp import ClientError, ClientSession, ClientTimeout, InvalidURL
from bs4 import BeautifulSoup

from .politeness import DomainPolicyGate


class FailureKind(Enum):
    """How a failed attempt should be treated."""
    RETRYABLE = "retryable"
    TERMINAL = "terminal"


def classify_failure(status_code: Optional[int] = None,
                     error: Optional[BaseException] = None) -> FailureKind:
    """
    Classify a failed attempt.

    Client errors (4xx) mean the resource itself is the problem, so they are
    terminal. Server errors (5xx), timeouts and connection problems are
    treated as transient. A URL aiohttp cannot use is terminal.
    """
    if status_code is not None:
        if 400 <= status_code < 500:
            return FailureKind.TERMINAL
        if status_code >= 500:
            return FailureKind.RETRYABLE
        return FailureKind.TERMINAL

    if isinstance(error, InvalidURL):
        return FailureKind.TERMINAL

    if isinstance(error, (ClientError, asyncio.TimeoutError, OSError)):
        return FailureKind.RETRYABLE

    return FailureKind.TERMINAL


@dataclass
class FetchResult:
    """Result of a fetch operation."""
    url: str
    document: Optional[BeautifulSoup] = None
    status_code: int = 0
    error: Optional[str] = None
    attempts: int = 0
    terminal_failure: bool = False
    fetch_time: float = 0.0

    @property
    def ok(self) -> bool:
        return self.document is not None


class WebFetcher:
    """
    Fetches and parses web pages.

    Every attempt first passes through the DomainPolicyGate. Retryable
    failures are retried up to `max_retries` times with a per-attempt timeout
    of `request_timeout + attempt * timeout_increment` and a sleep of
    `retry_backoff * (attempt + 1)` between attempts.
    """

    TEXT_CONTENT_TYPES = ('text/html', 'application/xhtml+xml', 'text/plain', 'application/xml', 'text/xml')

    def __init__(self, gate: DomainPolicyGate, user_agent: str, max_retries: int = 2,
                 request_timeout: float = 10.0, timeout_increment: float = 5.0,
                 retry_backoff: float = 1.0):
        self.gate = gate
        self.user_agent = user_agent
        self.max_retries = max_retries
        self.request_timeout = request_timeout
        self.timeout_increment = timeout_increment
        self.retry_backoff = retry_backoff

        self.logger = logging.getLogger(__name__)
        self.session: Optional[ClientSession] = None

        self.stats = {
            'total_requests': 0,
            'successful_requests': 0,
            'retries': 0,
            'terminal_failures': 0,
        }

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def start(self):
        """Initialize the fetcher session."""
        if self.session is None:
            self.session = aiohttp.ClientSession(headers={'User-Agent': self.user_agent})
            self.logger.debug("WebFetcher session started")

    async def close(self):
        """Close the fetcher session."""
        if self.session:
            await self.session.close()
            self.session = None
            self.logger.debug("WebFetcher session closed")

    def attempt_timeout(self, attempt: int) -> float:
        return self.request_timeout + attempt * self.timeout_increment

    def backoff_delay(self, attempt: int) -> float:
        return self.retry_backoff * (attempt + 1)

    async def fetch(self, url: str) -> FetchResult:
        """
        Fetch and parse a single URL.

        Never raises for network or HTTP problems; the outcome is reported in
        the returned FetchResult.
        """
        if self.session is None:
            await self.start()

        start_time = time.monotonic()
        result = FetchResult(url=url)

        for attempt in range(self.max_retries + 1):
            result.attempts = attempt + 1
            await self.gate.wait_for_turn(url)
            self.stats['total_requests'] += 1

            kind = FailureKind.TERMINAL
            try:
                timeout = ClientTimeout(total=self.attempt_timeout(attempt))
                async with self.session.get(url, timeout=timeout) as response:
                    result.status_code = response.status

                    if response.status >= 400:
                        kind = classify_failure(status_code=response.status)
                        result.error = f"HTTP {response.status}"
                    else:
                        content_type = response.headers.get('Content-Type', '').lower()
                        if content_type and not any(t in content_type for t in self.TEXT_CONTENT_TYPES):
                            result.error = f"Unsupported content type: {content_type}"
                        else:
                            html = await response.text(errors='replace')
                            result.document = BeautifulSoup(html, 'lxml')
                            result.error = None
                            result.fetch_time = time.monotonic() - start_time
                            self.stats['successful_requests'] += 1
                            self.logger.debug(f"Fetched {url}: {response.status} ({len(html)} chars)")
                            return result

            except (ClientError, asyncio.TimeoutError, OSError) as e:
                kind = classify_failure(error=e)
                result.error = f"{type(e).__name__}: {e}" if str(e) else type(e).__name__

            if kind is FailureKind.TERMINAL:
                self.logger.info(f"Terminal failure fetching {url}: {result.error}")
                break

            if attempt < self.max_retries:
                delay = self.backoff_delay(attempt)
                self.stats['retries'] += 1
                self.logger.warning(
                    f"Attempt {attempt + 1}/{self.max_retries + 1} failed for {url}: "
                    f"{result.error}; retrying in {delay:.1f}s"
                )
                await asyncio.sleep(delay)
            else:
                self.logger.warning(
                    f"Giving up on {url} after {attempt + 1} attempts: {result.error}"
                )

        result.terminal_failure = True
        result.fetch_time = time.monotonic() - start_time
        self.stats['terminal_failures'] += 1
        return result

    def get_stats(self) -> Dict[str, int]:
        """Get fetcher statistics."""
        return self.stats.copy()

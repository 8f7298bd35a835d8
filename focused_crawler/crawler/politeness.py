"""
Per-domain politeness throttling and robots.txt compliance.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Dict, Optional, Set
from urllib.parse import urlparse

import aiohttp
from aiohttp import ClientError, ClientSession, ClientTimeout


@dataclass
class DomainState:
    """Shared per-host state, created on first encounter and kept for the run."""
    last_access: Optional[float] = None
    robots_rules: Set[str] = field(default_factory=set)
    rules_loaded: bool = False
    access_lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    robots_lock: asyncio.Lock = field(default_factory=asyncio.Lock)


def parse_robots_txt(text: str, user_agent: str) -> Set[str]:
    """
    Collect Disallow path prefixes that apply to `user_agent`.

    Consecutive User-agent lines form one group. A group applies when one of
    its agent tokens is `*` or occurs in our user-agent string
    (case-insensitive). Empty Disallow values allow everything and are ignored.
    """
    ua = user_agent.lower()
    rules: Set[str] = set()
    group_agents: list = []
    group_has_directives = False

    for raw in text.splitlines():
        line = raw.split('#', 1)[0].strip()
        if not line or ':' not in line:
            continue

        key, _, value = line.partition(':')
        key = key.strip().lower()
        value = value.strip()

        if key == 'user-agent':
            if group_has_directives:
                group_agents = []
                group_has_directives = False
            group_agents.append(value.lower())
        elif key in ('disallow', 'allow', 'crawl-delay'):
            group_has_directives = True
            if key != 'disallow' or not value:
                continue
            if any(agent == '*' or (agent and agent in ua) for agent in group_agents):
                rules.add(value)

    return rules


class DomainPolicyGate:
    """
    Enforces the politeness interval and robots.txt rules per host.

    Timing decisions are serialized per host with a host-level lock; unrelated
    hosts never wait on each other.
    """

    def __init__(self, user_agent: str, politeness_delay: float = 1.0,
                 robots_timeout: float = 3.0, respect_robots_txt: bool = True):
        self.user_agent = user_agent
        self.politeness_delay = politeness_delay
        self.robots_timeout = robots_timeout
        self.respect_robots_txt = respect_robots_txt

        self.logger = logging.getLogger(__name__)
        self.domains: Dict[str, DomainState] = {}
        self.session: Optional[ClientSession] = None

        self.stats = {
            'robots_fetched': 0,
            'robots_failed': 0,
            'robots_blocked': 0,
            'politeness_waits': 0,
        }

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def start(self):
        """Open the HTTP session used for robots.txt requests."""
        if self.session is None:
            self.session = aiohttp.ClientSession(
                timeout=ClientTimeout(total=self.robots_timeout),
                headers={'User-Agent': self.user_agent}
            )

    async def close(self):
        if self.session:
            await self.session.close()
            self.session = None

    @staticmethod
    def _get_host(url: str) -> str:
        return (urlparse(url).netloc or '').lower()

    def _get_state(self, host: str) -> DomainState:
        # No await between lookup and insert, so creation is atomic on the loop
        state = self.domains.get(host)
        if state is None:
            state = DomainState()
            self.domains[host] = state
        return state

    async def wait_for_turn(self, url: str) -> float:
        """
        Block until `url`'s host may be contacted again, then claim the slot.

        Returns:
            The monotonic admission time recorded for the host
        """
        try:
            host = self._get_host(url)
        except ValueError:
            return time.monotonic()
        if not host:
            return time.monotonic()

        state = self._get_state(host)
        async with state.access_lock:
            if state.last_access is not None:
                elapsed = time.monotonic() - state.last_access
                remaining = self.politeness_delay - elapsed
                if remaining > 0:
                    self.stats['politeness_waits'] += 1
                    await asyncio.sleep(remaining)
            state.last_access = time.monotonic()
            return state.last_access

    def set_rules(self, host: str, rules: Set[str]):
        """Install robots rules for a host, marking them loaded."""
        state = self._get_state(host.lower())
        state.robots_rules = set(rules)
        state.rules_loaded = True

    async def _load_robots(self, scheme: str, host: str, state: DomainState):
        robots_url = f"{scheme}://{host}/robots.txt"
        rules: Set[str] = set()

        try:
            if self.session is None:
                await self.start()
            # Counts as a request to the host like any page fetch
            await self.wait_for_turn(robots_url)
            async with self.session.get(robots_url) as response:
                if response.status == 200:
                    text = await response.text(errors='replace')
                    rules = parse_robots_txt(text, self.user_agent)
                    self.stats['robots_fetched'] += 1
                else:
                    self.logger.debug(f"robots.txt {robots_url} -> HTTP {response.status}, allowing all")
        except (ClientError, asyncio.TimeoutError, UnicodeDecodeError) as e:
            self.stats['robots_failed'] += 1
            self.logger.warning(f"Could not fetch robots.txt for {host}: {e!r}, allowing all")

        state.robots_rules = rules
        state.rules_loaded = True
        if rules:
            self.logger.debug(f"Loaded {len(rules)} disallow rules for {host}")

    async def is_allowed(self, url: str) -> bool:
        """Check `url` against its host's robots.txt rules, loading them once."""
        if not self.respect_robots_txt:
            return True

        try:
            parsed = urlparse(url)
            host = parsed.netloc.lower()
            if not host:
                return True

            state = self._get_state(host)
            if not state.rules_loaded:
                async with state.robots_lock:
                    if not state.rules_loaded:
                        await self._load_robots(parsed.scheme or 'http', host, state)

            path = parsed.path or '/'
            for rule in state.robots_rules:
                if path.startswith(rule):
                    self.stats['robots_blocked'] += 1
                    self.logger.debug(f"Robots.txt blocks access to: {url}")
                    return False
            return True

        except Exception as e:
            self.logger.error(f"Error checking robots.txt for {url}: {e}")
            return True

    def get_stats(self) -> Dict[str, int]:
        return {**self.stats, 'known_hosts': len(self.domains)}

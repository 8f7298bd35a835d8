"""
Eligibility filter deciding which URLs may enter the frontier.
"""

import re
from urllib.parse import urlparse, urldefrag

from .politeness import DomainPolicyGate
from .url_frontier import VisitedRegistry


BINARY_EXTENSIONS = re.compile(
    r'.*\.(jpg|jpeg|png|gif|bmp|webp|mp3|mp4|wav|avi|mov|wmv|flv|pdf|doc|docx|xls|xlsx'
    r'|ppt|pptx|zip|rar|tar|gz|exe|dmg|iso|bin)$',
    re.IGNORECASE
)


def is_crawlable_url(url: str) -> bool:
    """Syntactic checks: http(s) scheme, a host, and not a binary file."""
    if not url:
        return False

    try:
        parsed = urlparse(url)
    except ValueError:
        return False

    if parsed.scheme not in ('http', 'https') or not parsed.netloc:
        return False

    try:
        parsed.port  # raises for out-of-range or non-numeric ports
    except ValueError:
        return False

    if BINARY_EXTENSIONS.match(parsed.path):
        return False

    return True


class UrlFilter:
    """Single admission predicate for seeds and discovered links."""

    def __init__(self, gate: DomainPolicyGate, visited: VisitedRegistry):
        self.gate = gate
        self.visited = visited

    async def is_eligible(self, url: str) -> bool:
        if not is_crawlable_url(url):
            return False

        # Fragment variants of an already-visited page point at the same content
        if '#' in url:
            base, _ = urldefrag(url)
            if self.visited.is_visited(base):
                return False

        return await self.gate.is_allowed(url)

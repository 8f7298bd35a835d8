"""
Seed discovery through the Google Custom Search JSON API.

Only used when a crawl is started without seed URLs.
"""

import asyncio
import logging
import os
from dataclasses import dataclass
from typing import List, Optional

import aiohttp
from aiohttp import ClientError, ClientTimeout
from dotenv import load_dotenv


@dataclass(frozen=True)
class SearchResult:
    url: str
    title: str
    snippet: str


class SearchClient:
    """Thin client for keyword search; failures yield no results."""

    def __init__(self, api_key: str, engine_id: str,
                 endpoint: str = "https://www.googleapis.com/customsearch/v1",
                 timeout: float = 10.0):
        self.api_key = api_key
        self.engine_id = engine_id
        self.endpoint = endpoint
        self.timeout = timeout
        self.logger = logging.getLogger(__name__)

    @classmethod
    def from_config(cls, search_config) -> Optional['SearchClient']:
        """
        Build a client from the `search` config section, falling back to the
        GOOGLE_API_KEY / GOOGLE_SEARCH_ENGINE_ID environment variables.

        Returns None when no credentials are available.
        """
        load_dotenv()
        api_key = search_config.api_key or os.environ.get('GOOGLE_API_KEY')
        engine_id = search_config.engine_id or os.environ.get('GOOGLE_SEARCH_ENGINE_ID')
        if not api_key or not engine_id:
            return None
        return cls(api_key, engine_id, search_config.endpoint)

    async def search(self, keyword: str) -> List[SearchResult]:
        params = {'q': keyword, 'key': self.api_key, 'cx': self.engine_id}

        try:
            async with aiohttp.ClientSession(timeout=ClientTimeout(total=self.timeout)) as session:
                async with session.get(self.endpoint, params=params) as response:
                    if response.status != 200:
                        body = await response.text(errors='replace')
                        self.logger.warning(f"Search request failed with HTTP {response.status}: {body[:200]}")
                        return []
                    data = await response.json(content_type=None)
        except (ClientError, asyncio.TimeoutError, ValueError) as e:
            self.logger.warning(f"Error fetching search results for '{keyword}': {e!r}")
            return []

        items = data.get('items') if isinstance(data, dict) else None

        results = []
        for item in items or []:
            link = item.get('link') if isinstance(item, dict) else None
            if not link:
                continue
            results.append(SearchResult(
                url=link,
                title=item.get('title', 'No Title'),
                snippet=item.get('snippet', 'No Snippet'),
            ))

        self.logger.info(f"Search for '{keyword}' returned {len(results)} results")
        return results

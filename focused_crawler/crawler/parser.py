"""
Content processing: relevance scoring, metadata extraction, content block
extraction and link discovery.
"""

import logging
import re
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional
from urllib.parse import urljoin, urlsplit, urlunsplit

from bs4 import BeautifulSoup, Comment

from ..storage.duplicate_detector import ContentFingerprints


UNKNOWN_DATE = "Unknown Date"
UNKNOWN_AUTHOR = "Unknown Author"
NO_TITLE = "No Title"

# Scoring weights
OCCURRENCE_WEIGHT = 0.5
TITLE_BONUS = 5.0
URL_BONUS = 3.0
HEADING_BONUS = 2.0
LONG_PAGE_MULTIPLIER = 1.2
LONG_PAGE_THRESHOLD = 2000

# Lookup order below is a priority order; earlier sources win.
DATE_META_TAGS = [
    'article:published_time',
    'pubdate',
    'publication_date',
    'date',
    'article.published',
]

DATE_SELECTORS = [
    '[itemprop="datePublished"]',
    '.published',
    '.date-published',
    '.publish-date',
    '.article-date',
    '.post-date',
    '.entry-date',
    '.timestamp',
    '.date',
]

AUTHOR_META_TAGS = [
    'author',
    'article:author',
    'dc.creator',
    'byl',
]

AUTHOR_SELECTORS = [
    '[rel="author"]',
    '[itemprop="author"]',
    '.author-name',
    '.post-author',
    '.article-author',
    '.byline',
    '.author',
]

BLOCK_TAGS = ['p', 'article', 'section']
HEADING_TAGS = ['h1', 'h2', 'h3']
SKIPPED_LINK_PREFIXES = ('mailto:', 'javascript:', 'tel:', 'data:', '#')


@dataclass(frozen=True)
class ScoredContentItem:
    """One persisted content block from a relevant page."""
    url: str
    title: str
    content: str
    date: str
    author: str
    relevance_score: float
    crawl_depth: int
    crawl_time: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            'url': self.url,
            'title': self.title,
            'content': self.content,
            'date': self.date,
            'author': self.author,
            'relevance_score': self.relevance_score,
            'crawl_depth': self.crawl_depth,
            'crawl_time': self.crawl_time,
        }


@dataclass
class ProcessedPage:
    """Outcome of processing one fetched document."""
    url: str
    relevance_score: float
    items: List[ScoredContentItem] = field(default_factory=list)
    links: List[str] = field(default_factory=list)
    duplicates_skipped: int = 0


def count_occurrences(text: str, keyword: str) -> int:
    """Case-insensitive count of `keyword` in `text`, overlaps included."""
    if not keyword or not text:
        return 0
    text = text.lower()
    keyword = keyword.lower()

    count = 0
    index = text.find(keyword)
    while index != -1:
        count += 1
        index = text.find(keyword, index + 1)
    return count


def calculate_relevance_score(keyword: str, text: str, title: str, url: str,
                              headings: Iterable[str]) -> float:
    """
    Score a page for `keyword`.

    0.5 per occurrence in the page text, +5 if in the title, +3 if in the
    URL, +2 if in any heading, and x1.2 for pages longer than 2000 chars.
    """
    keyword = keyword.lower()
    score = count_occurrences(text, keyword) * OCCURRENCE_WEIGHT

    if title and keyword in title.lower():
        score += TITLE_BONUS

    if url and keyword in url.lower():
        score += URL_BONUS

    for heading in headings:
        if keyword in heading.lower():
            score += HEADING_BONUS
            break

    if len(text) > LONG_PAGE_THRESHOLD:
        score *= LONG_PAGE_MULTIPLIER

    return score


def _clean_text(text: str) -> str:
    return ' '.join(text.split())


def _find_meta(soup: BeautifulSoup, name: str) -> Optional[str]:
    pattern = re.compile(f'^{re.escape(name)}$', re.IGNORECASE)
    for attr in ('property', 'name', 'itemprop'):
        for tag in soup.find_all('meta', attrs={attr: pattern}):
            content = _clean_text(tag.get('content') or '')
            if content:
                return content
    return None


def _first_selector_value(soup: BeautifulSoup, selectors: List[str]) -> Optional[str]:
    for selector in selectors:
        for element in soup.select(selector):
            value = element.get('datetime') or element.get('content') or element.get_text(' ', strip=True)
            value = _clean_text(value or '')
            if value:
                return value
    return None


def extract_publication_date(soup: BeautifulSoup) -> str:
    """Resolve the publication date: <time datetime>, then meta tags, then selectors."""
    for time_tag in soup.find_all('time', attrs={'datetime': True}):
        value = _clean_text(time_tag['datetime'])
        if value:
            return value

    for name in DATE_META_TAGS:
        value = _find_meta(soup, name)
        if value:
            return value

    return _first_selector_value(soup, DATE_SELECTORS) or UNKNOWN_DATE


def extract_author(soup: BeautifulSoup) -> str:
    """Resolve the author: meta tags, then selectors."""
    for name in AUTHOR_META_TAGS:
        value = _find_meta(soup, name)
        if value:
            return value

    return _first_selector_value(soup, AUTHOR_SELECTORS) or UNKNOWN_AUTHOR


def extract_text_blocks(soup: BeautifulSoup) -> List[str]:
    """Whitespace-normalized text of paragraph, article and section elements."""
    blocks = []
    for element in soup.find_all(BLOCK_TAGS):
        text = _clean_text(element.get_text(' ', strip=True))
        if text:
            blocks.append(text)
    return blocks


def extract_headings(soup: BeautifulSoup) -> List[str]:
    return [_clean_text(h.get_text(' ', strip=True)) for h in soup.find_all(HEADING_TAGS)]


def normalize_url(url: str) -> str:
    """
    Canonical form: lower-case scheme and host, explicit port kept, empty
    path becomes "/", query string and fragment dropped.
    """
    parts = urlsplit(url.strip())
    host = (parts.hostname or '').lower()
    if ':' in host:
        host = f'[{host}]'
    netloc = f'{host}:{parts.port}' if parts.port else host
    return urlunsplit((parts.scheme.lower(), netloc, parts.path or '/', '', ''))


def extract_links(soup: BeautifulSoup, base_url: str, limit: int = 50) -> List[str]:
    """Collect up to `limit` distinct, normalized http(s) link targets."""
    links: List[str] = []
    seen = set()

    for anchor in soup.find_all('a', href=True):
        if len(links) >= limit:
            break

        href = anchor['href'].strip()
        if not href or href.lower().startswith(SKIPPED_LINK_PREFIXES):
            continue

        try:
            normalized = normalize_url(urljoin(base_url, href))
        except ValueError:
            continue

        if not normalized.startswith(('http://', 'https://')) or normalized in seen:
            continue

        seen.add(normalized)
        links.append(normalized)

    return links


class ContentParser:
    """
    Turns a parsed document into scored content items and outbound links.
    """

    def __init__(self, keyword: str, min_relevance_score: float = 1.0,
                 max_links_per_page: int = 50):
        if not keyword or not keyword.strip():
            raise ValueError("keyword must not be empty")
        self.keyword = keyword.strip().lower()
        self.min_relevance_score = min_relevance_score
        self.max_links_per_page = max_links_per_page
        self.logger = logging.getLogger(__name__)

    def process(self, url: str, soup: BeautifulSoup, depth: int,
                fingerprints: ContentFingerprints) -> ProcessedPage:
        """
        Score `soup`, extract matching blocks not yet in `fingerprints`,
        and collect outbound links.
        """
        # Links first: stripping scripts below must not affect discovery
        links = extract_links(soup, url, self.max_links_per_page)

        for element in soup(['script', 'style', 'noscript', 'template']):
            element.decompose()
        for comment in soup.find_all(string=lambda text: isinstance(text, Comment)):
            comment.extract()

        title_tag = soup.find('title')
        title = _clean_text(title_tag.get_text()) if title_tag else ''
        text = _clean_text(soup.get_text(' ', strip=True))
        headings = extract_headings(soup)

        score = calculate_relevance_score(self.keyword, text, title, url, headings)
        page = ProcessedPage(url=url, relevance_score=score, links=links)

        if score < self.min_relevance_score:
            self.logger.debug(f"Score {score:.2f} below threshold for {url}")
            return page

        date = extract_publication_date(soup)
        author = extract_author(soup)

        for block in extract_text_blocks(soup):
            if self.keyword not in block.lower():
                continue
            if not fingerprints.check_and_add(block):
                page.duplicates_skipped += 1
                continue

            page.items.append(ScoredContentItem(
                url=url,
                title=title or NO_TITLE,
                content=block,
                date=date,
                author=author,
                relevance_score=score,
                crawl_depth=depth,
                crawl_time=int(time.time() * 1000),
            ))

        self.logger.debug(
            f"Processed {url}: score={score:.2f}, items={len(page.items)}, links={len(links)}"
        )
        return page

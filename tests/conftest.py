# File: tests/conftest.py
from __future__ import annotations

from collections import Counter
from collections.abc import AsyncIterator, Callable
from pathlib import Path

import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer

from focused_crawler.utils.config import Config, CrawlerConfig, OutputConfig


TEST_USER_AGENT = "Mozilla/5.0 (compatible; MyWebCrawler/1.0)"


@pytest.fixture()
def results_file(tmp_path: Path) -> Path:
    """Location of the JSON result store for one test."""
    return tmp_path / "output" / "results.json"


@pytest.fixture()
def make_config(results_file: Path) -> Callable[..., Config]:
    """
    Build a fast Config for crawl tests: no politeness delay, tiny backoff.
    Keyword arguments override CrawlerConfig fields.
    """

    def _make(**overrides) -> Config:
        crawler_settings = {
            "max_workers": 2,
            "timeout_minutes": 1,
            "max_depth": 2,
            "politeness_delay": 0.0,
            "max_retries": 1,
            "retry_backoff": 0.01,
            "request_timeout": 5.0,
            "robots_timeout": 2.0,
            "shutdown_grace": 2.0,
            "user_agent": TEST_USER_AGENT,
        }
        crawler_settings.update(overrides)
        return Config(
            crawler=CrawlerConfig(**crawler_settings),
            output=OutputConfig(file=str(results_file)),
        )

    return _make


@pytest.fixture()
def hits() -> Counter:
    """Per-path request counter shared with the test application."""
    return Counter()


@pytest_asyncio.fixture
async def serve() -> AsyncIterator[Callable]:
    """
    Start aiohttp applications on local ports.
    Yields a coroutine function returning the base URL (no trailing slash).
    """
    servers: list[TestServer] = []

    async def _serve(app: web.Application) -> str:
        server = TestServer(app)
        await server.start_server()
        servers.append(server)
        return str(server.make_url("/")).rstrip("/")

    yield _serve

    for server in servers:
        await server.close()


def html_page(body: str, title: str = "") -> web.Response:
    head = f"<head><title>{title}</title></head>" if title else "<head></head>"
    return web.Response(text=f"<html>{head}<body>{body}</body></html>", content_type="text/html")


def counting_app(routes: dict, hits: Counter) -> web.Application:
    """
    Build an application from {path: handler-or-html-string}, counting hits
    per path.
    """
    app = web.Application()

    def make_handler(path, target):
        async def handler(request):
            hits[path] += 1
            if callable(target):
                return await target(request)
            return web.Response(text=target, content_type="text/html")

        return handler

    for path, target in routes.items():
        app.router.add_get(path, make_handler(path, target))
    return app

import asyncio
import json

import pytest
from aiohttp import web

from focused_crawler.crawler.scheduler import CrawlerScheduler, StopReason
from focused_crawler.crawler.search import SearchResult
from tests.conftest import counting_app


def page(title: str, text: str, links=()) -> str:
    anchors = "".join(f'<a href="{href}">{href}</a>' for href in links)
    return f"<html><head><title>{title}</title></head><body><p>{text}</p>{anchors}</body></html>"


def read_results(results_file):
    if not results_file.exists():
        return []
    return json.loads(results_file.read_text(encoding="utf-8"))


class FakeSearchClient:
    def __init__(self, urls):
        self.urls = urls
        self.queries = []

    async def search(self, keyword):
        self.queries.append(keyword)
        return [SearchResult(url=url, title="", snippet="") for url in self.urls]


async def endless(request):
    n = int(request.match_info["n"])
    return web.Response(
        text=page("Election live", f"Election update number {n}", [f"/live/{n + 1}", f"/live/{n + 2}"]),
        content_type="text/html",
    )


@pytest.fixture()
def news_site(hits):
    routes = {
        "/robots.txt": "User-agent: *\nDisallow: /private\n",
        "/": page("Election coverage", "Front page election summary.",
                  ["/a", "/private/b", "/", "mailto:desk@example.com", "/photo.jpg"]),
        "/a": page("Election coverage", "Analysis of the election results.", ["/c", "/"]),
        "/private/b": page("Election coverage", "Hidden election notes.", []),
        "/c": page("Election coverage", "Election turnout by region.", ["/d"]),
        "/d": page("Election coverage", "Too deep election page.", []),
    }
    return counting_app(routes, hits)


@pytest.mark.asyncio()
async def test_crawl_respects_depth_robots_and_visits_once(serve, hits, news_site, make_config, results_file):
    base = await serve(news_site)
    config = make_config(max_depth=2, max_workers=3)

    async with CrawlerScheduler(config, "election", poll_interval=0.05) as scheduler:
        report = await scheduler.run(seed_urls=[f"{base}/"])

    assert report.stop_reason is StopReason.EXHAUSTED
    assert report.drained
    assert not report.timed_out
    assert report.urls_processed == 3

    assert hits["/"] == 1
    assert hits["/a"] == 1
    assert hits["/c"] == 1
    assert hits["/d"] == 0
    assert hits["/private/b"] == 0
    assert hits["/robots.txt"] == 1

    results = read_results(results_file)
    assert report.matches_found == len(results) == 3
    assert {r["url"]: r["crawl_depth"] for r in results} == {
        f"{base}/": 0,
        f"{base}/a": 1,
        f"{base}/c": 2,
    }
    assert all(r["relevance_score"] >= config.crawler.min_relevance_score for r in results)


@pytest.mark.asyncio()
async def test_no_eligible_seeds_ends_immediately(make_config):
    config = make_config()

    async with CrawlerScheduler(config, "election", poll_interval=0.05) as scheduler:
        report = await scheduler.run(seed_urls=["ftp://example.com/", "https://example.com/file.pdf"])

    assert report.stop_reason is StopReason.NO_SEEDS
    assert report.urls_processed == 0


@pytest.mark.asyncio()
async def test_search_results_seed_at_depth_one(serve, hits, news_site, make_config, results_file):
    base = await serve(news_site)
    search_client = FakeSearchClient([f"{base}/a"])
    config = make_config(max_depth=1)

    async with CrawlerScheduler(config, "election", search_client=search_client,
                                poll_interval=0.05) as scheduler:
        report = await scheduler.run(seed_urls=[])

    assert search_client.queries == ["election"]
    assert report.stop_reason is StopReason.EXHAUSTED
    assert report.urls_processed == 1
    assert hits["/c"] == 0
    assert [r["crawl_depth"] for r in read_results(results_file)] == [1]


@pytest.mark.asyncio()
async def test_deadline_ends_crawl(serve, hits, make_config):
    app = web.Application()
    app.router.add_get("/live/{n}", endless)
    base = await serve(app)
    config = make_config(max_depth=1000, politeness_delay=0.05)

    async with CrawlerScheduler(config, "election", poll_interval=0.05) as scheduler:
        report = await asyncio.wait_for(scheduler.run(seed_urls=[f"{base}/live/0"], timeout=0.5), timeout=10)

    assert report.stop_reason is StopReason.DEADLINE
    assert report.timed_out
    assert report.drained
    assert report.urls_processed > 0
    assert report.elapsed_seconds < 5


@pytest.mark.asyncio()
async def test_external_stop_signal(serve, make_config):
    app = web.Application()
    app.router.add_get("/live/{n}", endless)
    base = await serve(app)
    config = make_config(max_depth=1000, politeness_delay=0.05)

    async with CrawlerScheduler(config, "election", poll_interval=0.05) as scheduler:
        crawl = asyncio.create_task(scheduler.run(seed_urls=[f"{base}/live/0"]))
        await asyncio.sleep(0.3)
        scheduler.stop()
        report = await asyncio.wait_for(crawl, timeout=10)

    assert report.stop_reason is StopReason.STOPPED
    assert report.drained
    assert report.urls_processed > 0
    assert not scheduler.is_running


@pytest.mark.asyncio()
async def test_duplicate_blocks_across_pages_saved_once_per_worker(serve, hits, make_config, results_file):
    shared = "The election debate starts at nine."
    app = counting_app({
        "/one": page("Election", shared),
        "/two": page("Election", shared),
    }, hits)
    base = await serve(app)
    config = make_config(max_workers=1)

    async with CrawlerScheduler(config, "election", poll_interval=0.05) as scheduler:
        report = await scheduler.run(seed_urls=[f"{base}/one", f"{base}/two"])

    assert report.urls_processed == 2
    assert len(read_results(results_file)) == 1
    assert scheduler.get_stats()["duplicates_skipped"] == 1


@pytest.mark.asyncio()
async def test_shared_fingerprints_dedupe_across_workers(serve, hits, make_config, results_file):
    shared = "The election debate starts at nine."
    app = counting_app({f"/p{i}": page("Election", shared) for i in range(4)}, hits)
    base = await serve(app)
    config = make_config(max_workers=4, share_content_fingerprints=True)

    async with CrawlerScheduler(config, "election", poll_interval=0.05) as scheduler:
        report = await scheduler.run(seed_urls=[f"{base}/p{i}" for i in range(4)])

    assert report.urls_processed == 4
    assert len(read_results(results_file)) == 1


@pytest.mark.asyncio()
async def test_failed_fetches_are_counted_not_saved(serve, hits, make_config, results_file):
    async def gone(_):
        return web.Response(status=404)

    base = await serve(counting_app({"/gone": gone}, hits))
    config = make_config()

    async with CrawlerScheduler(config, "election", poll_interval=0.05) as scheduler:
        report = await scheduler.run(seed_urls=[f"{base}/gone"])

    assert report.stop_reason is StopReason.EXHAUSTED
    assert report.urls_processed == 1
    assert report.matches_found == 0
    assert scheduler.get_stats()["fetch_failures"] == 1
    assert hits["/gone"] == 1
    assert read_results(results_file) == []


def test_empty_keyword_is_rejected(make_config):
    with pytest.raises(ValueError):
        CrawlerScheduler(make_config(), "  ")

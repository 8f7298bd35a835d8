import pytest
from aiohttp import web

from focused_crawler.crawler import search as search_module
from focused_crawler.crawler.search import SearchClient
from focused_crawler.utils.config import SearchConfig
from tests.conftest import counting_app


@pytest.fixture()
def no_env_credentials(monkeypatch):
    monkeypatch.setattr(search_module, "load_dotenv", lambda: False)
    monkeypatch.delenv("GOOGLE_API_KEY", raising=False)
    monkeypatch.delenv("GOOGLE_SEARCH_ENGINE_ID", raising=False)


def test_from_config_without_credentials(no_env_credentials):
    assert SearchClient.from_config(SearchConfig()) is None


def test_from_config_reads_environment(no_env_credentials, monkeypatch):
    monkeypatch.setenv("GOOGLE_API_KEY", "key-123")
    monkeypatch.setenv("GOOGLE_SEARCH_ENGINE_ID", "cx-456")

    client = SearchClient.from_config(SearchConfig())

    assert client.api_key == "key-123"
    assert client.engine_id == "cx-456"


def test_config_values_win_over_environment(no_env_credentials, monkeypatch):
    monkeypatch.setenv("GOOGLE_API_KEY", "env-key")

    client = SearchClient.from_config(SearchConfig(api_key="cfg-key", engine_id="cfg-cx"))

    assert client.api_key == "cfg-key"


@pytest.mark.asyncio()
async def test_search_returns_result_links(serve, hits):
    seen_params = {}

    async def results(request):
        seen_params.update(request.query)
        return web.json_response({
            "items": [
                {"link": "https://www.bbc.com/news/election", "title": "Election", "snippet": "..."},
                {"title": "No link, skipped"},
                {"link": "https://www.reuters.com/world"},
            ]
        })

    base = await serve(counting_app({"/customsearch/v1": results}, hits))
    client = SearchClient("key", "cx", endpoint=f"{base}/customsearch/v1")

    found = await client.search("election")

    assert [r.url for r in found] == ["https://www.bbc.com/news/election", "https://www.reuters.com/world"]
    assert found[1].title == "No Title"
    assert seen_params == {"q": "election", "key": "key", "cx": "cx"}


@pytest.mark.asyncio()
async def test_search_failure_yields_no_results(serve, hits):
    async def quota_exceeded(_):
        return web.json_response({"error": "quota"}, status=429)

    base = await serve(counting_app({"/customsearch/v1": quota_exceeded}, hits))
    client = SearchClient("key", "cx", endpoint=f"{base}/customsearch/v1")

    assert await client.search("election") == []


@pytest.mark.asyncio()
async def test_search_without_items_yields_no_results(serve, hits):
    async def empty(_):
        return web.json_response({"searchInformation": {"totalResults": "0"}})

    base = await serve(counting_app({"/customsearch/v1": empty}, hits))
    client = SearchClient("key", "cx", endpoint=f"{base}/customsearch/v1")

    assert await client.search("election") == []

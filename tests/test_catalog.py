"""Tests for catalog search clients and response normalisation."""

import asyncio

import httpx
import pytest

from cart_resolver.clients import catalog
from cart_resolver.clients.catalog import (
    DEMO_PRODUCTS,
    HttpCatalogSearchClient,
    StaticCatalogClient,
    parse_products,
    parse_search_response,
)
from cart_resolver.exceptions import CatalogSearchError


@pytest.fixture(autouse=True)
def _no_retry_delay(monkeypatch):
    monkeypatch.setattr(catalog, "RETRY_DELAY", 0)


def _client(handler):
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HttpCatalogSearchClient("https://catalog.test/v1/", "secret", http_client=http)


class TestParseSearchResponse:
    def test_products_key(self):
        result = parse_search_response(
            {"products": [{"id": "1", "name": "Milk"}], "total": 12}
        )
        assert [p.name for p in result.products] == ["Milk"]
        assert result.total_results == 12

    @pytest.mark.parametrize("key", ["items", "data"])
    def test_alternate_product_keys(self, key):
        result = parse_search_response({key: [{"id": "1", "name": "Milk"}], "count": 3})
        assert len(result.products) == 1
        assert result.total_results == 3

    def test_total_defaults_to_product_count(self):
        result = parse_search_response({"products": [{"name": "A"}, {"name": "B"}]})
        assert result.total_results == 2

    def test_unparseable_total(self):
        result = parse_search_response({"products": [{"name": "A"}], "total": "many"})
        assert result.total_results == 1

    def test_non_dict_payload(self):
        assert parse_search_response(["not", "a", "dict"]).products == []

    def test_products_not_a_list(self):
        assert parse_search_response({"products": "oops"}).products == []


class TestParseProducts:
    def test_drops_rows_that_are_not_products(self):
        rows = [{"id": 1, "name": "Milk"}, "junk", None, {"name": ["bad"]}]
        products = parse_products(rows)
        assert [p.id for p in products] == ["1"]

    def test_keeps_unknown_fields(self):
        products = parse_products([{"id": "1", "name": "Milk", "aisle": "dairy"}])
        assert products[0].model_extra == {"aisle": "dairy"}


class TestHttpCatalogSearchClient:
    def test_sends_query_retailer_and_auth(self):
        seen = {}

        def handler(request):
            seen["url"] = request.url
            seen["auth"] = request.headers["Authorization"]
            return httpx.Response(200, json={"products": [{"id": "p1", "name": "Milk"}]})

        result = asyncio.run(_client(handler).search("whole milk", "safeway"))
        assert seen["url"].path == "/v1/catalog/search"
        assert seen["url"].params["q"] == "whole milk"
        assert seen["url"].params["retailer_id"] == "safeway"
        assert seen["auth"] == "Bearer secret"
        assert result.products[0].id == "p1"

    def test_retailer_omitted_when_absent(self):
        seen = {}

        def handler(request):
            seen["params"] = dict(request.url.params)
            return httpx.Response(200, json={"products": []})

        asyncio.run(_client(handler).search("milk"))
        assert seen["params"] == {"q": "milk"}

    def test_retries_once_on_retryable_status(self):
        calls = []

        def handler(request):
            calls.append(request)
            if len(calls) == 1:
                return httpx.Response(503)
            return httpx.Response(200, json={"products": [{"name": "Milk"}]})

        result = asyncio.run(_client(handler).search("milk"))
        assert len(calls) == 2
        assert len(result.products) == 1

    def test_gives_up_after_one_retry(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(429)

        with pytest.raises(CatalogSearchError) as exc_info:
            asyncio.run(_client(handler).search("milk"))
        assert len(calls) == 2
        assert exc_info.value.status_code == 429

    def test_client_error_is_not_retried(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(401)

        with pytest.raises(CatalogSearchError, match="401"):
            asyncio.run(_client(handler).search("milk"))
        assert len(calls) == 1

    def test_timeout_retried_then_raised(self):
        calls = []

        def handler(request):
            calls.append(request)
            raise httpx.ReadTimeout("slow", request=request)

        with pytest.raises(CatalogSearchError, match="timed out"):
            asyncio.run(_client(handler).search("milk"))
        assert len(calls) == 2

    def test_network_error_raised_without_retry(self):
        calls = []

        def handler(request):
            calls.append(request)
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(CatalogSearchError, match="ConnectError"):
            asyncio.run(_client(handler).search("milk"))
        assert len(calls) == 1

    def test_invalid_json(self):
        def handler(request):
            return httpx.Response(200, content=b"<html>")

        with pytest.raises(CatalogSearchError, match="invalid JSON"):
            asyncio.run(_client(handler).search("milk"))

    def test_injected_client_is_not_closed(self):
        http = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(200)))
        client = HttpCatalogSearchClient("https://catalog.test", "k", http_client=http)
        asyncio.run(client.aclose())
        assert not http.is_closed


class TestStaticCatalogClient:
    def test_matches_any_query_word(self):
        result = asyncio.run(StaticCatalogClient().search("chicken breast"))
        assert {p.id for p in result.products} == {"demo-2001", "demo-2002"}
        assert result.total_results == 2

    def test_numbers_in_query_ignored(self):
        result = asyncio.run(StaticCatalogClient().search("1.5 cup flour"))
        assert [p.id for p in result.products] == ["demo-3001"]

    def test_no_match(self):
        result = asyncio.run(StaticCatalogClient().search("dragonfruit"))
        assert result.products == []

    def test_records_queries(self):
        client = StaticCatalogClient()
        asyncio.run(client.search("milk", "store-1"))
        assert client.queries == [("milk", "store-1")]

    def test_custom_products(self):
        client = StaticCatalogClient([{"id": 5, "name": "Kale"}])
        result = asyncio.run(client.search("kale"))
        assert result.products[0].id == "5"

    def test_demo_products_are_valid(self):
        assert len(StaticCatalogClient().products) == len(DEMO_PRODUCTS)

"""
Tests for SourceFeedClient against a faked StreetPricer API.
"""

from decimal import Decimal

import httpx
import pytest

from pricesync.clients.feed import SourceFeedClient, parse_feed_record
from pricesync.config import FeedConfig
from pricesync.errors import AuthenticationError, NetworkError


def respond(status: int = 200, body=None, headers=None):
    return lambda request: httpx.Response(status, json=body, headers=headers)


def sequence(*responders):
    """Route answering with each responder in turn, repeating the last."""
    calls = iter(responders)
    last = [None]

    def route(request):
        last[0] = next(calls, last[0])
        return last[0](request)

    return route


class FakeFeedApi:
    """MockTransport handler routing by path under /api."""

    def __init__(self, routes: dict):
        self.routes = {"/auth/token": respond(200, {"token": "tok-1"}), **routes}
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path.removeprefix("/api")
        route = self.routes.get(path)
        if route is None:
            return httpx.Response(404, json={"message": "Not found"})
        return route(request)

    def calls(self, path: str) -> int:
        return sum(1 for r in self.requests if r.url.path == f"/api{path}")


def make_client(api: FakeFeedApi, sleep, **config) -> SourceFeedClient:
    return SourceFeedClient(
        FeedConfig(api_url="https://feed.test/api", api_key="user", api_secret="pass", **config),
        transport=httpx.MockTransport(api),
        sleep=sleep,
    )


class TestParseFeedRecord:
    """Test raw item validation."""

    def test_alias_keys(self):
        record = parse_feed_record(
            {"ItemID": 42, "SKU": "AB-1", "Title": "Widget", "NewPrice": "9.99", "PriceCurr": "EUR"}
        )

        assert record.id == "42"
        assert record.sku == "AB-1"
        assert record.name == "Widget"
        assert record.price == Decimal("9.99")
        assert record.currency == "EUR"

    def test_missing_price_is_dropped(self):
        assert parse_feed_record({"id": "1", "sku": "A"}) is None

    def test_non_numeric_price_is_dropped(self):
        assert parse_feed_record({"id": "1", "price": "abc"}) is None

    def test_missing_id_is_dropped(self):
        assert parse_feed_record({"sku": "A", "price": 1}) is None

    def test_non_object_is_dropped(self):
        assert parse_feed_record("nope") is None


class TestAuthentication:
    """Test token exchange."""

    @pytest.mark.asyncio
    async def test_missing_credentials(self, sleep):
        """No request is made without an API key and secret."""
        api = FakeFeedApi({})
        client = SourceFeedClient(FeedConfig(), transport=httpx.MockTransport(api), sleep=sleep)

        with pytest.raises(AuthenticationError):
            await client.authenticate()

        assert api.requests == []

    @pytest.mark.asyncio
    async def test_token_is_sent_as_bearer(self, sleep):
        api = FakeFeedApi({"/stores": respond(200, [{"id": "s1"}]), "/stores/s1/items": respond(200, [])})
        client = make_client(api, sleep)

        await client.fetch_all_records()

        auth_request = api.requests[0]
        assert auth_request.method == "POST"
        assert b"username=user" in auth_request.content
        assert b"password=pass" in auth_request.content
        assert api.requests[1].headers["Authorization"] == "Bearer tok-1"
        assert client.authenticated is True
        await client.close()

    @pytest.mark.asyncio
    async def test_rejected_credentials_are_not_retried(self, sleep):
        api = FakeFeedApi({"/auth/token": respond(401, {"message": "bad credentials"})})
        client = make_client(api, sleep)

        with pytest.raises(AuthenticationError):
            await client.fetch_all_records()

        assert api.calls("/auth/token") == 1
        assert sleep.calls == []

    @pytest.mark.asyncio
    async def test_response_without_token(self, sleep):
        api = FakeFeedApi({"/auth/token": respond(200, {"status": "ok"})})
        client = make_client(api, sleep)

        with pytest.raises(AuthenticationError, match="no token"):
            await client.authenticate()


class TestFetchAllRecords:
    """Test aggregation, pagination and fallback."""

    @pytest.mark.asyncio
    async def test_aggregates_sub_accounts_and_pages(self, sleep):
        def s1_items(request):
            page = int(request.url.params["page"])
            items = [{"id": f"a{page}", "sku": f"A{page}", "price": page}]
            return httpx.Response(200, json={"items": items, "page": page, "total_page": 2})

        api = FakeFeedApi(
            {
                "/stores": respond(200, {"stores": [{"id": "s1"}, {"storeId": "s 2"}]}),
                "/stores/s1/items": s1_items,
                "/stores/s 2/items": respond(200, [{"id": "b1", "sku": "B1", "price": "3.50"}]),
            }
        )
        client = make_client(api, sleep)

        records = await client.fetch_all_records()

        assert [r.id for r in records] == ["a1", "a2", "b1"]
        assert api.calls("/stores/s1/items") == 2
        assert sleep.calls == [1.0]

    @pytest.mark.asyncio
    async def test_invalid_items_are_dropped(self, sleep):
        api = FakeFeedApi(
            {
                "/stores": respond(200, [{"id": "s1"}]),
                "/stores/s1/items": respond(
                    200,
                    [
                        {"id": "1", "sku": "A", "price": "10"},
                        {"id": "2", "sku": "B"},
                        {"sku": "C", "price": "5"},
                        {"id": "4", "sku": "D", "price": "n/a"},
                    ],
                ),
            }
        )
        client = make_client(api, sleep)

        records = await client.fetch_all_records()

        assert [r.id for r in records] == ["1"]

    @pytest.mark.asyncio
    async def test_falls_back_to_products_on_404(self, sleep):
        api = FakeFeedApi({"/products": respond(200, {"items": [{"id": "p1", "price": 2}], "page": 1, "total_page": 1})})
        client = make_client(api, sleep)

        records = await client.fetch_all_records()

        assert [r.id for r in records] == ["p1"]
        assert api.calls("/stores") == 1
        assert api.calls("/products") == 1

    @pytest.mark.asyncio
    async def test_falls_back_when_no_stores(self, sleep):
        api = FakeFeedApi(
            {
                "/stores": respond(200, []),
                "/products": respond(200, [{"id": "p1", "price": 2}]),
            }
        )
        client = make_client(api, sleep)

        records = await client.fetch_all_records()

        assert [r.id for r in records] == ["p1"]

    @pytest.mark.asyncio
    async def test_no_fallback_on_auth_failure(self, sleep):
        """A 401 from the stores endpoint propagates."""
        api = FakeFeedApi(
            {
                "/stores": respond(401, {"message": "expired"}),
                "/products": respond(200, [{"id": "p1", "price": 2}]),
            }
        )
        client = make_client(api, sleep)

        with pytest.raises(AuthenticationError):
            await client.fetch_all_records()

        assert api.calls("/products") == 0
        assert client.authenticated is False

    @pytest.mark.asyncio
    async def test_partial_sub_account_failure(self, sleep):
        """A failing sub-account is skipped when another succeeds."""
        api = FakeFeedApi(
            {
                "/stores": respond(200, [{"id": "bad"}, {"id": "good"}]),
                "/stores/bad/items": respond(400, {"message": "bad request"}),
                "/stores/good/items": respond(200, [{"id": "g1", "price": 1}]),
            }
        )
        client = make_client(api, sleep)

        records = await client.fetch_all_records()

        assert [r.id for r in records] == ["g1"]

    @pytest.mark.asyncio
    async def test_non_json_sub_account_is_skipped(self, sleep):
        """A maintenance page from one sub-account does not abort the fetch."""
        api = FakeFeedApi(
            {
                "/stores": respond(200, [{"id": "bad"}, {"id": "good"}]),
                "/stores/bad/items": lambda request: httpx.Response(200, text="<html>maintenance</html>"),
                "/stores/good/items": respond(200, [{"id": "g1", "price": 1}]),
            }
        )
        client = make_client(api, sleep)

        records = await client.fetch_all_records()

        assert [r.id for r in records] == ["g1"]
        assert api.calls("/stores/bad/items") == 1

    @pytest.mark.asyncio
    async def test_non_json_stores_list_raises_network_error(self, sleep):
        api = FakeFeedApi({"/stores": lambda request: httpx.Response(200, text="<html>oops</html>")})
        client = make_client(api, sleep)

        with pytest.raises(NetworkError, match="non-JSON"):
            await client.fetch_all_records()

        assert api.calls("/stores") == 1
        assert api.calls("/products") == 0

    @pytest.mark.asyncio
    async def test_all_sub_accounts_failing_raises(self, sleep):
        api = FakeFeedApi(
            {
                "/stores": respond(200, [{"id": "s1"}]),
                "/stores/s1/items": respond(400, {"message": "bad request"}),
            }
        )
        client = make_client(api, sleep)

        with pytest.raises(NetworkError, match="all stores"):
            await client.fetch_all_records()

        assert api.calls("/products") == 0

    @pytest.mark.asyncio
    async def test_records_by_category(self, sleep):
        api = FakeFeedApi({"/products": respond(200, [{"id": "p1", "price": 2}])})
        client = make_client(api, sleep)

        records = await client.fetch_records_by_category("shoes")

        assert [r.id for r in records] == ["p1"]
        assert api.requests[-1].url.params["category"] == "shoes"


class TestRetry:
    """Test retry-with-backoff on feed requests."""

    @pytest.mark.asyncio
    async def test_exhausts_after_five_attempts(self, sleep):
        api = FakeFeedApi({"/stores": respond(503, {"message": "unavailable"})})
        client = make_client(api, sleep)

        with pytest.raises(NetworkError):
            await client.fetch_all_records()

        assert api.calls("/stores") == 5
        assert sleep.calls == [2.0, 6.0, 18.0, 30.0]

    @pytest.mark.parametrize(
        "error",
        [
            lambda request: httpx.ConnectError("connection refused", request=request),
            lambda request: httpx.ReadTimeout("read timed out", request=request),
        ],
        ids=["connect-error", "read-timeout"],
    )
    @pytest.mark.asyncio
    async def test_transport_failures_are_retried(self, sleep, error):
        """Connection failures and timeouts follow the same backoff schedule."""

        def unreachable(request):
            raise error(request)

        api = FakeFeedApi({"/stores": unreachable})
        client = make_client(api, sleep)

        with pytest.raises(NetworkError):
            await client.fetch_all_records()

        assert api.calls("/stores") == 5
        assert sleep.calls == [2.0, 6.0, 18.0, 30.0]

    @pytest.mark.parametrize("failures", [1, 4])
    @pytest.mark.asyncio
    async def test_succeeds_within_budget(self, sleep, failures):
        down = respond(500, {"message": "boom"})
        api = FakeFeedApi(
            {
                "/stores": sequence(*([down] * failures), respond(200, [{"id": "s1"}])),
                "/stores/s1/items": respond(200, [{"id": "1", "price": 1}]),
            }
        )
        client = make_client(api, sleep)

        records = await client.fetch_all_records()

        assert len(records) == 1
        assert api.calls("/stores") == failures + 1

    @pytest.mark.asyncio
    async def test_rate_limit_honors_retry_after(self, sleep):
        api = FakeFeedApi(
            {
                "/stores": sequence(
                    respond(429, {"message": "slow down"}, {"Retry-After": "12"}),
                    respond(200, [{"id": "s1"}]),
                ),
                "/stores/s1/items": respond(200, []),
            }
        )
        client = make_client(api, sleep)

        await client.fetch_all_records()

        assert sleep.calls == [12.0]

    @pytest.mark.asyncio
    async def test_rate_limit_without_header_waits_minimum(self, sleep):
        api = FakeFeedApi(
            {
                "/stores": sequence(respond(429, {}), respond(200, [{"id": "s1"}])),
                "/stores/s1/items": respond(200, []),
            }
        )
        client = make_client(api, sleep)

        await client.fetch_all_records()

        assert sleep.calls == [5.0]

    @pytest.mark.asyncio
    async def test_client_errors_are_not_retried(self, sleep):
        api = FakeFeedApi({"/stores": respond(400, {"message": "bad"})})
        client = make_client(api, sleep)

        with pytest.raises(NetworkError):
            await client.fetch_all_records()

        assert api.calls("/stores") == 1
        assert sleep.calls == []

"""Unit tests for the Dropshipzone supplier client."""

import math
from decimal import Decimal

import pytest
import requests

from conftest import FakeResponse, FakeSession, FakeSupplierAPI, make_supplier
from stock_sync.exceptions import AuthenticationError
from stock_sync.merger import RecordMerger
from stock_sync.schemas import CanonicalRecord, SupplierRecord


class CollectingSink:
    def __init__(self):
        self.records: list[SupplierRecord] = []

    def ingest(self, record: SupplierRecord) -> None:
        self.records.append(record)


def catalog_for(skus, stock_qty="30"):
    return [{"sku": sku, "stock_qty": stock_qty, "cost": "1.00", "price": "2.00"} for sku in skus]


def product_calls(session: FakeSession):
    return [kwargs["params"] for _, _, kwargs in session.calls_to("/v2/products")]


class TestAuthenticate:
    """Tests for SupplierClient.authenticate."""

    def test_returns_token(self) -> None:
        session = FakeSession(lambda m, u, k: FakeResponse(200, {"token": "abc"}))
        client = make_supplier(session)

        assert client.authenticate() == "abc"
        method, url, kwargs = session.calls[0]
        assert (method, url) == ("POST", "https://supplier.test/auth")
        assert kwargs["json"] == {"email": "ops@example.com", "password": "secret"}
        assert kwargs["timeout"] == (1, 1)

    @pytest.mark.parametrize(
        "response",
        [
            FakeResponse(401, {"message": "invalid credentials"}),
            FakeResponse(200, text="<html>maintenance</html>"),
            FakeResponse(200, {"status": "ok"}),
            FakeResponse(200, {"token": ""}),
            FakeResponse(200, ["token"]),
        ],
    )
    def test_bad_responses_raise(self, response) -> None:
        session = FakeSession(lambda m, u, k: response)
        with pytest.raises(AuthenticationError):
            make_supplier(session).authenticate()

    def test_transport_error_raises(self) -> None:
        session = FakeSession(lambda m, u, k: requests.exceptions.ConnectTimeout("timed out"))
        with pytest.raises(AuthenticationError, match="timed out"):
            make_supplier(session).authenticate()

    def test_missing_credentials_raise_without_calling(self) -> None:
        session = FakeSession(lambda m, u, k: FakeResponse(200, {"token": "abc"}))
        with pytest.raises(AuthenticationError, match="credentials"):
            make_supplier(session, password=None).authenticate()
        assert session.calls == []


class TestFetchStockBatching:
    """Tests for SKU chunking in fetch_stock."""

    def test_empty_list_makes_no_calls(self) -> None:
        session = FakeSession(FakeSupplierAPI([]))
        report = make_supplier(session).fetch_stock("tok", [], CollectingSink())

        assert session.calls == []
        assert report.chunks == 0
        assert report.records == 0

    @pytest.mark.parametrize(("count", "limit"), [(1, 50), (50, 50), (51, 50), (120, 50), (7, 3)])
    def test_chunk_count_is_ceiling(self, count: int, limit: int) -> None:
        skus = [f"SKU{i:04d}" for i in range(count)]
        session = FakeSession(FakeSupplierAPI(catalog_for(skus)))
        report = make_supplier(session, sku_limit=limit).fetch_stock("tok", skus, CollectingSink())

        assert report.chunks == math.ceil(count / limit)
        first_pages = [p for p in product_calls(session) if p["page_number"] == 1]
        assert len(first_pages) == math.ceil(count / limit)

    def test_120_skus_split_50_50_20_in_order(self) -> None:
        skus = [f"SKU{i:04d}" for i in range(120)]
        session = FakeSession(FakeSupplierAPI(catalog_for(skus)))
        sink = CollectingSink()

        make_supplier(session, sku_limit=50).fetch_stock("tok", skus, sink)

        chunks = [p["skus"].split(",") for p in product_calls(session)]
        assert [len(c) for c in chunks] == [50, 50, 20]
        assert [sku for chunk in chunks for sku in chunk] == skus
        assert len(sink.records) == 120

    def test_duplicates_are_preserved_in_chunks(self) -> None:
        skus = ["A", "B", "A", "C", "A"]
        session = FakeSession(FakeSupplierAPI(catalog_for(["A", "B", "C"])))

        make_supplier(session, sku_limit=2).fetch_stock("tok", skus, CollectingSink())

        chunks = [p["skus"].split(",") for p in product_calls(session)]
        assert chunks == [["A", "B"], ["A", "C"], ["A"]]

    def test_request_shape(self) -> None:
        session = FakeSession(FakeSupplierAPI(catalog_for(["A", "B"])))
        make_supplier(session, page_size=100).fetch_stock("tok-9", ["A", "B"], CollectingSink())

        method, url, kwargs = session.calls[0]
        assert (method, url) == ("GET", "https://supplier.test/v2/products")
        assert kwargs["params"] == {"skus": "A,B", "page_size": 100, "page_number": 1}
        assert kwargs["headers"] == {"Authorization": "jwt tok-9"}


class TestFetchStockPagination:
    """Tests for per-chunk pagination in fetch_stock."""

    def test_every_page_of_a_chunk_before_the_next_chunk(self) -> None:
        skus = [f"SKU{i:03d}" for i in range(120)]
        # 20 results per page: chunks of 50, 50, 20 need 3, 3 and 1 pages.
        session = FakeSession(FakeSupplierAPI(catalog_for(skus), page_size=20))
        sink = CollectingSink()

        report = make_supplier(session, sku_limit=50).fetch_stock("tok", skus, sink)

        sequence = [(p["skus"].split(",")[0], p["page_number"]) for p in product_calls(session)]
        assert sequence == [
            ("SKU000", 1), ("SKU000", 2), ("SKU000", 3),
            ("SKU050", 1), ("SKU050", 2), ("SKU050", 3),
            ("SKU100", 1),
        ]
        assert report.pages == 7
        assert sorted(r.sku for r in sink.records) == skus

    def test_zero_total_pages_stops_after_first_request(self) -> None:
        session = FakeSession(FakeSupplierAPI([]))
        report = make_supplier(session).fetch_stock("tok", ["A", "B"], CollectingSink())

        assert len(product_calls(session)) == 1
        assert report.records == 0
        assert report.errors == []

    def test_non_advancing_current_page_still_terminates(self) -> None:
        def handler(method, url, kwargs):
            item = {"sku": "A", "stock_qty": "30"}
            return FakeResponse(200, {"result": [item], "total_pages": 3, "current_page": 1})

        session = FakeSession(handler)
        make_supplier(session).fetch_stock("tok", ["A"], CollectingSink())

        assert [p["page_number"] for p in product_calls(session)] == [1, 2, 3]

    def test_empty_page_ends_the_chunk(self) -> None:
        def handler(method, url, kwargs):
            page = kwargs["params"]["page_number"]
            result = [{"sku": "A", "stock_qty": "30"}] if page == 1 else []
            return FakeResponse(200, {"result": result, "total_pages": 10**15, "current_page": page})

        session = FakeSession(handler)
        make_supplier(session).fetch_stock("tok", ["A"], CollectingSink())

        assert [p["page_number"] for p in product_calls(session)] == [1, 2]

    def test_oversized_total_pages_is_ignored(self) -> None:
        body = {"result": [{"sku": "A"}], "total_pages": "1e30", "current_page": 1}
        session = FakeSession(lambda m, u, k: FakeResponse(200, body))

        make_supplier(session).fetch_stock("tok", ["A"], CollectingSink())

        assert len(product_calls(session)) == 1

    def test_oversized_values_do_not_stop_the_page(self) -> None:
        body = {
            "result": [
                {"sku": "A", "stock_qty": "1e5000", "cost": "1e30", "price": "1e30"},
                {"sku": "B", "stock_qty": "40", "cost": "2.00", "price": "10.00"},
            ],
            "total_pages": 1,
        }
        session = FakeSession(lambda m, u, k: FakeResponse(200, body))
        merger = RecordMerger(multiplier=Decimal("1.4"), threshold=25)

        report = make_supplier(session).fetch_stock("tok", ["A", "B"], merger)

        assert report.records == 2
        assert report.errors == []
        assert merger.get("A") == CanonicalRecord.out_of_stock("A")
        assert merger.get("B").selling_price == "14"

    def test_missing_counters_fetch_one_page(self) -> None:
        session = FakeSession(lambda m, u, k: FakeResponse(200, {"result": [{"sku": "A"}]}))
        sink = CollectingSink()
        make_supplier(session).fetch_stock("tok", ["A"], sink)

        assert len(product_calls(session)) == 1
        assert [r.sku for r in sink.records] == ["A"]

    def test_entries_without_sku_are_discarded(self) -> None:
        body = {"result": [{"sku": "A"}, {"stock_qty": "50"}, "junk"], "total_pages": 1}
        session = FakeSession(lambda m, u, k: FakeResponse(200, body))
        sink = CollectingSink()

        report = make_supplier(session).fetch_stock("tok", ["A"], sink)

        assert [r.sku for r in sink.records] == ["A"]
        assert report.records == 1
        assert report.discarded == 2

    def test_streams_into_a_merger(self) -> None:
        session = FakeSession(FakeSupplierAPI(catalog_for(["A", "B"])))
        merger = RecordMerger()
        make_supplier(session).fetch_stock("tok", ["A", "B"], merger)
        assert "A" in merger and "B" in merger


class TestFetchStockFailures:
    """A failing page ends its chunk only."""

    @pytest.mark.parametrize(
        "failure",
        [
            FakeResponse(500, text="upstream error"),
            FakeResponse(200, text="{not json"),
            FakeResponse(200, ["not", "an", "object"]),
            FakeResponse(200, {"result": "nope", "total_pages": 5}),
            requests.exceptions.ReadTimeout("read timed out"),
        ],
    )
    def test_failed_page_stops_its_chunk_and_others_continue(self, failure) -> None:
        skus = [f"SKU{i:03d}" for i in range(100)]
        api = FakeSupplierAPI(catalog_for(skus), page_size=20, failures={("SKU000", 2): failure})
        session = FakeSession(api)
        sink = CollectingSink()

        report = make_supplier(session, sku_limit=50).fetch_stock("tok", skus, sink)

        sequence = [(p["skus"].split(",")[0], p["page_number"]) for p in product_calls(session)]
        assert sequence == [
            ("SKU000", 1), ("SKU000", 2),
            ("SKU050", 1), ("SKU050", 2), ("SKU050", 3),
        ]
        # Page 1 of chunk 1 plus all of chunk 2
        assert len(sink.records) == 20 + 50
        assert len(report.errors) == 1
        error = report.errors[0]
        assert (error.chunk_index, error.page_number) == (1, 2)

    def test_error_keeps_status_and_body_fragment(self) -> None:
        api = FakeSupplierAPI([], failures={("A", 1): FakeResponse(429, text="slow down")})
        session = FakeSession(api)

        report = make_supplier(session).fetch_stock("tok", ["A"], CollectingSink())

        assert report.errors[0].status_code == 429
        assert "slow down" in report.errors[0].detail

    def test_failures_are_never_retried(self) -> None:
        session = FakeSession(lambda m, u, k: FakeResponse(503, text="down"))
        report = make_supplier(session, sku_limit=1).fetch_stock("tok", ["A", "B"], CollectingSink())

        assert len(session.calls) == 2
        assert [e.chunk_index for e in report.errors] == [1, 2]

"""Shared fakes and fixtures for the stock sync tests."""

import json
import math
import threading
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path
from typing import Any, Callable, Iterator

import pytest

from stock_sync.exceptions import ObjectNotFoundError, StorageError
from stock_sync.neto_client import NetoClient
from stock_sync.pipelines.inventory import InventorySyncPipeline
from stock_sync.schemas import BlobInfo
from stock_sync.storage import BlobStore, LocalBlobStore
from stock_sync.supplier_client import SupplierClient

SUPPLIER_URL = "https://supplier.test"
NETO_URL = "https://neto.test/do/WS/NetoAPI"

_NO_JSON = object()


# =============================================================================
# HTTP fakes
# =============================================================================


class FakeResponse:
    """Minimal stand-in for requests.Response."""

    def __init__(self, status_code: int = 200, json_data: Any = _NO_JSON, text: str | None = None):
        self.status_code = status_code
        self._json = json_data
        if text is None:
            text = "" if json_data is _NO_JSON else json.dumps(json_data)
        self.text = text

    def json(self) -> Any:
        if self._json is _NO_JSON:
            raise ValueError("Expecting value: line 1 column 1 (char 0)")
        return self._json


class FakeSession:
    """
    Records every call and answers through `handler(method, url, kwargs)`.
    A handler may return a FakeResponse or an exception instance to raise.
    """

    def __init__(self, handler: Callable[[str, str, dict], Any]):
        self.handler = handler
        self.calls: list[tuple[str, str, dict]] = []
        self._lock = threading.Lock()

    def _request(self, method: str, url: str, **kwargs: Any) -> FakeResponse:
        with self._lock:
            self.calls.append((method, url, kwargs))
        result = self.handler(method, url, kwargs)
        if isinstance(result, BaseException):
            raise result
        return result

    def get(self, url: str, **kwargs: Any) -> FakeResponse:
        return self._request("GET", url, **kwargs)

    def post(self, url: str, **kwargs: Any) -> FakeResponse:
        return self._request("POST", url, **kwargs)

    def calls_to(self, suffix: str) -> list[tuple[str, str, dict]]:
        return [call for call in self.calls if call[1].endswith(suffix)]


class FakeSupplierAPI:
    """
    Simulates the Dropshipzone auth and /v2/products endpoints over a fixed
    catalog. `page_size` overrides the requested page size so tests can
    force multi-page chunks.
    """

    def __init__(
        self,
        catalog: list[dict],
        token: str = "tok-123",
        page_size: int | None = None,
        failures: dict[tuple[str, int], Any] | None = None,
    ):
        self.catalog = catalog
        self.token = token
        self.page_size = page_size
        # (first SKU of the chunk, page number) -> response/exception to return instead
        self.failures = failures or {}

    def __call__(self, method: str, url: str, kwargs: dict) -> Any:
        if url.endswith("/auth"):
            return FakeResponse(200, {"token": self.token})

        params = kwargs["params"]
        skus = params["skus"].split(",")
        page = params["page_number"]
        failure = self.failures.get((skus[0], page))
        if failure is not None:
            return failure

        size = self.page_size or params["page_size"]
        matches = [item for item in self.catalog if item.get("sku") in skus]
        start = (page - 1) * size
        return FakeResponse(
            200,
            {
                "result": matches[start : start + size],
                "total": len(matches),
                "total_pages": math.ceil(len(matches) / size),
                "current_page": page,
            },
        )


def neto_success(method: str, url: str, kwargs: dict) -> FakeResponse:
    return FakeResponse(200, {"Ack": "Success", "Item": [{"SKU": kwargs["json"]["Item"]["SKU"]}]})


def route(supplier: Callable, neto: Callable = neto_success) -> Callable:
    """Sends supplier URLs to one handler and Neto URLs to the other."""

    def handler(method: str, url: str, kwargs: dict) -> Any:
        if url.startswith(NETO_URL):
            return neto(method, url, kwargs)
        return supplier(method, url, kwargs)

    return handler


# =============================================================================
# Storage fakes
# =============================================================================


class MemoryBlobStore(BlobStore):
    """In-memory blob store with controllable timestamps and failures."""

    def __init__(self):
        self.objects: dict[tuple[str, str], tuple[bytes, datetime, str]] = {}
        self.clock = datetime(2025, 1, 1, tzinfo=timezone.utc)
        self.fail_write = False
        self.fail_list = False
        self.fail_delete: set[str] = set()
        self.deleted: list[str] = []

    def put(self, bucket: str, key: str, data: bytes, last_modified: datetime) -> None:
        self.objects[(bucket, key)] = (data, last_modified, "application/octet-stream")

    def read(self, bucket: str, key: str) -> bytes:
        try:
            return self.objects[(bucket, key)][0]
        except KeyError:
            raise ObjectNotFoundError(f"{bucket}/{key} not found") from None

    def write(self, bucket, key, data, content_type="application/octet-stream") -> None:
        if self.fail_write:
            raise StorageError("write refused")
        self.clock += timedelta(seconds=1)
        self.objects[(bucket, key)] = (data, self.clock, content_type)

    def list_objects(self, bucket: str, prefix: str = "") -> Iterator[BlobInfo]:
        if self.fail_list:
            raise StorageError("list refused")
        for (b, key), (data, modified, _) in sorted(self.objects.items()):
            if b == bucket and key.startswith(prefix):
                yield BlobInfo(key=key, last_modified=modified, size=len(data))

    def delete(self, bucket: str, key: str) -> None:
        if key in self.fail_delete:
            raise StorageError(f"delete refused for {key}")
        self.objects.pop((bucket, key), None)
        self.deleted.append(key)

    def content_type(self, bucket: str, key: str) -> str:
        return self.objects[(bucket, key)][2]


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def memory_store() -> MemoryBlobStore:
    return MemoryBlobStore()


@pytest.fixture
def local_store(tmp_path: Path) -> LocalBlobStore:
    return LocalBlobStore(root_dir=tmp_path / "storage")


def make_supplier(session, **overrides) -> SupplierClient:
    options = dict(
        base_url=SUPPLIER_URL,
        email="ops@example.com",
        password="secret",
        sku_limit=50,
        page_size=100,
        timeout=(1, 1),
    )
    options.update(overrides)
    return SupplierClient(session, **options)


def make_neto(session, **overrides) -> NetoClient:
    options = dict(
        url=NETO_URL,
        username="neto-user",
        api_key="neto-key",
        warehouse_id="2",
        timeout=(1, 1),
    )
    options.update(overrides)
    return NetoClient(session, **options)


def make_pipeline(store, session, supplier=None, neto=None, **overrides) -> InventorySyncPipeline:
    options = dict(
        input_bucket="inbox",
        input_key="skus.csv",
        output_bucket="archive",
        output_prefix="snapshots/stock",
        retention_count=5,
        multiplier=Decimal("1.4"),
        threshold=25,
        workers=4,
        deduplicate=False,
        test_mode=False,
    )
    options.update(overrides)
    return InventorySyncPipeline(
        store=store,
        supplier=supplier or make_supplier(session),
        neto=neto or make_neto(session),
        **options,
    )

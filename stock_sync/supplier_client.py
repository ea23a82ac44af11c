import logging
from typing import Any, Optional, Protocol, Sequence

import requests

from . import settings, utils
from .exceptions import AuthenticationError
from .parsers import parse_int, parse_supplier_item
from .schemas import FetchError, FetchReport, SupplierRecord

logger = logging.getLogger(__name__)


class RecordSink(Protocol):
    def ingest(self, record: SupplierRecord) -> Any: ...


class SupplierClient:
    """
    Client for the Dropshipzone API: token authentication plus the paginated
    /v2/products lookup filtered by SKU.

    Records are streamed into a sink as pages arrive instead of being
    collected into one big response.
    """

    def __init__(
        self,
        session: requests.Session,
        base_url: str = settings.DROPSHIPZONE_BASE_URL,
        email: Optional[str] = settings.DROPSHIPZONE_EMAIL,
        password: Optional[str] = settings.DROPSHIPZONE_PASSWORD,
        sku_limit: int = settings.DROPSHIPZONE_SKU_LIMIT,
        page_size: int = settings.DROPSHIPZONE_PAGE_SIZE,
        timeout: tuple[float, float] = settings.HTTP_TIMEOUT,
    ):
        if sku_limit < 1 or page_size < 1:
            raise ValueError("sku_limit and page_size must be positive")
        self.session = session
        self.base_url = base_url.rstrip("/")
        self.email = email
        self.password = password
        self.sku_limit = sku_limit
        self.page_size = page_size
        self.timeout = timeout

    @property
    def auth_url(self) -> str:
        return f"{self.base_url}/auth"

    @property
    def products_url(self) -> str:
        return f"{self.base_url}/v2/products"

    def authenticate(self) -> str:
        """
        Exchanges the account email/password for a JWT.

        Raises:
            AuthenticationError: missing credentials, transport error, non-200
                status, or a body without a string 'token'.
        """
        if not self.email or not self.password:
            raise AuthenticationError(
                "Dropshipzone credentials (DROPSHIPZONE_EMAIL, DROPSHIPZONE_PASSWORD) are not set."
            )

        try:
            response = self.session.post(
                self.auth_url,
                json={"email": self.email, "password": self.password},
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            raise AuthenticationError(f"Authentication request failed: {e}") from e

        if response.status_code != 200:
            raise AuthenticationError(
                f"Authentication failed with response code {response.status_code}: "
                f"{utils.truncate(response.text)}"
            )

        try:
            body = response.json()
        except ValueError as e:
            raise AuthenticationError(
                f"Authentication response is not valid JSON: {utils.truncate(response.text)}"
            ) from e

        token = body.get("token") if isinstance(body, dict) else None
        if not isinstance(token, str) or not token:
            raise AuthenticationError("Authentication response did not contain a token.")

        logger.info("✅ Dropshipzone token acquired.")
        return token

    def fetch_stock(
        self, token: str, skus: Sequence[str], sink: RecordSink
    ) -> FetchReport:
        """
        Streams every product the API holds for `skus` into `sink`.

        The SKU list is split into chunks of `sku_limit` (order and duplicates
        kept) and each chunk is paged through until `total_pages` is reached.
        A failing page ends its own chunk only; the failure is recorded on the
        returned report.
        """
        report = FetchReport()
        chunks = utils.chunked(list(skus), self.sku_limit)
        if not chunks:
            logger.info("No SKUs to fetch from Dropshipzone.")
            return report

        logger.info(
            f"Fetching {len(skus)} SKUs from Dropshipzone in {len(chunks)} batches "
            f"of up to {self.sku_limit}."
        )
        for chunk_index, chunk in enumerate(chunks, start=1):
            report.chunks += 1
            self._fetch_chunk(token, chunk_index, chunk, sink, report)

        logger.info(
            f"✅ Dropshipzone fetch finished: {report.records} records from "
            f"{report.pages} pages, {len(report.errors)} failed pages."
        )
        return report

    def _fetch_chunk(
        self,
        token: str,
        chunk_index: int,
        chunk: list[str],
        sink: RecordSink,
        report: FetchReport,
    ) -> None:
        skus_param = ",".join(chunk)
        page_number = 1
        total_pages = 1  # Enter the loop at least once

        while page_number <= total_pages:
            report.pages += 1
            payload = self._request_page(token, chunk_index, skus_param, page_number, report)
            if payload is None:
                break

            results = payload.get("result") or []
            for item in results:
                record = parse_supplier_item(item)
                if record is None:
                    report.discarded += 1
                    continue
                sink.ingest(record)
                report.records += 1

            if not results:
                # An empty page means the listing is exhausted, whatever total_pages claims.
                break

            total_pages = parse_int(payload.get("total_pages"), page_number)
            current_page = parse_int(payload.get("current_page"), page_number)
            logger.debug(
                f"  > Batch {chunk_index}: page {current_page}/{total_pages}, "
                f"{len(results)} products, {report.records} so far"
            )
            # Never ask for the same page twice, whatever current_page says.
            page_number = max(current_page, page_number) + 1

    def _request_page(
        self,
        token: str,
        chunk_index: int,
        skus_param: str,
        page_number: int,
        report: FetchReport,
    ) -> Optional[dict]:
        """One products page as a dict, or None after recording a FetchError."""

        def fail(detail: str, status_code: Optional[int] = None) -> None:
            logger.error(
                f"❌ Dropshipzone batch {chunk_index}, page {page_number} failed: {detail}"
            )
            report.errors.append(
                FetchError(
                    chunk_index=chunk_index,
                    page_number=page_number,
                    status_code=status_code,
                    detail=detail,
                )
            )

        params = {
            "skus": skus_param,
            "page_size": self.page_size,
            "page_number": page_number,
        }
        try:
            response = self.session.get(
                self.products_url,
                params=params,
                headers={"Authorization": f"jwt {token}"},
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            fail(f"request error: {e}")
            return None

        if response.status_code != 200:
            fail(
                f"response code {response.status_code}: {utils.truncate(response.text)}",
                response.status_code,
            )
            return None

        try:
            payload = response.json()
        except ValueError:
            fail(f"malformed JSON: {utils.truncate(response.text)}", response.status_code)
            return None

        if not isinstance(payload, dict):
            fail(f"unexpected body: {utils.truncate(response.text)}", response.status_code)
            return None
        result = payload.get("result")
        if result is not None and not isinstance(result, list):
            fail(f"'result' is not a list: {utils.truncate(response.text)}", response.status_code)
            return None

        return payload

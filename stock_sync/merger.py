import logging
import threading
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Iterable, Optional

from . import settings
from .schemas import CanonicalRecord, SupplierRecord

logger = logging.getLogger(__name__)


def compute_selling_price(price: Optional[Decimal], multiplier: Decimal) -> str:
    """round(price x multiplier), half-up, as an integer string. '0' without a price."""
    if price is None:
        return "0"
    try:
        selling = (price * multiplier).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    except InvalidOperation:
        logger.warning(
            f"⚠️ Selling price for {price} x {multiplier} is out of range. Defaulting to 0."
        )
        return "0"
    return str(int(selling))


class RecordMerger:
    """
    Keyed accumulator for supplier records.

    Each ingested SupplierRecord is turned into a CanonicalRecord straight away
    and stored under its SKU; a later record for the same SKU replaces the
    earlier one. Ingestion is serialized by a lock so chunks may be fetched
    from several threads.
    """

    def __init__(
        self,
        multiplier: Decimal = settings.PRICE_MULTIPLIER,
        threshold: int = settings.STOCK_THRESHOLD,
    ):
        self.multiplier = Decimal(multiplier)
        self.threshold = threshold
        self.ingested = 0
        self.overwritten = 0
        self._records: dict[str, CanonicalRecord] = {}
        self._lock = threading.Lock()

    def to_canonical(self, record: SupplierRecord) -> CanonicalRecord:
        quantity = record.stock_qty
        if quantity < self.threshold:
            quantity = 0
        return CanonicalRecord(
            sku=record.sku,
            quantity=quantity,
            cost=record.cost,
            selling_price=compute_selling_price(record.price, self.multiplier),
        )

    def ingest(self, record: SupplierRecord) -> CanonicalRecord:
        canonical = self.to_canonical(record)
        with self._lock:
            if record.sku in self._records:
                self.overwritten += 1
            self._records[record.sku] = canonical
            self.ingested += 1
        return canonical

    def get(self, sku: str) -> Optional[CanonicalRecord]:
        with self._lock:
            return self._records.get(sku)

    def records(self) -> dict[str, CanonicalRecord]:
        """A copy of the current SKU -> record map."""
        with self._lock:
            return dict(self._records)

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def __contains__(self, sku: object) -> bool:
        with self._lock:
            return sku in self._records


def build_canonical_records(
    requested_skus: Iterable[str], merger: RecordMerger
) -> list[CanonicalRecord]:
    """
    Produces exactly one CanonicalRecord per distinct requested SKU, in the
    order each SKU first appears in the request. SKUs the supplier never
    returned become out-of-stock records; supplier SKUs nobody asked for are
    dropped.
    """
    merged = merger.records()
    final_records = []
    seen = set()
    missing = []

    for sku in requested_skus:
        if sku in seen:
            continue
        seen.add(sku)
        record = merged.get(sku)
        if record is None:
            missing.append(sku)
            record = CanonicalRecord.out_of_stock(sku)
        final_records.append(record)

    if missing:
        preview = ", ".join(missing[:20])
        more = f" (+{len(missing) - 20} more)" if len(missing) > 20 else ""
        logger.info(
            f"INFO: {len(missing)} SKUs not returned by the supplier, set to 0: {preview}{more}"
        )

    unrequested = len(set(merged) - seen)
    if unrequested:
        logger.info(f"INFO: Ignored {unrequested} supplier SKUs that were not requested.")

    return final_records

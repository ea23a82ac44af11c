import logging
from concurrent.futures import ThreadPoolExecutor, wait
from typing import Protocol, Sequence

from . import settings
from .schemas import CanonicalRecord, UpdateOutcome

logger = logging.getLogger(__name__)


class UpdateClient(Protocol):
    def update_item(self, record: CanonicalRecord) -> UpdateOutcome: ...


class UpdateDispatcher:
    """
    Fans CanonicalRecords out to the store on a fixed-size thread pool.

    Every record is one independent call. A failing call only fails its own
    SKU, and `dispatch` returns once every submitted update has an outcome.
    """

    def __init__(self, client: UpdateClient, max_workers: int = settings.UPDATE_WORKERS):
        self.client = client
        self.max_workers = min(max(max_workers, 1), settings.MAX_UPDATE_WORKERS)

    def _run_one(self, record: CanonicalRecord) -> UpdateOutcome:
        try:
            return self.client.update_item(record)
        except Exception as e:
            # The client reports its own failures; this only catches bugs.
            logger.exception(f"❌ Unexpected error updating SKU {record.sku}")
            return UpdateOutcome(
                sku=record.sku,
                success=False,
                error=f"unexpected error: {e}",
                quantity=record.quantity,
                selling_price=record.selling_price,
            )

    def dispatch(self, records: Sequence[CanonicalRecord]) -> list[UpdateOutcome]:
        """Returns outcomes in the same order as `records`."""
        if not records:
            logger.info("No records to push to Neto.")
            return []

        logger.info(f"Pushing {len(records)} SKUs to Neto with {self.max_workers} workers...")
        with ThreadPoolExecutor(
            max_workers=self.max_workers, thread_name_prefix="neto-update"
        ) as executor:
            futures = [executor.submit(self._run_one, record) for record in records]
            # Barrier: nothing proceeds until every update has come back.
            wait(futures)

        outcomes = [future.result() for future in futures]
        failed = sum(1 for o in outcomes if not o.success)
        logger.info(
            f"✅ All SKUs processed for update in Neto: {len(outcomes) - failed} updated, {failed} failed."
        )
        return outcomes

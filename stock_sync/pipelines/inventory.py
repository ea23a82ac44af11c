import logging
from collections import Counter
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

import pandas as pd

from stock_sync import data_handler, settings
from stock_sync.dispatcher import UpdateDispatcher
from stock_sync.exceptions import ConfigurationError, SkuSourceError
from stock_sync.merger import RecordMerger, build_canonical_records
from stock_sync.neto_client import NetoClient
from stock_sync.pipeline import DataPipeline
from stock_sync.schemas import CanonicalRecord, RunReport
from stock_sync.storage import BlobStore
from stock_sync.supplier_client import SupplierClient

logger = logging.getLogger(__name__)


class InventorySyncPipeline(DataPipeline):
    """
    Supplier stock -> Neto sync.

    extract:   SKU list from storage, supplier token, paginated fetch into a RecordMerger
    transform: one CanonicalRecord per distinct requested SKU
    load:      parallel Neto updates, then the CSV snapshot and its retention
    """

    def __init__(
        self,
        store: BlobStore,
        supplier: SupplierClient,
        neto: NetoClient,
        input_bucket: str = settings.INPUT_BUCKET,
        input_key: str = settings.INPUT_KEY,
        output_bucket: Optional[str] = settings.OUTPUT_BUCKET,
        output_prefix: str = settings.OUTPUT_PREFIX,
        retention_count: int = settings.OUTPUT_RETENTION_COUNT,
        multiplier: Decimal = settings.PRICE_MULTIPLIER,
        threshold: int = settings.STOCK_THRESHOLD,
        workers: int = settings.UPDATE_WORKERS,
        deduplicate: bool = settings.DEDUPLICATE_SKUS,
        test_mode: bool = False,
    ):
        super().__init__("inventory sync", test_mode=test_mode)
        self.store = store
        self.supplier = supplier
        self.neto = neto
        self.input_bucket = input_bucket
        self.input_key = input_key
        self.multiplier = multiplier
        self.threshold = threshold
        self.deduplicate = deduplicate
        self.dispatcher = UpdateDispatcher(neto, max_workers=workers)
        self.snapshot_writer = data_handler.SnapshotWriter(
            store,
            bucket=output_bucket or input_bucket,
            prefix=output_prefix,
            retention_count=retention_count,
        )
        self.skus: list[str] = []
        self.report = RunReport(started_at=datetime.now(timezone.utc), test_mode=test_mode)

    def _check_configuration(self) -> None:
        if not self.input_bucket or not self.input_key:
            raise ConfigurationError(
                "S3_BUCKET_NAME or S3_FILE_KEY environment variables not set."
            )
        if not self.test_mode and not self.neto.configured:
            raise ConfigurationError(
                "Neto credentials (NETOAPI_USERNAME, NETOAPI_KEY) not set."
            )

    def _prepare_skus(self, skus: list[str]) -> list[str]:
        duplicates = {sku: n for sku, n in Counter(skus).items() if n > 1}
        if not duplicates:
            return skus

        preview = ", ".join(f"{sku} (x{n})" for sku, n in list(duplicates.items())[:10])
        if self.deduplicate:
            logger.warning(f"⚠️ Dropping duplicate SKUs from the input list: {preview}")
            return list(dict.fromkeys(skus))

        logger.warning(
            f"⚠️ Input list has {len(duplicates)} duplicated SKUs; they are fetched as listed "
            f"and updated once: {preview}"
        )
        return skus

    def extract(self) -> RecordMerger:
        logger.info("--- Starting Inventory Sync ---")
        self._check_configuration()

        skus = data_handler.load_sku_list(self.store, self.input_bucket, self.input_key)
        if not skus:
            raise SkuSourceError(
                f"No SKUs found in {self.input_bucket}/{self.input_key}. Aborting execution."
            )
        self.skus = self._prepare_skus(skus)
        self.report.requested_skus = len(self.skus)

        token = self.supplier.authenticate()

        merger = RecordMerger(multiplier=self.multiplier, threshold=self.threshold)
        fetch_report = self.supplier.fetch_stock(token, self.skus, merger)
        self.report.fetched_records = fetch_report.records
        self.report.fetch_errors = fetch_report.errors
        if merger.overwritten:
            logger.info(f"INFO: {merger.overwritten} supplier records replaced an earlier one for the same SKU.")
        return merger

    def transform(self, merger: RecordMerger) -> list[CanonicalRecord]:
        logger.info("\n--- Applying Stock and Price Rules ---")
        records = build_canonical_records(self.skus, merger)
        self.report.distinct_skus = len(records)
        in_stock = sum(1 for r in records if r.quantity > 0)
        logger.info(
            f"Processed stock data for {len(records)} SKUs ({in_stock} in stock, "
            f"threshold {self.threshold}, multiplier {self.multiplier})."
        )
        return records

    def load(self, records: list[CanonicalRecord]) -> RunReport:
        # 1. Push to Neto
        if not self.test_mode:
            logger.info("\n--- Updating Neto Items in Parallel ---")
            self.report.outcomes = self.dispatcher.dispatch(records)
        else:
            logger.info("🧪 Test Mode: Skipping Neto updates.")

        # 2. Archive the snapshot, then prune old ones
        logger.info("\n--- Saving Snapshot ---")
        self.report.snapshot_key = self.snapshot_writer.write(records)
        if self.report.snapshot_key:
            self.report.deleted_snapshots = self.snapshot_writer.enforce_retention()
        else:
            logger.warning("⚠️ Snapshot not saved; skipping retention cleanup.")

        self.report.finished_at = datetime.now(timezone.utc)
        self._log_summary()
        return self.report

    def _log_summary(self) -> None:
        report = self.report
        logger.info("\n--- Final Status Summary ---")
        logger.info(f"SKUs requested: {report.requested_skus} ({report.distinct_skus} distinct)")
        logger.info(f"Supplier records fetched: {report.fetched_records}")
        logger.info(f"Supplier pages failed: {len(report.fetch_errors)}")
        for error in report.fetch_errors:
            logger.info(
                f"  - batch {error.chunk_index}, page {error.page_number}: {error.detail}"
            )
        if self.test_mode:
            logger.info("Neto updates: skipped (test mode)")
        else:
            logger.info(f"Neto updates: {len(report.updated)} succeeded, {len(report.failed)} failed")
        if report.failed:
            failed_df = pd.DataFrame(
                [o.model_dump(include={"sku", "status_code", "error"}) for o in report.failed]
            )
            logger.info("\n--- Failed Neto Updates ---")
            logger.info(failed_df.to_string(index=False))
        logger.info(f"Snapshot: {report.snapshot_key or 'not saved'}")
        if report.deleted_snapshots:
            logger.info(f"Old snapshots deleted: {len(report.deleted_snapshots)}")

import argparse
import logging
import sys

import requests

from stock_sync import settings, utils
from stock_sync.exceptions import SyncError
from stock_sync.logger import setup_logger
from stock_sync.neto_client import NetoClient
from stock_sync.pipelines.inventory import InventorySyncPipeline
from stock_sync.schemas import RunReport
from stock_sync.storage import BlobStore, build_blob_store
from stock_sync.supplier_client import SupplierClient

logger = logging.getLogger(__name__)


def build_pipeline(
    session: requests.Session,
    store: BlobStore,
    test_mode: bool = False,
) -> InventorySyncPipeline:
    """Wires the clients around one shared HTTP session."""
    return InventorySyncPipeline(
        store=store,
        supplier=SupplierClient(session),
        neto=NetoClient(session),
        test_mode=test_mode,
    )


def run_process(test_mode: bool = False, store: BlobStore | None = None) -> RunReport:
    """Main orchestration function: one complete sync run."""
    logger.info("--- Starting Stock Sync Process ---")
    store = store or build_blob_store()
    with utils.build_http_session(settings.UPDATE_WORKERS) as session:
        pipeline = build_pipeline(session, store, test_mode=test_mode)
        report = pipeline.run()
    logger.info("\n--- Process Finished Successfully ---")
    return report


def lambda_handler(event, context):
    """Entry point for the scheduled (EventBridge) trigger."""
    setup_logger()
    logger.info(f"Stock sync invoked by scheduled event at: {(event or {}).get('time')}")
    try:
        report = run_process()
    except SyncError:
        logger.exception("❌ Stock sync failed.")
        raise
    return {
        "requested_skus": report.requested_skus,
        "updated": len(report.updated),
        "failed": [o.sku for o in report.failed],
        "fetch_errors": len(report.fetch_errors),
        "snapshot_key": report.snapshot_key,
    }


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Sync supplier stock and prices into Neto.")
    parser.add_argument(
        "--test-mode",
        action="store_true",
        help="Fetch and snapshot as usual but skip the Neto updates.",
    )
    parser.add_argument("--log-level", default=settings.LOG_LEVEL, help="Logging level.")
    args = parser.parse_args(argv)

    setup_logger(log_level=args.log_level.upper())
    try:
        run_process(test_mode=args.test_mode)
    except SyncError as e:
        logger.error(f"❌ Stock sync aborted: {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())

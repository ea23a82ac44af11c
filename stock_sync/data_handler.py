import logging
from datetime import datetime
from typing import Optional, Sequence

import pandas as pd

from . import settings, utils
from .exceptions import SkuSourceError, StorageError
from .parsers import parse_sku_list
from .schemas import CanonicalRecord
from .storage import BlobStore

logger = logging.getLogger(__name__)


def load_sku_list(store: BlobStore, bucket: str, key: str) -> list[str]:
    """
    Loads the SKUs to process from the input CSV object.
    Raises SkuSourceError if the object cannot be read.
    """
    logger.info(f"Attempting to load SKUs from Bucket: {bucket}, Key: {key}")
    try:
        data = store.read(bucket, key)
    except StorageError as e:
        raise SkuSourceError(f"Failed to load SKUs from {bucket}/{key}: {e}") from e

    skus = parse_sku_list(utils.decode_text(data, source=f"{bucket}/{key}"))
    logger.info(f"✅ Loaded {len(skus)} SKUs from {bucket}/{key}.")
    return skus


def render_snapshot_csv(records: Sequence[CanonicalRecord]) -> str:
    """
    Renders the records as CSV with the 'SKU,Quantity,Cost,Selling Price'
    header. Quoting of commas, quotes and newlines is left to pandas.
    """
    rows = [record.model_dump(by_alias=True) for record in records]
    df = pd.DataFrame(rows, columns=settings.SNAPSHOT_COLUMNS)
    return df.to_csv(index=False, lineterminator="\n")


class SnapshotWriter:
    """Archives a run's records under a timestamped key and prunes old snapshots."""

    def __init__(
        self,
        store: BlobStore,
        bucket: str = settings.OUTPUT_BUCKET,
        prefix: str = settings.OUTPUT_PREFIX,
        retention_count: int = settings.OUTPUT_RETENTION_COUNT,
    ):
        self.store = store
        self.bucket = bucket
        self.prefix = prefix
        self.retention_count = retention_count

    def build_key(self, now: Optional[datetime] = None) -> str:
        return f"{self.prefix}_{utils.get_utc_timestamp_for_key(now)}.csv"

    def write(
        self, records: Sequence[CanonicalRecord], now: Optional[datetime] = None
    ) -> Optional[str]:
        """Stores the snapshot in one put. Returns its key, or None if the put failed."""
        key = self.build_key(now)
        body = render_snapshot_csv(records).encode("utf-8")
        try:
            self.store.write(self.bucket, key, body, content_type="text/csv")
        except StorageError as e:
            logger.error(f"❌ Failed to save snapshot to {self.bucket}/{key}: {e}")
            return None
        logger.info(f"✅ Snapshot saved to: {self.bucket}/{key} ({len(records)} rows)")
        return key

    def enforce_retention(self) -> list[str]:
        """
        Keeps the `retention_count` most recently modified objects under the
        prefix and deletes the rest. Best effort: errors are logged, never raised.
        Returns the deleted keys.
        """
        if self.retention_count < 1:
            logger.info("INFO: Snapshot retention disabled (retention count < 1).")
            return []

        try:
            objects = list(self.store.list_objects(self.bucket, self.prefix))
        except StorageError as e:
            logger.error(f"❌ Could not list snapshots under {self.bucket}/{self.prefix}: {e}")
            return []

        # Newest first; key breaks ties so equal timestamps sort deterministically.
        objects.sort(key=lambda o: (o.last_modified, o.key), reverse=True)
        expired = objects[self.retention_count :]
        if not expired:
            logger.info(
                f"Snapshot retention: {len(objects)} snapshots, nothing to delete "
                f"(keeping {self.retention_count})."
            )
            return []

        deleted = []
        for obj in expired:
            try:
                self.store.delete(self.bucket, obj.key)
                deleted.append(obj.key)
                logger.info(f"  > Deleted old snapshot: {obj.key}")
            except StorageError as e:
                logger.error(f"❌ Failed to delete old snapshot {obj.key}: {e}")

        logger.info(
            f"Snapshot retention: kept {len(objects) - len(expired)}, deleted "
            f"{len(deleted)} of {len(expired)} expired."
        )
        return deleted

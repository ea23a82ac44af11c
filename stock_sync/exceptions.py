"""Fatal error types for a sync run.

Anything raised from here aborts the run. Per-SKU and per-page problems
never surface as exceptions; they are logged and recorded on the report.
"""


class SyncError(Exception):
    """Base exception for a failed sync run."""

    pass


class ConfigurationError(SyncError):
    """Required configuration is missing or unusable."""

    pass


class AuthenticationError(SyncError):
    """The supplier API did not hand out a token."""

    pass


class SkuSourceError(SyncError):
    """The input SKU list could not be read or holds no SKUs."""

    pass


class StorageError(SyncError):
    """Base exception for blob store operations."""

    pass


class ObjectNotFoundError(StorageError):
    """No object exists at the requested bucket/key."""

    pass

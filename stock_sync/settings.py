import os
from decimal import Decimal, InvalidOperation
from pathlib import Path
from dotenv import load_dotenv

from .exceptions import ConfigurationError

# --- Base Directory ---
BASE_DIR = Path(__file__).resolve().parent.parent

# --- Load Environment Variables ---
load_dotenv(BASE_DIR / ".env")


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_number(name: str, default: str, cast=int):
    """Numeric env value; a bad one raises ConfigurationError naming the variable."""
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        raw = default
    try:
        value = cast(raw.strip())
    except (ValueError, InvalidOperation):
        raise ConfigurationError(f"{name} must be a number, got {raw!r}.") from None
    if cast is Decimal and not value.is_finite():
        raise ConfigurationError(f"{name} must be a finite number, got {raw!r}.")
    return value


# --- Input SKU List ---
# Both are required; the run aborts without them.
INPUT_BUCKET = os.getenv("S3_BUCKET_NAME", "")
INPUT_KEY = os.getenv("S3_FILE_KEY", "")
DEDUPLICATE_SKUS = _env_bool("DEDUPLICATE_SKUS")

# --- Snapshot Output ---
OUTPUT_BUCKET = os.getenv("OUTPUT_BUCKET_NAME") or INPUT_BUCKET
OUTPUT_PREFIX = os.getenv("OUTPUT_PREFIX", "snapshots/stock_snapshot")
OUTPUT_RETENTION_COUNT = _env_number("OUTPUT_RETENTION_COUNT", "5")

# --- Object Storage ---
STORAGE_BACKEND = os.getenv("STORAGE_BACKEND", "s3").lower()
LOCAL_STORAGE_DIR = BASE_DIR / os.getenv("LOCAL_STORAGE_DIR", "storage")
AWS_REGION = os.getenv("AWS_REGION") or "us-east-1"
S3_CONNECT_TIMEOUT = 5
S3_READ_TIMEOUT = 30

# --- Business Rules ---
PRICE_MULTIPLIER = _env_number("PRICE_MULTIPLIER", "1.4", Decimal)
STOCK_THRESHOLD = _env_number("STOCK_THRESHOLD", "25")

# --- Dropshipzone (supplier) ---
DROPSHIPZONE_BASE_URL = os.getenv(
    "DROPSHIPZONE_BASE_URL", "https://api.dropshipzone.com.au"
).rstrip("/")
DROPSHIPZONE_EMAIL = os.getenv("DROPSHIPZONE_EMAIL")
DROPSHIPZONE_PASSWORD = os.getenv("DROPSHIPZONE_PASSWORD")
# The products endpoint accepts at most this many SKUs per query.
DROPSHIPZONE_SKU_LIMIT = _env_number("DROPSHIPZONE_SKU_LIMIT", "50")
DROPSHIPZONE_PAGE_SIZE = _env_number("DROPSHIPZONE_PAGE_SIZE", "100")

# --- Neto (downstream store) ---
NETOAPI_URL = os.getenv("NETOAPI_URL", "https://www.shoppingsmart.com.au/do/WS/NetoAPI")
NETOAPI_USERNAME = os.getenv("NETOAPI_USERNAME")
NETOAPI_KEY = os.getenv("NETOAPI_KEY")
NETO_WAREHOUSE_ID = os.getenv("NETO_WAREHOUSE_ID", "2")
UPDATE_WORKERS = _env_number("UPDATE_WORKERS", "10")
MAX_UPDATE_WORKERS = 64

# --- HTTP ---
HTTP_CONNECT_TIMEOUT = _env_number("HTTP_CONNECT_TIMEOUT", "5", float)
HTTP_READ_TIMEOUT = _env_number("HTTP_READ_TIMEOUT", "15", float)
HTTP_TIMEOUT = (HTTP_CONNECT_TIMEOUT, HTTP_READ_TIMEOUT)

# --- Logging ---
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
# An empty LOG_DIR turns the rotating file handler off (read-only hosts).
LOG_DIR = os.getenv("LOG_DIR", "logs")

# --- Snapshot Layout ---
# Column order of the archived CSV; matches the CanonicalRecord aliases.
SNAPSHOT_COLUMNS = ["SKU", "Quantity", "Cost", "Selling Price"]
SNAPSHOT_TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"

import logging
from datetime import datetime, timezone
from typing import Optional, Sequence, TypeVar

import requests
from requests.adapters import HTTPAdapter

from . import settings

logger = logging.getLogger(__name__)

T = TypeVar("T")


def get_utc_timestamp_for_key(now: Optional[datetime] = None) -> str:
    """
    Returns the UTC time formatted as 'YYYYMMDD_HHMMSS', e.g. '20250630_041500'.
    This is the dynamic part of every snapshot key.
    """
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is not None:
        now = now.astimezone(timezone.utc)
    return now.strftime(settings.SNAPSHOT_TIMESTAMP_FORMAT)


def decode_text(data: bytes, source: str = "object") -> str:
    """
    Decodes a downloaded text blob with an encoding fallback.
    1. UTF-8 with BOM support ('utf-8-sig'), which covers spreadsheet exports.
    2. Latin-1, which accepts any byte but might misinterpret characters.
    """
    try:
        return data.decode("utf-8-sig")
    except UnicodeDecodeError:
        logger.info(f"INFO: UTF-8 decoding failed for {source}. Retrying with 'latin-1'.")
        return data.decode("latin-1")


def chunked(items: Sequence[T], size: int) -> list[list[T]]:
    """Splits items into consecutive chunks of at most `size`, keeping order."""
    if size < 1:
        raise ValueError(f"Chunk size must be positive, got {size}")
    return [list(items[i : i + size]) for i in range(0, len(items), size)]


def truncate(text: Optional[str], limit: int = 500) -> str:
    """Shortens raw response bodies before they go into logs and reports."""
    if not text:
        return ""
    text = text.strip()
    if len(text) <= limit:
        return text
    return f"{text[:limit]}... ({len(text) - limit} more chars)"


def build_http_session(pool_size: int = settings.UPDATE_WORKERS) -> requests.Session:
    """
    One session per run, shared by the supplier and Neto clients.
    The connection pool is sized so every update worker can hold a connection.
    """
    pool_size = max(pool_size, 1)
    session = requests.Session()
    adapter = HTTPAdapter(pool_connections=pool_size, pool_maxsize=pool_size)
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    return session

import logging
from typing import Optional

import requests

from . import settings, utils
from .schemas import CanonicalRecord, UpdateOutcome

logger = logging.getLogger(__name__)


class NetoClient:
    """Pushes absolute stock levels and selling prices to the Neto UpdateItem action."""

    def __init__(
        self,
        session: requests.Session,
        url: str = settings.NETOAPI_URL,
        username: Optional[str] = settings.NETOAPI_USERNAME,
        api_key: Optional[str] = settings.NETOAPI_KEY,
        warehouse_id: str = settings.NETO_WAREHOUSE_ID,
        timeout: tuple[float, float] = settings.HTTP_TIMEOUT,
    ):
        self.session = session
        self.url = url
        self.username = username
        self.api_key = api_key
        self.warehouse_id = str(warehouse_id)
        self.timeout = timeout

    @property
    def configured(self) -> bool:
        return bool(self.username and self.api_key)

    def _headers(self) -> dict[str, str]:
        return {
            "NETOAPI_ACTION": "UpdateItem",
            "NETOAPI_USERNAME": self.username or "",
            "NETOAPI_KEY": self.api_key or "",
            "Accept": "application/json",
            "Content-Type": "application/json",
        }

    def build_payload(self, record: CanonicalRecord) -> dict:
        """
        Quantity uses the 'Set' action so the warehouse ends up at exactly
        this level. The price is left out when the supplier had none, so a
        missing price never zeroes the store's price.
        """
        item = {
            "SKU": record.sku,
            "WarehouseQuantity": {
                "WarehouseID": self.warehouse_id,
                "Quantity": str(record.quantity),
                "Action": "Set",
            },
        }
        if record.selling_price != "0":
            item["DefaultPrice"] = record.selling_price
        return {"Item": item}

    def update_item(self, record: CanonicalRecord) -> UpdateOutcome:
        """Sends one update. Never raises; every problem becomes a failed outcome."""

        def outcome(success: bool, status_code: Optional[int] = None, error: Optional[str] = None):
            return UpdateOutcome(
                sku=record.sku,
                success=success,
                status_code=status_code,
                error=error,
                quantity=record.quantity,
                selling_price=record.selling_price,
            )

        if not self.configured:
            logger.error(f"❌ Neto credentials not set. Skipping update for SKU {record.sku}.")
            return outcome(False, error="Neto credentials not configured")

        try:
            response = self.session.post(
                self.url,
                json=self.build_payload(record),
                headers=self._headers(),
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            logger.error(f"❌ Error calling Neto API for SKU {record.sku}: {e}")
            return outcome(False, error=f"request error: {e}")

        status = response.status_code
        raw = utils.truncate(response.text)

        if not 200 <= status < 300:
            logger.error(f"❌ Neto update failed for SKU {record.sku} (Code: {status}): {raw}")
            return outcome(False, status, f"response code {status}: {raw}")

        try:
            body = response.json()
        except ValueError:
            logger.error(f"❌ Failed to parse Neto response for SKU {record.sku}: {raw}")
            return outcome(False, status, f"malformed response: {raw}")

        ack = body.get("Ack") if isinstance(body, dict) else None
        if ack == "Error":
            messages = body.get("Messages")
            logger.error(f"❌ Neto rejected update for SKU {record.sku}: {messages}")
            return outcome(False, status, f"Ack=Error: {utils.truncate(str(messages))}")

        logger.debug(
            f"Neto update for SKU {record.sku} (Qty: {record.quantity}, "
            f"Price: {record.selling_price}): Code {status}, Ack {ack}"
        )
        return outcome(True, status)

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field


class SupplierRecord(BaseModel):
    """
    One product entry from the Dropshipzone products endpoint, after the
    defensive field parsing in `parsers.parse_supplier_item`.
    Lives only while its page is being ingested.
    """

    sku: str = Field(..., min_length=1)
    stock_qty: int = Field(default=0, ge=0)
    cost: str = "0.00"
    # None when the supplier sent no usable price.
    price: Optional[Decimal] = None


class CanonicalRecord(BaseModel):
    """
    Defines the data contract for one requested SKU after the business rules
    are applied. This is what gets pushed to Neto and archived in the snapshot.
    """

    sku: str = Field(..., alias="SKU")
    quantity: int = Field(default=0, ge=0, alias="Quantity")
    cost: str = Field(default="0.00", alias="Cost")
    selling_price: str = Field(default="0", alias="Selling Price")

    class Config:
        # Build from keyword names in code, export with the CSV-friendly aliases.
        populate_by_name = True

    @classmethod
    def out_of_stock(cls, sku: str) -> "CanonicalRecord":
        """The record used for a SKU the supplier did not return."""
        return cls(sku=sku, quantity=0, cost="0.00", selling_price="0")


class UpdateOutcome(BaseModel):
    """Result of pushing one CanonicalRecord to Neto."""

    sku: str
    success: bool
    status_code: Optional[int] = None
    error: Optional[str] = None
    quantity: int = 0
    selling_price: str = "0"


class FetchError(BaseModel):
    """A supplier page that yielded nothing; its chunk stopped paginating."""

    chunk_index: int
    page_number: int
    status_code: Optional[int] = None
    detail: str


class FetchReport(BaseModel):
    chunks: int = 0
    pages: int = 0
    records: int = 0
    discarded: int = 0
    errors: list[FetchError] = Field(default_factory=list)


class BlobInfo(BaseModel):
    key: str
    last_modified: datetime
    size: int = 0


class RunReport(BaseModel):
    """Diagnostics for one sync run. Not persisted."""

    started_at: datetime
    finished_at: Optional[datetime] = None
    test_mode: bool = False
    requested_skus: int = 0
    distinct_skus: int = 0
    fetched_records: int = 0
    fetch_errors: list[FetchError] = Field(default_factory=list)
    outcomes: list[UpdateOutcome] = Field(default_factory=list)
    snapshot_key: Optional[str] = None
    deleted_snapshots: list[str] = Field(default_factory=list)

    @property
    def updated(self) -> list[UpdateOutcome]:
        return [o for o in self.outcomes if o.success]

    @property
    def failed(self) -> list[UpdateOutcome]:
        return [o for o in self.outcomes if not o.success]

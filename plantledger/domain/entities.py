from datetime import date, datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

# --- Enums / Literals ---
RoleType = Literal["admin", "user", "viewer"]
TxType = Literal["inbound", "outbound", "sale", "adjustment", "transfer"]
StockStatus = Literal["negative", "empty", "low", "ok"]
ProgressBand = Literal["good", "warning", "critical"]

TX_TYPES: tuple[str, ...] = ("inbound", "outbound", "sale", "adjustment", "transfer")
TEMP_ID_PREFIX = "tmp-"

# --- Actor ---

class Actor(BaseModel):
    """The signed-in user as seen by the ledger. Authentication lives elsewhere."""

    id: str
    role: RoleType = "user"
    display_name: str = ""

# --- Catalog ---

class Product(BaseModel):
    id: str
    name: str
    unit: str
    meta_per_animal: float = Field(default=0, ge=0)

class Balance(BaseModel):
    product_id: str
    signed_total: float = 0
    updated_at: datetime | None = None
    # Joined from the catalog
    name: str | None = None
    unit: str | None = None

# --- Inventory ---

class InventoryTransaction(BaseModel):
    id: str
    product_id: str
    quantity: float
    unit: str
    tx_type: TxType
    created_at: datetime
    created_by: str | None = None
    source_batch_id: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    # Local optimistic placeholder, never sent to the backend
    pending: bool = False

    @property
    def is_temporary(self) -> bool:
        return self.pending or self.id.startswith(TEMP_ID_PREFIX)

class TransactionDraft(BaseModel):
    """Raw form input for a stock movement."""

    product_id: str
    tx_type: TxType
    quantity_text: str
    customer: str = ""
    observation: str = ""
    justification: str = ""

class NewTransaction(BaseModel):
    """A validated movement ready for insert."""

    product_id: str
    quantity: float
    unit: str
    tx_type: TxType
    created_by: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    source_batch_id: str | None = None

# --- Production ---

class ProductionBatch(BaseModel):
    id: str
    prod_date: date
    animal_count: int
    author_id: str | None = None
    created_at: datetime | None = None

class ProductionItem(BaseModel):
    batch_id: str | None = None
    product_id: str
    produced: float
    target: float
    variance: float
    average: float

class ProductionItemSummary(BaseModel):
    batch_id: str
    product_id: str
    product_name: str
    unit: str
    produced: float
    target: float
    variance: float
    average: float

class ProductionDraft(BaseModel):
    """Raw batch input: product id -> produced quantity text."""

    prod_date: date
    animal_count_text: str
    produced: dict[str, str] = Field(default_factory=dict)

class ValidatedBatch(BaseModel):
    prod_date: date
    animal_count: int
    items: list[ProductionItem]

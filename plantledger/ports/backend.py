"""
Remote persistence boundary.

The backend is an opaque CRUD/RPC surface. Adapters return plain row dicts;
the ledger service validates them into entities and owns error translation.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Protocol

Row = dict[str, Any]


class BackendError(Exception):
    """Raised by adapters for any failed remote call."""

    def __init__(
        self, message: str, code: str | None = None, status: int | None = None
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.status = status


@dataclass(frozen=True)
class TransactionQuery:
    offset: int = 0
    limit: int = 40
    product_id: str | None = None
    tx_types: tuple[str, ...] = ()
    created_by: str | None = None
    # Whole days, inclusive
    date_from: date | None = None
    date_to: date | None = None


@dataclass(frozen=True)
class ProductionQuery:
    limit: int = 180
    date_from: date | None = None
    date_to: date | None = None
    ids: tuple[str, ...] = field(default=())


class LedgerBackendPort(Protocol):
    async def fetch_products(self) -> list[Row]: ...

    async def insert_product(self, row: Row) -> Row: ...

    async def update_product(self, product_id: str, changes: Row) -> Row: ...

    async def fetch_balances(self) -> list[Row]: ...

    async def fetch_transactions(self, query: TransactionQuery) -> list[Row]:
        """Rows newest first, honoring offset/limit and filters."""
        ...

    async def insert_transaction(self, row: Row) -> Row: ...

    async def delete_transaction(self, tx_id: str) -> None: ...

    async def fetch_productions(self, query: ProductionQuery) -> list[Row]:
        """Batches newest first (prod_date, then created_at)."""
        ...

    async def fetch_production_items(self, batch_ids: Sequence[str]) -> list[Row]: ...

    async def fetch_item_summary(self, batch_id: str) -> list[Row]: ...

    async def create_production_with_items(self, payload: Row) -> Row:
        """Atomic batch + items insert. Returns the batch row."""
        ...

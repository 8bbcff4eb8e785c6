"""
Process-local backend that behaves like the hosted one.

Used by tests and demos: atomic batch + items RPC with duplicate rejection,
inbound movements generated from saved batches, balances computed from the
stored movements, optional latency and one-shot failure injection.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from datetime import date, datetime
from typing import Any
from uuid import uuid4

from plantledger.adapters.clock import SystemClock
from plantledger.domain.projection import TX_SIGNS
from plantledger.ports.backend import BackendError, ProductionQuery, Row, TransactionQuery
from plantledger.ports.clock import ClockPort

logger = logging.getLogger(__name__)


def _created(row: Row) -> datetime:
    """Wall-clock time as recorded; offsets are ignored for ordering."""
    value = row["created_at"]
    if isinstance(value, str):
        value = datetime.fromisoformat(value)
    return value.replace(tzinfo=None)


class InMemoryLedgerBackend:
    def __init__(self, clock: ClockPort | None = None, latency: float = 0.0) -> None:
        self.clock = clock or SystemClock()
        self.latency = latency
        self.products: dict[str, Row] = {}
        self.transactions: list[Row] = []
        self.productions: list[Row] = []
        self.items: list[Row] = []
        self.calls: list[str] = []
        self._failures: dict[str, BackendError] = {}

    # --- Test helpers ---

    def fail_next(self, method: str, error: BackendError) -> None:
        """Make the next call to `method` raise `error`."""
        self._failures[method] = error

    def add_product(
        self, name: str, unit: str, meta_per_animal: float = 0, product_id: str | None = None
    ) -> Row:
        row = {
            "id": product_id or str(uuid4()),
            "name": name,
            "unit": unit,
            "meta_per_animal": meta_per_animal,
        }
        self.products[row["id"]] = row
        return dict(row)

    def add_transaction(self, **fields: Any) -> Row:
        row = {
            "id": str(uuid4()),
            "created_at": self.clock.now(),
            "created_by": None,
            "source_batch_id": None,
            "metadata": {},
            **fields,
        }
        if "unit" not in row:
            row["unit"] = self.products[row["product_id"]]["unit"]
        self.transactions.append(row)
        return dict(row)

    async def _enter(self, method: str) -> None:
        self.calls.append(method)
        if self.latency:
            await asyncio.sleep(self.latency)
        error = self._failures.pop(method, None)
        if error is not None:
            logger.debug("Injected failure for %s: %s", method, error.message)
            raise error

    # --- Catalog ---

    async def fetch_products(self) -> list[Row]:
        await self._enter("fetch_products")
        return sorted((dict(p) for p in self.products.values()), key=lambda p: p["name"])

    async def insert_product(self, row: Row) -> Row:
        await self._enter("insert_product")
        self._check_product_unique(row["name"], row["unit"])
        stored = {"id": str(uuid4()), **row}
        self.products[stored["id"]] = stored
        return dict(stored)

    async def update_product(self, product_id: str, changes: Row) -> Row:
        await self._enter("update_product")
        current = self.products.get(product_id)
        if current is None:
            raise BackendError(f"product {product_id} not found", status=404)
        merged = {**current, **changes}
        self._check_product_unique(merged["name"], merged["unit"], exclude=product_id)
        self.products[product_id] = merged
        return dict(merged)

    def _check_product_unique(self, name: str, unit: str, exclude: str | None = None) -> None:
        for p in self.products.values():
            if p["id"] != exclude and (p["name"].lower(), p["unit"].upper()) == (
                name.lower(),
                unit.upper(),
            ):
                raise BackendError(
                    'duplicate key value violates unique constraint "products_name_unit_key"',
                    code="23505",
                    status=409,
                )

    # --- Inventory ---

    async def fetch_balances(self) -> list[Row]:
        await self._enter("fetch_balances")
        totals: dict[str, float] = {}
        updated: dict[str, datetime] = {}
        for t in self.transactions:
            pid = t["product_id"]
            totals[pid] = round(totals.get(pid, 0.0) + TX_SIGNS[t["tx_type"]] * t["quantity"], 6)
            created = _created(t)
            if pid not in updated or created > updated[pid]:
                updated[pid] = created
        return [
            {"product_id": pid, "signed_total": totals.get(pid, 0.0), "updated_at": updated.get(pid)}
            for pid in self.products
        ]

    def _ordered_transactions(self) -> list[Row]:
        # newest first; insertion order breaks ties
        indexed = list(enumerate(self.transactions))
        indexed.sort(key=lambda pair: (_created(pair[1]), pair[0]), reverse=True)
        return [row for _, row in indexed]

    async def fetch_transactions(self, query: TransactionQuery) -> list[Row]:
        await self._enter("fetch_transactions")
        rows = []
        for t in self._ordered_transactions():
            day = _created(t).date()
            if query.product_id and t["product_id"] != query.product_id:
                continue
            if query.tx_types and t["tx_type"] not in query.tx_types:
                continue
            if query.created_by and t.get("created_by") != query.created_by:
                continue
            if query.date_from and day < query.date_from:
                continue
            if query.date_to and day > query.date_to:
                continue
            rows.append(dict(t))
        return rows[query.offset : query.offset + query.limit]

    async def insert_transaction(self, row: Row) -> Row:
        await self._enter("insert_transaction")
        if row["product_id"] not in self.products:
            raise BackendError(
                'insert or update on table "inventory_transactions" violates foreign key constraint',
                code="23503",
                status=409,
            )
        stored = {"id": str(uuid4()), "created_at": self.clock.now(), **row}
        self.transactions.append(stored)
        return dict(stored)

    async def delete_transaction(self, tx_id: str) -> None:
        await self._enter("delete_transaction")
        self.transactions = [t for t in self.transactions if t["id"] != tx_id]

    # --- Production ---

    async def fetch_productions(self, query: ProductionQuery) -> list[Row]:
        await self._enter("fetch_productions")
        rows = [
            p for p in self.productions
            if (not query.ids or p["id"] in query.ids)
            and (not query.date_from or p["prod_date"] >= query.date_from)
            and (not query.date_to or p["prod_date"] <= query.date_to)
        ]
        rows.sort(key=lambda p: (p["prod_date"], _created(p)), reverse=True)
        return [dict(p) for p in rows[: query.limit]]

    async def fetch_production_items(self, batch_ids: Sequence[str]) -> list[Row]:
        await self._enter("fetch_production_items")
        wanted = set(batch_ids)
        return [dict(i) for i in self.items if i["batch_id"] in wanted]

    async def fetch_item_summary(self, batch_id: str) -> list[Row]:
        await self._enter("fetch_item_summary")
        rows = []
        for i in self.items:
            if i["batch_id"] != batch_id:
                continue
            product = self.products.get(i["product_id"], {})
            rows.append(
                {
                    **i,
                    "product_name": product.get("name", ""),
                    "unit": product.get("unit", ""),
                }
            )
        return rows

    async def create_production_with_items(self, payload: Row) -> Row:
        await self._enter("create_production_with_items")
        author_id = payload.get("author_id")
        prod_date = payload["prod_date"]
        if isinstance(prod_date, str):
            prod_date = date.fromisoformat(prod_date)
        animal_count = payload["animal_count"]

        for p in self.productions:
            if p["prod_date"] == prod_date and p["author_id"] == author_id:
                raise BackendError(
                    'duplicate key value violates unique constraint "productions_prod_date_author_key"',
                    code="23505",
                    status=409,
                )
        # validate everything before writing anything
        for item in payload["items"]:
            if item["product_id"] not in self.products:
                raise BackendError(
                    f"product {item['product_id']} does not exist", code="23503", status=409
                )

        now = self.clock.now()
        batch = {
            "id": str(uuid4()),
            "prod_date": prod_date,
            "animal_count": animal_count,
            "author_id": author_id,
            "created_at": now,
        }
        self.productions.append(batch)
        for item in payload["items"]:
            product = self.products[item["product_id"]]
            produced = item["produced"]
            target = round(animal_count * product["meta_per_animal"], 3)
            self.items.append(
                {
                    "batch_id": batch["id"],
                    "product_id": product["id"],
                    "produced": produced,
                    "target": target,
                    "variance": round(produced - target, 3),
                    "average": round(produced / animal_count, 3) if animal_count else 0.0,
                }
            )
            self.transactions.append(
                {
                    "id": str(uuid4()),
                    "product_id": product["id"],
                    "quantity": produced,
                    "unit": product["unit"],
                    "tx_type": "inbound",
                    "created_at": now,
                    "created_by": author_id,
                    "source_batch_id": batch["id"],
                    "metadata": {},
                }
            )
        return dict(batch)

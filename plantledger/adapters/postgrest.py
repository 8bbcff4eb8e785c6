"""
Hosted backend adapter over a PostgREST (Supabase style) REST endpoint.

Tables and views are reached under /rest/v1/<name>, the atomic batch insert
under /rest/v1/rpc/create_production_with_items.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import date, datetime, time, timedelta
from typing import Any
from zoneinfo import ZoneInfo

import httpx

from plantledger.ports.backend import BackendError, ProductionQuery, Row, TransactionQuery

logger = logging.getLogger(__name__)

TX_COLUMNS = "id,product_id,quantity,unit,tx_type,created_at,created_by,source_batch_id,metadata"


def _in(values: Sequence[str]) -> str:
    return "in.(" + ",".join(values) + ")"


def _first(data: Any, table: str) -> Row:
    if not data:
        raise BackendError(f"insert into {table} returned no representation")
    return data[0]


class PostgrestLedgerBackend:
    """Async client for the hosted tables, views and RPC."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        *,
        access_token: str | None = None,
        timeout: float = 10.0,
        timezone: str = "America/Sao_Paulo",
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.tz = ZoneInfo(timezone)
        headers = {
            "apikey": api_key,
            "Authorization": f"Bearer {access_token or api_key}",
            "Content-Type": "application/json",
        }
        self._client = httpx.AsyncClient(
            base_url=f"{self.base_url}/rest/v1",
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    def set_access_token(self, token: str) -> None:
        self._client.headers["Authorization"] = f"Bearer {token}"

    def _day_start(self, day: date) -> str:
        """Midnight of `day` in the plant timezone, with its UTC offset."""
        return datetime.combine(day, time(), tzinfo=self.tz).isoformat()

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: Any = None,
        json: Any = None,
        prefer: str | None = None,
    ) -> Any:
        headers = {"Prefer": prefer} if prefer else None
        try:
            response = await self._client.request(
                method, path, params=params, json=json, headers=headers
            )
        except httpx.HTTPError as e:
            logger.warning("%s %s failed: %s", method, path, e)
            raise BackendError(str(e) or e.__class__.__name__) from e

        if response.is_error:
            raise self._error_from(response)
        if not response.content:
            return None
        return response.json()

    @staticmethod
    def _error_from(response: httpx.Response) -> BackendError:
        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}
        message = body.get("message") or response.text or response.reason_phrase
        return BackendError(message, code=body.get("code"), status=response.status_code)

    # --- Catalog ---

    async def fetch_products(self) -> list[Row]:
        return await self._request(
            "GET", "/products", params={"select": "id,name,unit,meta_per_animal", "order": "name"}
        )

    async def insert_product(self, row: Row) -> Row:
        data = await self._request("POST", "/products", json=row, prefer="return=representation")
        return _first(data, "products")

    async def update_product(self, product_id: str, changes: Row) -> Row:
        data = await self._request(
            "PATCH",
            "/products",
            params={"id": f"eq.{product_id}"},
            json=changes,
            prefer="return=representation",
        )
        if not data:
            raise BackendError(f"product {product_id} not found", status=404)
        return data[0]

    # --- Inventory ---

    async def fetch_balances(self) -> list[Row]:
        return await self._request(
            "GET", "/inventory_balances", params={"select": "product_id,signed_total,updated_at"}
        )

    async def fetch_transactions(self, query: TransactionQuery) -> list[Row]:
        params: list[tuple[str, str]] = [
            ("select", TX_COLUMNS),
            ("order", "created_at.desc"),
            ("offset", str(query.offset)),
            ("limit", str(query.limit)),
        ]
        if query.product_id:
            params.append(("product_id", f"eq.{query.product_id}"))
        if query.tx_types:
            params.append(("tx_type", _in(query.tx_types)))
        if query.created_by:
            params.append(("created_by", f"eq.{query.created_by}"))
        if query.date_from:
            params.append(("created_at", f"gte.{self._day_start(query.date_from)}"))
        if query.date_to:
            # next midnight, exclusive, so the whole last day is kept
            next_day = query.date_to + timedelta(days=1)
            params.append(("created_at", f"lt.{self._day_start(next_day)}"))
        return await self._request("GET", "/inventory_transactions", params=params)

    async def insert_transaction(self, row: Row) -> Row:
        data = await self._request(
            "POST", "/inventory_transactions", json=row, prefer="return=representation"
        )
        return _first(data, "inventory_transactions")

    async def delete_transaction(self, tx_id: str) -> None:
        await self._request("DELETE", "/inventory_transactions", params={"id": f"eq.{tx_id}"})

    # --- Production ---

    async def fetch_productions(self, query: ProductionQuery) -> list[Row]:
        params: list[tuple[str, str]] = [
            ("select", "id,prod_date,animal_count,author_id,created_at"),
            ("order", "prod_date.desc,created_at.desc"),
            ("limit", str(query.limit)),
        ]
        if query.ids:
            params.append(("id", _in(query.ids)))
        if query.date_from:
            params.append(("prod_date", f"gte.{query.date_from.isoformat()}"))
        if query.date_to:
            params.append(("prod_date", f"lte.{query.date_to.isoformat()}"))
        return await self._request("GET", "/productions", params=params)

    async def fetch_production_items(self, batch_ids: Sequence[str]) -> list[Row]:
        if not batch_ids:
            return []
        return await self._request(
            "GET",
            "/production_items",
            params={
                "select": "batch_id,product_id,produced,target,variance,average",
                "batch_id": _in(batch_ids),
            },
        )

    async def fetch_item_summary(self, batch_id: str) -> list[Row]:
        return await self._request(
            "GET",
            "/production_item_summary",
            params={"select": "*", "batch_id": f"eq.{batch_id}"},
        )

    async def create_production_with_items(self, payload: Row) -> Row:
        data = await self._request("POST", "/rpc/create_production_with_items", json=payload)
        # the procedure may return the row itself or a one-row set
        if isinstance(data, list):
            data = data[0] if data else None
        if data is None:
            raise BackendError("create_production_with_items returned no rows")
        if isinstance(data, dict):
            return data
        # scalar batch id
        return {"id": str(data), **payload}

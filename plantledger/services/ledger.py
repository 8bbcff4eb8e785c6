"""
Ledger service: remote reads and writes for both ledgers.

Owns the in-memory inventory and production state (lists, caches and the
page cursor). Every backend failure is translated here, once, into the
ledger error taxonomy.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Sequence
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import TypeVar

from pydantic import ValidationError

from plantledger.domain.entities import (
    Actor,
    Balance,
    InventoryTransaction,
    NewTransaction,
    Product,
    ProductionBatch,
    ProductionDraft,
    ProductionItem,
    ProductionItemSummary,
    TxType,
)
from plantledger.domain.errors import (
    DuplicateRecord,
    LedgerError,
    PermissionDenied,
    RemoteError,
)
from plantledger.domain.policy import (
    ACTION_PRODUCTION_CREATE,
    ACTION_PRODUCTS_MANAGE,
    ACTION_UNDO,
    ACTION_UNDO_ANY,
    PolicyEngine,
)
from plantledger.domain.production import build_batch
from plantledger.domain.projection import BalanceProjector, BalanceView, signed_quantity
from plantledger.domain.quantities import UnitPolicy
from plantledger.domain.timeline import (
    InventoryStats,
    Renderable,
    filter_history,
    group_transactions,
    inventory_stats,
)
from plantledger.ports.backend import (
    BackendError,
    LedgerBackendPort,
    ProductionQuery,
    Row,
    TransactionQuery,
)
from plantledger.ports.clock import ClockPort
from plantledger.rules.models import LedgerRules
from plantledger.services.products import ProductForm, validate_product

logger = logging.getLogger(__name__)

T = TypeVar("T")

PERMISSION_CODES = {"42501", "PGRST301"}
DUPLICATE_CODES = {"23505"}


def translate_backend_error(error: BackendError) -> LedgerError:
    text = error.message.lower()
    if error.code in DUPLICATE_CODES or "duplicate" in text:
        return DuplicateRecord(error.message)
    if (
        error.code in PERMISSION_CODES
        or error.status in (401, 403)
        or "permission" in text
    ):
        return PermissionDenied(error.message)
    return RemoteError(error.message)


# --- State ---


@dataclass(frozen=True)
class TransactionFilters:
    product_id: str | None = None
    tx_type: TxType | None = None
    date_from: date | None = None
    date_to: date | None = None

    @classmethod
    def recent(cls, today: date, days: int) -> TransactionFilters:
        return cls(date_from=today - timedelta(days=days), date_to=today)


@dataclass
class InventoryState:
    products: dict[str, Product] = field(default_factory=dict)
    balances: dict[str, Balance] = field(default_factory=dict)
    transactions: list[InventoryTransaction] = field(default_factory=list)
    filters: TransactionFilters = field(default_factory=TransactionFilters)
    # pagination
    offset: int = 0
    has_more: bool = True
    loading: bool = False
    generation: int = 0
    # bumped on every balance reload
    balances_generation: int = 0
    # temp ids of optimistic writes not yet reconciled
    inflight: set[str] = field(default_factory=set)
    # derived, rebuilt by LedgerService.rederive()
    balance_views: list[BalanceView] = field(default_factory=list)
    stats: InventoryStats = field(default_factory=InventoryStats)
    rows: list[Renderable] = field(default_factory=list)
    # screen lifecycle
    alive: bool = True
    saving: bool = False


@dataclass
class ProductionState:
    batches: list[ProductionBatch] = field(default_factory=list)
    items_cache: dict[str, list[ProductionItemSummary]] = field(default_factory=dict)
    alive: bool = True
    saving: bool = False


@dataclass
class LoadReport:
    """Outcome of a concurrent load; each source fails on its own."""

    products: list[Product] = field(default_factory=list)
    balances: list[Balance] = field(default_factory=list)
    errors: dict[str, LedgerError] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.errors


@dataclass
class ReportData:
    batches: list[ProductionBatch]
    items: list[ProductionItem]


class LedgerService:
    def __init__(
        self,
        backend: LedgerBackendPort,
        policy: PolicyEngine,
        clock: ClockPort,
        rules: LedgerRules | None = None,
    ):
        self.backend = backend
        self.policy = policy
        self.clock = clock
        self.rules = rules or LedgerRules()
        self.units = UnitPolicy.from_rules(self.rules)
        self.projector = BalanceProjector(self.units, self.rules.inventory.low_stock)
        self.inventory = InventoryState()
        self.production = ProductionState()

    async def _remote(self, call: Awaitable[T]) -> T:
        try:
            return await call
        except BackendError as e:
            raise translate_backend_error(e) from e

    # --- Catalog & balances ---

    async def load_catalog(self) -> list[Product]:
        rows = await self._remote(self.backend.fetch_products())
        products = []
        for row in rows:
            # rows without a name or unit are unusable in every form
            if not (row.get("name") or "").strip() or not (row.get("unit") or "").strip():
                continue
            products.append(Product.model_validate(row))
        self.inventory.products = {p.id: p for p in products}
        return products

    def _enrich(self, rows: Sequence[Row]) -> list[Balance]:
        balances = []
        for row in rows:
            balance = Balance.model_validate(row)
            product = self.inventory.products.get(balance.product_id)
            if product is not None:
                balance = balance.model_copy(update={"name": product.name, "unit": product.unit})
            balances.append(balance)
        return balances

    async def load_balances(self) -> list[Balance]:
        rows = await self._remote(self.backend.fetch_balances())
        balances = self._enrich(rows)
        self._set_balances(balances)
        return balances

    def _set_balances(self, balances: Sequence[Balance]) -> None:
        self.inventory.balances = {b.product_id: b for b in balances}
        self.inventory.balances_generation += 1

    async def load_primary(self) -> LoadReport:
        """Fetch catalog and balances concurrently; settle only when both finished."""
        catalog, balance_rows = await asyncio.gather(
            self.load_catalog(),
            self._remote(self.backend.fetch_balances()),
            return_exceptions=True,
        )
        report = LoadReport()
        for source, result in (("products", catalog), ("balances", balance_rows)):
            if isinstance(result, LedgerError):
                logger.warning("Loading %s failed: %s", source, result)
                report.errors[source] = result
            elif isinstance(result, BaseException):
                raise result

        if "products" not in report.errors:
            report.products = catalog  # type: ignore[assignment]
        if "balances" not in report.errors:
            report.balances = self._enrich(balance_rows)  # type: ignore[arg-type]
            self._set_balances(report.balances)
        self.rederive()
        return report

    def sorted_balances(self) -> list[Balance]:
        return sorted(
            self.inventory.balances.values(), key=lambda b: ((b.name or "").casefold(), b.product_id)
        )

    def rederive(self) -> None:
        """Rebuild balance views, stats and day-grouped rows from current state."""
        state = self.inventory
        today = self.clock.today()
        balances = self.sorted_balances()
        state.balance_views = self.projector.project(balances, state.transactions, today)
        state.stats = inventory_stats(balances, self.projector)
        state.rows = group_transactions(state.transactions, today, self.rules.formatting)

    # --- Transactions ---

    def _query(self, filters: TransactionFilters, offset: int) -> TransactionQuery:
        tx_types: tuple[str, ...] = ()
        if filters.tx_type:
            expansion = self.rules.inventory.type_filter_expansion
            tx_types = tuple(expansion.get(filters.tx_type, [filters.tx_type]))
        return TransactionQuery(
            offset=offset,
            limit=self.rules.inventory.page_size,
            product_id=filters.product_id,
            tx_types=tx_types,
            date_from=filters.date_from,
            date_to=filters.date_to,
        )

    async def _fetch_page(self, filters: TransactionFilters, offset: int) -> list[InventoryTransaction]:
        rows = await self._remote(self.backend.fetch_transactions(self._query(filters, offset)))
        return [InventoryTransaction.model_validate(r) for r in rows]

    async def reset_transactions(
        self, filters: TransactionFilters | None = None
    ) -> list[InventoryTransaction]:
        """
        Restart the list from offset 0. Supersedes any page fetch in flight:
        its results are dropped when it lands.
        """
        state = self.inventory
        if filters is not None:
            state.filters = filters
        state.generation += 1
        generation = state.generation
        state.loading = True
        try:
            page = await self._fetch_page(state.filters, 0)
        finally:
            if generation == state.generation:
                state.loading = False

        if generation != state.generation:
            logger.debug("Discarding superseded reset (generation %s)", generation)
            return []

        # keep optimistic rows that are still in flight at the head
        pending = [t for t in state.transactions if t.pending and t.id in state.inflight]
        state.transactions = pending + page
        state.offset = len(page)
        state.has_more = len(page) >= self.rules.inventory.page_size
        self.rederive()
        return page

    async def fetch_next_page(self) -> list[InventoryTransaction]:
        """Append the next page. A no-op while another fetch is pending."""
        state = self.inventory
        if state.loading or not state.has_more:
            return []

        generation = state.generation
        state.loading = True
        try:
            page = await self._fetch_page(state.filters, state.offset)
        finally:
            if generation == state.generation:
                state.loading = False

        if generation != state.generation:
            logger.debug("Discarding stale page at offset %s", state.offset)
            return []

        known = {t.id for t in state.transactions}
        fresh = [t for t in page if t.id not in known]
        state.transactions = state.transactions + fresh
        state.offset += len(page)
        state.has_more = len(page) >= self.rules.inventory.page_size
        self.rederive()
        return fresh

    async def insert_transaction(self, payload: NewTransaction) -> InventoryTransaction:
        row = await self._remote(self.backend.insert_transaction(payload.model_dump(mode="json")))
        try:
            tx = InventoryTransaction.model_validate(row)
        except ValidationError as e:
            raise RemoteError(f"Malformed movement returned by the backend: {e}") from e
        logger.info("Recorded %s of %s for product %s", tx.tx_type, tx.quantity, tx.product_id)
        return tx

    async def undo_last_transaction(self, actor: Actor) -> InventoryTransaction | None:
        """
        Delete the most recent movement as a compensating action.

        Admins undo the latest movement overall, other roles only their own.
        Movements generated by a production batch are never undone.
        """
        if not self.policy.can(actor.role, ACTION_UNDO):
            raise PermissionDenied(f"Role {actor.role} may not undo movements")

        created_by = None if self.policy.can(actor.role, ACTION_UNDO_ANY) else actor.id
        rows = await self._remote(
            self.backend.fetch_transactions(TransactionQuery(limit=1, created_by=created_by))
        )
        if not rows:
            return None
        tx = InventoryTransaction.model_validate(rows[0])
        if tx.source_batch_id:
            raise PermissionDenied("Movements generated by a production batch cannot be undone")

        await self._remote(self.backend.delete_transaction(tx.id))
        logger.info("Undid %s %s by %s", tx.tx_type, tx.id, actor.id)

        state = self.inventory
        if any(t.id == tx.id for t in state.transactions):
            state.transactions = [t for t in state.transactions if t.id != tx.id]
            state.offset = max(0, state.offset - 1)
        balance = state.balances.get(tx.product_id)
        if balance is not None:
            state.balances[tx.product_id] = balance.model_copy(
                update={"signed_total": round(balance.signed_total - signed_quantity(tx), 6)}
            )
        self.rederive()
        return tx

    # --- Production ---

    async def load_history(
        self,
        product_ids: Sequence[str] = (),
        date_from: date | None = None,
        date_to: date | None = None,
    ) -> list[ProductionBatch]:
        rules = self.rules.production
        limit = rules.history_limit if not (date_from or date_to) else rules.report_limit
        rows = await self._remote(
            self.backend.fetch_productions(
                ProductionQuery(limit=limit, date_from=date_from, date_to=date_to)
            )
        )
        self.production.batches = [ProductionBatch.model_validate(r) for r in rows]
        return filter_history(self.production.batches, self.production.items_cache, product_ids)

    async def load_item_details(self, batch_id: str) -> list[ProductionItemSummary] | None:
        """Lazily fill the details cache. Failures leave the cache untouched."""
        cache = self.production.items_cache
        if batch_id in cache:
            return cache[batch_id]
        try:
            rows = await self.backend.fetch_item_summary(batch_id)
            items = [ProductionItemSummary.model_validate(r) for r in rows]
        except (BackendError, ValidationError) as e:
            logger.warning("Could not load items for batch %s: %s", batch_id, e)
            return None
        cache[batch_id] = items
        return items

    async def save_production(self, actor: Actor, draft: ProductionDraft) -> ProductionBatch:
        if not self.policy.can(actor.role, ACTION_PRODUCTION_CREATE):
            raise PermissionDenied(f"Role {actor.role} may not record production")

        products = self.inventory.products
        validated = build_batch(draft, products, self.rules.production, self.units)
        payload = {
            "author_id": actor.id,
            "prod_date": validated.prod_date.isoformat(),
            "animal_count": validated.animal_count,
            "items": [
                {"product_id": i.product_id, "produced": i.produced} for i in validated.items
            ],
        }
        row = await self._remote(self.backend.create_production_with_items(payload))
        batch = ProductionBatch.model_validate(row)
        logger.info(
            "Saved production %s for %s with %s items",
            batch.id, batch.prod_date, len(validated.items),
        )

        self.production.batches = [batch] + [
            b for b in self.production.batches if b.id != batch.id
        ]
        self.production.items_cache[batch.id] = [
            ProductionItemSummary(
                batch_id=batch.id,
                product_name=products[i.product_id].name,
                unit=products[i.product_id].unit,
                **i.model_dump(exclude={"batch_id"}),
            )
            for i in validated.items
        ]
        return batch

    async def load_report(self, date_from: date, date_to: date) -> ReportData:
        rules = self.rules.production
        rows = await self._remote(
            self.backend.fetch_productions(
                ProductionQuery(limit=rules.report_limit, date_from=date_from, date_to=date_to)
            )
        )
        batches = [ProductionBatch.model_validate(r) for r in rows]
        ids = [b.id for b in batches]
        size = rules.report_chunk_size
        chunks = [ids[i : i + size] for i in range(0, len(ids), size)]
        results = await asyncio.gather(
            *(self._remote(self.backend.fetch_production_items(c)) for c in chunks)
        )
        items = [ProductionItem.model_validate(r) for chunk in results for r in chunk]
        return ReportData(batches=batches, items=items)

    # --- Product administration ---

    async def create_product(self, actor: Actor, form: ProductForm) -> Product:
        return await self._save_product(actor, form, None)

    async def update_product(self, actor: Actor, product_id: str, form: ProductForm) -> Product:
        return await self._save_product(actor, form, product_id)

    async def _save_product(
        self, actor: Actor, form: ProductForm, product_id: str | None
    ) -> Product:
        if not self.policy.can(actor.role, ACTION_PRODUCTS_MANAGE):
            raise PermissionDenied(f"Role {actor.role} may not manage products")

        fields = validate_product(
            form, self.inventory.products.values(), self.rules.products, exclude_id=product_id
        )
        if product_id is None:
            row = await self._remote(self.backend.insert_product(fields))
        else:
            row = await self._remote(self.backend.update_product(product_id, fields))
        product = Product.model_validate(row)
        self.inventory.products = {**self.inventory.products, product.id: product}
        balance = self.inventory.balances.get(product.id)
        if balance is not None:
            self.inventory.balances[product.id] = balance.model_copy(
                update={"name": product.name, "unit": product.unit}
            )
        return product

"""Headless production screen: batch form with live preview, history and stats."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date

from plantledger.domain.entities import (
    Actor,
    Product,
    ProductionBatch,
    ProductionDraft,
    ProductionItem,
    ProductionItemSummary,
    ProgressBand,
)
from plantledger.domain.errors import LedgerError, PermissionDenied
from plantledger.domain.production import compute_item, progress_band, progress_ratio
from plantledger.domain.timeline import (
    ProductionStats,
    Renderable,
    filter_history,
    group_batches,
    production_stats,
)
from plantledger.services.debounce import Debouncer
from plantledger.ui.context import ServiceContext

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ItemPreview:
    product: Product
    item: ProductionItem
    ratio: float
    band: ProgressBand


class ProductionScreen:
    def __init__(self, ctx: ServiceContext):
        self.ctx = ctx
        self.ledger = ctx.ledger
        self.state = ctx.ledger.production
        self.animal_count_text = ""
        self.inputs: dict[str, str] = {}
        self.preview: list[ItemPreview] = []
        self.preview_debouncer: Debouncer[None] = Debouncer(
            ctx.rules.timing.input_debounce_ms, self._recompute
        )
        self.history_product_ids: list[str] = list(
            ctx.app_state.preferences.history_product_ids
        )

    def _actor(self) -> Actor:
        if self.ctx.app_state.actor is None:
            raise PermissionDenied("Sign in first")
        return self.ctx.app_state.actor

    async def open(self) -> list[ProductionBatch]:
        self.state.alive = True
        if not self.ledger.inventory.products:
            await self.ledger.load_catalog()
        return await self.ledger.load_history(self.history_product_ids)

    # --- Form ---

    def select_product(self, product_id: str) -> None:
        self.inputs.setdefault(product_id, "")

    def deselect_product(self, product_id: str) -> None:
        self.inputs.pop(product_id, None)
        self.preview_debouncer.push(None)

    def set_animal_count(self, text: str) -> None:
        self.animal_count_text = text
        self.preview_debouncer.push(None)

    def set_quantity(self, product_id: str, text: str) -> None:
        self.inputs[product_id] = text
        self.preview_debouncer.push(None)

    def _recompute(self, _: None = None) -> None:
        if not self.state.alive:
            return
        self.preview = self.compute_preview()

    def compute_preview(self) -> list[ItemPreview]:
        """Per-product target and progress for whatever parses right now."""
        units = self.ledger.units
        try:
            animal_count = int(units.normalize("UN", self.animal_count_text))
        except LedgerError:
            animal_count = 0
        bands = self.ctx.rules.production.progress_bands

        previews = []
        for product_id, raw in self.inputs.items():
            product = self.ledger.inventory.products.get(product_id)
            if product is None:
                continue
            try:
                produced = units.normalize(product.unit, raw or "0", require_positive=False)
            except LedgerError:
                produced = 0.0
            item = compute_item(product, animal_count, produced)
            ratio = progress_ratio(item.produced, item.target)
            previews.append(ItemPreview(product, item, ratio, progress_band(ratio, bands)))
        return previews

    async def save(self, prod_date: date) -> ProductionBatch | None:
        if self.state.saving:
            return None
        self.state.saving = True
        try:
            batch = await self.ledger.save_production(
                self._actor(),
                ProductionDraft(
                    prod_date=prod_date,
                    animal_count_text=self.animal_count_text,
                    produced=dict(self.inputs),
                ),
            )
        finally:
            self.state.saving = False

        if self.state.alive:
            self.preview_debouncer.cancel()
            self.animal_count_text = ""
            self.inputs = {}
            self.preview = []

        # saved batches add inbound movements on the server
        try:
            await self.ledger.load_balances()
            self.ledger.rederive()
        except LedgerError as e:
            logger.warning("Balances not refreshed after saving %s: %s", batch.id, e)
        return batch

    # --- History ---

    async def expand(self, batch_id: str) -> list[ProductionItemSummary] | None:
        return await self.ledger.load_item_details(batch_id)

    def set_history_products(self, product_ids: list[str]) -> None:
        self.history_product_ids = list(product_ids)
        self.ctx.app_state.preferences.history_product_ids = list(product_ids)

    def history(self) -> list[ProductionBatch]:
        return filter_history(
            self.state.batches, self.state.items_cache, self.history_product_ids
        )

    def rows(self) -> list[Renderable]:
        return group_batches(self.history(), self.ctx.clock.today(), self.ctx.rules.formatting)

    def stats(self) -> ProductionStats:
        return production_stats(
            self.state.batches,
            self.state.items_cache,
            self.ctx.clock.today(),
            current_month_only=self.ctx.rules.production.rollup_current_month_only,
        )

    def close(self) -> None:
        self.preview_debouncer.cancel()
        self.state.alive = False

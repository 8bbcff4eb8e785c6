"""Headless inventory screen: filters, paging, movement form and undo."""

from __future__ import annotations

import asyncio
import logging

from plantledger.domain.entities import Actor, InventoryTransaction, TransactionDraft
from plantledger.domain.errors import PermissionDenied
from plantledger.domain.validation import ConfirmCallback
from plantledger.services.debounce import Debouncer
from plantledger.services.ledger import LoadReport, TransactionFilters
from plantledger.ui.context import ServiceContext

logger = logging.getLogger(__name__)


class InventoryScreen:
    def __init__(self, ctx: ServiceContext):
        self.ctx = ctx
        self.ledger = ctx.ledger
        self.state = ctx.ledger.inventory
        self.filter_debouncer: Debouncer[TransactionFilters] = Debouncer(
            ctx.rules.timing.filter_debounce_ms, self._apply_filters
        )

    def _actor(self) -> Actor:
        if self.ctx.app_state.actor is None:
            raise PermissionDenied("Sign in first")
        return self.ctx.app_state.actor

    def default_filters(self) -> TransactionFilters:
        today = self.ctx.clock.today()
        filters = TransactionFilters.recent(today, self.ctx.rules.inventory.default_window_days)
        preferred = self.ctx.app_state.preferences.inventory_type_filter
        if preferred:
            filters = TransactionFilters(
                tx_type=preferred, date_from=filters.date_from, date_to=filters.date_to
            )
        return filters

    async def open(self) -> LoadReport:
        self.state.alive = True
        report, _ = await asyncio.gather(
            self.ledger.load_primary(),
            self.ledger.reset_transactions(self.default_filters()),
        )
        return report

    async def refresh(self) -> LoadReport:
        report, _ = await asyncio.gather(
            self.ledger.load_primary(), self.ledger.reset_transactions()
        )
        return report

    def set_filters(self, filters: TransactionFilters) -> None:
        self.filter_debouncer.push(filters)

    async def _apply_filters(self, filters: TransactionFilters) -> None:
        if not self.state.alive:
            return
        self.ctx.app_state.preferences.inventory_type_filter = filters.tx_type
        await self.ledger.reset_transactions(filters)

    async def load_more(self) -> list[InventoryTransaction]:
        return await self.ledger.fetch_next_page()

    async def submit(
        self,
        draft: TransactionDraft,
        confirm: ConfirmCallback | None = None,
        confirmed: bool = False,
    ) -> InventoryTransaction | None:
        """Record a movement. Ignored while another submit is in flight."""
        if self.state.saving:
            logger.debug("Submit ignored, another one is in flight")
            return None
        self.state.saving = True
        try:
            return await self.ctx.coordinator.execute(
                draft, self._actor(), confirm=confirm, confirmed=confirmed
            )
        finally:
            self.state.saving = False

    async def undo_last(self) -> InventoryTransaction | None:
        return await self.ledger.undo_last_transaction(self._actor())

    def close(self) -> None:
        self.filter_debouncer.cancel()
        self.state.alive = False

"""Headless production report over a date range."""

from __future__ import annotations

from datetime import date, timedelta
from typing import Literal

from plantledger.domain.export import ExportFormat, export_csv, export_filename, export_json
from plantledger.domain.reports import (
    ChartPoint,
    DayTotals,
    ProductTotals,
    SortKey,
    chart_series,
    chart_unit,
    daily_totals,
    effective_product_ids,
    product_totals,
    report_totals,
)
from plantledger.services.ledger import ReportData
from plantledger.ui.context import ServiceContext

QuickRange = Literal["7d", "30d", "month"]


def quick_range(kind: QuickRange, today: date) -> tuple[date, date]:
    if kind == "7d":
        return today - timedelta(days=7), today
    if kind == "30d":
        return today - timedelta(days=30), today
    return today.replace(day=1), today


class ReportScreen:
    def __init__(self, ctx: ServiceContext):
        self.ctx = ctx
        self.data = ReportData(batches=[], items=[])
        self.product_ids: list[str] = []
        self.unit: str | None = None
        self.sort: SortKey = ctx.app_state.preferences.report_sort
        today = ctx.clock.today()
        self.date_from, self.date_to = quick_range("30d", today)

    async def load(self, date_from: date | None = None, date_to: date | None = None) -> ReportData:
        if date_from is not None:
            self.date_from = date_from
        if date_to is not None:
            self.date_to = date_to
        self.data = await self.ctx.ledger.load_report(self.date_from, self.date_to)
        return self.data

    async def load_quick(self, kind: QuickRange) -> ReportData:
        return await self.load(*quick_range(kind, self.ctx.clock.today()))

    def set_sort(self, sort: SortKey) -> None:
        self.sort = sort
        self.ctx.app_state.preferences.report_sort = sort

    def _selected(self) -> list[str]:
        return effective_product_ids(self.ctx.ledger.inventory.products, self.product_ids, self.unit)

    def days(self) -> list[DayTotals]:
        return daily_totals(self.data.batches, self.data.items, self._selected())

    def totals(self) -> DayTotals | None:
        # only meaningful with a product filter
        if not self.product_ids:
            return None
        return report_totals(self.days())

    def per_product(self) -> list[ProductTotals]:
        return product_totals(self.data.items, self.ctx.ledger.inventory.products, self.sort)

    def chart(self) -> list[ChartPoint]:
        return chart_series(self.data.batches, self.data.items, self._selected())

    def chart_unit(self) -> str | None:
        return chart_unit(
            self.ctx.ledger.inventory.products,
            self._selected(),
            self.ctx.rules.formatting.mixed_unit_label,
        )

    def export(self, fmt: ExportFormat) -> tuple[str, str]:
        """Return (filename, content) for the current range and filters."""
        days = self.days() if self.product_ids else None
        if fmt == "csv":
            content = export_csv(days, self.per_product(), self.ctx.rules.formatting)
        else:
            content = export_json(days, self.per_product())
        return export_filename(self.ctx.clock.today(), fmt), content

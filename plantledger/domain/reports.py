"""
Production report aggregation over a date range.

Per-day produced/target totals are only meaningful when a product filter is
active; without one a day carries its animal count alone.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import date
from typing import Literal

from plantledger.domain.entities import Product, ProductionBatch, ProductionItem
from plantledger.domain.production import efficiency_percent

SortKey = Literal["produced", "compliance", "name"]


@dataclass
class DayTotals:
    day: date
    animal_count: int = 0
    produced: float = 0.0
    target: float = 0.0
    variance: float = 0.0

    @property
    def compliance(self) -> int:
        return efficiency_percent(self.produced, self.target)


@dataclass
class ProductTotals:
    product_id: str
    name: str
    unit: str
    produced: float = 0.0
    target: float = 0.0
    variance: float = 0.0

    @property
    def ratio(self) -> float:
        return self.produced / self.target if self.target > 0 else 0.0

    @property
    def compliance(self) -> int:
        return efficiency_percent(self.produced, self.target)


@dataclass(frozen=True)
class ChartPoint:
    label: str
    produced: float
    target: float


def effective_product_ids(
    products: Mapping[str, Product], product_ids: Sequence[str], unit: str | None = None
) -> list[str]:
    """Selected products, narrowed to one unit when a unit filter is set."""
    if unit is None:
        return list(product_ids)
    return [pid for pid in product_ids if pid in products and products[pid].unit == unit]


def _picked_items(
    batches: Sequence[ProductionBatch],
    items: Sequence[ProductionItem],
    product_ids: Sequence[str],
):
    by_id = {b.id: b for b in batches}
    picked = set(product_ids)
    for it in items:
        batch = by_id.get(it.batch_id or "")
        if batch is not None and it.product_id in picked:
            yield batch, it


def daily_totals(
    batches: Sequence[ProductionBatch],
    items: Sequence[ProductionItem],
    product_ids: Sequence[str] = (),
) -> list[DayTotals]:
    by_day: dict[date, DayTotals] = {}
    for b in batches:
        by_day.setdefault(b.prod_date, DayTotals(day=b.prod_date)).animal_count += b.animal_count

    for batch, it in _picked_items(batches, items, product_ids):
        row = by_day[batch.prod_date]
        row.produced += it.produced
        row.target += it.target
        row.variance += it.variance

    return sorted(by_day.values(), key=lambda d: d.day, reverse=True)


def report_totals(days: Sequence[DayTotals]) -> DayTotals | None:
    if not days:
        return None
    total = DayTotals(day=days[0].day)
    for d in days:
        total.animal_count += d.animal_count
        total.produced += d.produced
        total.target += d.target
        total.variance += d.variance
    return total


def product_totals(
    items: Sequence[ProductionItem],
    products: Mapping[str, Product],
    sort: SortKey = "produced",
) -> list[ProductTotals]:
    rows: dict[str, ProductTotals] = {}
    for it in items:
        product = products.get(it.product_id)
        if product is None:
            continue
        row = rows.setdefault(
            it.product_id,
            ProductTotals(product_id=product.id, name=product.name, unit=product.unit),
        )
        row.produced += it.produced
        row.target += it.target
        row.variance += it.variance

    out = list(rows.values())
    if sort == "name":
        out.sort(key=lambda r: r.name.casefold())
    elif sort == "compliance":
        out.sort(key=lambda r: r.ratio, reverse=True)
    else:
        out.sort(key=lambda r: r.produced, reverse=True)
    return out


def chart_unit(
    products: Mapping[str, Product], product_ids: Sequence[str], mixed_label: str = "Mixed"
) -> str | None:
    units = {products[pid].unit for pid in product_ids if pid in products}
    if not units:
        return None
    return units.pop() if len(units) == 1 else mixed_label


def chart_series(
    batches: Sequence[ProductionBatch],
    items: Sequence[ProductionItem],
    product_ids: Sequence[str],
) -> list[ChartPoint]:
    if not product_ids:
        return []
    return [
        ChartPoint(label=d.day.isoformat(), produced=d.produced, target=d.target)
        for d in daily_totals(batches, items, product_ids)
    ]

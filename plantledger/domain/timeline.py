"""
Render-ready sequences and rollup statistics.

Everything here reads its inputs and returns new structures; source lists
are never reordered or mutated.
"""

from __future__ import annotations

import math
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import TypeVar

from plantledger.domain.entities import (
    Balance,
    InventoryTransaction,
    ProductionBatch,
    ProductionItemSummary,
)
from plantledger.domain.production import efficiency_percent
from plantledger.domain.projection import BalanceProjector
from plantledger.rules.models import FormattingRules

T = TypeVar("T")

# --- Renderables ---


@dataclass(frozen=True)
class DayHeader:
    id: str
    day: date
    title: str
    count: int


@dataclass(frozen=True)
class TransactionRow:
    id: str
    transaction: InventoryTransaction


@dataclass(frozen=True)
class BatchRow:
    id: str
    batch: ProductionBatch


Renderable = DayHeader | TransactionRow | BatchRow


def day_label(day: date, today: date, formatting: FormattingRules | None = None) -> str:
    formatting = formatting or FormattingRules()
    if day == today:
        return formatting.today_label
    if day == today - timedelta(days=1):
        return formatting.yesterday_label
    return f"{day.day:02d} {formatting.month_abbreviations[day.month - 1]}"


def group_by_day(
    items: Iterable[T],
    day_of: Callable[[T], date],
    sort_key: Callable[[T], datetime | date],
    make_row: Callable[[T], Renderable],
    today: date,
    formatting: FormattingRules | None = None,
) -> list[Renderable]:
    """
    One header per distinct day, days descending, each followed by its rows
    newest first.
    """
    buckets: dict[date, list[T]] = {}
    for item in items:
        buckets.setdefault(day_of(item), []).append(item)

    out: list[Renderable] = []
    for day in sorted(buckets, reverse=True):
        rows = sorted(buckets[day], key=sort_key, reverse=True)
        out.append(
            DayHeader(
                id=f"header-{day.isoformat()}",
                day=day,
                title=day_label(day, today, formatting),
                count=len(rows),
            )
        )
        out.extend(make_row(r) for r in rows)
    return out


def _tx_sort_key(tx: InventoryTransaction) -> datetime:
    # aware and naive timestamps must not be compared directly
    return tx.created_at.replace(tzinfo=None)


def group_transactions(
    txs: Sequence[InventoryTransaction],
    today: date,
    formatting: FormattingRules | None = None,
) -> list[Renderable]:
    return group_by_day(
        txs,
        day_of=lambda t: t.created_at.date(),
        sort_key=_tx_sort_key,
        make_row=lambda t: TransactionRow(id=t.id, transaction=t),
        today=today,
        formatting=formatting,
    )


def group_batches(
    batches: Sequence[ProductionBatch],
    today: date,
    formatting: FormattingRules | None = None,
) -> list[Renderable]:
    return group_by_day(
        batches,
        day_of=lambda b: b.prod_date,
        sort_key=lambda b: (
            b.created_at.replace(tzinfo=None)
            if b.created_at
            else datetime.combine(b.prod_date, datetime.min.time())
        ),
        make_row=lambda b: BatchRow(id=b.id, batch=b),
        today=today,
        formatting=formatting,
    )


# --- Inventory rollup ---


@dataclass(frozen=True)
class InventoryStats:
    total_products: int = 0
    negative: int = 0
    low: int = 0


def inventory_stats(
    balances: Sequence[Balance], projector: BalanceProjector | None = None
) -> InventoryStats:
    projector = projector or BalanceProjector()
    views = projector.project(balances)
    return InventoryStats(
        total_products=len({b.product_id for b in balances}),
        negative=sum(1 for v in views if v.status == "negative"),
        low=sum(1 for v in views if v.status == "low"),
    )


# --- Production rollup ---


@dataclass
class UnitRollup:
    produced: float = 0.0
    target: float = 0.0

    @property
    def loss(self) -> float:
        return round(max(0.0, self.target - self.produced), 3)

    @property
    def efficiency(self) -> int:
        return efficiency_percent(self.produced, self.target)


@dataclass(frozen=True)
class ProductionStats:
    total: int = 0
    this_month: int = 0
    average_animals: int = 0
    by_unit: dict[str, UnitRollup] = field(default_factory=dict)


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def production_stats(
    batches: Sequence[ProductionBatch],
    items_cache: Mapping[str, Sequence[ProductionItemSummary]],
    today: date,
    current_month_only: bool = False,
) -> ProductionStats:
    """
    Count and average cover every loaded batch; the per-unit rollup covers
    only batches whose item details are already in the cache.
    """
    in_month = [
        b for b in batches
        if b.prod_date.year == today.year and b.prod_date.month == today.month
    ]
    average = (
        round_half_up(sum(b.animal_count for b in batches) / len(batches)) if batches else 0
    )

    by_unit: dict[str, UnitRollup] = {}
    for batch in in_month if current_month_only else batches:
        for item in items_cache.get(batch.id, ()):
            rollup = by_unit.setdefault(item.unit, UnitRollup())
            rollup.produced = round(rollup.produced + item.produced, 3)
            rollup.target = round(rollup.target + item.target, 3)

    return ProductionStats(
        total=len(batches),
        this_month=len(in_month),
        average_animals=average,
        by_unit=by_unit,
    )


def filter_history(
    batches: Sequence[ProductionBatch],
    items_cache: Mapping[str, Sequence[ProductionItemSummary]],
    product_ids: Iterable[str],
) -> list[ProductionBatch]:
    """Batches holding one of the products. Batches without loaded items pass."""
    wanted = set(product_ids)
    if not wanted:
        return list(batches)
    out = []
    for b in batches:
        items = items_cache.get(b.id)
        if items is None or any(i.product_id in wanted for i in items):
            out.append(b)
    return out

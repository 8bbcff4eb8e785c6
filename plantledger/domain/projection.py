"""
Balance projection over an inventory transaction window.

Signs per type: inbound +q, adjustment +q (q is already a signed delta),
outbound -q, sale -q, transfer 0 (single-leg display nets to zero).
Pending optimistic rows are skipped by every projection.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import date

from plantledger.domain.entities import Balance, InventoryTransaction, StockStatus
from plantledger.domain.quantities import DEFAULT_UNIT_POLICY, UnitPolicy
from plantledger.rules.models import LowStockRules

TX_SIGNS: dict[str, int] = {
    "inbound": 1,
    "adjustment": 1,
    "outbound": -1,
    "sale": -1,
    "transfer": 0,
}


def signed_quantity(tx: InventoryTransaction) -> float:
    return TX_SIGNS[tx.tx_type] * tx.quantity


def _confirmed(txs: Iterable[InventoryTransaction], product_id: str):
    return (t for t in txs if t.product_id == product_id and not t.is_temporary)


def signed_total(product_id: str, txs: Iterable[InventoryTransaction]) -> float:
    return sum((signed_quantity(t) for t in _confirmed(txs, product_id)), 0.0)


def todays_delta(
    product_id: str, txs: Iterable[InventoryTransaction], today: date
) -> float:
    """Net movement whose recorded calendar day equals today (no UTC shift)."""
    return sum(
        (signed_quantity(t) for t in _confirmed(txs, product_id) if t.created_at.date() == today),
        0.0,
    )


def apply_to_balance(balance: Balance, tx: InventoryTransaction) -> Balance:
    """Fold a confirmed transaction into a cached balance."""
    return balance.model_copy(
        update={
            "signed_total": round(balance.signed_total + signed_quantity(tx), 6),
            "updated_at": tx.created_at,
        }
    )


def low_stock_threshold(
    unit: str,
    balances: Sequence[Balance],
    units: UnitPolicy = DEFAULT_UNIT_POLICY,
    rules: LowStockRules | None = None,
) -> float:
    rules = rules or LowStockRules()
    if units.is_integer_unit(unit):
        return rules.integer_threshold
    largest = max((abs(b.signed_total) for b in balances), default=0.0)
    return max(rules.fractional_floor, largest * rules.fractional_ratio)


def classify(value: float, threshold: float) -> StockStatus:
    # Negative wins; zero is neither negative nor low
    if value < 0:
        return "negative"
    if value == 0:
        return "empty"
    if value <= threshold:
        return "low"
    return "ok"


@dataclass(frozen=True)
class BalanceView:
    balance: Balance
    status: StockStatus
    threshold: float
    todays_delta: float = 0.0


class BalanceProjector:
    def __init__(
        self,
        units: UnitPolicy = DEFAULT_UNIT_POLICY,
        low_stock: LowStockRules | None = None,
    ):
        self.units = units
        self.low_stock = low_stock or LowStockRules()

    def threshold(self, unit: str, balances: Sequence[Balance]) -> float:
        return low_stock_threshold(unit, balances, self.units, self.low_stock)

    def project(
        self,
        balances: Sequence[Balance],
        txs: Sequence[InventoryTransaction] = (),
        today: date | None = None,
    ) -> list[BalanceView]:
        views = []
        for b in balances:
            threshold = self.threshold(b.unit or "", balances)
            delta = todays_delta(b.product_id, txs, today) if today else 0.0
            views.append(
                BalanceView(
                    balance=b,
                    status=classify(b.signed_total, threshold),
                    threshold=threshold,
                    todays_delta=delta,
                )
            )
        return views

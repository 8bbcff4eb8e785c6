"""
Two-phase optimistic writes for inventory movements.

submit() validates and places a pending placeholder at the head of the list;
reconcile() swaps it for the confirmed row or removes it. Placeholders carry a
"tmp-" id and pending=True, so projections never count them.

One submit at a time is the caller's job (InventoryState.saving).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Literal
from uuid import uuid4

from plantledger.domain.entities import (
    TEMP_ID_PREFIX,
    Actor,
    Balance,
    InventoryTransaction,
    NewTransaction,
    TransactionDraft,
)
from plantledger.domain.errors import LedgerError, RemoteError
from plantledger.domain.projection import apply_to_balance
from plantledger.domain.validation import ConfirmCallback, TransactionValidator
from plantledger.services.ledger import LedgerService

logger = logging.getLogger(__name__)

HandleStatus = Literal["pending", "confirmed", "rolled_back"]


def _at_or_after(later: datetime, earlier: datetime) -> bool:
    if (later.tzinfo is None) != (earlier.tzinfo is None):
        # mixed naive and aware: compare recorded wall-clock times
        return later.replace(tzinfo=None) >= earlier.replace(tzinfo=None)
    return later >= earlier


@dataclass
class PendingHandle:
    temp_id: str
    payload: NewTransaction
    placeholder: InventoryTransaction
    status: HandleStatus = "pending"
    confirmed: InventoryTransaction | None = None
    error: LedgerError | None = None
    # False when the state was torn down before reconciliation
    applied: bool = False
    # InventoryState.balances_generation at submit time
    balances_generation: int = 0


@dataclass(frozen=True)
class WriteResult:
    transaction: InventoryTransaction | None = None
    error: LedgerError | None = None

    @classmethod
    def ok(cls, tx: InventoryTransaction) -> WriteResult:
        return cls(transaction=tx)

    @classmethod
    def failed(cls, error: LedgerError) -> WriteResult:
        return cls(error=error)


def _already_counted(
    handle: PendingHandle, balance: Balance | None, tx: InventoryTransaction, generation: int
) -> bool:
    """True when balances were reloaded after submit and the reload saw the movement."""
    if balance is None or balance.updated_at is None:
        return False
    if handle.balances_generation == generation:
        return False
    return _at_or_after(balance.updated_at, tx.created_at)


class OptimisticCoordinator:
    def __init__(self, ledger: LedgerService, validator: TransactionValidator):
        self.ledger = ledger
        self.validator = validator

    def current_balance(self, product_id: str) -> float:
        balance = self.ledger.inventory.balances.get(product_id)
        return balance.signed_total if balance else 0.0

    def submit(
        self,
        draft: TransactionDraft,
        actor: Actor,
        confirm: ConfirmCallback | None = None,
        confirmed: bool = False,
    ) -> PendingHandle | None:
        """
        Validate and materialize a pending placeholder.
        Returns None when the balance gate was declined.
        """
        state = self.ledger.inventory
        payload = self.validator.validate(
            draft,
            actor,
            state.products,
            self.current_balance(draft.product_id),
            confirm=confirm,
            confirmed=confirmed,
        )
        if payload is None:
            return None

        temp_id = f"{TEMP_ID_PREFIX}{uuid4().hex}"
        placeholder = InventoryTransaction(
            id=temp_id,
            created_at=self.ledger.clock.now(),
            pending=True,
            **payload.model_dump(),
        )
        state.transactions = [placeholder] + state.transactions
        state.inflight.add(temp_id)
        self.ledger.rederive()
        return PendingHandle(
            temp_id=temp_id,
            payload=payload,
            placeholder=placeholder,
            balances_generation=state.balances_generation,
        )

    def reconcile(self, handle: PendingHandle, result: WriteResult) -> PendingHandle:
        if handle.status != "pending":
            raise ValueError(f"Handle {handle.temp_id} already {handle.status}")

        if result.transaction is not None:
            handle.status = "confirmed"
            handle.confirmed = result.transaction
        else:
            handle.status = "rolled_back"
            handle.error = result.error

        state = self.ledger.inventory
        state.inflight.discard(handle.temp_id)
        if not state.alive:
            logger.debug("Dropping reconciliation of %s for a closed screen", handle.temp_id)
            return handle

        rest = [t for t in state.transactions if t.id != handle.temp_id]
        if handle.confirmed is not None:
            tx = handle.confirmed
            if not any(t.id == tx.id for t in rest):
                rest = [tx] + rest
                # the new row shifted every server offset by one
                state.offset += 1
            balance = state.balances.get(tx.product_id)
            if _already_counted(handle, balance, tx, state.balances_generation):
                logger.debug("Balance reload already holds %s", tx.id)
            else:
                product = state.products.get(tx.product_id)
                balance = balance or Balance(
                    product_id=tx.product_id,
                    name=product.name if product else None,
                    unit=product.unit if product else tx.unit,
                )
                state.balances[tx.product_id] = apply_to_balance(balance, tx)
        state.transactions = rest
        handle.applied = True
        self.ledger.rederive()
        return handle

    async def execute(
        self,
        draft: TransactionDraft,
        actor: Actor,
        confirm: ConfirmCallback | None = None,
        confirmed: bool = False,
    ) -> InventoryTransaction | None:
        """submit, insert and reconcile; re-raises the write error after rollback."""
        handle = self.submit(draft, actor, confirm=confirm, confirmed=confirmed)
        if handle is None:
            return None
        try:
            tx = await self.ledger.insert_transaction(handle.payload)
        except BaseException as e:
            # any failure, cancellation included, rolls the placeholder back
            error = e if isinstance(e, LedgerError) else RemoteError(str(e) or type(e).__name__)
            self.reconcile(handle, WriteResult.failed(error))
            raise
        self.reconcile(handle, WriteResult.ok(tx))
        return tx

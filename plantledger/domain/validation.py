"""
Stock movement validation.

Hard rules run in order and the first failure wins:
1. known product
2. quantity > 0 and <= ceiling
3. adjustment needs an observation
4. outbound needs a justification
5. capability check for the movement type

Only then is the soft insufficient-balance gate offered for outbound and sale.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping

from plantledger.domain.entities import Actor, NewTransaction, Product, TransactionDraft
from plantledger.domain.errors import (
    InsufficientBalance,
    InvalidQuantity,
    MissingJustification,
    PermissionDenied,
    UnknownProduct,
)
from plantledger.domain.policy import PolicyEngine, transaction_action
from plantledger.domain.quantities import UnitPolicy
from plantledger.rules.models import InventoryRules

logger = logging.getLogger(__name__)

ConfirmCallback = Callable[[InsufficientBalance], bool]

OUTFLOW_TYPES = frozenset({"outbound", "sale"})


def adjustment_delta(target: float, current: float) -> float:
    """
    Convert an entered target balance into the signed delta to record.

    An adjustment form asks for the balance the product should end up with,
    so the stored quantity is target - current, not the entered value.
    """
    return round(target - current, 3)


def clip_text(value: str, max_length: int) -> str:
    return value.strip()[:max_length]


class TransactionValidator:
    def __init__(
        self,
        policy: PolicyEngine,
        rules: InventoryRules | None = None,
        units: UnitPolicy | None = None,
    ):
        self.policy = policy
        self.rules = rules or InventoryRules()
        self.units = units or UnitPolicy(
            integer_units=frozenset(u.upper() for u in self.rules.integer_units),
            decimals=self.rules.fractional_decimals,
        )

    def validate(
        self,
        draft: TransactionDraft,
        actor: Actor,
        products: Mapping[str, Product],
        current_balance: float,
        confirm: ConfirmCallback | None = None,
        confirmed: bool = False,
    ) -> NewTransaction | None:
        """
        Validate a draft and build the insert payload.

        Returns None when the confirm callback declines the soft gate.
        Raises InsufficientBalance when the gate applies, no callback was
        given and the caller has not already confirmed.
        """
        product = products.get(draft.product_id)
        if product is None:
            raise UnknownProduct(f"Unknown product: {draft.product_id}", field="product_id")

        quantity = self.units.normalize(product.unit, draft.quantity_text)
        if quantity > self.rules.max_quantity:
            raise InvalidQuantity(
                f"Quantity cannot exceed {self.rules.max_quantity:g}", field="quantity"
            )

        observation = clip_text(draft.observation, self.rules.metadata_max_length)
        justification = clip_text(draft.justification, self.rules.metadata_max_length)
        customer = clip_text(draft.customer, self.rules.customer_max_length)

        if draft.tx_type == "adjustment" and not observation:
            raise MissingJustification("Adjustments need an observation", field="observation")
        if draft.tx_type == "outbound" and not justification:
            raise MissingJustification("Outbound needs a justification", field="justification")

        if not self.policy.can(actor.role, transaction_action(draft.tx_type)):
            raise PermissionDenied(
                f"Role {actor.role} may not record {draft.tx_type} movements"
            )

        metadata: dict[str, str] = {}
        if draft.tx_type == "adjustment":
            delta = adjustment_delta(quantity, current_balance)
            if delta == 0:
                raise InvalidQuantity(
                    "Balance already equals the entered amount", field="quantity"
                )
            quantity = delta
            metadata["observation"] = observation
        elif draft.tx_type == "outbound":
            metadata["justification"] = justification
        elif draft.tx_type == "sale" and customer:
            metadata["customer"] = customer

        if (
            draft.tx_type in OUTFLOW_TYPES
            and current_balance < quantity
            and not confirmed
        ):
            gate = InsufficientBalance(product.id, current_balance, quantity)
            if confirm is None:
                raise gate
            if not confirm(gate):
                logger.info("Outflow of %s for %s declined at balance gate", quantity, product.id)
                return None

        return NewTransaction(
            product_id=product.id,
            quantity=quantity,
            unit=product.unit,
            tx_type=draft.tx_type,
            created_by=actor.id,
            metadata=metadata,
        )

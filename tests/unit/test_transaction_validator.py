"""
Tests for TransactionValidator: rule order, the adjustment conversion and
the soft insufficient-balance gate.
"""

import pytest

from plantledger.domain.entities import InventoryTransaction, TransactionDraft
from plantledger.domain.errors import (
    InsufficientBalance,
    InvalidQuantity,
    MissingJustification,
    PermissionDenied,
    UnknownProduct,
)
from plantledger.domain.projection import signed_quantity
from plantledger.domain.validation import TransactionValidator, adjustment_delta


@pytest.fixture
def validator(policy, rules):
    return TransactionValidator(policy, rules.inventory)


def draft(tx_type="inbound", qty="5", product_id="p-heart", **meta):
    return TransactionDraft(product_id=product_id, tx_type=tx_type, quantity_text=qty, **meta)


class TestAdjustmentDelta:
    def test_delta_is_target_minus_current(self):
        assert adjustment_delta(50, 20) == 30
        assert adjustment_delta(5, 20) == -15

    def test_rounded_to_three_places(self):
        assert adjustment_delta(1.1, 0.2) == pytest.approx(0.9)
        assert adjustment_delta(10.0004, 0) == 10.0

    @pytest.mark.parametrize(
        "current,target",
        [(0, 10), (20, 5), (-7.25, 3.5), (123.456, 0.001), (999.999, 1000)],
    )
    def test_reprojection_reaches_target(self, current, target):
        delta = adjustment_delta(target, current)
        tx = InventoryTransaction(
            id="t", product_id="p", quantity=delta, unit="KG", tx_type="adjustment",
            created_at="2026-10-18T10:00:00",
        )
        assert current + signed_quantity(tx) == pytest.approx(target, abs=1e-6)


class TestHardRules:
    def test_unknown_product_first(self, validator, admin, catalog):
        # an invalid quantity too, but the product rule wins
        with pytest.raises(UnknownProduct):
            validator.validate(draft(product_id="nope", qty="-1"), admin, catalog, 0)

    @pytest.mark.parametrize("qty", ["0", "-2", "abc", "1000000"])
    def test_invalid_quantity(self, validator, operator, catalog, qty):
        with pytest.raises(InvalidQuantity):
            validator.validate(draft(qty=qty), operator, catalog, 0)

    def test_ceiling_is_inclusive(self, validator, operator, catalog):
        payload = validator.validate(draft(qty="999999"), operator, catalog, 0)
        assert payload.quantity == 999999

    def test_adjustment_needs_observation(self, validator, admin, catalog):
        with pytest.raises(MissingJustification) as exc:
            validator.validate(draft("adjustment", observation="   "), admin, catalog, 0)
        assert exc.value.field == "observation"

    def test_outbound_needs_justification(self, validator, operator, catalog):
        with pytest.raises(MissingJustification) as exc:
            validator.validate(draft("outbound"), operator, catalog, 100)
        assert exc.value.field == "justification"

    def test_missing_observation_before_permission(self, validator, operator, catalog):
        with pytest.raises(MissingJustification):
            validator.validate(draft("adjustment"), operator, catalog, 0)

    def test_adjustment_requires_admin(self, validator, operator, catalog):
        with pytest.raises(PermissionDenied):
            validator.validate(draft("adjustment", observation="count"), operator, catalog, 0)

    def test_viewer_cannot_record(self, validator, viewer, catalog):
        with pytest.raises(PermissionDenied):
            validator.validate(draft("inbound"), viewer, catalog, 0)


class TestPayload:
    def test_inbound(self, validator, operator, catalog):
        payload = validator.validate(draft(qty="2,6"), operator, catalog, 0)
        assert payload.quantity == 3  # UN rounds half-up
        assert payload.unit == "UN"
        assert payload.created_by == operator.id
        assert payload.metadata == {}

    def test_adjustment_records_delta(self, validator, admin, catalog):
        payload = validator.validate(
            draft("adjustment", qty="12,5", product_id="p-liver", observation="recount"),
            admin, catalog, current_balance=20,
        )
        assert payload.quantity == pytest.approx(-7.5)
        assert payload.metadata == {"observation": "recount"}

    def test_adjustment_to_same_balance_rejected(self, validator, admin, catalog):
        with pytest.raises(InvalidQuantity):
            validator.validate(
                draft("adjustment", qty="20", observation="recount"), admin, catalog, 20
            )

    def test_metadata_is_truncated(self, validator, operator, catalog):
        payload = validator.validate(
            draft("outbound", justification="x" * 500), operator, catalog, 100
        )
        assert len(payload.metadata["justification"]) == 200

        payload = validator.validate(draft("sale", customer="c" * 300), operator, catalog, 100)
        assert len(payload.metadata["customer"]) == 100

    def test_only_relevant_field_recorded(self, validator, operator, catalog):
        payload = validator.validate(
            draft("sale", customer=" ACME ", justification="ignored"), operator, catalog, 100
        )
        assert payload.metadata == {"customer": "ACME"}


class TestBalanceGate:
    def test_outbound_over_balance_asks_for_confirmation(self, validator, operator, catalog):
        asked = []

        def confirm(gate):
            asked.append(gate)
            return True

        payload = validator.validate(
            draft("outbound", qty="30", justification="spoiled"),
            operator, catalog, current_balance=20, confirm=confirm,
        )
        assert payload is not None
        assert payload.quantity == 30
        assert len(asked) == 1
        assert asked[0].balance == 20
        assert asked[0].requested == 30

    def test_declined_gate_aborts_without_error(self, validator, operator, catalog):
        payload = validator.validate(
            draft("sale", qty="30"), operator, catalog, current_balance=20, confirm=lambda g: False
        )
        assert payload is None

    def test_gate_raised_without_callback(self, validator, operator, catalog):
        with pytest.raises(InsufficientBalance):
            validator.validate(draft("sale", qty="30"), operator, catalog, current_balance=20)

    def test_already_confirmed_skips_gate(self, validator, operator, catalog):
        payload = validator.validate(
            draft("sale", qty="30"), operator, catalog, current_balance=20, confirmed=True
        )
        assert payload.quantity == 30

    def test_no_gate_within_balance_or_for_inbound(self, validator, operator, catalog):
        def refuse(gate):
            raise AssertionError("should not ask")

        assert validator.validate(draft("sale", qty="20"), operator, catalog, 20, refuse)
        assert validator.validate(draft("inbound", qty="30"), operator, catalog, 0, refuse)

    def test_gate_only_after_hard_rules(self, validator, operator, catalog):
        with pytest.raises(MissingJustification):
            validator.validate(
                draft("outbound", qty="30"), operator, catalog, 20, confirm=lambda g: True
            )

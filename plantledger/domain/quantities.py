"""
Quantity normalization and display formatting.

Integer-counted units (by default only "UN") hold whole numbers; every other
unit keeps up to three decimal places. Rounding is half-up in both cases.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from plantledger.domain.errors import InvalidQuantity
from plantledger.rules.models import LedgerRules


@dataclass(frozen=True)
class UnitPolicy:
    """Per-unit rounding and formatting settings."""

    integer_units: frozenset[str] = field(default_factory=lambda: frozenset({"UN"}))
    decimals: int = 3
    decimal_separator: str = ","
    group_separator: str = "."

    @classmethod
    def from_rules(cls, rules: LedgerRules) -> UnitPolicy:
        return cls(
            integer_units=frozenset(u.upper() for u in rules.inventory.integer_units),
            decimals=rules.inventory.fractional_decimals,
            decimal_separator=rules.formatting.decimal_separator,
            group_separator=rules.formatting.group_separator,
        )

    def is_integer_unit(self, unit: str) -> bool:
        return unit.strip().upper() in self.integer_units

    def places(self, unit: str) -> int:
        return 0 if self.is_integer_unit(unit) else self.decimals

    def round(self, unit: str, value: float | Decimal) -> float:
        return float(_quantize(Decimal(str(value)), self.places(unit)))

    def normalize(
        self, unit: str, raw: str | float, require_positive: bool = True
    ) -> float:
        """
        Parse raw input and round it for the unit.

        Accepts "," or "." as decimal separator. Raises InvalidQuantity when
        the value is unparsable, non-finite, negative for an integer unit, or
        not positive while a positive value is required.
        """
        value = parse_decimal(raw)
        rounded = _quantize(value, self.places(unit))

        if self.is_integer_unit(unit) and rounded < 0:
            raise InvalidQuantity(
                f"Quantity for unit {unit} cannot be negative", field="quantity"
            )
        if require_positive and rounded <= 0:
            raise InvalidQuantity("Quantity must be greater than zero", field="quantity")
        return float(rounded)

    def format(self, unit: str, value: float) -> str:
        """Grouped display string: 0 decimals for integer units, exactly 3 otherwise."""
        places = self.places(unit)
        rounded = _quantize(Decimal(str(value)), places)
        if rounded == 0:
            rounded = abs(rounded)  # no "-0"
        text = f"{rounded:,.{places}f}"
        # swap to the configured separators via a placeholder
        return (
            text.replace(",", "\0")
            .replace(".", self.decimal_separator)
            .replace("\0", self.group_separator)
        )


DEFAULT_UNIT_POLICY = UnitPolicy()


def parse_decimal(raw: str | float) -> Decimal:
    if isinstance(raw, (int, float)):
        text = repr(raw)
    else:
        text = raw.strip().replace(",", ".")
    if not text:
        raise InvalidQuantity("Quantity is required", field="quantity")
    try:
        value = Decimal(text)
    except InvalidOperation as e:
        raise InvalidQuantity(f"Not a number: {raw!r}", field="quantity") from e
    if not value.is_finite():
        raise InvalidQuantity("Quantity must be a finite number", field="quantity")
    return value


def _quantize(value: Decimal, places: int) -> Decimal:
    try:
        return value.quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP)
    except InvalidOperation as e:
        raise InvalidQuantity("Quantity out of range", field="quantity") from e


# --- Module-level helpers bound to the default policy ---


def is_integer_unit(unit: str) -> bool:
    return DEFAULT_UNIT_POLICY.is_integer_unit(unit)


def normalize_quantity(unit: str, raw: str | float, require_positive: bool = True) -> float:
    return DEFAULT_UNIT_POLICY.normalize(unit, raw, require_positive)


def format_quantity(unit: str, value: float) -> str:
    return DEFAULT_UNIT_POLICY.format(unit, value)

from __future__ import annotations

from collections.abc import Mapping

from plantledger.domain.entities import (
    Product,
    ProductionDraft,
    ProductionItem,
    ProgressBand,
    ValidatedBatch,
)
from plantledger.domain.errors import EmptyBatch, InvalidQuantity, UnknownProduct
from plantledger.domain.quantities import DEFAULT_UNIT_POLICY, UnitPolicy, parse_decimal
from plantledger.rules.models import ProductionRules, ProgressBands


def compute_item(product: Product, animal_count: int, produced: float) -> ProductionItem:
    """Target, variance and per-animal average for one product of a batch."""
    target = round(animal_count * product.meta_per_animal, 3)
    average = round(produced / animal_count, 3) if animal_count else 0.0
    return ProductionItem(
        product_id=product.id,
        produced=produced,
        target=target,
        variance=round(produced - target, 3),
        average=average,
    )


def progress_ratio(produced: float, target: float) -> float:
    if target <= 0:
        return 0.0
    return min(max(produced / target, 0.0), 1.0)


def progress_band(ratio: float, bands: ProgressBands | None = None) -> ProgressBand:
    bands = bands or ProgressBands()
    if ratio >= bands.good:
        return "good"
    if ratio >= bands.warning:
        return "warning"
    return "critical"


def efficiency_percent(produced: float, target: float) -> int:
    return round(produced / target * 100) if target > 0 else 0


def parse_animal_count(raw: str, rules: ProductionRules) -> int:
    value = parse_decimal(raw)
    if value != value.to_integral_value():
        raise InvalidQuantity("Animal count must be a whole number", field="animal_count")
    count = int(value)
    if not rules.min_animal_count <= count <= rules.max_animal_count:
        raise InvalidQuantity(
            f"Animal count must be between {rules.min_animal_count} "
            f"and {rules.max_animal_count}",
            field="animal_count",
        )
    return count


def build_batch(
    draft: ProductionDraft,
    products: Mapping[str, Product],
    rules: ProductionRules | None = None,
    units: UnitPolicy = DEFAULT_UNIT_POLICY,
) -> ValidatedBatch:
    """
    Validate a batch draft and compute its items.

    Blank and non-positive produced quantities are dropped; at least one
    positive item must remain.
    """
    rules = rules or ProductionRules()
    animal_count = parse_animal_count(draft.animal_count_text, rules)

    if not draft.produced:
        raise EmptyBatch("Select at least one product", field="produced")

    items = []
    for product_id, raw in draft.produced.items():
        product = products.get(product_id)
        if product is None:
            raise UnknownProduct(f"Unknown product: {product_id}", field="produced")
        if not raw.strip():
            continue
        produced = units.normalize(product.unit, raw, require_positive=False)
        if produced <= 0:
            continue
        items.append(compute_item(product, animal_count, produced))

    if not items:
        raise EmptyBatch("Enter a produced quantity for at least one product", field="produced")

    return ValidatedBatch(prod_date=draft.prod_date, animal_count=animal_count, items=items)

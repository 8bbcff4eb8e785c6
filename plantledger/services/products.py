from __future__ import annotations

import re
from collections.abc import Iterable

from pydantic import BaseModel

from plantledger.domain.entities import Product
from plantledger.domain.errors import InvalidProduct, InvalidQuantity
from plantledger.domain.quantities import parse_decimal
from plantledger.rules.models import ProductCatalogRules


class ProductForm(BaseModel):
    """Raw product admin input."""

    name: str
    unit: str
    meta_per_animal_text: str = "0"


def validate_product(
    form: ProductForm,
    existing: Iterable[Product],
    rules: ProductCatalogRules | None = None,
    exclude_id: str | None = None,
) -> dict:
    """
    Validate a product form and return the row to store.

    Name+unit must be unique (name compared case-insensitively, unit
    upper-cased), ignoring the product being edited.
    """
    rules = rules or ProductCatalogRules()

    name = " ".join(form.name.split())
    if not rules.name_min_length <= len(name) <= rules.name_max_length:
        raise InvalidProduct(
            f"Name must have between {rules.name_min_length} and {rules.name_max_length} characters",
            field="name",
        )
    if not re.match(rules.name_pattern, name):
        raise InvalidProduct("Name may only hold letters, digits, spaces, '-' and '.'", field="name")

    unit = form.unit.strip().upper()
    if not unit:
        raise InvalidProduct("Unit is required", field="unit")
    if len(unit) > rules.unit_max_length:
        raise InvalidProduct(
            f"Unit cannot exceed {rules.unit_max_length} characters", field="unit"
        )

    text = form.meta_per_animal_text.strip() or "0"
    try:
        meta = float(parse_decimal(text))
    except InvalidQuantity as e:
        raise InvalidProduct("Target per animal must be a number", field="meta_per_animal") from e
    if not 0 <= meta <= rules.max_meta_per_animal:
        raise InvalidProduct(
            f"Target per animal must be between 0 and {rules.max_meta_per_animal:g}",
            field="meta_per_animal",
        )

    for p in existing:
        if p.id != exclude_id and p.name.casefold() == name.casefold() and p.unit.upper() == unit:
            raise InvalidProduct(f"{name} ({unit}) already exists", field="name")

    return {"name": name, "unit": unit, "meta_per_animal": meta}

"""
Report export to CSV and JSON.

With a product filter the export is the daily breakdown; without one it is
the per-product totals. Numbers carry two decimals in CSV.
"""

from __future__ import annotations

import csv
import io
import json
from collections.abc import Sequence
from datetime import date
from typing import Literal

from plantledger.domain.reports import DayTotals, ProductTotals
from plantledger.rules.models import FormattingRules

ExportFormat = Literal["csv", "json"]

DAILY_HEADER = ["Date", "Animals", "Produced", "Target", "Variance", "Compliance_%"]
PRODUCT_HEADER = ["Product", "Unit", "Produced", "Target", "Variance", "Compliance_%"]


def compliance_percent(produced: float, target: float) -> float:
    return produced / target * 100 if target > 0 else 0.0


def _number(value: float, formatting: FormattingRules) -> str:
    return f"{value:.2f}".replace(".", formatting.decimal_separator)


def daily_rows(days: Sequence[DayTotals]) -> list[dict]:
    return [
        {
            "day": d.day.isoformat(),
            "animal_count": d.animal_count,
            "produced": round(d.produced, 3),
            "target": round(d.target, 3),
            "variance": round(d.variance, 3),
            "compliance": round(compliance_percent(d.produced, d.target), 2),
        }
        for d in days
    ]


def product_rows(totals: Sequence[ProductTotals]) -> list[dict]:
    return [
        {
            "product_id": t.product_id,
            "name": t.name,
            "unit": t.unit,
            "produced": round(t.produced, 3),
            "target": round(t.target, 3),
            "variance": round(t.variance, 3),
            "compliance": round(compliance_percent(t.produced, t.target), 2),
        }
        for t in totals
    ]


def export_csv(
    days: Sequence[DayTotals] | None,
    totals: Sequence[ProductTotals],
    formatting: FormattingRules | None = None,
) -> str:
    """Daily breakdown when `days` is given, per-product totals otherwise."""
    formatting = formatting or FormattingRules()
    output = io.StringIO()
    writer = csv.writer(output, delimiter=formatting.csv_delimiter, lineterminator="\n")

    if days is not None:
        writer.writerow(DAILY_HEADER)
        for d in days:
            writer.writerow(
                [
                    d.day.strftime(formatting.export_date_format),
                    d.animal_count,
                    _number(d.produced, formatting),
                    _number(d.target, formatting),
                    _number(d.variance, formatting),
                    _number(compliance_percent(d.produced, d.target), formatting),
                ]
            )
    else:
        writer.writerow(PRODUCT_HEADER)
        for t in totals:
            writer.writerow(
                [
                    t.name,
                    t.unit,
                    _number(t.produced, formatting),
                    _number(t.target, formatting),
                    _number(t.variance, formatting),
                    _number(compliance_percent(t.produced, t.target), formatting),
                ]
            )
    return output.getvalue()


def export_json(days: Sequence[DayTotals] | None, totals: Sequence[ProductTotals]) -> str:
    if days is not None:
        content = {"report_type": "daily_breakdown", "data": daily_rows(days)}
    else:
        content = {"report_type": "totals_per_product", "data": product_rows(totals)}
    return json.dumps(content, indent=2, ensure_ascii=False)


def export_filename(today: date, fmt: ExportFormat) -> str:
    return f"production_report_{today:%Y%m%d}.{fmt}"

import json
from datetime import date

from plantledger.domain.export import export_csv, export_filename, export_json
from plantledger.domain.reports import DayTotals, ProductTotals

DAYS = [
    DayTotals(day=date(2026, 10, 18), animal_count=20, produced=25, target=20, variance=5),
    DayTotals(day=date(2026, 10, 17), animal_count=10, produced=8.5, target=10, variance=-1.5),
]

TOTALS = [
    ProductTotals(product_id="a", name="Tongue; smoked", unit="KG", produced=33.5, target=30,
                  variance=3.5),
    ProductTotals(product_id="b", name="Heart", unit="UN", produced=10, target=0, variance=10),
]


class TestCsv:
    def test_daily_breakdown(self):
        lines = export_csv(DAYS, TOTALS).splitlines()
        assert lines[0] == "Date;Animals;Produced;Target;Variance;Compliance_%"
        assert lines[1] == "18/10/2026;20;25,00;20,00;5,00;125,00"
        assert lines[2] == "17/10/2026;10;8,50;10,00;-1,50;85,00"

    def test_per_product_totals(self):
        lines = export_csv(None, TOTALS).splitlines()
        assert lines[0] == "Product;Unit;Produced;Target;Variance;Compliance_%"
        # the delimiter inside a name is quoted, not split
        assert lines[1] == '"Tongue; smoked";KG;33,50;30,00;3,50;111,67'
        assert lines[2] == "Heart;UN;10,00;0,00;10,00;0,00"

    def test_empty_report_keeps_header(self):
        assert export_csv([], []) == "Date;Animals;Produced;Target;Variance;Compliance_%\n"


class TestJson:
    def test_daily_breakdown_tag(self):
        content = json.loads(export_json(DAYS, TOTALS))
        assert content["report_type"] == "daily_breakdown"
        assert content["data"][0] == {
            "day": "2026-10-18",
            "animal_count": 20,
            "produced": 25,
            "target": 20,
            "variance": 5,
            "compliance": 125.0,
        }

    def test_per_product_tag(self):
        content = json.loads(export_json(None, TOTALS))
        assert content["report_type"] == "totals_per_product"
        assert [r["name"] for r in content["data"]] == ["Tongue; smoked", "Heart"]
        assert content["data"][0]["compliance"] == 111.67


def test_filename_carries_date():
    assert export_filename(date(2026, 10, 18), "csv") == "production_report_20261018.csv"

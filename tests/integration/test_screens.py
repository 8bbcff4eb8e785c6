"""
Headless screen models driven over the in-memory backend.
"""

import asyncio
import json
from datetime import date, timedelta

import pytest

from plantledger.domain.entities import ProductionDraft, TransactionDraft
from plantledger.domain.errors import PermissionDenied
from plantledger.domain.timeline import BatchRow, DayHeader
from plantledger.services.ledger import TransactionFilters
from plantledger.ui.context import ServiceContext
from plantledger.ui.inventory import InventoryScreen
from plantledger.ui.production import ProductionScreen
from plantledger.ui.report import ReportScreen, quick_range

TODAY = date(2026, 10, 18)


def run(coro):
    return asyncio.run(coro)


class TestInventoryScreen:
    def test_open_uses_recent_window(self, ctx, backend, clock):
        backend.add_transaction(product_id="p-heart", quantity=4, tx_type="inbound")
        backend.add_transaction(
            product_id="p-heart",
            quantity=9,
            tx_type="inbound",
            created_at=clock.now() - timedelta(days=40),
        )
        screen = InventoryScreen(ctx)
        report = run(screen.open())

        assert report.ok
        state = ctx.ledger.inventory
        assert state.filters.date_from == TODAY - timedelta(days=30)
        assert [t.quantity for t in state.transactions] == [4]
        # the balance still counts the older movement
        assert state.balances["p-heart"].signed_total == 13
        assert isinstance(state.rows[0], DayHeader)
        assert state.rows[0].title == "Today"

    def test_one_submit_at_a_time(self, ctx, backend):
        backend.latency = 0.01
        screen = InventoryScreen(ctx)
        draft = TransactionDraft(product_id="p-heart", tx_type="inbound", quantity_text="3")

        async def scenario():
            await screen.open()
            return await asyncio.gather(screen.submit(draft), screen.submit(draft))

        first, second = run(scenario())
        assert first is not None
        assert second is None
        assert backend.calls.count("insert_transaction") == 1
        assert ctx.ledger.inventory.saving is False

    def test_write_landing_after_close_leaves_no_placeholder(self, ctx, backend):
        backend.latency = 0.01
        screen = InventoryScreen(ctx)
        draft = TransactionDraft(product_id="p-heart", tx_type="inbound", quantity_text="3")

        async def scenario():
            await screen.open()
            task = asyncio.create_task(screen.submit(draft))
            await asyncio.sleep(0)
            screen.close()
            tx = await task
            await screen.open()
            return tx

        tx = run(scenario())
        ids = [t.id for t in ctx.ledger.inventory.transactions]
        assert not any(i.startswith("tmp-") for i in ids)
        assert ids.count(tx.id) == 1
        assert ctx.ledger.inventory.inflight == set()

    def test_submit_requires_sign_in(self, ctx):
        ctx.sign_out()
        screen = InventoryScreen(ctx)
        draft = TransactionDraft(product_id="p-heart", tx_type="inbound", quantity_text="3")
        with pytest.raises(PermissionDenied):
            run(screen.submit(draft))
        assert ctx.ledger.inventory.saving is False

    def test_filters_debounced_to_last_value(self, ctx, backend):
        screen = InventoryScreen(ctx)

        async def scenario():
            await screen.open()
            before = backend.calls.count("fetch_transactions")
            screen.set_filters(TransactionFilters(tx_type="inbound"))
            screen.set_filters(TransactionFilters(tx_type="sale"))
            await screen.filter_debouncer.flush()
            return backend.calls.count("fetch_transactions") - before

        assert run(scenario()) == 1
        assert ctx.ledger.inventory.filters.tx_type == "sale"
        assert ctx.app_state.preferences.inventory_type_filter == "sale"

    def test_close_drops_pending_filter(self, ctx, backend):
        screen = InventoryScreen(ctx)

        async def scenario():
            await screen.open()
            screen.set_filters(TransactionFilters(tx_type="sale"))
            screen.close()
            await asyncio.sleep(ctx.rules.timing.filter_debounce_ms / 1000 + 0.05)

        run(scenario())
        assert ctx.ledger.inventory.alive is False
        assert ctx.ledger.inventory.filters.tx_type is None

    def test_load_more_appends_next_page(self, ctx, backend):
        ctx.rules.inventory.page_size = 2
        for qty in (1, 2, 3):
            backend.add_transaction(product_id="p-heart", quantity=qty, tx_type="inbound")
        screen = InventoryScreen(ctx)

        async def scenario():
            await screen.open()
            return await screen.load_more()

        fresh = run(scenario())
        assert [t.quantity for t in fresh] == [1]
        assert len(ctx.ledger.inventory.transactions) == 3
        assert ctx.ledger.inventory.has_more is False

    def test_undo_from_screen(self, ctx, backend):
        backend.add_transaction(
            product_id="p-liver", quantity=2.5, tx_type="inbound", created_by="user-1"
        )
        screen = InventoryScreen(ctx)

        async def scenario():
            await screen.open()
            return await screen.undo_last()

        undone = run(scenario())
        assert undone.quantity == 2.5
        assert ctx.ledger.inventory.transactions == []


class TestProductionScreen:
    def test_preview_after_debounce(self, ctx):
        screen = ProductionScreen(ctx)

        async def scenario():
            await screen.open()
            screen.select_product("p-heart")
            screen.select_product("p-liver")
            screen.set_animal_count("10")
            screen.set_quantity("p-heart", "15")
            screen.set_quantity("p-liver", "16,2")
            await screen.preview_debouncer.flush()

        run(scenario())
        by_product = {p.product.id: p for p in screen.preview}
        heart, liver = by_product["p-heart"], by_product["p-liver"]
        assert (heart.item.target, heart.band) == (20, "warning")
        assert (liver.item.target, liver.band) == (15, "good")
        assert liver.item.variance == pytest.approx(1.2)

    def test_unparseable_input_previews_as_zero(self, ctx):
        screen = ProductionScreen(ctx)
        run(screen.open())
        screen.select_product("p-heart")
        screen.animal_count_text = "ten"
        screen.inputs["p-heart"] = "abc"
        (preview,) = screen.compute_preview()
        assert preview.item.produced == 0
        assert preview.band == "critical"

    def test_save_resets_form_and_refreshes_balances(self, ctx):
        screen = ProductionScreen(ctx)

        async def scenario():
            await screen.open()
            screen.select_product("p-heart")
            screen.set_animal_count("10")
            screen.set_quantity("p-heart", "15")
            return await screen.save(TODAY)

        batch = run(scenario())
        assert batch.animal_count == 10
        assert screen.inputs == {}
        assert screen.animal_count_text == ""
        assert not screen.preview_debouncer.pending
        assert ctx.ledger.inventory.balances["p-heart"].signed_total == 15

        rows = screen.rows()
        assert isinstance(rows[0], DayHeader) and rows[0].count == 1
        assert isinstance(rows[1], BatchRow) and rows[1].id == batch.id

        stats = screen.stats()
        assert (stats.total, stats.this_month, stats.average_animals) == (1, 1, 10)
        assert stats.by_unit["UN"].efficiency == 75

    def test_deselect_drops_product_from_preview(self, ctx):
        screen = ProductionScreen(ctx)

        async def scenario():
            await screen.open()
            screen.select_product("p-heart")
            screen.select_product("p-liver")
            screen.set_animal_count("10")
            screen.deselect_product("p-liver")
            await screen.preview_debouncer.flush()

        run(scenario())
        assert [p.product.id for p in screen.preview] == ["p-heart"]

    def test_expand_caches_details(self, ctx, backend):
        screen = ProductionScreen(ctx)

        async def scenario():
            await screen.open()
            screen.select_product("p-liver")
            screen.set_animal_count("4")
            screen.set_quantity("p-liver", "5")
            batch = await screen.save(TODAY)
            ctx.ledger.production.items_cache.clear()
            first = await screen.expand(batch.id)
            second = await screen.expand(batch.id)
            return first, second

        first, second = run(scenario())
        assert first == second
        assert (first[0].product_name, first[0].target) == ("Liver", 6)
        assert backend.calls.count("fetch_item_summary") == 1

    def test_history_filter_remembered(self, ctx):
        screen = ProductionScreen(ctx)
        screen.set_history_products(["p-liver"])
        assert ctx.app_state.preferences.history_product_ids == ["p-liver"]
        assert ProductionScreen(ctx).history_product_ids == ["p-liver"]


class TestReportScreen:
    @pytest.fixture
    def with_batches(self, ctx, admin, operator):
        async def seed():
            await ctx.ledger.load_catalog()
            await ctx.ledger.save_production(
                operator,
                ProductionDraft(
                    prod_date=TODAY, animal_count_text="10", produced={"p-heart": "18"}
                ),
            )
            await ctx.ledger.save_production(
                admin,
                ProductionDraft(
                    prod_date=TODAY - timedelta(days=2),
                    animal_count_text="8",
                    produced={"p-heart": "16", "p-liver": "10"},
                ),
            )

        run(seed())
        return ctx

    def test_quick_ranges(self):
        assert quick_range("7d", TODAY) == (date(2026, 10, 11), TODAY)
        assert quick_range("month", TODAY) == (date(2026, 10, 1), TODAY)

    def test_totals_need_product_filter(self, with_batches):
        screen = ReportScreen(with_batches)
        run(screen.load_quick("7d"))
        assert screen.totals() is None
        assert screen.chart() == []
        assert screen.chart_unit() is None

        screen.product_ids = ["p-heart"]
        totals = screen.totals()
        assert totals.animal_count == 18
        assert totals.produced == 34
        assert totals.target == 36
        assert screen.chart_unit() == "UN"

    def test_mixed_units(self, with_batches):
        screen = ReportScreen(with_batches)
        run(screen.load_quick("30d"))
        screen.product_ids = ["p-heart", "p-liver"]
        assert screen.chart_unit() == "Mixed"
        screen.unit = "KG"
        assert screen.chart_unit() == "KG"

    def test_sort_preference(self, with_batches):
        screen = ReportScreen(with_batches)
        run(screen.load_quick("7d"))
        screen.set_sort("name")
        assert [p.name for p in screen.per_product()] == ["Heart", "Liver"]
        assert with_batches.app_state.preferences.report_sort == "name"

    def test_export_follows_product_filter(self, with_batches):
        screen = ReportScreen(with_batches)
        run(screen.load_quick("7d"))

        name, content = screen.export("json")
        assert name == "production_report_20261018.json"
        payload = json.loads(content)
        assert payload["report_type"] == "totals_per_product"
        assert [r["name"] for r in payload["data"]] == ["Heart", "Liver"]

        screen.product_ids = ["p-heart"]
        name, content = screen.export("csv")
        assert name.endswith(".csv")
        assert content.splitlines()[1:] == [
            "18/10/2026;10;18,00;20,00;-2,00;90,00",
            "16/10/2026;8;16,00;16,00;0,00;100,00",
        ]


class TestSnapshot:
    def test_persist_and_restore(self, rules, backend, clock, catalog, operator, tmp_path):
        path = tmp_path / "state.json"
        first = ServiceContext.create(rules, backend=backend, clock=clock, snapshot_path=path)
        first.sign_in(operator)
        first.app_state.preferences.inventory_type_filter = "sale"
        run(first.ledger.load_catalog())
        first.persist()

        second = ServiceContext.create(rules, backend=backend, clock=clock, snapshot_path=path)
        assert second.app_state.actor == operator
        assert second.app_state.last_sync == clock.now()
        assert set(second.ledger.inventory.products) == {"p-heart", "p-liver"}
        assert InventoryScreen(second).default_filters().tx_type == "sale"

    def test_sign_out_clears_snapshot(self, rules, backend, clock, operator, tmp_path):
        path = tmp_path / "state.json"
        context = ServiceContext.create(rules, backend=backend, clock=clock, snapshot_path=path)
        context.sign_in(operator)
        context.persist()
        assert path.exists()

        context.sign_out()
        assert not path.exists()
        assert context.app_state.actor is None

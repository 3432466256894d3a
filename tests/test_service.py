from __future__ import annotations

from decimal import Decimal

import pytest

from invest_engine import (
    EngineConfig,
    InsufficientHoldingsError,
    LedgerStoreError,
    PortfolioService,
    ValidationError,
)
from invest_engine.engine.consolidation import ConsolidationStatus
from invest_engine.engine.models import AnomalyKind, AssetType, Operation
from invest_engine.storage import InMemoryLedgerStore


def test_snapshot_is_cached_until_invalidated(service, store):
    first = service.snapshot()
    assert service.snapshot() is first

    # a change made behind the service's back stays invisible until invalidation
    store.append_operation(Operation("BTC", "buy", Decimal("1"), Decimal("100"), AssetType.CRYPTO))
    assert service.find_position("BTC") is None

    service.invalidate()
    assert service.find_position("BTC").total_quantity == Decimal("1")


def test_record_operation_notifies_listeners(service):
    seen = []
    unsubscribe = service.subscribe(seen.append)

    service.record_operation(Operation("BTC", "buy", Decimal("1"), Decimal("100"), AssetType.CRYPTO))
    unsubscribe()
    service.record_operation(Operation("BTC", "buy", Decimal("1"), Decimal("120"), AssetType.CRYPTO))

    assert seen == ["BTC"]
    assert service.find_position("BTC").total_quantity == Decimal("2")


def test_failing_listener_does_not_break_recording(service):
    def broken(key):
        raise RuntimeError("boom")

    service.subscribe(broken)
    service.record_operation(Operation("BTC", "buy", Decimal("1"), Decimal("100"), AssetType.CRYPTO))

    assert service.find_position("BTC") is not None


def test_record_operation_rejects_invalid_input(service):
    with pytest.raises(ValidationError):
        service.record_operation(Operation("BTC", "buy", Decimal("0"), Decimal("100"), AssetType.CRYPTO))

    assert service.find_position("BTC") is None


def test_consolidate_commits_to_store(service, store):
    assert service.duplicates() == ["PETR4"]

    result = service.consolidate("PETR4")

    assert result.status is ConsolidationStatus.CONSOLIDATED
    assert service.duplicates() == []
    assert len(store.get_operations()) == 3
    petr = service.find_position("PETR4")
    assert petr.total_quantity == Decimal("12")
    assert petr.total_invested == Decimal("125")
    assert service.consolidate("PETR4").is_noop


def test_consolidate_many_defaults_to_all_duplicates(service):
    service.record_operation(Operation("HGLG11", "buy", Decimal("1"), Decimal("160"), AssetType.FII))

    results = service.consolidate_many()

    assert sorted(r.instrument_key for r in results) == ["HGLG11", "PETR4"]
    assert all(not r.is_noop for r in results)


def test_auto_consolidate_merges_new_buys():
    store = InMemoryLedgerStore([Operation("BTC", "buy", Decimal("1"), Decimal("100"), AssetType.CRYPTO)])
    service = PortfolioService(store, EngineConfig(auto_consolidate=True))

    result = service.record_operation(Operation("BTC", "buy", Decimal("1"), Decimal("300"), AssetType.CRYPTO))

    assert result.status is ConsolidationStatus.CONSOLIDATED
    assert len(store.get_operations()) == 1
    assert store.get_operations()[0].unit_price == Decimal("200")


def test_consolidate_gives_up_when_store_keeps_changing(sample_ledger):
    class RacingStore(InMemoryLedgerStore):
        def replace_operations(self, instrument_key, new_ops, replaced_ids=None):
            return False

    service = PortfolioService(RacingStore(sample_ledger))

    with pytest.raises(LedgerStoreError):
        service.consolidate("PETR4")


def test_anomalies_are_surfaced(service):
    service.record_operation(Operation("ITSA4", "sell", Decimal("3"), Decimal("10"), AssetType.STOCK))

    anomalies = service.anomalies()

    assert [a.kind for a in anomalies] == [AnomalyKind.INCONSISTENT_LEDGER]
    assert all(p.instrument_key != "ITSA4" for p in service.holdings())


def test_plan_rebalancing_uses_default_targets(service):
    plan = service.plan_rebalancing()

    # fii holds 600 of 725 against a 20% target, the largest gap
    assert [s.subject for s in plan.class_suggestions] == ["fii", "stock", "treasury", "crypto"]
    assert plan.class_suggestions[0].action == "sell"
    assert plan.base_amount == Decimal("725")
    assert plan.warnings == ()


def test_plan_rebalancing_with_quotes_and_contribution(service):
    plan = service.plan_rebalancing({"stock": 50, "fii": 50}, base_amount=2000, prices={"PETR4": Decimal("30")})

    assert plan.total_portfolio_value == Decimal("960")
    assert plan.base_amount == Decimal("2000")
    stock = next(s for s in plan.class_suggestions if s.subject == "stock")
    assert stock.current_value == Decimal("360")
    assert stock.action == "buy"


def test_preview_sale(service):
    result = service.preview_sale("HGLG11", 1, 150)

    assert result.profit_loss == 0
    with pytest.raises(InsufficientHoldingsError):
        service.preview_sale("MISSING", 1, 10)


def test_preview_sale_rejects_negative_quantity(service):
    with pytest.raises(ValidationError):
        service.preview_sale("PETR4", -5, 10)


def test_lot_summary_tracks_consolidation(service):
    before = service.lot_summary("PETR4")
    assert len(before.lots) == 2
    assert before.total_quantity == Decimal("15")
    assert before.total_value == Decimal("200")

    service.consolidate("PETR4")

    after = service.lot_summary("PETR4")
    assert len(after.lots) == 1
    assert after.total_quantity == before.total_quantity
    assert service.lot_summary("MISSING") is None


def test_actionable_suggestions_skip_holds(service):
    plan = service.plan_rebalancing()

    actionable = plan.actionable

    # PETR4 at 125 against 435, HGLG11 at 600 against 145
    assert [(s.subject, s.action) for s in actionable] == [("HGLG11", "sell"), ("PETR4", "buy")]
    # both classes within 2% of 725 of their targets
    balanced = service.plan_rebalancing({"stock": 17, "fii": 83})
    assert balanced.actionable == []


def test_unusable_quote_is_reported_by_allocation(service):
    view = service.allocation(prices={"PETR4": float("nan")})

    assert view.ignored_quotes == ("PETR4",)
    assert view.total_portfolio_value == Decimal("725")


def test_summary_and_metrics(service):
    summary = service.summary()
    metrics = service.metrics()

    assert summary.total_invested == Decimal("725")
    assert summary.active_count == 2
    # PETR4 sold 3 @25 against an average cost of 200/15
    assert metrics.total_trades == 1
    assert metrics.profitable_trades == 1

"""Tests for signal storage and the outcome tracker."""

from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from signal_analyzer.models import HistoricalBar
from signal_analyzer.signals import (
    AnalysisOutcome,
    AnalysisResult,
    OutcomeTracker,
    SignalStatus,
    SignalStorage,
    TradeSignal,
    evaluate_signal,
)

T0 = datetime(2024, 3, 1, 12, tzinfo=UTC)


def make_signal(signal_id: str, asset: str = "BTCUSDT", opened: datetime = T0) -> TradeSignal:
    return TradeSignal(
        id=signal_id,
        timestamp=opened,
        asset=asset,
        entry_price=68500,
        stop_loss=67200,
        take_profit_1=70000,
    )


@pytest.fixture
def storage(tmp_path: Path) -> SignalStorage:
    return SignalStorage(tmp_path / "signals.db")


class TestSignalStorage:
    def test_save_and_get(self, storage: SignalStorage) -> None:
        storage.save(make_signal("a"))
        signal = storage.get("a")

        assert signal is not None
        assert signal.asset == "BTCUSDT"
        assert signal.timestamp == T0

    def test_get_missing(self, storage: SignalStorage) -> None:
        assert storage.get("missing") is None

    def test_save_many_upserts(self, storage: SignalStorage) -> None:
        storage.save_many([make_signal("a"), make_signal("b")])
        updated = make_signal("a")
        updated.notes = "revised"
        storage.save_many([updated])

        assert len(storage.list_all()) == 2
        assert storage.get("a").notes == "revised"

    def test_get_by_asset_case_insensitive_oldest_first(self, storage: SignalStorage) -> None:
        storage.save_many(
            [
                make_signal("late", opened=T0 + timedelta(hours=2)),
                make_signal("early", asset="btcusdt"),
                make_signal("other", asset="ETHUSDT"),
            ]
        )
        assert [s.id for s in storage.get_by_asset("BTCUSDT")] == ["early", "late"]

    def test_list_filters(self, storage: SignalStorage) -> None:
        storage.save_many([make_signal("a"), make_signal("b", asset="ETHUSDT")])
        storage.update_status("a", SignalStatus.STOPPED)

        assert [s.id for s in storage.get_active()] == ["b"]
        assert [s.id for s in storage.list_all(status=SignalStatus.STOPPED)] == ["a"]
        assert [s.id for s in storage.list_all(asset="ethusdt")] == ["b"]

    def test_results_round_trip(self, storage: SignalStorage) -> None:
        result = AnalysisResult.for_signal(make_signal("a"), AnalysisOutcome.ACTIVE)
        storage.save_result(result)

        assert storage.get_result("a") == result
        assert storage.get_results("BTCUSDT") == [result]
        assert storage.get_results("ETHUSDT") == []


class TestOutcomeTracker:
    def test_apply_results_updates_status_and_pnl(self, storage: SignalStorage) -> None:
        signals = [make_signal("sl"), make_signal("open")]
        storage.save_many(signals)
        bars = [
            HistoricalBar(timestamp=T0, open=68500, high=69000, low=67000, close=67500),
        ]
        results = [evaluate_signal(signals[0], bars), evaluate_signal(signals[1], bars[:0])]

        changed = OutcomeTracker(storage).apply_results(results)

        assert [s.id for s in changed] == ["sl"]
        stopped = storage.get("sl")
        assert stopped.status == SignalStatus.STOPPED
        assert stopped.pnl == pytest.approx(-1300)
        assert storage.get("open").status == SignalStatus.ACTIVE
        assert storage.get_result("open").outcome == AnalysisOutcome.NO_DATA

    def test_take_profit_completes_and_expired_cancels(self, storage: SignalStorage) -> None:
        storage.save_many([make_signal("tp"), make_signal("old")])
        tp = AnalysisResult.for_signal(make_signal("tp"), AnalysisOutcome.TP2_HIT)
        tp.pnl, tp.pnl_percentage = 2500, 3.65
        old = AnalysisResult.for_signal(make_signal("old"), AnalysisOutcome.EXPIRED)

        OutcomeTracker(storage).apply_results([tp, old])

        assert storage.get("tp").status == SignalStatus.COMPLETED
        assert storage.get("old").status == SignalStatus.CANCELLED

    def test_stats(self, storage: SignalStorage) -> None:
        storage.save_many([make_signal("w"), make_signal("l")])
        win = AnalysisResult.for_signal(make_signal("w"), AnalysisOutcome.TP1_HIT)
        win.pnl, win.pnl_percentage = 1500, 2.19
        loss = AnalysisResult.for_signal(make_signal("l"), AnalysisOutcome.SL_HIT)
        loss.pnl, loss.pnl_percentage = -1300, -1.9
        OutcomeTracker(storage).apply_results([win, loss])

        stats = storage.get_stats()

        assert stats["by_status"] == {"completed": 1, "stopped": 1}
        assert stats["by_outcome"] == {"SL Hit": 1, "TP1 Hit": 1}
        assert stats["pnl"]["total_resolved"] == 2
        assert stats["pnl"]["win_rate"] == 50
        assert stats["pnl"]["avg_pnl_pct"] == pytest.approx(0.145)

    def test_expire_old_signals(self, storage: SignalStorage) -> None:
        storage.save_many(
            [
                make_signal("old", opened=T0 - timedelta(hours=48)),
                make_signal("fresh", opened=T0 - timedelta(hours=1)),
            ]
        )
        expired = OutcomeTracker(storage, expiry_hours=24).expire_old_signals(now=T0)

        assert expired == 1
        assert storage.get("old").status == SignalStatus.CANCELLED
        assert storage.get("fresh").status == SignalStatus.ACTIVE

    def test_expiry_reaches_oldest_beyond_listing_limit(self, storage: SignalStorage) -> None:
        stale = [make_signal(f"stale-{i}", opened=T0 - timedelta(days=30)) for i in range(5)]
        fresh = [make_signal(f"fresh-{i}", opened=T0 - timedelta(minutes=i)) for i in range(1000)]
        storage.save_many(stale + fresh)

        expired = OutcomeTracker(storage, expiry_hours=24).expire_old_signals(now=T0)

        assert expired == 5
        assert all(storage.get(s.id).status == SignalStatus.CANCELLED for s in stale)
        assert len(storage.get_active()) == 1000

    def test_get_active_before_oldest_first(self, storage: SignalStorage) -> None:
        storage.save_many(
            [
                make_signal("newer", opened=T0 - timedelta(hours=2)),
                make_signal("older", opened=T0 - timedelta(hours=5)),
                make_signal("recent", opened=T0),
            ]
        )
        storage.update_status("newer", SignalStatus.STOPPED)

        assert [s.id for s in storage.get_active_before(T0)] == ["older"]

    def test_expiry_disabled_without_window(self, storage: SignalStorage) -> None:
        storage.save(make_signal("old", opened=T0 - timedelta(days=30)))
        assert OutcomeTracker(storage).expire_old_signals(now=T0) == 0

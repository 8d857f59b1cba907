"""Outcome tracker - applies analysis results to stored signals."""

from datetime import datetime, timedelta

import structlog

from signal_analyzer.signals.models import AnalysisResult, SignalStatus, TradeSignal
from signal_analyzer.signals.storage import SignalStorage
from signal_analyzer.utils.timestamps import ensure_utc, utc_now

logger = structlog.get_logger()


class OutcomeTracker:
    """Moves stored signals through their lifecycle as outcomes come in."""

    def __init__(
        self,
        storage: SignalStorage,
        expiry_hours: float | None = None,
    ):
        self.storage = storage
        self.expiry_hours = expiry_hours

    def apply_results(self, results: list[AnalysisResult]) -> list[TradeSignal]:
        """Persist results and update status/PNL of the matching signals.

        Returns the signals whose status changed.
        """
        changed: list[TradeSignal] = []

        for result in results:
            self.storage.save_result(result)

            signal = self.storage.get(result.signal_id)
            if signal is None:
                logger.debug("result_without_signal", signal_id=result.signal_id)
                continue

            previous = signal.status
            signal.apply_result(result)
            if signal.status == previous and result.pnl is None:
                continue

            self.storage.save(signal)
            if signal.status != previous:
                changed.append(signal)
                logger.info(
                    "signal_status_changed",
                    signal_id=signal.id,
                    asset=signal.asset,
                    outcome=result.outcome.value,
                    status=signal.status.value,
                    pnl_pct=signal.pnl_percentage,
                )

        return changed

    def expire_old_signals(self, now: datetime | None = None) -> int:
        """Cancel active signals older than the expiry window.

        Returns count of expired signals.
        """
        if not self.expiry_hours:
            return 0

        now = ensure_utc(now) if now else utc_now()
        cutoff = now - timedelta(hours=self.expiry_hours)

        expired_count = 0
        for signal in self.storage.get_active_before(cutoff):
            if signal.timestamp < cutoff:
                signal.status = SignalStatus.CANCELLED
                self.storage.save(signal)
                expired_count += 1

                logger.debug(
                    "signal_expired",
                    signal_id=signal.id,
                    asset=signal.asset,
                    age_hours=(now - signal.timestamp).total_seconds() / 3600,
                )

        if expired_count:
            logger.info("signals_expired", count=expired_count)

        return expired_count

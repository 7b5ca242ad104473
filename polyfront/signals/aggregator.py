"""
Trade Aggregator

Coalesces signals for the same (account, outcome, side) within a fixed time
window into one net signal, so one logical trade split into many slices is
reacted to once.
"""
import time
from typing import Optional

from ..utils.logger import get_logger
from .models import AggregatedSignal, SignalKey, TradeSignal

logger = get_logger("aggregator")


class TradeAggregator:
    """
    Per-key aggregation windows.

    - One open window per key at a time
    - Windows close on a periodic sweep, never on arrival of a signal
    - A signal arriving after its key's window closed opens a new window
    - Disabled: every signal passes through as a one-member aggregate

    Window state is only mutated synchronously (no awaits), so the
    event loop gives each key exclusive access without a lock.
    """

    def __init__(self, enabled: bool = False, window_seconds: float = 300.0):
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        self.enabled = enabled
        self.window_seconds = window_seconds

        self._open: dict[SignalKey, AggregatedSignal] = {}

        self.windows_opened = 0
        self.windows_sealed = 0

    @property
    def open_windows(self) -> int:
        return len(self._open)

    @property
    def sweep_interval(self) -> float:
        """How often the sweeper should run to close windows promptly."""
        return min(1.0, self.window_seconds / 4)

    def add(self, signal: TradeSignal, now: Optional[float] = None) -> Optional[AggregatedSignal]:
        """
        Add a unique signal.

        Returns:
            A one-member aggregate immediately when disabled, otherwise None
        """
        if not self.enabled:
            return AggregatedSignal.single(signal)

        now = time.time() if now is None else now
        window = self._open.get(signal.key)

        if window is None:
            window = AggregatedSignal(
                account=signal.account,
                outcome_id=signal.outcome_id,
                market_id=signal.market_id,
                side=signal.side,
                window_start=now,
                window_end=now + self.window_seconds
            )
            self._open[signal.key] = window
            self.windows_opened += 1
            logger.debug(
                "Aggregation window opened",
                extra={"account": signal.account, "outcome_id": signal.outcome_id}
            )

        window.add(signal)
        return None

    def sweep(self, now: Optional[float] = None) -> list[AggregatedSignal]:
        """Seal and return every window whose end time has passed."""
        now = time.time() if now is None else now

        expired = [key for key, window in self._open.items() if window.window_end <= now]
        sealed = [self._open.pop(key) for key in expired]

        self.windows_sealed += len(sealed)
        for window in sealed:
            logger.info(
                "Aggregation window sealed",
                extra={
                    "account": window.account,
                    "outcome_id": window.outcome_id,
                    "side": window.side.value,
                    "members": len(window.members),
                    "net_size_usd": window.net_size_usd
                }
            )

        return sealed

    def discard_open(self) -> list[AggregatedSignal]:
        """Drop every open window (used on shutdown)."""
        dropped = list(self._open.values())
        self._open.clear()
        return dropped

    def get_stats(self) -> dict:
        return {
            "enabled": self.enabled,
            "open_windows": self.open_windows,
            "windows_opened": self.windows_opened,
            "windows_sealed": self.windows_sealed
        }

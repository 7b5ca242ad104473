"""
Signal merger.

Deduplicates the union of live and polled signals by trade identity.
"""

from typing import Optional

from ..utils.cache import ExpiringIdCache
from ..utils.logger import get_logger
from .models import TradeSignal

logger = get_logger("merger")


class SignalMerger:
    """
    Forwards each trade identity at most once within the retention horizon.

    When a later copy of an already forwarded trade carries a more advanced
    confirmation state (e.g. polled-confirmed after live-pending), the
    original signal object is upgraded in place.

    The merger is driven by a single consumer task, so its cache is never
    touched concurrently.
    """

    def __init__(self, ttl_seconds: float = 900.0, max_size: int = 50_000):
        self._seen = ExpiringIdCache(ttl_seconds=ttl_seconds, max_size=max_size)

        self.forwarded = 0
        self.duplicates = 0
        self.confirmations_upgraded = 0

    def merge(self, signal: TradeSignal) -> Optional[TradeSignal]:
        """
        Admit one raw signal.

        Returns:
            The signal if it is new, None if it is a duplicate
        """
        original: Optional[TradeSignal] = self._seen.get(signal.id)

        if original is None:
            self._seen.add(signal.id, signal)
            self.forwarded += 1
            return signal

        self.duplicates += 1

        if signal.confirmation_state.rank > original.confirmation_state.rank:
            logger.debug(
                "Upgrading confirmation state",
                extra={
                    "signal_id": signal.id,
                    "from_state": original.confirmation_state.value,
                    "to_state": signal.confirmation_state.value
                }
            )
            original.confirmation_state = signal.confirmation_state
            self.confirmations_upgraded += 1

        return None

    def get_stats(self) -> dict:
        return {
            "forwarded": self.forwarded,
            "duplicates": self.duplicates,
            "confirmations_upgraded": self.confirmations_upgraded,
            "cache_size": len(self._seen)
        }

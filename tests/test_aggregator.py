"""
Tests for time-window aggregation.
"""

import pytest

from polyfront.signals.aggregator import TradeAggregator
from polyfront.signals.models import TradeSide

from builders import OTHER, WATCHED, make_signal


def sig(n: int, size: float = 100.0, **kwargs):
    return make_signal(tx_hash="0x" + f"{n:02x}" * 32, size_usd=size, **kwargs)


class TestDisabled:
    def test_passes_through_as_single_member(self):
        """Disabled aggregation wraps each signal without delay."""
        aggregator = TradeAggregator(enabled=False)
        signal = sig(1, size=250.0)

        aggregated = aggregator.add(signal)

        assert aggregated is not None
        assert aggregated.member_ids == [signal.id]
        assert aggregated.net_size_usd == 250.0
        assert aggregator.open_windows == 0


class TestWindows:
    """Tests for window lifecycle."""

    @pytest.fixture
    def aggregator(self):
        return TradeAggregator(enabled=True, window_seconds=10.0)

    def test_buffers_until_sweep(self, aggregator):
        assert aggregator.add(sig(1), now=100.0) is None
        assert aggregator.add(sig(2), now=105.0) is None

        assert aggregator.sweep(now=109.9) == []

        sealed = aggregator.sweep(now=110.0)
        assert len(sealed) == 1
        assert sealed[0].window_start == 100.0
        assert sealed[0].window_end == 110.0

    def test_net_size_is_sum_of_members(self, aggregator):
        sizes = [120.0, 80.5, 300.0]
        signals = [sig(i, size=s) for i, s in enumerate(sizes)]
        for signal in signals:
            aggregator.add(signal, now=100.0)

        (sealed,) = aggregator.sweep(now=200.0)

        assert sealed.net_size_usd == pytest.approx(sum(sizes))
        assert sealed.member_ids == [s.id for s in signals]

    def test_separate_windows_per_key(self, aggregator):
        aggregator.add(sig(1), now=100.0)
        aggregator.add(sig(2, account=OTHER), now=100.0)
        aggregator.add(sig(3, side=TradeSide.SELL), now=100.0)
        aggregator.add(sig(4, outcome_id="token-2"), now=100.0)

        sealed = aggregator.sweep(now=200.0)

        assert len(sealed) == 4
        assert len({w.key for w in sealed}) == 4

    def test_late_signal_opens_new_window(self, aggregator):
        """A signal after the window sealed never reopens it."""
        aggregator.add(sig(1), now=100.0)
        (first,) = aggregator.sweep(now=110.0)

        aggregator.add(sig(2), now=111.0)
        (second,) = aggregator.sweep(now=121.0)

        assert first.member_ids == [sig(1).id]
        assert second.member_ids == [sig(2).id]
        assert second.window_start == 111.0

    def test_every_member_in_exactly_one_aggregate(self, aggregator):
        ids = []
        sealed = []
        now = 100.0
        for i in range(20):
            signal = sig(i, account=WATCHED if i % 2 else OTHER)
            ids.append(signal.id)
            aggregator.add(signal, now=now)
            now += 3.0
            sealed.extend(aggregator.sweep(now=now))
        sealed.extend(aggregator.sweep(now=now + 100))

        members = [m for window in sealed for m in window.member_ids]
        assert sorted(members) == sorted(ids)

    def test_discard_open(self, aggregator):
        aggregator.add(sig(1), now=100.0)

        dropped = aggregator.discard_open()

        assert len(dropped) == 1
        assert aggregator.open_windows == 0
        assert aggregator.sweep(now=1000.0) == []

    def test_rejects_non_positive_window(self):
        with pytest.raises(ValueError):
            TradeAggregator(enabled=True, window_seconds=0)

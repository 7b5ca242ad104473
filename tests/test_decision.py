"""
Tests for the decision engine.
"""

import pytest

from polyfront.execution.decision import DecisionEngine, InFlightKeys
from polyfront.execution.models import ExecutionRequest, ExecutionStatus
from polyfront.signals.models import AggregatedSignal, TradeSide

from builders import OTHER, StubBalanceOracle, StubGasOracle, make_signal


def aggregated(size_usd: float = 500.0, **kwargs) -> AggregatedSignal:
    return AggregatedSignal.single(make_signal(size_usd=size_usd, **kwargs))


class FailingGasOracle:
    async def current_gas_price(self):
        raise ConnectionError("rpc down")


class FailingBalanceOracle:
    async def has_sufficient_balance(self, side, size_usd, token_id, price):
        raise ConnectionError("rpc down")


@pytest.fixture
def engine(balance_oracle, gas_oracle):
    return DecisionEngine(
        balance_oracle=balance_oracle,
        gas_oracle=gas_oracle,
        min_trade_size_usd=100.0,
        frontrun_size_multiplier=0.5,
        gas_price_multiplier=1.2
    )


class TestSizing:
    """Tests for order sizing and gas pricing."""

    @pytest.mark.asyncio
    async def test_emits_sized_request(self, engine):
        """$500 at 0.5x gives $250, 30 gwei at 1.2x gives 36."""
        signal = aggregated(500.0)

        decision = await engine.evaluate(signal)

        assert isinstance(decision, ExecutionRequest)
        assert decision.requested_size_usd == pytest.approx(250.0)
        assert decision.gas_price_hint == pytest.approx(36.0)
        assert decision.key == signal.key
        assert decision.origin_signal_ids == tuple(signal.member_ids)
        assert decision.price == pytest.approx(0.5)
        assert signal.key in engine.in_flight

    @pytest.mark.asyncio
    async def test_sizes_aggregate_on_net_size(self, engine):
        signal = aggregated(60.0, tx_hash="0x" + "01" * 32)
        signal.add(make_signal(size_usd=90.0, tx_hash="0x" + "02" * 32))

        decision = await engine.evaluate(signal)

        assert isinstance(decision, ExecutionRequest)
        assert decision.requested_size_usd == pytest.approx(75.0)
        assert len(decision.origin_signal_ids) == 2


class TestSkips:
    """Tests for filtered signals."""

    @pytest.mark.asyncio
    async def test_below_threshold(self, engine, balance_oracle):
        outcome = await engine.evaluate(aggregated(99.99))

        assert outcome.status == ExecutionStatus.SKIPPED_BELOW_THRESHOLD
        assert outcome.is_terminal
        assert balance_oracle.calls == 0
        assert len(engine.in_flight) == 0

    @pytest.mark.asyncio
    async def test_threshold_is_inclusive(self, engine):
        decision = await engine.evaluate(aggregated(100.0))

        assert isinstance(decision, ExecutionRequest)

    @pytest.mark.asyncio
    async def test_zero_multiplier_skips_everything(self, balance_oracle, gas_oracle):
        engine = DecisionEngine(
            balance_oracle, gas_oracle,
            min_trade_size_usd=0.0,
            frontrun_size_multiplier=0.0
        )

        outcome = await engine.evaluate(aggregated(10_000.0))

        assert outcome.status == ExecutionStatus.SKIPPED_BELOW_THRESHOLD

    @pytest.mark.asyncio
    async def test_duplicate_while_in_flight(self, engine):
        first = await engine.evaluate(aggregated(tx_hash="0x" + "01" * 32))
        second = await engine.evaluate(aggregated(tx_hash="0x" + "02" * 32))

        assert isinstance(first, ExecutionRequest)
        assert second.status == ExecutionStatus.SKIPPED_DUPLICATE
        assert engine.get_stats()["skipped"] == {"skipped-duplicate": 1}

    @pytest.mark.asyncio
    async def test_release_allows_next_request(self, engine):
        first = await engine.evaluate(aggregated(tx_hash="0x" + "01" * 32))
        engine.release(first.key)

        second = await engine.evaluate(aggregated(tx_hash="0x" + "02" * 32))

        assert isinstance(second, ExecutionRequest)

    @pytest.mark.asyncio
    async def test_other_keys_are_independent(self, engine):
        decisions = [
            await engine.evaluate(aggregated()),
            await engine.evaluate(aggregated(account=OTHER)),
            await engine.evaluate(aggregated(side=TradeSide.SELL)),
            await engine.evaluate(aggregated(outcome_id="token-2")),
        ]

        assert all(isinstance(d, ExecutionRequest) for d in decisions)
        assert len(engine.in_flight) == 4

    @pytest.mark.asyncio
    async def test_insufficient_balance_releases_key(self, gas_oracle):
        engine = DecisionEngine(StubBalanceOracle(sufficient=False), gas_oracle)
        signal = aggregated()

        outcome = await engine.evaluate(signal)

        assert outcome.status == ExecutionStatus.SKIPPED_INSUFFICIENT_BALANCE
        assert signal.key not in engine.in_flight

    @pytest.mark.asyncio
    async def test_balance_error_counts_as_insufficient(self, gas_oracle):
        engine = DecisionEngine(FailingBalanceOracle(), gas_oracle)

        outcome = await engine.evaluate(aggregated())

        assert outcome.status == ExecutionStatus.SKIPPED_INSUFFICIENT_BALANCE

    @pytest.mark.asyncio
    async def test_gas_error_releases_key(self, balance_oracle):
        engine = DecisionEngine(balance_oracle, FailingGasOracle())
        signal = aggregated()

        with pytest.raises(ConnectionError):
            await engine.evaluate(signal)

        assert signal.key not in engine.in_flight


class TestInFlightKeys:
    def test_claim_and_release(self):
        keys = InFlightKeys()
        key = ("0xabc", "token-1", TradeSide.BUY)

        assert keys.try_claim(key)
        assert not keys.try_claim(key)
        keys.release(key)
        assert keys.try_claim(key)

    def test_release_unknown_key_is_noop(self):
        keys = InFlightKeys()
        keys.release(("0xabc", "token-1", TradeSide.BUY))
        assert len(keys) == 0

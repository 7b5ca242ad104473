"""
End-to-end tests for the frontrun pipeline with stubbed clients.
"""

import asyncio

import pytest

from polyfront.execution.decision import DecisionEngine
from polyfront.execution.executor import FrontrunExecutor
from polyfront.execution.models import ExecutionStatus
from polyfront.pipeline import FrontrunPipeline
from polyfront.signals.aggregator import TradeAggregator
from polyfront.signals.merger import SignalMerger
from polyfront.signals.models import ConfirmationState, SourceType

from builders import (
    StubBalanceOracle,
    StubGasOracle,
    StubOrderClient,
    make_signal,
    ok_result,
)


class GatedOrderClient(StubOrderClient):
    """Order client that blocks every submission until released."""

    def __init__(self):
        super().__init__([ok_result()])
        self.called = asyncio.Event()
        self.gate = asyncio.Event()

    async def submit_order(self, **kwargs):
        result = await super().submit_order(**kwargs)
        self.called.set()
        await self.gate.wait()
        return result


def build_pipeline(order_client=None, aggregation_window=None):
    engine = DecisionEngine(
        balance_oracle=StubBalanceOracle(),
        gas_oracle=StubGasOracle(30.0),
        min_trade_size_usd=100.0,
        frontrun_size_multiplier=0.5,
        gas_price_multiplier=1.2
    )
    executor = FrontrunExecutor(
        order_client=order_client or StubOrderClient([ok_result()]),
        balance_oracle=StubBalanceOracle(),
        release_key=engine.release,
        retry_backoff_seconds=0
    )
    aggregator = TradeAggregator(
        enabled=aggregation_window is not None,
        window_seconds=aggregation_window or 300.0
    )
    pipeline = FrontrunPipeline(
        merger=SignalMerger(),
        aggregator=aggregator,
        decision_engine=engine,
        executor=executor,
        raw_queue=asyncio.Queue()
    )
    outcomes = []
    pipeline.subscribe(outcomes.append)
    return pipeline, outcomes


async def wait_for_outcomes(outcomes, count, timeout=2.0):
    async def poll():
        while len(outcomes) < count:
            await asyncio.sleep(0.01)
    await asyncio.wait_for(poll(), timeout)


class TestFrontrunPipeline:
    """Tests for the running pipeline."""

    @pytest.mark.asyncio
    async def test_trade_seen_by_both_sources_executes_once(self):
        pipeline, outcomes = build_pipeline()
        tx_hash = "0x" + "01" * 32

        await pipeline.start()
        pipeline.raw_queue.put_nowait(make_signal(tx_hash=tx_hash, source=SourceType.LIVE))
        pipeline.raw_queue.put_nowait(make_signal(
            tx_hash=tx_hash, source=SourceType.POLLED, state=ConfirmationState.CONFIRMED
        ))
        pipeline.raw_queue.put_nowait(make_signal(tx_hash="0x" + "02" * 32, size_usd=10.0))

        await wait_for_outcomes(outcomes, 2)
        await pipeline.stop()

        statuses = sorted(o.status.value for o in outcomes)
        assert statuses == ["skipped-below-threshold", "submitted"]
        submitted = next(o for o in outcomes if o.status == ExecutionStatus.SUBMITTED)
        assert submitted.requested_size_usd == pytest.approx(250.0)
        assert submitted.gas_price_hint == pytest.approx(36.0)
        assert pipeline.merger.duplicates == 1

    @pytest.mark.asyncio
    async def test_one_execution_in_flight_per_key(self):
        client = GatedOrderClient()
        pipeline, outcomes = build_pipeline(order_client=client)

        await pipeline.start()
        pipeline.raw_queue.put_nowait(make_signal(tx_hash="0x" + "01" * 32))
        await asyncio.wait_for(client.called.wait(), 2.0)

        pipeline.raw_queue.put_nowait(make_signal(tx_hash="0x" + "02" * 32))
        await wait_for_outcomes(outcomes, 1)

        assert outcomes[0].status == ExecutionStatus.SKIPPED_DUPLICATE

        client.gate.set()
        await wait_for_outcomes(outcomes, 2)
        await pipeline.stop()

        assert outcomes[1].status == ExecutionStatus.SUBMITTED
        assert len(client.calls) == 1

    @pytest.mark.asyncio
    async def test_stop_waits_for_in_flight_execution(self):
        client = GatedOrderClient()
        pipeline, outcomes = build_pipeline(order_client=client)

        await pipeline.start()
        pipeline.raw_queue.put_nowait(make_signal())
        await asyncio.wait_for(client.called.wait(), 2.0)

        stopping = asyncio.create_task(pipeline.stop())
        await asyncio.sleep(0.05)
        assert not stopping.done()

        client.gate.set()
        await asyncio.wait_for(stopping, 2.0)

        assert [o.status for o in outcomes] == [ExecutionStatus.SUBMITTED]
        assert all(o.is_terminal for o in outcomes)
        assert not pipeline.is_running

    @pytest.mark.asyncio
    async def test_aggregates_window_before_deciding(self):
        client = StubOrderClient([ok_result()])
        pipeline, outcomes = build_pipeline(order_client=client, aggregation_window=0.2)

        await pipeline.start()
        pipeline.raw_queue.put_nowait(make_signal(tx_hash="0x" + "01" * 32, size_usd=80.0))
        pipeline.raw_queue.put_nowait(make_signal(tx_hash="0x" + "02" * 32, size_usd=120.0))

        await wait_for_outcomes(outcomes, 1)
        await pipeline.stop()

        assert len(outcomes) == 1
        assert outcomes[0].status == ExecutionStatus.SUBMITTED
        assert outcomes[0].requested_size_usd == pytest.approx(100.0)
        assert len(outcomes[0].origin_signal_ids) == 2

    @pytest.mark.asyncio
    async def test_unsubscribe_and_async_handlers(self):
        pipeline, outcomes = build_pipeline()
        received = []

        async def async_handler(outcome):
            received.append(outcome)

        unsubscribe = pipeline.subscribe(async_handler)
        unsubscribe()

        await pipeline.start()
        pipeline.raw_queue.put_nowait(make_signal())
        await wait_for_outcomes(outcomes, 1)
        await pipeline.stop()

        assert received == []

    @pytest.mark.asyncio
    async def test_start_and_stop_are_idempotent(self):
        pipeline, _ = build_pipeline()

        await pipeline.start()
        await pipeline.start()
        await pipeline.stop()
        await pipeline.stop()

        assert not pipeline.is_running

"""
Detection-and-reaction pipeline.

Sources -> Merger -> (Aggregator) -> Decision Engine -> Executor, wired with
asyncio queues and owned by one FrontrunPipeline whose lifetime is bounded
by start() / stop().
"""

import asyncio
from typing import Any, Callable, Optional

from .execution.decision import DecisionEngine
from .execution.executor import FrontrunExecutor
from .execution.models import ExecutionOutcome, ExecutionRequest
from .signals.aggregator import TradeAggregator
from .signals.live_listener import LiveFeedListener
from .signals.merger import SignalMerger
from .signals.models import AggregatedSignal, TradeSignal
from .signals.poller import PollFallback
from .utils.logger import get_logger, TradeLogger

logger = get_logger("pipeline")
trade_logger = TradeLogger()


OutcomeHandler = Callable[[ExecutionOutcome], Any]


class FrontrunPipeline:
    """
    Owns every stage, queue and task of the frontrun engine.

    Coordinates:
    - Live feed listener and poll fallback (signal sources)
    - Merge worker (dedup) and aggregation sweeper
    - Decision worker (filters, sizing, in-flight keys)
    - Execution dispatcher (one task per request)
    """

    QUEUE_WARN_SIZE = 1000

    def __init__(
        self,
        merger: SignalMerger,
        aggregator: TradeAggregator,
        decision_engine: DecisionEngine,
        executor: FrontrunExecutor,
        raw_queue: "asyncio.Queue[TradeSignal]",
        live_listener: Optional[LiveFeedListener] = None,
        poller: Optional[PollFallback] = None,
        monitor_interval_seconds: float = 10.0
    ):
        self.merger = merger
        self.aggregator = aggregator
        self.decision_engine = decision_engine
        self.executor = executor
        self.live_listener = live_listener
        self.poller = poller
        self.monitor_interval_seconds = monitor_interval_seconds

        self.raw_queue = raw_queue
        self.decision_queue: "asyncio.Queue[AggregatedSignal]" = asyncio.Queue()
        self.execution_queue: "asyncio.Queue[Optional[ExecutionRequest]]" = asyncio.Queue()

        self._handlers: list[OutcomeHandler] = []
        self._source_tasks: list[asyncio.Task] = []
        self._stage_tasks: list[asyncio.Task] = []
        self._dispatcher_task: Optional[asyncio.Task] = None
        self._executions: set[asyncio.Task] = set()
        self._running = False

        self.outcomes_published = 0

    @property
    def is_running(self) -> bool:
        return self._running

    def subscribe(self, handler: OutcomeHandler) -> Callable[[], None]:
        """
        Register a sync or async callback for every terminal ExecutionOutcome.

        Returns:
            Function that removes the subscription
        """
        self._handlers.append(handler)

        def unsubscribe() -> None:
            if handler in self._handlers:
                self._handlers.remove(handler)

        return unsubscribe

    async def _publish(self, outcome: ExecutionOutcome) -> None:
        self.outcomes_published += 1
        for handler in list(self._handlers):
            try:
                result = handler(outcome)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as e:
                logger.error(f"Outcome handler error: {e}")

    async def start(self) -> None:
        """Launch sources and stage workers."""
        if self._running:
            return
        self._running = True

        logger.info(
            "Starting frontrun pipeline",
            extra={
                "live_feed": self.live_listener is not None,
                "poll_fallback": self.poller is not None,
                "aggregation": self.aggregator.enabled
            }
        )

        if self.live_listener:
            self._source_tasks.append(asyncio.create_task(self.live_listener.run(), name="live-listener"))
        if self.poller:
            self._source_tasks.append(asyncio.create_task(self.poller.run(), name="poll-fallback"))

        self._stage_tasks.append(asyncio.create_task(self._merge_worker(), name="merge-worker"))
        if self.aggregator.enabled:
            self._stage_tasks.append(asyncio.create_task(self._sweep_worker(), name="aggregation-sweeper"))
        self._stage_tasks.append(asyncio.create_task(self._decision_worker(), name="decision-worker"))
        self._stage_tasks.append(asyncio.create_task(self._queue_monitor(), name="queue-monitor"))

        self._dispatcher_task = asyncio.create_task(self._execution_dispatcher(), name="execution-dispatcher")

    async def stop(self) -> None:
        """
        Stop accepting signals, let in-flight executions finish, then return.

        Every request already emitted by the decision engine reaches a
        terminal outcome before this returns.
        """
        if not self._running:
            return
        self._running = False

        logger.info("Stopping frontrun pipeline")

        if self.live_listener:
            await self.live_listener.stop()
        if self.poller:
            self.poller.stop()

        await _cancel_all(self._source_tasks)
        await _cancel_all(self._stage_tasks)
        self._source_tasks.clear()
        self._stage_tasks.clear()

        dropped = self.aggregator.discard_open()
        if dropped:
            logger.warning(
                f"Dropped {len(dropped)} open aggregation windows on shutdown",
                extra={"signals": sum(len(w.members) for w in dropped)}
            )

        if self.raw_queue.qsize() or self.decision_queue.qsize():
            logger.info(
                "Discarding undecided signals on shutdown",
                extra={
                    "raw": self.raw_queue.qsize(),
                    "undecided": self.decision_queue.qsize()
                }
            )

        # Dispatcher drains queued requests, then exits on the sentinel
        self.execution_queue.put_nowait(None)
        if self._dispatcher_task:
            await self._dispatcher_task
            self._dispatcher_task = None

        if self._executions:
            await asyncio.gather(*self._executions, return_exceptions=True)

        logger.info("Frontrun pipeline stopped", extra={"outcomes": self.outcomes_published})

    async def _merge_worker(self) -> None:
        """Dedup raw signals and hand unique ones to the aggregator."""
        while True:
            signal = await self.raw_queue.get()
            try:
                unique = self.merger.merge(signal)
                if unique is None:
                    continue

                trade_logger.signal_detected(
                    signal_id=unique.id,
                    source=unique.source_type.value,
                    account=unique.account,
                    outcome_id=unique.outcome_id,
                    side=unique.side.value,
                    size_usd=unique.size_usd,
                    price=unique.price
                )

                aggregated = self.aggregator.add(unique)
                if aggregated is not None:
                    self.decision_queue.put_nowait(aggregated)
            except Exception as e:
                logger.error(f"Merge worker error: {e}", extra={"signal_id": signal.id})
            finally:
                self.raw_queue.task_done()

    async def _sweep_worker(self) -> None:
        """Seal expired aggregation windows on a fixed cadence."""
        while True:
            await asyncio.sleep(self.aggregator.sweep_interval)
            try:
                for sealed in self.aggregator.sweep():
                    self.decision_queue.put_nowait(sealed)
            except Exception as e:
                logger.error(f"Aggregation sweep error: {e}")

    async def _decision_worker(self) -> None:
        while True:
            signal = await self.decision_queue.get()
            try:
                decision = await self.decision_engine.evaluate(signal)
                if isinstance(decision, ExecutionRequest):
                    self.execution_queue.put_nowait(decision)
                else:
                    await self._publish(decision)
            except Exception as e:
                logger.error(f"Decision worker error: {e}", extra={"members": signal.member_ids})
            finally:
                self.decision_queue.task_done()

    async def _execution_dispatcher(self) -> None:
        """Start one execution task per request so keys never block each other."""
        while True:
            request = await self.execution_queue.get()
            self.execution_queue.task_done()
            if request is None:
                return

            task = asyncio.create_task(self._run_execution(request))
            self._executions.add(task)
            task.add_done_callback(self._executions.discard)

    async def _run_execution(self, request: ExecutionRequest) -> None:
        outcome = await self.executor.execute(request)
        await self._publish(outcome)

    async def _queue_monitor(self) -> None:
        """Warn when a stage falls behind."""
        while True:
            await asyncio.sleep(self.monitor_interval_seconds)
            sizes = {
                "raw": self.raw_queue.qsize(),
                "decision": self.decision_queue.qsize(),
                "execution": self.execution_queue.qsize(),
                "executions_running": len(self._executions)
            }
            if any(size > self.QUEUE_WARN_SIZE for size in sizes.values()):
                logger.warning("Pipeline queue backlog", extra=sizes)
            else:
                logger.debug("Pipeline queue sizes", extra=sizes)

    def get_stats(self) -> dict:
        stats = {
            "merger": self.merger.get_stats(),
            "aggregator": self.aggregator.get_stats(),
            "decision": self.decision_engine.get_stats(),
            "outcomes_published": self.outcomes_published
        }
        if self.live_listener:
            stats["live_feed"] = self.live_listener.get_stats()
        if self.poller:
            stats["poll_fallback"] = self.poller.get_stats()
        return stats


async def _cancel_all(tasks: list[asyncio.Task]) -> None:
    for task in tasks:
        task.cancel()
    if tasks:
        await asyncio.gather(*tasks, return_exceptions=True)

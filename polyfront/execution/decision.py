"""
Decision engine: filters aggregated signals and sizes the frontrun order.
"""

from typing import Optional, Protocol, Union

from ..signals.models import AggregatedSignal, SignalKey, TradeSide
from ..utils.logger import get_logger, TradeLogger
from .models import ExecutionOutcome, ExecutionRequest, ExecutionStatus

logger = get_logger("decision")
trade_logger = TradeLogger()


class BalanceOracle(Protocol):
    async def has_sufficient_balance(
        self, side: TradeSide, size_usd: float, token_id: str, price: float
    ) -> bool: ...


class GasPriceOracle(Protocol):
    async def current_gas_price(self) -> float: ...


Decision = Union[ExecutionRequest, ExecutionOutcome]


class InFlightKeys:
    """
    Keys with an outstanding execution request.

    Claiming and releasing happen without awaiting, so the check and the
    mark are atomic on the event loop and unrelated keys never wait on
    each other.
    """

    def __init__(self):
        self._keys: set[SignalKey] = set()

    def __contains__(self, key: SignalKey) -> bool:
        return key in self._keys

    def __len__(self) -> int:
        return len(self._keys)

    def try_claim(self, key: SignalKey) -> bool:
        if key in self._keys:
            return False
        self._keys.add(key)
        return True

    def release(self, key: SignalKey) -> None:
        self._keys.discard(key)


class DecisionEngine:
    """
    Turns an AggregatedSignal into an ExecutionRequest or a skip outcome.

    Checks, in order: minimum size, duplicate in flight, balance. Passing
    signals are sized with the frontrun multiplier and priced with the gas
    multiplier, and their key is marked in flight until ``release``.
    """

    def __init__(
        self,
        balance_oracle: BalanceOracle,
        gas_oracle: GasPriceOracle,
        min_trade_size_usd: float = 100.0,
        frontrun_size_multiplier: float = 0.5,
        gas_price_multiplier: float = 1.2
    ):
        """
        Initialize decision engine.

        Args:
            balance_oracle: Answers whether our wallet can back an order
            gas_oracle: Current network gas price
            min_trade_size_usd: Ignore watched trades smaller than this
            frontrun_size_multiplier: Our size as a fraction of theirs (0.0-1.0)
            gas_price_multiplier: Priority factor over the network gas price (>= 1.0)
        """
        self.balance_oracle = balance_oracle
        self.gas_oracle = gas_oracle
        self.min_trade_size_usd = min_trade_size_usd
        self.frontrun_size_multiplier = frontrun_size_multiplier
        self.gas_price_multiplier = gas_price_multiplier

        self.in_flight = InFlightKeys()

        self.requests_emitted = 0
        self.skipped: dict[ExecutionStatus, int] = {}

    def release(self, key: SignalKey) -> None:
        """Clear the in-flight mark once the executor reaches a terminal state."""
        self.in_flight.release(key)

    def _skip(
        self,
        signal: AggregatedSignal,
        status: ExecutionStatus,
        reason: str
    ) -> ExecutionOutcome:
        self.skipped[status] = self.skipped.get(status, 0) + 1
        trade_logger.signal_skipped(
            account=signal.account,
            outcome_id=signal.outcome_id,
            side=signal.side.value,
            reason=status.value,
            size_usd=signal.net_size_usd
        )
        return ExecutionOutcome.skipped(
            key=signal.key,
            status=status,
            origin_signal_ids=tuple(signal.member_ids),
            reason=reason
        )

    async def evaluate(self, signal: AggregatedSignal) -> Decision:
        """
        Decide what to do with one aggregated signal.

        Returns:
            ExecutionRequest to execute, or a terminal skip ExecutionOutcome
        """
        net_size = signal.net_size_usd
        requested_size = net_size * self.frontrun_size_multiplier

        if net_size < self.min_trade_size_usd:
            return self._skip(
                signal,
                ExecutionStatus.SKIPPED_BELOW_THRESHOLD,
                f"Size ${net_size:.2f} below minimum ${self.min_trade_size_usd:.2f}"
            )

        if requested_size <= 0:
            return self._skip(
                signal,
                ExecutionStatus.SKIPPED_BELOW_THRESHOLD,
                "Frontrun size is zero"
            )

        if not self.in_flight.try_claim(signal.key):
            return self._skip(
                signal,
                ExecutionStatus.SKIPPED_DUPLICATE,
                "Execution already in flight for key"
            )

        # The key is ours from here on; give it back on any rejection
        try:
            sufficient = await self._check_balance(signal, requested_size)
            if not sufficient:
                self.in_flight.release(signal.key)
                return self._skip(
                    signal,
                    ExecutionStatus.SKIPPED_INSUFFICIENT_BALANCE,
                    f"Insufficient balance for ${requested_size:.2f}"
                )

            gas_price = await self.gas_oracle.current_gas_price()
        except BaseException:
            self.in_flight.release(signal.key)
            raise

        request = ExecutionRequest(
            key_account=signal.account,
            key_market=signal.outcome_id,
            side=signal.side,
            requested_size_usd=requested_size,
            gas_price_hint=gas_price * self.gas_price_multiplier,
            origin_signal_ids=tuple(signal.member_ids),
            price=signal.price
        )

        self.requests_emitted += 1
        logger.info(
            "Execution request emitted",
            extra={
                "account": request.key_account,
                "outcome_id": request.key_market,
                "side": request.side.value,
                "requested_size_usd": request.requested_size_usd,
                "gas_price_hint": request.gas_price_hint
            }
        )
        return request

    async def _check_balance(self, signal: AggregatedSignal, size_usd: float) -> bool:
        try:
            return await self.balance_oracle.has_sufficient_balance(
                signal.side, size_usd, signal.outcome_id, signal.price
            )
        except Exception as e:
            logger.warning(f"Balance check failed, treating as insufficient: {e}")
            return False

    def get_stats(self) -> dict:
        return {
            "requests_emitted": self.requests_emitted,
            "in_flight": len(self.in_flight),
            "skipped": {status.value: count for status, count in self.skipped.items()}
        }

"""
Order execution engine for frontrun trades.
Submits priced orders with retries and records a terminal outcome.
"""

import asyncio
from collections import deque
from typing import Callable, Optional, Protocol

from ..clients.clob_client import OrderResult, is_ambiguous_post_error, is_recoverable_error
from ..signals.models import SignalKey, TradeSide
from ..utils.logger import get_logger, TradeLogger
from .decision import BalanceOracle
from .models import ExecutionOutcome, ExecutionRequest, ExecutionStatus

logger = get_logger("executor")
trade_logger = TradeLogger()


class OrderClient(Protocol):
    async def submit_order(
        self,
        token_id: str,
        side: TradeSide,
        size_usd: float,
        price: float,
        gas_price_hint: float
    ) -> OrderResult: ...


class FrontrunExecutor:
    """
    Executes ExecutionRequests against the order API.

    Key responsibilities:
    - Re-check balance right before submitting
    - Retry recoverable failures up to ``retry_limit`` attempts with backoff
    - Stop at the first non-recoverable failure
    - Always release the key's in-flight mark
    """

    def __init__(
        self,
        order_client: OrderClient,
        balance_oracle: BalanceOracle,
        release_key: Callable[[SignalKey], None],
        retry_limit: int = 3,
        retry_backoff_seconds: float = 0.5,
        max_backoff_seconds: float = 5.0,
        completed_history: int = 1000
    ):
        """
        Initialize executor.

        Args:
            order_client: Order submission API
            balance_oracle: Balance re-check at execution time
            release_key: Called with the request key on every terminal outcome
            retry_limit: Maximum submission attempts per request
            retry_backoff_seconds: Delay before the second attempt (doubles per retry)
            max_backoff_seconds: Ceiling for the retry delay
            completed_history: Terminal outcomes kept for get_completed
        """
        if retry_limit < 1:
            raise ValueError("retry_limit must be at least 1")

        self.order_client = order_client
        self.balance_oracle = balance_oracle
        self.release_key = release_key
        self.retry_limit = retry_limit
        self.retry_backoff_seconds = retry_backoff_seconds
        self.max_backoff_seconds = max_backoff_seconds

        self._active: dict[SignalKey, ExecutionOutcome] = {}
        self._completed: deque[ExecutionOutcome] = deque(maxlen=completed_history)

    def _backoff(self, attempt: int) -> float:
        return min(self.retry_backoff_seconds * (2 ** (attempt - 1)), self.max_backoff_seconds)

    async def execute(self, request: ExecutionRequest) -> ExecutionOutcome:
        """
        Execute one request to a terminal outcome.

        Args:
            request: Request emitted by the decision engine

        Returns:
            Frozen ExecutionOutcome
        """
        outcome = ExecutionOutcome.for_request(request)
        self._active[request.key] = outcome

        try:
            if not await self._balance_still_sufficient(request):
                logger.warning(
                    "Balance no longer sufficient at execution time",
                    extra={"account": request.key_account, "outcome_id": request.key_market}
                )
                return outcome.freeze(
                    ExecutionStatus.SKIPPED_INSUFFICIENT_BALANCE,
                    "Balance insufficient at execution time"
                )

            await self._submit_with_retry(request, outcome)
            return outcome

        except asyncio.CancelledError:
            if not outcome.is_terminal:
                outcome.freeze(ExecutionStatus.FAILED, "Execution cancelled")
            raise

        except Exception as e:
            logger.error(f"Execution error: {e}")
            if not outcome.is_terminal:
                outcome.freeze(ExecutionStatus.FAILED, str(e))
            return outcome

        finally:
            self._active.pop(request.key, None)
            self._completed.append(outcome)
            self.release_key(request.key)

    async def _balance_still_sufficient(self, request: ExecutionRequest) -> bool:
        try:
            return await self.balance_oracle.has_sufficient_balance(
                request.side, request.requested_size_usd, request.key_market, request.price
            )
        except Exception as e:
            logger.warning(f"Balance re-check failed, not submitting: {e}")
            return False

    async def _submit_with_retry(
        self,
        request: ExecutionRequest,
        outcome: ExecutionOutcome
    ) -> None:
        last_error: Optional[str] = None

        while outcome.attempts < self.retry_limit:
            outcome.attempts += 1

            logger.info(
                f"Submission attempt {outcome.attempts}/{self.retry_limit}",
                extra={"account": request.key_account, "outcome_id": request.key_market}
            )

            try:
                result = await self.order_client.submit_order(
                    token_id=request.key_market,
                    side=request.side,
                    size_usd=request.requested_size_usd,
                    price=request.price,
                    gas_price_hint=request.gas_price_hint
                )
            except Exception as e:
                result = OrderResult(
                    order_id="",
                    success=False,
                    status="FAILED",
                    error=str(e) or type(e).__name__,
                    recoverable=is_recoverable_error(e) and not is_ambiguous_post_error(e)
                )

            if result.success:
                outcome.order_id = result.order_id
                outcome.freeze(ExecutionStatus.SUBMITTED)
                trade_logger.order_submitted(
                    order_id=result.order_id,
                    account=request.key_account,
                    outcome_id=request.key_market,
                    side=request.side.value,
                    size_usd=request.requested_size_usd,
                    price=request.price,
                    gas_price_hint=request.gas_price_hint,
                    attempts=outcome.attempts
                )
                return

            last_error = result.error or result.status
            outcome.error = last_error

            if not result.recoverable:
                logger.warning(
                    f"Non-recoverable submission error: {last_error}",
                    extra={"attempts": outcome.attempts}
                )
                break

            if outcome.attempts < self.retry_limit:
                await asyncio.sleep(self._backoff(outcome.attempts))

        outcome.freeze(ExecutionStatus.FAILED, last_error)
        trade_logger.execution_failed(
            account=request.key_account,
            outcome_id=request.key_market,
            side=request.side.value,
            attempts=outcome.attempts,
            error=last_error
        )

    def get_active(self) -> list[ExecutionOutcome]:
        return list(self._active.values())

    def get_completed(self, limit: int = 100) -> list[ExecutionOutcome]:
        return list(self._completed)[-limit:]

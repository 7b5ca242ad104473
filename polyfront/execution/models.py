"""
Execution records produced by the decision and execution stages.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional
import time

from ..signals.models import SignalKey, TradeSide


class ExecutionStatus(Enum):
    """Disposition of a signal once it leaves the pipeline."""
    SUBMITTED = "submitted"
    CONFIRMED = "confirmed"
    FAILED = "failed"
    SKIPPED_BELOW_THRESHOLD = "skipped-below-threshold"
    SKIPPED_INSUFFICIENT_BALANCE = "skipped-insufficient-balance"
    SKIPPED_DUPLICATE = "skipped-duplicate"

    @property
    def is_skip(self) -> bool:
        return self.value.startswith("skipped")


@dataclass(frozen=True)
class ExecutionRequest:
    """Sized and priced order the executor should place."""
    key_account: str
    key_market: str
    side: TradeSide
    requested_size_usd: float
    gas_price_hint: float
    origin_signal_ids: tuple[str, ...]
    price: float
    created_at: float = field(default_factory=time.time)

    @property
    def key(self) -> SignalKey:
        return (self.key_account, self.key_market, self.side)


class OutcomeFrozenError(RuntimeError):
    """Raised when a terminal outcome is mutated."""


@dataclass
class ExecutionOutcome:
    """
    Terminal record for a request or a skipped signal.

    Created on the first submission attempt, updated per retry and frozen
    once a terminal status is reached.
    """
    key_account: str
    key_market: str
    side: TradeSide
    status: Optional[ExecutionStatus] = None
    attempts: int = 0
    error: Optional[str] = None
    order_id: Optional[str] = None
    requested_size_usd: float = 0.0
    gas_price_hint: float = 0.0
    origin_signal_ids: tuple[str, ...] = ()
    started_at: float = field(default_factory=time.time)
    finished_at: Optional[float] = None
    _frozen: bool = field(default=False, repr=False, compare=False)

    def __setattr__(self, name, value):
        if getattr(self, "_frozen", False):
            raise OutcomeFrozenError(f"Outcome is terminal, cannot set {name}")
        super().__setattr__(name, value)

    @property
    def key(self) -> SignalKey:
        return (self.key_account, self.key_market, self.side)

    @property
    def is_terminal(self) -> bool:
        return self._frozen

    @property
    def duration_ms(self) -> float:
        if self.finished_at:
            return (self.finished_at - self.started_at) * 1000
        return 0.0

    def freeze(self, status: ExecutionStatus, error: Optional[str] = None) -> "ExecutionOutcome":
        self.status = status
        if error is not None:
            self.error = error
        self.finished_at = time.time()
        self._frozen = True
        return self

    @classmethod
    def for_request(cls, request: ExecutionRequest) -> "ExecutionOutcome":
        return cls(
            key_account=request.key_account,
            key_market=request.key_market,
            side=request.side,
            requested_size_usd=request.requested_size_usd,
            gas_price_hint=request.gas_price_hint,
            origin_signal_ids=request.origin_signal_ids
        )

    @classmethod
    def skipped(
        cls,
        key: SignalKey,
        status: ExecutionStatus,
        origin_signal_ids: tuple[str, ...],
        reason: Optional[str] = None
    ) -> "ExecutionOutcome":
        account, market, side = key
        outcome = cls(
            key_account=account,
            key_market=market,
            side=side,
            origin_signal_ids=origin_signal_ids
        )
        return outcome.freeze(status, reason)

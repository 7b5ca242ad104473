"""
Signal data structures shared by the detection stages.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional
import time


class SourceType(Enum):
    """Where a signal was observed."""
    LIVE = "live"
    POLLED = "polled"


class TradeSide(Enum):
    BUY = "BUY"
    SELL = "SELL"


class ConfirmationState(Enum):
    """On-chain state of the underlying trade when it was observed."""
    UNKNOWN = "unknown"
    PENDING = "pending"
    CONFIRMED = "confirmed"

    @property
    def rank(self) -> int:
        return _CONFIRMATION_RANK[self]


_CONFIRMATION_RANK = {
    ConfirmationState.UNKNOWN: 0,
    ConfirmationState.PENDING: 1,
    ConfirmationState.CONFIRMED: 2,
}


# (account, outcome token id, side)
SignalKey = tuple[str, str, TradeSide]


def make_signal_id(
    account: str,
    outcome_id: str,
    side: TradeSide,
    tx_hash: Optional[str] = None,
    market_id: Optional[str] = None,
    order_id: Optional[str] = None
) -> str:
    """
    Build the stable identity of a trade.

    A transaction hash plus the account's outcome token and side identifies
    the trade regardless of which source saw it, so one transaction that
    touches several outcomes yields one identity per outcome and side. The
    (account, market, order) triple is the fallback for API records that
    carry no hash.
    """
    account = account.lower()
    if tx_hash:
        return f"{tx_hash.lower()}:{account}:{str(outcome_id).lower()}:{side.value.lower()}"
    if not market_id or not order_id:
        raise ValueError("market_id and order_id are required without a tx hash")
    return f"{account}:{market_id.lower()}:{order_id.lower()}"


@dataclass
class TradeSignal:
    """A detected, not-yet-acted-upon trade by a watched account."""
    id: str
    source_type: SourceType
    account: str
    market_id: str
    outcome_id: str
    side: TradeSide
    size_usd: float
    price: float
    detected_at: float = field(default_factory=time.time)
    confirmation_state: ConfirmationState = ConfirmationState.UNKNOWN
    tx_hash: Optional[str] = None

    @property
    def key(self) -> SignalKey:
        return (self.account, self.outcome_id, self.side)


@dataclass
class AggregatedSignal:
    """Signals for one key collapsed within one aggregation window."""
    account: str
    outcome_id: str
    market_id: str
    side: TradeSide
    window_start: float
    window_end: float
    members: list[TradeSignal] = field(default_factory=list)

    @property
    def key(self) -> SignalKey:
        return (self.account, self.outcome_id, self.side)

    @property
    def net_size_usd(self) -> float:
        return sum(member.size_usd for member in self.members)

    @property
    def member_ids(self) -> list[str]:
        return [member.id for member in self.members]

    @property
    def price(self) -> float:
        """Size-weighted average price of the members."""
        total = self.net_size_usd
        if total <= 0:
            return self.members[-1].price if self.members else 0.0
        return sum(m.price * m.size_usd for m in self.members) / total

    def add(self, signal: TradeSignal) -> None:
        if signal.key != self.key:
            raise ValueError(f"Signal {signal.id} does not belong to window {self.key}")
        self.members.append(signal)

    @classmethod
    def single(cls, signal: TradeSignal) -> "AggregatedSignal":
        """Wrap one signal as a trivial aggregate with a zero-length window."""
        return cls(
            account=signal.account,
            outcome_id=signal.outcome_id,
            market_id=signal.market_id,
            side=signal.side,
            window_start=signal.detected_at,
            window_end=signal.detected_at,
            members=[signal]
        )

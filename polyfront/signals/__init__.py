"""
Signal detection and normalization.

This module provides:
- LiveFeedListener: pending-transaction source
- PollFallback: data API polling source
- SignalMerger: identity-based deduplication
- TradeAggregator: per-key time-window coalescing
"""
from .models import TradeSignal, AggregatedSignal, SourceType, TradeSide, ConfirmationState
from .decoder import try_decode_order_submission, DecodeResult, DecodeStatus
from .live_listener import LiveFeedListener
from .poller import PollFallback
from .merger import SignalMerger
from .aggregator import TradeAggregator

__all__ = [
    "TradeSignal",
    "AggregatedSignal",
    "SourceType",
    "TradeSide",
    "ConfirmationState",
    "try_decode_order_submission",
    "DecodeResult",
    "DecodeStatus",
    "LiveFeedListener",
    "PollFallback",
    "SignalMerger",
    "TradeAggregator",
]

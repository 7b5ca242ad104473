"""
Poll fallback.

Periodically asks the data API for the watched accounts' recent trades and
emits the ones not seen before.
"""

import asyncio
import time
from typing import Optional

import aiohttp

from ..clients.data_api_client import DataApiClient
from ..utils.cache import ExpiringIdCache
from ..utils.logger import get_logger
from .models import (
    ConfirmationState,
    SourceType,
    TradeSide,
    TradeSignal,
    make_signal_id,
)

logger = get_logger("poller")


MIN_POLL_INTERVAL_SECONDS = 0.5


def signal_from_trade(record: dict, detected_at: Optional[float] = None) -> TradeSignal:
    """
    Convert a data API trade record into a polled TradeSignal.

    Raises:
        ValueError/KeyError/TypeError on records missing required fields
    """
    account = str(record["proxyWallet"]).lower()
    side = TradeSide(str(record["side"]).upper())
    size = float(record["size"])
    price = float(record["price"])
    outcome_id = str(record["asset"])
    market_id = str(record.get("conditionId") or outcome_id)

    tx_hash = record.get("transactionHash") or None
    signal_id = make_signal_id(
        account,
        outcome_id,
        side,
        tx_hash=tx_hash,
        market_id=market_id,
        order_id=str(record.get("id") or record.get("timestamp") or "")
    )

    return TradeSignal(
        id=signal_id,
        source_type=SourceType.POLLED,
        account=account,
        market_id=market_id,
        outcome_id=outcome_id,
        side=side,
        size_usd=size * price,
        price=price,
        detected_at=time.time() if detected_at is None else detected_at,
        confirmation_state=ConfirmationState.CONFIRMED,
        tx_hash=tx_hash.lower() if tx_hash else None
    )


def combine_fills(first: TradeSignal, second: TradeSignal) -> TradeSignal:
    """
    Fold a second fill of the same trade into the first.

    The data API reports one record per matched maker, so a single order
    filled against several makers shows up as several records.
    """
    size_usd = first.size_usd + second.size_usd
    shares = sum(s.size_usd / s.price for s in (first, second) if s.price > 0)
    first.size_usd = size_usd
    if shares > 0:
        first.price = size_usd / shares
    return first


class PollFallback:
    """
    Timer-driven signal source backed by the public data API.

    Catches trades the live feed missed and keeps the bot working while the
    subscription is down.
    """

    def __init__(
        self,
        data_api: DataApiClient,
        watched_accounts: set[str],
        output_queue: "asyncio.Queue[TradeSignal]",
        interval_seconds: float = 1.0,
        page_size: int = 50,
        seen_ttl_seconds: float = 600.0,
        seen_max_size: int = 10_000
    ):
        if interval_seconds < MIN_POLL_INTERVAL_SECONDS:
            logger.warning(
                f"Poll interval {interval_seconds}s below floor, using {MIN_POLL_INTERVAL_SECONDS}s"
            )
        self.data_api = data_api
        self.watched_accounts = sorted(a.lower() for a in watched_accounts)
        self.output_queue = output_queue
        self.interval_seconds = max(interval_seconds, MIN_POLL_INTERVAL_SECONDS)
        self.page_size = page_size

        self._seen = ExpiringIdCache(ttl_seconds=seen_ttl_seconds, max_size=seen_max_size)
        self._primed: set[str] = set()
        self._running = False

        self.cycles = 0
        self.failed_requests = 0
        self.bad_records = 0
        self.signals_emitted = 0

    async def poll_once(self) -> list[TradeSignal]:
        """Run one poll cycle over every watched account."""
        emitted = []

        for account in self.watched_accounts:
            try:
                records = await self.data_api.get_recent_trades(account, limit=self.page_size)
            except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
                self.failed_requests += 1
                logger.warning(
                    f"Poll request failed, skipping account this cycle: {e}",
                    extra={"account": account}
                )
                continue

            # First successful read of an account is its baseline, not news
            if account not in self._primed:
                primed = self._mark_seen(account, records)
                self._primed.add(account)
                logger.info(
                    f"Primed {primed} historical trades on first successful poll",
                    extra={"account": account}
                )
                continue

            # Oldest first so downstream sees trades in order
            batch: dict[str, TradeSignal] = {}
            for record in reversed(records):
                try:
                    signal = signal_from_trade(record)
                except (KeyError, ValueError, TypeError) as e:
                    self.bad_records += 1
                    logger.debug(f"Skipping unparseable trade record: {e}")
                    continue

                if signal.account != account or signal.id in self._seen:
                    continue

                if signal.id in batch:
                    combine_fills(batch[signal.id], signal)
                else:
                    batch[signal.id] = signal

            for signal in batch.values():
                self._seen.add(signal.id)
                self.output_queue.put_nowait(signal)
                emitted.append(signal)

        self.cycles += 1
        self.signals_emitted += len(emitted)

        if emitted:
            logger.info(f"Poll cycle emitted {len(emitted)} signals")

        return emitted

    def _mark_seen(self, account: str, records: list[dict]) -> int:
        marked = 0
        for record in records:
            try:
                signal = signal_from_trade(record)
            except (KeyError, ValueError, TypeError):
                continue
            if signal.account == account and self._seen.add(signal.id):
                marked += 1
        return marked

    async def prime(self) -> int:
        """
        Mark the accounts' current history as seen without emitting it.

        Trades that already settled before startup are not actionable.
        Accounts whose history could not be read stay unprimed and are
        primed by their first successful poll instead.
        """
        primed = 0
        for account in self.watched_accounts:
            if account in self._primed:
                continue
            try:
                records = await self.data_api.get_recent_trades(account, limit=self.page_size)
            except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
                logger.warning(f"Could not prime history for {account}: {e}")
                continue
            primed += self._mark_seen(account, records)
            self._primed.add(account)
        logger.info(f"Primed poll cache with {primed} historical trades")
        return primed

    async def run(self) -> None:
        """Poll until cancelled or stopped."""
        self._running = True
        logger.info(
            "Poll fallback started",
            extra={"interval_seconds": self.interval_seconds}
        )

        await self.prime()

        while self._running:
            started = time.monotonic()
            try:
                await self.poll_once()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Poll cycle error: {e}")

            elapsed = time.monotonic() - started
            await asyncio.sleep(max(self.interval_seconds - elapsed, 0.0))

    def stop(self) -> None:
        self._running = False

    def get_stats(self) -> dict:
        return {
            "cycles": self.cycles,
            "failed_requests": self.failed_requests,
            "bad_records": self.bad_records,
            "signals_emitted": self.signals_emitted
        }

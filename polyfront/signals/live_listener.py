"""
Live feed listener.

Turns the pending-transaction stream into raw TradeSignals for the
watched accounts.
"""

import asyncio
from typing import Optional

from ..clients.mempool_client import MempoolClient
from ..utils.logger import get_logger
from .decoder import DecodeStatus, try_decode_order_submission
from .models import TradeSignal

logger = get_logger("live_listener")


class LiveFeedListener:
    """
    Signal source fed by the node's pending-transaction subscription.

    Undecodable matches are counted and dropped; only DECODED results reach
    the output queue.
    """

    def __init__(
        self,
        mempool_client: MempoolClient,
        watched_accounts: set[str],
        output_queue: "asyncio.Queue[TradeSignal]"
    ):
        self.mempool_client = mempool_client
        self.watched_accounts = frozenset(a.lower() for a in watched_accounts)
        self.output_queue = output_queue

        self.mempool_client.on_transaction = self.on_transaction

        self.transactions_seen = 0
        self.signals_emitted = 0
        self.malformed = 0
        self._accepting = True

    def on_transaction(self, raw_tx: dict) -> Optional[list[TradeSignal]]:
        """Decode one pending transaction and enqueue its signals."""
        if not self._accepting:
            return None

        self.transactions_seen += 1
        result = try_decode_order_submission(raw_tx, self.watched_accounts)

        if result.status == DecodeStatus.MALFORMED:
            self.malformed += 1
            logger.warning(
                "Dropping malformed exchange transaction",
                extra={"error": result.error, "malformed_total": self.malformed}
            )
            return None

        if result.status == DecodeStatus.NOT_APPLICABLE:
            return None

        for signal in result.signals:
            self.output_queue.put_nowait(signal)
            self.signals_emitted += 1
            logger.info(
                "Pending trade detected",
                extra={
                    "signal_id": signal.id,
                    "account": signal.account,
                    "side": signal.side.value,
                    "size_usd": signal.size_usd
                }
            )

        return result.signals

    async def run(self) -> None:
        """Run the subscription until cancelled or stopped."""
        self._accepting = True
        logger.info(
            "Live feed listener started",
            extra={"watched_accounts": len(self.watched_accounts)}
        )
        try:
            await self.mempool_client.run()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            # Degraded mode: the poll fallback keeps the bot working
            logger.error(f"Live feed stopped, continuing on poll fallback: {e}")

    async def stop(self) -> None:
        self._accepting = False
        await self.mempool_client.disconnect()

    def get_stats(self) -> dict:
        return {
            "transactions_seen": self.transactions_seen,
            "signals_emitted": self.signals_emitted,
            "malformed": self.malformed,
            "reconnects": self.mempool_client.reconnects,
            "hashes_dropped": self.mempool_client.hashes_dropped
        }

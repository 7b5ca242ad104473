"""
WebSocket client for the pending-transaction feed of a Polygon node.
Handles connection, eth_subscribe and reconnection.
"""

import asyncio
import json
import time
from typing import Optional, Callable, Any

import websockets

from ..utils.logger import get_logger

logger = get_logger("mempool")


class SubscriptionError(RuntimeError):
    """The node refused the pending-transaction subscription."""


class MempoolClient:
    """
    Async JSON-RPC websocket client streaming pending transactions.

    Subscribes with ``eth_subscribe ["newPendingTransactions", true]`` so the
    node pushes full transaction objects. Nodes that only push hashes are
    supported through ``resolve_hash``. Reconnects with exponential backoff
    and never gives up unless ``max_reconnect_attempts`` is set.
    """

    SUBSCRIBE_ID = 1

    def __init__(
        self,
        ws_url: str,
        on_transaction: Optional[Callable[[dict], Any]] = None,
        resolve_hash: Optional[Callable[[str], Any]] = None,
        max_reconnect_attempts: Optional[int] = None,
        initial_reconnect_delay: float = 1.0,
        max_reconnect_delay: float = 60.0,
        max_pending_resolves: int = 64
    ):
        """
        Initialize mempool client.

        Args:
            ws_url: Websocket RPC endpoint (ws:// or wss://)
            on_transaction: Callback for each pending transaction dict
            resolve_hash: Async lookup used when the node pushes bare hashes
            max_reconnect_attempts: Give up after this many consecutive failures (None = never)
            initial_reconnect_delay: Initial delay between reconnections
            max_reconnect_delay: Maximum delay between reconnections
            max_pending_resolves: Concurrent hash lookups before new hashes are dropped
        """
        self.ws_url = ws_url
        self.on_transaction = on_transaction
        self.resolve_hash = resolve_hash
        self.max_reconnect_attempts = max_reconnect_attempts
        self.initial_reconnect_delay = initial_reconnect_delay
        self.max_reconnect_delay = max_reconnect_delay
        self.max_pending_resolves = max_pending_resolves

        self._ws = None
        self._subscription_id: Optional[str] = None
        self._running = False
        self._reconnect_attempts = 0
        self._last_message_time = 0.0
        self._resolving: set[asyncio.Task] = set()

        self.transactions_received = 0
        self.reconnects = 0
        self.hashes_dropped = 0

    @property
    def is_connected(self) -> bool:
        """Check if the subscription socket is open."""
        if self._ws is None:
            return False
        try:
            from websockets.protocol import State
            return self._ws.state == State.OPEN
        except (ImportError, AttributeError):
            return getattr(self._ws, 'open', False)

    async def connect(self) -> None:
        """Open the socket and subscribe to pending transactions."""
        logger.info("Connecting to mempool feed", extra={"url": self.ws_url})

        self._ws = await websockets.connect(
            self.ws_url,
            ping_interval=30,
            ping_timeout=10,
            close_timeout=5,
            max_size=None
        )

        await self._ws.send(json.dumps({
            "jsonrpc": "2.0",
            "id": self.SUBSCRIBE_ID,
            "method": "eth_subscribe",
            "params": ["newPendingTransactions", True]
        }))

        logger.info("Mempool subscription requested")

    async def disconnect(self) -> None:
        """Close the socket and stop the run loop."""
        self._running = False
        await self._cancel_resolving()
        if self._ws:
            await self._ws.close()
            self._ws = None
        self._subscription_id = None
        logger.info("Mempool feed disconnected")

    async def run(self) -> None:
        """
        Main loop - connect and process notifications.
        Handles reconnection on disconnect.
        """
        self._running = True

        while self._running:
            try:
                if not self.is_connected:
                    await self.connect()

                await self._process_messages()

                # Server closed the stream cleanly
                if self._running:
                    await self._handle_reconnect()

            except asyncio.CancelledError:
                raise

            except SubscriptionError as e:
                logger.warning(f"Mempool subscription failed: {e}")
                await self._handle_reconnect()

            except websockets.ConnectionClosed as e:
                logger.warning(f"Mempool connection closed: {e}")
                await self._handle_reconnect()

            except Exception as e:
                logger.error(f"Mempool feed error: {e}")
                await self._handle_reconnect()

    async def _process_messages(self) -> None:
        if not self._ws:
            return

        async for message in self._ws:
            self._last_message_time = time.time()

            try:
                data = json.loads(message)
                await self._handle_message(data)
            except json.JSONDecodeError:
                logger.warning(f"Invalid JSON message: {message[:100]}")
            except SubscriptionError:
                # The socket is useless without a subscription
                raise
            except Exception as e:
                logger.error(f"Error processing mempool message: {e}")

    async def _handle_message(self, data: dict) -> None:
        """Route a JSON-RPC response or subscription notification."""
        if not isinstance(data, dict):
            return

        if data.get("id") == self.SUBSCRIBE_ID:
            if "error" in data:
                raise SubscriptionError(f"eth_subscribe rejected: {data['error']}")
            self._subscription_id = data.get("result")
            self._reconnect_attempts = 0
            logger.info(
                "Subscribed to pending transactions",
                extra={"subscription_id": self._subscription_id}
            )
            return

        if data.get("method") != "eth_subscription":
            logger.debug(f"Ignoring message: {str(data)[:100]}")
            return

        result = data.get("params", {}).get("result")

        if isinstance(result, str):
            # Node pushed a bare hash
            if self.resolve_hash:
                self._schedule_resolve(result)
        elif isinstance(result, dict):
            await self._dispatch(result)

    def _schedule_resolve(self, tx_hash: str) -> None:
        """Look the hash up off the receive loop, bounded by max_pending_resolves."""
        if len(self._resolving) >= self.max_pending_resolves:
            self.hashes_dropped += 1
            if self.hashes_dropped % 100 == 1:
                logger.warning(
                    "Hash lookups falling behind, dropping pending transactions",
                    extra={
                        "pending_lookups": len(self._resolving),
                        "hashes_dropped": self.hashes_dropped
                    }
                )
            return

        task = asyncio.create_task(self._resolve_and_dispatch(tx_hash))
        self._resolving.add(task)
        task.add_done_callback(self._resolving.discard)

    async def _resolve_and_dispatch(self, tx_hash: str) -> None:
        try:
            tx = await self.resolve_hash(tx_hash)
            if tx:
                await self._dispatch(tx)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.debug(f"Failed to resolve pending transaction {tx_hash}: {e}")

    async def _dispatch(self, tx: dict) -> None:
        self.transactions_received += 1

        if self.on_transaction:
            await self._call_handler(self.on_transaction, tx)

    async def _cancel_resolving(self) -> None:
        tasks = list(self._resolving)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _call_handler(self, handler: Callable, *args) -> None:
        """Call handler, supporting both sync and async callbacks."""
        result = handler(*args)
        if asyncio.iscoroutine(result):
            await result

    async def _handle_reconnect(self) -> None:
        """Handle reconnection with exponential backoff."""
        if self._ws:
            try:
                await self._ws.close()
            except Exception as e:
                logger.debug(f"Error closing stale mempool socket: {e}")
        self._ws = None
        self._subscription_id = None
        self._reconnect_attempts += 1
        self.reconnects += 1

        if (
            self.max_reconnect_attempts is not None
            and self._reconnect_attempts > self.max_reconnect_attempts
        ):
            logger.error("Max reconnection attempts exceeded")
            self._running = False
            raise RuntimeError("Failed to reconnect to mempool feed")

        delay = min(
            self.initial_reconnect_delay * (2 ** (self._reconnect_attempts - 1)),
            self.max_reconnect_delay
        )

        logger.warning(
            f"Mempool feed down, poll fallback only. Reconnecting in {delay:.1f}s "
            f"(attempt {self._reconnect_attempts})"
        )
        await asyncio.sleep(delay)

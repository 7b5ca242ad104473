"""
Tests for the live feed listener.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from polyfront.signals.live_listener import LiveFeedListener

from builders import OTHER, WATCHED, fill_order_tx, make_order


def make_listener():
    mempool = MagicMock()
    mempool.run = AsyncMock()
    mempool.disconnect = AsyncMock()
    mempool.reconnects = 0
    queue: asyncio.Queue = asyncio.Queue()
    return LiveFeedListener(mempool, {WATCHED}, queue), mempool, queue


class TestLiveFeedListener:
    def test_registers_callback(self):
        listener, mempool, _ = make_listener()

        assert mempool.on_transaction == listener.on_transaction

    def test_enqueues_decoded_signals(self):
        listener, _, queue = make_listener()

        listener.on_transaction(fill_order_tx(make_order()))

        assert queue.qsize() == 1
        assert listener.signals_emitted == 1

    def test_ignores_unrelated_transactions(self):
        listener, _, queue = make_listener()

        listener.on_transaction(fill_order_tx(make_order(maker=OTHER)))

        assert queue.empty()
        assert listener.transactions_seen == 1

    def test_counts_malformed(self):
        listener, _, queue = make_listener()
        tx = fill_order_tx(make_order())
        tx["input"] = tx["input"][:80]

        listener.on_transaction(tx)

        assert queue.empty()
        assert listener.malformed == 1

    @pytest.mark.asyncio
    async def test_feed_failure_does_not_propagate(self):
        """A dead feed degrades to poll-only instead of crashing."""
        listener, mempool, _ = make_listener()
        mempool.run.side_effect = ConnectionError("gave up reconnecting")

        await listener.run()

        mempool.run.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_stop_rejects_further_transactions(self):
        listener, mempool, queue = make_listener()

        await listener.stop()
        listener.on_transaction(fill_order_tx(make_order()))

        mempool.disconnect.assert_awaited_once()
        assert queue.empty()

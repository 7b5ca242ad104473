"""
Tests for order error classification and the simulated client.
"""

import asyncio
from unittest.mock import MagicMock

import pytest
from py_clob_client.exceptions import PolyApiException

from polyfront.clients.clob_client import (
    CLOBClient,
    SimulatedCLOBClient,
    clamp_price,
    is_ambiguous_post_error,
    is_recoverable_error,
    shares_for,
)
from polyfront.signals.models import TradeSide


class TestErrorClassification:
    @pytest.mark.parametrize("error", [
        asyncio.TimeoutError(),
        ConnectionError("reset by peer"),
        RuntimeError("nonce too low"),
        RuntimeError("Too Many Requests"),
        PolyApiException(error_msg="no response"),
    ])
    def test_recoverable(self, error):
        assert is_recoverable_error(error)

    @pytest.mark.parametrize("error", [
        RuntimeError("not enough balance / allowance"),
        RuntimeError("invalid order: min size 5"),
        ValueError("Invalid price 0"),
    ])
    def test_not_recoverable(self, error):
        assert not is_recoverable_error(error)


class TestAmbiguousPost:
    """Tests for failures that may have left an order on the book."""

    @pytest.mark.parametrize("error", [
        asyncio.TimeoutError(),
        TimeoutError("read timed out"),
        PolyApiException(error_msg="Request exception!"),
    ])
    def test_ambiguous(self, error):
        assert is_ambiguous_post_error(error)

    @pytest.mark.parametrize("error", [
        ConnectionError("connection refused"),
        RuntimeError("not enough balance / allowance"),
    ])
    def test_unambiguous(self, error):
        assert not is_ambiguous_post_error(error)


class TestCLOBClientSubmit:
    @pytest.fixture
    def client(self):
        client = CLOBClient(private_key="0x" + "ab" * 32)
        client._client = MagicMock()
        client._client.post_order.return_value = {"success": True, "orderID": "0xorder", "status": "live"}
        return client

    @pytest.mark.asyncio
    async def test_places_order(self, client):
        result = await client.submit_order("token-1", TradeSide.BUY, 250.0, 0.5, 36.0)

        assert result.success
        assert result.order_id == "0xorder"
        order_args = client._client.create_order.call_args.args[0]
        assert order_args.size == 500.0
        assert order_args.price == 0.5

    @pytest.mark.asyncio
    async def test_post_timeout_is_final(self, client):
        client._client.post_order.side_effect = TimeoutError("read timed out")

        result = await client.submit_order("token-1", TradeSide.BUY, 250.0, 0.5, 36.0)

        assert not result.success
        assert not result.recoverable
        assert result.error.startswith("ambiguous")

    @pytest.mark.asyncio
    async def test_signing_failure_can_retry(self, client):
        """Nothing was sent when signing fails, so a retry is safe."""
        client._client.create_order.side_effect = ConnectionError("tick size lookup failed")

        result = await client.submit_order("token-1", TradeSide.BUY, 250.0, 0.5, 36.0)

        assert not result.success
        assert result.recoverable
        client._client.post_order.assert_not_called()

    @pytest.mark.asyncio
    async def test_rejection_is_reported(self, client):
        client._client.post_order.return_value = {"success": False, "errorMsg": "not enough balance / allowance"}

        result = await client.submit_order("token-1", TradeSide.BUY, 250.0, 0.5, 36.0)

        assert result.status == "REJECTED"
        assert not result.recoverable


class TestOrderMath:
    def test_shares_for(self):
        assert shares_for(250.0, 0.5) == 500.0

    def test_shares_for_rejects_zero_price(self):
        with pytest.raises(ValueError):
            shares_for(250.0, 0.0)

    def test_clamp_price(self):
        assert clamp_price(0.0) == 0.01
        assert clamp_price(1.0) == 0.99
        assert clamp_price(0.456) == 0.46


class TestSimulatedCLOBClient:
    @pytest.mark.asyncio
    async def test_records_orders(self):
        client = SimulatedCLOBClient()

        first = await client.submit_order("token-1", TradeSide.BUY, 250.0, 0.5, 36.0)
        second = await client.submit_order("token-2", TradeSide.SELL, 100.0, 0.7, 36.0)

        assert first.success and second.success
        assert [o["order_id"] for o in client.orders] == ["sim-1", "sim-2"]
        assert client.orders[0]["gas_price_hint"] == 36.0

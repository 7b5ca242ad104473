"""
CLOB client wrapper for Polymarket order operations.
Wraps py-clob-client with async support and error classification.
"""

import asyncio
from dataclasses import dataclass
from typing import Optional, Literal
import time

from py_clob_client.client import ClobClient
from py_clob_client.clob_types import ApiCreds, OrderArgs, OrderType
from py_clob_client.exceptions import PolyApiException
from py_clob_client.order_builder.constants import BUY, SELL

from ..signals.models import TradeSide
from ..utils.logger import get_logger

logger = get_logger("clob")


CLOB_HOST = "https://clob.polymarket.com"

# Polymarket tick bounds
MIN_PRICE = 0.01
MAX_PRICE = 0.99

# Substrings of error messages that are worth retrying
RECOVERABLE_MARKERS = (
    "timeout",
    "timed out",
    "nonce",
    "connection",
    "temporarily",
    "rate limit",
    "too many requests",
)

# Substrings that indicate retrying cannot help
FATAL_MARKERS = (
    "not enough balance",
    "allowance",
    "invalid",
    "min size",
    "minimum",
)


@dataclass
class OrderResult:
    """Result of an order placement."""
    order_id: str
    success: bool
    status: str
    error: Optional[str] = None
    recoverable: bool = False
    timestamp: float = 0.0


def is_recoverable_error(error: BaseException) -> bool:
    """
    Classify an order submission error.

    Network failures, nonce conflicts, rate limiting and server errors are
    recoverable; rejected parameters and balance/allowance problems are not.
    """
    if isinstance(error, (asyncio.TimeoutError, TimeoutError, ConnectionError)):
        return True

    message = str(error).lower()

    if isinstance(error, PolyApiException):
        status_code = getattr(error, "status_code", None)
        if status_code is None:
            # No HTTP response at all: transport failure
            return True
        if status_code == 429 or status_code >= 500:
            return True
        if status_code >= 400:
            return any(marker in message for marker in ("nonce",))

    if any(marker in message for marker in FATAL_MARKERS):
        return False

    return any(marker in message for marker in RECOVERABLE_MARKERS)


def is_ambiguous_post_error(error: BaseException) -> bool:
    """
    Whether a post_order failure leaves it unknown if the order was accepted.

    A request that timed out or got no HTTP response may still have reached
    the exchange, so resubmitting could place the order twice.
    """
    if isinstance(error, (asyncio.TimeoutError, TimeoutError)):
        return True
    if isinstance(error, PolyApiException) and getattr(error, "status_code", None) is None:
        return True
    message = str(error).lower()
    return "timeout" in message or "timed out" in message


def shares_for(size_usd: float, price: float) -> float:
    """Convert a USD notional into outcome shares at ``price``."""
    if price <= 0:
        raise ValueError(f"Invalid price {price}")
    return round(size_usd / price, 2)


def clamp_price(price: float) -> float:
    return round(min(max(price, MIN_PRICE), MAX_PRICE), 2)


class CLOBClient:
    """
    Async wrapper for Polymarket CLOB client.

    Handles order placement. Uses the official py-clob-client under the hood.
    """

    def __init__(
        self,
        private_key: str,
        api_key: Optional[str] = None,
        api_secret: Optional[str] = None,
        api_passphrase: Optional[str] = None,
        funder: Optional[str] = None,
        chain_id: int = 137  # Polygon Mainnet
    ):
        """
        Initialize CLOB client.

        Args:
            private_key: Wallet private key
            api_key: Polymarket API key (derived when omitted)
            api_secret: Polymarket API secret
            api_passphrase: Polymarket API passphrase
            funder: Proxy wallet holding funds, if different from the signer
            chain_id: Blockchain chain ID (137 for Polygon)
        """
        self.private_key = private_key
        self.api_key = api_key
        self.api_secret = api_secret
        self.api_passphrase = api_passphrase
        self.funder = funder
        self.chain_id = chain_id

        self._client: Optional[ClobClient] = None

    async def initialize(self) -> None:
        """Initialize the CLOB client."""
        logger.info("Initializing CLOB client")

        # Client construction may do blocking I/O
        loop = asyncio.get_event_loop()
        self._client = await loop.run_in_executor(
            None,
            self._create_client
        )

        logger.info("CLOB client initialized successfully")

    def _create_client(self) -> ClobClient:
        """Create the underlying py-clob-client instance."""
        client = ClobClient(
            host=CLOB_HOST,
            key=self.private_key,
            chain_id=self.chain_id,
            funder=self.funder
        )

        if self.api_key and self.api_secret and self.api_passphrase:
            creds = ApiCreds(
                api_key=self.api_key,
                api_secret=self.api_secret,
                api_passphrase=self.api_passphrase
            )
        else:
            creds = client.create_or_derive_api_creds()

        client.set_api_creds(creds)
        return client

    async def submit_order(
        self,
        token_id: str,
        side: TradeSide,
        size_usd: float,
        price: float,
        gas_price_hint: float,
        order_type: Literal["GTC", "FOK", "GTD"] = "GTC"
    ) -> OrderResult:
        """
        Place a limit order sized in USD.

        Args:
            token_id: Outcome token to trade
            side: BUY or SELL
            size_usd: USD notional
            price: Limit price (0-1)
            gas_price_hint: Priority fee level chosen by the decision stage
            order_type: Order type (GTC, FOK, GTD)

        Returns:
            OrderResult with order ID and status
        """
        if not self._client:
            raise RuntimeError("CLOB client not initialized")

        limit_price = clamp_price(price)

        try:
            size = shares_for(size_usd, limit_price)
        except ValueError as e:
            return OrderResult(
                order_id="",
                success=False,
                status="FAILED",
                error=str(e),
                recoverable=False,
                timestamp=time.time()
            )

        logger.debug(
            f"Placing order: {side.value} {size} @ {limit_price} for {token_id}",
            extra={"gas_price_hint": gas_price_hint}
        )

        loop = asyncio.get_event_loop()

        try:
            order_args = OrderArgs(
                token_id=token_id,
                price=limit_price,
                size=size,
                side=BUY if side == TradeSide.BUY else SELL
            )

            signed_order = await loop.run_in_executor(
                None,
                lambda: self._client.create_order(order_args)
            )
        except Exception as e:
            return self._failure(e, token_id, is_recoverable_error(e))

        # Bounded by the HTTP client's own timeout; the post is never abandoned
        # while its worker thread may still deliver it
        try:
            result = await loop.run_in_executor(
                None,
                lambda: self._client.post_order(signed_order, orderType=getattr(OrderType, order_type))
            )
        except Exception as e:
            if is_ambiguous_post_error(e):
                return self._failure(e, token_id, False, prefix="ambiguous, order may have been posted: ")
            return self._failure(e, token_id, is_recoverable_error(e))

        if not result or not result.get("success", True):
            message = (result or {}).get("errorMsg") or "Order rejected"
            return OrderResult(
                order_id="",
                success=False,
                status="REJECTED",
                error=message,
                recoverable=is_recoverable_error(RuntimeError(message)),
                timestamp=time.time()
            )

        order_id = result.get("orderID", "")

        logger.info(
            "Order placed successfully",
            extra={
                "order_id": order_id,
                "token_id": token_id,
                "side": side.value,
                "size": size,
                "price": limit_price,
                "gas_price_hint": gas_price_hint
            }
        )

        return OrderResult(
            order_id=order_id,
            success=True,
            status=result.get("status", "LIVE"),
            timestamp=time.time()
        )

    def _failure(
        self,
        error: Exception,
        token_id: str,
        recoverable: bool,
        prefix: str = ""
    ) -> OrderResult:
        message = prefix + (str(error) or type(error).__name__)
        logger.error(
            f"Failed to place order: {message}",
            extra={"token_id": token_id, "recoverable": recoverable}
        )
        return OrderResult(
            order_id="",
            success=False,
            status="FAILED",
            error=message,
            recoverable=recoverable,
            timestamp=time.time()
        )


class SimulatedCLOBClient:
    """Dry-run order client: logs the order it would place and reports success."""

    def __init__(self):
        self.orders: list[dict] = []

    async def initialize(self) -> None:
        logger.info("[SIMULATION] Orders will not be sent")

    async def submit_order(
        self,
        token_id: str,
        side: TradeSide,
        size_usd: float,
        price: float,
        gas_price_hint: float,
        order_type: str = "GTC"
    ) -> OrderResult:
        order_id = f"sim-{len(self.orders) + 1}"
        order = {
            "order_id": order_id,
            "token_id": token_id,
            "side": side.value,
            "size_usd": size_usd,
            "price": clamp_price(price),
            "gas_price_hint": gas_price_hint,
            "order_type": order_type
        }
        self.orders.append(order)

        logger.info("[SIMULATION] Would place order", extra=order)

        return OrderResult(
            order_id=order_id,
            success=True,
            status="SIMULATED",
            timestamp=time.time()
        )

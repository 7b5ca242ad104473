"""
Polygon blockchain client for on-chain reads.
Provides the gas price oracle, the balance oracle and transaction lookups.
"""

import asyncio
from dataclasses import dataclass
from typing import Optional
import time

from web3 import Web3

# Handle different web3.py versions for PoA middleware
try:
    from web3.middleware import ExtraDataToPOAMiddleware
    POA_MIDDLEWARE = ExtraDataToPOAMiddleware
except ImportError:
    try:
        from web3.middleware import geth_poa_middleware
        POA_MIDDLEWARE = geth_poa_middleware
    except ImportError:
        POA_MIDDLEWARE = None

from ..signals.models import TradeSide
from ..utils.logger import get_logger

logger = get_logger("polygon")


# Conditional Tokens (ERC-1155) contract holding outcome positions
CONDITIONAL_TOKENS_ADDRESS = "0x4D97DCd97eC945f40cF65F87097ACe5EA0476045"
CONDITIONAL_TOKENS_ABI = [
    {
        "inputs": [
            {"name": "account", "type": "address"},
            {"name": "id", "type": "uint256"}
        ],
        "name": "balanceOf",
        "outputs": [{"name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function"
    }
]

# USDC contract on Polygon
USDC_ADDRESS = "0x2791Bca1f2de4661ED88A30C99A7a9449Aa84174"
USDC_ABI = [
    {
        "inputs": [{"name": "account", "type": "address"}],
        "name": "balanceOf",
        "outputs": [{"name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function"
    }
]

# USDC and outcome tokens both use 6 decimals
TOKEN_DECIMALS = 1e6


@dataclass
class WalletBalance:
    """Wallet balance information."""
    usdc_balance: float
    pol_balance: float
    timestamp: float


class PolygonClient:
    """
    Client for Polygon read operations.

    Handles:
    - Gas price queries (with a last-known fallback)
    - Balance queries (USDC, POL, outcome tokens)
    - Pending transaction lookups by hash
    """

    def __init__(
        self,
        rpc_url: str,
        wallet_address: str,
        usdc_address: str = USDC_ADDRESS
    ):
        """
        Initialize Polygon client.

        Args:
            rpc_url: Polygon HTTP RPC endpoint URL
            wallet_address: Address whose balances back our orders
            usdc_address: USDC token contract
        """
        self.rpc_url = rpc_url
        self.wallet_address = Web3.to_checksum_address(wallet_address)
        self.usdc_address = usdc_address

        self._web3: Optional[Web3] = None
        self._usdc_contract = None
        self._ctf_contract = None

        # Gas price cache (gwei), used when the RPC call fails
        self._gas_price_gwei: float = 30.0

    async def initialize(self) -> None:
        """Initialize Web3 connection and contracts."""
        logger.info("Initializing Polygon client")

        loop = asyncio.get_event_loop()
        await loop.run_in_executor(None, self._setup_web3)

        logger.info("Polygon client initialized")

    def _setup_web3(self) -> None:
        """Set up Web3 instance and contracts."""
        self._web3 = Web3(Web3.HTTPProvider(self.rpc_url))

        # Polygon is a PoA chain
        if POA_MIDDLEWARE:
            try:
                self._web3.middleware_onion.inject(POA_MIDDLEWARE, layer=0)
            except ValueError:
                logger.debug("PoA middleware already present")

        if not self._web3.is_connected():
            raise RuntimeError(f"Failed to connect to Polygon RPC: {self.rpc_url}")

        self._usdc_contract = self._web3.eth.contract(
            address=Web3.to_checksum_address(self.usdc_address),
            abi=USDC_ABI
        )
        self._ctf_contract = self._web3.eth.contract(
            address=Web3.to_checksum_address(CONDITIONAL_TOKENS_ADDRESS),
            abi=CONDITIONAL_TOKENS_ABI
        )

    def _require_web3(self) -> Web3:
        if not self._web3:
            raise RuntimeError("Polygon client not initialized")
        return self._web3

    async def current_gas_price(self) -> float:
        """
        Current network gas price in gwei.

        Falls back to the last successfully read value when the RPC fails.
        """
        web3 = self._require_web3()
        loop = asyncio.get_event_loop()

        try:
            gas_price_wei = await loop.run_in_executor(None, lambda: web3.eth.gas_price)
            self._gas_price_gwei = float(web3.from_wei(gas_price_wei, "gwei"))
        except Exception as e:
            logger.warning(
                f"Gas price query failed, using last known value: {e}",
                extra={"gas_price_gwei": self._gas_price_gwei}
            )

        return self._gas_price_gwei

    async def get_balance(self) -> WalletBalance:
        """Get current wallet balances."""
        web3 = self._require_web3()
        loop = asyncio.get_event_loop()

        pol_wei = await loop.run_in_executor(
            None,
            lambda: web3.eth.get_balance(self.wallet_address)
        )

        usdc_raw = await loop.run_in_executor(
            None,
            lambda: self._usdc_contract.functions.balanceOf(self.wallet_address).call()
        )

        return WalletBalance(
            usdc_balance=usdc_raw / TOKEN_DECIMALS,
            pol_balance=float(web3.from_wei(pol_wei, "ether")),
            timestamp=time.time()
        )

    async def get_token_balance(self, token_id: str) -> float:
        """Balance of one outcome token (in shares)."""
        self._require_web3()
        loop = asyncio.get_event_loop()

        balance = await loop.run_in_executor(
            None,
            lambda: self._ctf_contract.functions.balanceOf(
                self.wallet_address,
                int(token_id)
            ).call()
        )
        return balance / TOKEN_DECIMALS

    async def has_sufficient_balance(
        self,
        side: TradeSide,
        size_usd: float,
        token_id: str,
        price: float
    ) -> bool:
        """
        Check whether our wallet can back an order of ``size_usd``.

        A buy needs USDC; a sell needs enough outcome tokens at ``price``.
        """
        if side == TradeSide.BUY:
            balance = await self.get_balance()
            return balance.usdc_balance >= size_usd

        if price <= 0:
            return False
        shares = await self.get_token_balance(token_id)
        return shares * price >= size_usd

    async def get_transaction(self, tx_hash: str) -> Optional[dict]:
        """Fetch a (possibly pending) transaction by hash."""
        web3 = self._require_web3()
        loop = asyncio.get_event_loop()

        try:
            tx = await loop.run_in_executor(
                None,
                lambda: web3.eth.get_transaction(tx_hash)
            )
        except Exception as e:
            logger.debug(f"Transaction lookup failed for {tx_hash}: {e}")
            return None

        return dict(tx) if tx else None

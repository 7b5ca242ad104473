"""
Decoder for Polymarket exchange transactions seen in the mempool.

Recognizes CTF Exchange / NegRisk CTF Exchange order-fill calls and turns
every order made or signed by a watched account into a TradeSignal.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Optional
import time

from eth_abi import decode
from eth_abi.exceptions import DecodingError
from web3 import Web3

from .models import (
    ConfirmationState,
    SourceType,
    TradeSide,
    TradeSignal,
    make_signal_id,
)


CTF_EXCHANGE_ADDRESS = "0x4bfb41d5b3570defd03c39a9a4d8de6bd8b8982e"
NEG_RISK_CTF_EXCHANGE_ADDRESS = "0xc5d563a36ae78145c45a50134d48a1215220f80a"

EXCHANGE_ADDRESSES = frozenset({CTF_EXCHANGE_ADDRESS, NEG_RISK_CTF_EXCHANGE_ADDRESS})

# Order(salt, maker, signer, taker, tokenId, makerAmount, takerAmount,
#       expiration, nonce, feeRateBps, side, signatureType, signature)
ORDER_TUPLE = "(uint256,address,address,address,uint256,uint256,uint256,uint256,uint256,uint256,uint8,uint8,bytes)"

FILL_ORDER_ARGS = [ORDER_TUPLE, "uint256"]
FILL_ORDERS_ARGS = [f"{ORDER_TUPLE}[]", "uint256[]"]
MATCH_ORDERS_ARGS = [ORDER_TUPLE, f"{ORDER_TUPLE}[]", "uint256", "uint256[]"]


def _selector(signature: str) -> str:
    return Web3.keccak(text=signature).hex().removeprefix("0x")[:8]


FILL_ORDER_SELECTOR = _selector(f"fillOrder({ORDER_TUPLE},uint256)")
FILL_ORDERS_SELECTOR = _selector(f"fillOrders({ORDER_TUPLE}[],uint256[])")
MATCH_ORDERS_SELECTOR = _selector(
    f"matchOrders({ORDER_TUPLE},{ORDER_TUPLE}[],uint256,uint256[])"
)

# Amounts (USDC and outcome tokens) use 6 decimals
AMOUNT_SCALE = 1e6


class DecodeStatus(Enum):
    DECODED = "decoded"
    NOT_APPLICABLE = "not_applicable"
    MALFORMED = "malformed"


@dataclass
class DecodeResult:
    """Outcome of inspecting one raw transaction."""
    status: DecodeStatus
    signals: list[TradeSignal] = field(default_factory=list)
    error: Optional[str] = None

    @classmethod
    def not_applicable(cls) -> "DecodeResult":
        return cls(status=DecodeStatus.NOT_APPLICABLE)

    @classmethod
    def malformed(cls, error: str) -> "DecodeResult":
        return cls(status=DecodeStatus.MALFORMED, error=error)


@dataclass
class DecodedOrder:
    maker: str
    signer: str
    token_id: int
    maker_amount: int
    taker_amount: int
    side: TradeSide


def _to_hex(value: Any) -> str:
    """Normalize str / bytes / HexBytes fields to a lowercase 0x-less hex string."""
    if value is None:
        return ""
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).hex()
    text = str(value).lower()
    return text[2:] if text.startswith("0x") else text


def _parse_order(raw: tuple) -> DecodedOrder:
    side_raw = raw[10]
    if side_raw not in (0, 1):
        raise ValueError(f"Unknown order side {side_raw}")
    return DecodedOrder(
        maker=str(raw[1]).lower(),
        signer=str(raw[2]).lower(),
        token_id=int(raw[4]),
        maker_amount=int(raw[5]),
        taker_amount=int(raw[6]),
        side=TradeSide.BUY if side_raw == 0 else TradeSide.SELL
    )


def _orders_from_calldata(selector: str, payload: bytes) -> list[DecodedOrder]:
    if selector == FILL_ORDER_SELECTOR:
        order, _ = decode(FILL_ORDER_ARGS, payload)
        return [_parse_order(order)]

    if selector == FILL_ORDERS_SELECTOR:
        orders, _ = decode(FILL_ORDERS_ARGS, payload)
        return [_parse_order(order) for order in orders]

    # matchOrders: taker order first, then makers
    taker_order, maker_orders, _, _ = decode(MATCH_ORDERS_ARGS, payload)
    return [_parse_order(taker_order)] + [_parse_order(order) for order in maker_orders]


def _signal_from_orders(
    orders: list[DecodedOrder],
    account: str,
    tx_hash: str,
    detected_at: float
) -> TradeSignal:
    """Sum one account's orders on the same token and side into a signal."""
    if any(o.maker_amount <= 0 or o.taker_amount <= 0 for o in orders):
        raise ValueError("Order amounts must be positive")

    maker_total = sum(o.maker_amount for o in orders)
    taker_total = sum(o.taker_amount for o in orders)
    side = orders[0].side

    if side == TradeSide.BUY:
        # Paying USDC (maker amount) for shares (taker amount)
        size_usd = maker_total / AMOUNT_SCALE
        price = maker_total / taker_total
    else:
        size_usd = taker_total / AMOUNT_SCALE
        price = taker_total / maker_total

    token_id = str(orders[0].token_id)

    return TradeSignal(
        id=make_signal_id(account, token_id, side, tx_hash=tx_hash),
        source_type=SourceType.LIVE,
        account=account,
        market_id=token_id,
        outcome_id=token_id,
        side=side,
        size_usd=size_usd,
        price=price,
        detected_at=detected_at,
        confirmation_state=ConfirmationState.PENDING,
        tx_hash=tx_hash
    )


def try_decode_order_submission(
    raw_tx: dict,
    watched_accounts: Iterable[str],
    detected_at: Optional[float] = None
) -> DecodeResult:
    """
    Inspect a pending transaction for watched accounts' exchange orders.

    Args:
        raw_tx: Transaction dict as pushed by the node or returned by web3
        watched_accounts: Lowercase addresses to look for
        detected_at: Observation time (defaults to now)

    Returns:
        DecodeResult tagged DECODED, NOT_APPLICABLE or MALFORMED
    """
    watched = watched_accounts if isinstance(watched_accounts, (set, frozenset)) else set(watched_accounts)

    to_address = raw_tx.get("to")
    if not to_address or f"0x{_to_hex(to_address)}" not in EXCHANGE_ADDRESSES:
        return DecodeResult.not_applicable()

    calldata = _to_hex(raw_tx.get("input") or raw_tx.get("data"))
    selector = calldata[:8]
    if selector not in (FILL_ORDER_SELECTOR, FILL_ORDERS_SELECTOR, MATCH_ORDERS_SELECTOR):
        return DecodeResult.not_applicable()

    tx_hash = _to_hex(raw_tx.get("hash"))
    if not tx_hash:
        return DecodeResult.malformed("Transaction has no hash")
    tx_hash = f"0x{tx_hash}"

    try:
        orders = _orders_from_calldata(selector, bytes.fromhex(calldata[8:]))
    except (DecodingError, ValueError, TypeError, IndexError) as e:
        return DecodeResult.malformed(f"Undecodable calldata: {e}")

    detected_at = time.time() if detected_at is None else detected_at

    # One signal per account, token and side
    groups: dict[tuple[str, int, TradeSide], list[DecodedOrder]] = {}
    for order in orders:
        if order.maker in watched:
            account = order.maker
        elif order.signer in watched:
            account = order.signer
        else:
            continue
        groups.setdefault((account, order.token_id, order.side), []).append(order)

    if not groups:
        return DecodeResult.not_applicable()

    try:
        signals = [
            _signal_from_orders(group, account, tx_hash, detected_at)
            for (account, _, _), group in groups.items()
        ]
    except ValueError as e:
        return DecodeResult.malformed(str(e))

    return DecodeResult(status=DecodeStatus.DECODED, signals=signals)

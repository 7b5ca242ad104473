"""
Validation helpers for addresses, private keys and RPC endpoints.
"""

import re
from typing import Iterable
from urllib.parse import urlparse


ADDRESS_RE = re.compile(r"^0x[a-fA-F0-9]{40}$")
PRIVATE_KEY_RE = re.compile(r"^[a-fA-F0-9]{64}$")


class ValidationError(ValueError):
    """Invalid configuration value."""

    def __init__(self, message: str, field: str):
        super().__init__(message)
        self.field = field


def is_valid_address(address: str) -> bool:
    """Check for 0x followed by 40 hex characters."""
    if not address or not isinstance(address, str):
        return False
    return bool(ADDRESS_RE.match(address.strip()))


def is_valid_private_key(key: str) -> bool:
    if not key or not isinstance(key, str):
        return False
    trimmed = key.strip()
    clean = trimmed[2:] if trimmed.startswith("0x") else trimmed
    return bool(PRIVATE_KEY_RE.match(clean))


def normalize_address(address: str, field: str = "ADDRESS") -> str:
    """
    Validate an address and return it lowercased.

    Lowercase is the canonical form used for every comparison in the bot.
    """
    if not address or not isinstance(address, str):
        raise ValidationError("Address must be a non-empty string", field)

    trimmed = address.strip()
    if not is_valid_address(trimmed):
        raise ValidationError(
            "Invalid Polygon address format. Expected 0x followed by 40 hex characters.\n"
            f"Got: {trimmed[:20]}...",
            field
        )
    return trimmed.lower()


def normalize_private_key(key: str) -> str:
    """Validate a hex private key and return it with a 0x prefix."""
    if not key or not isinstance(key, str):
        raise ValidationError("Private key must be a non-empty string", "PRIVATE_KEY")

    trimmed = key.strip()

    if trimmed.startswith("suiprivkey"):
        raise ValidationError(
            "Detected Sui private key format. This bot requires Polygon "
            "(Ethereum-compatible) private keys in hex format.",
            "PRIVATE_KEY"
        )

    if not is_valid_private_key(trimmed):
        raise ValidationError(
            "Invalid private key format. Expected 64 hex characters, optionally prefixed with 0x.\n"
            f"Got length: {len(trimmed)}",
            "PRIVATE_KEY"
        )

    clean = trimmed[2:] if trimmed.startswith("0x") else trimmed
    return f"0x{clean}"


def is_valid_rpc_url(url: str, schemes: Iterable[str] = ("http", "https")) -> bool:
    if not url or not isinstance(url, str):
        return False
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    return parsed.scheme in tuple(schemes) and bool(parsed.netloc)


def validate_addresses(addresses: list[str]) -> list[str]:
    """Normalize a list of watched addresses, reporting every bad entry at once."""
    if not addresses:
        raise ValidationError(
            "At least one target address is required",
            "TARGET_ADDRESSES"
        )

    normalized = []
    errors = []
    for index, address in enumerate(addresses):
        try:
            normalized.append(normalize_address(address, "TARGET_ADDRESSES"))
        except ValidationError as e:
            errors.append(f"Address[{index}]: {e}")

    if errors:
        raise ValidationError(
            "Invalid addresses found:\n" + "\n".join(errors),
            "TARGET_ADDRESSES"
        )

    # Preserve order, drop repeats
    return list(dict.fromkeys(normalized))

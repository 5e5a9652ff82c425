from decimal import ROUND_DOWN, Decimal
from typing import Any

import base58
from solders.pubkey import Pubkey

from .exceptions import InvalidAddressError

SOLANA_ADDRESS_LENGTH = 32
LAMPORTS_PER_SOL = 1_000_000_000
DISPLAY_DECIMALS = Decimal("0.0001")


def validate_solana_address(address: Any, field_name: str = "address") -> str:
    if not isinstance(address, str):
        raise InvalidAddressError(
            f"Address must be a string, got {type(address).__name__}",
            invalid_address=str(address)[:50],
            context={"field": field_name},
        )

    address = address.strip()

    if not address:
        raise InvalidAddressError(
            "Address cannot be empty", invalid_address="", context={"field": field_name}
        )

    if len(address) < 32 or len(address) > 44:
        raise InvalidAddressError(
            f"Invalid address length: {len(address)} characters",
            invalid_address=address, context={"field": field_name},
        )

    try:
        decoded = base58.b58decode(address)
    except ValueError as e:
        raise InvalidAddressError(
            f"Invalid base58 encoding: {str(e)}",
            invalid_address=address, context={"field": field_name},
        ) from e

    if len(decoded) != SOLANA_ADDRESS_LENGTH:
        raise InvalidAddressError(
            f"Decoded address has wrong length: {len(decoded)} bytes (expected {SOLANA_ADDRESS_LENGTH})",
            invalid_address=address, context={"field": field_name},
        )

    try:
        Pubkey.from_string(address)
    except ValueError as e:
        raise InvalidAddressError(
            f"Address rejected: {str(e)}",
            invalid_address=address, context={"field": field_name},
        ) from e

    return address


def is_valid_address(candidate: Any) -> bool:
    """True if ``candidate`` parses as a Solana public key. Never raises."""
    if not isinstance(candidate, str):
        return False
    try:
        Pubkey.from_string(candidate)
    except Exception:
        return False
    return True


def lamports_to_sol(lamports: int) -> Decimal:
    return Decimal(lamports) / LAMPORTS_PER_SOL


def format_sol(lamports: int) -> str:
    """Fixed 4-decimal SOL string for display."""
    return f"{lamports_to_sol(lamports).quantize(DISPLAY_DECIMALS, rounding=ROUND_DOWN)} SOL"


def shorten_address(address: str) -> str:
    if len(address) <= 12:
        return address
    return f"{address[:8]}...{address[-4:]}"

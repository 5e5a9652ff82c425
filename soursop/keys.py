"""
Key Derivation & Import Engine

Produces Solana ed25519 keypairs for the wallet manager:
- Fresh wallets from a 12-word BIP-39 phrase
- Deterministic recovery from a BIP-39 phrase (m/44'/501'/0'/0')
- Private key import in base58, hex or JSON byte-array form

Keypairs are always rebuilt from the secret seed, so the public key of a
WalletInfo is the one the private key actually signs for.
"""

import hashlib
import hmac
import json
import logging
import struct
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

import base58
from mnemonic import Mnemonic
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from .exceptions import GenerationError, KeyTooShortError, WalletImportError


logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

SEED_LENGTH = 32
SECRET_KEY_LENGTH = 64
HEX_SECRET_KEY_LENGTH = SECRET_KEY_LENGTH * 2
MNEMONIC_STRENGTH = 128  # bits -> 12 words
MNEMONIC_WORD_COUNTS = (12, 15, 18, 21, 24)

SOLANA_COIN_TYPE = 501
DERIVATION_PATH = "m/44'/501'/0'/0'"
HARDENED_OFFSET = 0x80000000

_mnemo = Mnemonic("english")


# =============================================================================
# Data Classes
# =============================================================================

class KeyFormat(str, Enum):
    """Encodings accepted by :func:`import_from_private_key`."""
    BYTE_ARRAY = "byte_array"
    HEX = "hex"
    BASE58 = "base58"


@dataclass
class WalletInfo:
    """Plaintext wallet held in memory only. Never persist as-is."""
    public_key: Pubkey
    private_key: Keypair = field(repr=False)
    mnemonic: Optional[str] = field(default=None, repr=False)

    @property
    def address(self) -> str:
        return str(self.public_key)

    @property
    def has_mnemonic(self) -> bool:
        return self.mnemonic is not None

    def export_private_key(self) -> str:
        """64-byte secret (seed || pubkey) in base58, as Phantom and the Solana CLI use."""
        return export_keypair(self.private_key)

    @classmethod
    def from_keypair(cls, keypair: Keypair, mnemonic: Optional[str] = None) -> "WalletInfo":
        return cls(public_key=keypair.pubkey(), private_key=keypair, mnemonic=mnemonic)


# =============================================================================
# Mnemonic derivation
# =============================================================================

def parse_derivation_path(path: str) -> List[int]:
    """Turn ``m/44'/501'/0'/0'`` into hardened indices. ed25519 only allows hardened steps."""
    parts = path.split("/")
    if not parts or parts[0] != "m":
        raise ValueError(f"Derivation path must start with 'm': {path}")

    indices = []
    for part in parts[1:]:
        if not part.endswith("'"):
            raise ValueError(f"Only hardened derivation is defined for ed25519: {part}")
        indices.append(int(part[:-1]) + HARDENED_OFFSET)
    return indices


def derive_ed25519_seed(seed: bytes, path: str = DERIVATION_PATH) -> bytes:
    """
    SLIP-0010 ed25519 child key derivation.

    Args:
        seed: 64-byte BIP-39 seed
        path: Hardened derivation path

    Returns:
        32-byte secret seed for the final path component
    """
    digest = hmac.new(b"ed25519 seed", seed, hashlib.sha512).digest()
    key, chain_code = digest[:32], digest[32:]

    for index in parse_derivation_path(path):
        data = b"\x00" + key + struct.pack(">L", index)
        digest = hmac.new(chain_code, data, hashlib.sha512).digest()
        key, chain_code = digest[:32], digest[32:]

    return key


def keypair_from_mnemonic(phrase: str) -> Keypair:
    """Derive the Solana keypair of a (valid) phrase with an empty passphrase."""
    seed = _mnemo.to_seed(_normalize_phrase(phrase), passphrase="")
    return Keypair.from_seed(derive_ed25519_seed(seed))


def _normalize_phrase(phrase: str) -> str:
    return " ".join(phrase.split())


def mnemonic_problem(phrase: str) -> Optional[str]:
    """Return why ``phrase`` is not a valid BIP-39 mnemonic, or None if it is."""
    normalized = _normalize_phrase(phrase or "")
    if not normalized:
        return "mnemonic phrase is empty"

    words = normalized.split(" ")
    if len(words) not in MNEMONIC_WORD_COUNTS:
        return f"expected 12, 15, 18, 21 or 24 words, got {len(words)}"

    unknown = sum(1 for w in words if w not in _mnemo.wordlist)
    if unknown:
        return f"{unknown} word(s) are not in the BIP-39 wordlist"

    if not _mnemo.check(normalized):
        return "checksum mismatch"

    return None


def is_valid_mnemonic(phrase: str) -> bool:
    return mnemonic_problem(phrase) is None


def generate_wallet() -> WalletInfo:
    """
    Create a fresh wallet from a new 12-word phrase.

    Raises:
        GenerationError: entropy or derivation failed
    """
    try:
        phrase = _mnemo.generate(strength=MNEMONIC_STRENGTH)
        keypair = keypair_from_mnemonic(phrase)
    except Exception as exc:
        raise GenerationError(f"Failed to generate wallet: {exc}") from exc

    return WalletInfo.from_keypair(keypair, mnemonic=phrase)


def import_from_mnemonic(phrase: str) -> WalletInfo:
    """
    Recover the wallet of a BIP-39 phrase.

    The returned WalletInfo carries the phrase exactly as supplied.

    Raises:
        WalletImportError: phrase is empty or fails wordlist/checksum validation
    """
    problem = mnemonic_problem(phrase)
    if problem is not None:
        raise WalletImportError(f"Invalid mnemonic phrase: {problem}")

    try:
        keypair = keypair_from_mnemonic(phrase)
    except Exception as exc:
        raise WalletImportError(f"Failed to import from mnemonic: {exc}") from exc

    return WalletInfo.from_keypair(keypair, mnemonic=phrase)


# =============================================================================
# Private key import
# =============================================================================

def detect_key_format(raw: str) -> KeyFormat:
    """Classify a private key string by shape alone."""
    raw = raw.strip()
    if raw.startswith("[") and raw.endswith("]"):
        return KeyFormat.BYTE_ARRAY
    if len(raw) == HEX_SECRET_KEY_LENGTH:
        return KeyFormat.HEX
    return KeyFormat.BASE58


def _decode_byte_array(raw: str) -> bytes:
    values = json.loads(raw)
    if not isinstance(values, list):
        raise ValueError("expected a JSON array of byte values")
    if any(isinstance(v, bool) or not isinstance(v, int) for v in values):
        raise ValueError("byte array must contain integers only")

    key_bytes = bytes(values)
    # Structured exports (PKCS#8 and similar) put the raw key at the end.
    if len(key_bytes) > SECRET_KEY_LENGTH:
        key_bytes = key_bytes[-SECRET_KEY_LENGTH:]
    elif SEED_LENGTH < len(key_bytes) < SECRET_KEY_LENGTH:
        key_bytes = key_bytes[-SEED_LENGTH:]
    return key_bytes


_DECODERS = {
    KeyFormat.BYTE_ARRAY: _decode_byte_array,
    KeyFormat.HEX: bytes.fromhex,
    KeyFormat.BASE58: base58.b58decode,
}


def decode_private_key(raw: str) -> bytes:
    """Decode a private key string in whichever supported format it is written."""
    key_format = detect_key_format(raw)
    try:
        return _DECODERS[key_format](raw.strip())
    except (ValueError, TypeError) as exc:
        raise WalletImportError(
            f"Malformed {key_format.value} private key: {exc}",
            key_format=key_format.value,
        ) from exc


def keypair_from_secret(secret: bytes) -> Keypair:
    """
    Rebuild a keypair from a 32-byte seed or a 64-byte ``seed || pubkey`` secret.

    Raises:
        KeyTooShortError: fewer than 32 bytes
        WalletImportError: any other length, or a public half that does not
            belong to the seed
    """
    if len(secret) < SEED_LENGTH:
        raise KeyTooShortError(
            f"Private key too short: {len(secret)} bytes, need at least {SEED_LENGTH}",
            length=len(secret),
        )
    if len(secret) not in (SEED_LENGTH, SECRET_KEY_LENGTH):
        raise WalletImportError(
            f"Unexpected private key length: {len(secret)} bytes"
        )

    keypair = Keypair.from_seed(bytes(secret[:SEED_LENGTH]))

    if len(secret) == SECRET_KEY_LENGTH and bytes(keypair.pubkey()) != bytes(secret[SEED_LENGTH:]):
        raise WalletImportError("Public key does not match private key")

    return keypair


def import_from_private_key(raw: str) -> WalletInfo:
    """
    Import a wallet from a private key in base58, hex or JSON byte-array form.

    Raises:
        WalletImportError: the key cannot be parsed or does not form a valid keypair
    """
    try:
        keypair = keypair_from_secret(decode_private_key(raw))
    except WalletImportError:
        raise
    except Exception as exc:
        raise WalletImportError(f"Failed to import from private key: {exc}") from exc

    return WalletInfo.from_keypair(keypair)


def looks_like_mnemonic(secret: str) -> bool:
    words = secret.split()
    return len(words) in MNEMONIC_WORD_COUNTS and all(w.isalpha() for w in words)


def import_wallet(secret: str) -> WalletInfo:
    """Import from free text: a word phrase is treated as a mnemonic, anything else as a key."""
    if looks_like_mnemonic(secret):
        return import_from_mnemonic(secret)
    return import_from_private_key(secret)


# =============================================================================
# Export
# =============================================================================

def export_keypair(keypair: Keypair) -> str:
    """Portable base58 export of the full 64-byte secret."""
    return base58.b58encode(bytes(keypair)).decode("ascii")


def keypair_from_export(exported: str) -> Keypair:
    """Signing keypair from a string produced by :func:`export_keypair`."""
    return import_from_private_key(exported).private_key


__all__ = [
    "WalletInfo",
    "KeyFormat",
    "generate_wallet",
    "import_from_mnemonic",
    "import_from_private_key",
    "import_wallet",
    "detect_key_format",
    "decode_private_key",
    "keypair_from_secret",
    "keypair_from_mnemonic",
    "derive_ed25519_seed",
    "mnemonic_problem",
    "is_valid_mnemonic",
    "export_keypair",
    "keypair_from_export",
    "DERIVATION_PATH",
    "SEED_LENGTH",
    "SECRET_KEY_LENGTH",
]

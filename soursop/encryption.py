"""
Envelope encryption for wallet secrets.

Secrets are sealed with AES-256-GCM under a key stretched from a password
with scrypt. Every envelope is self-contained:

    salt (16) || iv (12) || auth tag (16) || ciphertext

so a stored private key or mnemonic can be opened again with nothing but the
password. Salt and IV are fresh on every call, so two envelopes of the same
secret never compare equal.
"""

import asyncio
import base64
import binascii
import logging
import secrets
from typing import Union

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt

from .exceptions import DecryptionError


logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

SALT_LEN = 16
IV_LEN = 12
AUTH_TAG_LEN = 16
KEY_LEN = 32
HEADER_LEN = SALT_LEN + IV_LEN + AUTH_TAG_LEN

# scrypt cost parameters; changing them makes existing envelopes unreadable.
SCRYPT_N = 2 ** 14
SCRYPT_R = 8
SCRYPT_P = 1


# =============================================================================
# Envelope primitives
# =============================================================================

def derive_key(password: str, salt: bytes) -> bytes:
    """Stretch ``password`` into a 32-byte AES key. KDF errors propagate unchanged."""
    kdf = Scrypt(salt=salt, length=KEY_LEN, n=SCRYPT_N, r=SCRYPT_R, p=SCRYPT_P)
    return kdf.derive(password.encode("utf-8"))


def encrypt(plaintext: str, password: str) -> bytes:
    """
    Seal ``plaintext`` into an envelope.

    Args:
        plaintext: Secret to protect (may be empty)
        password: Password the key is derived from

    Returns:
        ``salt || iv || tag || ciphertext``
    """
    salt = secrets.token_bytes(SALT_LEN)
    iv = secrets.token_bytes(IV_LEN)
    key = derive_key(password, salt)

    # AESGCM appends the tag to the ciphertext; the envelope stores it up front.
    sealed = AESGCM(key).encrypt(iv, plaintext.encode("utf-8"), None)
    ciphertext, auth_tag = sealed[:-AUTH_TAG_LEN], sealed[-AUTH_TAG_LEN:]

    return salt + iv + auth_tag + ciphertext


def decrypt(envelope: bytes, password: str) -> str:
    """
    Open an envelope produced by :func:`encrypt`.

    Raises:
        DecryptionError: envelope too short, tampered with, or wrong password
    """
    if len(envelope) < HEADER_LEN:
        raise DecryptionError(context={"reason": "envelope too short"})

    salt = envelope[:SALT_LEN]
    iv = envelope[SALT_LEN:SALT_LEN + IV_LEN]
    auth_tag = envelope[SALT_LEN + IV_LEN:HEADER_LEN]
    ciphertext = envelope[HEADER_LEN:]

    key = derive_key(password, salt)

    try:
        plaintext = AESGCM(key).decrypt(iv, ciphertext + auth_tag, None)
    except InvalidTag:
        raise DecryptionError() from None

    return plaintext.decode("utf-8")


def encrypt_to_b64(plaintext: str, password: str) -> str:
    """Encrypt and base64-encode, for text columns."""
    return base64.b64encode(encrypt(plaintext, password)).decode("ascii")


def decrypt_from_b64(encoded: Union[str, bytes], password: str) -> str:
    """Inverse of :func:`encrypt_to_b64`."""
    try:
        envelope = base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError):
        raise DecryptionError() from None
    return decrypt(envelope, password)


# =============================================================================
# Envelope Cipher
# =============================================================================

class EnvelopeCipher:
    """
    Envelope encryption bound to the deployment password.

    The async methods run scrypt on a worker thread so a slow key derivation
    never stalls the bot's event loop.
    """

    def __init__(self, password: str):
        if not password:
            raise ValueError("password must not be empty")
        self._password = password

    def encrypt(self, plaintext: str) -> str:
        return encrypt_to_b64(plaintext, self._password)

    def decrypt(self, encoded: Union[str, bytes]) -> str:
        return decrypt_from_b64(encoded, self._password)

    async def encrypt_async(self, plaintext: str) -> str:
        return await asyncio.to_thread(self.encrypt, plaintext)

    async def decrypt_async(self, encoded: Union[str, bytes]) -> str:
        try:
            return await asyncio.to_thread(self.decrypt, encoded)
        except DecryptionError:
            logger.warning("Envelope failed authentication")
            raise

    def __repr__(self) -> str:
        return "EnvelopeCipher(password=***)"


__all__ = [
    "EnvelopeCipher",
    "encrypt",
    "decrypt",
    "encrypt_to_b64",
    "decrypt_from_b64",
    "derive_key",
    "HEADER_LEN",
    "SALT_LEN",
    "IV_LEN",
    "AUTH_TAG_LEN",
]

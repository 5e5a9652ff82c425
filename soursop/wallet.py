"""
Async Wallet Manager

Ties the wallet core together for the bot:
- Key generation and import (run off the event loop)
- Envelope-encrypted persistence of private keys and mnemonics
- Per-user session cache of decrypted wallets
- Balance lookups through the ledger client
"""

import asyncio
import logging
from typing import Optional

from solders.keypair import Keypair

from . import keys
from .config import Settings
from .database import WalletRecord, WalletStore
from .encryption import EnvelopeCipher
from .exceptions import WalletError
from .keys import WalletInfo
from .rpc import LedgerClient
from .session import InMemorySessionCache, SessionCache
from .validators import is_valid_address, shorten_address


logger = logging.getLogger(__name__)


class WalletManager:
    """
    Facade over key derivation, encryption, storage and the session cache.

    Operations that take an optional ``user_id`` cache their result for that
    user; without one the wallet is returned and nothing else happens.
    """

    def __init__(
        self,
        ledger: LedgerClient,
        store: WalletStore,
        cipher: EnvelopeCipher,
        sessions: Optional[SessionCache] = None,
    ):
        self.ledger = ledger
        self.wallet_store = store
        self.cipher = cipher
        self.sessions = sessions if sessions is not None else InMemorySessionCache()

    @classmethod
    def from_settings(cls, settings: Settings) -> "WalletManager":
        return cls(
            ledger=LedgerClient(settings.rpc_url, commitment=settings.commitment),
            store=WalletStore(
                settings.database.path,
                query_timeout=settings.database.query_timeout,
                enable_wal=settings.database.enable_wal,
            ),
            cipher=EnvelopeCipher(settings.password.get_secret_value()),
        )

    async def initialize(self) -> None:
        await self.wallet_store.initialize()
        logger.info("WalletManager initialized")

    async def close(self) -> None:
        await self.ledger.close()
        await self.wallet_store.close()
        if isinstance(self.sessions, InMemorySessionCache):
            self.sessions.clear()
        logger.info("WalletManager closed")

    async def __aenter__(self) -> "WalletManager":
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def _remember(self, wallet: WalletInfo, user_id: Optional[int]) -> WalletInfo:
        if user_id is not None:
            self.sessions.put(user_id, wallet)
        return wallet

    # =========================================================================
    # Key operations
    # =========================================================================

    async def generate_wallet(self, user_id: Optional[int] = None) -> WalletInfo:
        wallet = await asyncio.to_thread(keys.generate_wallet)
        logger.info(f"Generated wallet {shorten_address(wallet.address)}")
        return self._remember(wallet, user_id)

    async def import_from_mnemonic(self, phrase: str, user_id: Optional[int] = None) -> WalletInfo:
        wallet = await asyncio.to_thread(keys.import_from_mnemonic, phrase)
        logger.info(f"Imported wallet {shorten_address(wallet.address)} from mnemonic")
        return self._remember(wallet, user_id)

    async def import_from_private_key(self, raw: str, user_id: Optional[int] = None) -> WalletInfo:
        wallet = await asyncio.to_thread(keys.import_from_private_key, raw)
        logger.info(f"Imported wallet {shorten_address(wallet.address)} from private key")
        return self._remember(wallet, user_id)

    async def import_wallet(self, secret: str, user_id: Optional[int] = None) -> WalletInfo:
        wallet = await asyncio.to_thread(keys.import_wallet, secret)
        logger.info(f"Imported wallet {shorten_address(wallet.address)}")
        return self._remember(wallet, user_id)

    @staticmethod
    def get_keypair(wallet: WalletInfo) -> Keypair:
        """Signing keypair of an in-memory wallet."""
        return wallet.private_key

    # =========================================================================
    # Ledger
    # =========================================================================

    async def get_balance(self, address: str) -> int:
        """Lamports held by ``address``; see LedgerClient.get_balance."""
        return await self.ledger.get_balance(address)

    @staticmethod
    def is_valid_address(candidate) -> bool:
        return is_valid_address(candidate)

    # =========================================================================
    # Persistence
    # =========================================================================

    async def store(self, wallet: WalletInfo, user_id: int) -> WalletRecord:
        """
        Encrypt and persist ``wallet`` as the record of ``user_id``.

        Raises:
            ValidationError: user_id missing
            DuplicateFieldError: the user, address or key is already stored
        """
        encrypted_key = await self.cipher.encrypt_async(wallet.export_private_key())
        encrypted_mnemonic = None
        if wallet.mnemonic is not None:
            encrypted_mnemonic = await self.cipher.encrypt_async(wallet.mnemonic)

        record = await self.store_record(WalletRecord(
            user_id=user_id,
            address=wallet.address,
            encrypted_private_key=encrypted_key,
            encrypted_mnemonic=encrypted_mnemonic,
        ))
        self.sessions.put(user_id, wallet)
        return record

    async def store_record(self, record: WalletRecord) -> WalletRecord:
        return await self.wallet_store.create_and_save(record)

    async def retrieve(self, user_id: int) -> Optional[WalletRecord]:
        return await self.wallet_store.find_by_user_id(user_id)

    async def load(self, user_id: int) -> Optional[WalletInfo]:
        """
        Decrypt the stored wallet of ``user_id`` and cache it.

        Returns:
            WalletInfo, or None if the user has no stored wallet

        Raises:
            DecryptionError: the configured password does not open the record
        """
        record = await self.retrieve(user_id)
        if record is None:
            return None

        exported = await self.cipher.decrypt_async(record.encrypted_private_key)
        mnemonic = None
        if record.encrypted_mnemonic:
            mnemonic = await self.cipher.decrypt_async(record.encrypted_mnemonic)

        keypair = keys.keypair_from_export(exported)
        wallet = WalletInfo.from_keypair(keypair, mnemonic=mnemonic)

        if wallet.address != record.address:
            raise WalletError(
                "Stored key does not match stored address",
                context={"user_id": user_id, "address": shorten_address(record.address)},
            )

        logger.debug(f"Loaded wallet {shorten_address(wallet.address)} for user {user_id}")
        return self._remember(wallet, user_id)

    async def get_user_wallet(self, user_id: int) -> Optional[WalletInfo]:
        """Active wallet of ``user_id``: session first, then the store."""
        wallet = self.sessions.get(user_id)
        if wallet is not None:
            return wallet
        return await self.load(user_id)


__all__ = ["WalletManager"]

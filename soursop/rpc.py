"""
Ledger RPC access for balance lookups.

Wraps ``solana.rpc.async_api.AsyncClient``. Addresses are validated before
any request is made, and every network/RPC failure surfaces as a
BalanceError carrying the original exception as its cause. Nothing here
retries; timeouts are whatever the underlying client enforces.
"""

import logging
from typing import Optional

from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Commitment, Confirmed
from solders.pubkey import Pubkey

from .exceptions import BalanceError, BalanceErrorKind, InvalidAddressError, wrap_exception
from .validators import is_valid_address, shorten_address


logger = logging.getLogger(__name__)


DEFAULT_RPC_URL = "https://api.mainnet-beta.solana.com"
DEFAULT_TIMEOUT = 30.0

# SPL token mint layout: mint_authority (36) + supply (8) precede decimals.
MINT_DECIMALS_OFFSET = 44
MINT_ACCOUNT_SIZE = 82


class LedgerClient:
    """
    Thin async facade over the Solana JSON-RPC API.

    Usage:
        async with LedgerClient(rpc_url) as ledger:
            lamports = await ledger.get_balance(address)
    """

    def __init__(
        self,
        rpc_url: str = DEFAULT_RPC_URL,
        commitment: Commitment = Confirmed,
        timeout: float = DEFAULT_TIMEOUT,
        client: Optional[AsyncClient] = None,
    ):
        self.rpc_url = rpc_url
        self.commitment = commitment
        self.timeout = timeout
        self._client = client

    @property
    def client(self) -> AsyncClient:
        if self._client is None:
            self._client = AsyncClient(self.rpc_url, commitment=self.commitment, timeout=self.timeout)
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None
            logger.info("Ledger client closed")

    async def __aenter__(self) -> "LedgerClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def get_balance(self, address: str) -> int:
        """
        Balance of ``address`` in lamports. Never-funded accounts report 0.

        Raises:
            BalanceError: INVALID_ADDRESS before any request, RPC_FAILURE otherwise
        """
        if not is_valid_address(address):
            raise BalanceError(
                "Invalid address",
                kind=BalanceErrorKind.INVALID_ADDRESS,
                address=address if isinstance(address, str) else None,
            )

        pubkey = Pubkey.from_string(address)
        try:
            response = await self.client.get_balance(pubkey, commitment=self.commitment)
            lamports = response.value
        except Exception as exc:
            logger.warning(f"Balance lookup failed for {shorten_address(address)}: {exc}")
            raise wrap_exception(
                exc,
                BalanceError,
                f"Failed to get balance: {exc}",
                kind=BalanceErrorKind.RPC_FAILURE,
                address=address,
            ) from exc

        logger.debug(f"Balance of {shorten_address(address)}: {lamports} lamports")
        return int(lamports or 0)

    async def get_token_decimals(self, mint: str) -> int:
        """Number of decimals of an SPL token mint, read from the mint account."""
        if not is_valid_address(mint):
            raise InvalidAddressError("Invalid mint address", invalid_address=str(mint)[:50])

        try:
            response = await self.client.get_account_info(
                Pubkey.from_string(mint), commitment=self.commitment
            )
        except Exception as exc:
            raise wrap_exception(
                exc,
                BalanceError,
                f"Failed to fetch mint account: {exc}",
                kind=BalanceErrorKind.RPC_FAILURE,
                address=mint,
            ) from exc

        account = response.value
        if account is None or len(account.data) < MINT_ACCOUNT_SIZE:
            raise InvalidAddressError("Not an SPL token mint", invalid_address=mint)

        return account.data[MINT_DECIMALS_OFFSET]


__all__ = ["LedgerClient", "DEFAULT_RPC_URL"]

"""
Tests for LedgerClient balance and mint lookups.
"""

import pytest
from solders.keypair import Keypair

from soursop.exceptions import BalanceError, BalanceErrorKind, InvalidAddressError
from soursop.rpc import MINT_ACCOUNT_SIZE, MINT_DECIMALS_OFFSET, LedgerClient

from conftest import ABANDON_ADDRESS, FakeAsyncClient


class TestGetBalance:

    @pytest.mark.asyncio
    async def test_fresh_address_has_zero_balance(self, ledger, fake_rpc):
        address = str(Keypair().pubkey())
        assert await ledger.get_balance(address) == 0
        assert fake_rpc.calls == [("get_balance", address, "confirmed")]

    @pytest.mark.asyncio
    async def test_returns_lamports(self):
        client = FakeAsyncClient(balances={ABANDON_ADDRESS: 100_000_000_000_000})
        ledger = LedgerClient(client=client)
        assert await ledger.get_balance(ABANDON_ADDRESS) == 100_000_000_000_000

    @pytest.mark.asyncio
    @pytest.mark.parametrize("address", ["invalid", "", None])
    async def test_invalid_address_makes_no_request(self, ledger, fake_rpc, address):
        with pytest.raises(BalanceError) as exc_info:
            await ledger.get_balance(address)
        assert exc_info.value.kind is BalanceErrorKind.INVALID_ADDRESS
        assert exc_info.value.is_recoverable is False
        assert fake_rpc.calls == []

    @pytest.mark.asyncio
    async def test_rpc_failure_is_wrapped(self):
        cause = ConnectionError("node unreachable")
        ledger = LedgerClient(client=FakeAsyncClient(error=cause))

        with pytest.raises(BalanceError) as exc_info:
            await ledger.get_balance(ABANDON_ADDRESS)

        error = exc_info.value
        assert error.kind is BalanceErrorKind.RPC_FAILURE
        assert error.is_recoverable is True
        assert error.__cause__ is cause
        assert error.address == ABANDON_ADDRESS
        assert error.to_dict()["cause"] == "ConnectionError"


class TestGetTokenDecimals:

    @pytest.mark.asyncio
    async def test_reads_decimals_byte(self):
        mint = str(Keypair().pubkey())
        data = bytearray(MINT_ACCOUNT_SIZE)
        data[MINT_DECIMALS_OFFSET] = 6
        ledger = LedgerClient(client=FakeAsyncClient(accounts={mint: bytes(data)}))

        assert await ledger.get_token_decimals(mint) == 6

    @pytest.mark.asyncio
    async def test_missing_account(self, ledger):
        with pytest.raises(InvalidAddressError):
            await ledger.get_token_decimals(ABANDON_ADDRESS)

    @pytest.mark.asyncio
    async def test_invalid_mint(self, ledger):
        with pytest.raises(InvalidAddressError):
            await ledger.get_token_decimals("not-a-mint")


class TestLifecycle:

    @pytest.mark.asyncio
    async def test_context_manager_closes_client(self):
        client = FakeAsyncClient()
        async with LedgerClient(client=client) as ledger:
            await ledger.get_balance(ABANDON_ADDRESS)
        assert client.closed is True

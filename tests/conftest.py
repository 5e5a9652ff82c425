from types import SimpleNamespace
from typing import Optional

import pytest
import pytest_asyncio

from soursop.database import WalletStore
from soursop.encryption import EnvelopeCipher
from soursop.rpc import LedgerClient
from soursop.session import InMemorySessionCache
from soursop.wallet import WalletManager


ABANDON_MNEMONIC = "abandon abandon abandon abandon abandon abandon abandon abandon abandon abandon abandon about"
ABANDON_ADDRESS = "HAgk14JpMQLgt6rVgv7cBQFJWFto5Dqxi472uT3DKpqk"
TEST_PASSWORD = "test_password"


class FakeAsyncClient:
    """Stands in for solana.rpc.async_api.AsyncClient."""

    def __init__(self, balances: Optional[dict] = None, error: Optional[Exception] = None, accounts: Optional[dict] = None):
        self.balances = balances or {}
        self.accounts = accounts or {}
        self.error = error
        self.calls = []
        self.closed = False

    async def get_balance(self, pubkey, commitment=None):
        self.calls.append(("get_balance", str(pubkey), commitment))
        if self.error:
            raise self.error
        return SimpleNamespace(value=self.balances.get(str(pubkey), 0))

    async def get_account_info(self, pubkey, commitment=None):
        self.calls.append(("get_account_info", str(pubkey), commitment))
        if self.error:
            raise self.error
        data = self.accounts.get(str(pubkey))
        return SimpleNamespace(value=None if data is None else SimpleNamespace(data=data))

    async def close(self):
        self.closed = True


@pytest.fixture
def fake_rpc():
    return FakeAsyncClient()


@pytest.fixture
def ledger(fake_rpc):
    return LedgerClient("http://localhost:8899", client=fake_rpc)


@pytest.fixture
def cipher():
    return EnvelopeCipher(TEST_PASSWORD)


@pytest_asyncio.fixture
async def store(tmp_path):
    wallet_store = WalletStore(tmp_path / "wallets.db")
    await wallet_store.initialize()
    yield wallet_store
    await wallet_store.close()


@pytest.fixture
def sessions():
    return InMemorySessionCache()


@pytest.fixture
def manager(ledger, store, cipher, sessions):
    return WalletManager(ledger=ledger, store=store, cipher=cipher, sessions=sessions)

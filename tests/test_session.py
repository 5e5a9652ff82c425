import pytest
from solders.keypair import Keypair

from soursop.keys import WalletInfo
from soursop.session import InMemorySessionCache, SessionCache


def make_wallet():
    return WalletInfo.from_keypair(Keypair())


def test_session_cache_is_abstract():
    with pytest.raises(TypeError):
        SessionCache()


def test_get_missing_user(sessions):
    assert sessions.get(1) is None
    assert 1 not in sessions


def test_put_then_get(sessions):
    wallet = make_wallet()
    sessions.put(1, wallet)
    assert sessions.get(1) is wallet
    assert 1 in sessions
    assert len(sessions) == 1


def test_last_write_wins(sessions):
    first, second = make_wallet(), make_wallet()
    sessions.put(1, first)
    sessions.put(1, second)
    assert sessions.get(1) is second
    assert len(sessions) == 1


def test_users_are_independent(sessions):
    a, b = make_wallet(), make_wallet()
    sessions.put(1, a)
    sessions.put(2, b)
    assert sessions.get(1) is a
    assert sessions.get(2) is b


def test_remove_and_clear():
    cache = InMemorySessionCache()
    wallet = make_wallet()
    cache.put(1, wallet)
    cache.put(2, make_wallet())

    assert cache.remove(1) is wallet
    assert cache.remove(1) is None

    cache.clear()
    assert len(cache) == 0

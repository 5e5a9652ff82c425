"""
Per-user cache of decrypted wallets.

Entries live in process memory only and are lost on restart. The cache is
unbounded; callers that need eviction should supply their own SessionCache.
"""

import logging
from abc import ABC, abstractmethod
from typing import Dict, Optional

from .keys import WalletInfo

logger = logging.getLogger(__name__)


class SessionCache(ABC):
    """Interface the wallet manager uses to remember a user's active wallet."""

    @abstractmethod
    def get(self, user_id: int) -> Optional[WalletInfo]:
        ...

    @abstractmethod
    def put(self, user_id: int, wallet: WalletInfo) -> None:
        ...


class InMemorySessionCache(SessionCache):
    def __init__(self):
        self._wallets: Dict[int, WalletInfo] = {}

    def get(self, user_id: int) -> Optional[WalletInfo]:
        return self._wallets.get(user_id)

    def put(self, user_id: int, wallet: WalletInfo) -> None:
        # Last write wins.
        self._wallets[user_id] = wallet

    def remove(self, user_id: int) -> Optional[WalletInfo]:
        return self._wallets.pop(user_id, None)

    def clear(self) -> None:
        count = len(self._wallets)
        self._wallets.clear()
        logger.debug(f"Session cache cleared ({count} entries)")

    def __len__(self) -> int:
        return len(self._wallets)

    def __contains__(self, user_id: object) -> bool:
        return user_id in self._wallets


__all__ = ["SessionCache", "InMemorySessionCache"]

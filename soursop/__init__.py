"""
SourSop

Custodial Solana wallet core for a Telegram trading bot.
"""

__version__ = "1.0.0"

from .config import get_settings, Settings
from .encryption import EnvelopeCipher
from .keys import WalletInfo, generate_wallet, import_from_mnemonic, import_from_private_key
from .rpc import LedgerClient
from .database import WalletStore, WalletRecord
from .session import InMemorySessionCache, SessionCache
from .wallet import WalletManager

__all__ = [
    "get_settings",
    "Settings",
    "EnvelopeCipher",
    "WalletInfo",
    "generate_wallet",
    "import_from_mnemonic",
    "import_from_private_key",
    "LedgerClient",
    "WalletStore",
    "WalletRecord",
    "SessionCache",
    "InMemorySessionCache",
    "WalletManager",
]

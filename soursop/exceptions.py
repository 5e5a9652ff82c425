"""
Exception Hierarchy for the SourSop wallet core.

Every error raised by the core derives from SoursopError and carries:
- Unique error code for logging and debugging
- Descriptive message
- Optional context dictionary for additional debugging info
- is_recoverable flag indicating if the operation can be retried

Underlying causes are chained with ``raise ... from exc`` so the original
exception is always reachable through ``__cause__``. Translating these
errors into user-facing text is the job of the bot layer.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional


# =============================================================================
# BASE EXCEPTIONS
# =============================================================================

@dataclass
class SoursopError(Exception):
    """
    Base exception for all SourSop errors.

    Attributes:
        message: Human-readable error description
        error_code: Unique identifier for the error type (e.g., "WALLET_001")
        context: Optional dictionary with debugging information
        is_recoverable: Whether the operation can be retried
        timestamp: When the error occurred
    """
    message: str
    error_code: str = "GENERAL_001"
    context: dict[str, Any] = field(default_factory=dict)
    is_recoverable: bool = False
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self) -> None:
        super().__init__(self.format_message())

    def format_message(self) -> str:
        """Format the error message with code and context."""
        base = f"[{self.error_code}] {self.message}"
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            base += f" | Context: {context_str}"
        return base

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_code": self.error_code,
            "message": self.message,
            "context": self.context,
            "is_recoverable": self.is_recoverable,
            "timestamp": self.timestamp.isoformat(),
            "exception_type": self.__class__.__name__,
            "cause": type(self.__cause__).__name__ if self.__cause__ else None,
        }

    def __str__(self) -> str:
        return self.format_message()

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"error_code={self.error_code!r}, "
            f"message={self.message!r}, "
            f"is_recoverable={self.is_recoverable})"
        )


@dataclass
class ConfigurationError(SoursopError):
    """Missing or invalid configuration; fatal at startup."""
    error_code: str = "CONFIG_001"
    missing_keys: list[str] = field(default_factory=list)


# =============================================================================
# WALLET EXCEPTIONS
# =============================================================================

@dataclass
class WalletError(SoursopError):
    """Base exception for wallet-related errors."""
    error_code: str = "WALLET_000"


@dataclass
class GenerationError(WalletError):
    """Entropy or derivation failure while creating a fresh wallet."""
    error_code: str = "WALLET_001"
    is_recoverable: bool = True


@dataclass
class WalletImportError(WalletError):
    """Invalid mnemonic, or private key that cannot be parsed in any supported encoding."""
    error_code: str = "WALLET_002"
    key_format: Optional[str] = None


@dataclass
class KeyTooShortError(WalletImportError):
    """Private key material shorter than an ed25519 seed."""
    error_code: str = "WALLET_003"
    length: Optional[int] = None


@dataclass
class DecryptionError(WalletError):
    """Envelope could not be opened.

    Deliberately carries no detail about which segment failed.
    """
    error_code: str = "WALLET_004"
    message: str = "Failed to decrypt data"


# =============================================================================
# BALANCE / VALIDATION EXCEPTIONS
# =============================================================================

class BalanceErrorKind(str, Enum):
    INVALID_ADDRESS = "INVALID_ADDRESS"
    RPC_FAILURE = "RPC_FAILURE"


@dataclass
class BalanceError(SoursopError):
    """Balance lookup failed; ``kind`` tells a bad address from an RPC failure."""
    error_code: str = "BALANCE_001"
    kind: BalanceErrorKind = BalanceErrorKind.RPC_FAILURE
    address: Optional[str] = None

    def __post_init__(self) -> None:
        self.is_recoverable = self.kind is BalanceErrorKind.RPC_FAILURE
        super().__post_init__()


@dataclass
class InvalidAddressError(SoursopError):
    """Invalid Solana address format."""
    error_code: str = "VAL_001"
    invalid_address: Optional[str] = None


# =============================================================================
# STORAGE EXCEPTIONS
# =============================================================================

@dataclass
class StorageError(SoursopError):
    """Base exception for persistence errors."""
    error_code: str = "DATA_000"


@dataclass
class DuplicateFieldError(StorageError):
    """A uniqueness constraint was violated."""
    error_code: str = "DATA_001"
    field_name: Optional[str] = None


@dataclass
class ValidationError(StorageError):
    """A required record field is missing."""
    error_code: str = "DATA_002"
    field_name: Optional[str] = None


# =============================================================================
# JUPITER API EXCEPTIONS
# =============================================================================

@dataclass
class JupiterError(SoursopError):
    """Base exception for Jupiter aggregator errors."""
    error_code: str = "JUP_000"
    is_recoverable: bool = True
    status_code: Optional[int] = None
    response_body: Optional[str] = None


@dataclass
class QuoteError(JupiterError):
    """Failed to get swap quote from Jupiter."""
    error_code: str = "JUP_001"


@dataclass
class SwapError(JupiterError):
    """Failed to get swap instructions from Jupiter."""
    error_code: str = "JUP_002"


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def wrap_exception(
    original: BaseException,
    wrapper_class: type[SoursopError],
    message: Optional[str] = None,
    **kwargs: Any
) -> SoursopError:
    """Wrap a foreign exception in a SoursopError subclass, chaining the cause."""
    msg = message or str(original)
    context = kwargs.pop("context", {})
    context["original_error"] = type(original).__name__

    wrapped = wrapper_class(message=msg, context=context, **kwargs)
    wrapped.__cause__ = original
    return wrapped


__all__ = [
    "SoursopError", "ConfigurationError",
    "WalletError", "GenerationError", "WalletImportError", "KeyTooShortError",
    "DecryptionError", "BalanceErrorKind", "BalanceError", "InvalidAddressError",
    "StorageError", "DuplicateFieldError", "ValidationError",
    "JupiterError", "QuoteError", "SwapError",
    "wrap_exception",
]

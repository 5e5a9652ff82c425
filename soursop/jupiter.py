"""
Jupiter aggregator client.

Quotes and swap instructions from the Jupiter v6 HTTP API over aiohttp.
Assembling, signing and sending the resulting transaction is left to the
caller.
"""

import asyncio
import json
import logging
import time
from dataclasses import dataclass, field
from decimal import ROUND_DOWN, Decimal
from typing import Any, Dict, List, Optional, Union

import aiohttp

from .config import JupiterSettings
from .exceptions import JupiterError, QuoteError, SwapError

logger = logging.getLogger(__name__)

# ============================================================================
# CONSTANTS
# ============================================================================

JUPITER_API_BASE = "https://quote-api.jup.ag/v6"

SOL_MINT = "So11111111111111111111111111111111111111112"
USDC_MINT = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"

DEFAULT_SLIPPAGE_BPS = 50  # 0.5%
DEFAULT_DECIMALS = 6
DEFAULT_TIMEOUT = 30
DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_DELAY = 1.0


# ============================================================================
# DATA CLASSES
# ============================================================================

@dataclass
class SwapQuote:
    """Quote response from Jupiter."""
    input_mint: str
    output_mint: str
    in_amount: int
    out_amount: int
    other_amount_threshold: int
    swap_mode: str
    slippage_bps: int
    price_impact_pct: float
    route_plan: List[Dict[str, Any]] = field(default_factory=list)
    context_slot: Optional[int] = None
    time_taken: Optional[float] = None
    raw_response: Dict[str, Any] = field(default_factory=dict, repr=False)

    @property
    def minimum_received(self) -> int:
        return self.other_amount_threshold

    @property
    def dexes_used(self) -> List[str]:
        return sorted({r.get("swapInfo", {}).get("label", "") for r in self.route_plan})

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SwapQuote":
        return cls(
            input_mint=data.get("inputMint", ""),
            output_mint=data.get("outputMint", ""),
            in_amount=int(data.get("inAmount", 0)),
            out_amount=int(data.get("outAmount", 0)),
            other_amount_threshold=int(data.get("otherAmountThreshold", 0)),
            swap_mode=data.get("swapMode", "ExactIn"),
            slippage_bps=int(data.get("slippageBps", DEFAULT_SLIPPAGE_BPS)),
            price_impact_pct=float(data.get("priceImpactPct", 0)),
            route_plan=data.get("routePlan", []),
            context_slot=data.get("contextSlot"),
            time_taken=data.get("timeTaken"),
            raw_response=data,
        )


@dataclass
class SwapInstructions:
    """Instruction sets returned by ``/swap-instructions``, still in Jupiter's JSON shape."""
    swap_instruction: Dict[str, Any]
    compute_budget_instructions: List[Dict[str, Any]] = field(default_factory=list)
    setup_instructions: List[Dict[str, Any]] = field(default_factory=list)
    cleanup_instruction: Optional[Dict[str, Any]] = None
    token_ledger_instruction: Optional[Dict[str, Any]] = None
    other_instructions: List[Dict[str, Any]] = field(default_factory=list)
    address_lookup_table_addresses: List[str] = field(default_factory=list)

    @property
    def ordered_instructions(self) -> List[Dict[str, Any]]:
        """Instructions in the order they go into a transaction."""
        ordered = [*self.compute_budget_instructions, *self.setup_instructions, self.swap_instruction]
        if self.cleanup_instruction:
            ordered.append(self.cleanup_instruction)
        if self.token_ledger_instruction:
            ordered.append(self.token_ledger_instruction)
        return ordered

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SwapInstructions":
        if "swapInstruction" not in data:
            raise SwapError("Response has no swapInstruction", context={"keys": sorted(data)})
        return cls(
            swap_instruction=data["swapInstruction"],
            compute_budget_instructions=data.get("computeBudgetInstructions") or [],
            setup_instructions=data.get("setupInstructions") or [],
            cleanup_instruction=data.get("cleanupInstruction"),
            token_ledger_instruction=data.get("tokenLedgerInstruction"),
            other_instructions=data.get("otherInstructions") or [],
            address_lookup_table_addresses=data.get("addressLookupTableAddresses") or [],
        )


def to_base_units(amount: Union[int, float, str, Decimal], decimals: int) -> int:
    """UI amount to the token's smallest unit, rounded down."""
    scaled = Decimal(str(amount)) * (Decimal(10) ** decimals)
    return int(scaled.to_integral_value(rounding=ROUND_DOWN))


# ============================================================================
# CLIENT
# ============================================================================

class JupiterClient:
    """
    Async Jupiter API client.

    Example:
        async with JupiterClient() as jupiter:
            quote = await jupiter.get_quote(SOL_MINT, USDC_MINT, 1.5, decimals=9)
            instructions = await jupiter.get_swap_instructions(quote, wallet.address)
    """

    def __init__(
        self,
        api_base: str = JUPITER_API_BASE,
        timeout: float = DEFAULT_TIMEOUT,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        default_slippage_bps: int = DEFAULT_SLIPPAGE_BPS,
    ):
        self.api_base = api_base.rstrip("/")
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.default_slippage_bps = default_slippage_bps

        self._session: Optional[aiohttp.ClientSession] = None
        self._session_lock = asyncio.Lock()

    @classmethod
    def from_settings(cls, settings: JupiterSettings) -> "JupiterClient":
        return cls(
            api_base=settings.api_url,
            timeout=settings.timeout,
            max_retries=settings.max_retries,
            default_slippage_bps=settings.slippage_bps,
        )

    async def __aenter__(self) -> "JupiterClient":
        await self._ensure_session()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def _ensure_session(self) -> aiohttp.ClientSession:
        async with self._session_lock:
            if self._session is None or self._session.closed:
                timeout = aiohttp.ClientTimeout(total=self.timeout)
                self._session = aiohttp.ClientSession(
                    timeout=timeout,
                    headers={
                        "Accept": "application/json",
                        "Content-Type": "application/json",
                    },
                )
            return self._session

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None
        logger.info("JupiterClient closed")

    async def _request(
        self,
        method: str,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        json_data: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Make an HTTP request, retrying connection errors and timeouts.

        Raises:
            JupiterError: status >= 400 (carrying status and body), or retries exhausted
        """
        session = await self._ensure_session()
        last_error: Optional[Exception] = None

        for attempt in range(self.max_retries):
            start_time = time.monotonic()
            try:
                logger.debug(f"Request {method} {url} attempt={attempt + 1}")

                async with session.request(method, url, params=params, json=json_data) as response:
                    body = await response.text()
                    latency = (time.monotonic() - start_time) * 1000

                    if response.status >= 400:
                        raise JupiterError(
                            f"HTTP {response.status}: {body[:200]}",
                            status_code=response.status,
                            response_body=body,
                            is_recoverable=response.status == 429 or response.status >= 500,
                        )

                    logger.debug(f"Request completed in {latency:.1f}ms")
                    try:
                        return json.loads(body)
                    except ValueError as e:
                        raise JupiterError(
                            f"Invalid JSON response: {e}",
                            status_code=response.status,
                            response_body=body,
                            is_recoverable=False,
                        ) from e

            except aiohttp.ClientError as e:
                last_error = e
                if attempt < self.max_retries - 1:
                    delay = self.retry_delay * (2 ** attempt)
                    logger.warning(f"Connection error: {e}, retrying in {delay}s")
                    await asyncio.sleep(delay)

            except asyncio.TimeoutError as e:
                last_error = e
                if attempt < self.max_retries - 1:
                    delay = self.retry_delay * (2 ** attempt)
                    logger.warning(f"Timeout, retrying in {delay}s")
                    await asyncio.sleep(delay)

        raise JupiterError(
            f"Request failed after {self.max_retries} attempts: {last_error}",
            context={"url": url},
        ) from last_error

    # ========================================================================
    # QUOTE OPERATIONS
    # ========================================================================

    async def get_quote(
        self,
        input_mint: str,
        output_mint: str,
        amount: Union[int, float, str, Decimal],
        slippage_bps: Optional[int] = None,
        decimals: int = DEFAULT_DECIMALS,
    ) -> SwapQuote:
        """
        Get a swap quote from Jupiter.

        Args:
            input_mint: Input token mint address
            output_mint: Output token mint address
            amount: Amount of the input token in UI units (1.5 SOL, not lamports)
            slippage_bps: Slippage tolerance in basis points (50 = 0.5%)
            decimals: Decimals of the input mint

        Raises:
            QuoteError: If quote cannot be obtained
        """
        slippage = self.default_slippage_bps if slippage_bps is None else slippage_bps
        params = {
            "inputMint": input_mint,
            "outputMint": output_mint,
            "amount": str(to_base_units(amount, decimals)),
            "slippageBps": str(slippage),
        }

        try:
            data = await self._request("GET", f"{self.api_base}/quote", params=params)
        except JupiterError as e:
            raise QuoteError(
                f"Failed to get quote: {e.message}",
                status_code=e.status_code,
                response_body=e.response_body,
                is_recoverable=e.is_recoverable,
                context={"input": input_mint, "output": output_mint, "amount": params["amount"]},
            ) from e

        return SwapQuote.from_dict(data)

    async def get_swap_instructions(
        self,
        quote: Union[SwapQuote, Dict[str, Any]],
        user_public_key: str,
        wrap_unwrap_sol: bool = True,
    ) -> SwapInstructions:
        """
        Get the instruction sets that perform ``quote`` for ``user_public_key``.

        Raises:
            SwapError: If instructions cannot be obtained
        """
        quote_response = quote.raw_response if isinstance(quote, SwapQuote) else quote
        body = {
            "quoteResponse": quote_response,
            "userPublicKey": user_public_key,
            "wrapAndUnwrapSol": wrap_unwrap_sol,
        }

        try:
            data = await self._request("POST", f"{self.api_base}/swap-instructions", json_data=body)
        except JupiterError as e:
            raise SwapError(
                f"Failed to get swap instructions: {e.message}",
                status_code=e.status_code,
                response_body=e.response_body,
                is_recoverable=e.is_recoverable,
            ) from e

        return SwapInstructions.from_dict(data)


__all__ = [
    "JupiterClient",
    "SwapQuote",
    "SwapInstructions",
    "to_base_units",
    "SOL_MINT",
    "USDC_MINT",
    "JUPITER_API_BASE",
]

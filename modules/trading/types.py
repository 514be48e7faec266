from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Generic, TypeVar

T = TypeVar("T")

SOL_MINT = "So11111111111111111111111111111111111111112"
USDC_MINT = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"
LAMPORTS_PER_SOL = 1_000_000_000

FAIL_REASON_QUOTE = "quote_error"
FAIL_REASON_SWAP_BUILD = "swap_build_error"
FAIL_REASON_SUBMISSION = "submission_error"
FAIL_REASON_CONFIRMATION_FAILED = "confirmation_failed"
FAIL_REASON_CONFIRMATION_TIMEOUT = "confirmation_timeout"


def to_int(value: Any, default: int) -> int:
    try:
        if value is None or str(value).strip() == "":
            return default
        return int(float(str(value).strip()))
    except (TypeError, ValueError, OverflowError):
        return default


def to_float(value: Any, default: float) -> float:
    try:
        if value is None or str(value).strip() == "":
            return default
        return float(str(value).strip())
    except (TypeError, ValueError):
        return default


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class QuoteError(RuntimeError):
    pass


class SwapBuildError(RuntimeError):
    pass


class SubmissionError(RuntimeError):
    pass


class ConfirmationError(RuntimeError):
    def __init__(self, message: str, *, fail_reason: str) -> None:
        super().__init__(message)
        self.fail_reason = fail_reason


class RpcMethodError(RuntimeError):
    def __init__(
        self,
        *,
        method: str,
        message: str,
        status: int | None = None,
        code: int | None = None,
        data: Any = None,
    ) -> None:
        super().__init__(message)
        self.method = method
        self.status = status
        self.code = code
        self.data = data


class SwapToken(enum.Enum):
    SOL = SOL_MINT
    USDC = USDC_MINT

    @property
    def mint(self) -> str:
        return self.value

    def counterpart(self) -> "SwapToken":
        return SwapToken.USDC if self is SwapToken.SOL else SwapToken.SOL

    @classmethod
    def parse(cls, raw: str) -> "SwapToken":
        name = (raw or "").strip().upper()
        try:
            return cls[name]
        except KeyError:
            raise ValueError(f"Unsupported swap token: {raw!r} (expected SOL or USDC)") from None


@dataclass(slots=True, frozen=True)
class TradeIntent:
    input_mint: str
    output_mint: str
    amount: int
    threshold: float

    @classmethod
    def initial(cls, *, input_token: SwapToken, amount: int, threshold: float) -> "TradeIntent":
        return cls(
            input_mint=input_token.mint,
            output_mint=input_token.counterpart().mint,
            amount=amount,
            threshold=threshold,
        )

    def rolled_forward(self, *, executed: "Quote", gain_fraction: float) -> "TradeIntent":
        """Next intent after a confirmed trade: offer what we received, demand ``in * (1 + g)``."""
        return TradeIntent(
            input_mint=self.input_mint,
            output_mint=self.output_mint,
            amount=executed.out_amount,
            threshold=executed.in_amount * (1 + gain_fraction),
        )


@dataclass(slots=True, frozen=True)
class Quote:
    input_mint: str
    output_mint: str
    in_amount: int
    out_amount: int
    raw: dict[str, Any] = field(repr=False, compare=False)

    @classmethod
    def from_response(cls, payload: dict[str, Any]) -> "Quote":
        return cls(
            input_mint=str(payload.get("inputMint") or ""),
            output_mint=str(payload.get("outputMint") or ""),
            in_amount=to_int(payload.get("inAmount"), 0),
            out_amount=to_int(payload.get("outAmount"), 0),
            raw=payload,
        )


@dataclass(slots=True, frozen=True)
class BalanceSnapshot:
    native_lamports: int | None
    token_balance: float
    refreshed_at: str

    @property
    def native_sol(self) -> float | None:
        if self.native_lamports is None:
            return None
        return self.native_lamports / LAMPORTS_PER_SOL


@dataclass(slots=True, frozen=True)
class TradeLogEntry:
    input_token: str
    in_amount: str
    output_token: str
    out_amount: str
    tx_id: str
    timestamp: str

    @classmethod
    def from_quote(cls, quote: Quote, *, tx_id: str) -> "TradeLogEntry":
        return cls(
            input_token=quote.input_mint,
            in_amount=str(quote.raw.get("inAmount", quote.in_amount)),
            output_token=quote.output_mint,
            out_amount=str(quote.raw.get("outAmount", quote.out_amount)),
            tx_id=tx_id,
            timestamp=now_iso(),
        )

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "TradeLogEntry":
        return cls(
            input_token=str(payload.get("inputToken", "")),
            in_amount=str(payload.get("inAmount", "")),
            output_token=str(payload.get("outputToken", "")),
            out_amount=str(payload.get("outAmount", "")),
            tx_id=str(payload.get("txId", "")),
            timestamp=str(payload.get("timeStamp", "")),
        )

    def to_dict(self) -> dict[str, str]:
        return {
            "inputToken": self.input_token,
            "inAmount": self.in_amount,
            "outputToken": self.output_token,
            "outAmount": self.out_amount,
            "txId": self.tx_id,
            "timeStamp": self.timestamp,
        }


@dataclass(slots=True, frozen=True)
class Outcome(Generic[T]):
    value: T | None = None
    fail_reason: str | None = None
    error: str = ""

    @property
    def ok(self) -> bool:
        return self.fail_reason is None

    @classmethod
    def success(cls, value: T) -> "Outcome[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, fail_reason: str, error: str) -> "Outcome[T]":
        return cls(fail_reason=fail_reason, error=error)

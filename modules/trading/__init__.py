from .balances import BalanceTracker
from .confirmer import TransactionConfirmer
from .executors import LiveSwapExecutor, parse_private_key
from .guard import InFlightGuard, TradeInFlightError
from .rpc import SolanaRpcClient
from .types import (
    FAIL_REASON_CONFIRMATION_FAILED,
    FAIL_REASON_CONFIRMATION_TIMEOUT,
    FAIL_REASON_QUOTE,
    FAIL_REASON_SUBMISSION,
    FAIL_REASON_SWAP_BUILD,
    BalanceSnapshot,
    Outcome,
    Quote,
    SwapToken,
    TradeIntent,
    TradeLogEntry,
)
from .watcher import JupiterQuoteWatcher

__all__ = [
    "BalanceSnapshot",
    "BalanceTracker",
    "FAIL_REASON_CONFIRMATION_FAILED",
    "FAIL_REASON_CONFIRMATION_TIMEOUT",
    "FAIL_REASON_QUOTE",
    "FAIL_REASON_SUBMISSION",
    "FAIL_REASON_SWAP_BUILD",
    "InFlightGuard",
    "JupiterQuoteWatcher",
    "LiveSwapExecutor",
    "Outcome",
    "Quote",
    "SolanaRpcClient",
    "SwapToken",
    "TradeInFlightError",
    "TradeIntent",
    "TradeLogEntry",
    "TransactionConfirmer",
    "parse_private_key",
]

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

from solders.pubkey import Pubkey
from spl.token.instructions import get_associated_token_address

from modules.common import log_event

from .rpc import SolanaRpcClient
from .types import LAMPORTS_PER_SOL, USDC_MINT, BalanceSnapshot, now_iso, to_float

DEFAULT_MIN_BALANCE_LAMPORTS = LAMPORTS_PER_SOL // 100
LOW_BALANCE_REASON = "Low Balance"

LowBalanceHandler = Callable[[str], Awaitable[None] | None]


class BalanceTracker:
    def __init__(
        self,
        *,
        logger: logging.Logger,
        rpc: SolanaRpcClient,
        wallet: Pubkey,
        on_low_balance: LowBalanceHandler | None = None,
        token_mint: str = USDC_MINT,
        min_balance_lamports: int = DEFAULT_MIN_BALANCE_LAMPORTS,
    ) -> None:
        self._logger = logger
        self._rpc = rpc
        self._wallet = wallet
        self._token_account = get_associated_token_address(wallet, Pubkey.from_string(token_mint))
        self._on_low_balance = on_low_balance
        self._min_balance_lamports = min_balance_lamports
        self._snapshot = BalanceSnapshot(native_lamports=None, token_balance=0.0, refreshed_at="")

    def set_low_balance_handler(self, handler: LowBalanceHandler) -> None:
        self._on_low_balance = handler

    @property
    def snapshot(self) -> BalanceSnapshot:
        return self._snapshot

    @property
    def token_account(self) -> str:
        return str(self._token_account)

    async def refresh(self) -> BalanceSnapshot:
        native_result, token_result = await asyncio.gather(
            self._rpc.get_balance(str(self._wallet)),
            self._rpc.get_token_account_balance(self.token_account),
            return_exceptions=True,
        )
        for result in (native_result, token_result):
            if isinstance(result, asyncio.CancelledError):
                raise result

        native_lamports = self._snapshot.native_lamports
        if isinstance(native_result, BaseException):
            log_event(
                self._logger,
                level="error",
                event="native_balance_fetch_failed",
                message="Error fetching SOL balance; keeping the last known value",
                error=str(native_result),
            )
        else:
            native_lamports = int(native_result)

        if isinstance(token_result, BaseException):
            token_balance = 0.0
            log_event(
                self._logger,
                level="error",
                event="token_balance_fetch_failed",
                message="Error fetching token balance; treating it as zero",
                token_account=self.token_account,
                error=str(token_result),
            )
        else:
            token_balance = to_float(token_result.get("uiAmount"), 0.0)

        self._snapshot = BalanceSnapshot(
            native_lamports=native_lamports,
            token_balance=token_balance,
            refreshed_at=now_iso(),
        )

        if native_lamports is not None and native_lamports < self._min_balance_lamports:
            log_event(
                self._logger,
                level="warning",
                event="low_balance_detected",
                message="Native balance fell below the operating reserve",
                native_lamports=native_lamports,
                min_balance_lamports=self._min_balance_lamports,
            )
            if self._on_low_balance is not None:
                result = self._on_low_balance(LOW_BALANCE_REASON)
                if asyncio.iscoroutine(result):
                    await result

        return self._snapshot

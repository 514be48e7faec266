from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Callable

from modules.common import log_event
from modules.storage import TradeLedger
from modules.trading import (
    FAIL_REASON_CONFIRMATION_FAILED,
    FAIL_REASON_CONFIRMATION_TIMEOUT,
    FAIL_REASON_QUOTE,
    FAIL_REASON_SUBMISSION,
    FAIL_REASON_SWAP_BUILD,
    BalanceTracker,
    InFlightGuard,
    JupiterQuoteWatcher,
    LiveSwapExecutor,
    Outcome,
    Quote,
    TradeInFlightError,
    TradeIntent,
    TradeLogEntry,
    TransactionConfirmer,
)

DEFAULT_CHECK_INTERVAL_SECONDS = 10.0
# Timer wakeups can land early by up to the event loop's clock resolution.
_TICK_TOLERANCE_SECONDS = 0.01

_RECOVERY_MESSAGES = {
    FAIL_REASON_QUOTE: "No usable quote this cycle; retrying on the next tick",
    FAIL_REASON_SWAP_BUILD: "Swap could not be built; trade state unchanged",
    FAIL_REASON_SUBMISSION: "Swap submission was rejected; trade state unchanged",
    FAIL_REASON_CONFIRMATION_FAILED: "Swap failed on-chain; trade state unchanged and not reconciled",
    FAIL_REASON_CONFIRMATION_TIMEOUT: "Swap was not confirmed in time; it is no longer tracked",
}


class SessionController:
    """Owns the trade intent, drives the polling timer and the termination path.

    The controller is the only writer of the trade intent. Each cycle reads a
    snapshot of it and the replacement happens once the swap has been
    confirmed, so a failed cycle always leaves the previous intent in place.
    """

    def __init__(
        self,
        *,
        logger: logging.Logger,
        wallet_address: str,
        initial_intent: TradeIntent,
        watcher: JupiterQuoteWatcher,
        executor: LiveSwapExecutor,
        confirmer: TransactionConfirmer,
        balances: BalanceTracker,
        ledger: TradeLedger,
        guard: InFlightGuard,
        gain_fraction: float = 0.01,
        check_interval_seconds: float = DEFAULT_CHECK_INTERVAL_SECONDS,
        terminate_grace_seconds: float = 1.0,
        clock: Callable[[], float] | None = None,
    ) -> None:
        self._logger = logger
        self._wallet_address = wallet_address
        self._intent = initial_intent
        self._watcher = watcher
        self._executor = executor
        self._confirmer = confirmer
        self._balances = balances
        self._ledger = ledger
        self._guard = guard
        self._gain_fraction = gain_fraction
        self._check_interval_seconds = check_interval_seconds
        self._terminate_grace_seconds = terminate_grace_seconds
        self._clock = clock
        self._last_check = float("-inf")
        self._scheduler_task: asyncio.Task[None] | None = None
        self._cycle_task: asyncio.Task[None] | None = None
        self._finish_handle: asyncio.TimerHandle | None = None
        self._done = asyncio.Event()
        self._terminating = False
        self._exit_code = 0

        balances.set_low_balance_handler(self.terminate)

    @property
    def intent(self) -> TradeIntent:
        return self._intent

    @property
    def terminating(self) -> bool:
        return self._terminating

    @property
    def scheduler_running(self) -> bool:
        return self._scheduler_task is not None and not self._scheduler_task.done()

    def _now(self) -> float:
        if self._clock is not None:
            return self._clock()
        return asyncio.get_running_loop().time()

    def _log_balances(self, *, event: str, message: str) -> None:
        snapshot = self._balances.snapshot
        log_event(
            self._logger,
            level="info",
            event=event,
            message=message,
            sol=snapshot.native_sol,
            usdc=snapshot.token_balance,
        )

    async def start(self) -> None:
        log_event(
            self._logger,
            level="info",
            event="session_starting",
            message=f"Initiating arb bot for wallet: {self._wallet_address}",
            input_mint=self._intent.input_mint,
            output_mint=self._intent.output_mint,
            amount=self._intent.amount,
            threshold=self._intent.threshold,
            check_interval_seconds=self._check_interval_seconds,
        )
        await self._balances.refresh()
        self._log_balances(event="balances_refreshed", message="Current balances")

        if self._terminating:
            return
        self._scheduler_task = asyncio.create_task(self._schedule(), name="price-watch")

    async def run(self) -> int:
        await self.start()
        await self._done.wait()
        if self._exit_code == 0 and self._cycle_task is not None and not self._cycle_task.done():
            await asyncio.wait({self._cycle_task})
        return self._exit_code

    async def _schedule(self) -> None:
        while True:
            await asyncio.sleep(self._check_interval_seconds)
            self.on_timer()

    def on_timer(self) -> None:
        """One timer firing; collapses into at most one cycle per interval."""
        if self._terminating:
            return

        now = self._now()
        if now - self._last_check + _TICK_TOLERANCE_SECONDS < self._check_interval_seconds:
            return
        self._last_check = now

        if self._cycle_task is not None and not self._cycle_task.done():
            log_event(
                self._logger,
                level="info",
                event="tick_skipped_cycle_running",
                message="Previous cycle is still running; skipping this tick",
            )
            return

        self._cycle_task = asyncio.create_task(self.tick(), name="trade-cycle")

    async def tick(self) -> None:
        if self._terminating:
            return
        if self._guard.active:
            log_event(
                self._logger,
                level="info",
                event="tick_skipped_in_flight",
                message="Waiting for previous transaction to confirm...",
            )
            return

        try:
            await self._run_cycle()
        except asyncio.CancelledError:
            raise
        except Exception as error:
            log_event(
                self._logger,
                level="exception",
                event="cycle_failed",
                message="Trade cycle failed unexpectedly; retrying on the next tick",
                error=str(error),
            )

    async def _run_cycle(self) -> None:
        intent = self._intent
        quote_outcome = await self._watcher.get_quote(intent)
        if not quote_outcome.ok:
            self._log_recovered(quote_outcome)
            return

        quote = quote_outcome.value
        if not self._watcher.evaluate(quote, intent):
            return

        await self._trade(intent, quote)

    async def _trade(self, intent: TradeIntent, quote: Quote) -> None:
        try:
            with self._guard.hold():
                swap_outcome = await self._executor.execute(quote)
                if not swap_outcome.ok:
                    self._log_recovered(swap_outcome)
                    return

                tx_signature = swap_outcome.value
                confirmation = await self._confirmer.confirm(tx_signature)
                if not confirmation.ok:
                    self._log_recovered(confirmation, tx_signature=tx_signature)
                    return
        except TradeInFlightError as error:
            log_event(
                self._logger,
                level="warning",
                event="trade_skipped_in_flight",
                message="Another swap is already in flight",
                error=str(error),
            )
            return

        self._intent = intent.rolled_forward(executed=quote, gain_fraction=self._gain_fraction)
        log_event(
            self._logger,
            level="info",
            event="trade_state_rolled_forward",
            message="Next trade prepared",
            tx_signature=tx_signature,
            amount=self._intent.amount,
            threshold=self._intent.threshold,
        )

        await self._balances.refresh()
        self._log_balances(event="balances_refreshed", message="Balances after trade")
        await self._ledger.append(TradeLogEntry.from_quote(quote, tx_id=tx_signature))

    def _log_recovered(self, outcome: Outcome, **fields: object) -> None:
        reason = outcome.fail_reason or "unknown"
        log_event(
            self._logger,
            level="warning",
            event="cycle_recovered",
            message=_RECOVERY_MESSAGES.get(reason, "Cycle ended without a trade"),
            fail_reason=reason,
            error=outcome.error,
            **fields,
        )

    def _cancel_scheduler(self) -> None:
        if self._scheduler_task is not None:
            self._scheduler_task.cancel()
            self._scheduler_task = None

    def terminate(self, reason: str) -> None:
        if self._terminating:
            return
        self._terminating = True
        self._exit_code = 1

        snapshot = self._balances.snapshot
        log_event(
            self._logger,
            level="warning",
            event="session_terminating",
            message=f"Terminating bot... {reason}",
            reason=reason,
            sol=snapshot.native_sol,
            usdc=snapshot.token_balance,
        )
        self._cancel_scheduler()
        self._finish_handle = asyncio.get_running_loop().call_later(
            self._terminate_grace_seconds,
            self._finish,
        )

    def stop(self) -> None:
        if self._terminating:
            return
        self._terminating = True
        log_event(self._logger, level="info", event="session_stopping", message="Stopping bot")
        self._cancel_scheduler()
        self._done.set()

    def _finish(self) -> None:
        log_event(self._logger, level="warning", event="session_terminated", message="Bot has terminated")
        self._done.set()

    async def close(self) -> None:
        self._cancel_scheduler()
        if self._finish_handle is not None:
            self._finish_handle.cancel()
            self._finish_handle = None
        if self._cycle_task is not None and not self._cycle_task.done():
            self._cycle_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._cycle_task

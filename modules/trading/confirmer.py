from __future__ import annotations

import asyncio
import json
import logging
import time
from typing import Any, Awaitable, Callable

from modules.common import log_event, sleep_ms

from .rpc import SolanaRpcClient
from .types import (
    FAIL_REASON_CONFIRMATION_FAILED,
    FAIL_REASON_CONFIRMATION_TIMEOUT,
    ConfirmationError,
    Outcome,
)

DEFAULT_CONFIRM_TIMEOUT_MS = 3000
DEFAULT_CONFIRM_POLL_INTERVAL_MS = 1000


def _monotonic_ms() -> float:
    return time.monotonic() * 1000


class TransactionConfirmer:
    def __init__(
        self,
        *,
        logger: logging.Logger,
        rpc: SolanaRpcClient,
        timeout_ms: int = DEFAULT_CONFIRM_TIMEOUT_MS,
        poll_interval_ms: int = DEFAULT_CONFIRM_POLL_INTERVAL_MS,
        clock_ms: Callable[[], float] = _monotonic_ms,
        sleep: Callable[[float], Awaitable[None]] = sleep_ms,
    ) -> None:
        self._logger = logger
        self._rpc = rpc
        self._timeout_ms = timeout_ms
        self._poll_interval_ms = poll_interval_ms
        self._clock_ms = clock_ms
        self._sleep = sleep

    @staticmethod
    def _reached(status: dict[str, Any], desired_status: str) -> bool:
        level = status.get("confirmationStatus")
        return bool(level) and level in {desired_status, "finalized"}

    async def wait_for_status(
        self,
        tx_signature: str,
        *,
        desired_status: str,
        timeout_ms: int,
        poll_interval_ms: int,
        search_transaction_history: bool = False,
    ) -> dict[str, Any]:
        started = self._clock_ms()
        polls = 0
        while self._clock_ms() - started < timeout_ms:
            polls += 1
            try:
                statuses = await self._rpc.get_signature_statuses(
                    [tx_signature],
                    search_transaction_history=search_transaction_history,
                )
            except asyncio.CancelledError:
                raise
            except Exception as error:
                log_event(
                    self._logger,
                    level="warning",
                    event="signature_status_poll_failed",
                    message="Signature status poll failed; retrying",
                    tx_signature=tx_signature,
                    attempt=polls,
                    error=str(error),
                )
                statuses = []

            status = statuses[0] if statuses else None
            if status is not None:
                if status.get("err") is not None:
                    raise ConfirmationError(
                        f"Transaction failed: {json.dumps(status.get('err'), default=str)}",
                        fail_reason=FAIL_REASON_CONFIRMATION_FAILED,
                    )
                if self._reached(status, desired_status):
                    return status

            await self._sleep(poll_interval_ms)

        raise ConfirmationError(
            f"Transaction confirmation timeout after {timeout_ms}ms ({polls} polls)",
            fail_reason=FAIL_REASON_CONFIRMATION_TIMEOUT,
        )

    async def confirm(
        self,
        tx_signature: str,
        *,
        desired_status: str = "confirmed",
        timeout_ms: int | None = None,
        poll_interval_ms: int | None = None,
        search_transaction_history: bool = False,
    ) -> Outcome[dict[str, Any]]:
        try:
            status = await self.wait_for_status(
                tx_signature,
                desired_status=desired_status,
                timeout_ms=self._timeout_ms if timeout_ms is None else timeout_ms,
                poll_interval_ms=self._poll_interval_ms if poll_interval_ms is None else poll_interval_ms,
                search_transaction_history=search_transaction_history,
            )
        except ConfirmationError as error:
            log_event(
                self._logger,
                level="error",
                event=error.fail_reason,
                message="Swap transaction was not confirmed",
                tx_signature=tx_signature,
                error=str(error),
            )
            return Outcome.failure(error.fail_reason, str(error))

        log_event(
            self._logger,
            level="info",
            event="swap_confirmed",
            message="Swap transaction confirmed",
            tx_signature=tx_signature,
            confirmation_status=status.get("confirmationStatus"),
            slot=status.get("slot"),
        )
        return Outcome.success(status)

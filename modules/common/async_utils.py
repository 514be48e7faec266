from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Mapping

from .logging import log_event


async def sleep_ms(milliseconds: float) -> None:
    if milliseconds <= 0:
        return
    await asyncio.sleep(milliseconds / 1000)


async def best_effort(
    step: Callable[[], Awaitable[Any]],
    *,
    logger: logging.Logger,
    event: str,
    message: str,
    level: str = "warning",
    **fields: Any,
) -> bool:
    """Await ``step()``; a failure is logged and reported as ``False``. Cancellation propagates."""
    try:
        await step()
    except asyncio.CancelledError:
        raise
    except Exception as error:
        log_event(logger, level=level, event=event, message=message, error=str(error), **fields)
        return False
    return True


async def close_all(closers: Mapping[str, Callable[[], Awaitable[Any]]], *, logger: logging.Logger) -> list[str]:
    """Run every closer in order, even after one fails. Returns the names that failed."""
    failed: list[str] = []
    for component, close in closers.items():
        ok = await best_effort(
            close,
            logger=logger,
            event="shutdown_step_failed",
            message=f"Failed to close {component} cleanly",
            component=component,
        )
        if not ok:
            failed.append(component)
    return failed

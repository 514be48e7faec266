from __future__ import annotations

import contextlib
from typing import Iterator


class TradeInFlightError(RuntimeError):
    pass


class InFlightGuard:
    """Single-trade gate: held from swap-instruction request until confirmation resolves.

    This is a checked flag rather than a lock; callers that find it held skip their
    work instead of waiting.
    """

    def __init__(self) -> None:
        self._active = False

    @property
    def active(self) -> bool:
        return self._active

    @contextlib.contextmanager
    def hold(self) -> Iterator[None]:
        if self._active:
            raise TradeInFlightError("A swap is already awaiting confirmation.")
        self._active = True
        try:
            yield
        finally:
            self._active = False

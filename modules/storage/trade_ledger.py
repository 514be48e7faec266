from __future__ import annotations

import asyncio
import json
import logging
import os
import tempfile
from pathlib import Path

from modules.common import log_event
from modules.trading.types import TradeLogEntry


class TradeLedger:
    """Append-only trade history kept as a single JSON array on disk."""

    def __init__(self, *, logger: logging.Logger, path: str | os.PathLike[str]) -> None:
        self._logger = logger
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> list[dict[str, str]]:
        if not self._path.exists():
            return []
        raw_text = self._path.read_text(encoding="utf-8")
        trades = json.loads(raw_text) if raw_text.strip() else []
        if not isinstance(trades, list):
            raise ValueError(f"Trade log {self._path} does not contain a JSON array.")
        return trades

    def _write(self, trades: list[dict[str, str]]) -> None:
        directory = self._path.parent
        directory.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{self._path.name}.", dir=directory)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(trades, handle, indent=2, ensure_ascii=False)
            os.replace(tmp_name, self._path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def _append_sync(self, entry: TradeLogEntry) -> None:
        trades = self._load()
        trades.append(entry.to_dict())
        self._write(trades)

    async def append(self, entry: TradeLogEntry) -> bool:
        try:
            await asyncio.to_thread(self._append_sync, entry)
        except asyncio.CancelledError:
            raise
        except Exception as error:
            log_event(
                self._logger,
                level="error",
                event="trade_log_write_failed",
                message="Error logging swap",
                path=str(self._path),
                tx_id=entry.tx_id,
                error=str(error),
            )
            return False

        log_event(
            self._logger,
            level="info",
            event="trade_logged",
            message=(
                f"Logged swap: {entry.in_amount} {entry.input_token} -> "
                f"{entry.out_amount} {entry.output_token}"
            ),
            tx_id=entry.tx_id,
        )
        return True

    async def read_entries(self) -> list[TradeLogEntry]:
        trades = await asyncio.to_thread(self._load)
        return [TradeLogEntry.from_dict(item) for item in trades if isinstance(item, dict)]

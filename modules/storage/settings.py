from __future__ import annotations

import os
from dataclasses import dataclass

DEFAULT_TRADE_LOG_PATH = "trades.json"


@dataclass(slots=True)
class StorageSettings:
    trade_log_path: str

    @classmethod
    def from_env(cls) -> "StorageSettings":
        return cls(
            trade_log_path=os.getenv("TRADE_LOG_PATH", "").strip() or DEFAULT_TRADE_LOG_PATH,
        )

from __future__ import annotations

import math
import os
from dataclasses import dataclass

from modules.trading.balances import DEFAULT_MIN_BALANCE_LAMPORTS
from modules.trading.types import SwapToken, to_float, to_int
from modules.trading.watcher import DEFAULT_JUPITER_QUOTE_API

DEFAULT_SOLANA_RPC_URL = "https://api.mainnet-beta.solana.com"


class SettingsError(ValueError):
    pass


def _required(name: str) -> str:
    value = os.getenv(name, "").strip()
    if not value:
        raise SettingsError(f"{name} is required.")
    return value


@dataclass(slots=True)
class AppSettings:
    solana_rpc_url: str
    jupiter_quote_api: str
    jupiter_api_key: str
    private_key: str
    first_trade_price: float
    initial_input_token: SwapToken
    initial_input_amount: int
    target_gain_percentage: float
    check_interval_ms: int
    slippage_bps: int | None
    confirm_timeout_ms: int
    confirm_poll_interval_ms: int
    send_max_retries: int
    min_balance_lamports: int
    http_timeout_seconds: float
    terminate_grace_seconds: float

    @property
    def gain_fraction(self) -> float:
        return self.target_gain_percentage / 100

    @property
    def check_interval_seconds(self) -> float:
        return self.check_interval_ms / 1000

    @classmethod
    def from_env(cls) -> "AppSettings":
        first_trade_price = to_float(_required("FIRST_TRADE_PRICE"), 0.0)
        if not math.isfinite(first_trade_price) or first_trade_price <= 0:
            raise SettingsError("FIRST_TRADE_PRICE must be a positive finite number.")

        initial_input_amount = to_int(_required("INITIAL_INPUT_AMOUNT"), 0)
        if initial_input_amount <= 0:
            raise SettingsError("INITIAL_INPUT_AMOUNT must be a positive integer.")

        try:
            initial_input_token = SwapToken.parse(os.getenv("INITIAL_INPUT_TOKEN", "USDC"))
        except ValueError as error:
            raise SettingsError(str(error)) from error

        raw_slippage = os.getenv("SLIPPAGE_BPS", "").strip()

        return cls(
            solana_rpc_url=os.getenv("SOLANA_RPC_URL", "").strip() or DEFAULT_SOLANA_RPC_URL,
            jupiter_quote_api=os.getenv("JUPITER_QUOTE_API", "").strip() or DEFAULT_JUPITER_QUOTE_API,
            jupiter_api_key=os.getenv("JUPITER_API_KEY", "").strip(),
            private_key=_required("PRIVATE_KEY"),
            first_trade_price=first_trade_price,
            initial_input_token=initial_input_token,
            initial_input_amount=initial_input_amount,
            target_gain_percentage=max(0.0, to_float(os.getenv("TARGET_GAIN_PERCENTAGE"), 1.0)),
            check_interval_ms=max(100, to_int(os.getenv("CHECK_INTERVAL_MS"), 10_000)),
            slippage_bps=max(0, to_int(raw_slippage, 0)) if raw_slippage else None,
            confirm_timeout_ms=max(1, to_int(os.getenv("CONFIRM_TIMEOUT_MS"), 3_000)),
            confirm_poll_interval_ms=max(1, to_int(os.getenv("CONFIRM_POLL_INTERVAL_MS"), 1_000)),
            send_max_retries=max(0, to_int(os.getenv("SEND_MAX_RETRIES"), 2)),
            min_balance_lamports=max(
                DEFAULT_MIN_BALANCE_LAMPORTS,
                to_int(os.getenv("MIN_BALANCE_LAMPORTS"), DEFAULT_MIN_BALANCE_LAMPORTS),
            ),
            http_timeout_seconds=max(0.5, to_float(os.getenv("HTTP_TIMEOUT_SECONDS"), 8.0)),
            terminate_grace_seconds=max(0.0, to_float(os.getenv("TERMINATE_GRACE_SECONDS"), 1.0)),
        )

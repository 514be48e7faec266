from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

import aiohttp

from modules.common import log_event

from .types import FAIL_REASON_QUOTE, Outcome, Quote, QuoteError, SwapBuildError, TradeIntent, to_int

DEFAULT_JUPITER_QUOTE_API = "https://quote-api.jup.ag/v6"


def _error_payload_to_message(payload: Any) -> str:
    if isinstance(payload, dict):
        for key in ("error", "message", "errorCode"):
            value = payload.get(key)
            if value:
                return str(value)
        return json.dumps(payload, ensure_ascii=False, default=str)
    return str(payload)


class JupiterQuoteWatcher:
    """Prices the trade intent on Jupiter and decides whether the quote clears the threshold."""

    def __init__(
        self,
        *,
        logger: logging.Logger,
        api_base_url: str = DEFAULT_JUPITER_QUOTE_API,
        api_key: str = "",
        slippage_bps: int | None = None,
        timeout_seconds: float = 8.0,
    ) -> None:
        self._logger = logger
        self._api_base_url = (api_base_url or DEFAULT_JUPITER_QUOTE_API).rstrip("/")
        self._api_key = api_key.strip()
        self._slippage_bps = slippage_bps
        self._timeout_seconds = timeout_seconds
        self._session: aiohttp.ClientSession | None = None

    async def connect(self) -> None:
        if self._session is None:
            timeout = aiohttp.ClientTimeout(total=self._timeout_seconds)
            self._session = aiohttp.ClientSession(timeout=timeout)

    async def close(self) -> None:
        if self._session is not None:
            await self._session.close()
            self._session = None

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self._api_key:
            headers["x-api-key"] = self._api_key
        return headers

    async def _request_json(self, method: str, path: str, **kwargs: Any) -> tuple[int, Any]:
        if self._session is None:
            await self.connect()
        if self._session is None:
            raise RuntimeError("Jupiter HTTP session is not initialized.")

        endpoint = f"{self._api_base_url}/{path}"
        async with self._session.request(method, endpoint, headers=self._headers(), **kwargs) as response:
            status_code = response.status
            raw_text = await response.text()

        try:
            parsed = json.loads(raw_text) if raw_text else None
        except json.JSONDecodeError:
            parsed = {"raw_text": raw_text}
        return status_code, parsed

    async def quote(self, intent: TradeIntent) -> dict[str, Any]:
        params = {
            "inputMint": intent.input_mint,
            "outputMint": intent.output_mint,
            "amount": str(int(intent.amount)),
        }
        if self._slippage_bps is not None:
            params["slippageBps"] = str(int(self._slippage_bps))

        try:
            status_code, data = await self._request_json("GET", "quote", params=params)
        except (aiohttp.ClientError, asyncio.TimeoutError) as error:
            raise QuoteError(f"Jupiter quote request failed: {error}") from error

        if status_code >= 400 or (isinstance(data, dict) and data.get("error")):
            log_event(
                self._logger,
                level="warning",
                event="quote_service_error",
                message="Jupiter rejected the quote request",
                status=status_code,
                response=data,
            )
            raise QuoteError(f"Jupiter quote failed: status={status_code} error={_error_payload_to_message(data)}")

        if not data:
            raise QuoteError("No quote found")
        if not isinstance(data, dict) or "outAmount" not in data:
            raise QuoteError(f"Unexpected Jupiter quote response: {data}")
        if to_int(data.get("inAmount"), 0) <= 0:
            raise QuoteError(f"Jupiter quote is missing a positive inAmount: {data}")
        return data

    async def get_quote(self, intent: TradeIntent) -> Outcome[Quote]:
        try:
            payload = await self.quote(intent)
        except asyncio.CancelledError:
            raise
        except Exception as error:
            log_event(
                self._logger,
                level="error",
                event="quote_fetch_failed",
                message="Unable to find quote",
                input_mint=intent.input_mint,
                output_mint=intent.output_mint,
                amount=intent.amount,
                error=str(error),
            )
            return Outcome.failure(FAIL_REASON_QUOTE, str(error))

        return Outcome.success(Quote.from_response(payload))

    def evaluate(self, quote: Quote, intent: TradeIntent) -> bool:
        threshold = intent.threshold
        difference = (quote.out_amount - threshold) / threshold if threshold else float("inf")
        accept = quote.out_amount > threshold
        log_event(
            self._logger,
            level="info",
            event="quote_evaluated",
            message=(
                f"Current price {quote.out_amount} is {'higher' if difference > 0 else 'lower'} "
                f"than the next threshold {threshold}"
            ),
            out_amount=quote.out_amount,
            threshold=threshold,
            difference_pct=round(difference * 100, 6) if threshold else None,
            accept=accept,
        )
        return accept

    async def fetch_swap_instructions(self, *, quote: Quote, user_public_key: str) -> dict[str, Any]:
        payload = {
            "quoteResponse": quote.raw,
            "userPublicKey": user_public_key,
            "prioritizationFeeLamports": "auto",
        }
        try:
            status_code, data = await self._request_json("POST", "swap-instructions", json=payload)
        except (aiohttp.ClientError, asyncio.TimeoutError) as error:
            raise SwapBuildError(f"Swap-instructions request failed: {error}") from error

        if status_code >= 400 or not isinstance(data, dict) or data.get("error"):
            log_event(
                self._logger,
                level="warning",
                event="swap_instructions_error",
                message="Jupiter rejected the swap-instructions request",
                status=status_code,
                response=data,
            )
            raise SwapBuildError(
                f"Swap-instructions API request failed: status={status_code} "
                f"error={_error_payload_to_message(data)}"
            )
        return data

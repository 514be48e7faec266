from __future__ import annotations

import asyncio
import base64
from typing import Any

import aiohttp

from .types import RpcMethodError, to_int


class SolanaRpcClient:
    """Thin JSON-RPC client for the handful of Solana methods the bot needs."""

    def __init__(
        self,
        *,
        rpc_url: str,
        timeout_seconds: float = 8.0,
    ) -> None:
        self._rpc_url = rpc_url
        self._timeout_seconds = timeout_seconds
        self._session: aiohttp.ClientSession | None = None
        self._request_id = 0

    async def connect(self) -> None:
        if not self._rpc_url:
            raise ValueError("SOLANA_RPC_URL is required.")
        if self._session is None:
            timeout = aiohttp.ClientTimeout(total=self._timeout_seconds)
            self._session = aiohttp.ClientSession(timeout=timeout)

    async def close(self) -> None:
        if self._session is not None:
            await self._session.close()
            self._session = None

    async def call(self, method: str, params: list[Any] | None = None) -> Any:
        if self._session is None:
            await self.connect()
        if self._session is None:
            raise RuntimeError("RPC HTTP session is not initialized.")

        self._request_id += 1
        payload: dict[str, Any] = {
            "jsonrpc": "2.0",
            "id": self._request_id,
            "method": method,
            "params": params or [],
        }

        try:
            async with self._session.post(self._rpc_url, json=payload) as response:
                status_code = response.status
                body = await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError) as error:
            raise RpcMethodError(method=method, message=f"RPC transport error for {method}: {error}") from error

        if status_code >= 400:
            raise RpcMethodError(
                method=method,
                status=status_code,
                data=body,
                message=f"RPC call failed: method={method} status={status_code} body={body}",
            )
        if not isinstance(body, dict):
            raise RpcMethodError(method=method, data=body, message=f"Invalid RPC response for {method}: {body}")

        error_payload = body.get("error")
        if error_payload:
            code = to_int(error_payload.get("code"), 0) if isinstance(error_payload, dict) else None
            raise RpcMethodError(
                method=method,
                code=code,
                data=error_payload,
                message=f"RPC error for {method}: {error_payload}",
            )

        return body.get("result")

    @staticmethod
    def _value_of(method: str, result: Any) -> Any:
        if not isinstance(result, dict) or "value" not in result:
            raise RpcMethodError(method=method, data=result, message=f"Unexpected {method} response: {result}")
        return result["value"]

    async def get_balance(self, address: str) -> int:
        method = "getBalance"
        value = self._value_of(method, await self.call(method, [address, {"commitment": "confirmed"}]))
        return to_int(value, 0)

    async def get_token_account_balance(self, address: str) -> dict[str, Any]:
        method = "getTokenAccountBalance"
        value = self._value_of(method, await self.call(method, [address, {"commitment": "confirmed"}]))
        if not isinstance(value, dict):
            raise RpcMethodError(method=method, data=value, message=f"Unexpected {method} payload: {value}")
        return value

    async def get_multiple_accounts(self, addresses: list[str]) -> list[dict[str, Any] | None]:
        method = "getMultipleAccounts"
        value = self._value_of(
            method,
            await self.call(method, [addresses, {"encoding": "jsonParsed", "commitment": "confirmed"}]),
        )
        if not isinstance(value, list):
            raise RpcMethodError(method=method, data=value, message=f"Unexpected {method} payload: {value}")
        return [item if isinstance(item, dict) else None for item in value]

    async def get_latest_blockhash(self) -> tuple[str, int | None]:
        method = "getLatestBlockhash"
        value = self._value_of(method, await self.call(method, [{"commitment": "confirmed"}]))
        if not isinstance(value, dict):
            raise RpcMethodError(method=method, data=value, message=f"Unexpected {method} payload: {value}")

        blockhash = str(value.get("blockhash") or "").strip()
        if not blockhash:
            raise RpcMethodError(method=method, data=value, message=f"Missing blockhash in RPC response: {value}")
        last_valid_block_height = to_int(value.get("lastValidBlockHeight"), -1)
        return blockhash, (last_valid_block_height if last_valid_block_height >= 0 else None)

    async def get_signature_statuses(
        self,
        signatures: list[str],
        *,
        search_transaction_history: bool = False,
    ) -> list[dict[str, Any] | None]:
        method = "getSignatureStatuses"
        value = self._value_of(
            method,
            await self.call(method, [signatures, {"searchTransactionHistory": search_transaction_history}]),
        )
        if not isinstance(value, list):
            raise RpcMethodError(method=method, data=value, message=f"Unexpected {method} payload: {value}")
        return [item if isinstance(item, dict) else None for item in value]

    async def send_raw_transaction(
        self,
        raw_transaction: bytes,
        *,
        skip_preflight: bool = True,
        max_retries: int = 2,
    ) -> str:
        method = "sendTransaction"
        encoded = base64.b64encode(raw_transaction).decode("ascii")
        result = await self.call(
            method,
            [
                encoded,
                {
                    "encoding": "base64",
                    "skipPreflight": skip_preflight,
                    "maxRetries": max(0, int(max_retries)),
                },
            ],
        )
        signature = str(result or "").strip()
        if not signature:
            raise RpcMethodError(method=method, data=result, message=f"sendTransaction returned no signature: {result}")
        return signature

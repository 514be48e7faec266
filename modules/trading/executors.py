from __future__ import annotations

import asyncio
import base64
import contextlib
import json
import logging
from typing import Any

from solders.address_lookup_table_account import AddressLookupTableAccount
from solders.hash import Hash
from solders.instruction import AccountMeta, Instruction
from solders.keypair import Keypair
from solders.message import MessageV0, to_bytes_versioned
from solders.pubkey import Pubkey
from solders.transaction import VersionedTransaction

from modules.common import log_event

from .guard import InFlightGuard
from .rpc import SolanaRpcClient
from .types import (
    FAIL_REASON_SUBMISSION,
    FAIL_REASON_SWAP_BUILD,
    Outcome,
    Quote,
    SubmissionError,
    SwapBuildError,
)
from .watcher import JupiterQuoteWatcher


def parse_private_key(raw: str) -> Keypair:
    value = (raw or "").strip()
    if not value:
        raise ValueError("PRIVATE_KEY is required.")

    if value.startswith("["):
        arr = json.loads(value)
        if not isinstance(arr, list):
            raise ValueError("PRIVATE_KEY JSON must be an integer array.")
        return Keypair.from_bytes(bytes(arr))

    with contextlib.suppress(Exception):
        return Keypair.from_base58_string(value)

    raise ValueError("Unsupported PRIVATE_KEY format.")


def decode_instruction(raw: dict[str, Any] | None, *, section: str) -> Instruction | None:
    """Translate one Jupiter instruction payload; an absent payload yields ``None``."""
    if raw is None:
        return None
    if not isinstance(raw, dict):
        raise SwapBuildError(f"Invalid instruction payload in {section}: {raw}")

    program_id = str(raw.get("programId") or "").strip()
    if not program_id:
        raise SwapBuildError(f"Instruction programId is missing in {section}")

    raw_accounts = raw.get("accounts")
    if not isinstance(raw_accounts, list):
        raise SwapBuildError(f"Instruction accounts are missing in {section}")

    metas: list[AccountMeta] = []
    for idx, account in enumerate(raw_accounts):
        pubkey = str(account.get("pubkey") or "").strip() if isinstance(account, dict) else ""
        if not pubkey:
            raise SwapBuildError(f"Instruction account[{idx}] is invalid in {section}: {account}")
        metas.append(
            AccountMeta(
                pubkey=Pubkey.from_string(pubkey),
                is_signer=bool(account.get("isSigner")),
                is_writable=bool(account.get("isWritable")),
            )
        )

    try:
        data = base64.b64decode(str(raw.get("data") or ""), validate=True)
    except ValueError as error:
        raise SwapBuildError(f"Instruction data decode failed in {section}: {error}") from error

    return Instruction(Pubkey.from_string(program_id), data, metas)


def collect_swap_instructions(payload: dict[str, Any]) -> list[Instruction]:
    candidates: list[tuple[str, Any]] = []
    for section in ("computeBudgetInstructions", "setupInstructions"):
        raw_list = payload.get(section) or []
        if not isinstance(raw_list, list):
            raise SwapBuildError(f"Instruction list is invalid in {section}: {raw_list}")
        candidates.extend((f"{section}[{index}]", item) for index, item in enumerate(raw_list))

    if not isinstance(payload.get("swapInstruction"), dict):
        raise SwapBuildError("swapInstruction is missing in swap-instructions response.")
    candidates.append(("swapInstruction", payload.get("swapInstruction")))
    candidates.append(("cleanupInstruction", payload.get("cleanupInstruction")))

    decoded = (decode_instruction(raw, section=section) for section, raw in candidates)
    return [instruction for instruction in decoded if instruction is not None]


def parse_lookup_table_account(address: str, account: dict[str, Any] | None) -> AddressLookupTableAccount | None:
    if account is None:
        return None
    data = account.get("data")
    parsed = data.get("parsed") if isinstance(data, dict) else None
    info = parsed.get("info") if isinstance(parsed, dict) else None
    raw_addresses = info.get("addresses") if isinstance(info, dict) else None
    if not isinstance(raw_addresses, list):
        return None
    try:
        return AddressLookupTableAccount(
            Pubkey.from_string(address),
            [Pubkey.from_string(str(raw)) for raw in raw_addresses if str(raw or "").strip()],
        )
    except ValueError:
        return None


class LiveSwapExecutor:
    """Turns an accepted quote into a signed versioned transaction and submits it."""

    def __init__(
        self,
        *,
        logger: logging.Logger,
        rpc: SolanaRpcClient,
        watcher: JupiterQuoteWatcher,
        signer: Keypair,
        guard: InFlightGuard,
        send_max_retries: int = 2,
    ) -> None:
        self._logger = logger
        self._rpc = rpc
        self._watcher = watcher
        self._signer = signer
        self._guard = guard
        self._send_max_retries = max(0, int(send_max_retries))

    @property
    def public_key(self) -> str:
        return str(self._signer.pubkey())

    async def _fetch_lookup_table_accounts(self, addresses: list[str]) -> list[AddressLookupTableAccount]:
        if not addresses:
            return []
        try:
            accounts = await self._rpc.get_multiple_accounts(addresses)
        except Exception as error:
            raise SwapBuildError(f"Address lookup table fetch failed: {error}") from error

        resolved = (
            parse_lookup_table_account(address, account) for address, account in zip(addresses, accounts)
        )
        return [table for table in resolved if table is not None]

    async def build_transaction(self, quote: Quote) -> VersionedTransaction:
        payload = await self._watcher.fetch_swap_instructions(quote=quote, user_public_key=self.public_key)
        instructions = collect_swap_instructions(payload)

        raw_lookup_addresses = payload.get("addressLookupTableAddresses") or []
        lookup_addresses = [str(item).strip() for item in raw_lookup_addresses if str(item or "").strip()]
        lookup_table_accounts = await self._fetch_lookup_table_accounts(lookup_addresses)
        if len(lookup_table_accounts) < len(lookup_addresses):
            log_event(
                self._logger,
                level="warning",
                event="lookup_tables_partially_resolved",
                message="Some address lookup tables could not be resolved and were omitted",
                requested=len(lookup_addresses),
                resolved=len(lookup_table_accounts),
            )

        try:
            blockhash, _ = await self._rpc.get_latest_blockhash()
        except Exception as error:
            raise SwapBuildError(f"Latest blockhash fetch failed: {error}") from error

        try:
            message = MessageV0.try_compile(
                self._signer.pubkey(),
                instructions,
                lookup_table_accounts,
                Hash.from_string(blockhash),
            )
            signature = self._signer.sign_message(to_bytes_versioned(message))
            transaction = VersionedTransaction.populate(message, [signature])
        except Exception as error:
            raise SwapBuildError(f"Transaction assembly failed: {error}") from error

        log_event(
            self._logger,
            level="info",
            event="swap_transaction_built",
            message="Swap transaction assembled and signed",
            instruction_count=len(instructions),
            lookup_table_count=len(lookup_table_accounts),
            tx_signature=str(transaction.signatures[0]),
        )
        return transaction

    async def submit(self, transaction: VersionedTransaction) -> str:
        try:
            return await self._rpc.send_raw_transaction(
                bytes(transaction),
                skip_preflight=True,
                max_retries=self._send_max_retries,
            )
        except Exception as error:
            raise SubmissionError(f"Transaction submission failed: {error}") from error

    async def execute(self, quote: Quote) -> Outcome[str]:
        if not self._guard.active:
            raise RuntimeError("Swap execution requires the in-flight guard to be held.")

        try:
            transaction = await self.build_transaction(quote)
            tx_signature = await self.submit(transaction)
        except asyncio.CancelledError:
            raise
        except SubmissionError as error:
            log_event(
                self._logger,
                level="error",
                event="swap_submission_failed",
                message="Network rejected the swap transaction",
                error=str(error),
            )
            return Outcome.failure(FAIL_REASON_SUBMISSION, str(error))
        except Exception as error:
            log_event(
                self._logger,
                level="error",
                event="swap_build_failed",
                message="Unable to build the swap transaction",
                error=str(error),
            )
            return Outcome.failure(FAIL_REASON_SWAP_BUILD, str(error))

        log_event(
            self._logger,
            level="info",
            event="swap_submitted",
            message="Swap transaction submitted",
            tx_signature=tx_signature,
            in_amount=quote.in_amount,
            out_amount=quote.out_amount,
        )
        return Outcome.success(tx_signature)

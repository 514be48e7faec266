from __future__ import annotations

import base64
import logging
import unittest
from unittest.mock import AsyncMock, MagicMock

from solders.address_lookup_table_account import AddressLookupTableAccount
from solders.hash import Hash
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from modules.trading.executors import (
    LiveSwapExecutor,
    collect_swap_instructions,
    decode_instruction,
    parse_lookup_table_account,
    parse_private_key,
)
from modules.trading.guard import InFlightGuard
from modules.trading.types import (
    FAIL_REASON_SUBMISSION,
    FAIL_REASON_SWAP_BUILD,
    SOL_MINT,
    USDC_MINT,
    Quote,
    RpcMethodError,
    SwapBuildError,
)

SYSTEM_PROGRAM = "11111111111111111111111111111111"
COMPUTE_BUDGET_PROGRAM = "ComputeBudget111111111111111111111111111111"


def _raw_instruction(program_id: str, accounts: list[tuple[str, bool, bool]], data: bytes) -> dict[str, object]:
    return {
        "programId": program_id,
        "accounts": [
            {"pubkey": pubkey, "isSigner": is_signer, "isWritable": is_writable}
            for pubkey, is_signer, is_writable in accounts
        ],
        "data": base64.b64encode(data).decode("ascii"),
    }


def _make_payload(signer: str, *, lookup_tables: list[str] | None = None) -> dict[str, object]:
    destination = str(Keypair().pubkey())
    return {
        "computeBudgetInstructions": [
            _raw_instruction(COMPUTE_BUDGET_PROGRAM, [], bytes([2, 64, 13, 3, 0])),
        ],
        "setupInstructions": [],
        "swapInstruction": _raw_instruction(
            SYSTEM_PROGRAM,
            [(signer, True, True), (destination, False, True)],
            bytes([2, 0, 0, 0]) + (1000).to_bytes(8, "little"),
        ),
        "cleanupInstruction": None,
        "addressLookupTableAddresses": lookup_tables or [],
    }


def _lookup_account(addresses: list[str]) -> dict[str, object]:
    return {
        "data": {"parsed": {"type": "lookupTable", "info": {"addresses": addresses}}, "program": "address-lookup-table"},
        "owner": "AddressLookupTab1e1111111111111111111111111",
    }


def _make_quote() -> Quote:
    return Quote.from_response(
        {"inputMint": USDC_MINT, "outputMint": SOL_MINT, "inAmount": "100", "outAmount": "120"}
    )


class InstructionDecodingTests(unittest.TestCase):
    def test_absent_instruction_decodes_to_none(self) -> None:
        self.assertIsNone(decode_instruction(None, section="cleanupInstruction"))

    def test_instruction_fields_are_translated(self) -> None:
        signer = str(Keypair().pubkey())
        instruction = decode_instruction(
            _raw_instruction(SYSTEM_PROGRAM, [(signer, True, False)], b"\x01\x02"),
            section="swapInstruction",
        )

        self.assertEqual(instruction.program_id, Pubkey.from_string(SYSTEM_PROGRAM))
        self.assertEqual(bytes(instruction.data), b"\x01\x02")
        self.assertTrue(instruction.accounts[0].is_signer)
        self.assertFalse(instruction.accounts[0].is_writable)

    def test_absent_cleanup_is_filtered_out(self) -> None:
        instructions = collect_swap_instructions(_make_payload(str(Keypair().pubkey())))

        self.assertEqual(len(instructions), 2)
        self.assertEqual(instructions[0].program_id, Pubkey.from_string(COMPUTE_BUDGET_PROGRAM))

    def test_missing_swap_instruction_is_a_build_error(self) -> None:
        payload = _make_payload(str(Keypair().pubkey()))
        payload["swapInstruction"] = None

        with self.assertRaises(SwapBuildError):
            collect_swap_instructions(payload)

    def test_missing_program_id_is_a_build_error(self) -> None:
        with self.assertRaises(SwapBuildError):
            decode_instruction({"accounts": [], "data": ""}, section="setupInstructions[0]")

    def test_lookup_table_parsing_omits_missing_accounts(self) -> None:
        table_address = str(Keypair().pubkey())
        entry = str(Keypair().pubkey())

        self.assertIsNone(parse_lookup_table_account(table_address, None))
        self.assertIsNone(parse_lookup_table_account(table_address, {"data": ["AAAA", "base64"]}))
        table = parse_lookup_table_account(table_address, _lookup_account([entry]))
        self.assertIsInstance(table, AddressLookupTableAccount)
        self.assertEqual(list(table.addresses), [Pubkey.from_string(entry)])

    def test_private_key_accepts_json_array_and_base58(self) -> None:
        keypair = Keypair()

        self.assertEqual(parse_private_key(str(list(bytes(keypair)))).pubkey(), keypair.pubkey())
        self.assertEqual(parse_private_key(str(keypair)).pubkey(), keypair.pubkey())
        with self.assertRaises(ValueError):
            parse_private_key("")


class LiveSwapExecutorTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.signer = Keypair()
        self.guard = InFlightGuard()
        self.rpc = MagicMock()
        self.rpc.get_multiple_accounts = AsyncMock(return_value=[])
        self.rpc.get_latest_blockhash = AsyncMock(return_value=(str(Hash.default()), 250))
        self.rpc.send_raw_transaction = AsyncMock(return_value="5sigXYZ")
        self.watcher = MagicMock()
        self.watcher.fetch_swap_instructions = AsyncMock(return_value=_make_payload(str(self.signer.pubkey())))
        self.executor = LiveSwapExecutor(
            logger=logging.getLogger("test.executor"),
            rpc=self.rpc,
            watcher=self.watcher,
            signer=self.signer,
            guard=self.guard,
        )

    async def test_execute_signs_and_submits_without_preflight(self) -> None:
        quote = _make_quote()

        with self.guard.hold():
            outcome = await self.executor.execute(quote)

        self.assertTrue(outcome.ok)
        self.assertEqual(outcome.value, "5sigXYZ")
        self.watcher.fetch_swap_instructions.assert_awaited_once_with(
            quote=quote,
            user_public_key=str(self.signer.pubkey()),
        )
        args, kwargs = self.rpc.send_raw_transaction.call_args
        self.assertIsInstance(args[0], bytes)
        self.assertEqual(kwargs, {"skip_preflight": True, "max_retries": 2})

    async def test_unresolvable_lookup_tables_are_omitted(self) -> None:
        missing_table = str(Keypair().pubkey())
        resolved_table = str(Keypair().pubkey())
        self.watcher.fetch_swap_instructions.return_value = _make_payload(
            str(self.signer.pubkey()),
            lookup_tables=[missing_table, resolved_table],
        )
        self.rpc.get_multiple_accounts.return_value = [None, _lookup_account([str(Keypair().pubkey())])]

        with self.guard.hold():
            outcome = await self.executor.execute(_make_quote())

        self.assertTrue(outcome.ok)
        self.rpc.get_multiple_accounts.assert_awaited_once_with([missing_table, resolved_table])

    async def test_lookup_batch_failure_is_a_build_failure(self) -> None:
        self.watcher.fetch_swap_instructions.return_value = _make_payload(
            str(self.signer.pubkey()),
            lookup_tables=[str(Keypair().pubkey())],
        )
        self.rpc.get_multiple_accounts.side_effect = RpcMethodError(method="getMultipleAccounts", message="boom")

        with self.guard.hold():
            outcome = await self.executor.execute(_make_quote())

        self.assertEqual(outcome.fail_reason, FAIL_REASON_SWAP_BUILD)
        self.rpc.send_raw_transaction.assert_not_awaited()

    async def test_swap_instruction_request_failure_is_a_build_failure(self) -> None:
        self.watcher.fetch_swap_instructions.side_effect = SwapBuildError("status=500")

        with self.guard.hold():
            outcome = await self.executor.execute(_make_quote())

        self.assertEqual(outcome.fail_reason, FAIL_REASON_SWAP_BUILD)

    async def test_rejected_submission_is_a_submission_failure(self) -> None:
        self.rpc.send_raw_transaction.side_effect = RpcMethodError(method="sendTransaction", message="blockhash")

        with self.guard.hold():
            outcome = await self.executor.execute(_make_quote())

        self.assertEqual(outcome.fail_reason, FAIL_REASON_SUBMISSION)
        self.assertIn("blockhash", outcome.error)

    async def test_execute_requires_guard(self) -> None:
        with self.assertRaises(RuntimeError):
            await self.executor.execute(_make_quote())
        self.watcher.fetch_swap_instructions.assert_not_awaited()


if __name__ == "__main__":
    unittest.main()

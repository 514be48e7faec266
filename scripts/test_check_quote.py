from __future__ import annotations

import argparse
import contextlib
import io
import json
import logging
import unittest
from unittest.mock import AsyncMock, patch

import check_quote
from modules.trading.types import FAIL_REASON_QUOTE, SOL_MINT, USDC_MINT, Outcome, Quote

_RAW_QUOTE = {
    "inputMint": USDC_MINT,
    "outputMint": SOL_MINT,
    "inAmount": "210000000",
    "outAmount": "1500000000",
    "routePlan": [],
}


class CheckQuoteScriptTests(unittest.IsolatedAsyncioTestCase):
    async def _run(self, outcome: Outcome[Quote]) -> tuple[int, str, AsyncMock]:
        watcher = AsyncMock()
        watcher.get_quote = AsyncMock(return_value=outcome)
        stdout = io.StringIO()
        with (
            patch.object(check_quote, "load_dotenv"),
            patch.object(check_quote, "setup_logger", return_value=logging.getLogger("test.check_quote")),
            patch.object(check_quote, "JupiterQuoteWatcher", return_value=watcher),
            contextlib.redirect_stdout(stdout),
        ):
            exit_code = await check_quote._run(argparse.Namespace(input_token="usdc", amount=210_000_000))
        return exit_code, stdout.getvalue(), watcher

    async def test_prints_the_quote_as_json(self) -> None:
        exit_code, output, watcher = await self._run(Outcome.success(Quote.from_response(_RAW_QUOTE)))

        self.assertEqual(exit_code, 0)
        self.assertEqual(json.loads(output), _RAW_QUOTE)
        intent = watcher.get_quote.await_args.args[0]
        self.assertEqual((intent.input_mint, intent.output_mint, intent.amount), (USDC_MINT, SOL_MINT, 210_000_000))
        watcher.close.assert_awaited_once()

    async def test_failed_quote_exits_non_zero_without_output(self) -> None:
        exit_code, output, _ = await self._run(Outcome.failure(FAIL_REASON_QUOTE, "no route"))

        self.assertEqual(exit_code, 1)
        self.assertEqual(output, "")


if __name__ == "__main__":
    unittest.main()

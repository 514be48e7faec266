from __future__ import annotations

import logging
import unittest
from unittest.mock import AsyncMock, MagicMock

from solders.keypair import Keypair

from modules.trading.balances import LOW_BALANCE_REASON, BalanceTracker
from modules.trading.types import RpcMethodError


class BalanceTrackerTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.rpc = MagicMock()
        self.rpc.get_balance = AsyncMock(return_value=2_000_000_000)
        self.rpc.get_token_account_balance = AsyncMock(return_value={"amount": "12500000", "uiAmount": 12.5})
        self.on_low_balance = MagicMock(return_value=None)
        self.wallet = Keypair().pubkey()
        self.tracker = BalanceTracker(
            logger=logging.getLogger("test.balances"),
            rpc=self.rpc,
            wallet=self.wallet,
            on_low_balance=self.on_low_balance,
        )

    async def test_refresh_queries_wallet_and_token_account(self) -> None:
        snapshot = await self.tracker.refresh()

        self.assertEqual(snapshot.native_lamports, 2_000_000_000)
        self.assertEqual(snapshot.native_sol, 2.0)
        self.assertEqual(snapshot.token_balance, 12.5)
        self.rpc.get_balance.assert_awaited_once_with(str(self.wallet))
        self.rpc.get_token_account_balance.assert_awaited_once_with(self.tracker.token_account)
        self.assertNotEqual(self.tracker.token_account, str(self.wallet))
        self.on_low_balance.assert_not_called()

    async def test_token_balance_failure_defaults_to_zero(self) -> None:
        await self.tracker.refresh()
        self.rpc.get_token_account_balance.side_effect = RpcMethodError(
            method="getTokenAccountBalance",
            message="could not find account",
        )

        snapshot = await self.tracker.refresh()

        self.assertEqual(snapshot.token_balance, 0.0)
        self.assertEqual(snapshot.native_lamports, 2_000_000_000)

    async def test_native_balance_failure_keeps_last_value(self) -> None:
        await self.tracker.refresh()
        self.rpc.get_balance.side_effect = RpcMethodError(method="getBalance", message="timeout")

        snapshot = await self.tracker.refresh()

        self.assertEqual(snapshot.native_lamports, 2_000_000_000)
        self.on_low_balance.assert_not_called()

    async def test_native_failure_before_first_success_does_not_terminate(self) -> None:
        self.rpc.get_balance.side_effect = RpcMethodError(method="getBalance", message="timeout")

        snapshot = await self.tracker.refresh()

        self.assertIsNone(snapshot.native_lamports)
        self.assertIsNone(snapshot.native_sol)
        self.on_low_balance.assert_not_called()

    async def test_balance_below_reserve_triggers_low_balance_once_per_refresh(self) -> None:
        self.rpc.get_balance.return_value = 9_999_999

        await self.tracker.refresh()

        self.on_low_balance.assert_called_once_with(LOW_BALANCE_REASON)

    async def test_balance_at_reserve_is_sufficient(self) -> None:
        self.rpc.get_balance.return_value = 10_000_000

        await self.tracker.refresh()

        self.on_low_balance.assert_not_called()

    async def test_async_low_balance_handler_is_awaited(self) -> None:
        handler = AsyncMock()
        self.tracker.set_low_balance_handler(handler)
        self.rpc.get_balance.return_value = 0

        await self.tracker.refresh()

        handler.assert_awaited_once_with(LOW_BALANCE_REASON)


if __name__ == "__main__":
    unittest.main()

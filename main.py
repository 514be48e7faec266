from __future__ import annotations

import asyncio
import contextlib
import signal

from dotenv import load_dotenv

from modules.bot_runtime import AppSettings, SessionController, SettingsError, setup_logger
from modules.common import close_all, log_event, register_secret
from modules.storage import StorageSettings, TradeLedger
from modules.trading import (
    BalanceTracker,
    InFlightGuard,
    JupiterQuoteWatcher,
    LiveSwapExecutor,
    SolanaRpcClient,
    TradeIntent,
    TransactionConfirmer,
    parse_private_key,
)

EXIT_FAILURE = 1


async def main() -> int:
    load_dotenv()
    logger = setup_logger()

    try:
        app_settings = AppSettings.from_env()
        register_secret(app_settings.private_key)
        register_secret(app_settings.jupiter_api_key)
        signer = parse_private_key(app_settings.private_key)
    except (SettingsError, ValueError) as error:
        log_event(
            logger,
            level="critical",
            event="startup_config_error",
            message="Invalid or missing configuration",
            error=str(error),
        )
        return EXIT_FAILURE

    storage_settings = StorageSettings.from_env()

    rpc = SolanaRpcClient(
        rpc_url=app_settings.solana_rpc_url,
        timeout_seconds=app_settings.http_timeout_seconds,
    )
    watcher = JupiterQuoteWatcher(
        logger=logger,
        api_base_url=app_settings.jupiter_quote_api,
        api_key=app_settings.jupiter_api_key,
        slippage_bps=app_settings.slippage_bps,
        timeout_seconds=app_settings.http_timeout_seconds,
    )
    guard = InFlightGuard()
    executor = LiveSwapExecutor(
        logger=logger,
        rpc=rpc,
        watcher=watcher,
        signer=signer,
        guard=guard,
        send_max_retries=app_settings.send_max_retries,
    )
    confirmer = TransactionConfirmer(
        logger=logger,
        rpc=rpc,
        timeout_ms=app_settings.confirm_timeout_ms,
        poll_interval_ms=app_settings.confirm_poll_interval_ms,
    )
    balances = BalanceTracker(
        logger=logger,
        rpc=rpc,
        wallet=signer.pubkey(),
        min_balance_lamports=app_settings.min_balance_lamports,
    )
    ledger = TradeLedger(logger=logger, path=storage_settings.trade_log_path)

    controller = SessionController(
        logger=logger,
        wallet_address=str(signer.pubkey()),
        initial_intent=TradeIntent.initial(
            input_token=app_settings.initial_input_token,
            amount=app_settings.initial_input_amount,
            threshold=app_settings.first_trade_price,
        ),
        watcher=watcher,
        executor=executor,
        confirmer=confirmer,
        balances=balances,
        ledger=ledger,
        guard=guard,
        gain_fraction=app_settings.gain_fraction,
        check_interval_seconds=app_settings.check_interval_seconds,
        terminate_grace_seconds=app_settings.terminate_grace_seconds,
    )

    loop = asyncio.get_running_loop()

    def request_shutdown(sig: signal.Signals) -> None:
        log_event(
            logger,
            level="info",
            event="shutdown_signal_received",
            message="Shutdown signal received",
            signal=sig.name,
        )
        controller.stop()

    for sig in (signal.SIGTERM, signal.SIGINT):
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, request_shutdown, sig)

    try:
        await rpc.connect()
        await watcher.connect()
        return await controller.run()
    except Exception as error:
        log_event(
            logger,
            level="exception",
            event="session_crashed",
            message="Bot stopped on an unrecoverable error",
            error=str(error),
        )
        return EXIT_FAILURE
    finally:
        await close_all(
            {"session": controller.close, "jupiter client": watcher.close, "rpc client": rpc.close},
            logger=logger,
        )
        log_event(logger, level="info", event="shutdown_completed", message="Shutdown completed")


if __name__ == "__main__":
    raise SystemExit(asyncio.run(main()))

from __future__ import annotations

import argparse
import asyncio
import json
import os
import sys

from dotenv import load_dotenv

from modules.bot_runtime import setup_logger
from modules.common import log_event
from modules.trading import JupiterQuoteWatcher, SwapToken, TradeIntent


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Fetch a single Jupiter quote for the configured pair.")
    parser.add_argument("--input-token", default="USDC", help="SOL or USDC")
    parser.add_argument("--amount", type=int, default=210_000_000, help="Input amount in base units")
    return parser.parse_args()


async def _run(args: argparse.Namespace) -> int:
    load_dotenv()
    logger = setup_logger()
    input_token = SwapToken.parse(args.input_token)
    watcher = JupiterQuoteWatcher(
        logger=logger,
        api_base_url=os.getenv("JUPITER_QUOTE_API", ""),
        api_key=os.getenv("JUPITER_API_KEY", ""),
    )
    try:
        outcome = await watcher.get_quote(
            TradeIntent.initial(input_token=input_token, amount=args.amount, threshold=1.0)
        )
    finally:
        await watcher.close()

    if not outcome.ok:
        return 1

    quote = outcome.value
    log_event(
        logger,
        level="info",
        event="quote_probe",
        message=f"{quote.out_amount} {quote.output_mint}",
        in_amount=quote.in_amount,
        out_amount=quote.out_amount,
    )
    print(json.dumps(quote.raw, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(_run(_parse_args())))

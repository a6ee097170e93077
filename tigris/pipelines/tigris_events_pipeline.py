"""
Tigris live events pipeline.

Connects to the Tigris oracle and events sockets and logs every trading
event under its canonical name, together with the number of assets in the
latest oracle snapshot.

Run with::

    python -m tigris.pipelines.tigris_events_pipeline
"""

import asyncio
import logging
from pathlib import Path
from typing import Any, Callable

from tigris.config.settings import TigrisConfig, load_config
from tigris.execution.tigris_trader import TigrisTrader
from tigris.utils.logger import setup_logger

ROOT = Path(__file__).resolve().parents[2]
CONFIG_PATH = ROOT / "config" / "tigris_config.json"


# ---------------------------------------------------------------------------
# STAGE 1 — INIT
# ---------------------------------------------------------------------------

def init(config_path: Path = CONFIG_PATH) -> tuple[TigrisConfig, logging.Logger]:
    config = load_config(config_path)

    log_path = ROOT / config.log_path
    log_level = getattr(logging, config.log_level.upper(), logging.INFO)

    logger = setup_logger("tigris_events_pipeline", log_path, level=log_level)
    logger.info("========== Tigris Events Pipeline starting ==========")
    logger.info("========== Stage 1 ==========")
    logger.info(f"Config loaded from: {config_path}")
    logger.info(f"RPC: {config.rpc_url} | Oracle: {config.oracle_url}")

    return config, logger


# ---------------------------------------------------------------------------
# STAGE 2 — EVENT HANDLER
# ---------------------------------------------------------------------------

def build_event_handler(
    trader: TigrisTrader,
    logger: logging.Logger,
) -> Callable[[str, Any], None]:
    """Return a trading callback that logs the event and the oracle state."""

    def handle_event(name: str, event: Any) -> None:
        quotes = trader.oracle.get_prices()
        n_assets = len(quotes) if quotes is not None else 0
        logger.info(f"[{name}] {event} | oracle assets={n_assets}")

    return handle_event


# ---------------------------------------------------------------------------
# STAGE 3 — RUN
# ---------------------------------------------------------------------------

async def run(config: TigrisConfig, logger: logging.Logger) -> None:
    logger.info("========== Stage 3 ==========")
    trader = TigrisTrader(config, logger=logger)
    await trader.connect()
    await trader.set_events_callback(build_event_handler(trader, logger))
    logger.info("Listening for Tigris events …")
    try:
        await asyncio.Event().wait()
    finally:
        await trader.disconnect()
        logger.info("Tigris Events Pipeline stopped.")


def main() -> None:
    config, logger = init()
    try:
        asyncio.run(run(config, logger))
    except KeyboardInterrupt:
        logger.info("Interrupted by user.")


if __name__ == "__main__":
    main()

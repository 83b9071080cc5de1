"""chatrelay - Telegram conversation relay.

Entry point for the application.
Usage:
    python -m chatrelay.main                    # Start the bot
    python -m chatrelay.main --init             # Write the default config
    python -m chatrelay.main --config my.yaml   # Use another config file
"""

from __future__ import annotations

import argparse
import asyncio
import signal
import sys
from pathlib import Path

import structlog

from chatrelay.config import RelayConfig, get_relay_home, load_config, save_default_config
from chatrelay.core.costs import get_cost_strategy
from chatrelay.core.errors import StartupError
from chatrelay.core.model_router import ModelRouter
from chatrelay.core.relay import Relay, prime_window

logger = structlog.get_logger()


def setup_logging() -> None:
    """Configure structured logging."""
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            structlog.dev.ConsoleRenderer() if sys.stderr.isatty() else structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(20),  # INFO level
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def _load_env() -> None:
    """Load .env files from the working directory and ~/.chatrelay/."""
    from dotenv import load_dotenv

    env_file = Path(".env")
    if env_file.exists():
        load_dotenv(env_file)

    relay_env = get_relay_home() / ".env"
    if relay_env.exists():
        load_dotenv(relay_env)


async def build_relay(config: RelayConfig) -> Relay:
    """Build the relay, priming the conversation window with the system prompt."""
    router = ModelRouter(config.connections.openai)
    costs = get_cost_strategy(config.connections.openai.cost_strategy)
    window = await prime_window(router, config, costs)
    return Relay(config, router, window, costs)


async def async_main(config: RelayConfig) -> None:
    """Start the bot and run until SIGINT/SIGTERM."""
    from chatrelay.adapters.telegram_adapter import TelegramAdapter

    logger.info("relay_starting", name=config.personality.name)
    relay = await build_relay(config)
    adapter = TelegramAdapter(relay, config)
    await adapter.start()

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            signal.signal(sig, lambda *_: stop_event.set())

    print(f"{config.personality.name} is running as {config.connections.telegram.username}.")
    print("Press Ctrl+C to stop.")

    try:
        await stop_event.wait()
    finally:
        await adapter.stop()


def main() -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="chatrelay - Telegram conversation relay",
        prog="chatrelay",
    )
    parser.add_argument(
        "--init",
        action="store_true",
        help="Write the default configuration file",
    )
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to config file (default: ~/.chatrelay/config.yaml)",
    )
    args = parser.parse_args()

    setup_logging()
    config_path = Path(args.config) if args.config else None

    if args.init:
        config_path = save_default_config(config_path)
        print(f"Default config saved to: {config_path}")
        return

    _load_env()

    try:
        config = load_config(config_path)
        asyncio.run(async_main(config))
    except StartupError as e:
        logger.error("startup_failed", error=str(e))
        sys.exit(1)
    except KeyboardInterrupt:
        print("\nGoodbye!")


if __name__ == "__main__":
    main()

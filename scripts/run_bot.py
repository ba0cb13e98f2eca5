#!/usr/bin/env python3
"""
Start the wallet-gate Discord bot.

Shares the key-value store and chain configuration with the web app, so both
processes must point at the same REDIS_URL.
"""
import logging
import os
import sys

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from dotenv import load_dotenv

load_dotenv()

from wallet_gate.audit_logger import init_audit_logger
from wallet_gate.bot import create_bot
from wallet_gate.config import get_config, validate_config
from wallet_gate.security import configure_logging
from wallet_gate.verification import build_services

logger = logging.getLogger("wallet_gate.run_bot")


def main():
    """Build the services and run the bot until interrupted."""
    cfg = get_config()
    try:
        validate_config(cfg)
    except ValueError as e:
        print(f"❌ Invalid configuration: {e}")
        return 1

    if not cfg["DISCORD_TOKEN"]:
        print("❌ DISCORD_TOKEN is not set in .env or environment.")
        return 1

    configure_logging(cfg)
    init_audit_logger()

    services = build_services(cfg)
    logger.info(f"Starting bot (default guild: {cfg['DEFAULT_GUILD_ID'] or 'none'})")
    bot = create_bot(cfg, services)
    # discord.py installs its own handler unless told otherwise.
    bot.run(cfg["DISCORD_TOKEN"], log_handler=None)
    return 0


if __name__ == "__main__":
    sys.exit(main())

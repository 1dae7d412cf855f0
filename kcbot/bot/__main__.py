"""
kcbot.bot.__main__ — Entry point for ``python -m kcbot.bot``
=============================================================

1. Load .env (secrets).
2. Load config.yaml.
3. Create the engine and ensure tables exist.
4. Run the bot until interrupted.
"""

from __future__ import annotations

import logging
import os
import sys

from dotenv import load_dotenv

from kcbot.bot.core import KcBot
from kcbot.config import load_config
from kcbot.database.engine import create_db_engine, init_db

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("kcbot")


def main() -> None:
    load_dotenv()

    token = os.getenv("DISCORD_TOKEN")
    if not token or token == "your-discord-bot-token-here":
        logger.critical(
            "DISCORD_TOKEN is not set.  "
            "Copy .env.example → .env and paste your bot token."
        )
        sys.exit(1)

    cfg = load_config()
    engine = create_db_engine()
    init_db(engine)

    bot = KcBot(cfg=cfg, engine=engine)
    logger.info("Starting %s Discord relay…", cfg.app_name)
    try:
        bot.run(token, log_handler=None)
    except KeyboardInterrupt:
        logger.info("Shutting down gracefully…")


if __name__ == "__main__":
    main()

"""One-shot reminder tick for platform cron.
Run via a schedule every minute:
    python -m app.scripts.scan_due_reminders
    python -m app.scripts.scan_due_reminders --digest
"""

from __future__ import annotations

import argparse
import asyncio
import logging

import db
from app.services.scheduler import run_cron_tick, run_daily_digest
from app.utils.logging_config import configure_logging
from app.utils.telegram import TelegramClient
from config import settings

_LOGGER = logging.getLogger("app.scripts.scan_due_reminders")


async def main(digest: bool = False) -> None:
    telegram = TelegramClient(
        settings.TELEGRAM_BOT_TOKEN,
        base_url=settings.TELEGRAM_API_BASE,
        timeout=settings.TELEGRAM_TIMEOUT,
    )
    try:
        if digest:
            delivered = await run_daily_digest(telegram)
            _LOGGER.info("Digest delivered to %s chats", delivered)
        else:
            result = await run_cron_tick(telegram)
            _LOGGER.info("Tick: due=%s sent=%s", result.due, result.sent)
    finally:
        await telegram.aclose()
        await db.dispose_engine()


if __name__ == "__main__":  # pragma: no cover
    parser = argparse.ArgumentParser(description="Run one reminder tick or the daily digest.")
    parser.add_argument("--digest", action="store_true", help="send the daily digest instead")
    args = parser.parse_args()

    configure_logging()
    _LOGGER.info("[CRON] scan_due_reminders: job started")
    try:
        asyncio.run(main(digest=args.digest))
        _LOGGER.info("[CRON] scan_due_reminders: job completed successfully")
    except Exception:
        _LOGGER.exception("[CRON] scan_due_reminders: job failed")
        raise SystemExit(1)

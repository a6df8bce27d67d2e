from __future__ import annotations

import logging
from typing import Iterable

from aiogram import Bot

from .constants import ADMIN_IDS_LIST, BOT_TOKEN

logger = logging.getLogger(__name__)

__all__ = ["get_bot", "notify_admins", "close_bot"]

_bot: Bot | None = None


def get_bot() -> Bot | None:
    """Lazily create the staff notification bot; None when BOT_TOKEN is unset."""
    global _bot
    if _bot is None and BOT_TOKEN:
        _bot = Bot(token=BOT_TOKEN)
    return _bot


async def close_bot() -> None:
    global _bot
    if _bot is not None:
        await _bot.session.close()
        _bot = None


async def notify_admins(message: str, bot: Bot | None = None, admin_ids: Iterable[int] | None = None) -> int:
    """Send ``message`` to every staff chat id; returns how many were delivered.

    Delivery is best effort: failures are logged and never raised.
    """
    bot = bot or get_bot()
    if bot is None:
        logger.debug("notify_admins: no BOT_TOKEN configured; skipping")
        return 0

    ids = list(admin_ids) if admin_ids is not None else list(ADMIN_IDS_LIST)
    if not ids:
        logger.debug("notify_admins: no ADMIN_IDS configured; skipping")
        return 0

    sent = 0
    for admin_id in ids:
        try:
            await bot.send_message(admin_id, message)
            sent += 1
        except Exception as e:
            logger.error("notify_admins: failed to send to %s: %s", admin_id, e)
    return sent

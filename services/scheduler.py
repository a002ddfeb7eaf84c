"""Планировщик закрытия аукциона"""
import asyncio
import logging
from datetime import datetime, timezone
from typing import Optional
from database.connection import async_session_maker
from services.auction_settings import load_settings_snapshot
from services.closing import CloseResult, CloseState, close_auction
from services.errors import WindowReason
from services.notifications import NotificationDispatcher
from services.window import is_open
from config import settings

logger = logging.getLogger(__name__)


async def check_and_close_auction(
    dispatcher: NotificationDispatcher,
    session_maker=None,
    now: Optional[datetime] = None
) -> Optional[CloseResult]:
    """Закрыть аукцион, если срок истек или он закрыт вручную"""
    session_maker = session_maker or async_session_maker
    now = now or datetime.now(timezone.utc)

    async with session_maker() as session:
        snapshot = await load_settings_snapshot(session)
        window = is_open(snapshot, now)
        if window.reason not in (WindowReason.DEADLINE_PASSED, WindowReason.MANUALLY_CLOSED):
            return None

        result = await close_auction(
            session,
            dispatcher,
            force=False,
            triggered_by="scheduler",
            now=now
        )

    if result.state == CloseState.CLOSED:
        logger.info(f"Планировщик закрыл аукцион. Победителей: {len(result.winners)}")
    elif result.state == CloseState.ERROR:
        logger.error(f"Планировщик не смог закрыть аукцион: {result.message}")
    return result


async def scheduler_loop(dispatcher: NotificationDispatcher, interval: Optional[int] = None):
    """Основной цикл планировщика"""
    interval = interval or settings.CLOSE_CHECK_INTERVAL_SECONDS

    while True:
        try:
            await check_and_close_auction(dispatcher)
        except Exception as e:
            logger.error(f"Ошибка в планировщике: {e}")

        await asyncio.sleep(interval)


def start_scheduler(dispatcher: NotificationDispatcher) -> asyncio.Task:
    """Запустить планировщик"""
    task = asyncio.create_task(scheduler_loop(dispatcher))
    logger.info("Планировщик закрытия аукциона запущен")
    return task

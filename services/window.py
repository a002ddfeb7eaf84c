"""Проверка окна торгов"""
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional
from services.errors import WindowReason


@dataclass(frozen=True)
class SettingsSnapshot:
    """Снимок настроек аукциона, загружается один раз на запрос"""
    auction_start: Optional[datetime] = None
    auction_deadline: Optional[datetime] = None
    auction_closed: bool = False
    cycle: int = 1
    auction_title: Optional[str] = None
    payment_instructions: Optional[str] = None
    pickup_instructions: Optional[str] = None
    contact_email: Optional[str] = None


@dataclass(frozen=True)
class WindowStatus:
    """Результат проверки окна торгов"""
    open: bool
    reason: WindowReason


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Привести datetime к UTC (SQLite возвращает значения без часового пояса)"""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def is_open(snapshot: SettingsSnapshot, now: Optional[datetime] = None) -> WindowStatus:
    """Можно ли сейчас делать ставки.

    Порядок проверок важен: ручное закрытие, затем начало торгов, затем срок.
    Закрытый вручную аукцион не принимает ставки даже до истечения срока.
    """
    now = as_utc(now) or datetime.now(timezone.utc)

    if snapshot.auction_closed:
        return WindowStatus(False, WindowReason.MANUALLY_CLOSED)

    start = as_utc(snapshot.auction_start)
    if start is not None and now < start:
        return WindowStatus(False, WindowReason.NOT_STARTED)

    deadline = as_utc(snapshot.auction_deadline)
    if deadline is not None and now >= deadline:
        return WindowStatus(False, WindowReason.DEADLINE_PASSED)

    return WindowStatus(True, WindowReason.OK)

"""Сервис для работы с настройками аукциона"""
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from database.models.auction_settings import AuctionSettings, SETTINGS_ROW_ID
from services.window import SettingsSnapshot

# Поля, которые администратор может менять через update_auction_settings
EDITABLE_FIELDS = (
    "auction_title",
    "auction_start",
    "auction_deadline",
    "payment_instructions",
    "pickup_instructions",
    "contact_email",
)


async def get_auction_settings(session: AsyncSession) -> AuctionSettings:
    """Получить настройки, создав строку по умолчанию при ее отсутствии"""
    result = await session.execute(
        select(AuctionSettings).where(AuctionSettings.id == SETTINGS_ROW_ID)
        .execution_options(populate_existing=True)
    )
    auction_settings = result.scalar_one_or_none()

    if not auction_settings:
        auction_settings = AuctionSettings(id=SETTINGS_ROW_ID, auction_closed=False, cycle=1)
        session.add(auction_settings)
        try:
            await session.commit()
        except IntegrityError:
            # Строку успел создать параллельный запрос
            await session.rollback()
            result = await session.execute(
                select(AuctionSettings).where(AuctionSettings.id == SETTINGS_ROW_ID)
            )
            return result.scalar_one()
        await session.refresh(auction_settings)

    return auction_settings


def make_snapshot(auction_settings: AuctionSettings) -> SettingsSnapshot:
    """Снимок настроек для проверок внутри одного запроса"""
    return SettingsSnapshot(
        auction_start=auction_settings.auction_start,
        auction_deadline=auction_settings.auction_deadline,
        auction_closed=bool(auction_settings.auction_closed),
        cycle=auction_settings.cycle or 1,
        auction_title=auction_settings.auction_title,
        payment_instructions=auction_settings.payment_instructions,
        pickup_instructions=auction_settings.pickup_instructions,
        contact_email=auction_settings.contact_email,
    )


async def load_settings_snapshot(session: AsyncSession) -> SettingsSnapshot:
    """Загрузить снимок настроек"""
    return make_snapshot(await get_auction_settings(session))


async def update_auction_settings(session: AsyncSession, **fields) -> AuctionSettings:
    """Обновить настройки аукциона.

    Флаг ручного закрытия и номер цикла здесь не меняются: для этого есть
    set_auction_closed, который заодно закрывает или открывает лоты.
    """
    unknown = set(fields) - set(EDITABLE_FIELDS)
    if unknown:
        raise ValueError(f"Неизвестные поля настроек: {', '.join(sorted(unknown))}")

    auction_settings = await get_auction_settings(session)
    for name, value in fields.items():
        setattr(auction_settings, name, value)

    await session.commit()
    await session.refresh(auction_settings)
    return auction_settings

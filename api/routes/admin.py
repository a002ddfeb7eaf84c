"""Админские обработчики аукциона"""
from typing import Optional
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession
from api.dependencies import get_dispatcher
from api.schemas import CloseAuctionRequest, SettingsUpdate, ToggleAuctionRequest
from database.connection import get_session
from database.models.auction_settings import AuctionSettings
from services.auction_settings import update_auction_settings
from services.closing import CloseState, close_auction, close_item, send_closing_notifications, set_auction_closed
from services.notifications import NotificationDispatcher
from services.window import as_utc

router = APIRouter(prefix="/admin")


def _settings_to_dict(auction_settings: AuctionSettings) -> dict:
    start = as_utc(auction_settings.auction_start)
    deadline = as_utc(auction_settings.auction_deadline)
    return {
        "auction_title": auction_settings.auction_title,
        "auction_start": start.isoformat() if start else None,
        "auction_deadline": deadline.isoformat() if deadline else None,
        "auction_closed": auction_settings.auction_closed,
        "cycle": auction_settings.cycle,
        "payment_instructions": auction_settings.payment_instructions,
        "pickup_instructions": auction_settings.pickup_instructions,
        "contact_email": auction_settings.contact_email,
    }


async def _close(session, dispatcher, force: bool, triggered_by: str):
    result = await close_auction(session, dispatcher, force=force, triggered_by=triggered_by)
    status_code = 500 if result.state == CloseState.ERROR else 200
    return JSONResponse(result.as_dict(), status_code=status_code)


@router.post("/close-auction")
async def close_auction_handler(
    payload: Optional[CloseAuctionRequest] = None,
    session: AsyncSession = Depends(get_session),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher)
):
    """Закрыть аукцион (force: не дожидаясь срока)"""
    force = payload.force if payload else False
    return await _close(session, dispatcher, force, "manual")


@router.post("/close-check")
async def close_check_handler(
    session: AsyncSession = Depends(get_session),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher)
):
    """Проверка по расписанию: закрыть, если срок истек"""
    return await _close(session, dispatcher, False, "scheduler")


@router.post("/items/{item_id}/close")
async def close_item_handler(item_id: int, session: AsyncSession = Depends(get_session)):
    """Закрыть один лот"""
    return await close_item(session, item_id)


@router.post("/toggle-auction")
async def toggle_auction_handler(
    payload: ToggleAuctionRequest,
    session: AsyncSession = Depends(get_session),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher)
):
    """Закрыть аукцион вручную или открыть новый цикл"""
    return await set_auction_closed(session, dispatcher, payload.auction_closed)


@router.patch("/settings")
async def update_settings_handler(
    payload: SettingsUpdate,
    session: AsyncSession = Depends(get_session)
):
    """Изменить настройки аукциона"""
    auction_settings = await update_auction_settings(session, **payload.model_dump(exclude_unset=True))
    return {"ok": True, "settings": _settings_to_dict(auction_settings)}


@router.post("/send-closing-emails")
async def send_closing_emails_handler(
    session: AsyncSession = Depends(get_session),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher)
):
    """Повторно разослать итоги по закрытым лотам"""
    return await send_closing_notifications(session, dispatcher)

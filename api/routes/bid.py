"""Обработчики ставок"""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from api.dependencies import get_dispatcher
from api.schemas import BidRequest, BidderBidsRequest
from database.connection import get_session
from services.bidding import list_bidder_bids, place_bid
from services.notifications import NotificationDispatcher

router = APIRouter()


@router.post("/bid")
async def submit_bid(
    payload: BidRequest,
    session: AsyncSession = Depends(get_session),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher)
):
    """Сделать ставку"""
    result = await place_bid(
        session,
        payload.email,
        payload.amount,
        item_id=payload.item_id,
        slug=payload.slug,
        dispatcher=dispatcher
    )
    return result.as_dict()


@router.post("/bid/user")
async def bidder_bids(
    payload: BidderBidsRequest,
    session: AsyncSession = Depends(get_session)
):
    """Ставки участника с отметками о перебитых и выигрывающих"""
    bids = await list_bidder_bids(session, payload.email)
    return {"bids": bids}

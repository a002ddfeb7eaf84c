"""Сервис приема ставок"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal, InvalidOperation
from functools import partial
from typing import List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from sqlalchemy.exc import SQLAlchemyError
from database.models.alias import UserAlias
from database.models.bid import Bid
from database.models.item import Item
from database.models.outbid_notice import OutbidNotice
from services.auction_settings import load_settings_snapshot
from services.errors import (
    BidValidationError,
    IdentityError,
    ItemError,
    ItemErrorCode,
    StoreError,
    ValidationReason,
    WindowError,
    WindowReason,
)
from services.identity import DatabaseIdentityProvider, IdentityProvider, VerifiedAlias, mask_email
from services.items import get_item
from services.notifications import NotificationDispatcher
from services.notifiers import NoticeItem, Recipient
from services.validation import minimum_acceptable, validate_amount
from services.window import as_utc, is_open
from config import settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BidResult:
    """Результат принятой ставки"""
    bid_id: int
    item_id: int
    amount: Decimal
    next_min: Decimal

    def as_dict(self) -> dict:
        return {
            "ok": True,
            "bid_id": self.bid_id,
            "item_id": self.item_id,
            "amount": str(self.amount),
            "next_min": str(self.next_min),
        }


def high_bid_order():
    """Порядок, в котором первая строка это текущая максимальная ставка"""
    return (Bid.amount.desc(), Bid.created_at.asc(), Bid.id.asc())


async def get_current_high_bid(session: AsyncSession, item_id: int, cycle: int) -> Optional[Bid]:
    """Текущая максимальная ставка лота в цикле (при равенстве более ранняя)"""
    result = await session.execute(
        select(Bid)
        .where(Bid.item_id == item_id, Bid.cycle == cycle)
        .order_by(*high_bid_order())
        .limit(1)
    )
    return result.scalar_one_or_none()


def _to_decimal(amount, minimum: Decimal) -> Decimal:
    try:
        value = Decimal(str(amount))
    except (InvalidOperation, ValueError):
        raise BidValidationError(ValidationReason.NON_POSITIVE, minimum)
    if not value.is_finite():
        raise BidValidationError(ValidationReason.NON_POSITIVE, minimum)
    return value


async def place_bid(
    session: AsyncSession,
    email: str,
    amount,
    item_id: Optional[int] = None,
    slug: Optional[str] = None,
    dispatcher: Optional[NotificationDispatcher] = None,
    identity: Optional[IdentityProvider] = None,
    increment: Optional[Decimal] = None,
    now: Optional[datetime] = None
) -> BidResult:
    """Сделать ставку.

    Единственное изменение в базе: вставка строки ставки. Текущая цена лота
    нигде не хранится и всегда считается по таблице ставок. Если две ставки
    прошли проверку одновременно, сохраняются обе: выше окажется большая.
    """
    now = as_utc(now) or datetime.now(timezone.utc)
    increment = Decimal(increment if increment is not None else settings.BID_INCREMENT)

    try:
        snapshot = await load_settings_snapshot(session)
        window = is_open(snapshot, now)

        # Минимум нужен в любом отказе, если лот найден. Это только чтение
        item = await get_item(session, item_id=item_id, slug=slug)
        high_bid = None
        minimum = None
        if item:
            high_bid = await get_current_high_bid(session, item.id, snapshot.cycle)
            minimum = minimum_acceptable(
                item.start_price,
                high_bid.amount if high_bid else None,
                increment
            )

        # Проверяем окно торгов
        if not window.open:
            raise WindowError(window.reason, minimum)

        # Проверяем лот
        if not item:
            raise ItemError(ItemErrorCode.NOT_FOUND)
        if item.is_closed:
            raise ItemError(ItemErrorCode.ALREADY_CLOSED, minimum)

        # Личность проверяется до любых операций со ставками
        identity = identity or DatabaseIdentityProvider(session)
        alias = await identity.resolve_verified_alias(email)
        if not alias:
            raise IdentityError(minimum)

        amount = _to_decimal(amount, minimum)
        reason = validate_amount(amount, minimum, increment)
        if reason:
            raise BidValidationError(reason, minimum)

        result = await session.execute(
            select(func.count(Bid.id)).where(
                Bid.item_id == item.id,
                Bid.cycle == snapshot.cycle,
                Bid.email == alias.email
            )
        )
        is_first_bid = (result.scalar() or 0) == 0

        bid = Bid(
            item_id=item.id,
            alias_id=alias.alias_id,
            email=alias.email,
            amount=amount,
            cycle=snapshot.cycle
        )
        session.add(bid)
        await session.commit()
    except SQLAlchemyError as e:
        await session.rollback()
        logger.error(
            f"Ошибка сохранения ставки: лот {item_id or slug}, {mask_email(email)}, сумма {amount}: {e!r}"
        )
        raise StoreError("Не удалось сохранить ставку") from e

    logger.info(f"Ставка {bid.id} принята: лот {item.id}, {mask_email(alias.email)}, сумма {amount}")

    if dispatcher is not None:
        _notify_after_bid(
            dispatcher,
            item=item,
            alias=alias,
            amount=amount,
            previous_high=high_bid,
            is_first_bid=is_first_bid,
            now=now
        )

    return BidResult(
        bid_id=bid.id,
        item_id=item.id,
        amount=amount,
        next_min=amount + increment
    )


def _notify_after_bid(
    dispatcher: NotificationDispatcher,
    item: Item,
    alias: VerifiedAlias,
    amount: Decimal,
    previous_high: Optional[Bid],
    is_first_bid: bool,
    now: datetime
):
    """Поставить уведомления в очередь. Ставка к этому моменту уже сохранена.

    Запросы к базе для ограничения частоты выполняются уже в обработчике очереди.
    """
    notice_item = NoticeItem(item.id, item.title, item.slug)

    try:
        if is_first_bid:
            dispatcher.notify_bid_confirmation(
                Recipient(alias.email, alias.display_name, alias.telegram_id),
                notice_item,
                amount
            )

        if previous_high is not None and previous_high.email != alias.email:
            dispatcher.notify_outbid(
                Recipient(previous_high.email),
                notice_item,
                amount,
                claim=partial(
                    claim_outbid_notice,
                    dispatcher.session_maker,
                    item.id,
                    previous_high.email,
                    previous_high.alias_id,
                    now
                )
            )
    except Exception as e:
        logger.error(f"Ошибка постановки уведомлений по ставке на лот {item.id}: {e!r}")


async def claim_outbid_notice(
    session_maker,
    item_id: int,
    email: str,
    alias_id: Optional[int],
    now: datetime
) -> Optional[Recipient]:
    """Записать уведомление о перебитой ставке, если по лоту его давно не было.

    Возвращает получателя или None, если окно еще не прошло.
    """
    async with session_maker() as session:
        if await _outbid_recently_notified(session, item_id, now):
            logger.debug(f"Уведомление о перебитой ставке по лоту {item_id} пропущено: недавно уже отправляли")
            return None

        result = await session.execute(select(UserAlias).where(UserAlias.id == alias_id))
        previous_alias = result.scalar_one_or_none()

        session.add(OutbidNotice(item_id=item_id, email=email, sent_at=now))
        await session.commit()

    return Recipient(
        email,
        previous_alias.display_name if previous_alias else None,
        previous_alias.telegram_id if previous_alias else None
    )


async def _outbid_recently_notified(session: AsyncSession, item_id: int, now: datetime) -> bool:
    """Было ли уведомление о перебитой ставке по лоту в пределах окна"""
    result = await session.execute(
        select(OutbidNotice.sent_at)
        .where(OutbidNotice.item_id == item_id)
        .order_by(OutbidNotice.sent_at.desc())
        .limit(1)
    )
    last_sent = as_utc(result.scalar_one_or_none())
    if last_sent is None:
        return False
    window = timedelta(minutes=settings.OUTBID_NOTIFY_WINDOW_MINUTES)
    return now - last_sent < window


async def list_bidder_bids(
    session: AsyncSession,
    email: str,
    now: Optional[datetime] = None
) -> List[dict]:
    """Ставки участника в текущем цикле, новые сначала"""
    snapshot = await load_settings_snapshot(session)
    window = is_open(snapshot, now)
    window_closed = window.reason in (WindowReason.DEADLINE_PASSED, WindowReason.MANUALLY_CLOSED)

    result = await session.execute(
        select(Bid, Item)
        .join(Item, Item.id == Bid.item_id)
        .where(Bid.email == (email or "").strip().lower(), Bid.cycle == snapshot.cycle)
        .order_by(Bid.created_at.desc(), Bid.id.desc())
    )
    rows = result.all()

    high_bids = {}
    bids = []
    for bid, item in rows:
        if item.id not in high_bids:
            high_bids[item.id] = await get_current_high_bid(session, item.id, snapshot.cycle)
        high = high_bids[item.id]
        bids.append({
            "bid_id": bid.id,
            "item_id": item.id,
            "item_slug": item.slug,
            "item_title": item.title,
            "amount": str(bid.amount),
            "created_at": as_utc(bid.created_at).isoformat() if bid.created_at else None,
            "is_outbid": high is not None and Decimal(bid.amount) < Decimal(high.amount),
            "is_winning": high is not None and high.id == bid.id,
            "is_closed": bool(item.is_closed) or window_closed,
        })
    return bids

"""Закрытие аукциона и определение победителей"""
import enum
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from database.models.alias import UserAlias
from database.models.auction_settings import AuctionSettings
from database.models.bid import Bid
from database.models.item import Item
from services.auction_settings import get_auction_settings, load_settings_snapshot
from services.bidding import get_current_high_bid, high_bid_order
from services.errors import ItemError, ItemErrorCode
from services.notifications import DeliveryReport, NotificationDispatcher, resolve_admin_recipients
from services.notifiers import ClosingContext, Winner
from services.window import SettingsSnapshot, as_utc

logger = logging.getLogger(__name__)


class CloseState(str, enum.Enum):
    """Итог попытки закрыть аукцион"""
    BEFORE_DEADLINE = "before_deadline"  # Срок не истек, ничего не меняли
    ALREADY_CLOSED = "already_closed"  # Открытых лотов нет
    CLOSED = "closed"  # Лоты закрыты этим вызовом
    ERROR = "error"  # Ошибка хранилища, лоты не тронуты


@dataclass
class CloseResult:
    """Результат закрытия аукциона"""
    state: CloseState
    triggered_by: str
    message: str
    deadline: Optional[datetime] = None
    closed_item_ids: List[int] = field(default_factory=list)
    winners: List[Winner] = field(default_factory=list)
    delivery: Optional[DeliveryReport] = None

    @property
    def ok(self) -> bool:
        return self.state != CloseState.ERROR

    def as_dict(self) -> dict:
        deadline = as_utc(self.deadline)
        data = {
            "ok": self.ok,
            "state": self.state.value,
            "message": self.message,
            "triggered_by": self.triggered_by,
            "deadline": deadline.isoformat() if deadline else None,
            "closed_items": len(self.closed_item_ids),
            "winners": [winner.as_dict() for winner in self.winners],
            "winners_count": len(self.winners),
        }
        data.update((self.delivery or DeliveryReport()).as_dict())
        return data


def closing_context(snapshot: SettingsSnapshot) -> ClosingContext:
    return ClosingContext(
        payment_instructions=snapshot.payment_instructions,
        pickup_instructions=snapshot.pickup_instructions,
        contact_email=snapshot.contact_email,
        auction_title=snapshot.auction_title,
    )


async def get_winners(session: AsyncSession, item_ids: List[int], cycle: int) -> List[Winner]:
    """Победители по лотам: максимальная ставка каждого лота. Лоты без ставок пропускаются"""
    if not item_ids:
        return []

    result = await session.execute(
        select(Bid, Item, UserAlias)
        .join(Item, Item.id == Bid.item_id)
        .outerjoin(UserAlias, UserAlias.id == Bid.alias_id)
        .where(Bid.item_id.in_(item_ids), Bid.cycle == cycle)
        .order_by(Bid.item_id.asc(), *high_bid_order())
    )

    winners = []
    seen = set()
    for bid, item, alias in result.all():
        # Первая строка каждого лота: максимальная ставка
        if item.id in seen:
            continue
        seen.add(item.id)
        winners.append(Winner(
            item_id=item.id,
            item_title=item.title,
            item_slug=item.slug,
            alias_id=bid.alias_id,
            display_name=alias.display_name if alias else None,
            email=bid.email,
            amount=bid.amount,
            telegram_id=alias.telegram_id if alias else None,
        ))
    return winners


async def close_auction(
    session: AsyncSession,
    dispatcher: Optional[NotificationDispatcher] = None,
    force: bool = False,
    triggered_by: str = "manual",
    now: Optional[datetime] = None
) -> CloseResult:
    """Закрыть все открытые лоты и разослать итоги.

    Лоты закрываются одним условным UPDATE (только is_closed = false),
    поэтому после сбоя не бывает частично закрытого аукциона. Повторный
    вызов возвращает ALREADY_CLOSED и победителей не пересчитывает.
    Ошибки рассылки не влияют на результат: лоты закрыты в любом случае.
    """
    now = as_utc(now) or datetime.now(timezone.utc)

    try:
        snapshot = await load_settings_snapshot(session)
    except SQLAlchemyError as e:
        await session.rollback()
        logger.error(f"Ошибка чтения настроек при закрытии аукциона: {e!r}")
        return CloseResult(CloseState.ERROR, triggered_by, "Не удалось прочитать настройки аукциона")

    # Без срока аукцион закрывается по первому же вызову
    deadline = as_utc(snapshot.auction_deadline)
    if not force and not snapshot.auction_closed:
        if deadline is not None and deadline > now:
            return CloseResult(
                CloseState.BEFORE_DEADLINE,
                triggered_by,
                "Срок аукциона еще не истек",
                deadline=snapshot.auction_deadline
            )

    try:
        result = await session.execute(select(Item.id).where(Item.is_closed == False))
        open_ids = [row[0] for row in result.all()]

        if not open_ids:
            return CloseResult(
                CloseState.ALREADY_CLOSED,
                triggered_by,
                "Все лоты уже закрыты",
                deadline=snapshot.auction_deadline
            )

        result = await session.execute(
            update(Item)
            .where(Item.id.in_(open_ids), Item.is_closed == False)
            .values(is_closed=True)
            .returning(Item.id)
            .execution_options(synchronize_session=False)
        )
        closed_ids = [row[0] for row in result.all()]
        await session.commit()
    except SQLAlchemyError as e:
        await session.rollback()
        logger.error(f"Ошибка закрытия лотов ({triggered_by}): {e!r}")
        return CloseResult(CloseState.ERROR, triggered_by, "Не удалось закрыть лоты")

    if not closed_ids:
        # Лоты успел закрыть параллельный вызов
        return CloseResult(
            CloseState.ALREADY_CLOSED,
            triggered_by,
            "Все лоты уже закрыты",
            deadline=snapshot.auction_deadline
        )

    logger.info(f"Аукцион закрыт ({triggered_by}): закрыто лотов {len(closed_ids)}")

    try:
        winners = await get_winners(session, closed_ids, snapshot.cycle)
        admins = await resolve_admin_recipients(session)
    except SQLAlchemyError as e:
        await session.rollback()
        logger.error(f"Лоты закрыты, но победителей определить не удалось: {e!r}")
        return CloseResult(
            CloseState.CLOSED,
            triggered_by,
            "Лоты закрыты, победители не определены: повторите рассылку итогов",
            deadline=snapshot.auction_deadline,
            closed_item_ids=closed_ids
        )

    for winner in winners:
        logger.info(f"Лот {winner.item_id}: победитель {winner.alias_id}, ставка {winner.amount}")

    delivery = None
    if dispatcher is not None:
        delivery = await dispatcher.deliver_closing(winners, closing_context(snapshot), admins=admins)

    return CloseResult(
        CloseState.CLOSED,
        triggered_by,
        "Аукцион закрыт",
        deadline=snapshot.auction_deadline,
        closed_item_ids=closed_ids,
        winners=winners,
        delivery=delivery
    )


async def close_item(session: AsyncSession, item_id: int) -> dict:
    """Закрыть один лот. Повторное закрытие ничего не меняет"""
    snapshot = await load_settings_snapshot(session)

    result = await session.execute(
        update(Item)
        .where(Item.id == item_id, Item.is_closed == False)
        .values(is_closed=True)
        .returning(Item.id)
        .execution_options(synchronize_session=False)
    )
    closed = result.scalar_one_or_none() is not None
    await session.commit()

    if not closed:
        result = await session.execute(select(Item.id).where(Item.id == item_id))
        if result.scalar_one_or_none() is None:
            raise ItemError(ItemErrorCode.NOT_FOUND)

    high_bid = await get_current_high_bid(session, item_id, snapshot.cycle)
    if closed:
        logger.info(f"Лот {item_id} закрыт вручную")

    return {
        "ok": True,
        "item_id": item_id,
        "closed": closed,
        "winning_bid": {
            "bid_id": high_bid.id,
            "alias_id": high_bid.alias_id,
            "amount": str(high_bid.amount),
        } if high_bid else None,
    }


async def reopen_auction(session: AsyncSession) -> int:
    """Открыть аукцион заново: новый цикл, все лоты снова открыты.

    Ставки прошлых циклов остаются в таблице, но в расчетах не участвуют.
    Если аукцион и так открыт и закрытых лотов нет, ничего не меняется.
    """
    auction_settings = await get_auction_settings(session)

    if not auction_settings.auction_closed:
        result = await session.execute(select(Item.id).where(Item.is_closed == True).limit(1))
        if result.scalar_one_or_none() is None:
            logger.info(f"Аукцион уже открыт, цикл {auction_settings.cycle} сохранен")
            return auction_settings.cycle or 1

    new_cycle = (auction_settings.cycle or 1) + 1

    await session.execute(
        update(AuctionSettings)
        .where(AuctionSettings.id == auction_settings.id)
        .values(auction_closed=False, cycle=new_cycle)
    )
    await session.execute(
        update(Item)
        .values(is_closed=False)
        .execution_options(synchronize_session=False)
    )
    await session.commit()
    await session.refresh(auction_settings)

    logger.info(f"Аукцион открыт заново, цикл {new_cycle}")
    return new_cycle


async def set_auction_closed(
    session: AsyncSession,
    dispatcher: Optional[NotificationDispatcher],
    closed: bool,
    now: Optional[datetime] = None
) -> dict:
    """Переключить ручное закрытие аукциона"""
    if not closed:
        cycle = await reopen_auction(session)
        return {"ok": True, "auction_closed": False, "cycle": cycle}

    auction_settings = await get_auction_settings(session)
    auction_settings.auction_closed = True
    await session.commit()

    result = await close_auction(
        session,
        dispatcher,
        force=True,
        triggered_by="manual-toggle",
        now=now
    )
    return {"ok": True, "auction_closed": True, "close_result": result.as_dict()}


async def send_closing_notifications(
    session: AsyncSession,
    dispatcher: NotificationDispatcher,
    triggered_by: str = "manual-resend"
) -> dict:
    """Повторно разослать итоги по уже закрытым лотам, ничего не закрывая"""
    snapshot = await load_settings_snapshot(session)

    result = await session.execute(select(Item.id).where(Item.is_closed == True))
    closed_ids = [row[0] for row in result.all()]
    winners = await get_winners(session, closed_ids, snapshot.cycle)
    admins = await resolve_admin_recipients(session)

    delivery = await dispatcher.deliver_closing(winners, closing_context(snapshot), admins=admins)
    logger.info(f"Итоги разосланы повторно ({triggered_by}): победителей {len(winners)}")

    data = {
        "ok": True,
        "triggered_by": triggered_by,
        "winners": [winner.as_dict() for winner in winners],
        "winners_count": len(winners),
    }
    data.update(delivery.as_dict())
    return data

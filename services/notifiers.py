"""Адаптеры доставки уведомлений"""
import html
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional
from aiogram import Bot
from aiogram.client.default import DefaultBotProperties
from aiogram.enums import ParseMode
from config import settings
from services.errors import NotificationError
from services.identity import mask_email

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Recipient:
    """Получатель уведомления"""
    email: Optional[str] = None
    display_name: Optional[str] = None
    telegram_id: Optional[int] = None

    @property
    def label(self) -> str:
        if self.email:
            return mask_email(self.email)
        if self.telegram_id:
            return f"tg:{self.telegram_id}"
        return "unknown"


@dataclass(frozen=True)
class NoticeItem:
    """Лот в уведомлении"""
    item_id: int
    title: str
    slug: str

    @property
    def url(self) -> str:
        return f"{settings.SITE_URL.rstrip('/')}/i/{self.slug}"


@dataclass(frozen=True)
class Winner:
    """Победитель по лоту"""
    item_id: int
    item_title: str
    item_slug: str
    alias_id: int
    display_name: Optional[str]
    email: str
    amount: Decimal
    telegram_id: Optional[int] = None

    @property
    def item(self) -> NoticeItem:
        return NoticeItem(self.item_id, self.item_title, self.item_slug)

    @property
    def recipient(self) -> Recipient:
        return Recipient(self.email, self.display_name, self.telegram_id)

    def as_dict(self) -> dict:
        return {
            "item_id": self.item_id,
            "item_title": self.item_title,
            "item_slug": self.item_slug,
            "alias_id": self.alias_id,
            "display_name": self.display_name,
            "email": self.email,
            "amount": str(self.amount),
        }


@dataclass(frozen=True)
class ClosingContext:
    """Инструкции для победителей"""
    payment_instructions: Optional[str] = None
    pickup_instructions: Optional[str] = None
    contact_email: Optional[str] = None
    auction_title: Optional[str] = None

    @property
    def payment_instructions_url(self) -> str:
        return f"{settings.SITE_URL.rstrip('/')}/payment-instructions"


def _money(amount) -> str:
    return f"{Decimal(amount):,.2f}"


def format_bid_confirmation(bidder: Recipient, item: NoticeItem, amount: Decimal) -> str:
    name = html.escape(bidder.display_name or "участник")
    text = (
        f"Ставка принята 🎉\n\n"
        f"{name}, спасибо за ставку!\n"
        f"Лот: <b>{html.escape(item.title)}</b>\n"
        f"Ваша ставка: <b>{_money(amount)}</b>\n\n"
        f"{item.url}"
    )
    if settings.AUCTION_CONTACT_EMAIL:
        text += (
            "\n\nЕсли вы не делали эту ставку, напишите администраторам: "
            f"{settings.AUCTION_CONTACT_EMAIL}"
        )
    return text


def format_outbid(item: NoticeItem, new_amount: Decimal) -> str:
    return (
        f"Вашу ставку перебили на лоте <b>{html.escape(item.title)}</b>.\n"
        f"Текущая ставка: <b>{_money(new_amount)}</b>\n\n"
        f"Сделать новую ставку: {item.url}"
    )


def format_winner_digest(bidder: Recipient, winners: List[Winner], context: ClosingContext) -> str:
    name = html.escape(bidder.display_name or "")
    lines = [f"Вы победили{', ' + name if name else ''}! 🎉", ""]
    for winner in winners:
        lines.append(f"• {html.escape(winner.item_title)}: <b>{_money(winner.amount)}</b>")
    total = sum((Decimal(winner.amount) for winner in winners), Decimal("0"))
    lines.append("")
    lines.append(f"Итого к оплате: <b>{_money(total)}</b>")
    if context.payment_instructions:
        lines.append(f"\nОплата: {html.escape(context.payment_instructions)}")
    if context.pickup_instructions:
        lines.append(f"Получение: {html.escape(context.pickup_instructions)}")
    lines.append(f"\nИнструкция по оплате: {context.payment_instructions_url}")
    if context.contact_email:
        lines.append(f"Вопросы: {context.contact_email}")
    return "\n".join(lines)


def format_admin_summary(winners: List[Winner], context: ClosingContext) -> str:
    title = html.escape(context.auction_title or "Аукцион")
    if not winners:
        return f"{title}: торги закрыты, победителей нет."
    lines = [f"{title}: торги закрыты. Победители ({len(winners)}):", ""]
    for winner in winners:
        lines.append(
            f"• {html.escape(winner.item_title)} — "
            f"{html.escape(winner.display_name or '')} ({winner.email}): {_money(winner.amount)}"
        )
    return "\n".join(lines)


class Notifier(ABC):
    """Внешний канал доставки уведомлений"""

    def can_reach(self, recipient: Recipient) -> bool:
        """Может ли канал вообще доставить сообщение этому получателю"""
        return True

    @abstractmethod
    async def notify_bid_confirmation(self, bidder: Recipient, item: NoticeItem, amount: Decimal):
        """Подтверждение первой ставки участника на лот"""

    @abstractmethod
    async def notify_outbid(self, previous_bidder: Recipient, item: NoticeItem, new_amount: Decimal):
        """Ставку участника перебили"""

    @abstractmethod
    async def notify_winner(self, bidder: Recipient, winners: List[Winner], context: ClosingContext):
        """Одно письмо победителю со всеми выигранными лотами"""

    @abstractmethod
    async def notify_admins_winners_summary(
        self,
        admin: Recipient,
        winners: List[Winner],
        context: ClosingContext
    ):
        """Сводка победителей для администратора"""


class LoggingNotifier(Notifier):
    """Пишет уведомления в лог. Используется, когда бот не настроен"""

    async def notify_bid_confirmation(self, bidder, item, amount):
        logger.info(f"[уведомление] подтверждение ставки {bidder.label}: лот {item.item_id}, {_money(amount)}")

    async def notify_outbid(self, previous_bidder, item, new_amount):
        logger.info(f"[уведомление] ставка перебита {previous_bidder.label}: лот {item.item_id}, {_money(new_amount)}")

    async def notify_winner(self, bidder, winners, context):
        logger.info(f"[уведомление] победитель {bidder.label}: лотов {len(winners)}")

    async def notify_admins_winners_summary(self, admin, winners, context):
        logger.info(f"[уведомление] сводка для администратора {admin.label}: победителей {len(winners)}")


class TelegramNotifier(Notifier):
    """Уведомления через Telegram-бота"""

    def __init__(self, bot: Bot):
        self.bot = bot

    def can_reach(self, recipient: Recipient) -> bool:
        return bool(recipient.telegram_id)

    async def _send(self, recipient: Recipient, text: str):
        if not recipient.telegram_id:
            raise NotificationError(f"У получателя {recipient.label} нет привязанного Telegram")
        await self.bot.send_message(recipient.telegram_id, text)

    async def notify_bid_confirmation(self, bidder, item, amount):
        await self._send(bidder, format_bid_confirmation(bidder, item, amount))

    async def notify_outbid(self, previous_bidder, item, new_amount):
        await self._send(previous_bidder, format_outbid(item, new_amount))

    async def notify_winner(self, bidder, winners, context):
        await self._send(bidder, format_winner_digest(bidder, winners, context))

    async def notify_admins_winners_summary(self, admin, winners, context):
        await self._send(admin, format_admin_summary(winners, context))


def build_notifier() -> Notifier:
    """Выбрать канал уведомлений по настройкам"""
    if settings.BOT_TOKEN:
        bot = Bot(
            token=settings.BOT_TOKEN,
            default=DefaultBotProperties(parse_mode=ParseMode.HTML)
        )
        logger.info("Уведомления отправляются через Telegram-бота")
        if settings.admin_emails_list:
            logger.warning(
                "ADMIN_EMAILS: сводку получат только администраторы с привязанным к псевдониму Telegram"
            )
        return TelegramNotifier(bot)

    logger.warning("BOT_TOKEN не задан: уведомления будут только записываться в лог")
    return LoggingNotifier()

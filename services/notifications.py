"""Очередь уведомлений участникам и администраторам"""
import asyncio
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from functools import partial
from typing import Awaitable, Callable, Dict, List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from config import settings
from database.connection import async_session_maker
from database.models.alias import UserAlias
from services.notifiers import ClosingContext, NoticeItem, Notifier, Recipient, Winner

logger = logging.getLogger(__name__)


@dataclass
class NotificationJob:
    """Отложенная отправка одного уведомления"""
    kind: str
    recipient: Recipient
    send: Callable[[], Awaitable]


@dataclass
class DeliveryReport:
    """Итоги рассылки после закрытия аукциона"""
    winners_sent: int = 0
    winners_failed: int = 0
    admins_sent: int = 0
    admins_failed: int = 0
    admins_skipped: int = 0
    results: List[dict] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {
            "emails_sent": self.winners_sent,
            "emails_failed": self.winners_failed,
            "admin_emails_sent": self.admins_sent,
            "admin_emails_failed": self.admins_failed,
            "admin_emails_skipped": self.admins_skipped,
            "deliveries": list(self.results),
        }


def admin_recipients() -> List[Recipient]:
    """Администраторы из настроек: email и Telegram ID"""
    recipients = [Recipient(email=email) for email in settings.admin_emails_list]
    recipients.extend(Recipient(telegram_id=admin_id) for admin_id in settings.admin_ids_list)
    return recipients


async def resolve_admin_recipients(session: AsyncSession) -> List[Recipient]:
    """Администраторы из настроек с Telegram ID, найденными по псевдонимам.

    Адрес из ADMIN_EMAILS получает telegram_id псевдонима с тем же email.
    Администратор, уже указанный в ADMIN_USER_IDS, второй раз не добавляется.
    """
    emails = [email.strip().lower() for email in settings.admin_emails_list]
    linked = {}
    if emails:
        result = await session.execute(
            select(UserAlias.email, UserAlias.display_name, UserAlias.telegram_id)
            .where(UserAlias.email.in_(emails))
        )
        linked = {row.email: row for row in result.all()}

    admin_ids = settings.admin_ids_list
    recipients = []
    for email in emails:
        alias = linked.get(email)
        telegram_id = alias.telegram_id if alias else None
        if telegram_id is not None and telegram_id in admin_ids:
            continue
        recipients.append(Recipient(email, alias.display_name if alias else None, telegram_id))
    recipients.extend(Recipient(telegram_id=admin_id) for admin_id in admin_ids)
    return recipients


def group_winners_by_bidder(winners: List[Winner]) -> Dict[str, List[Winner]]:
    """Сгруппировать лоты по победителю, чтобы отправить одно письмо"""
    grouped: Dict[str, List[Winner]] = {}
    for winner in winners:
        grouped.setdefault(winner.email, []).append(winner)
    return grouped


class NotificationDispatcher:
    """Ограниченная очередь уведомлений с фоновыми обработчиками.

    Ставка только кладет задачу в очередь и не ждет доставки. Если очередь
    переполнена, уведомление отбрасывается. Ошибки доставки пишутся в лог
    и считаются, но наружу не выходят.
    """

    def __init__(
        self,
        notifier: Notifier,
        maxsize: Optional[int] = None,
        workers: Optional[int] = None,
        timeout: Optional[float] = None,
        session_maker=None
    ):
        self.notifier = notifier
        self.session_maker = session_maker or async_session_maker
        self.queue: asyncio.Queue = asyncio.Queue(
            maxsize=maxsize if maxsize is not None else settings.NOTIFICATION_QUEUE_SIZE
        )
        self.workers = workers or settings.NOTIFICATION_WORKERS
        self.timeout = timeout if timeout is not None else settings.NOTIFICATION_TIMEOUT_SECONDS
        self.delivered = 0
        self.failed = 0
        self.dropped = 0
        self._tasks: List[asyncio.Task] = []

    @property
    def running(self) -> bool:
        return bool(self._tasks)

    def start(self):
        """Запустить обработчики очереди"""
        if self._tasks:
            return
        self._tasks = [
            asyncio.create_task(self._worker(), name=f"notifications-{i}")
            for i in range(self.workers)
        ]
        logger.info(f"Очередь уведомлений запущена ({self.workers} обработчиков)")

    async def stop(self):
        """Доставить оставшееся и остановить обработчики"""
        await self.drain()
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        logger.info("Очередь уведомлений остановлена")

    async def drain(self):
        """Обработать все задачи, которые сейчас лежат в очереди"""
        while True:
            try:
                job = self.queue.get_nowait()
            except asyncio.QueueEmpty:
                break
            try:
                await self._run(job)
            finally:
                self.queue.task_done()

    async def _worker(self):
        while True:
            job = await self.queue.get()
            try:
                await self._run(job)
            finally:
                self.queue.task_done()

    async def _run(self, job: NotificationJob) -> bool:
        try:
            await asyncio.wait_for(job.send(), timeout=self.timeout)
        except Exception as e:
            self.failed += 1
            logger.error(f"Ошибка отправки уведомления {job.kind} для {job.recipient.label}: {e!r}")
            return False
        self.delivered += 1
        return True

    def submit(self, job: NotificationJob) -> bool:
        """Положить уведомление в очередь, не дожидаясь отправки"""
        try:
            self.queue.put_nowait(job)
        except asyncio.QueueFull:
            self.dropped += 1
            logger.warning(f"Очередь уведомлений переполнена, {job.kind} для {job.recipient.label} отброшено")
            return False
        return True

    def notify_bid_confirmation(self, bidder: Recipient, item: NoticeItem, amount: Decimal) -> bool:
        return self.submit(NotificationJob(
            kind="bid_confirmation",
            recipient=bidder,
            send=partial(self.notifier.notify_bid_confirmation, bidder, item, amount),
        ))

    def notify_outbid(
        self,
        previous_bidder: Recipient,
        item: NoticeItem,
        new_amount: Decimal,
        claim: Optional[Callable[[], Awaitable[Optional[Recipient]]]] = None
    ) -> bool:
        """Уведомить о перебитой ставке.

        claim выполняется уже в обработчике очереди: возвращает получателя
        или None, если уведомление отправлять не нужно.
        """
        async def send():
            recipient = previous_bidder
            if claim is not None:
                recipient = await claim()
                if recipient is None:
                    return
            await self.notifier.notify_outbid(recipient, item, new_amount)

        return self.submit(NotificationJob(kind="outbid", recipient=previous_bidder, send=send))

    async def deliver_closing(
        self,
        winners: List[Winner],
        context: ClosingContext,
        admins: Optional[List[Recipient]] = None
    ) -> DeliveryReport:
        """Разослать итоги: одно сообщение каждому победителю и сводку администраторам.

        Каждая отправка ограничена таймаутом, результат считается по каждому получателю.
        """
        admins = admin_recipients() if admins is None else admins
        grouped = group_winners_by_bidder(winners)

        winner_jobs = [
            NotificationJob(
                kind="winner",
                recipient=items[0].recipient,
                send=partial(self.notifier.notify_winner, items[0].recipient, items, context),
            )
            for items in grouped.values()
        ]
        admin_jobs = [
            NotificationJob(
                kind="admin_summary",
                recipient=admin,
                send=partial(self.notifier.notify_admins_winners_summary, admin, winners, context),
            )
            for admin in admins
            if self.notifier.can_reach(admin)
        ]
        skipped = [admin for admin in admins if not self.notifier.can_reach(admin)]
        if not admins:
            logger.warning("Администраторы не настроены (ADMIN_EMAILS, ADMIN_USER_IDS): сводка не отправлена")
        for admin in skipped:
            logger.warning(f"Сводка для администратора {admin.label} пропущена: канал не может его найти")

        outcomes = await asyncio.gather(*(self._run(job) for job in winner_jobs + admin_jobs))

        report = DeliveryReport()
        for job, ok in zip(winner_jobs + admin_jobs, outcomes):
            report.results.append({
                "kind": job.kind,
                "recipient": job.recipient.label,
                "status": "fulfilled" if ok else "rejected",
            })
            if job.kind == "winner":
                if ok:
                    report.winners_sent += 1
                else:
                    report.winners_failed += 1
            elif ok:
                report.admins_sent += 1
            else:
                report.admins_failed += 1
        for admin in skipped:
            report.admins_skipped += 1
            report.results.append({"kind": "admin_summary", "recipient": admin.label, "status": "skipped"})

        logger.info(
            f"Итоги разосланы: победителям {report.winners_sent}/{len(winner_jobs)}, "
            f"администраторам {report.admins_sent}/{len(admin_jobs)}"
        )
        return report

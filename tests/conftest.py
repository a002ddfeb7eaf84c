from decimal import Decimal

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

import database.models  # noqa: F401
from database.connection import Base
from database.models.alias import UserAlias
from services.errors import NotificationError
from services.items import create_item
from services.notifications import NotificationDispatcher
from services.notifiers import Notifier


class RecordingNotifier(Notifier):
    """Запоминает уведомления вместо отправки"""

    def __init__(self, fail_for=()):
        self.calls = []
        self.fail_for = set(fail_for)

    async def _record(self, kind, recipient, payload):
        if recipient.email in self.fail_for:
            raise NotificationError(f"delivery failed for {recipient.email}")
        self.calls.append((kind, recipient, payload))

    async def notify_bid_confirmation(self, bidder, item, amount):
        await self._record("bid_confirmation", bidder, (item, amount))

    async def notify_outbid(self, previous_bidder, item, new_amount):
        await self._record("outbid", previous_bidder, (item, new_amount))

    async def notify_winner(self, bidder, winners, context):
        await self._record("winner", bidder, winners)

    async def notify_admins_winners_summary(self, admin, winners, context):
        await self._record("admin_summary", admin, winners)

    def of_kind(self, kind):
        return [call for call in self.calls if call[0] == kind]


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'auction.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_maker(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def session(session_maker):
    async with session_maker() as session:
        yield session


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def dispatcher(notifier, session_maker):
    return NotificationDispatcher(notifier, maxsize=100, workers=1, timeout=1, session_maker=session_maker)


@pytest.fixture
def make_alias(session):
    async def _make_alias(email, display_name="Red Fox", verified=True, telegram_id=None):
        alias = UserAlias(
            email=email,
            display_name=display_name,
            color="red",
            animal="fox",
            email_verified=verified,
            telegram_id=telegram_id,
        )
        session.add(alias)
        await session.commit()
        await session.refresh(alias)
        return alias

    return _make_alias


@pytest.fixture
def make_item(session):
    async def _make_item(title="Painting", start_price="20"):
        return await create_item(session, title, Decimal(start_price))

    return _make_item

import asyncio
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from database.models.bid import Bid
from database.models.outbid_notice import OutbidNotice
from services.auction_settings import get_auction_settings, update_auction_settings
from services.bidding import get_current_high_bid, list_bidder_bids, place_bid
from services.errors import (
    BidValidationError,
    IdentityError,
    ItemError,
    ItemErrorCode,
    ValidationReason,
    WindowError,
    WindowReason,
)


async def count_bids(session, item_id):
    result = await session.execute(select(func.count(Bid.id)).where(Bid.item_id == item_id))
    return result.scalar()


@pytest.mark.asyncio
async def test_start_price_then_increment_scenario(session, make_alias, make_item) -> None:
    await make_alias("a@example.com")
    item = await make_item(start_price="20")

    first = await place_bid(session, "a@example.com", "20", item_id=item.id)
    assert first.next_min == Decimal("25")

    with pytest.raises(BidValidationError) as exc_info:
        await place_bid(session, "a@example.com", "22", item_id=item.id)
    assert exc_info.value.reason == ValidationReason.BELOW_MINIMUM
    assert exc_info.value.minimum == Decimal("25")

    second = await place_bid(session, "a@example.com", "25", item_id=item.id)
    assert second.next_min == Decimal("30")
    assert await count_bids(session, item.id) == 2


@pytest.mark.asyncio
async def test_bid_equal_to_start_price_rejected_once_item_has_bid(session, make_alias, make_item) -> None:
    await make_alias("a@example.com")
    await make_alias("b@example.com", display_name="Blue Owl")
    item = await make_item(start_price="20")

    await place_bid(session, "a@example.com", "20", item_id=item.id)
    with pytest.raises(BidValidationError) as exc_info:
        await place_bid(session, "b@example.com", "20", item_id=item.id)
    assert exc_info.value.reason == ValidationReason.BELOW_MINIMUM


@pytest.mark.asyncio
async def test_off_increment_bid_rejected(session, make_alias, make_item) -> None:
    await make_alias("a@example.com")
    item = await make_item(start_price="20")
    await place_bid(session, "a@example.com", "20", item_id=item.id)

    with pytest.raises(BidValidationError) as exc_info:
        await place_bid(session, "a@example.com", "27", item_id=item.id)
    assert exc_info.value.reason == ValidationReason.NOT_ON_INCREMENT
    assert exc_info.value.to_dict()["minimum"] == "25"


@pytest.mark.asyncio
async def test_non_positive_amount(session, make_alias, make_item) -> None:
    await make_alias("a@example.com")
    item = await make_item(start_price="0")

    with pytest.raises(BidValidationError) as exc_info:
        await place_bid(session, "a@example.com", "0", item_id=item.id)
    assert exc_info.value.reason == ValidationReason.NON_POSITIVE


@pytest.mark.asyncio
async def test_not_started_regardless_of_amount(session, make_alias, make_item) -> None:
    await make_alias("a@example.com")
    item = await make_item(start_price="20")
    await update_auction_settings(session, auction_start=datetime.now(timezone.utc) + timedelta(hours=1))

    for amount in ("20", "22", "-1"):
        with pytest.raises(WindowError) as exc_info:
            await place_bid(session, "a@example.com", amount, item_id=item.id)
        assert exc_info.value.reason == WindowReason.NOT_STARTED


@pytest.mark.asyncio
async def test_manual_close_dominates_future_deadline(session, make_alias, make_item) -> None:
    await make_alias("a@example.com")
    item = await make_item()
    auction_settings = await get_auction_settings(session)
    auction_settings.auction_closed = True
    auction_settings.auction_deadline = datetime.now(timezone.utc) + timedelta(days=1)
    await session.commit()

    with pytest.raises(WindowError) as exc_info:
        await place_bid(session, "a@example.com", "20", item_id=item.id)
    assert exc_info.value.reason == WindowReason.MANUALLY_CLOSED


@pytest.mark.asyncio
async def test_deadline_passed(session, make_alias, make_item) -> None:
    await make_alias("a@example.com")
    item = await make_item()
    await update_auction_settings(session, auction_deadline=datetime.now(timezone.utc) - timedelta(minutes=1))

    with pytest.raises(WindowError) as exc_info:
        await place_bid(session, "a@example.com", "20", item_id=item.id)
    assert exc_info.value.reason == WindowReason.DEADLINE_PASSED


@pytest.mark.asyncio
async def test_item_lookup_by_slug_and_not_found(session, make_alias, make_item) -> None:
    await make_alias("a@example.com")
    item = await make_item(title="Signed Football")
    assert item.slug == "signed-football"

    result = await place_bid(session, "a@example.com", "20", slug="signed-football")
    assert result.item_id == item.id

    with pytest.raises(ItemError) as exc_info:
        await place_bid(session, "a@example.com", "20", slug="missing")
    assert exc_info.value.reason == ItemErrorCode.NOT_FOUND

    with pytest.raises(ItemError):
        await place_bid(session, "a@example.com", "20", item_id=9999)


@pytest.mark.asyncio
async def test_closed_item_rejected_while_window_open(session, make_alias, make_item) -> None:
    await make_alias("a@example.com")
    item = await make_item()
    item.is_closed = True
    await session.commit()

    with pytest.raises(ItemError) as exc_info:
        await place_bid(session, "a@example.com", "20", item_id=item.id)
    assert exc_info.value.reason == ItemErrorCode.ALREADY_CLOSED


@pytest.mark.asyncio
async def test_unverified_identity_never_reaches_bids(session, make_alias, make_item) -> None:
    await make_alias("unverified@example.com", verified=False)
    item = await make_item()

    for email in ("unverified@example.com", "nobody@example.com"):
        with pytest.raises(IdentityError):
            await place_bid(session, email, "20", item_id=item.id)
    assert await count_bids(session, item.id) == 0


@pytest.mark.asyncio
async def test_confirmation_only_for_first_bid_on_item(session, make_alias, make_item, dispatcher, notifier) -> None:
    await make_alias("a@example.com")
    item = await make_item()
    other = await make_item(title="Quilt")

    await place_bid(session, "a@example.com", "20", item_id=item.id, dispatcher=dispatcher)
    await place_bid(session, "a@example.com", "25", item_id=item.id, dispatcher=dispatcher)
    await place_bid(session, "a@example.com", "20", item_id=other.id, dispatcher=dispatcher)
    await dispatcher.drain()

    confirmations = notifier.of_kind("bid_confirmation")
    assert [call[2][0].item_id for call in confirmations] == [item.id, other.id]


@pytest.mark.asyncio
async def test_outbid_notifications_are_throttled_per_item(session, make_alias, make_item, dispatcher, notifier) -> None:
    await make_alias("a@example.com", display_name="Red Fox")
    await make_alias("b@example.com", display_name="Blue Owl")
    item = await make_item(start_price="20")
    start = datetime.now(timezone.utc)

    await place_bid(session, "a@example.com", "25", item_id=item.id, dispatcher=dispatcher, now=start)
    await place_bid(session, "b@example.com", "30", item_id=item.id, dispatcher=dispatcher, now=start)
    # Внутри окна: B и A продолжают перебивать друг друга
    await place_bid(session, "a@example.com", "35", item_id=item.id, dispatcher=dispatcher,
                    now=start + timedelta(minutes=5))
    await place_bid(session, "b@example.com", "40", item_id=item.id, dispatcher=dispatcher,
                    now=start + timedelta(minutes=10))
    await place_bid(session, "b@example.com", "45", item_id=item.id, dispatcher=dispatcher,
                    now=start + timedelta(minutes=15))
    await dispatcher.drain()

    outbid = notifier.of_kind("outbid")
    assert len(outbid) == 1
    assert outbid[0][1].email == "a@example.com"
    assert outbid[0][2][1] == Decimal("30")

    # После окна уведомления снова отправляются
    await place_bid(session, "a@example.com", "50", item_id=item.id, dispatcher=dispatcher,
                    now=start + timedelta(minutes=31))
    await dispatcher.drain()
    outbid = notifier.of_kind("outbid")
    assert len(outbid) == 2
    assert outbid[1][1].email == "b@example.com"


@pytest.mark.asyncio
async def test_failing_notifier_does_not_fail_bid(session, make_alias, make_item, dispatcher, notifier) -> None:
    await make_alias("a@example.com")
    item = await make_item()
    notifier.fail_for.add("a@example.com")

    result = await place_bid(session, "a@example.com", "20", item_id=item.id, dispatcher=dispatcher)
    await dispatcher.drain()

    assert result.next_min == Decimal("25")
    assert dispatcher.failed == 1
    assert await count_bids(session, item.id) == 1


@pytest.mark.asyncio
async def test_concurrent_bids_keep_every_accepted_row(session_maker, session, make_alias, make_item) -> None:
    await make_alias("a@example.com")
    await make_alias("b@example.com", display_name="Blue Owl")
    item = await make_item(start_price="20")
    await get_auction_settings(session)

    async def bid(email, amount):
        async with session_maker() as own_session:
            try:
                return await place_bid(own_session, email, amount, item_id=item.id)
            except BidValidationError:
                return None

    results = await asyncio.gather(bid("a@example.com", "20"), bid("b@example.com", "25"))
    accepted = [result for result in results if result is not None]

    # Большая ставка валидна при любом порядке фиксации
    assert results[1] is not None
    async with session_maker() as check_session:
        high = await get_current_high_bid(check_session, item.id, 1)
        assert high.amount == Decimal("25")
        assert high.email == "b@example.com"
        assert await count_bids(check_session, item.id) == len(accepted)


@pytest.mark.asyncio
async def test_high_bid_tie_goes_to_earliest(session, make_alias, make_item) -> None:
    alias_a = await make_alias("a@example.com")
    alias_b = await make_alias("b@example.com", display_name="Blue Owl")
    item = await make_item()
    early = datetime(2026, 5, 1, 12, 0, tzinfo=timezone.utc)
    session.add_all([
        Bid(item_id=item.id, alias_id=alias_b.id, email="b@example.com", amount=Decimal("30"), cycle=1,
            created_at=early + timedelta(seconds=1)),
        Bid(item_id=item.id, alias_id=alias_a.id, email="a@example.com", amount=Decimal("30"), cycle=1,
            created_at=early),
    ])
    await session.commit()

    high = await get_current_high_bid(session, item.id, 1)
    assert high.email == "a@example.com"


@pytest.mark.asyncio
async def test_list_bidder_bids_flags(session, make_alias, make_item) -> None:
    await make_alias("a@example.com")
    await make_alias("b@example.com", display_name="Blue Owl")
    item = await make_item(title="Painting")
    other = await make_item(title="Quilt")

    await place_bid(session, "a@example.com", "20", item_id=item.id)
    await place_bid(session, "b@example.com", "25", item_id=item.id)
    await place_bid(session, "a@example.com", "20", item_id=other.id)

    bids = await list_bidder_bids(session, "A@example.com")
    by_item = {bid["item_slug"]: bid for bid in bids}
    assert by_item["painting"]["is_outbid"] is True
    assert by_item["painting"]["is_winning"] is False
    assert by_item["quilt"]["is_winning"] is True
    assert all(bid["is_closed"] is False for bid in bids)


@pytest.mark.asyncio
async def test_outbid_bookkeeping_happens_in_queue(session, make_alias, make_item, dispatcher, notifier) -> None:
    await make_alias("a@example.com")
    await make_alias("b@example.com", display_name="Blue Owl", telegram_id=321)
    item = await make_item(start_price="20")

    await place_bid(session, "b@example.com", "20", item_id=item.id, dispatcher=dispatcher)
    await place_bid(session, "a@example.com", "25", item_id=item.id, dispatcher=dispatcher)

    result = await session.execute(select(func.count(OutbidNotice.id)))
    assert result.scalar() == 0

    await dispatcher.drain()

    result = await session.execute(select(func.count(OutbidNotice.id)))
    assert result.scalar() == 1
    outbid = notifier.of_kind("outbid")
    assert outbid[0][1].display_name == "Blue Owl"
    assert outbid[0][1].telegram_id == 321

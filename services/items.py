"""Сервис для работы с лотами"""
import re
from decimal import Decimal
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from database.models.item import Item


def slugify(title: str) -> str:
    """Сделать URL-безопасный slug из названия"""
    slug = re.sub(r"[^a-z0-9]+", "-", (title or "").lower()).strip("-")
    return slug[:90] or "item"


async def create_item(
    session: AsyncSession,
    title: str,
    start_price: Decimal,
    slug: str = None,
    description: str = None,
    owner_email: str = None
) -> Item:
    """Создать лот"""
    if Decimal(start_price) < 0:
        raise ValueError("Стартовая цена не может быть отрицательной")

    base_slug = slugify(slug or title)
    candidate = base_slug
    suffix = 2
    # Подбираем свободный slug: name, name-2, name-3...
    while True:
        result = await session.execute(select(Item.id).where(Item.slug == candidate))
        if result.scalar_one_or_none() is None:
            break
        candidate = f"{base_slug}-{suffix}"
        suffix += 1

    item = Item(
        slug=candidate,
        title=title,
        description=description,
        start_price=Decimal(start_price),
        owner_email=owner_email,
        is_closed=False
    )
    session.add(item)
    await session.commit()
    await session.refresh(item)
    return item


async def get_item(
    session: AsyncSession,
    item_id: Optional[int] = None,
    slug: Optional[str] = None
) -> Optional[Item]:
    """Найти лот по ID или slug"""
    if item_id is not None:
        result = await session.execute(
            select(Item).where(Item.id == item_id).execution_options(populate_existing=True)
        )
    elif slug:
        result = await session.execute(
            select(Item).where(Item.slug == slug).execution_options(populate_existing=True)
        )
    else:
        return None
    return result.scalar_one_or_none()

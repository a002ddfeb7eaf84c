"""Получение подтвержденного псевдонима участника"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from database.models.alias import UserAlias


@dataclass(frozen=True)
class VerifiedAlias:
    """Подтвержденный псевдоним участника"""
    alias_id: int
    display_name: str
    email: str
    telegram_id: Optional[int] = None


class IdentityProvider(ABC):
    """Источник псевдонимов: email -> подтвержденный псевдоним"""

    @abstractmethod
    async def resolve_verified_alias(self, email: str) -> Optional[VerifiedAlias]:
        """Вернуть псевдоним, если он есть и email подтвержден"""


class DatabaseIdentityProvider(IdentityProvider):
    """Псевдонимы из таблицы user_aliases"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def resolve_verified_alias(self, email: str) -> Optional[VerifiedAlias]:
        result = await self.session.execute(
            select(UserAlias).where(
                UserAlias.email == normalize_email(email),
                UserAlias.email_verified == True
            )
        )
        alias = result.scalar_one_or_none()
        if not alias:
            return None
        return VerifiedAlias(
            alias_id=alias.id,
            display_name=alias.display_name,
            email=alias.email,
            telegram_id=alias.telegram_id,
        )


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def mask_email(email: Optional[str]) -> str:
    """Маскировать email для логов: jo***@example.com"""
    if not email or "@" not in email:
        return "***"
    local, domain = email.split("@", 1)
    if not local:
        return "***"
    if len(local) <= 2:
        return f"***@{domain}"
    return f"{local[:2]}***@{domain}"

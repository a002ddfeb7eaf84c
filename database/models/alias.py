"""Модель псевдонима участника"""
from sqlalchemy import Column, BigInteger, String, DateTime, Boolean
from sqlalchemy.sql import func
from database.connection import Base, BigIntegerPK


class UserAlias(Base):
    """Публичный псевдоним участника, привязанный к email.

    Таблица заполняется сервисом регистрации псевдонимов, аукцион ее только читает.
    """
    __tablename__ = "user_aliases"

    id = Column(BigIntegerPK, primary_key=True, index=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    display_name = Column(String(80), nullable=False)
    color = Column(String(50), nullable=True)
    animal = Column(String(50), nullable=True)
    email_verified = Column(Boolean, default=False, nullable=False)
    telegram_id = Column(BigInteger, nullable=True)  # Чат для уведомлений через бота
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

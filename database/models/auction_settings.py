"""Модель настроек аукциона"""
from sqlalchemy import Column, Integer, DateTime, Boolean, String, Text
from sqlalchemy.sql import func
from database.connection import Base

# Единственная строка настроек всегда имеет этот ID
SETTINGS_ROW_ID = 1


class AuctionSettings(Base):
    """Глобальные настройки аукциона (одна строка)"""
    __tablename__ = "auction_settings"

    id = Column(Integer, primary_key=True, default=SETTINGS_ROW_ID)
    auction_title = Column(String(200), nullable=True)
    auction_start = Column(DateTime(timezone=True), nullable=True)
    auction_deadline = Column(DateTime(timezone=True), nullable=True)
    auction_closed = Column(Boolean, default=False, nullable=False)  # Ручное закрытие
    cycle = Column(Integer, default=1, nullable=False)  # Номер текущего цикла торгов
    payment_instructions = Column(Text, nullable=True)
    pickup_instructions = Column(Text, nullable=True)
    contact_email = Column(String(255), nullable=True)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now(), nullable=True)

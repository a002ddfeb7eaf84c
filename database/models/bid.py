"""Модель ставки"""
from datetime import datetime, timezone
from sqlalchemy import Column, BigInteger, Integer, Numeric, String, DateTime, ForeignKey
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from database.connection import Base, BigIntegerPK


class Bid(Base):
    """Модель ставки на лот.

    Ставки только добавляются: не обновляются и не удаляются.
    Текущая максимальная ставка лота вычисляется запросом, отдельного поля нет.
    """
    __tablename__ = "bids"

    id = Column(BigIntegerPK, primary_key=True, index=True)
    item_id = Column(BigInteger, ForeignKey("items.id"), nullable=False, index=True)
    alias_id = Column(BigInteger, ForeignKey("user_aliases.id"), nullable=False, index=True)
    email = Column(String(255), nullable=False, index=True)  # Для подтверждений и связи с победителем
    amount = Column(Numeric(12, 2), nullable=False)  # Сумма ставки
    cycle = Column(Integer, default=1, nullable=False, index=True)  # Цикл торгов
    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        server_default=func.now(),
        nullable=False,
        index=True
    )

    # Связи
    item = relationship("Item", back_populates="bids")
    alias = relationship("UserAlias", backref="bids")

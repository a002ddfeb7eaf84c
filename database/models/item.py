"""Модель лота"""
from datetime import datetime, timezone
from sqlalchemy import Column, Numeric, String, Text, DateTime, Boolean
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from database.connection import Base, BigIntegerPK


class Item(Base):
    """Модель лота аукциона"""
    __tablename__ = "items"

    id = Column(BigIntegerPK, primary_key=True, index=True)
    slug = Column(String(100), unique=True, nullable=False, index=True)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    start_price = Column(Numeric(12, 2), nullable=False)  # Стартовая цена
    # Меняется только при закрытии аукциона (и при открытии нового цикла)
    is_closed = Column(Boolean, default=False, nullable=False, index=True)
    owner_email = Column(String(255), nullable=True)  # Админ или вендор, создавший лот
    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        server_default=func.now(),
        nullable=False
    )

    # Связи
    bids = relationship("Bid", back_populates="item", order_by="Bid.created_at.desc()")

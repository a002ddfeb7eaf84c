"""Журнал уведомлений о перебитых ставках"""
from datetime import datetime, timezone
from sqlalchemy import Column, BigInteger, String, DateTime, ForeignKey
from database.connection import Base, BigIntegerPK


class OutbidNotice(Base):
    """Запись об отправленном уведомлении о перебитой ставке.

    По последней записи лота ограничивается частота уведомлений.
    """
    __tablename__ = "outbid_notices"

    id = Column(BigIntegerPK, primary_key=True, index=True)
    item_id = Column(BigInteger, ForeignKey("items.id"), nullable=False, index=True)
    email = Column(String(255), nullable=False)
    sent_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        index=True
    )

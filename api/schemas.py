"""Схемы запросов HTTP API"""
from datetime import datetime
from decimal import Decimal
from typing import Optional
from pydantic import BaseModel, Field, model_validator


class BidRequest(BaseModel):
    """Ставка: лот по ID или slug, email участника и сумма"""
    item_id: Optional[int] = None
    slug: Optional[str] = Field(default=None, max_length=100)
    email: str = Field(min_length=3, max_length=255)
    amount: Decimal

    @model_validator(mode="after")
    def check_item_ref(self):
        if self.item_id is None and not self.slug:
            raise ValueError("Нужен item_id или slug")
        return self


class BidderBidsRequest(BaseModel):
    email: str = Field(min_length=3, max_length=255)


class CloseAuctionRequest(BaseModel):
    force: bool = False


class ToggleAuctionRequest(BaseModel):
    auction_closed: bool


class SettingsUpdate(BaseModel):
    """Изменяемые поля настроек аукциона"""
    auction_title: Optional[str] = Field(default=None, max_length=200)
    auction_start: Optional[datetime] = None
    auction_deadline: Optional[datetime] = None
    payment_instructions: Optional[str] = None
    pickup_instructions: Optional[str] = None
    contact_email: Optional[str] = Field(default=None, max_length=255)

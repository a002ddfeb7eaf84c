"""Модели базы данных"""
from .auction_settings import AuctionSettings
from .item import Item
from .alias import UserAlias
from .bid import Bid
from .outbid_notice import OutbidNotice

__all__ = [
    "AuctionSettings",
    "Item",
    "UserAlias",
    "Bid",
    "OutbidNotice",
]

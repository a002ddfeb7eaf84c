"""Ошибки аукциона"""
import enum
from decimal import Decimal
from typing import Optional


class WindowReason(str, enum.Enum):
    """Состояние окна торгов"""
    OK = "ok"
    NOT_STARTED = "not_started"  # Торги еще не начались
    DEADLINE_PASSED = "deadline_passed"  # Срок истек
    MANUALLY_CLOSED = "manually_closed"  # Закрыт администратором


class ItemErrorCode(str, enum.Enum):
    """Ошибки лота"""
    NOT_FOUND = "item_not_found"
    ALREADY_CLOSED = "item_closed"


class ValidationReason(str, enum.Enum):
    """Причины отклонения суммы ставки"""
    BELOW_MINIMUM = "below_minimum"
    NOT_ON_INCREMENT = "not_on_increment"
    NON_POSITIVE = "non_positive"


class IdentityErrorCode(str, enum.Enum):
    """Ошибки личности участника"""
    NO_VERIFIED_ALIAS = "no_verified_alias"


class AuctionError(ValueError):
    """Базовая ошибка, которую можно показать участнику"""

    def __init__(self, code: str, message: str, minimum: Optional[Decimal] = None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.minimum = minimum

    def to_dict(self) -> dict:
        data = {"ok": False, "error": self.code, "message": self.message}
        if self.minimum is not None:
            data["minimum"] = str(self.minimum)
        return data


class WindowError(AuctionError):
    """Торги сейчас не принимаются"""

    def __init__(self, reason: WindowReason, minimum: Optional[Decimal] = None):
        messages = {
            WindowReason.NOT_STARTED: "Торги еще не начались",
            WindowReason.DEADLINE_PASSED: "Торги завершены: срок истек",
            WindowReason.MANUALLY_CLOSED: "Торги закрыты администратором",
        }
        super().__init__(reason.value, messages.get(reason, "Торги закрыты"), minimum=minimum)
        self.reason = reason


class ItemError(AuctionError):
    """Лот не найден или закрыт"""

    def __init__(self, code: ItemErrorCode, minimum: Optional[Decimal] = None):
        messages = {
            ItemErrorCode.NOT_FOUND: "Лот не найден",
            ItemErrorCode.ALREADY_CLOSED: "Торги по лоту закрыты",
        }
        super().__init__(code.value, messages[code], minimum=minimum)
        self.reason = code


class BidValidationError(AuctionError):
    """Сумма ставки не прошла проверку"""

    def __init__(self, reason: ValidationReason, minimum: Decimal):
        messages = {
            ValidationReason.NON_POSITIVE: "Ставка должна быть больше нуля",
            ValidationReason.BELOW_MINIMUM: f"Минимальная допустимая ставка: {minimum:.2f}",
            ValidationReason.NOT_ON_INCREMENT: "Ставка должна быть кратна шагу аукциона",
        }
        super().__init__(reason.value, messages[reason], minimum=minimum)
        self.reason = reason


class IdentityError(AuctionError):
    """У участника нет подтвержденного псевдонима"""

    def __init__(self, minimum: Optional[Decimal] = None):
        super().__init__(
            IdentityErrorCode.NO_VERIFIED_ALIAS.value,
            "Сначала создайте псевдоним и подтвердите email",
            minimum=minimum
        )


class StoreError(Exception):
    """Сбой хранилища. Подробности только в логах"""


class NotificationError(Exception):
    """Сбой доставки уведомления"""

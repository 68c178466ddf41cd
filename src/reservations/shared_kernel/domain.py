"""
Основные доменные типы и утилиты общего ядра.
"""

from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any, Optional, Union
from uuid import UUID, uuid4

from pydantic import BaseModel, Field, field_validator

# Идентификаторы назначаются хранилищем (целые числа)
EntityId = int

MONEY_QUANT = Decimal("0.01")


def to_money(value: Union[Decimal, int, float, str]) -> Decimal:
    """Округляет сумму до сотых по правилу half-up."""
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(MONEY_QUANT, rounding=ROUND_HALF_UP)


class DateRange(BaseModel):
    """Полуоткрытый интервал проживания [check_in, check_out)."""

    check_in: datetime
    check_out: datetime

    @field_validator("check_out")
    @classmethod
    def check_out_after_check_in(cls, v, info):
        check_in = info.data.get("check_in")
        if check_in is not None and v <= check_in:
            raise ValueError("Дата выезда должна быть позже даты заезда")
        return v

    def overlaps(self, other: "DateRange") -> bool:
        """Проверяет пересечение полуоткрытых интервалов."""
        return self.check_in < other.check_out and self.check_out > other.check_in


class DomainEvent(BaseModel):
    """Базовый класс для всех доменных событий."""

    event_id: UUID = Field(default_factory=uuid4)
    occurred_on: datetime
    event_type: str = ""

    model_config = {"arbitrary_types_allowed": True}

    def model_post_init(self, __context: Any) -> None:
        if not self.event_type:
            self.event_type = type(self).__name__


# Общие перечисления
class BookingStatus(str, Enum):
    """Статусы бронирования."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class PaymentStatus(str, Enum):
    """Статусы оплаты бронирования."""

    PENDING = "pending"
    PENDING_VERIFICATION = "pending_verification"
    VERIFIED = "verified"
    REJECTED = "rejected"
    PAID = "paid"
    FAILED = "failed"


class PaymentType(str, Enum):
    """Схема оплаты: предоплата 50% или полная сумма."""

    HALF = "half"
    FULL = "full"


class CancelledBy(str, Enum):
    """Инициатор отмены."""

    USER = "user"
    ADMIN = "admin"
    SYSTEM = "system"


ACTIVE_STATUSES = (BookingStatus.PENDING, BookingStatus.CONFIRMED)
TERMINAL_STATUSES = (BookingStatus.CANCELLED, BookingStatus.COMPLETED)


# Общие исключения
class DomainException(Exception):
    """Базовое исключение для доменных ошибок."""

    pass


class BusinessRuleValidationException(DomainException):
    """Некорректные входные данные: диапазон дат, число гостей, реквизиты."""

    pass


class ConflictException(DomainException):
    """Пересечение дат, повторная оплата или повторное решение по платежу."""

    pass


class ConcurrencyException(ConflictException):
    """Исключение при конфликте версий."""

    pass


class NotFoundException(DomainException):
    """Объект не найден или принадлежит другому пользователю."""

    pass


class InvalidStateException(DomainException):
    """Переход невозможен из текущего состояния."""

    def __init__(
        self,
        message: str,
        current_status: Optional[BookingStatus] = None,
        current_payment_status: Optional[PaymentStatus] = None,
    ):
        super().__init__(message)
        self.current_status = current_status
        self.current_payment_status = current_payment_status

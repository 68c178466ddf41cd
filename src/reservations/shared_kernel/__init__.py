"""
Общее ядро (Shared Kernel) системы бронирования курорта.

Содержит общие типы данных и утилиты, используемые в контекстах
бронирования и оплаты.
"""

from .domain import (
    ACTIVE_STATUSES,
    TERMINAL_STATUSES,
    BookingStatus,
    BusinessRuleValidationException,
    CancelledBy,
    ConcurrencyException,
    ConflictException,
    DateRange,
    DomainEvent,
    # Исключения
    DomainException,
    # Базовые типы
    EntityId,
    InvalidStateException,
    NotFoundException,
    PaymentStatus,
    PaymentType,
    # Утилиты
    to_money,
)

__all__ = [
    # Базовые типы
    "EntityId",
    "DateRange",
    "DomainEvent",
    # Перечисления
    "BookingStatus",
    "PaymentStatus",
    "PaymentType",
    "CancelledBy",
    "ACTIVE_STATUSES",
    "TERMINAL_STATUSES",
    # Исключения
    "DomainException",
    "BusinessRuleValidationException",
    "ConflictException",
    "ConcurrencyException",
    "NotFoundException",
    "InvalidStateException",
    # Утилиты
    "to_money",
]

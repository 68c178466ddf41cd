"""
Доменная модель контекста бронирования.

Содержит агрегат бронирования, его доменные события и доменный сервис
проверки пересечения дат.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Optional

from pydantic import BaseModel, Field, PrivateAttr, model_validator

from ..shared_kernel import (
    ACTIVE_STATUSES,
    TERMINAL_STATUSES,
    BookingStatus,
    CancelledBy,
    DateRange,
    DomainEvent,
    EntityId,
    InvalidStateException,
    PaymentStatus,
    PaymentType,
    to_money,
)
from .pricing import StayPricing

if TYPE_CHECKING:
    from .interfaces import IBookingRepository
    from .refunds import RefundDecision

BOOKING_NUMBER_PREFIX = "KB-"

ANONYMIZED_GUEST_NAME = "Deleted User"
ANONYMIZED_GUEST_EMAIL = "deleted@privacy.local"
ANONYMIZED_SPECIAL_REQUESTS = "User account deleted"


def format_booking_number(booking_id: EntityId) -> str:
    """Человекочитаемый номер брони: KB-0001 ... KB-9999, далее KB-10000."""
    if booking_id is None or booking_id < 1:
        raise ValueError("Номер брони должен быть положительным")
    return f"{BOOKING_NUMBER_PREFIX}{booking_id:04d}"


def parse_booking_number(value: str) -> Optional[EntityId]:
    """Обратное преобразование номера брони в идентификатор."""
    if not value or not value.startswith(BOOKING_NUMBER_PREFIX):
        return None
    digits = value[len(BOOKING_NUMBER_PREFIX):]
    if not digits.isdigit() or int(digits) < 1:
        return None
    return int(digits)


class BookingState(str, Enum):
    """Именованные сочетания статуса брони и статуса оплаты."""

    AWAITING_PAYMENT = "awaiting_payment"
    PAYMENT_UNDER_REVIEW = "payment_under_review"
    PAYMENT_REJECTED = "payment_rejected"
    PAYMENT_FAILED = "payment_failed"
    PAYMENT_VERIFIED_PENDING_CONFIRMATION = "payment_verified_pending_confirmation"
    CONFIRMED = "confirmed"
    CONFIRMED_AWAITING_PAYMENT = "confirmed_awaiting_payment"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


_PENDING_STATES = {
    PaymentStatus.PENDING: BookingState.AWAITING_PAYMENT,
    PaymentStatus.PENDING_VERIFICATION: BookingState.PAYMENT_UNDER_REVIEW,
    PaymentStatus.REJECTED: BookingState.PAYMENT_REJECTED,
    PaymentStatus.FAILED: BookingState.PAYMENT_FAILED,
    PaymentStatus.VERIFIED: BookingState.PAYMENT_VERIFIED_PENDING_CONFIRMATION,
    PaymentStatus.PAID: BookingState.PAYMENT_VERIFIED_PENDING_CONFIRMATION,
}

_SETTLED_PAYMENTS = (PaymentStatus.VERIFIED, PaymentStatus.PAID)


class Booking(BaseModel):
    """Бронирование курорта (агрегат)."""

    id: Optional[EntityId] = None
    user_id: str
    guest_name: str
    guest_email: Optional[str] = None
    guest_phone: Optional[str] = None
    check_in: datetime
    check_out: datetime
    guest_count: int = Field(..., gt=0)
    total_amount: Decimal = Field(..., ge=0)
    payment_type: PaymentType = PaymentType.HALF
    payment_amount: Decimal = Field(..., ge=0)
    status: BookingStatus = BookingStatus.PENDING
    payment_status: PaymentStatus = PaymentStatus.PENDING
    cancelled_by: Optional[CancelledBy] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    special_requests: Optional[str] = None
    payment_intent_id: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    version: int = 0
    _domain_events: List[DomainEvent] = PrivateAttr(default_factory=list)

    @model_validator(mode="after")
    def check_out_after_check_in(self) -> "Booking":
        if self.check_out <= self.check_in:
            raise ValueError("Дата выезда должна быть позже даты заезда")
        return self

    # -- чтение состояния ---------------------------------------------------

    @property
    def domain_events(self) -> List[DomainEvent]:
        """Возвращает список доменных событий."""
        return self._domain_events

    def pull_domain_events(self) -> List[DomainEvent]:
        """Извлекает события и очищает список."""
        events = list(self._domain_events)
        self._domain_events.clear()
        return events

    @property
    def period(self) -> DateRange:
        return DateRange(check_in=self.check_in, check_out=self.check_out)

    @property
    def booking_number(self) -> Optional[str]:
        if self.id is None:
            return None
        return format_booking_number(self.id)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    @property
    def has_settled_payment(self) -> bool:
        """Оплата подтверждена (проверена администратором или получена)."""
        return self.payment_status in _SETTLED_PAYMENTS

    @property
    def state(self) -> BookingState:
        """Именованное состояние брони."""
        if self.status == BookingStatus.CANCELLED:
            return BookingState.CANCELLED
        if self.status == BookingStatus.COMPLETED:
            return BookingState.COMPLETED
        if self.status == BookingStatus.CONFIRMED:
            if self.has_settled_payment:
                return BookingState.CONFIRMED
            return BookingState.CONFIRMED_AWAITING_PAYMENT
        return _PENDING_STATES[self.payment_status]

    def hours_until_check_in(self, now: datetime) -> float:
        return (self.check_in - now).total_seconds() / 3600

    def snapshot(self) -> "Booking":
        """Копия без накопленных событий (для передачи в события)."""
        return Booking.model_validate(self.model_dump())

    def changes_since(self, original: "Booking") -> Dict[str, Any]:
        """Поля, изменившиеся относительно исходной версии."""
        before = original.model_dump()
        after = self.model_dump()
        return {
            key: value
            for key, value in after.items()
            if key not in ("id", "version") and before.get(key) != value
        }

    # -- переходы -----------------------------------------------------------

    @classmethod
    def create(
        cls,
        booking_id: EntityId,
        user_id: str,
        guest_name: str,
        check_in: datetime,
        check_out: datetime,
        guest_count: int,
        pricing: StayPricing,
        payment_type: PaymentType,
        now: datetime,
        deposit_ratio: Decimal = Decimal("0.5"),
        guest_email: Optional[str] = None,
        guest_phone: Optional[str] = None,
        special_requests: Optional[str] = None,
        payment_intent_id: Optional[str] = None,
    ) -> "Booking":
        """Создает новое бронирование в статусе pending / pending."""
        booking = cls(
            id=booking_id,
            user_id=user_id,
            guest_name=guest_name,
            guest_email=guest_email,
            guest_phone=guest_phone,
            check_in=check_in,
            check_out=check_out,
            guest_count=guest_count,
            total_amount=pricing.total,
            payment_type=payment_type,
            payment_amount=amount_due(pricing.total, payment_type, deposit_ratio),
            special_requests=special_requests,
            payment_intent_id=payment_intent_id,
            created_at=now,
            updated_at=now,
        )
        booking._record(BookingCreated(occurred_on=now, booking=booking.snapshot()))
        return booking

    def confirm(self, now: datetime) -> bool:
        """Подтверждает бронирование. Возвращает False, если оно уже подтверждено."""
        if self.status == BookingStatus.CONFIRMED:
            return False
        self._ensure_not_terminal("подтвердить")

        self.status = BookingStatus.CONFIRMED
        self.updated_at = now
        self._record(BookingConfirmed(occurred_on=now, booking=self.snapshot()))
        return True

    def cancel(
        self,
        cancelled_by: CancelledBy,
        now: datetime,
        reason: Optional[str] = None,
        refund: Optional["RefundDecision"] = None,
    ) -> None:
        """Отменяет бронирование."""
        self._ensure_not_terminal("отменить")

        self.status = BookingStatus.CANCELLED
        self.cancelled_by = cancelled_by
        self.cancelled_at = now
        self.cancellation_reason = reason
        self.updated_at = now
        self._record(
            BookingCancelled(
                occurred_on=now,
                booking=self.snapshot(),
                cancelled_by=cancelled_by,
                reason=reason,
                refund_amount=refund.amount if refund else None,
                refund_percentage=refund.percentage if refund else None,
            )
        )

    def expire(self, now: datetime, reason: str) -> None:
        """Автоматически отменяет неподтвержденное бронирование."""
        if self.status != BookingStatus.PENDING:
            raise InvalidStateException(
                f"Истечь может только бронирование в статусе pending, "
                f"текущий статус {self.status.value}",
                current_status=self.status,
                current_payment_status=self.payment_status,
            )
        self.status = BookingStatus.CANCELLED
        self.cancelled_by = CancelledBy.SYSTEM
        self.cancelled_at = now
        self.cancellation_reason = reason
        self.updated_at = now
        self._record(BookingExpired(occurred_on=now, booking=self.snapshot()))

    def reschedule(
        self,
        check_in: datetime,
        check_out: datetime,
        pricing: StayPricing,
        now: datetime,
        deposit_ratio: Decimal = Decimal("0.5"),
    ) -> None:
        """Переносит даты; стоимость пересчитывается, оплата требуется заново."""
        self._ensure_not_terminal("перенести")

        original_check_in = self.check_in
        original_check_out = self.check_out
        original_total = self.total_amount

        self.check_in = check_in
        self.check_out = check_out
        self.total_amount = pricing.total
        self.payment_amount = amount_due(pricing.total, self.payment_type, deposit_ratio)
        self.payment_status = PaymentStatus.PENDING
        self.updated_at = now
        self._record(
            BookingRescheduled(
                occurred_on=now,
                booking=self.snapshot(),
                original_check_in=original_check_in,
                original_check_out=original_check_out,
                original_total=original_total,
            )
        )

    def complete(self, now: datetime) -> None:
        """Завершает проживание (только из статуса confirmed)."""
        if self.status != BookingStatus.CONFIRMED:
            raise InvalidStateException(
                f"Завершить можно только подтвержденное бронирование, "
                f"текущий статус {self.status.value}",
                current_status=self.status,
                current_payment_status=self.payment_status,
            )
        self.status = BookingStatus.COMPLETED
        self.updated_at = now
        self._record(BookingCompleted(occurred_on=now, booking=self.snapshot()))

    # -- статус оплаты ------------------------------------------------------

    def mark_payment_under_review(self, now: datetime) -> None:
        self._set_payment_status(PaymentStatus.PENDING_VERIFICATION, now)

    def mark_payment_verified(self, now: datetime) -> None:
        self._set_payment_status(PaymentStatus.VERIFIED, now)

    def mark_payment_rejected(self, now: datetime) -> None:
        self._set_payment_status(PaymentStatus.REJECTED, now)

    def mark_payment_failed(self, now: datetime) -> None:
        self._set_payment_status(PaymentStatus.FAILED, now)

    def mark_paid(self, now: datetime) -> None:
        self._set_payment_status(PaymentStatus.PAID, now)

    def mark_fully_paid(self, now: datetime) -> None:
        """Полная стоимость получена (например, доплата при заезде)."""
        self._set_payment_status(PaymentStatus.PAID, now)
        self.payment_amount = self.total_amount

    def anonymize(self, now: datetime) -> None:
        """Обезличивает контактные данные гостя; строка брони сохраняется."""
        self.guest_name = ANONYMIZED_GUEST_NAME
        self.guest_email = ANONYMIZED_GUEST_EMAIL
        self.guest_phone = None
        self.special_requests = ANONYMIZED_SPECIAL_REQUESTS
        self.updated_at = now

    # -- служебное ----------------------------------------------------------

    def _set_payment_status(self, status: PaymentStatus, now: datetime) -> None:
        if self.is_terminal:
            raise InvalidStateException(
                f"Невозможно изменить оплату бронирования в статусе {self.status.value}",
                current_status=self.status,
                current_payment_status=self.payment_status,
            )
        self.payment_status = status
        self.updated_at = now

    def _ensure_not_terminal(self, action: str) -> None:
        if self.is_terminal:
            raise InvalidStateException(
                f"Невозможно {action} бронирование в статусе {self.status.value}",
                current_status=self.status,
                current_payment_status=self.payment_status,
            )

    def _record(self, event: DomainEvent) -> None:
        self._domain_events.append(event)


def amount_due(
    total: Decimal, payment_type: PaymentType, deposit_ratio: Decimal = Decimal("0.5")
) -> Decimal:
    """Сумма к оплате сейчас: предоплата для half, вся сумма для full."""
    if payment_type == PaymentType.HALF:
        return to_money(total * deposit_ratio)
    return to_money(total)


# Доменные события


class BookingEvent(DomainEvent):
    """Событие, несущее снимок бронирования."""

    booking: Booking

    def notification_extra(self) -> Dict[str, Any]:
        """Дополнительные данные для уведомления."""
        return {}


class BookingCreated(BookingEvent):
    """Событие создания бронирования."""


class BookingConfirmed(BookingEvent):
    """Событие подтверждения бронирования."""


class BookingCancelled(BookingEvent):
    """Событие отмены бронирования."""

    cancelled_by: CancelledBy
    reason: Optional[str] = None
    refund_amount: Optional[Decimal] = None
    refund_percentage: Optional[int] = None

    def notification_extra(self) -> Dict[str, Any]:
        return {
            "cancelled_by": self.cancelled_by.value,
            "reason": self.reason,
            "refund_amount": self.refund_amount,
            "refund_percentage": self.refund_percentage,
        }


class BookingExpired(BookingEvent):
    """Событие автоматической отмены неподтвержденного бронирования."""


class BookingRescheduled(BookingEvent):
    """Событие переноса дат."""

    original_check_in: datetime
    original_check_out: datetime
    original_total: Decimal

    def notification_extra(self) -> Dict[str, Any]:
        return {
            "original_check_in": self.original_check_in,
            "original_check_out": self.original_check_out,
            "original_total": self.original_total,
            "new_total": self.booking.total_amount,
            "amount_difference": self.booking.total_amount - self.original_total,
        }


class BookingCompleted(BookingEvent):
    """Событие завершения проживания."""


class CheckInReminderDue(BookingEvent):
    """Напоминание о заезде."""


# Доменные сервисы


class ConflictDetector:
    """Проверка пересечения дат с действующими бронированиями."""

    def __init__(self, booking_repository: Optional["IBookingRepository"] = None):
        self.booking_repository = booking_repository

    @staticmethod
    def has_conflict(
        candidate_start: datetime,
        candidate_end: datetime,
        exclude_booking_id: Optional[EntityId],
        existing_bookings: Iterable[Booking],
    ) -> bool:
        """Пересекается ли интервал [start, end) с активными бронированиями."""
        candidate = DateRange(check_in=candidate_start, check_out=candidate_end)
        for booking in existing_bookings:
            if exclude_booking_id is not None and booking.id == exclude_booking_id:
                continue
            if booking.status not in ACTIVE_STATUSES:
                continue
            if candidate.overlaps(booking.period):
                return True
        return False

    def is_available(
        self,
        candidate_start: datetime,
        candidate_end: datetime,
        exclude_booking_id: Optional[EntityId] = None,
    ) -> bool:
        """Проверяет доступность дат по данным репозитория."""
        if self.booking_repository is None:
            raise RuntimeError("ConflictDetector создан без репозитория")
        overlapping = self.booking_repository.list_overlapping(
            check_in=candidate_start,
            check_out=candidate_end,
            exclude_booking_id=exclude_booking_id,
            statuses=ACTIVE_STATUSES,
        )
        return not self.has_conflict(
            candidate_start, candidate_end, exclude_booking_id, overlapping
        )

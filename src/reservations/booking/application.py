"""
Прикладной слой контекста бронирования.

Содержит сервис жизненного цикла бронирования, который координирует
доменную модель, репозитории, платежный шлюз и публикацию событий.
Все операции принимают текущий момент ``now`` явно.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field

from ..config import ReservationSettings, get_settings
from ..shared_kernel import (
    BookingStatus,
    BusinessRuleValidationException,
    CancelledBy,
    ConflictException,
    DomainEvent,
    EntityId,
    InvalidStateException,
    NotFoundException,
    PaymentStatus,
    PaymentType,
)
from . import interfaces as ports
from .domain import Booking, BookingState, ConflictDetector
from .pricing import PricingCalculator, RateTable, StayPricing
from .refunds import RefundDecision, RefundPolicy, get_refund_policy

GUEST_CANCELLATION_REASON = "Cancelled by guest"
ADMIN_CANCELLATION_REASON = "Cancelled by administrator"


# Команды (входящие данные)


class CreateBookingCommand(BaseModel):
    """Запрос на создание бронирования."""

    user_id: str
    guest_name: str
    check_in_date: date
    check_out_date: date
    guest_count: int
    payment_type: PaymentType = PaymentType.HALF
    guest_email: Optional[str] = None
    guest_phone: Optional[str] = None
    special_requests: Optional[str] = None
    payment_intent_id: Optional[str] = None


class CancelBookingCommand(BaseModel):
    """Отмена бронирования гостем."""

    booking_id: EntityId
    user_id: str
    reason: Optional[str] = None


class AdminCancelBookingCommand(BaseModel):
    """Отмена бронирования администратором."""

    booking_id: EntityId
    reason: Optional[str] = None


class RescheduleBookingCommand(BaseModel):
    """Перенос дат бронирования."""

    booking_id: EntityId
    user_id: str
    new_check_in: date
    new_check_out: date


# DTO для исходящих данных


class BookingDTO(BaseModel):
    """DTO для представления бронирования."""

    id: EntityId
    booking_number: str
    user_id: str
    guest_name: str
    guest_email: Optional[str]
    guest_phone: Optional[str]
    check_in: datetime
    check_out: datetime
    guest_count: int
    total_amount: Decimal
    payment_type: PaymentType
    payment_amount: Decimal
    status: BookingStatus
    payment_status: PaymentStatus
    state: BookingState
    cancelled_by: Optional[CancelledBy]
    cancelled_at: Optional[datetime]
    cancellation_reason: Optional[str]
    special_requests: Optional[str]
    created_at: str
    updated_at: str

    @classmethod
    def from_domain(cls, booking: Booking) -> "BookingDTO":
        """Создает DTO из доменной модели."""
        return cls(
            id=booking.id,
            booking_number=booking.booking_number,
            user_id=booking.user_id,
            guest_name=booking.guest_name,
            guest_email=booking.guest_email,
            guest_phone=booking.guest_phone,
            check_in=booking.check_in,
            check_out=booking.check_out,
            guest_count=booking.guest_count,
            total_amount=booking.total_amount,
            payment_type=booking.payment_type,
            payment_amount=booking.payment_amount,
            status=booking.status,
            payment_status=booking.payment_status,
            state=booking.state,
            cancelled_by=booking.cancelled_by,
            cancelled_at=booking.cancelled_at,
            cancellation_reason=booking.cancellation_reason,
            special_requests=booking.special_requests,
            created_at=booking.created_at.isoformat(),
            updated_at=booking.updated_at.isoformat(),
        )


class BookingOperationResult(BaseModel):
    """Результат операции над бронированием."""

    booking: Optional[BookingDTO] = None
    warnings: List[str] = Field(default_factory=list)
    refund: Optional[RefundDecision] = None
    pricing: Optional[StayPricing] = None
    payment_received: Optional[bool] = None


def rate_table_from_settings(settings: ReservationSettings) -> RateTable:
    return RateTable(
        weekday_rate=settings.weekday_rate,
        weekend_rate=settings.weekend_rate,
        included_guests=settings.included_guests,
        excess_guest_fee=settings.excess_guest_fee,
        max_guests=settings.max_guests,
    )


def publish_events(uow: ports.IBookingUnitOfWork, events: List[DomainEvent]) -> List[str]:
    """Публикует события после фиксации; ошибки обработчиков становятся предупреждениями."""
    warnings: List[str] = []
    for event in events:
        warnings.extend(uow.event_bus.publish(event))
    return warnings


def save_changes(uow: ports.IBookingUnitOfWork, original: Booking, booking: Booking) -> Booking:
    """Сохраняет изменившиеся поля агрегата с проверкой версии."""
    changes = booking.changes_since(original)
    if not changes:
        return original
    return uow.bookings.update(booking.id, changes, expected_version=original.version)


# Сервисы приложения


class BookingLifecycleService:
    """Сервис приложения для жизненного цикла бронирования."""

    def __init__(
        self,
        uow: ports.IBookingUnitOfWork,
        settings: Optional[ReservationSettings] = None,
        pricing_calculator: Optional[PricingCalculator] = None,
        refund_policy: Optional[RefundPolicy] = None,
        payment_gateway: Optional[ports.IPaymentGateway] = None,
    ):
        """Инициализирует сервис."""
        self._uow = uow
        self._settings = settings or get_settings()
        self._pricing = pricing_calculator or PricingCalculator(
            rate_table_from_settings(self._settings)
        )
        self._refund_policy = refund_policy or get_refund_policy(
            self._settings.refund_policy, self._settings.deposit_ratio
        )
        self._payment_gateway = payment_gateway
        self._logger = uow.logger

    def quote_price(
        self, check_in_date: date, check_out_date: date, guest_count: int
    ) -> BookingOperationResult:
        """Рассчитывает стоимость проживания без создания брони."""
        pricing = self._pricing.price(check_in_date, check_out_date, guest_count)
        return BookingOperationResult(pricing=pricing)

    def create_booking(
        self, command: CreateBookingCommand, now: datetime
    ) -> BookingOperationResult:
        """Создает новое бронирование в статусе pending."""
        pricing = self._pricing.price(
            command.check_in_date, command.check_out_date, command.guest_count
        )
        if command.check_in_date < now.date():
            raise BusinessRuleValidationException("Дата заезда не может быть в прошлом")

        check_in = datetime.combine(command.check_in_date, self._settings.check_in_time)
        check_out = datetime.combine(command.check_out_date, self._settings.check_out_time)

        with self._uow:
            pending = [
                b
                for b in self._uow.bookings.find_by_user(command.user_id)
                if b.status == BookingStatus.PENDING
            ]
            if len(pending) >= self._settings.max_pending_per_guest:
                raise ConflictException(
                    f"Допускается не более {self._settings.max_pending_per_guest} "
                    f"неподтвержденных бронирований"
                )

            detector = ConflictDetector(self._uow.bookings)
            if not detector.is_available(check_in, check_out):
                raise ConflictException("Выбранные даты уже забронированы")

            booking = Booking.create(
                booking_id=self._uow.bookings.next_id(),
                user_id=command.user_id,
                guest_name=command.guest_name,
                check_in=check_in,
                check_out=check_out,
                guest_count=command.guest_count,
                pricing=pricing,
                payment_type=command.payment_type,
                now=now,
                deposit_ratio=self._settings.deposit_ratio,
                guest_email=command.guest_email,
                guest_phone=command.guest_phone,
                special_requests=command.special_requests,
                payment_intent_id=command.payment_intent_id,
            )
            self._uow.bookings.add(booking)

        self._logger.info(
            "Booking created",
            booking_number=booking.booking_number,
            total=booking.total_amount,
        )
        warnings = publish_events(self._uow, booking.pull_domain_events())
        return BookingOperationResult(
            booking=BookingDTO.from_domain(booking), pricing=pricing, warnings=warnings
        )

    def confirm_booking(self, booking_id: EntityId, now: datetime) -> BookingOperationResult:
        """Подтверждает бронирование (повторное подтверждение ничего не меняет)."""
        with self._uow:
            booking = self._get_existing(booking_id)
            original = booking.snapshot()
            changed = booking.confirm(now)
            stored = save_changes(self._uow, original, booking) if changed else original

        if changed:
            self._logger.info("Booking confirmed", booking_number=booking.booking_number)
        warnings = publish_events(self._uow, booking.pull_domain_events())
        return BookingOperationResult(booking=BookingDTO.from_domain(stored), warnings=warnings)

    def cancel_booking_as_guest(
        self, command: CancelBookingCommand, now: datetime
    ) -> BookingOperationResult:
        """Отмена гостем с расчетом возврата по действующей политике."""
        with self._uow:
            booking = self._get_owned(command.booking_id, command.user_id)
            self._ensure_not_terminal(booking)

            refund = self._refund_policy.compute_refund(
                booking.check_in, now, booking.total_amount
            )
            if not refund.can_cancel:
                raise InvalidStateException(
                    "Отмена возможна не позднее чем за 24 часа до заезда",
                    current_status=booking.status,
                    current_payment_status=booking.payment_status,
                )

            original = booking.snapshot()
            payment_received = booking.has_settled_payment
            booking.cancel(
                CancelledBy.USER,
                now,
                reason=command.reason or GUEST_CANCELLATION_REASON,
                refund=refund,
            )
            stored = save_changes(self._uow, original, booking)

        self._logger.info(
            "Booking cancelled by guest",
            booking_number=booking.booking_number,
            refund_amount=refund.amount,
            refund_percentage=refund.percentage,
        )
        warnings = publish_events(self._uow, booking.pull_domain_events())
        return BookingOperationResult(
            booking=BookingDTO.from_domain(stored),
            refund=refund,
            payment_received=payment_received,
            warnings=warnings,
        )

    def cancel_booking_as_admin(
        self, command: AdminCancelBookingCommand, now: datetime
    ) -> BookingOperationResult:
        """Отмена администратором: без ограничения по времени до заезда."""
        with self._uow:
            booking = self._get_existing(command.booking_id)
            original = booking.snapshot()
            payment_received = booking.has_settled_payment
            booking.cancel(
                CancelledBy.ADMIN, now, reason=command.reason or ADMIN_CANCELLATION_REASON
            )
            stored = save_changes(self._uow, original, booking)

        self._logger.info("Booking cancelled by admin", booking_number=booking.booking_number)
        warnings = publish_events(self._uow, booking.pull_domain_events())
        return BookingOperationResult(
            booking=BookingDTO.from_domain(stored),
            payment_received=payment_received,
            warnings=warnings,
        )

    def quote_refund(
        self, booking_id: EntityId, user_id: str, now: datetime
    ) -> BookingOperationResult:
        """Предварительный расчет возврата без изменения брони."""
        booking = self._get_owned(booking_id, user_id)
        self._ensure_not_terminal(booking)
        refund = self._refund_policy.compute_refund(
            booking.check_in, now, booking.total_amount
        )
        return BookingOperationResult(
            booking=BookingDTO.from_domain(booking),
            refund=refund,
            payment_received=booking.has_settled_payment,
        )

    def reschedule_booking(
        self, command: RescheduleBookingCommand, now: datetime
    ) -> BookingOperationResult:
        """Переносит даты с пересчетом стоимости и проверкой пересечений."""
        if command.new_check_out <= command.new_check_in:
            raise BusinessRuleValidationException(
                "Дата выезда должна быть позже даты заезда"
            )
        if command.new_check_in < now.date():
            raise BusinessRuleValidationException("Дата заезда не может быть в прошлом")

        check_in = datetime.combine(command.new_check_in, self._settings.check_in_time)
        check_out = datetime.combine(command.new_check_out, self._settings.check_out_time)

        with self._uow:
            booking = self._get_owned(command.booking_id, command.user_id)
            self._ensure_not_terminal(booking)

            if booking.status == BookingStatus.CONFIRMED:
                min_hours = self._settings.reschedule_min_notice_hours
                if booking.hours_until_check_in(now) < min_hours:
                    raise InvalidStateException(
                        f"Перенос подтвержденной брони возможен не позднее "
                        f"чем за {min_hours} часа до заезда",
                        current_status=booking.status,
                        current_payment_status=booking.payment_status,
                    )

            detector = ConflictDetector(self._uow.bookings)
            if not detector.is_available(check_in, check_out, exclude_booking_id=booking.id):
                raise ConflictException("Выбранные даты уже забронированы")

            pricing = self._pricing.price(
                command.new_check_in, command.new_check_out, booking.guest_count
            )
            original = booking.snapshot()
            booking.reschedule(
                check_in, check_out, pricing, now, deposit_ratio=self._settings.deposit_ratio
            )
            stored = save_changes(self._uow, original, booking)

        self._logger.info(
            "Booking rescheduled",
            booking_number=booking.booking_number,
            original_total=original.total_amount,
            new_total=booking.total_amount,
        )
        warnings = publish_events(self._uow, booking.pull_domain_events())
        return BookingOperationResult(
            booking=BookingDTO.from_domain(stored), pricing=pricing, warnings=warnings
        )

    def reconcile_gateway_payment(
        self, booking_id: EntityId, now: datetime
    ) -> BookingOperationResult:
        """Сверяет статус оплаты с платежным шлюзом. Бронь не подтверждается."""
        if self._payment_gateway is None:
            raise RuntimeError("Платежный шлюз не настроен")

        booking = self._get_existing(booking_id)
        if not booking.payment_intent_id:
            raise BusinessRuleValidationException(
                f"У брони {booking.booking_number} нет платежа во внешнем шлюзе"
            )
        gateway_status = self._payment_gateway.query_status(booking.payment_intent_id)
        if gateway_status == ports.GatewayPaymentStatus.PROCESSING:
            return BookingOperationResult(booking=BookingDTO.from_domain(booking))

        with self._uow:
            booking = self._get_existing(booking_id)
            original = booking.snapshot()
            if gateway_status == ports.GatewayPaymentStatus.PAID:
                booking.mark_paid(now)
            else:
                booking.mark_payment_failed(now)
            stored = save_changes(self._uow, original, booking)

        self._logger.info(
            "Gateway payment reconciled",
            booking_number=booking.booking_number,
            gateway_status=gateway_status.value,
        )
        return BookingOperationResult(booking=BookingDTO.from_domain(stored))

    def anonymize_guest_bookings(self, user_id: str, now: datetime) -> int:
        """Обезличивает брони удаленного пользователя; активные брони мешают удалению."""
        with self._uow:
            bookings = self._uow.bookings.find_by_user(user_id)
            active = [b for b in bookings if b.is_active]
            if active:
                raise InvalidStateException(
                    f"У пользователя есть активные бронирования: "
                    f"{', '.join(b.booking_number for b in active)}",
                    current_status=active[0].status,
                    current_payment_status=active[0].payment_status,
                )
            for booking in bookings:
                original = booking.snapshot()
                booking.anonymize(now)
                save_changes(self._uow, original, booking)

        self._logger.info("Guest bookings anonymized", user_id=user_id, count=len(bookings))
        return len(bookings)

    def get_booking(
        self, booking_id: EntityId, user_id: Optional[str] = None
    ) -> BookingDTO:
        """Возвращает информацию о бронировании."""
        if user_id is None:
            booking = self._get_existing(booking_id)
        else:
            booking = self._get_owned(booking_id, user_id)
        return BookingDTO.from_domain(booking)

    def list_bookings(
        self,
        user_id: Optional[str] = None,
        status: Optional[BookingStatus] = None,
    ) -> List[BookingDTO]:
        """Возвращает список бронирований с фильтрацией."""
        if user_id is not None:
            bookings = self._uow.bookings.find_by_user(user_id)
            if status is not None:
                bookings = [b for b in bookings if b.status == status]
        elif status is not None:
            bookings = self._uow.bookings.find_by_status(status)
        else:
            bookings = [
                b for s in BookingStatus for b in self._uow.bookings.find_by_status(s)
            ]
            bookings.sort(key=lambda b: b.id)

        return [BookingDTO.from_domain(booking) for booking in bookings]

    def _get_existing(self, booking_id: EntityId) -> Booking:
        booking = self._uow.bookings.get_by_id(booking_id)
        if booking is None:
            raise NotFoundException(f"Бронирование {booking_id} не найдено")
        return booking

    def _get_owned(self, booking_id: EntityId, user_id: str) -> Booking:
        # Чужая бронь неотличима от несуществующей
        booking = self._uow.bookings.get_by_id(booking_id)
        if booking is None or booking.user_id != user_id:
            raise NotFoundException(f"Бронирование {booking_id} не найдено")
        return booking

    @staticmethod
    def _ensure_not_terminal(booking: Booking) -> None:
        if booking.is_terminal:
            raise InvalidStateException(
                f"Бронирование {booking.booking_number} уже в статусе {booking.status.value}",
                current_status=booking.status,
                current_payment_status=booking.payment_status,
            )

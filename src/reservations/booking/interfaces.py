"""
Интерфейсы (порты) для контекста бронирования.
"""

from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import (
    TYPE_CHECKING,
    Any,
    Callable,
    Dict,
    Iterable,
    List,
    Optional,
    Protocol,
    Type,
    TypeVar,
)

from pydantic import BaseModel, Field

from ..shared_kernel import BookingStatus, DomainEvent, DomainException, EntityId
from .domain import Booking

if TYPE_CHECKING:
    from ..payments.interfaces import IPaymentProofRepository

T_Event = TypeVar("T_Event", bound=DomainEvent)


class ILogger(Protocol):
    """Интерфейс для логгера."""

    def info(self, message: str, **kwargs: Any) -> None: ...
    def error(self, message: str, **kwargs: Any) -> None: ...
    def warning(self, message: str, **kwargs: Any) -> None: ...
    def debug(self, message: str, **kwargs: Any) -> None: ...


class IEventBus(Protocol):
    """Интерфейс для шины событий."""

    def publish(self, event: DomainEvent) -> List[str]: ...
    def subscribe(
        self, event_type: Type[T_Event], handler: Callable[[T_Event], None]
    ) -> None: ...


class IBookingRepository(Protocol):
    """Интерфейс репозитория для бронирований."""

    def next_id(self) -> EntityId: ...
    def get_by_id(self, booking_id: EntityId) -> Booking | None: ...
    def add(self, booking: Booking) -> None: ...
    def update(
        self,
        booking_id: EntityId,
        patch: Dict[str, Any],
        expected_version: Optional[int] = None,
    ) -> Booking: ...
    def list_overlapping(
        self,
        check_in: datetime,
        check_out: datetime,
        exclude_booking_id: Optional[EntityId] = None,
        statuses: Iterable[BookingStatus] = (),
    ) -> List[Booking]: ...
    def find_by_status(self, status: BookingStatus) -> List[Booking]: ...
    def find_by_user(self, user_id: str) -> List[Booking]: ...
    def find_confirmed_checked_out(self, on_or_before: date) -> List[Booking]: ...
    def find_confirmed_checking_in(self, on: date) -> List[Booking]: ...
    def find_pending_created_before(self, moment: datetime) -> List[Booking]: ...
    def bulk_update_status(
        self,
        booking_ids: List[EntityId],
        patch: Dict[str, Any],
        expected_status: BookingStatus,
    ) -> List[EntityId]: ...


class NotificationType(str, Enum):
    """Типы уведомлений гостю и администратору."""

    BOOKING_CREATED = "booking_created"
    BOOKING_CONFIRMED = "booking_confirmed"
    BOOKING_CANCELLED = "booking_cancelled"
    BOOKING_EXPIRED = "booking_expired"
    BOOKING_RESCHEDULED = "booking_rescheduled"
    BOOKING_COMPLETED = "booking_completed"
    PAYMENT_PROOF_SUBMITTED = "payment_proof_submitted"
    PAYMENT_VERIFIED = "payment_verified"
    PAYMENT_REJECTED = "payment_rejected"
    BALANCE_PAID = "balance_paid"
    CHECK_IN_REMINDER = "check_in_reminder"


class Notification(BaseModel):
    """Уведомление для внешней службы рассылки."""

    type: NotificationType
    booking: Booking
    extra: Dict[str, Any] = Field(default_factory=dict)


class INotificationDispatcher(Protocol):
    """Интерфейс службы уведомлений (email / SMS)."""

    def notify(self, notification: Notification) -> None: ...


class GatewayPaymentStatus(str, Enum):
    """Статус платежа во внешнем платежном шлюзе."""

    PAID = "paid"
    FAILED = "failed"
    PROCESSING = "processing"


class PaymentGatewayException(DomainException):
    """Платежный шлюз недоступен или вернул некорректный ответ."""

    pass


class IPaymentGateway(Protocol):
    """Интерфейс запроса статуса платежа во внешнем шлюзе."""

    def query_status(self, external_payment_id: str) -> GatewayPaymentStatus: ...


class IBookingUnitOfWork(Protocol):
    """Интерфейс Unit of Work для бронирований и подтверждений оплаты."""

    @property
    def bookings(self) -> IBookingRepository: ...
    @property
    def payment_proofs(self) -> IPaymentProofRepository: ...
    @property
    def event_bus(self) -> IEventBus: ...
    @property
    def logger(self) -> ILogger: ...

    def __enter__(self) -> IBookingUnitOfWork: ...
    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> bool: ...
    def commit(self) -> None: ...
    def rollback(self) -> None: ...

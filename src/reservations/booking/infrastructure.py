"""
Инфраструктурный слой контекста бронирования.

Содержит реализации репозиториев и других интерфейсов,
зависимые от конкретных технологий (хранилище, логирование, HTTP и т.д.).
"""

import json
import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import date, datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple, Type

import httpx
from pydantic import SecretStr

from ..payments.infrastructure import InMemoryPaymentProofRepository
from ..payments.interfaces import IPaymentProofRepository
from ..shared_kernel import (
    ACTIVE_STATUSES,
    BookingStatus,
    ConcurrencyException,
    ConflictException,
    DateRange,
    DomainEvent,
    EntityId,
    NotFoundException,
)
from . import interfaces as ports
from .domain import Booking

LOGGER_NAME = "reservations"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

_DATE_FIELDS = ("check_in", "check_out")


def configure_logging(level: str = "INFO") -> None:
    """Настраивает корневой логгер приложения."""
    logging.basicConfig(level=level, format=LOG_FORMAT)
    logging.getLogger(LOGGER_NAME).setLevel(level)


class StandardLogger(ports.ILogger):
    """Логгер поверх стандартного модуля logging; контекст пишется как JSON."""

    def __init__(self, name: str = LOGGER_NAME):
        self._logger = logging.getLogger(name)

    def info(self, message: str, **kwargs) -> None:
        self._log(logging.INFO, message, kwargs)

    def error(self, message: str, **kwargs) -> None:
        self._log(logging.ERROR, message, kwargs)

    def warning(self, message: str, **kwargs) -> None:
        self._log(logging.WARNING, message, kwargs)

    def debug(self, message: str, **kwargs) -> None:
        self._log(logging.DEBUG, message, kwargs)

    def _log(self, level: int, message: str, context: Dict[str, Any]) -> None:
        if not self._logger.isEnabledFor(level):
            return
        if context:
            message = (
                f"{message} | "
                f"{json.dumps(context, default=str, ensure_ascii=False, sort_keys=True)}"
            )
        self._logger.log(level, message)


class InMemoryEventBus(ports.IEventBus):
    """Реализация шины событий в памяти.

    Ошибки обработчиков не прерывают операцию: они логируются и
    возвращаются вызывающему коду как список предупреждений.
    """

    def __init__(self, logger: Optional[ports.ILogger] = None):
        self._subscribers: Dict[Type[DomainEvent], List[Callable]] = {}
        self._logger = logger or StandardLogger()

    def publish(self, event: DomainEvent) -> List[str]:
        """Публикует событие и возвращает сообщения об ошибках обработчиков."""
        event_type = type(event)
        handlers = self._subscribers.get(event_type, [])
        if not handlers:
            self._logger.debug(f"No subscribers for event type {event_type.__name__}")
            return []

        self._logger.info(
            f"Publishing event: {event_type.__name__}", event_id=event.event_id
        )

        failures = []
        for handler in handlers:
            try:
                handler(event)
            except Exception as e:
                message = f"Обработчик события {event_type.__name__} завершился ошибкой: {e}"
                self._logger.error(
                    f"Error in event handler for {event_type.__name__}",
                    error=str(e),
                    event_id=event.event_id,
                )
                failures.append(message)
        return failures

    def subscribe(self, event_type: Type[DomainEvent], handler) -> None:
        """Подписывает обработчик на события указанного типа."""
        self._subscribers.setdefault(event_type, []).append(handler)
        self._logger.debug(f"Subscribed handler to {event_type.__name__} events")


class InMemoryBookingRepository(ports.IBookingRepository):
    """Реализация репозитория бронирований в памяти.

    Хранит копии агрегатов; изменения применяются частичными патчами с
    проверкой версии. Пересечение дат повторно проверяется под блокировкой
    при добавлении брони и при изменении ее дат.
    """

    def __init__(self):
        self._bookings: Dict[EntityId, Booking] = {}
        self._next_id = 1
        self._lock = threading.RLock()

    def next_id(self) -> EntityId:
        with self._lock:
            booking_id = self._next_id
            self._next_id += 1
            return booking_id

    def get_by_id(self, booking_id: EntityId) -> Optional[Booking]:
        booking = self._bookings.get(booking_id)
        return booking.snapshot() if booking is not None else None

    def add(self, booking: Booking) -> None:
        with self._lock:
            if booking.id is None:
                booking.id = self.next_id()
            if booking.id in self._bookings:
                raise ConflictException(f"Бронирование {booking.id} уже существует")
            if booking.status in ACTIVE_STATUSES:
                self._ensure_no_overlap(booking.check_in, booking.check_out, booking.id)
            self._bookings[booking.id] = booking.snapshot()

    def update(
        self,
        booking_id: EntityId,
        patch: Dict[str, Any],
        expected_version: Optional[int] = None,
    ) -> Booking:
        with self._lock:
            current = self._bookings.get(booking_id)
            if current is None:
                raise NotFoundException(f"Бронирование {booking_id} не найдено")
            if expected_version is not None and current.version != expected_version:
                raise ConcurrencyException(
                    f"Бронирование {booking_id} было изменено параллельно "
                    f"(ожидалась версия {expected_version}, текущая {current.version})"
                )

            patch = {k: v for k, v in patch.items() if k not in ("id", "version")}
            updated = current.model_copy(
                update={**patch, "version": current.version + 1}
            )
            if any(field in patch for field in _DATE_FIELDS) and (
                updated.status in ACTIVE_STATUSES
            ):
                self._ensure_no_overlap(updated.check_in, updated.check_out, booking_id)

            self._bookings[booking_id] = updated
            return updated.snapshot()

    def list_overlapping(
        self,
        check_in: datetime,
        check_out: datetime,
        exclude_booking_id: Optional[EntityId] = None,
        statuses: Iterable[BookingStatus] = (),
    ) -> List[Booking]:
        statuses = tuple(statuses) or ACTIVE_STATUSES
        period = DateRange(check_in=check_in, check_out=check_out)
        result = []
        for booking in self._bookings.values():
            # Пропускаем исключенное бронирование
            if exclude_booking_id is not None and booking.id == exclude_booking_id:
                continue
            if booking.status in statuses and period.overlaps(booking.period):
                result.append(booking.snapshot())
        return result

    def find_by_status(self, status: BookingStatus) -> List[Booking]:
        return self._select(lambda b: b.status == status)

    def find_by_user(self, user_id: str) -> List[Booking]:
        return self._select(lambda b: b.user_id == user_id)

    def find_confirmed_checked_out(self, on_or_before: date) -> List[Booking]:
        return self._select(
            lambda b: b.status == BookingStatus.CONFIRMED
            and b.check_out.date() <= on_or_before
        )

    def find_confirmed_checking_in(self, on: date) -> List[Booking]:
        return self._select(
            lambda b: b.status == BookingStatus.CONFIRMED and b.check_in.date() == on
        )

    def find_pending_created_before(self, moment: datetime) -> List[Booking]:
        return self._select(
            lambda b: b.status == BookingStatus.PENDING and b.created_at < moment
        )

    def bulk_update_status(
        self,
        booking_ids: List[EntityId],
        patch: Dict[str, Any],
        expected_status: BookingStatus,
    ) -> List[EntityId]:
        """Применяет патч к броням, которые все еще в ожидаемом статусе."""
        updated_ids = []
        with self._lock:
            for booking_id in booking_ids:
                current = self._bookings.get(booking_id)
                if current is None or current.status != expected_status:
                    continue
                self._bookings[booking_id] = current.model_copy(
                    update={**patch, "version": current.version + 1}
                )
                updated_ids.append(booking_id)
        return updated_ids

    def snapshot(self) -> Tuple[Dict[EntityId, Booking], int]:
        with self._lock:
            return dict(self._bookings), self._next_id

    def restore(self, state: Tuple[Dict[EntityId, Booking], int]) -> None:
        with self._lock:
            self._bookings, self._next_id = dict(state[0]), state[1]

    def _select(self, predicate: Callable[[Booking], bool]) -> List[Booking]:
        return [
            booking.snapshot()
            for booking in sorted(self._bookings.values(), key=lambda b: b.id)
            if predicate(booking)
        ]

    def _ensure_no_overlap(
        self, check_in: datetime, check_out: datetime, booking_id: EntityId
    ) -> None:
        if self.list_overlapping(check_in, check_out, exclude_booking_id=booking_id):
            raise ConflictException("Выбранные даты уже забронированы")


class LoggingNotificationDispatcher(ports.INotificationDispatcher):
    """Записывает уведомления в лог вместо отправки email / SMS."""

    def __init__(self, logger: Optional[ports.ILogger] = None):
        self._logger = logger or StandardLogger()

    def notify(self, notification: ports.Notification) -> None:
        booking = notification.booking
        self._logger.info(
            f"Notification {notification.type.value} for booking {booking.booking_number}",
            email=booking.guest_email,
            phone=booking.guest_phone,
            **notification.extra,
        )


class ThreadedNotificationDispatcher(ports.INotificationDispatcher):
    """Отправляет уведомления в пуле потоков, не блокируя операцию."""

    def __init__(
        self,
        delegate: ports.INotificationDispatcher,
        max_workers: int = 2,
        logger: Optional[ports.ILogger] = None,
    ):
        self._delegate = delegate
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="notifications"
        )
        self._logger = logger or StandardLogger()

    def notify(self, notification: ports.Notification) -> None:
        future = self._executor.submit(self._delegate.notify, notification)
        future.add_done_callback(
            lambda f: self._log_failure(f, notification.type.value)
        )

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    def _log_failure(self, future: Future, notification_type: str) -> None:
        error = future.exception()
        if error is not None:
            self._logger.error(
                "Notification delivery failed",
                notification_type=notification_type,
                error=str(error),
            )


# Статусы платежного намерения PayMongo
_GATEWAY_PAID = ("succeeded",)
_GATEWAY_FAILED = ("canceled", "cancelled", "failed")


class HttpPaymentGateway(ports.IPaymentGateway):
    """Запрашивает статус платежного намерения у PayMongo-совместимого API."""

    def __init__(
        self,
        base_url: str,
        secret_key: Optional[SecretStr] = None,
        timeout: float = 10.0,
        client: Optional[httpx.Client] = None,
        transport: Optional[httpx.BaseTransport] = None,
        logger: Optional[ports.ILogger] = None,
    ):
        auth = None
        if secret_key is not None:
            auth = httpx.BasicAuth(secret_key.get_secret_value(), "")
        self._client = client or httpx.Client(
            base_url=base_url, auth=auth, timeout=timeout, transport=transport
        )
        self._logger = logger or StandardLogger()

    def query_status(self, external_payment_id: str) -> ports.GatewayPaymentStatus:
        try:
            response = self._client.get(f"/payment_intents/{external_payment_id}")
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPError as e:
            self._logger.error(
                "Payment gateway request failed",
                payment_id=external_payment_id,
                error=str(e),
            )
            raise ports.PaymentGatewayException(
                f"Не удалось получить статус платежа {external_payment_id}"
            ) from e

        try:
            status = payload["data"]["attributes"]["status"]
        except (KeyError, TypeError) as e:
            raise ports.PaymentGatewayException(
                f"Некорректный ответ платежного шлюза для {external_payment_id}"
            ) from e

        self._logger.debug(
            "Payment gateway status", payment_id=external_payment_id, status=status
        )
        return map_gateway_status(status)

    def close(self) -> None:
        self._client.close()


def map_gateway_status(status: str) -> ports.GatewayPaymentStatus:
    """Сводит статус шлюза к paid / failed / processing."""
    status = (status or "").lower()
    if status in _GATEWAY_PAID:
        return ports.GatewayPaymentStatus.PAID
    if status in _GATEWAY_FAILED:
        return ports.GatewayPaymentStatus.FAILED
    return ports.GatewayPaymentStatus.PROCESSING


class ReservationUnitOfWork(ports.IBookingUnitOfWork):
    """Единица работы для бронирований и подтверждений оплаты.

    При входе запоминает состояние репозиториев и восстанавливает его, если
    операция завершилась исключением. Операции внутри одной единицы работы
    выполняются последовательно.
    """

    def __init__(
        self,
        bookings_repo: Optional[ports.IBookingRepository] = None,
        payment_proofs_repo: Optional[IPaymentProofRepository] = None,
        event_bus: Optional[ports.IEventBus] = None,
        logger: Optional[ports.ILogger] = None,
    ):
        self._logger = logger or StandardLogger()
        self._bookings = bookings_repo or InMemoryBookingRepository()
        self._payment_proofs = payment_proofs_repo or InMemoryPaymentProofRepository()
        self._event_bus = event_bus or InMemoryEventBus(self._logger)
        self._lock = threading.RLock()
        self._depth = 0
        self._snapshots: List[Tuple[Any, Any]] = []
        self._committed = False

    @property
    def bookings(self) -> ports.IBookingRepository:
        return self._bookings

    @property
    def payment_proofs(self) -> IPaymentProofRepository:
        return self._payment_proofs

    @property
    def event_bus(self) -> ports.IEventBus:
        return self._event_bus

    @property
    def logger(self) -> ports.ILogger:
        return self._logger

    def commit(self) -> None:
        """Фиксирует все изменения."""
        self._committed = True
        self._logger.debug("ReservationUnitOfWork committed")

    def rollback(self) -> None:
        """Откатывает изменения к состоянию на момент входа."""
        for repo, state in self._snapshots:
            repo.restore(state)
        self._committed = False
        self._logger.warning("ReservationUnitOfWork rolled back")

    def __enter__(self):
        self._lock.acquire()
        if self._depth == 0:
            self._snapshots = [
                (repo, repo.snapshot())
                for repo in (self._bookings, self._payment_proofs)
                if hasattr(repo, "snapshot")
            ]
            self._committed = False
        self._depth += 1
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        try:
            self._depth -= 1
            if self._depth == 0:
                if exc_type is None:
                    self.commit()
                else:
                    self.rollback()
                self._snapshots = []
        finally:
            self._lock.release()
        return False  # Пробрасываем исключение дальше, если оно было

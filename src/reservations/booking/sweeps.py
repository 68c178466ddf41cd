"""
Периодические задачи контекста бронирования.

Запускаются внешним планировщиком. Каждая задача идемпотентна: повторный
запуск в тот же день ничего не меняет.
"""

from datetime import date, datetime, time, timedelta
from typing import List, Optional, Tuple

from pydantic import BaseModel

from ..config import ReservationSettings, get_settings
from ..shared_kernel import BookingStatus, DomainEvent
from . import interfaces as ports
from .application import publish_events
from .domain import Booking, CheckInReminderDue

EXPIRY_REASON_TEMPLATE = "Auto-expired: No confirmation received within {days} days"


def _apply_transitions(
    uow: ports.IBookingUnitOfWork,
    bookings: List[Booking],
    expected_status: BookingStatus,
) -> Tuple[List[Booking], List[DomainEvent]]:
    """Сохраняет переходы, выполненные над копиями броней, одним обновлением.

    Брони, статус которых успел измениться, пропускаются.
    """
    if not bookings:
        return [], []

    # Все брони переходят в одно и то же состояние, патч берется с первой
    patch = {
        key: value
        for key, value in bookings[0].model_dump().items()
        if key
        in (
            "status",
            "cancelled_by",
            "cancelled_at",
            "cancellation_reason",
            "updated_at",
        )
    }
    with uow:
        updated_ids = set(
            uow.bookings.bulk_update_status(
                [b.id for b in bookings], patch, expected_status=expected_status
            )
        )

    updated = [b for b in bookings if b.id in updated_ids]
    events = [event for b in updated for event in b.pull_domain_events()]
    return updated, events


class CompletionSweeper:
    """Переводит подтвержденные брони с прошедшей датой выезда в completed."""

    def __init__(self, uow: ports.IBookingUnitOfWork):
        self._uow = uow
        self._logger = uow.logger

    def sweep(self, today: date, now: Optional[datetime] = None) -> int:
        now = now or datetime.combine(today, time(0, 0))
        candidates = self._uow.bookings.find_confirmed_checked_out(today)
        for booking in candidates:
            booking.complete(now)

        completed, events = _apply_transitions(
            self._uow, candidates, expected_status=BookingStatus.CONFIRMED
        )
        publish_events(self._uow, events)
        if completed:
            self._logger.info(
                "Completed finished stays",
                count=len(completed),
                bookings=[b.booking_number for b in completed],
            )
        return len(completed)


class PendingExpirySweeper:
    """Отменяет неподтвержденные брони, созданные слишком давно."""

    def __init__(
        self,
        uow: ports.IBookingUnitOfWork,
        settings: Optional[ReservationSettings] = None,
    ):
        self._uow = uow
        self._settings = settings or get_settings()
        self._logger = uow.logger

    def sweep(self, now: datetime) -> int:
        days = self._settings.pending_expiry_days
        reason = EXPIRY_REASON_TEMPLATE.format(days=days)
        candidates = self._uow.bookings.find_pending_created_before(
            now - timedelta(days=days)
        )
        for booking in candidates:
            booking.expire(now, reason)

        expired, events = _apply_transitions(
            self._uow, candidates, expected_status=BookingStatus.PENDING
        )
        publish_events(self._uow, events)
        if expired:
            self._logger.info(
                "Expired stale pending bookings",
                count=len(expired),
                bookings=[b.booking_number for b in expired],
            )
        return len(expired)


class ReminderRunResult(BaseModel):
    """Итог рассылки напоминаний о заезде."""

    candidates: int = 0
    sent: int = 0
    failed: int = 0
    skipped_no_phone: int = 0


class CheckInReminderJob:
    """Напоминает гостям о заезде, который наступает завтра."""

    def __init__(
        self,
        uow: ports.IBookingUnitOfWork,
        settings: Optional[ReservationSettings] = None,
    ):
        self._uow = uow
        self._settings = settings or get_settings()
        self._logger = uow.logger

    def run(self, today: date, now: Optional[datetime] = None) -> ReminderRunResult:
        now = now or datetime.combine(today, time(0, 0))
        target = today + timedelta(days=self._settings.reminder_lead_days)
        bookings = self._uow.bookings.find_confirmed_checking_in(target)

        result = ReminderRunResult(candidates=len(bookings))
        for booking in bookings:
            if not booking.guest_phone:
                result.skipped_no_phone += 1
                continue
            failures = self._uow.event_bus.publish(
                CheckInReminderDue(occurred_on=now, booking=booking)
            )
            if failures:
                result.failed += 1
            else:
                result.sent += 1

        self._logger.info(
            "Check-in reminders processed",
            target_date=target,
            **result.model_dump(),
        )
        return result

"""
Тесты служб уведомлений и пересылки событий.
"""

import logging
from datetime import datetime
from unittest.mock import MagicMock

from reservations.booking.domain import BookingCancelled
from reservations.booking.event_handlers import on_booking_event
from reservations.booking.infrastructure import (
    LoggingNotificationDispatcher,
    StandardLogger,
    ThreadedNotificationDispatcher,
)
from reservations.booking.interfaces import Notification, NotificationType
from reservations.shared_kernel import CancelledBy

NOW = datetime(2026, 11, 2, 10, 0)


def test_event_is_forwarded_as_notification(booking_factory):
    dispatcher = MagicMock()
    booking = booking_factory()
    event = BookingCancelled(
        occurred_on=NOW,
        booking=booking,
        cancelled_by=CancelledBy.ADMIN,
        reason="Cancelled by administrator",
    )

    on_booking_event(
        event, dispatcher=dispatcher, notification_type=NotificationType.BOOKING_CANCELLED
    )

    notification = dispatcher.notify.call_args.args[0]
    assert notification.type == NotificationType.BOOKING_CANCELLED
    assert notification.booking.id == booking.id
    assert notification.extra["cancelled_by"] == "admin"
    assert notification.extra["reason"] == "Cancelled by administrator"


def test_logging_dispatcher_writes_booking_number(booking_factory, caplog):
    dispatcher = LoggingNotificationDispatcher(StandardLogger())
    notification = Notification(
        type=NotificationType.BOOKING_CREATED, booking=booking_factory()
    )

    with caplog.at_level(logging.INFO, logger="reservations"):
        dispatcher.notify(notification)

    assert "Notification booking_created for booking KB-0001" in caplog.text


class TestThreadedNotificationDispatcher:
    """Тесты для ThreadedNotificationDispatcher."""

    def test_delivers_in_background(self, booking_factory):
        delegate = MagicMock()
        dispatcher = ThreadedNotificationDispatcher(delegate)
        notification = Notification(
            type=NotificationType.BOOKING_CONFIRMED, booking=booking_factory()
        )

        dispatcher.notify(notification)
        dispatcher.shutdown(wait=True)

        delegate.notify.assert_called_once_with(notification)

    def test_delivery_failure_is_logged_not_raised(self, booking_factory, caplog):
        delegate = MagicMock()
        delegate.notify.side_effect = RuntimeError("SMTP недоступен")
        dispatcher = ThreadedNotificationDispatcher(delegate, logger=StandardLogger())

        with caplog.at_level(logging.ERROR, logger="reservations"):
            dispatcher.notify(
                Notification(
                    type=NotificationType.BOOKING_CONFIRMED, booking=booking_factory()
                )
            )
            dispatcher.shutdown(wait=True)

        assert "Notification delivery failed" in caplog.text

from .domain import BookingEvent
from .interfaces import INotificationDispatcher, Notification, NotificationType


def on_booking_event(
    event: BookingEvent,
    dispatcher: "INotificationDispatcher",
    notification_type: NotificationType,
) -> None:
    """Пересылает событие брони в службу уведомлений."""
    dispatcher.notify(
        Notification(
            type=notification_type,
            booking=event.booking,
            extra=event.notification_extra(),
        )
    )

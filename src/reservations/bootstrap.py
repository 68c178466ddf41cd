from functools import partial
from typing import Optional

from .booking.application import BookingLifecycleService
from .booking.domain import (
    BookingCancelled,
    BookingCompleted,
    BookingConfirmed,
    BookingCreated,
    BookingExpired,
    BookingRescheduled,
    CheckInReminderDue,
)
from .booking.event_handlers import on_booking_event
from .booking.infrastructure import (
    HttpPaymentGateway,
    LoggingNotificationDispatcher,
    ReservationUnitOfWork,
    StandardLogger,
    ThreadedNotificationDispatcher,
    configure_logging,
)
from .booking.interfaces import INotificationDispatcher, NotificationType
from .booking.sweeps import CheckInReminderJob, CompletionSweeper, PendingExpirySweeper
from .config import ReservationSettings, get_settings
from .payments.application import PaymentProofLedgerService
from .payments.domain import (
    BalancePaidOnArrival,
    PaymentProofRejected,
    PaymentProofSubmitted,
    PaymentProofVerified,
)

# Какое уведомление отправляется на каждое доменное событие
NOTIFICATION_TYPES = {
    BookingCreated: NotificationType.BOOKING_CREATED,
    BookingConfirmed: NotificationType.BOOKING_CONFIRMED,
    BookingCancelled: NotificationType.BOOKING_CANCELLED,
    BookingExpired: NotificationType.BOOKING_EXPIRED,
    BookingRescheduled: NotificationType.BOOKING_RESCHEDULED,
    BookingCompleted: NotificationType.BOOKING_COMPLETED,
    CheckInReminderDue: NotificationType.CHECK_IN_REMINDER,
    PaymentProofSubmitted: NotificationType.PAYMENT_PROOF_SUBMITTED,
    PaymentProofVerified: NotificationType.PAYMENT_VERIFIED,
    PaymentProofRejected: NotificationType.PAYMENT_REJECTED,
    BalancePaidOnArrival: NotificationType.BALANCE_PAID,
}


def bootstrap_app(
    settings: Optional[ReservationSettings] = None,
    dispatcher: Optional[INotificationDispatcher] = None,
):
    """Создает и настраивает все компоненты приложения.

    Вызывающая сторона владеет ресурсами приложения: по завершении работы
    нужно вызвать ``app["shutdown"]()``. Он останавливает пул доставки
    уведомлений, созданный здесь, и закрывает HTTP-клиент платежного шлюза.
    Переданный снаружи ``dispatcher`` не останавливается.
    """
    settings = settings or get_settings()
    configure_logging(settings.log_level)
    logger = StandardLogger()

    # 1. Создаем Unit of Work для бронирований и оплат
    uow = ReservationUnitOfWork(logger=logger)

    # 2. Внешние сервисы
    owned_dispatcher = None
    if dispatcher is None:
        owned_dispatcher = ThreadedNotificationDispatcher(
            LoggingNotificationDispatcher(logger), logger=logger
        )
        dispatcher = owned_dispatcher
    payment_gateway = None
    if settings.gateway_secret_key is not None:
        payment_gateway = HttpPaymentGateway(
            base_url=settings.gateway_base_url,
            secret_key=settings.gateway_secret_key,
            timeout=settings.gateway_timeout_seconds,
            logger=logger,
        )

    # 3. Создаем сервисы, передавая им зависимости
    booking_service = BookingLifecycleService(
        uow, settings=settings, payment_gateway=payment_gateway
    )
    payment_service = PaymentProofLedgerService(uow)

    # 4. Подписываем обработчики на события
    # Создаем partial, чтобы передать службу уведомлений в обработчик
    for event_type, notification_type in NOTIFICATION_TYPES.items():
        handler = partial(
            on_booking_event, dispatcher=dispatcher, notification_type=notification_type
        )
        uow.event_bus.subscribe(event_type, handler)

    def shutdown(wait: bool = True) -> None:
        if owned_dispatcher is not None:
            owned_dispatcher.shutdown(wait=wait)
        if payment_gateway is not None:
            payment_gateway.close()

    # Возвращаем настроенные компоненты
    return {
        "settings": settings,
        "uow": uow,
        "dispatcher": dispatcher,
        "booking_service": booking_service,
        "payment_service": payment_service,
        "completion_sweeper": CompletionSweeper(uow),
        "pending_expiry_sweeper": PendingExpirySweeper(uow, settings=settings),
        "check_in_reminder_job": CheckInReminderJob(uow, settings=settings),
        "shutdown": shutdown,
    }

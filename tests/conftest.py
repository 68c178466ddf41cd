"""
Общие фикстуры для тестов движка бронирования.

Текущий момент в тестах фиксирован: понедельник, 2 ноября 2026 года, 10:00.
"""

from datetime import date, datetime
from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from reservations.booking.application import CreateBookingCommand
from reservations.booking.domain import Booking
from reservations.booking.infrastructure import ReservationUnitOfWork
from reservations.booking.pricing import PricingCalculator
from reservations.bootstrap import bootstrap_app
from reservations.config import ReservationSettings
from reservations.shared_kernel import PaymentType

NOW = datetime(2026, 11, 2, 10, 0)  # понедельник
FRIDAY = date(2026, 11, 6)
MONDAY_AFTER = date(2026, 11, 9)


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def settings() -> ReservationSettings:
    """Настройки по умолчанию без чтения файла .env."""
    return ReservationSettings(_env_file=None)


@pytest.fixture
def dispatcher() -> MagicMock:
    """Мокированная служба уведомлений."""
    return MagicMock()


@pytest.fixture
def app(settings: ReservationSettings, dispatcher: MagicMock) -> dict:
    """Полностью собранное приложение с мокированными уведомлениями."""
    return bootstrap_app(settings=settings, dispatcher=dispatcher)


@pytest.fixture
def uow(app: dict) -> ReservationUnitOfWork:
    return app["uow"]


@pytest.fixture
def booking_service(app: dict):
    return app["booking_service"]


@pytest.fixture
def payment_service(app: dict):
    return app["payment_service"]


@pytest.fixture
def create_command():
    """Фабрика команд создания брони (по умолчанию пятница -> понедельник)."""

    def _make(**overrides) -> CreateBookingCommand:
        data = {
            "user_id": "guest-1",
            "guest_name": "Мария Сантос",
            "guest_email": "maria@example.com",
            "guest_phone": "+639171234567",
            "check_in_date": FRIDAY,
            "check_out_date": MONDAY_AFTER,
            "guest_count": 10,
            "payment_type": PaymentType.HALF,
        }
        data.update(overrides)
        return CreateBookingCommand(**data)

    return _make


@pytest.fixture
def booking_factory():
    """Фабрика агрегатов бронирования для доменных тестов."""
    calculator = PricingCalculator()
    counter = {"id": 0}

    def _make(
        check_in: datetime = datetime(2026, 11, 6, 15, 0),
        check_out: datetime = datetime(2026, 11, 9, 13, 0),
        guest_count: int = 10,
        payment_type: PaymentType = PaymentType.HALF,
        user_id: str = "guest-1",
        created_at: datetime = NOW,
    ) -> Booking:
        counter["id"] += 1
        booking = Booking.create(
            booking_id=counter["id"],
            user_id=user_id,
            guest_name="Мария Сантос",
            check_in=check_in,
            check_out=check_out,
            guest_count=guest_count,
            pricing=calculator.price(check_in, check_out, guest_count),
            payment_type=payment_type,
            now=created_at,
            deposit_ratio=Decimal("0.5"),
            guest_phone="+639171234567",
        )
        booking.pull_domain_events()
        return booking

    return _make

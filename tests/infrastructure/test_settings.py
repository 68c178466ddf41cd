"""
Тесты настроек приложения.
"""

from datetime import time
from decimal import Decimal

import pytest
from pydantic import ValidationError

from reservations.booking.interfaces import Notification, NotificationType
from reservations.bootstrap import bootstrap_app
from reservations.config import ReservationSettings


class TestReservationSettings:
    def test_defaults(self):
        settings = ReservationSettings(_env_file=None)

        assert settings.weekday_rate == Decimal("9000")
        assert settings.weekend_rate == Decimal("12000")
        assert settings.included_guests == 15
        assert settings.excess_guest_fee == Decimal("300")
        assert settings.max_guests == 25
        assert settings.deposit_ratio == Decimal("0.5")
        assert settings.refund_policy == "deposit_tier"
        assert settings.check_in_time == time(15, 0)
        assert settings.check_out_time == time(13, 0)
        assert settings.max_pending_per_guest == 3
        assert settings.pending_expiry_days == 7
        assert settings.gateway_secret_key is None

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("RESERVATIONS_WEEKDAY_RATE", "8000")
        monkeypatch.setenv("RESERVATIONS_REFUND_POLICY", "full_amount_tier")
        monkeypatch.setenv("RESERVATIONS_LOG_LEVEL", "debug")

        settings = ReservationSettings(_env_file=None)

        assert settings.weekday_rate == Decimal("8000")
        assert settings.refund_policy == "full_amount_tier"
        assert settings.log_level == "DEBUG"

    def test_unknown_refund_policy(self):
        with pytest.raises(ValidationError):
            ReservationSettings(_env_file=None, refund_policy="no_refunds")


def test_bootstrap_wires_gateway_only_with_secret(dispatcher):
    without_key = bootstrap_app(ReservationSettings(_env_file=None), dispatcher)
    with_key = bootstrap_app(
        ReservationSettings(_env_file=None, gateway_secret_key="sk_test_123"),
        dispatcher,
    )

    assert without_key["booking_service"]._payment_gateway is None
    assert with_key["booking_service"]._payment_gateway is not None


def test_shutdown_stops_owned_dispatcher(settings, booking_factory):
    app = bootstrap_app(settings)

    app["shutdown"]()

    # Пул доставки остановлен: новые уведомления не принимаются
    with pytest.raises(RuntimeError):
        app["dispatcher"].notify(
            Notification(type=NotificationType.BOOKING_CREATED, booking=booking_factory())
        )


def test_shutdown_leaves_external_dispatcher(app, dispatcher):
    app["shutdown"]()

    dispatcher.shutdown.assert_not_called()

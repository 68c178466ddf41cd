"""
Тесты типов общего ядра.
"""

from datetime import datetime
from decimal import Decimal

import pytest
from pydantic import ValidationError

from reservations.shared_kernel import DateRange, to_money


class TestDateRange:
    """Тесты для полуоткрытого интервала проживания."""

    def test_check_out_must_follow_check_in(self):
        with pytest.raises(ValidationError):
            DateRange(
                check_in=datetime(2026, 11, 6, 15, 0),
                check_out=datetime(2026, 11, 6, 15, 0),
            )

    def test_overlapping_ranges(self):
        # Подготовка
        stay = DateRange(
            check_in=datetime(2026, 11, 6, 15, 0), check_out=datetime(2026, 11, 9, 13, 0)
        )
        inner = DateRange(
            check_in=datetime(2026, 11, 7, 15, 0), check_out=datetime(2026, 11, 8, 13, 0)
        )

        # Проверка
        assert stay.overlaps(inner)
        assert inner.overlaps(stay)

    def test_touching_ranges_do_not_overlap(self):
        stay = DateRange(
            check_in=datetime(2026, 11, 6, 15, 0), check_out=datetime(2026, 11, 9, 13, 0)
        )
        next_stay = DateRange(
            check_in=datetime(2026, 11, 9, 13, 0), check_out=datetime(2026, 11, 10, 13, 0)
        )

        assert not stay.overlaps(next_stay)
        assert not next_stay.overlaps(stay)

    def test_booking_period(self, booking_factory):
        booking = booking_factory()

        assert booking.period == DateRange(
            check_in=booking.check_in, check_out=booking.check_out
        )


def test_to_money_rounds_half_up():
    assert to_money("2500.005") == Decimal("2500.01")
    assert to_money(10) == Decimal("10.00")

"""
Тесты расчета стоимости проживания.
"""

from datetime import date, datetime
from decimal import Decimal

import pytest

from reservations.booking.pricing import PricingCalculator, RateTable
from reservations.shared_kernel import BusinessRuleValidationException


@pytest.fixture
def calculator() -> PricingCalculator:
    return PricingCalculator()


class TestPricingCalculator:
    """Тесты для PricingCalculator."""

    def test_weekday_nights_use_weekday_rate(self, calculator: PricingCalculator):
        # Понедельник -> среда: две будние ночи
        pricing = calculator.price(date(2026, 11, 2), date(2026, 11, 4), 10)

        assert pricing.nights == 2
        assert pricing.base_total == Decimal("18000.00")
        assert pricing.excess_guest_fee == Decimal("0.00")
        assert pricing.total == Decimal("18000.00")

    def test_friday_to_monday_mixes_rates(self, calculator: PricingCalculator):
        # Ночи: пятница (будни), суббота и воскресенье (выходные)
        pricing = calculator.price(date(2026, 11, 6), date(2026, 11, 9), 10)

        assert pricing.nights == 3
        assert [n.rate for n in pricing.nightly_rates] == [
            Decimal("9000"),
            Decimal("12000"),
            Decimal("12000"),
        ]
        assert [n.is_weekend for n in pricing.nightly_rates] == [False, True, True]
        assert pricing.total == Decimal("33000.00")

    def test_excess_guest_fee_per_guest_per_night(self, calculator: PricingCalculator):
        included = calculator.price(date(2026, 11, 6), date(2026, 11, 9), 15)
        one_extra = calculator.price(date(2026, 11, 6), date(2026, 11, 9), 16)

        assert included.excess_guest_fee == Decimal("0.00")
        assert one_extra.excess_guest_fee == Decimal("900.00")
        assert one_extra.total - included.total == Decimal("300") * 3
        assert one_extra.total == Decimal("33900.00")

    def test_maximum_capacity_is_accepted(self, calculator: PricingCalculator):
        pricing = calculator.price(date(2026, 11, 2), date(2026, 11, 3), 25)

        assert pricing.excess_guest_fee == Decimal("3000.00")
        assert pricing.total == Decimal("12000.00")

    def test_check_in_and_check_out_times_count_nights_by_date(
        self, calculator: PricingCalculator
    ):
        pricing = calculator.price(
            datetime(2026, 11, 2, 15, 0), datetime(2026, 11, 3, 13, 0), 2
        )

        assert pricing.nights == 1
        assert pricing.total == Decimal("9000.00")

    @pytest.mark.parametrize(
        "check_in, check_out",
        [
            (date(2026, 11, 6), date(2026, 11, 6)),
            (date(2026, 11, 6), date(2026, 11, 5)),
        ],
    )
    def test_invalid_range_is_rejected(
        self, calculator: PricingCalculator, check_in: date, check_out: date
    ):
        with pytest.raises(BusinessRuleValidationException):
            calculator.price(check_in, check_out, 10)

    @pytest.mark.parametrize("guest_count", [0, -1, 26])
    def test_invalid_guest_count_is_rejected(
        self, calculator: PricingCalculator, guest_count: int
    ):
        with pytest.raises(BusinessRuleValidationException):
            calculator.price(date(2026, 11, 6), date(2026, 11, 9), guest_count)

    def test_custom_rate_table(self):
        calculator = PricingCalculator(
            RateTable(
                weekday_rate=Decimal("5000"),
                weekend_rate=Decimal("7000"),
                included_guests=4,
                excess_guest_fee=Decimal("100"),
                max_guests=6,
            )
        )

        pricing = calculator.price(date(2026, 11, 6), date(2026, 11, 8), 6)

        # 5000 (пятница) + 7000 (суббота) + 2 гостя * 100 * 2 ночи
        assert pricing.total == Decimal("12400.00")
        with pytest.raises(BusinessRuleValidationException):
            calculator.price(date(2026, 11, 6), date(2026, 11, 8), 7)

"""
Расчет стоимости проживания.

Стоимость складывается из ночных тарифов (будни / выходные) и доплаты
за гостей сверх включенной вместимости.
"""

from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import List, Optional, Union

from pydantic import BaseModel, Field

from ..shared_kernel import BusinessRuleValidationException, to_money

WEEKEND_DAYS = (5, 6)  # суббота, воскресенье


class RateTable(BaseModel):
    """Тарифная сетка курорта."""

    weekday_rate: Decimal = Field(Decimal("9000"), ge=0)
    weekend_rate: Decimal = Field(Decimal("12000"), ge=0)
    included_guests: int = Field(15, ge=1)
    excess_guest_fee: Decimal = Field(Decimal("300"), ge=0)  # за гостя за ночь
    max_guests: int = Field(25, ge=1)

    def rate_for(self, night: date) -> Decimal:
        """Тариф за ночь, начинающуюся в указанную дату."""
        if night.weekday() in WEEKEND_DAYS:
            return self.weekend_rate
        return self.weekday_rate


class NightlyRate(BaseModel):
    """Тариф одной ночи."""

    night: date
    rate: Decimal
    is_weekend: bool


class StayPricing(BaseModel):
    """Результат расчета стоимости проживания."""

    nights: int
    nightly_rates: List[NightlyRate]
    base_total: Decimal
    excess_guest_fee: Decimal
    total: Decimal


class PricingCalculator:
    """Чистая функция расчета цены: без обращения к часам и хранилищу."""

    def __init__(self, rate_table: Optional[RateTable] = None):
        self.rate_table = rate_table or RateTable()

    def price(
        self,
        check_in: Union[date, datetime],
        check_out: Union[date, datetime],
        guest_count: int,
    ) -> StayPricing:
        """Рассчитывает стоимость за ночи в интервале [check_in, check_out)."""
        if _ends_before_start(check_in, check_out):
            raise BusinessRuleValidationException(
                "Дата выезда должна быть позже даты заезда"
            )
        if guest_count < 1:
            raise BusinessRuleValidationException(
                "Количество гостей должно быть не меньше 1"
            )
        if guest_count > self.rate_table.max_guests:
            raise BusinessRuleValidationException(
                f"Максимальное количество гостей - {self.rate_table.max_guests}"
            )

        first_night = _as_date(check_in)
        last_day = _as_date(check_out)
        nightly_rates = []
        night = first_night
        while night < last_day:
            nightly_rates.append(
                NightlyRate(
                    night=night,
                    rate=self.rate_table.rate_for(night),
                    is_weekend=night.weekday() in WEEKEND_DAYS,
                )
            )
            night += timedelta(days=1)

        if not nightly_rates:
            raise BusinessRuleValidationException(
                "Минимальный срок бронирования - 1 ночь"
            )

        nights = len(nightly_rates)
        base_total = sum((n.rate for n in nightly_rates), Decimal("0"))
        excess_guests = max(0, guest_count - self.rate_table.included_guests)
        excess_fee = self.rate_table.excess_guest_fee * excess_guests * nights

        return StayPricing(
            nights=nights,
            nightly_rates=nightly_rates,
            base_total=to_money(base_total),
            excess_guest_fee=to_money(excess_fee),
            total=to_money(base_total + excess_fee),
        )


def _ends_before_start(check_in, check_out) -> bool:
    if isinstance(check_in, datetime) and isinstance(check_out, datetime):
        return check_out <= check_in
    return _as_date(check_out) <= _as_date(check_in)


def _as_date(value: Union[date, datetime]) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value

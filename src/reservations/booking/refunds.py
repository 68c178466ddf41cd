"""
Политики возврата средств при отмене бронирования.

Поддерживаются две стратегии:
- ``deposit_tier``: возврат доли предоплаты (50% стоимости) по часам до заезда;
- ``full_amount_tier``: возврат доли полной стоимости по дням до заезда.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Dict, List, Tuple, Type

from pydantic import BaseModel

from ..shared_kernel import BusinessRuleValidationException, to_money


class RefundDecision(BaseModel):
    """Решение о возврате при отмене в заданный момент времени."""

    policy: str
    percentage: int
    amount: Decimal
    basis: Decimal  # сумма, от которой считается процент
    can_cancel: bool
    hours_until_check_in: float

    @property
    def eligible(self) -> bool:
        """Положен ли возврат вообще."""
        return self.amount > 0


class RefundPolicy(ABC):
    """Стратегия расчета возврата."""

    name: str = ""

    @abstractmethod
    def compute_refund(
        self, check_in: datetime, now: datetime, total_amount: Decimal
    ) -> RefundDecision:
        """Рассчитывает возврат для отмены в момент ``now``."""
        raise NotImplementedError

    def _decision(
        self,
        percentage: int,
        basis: Decimal,
        can_cancel: bool,
        hours_until_check_in: float,
    ) -> RefundDecision:
        amount = to_money(Decimal(basis) * Decimal(percentage) / Decimal(100))
        rounded_basis = to_money(basis)
        amount = min(max(amount, Decimal("0.00")), rounded_basis)
        return RefundDecision(
            policy=self.name,
            percentage=percentage,
            amount=amount,
            basis=rounded_basis,
            can_cancel=can_cancel,
            hours_until_check_in=hours_until_check_in,
        )


def hours_between(now: datetime, check_in: datetime) -> float:
    return (check_in - now) / timedelta(hours=1)


class DepositTierRefundPolicy(RefundPolicy):
    """Возврат доли предоплаты; отмена менее чем за 24 часа запрещена."""

    name = "deposit_tier"

    # (минимум часов до заезда, процент возврата предоплаты)
    TIERS: List[Tuple[int, int]] = [(48, 100), (24, 50)]
    MIN_NOTICE_HOURS = 24

    def __init__(self, deposit_ratio: Decimal = Decimal("0.5")):
        self.deposit_ratio = deposit_ratio

    def compute_refund(
        self, check_in: datetime, now: datetime, total_amount: Decimal
    ) -> RefundDecision:
        hours = hours_between(now, check_in)
        deposit = Decimal(total_amount) * self.deposit_ratio

        percentage = 0
        for min_hours, tier_percentage in self.TIERS:
            if hours >= min_hours:
                percentage = tier_percentage
                break

        return self._decision(
            percentage=percentage,
            basis=deposit,
            can_cancel=hours >= self.MIN_NOTICE_HOURS,
            hours_until_check_in=hours,
        )


class FullAmountTierRefundPolicy(RefundPolicy):
    """Возврат доли полной стоимости по дням до заезда; отмена всегда разрешена."""

    name = "full_amount_tier"

    # (минимум полных дней до заезда, процент возврата)
    TIERS: List[Tuple[int, int]] = [(60, 90), (30, 75), (7, 50)]
    FLOOR_PERCENTAGE = 25

    def compute_refund(
        self, check_in: datetime, now: datetime, total_amount: Decimal
    ) -> RefundDecision:
        hours = hours_between(now, check_in)
        days = (check_in - now) // timedelta(days=1)

        percentage = self.FLOOR_PERCENTAGE
        for min_days, tier_percentage in self.TIERS:
            if days >= min_days:
                percentage = tier_percentage
                break

        return self._decision(
            percentage=percentage,
            basis=Decimal(total_amount),
            can_cancel=True,
            hours_until_check_in=hours,
        )


REFUND_POLICIES: Dict[str, Type[RefundPolicy]] = {
    DepositTierRefundPolicy.name: DepositTierRefundPolicy,
    FullAmountTierRefundPolicy.name: FullAmountTierRefundPolicy,
}


def get_refund_policy(
    name: str, deposit_ratio: Decimal = Decimal("0.5")
) -> RefundPolicy:
    """Возвращает стратегию возврата по имени."""
    if name == DepositTierRefundPolicy.name:
        return DepositTierRefundPolicy(deposit_ratio=deposit_ratio)
    if name in REFUND_POLICIES:
        return REFUND_POLICIES[name]()
    raise BusinessRuleValidationException(f"Неизвестная политика возврата: {name}")

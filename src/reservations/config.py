"""
Настройки движка бронирования.

Значения читаются из переменных окружения с префиксом ``RESERVATIONS_``
(и из файла ``.env``, если он есть).
"""

from datetime import time
from decimal import Decimal
from functools import lru_cache
from typing import Optional

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ReservationSettings(BaseSettings):
    """Параметры тарифов, политик и внешних сервисов."""

    model_config = SettingsConfigDict(
        env_prefix="RESERVATIONS_",
        env_file=".env",
        extra="ignore",
    )

    # Тарифы
    weekday_rate: Decimal = Field(Decimal("9000"), ge=0)
    weekend_rate: Decimal = Field(Decimal("12000"), ge=0)
    included_guests: int = Field(15, ge=1)
    excess_guest_fee: Decimal = Field(Decimal("300"), ge=0)
    max_guests: int = Field(25, ge=1)

    # Оплата и отмена
    deposit_ratio: Decimal = Field(Decimal("0.5"), gt=0, le=1)
    refund_policy: str = "deposit_tier"

    # Время заезда и выезда
    check_in_time: time = time(15, 0)
    check_out_time: time = time(13, 0)

    # Правила жизненного цикла
    reschedule_min_notice_hours: int = Field(24, ge=0)
    max_pending_per_guest: int = Field(3, ge=1)
    pending_expiry_days: int = Field(7, ge=1)
    reminder_lead_days: int = Field(1, ge=0)

    # Платежный шлюз
    gateway_base_url: str = "https://api.paymongo.com/v1"
    gateway_secret_key: Optional[SecretStr] = None
    gateway_timeout_seconds: float = Field(10.0, gt=0)

    log_level: str = "INFO"

    @field_validator("refund_policy")
    @classmethod
    def known_refund_policy(cls, v: str) -> str:
        if v not in ("deposit_tier", "full_amount_tier"):
            raise ValueError(f"Неизвестная политика возврата: {v}")
        return v

    @field_validator("log_level")
    @classmethod
    def upper_log_level(cls, v: str) -> str:
        return v.upper()


@lru_cache
def get_settings() -> ReservationSettings:
    """Возвращает настройки приложения (кэшируются)."""
    return ReservationSettings()

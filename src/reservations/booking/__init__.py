"""
Модуль контекста бронирования (Booking Context).

Отвечает за жизненный цикл бронирования курорта, включая:
- Расчет стоимости и проверку пересечения дат
- Создание, подтверждение, отмену и перенос бронирований
- Расчет возврата средств при отмене
- Периодическое завершение и истечение бронирований
"""

from . import application, domain, interfaces, pricing, refunds

__all__ = [
    "domain",
    "pricing",
    "refunds",
    "application",
    "interfaces",
]

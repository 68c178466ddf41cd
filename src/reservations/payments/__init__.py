"""
Модуль контекста оплаты (Payments Context).

Отвечает за журнал подтверждений оплаты: прием подтверждений от гостей,
проверку администратором и доплату остатка при заезде.
"""

from . import domain, interfaces, application, infrastructure

__all__ = [
    "domain",
    "interfaces",
    "application",
    "infrastructure",
]

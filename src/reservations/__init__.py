"""
Движок бронирования курорта: жизненный цикл бронирования и проверка оплаты.
"""

__version__ = "0.1.0"

"""Промокоды, акции и оформление оплаты курсов."""

__version__ = "1.0.0"

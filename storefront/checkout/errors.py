NETWORK_ERROR_MESSAGE = "Ошибка сети. Попробуйте позже."


class CheckoutError(Exception):
    """Ошибка оформления оплаты. message показывается пользователю как есть."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(CheckoutError):
    """Не выполнено локальное условие, запрос не отправлялся."""


class RejectedByServer(CheckoutError):
    """Сервер ответил ошибкой (промокод недействителен, платеж отклонен)."""

    def __init__(self, message: str, status_code: int) -> None:
        super().__init__(message)
        self.status_code = status_code


class TransportError(CheckoutError):
    """Сеть недоступна или сервер вернул не JSON."""

    def __init__(self, message: str = NETWORK_ERROR_MESSAGE) -> None:
        super().__init__(message)

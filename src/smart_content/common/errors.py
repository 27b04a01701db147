"""
Единые ошибки и коды ошибок.

Назначение:
- предсказуемые коды для HTTP/WS/очередей/DLQ
- единый стиль исключений по проекту
"""

from __future__ import annotations

from dataclasses import dataclass


class ErrCode:
    # Общие
    UNKNOWN = "unknown"
    VALIDATION = "validation"
    UNAUTHORIZED = "unauthorized"
    NOT_FOUND = "not_found"

    # Провайдер генерации
    LLM_PROVIDER_ERROR = "llm_provider_error"
    LLM_EMPTY_RESULT = "llm_empty_result"

    # Инфра
    DB_ERROR = "db_error"
    QUEUE_FAULT = "queue_fault"
    BRIDGE_MISS = "bridge_miss"


@dataclass
class AppError(Exception):
    """
    Базовая ошибка приложения.
    - code: стабильный код ошибки
    - message: безопасное сообщение
    - details: доп. данные (без секретов/PII)
    """

    code: str
    message: str
    details: dict | None = None

    def __str__(self) -> str:  # pragma: no cover
        return f"{self.code}: {self.message}"


class ValidationError(AppError):
    def __init__(self, message: str = "Ошибка валидации", details: dict | None = None) -> None:
        super().__init__(ErrCode.VALIDATION, message, details)


class UnauthorizedError(AppError):
    def __init__(self, message: str = "Не авторизован", details: dict | None = None) -> None:
        super().__init__(ErrCode.UNAUTHORIZED, message, details)


class NotFoundError(AppError):
    def __init__(self, message: str = "Не найдено", details: dict | None = None) -> None:
        super().__init__(ErrCode.NOT_FOUND, message, details)


class ProviderError(AppError):
    """
    Ошибка внешнего провайдера генерации (транзиентная или постоянная).
    Воркер не различает их: повтор решает политика очереди.
    """

    def __init__(self, code: str, message: str, details: dict | None = None) -> None:
        super().__init__(code, message, details)


class QueueFaultError(AppError):
    """
    Инфраструктурный сбой очереди (enqueue/claim).
    На intake фатален для запроса: запись компенсируется, клиент получает 503.
    """

    def __init__(self, message: str = "Очередь недоступна", details: dict | None = None) -> None:
        super().__init__(ErrCode.QUEUE_FAULT, message, details)

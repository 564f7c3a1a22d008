"""
Пользовательские исключения для централизованной обработки ошибок
"""

from typing import Optional, Dict, Any


class BaseAppException(Exception):
    """Базовое исключение приложения"""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.error_code = error_code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)


# === Ошибки аутентификации ===
class AuthenticationError(BaseAppException):
    """Нет или неверная идентичность вызывающего"""

    def __init__(
        self,
        message: str = "Authentication failed",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, 401, "UNAUTHORIZED", details)


class AuthorizationError(BaseAppException):
    """Идентичность валидна, но не хватает статуса (verified/subscribed/paid)"""

    def __init__(
        self, message: str = "Access denied", details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, 403, "FORBIDDEN", details)


# === Ошибки валидации ===
class ValidationError(BaseAppException):
    """Ошибка валидации данных"""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, 400, "VALIDATION_ERROR", details)


class InvalidConfigurationError(BaseAppException):
    """Входные данные нарушают доменное правило (смены, скидки, места)"""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, 400, "INVALID_CONFIGURATION", details)


# === Ошибки ресурсов ===
class NotFoundError(BaseAppException):
    """Ресурс не найден или вне области администратора"""

    def __init__(
        self,
        resource: str,
        identifier: Any = None,
        error_code: str = "NOT_FOUND",
    ):
        if identifier is not None:
            message = f"{resource} with identifier '{identifier}' not found"
            details = {"resource": resource, "identifier": str(identifier)}
        else:
            message = f"{resource} not found"
            details = {"resource": resource}
        super().__init__(message, 404, error_code, details)


class SeatNotFoundError(NotFoundError):
    def __init__(self, seat_id: Any):
        super().__init__("Seat", seat_id, "SEAT_NOT_FOUND")


class StudentNotFoundError(NotFoundError):
    def __init__(self, student_id: Any):
        super().__init__("Student", student_id, "STUDENT_NOT_FOUND")


# === Конфликты состояния ===
class ConflictError(BaseAppException):
    """Операция противоречит текущему состоянию"""

    def __init__(
        self,
        message: str,
        error_code: str = "CONFLICT",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, 409, error_code, details)


class DuplicateError(ConflictError):
    """Ошибка дублирования данных"""

    def __init__(self, resource: str, field: str, value: Optional[str] = None):
        if value is None:
            message = f"{resource} with this {field} already exists"
        else:
            message = f"{resource} with {field} '{value}' already exists"
        details = {"resource": resource, "field": field, "value": value}
        super().__init__(message, "DUPLICATE_ERROR", details)


class ShiftsInUseError(ConflictError):
    """Смены нельзя менять, пока на них записаны студенты"""

    def __init__(self, action: str, enrolled_count: Optional[int] = None):
        message = f"Cannot {action} shifts with assigned students"
        details = {"action": action}
        if enrolled_count is not None:
            details["enrolled_students"] = enrolled_count
        super().__init__(message, "SHIFTS_IN_USE", details)


class SeatAlreadyReservedError(ConflictError):
    def __init__(self, seat_id: Optional[int] = None):
        super().__init__(
            "Seat is already allocated", "SEAT_ALREADY_RESERVED", {"seat_id": seat_id}
        )


class SeatOccupiedError(ConflictError):
    def __init__(self, seat_id: int):
        super().__init__(
            "Cannot delete a reserved seat", "SEAT_OCCUPIED", {"seat_id": seat_id}
        )


class SeatNotReservedError(ConflictError):
    def __init__(self, seat_id: int):
        super().__init__(
            "Seat is not reserved", "SEAT_NOT_RESERVED", {"seat_id": seat_id}
        )


class NoSeatAllocatedError(ConflictError):
    def __init__(self, student_id: int):
        super().__init__(
            "Student has no seat allocated",
            "NO_SEAT_ALLOCATED",
            {"student_id": student_id},
        )


class AlreadyConfiguredError(ConflictError):
    def __init__(self, resource: str, message: Optional[str] = None):
        super().__init__(
            message or f"{resource} is already configured",
            "ALREADY_CONFIGURED",
            {"resource": resource},
        )


class ConcurrentModificationError(ConflictError):
    """Конфигурация изменена параллельным запросом"""

    def __init__(self, resource: str):
        super().__init__(
            f"{resource} was modified by another request, reload and retry",
            "CONCURRENT_MODIFICATION",
            {"resource": resource},
        )


class DatabaseIntegrityError(ConflictError):
    """Ошибка целостности данных"""

    def __init__(self, constraint: str, details: Optional[Dict[str, Any]] = None):
        message = f"Database integrity constraint violated: {constraint}"
        error_details = {"constraint": constraint}
        if details:
            error_details.update(details)
        super().__init__(message, "DATABASE_INTEGRITY_ERROR", error_details)


# === Ошибки внешних систем (хранилище, платежный шлюз) ===
class UpstreamFailure(BaseAppException):
    """
    Сбой внешнего коллаборатора.

    consistency:
        "rolled_back"  - частичная запись откатилась чисто
        "inconsistent" - откат не удался или шлюз уже принял запись, нужна ручная сверка
    """

    def __init__(
        self,
        message: str,
        service: str = "storage",
        consistency: Optional[str] = None,
        status_code: int = 502,
        details: Optional[Dict[str, Any]] = None,
    ):
        error_details = {"service": service}
        if consistency:
            error_details["consistency"] = consistency
        if details:
            error_details.update(details)
        super().__init__(message, status_code, "UPSTREAM_FAILURE", error_details)


class DatabaseError(UpstreamFailure):
    """Ошибка базы данных"""

    def __init__(
        self,
        message: str = "Database operation failed",
        consistency: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, "storage", consistency, 502, details)


class DatabaseConnectionError(UpstreamFailure):
    """Ошибка подключения к базе данных"""

    def __init__(self, message: str = "Database connection failed"):
        super().__init__(message, "storage", status_code=503)


class DatabaseTimeoutError(UpstreamFailure):
    """Таймаут операции с базой данных"""

    def __init__(self, operation: str, timeout: float):
        message = f"Database operation '{operation}' timed out after {timeout}s"
        super().__init__(
            message,
            "storage",
            status_code=504,
            details={"operation": operation, "timeout": timeout},
        )


class ExternalServiceError(UpstreamFailure):
    """Ошибка внешнего сервиса"""

    def __init__(self, service: str, message: str = None):
        message = message or f"External service '{service}' error"
        super().__init__(message, service)


# === Ошибки конфигурации ===
class ConfigurationError(BaseAppException):
    """Ошибка конфигурации"""

    def __init__(self, parameter: str, message: str = None):
        message = (
            message or f"Configuration parameter '{parameter}' is invalid or missing"
        )
        details = {"parameter": parameter}
        super().__init__(message, 500, "CONFIGURATION_ERROR", details)

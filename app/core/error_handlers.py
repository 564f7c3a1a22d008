"""
Централизованные обработчики ошибок для FastAPI

Клиент всегда получает стабильный код ошибки и читаемое сообщение:
{"error": ..., "message": ..., "details": ..., "path": ...}
"""

import json
import logging
import traceback
from typing import Any, Dict, Optional, Union
from fastapi import Request, status
from starlette.exceptions import HTTPException
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import (
    SQLAlchemyError,
    IntegrityError,
    OperationalError,
    TimeoutError as PoolTimeoutError,
    DisconnectionError,
)
from asyncpg.exceptions import (
    PostgresError,
    ConnectionFailureError,
    ConnectionDoesNotExistError,
    TooManyConnectionsError,
)

from app.core.config import DEBUG, DB_POOL_TIMEOUT
from app.core.database import integrity_conflict
from app.core.exceptions import (
    BaseAppException,
    DatabaseError,
    DatabaseConnectionError,
    DatabaseTimeoutError,
)

logger = logging.getLogger(__name__)

# Значения этих полей не возвращаются в ответе 422
SECRET_FIELDS = frozenset({"password", "new_password", "otp", "access_token"})


def _error_response(
    request: Request,
    status_code: int,
    error: str,
    message: str,
    details: Optional[Dict[str, Any]] = None,
    headers: Optional[Dict[str, str]] = None,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "error": error,
            "message": message,
            "details": details or {},
            "path": request.url.path,
        },
        headers=headers,
    )


async def app_exception_handler(
    request: Request, exc: BaseAppException
) -> JSONResponse:
    """Доменные исключения: конфликты мест и смен, права, сбои хранилища"""

    if exc.details.get("consistency") == "inconsistent":
        log_level = logging.CRITICAL
    elif exc.status_code == status.HTTP_409_CONFLICT:
        # занятое место или запертые смены - штатный исход, не сбой
        log_level = logging.INFO
    elif exc.status_code < 500:
        log_level = logging.WARNING
    else:
        log_level = logging.ERROR

    logger.log(
        log_level,
        f"{exc.error_code}: {exc.message}",
        extra={
            "error_code": exc.error_code,
            "status_code": exc.status_code,
            "details": exc.details,
            "path": request.url.path,
            "method": request.method,
        },
    )

    return _error_response(
        request, exc.status_code, exc.error_code, exc.message, exc.details
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    logger.warning(
        f"HTTP exception: {exc.status_code} - {exc.detail}",
        extra={"status_code": exc.status_code, "path": request.url.path},
    )
    return _error_response(
        request,
        exc.status_code,
        "HTTP_ERROR",
        str(exc.detail),
        headers=getattr(exc, "headers", None),
    )


def _safe_input(field: str, value: Any) -> Any:
    if value is None:
        return None
    if field.rsplit(" -> ", 1)[-1] in SECRET_FIELDS:
        return "***"
    try:
        json.dumps(value)
        return value
    except (TypeError, ValueError):
        return str(value)


async def validation_exception_handler(
    request: Request, exc: Union[RequestValidationError, PydanticValidationError]
) -> JSONResponse:
    """Ошибки валидации тела и параметров запроса"""

    fields = []
    for error in exc.errors():
        location = " -> ".join(str(loc) for loc in error.get("loc", []))
        fields.append(
            {
                "field": location,
                "message": error.get("msg", "Validation error"),
                "type": error.get("type", "value_error"),
                "input": _safe_input(location, error.get("input")),
            }
        )

    logger.warning(
        f"Validation error: {len(fields)} field(s)",
        extra={"errors": fields, "path": request.url.path, "method": request.method},
    )

    return _error_response(
        request,
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        "VALIDATION_ERROR",
        f"Validation failed for {len(fields)} field(s)",
        {"fields": fields},
    )


async def database_exception_handler(
    request: Request, exc: SQLAlchemyError
) -> JSONResponse:
    """Ошибки SQLAlchemy, вылетевшие вне atomic()"""

    if isinstance(exc, IntegrityError):
        app_exc = integrity_conflict(exc, request.url.path)
    elif isinstance(exc, (OperationalError, DisconnectionError)):
        app_exc = DatabaseConnectionError("Database connection lost")
    elif isinstance(exc, PoolTimeoutError):
        app_exc = DatabaseTimeoutError("database_operation", DB_POOL_TIMEOUT)
    else:
        app_exc = DatabaseError("Database operation failed")

    logger.error(
        f"Database exception: {type(exc).__name__} - {str(exc)}",
        extra={
            "exception_type": type(exc).__name__,
            "path": request.url.path,
            "traceback": traceback.format_exc(),
        },
    )
    return await app_exception_handler(request, app_exc)


async def postgres_exception_handler(
    request: Request, exc: PostgresError
) -> JSONResponse:
    """asyncpg ошибки, не обернутые SQLAlchemy"""

    if isinstance(exc, (ConnectionFailureError, ConnectionDoesNotExistError)):
        app_exc = DatabaseConnectionError("PostgreSQL connection failed")
    elif isinstance(exc, TooManyConnectionsError):
        app_exc = DatabaseConnectionError("Too many database connections")
    else:
        app_exc = DatabaseError(
            "PostgreSQL error", details={"postgres_code": getattr(exc, "sqlstate", None)}
        )

    logger.error(
        f"PostgreSQL exception: {type(exc).__name__} - {str(exc)}",
        extra={"exception_type": type(exc).__name__, "path": request.url.path},
    )
    return await app_exception_handler(request, app_exc)


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        f"Unhandled exception: {type(exc).__name__} - {str(exc)}",
        extra={
            "exception_type": type(exc).__name__,
            "path": request.url.path,
            "method": request.method,
            "traceback": traceback.format_exc(),
        },
    )

    # В production не показываем детали ошибки
    details = (
        {"exception_type": type(exc).__name__, "traceback": traceback.format_exc()}
        if DEBUG
        else {}
    )
    return _error_response(
        request,
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "INTERNAL_SERVER_ERROR",
        "An unexpected error occurred",
        details,
    )


def setup_exception_handlers(app):
    """Регистрация всех обработчиков исключений"""

    app.add_exception_handler(BaseAppException, app_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)

    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(PydanticValidationError, validation_exception_handler)

    app.add_exception_handler(SQLAlchemyError, database_exception_handler)
    app.add_exception_handler(PostgresError, postgres_exception_handler)

    app.add_exception_handler(Exception, general_exception_handler)

import asyncio
import logging
from contextlib import asynccontextmanager
from functools import wraps
from typing import Callable, TypeVar, Any, AsyncGenerator, AsyncIterator, Dict
from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base
from sqlalchemy.orm.exc import StaleDataError
from sqlalchemy.sql import text
from sqlalchemy.exc import (
    SQLAlchemyError,
    IntegrityError,
    OperationalError,
    DisconnectionError,
    TimeoutError as PoolTimeoutError,
)

from .config import (
    DATABASE_URL,
    DB_RETRY_ATTEMPTS,
    DB_RETRY_DELAY,
    DB_RETRY_BACKOFF_FACTOR,
    DB_POOL_TIMEOUT,
    DB_COMMAND_TIMEOUT,
)
from .exceptions import (
    BaseAppException,
    ConcurrentModificationError,
    ConflictError,
    DatabaseConnectionError,
    DatabaseError,
    DatabaseIntegrityError,
    DatabaseTimeoutError,
    DuplicateError,
    SeatAlreadyReservedError,
    ShiftsInUseError,
)

logger = logging.getLogger(__name__)

Base = declarative_base()

# Типы для retry decorator
F = TypeVar("F", bound=Callable[..., Any])


def db_retry(
    max_attempts: int = None,
    delay: float = None,
    backoff_factor: float = DB_RETRY_BACKOFF_FACTOR,
    exceptions: tuple = None,
) -> Callable[[F], F]:
    """
    Decorator для повторных попыток идемпотентных операций с базой данных.

    Записи через него не проходят: повтор записи решает вызывающий.

    Args:
        max_attempts: Максимальное количество попыток (по умолчанию из config)
        delay: Начальная задержка между попытками (по умолчанию из config)
        backoff_factor: Множитель для увеличения задержки
        exceptions: Кортеж исключений для повтора
    """
    if max_attempts is None:
        max_attempts = DB_RETRY_ATTEMPTS

    if delay is None:
        delay = DB_RETRY_DELAY

    if exceptions is None:
        exceptions = (
            OperationalError,
            DisconnectionError,
            PoolTimeoutError,
            ConnectionError,
        )

    def decorator(func: F) -> F:
        @wraps(func)
        async def async_wrapper(*args, **kwargs):
            current_delay = delay
            last_exception = None

            for attempt in range(max_attempts):
                try:
                    return await func(*args, **kwargs)

                except exceptions as e:
                    last_exception = e

                    if attempt == max_attempts - 1:
                        break

                    logger.warning(
                        f"Database operation failed (attempt {attempt + 1}/{max_attempts}): {str(e)}",
                        extra={
                            "function": func.__name__,
                            "attempt": attempt + 1,
                            "max_attempts": max_attempts,
                            "exception_type": type(e).__name__,
                        },
                    )

                    await asyncio.sleep(current_delay)
                    current_delay *= backoff_factor

            logger.error(
                f"Database operation failed after {max_attempts} attempts: {str(last_exception)}",
                extra={
                    "function": func.__name__,
                    "max_attempts": max_attempts,
                    "final_exception": str(last_exception),
                },
            )

            if isinstance(last_exception, PoolTimeoutError):
                raise DatabaseTimeoutError(func.__name__, DB_POOL_TIMEOUT)
            raise DatabaseConnectionError(
                f"Database connection failed after {max_attempts} attempts"
            )

        return async_wrapper

    return decorator


class DatabaseManager:
    """
    Хендл хранилища с явным жизненным циклом.

    Создается при старте приложения и кладется в app.state.db,
    закрывается на shutdown.
    """

    def __init__(self, url: str = DATABASE_URL, **engine_options):
        self.url = url
        options = self._default_engine_options(url)
        options.update(engine_options)
        self.engine = create_async_engine(url, **options)
        self.session_factory = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )

    @staticmethod
    def _default_engine_options(url: str) -> Dict[str, Any]:
        if url.startswith("sqlite"):
            return {"echo": False}

        return {
            "echo": False,
            "pool_size": 20,
            "max_overflow": 10,
            "pool_timeout": DB_POOL_TIMEOUT,
            "pool_recycle": 3600,
            "pool_pre_ping": True,
            # asyncpg: ни один запрос не висит дольше command_timeout
            "connect_args": {"command_timeout": DB_COMMAND_TIMEOUT},
        }

    def session(self) -> AsyncSession:
        return self.session_factory()

    @db_retry()
    async def create_tables(self):
        """Создание всех таблиц в базе данных"""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables created successfully")

    @db_retry()
    async def check_connection(self):
        """Проверка соединения с базой данных"""
        async with self.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        logger.info("Database connection check successful")
        return True

    async def close_connections(self):
        """Закрытие всех соединений с базой данных"""
        try:
            await self.engine.dispose()
            logger.info("Database connections closed successfully")
        except Exception as e:
            logger.error(f"Error closing database connections: {str(e)}")


async def get_session(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency для получения сессии базы данных из хендла приложения
    """
    db: DatabaseManager = request.app.state.db
    session = db.session()
    try:
        yield session
    except Exception as e:
        await session.rollback()
        logger.error(f"Session error: {str(e)}")
        raise
    finally:
        await session.close()


def integrity_conflict(
    exc: IntegrityError, operation: str = "database_operation"
) -> ConflictError:
    """
    Нарушение ограничения БД -> доменный конфликт.

    Сюда доходят гонки, которые проверка перед записью не увидела:
    место заняли параллельно, одинаковые номера мест при двух
    одновременных добавлениях, удаление смены с только что записанным студентом.
    Текст ищется и в имени ограничения (asyncpg), и в сообщении (SQLite).
    """
    orig = getattr(exc, "orig", None)
    constraint = getattr(orig, "constraint_name", None)
    text_ = f"{constraint or ''} {orig}".lower()

    if "foreign key" in text_ or "fkey" in text_:
        if "shift_id" in text_:
            return ShiftsInUseError("delete")
    elif "reserved_by" in text_ or "seat_id" in text_:
        return SeatAlreadyReservedError()
    elif "email" in text_:
        return DuplicateError("Account", "email")
    elif "seat_number" in text_ or "uq_seats_admin_number" in text_:
        return ConcurrentModificationError("Seats")
    elif any(m in text_ for m in ("shift_number", "min_shifts", "shift_configs", "uq_shift")):
        return ConcurrentModificationError("Shifts")
    elif "gateway_" in text_:
        return DuplicateError("Subscription", "gateway id")

    return DatabaseIntegrityError(constraint or "unknown", {"operation": operation})


async def _rollback(session: AsyncSession, operation: str, cause: Exception) -> None:
    """Откат транзакции; если откат не удался - данные могли остаться несогласованными"""
    try:
        await session.rollback()
    except (SQLAlchemyError, OSError, asyncio.TimeoutError) as rollback_exc:
        logger.critical(
            f"Rollback failed for {operation}, manual reconciliation required",
            extra={
                "operation": operation,
                "original_error": str(cause),
                "rollback_error": str(rollback_exc),
                "category": "consistency",
            },
        )
        raise DatabaseError(
            f"{operation} failed and could not be rolled back",
            consistency="inconsistent",
            details={"operation": operation},
        ) from rollback_exc


@asynccontextmanager
async def atomic(session: AsyncSession, operation: str) -> AsyncIterator[AsyncSession]:
    """
    Одна логическая транзакция для многошаговой записи.

    Все шаги внутри блока фиксируются одним commit. При любой ошибке
    транзакция откатывается; сбои хранилища превращаются в UpstreamFailure
    с пометкой consistency="rolled_back" (или "inconsistent", если откат не прошел).
    """
    try:
        yield session
        await session.commit()

    except BaseAppException as e:
        await _rollback(session, operation, e)
        raise

    except StaleDataError as e:
        await _rollback(session, operation, e)
        logger.warning(
            f"Concurrent modification detected in {operation}",
            extra={"operation": operation},
        )
        raise ConcurrentModificationError(operation) from e

    except IntegrityError as e:
        await _rollback(session, operation, e)
        raise integrity_conflict(e, operation) from e

    except asyncio.TimeoutError as e:
        await _rollback(session, operation, e)
        raise DatabaseTimeoutError(operation, DB_COMMAND_TIMEOUT) from e

    except SQLAlchemyError as e:
        await _rollback(session, operation, e)
        logger.error(
            f"Storage failure in {operation}, transaction rolled back: {str(e)}",
            extra={"operation": operation, "exception_type": type(e).__name__},
        )
        raise DatabaseError(
            f"{operation} failed", consistency="rolled_back"
        ) from e


# Декораторы для CRUD операций
def db_operation(func: F) -> F:
    """
    Декоратор для CRUD операций с логированием
    """

    @wraps(func)
    async def wrapper(*args, **kwargs):
        operation_name = func.__name__

        try:
            logger.debug(f"Starting database operation: {operation_name}")
            result = await func(*args, **kwargs)
            logger.debug(f"Database operation completed: {operation_name}")
            return result

        except SQLAlchemyError as e:
            logger.error(
                f"SQLAlchemy error in {operation_name}: {str(e)}",
                extra={"operation": operation_name, "exception_type": type(e).__name__},
            )
            raise

    return wrapper

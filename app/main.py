import asyncio
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from slowapi.errors import RateLimitExceeded

from app.core.limits import limiter, rate_limit_handler
from app.core.init_db import init_database
from app.core.error_handlers import setup_exception_handlers
from app.core.database import DatabaseManager
from app.core.exceptions import BaseAppException
from app.core.middleware import setup_middleware
from app.core.health import router as health_router
from app.core.logging_utils import (
    setup_logging,
    get_logger,
    log_business_event,
    error_tracker,
)
from app.core.config import (
    validate_config,
    APP_NAME,
    APP_VERSION,
    DEBUG,
    LOG_LEVEL,
    LOG_FORMAT,
    ALLOWED_ORIGINS,
    CLEANUP_INTERVAL_SECONDS,
)
from sqlalchemy.exc import SQLAlchemyError

from app.admin.crud.subscriptions import cleanup_subscriptions
from app.admin.routers import auth as admin_auth
from app.admin.routers import shifts as admin_shifts
from app.admin.routers import seats as admin_seats
from app.admin.routers import students as admin_students
from app.admin.routers import subscriptions
from app.students.routers import users as student_users

# Настройка системы логирования
setup_logging(LOG_LEVEL, LOG_FORMAT)
logger = get_logger(__name__)


async def run_cleanup_loop(db: DatabaseManager, interval: int):
    """Периодическая очистка зависших подписок"""
    while True:
        await asyncio.sleep(interval)
        try:
            async with db.session() as session:
                await cleanup_subscriptions(session)
        except (BaseAppException, SQLAlchemyError) as e:
            logger.error(f"Subscription cleanup failed: {str(e)}")
            error_tracker.track_error("CLEANUP_ERROR", str(e), {"component": "cleanup"})


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Управление жизненным циклом приложения"""

    logger.info(f"Starting {APP_NAME} v{APP_VERSION}")
    db = DatabaseManager()
    app.state.db = db
    cleanup_task = None

    try:
        validate_config()
        logger.info("Configuration validated")

        await init_database(db)
        logger.info("Database initialized")

        if CLEANUP_INTERVAL_SECONDS > 0:
            cleanup_task = asyncio.create_task(
                run_cleanup_loop(db, CLEANUP_INTERVAL_SECONDS)
            )

        log_business_event(
            "application_started",
            "system",
            0,
            {
                "version": APP_VERSION,
                "environment": "development" if DEBUG else "production",
            },
        )

    except Exception as e:
        logger.error(f"Application startup failed: {str(e)}")
        error_tracker.track_error(
            "STARTUP_ERROR",
            str(e),
            {"component": "application_startup", "version": APP_VERSION},
        )
        await db.close_connections()
        raise

    yield

    logger.info("Shutting down application...")

    if cleanup_task is not None:
        cleanup_task.cancel()
        try:
            await cleanup_task
        except asyncio.CancelledError:
            logger.debug("Cleanup task stopped")

    await db.close_connections()
    logger.info("Application shutdown completed")


app = FastAPI(
    title=APP_NAME,
    description="Study room seats, shifts and student fees",
    version=APP_VERSION,
    lifespan=lifespan,
    debug=DEBUG,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

setup_exception_handlers(app)

setup_middleware(
    app,
    {
        "slow_request_threshold": 5.0,
        "exclude_paths": [
            "/health",
            "/api/v1/health",
            "/docs",
            "/openapi.json",
            "/redoc",
            "/favicon.ico",
        ],
    },
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_handler)

app.include_router(health_router)
app.include_router(health_router, prefix="/api/v1")
app.include_router(admin_auth.router, prefix="/api/v1")
app.include_router(admin_shifts.router, prefix="/api/v1")
app.include_router(admin_seats.router, prefix="/api/v1")
app.include_router(admin_students.router, prefix="/api/v1")
app.include_router(subscriptions.router, prefix="/api/v1")
app.include_router(student_users.router, prefix="/api/v1")

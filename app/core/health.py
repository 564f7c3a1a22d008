from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from app.core.config import APP_NAME, APP_VERSION
from app.core.database import DatabaseManager
from app.core.exceptions import BaseAppException
from app.core.logging_utils import error_tracker

router = APIRouter(tags=["Health"])


@router.get("/health")
async def health(request: Request):
    """Liveness plus a database round trip"""
    db: DatabaseManager = request.app.state.db
    try:
        await db.check_connection()
        database = "ok"
    except (BaseAppException, SQLAlchemyError, OSError):
        database = "unavailable"

    status_code = 200 if database == "ok" else 503
    return JSONResponse(
        status_code=status_code,
        content={
            "status": "ok" if status_code == 200 else "degraded",
            "app": APP_NAME,
            "version": APP_VERSION,
            "database": database,
            "error_counts": error_tracker.get_stats()["error_counts"],
        },
    )

import asyncio
import logging
import os
from typing import Optional

from sqlalchemy import select

from app.core.config import MASTER_ADMIN_EMAIL, MASTER_ADMIN_PASSWORD
from app.core.database import Base, DatabaseManager
from app.core.exceptions import ConfigurationError, DatabaseError
from app.core.security import hash_password
from app.core.validations import normalize_email

# Модели должны быть импортированы до create_all
from app.admin.models import Admin  # noqa: F401
from app.students.models import Student, StudentShift  # noqa: F401

logger = logging.getLogger(__name__)


async def ensure_master_admin(
    db: DatabaseManager,
    email: Optional[str] = MASTER_ADMIN_EMAIL,
    password: Optional[str] = MASTER_ADMIN_PASSWORD,
) -> Optional[Admin]:
    """Create (or promote) the master admin configured in the environment"""
    if not email or not password:
        logger.debug("MASTER_ADMIN_EMAIL not set, skipping master admin")
        return None

    email = normalize_email(email)
    async with db.session() as session:
        result = await session.execute(select(Admin).where(Admin.email == email))
        admin = result.scalar_one_or_none()

        if admin is None:
            admin = Admin(email=email, password=hash_password(password), name="Master")
            session.add(admin)
            logger.info(f"Master admin created: {email}")

        admin.is_master = True
        admin.is_verified = True
        admin.is_subscribed = True
        await session.commit()
        return admin


async def init_database(db: DatabaseManager):
    """Initialize database with tables and the master admin"""
    try:
        logger.info("Starting database initialization...")

        await db.check_connection()
        await db.create_tables()
        logger.info("Database tables created/verified")

        await ensure_master_admin(db)
        logger.info("Database initialization completed")

    except DatabaseError:
        raise
    except Exception as e:
        logger.error(f"Unexpected error during database initialization: {e}")
        raise DatabaseError(f"Database initialization failed: {str(e)}")


async def reset_database(db: DatabaseManager):
    """Drop and recreate all tables (development/testing only)"""
    environment = os.getenv("ENVIRONMENT", "production").lower()
    if environment not in ["development", "dev", "test"]:
        raise ConfigurationError(
            "ENVIRONMENT",
            "Database reset is only allowed in development or test environments",
        )

    logger.warning("RESETTING DATABASE - ALL DATA WILL BE LOST!")
    async with db.engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await init_database(db)
    logger.info("Database reset completed")


if __name__ == "__main__":
    import sys

    async def main():
        db = DatabaseManager()
        command = sys.argv[1] if len(sys.argv) > 1 else "init"
        try:
            if command == "init":
                await init_database(db)
            elif command == "reset":
                await reset_database(db)
            else:
                print(f"Unknown command: {command}")
                print("Available commands: init, reset")
                sys.exit(1)
        finally:
            await db.close_connections()

    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Database initialization cancelled by user")
    except Exception as e:
        logger.error(f"Database initialization failed: {e}")
        sys.exit(1)

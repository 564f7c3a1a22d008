from typing import Dict, Any, Optional
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from app.core.database import get_session
from app.core.jwt_auth import jwt_manager
from app.core.exceptions import AuthenticationError, AuthorizationError
from app.admin.models.admins import Admin
from app.students.models.students import Student

security = HTTPBearer(
    scheme_name="Bearer JWT",
    description="Access token returned by /auth/login",
    auto_error=False,
)


async def get_current_identity(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Dict[str, Any]:
    """Dependency: payload проверенного JWT"""
    if credentials is None or not credentials.credentials.strip():
        raise AuthenticationError("Authentication token is required")

    return jwt_manager.decode_token(credentials.credentials)


async def get_current_admin(
    identity: Dict[str, Any] = Depends(get_current_identity),
    db: AsyncSession = Depends(get_session),
) -> Admin:
    """
    Администратор из токена. Строка перечитывается из БД, поэтому
    отозванная подписка действует сразу, а не после истечения токена.
    """
    if identity.get("role") != "admin":
        raise AuthorizationError("Admin access required")

    result = await db.execute(select(Admin).where(Admin.id == identity["user_id"]))
    admin = result.scalar_one_or_none()
    if not admin:
        raise AuthenticationError("Admin account no longer exists")

    return admin


async def require_verified_admin(admin: Admin = Depends(get_current_admin)) -> Admin:
    if not admin.is_verified:
        raise AuthorizationError("Email verification required")
    return admin


async def require_subscribed_admin(
    admin: Admin = Depends(require_verified_admin),
) -> Admin:
    if not admin.is_subscribed:
        raise AuthorizationError("Active subscription required")
    return admin


async def require_master_admin(admin: Admin = Depends(require_verified_admin)) -> Admin:
    if not admin.is_master:
        raise AuthorizationError("Master admin access required")
    return admin


async def get_current_student(
    identity: Dict[str, Any] = Depends(get_current_identity),
    db: AsyncSession = Depends(get_session),
) -> Student:
    if identity.get("role") != "student":
        raise AuthorizationError("Student access required")

    result = await db.execute(select(Student).where(Student.id == identity["user_id"]))
    student = result.scalar_one_or_none()
    if not student:
        raise AuthenticationError("Student account no longer exists")

    return student


async def require_paid_student(student: Student = Depends(get_current_student)) -> Student:
    if not student.has_paid:
        raise AuthorizationError("Monthly fee has not been paid")
    return student

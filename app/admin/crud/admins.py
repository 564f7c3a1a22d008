from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple, Union
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from app.core.config import OTP_EXPIRE_MINUTES
from app.core.database import atomic, db_operation
from app.core.exceptions import (
    AlreadyConfiguredError,
    AuthenticationError,
    AuthorizationError,
    DuplicateError,
    NotFoundError,
    ValidationError,
)
from app.core.logging_utils import log_business_event
from app.core.security import generate_otp, hash_password, verify_password
from app.core.validations import as_utc, normalize_email
from app.admin.models.admins import Admin
from app.admin.schemas.auth import AdminProfileUpdate, AdminSignup
from app.students.models.students import Student


@db_operation
async def get_admin_by_email(db: AsyncSession, email: str) -> Optional[Admin]:
    result = await db.execute(select(Admin).where(Admin.email == normalize_email(email)))
    return result.scalar_one_or_none()


@db_operation
async def get_student_by_email(db: AsyncSession, email: str) -> Optional[Student]:
    result = await db.execute(
        select(Student).where(Student.email == normalize_email(email))
    )
    return result.scalar_one_or_none()


async def signup_admin(db: AsyncSession, data: AdminSignup) -> Tuple[Admin, str]:
    """
    Register an admin, or restart verification of an unverified one.

    Returns the admin and the fresh OTP; sending it is up to the caller.
    """
    email = normalize_email(data.email)
    otp = generate_otp()
    expires = datetime.now(timezone.utc) + timedelta(minutes=OTP_EXPIRE_MINUTES)

    async with atomic(db, "signup_admin"):
        if await get_student_by_email(db, email):
            raise DuplicateError("Student", "email", email)

        admin = await get_admin_by_email(db, email)
        if admin and admin.is_verified:
            raise AlreadyConfiguredError("Admin", f"Admin {email} is already registered")

        if admin is None:
            admin = Admin(email=email)
            db.add(admin)

        admin.password = hash_password(data.password)
        admin.name = data.name
        admin.business_name = data.business_name
        admin.mobile_no = data.mobile_no
        admin.otp = otp
        admin.otp_expires = expires
        await db.flush()

    log_business_event("admin_signup", "admin", admin.id, {"email": email})
    return admin, otp


def _check_otp(account: Union[Admin, Student], otp: str) -> None:
    if not account.otp or account.otp != otp.strip():
        raise ValidationError("Invalid OTP")

    expires = as_utc(account.otp_expires)
    if expires is None or expires < datetime.now(timezone.utc):
        raise ValidationError("OTP has expired")


async def verify_otp(db: AsyncSession, email: str, otp: str) -> Admin:
    email = normalize_email(email)

    async with atomic(db, "verify_otp"):
        admin = await get_admin_by_email(db, email)
        if not admin:
            raise NotFoundError("Admin", email)

        if admin.is_verified:
            raise AlreadyConfiguredError("Admin", "Email is already verified")

        _check_otp(admin, otp)

        admin.is_verified = True
        admin.otp = None
        admin.otp_expires = None

    log_business_event("admin_verified", "admin", admin.id, {"email": email})
    return admin


async def authenticate(
    db: AsyncSession, email: str, password: str
) -> Tuple[str, Union[Admin, Student]]:
    """
    Check credentials of an admin or a student.

    Returns ("admin" | "student", row). Unknown email and wrong password
    fail the same way.
    """
    admin = await get_admin_by_email(db, email)
    if admin and verify_password(password, admin.password):
        return "admin", admin

    student = await get_student_by_email(db, email)
    if student and verify_password(password, student.password):
        return "student", student

    raise AuthenticationError("Invalid email or password")


async def update_admin_profile(
    db: AsyncSession, admin: Admin, data: AdminProfileUpdate
) -> Admin:
    fields = data.model_dump(exclude_unset=True)

    async with atomic(db, "update_admin_profile"):
        for field, value in fields.items():
            setattr(admin, field, value)

    log_business_event(
        "admin_profile_updated", "admin", admin.id, {"fields": sorted(fields.keys())}
    )
    return admin


async def _get_account(db: AsyncSession, email: str) -> Tuple[str, Union[Admin, Student]]:
    admin = await get_admin_by_email(db, email)
    if admin:
        return "admin", admin

    student = await get_student_by_email(db, email)
    if student:
        return "student", student

    raise NotFoundError("Account", email)


async def request_password_reset(
    db: AsyncSession, email: str
) -> Tuple[Union[Admin, Student], str]:
    """
    Забытый пароль: новый OTP на аккаунт администратора или студента.

    Сбросить пароль можно только подтвержденному аккаунту. Отправка кода
    на почту остается вызывающему.
    """
    email = normalize_email(email)
    otp = generate_otp()

    async with atomic(db, "request_password_reset"):
        role, account = await _get_account(db, email)
        if not account.is_verified:
            raise AuthorizationError("Account must be verified first")

        account.otp = otp
        account.otp_expires = datetime.now(timezone.utc) + timedelta(
            minutes=OTP_EXPIRE_MINUTES
        )

    log_business_event("password_reset_requested", role, account.id, {"email": email})
    return account, otp


async def reset_password(
    db: AsyncSession, email: str, otp: str, new_password: str
) -> Union[Admin, Student]:
    """Проверить OTP сброса и сохранить новый bcrypt-хеш; код одноразовый"""
    email = normalize_email(email)

    async with atomic(db, "reset_password"):
        role, account = await _get_account(db, email)
        if not account.is_verified:
            raise AuthorizationError("Account must be verified first")

        _check_otp(account, otp)

        account.password = hash_password(new_password)
        account.otp = None
        account.otp_expires = None

    log_business_event("password_reset", role, account.id, {"email": email})
    return account

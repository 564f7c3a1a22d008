from fastapi import APIRouter, BackgroundTasks, Depends, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_session
from app.core.limits import limiter
from app.core.jwt_auth import jwt_manager
from app.core.email_sender import send_otp_email
from app.core.dependencies import get_current_admin
from app.admin.models.admins import Admin
from app.admin.schemas.auth import (
    AdminSignup,
    OtpVerify,
    LoginRequest,
    TokenResponse,
    AdminRead,
    AdminProfileUpdate,
    ForgotPasswordRequest,
    PasswordReset,
)
from app.admin.crud.admins import (
    signup_admin,
    verify_otp,
    authenticate,
    update_admin_profile,
    request_password_reset,
    reset_password,
)
from app.admin.schemas.seats import MessageResponse

router = APIRouter(prefix="/auth", tags=["Auth"])


@router.post("/signup", response_model=MessageResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit("5/minute")
async def signup(
    request: Request,
    data: AdminSignup,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_session),
):
    """
    Register an admin account.

    A 6-digit code is sent to the email; the account is usable for
    management only after `/auth/verify-otp`.
    """
    admin, otp = await signup_admin(db, data)
    background_tasks.add_task(send_otp_email, admin.email, otp)
    return {"message": "Verification code sent to email"}


@router.post("/verify-otp", response_model=TokenResponse)
@limiter.limit("10/minute")
async def verify_email(
    request: Request,
    data: OtpVerify,
    db: AsyncSession = Depends(get_session),
):
    admin = await verify_otp(db, data.email, data.otp)
    return _admin_token(admin)


@router.post("/login", response_model=TokenResponse)
@limiter.limit("10/minute")
async def login(
    request: Request,
    data: LoginRequest,
    db: AsyncSession = Depends(get_session),
):
    """Login for admins and students with email and password"""
    role, user = await authenticate(db, data.email, data.password)

    if role == "admin":
        return _admin_token(user)

    token = jwt_manager.create_access_token(
        user.id, user.email, "student", {"has_paid": user.has_paid}
    )
    return {"access_token": token, "role": "student", "user_id": user.id}


@router.post("/forgot-password", response_model=MessageResponse)
@limiter.limit("5/minute")
async def forgot_password(
    request: Request,
    data: ForgotPasswordRequest,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_session),
):
    """Send a password reset code to an admin or student email"""
    account, otp = await request_password_reset(db, data.email)
    background_tasks.add_task(send_otp_email, account.email, otp)
    return {"message": "Password reset code sent to email"}


@router.post("/reset-password", response_model=MessageResponse)
@limiter.limit("10/minute")
async def confirm_password_reset(
    request: Request,
    data: PasswordReset,
    db: AsyncSession = Depends(get_session),
):
    await reset_password(db, data.email, data.otp, data.new_password)
    return {"message": "Password updated"}


@router.get("/me", response_model=AdminRead)
@limiter.limit("60/minute")
async def get_profile(request: Request, admin: Admin = Depends(get_current_admin)):
    return admin


@router.put("/me", response_model=AdminRead)
@limiter.limit("10/minute")
async def update_profile(
    request: Request,
    data: AdminProfileUpdate,
    admin: Admin = Depends(get_current_admin),
    db: AsyncSession = Depends(get_session),
):
    return await update_admin_profile(db, admin, data)


def _admin_token(admin: Admin) -> dict:
    token = jwt_manager.create_access_token(
        admin.id,
        admin.email,
        "admin",
        {
            "is_verified": admin.is_verified,
            "is_subscribed": admin.is_subscribed,
            "is_master": admin.is_master,
        },
    )
    return {"access_token": token, "role": "admin", "user_id": admin.id}

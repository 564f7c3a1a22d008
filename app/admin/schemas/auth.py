from datetime import datetime
from typing import Literal, Optional
from pydantic import BaseModel, EmailStr, Field, ConfigDict


class AdminSignup(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=6, max_length=128)
    name: Optional[str] = Field(None, max_length=200)
    business_name: Optional[str] = Field(None, max_length=200)
    mobile_no: Optional[str] = Field(None, max_length=20)


class OtpVerify(BaseModel):
    email: EmailStr
    otp: str = Field(..., min_length=4, max_length=10)


class ForgotPasswordRequest(BaseModel):
    email: EmailStr


class PasswordReset(BaseModel):
    """Код из письма forgot-password и новый пароль"""
    email: EmailStr
    otp: str = Field(..., min_length=4, max_length=10)
    new_password: str = Field(..., min_length=6, max_length=128)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    role: Literal["admin", "student"]
    user_id: int


class AdminRead(BaseModel):
    id: int
    email: str
    name: Optional[str] = None
    business_name: Optional[str] = None
    mobile_no: Optional[str] = None
    is_verified: bool
    is_subscribed: bool
    is_master: bool
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class AdminProfileUpdate(BaseModel):
    name: Optional[str] = Field(None, max_length=200)
    business_name: Optional[str] = Field(None, max_length=200)
    mobile_no: Optional[str] = Field(None, max_length=20)

from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from pydantic import BaseModel, EmailStr, Field


class StudentCreate(BaseModel):
    """Schema for enrolling a student"""
    name: str = Field(..., min_length=1, max_length=200)
    email: EmailStr
    shift_numbers: List[int] = Field(..., min_length=1)
    seat_id: Optional[int] = None


class StudentUpdate(BaseModel):
    """
    Partial update. An explicit ``seat_id: null`` frees the seat;
    leaving the field out keeps it.
    """
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    shift_numbers: Optional[List[int]] = Field(None, min_length=1)
    seat_id: Optional[int] = None


class StudentPaymentUpdate(BaseModel):
    has_paid: bool


class StudentRead(BaseModel):
    id: int
    admin_id: int
    name: str
    email: str
    is_verified: bool
    has_paid: bool
    seat_id: Optional[int] = None
    seat_number: Optional[int] = None
    monthly_fee: Decimal
    shift_numbers: List[int] = Field(default_factory=list)
    created_at: Optional[datetime] = None


class StudentListResponse(BaseModel):
    students: List[StudentRead]
    total: int
    page: int
    size: int
    pages: int


class StudentShiftWindow(BaseModel):
    shift_number: int
    start_time: str
    end_time: str

"""Student Schemas Package"""
from .students import (
    StudentCreate,
    StudentUpdate,
    StudentPaymentUpdate,
    StudentRead,
    StudentListResponse,
    StudentShiftWindow,
)

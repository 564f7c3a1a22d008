from typing import List
from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_session
from app.core.limits import limiter
from app.core.dependencies import require_paid_student
from app.admin.crud.students import student_to_dict
from app.students.models.students import Student
from app.students.schemas.students import StudentRead, StudentShiftWindow
from app.students.crud.users import get_student_profile, get_student_schedule

router = APIRouter(prefix="/students", tags=["Student profile"])


@router.get("/me", response_model=StudentRead)
@limiter.limit("60/minute")
async def get_me(
    request: Request,
    student: Student = Depends(require_paid_student),
    db: AsyncSession = Depends(get_session),
):
    """Profile of the logged-in student. Requires the monthly fee to be paid."""
    return student_to_dict(await get_student_profile(db, student.id))


@router.get("/me/shifts", response_model=List[StudentShiftWindow])
@limiter.limit("60/minute")
async def get_my_shifts(
    request: Request,
    student: Student = Depends(require_paid_student),
    db: AsyncSession = Depends(get_session),
):
    return await get_student_schedule(db, student.id)

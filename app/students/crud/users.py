from typing import Any, Dict, List
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy.orm import selectinload

from app.core.database import db_operation
from app.core.exceptions import StudentNotFoundError
from app.admin.models.shifts import Shift
from app.students.models.students import Student, StudentShift


@db_operation
async def get_student_profile(session: AsyncSession, student_id: int) -> Student:
    """Студент с загруженными сменами и местом"""
    result = await session.execute(
        select(Student)
        .where(Student.id == student_id)
        .options(
            selectinload(Student.shifts).selectinload(StudentShift.shift),
            selectinload(Student.seat),
        )
        .execution_options(populate_existing=True)
    )
    student = result.scalar_one_or_none()

    if not student:
        raise StudentNotFoundError(student_id)

    return student


@db_operation
async def get_student_schedule(session: AsyncSession, student_id: int) -> List[Dict[str, Any]]:
    """Окна смен, на которые записан студент"""
    result = await session.execute(
        select(Shift)
        .join(StudentShift, StudentShift.shift_id == Shift.id)
        .where(StudentShift.student_id == student_id)
        .order_by(Shift.shift_number)
    )
    return [
        {
            "shift_number": shift.shift_number,
            "start_time": shift.start_time.strftime("%H:%M"),
            "end_time": shift.end_time.strftime("%H:%M"),
        }
        for shift in result.scalars().all()
    ]

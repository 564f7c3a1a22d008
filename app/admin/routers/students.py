import math
from fastapi import APIRouter, Depends, Path, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_session
from app.core.limits import limiter
from app.core.dependencies import require_subscribed_admin
from app.admin.models.admins import Admin
from app.admin.schemas.seats import MessageResponse
from app.students.schemas.students import (
    StudentCreate,
    StudentUpdate,
    StudentPaymentUpdate,
    StudentRead,
    StudentListResponse,
)
from app.admin.crud.students import (
    enroll_student,
    update_enrollment,
    remove_student,
    get_student,
    list_students,
    set_payment_status,
    student_to_dict,
)

router = APIRouter(prefix="/admin/students", tags=["Students"])


@router.post("/", response_model=StudentRead, status_code=status.HTTP_201_CREATED)
@limiter.limit("30/minute")
async def enroll(
    request: Request,
    data: StudentCreate,
    admin: Admin = Depends(require_subscribed_admin),
    db: AsyncSession = Depends(get_session),
):
    """
    Enroll a student.

    - **shift_numbers**: distinct configured shift numbers; the monthly fee
      is computed from their fees and the matching discount
    - **seat_id**: optional free seat to reserve

    The student logs in with the default password.
    """
    student = await enroll_student(db, admin.id, data)
    return student_to_dict(student)


@router.get("/", response_model=StudentListResponse)
@limiter.limit("60/minute")
async def list_enrolled(
    request: Request,
    page: int = Query(1, ge=1, description="Page number starting from 1"),
    size: int = Query(20, ge=1, le=100, description="Number of items per page"),
    admin: Admin = Depends(require_subscribed_admin),
    db: AsyncSession = Depends(get_session),
):
    skip = (page - 1) * size
    students, total = await list_students(db, admin.id, skip=skip, limit=size)

    return {
        "students": [student_to_dict(s) for s in students],
        "total": total,
        "page": page,
        "size": size,
        "pages": math.ceil(total / size) if total > 0 else 0,
    }


@router.get("/{student_id}", response_model=StudentRead)
@limiter.limit("60/minute")
async def get_enrolled(
    request: Request,
    student_id: int = Path(..., gt=0),
    admin: Admin = Depends(require_subscribed_admin),
    db: AsyncSession = Depends(get_session),
):
    return student_to_dict(await get_student(db, admin.id, student_id))


@router.put("/{student_id}", response_model=StudentRead)
@limiter.limit("30/minute")
async def update_enrolled(
    request: Request,
    data: StudentUpdate,
    student_id: int = Path(..., gt=0),
    admin: Admin = Depends(require_subscribed_admin),
    db: AsyncSession = Depends(get_session),
):
    student = await update_enrollment(db, admin.id, student_id, data)
    return student_to_dict(student)


@router.patch("/{student_id}/payment", response_model=StudentRead)
@limiter.limit("30/minute")
async def update_payment(
    request: Request,
    data: StudentPaymentUpdate,
    student_id: int = Path(..., gt=0),
    admin: Admin = Depends(require_subscribed_admin),
    db: AsyncSession = Depends(get_session),
):
    student = await set_payment_status(db, admin.id, student_id, data.has_paid)
    return student_to_dict(student)


@router.delete("/{student_id}", response_model=MessageResponse)
@limiter.limit("10/minute")
async def remove(
    request: Request,
    student_id: int = Path(..., gt=0),
    admin: Admin = Depends(require_subscribed_admin),
    db: AsyncSession = Depends(get_session),
):
    await remove_student(db, admin.id, student_id)
    return {"message": f"Student {student_id} removed"}

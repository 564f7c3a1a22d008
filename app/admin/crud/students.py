from functools import lru_cache
from typing import Any, Dict, List, Tuple
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy.orm import selectinload
from sqlalchemy import and_, delete, func

from app.core.config import DEFAULT_STUDENT_PASSWORD
from app.core.database import atomic, db_operation
from app.core.exceptions import DuplicateError, StudentNotFoundError
from app.core.logging_utils import log_business_event
from app.core.security import hash_password
from app.core.validations import normalize_email
from app.admin.crud.seats import free_seat, get_seat_for_admin, reserve_seat
from app.admin.crud.shifts import calculate_fee, get_shifts_by_numbers
from app.admin.models.admins import Admin
from app.students.models.students import Student, StudentShift
from app.students.schemas.students import StudentCreate, StudentUpdate


@lru_cache(maxsize=1)
def _default_password_hash() -> str:
    return hash_password(DEFAULT_STUDENT_PASSWORD)


async def ensure_email_available(db: AsyncSession, email: str) -> None:
    """Email is unique across students and admins"""
    student = await db.execute(select(Student.id).where(Student.email == email))
    if student.scalar_one_or_none() is not None:
        raise DuplicateError("Student", "email", email)

    admin = await db.execute(select(Admin.id).where(Admin.email == email))
    if admin.scalar_one_or_none() is not None:
        raise DuplicateError("Admin", "email", email)


def student_to_dict(student: Student) -> Dict[str, Any]:
    """Student with shift numbers and seat number; shifts and seat must be loaded"""
    return {
        "id": student.id,
        "admin_id": student.admin_id,
        "name": student.name,
        "email": student.email,
        "is_verified": student.is_verified,
        "has_paid": student.has_paid,
        "seat_id": student.seat_id,
        "seat_number": student.seat.seat_number if student.seat else None,
        "monthly_fee": student.monthly_fee,
        "shift_numbers": sorted(link.shift.shift_number for link in student.shifts),
        "created_at": student.created_at,
    }


def _with_details(query):
    return query.options(
        selectinload(Student.shifts).selectinload(StudentShift.shift),
        selectinload(Student.seat),
    ).execution_options(populate_existing=True)


@db_operation
async def get_student(db: AsyncSession, admin_id: int, student_id: int) -> Student:
    result = await db.execute(
        _with_details(
            select(Student).where(
                and_(Student.id == student_id, Student.admin_id == admin_id)
            )
        )
    )
    student = result.scalar_one_or_none()

    if not student:
        raise StudentNotFoundError(student_id)

    return student


@db_operation
async def list_students(
    db: AsyncSession, admin_id: int, skip: int = 0, limit: int = 50
) -> Tuple[List[Student], int]:
    total_result = await db.execute(
        select(func.count(Student.id)).where(Student.admin_id == admin_id)
    )
    total = total_result.scalar() or 0

    result = await db.execute(
        _with_details(
            select(Student)
            .where(Student.admin_id == admin_id)
            .order_by(Student.created_at.desc(), Student.id.desc())
            .offset(skip)
            .limit(limit)
        )
    )
    return list(result.scalars().all()), total


async def enroll_student(db: AsyncSession, admin_id: int, data: StudentCreate) -> Student:
    """
    Create a student on the selected shifts, optionally on a seat.

    The student row, shift links, fee and seat reservation commit together.
    """
    email = normalize_email(data.email)

    async with atomic(db, "enroll_student"):
        await ensure_email_available(db, email)
        shifts = await get_shifts_by_numbers(db, admin_id, data.shift_numbers)
        fee = await calculate_fee(db, admin_id, shifts)

        student = Student(
            admin_id=admin_id,
            name=data.name.strip(),
            email=email,
            password=_default_password_hash(),
            is_verified=True,
            has_paid=False,
            monthly_fee=fee,
        )
        db.add(student)
        await db.flush()

        db.add_all([StudentShift(student_id=student.id, shift_id=s.id) for s in shifts])

        if data.seat_id is not None:
            seat = await get_seat_for_admin(db, admin_id, data.seat_id)
            await reserve_seat(db, admin_id, seat.id, student.id)
            student.seat_id = seat.id

        await db.flush()

    log_business_event(
        "student_enrolled",
        "student",
        student.id,
        {
            "admin_id": admin_id,
            "shift_numbers": sorted(data.shift_numbers),
            "seat_id": data.seat_id,
            "monthly_fee": str(fee),
        },
    )
    return await get_student(db, admin_id, student.id)


async def update_enrollment(
    db: AsyncSession, admin_id: int, student_id: int, data: StudentUpdate
) -> Student:
    fields = data.model_dump(exclude_unset=True)

    async with atomic(db, "update_enrollment"):
        result = await db.execute(
            select(Student).where(
                and_(Student.id == student_id, Student.admin_id == admin_id)
            )
        )
        student = result.scalar_one_or_none()
        if not student:
            raise StudentNotFoundError(student_id)

        if fields.get("name"):
            student.name = fields["name"].strip()

        if fields.get("shift_numbers"):
            shifts = await get_shifts_by_numbers(db, admin_id, fields["shift_numbers"])
            await db.execute(
                delete(StudentShift)
                .where(StudentShift.student_id == student.id)
                .execution_options(synchronize_session="evaluate")
            )
            db.add_all([StudentShift(student_id=student.id, shift_id=s.id) for s in shifts])
            student.monthly_fee = await calculate_fee(db, admin_id, shifts)

        if "seat_id" in fields and fields["seat_id"] != student.seat_id:
            new_seat_id = fields["seat_id"]
            if student.seat_id is not None:
                await free_seat(db, student.seat_id, student.id)
            if new_seat_id is not None:
                seat = await get_seat_for_admin(db, admin_id, new_seat_id)
                await reserve_seat(db, admin_id, seat.id, student.id)
            student.seat_id = new_seat_id

        await db.flush()

    log_business_event(
        "enrollment_updated",
        "student",
        student_id,
        {"admin_id": admin_id, "fields": sorted(fields.keys())},
    )
    return await get_student(db, admin_id, student_id)


async def remove_student(db: AsyncSession, admin_id: int, student_id: int) -> None:
    async with atomic(db, "remove_student"):
        result = await db.execute(
            select(Student).where(
                and_(Student.id == student_id, Student.admin_id == admin_id)
            )
        )
        student = result.scalar_one_or_none()
        if not student:
            raise StudentNotFoundError(student_id)

        seat_id = student.seat_id
        if seat_id is not None:
            await free_seat(db, seat_id, student.id)

        await db.execute(
            delete(StudentShift)
            .where(StudentShift.student_id == student.id)
            .execution_options(synchronize_session="evaluate")
        )
        await db.execute(
            delete(Student)
            .where(Student.id == student.id)
            .execution_options(synchronize_session="evaluate")
        )

    log_business_event(
        "student_removed", "student", student_id, {"admin_id": admin_id, "seat_id": seat_id}
    )


async def set_payment_status(
    db: AsyncSession, admin_id: int, student_id: int, has_paid: bool
) -> Student:
    async with atomic(db, "set_payment_status"):
        result = await db.execute(
            select(Student).where(
                and_(Student.id == student_id, Student.admin_id == admin_id)
            )
        )
        student = result.scalar_one_or_none()
        if not student:
            raise StudentNotFoundError(student_id)

        student.has_paid = has_paid

    log_business_event(
        "student_payment_updated", "student", student_id, {"has_paid": has_paid}
    )
    return await get_student(db, admin_id, student_id)


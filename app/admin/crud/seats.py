import logging
from typing import List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy import and_, delete, func, or_, update

from app.core.config import MAX_SEATS_PER_ADMIN
from app.core.database import atomic, db_operation
from app.core.exceptions import (
    InvalidConfigurationError,
    NoSeatAllocatedError,
    SeatAlreadyReservedError,
    SeatNotFoundError,
    SeatNotReservedError,
    SeatOccupiedError,
    StudentNotFoundError,
)
from app.core.logging_utils import log_business_event
from app.admin.models.seats import Seat
from app.students.models.students import Student

logger = logging.getLogger(__name__)


async def get_seat_for_admin(db: AsyncSession, admin_id: int, seat_id: int) -> Seat:
    """Seat by ID inside the admin's scope"""
    result = await db.execute(
        select(Seat).where(and_(Seat.id == seat_id, Seat.admin_id == admin_id))
    )
    seat = result.scalar_one_or_none()

    if not seat:
        raise SeatNotFoundError(seat_id)

    return seat


async def get_student_for_admin(
    db: AsyncSession, admin_id: int, student_id: int
) -> Student:
    result = await db.execute(
        select(Student).where(
            and_(Student.id == student_id, Student.admin_id == admin_id)
        )
    )
    student = result.scalar_one_or_none()

    if not student:
        raise StudentNotFoundError(student_id)

    return student


async def reserve_seat(
    db: AsyncSession, admin_id: int, seat_id: int, student_id: int
) -> None:
    """
    Conditional write: occupy the seat only if it is still free.

    Does not commit; runs inside the caller's transaction.
    """
    result = await db.execute(
        update(Seat)
        .where(
            and_(
                Seat.id == seat_id,
                Seat.admin_id == admin_id,
                Seat.reserved_by.is_(None),
            )
        )
        .values(reserved_by=student_id)
        .execution_options(synchronize_session="evaluate")
    )
    if result.rowcount != 1:
        raise SeatAlreadyReservedError(seat_id)


async def free_seat(db: AsyncSession, seat_id: int, student_id: int) -> int:
    """
    Release the seat only if it is held by this student.

    Zero rows means the seat side no longer names the student while the
    student row still points at it; that drift is logged, the caller goes on
    clearing the student side.
    """
    result = await db.execute(
        update(Seat)
        .where(and_(Seat.id == seat_id, Seat.reserved_by == student_id))
        .values(reserved_by=None)
        .execution_options(synchronize_session="evaluate")
    )
    if result.rowcount == 0:
        logger.error(
            f"Seat {seat_id} is not held by student {student_id}, seat and student rows disagree",
            extra={"seat_id": seat_id, "student_id": student_id, "category": "consistency"},
        )
    return result.rowcount


@db_operation
async def get_seat_config(db: AsyncSession, admin_id: int) -> List[Seat]:
    """All seats of the admin ordered by number"""
    result = await db.execute(
        select(Seat).where(Seat.admin_id == admin_id).order_by(Seat.seat_number)
    )
    return list(result.scalars().all())


@db_operation
async def get_available_seats(
    db: AsyncSession, admin_id: int, student_id: Optional[int] = None
) -> List[Seat]:
    """
    Free seats; with ``student_id`` the student's current seat is included
    too, so an edit form can keep it selected.
    """
    condition = Seat.reserved_by.is_(None)
    if student_id is not None:
        condition = or_(condition, Seat.reserved_by == student_id)

    result = await db.execute(
        select(Seat)
        .where(and_(Seat.admin_id == admin_id, condition))
        .order_by(Seat.seat_number)
    )
    return list(result.scalars().all())


async def configure_seats(db: AsyncSession, admin_id: int, num_seats: int) -> List[Seat]:
    """
    Add ``num_seats`` seats. Numbering continues after the current highest
    seat number, so repeated calls grow the pool.
    """
    if num_seats < 1 or num_seats > MAX_SEATS_PER_ADMIN:
        raise InvalidConfigurationError(
            f"Invalid number of seats. Must be between 1 and {MAX_SEATS_PER_ADMIN}.",
            {"num_seats": num_seats},
        )

    async with atomic(db, "configure_seats"):
        result = await db.execute(
            select(func.count(Seat.id), func.max(Seat.seat_number)).where(
                Seat.admin_id == admin_id
            )
        )
        existing_count, max_number = result.one()
        existing_count = existing_count or 0
        max_number = max_number or 0

        if existing_count + num_seats > MAX_SEATS_PER_ADMIN:
            raise InvalidConfigurationError(
                f"Seat limit exceeded: {existing_count + num_seats}/{MAX_SEATS_PER_ADMIN}",
                {"existing": existing_count, "requested": num_seats},
            )

        seats = [
            Seat(admin_id=admin_id, seat_number=max_number + i + 1)
            for i in range(num_seats)
        ]
        db.add_all(seats)
        await db.flush()

    log_business_event(
        "seats_configured",
        "admin",
        admin_id,
        {"added": num_seats, "total": existing_count + num_seats},
    )
    return seats


async def allocate_seat(
    db: AsyncSession, admin_id: int, seat_id: int, student_id: int
) -> Seat:
    """
    Give the seat to the student.

    A seat the student already holds elsewhere is released in the same
    transaction. The seat write is conditional on the seat being free.
    """
    async with atomic(db, "allocate_seat"):
        student = await get_student_for_admin(db, admin_id, student_id)
        seat = await get_seat_for_admin(db, admin_id, seat_id)

        if seat.reserved_by == student.id:
            student.seat_id = seat.id
            await db.flush()
            return seat

        if seat.reserved_by is not None:
            raise SeatAlreadyReservedError(seat.id)

        if student.seat_id is not None:
            await free_seat(db, student.seat_id, student.id)

        await reserve_seat(db, admin_id, seat.id, student.id)
        student.seat_id = seat.id
        await db.flush()

    log_business_event(
        "seat_allocated",
        "seat",
        seat.id,
        {"admin_id": admin_id, "student_id": student_id},
    )
    return seat


async def deallocate_seat(db: AsyncSession, admin_id: int, student_id: int) -> None:
    async with atomic(db, "deallocate_seat"):
        student = await get_student_for_admin(db, admin_id, student_id)

        if student.seat_id is None:
            raise NoSeatAllocatedError(student_id)

        seat_id = student.seat_id
        await free_seat(db, seat_id, student.id)
        student.seat_id = None
        await db.flush()

    log_business_event(
        "seat_deallocated",
        "seat",
        seat_id,
        {"admin_id": admin_id, "student_id": student_id},
    )


async def release_seat(db: AsyncSession, admin_id: int, seat_id: int) -> Seat:
    """Admin clears a seat's reservation from the seat side"""
    async with atomic(db, "release_seat"):
        seat = await get_seat_for_admin(db, admin_id, seat_id)

        if seat.reserved_by is None:
            raise SeatNotReservedError(seat_id)

        student_id = seat.reserved_by
        await free_seat(db, seat.id, student_id)
        await db.execute(
            update(Student)
            .where(and_(Student.id == student_id, Student.seat_id == seat.id))
            .values(seat_id=None)
            .execution_options(synchronize_session="evaluate")
        )

    log_business_event(
        "seat_released", "seat", seat_id, {"admin_id": admin_id, "student_id": student_id}
    )
    return seat


async def delete_seat(db: AsyncSession, admin_id: int, seat_id: int) -> None:
    async with atomic(db, "delete_seat"):
        seat = await get_seat_for_admin(db, admin_id, seat_id)

        if seat.reserved_by is not None:
            raise SeatOccupiedError(seat_id)

        result = await db.execute(
            delete(Seat)
            .where(and_(Seat.id == seat.id, Seat.reserved_by.is_(None)))
            .execution_options(synchronize_session="evaluate")
        )
        if result.rowcount != 1:
            raise SeatOccupiedError(seat_id)

    log_business_event("seat_deleted", "seat", seat_id, {"admin_id": admin_id})

from decimal import Decimal

import pytest
from sqlalchemy import func, select

from app.core.exceptions import (
    DuplicateError,
    NotFoundError,
    SeatAlreadyReservedError,
    SeatNotFoundError,
    StudentNotFoundError,
    ValidationError,
)
from app.core.security import verify_password
from app.admin.crud.seats import configure_seats
from app.admin.crud.shifts import configure_shifts
from app.admin.crud.students import (
    enroll_student,
    get_student,
    list_students,
    remove_student,
    set_payment_status,
    student_to_dict,
    update_enrollment,
)
from app.admin.models import Seat
from app.students.crud import get_student_schedule
from app.students.models import Student, StudentShift
from app.students.schemas.students import StudentCreate, StudentUpdate

from conftest import create_student, shift_request


async def count(db_manager, model):
    async with db_manager.session() as s:
        return (await s.execute(select(func.count()).select_from(model))).scalar()


async def seat_holder(db_manager, seat_id):
    async with db_manager.session() as s:
        return (await s.get(Seat, seat_id)).reserved_by


@pytest.fixture
async def room(db_manager, admin):
    """Three shifts (100/150/200, 10% for two) and three seats"""
    async with db_manager.session() as s:
        await configure_shifts(s, admin.id, shift_request(discount_2_shifts=10))
        seats = await configure_seats(s, admin.id, 3)
    return [seat.id for seat in seats]


def enrollment(email, shift_numbers, seat_id=None, name="Student"):
    return StudentCreate(name=name, email=email, shift_numbers=shift_numbers, seat_id=seat_id)


async def test_enroll_computes_fee_and_takes_seat(db_manager, session, admin, room):
    student = await enroll_student(
        session, admin.id, enrollment("Asha@Example.com", [1, 2], room[0], name=" Asha ")
    )

    data = student_to_dict(student)
    assert data["name"] == "Asha"
    assert data["email"] == "asha@example.com"
    assert data["monthly_fee"] == Decimal("225.00")
    assert data["shift_numbers"] == [1, 2]
    assert data["seat_id"] == room[0]
    assert data["seat_number"] == 1
    assert data["has_paid"] is False
    assert data["is_verified"] is True
    assert verify_password("student123", student.password)

    assert await seat_holder(db_manager, room[0]) == student.id


async def test_enroll_without_seat_and_without_matching_tier(session, admin, room):
    student = await enroll_student(session, admin.id, enrollment("ravi@example.com", [1, 2, 3]))

    assert student.monthly_fee == Decimal("450.00")
    assert student.seat_id is None


async def test_enroll_rejects_duplicate_email(db_manager, session, admin, room):
    await create_student(db_manager, admin.id, "taken@example.com")

    with pytest.raises(DuplicateError):
        await enroll_student(session, admin.id, enrollment("TAKEN@example.com", [1]))

    with pytest.raises(DuplicateError):
        await enroll_student(session, admin.id, enrollment(admin.email, [1]))

    assert await count(db_manager, Student) == 1


async def test_enroll_with_bad_shift_selection_writes_nothing(db_manager, session, admin, room):
    with pytest.raises(NotFoundError):
        await enroll_student(session, admin.id, enrollment("x@example.com", [1, 7]))

    with pytest.raises(ValidationError):
        await enroll_student(session, admin.id, enrollment("x@example.com", [2, 2]))

    assert await count(db_manager, Student) == 0
    assert await count(db_manager, StudentShift) == 0


async def test_enroll_on_taken_seat_rolls_back(db_manager, session, admin, room):
    first = await enroll_student(session, admin.id, enrollment("a@example.com", [1], room[0]))
    first_id = first.id

    with pytest.raises(SeatAlreadyReservedError):
        await enroll_student(session, admin.id, enrollment("b@example.com", [2], room[0]))

    assert await count(db_manager, Student) == 1
    assert await count(db_manager, StudentShift) == 1
    assert await seat_holder(db_manager, room[0]) == first_id


async def test_enroll_on_another_admins_seat(db_manager, session, admin, other_admin, room):
    async with db_manager.session() as s:
        foreign = await configure_seats(s, other_admin.id, 1)

    with pytest.raises(SeatNotFoundError):
        await enroll_student(session, admin.id, enrollment("a@example.com", [1], foreign[0].id))

    assert await count(db_manager, Student) == 0


async def test_update_recomputes_fee_and_moves_seat(db_manager, session, admin, room):
    student = await enroll_student(session, admin.id, enrollment("a@example.com", [1], room[0]))
    student_id = student.id

    updated = await update_enrollment(
        session, admin.id, student_id, StudentUpdate(shift_numbers=[2, 3], seat_id=room[1])
    )

    data = student_to_dict(updated)
    assert data["shift_numbers"] == [2, 3]
    assert data["monthly_fee"] == Decimal("315.00")
    assert data["seat_id"] == room[1]
    assert await seat_holder(db_manager, room[0]) is None
    assert await seat_holder(db_manager, room[1]) == student_id


async def test_update_keeps_or_frees_seat(db_manager, session, admin, room):
    student = await enroll_student(session, admin.id, enrollment("a@example.com", [1], room[0]))
    student_id = student.id

    renamed = await update_enrollment(session, admin.id, student_id, StudentUpdate(name="Renamed"))
    assert renamed.name == "Renamed"
    assert renamed.seat_id == room[0]

    freed = await update_enrollment(session, admin.id, student_id, StudentUpdate(seat_id=None))
    assert freed.seat_id is None
    assert await seat_holder(db_manager, room[0]) is None


async def test_update_onto_taken_seat_changes_nothing(db_manager, session, admin, room):
    first = await enroll_student(session, admin.id, enrollment("a@example.com", [1], room[0]))
    second = await enroll_student(session, admin.id, enrollment("b@example.com", [1], room[1]))
    first_id, second_id = first.id, second.id

    with pytest.raises(SeatAlreadyReservedError):
        await update_enrollment(
            session, admin.id, second_id, StudentUpdate(shift_numbers=[1, 2], seat_id=room[0])
        )

    current = await get_student(session, admin.id, second_id)
    assert current.seat_id == room[1]
    assert current.monthly_fee == Decimal("100.00")
    assert await seat_holder(db_manager, room[0]) == first_id
    assert await seat_holder(db_manager, room[1]) == second_id


async def test_remove_student_frees_seat(db_manager, session, admin, room):
    student = await enroll_student(session, admin.id, enrollment("a@example.com", [1, 2], room[2]))
    student_id = student.id

    await remove_student(session, admin.id, student_id)

    assert await count(db_manager, Student) == 0
    assert await count(db_manager, StudentShift) == 0
    assert await seat_holder(db_manager, room[2]) is None

    with pytest.raises(StudentNotFoundError):
        await remove_student(session, admin.id, student_id)


async def test_students_are_scoped_to_admin(session, admin, other_admin, room):
    student = await enroll_student(session, admin.id, enrollment("a@example.com", [1]))

    with pytest.raises(StudentNotFoundError):
        await get_student(session, other_admin.id, student.id)

    with pytest.raises(StudentNotFoundError):
        await update_enrollment(session, other_admin.id, student.id, StudentUpdate(name="X"))

    students, total = await list_students(session, other_admin.id)
    assert students == []
    assert total == 0


async def test_list_students_paginates(session, admin, room):
    for i in range(3):
        await enroll_student(session, admin.id, enrollment(f"s{i}@example.com", [1]))

    page, total = await list_students(session, admin.id, skip=0, limit=2)
    rest, _ = await list_students(session, admin.id, skip=2, limit=2)

    assert total == 3
    assert len(page) == 2
    assert len(rest) == 1
    assert {s.email for s in page + rest} == {"s0@example.com", "s1@example.com", "s2@example.com"}


async def test_mark_paid(session, admin, room):
    student = await enroll_student(session, admin.id, enrollment("a@example.com", [1]))

    paid = await set_payment_status(session, admin.id, student.id, True)
    assert paid.has_paid is True

    unpaid = await set_payment_status(session, admin.id, student.id, False)
    assert unpaid.has_paid is False


async def test_student_schedule(session, admin, room):
    student = await enroll_student(session, admin.id, enrollment("a@example.com", [3, 1]))

    schedule = await get_student_schedule(session, student.id)

    assert schedule == [
        {"shift_number": 1, "start_time": "06:00", "end_time": "10:00"},
        {"shift_number": 3, "start_time": "14:00", "end_time": "18:00"},
    ]

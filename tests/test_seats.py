import logging

import pytest
from sqlalchemy import select, update

from app.core.config import MAX_SEATS_PER_ADMIN
from app.core.exceptions import (
    InvalidConfigurationError,
    NoSeatAllocatedError,
    SeatAlreadyReservedError,
    SeatNotFoundError,
    SeatNotReservedError,
    SeatOccupiedError,
    StudentNotFoundError,
)
from app.admin.crud.seats import (
    allocate_seat,
    configure_seats,
    deallocate_seat,
    delete_seat,
    get_available_seats,
    get_seat_config,
    release_seat,
)
from app.admin.models import Seat
from app.students.models import Student

from conftest import create_student


async def assert_mirrored(db_manager):
    """Every reserved seat points at a student who points back, and vice versa"""
    async with db_manager.session() as s:
        seats = (await s.execute(select(Seat))).scalars().all()
        students = (await s.execute(select(Student))).scalars().all()

    by_student = {seat.reserved_by: seat.id for seat in seats if seat.reserved_by is not None}
    by_seat = {student.id: student.seat_id for student in students if student.seat_id is not None}
    assert by_student == by_seat


async def test_configure_seats_appends_numbers(session, admin):
    first = await configure_seats(session, admin.id, 5)
    second = await configure_seats(session, admin.id, 3)

    assert [s.seat_number for s in first] == [1, 2, 3, 4, 5]
    assert [s.seat_number for s in second] == [6, 7, 8]

    seats = await get_seat_config(session, admin.id)
    assert len(seats) == 8
    assert all(not s.is_reserved for s in seats)


@pytest.mark.parametrize("count", [0, -1, MAX_SEATS_PER_ADMIN + 1])
async def test_configure_seats_rejects_bad_count(session, admin, count):
    with pytest.raises(InvalidConfigurationError):
        await configure_seats(session, admin.id, count)


async def test_configure_seats_respects_total_limit(session, admin):
    await configure_seats(session, admin.id, MAX_SEATS_PER_ADMIN)

    with pytest.raises(InvalidConfigurationError):
        await configure_seats(session, admin.id, 1)

    assert len(await get_seat_config(session, admin.id)) == MAX_SEATS_PER_ADMIN


async def test_seat_pools_are_per_admin(session, admin, other_admin):
    await configure_seats(session, admin.id, 2)
    seats = await configure_seats(session, other_admin.id, 2)

    assert [s.seat_number for s in seats] == [1, 2]


async def test_allocate_and_deallocate(db_manager, session, admin):
    seats = await configure_seats(session, admin.id, 3)
    seat_id = seats[0].id
    student = await create_student(db_manager, admin.id, "a@example.com")

    seat = await allocate_seat(session, admin.id, seat_id, student.id)
    assert seat.reserved_by == student.id
    await assert_mirrored(db_manager)

    available = await get_available_seats(session, admin.id)
    assert seat_id not in [s.id for s in available]

    await deallocate_seat(session, admin.id, student.id)
    await assert_mirrored(db_manager)

    available = await get_available_seats(session, admin.id)
    assert seat_id in [s.id for s in available]


async def test_reserved_seat_cannot_be_taken(db_manager, session, admin):
    seats = await configure_seats(session, admin.id, 2)
    seat_id = seats[0].id
    first = await create_student(db_manager, admin.id, "a@example.com")
    second = await create_student(db_manager, admin.id, "b@example.com")

    await allocate_seat(session, admin.id, seat_id, first.id)

    with pytest.raises(SeatAlreadyReservedError):
        await allocate_seat(session, admin.id, seat_id, second.id)

    async with db_manager.session() as s:
        seat = await s.get(Seat, seat_id)
        assert seat.reserved_by == first.id
    await assert_mirrored(db_manager)


async def test_stale_read_loses_to_conditional_update(db_manager, admin):
    """Both sessions saw the seat free; only the first write wins"""
    async with db_manager.session() as setup:
        seats = await configure_seats(setup, admin.id, 1)
    seat_id = seats[0].id
    first = await create_student(db_manager, admin.id, "a@example.com")
    second = await create_student(db_manager, admin.id, "b@example.com")

    async with db_manager.session() as s1, db_manager.session() as s2:
        stale = await s2.get(Seat, seat_id)
        assert stale.reserved_by is None
        await s2.commit()

        await allocate_seat(s1, admin.id, seat_id, first.id)

        with pytest.raises(SeatAlreadyReservedError):
            await allocate_seat(s2, admin.id, seat_id, second.id)

    await assert_mirrored(db_manager)
    async with db_manager.session() as s:
        student = await s.get(Student, second.id)
        assert student.seat_id is None


async def test_allocating_new_seat_releases_previous(db_manager, session, admin):
    seats = await configure_seats(session, admin.id, 2)
    old_id, new_id = seats[0].id, seats[1].id
    student = await create_student(db_manager, admin.id, "a@example.com")

    await allocate_seat(session, admin.id, old_id, student.id)
    await allocate_seat(session, admin.id, new_id, student.id)

    async with db_manager.session() as s:
        assert (await s.get(Seat, old_id)).reserved_by is None
        assert (await s.get(Seat, new_id)).reserved_by == student.id
        assert (await s.get(Student, student.id)).seat_id == new_id


async def test_allocating_same_seat_twice_is_noop(db_manager, session, admin):
    seats = await configure_seats(session, admin.id, 1)
    student = await create_student(db_manager, admin.id, "a@example.com")

    await allocate_seat(session, admin.id, seats[0].id, student.id)
    seat = await allocate_seat(session, admin.id, seats[0].id, student.id)

    assert seat.reserved_by == student.id
    await assert_mirrored(db_manager)


async def test_allocate_unknown_seat_or_student(db_manager, session, admin, other_admin):
    seats = await configure_seats(session, admin.id, 1)
    seat_id = seats[0].id
    student = await create_student(db_manager, admin.id, "a@example.com")
    foreign = await create_student(db_manager, other_admin.id, "x@example.com")

    with pytest.raises(SeatNotFoundError):
        await allocate_seat(session, admin.id, 9999, student.id)

    with pytest.raises(StudentNotFoundError):
        await allocate_seat(session, admin.id, seat_id, 9999)

    with pytest.raises(StudentNotFoundError):
        await allocate_seat(session, admin.id, seat_id, foreign.id)

    with pytest.raises(SeatNotFoundError):
        await allocate_seat(session, other_admin.id, seat_id, foreign.id)


async def test_deallocate_without_seat(db_manager, session, admin):
    student = await create_student(db_manager, admin.id, "a@example.com")

    with pytest.raises(NoSeatAllocatedError):
        await deallocate_seat(session, admin.id, student.id)


async def test_deallocate_logs_seat_that_no_longer_names_student(
    db_manager, session, admin, caplog
):
    seats = await configure_seats(session, admin.id, 1)
    seat_id = seats[0].id
    student = await create_student(db_manager, admin.id, "a@example.com")
    await allocate_seat(session, admin.id, seat_id, student.id)

    async with db_manager.session() as s:
        await s.execute(update(Seat).where(Seat.id == seat_id).values(reserved_by=None))
        await s.commit()

    await deallocate_seat(session, admin.id, student.id)

    errors = [r for r in caplog.records if r.levelno == logging.ERROR]
    assert errors and errors[0].seat_id == seat_id
    async with db_manager.session() as s:
        assert (await s.get(Student, student.id)).seat_id is None


async def test_release_seat_clears_both_sides(db_manager, session, admin):
    seats = await configure_seats(session, admin.id, 1)
    seat_id = seats[0].id
    student = await create_student(db_manager, admin.id, "a@example.com")
    await allocate_seat(session, admin.id, seat_id, student.id)

    seat = await release_seat(session, admin.id, seat_id)
    assert seat.reserved_by is None
    await assert_mirrored(db_manager)

    with pytest.raises(SeatNotReservedError):
        await release_seat(session, admin.id, seat_id)


async def test_delete_seat(db_manager, session, admin):
    seats = await configure_seats(session, admin.id, 2)
    free_id, taken_id = seats[0].id, seats[1].id
    student = await create_student(db_manager, admin.id, "a@example.com")
    await allocate_seat(session, admin.id, taken_id, student.id)

    with pytest.raises(SeatOccupiedError):
        await delete_seat(session, admin.id, taken_id)

    await delete_seat(session, admin.id, free_id)

    remaining = await get_seat_config(session, admin.id)
    assert [s.id for s in remaining] == [taken_id]

    with pytest.raises(SeatNotFoundError):
        await delete_seat(session, admin.id, free_id)


async def test_available_seats_in_edit_mode_include_own_seat(db_manager, session, admin):
    seats = await configure_seats(session, admin.id, 3)
    ids = [s.id for s in seats]
    owner = await create_student(db_manager, admin.id, "a@example.com")
    other = await create_student(db_manager, admin.id, "b@example.com")
    await allocate_seat(session, admin.id, ids[0], owner.id)
    await allocate_seat(session, admin.id, ids[1], other.id)

    plain = await get_available_seats(session, admin.id)
    edit = await get_available_seats(session, admin.id, owner.id)

    assert [s.id for s in plain] == [ids[2]]
    assert [s.id for s in edit] == [ids[0], ids[2]]

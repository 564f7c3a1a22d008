import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from app.core.database import atomic, integrity_conflict
from app.core.exceptions import (
    ConcurrentModificationError,
    DatabaseIntegrityError,
    DuplicateError,
    SeatAlreadyReservedError,
    ShiftsInUseError,
)
from app.core.init_db import ensure_master_admin
from app.admin.models import Seat


def violation(message):
    return IntegrityError("INSERT ...", {}, Exception(message))


@pytest.mark.parametrize(
    "message, expected",
    [
        ("UNIQUE constraint failed: seats.reserved_by", SeatAlreadyReservedError),
        ('duplicate key value violates unique constraint "students_seat_id_key"', SeatAlreadyReservedError),
        ("UNIQUE constraint failed: students.email", DuplicateError),
        ("UNIQUE constraint failed: seats.admin_id, seats.seat_number", ConcurrentModificationError),
        ("UNIQUE constraint failed: shift_configs.admin_id", ConcurrentModificationError),
        ('update or delete violates foreign key constraint "student_shifts_shift_id_fkey"', ShiftsInUseError),
        ("FOREIGN KEY constraint failed", DatabaseIntegrityError),
    ],
)
def test_integrity_conflict_mapping(message, expected):
    assert type(integrity_conflict(violation(message))) is expected


async def test_atomic_rolls_back_on_duplicate_seat_number(db_manager, session, admin):
    async with db_manager.session() as s:
        s.add(Seat(admin_id=admin.id, seat_number=1))
        await s.commit()

    with pytest.raises(ConcurrentModificationError):
        async with atomic(session, "configure_seats"):
            session.add(Seat(admin_id=admin.id, seat_number=2))
            session.add(Seat(admin_id=admin.id, seat_number=1))
            await session.flush()

    async with db_manager.session() as s:
        numbers = (await s.execute(select(Seat.seat_number))).scalars().all()
    assert numbers == [1]


async def test_master_admin_seed_creates_then_promotes(db_manager, admin):
    assert await ensure_master_admin(db_manager, None, None) is None

    master = await ensure_master_admin(db_manager, "Root@Example.com", "rootpass")
    assert master.email == "root@example.com"
    assert master.is_master and master.is_verified and master.is_subscribed

    promoted = await ensure_master_admin(db_manager, admin.email, "ignored")
    assert promoted.id == admin.id
    assert promoted.is_master is True

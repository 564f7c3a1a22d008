from decimal import Decimal
from typing import Dict, List, Optional, Sequence, Tuple
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy.orm.attributes import flag_modified
from sqlalchemy import and_, delete, func

from app.core.database import atomic, db_operation
from app.core.exceptions import (
    InvalidConfigurationError,
    NotFoundError,
    ShiftsInUseError,
    ValidationError,
)
from app.core.logging_utils import log_business_event
from app.admin.models.shifts import Shift, ShiftConfig, ShiftDiscount
from app.admin.schemas.shifts import ShiftConfigure, ShiftDiscounts
from app.admin.services.fee_calculator import (
    DiscountTier,
    build_discount_tiers,
    compute_monthly_fee,
    find_discount,
    to_money,
    validate_discount_tiers,
)
from app.admin.services.shift_generator import ShiftWindow, generate_shifts
from app.students.models.students import StudentShift


ShiftSet = Tuple[List[Shift], List[ShiftDiscount]]


@db_operation
async def get_shift_config(db: AsyncSession, admin_id: int) -> Optional[ShiftConfig]:
    result = await db.execute(select(ShiftConfig).where(ShiftConfig.admin_id == admin_id))
    return result.scalar_one_or_none()


@db_operation
async def get_shifts(db: AsyncSession, admin_id: int) -> List[Shift]:
    result = await db.execute(
        select(Shift).where(Shift.admin_id == admin_id).order_by(Shift.shift_number)
    )
    return list(result.scalars().all())


@db_operation
async def get_discounts(db: AsyncSession, admin_id: int) -> List[ShiftDiscount]:
    result = await db.execute(
        select(ShiftDiscount)
        .where(ShiftDiscount.admin_id == admin_id)
        .order_by(ShiftDiscount.min_shifts)
    )
    return list(result.scalars().all())


async def get_discount_tiers(db: AsyncSession, admin_id: int) -> List[DiscountTier]:
    return [
        DiscountTier(min_shifts=d.min_shifts, discount_percentage=d.discount_percentage)
        for d in await get_discounts(db, admin_id)
    ]


async def count_enrolled_students(db: AsyncSession, shift_ids: Sequence[int]) -> int:
    """Distinct students enrolled in any of the given shifts"""
    if not shift_ids:
        return 0
    result = await db.execute(
        select(func.count(func.distinct(StudentShift.student_id))).where(
            StudentShift.shift_id.in_(list(shift_ids))
        )
    )
    return result.scalar() or 0


async def _ensure_not_in_use(db: AsyncSession, shifts: Sequence[Shift], action: str) -> None:
    enrolled = await count_enrolled_students(db, [s.id for s in shifts])
    if enrolled:
        raise ShiftsInUseError(action, enrolled)


def plan_configuration(data: ShiftConfigure) -> Tuple[List[ShiftWindow], List[DiscountTier]]:
    """
    Validate the whole request and compute windows and tiers before any write.
    """
    windows = generate_shifts(data.num_shifts, data.hours_per_shift, data.start_time)

    if len(data.fees) != data.num_shifts:
        raise InvalidConfigurationError(
            f"Expected {data.num_shifts} fees, got {len(data.fees)}",
            {"num_shifts": data.num_shifts, "fees": len(data.fees)},
        )

    for index, fee in enumerate(data.fees, start=1):
        if fee < 0:
            raise InvalidConfigurationError(
                f"Fee for shift {index} cannot be negative",
                {"shift_number": index, "fee": str(fee)},
            )

    discounts = data.discounts or ShiftDiscounts()
    tiers = build_discount_tiers(
        data.num_shifts,
        discounts.discount_2_shifts,
        discounts.discount_3_shifts,
        discounts.discount_all_shifts,
    )
    validate_discount_tiers(data.num_shifts, tiers)

    return windows, tiers


async def _write_configuration(
    db: AsyncSession,
    admin_id: int,
    data: ShiftConfigure,
    windows: List[ShiftWindow],
    tiers: List[DiscountTier],
) -> ShiftSet:
    """Replace the shift set and its tiers; bumps the config version"""
    config = await get_shift_config(db, admin_id)
    if config is None:
        config = ShiftConfig(
            admin_id=admin_id,
            num_shifts=data.num_shifts,
            hours_per_shift=data.hours_per_shift,
            start_time=windows[0].start_time.strftime("%H:%M"),
        )
        db.add(config)
    else:
        config.num_shifts = data.num_shifts
        config.hours_per_shift = data.hours_per_shift
        config.start_time = windows[0].start_time.strftime("%H:%M")
        # versioned UPDATE even when the layout values are unchanged
        flag_modified(config, "num_shifts")
    await db.flush()

    await db.execute(
        delete(ShiftDiscount)
        .where(ShiftDiscount.admin_id == admin_id)
        .execution_options(synchronize_session="evaluate")
    )
    await db.execute(
        delete(Shift)
        .where(Shift.admin_id == admin_id)
        .execution_options(synchronize_session="evaluate")
    )

    shifts = [
        Shift(
            admin_id=admin_id,
            shift_number=window.shift_number,
            start_time=window.start_time,
            end_time=window.end_time,
            fees=to_money(fee),
        )
        for window, fee in zip(windows, data.fees)
    ]
    discounts = [
        ShiftDiscount(
            admin_id=admin_id,
            min_shifts=tier.min_shifts,
            discount_percentage=tier.discount_percentage,
        )
        for tier in tiers
    ]
    db.add_all(shifts)
    db.add_all(discounts)
    await db.flush()

    return shifts, discounts


async def configure_shifts(db: AsyncSession, admin_id: int, data: ShiftConfigure) -> ShiftSet:
    """
    Create or replace the admin's shift set.

    Fails with ShiftsInUseError while any student is enrolled in the
    current set; nothing is written in that case.
    """
    windows, tiers = plan_configuration(data)

    async with atomic(db, "configure_shifts"):
        existing = await get_shifts(db, admin_id)
        await _ensure_not_in_use(db, existing, "edit")
        shifts, discounts = await _write_configuration(db, admin_id, data, windows, tiers)

    log_business_event(
        "shifts_configured",
        "admin",
        admin_id,
        {
            "num_shifts": data.num_shifts,
            "hours_per_shift": str(data.hours_per_shift),
            "start_time": data.start_time,
            "discount_tiers": len(discounts),
            "replaced": len(existing),
        },
    )
    return shifts, discounts


async def update_shifts(db: AsyncSession, admin_id: int, data: ShiftConfigure) -> ShiftSet:
    """Like configure_shifts, but the admin must already have shifts"""
    windows, tiers = plan_configuration(data)

    async with atomic(db, "update_shifts"):
        existing = await get_shifts(db, admin_id)
        if not existing:
            raise NotFoundError("Shifts", admin_id)
        await _ensure_not_in_use(db, existing, "edit")
        shifts, discounts = await _write_configuration(db, admin_id, data, windows, tiers)

    log_business_event(
        "shifts_updated",
        "admin",
        admin_id,
        {"num_shifts": data.num_shifts, "discount_tiers": len(discounts)},
    )
    return shifts, discounts


async def get_configured_shifts(db: AsyncSession, admin_id: int) -> Dict:
    shifts = await get_shifts(db, admin_id)
    if not shifts:
        raise NotFoundError("Shifts", admin_id)

    config = await get_shift_config(db, admin_id)
    discounts = await get_discounts(db, admin_id)

    return {
        "num_shifts": len(shifts),
        "hours_per_shift": config.hours_per_shift if config else None,
        "start_time": config.start_time if config else None,
        "version": config.version if config else None,
        "shifts": shifts,
        "discounts": discounts,
    }


async def delete_shifts(db: AsyncSession, admin_id: int) -> int:
    """Remove all shifts, tiers and the config. Returns the number of shifts removed"""
    async with atomic(db, "delete_shifts"):
        existing = await get_shifts(db, admin_id)
        if not existing:
            raise NotFoundError("Shifts", admin_id)
        await _ensure_not_in_use(db, existing, "delete")

        config = await get_shift_config(db, admin_id)
        if config is not None:
            await db.delete(config)
            await db.flush()

        await db.execute(
            delete(ShiftDiscount)
            .where(ShiftDiscount.admin_id == admin_id)
            .execution_options(synchronize_session="evaluate")
        )
        await db.execute(
            delete(Shift)
            .where(Shift.admin_id == admin_id)
            .execution_options(synchronize_session="evaluate")
        )

    log_business_event("shifts_deleted", "admin", admin_id, {"deleted": len(existing)})
    return len(existing)


async def delete_shift(db: AsyncSession, admin_id: int, shift_number: int) -> int:
    """
    Remove one shift. Tiers whose threshold exceeds the remaining shift
    count are dropped. Returns the remaining count.

    Any enrolled student on any of the admin's shifts blocks the delete.
    """
    async with atomic(db, "delete_shift"):
        result = await db.execute(
            select(Shift).where(
                and_(Shift.admin_id == admin_id, Shift.shift_number == shift_number)
            )
        )
        shift = result.scalar_one_or_none()
        if not shift:
            raise NotFoundError("Shift", shift_number)

        await _ensure_not_in_use(db, await get_shifts(db, admin_id), "delete")

        config = await get_shift_config(db, admin_id)

        await db.execute(
            delete(Shift)
            .where(Shift.id == shift.id)
            .execution_options(synchronize_session="evaluate")
        )

        count_result = await db.execute(
            select(func.count(Shift.id)).where(Shift.admin_id == admin_id)
        )
        remaining = count_result.scalar() or 0

        await db.execute(
            delete(ShiftDiscount)
            .where(
                and_(
                    ShiftDiscount.admin_id == admin_id,
                    ShiftDiscount.min_shifts > remaining,
                )
            )
            .execution_options(synchronize_session="evaluate")
        )

        if config is not None:
            if remaining == 0:
                await db.delete(config)
            else:
                config.num_shifts = remaining
                flag_modified(config, "num_shifts")
            await db.flush()

    log_business_event(
        "shift_deleted",
        "admin",
        admin_id,
        {"shift_number": shift_number, "remaining": remaining},
    )
    return remaining


async def get_shifts_by_numbers(
    db: AsyncSession, admin_id: int, shift_numbers: Sequence[int]
) -> List[Shift]:
    """
    Resolve a selection of shift numbers. The selection must be non-empty,
    without repeats, and every number must exist for the admin.
    """
    if not shift_numbers:
        raise ValidationError("At least one shift must be selected")

    if len(set(shift_numbers)) != len(shift_numbers):
        raise ValidationError(
            "Shift numbers must not repeat", {"shift_numbers": list(shift_numbers)}
        )

    result = await db.execute(
        select(Shift)
        .where(and_(Shift.admin_id == admin_id, Shift.shift_number.in_(list(shift_numbers))))
        .order_by(Shift.shift_number)
    )
    shifts = list(result.scalars().all())

    missing = set(shift_numbers) - {s.shift_number for s in shifts}
    if missing:
        raise NotFoundError("Shift", ", ".join(str(n) for n in sorted(missing)))

    return shifts


async def calculate_fee(db: AsyncSession, admin_id: int, shifts: Sequence[Shift]) -> Decimal:
    tiers = await get_discount_tiers(db, admin_id)
    return compute_monthly_fee([s.fees for s in shifts], len(shifts), tiers)


async def quote_fee(db: AsyncSession, admin_id: int, shift_numbers: Sequence[int]) -> Dict:
    """Fee preview for a shift selection, without enrolling anyone"""
    shifts = await get_shifts_by_numbers(db, admin_id, shift_numbers)
    tiers = await get_discount_tiers(db, admin_id)
    tier = find_discount(len(shifts), tiers)

    return {
        "shift_numbers": [s.shift_number for s in shifts],
        "base_total": to_money(sum((Decimal(str(s.fees)) for s in shifts), Decimal("0"))),
        "discount_percentage": tier.discount_percentage if tier else Decimal("0"),
        "monthly_fee": compute_monthly_fee([s.fees for s in shifts], len(shifts), tiers),
    }

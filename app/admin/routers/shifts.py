from fastapi import APIRouter, Depends, Path, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_session
from app.core.limits import limiter
from app.core.dependencies import require_subscribed_admin
from app.admin.models.admins import Admin
from app.admin.schemas.seats import MessageResponse
from app.admin.schemas.shifts import (
    ShiftConfigure,
    ShiftConfigurationResponse,
    FeeQuoteRequest,
    FeeQuoteResponse,
)
from app.admin.crud.shifts import (
    configure_shifts,
    update_shifts,
    get_configured_shifts,
    delete_shifts,
    delete_shift,
    quote_fee,
)

router = APIRouter(prefix="/admin/shifts", tags=["Shifts"])


@router.post("/", response_model=ShiftConfigurationResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit("10/minute")
async def configure_shift_set(
    request: Request,
    data: ShiftConfigure,
    admin: Admin = Depends(require_subscribed_admin),
    db: AsyncSession = Depends(get_session),
):
    """
    Configure the shift set, replacing any existing one.

    - **num_shifts**: 1..4 (at most 6 hours each when 4)
    - **hours_per_shift**: positive, total of all shifts up to 24 hours
    - **start_time**: first shift start, `HH:MM`
    - **fees**: one monthly base fee per shift
    - **discounts**: optional percentages for 2, 3 and all shifts

    Rejected with `SHIFTS_IN_USE` while students are enrolled.
    """
    await configure_shifts(db, admin.id, data)
    return await get_configured_shifts(db, admin.id)


@router.put("/", response_model=ShiftConfigurationResponse)
@limiter.limit("10/minute")
async def update_shift_set(
    request: Request,
    data: ShiftConfigure,
    admin: Admin = Depends(require_subscribed_admin),
    db: AsyncSession = Depends(get_session),
):
    await update_shifts(db, admin.id, data)
    return await get_configured_shifts(db, admin.id)


@router.get("/", response_model=ShiftConfigurationResponse)
@limiter.limit("60/minute")
async def get_shift_set(
    request: Request,
    admin: Admin = Depends(require_subscribed_admin),
    db: AsyncSession = Depends(get_session),
):
    return await get_configured_shifts(db, admin.id)


@router.delete("/", response_model=MessageResponse)
@limiter.limit("10/minute")
async def delete_shift_set(
    request: Request,
    admin: Admin = Depends(require_subscribed_admin),
    db: AsyncSession = Depends(get_session),
):
    deleted = await delete_shifts(db, admin.id)
    return {"message": f"Deleted {deleted} shifts"}


@router.delete("/{shift_number}", response_model=MessageResponse)
@limiter.limit("10/minute")
async def delete_single_shift(
    request: Request,
    shift_number: int = Path(..., ge=1, le=4),
    admin: Admin = Depends(require_subscribed_admin),
    db: AsyncSession = Depends(get_session),
):
    remaining = await delete_shift(db, admin.id, shift_number)
    return {"message": f"Shift {shift_number} deleted, {remaining} remaining"}


@router.post("/quote", response_model=FeeQuoteResponse)
@limiter.limit("60/minute")
async def quote_monthly_fee(
    request: Request,
    data: FeeQuoteRequest,
    admin: Admin = Depends(require_subscribed_admin),
    db: AsyncSession = Depends(get_session),
):
    """Monthly fee for a shift selection with the matching discount applied"""
    return await quote_fee(db, admin.id, data.shift_numbers)

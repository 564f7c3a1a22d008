from typing import Optional
from fastapi import APIRouter, Depends, Path, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_session
from app.core.limits import limiter
from app.core.dependencies import require_subscribed_admin
from app.admin.models.admins import Admin
from app.admin.schemas.seats import (
    SeatConfigure,
    SeatRead,
    SeatListResponse,
    SeatAllocate,
    SeatDeallocate,
    MessageResponse,
)
from app.admin.crud.seats import (
    configure_seats,
    get_seat_config,
    get_available_seats,
    allocate_seat,
    deallocate_seat,
    release_seat,
    delete_seat,
)

router = APIRouter(prefix="/admin/seats", tags=["Seats"])


def _seat_list(seats) -> dict:
    return {
        "seats": seats,
        "total": len(seats),
        "available": sum(1 for seat in seats if not seat.is_reserved),
    }


@router.post("/", response_model=SeatListResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit("10/minute")
async def add_seats(
    request: Request,
    data: SeatConfigure,
    admin: Admin = Depends(require_subscribed_admin),
    db: AsyncSession = Depends(get_session),
):
    """Add seats; numbering continues after the highest existing seat"""
    await configure_seats(db, admin.id, data.num_seats)
    return _seat_list(await get_seat_config(db, admin.id))


@router.get("/", response_model=SeatListResponse)
@limiter.limit("60/minute")
async def list_seats(
    request: Request,
    admin: Admin = Depends(require_subscribed_admin),
    db: AsyncSession = Depends(get_session),
):
    return _seat_list(await get_seat_config(db, admin.id))


@router.get("/available", response_model=SeatListResponse)
@limiter.limit("60/minute")
async def list_available_seats(
    request: Request,
    student_id: Optional[int] = Query(
        None, gt=0, description="Also include this student's current seat"
    ),
    admin: Admin = Depends(require_subscribed_admin),
    db: AsyncSession = Depends(get_session),
):
    return _seat_list(await get_available_seats(db, admin.id, student_id))


@router.post("/allocate", response_model=SeatRead)
@limiter.limit("30/minute")
async def allocate(
    request: Request,
    data: SeatAllocate,
    admin: Admin = Depends(require_subscribed_admin),
    db: AsyncSession = Depends(get_session),
):
    return await allocate_seat(db, admin.id, data.seat_id, data.student_id)


@router.post("/deallocate", response_model=MessageResponse)
@limiter.limit("30/minute")
async def deallocate(
    request: Request,
    data: SeatDeallocate,
    admin: Admin = Depends(require_subscribed_admin),
    db: AsyncSession = Depends(get_session),
):
    await deallocate_seat(db, admin.id, data.student_id)
    return {"message": "Seat deallocated"}


@router.post("/{seat_id}/release", response_model=SeatRead)
@limiter.limit("30/minute")
async def release(
    request: Request,
    seat_id: int = Path(..., gt=0),
    admin: Admin = Depends(require_subscribed_admin),
    db: AsyncSession = Depends(get_session),
):
    return await release_seat(db, admin.id, seat_id)


@router.delete("/{seat_id}", response_model=MessageResponse)
@limiter.limit("10/minute")
async def remove_seat(
    request: Request,
    seat_id: int = Path(..., gt=0),
    admin: Admin = Depends(require_subscribed_admin),
    db: AsyncSession = Depends(get_session),
):
    await delete_seat(db, admin.id, seat_id)
    return {"message": f"Seat {seat_id} deleted"}

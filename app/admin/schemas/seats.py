from typing import List, Optional
from pydantic import BaseModel, Field, ConfigDict


class SeatConfigure(BaseModel):
    """Add seats to the pool"""
    num_seats: int = Field(..., description="Number of seats to add")


class SeatRead(BaseModel):
    id: int
    seat_number: int
    reserved_by: Optional[int] = None
    is_reserved: bool

    model_config = ConfigDict(from_attributes=True)


class SeatListResponse(BaseModel):
    seats: List[SeatRead]
    total: int
    available: int


class SeatAllocate(BaseModel):
    seat_id: int
    student_id: int


class SeatDeallocate(BaseModel):
    student_id: int


class MessageResponse(BaseModel):
    message: str

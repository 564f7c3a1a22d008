from datetime import time
from decimal import Decimal
from typing import List, Optional
from pydantic import BaseModel, Field, ConfigDict, field_serializer


class ShiftDiscounts(BaseModel):
    """Discount percentages by number of selected shifts"""
    discount_2_shifts: Optional[Decimal] = Field(None, description="Percent off for exactly 2 shifts")
    discount_3_shifts: Optional[Decimal] = Field(None, description="Percent off for exactly 3 shifts")
    discount_all_shifts: Optional[Decimal] = Field(None, description="Percent off for all configured shifts")


class ShiftConfigure(BaseModel):
    """Schema for configuring (or replacing) the admin's shifts"""
    num_shifts: int = Field(..., description="Number of shifts, 1..4")
    hours_per_shift: Decimal = Field(..., description="Duration of every shift in hours")
    start_time: str = Field(..., description="First shift start, HH:MM")
    fees: List[Decimal] = Field(..., description="Monthly base fee per shift, in shift order")
    discounts: Optional[ShiftDiscounts] = None


class ShiftRead(BaseModel):
    id: int
    shift_number: int
    start_time: time
    end_time: time
    fees: Decimal

    model_config = ConfigDict(from_attributes=True)

    @field_serializer("start_time", "end_time")
    def serialize_clock(self, value: time) -> str:
        return value.strftime("%H:%M")


class DiscountRead(BaseModel):
    min_shifts: int
    discount_percentage: Decimal

    model_config = ConfigDict(from_attributes=True)


class ShiftConfigurationResponse(BaseModel):
    """Configured shifts with their discount tiers"""
    num_shifts: int
    hours_per_shift: Optional[Decimal] = None
    start_time: Optional[str] = None
    version: Optional[int] = None
    shifts: List[ShiftRead]
    discounts: List[DiscountRead]


class FeeQuoteRequest(BaseModel):
    shift_numbers: List[int] = Field(..., min_length=1)


class FeeQuoteResponse(BaseModel):
    shift_numbers: List[int]
    base_total: Decimal
    discount_percentage: Decimal
    monthly_fee: Decimal

from datetime import datetime
from typing import List, Literal, Optional
from pydantic import BaseModel, EmailStr, Field, ConfigDict


BillingCycleType = Literal["monthly", "yearly", "lifetime"]


class PlanCreate(BaseModel):
    """Schema for creating a subscription plan"""
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=1000)
    amount: int = Field(..., ge=100, description="Amount in the smallest currency unit")
    currency: str = Field(default="INR", min_length=3, max_length=3)
    billing_cycle: BillingCycleType = Field(default="monthly")
    interval_count: int = Field(default=1, ge=1, le=12)


class PlanUpdate(BaseModel):
    """
    Changing amount, currency or cycle registers a new gateway plan;
    existing subscriptions keep the old one.
    """
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=1000)
    amount: Optional[int] = Field(None, ge=100)
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    billing_cycle: Optional[BillingCycleType] = None
    interval_count: Optional[int] = Field(None, ge=1, le=12)


class PlanRead(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    amount: int
    currency: str
    billing_cycle: str
    interval_count: int
    gateway_plan_id: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class SubscriptionCreate(BaseModel):
    plan_id: int
    customer_email: Optional[EmailStr] = None
    customer_phone: Optional[str] = Field(None, max_length=20)


class SubscriptionCreateResponse(BaseModel):
    subscription_id: str
    key_id: Optional[str] = None
    plan_id: int
    status: str


class SubscriptionRead(BaseModel):
    id: int
    plan_id: Optional[int] = None
    gateway_subscription_id: str
    status: str
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class SubscriptionStatusResponse(BaseModel):
    is_subscribed: bool
    subscriptions: List[SubscriptionRead]
    pending: List[SubscriptionRead]


class ManualActivation(BaseModel):
    gateway_subscription_id: str = Field(..., min_length=1)


class CleanupResult(BaseModel):
    pending_deleted: int
    subscriptions_cancelled: int


class WebhookAck(BaseModel):
    status: str
    event: Optional[str] = None

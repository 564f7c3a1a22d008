from app.core.database import Base
from .admins import Admin
from .shifts import Shift, ShiftConfig, ShiftDiscount
from .seats import Seat
from .subscriptions import (
    BillingCycle,
    SubscriptionStatus,
    SubscriptionPlan,
    PendingSubscription,
    Subscription,
)

__all__ = [
    "Base",
    "Admin",
    "Shift",
    "ShiftConfig",
    "ShiftDiscount",
    "Seat",
    "BillingCycle",
    "SubscriptionStatus",
    "SubscriptionPlan",
    "PendingSubscription",
    "Subscription",
]

from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    DateTime,
    ForeignKey,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from enum import Enum
from app.core.database import Base


class BillingCycle(str, Enum):
    monthly = "monthly"
    yearly = "yearly"
    lifetime = "lifetime"


class SubscriptionStatus(str, Enum):
    """Статусы подписки у платежного шлюза"""

    created = "created"
    authenticated = "authenticated"
    active = "active"
    pending = "pending"
    halted = "halted"
    cancelled = "cancelled"
    completed = "completed"
    expired = "expired"


class SubscriptionPlan(Base):
    __tablename__ = "subscription_plans"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)

    # Сумма в минимальных единицах валюты (пайсы)
    amount = Column(Integer, nullable=False)
    currency = Column(String(3), nullable=False, default="INR")
    billing_cycle = Column(String(20), nullable=False, default=BillingCycle.monthly.value)
    interval_count = Column(Integer, nullable=False, default=1)

    gateway_plan_id = Column(String(255), nullable=True, unique=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    def __repr__(self):
        return f"<SubscriptionPlan(id={self.id}, name='{self.name}', amount={self.amount}, cycle='{self.billing_cycle}')>"


class PendingSubscription(Base):
    """Подписка создана у шлюза, но оплата еще не подтверждена вебхуком"""

    __tablename__ = "pending_subscriptions"

    id = Column(Integer, primary_key=True, index=True)
    admin_id = Column(
        Integer, ForeignKey("admin.id", ondelete="CASCADE"), nullable=False, index=True
    )
    plan_id = Column(
        Integer, ForeignKey("subscription_plans.id", ondelete="SET NULL"), nullable=True
    )
    gateway_subscription_id = Column(String(255), nullable=False, unique=True)
    status = Column(String(20), nullable=False, default=SubscriptionStatus.created.value)

    customer_email = Column(String(255), nullable=True)
    customer_phone = Column(String(20), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)

    plan = relationship("SubscriptionPlan")

    def __repr__(self):
        return f"<PendingSubscription(id={self.id}, admin_id={self.admin_id}, gateway_id='{self.gateway_subscription_id}')>"


class Subscription(Base):
    __tablename__ = "subscriptions"

    id = Column(Integer, primary_key=True, index=True)
    admin_id = Column(
        Integer, ForeignKey("admin.id", ondelete="CASCADE"), nullable=False, index=True
    )
    plan_id = Column(
        Integer, ForeignKey("subscription_plans.id", ondelete="SET NULL"), nullable=True
    )
    gateway_subscription_id = Column(String(255), nullable=False, unique=True)
    status = Column(String(20), nullable=False, index=True)

    customer_email = Column(String(255), nullable=True)
    customer_phone = Column(String(20), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    plan = relationship("SubscriptionPlan")

    def __repr__(self):
        return f"<Subscription(id={self.id}, admin_id={self.admin_id}, status='{self.status}')>"

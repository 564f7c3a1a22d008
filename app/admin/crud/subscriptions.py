from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy import and_, delete, update
import logging

from app.core.config import (
    PENDING_SUBSCRIPTION_TTL_HOURS,
    STALE_SUBSCRIPTION_DAYS,
)
from app.core.database import atomic, db_operation
from app.core.exceptions import (
    AlreadyConfiguredError,
    BaseAppException,
    ConfigurationError,
    DatabaseError,
    ExternalServiceError,
    NotFoundError,
    ValidationError,
)
from app.core.logging_utils import log_business_event
from app.admin.models.admins import Admin
from app.admin.models.subscriptions import (
    BillingCycle,
    PendingSubscription,
    Subscription,
    SubscriptionPlan,
    SubscriptionStatus,
)
from app.admin.schemas.subscriptions import PlanCreate, PlanUpdate, SubscriptionCreate
from app.admin.services.razorpay_client import RazorpayClient

logger = logging.getLogger(__name__)

ACTIVATION_EVENTS = {"subscription.authenticated", "subscription.charged", "subscription.activated"}
DEACTIVATION_EVENTS = {"subscription.cancelled", "subscription.halted"}

LIVE_STATUSES = (SubscriptionStatus.active.value, SubscriptionStatus.authenticated.value)

_GATEWAY_PERIODS = {
    BillingCycle.monthly.value: "monthly",
    BillingCycle.yearly.value: "yearly",
    # lifetime: one charge of a monthly plan
    BillingCycle.lifetime.value: "monthly",
}


def gateway_period(billing_cycle: str) -> str:
    return _GATEWAY_PERIODS[billing_cycle]


def total_count_for(billing_cycle: str) -> int:
    return 1 if billing_cycle == BillingCycle.lifetime.value else 12


def _orphaned_at_gateway(
    operation: str, gateway_field: str, gateway_id: Optional[str], cause: Exception
) -> DatabaseError:
    """Шлюз уже создал объект, а локальная запись не сохранилась"""
    logger.critical(
        f"{operation}: gateway object {gateway_id} has no local record, manual reconciliation required",
        extra={
            "operation": operation,
            gateway_field: gateway_id,
            "original_error": str(cause),
            "category": "consistency",
        },
    )
    return DatabaseError(
        f"{operation} failed after the payment gateway accepted it",
        consistency="inconsistent",
        details={"operation": operation, gateway_field: gateway_id},
    )


async def _cancel_orphaned_subscription(
    gateway: RazorpayClient, gateway_subscription_id: str, cause: Exception
) -> None:
    """Отмена подписки на шлюзе, если локальная запись не сохранилась"""
    try:
        await gateway.cancel_subscription(gateway_subscription_id)
    except (ExternalServiceError, ConfigurationError) as cancel_exc:
        raise _orphaned_at_gateway(
            "create_subscription", "gateway_subscription_id", gateway_subscription_id, cause
        ) from cancel_exc

    logger.warning(
        f"Gateway subscription {gateway_subscription_id} cancelled after a failed local write",
        extra={"gateway_subscription_id": gateway_subscription_id, "original_error": str(cause)},
    )


# Plans

@db_operation
async def list_plans(db: AsyncSession) -> List[SubscriptionPlan]:
    result = await db.execute(select(SubscriptionPlan).order_by(SubscriptionPlan.amount))
    return list(result.scalars().all())


@db_operation
async def get_plan(db: AsyncSession, plan_id: int) -> SubscriptionPlan:
    result = await db.execute(select(SubscriptionPlan).where(SubscriptionPlan.id == plan_id))
    plan = result.scalar_one_or_none()
    if not plan:
        raise NotFoundError("Plan", plan_id)
    return plan


async def create_plan(
    db: AsyncSession, data: PlanCreate, gateway: RazorpayClient
) -> SubscriptionPlan:
    """Register the plan at the gateway first, then store it locally"""
    gateway_plan = await gateway.create_plan(
        name=data.name,
        amount=data.amount,
        currency=data.currency,
        period=gateway_period(data.billing_cycle),
        interval=data.interval_count,
        description=data.description or "",
    )

    # планы на шлюзе не удаляются: без локальной записи остается только отчет
    try:
        async with atomic(db, "create_plan"):
            plan = SubscriptionPlan(
                name=data.name,
                description=data.description,
                amount=data.amount,
                currency=data.currency,
                billing_cycle=data.billing_cycle,
                interval_count=data.interval_count,
                gateway_plan_id=gateway_plan.get("id"),
            )
            db.add(plan)
            await db.flush()
            await db.refresh(plan)
    except BaseAppException as e:
        raise _orphaned_at_gateway(
            "create_plan", "gateway_plan_id", gateway_plan.get("id"), e
        ) from e

    log_business_event(
        "plan_created", "plan", plan.id, {"gateway_plan_id": plan.gateway_plan_id}
    )
    return plan


async def update_plan(
    db: AsyncSession, plan_id: int, data: PlanUpdate, gateway: RazorpayClient
) -> SubscriptionPlan:
    plan = await get_plan(db, plan_id)
    fields = data.model_dump(exclude_unset=True, exclude_none=True)

    pricing_fields = {"amount", "currency", "billing_cycle", "interval_count"}
    new_gateway_plan_id = None
    if pricing_fields & fields.keys():
        merged = {
            "name": fields.get("name", plan.name),
            "description": fields.get("description", plan.description),
            "amount": fields.get("amount", plan.amount),
            "currency": fields.get("currency", plan.currency),
            "billing_cycle": fields.get("billing_cycle", plan.billing_cycle),
            "interval_count": fields.get("interval_count", plan.interval_count),
        }
        gateway_plan = await gateway.create_plan(
            name=merged["name"],
            amount=merged["amount"],
            currency=merged["currency"],
            period=gateway_period(merged["billing_cycle"]),
            interval=merged["interval_count"],
            description=merged["description"] or "",
        )
        new_gateway_plan_id = gateway_plan.get("id")

    try:
        async with atomic(db, "update_plan"):
            for field, value in fields.items():
                setattr(plan, field, value)
            if new_gateway_plan_id:
                plan.gateway_plan_id = new_gateway_plan_id
    except BaseAppException as e:
        if new_gateway_plan_id is None:
            raise
        raise _orphaned_at_gateway(
            "update_plan", "gateway_plan_id", new_gateway_plan_id, e
        ) from e

    log_business_event("plan_updated", "plan", plan.id, {"fields": sorted(fields.keys())})
    return plan


async def delete_plan(db: AsyncSession, plan_id: int) -> None:
    async with atomic(db, "delete_plan"):
        plan = await get_plan(db, plan_id)
        await db.delete(plan)

    log_business_event("plan_deleted", "plan", plan_id, {})


# Subscriptions

async def create_subscription(
    db: AsyncSession, admin: Admin, data: SubscriptionCreate, gateway: RazorpayClient
) -> PendingSubscription:
    if admin.is_subscribed:
        raise AlreadyConfiguredError("Subscription", "Admin already has an active subscription")

    plan = await get_plan(db, data.plan_id)
    if not plan.gateway_plan_id:
        raise ValidationError("Plan is not registered with the payment gateway")

    email = data.customer_email or admin.email
    phone = data.customer_phone or admin.mobile_no

    gateway_subscription = await gateway.create_subscription(
        plan_id=plan.gateway_plan_id,
        total_count=total_count_for(plan.billing_cycle),
        customer_email=email,
        customer_phone=phone,
        admin_id=admin.id,
    )

    try:
        async with atomic(db, "create_subscription"):
            pending = PendingSubscription(
                admin_id=admin.id,
                plan_id=plan.id,
                gateway_subscription_id=gateway_subscription["id"],
                status=gateway_subscription.get("status", SubscriptionStatus.created.value),
                customer_email=email,
                customer_phone=phone,
            )
            db.add(pending)
            await db.flush()
    except BaseAppException as e:
        # без локальной записи подписка на шлюзе отменяется
        await _cancel_orphaned_subscription(gateway, gateway_subscription["id"], e)
        raise

    log_business_event(
        "subscription_created",
        "admin",
        admin.id,
        {"plan_id": plan.id, "gateway_subscription_id": pending.gateway_subscription_id},
    )
    return pending


async def _sync_admin_flag(db: AsyncSession, admin_id: int) -> bool:
    """is_subscribed follows whether any live subscription remains"""
    result = await db.execute(
        select(Subscription.id).where(
            and_(Subscription.admin_id == admin_id, Subscription.status.in_(LIVE_STATUSES))
        ).limit(1)
    )
    subscribed = result.scalar_one_or_none() is not None
    await db.execute(
        update(Admin)
        .where(Admin.id == admin_id)
        .values(is_subscribed=subscribed)
        .execution_options(synchronize_session="evaluate")
    )
    return subscribed


@db_operation
async def _get_subscription(db: AsyncSession, gateway_subscription_id: str) -> Optional[Subscription]:
    result = await db.execute(
        select(Subscription).where(
            Subscription.gateway_subscription_id == gateway_subscription_id
        )
    )
    return result.scalar_one_or_none()


async def activate_subscription(
    db: AsyncSession,
    gateway_subscription_id: str,
    status: str = SubscriptionStatus.active.value,
) -> Subscription:
    """
    Move a pending subscription to subscriptions and mark the admin subscribed.

    A repeated activation of an already moved subscription only refreshes
    its status.
    """
    async with atomic(db, "activate_subscription"):
        subscription = await _get_subscription(db, gateway_subscription_id)

        result = await db.execute(
            select(PendingSubscription).where(
                PendingSubscription.gateway_subscription_id == gateway_subscription_id
            )
        )
        pending = result.scalar_one_or_none()

        if subscription is None and pending is None:
            raise NotFoundError("Subscription", gateway_subscription_id)

        if subscription is None:
            subscription = Subscription(
                admin_id=pending.admin_id,
                plan_id=pending.plan_id,
                gateway_subscription_id=gateway_subscription_id,
                status=status,
                customer_email=pending.customer_email,
                customer_phone=pending.customer_phone,
            )
            db.add(subscription)
        else:
            subscription.status = status

        if pending is not None:
            await db.delete(pending)

        await db.flush()
        await db.refresh(subscription)
        await _sync_admin_flag(db, subscription.admin_id)

    log_business_event(
        "subscription_activated",
        "admin",
        subscription.admin_id,
        {"gateway_subscription_id": gateway_subscription_id, "status": status},
    )
    return subscription


async def deactivate_subscription(
    db: AsyncSession, gateway_subscription_id: str, status: str
) -> Optional[Subscription]:
    async with atomic(db, "deactivate_subscription"):
        subscription = await _get_subscription(db, gateway_subscription_id)

        if subscription is None:
            # never activated: only the pending record exists
            await db.execute(
                update(PendingSubscription)
                .where(PendingSubscription.gateway_subscription_id == gateway_subscription_id)
                .values(status=status)
                .execution_options(synchronize_session="evaluate")
            )
            return None

        subscription.status = status
        await db.flush()
        await _sync_admin_flag(db, subscription.admin_id)

    log_business_event(
        "subscription_deactivated",
        "admin",
        subscription.admin_id,
        {"gateway_subscription_id": gateway_subscription_id, "status": status},
    )
    return subscription


def _subscription_entity(payload: Dict[str, Any]) -> Dict[str, Any]:
    return payload.get("payload", {}).get("subscription", {}).get("entity", {}) or {}


async def process_webhook_event(db: AsyncSession, payload: Dict[str, Any]) -> str:
    """
    Apply a verified gateway event. Returns "processed" or "ignored".
    """
    event = payload.get("event")
    entity = _subscription_entity(payload)
    gateway_subscription_id = entity.get("id")

    if event not in ACTIVATION_EVENTS | DEACTIVATION_EVENTS:
        logger.info(f"Ignoring webhook event: {event}")
        return "ignored"

    if not gateway_subscription_id:
        raise ValidationError("Webhook payload has no subscription id", {"event": event})

    if event in ACTIVATION_EVENTS:
        status = entity.get("status") or SubscriptionStatus.active.value
        await activate_subscription(db, gateway_subscription_id, status)
    else:
        status = entity.get("status") or event.split(".", 1)[1]
        await deactivate_subscription(db, gateway_subscription_id, status)

    return "processed"


async def get_subscription_status(db: AsyncSession, admin_id: int) -> Dict[str, Any]:
    subscriptions = await db.execute(
        select(Subscription)
        .where(and_(Subscription.admin_id == admin_id, Subscription.status.in_(LIVE_STATUSES)))
        .order_by(Subscription.created_at.desc())
    )
    pending = await db.execute(
        select(PendingSubscription)
        .where(PendingSubscription.admin_id == admin_id)
        .order_by(PendingSubscription.created_at.desc())
    )
    live = list(subscriptions.scalars().all())

    return {
        "is_subscribed": bool(live),
        "subscriptions": live,
        "pending": list(pending.scalars().all()),
    }


async def cleanup_subscriptions(
    db: AsyncSession, now: Optional[datetime] = None
) -> Dict[str, int]:
    """
    Delete stale pending subscriptions and cancel subscriptions that never
    left the "created" state. Safe to run repeatedly.
    """
    now = now or datetime.now(timezone.utc)
    pending_cutoff = now - timedelta(hours=PENDING_SUBSCRIPTION_TTL_HOURS)
    stale_cutoff = now - timedelta(days=STALE_SUBSCRIPTION_DAYS)

    async with atomic(db, "cleanup_subscriptions"):
        deleted = await db.execute(
            delete(PendingSubscription)
            .where(PendingSubscription.created_at < pending_cutoff)
            .execution_options(synchronize_session=False)
        )
        cancelled = await db.execute(
            update(Subscription)
            .where(
                and_(
                    Subscription.status == SubscriptionStatus.created.value,
                    Subscription.created_at < stale_cutoff,
                )
            )
            .values(status=SubscriptionStatus.cancelled.value)
            .execution_options(synchronize_session=False)
        )

    result = {
        "pending_deleted": deleted.rowcount or 0,
        "subscriptions_cancelled": cancelled.rowcount or 0,
    }
    if any(result.values()):
        logger.info("Subscription cleanup finished", extra=result)
    return result

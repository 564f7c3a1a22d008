import json
import logging
from typing import List
from fastapi import APIRouter, Depends, Header, Path, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import RAZORPAY_KEY_ID, RAZORPAY_WEBHOOK_SECRET
from app.core.database import get_session
from app.core.limits import limiter
from app.core.security import verify_webhook_signature
from app.core.dependencies import require_master_admin, require_verified_admin
from app.core.exceptions import AuthenticationError, ValidationError
from app.admin.models.admins import Admin
from app.admin.schemas.seats import MessageResponse
from app.admin.schemas.subscriptions import (
    PlanCreate,
    PlanUpdate,
    PlanRead,
    SubscriptionCreate,
    SubscriptionCreateResponse,
    SubscriptionRead,
    SubscriptionStatusResponse,
    ManualActivation,
    CleanupResult,
    WebhookAck,
)
from app.admin.services.razorpay_client import RazorpayClient, get_billing_client
from app.admin.crud.subscriptions import (
    list_plans,
    create_plan,
    update_plan,
    delete_plan,
    create_subscription,
    activate_subscription,
    process_webhook_event,
    get_subscription_status,
    cleanup_subscriptions,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/subscriptions", tags=["Subscriptions"])


@router.get("/plans", response_model=List[PlanRead])
@limiter.limit("60/minute")
async def get_plans(
    request: Request,
    admin: Admin = Depends(require_verified_admin),
    db: AsyncSession = Depends(get_session),
):
    return await list_plans(db)


@router.post("/plans", response_model=PlanRead, status_code=status.HTTP_201_CREATED)
@limiter.limit("10/minute")
async def add_plan(
    request: Request,
    data: PlanCreate,
    admin: Admin = Depends(require_master_admin),
    db: AsyncSession = Depends(get_session),
    gateway: RazorpayClient = Depends(get_billing_client),
):
    """
    Create a plan (master admin only).

    - **amount**: in paise, at least 100
    - **billing_cycle**: monthly, yearly or lifetime (a single monthly charge)
    """
    return await create_plan(db, data, gateway)


@router.put("/plans/{plan_id}", response_model=PlanRead)
@limiter.limit("10/minute")
async def edit_plan(
    request: Request,
    data: PlanUpdate,
    plan_id: int = Path(..., gt=0),
    admin: Admin = Depends(require_master_admin),
    db: AsyncSession = Depends(get_session),
    gateway: RazorpayClient = Depends(get_billing_client),
):
    return await update_plan(db, plan_id, data, gateway)


@router.delete("/plans/{plan_id}", response_model=MessageResponse)
@limiter.limit("10/minute")
async def remove_plan(
    request: Request,
    plan_id: int = Path(..., gt=0),
    admin: Admin = Depends(require_master_admin),
    db: AsyncSession = Depends(get_session),
):
    await delete_plan(db, plan_id)
    return {"message": f"Plan {plan_id} deleted"}


@router.post("/", response_model=SubscriptionCreateResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit("5/minute")
async def subscribe(
    request: Request,
    data: SubscriptionCreate,
    admin: Admin = Depends(require_verified_admin),
    db: AsyncSession = Depends(get_session),
    gateway: RazorpayClient = Depends(get_billing_client),
):
    """Start a subscription; the admin completes payment in the gateway checkout"""
    pending = await create_subscription(db, admin, data, gateway)
    return {
        "subscription_id": pending.gateway_subscription_id,
        "key_id": RAZORPAY_KEY_ID,
        "plan_id": pending.plan_id,
        "status": pending.status,
    }


@router.get("/status", response_model=SubscriptionStatusResponse)
@limiter.limit("60/minute")
async def subscription_status(
    request: Request,
    admin: Admin = Depends(require_verified_admin),
    db: AsyncSession = Depends(get_session),
):
    return await get_subscription_status(db, admin.id)


@router.post("/webhook", response_model=WebhookAck)
async def gateway_webhook(
    request: Request,
    x_razorpay_signature: str = Header(None),
    db: AsyncSession = Depends(get_session),
):
    """Gateway callback. The signature is checked against the raw request body."""
    raw_body = await request.body()

    if not verify_webhook_signature(raw_body, x_razorpay_signature, RAZORPAY_WEBHOOK_SECRET):
        logger.warning("Webhook rejected: invalid signature")
        raise AuthenticationError("Invalid webhook signature")

    try:
        payload = json.loads(raw_body)
    except ValueError:
        raise ValidationError("Webhook body is not valid JSON")

    if not isinstance(payload, dict):
        raise ValidationError("Webhook body must be a JSON object")

    result = await process_webhook_event(db, payload)
    return {"status": result, "event": payload.get("event")}


@router.post("/trigger", response_model=SubscriptionRead)
@limiter.limit("10/minute")
async def trigger_activation(
    request: Request,
    data: ManualActivation,
    admin: Admin = Depends(require_master_admin),
    db: AsyncSession = Depends(get_session),
):
    """Activate a pending subscription as if the gateway had confirmed it"""
    return await activate_subscription(db, data.gateway_subscription_id)


@router.post("/cleanup", response_model=CleanupResult)
@limiter.limit("5/minute")
async def run_cleanup(
    request: Request,
    admin: Admin = Depends(require_master_admin),
    db: AsyncSession = Depends(get_session),
):
    return await cleanup_subscriptions(db)

import httpx
import logging
from typing import Any, Dict, Optional

from app.core.config import (
    RAZORPAY_API_URL,
    RAZORPAY_KEY_ID,
    RAZORPAY_KEY_SECRET,
    HTTP_TIMEOUT_SECONDS,
)
from app.core.exceptions import ConfigurationError, ExternalServiceError

logger = logging.getLogger(__name__)


class RazorpayClient:
    """
    Минимальный клиент REST API платежного шлюза: планы и подписки.

    Каждый вызов ограничен таймаутом; любой сбой превращается в
    ExternalServiceError (UPSTREAM_FAILURE).
    """

    service_name = "razorpay"

    def __init__(
        self,
        key_id: Optional[str] = RAZORPAY_KEY_ID,
        key_secret: Optional[str] = RAZORPAY_KEY_SECRET,
        base_url: str = RAZORPAY_API_URL,
        timeout: float = HTTP_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.key_id = key_id
        self.key_secret = key_secret
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport

    async def _post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        if not self.key_id or not self.key_secret:
            raise ConfigurationError(
                "RAZORPAY_KEY_ID", "Payment gateway keys are not configured"
            )

        url = f"{self.base_url}{path}"
        try:
            async with httpx.AsyncClient(
                auth=(self.key_id, self.key_secret),
                timeout=self.timeout,
                transport=self.transport,
            ) as client:
                response = await client.post(url, json=payload)
        except httpx.TimeoutException:
            logger.error(f"Payment gateway timeout: POST {path}")
            raise ExternalServiceError(self.service_name, "Payment gateway timed out")
        except httpx.HTTPError as e:
            logger.error(f"Payment gateway request failed: POST {path}: {str(e)}")
            raise ExternalServiceError(self.service_name, "Payment gateway unavailable")

        if response.status_code >= 400:
            logger.error(
                f"Payment gateway error {response.status_code}: POST {path}",
                extra={"status_code": response.status_code, "body": response.text[:500]},
            )
            raise ExternalServiceError(
                self.service_name, f"Payment gateway rejected request ({response.status_code})"
            )

        try:
            return response.json()
        except ValueError:
            logger.error(
                f"Payment gateway returned a non-JSON body: POST {path}",
                extra={"status_code": response.status_code, "body": response.text[:500]},
            )
            raise ExternalServiceError(
                self.service_name, "Payment gateway returned an unreadable response"
            )

    async def create_plan(
        self,
        name: str,
        amount: int,
        currency: str,
        period: str,
        interval: int,
        description: str = "",
    ) -> Dict[str, Any]:
        payload = {
            "period": period,
            "interval": interval,
            "item": {
                "name": name,
                "amount": amount,
                "currency": currency,
                "description": description or "",
            },
            "notes": {"plan": name},
        }
        plan = await self._post("/plans", payload)
        logger.info(f"Gateway plan created: {plan.get('id')}")
        return plan

    async def create_subscription(
        self,
        plan_id: str,
        total_count: int,
        customer_email: Optional[str],
        customer_phone: Optional[str],
        admin_id: int,
    ) -> Dict[str, Any]:
        payload = {
            "plan_id": plan_id,
            "total_count": total_count,
            "customer_notify": 1,
            "notify_info": {"email": customer_email, "phone": customer_phone},
            "notes": {"admin_id": str(admin_id)},
        }
        subscription = await self._post("/subscriptions", payload)
        logger.info(f"Gateway subscription created: {subscription.get('id')}")
        return subscription

    async def cancel_subscription(self, subscription_id: str) -> Dict[str, Any]:
        subscription = await self._post(
            f"/subscriptions/{subscription_id}/cancel", {"cancel_at_cycle_end": 0}
        )
        logger.info(f"Gateway subscription cancelled: {subscription_id}")
        return subscription


def get_billing_client() -> RazorpayClient:
    """Dependency: клиент платежного шлюза (подменяется в тестах)"""
    return RazorpayClient()

import httpx
import logging

from app.core.config import (
    EMAIL_API_URL,
    EMAIL_API_KEY,
    EMAIL_SENDER,
    HTTP_TIMEOUT_SECONDS,
    OTP_EXPIRE_MINUTES,
)

logger = logging.getLogger(__name__)


async def send_email(to: str, subject: str, text: str) -> bool:
    """
    Send an email through the configured HTTP email API.

    Fire-and-forget: delivery failures are logged, never raised.

    Returns:
        bool: True if the API accepted the message, False otherwise
    """
    if not EMAIL_API_URL:
        logger.warning("EMAIL_API_URL is not set. Cannot send email.")
        return False

    payload = {
        "from": EMAIL_SENDER,
        "to": to,
        "subject": subject,
        "text": text,
    }
    headers = {"Authorization": f"Bearer {EMAIL_API_KEY}"} if EMAIL_API_KEY else {}

    try:
        async with httpx.AsyncClient() as client:
            response = await client.post(
                EMAIL_API_URL, json=payload, headers=headers, timeout=HTTP_TIMEOUT_SECONDS
            )

            if response.status_code < 300:
                return True
            else:
                logger.error(f"Failed to send email to {to}: {response.text}")
                return False

    except httpx.HTTPError as e:
        logger.error(f"Error sending email to {to}: {str(e)}")
        return False


async def send_otp_email(email: str, otp: str) -> bool:
    if not EMAIL_API_URL:
        # Локальная разработка без почтового API
        logger.info(f"OTP for {email}: {otp}")
        return False

    return await send_email(
        email,
        "Your verification code",
        f"Your OTP is {otp}. It is valid for {OTP_EXPIRE_MINUTES} minutes.",
    )

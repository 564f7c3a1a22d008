import re
from datetime import datetime, time, timezone
from typing import Optional, Type

from app.core.exceptions import BaseAppException, ValidationError

_CLOCK_RE = re.compile(r"^(\d{1,2}):(\d{2})$")


def parse_clock_time(
    value: str, error_cls: Type[BaseAppException] = ValidationError
) -> time:
    """
    Разбирает время "HH:MM" по 24-часовой шкале.
    """
    if not value:
        raise error_cls("Start time is required")

    match = _CLOCK_RE.match(value.strip())
    if not match:
        raise error_cls(f"Invalid time '{value}', expected HH:MM")

    hours, minutes = int(match.group(1)), int(match.group(2))
    if hours > 23 or minutes > 59:
        raise error_cls(f"Invalid time '{value}', expected HH:MM")

    return time(hours, minutes)


def normalize_email(email: str) -> str:
    """Email сравнивается без учета регистра и пробелов по краям"""
    if not email or not email.strip():
        raise ValidationError("Email cannot be empty")
    return email.strip().lower()


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite возвращает naive datetime - считаем его UTC"""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)

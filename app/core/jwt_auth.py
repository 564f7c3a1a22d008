# app/core/jwt_auth.py
import jwt
from datetime import datetime, timedelta, timezone
from typing import Dict, Any, Optional
import logging

from app.core.config import JWT_SECRET_KEY, JWT_ACCESS_TOKEN_EXPIRE_MINUTES
from app.core.exceptions import AuthenticationError, ConfigurationError

logger = logging.getLogger(__name__)


class JWTManager:
    def __init__(
        self,
        secret_key: Optional[str] = JWT_SECRET_KEY,
        expire_minutes: int = JWT_ACCESS_TOKEN_EXPIRE_MINUTES,
    ):
        self.secret_key = secret_key
        self.algorithm = "HS256"
        self.access_token_expire_minutes = expire_minutes

    def _require_secret(self) -> str:
        if not self.secret_key:
            raise ConfigurationError("JWT_SECRET_KEY", "JWT secret key is not configured")
        return self.secret_key

    def create_access_token(
        self,
        user_id: int,
        email: str,
        role: str,
        extra_data: Dict[str, Any] = None,
    ) -> str:
        """
        Create JWT access token for an admin or a student

        Args:
            user_id: Admin or student ID
            email: User's email
            role: "admin" or "student"
            extra_data: Status flags (is_subscribed, has_paid, is_master)

        Returns:
            JWT token string
        """
        now = datetime.now(timezone.utc)
        payload = {
            "sub": str(user_id),
            "user_id": user_id,
            "email": email,
            "role": role,
            "exp": now + timedelta(minutes=self.access_token_expire_minutes),
            "iat": now,
            "type": "access_token",
        }

        if extra_data:
            payload.update(extra_data)

        token = jwt.encode(payload, self._require_secret(), algorithm=self.algorithm)

        logger.info(f"JWT token created for {role} {user_id}")
        return token

    def decode_token(self, token: str) -> Dict[str, Any]:
        """
        Decode and verify JWT token

        Raises:
            AuthenticationError: If token is invalid, expired or of wrong type
        """
        try:
            payload = jwt.decode(
                token, self._require_secret(), algorithms=[self.algorithm]
            )
        except jwt.ExpiredSignatureError:
            logger.warning("JWT token has expired")
            raise AuthenticationError("Token has expired")
        except jwt.InvalidTokenError:
            logger.warning("Invalid JWT token provided")
            raise AuthenticationError("Invalid token")

        if payload.get("type") != "access_token":
            raise AuthenticationError("Invalid token type")

        if payload.get("role") not in ("admin", "student") or "user_id" not in payload:
            raise AuthenticationError("Incomplete token payload")

        return payload


# Create global instance
jwt_manager = JWTManager()

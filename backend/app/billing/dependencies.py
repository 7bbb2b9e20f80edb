"""Billing dependencies — fee schedule injection and cron authorization."""

import hmac
import logging

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.billing.fees import get_fee_schedule
from app.config import settings

logger = logging.getLogger(__name__)

_cron_bearer = HTTPBearer(auto_error=False)

__all__ = ["get_fee_schedule", "require_cron_secret"]


async def require_cron_secret(
    credentials: HTTPAuthorizationCredentials | None = Depends(_cron_bearer),
) -> None:
    """Raise 503 if no cron secret is configured, 401 if the Bearer token differs."""
    if not settings.cron_secret:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"message": "Cron secret not configured", "code": "CONFIG_ERROR"},
        )

    token = credentials.credentials if credentials else ""
    if not hmac.compare_digest(token.encode(), settings.cron_secret.encode()):
        logger.warning("Rejected cron call with invalid secret")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"message": "Unauthorized", "code": "AUTH_ERROR"},
        )

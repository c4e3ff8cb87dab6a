"""
Provider authentication - Bearer JWT issued by the account service.
"""
import hmac
import logging
import uuid
from typing import Optional

import jwt as pyjwt
from fastapi import Depends, Header, HTTPException
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from leadrouter.config import get_settings

logger = logging.getLogger(__name__)
bearer_scheme = HTTPBearer()


async def get_current_provider_id(
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
) -> uuid.UUID:
    """Dependency returning the provider's user id from the token's user_id claim."""
    settings = get_settings()

    try:
        payload = pyjwt.decode(
            credentials.credentials,
            settings.jwt_secret or settings.app_secret_key,
            algorithms=["HS256"],
        )
    except pyjwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except pyjwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid token")

    user_id = payload.get("user_id")
    if not user_id:
        raise HTTPException(status_code=401, detail="Invalid token payload")

    try:
        return uuid.UUID(str(user_id))
    except ValueError:
        raise HTTPException(status_code=401, detail="Invalid token payload")


async def require_scheduled_tasks_key(
    x_api_key: Optional[str] = Header(None, alias="X-API-Key"),
) -> None:
    """Dependency guarding cron-triggered endpoints."""
    expected = get_settings().scheduled_tasks_api_key
    if not expected:
        logger.error("SCHEDULED_TASKS_API_KEY not set, refusing scheduled task call")
        raise HTTPException(status_code=503, detail="Scheduled tasks are not configured")
    if not x_api_key or not hmac.compare_digest(x_api_key, expected):
        raise HTTPException(status_code=401, detail="Invalid API key")

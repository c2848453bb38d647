from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError
import structlog

from procure_api.services.access_policy import Actor
from procure_api.services.auth_service import read_token

logger = structlog.get_logger()

security = HTTPBearer(auto_error=False)


def _unauthorized(message: str = "Invalid or expired token") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={"error": {"code": "AUTH_TOKEN_INVALID", "message": message}},
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_actor(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Actor:
    """Resolve the bearer token into the acting identity."""
    if credentials is None:
        raise _unauthorized("Missing bearer token")
    try:
        actor = read_token(credentials.credentials)
    except JWTError as e:
        logger.warning("auth_token_invalid", error=str(e))
        raise _unauthorized()

    structlog.contextvars.bind_contextvars(actor_id=str(actor.id), role=actor.role)
    return actor

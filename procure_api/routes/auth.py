from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from procure_api.config import settings
from procure_api.database import get_db
from procure_api.exceptions import NotFoundError, ValidationError
from procure_api.middleware.auth import get_current_actor
from procure_api.models.user import User
from procure_api.schemas.auth import (
    ChangePasswordRequest,
    LoginRequest,
    MeResponse,
    SignupRequest,
    TokenResponse,
)
from procure_api.schemas.common import iso, parse_uuid
from procure_api.schemas.user import UserResponse
from procure_api.services.access_policy import Actor
from procure_api.services.auth_service import (
    actor_for,
    authenticate,
    hash_password,
    issue_token,
    register_user,
    verify_password,
)

logger = structlog.get_logger()

router = APIRouter()


@router.post("/login", response_model=TokenResponse)
async def login(body: LoginRequest, db: AsyncSession = Depends(get_db)):
    user = await authenticate(db, body.email, body.password)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={
                "error": {
                    "code": "AUTH_INVALID_CREDENTIALS",
                    "message": "Invalid email or password",
                }
            },
        )
    await db.commit()

    return TokenResponse(
        access_token=issue_token(actor_for(user)),
        token_type="Bearer",
        expires_in=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
    )


@router.post("/signup", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def signup(body: SignupRequest, db: AsyncSession = Depends(get_db)):
    """Open registration; new accounts always start as USER."""
    try:
        department_id = parse_uuid(body.department_id, "Department")
    except NotFoundError:
        raise ValidationError("Department not found or inactive", {"field": "department_id"})
    user = await register_user(db, body.name, body.email, body.password, department_id)
    await db.commit()
    await db.refresh(user)

    return UserResponse(
        id=str(user.id),
        name=user.name,
        email=user.email,
        role=user.role,
        department_id=str(user.department_id),
        is_active=user.is_active,
        created_at=iso(user.created_at),
    )


@router.get("/me", response_model=MeResponse)
async def me(actor: Actor = Depends(get_current_actor)):
    return MeResponse(
        id=str(actor.id),
        name=actor.name,
        email=actor.email,
        role=actor.role,
        department_id=str(actor.department_id) if actor.department_id else None,
    )


@router.post("/change-password", status_code=status.HTTP_204_NO_CONTENT)
async def change_password(
    body: ChangePasswordRequest,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    user = await db.get(User, actor.id)
    if user is None or not user.is_active:
        raise NotFoundError("User", actor.id)

    if not verify_password(body.current_password, user.password_hash):
        raise ValidationError("Incorrect current password", {"field": "current_password"})

    user.password_hash = hash_password(body.new_password)
    await db.commit()
    logger.info("password_changed", user_id=str(user.id))

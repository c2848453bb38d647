"""Credentials and access tokens for workflow actors.

A token carries everything needed to rebuild the ``Actor`` (id, name, role,
department), so authenticated requests never hit the users table.
"""

import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import jwt, JWTError
from passlib.context import CryptContext
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from procure_api.config import settings
from procure_api.exceptions import ConflictError, ValidationError
from procure_api.models.department import Department
from procure_api.models.enums import Role
from procure_api.models.user import User
from procure_api.services.access_policy import Actor

logger = structlog.get_logger()

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

TOKEN_TYPE = "access"


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain: str, hashed: Optional[str]) -> bool:
    # Accounts provisioned without a password cannot log in.
    if not hashed:
        return False
    return pwd_context.verify(plain, hashed)


def actor_for(user: User) -> Actor:
    return Actor(
        id=user.id,
        name=user.name,
        role=user.role,
        department_id=user.department_id,
        email=user.email,
    )


async def authenticate(session: AsyncSession, email: str, password: str) -> Optional[User]:
    """Active user matching ``email`` and ``password``; stamps last_login_at."""
    result = await session.execute(
        select(User).where(
            func.lower(User.email) == email.lower(),
            User.is_active == True,  # noqa: E712
        )
    )
    user = result.scalar_one_or_none()
    if user is None or not verify_password(password, user.password_hash):
        logger.warning("login_failed", email=email)
        return None

    user.last_login_at = datetime.utcnow()
    logger.info("user_logged_in", user_id=str(user.id), role=user.role)
    return user


def issue_token(actor: Actor) -> str:
    now = datetime.now(timezone.utc)
    claims = {
        "sub": str(actor.id),
        "name": actor.name,
        "role": actor.role,
        "email": actor.email,
        "type": TOKEN_TYPE,
        "iat": now,
        "exp": now + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
    }
    if actor.department_id:
        claims["department_id"] = str(actor.department_id)
    return jwt.encode(claims, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def read_token(token: str) -> Actor:
    """Verify ``token`` and rebuild its actor. Raises JWTError on any defect."""
    claims = jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    if claims.get("type") != TOKEN_TYPE:
        raise JWTError("Not an access token")

    try:
        department_id = claims.get("department_id")
        return Actor(
            id=uuid.UUID(claims["sub"]),
            name=claims.get("name", ""),
            role=claims["role"],
            email=claims.get("email"),
            department_id=uuid.UUID(department_id) if department_id else None,
        )
    except (KeyError, ValueError) as e:
        raise JWTError(f"Malformed token claims: {e}")


async def register_user(
    session: AsyncSession, name: str, email: str, password: str, department_id: uuid.UUID
) -> User:
    """Self-service account: always role USER, bound to an active department."""
    taken = await session.execute(select(User.id).where(func.lower(User.email) == email.lower()))
    if taken.first():
        raise ConflictError("Email already registered", {"field": "email"})

    department = await session.get(Department, department_id)
    if department is None or not department.is_active:
        raise ValidationError("Department not found or inactive", {"field": "department_id"})

    user = User(
        name=name.strip(),
        email=email.lower(),
        password_hash=hash_password(password),
        role=Role.USER.value,
        department_id=department.id,
        is_active=True,
    )
    session.add(user)
    await session.flush()
    logger.info("user_signed_up", user_id=str(user.id), department_id=str(department.id))
    return user

from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from procure_api.database import get_db
from procure_api.exceptions import ConflictError, NotFoundError, ValidationError
from procure_api.middleware.auth import get_current_actor
from procure_api.middleware.authorization import require_roles
from procure_api.models.department import Department
from procure_api.models.enums import Role
from procure_api.models.user import User
from procure_api.schemas.common import (
    MessageResponse,
    PaginatedResponse,
    build_pagination,
    iso,
    parse_optional_uuid,
    parse_uuid,
)
from procure_api.schemas.user import UserCreate, UserResponse, UserUpdate
from procure_api.services.access_policy import Actor
from procure_api.services.auth_service import hash_password

logger = structlog.get_logger()
router = APIRouter()


def _to_response(u: User, department_name: Optional[str] = None) -> UserResponse:
    return UserResponse(
        id=str(u.id),
        name=u.name,
        email=u.email,
        role=u.role,
        department_id=str(u.department_id) if u.department_id else None,
        department_name=department_name,
        is_active=u.is_active,
        created_at=iso(u.created_at),
        last_login_at=iso(u.last_login_at),
    )


async def _get_user(db: AsyncSession, user_id) -> User:
    user = await db.get(User, parse_uuid(user_id, "User"))
    if not user:
        raise NotFoundError("User", user_id)
    return user


async def _check_department(db: AsyncSession, department_id) -> None:
    if department_id is not None and await db.get(Department, department_id) is None:
        raise ValidationError("Department not found", {"field": "department_id"})


async def _ensure_unique_email(db: AsyncSession, email: str, exclude_id=None) -> None:
    q = select(User.id).where(func.lower(User.email) == email.lower())
    if exclude_id is not None:
        q = q.where(User.id != exclude_id)
    if (await db.execute(q)).first():
        raise ConflictError("Email already registered")


@router.get("", response_model=PaginatedResponse[UserResponse])
async def list_users(
    page: int = Query(1, ge=1, le=1000),
    limit: int = Query(20, ge=1, le=100),
    role: Optional[Role] = Query(None),
    is_active: Optional[bool] = Query(None),
    actor: Actor = Depends(get_current_actor),
    _auth: None = Depends(require_roles("ADMIN")),
    db: AsyncSession = Depends(get_db),
):
    q = select(User)
    if role:
        q = q.where(User.role == role.value)
    if is_active is not None:
        q = q.where(User.is_active == is_active)

    total = (await db.execute(select(func.count()).select_from(q.subquery()))).scalar() or 0
    result = await db.execute(q.order_by(User.name).offset((page - 1) * limit).limit(limit))
    users = list(result.scalars().all())

    dept_ids = {u.department_id for u in users if u.department_id}
    names = {}
    if dept_ids:
        dept_result = await db.execute(
            select(Department.id, Department.name).where(Department.id.in_(dept_ids))
        )
        names = {row[0]: row[1] for row in dept_result.all()}

    items = [_to_response(u, names.get(u.department_id)) for u in users]
    return PaginatedResponse(data=items, pagination=build_pagination(page, limit, total))


@router.get("/{user_id}", response_model=UserResponse)
async def get_user(
    user_id: str,
    actor: Actor = Depends(get_current_actor),
    _auth: None = Depends(require_roles("ADMIN")),
    db: AsyncSession = Depends(get_db),
):
    return _to_response(await _get_user(db, user_id))


@router.post("", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def create_user(
    body: UserCreate,
    actor: Actor = Depends(get_current_actor),
    _auth: None = Depends(require_roles("ADMIN")),
    db: AsyncSession = Depends(get_db),
):
    await _ensure_unique_email(db, body.email)
    department_id = parse_optional_uuid(body.department_id, "Department")
    await _check_department(db, department_id)

    user = User(
        name=body.name.strip(),
        email=body.email.lower(),
        password_hash=hash_password(body.password),
        role=body.role.value,
        department_id=department_id,
        is_active=True,
    )
    db.add(user)
    await db.flush()
    await db.commit()
    await db.refresh(user)

    logger.info("user_created", user_id=str(user.id), role=user.role, created_by=str(actor.id))
    return _to_response(user)


@router.put("/{user_id}", response_model=UserResponse)
async def update_user(
    user_id: str,
    body: UserUpdate,
    actor: Actor = Depends(get_current_actor),
    _auth: None = Depends(require_roles("ADMIN")),
    db: AsyncSession = Depends(get_db),
):
    user = await _get_user(db, user_id)
    changes = body.model_dump(exclude_unset=True)

    if changes.get("email"):
        await _ensure_unique_email(db, changes["email"], exclude_id=user.id)
        user.email = changes["email"].lower()
    if changes.get("name"):
        user.name = changes["name"].strip()
    if changes.get("role"):
        user.role = changes["role"].value
    if "department_id" in changes:
        department_id = parse_optional_uuid(changes["department_id"], "Department")
        await _check_department(db, department_id)
        user.department_id = department_id
    if changes.get("is_active") is not None:
        user.is_active = changes["is_active"]
    if changes.get("password"):
        user.password_hash = hash_password(changes["password"])

    await db.commit()
    await db.refresh(user)
    logger.info("user_updated", user_id=str(user.id), fields=sorted(changes))
    return _to_response(user)


@router.delete("/{user_id}", response_model=MessageResponse)
async def deactivate_user(
    user_id: str,
    actor: Actor = Depends(get_current_actor),
    _auth: None = Depends(require_roles("ADMIN")),
    db: AsyncSession = Depends(get_db),
):
    """Users own requests and history, so they are deactivated rather than removed."""
    user = await _get_user(db, user_id)
    if user.id == actor.id:
        raise ValidationError("You cannot deactivate your own account")
    user.is_active = False
    await db.commit()
    logger.info("user_deactivated", user_id=str(user.id))
    return MessageResponse(message="User deactivated")

"""
Department types: a small coded classification attached to departments.

Reads are open to any authenticated user; writes are ADMIN only. A type is
never removed, only deactivated, and only while no department uses it.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import select, func, or_
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from procure_api.database import get_db
from procure_api.exceptions import ConflictError, NotFoundError
from procure_api.middleware.auth import get_current_actor
from procure_api.middleware.authorization import require_roles
from procure_api.models.department import Department, DepartmentType
from procure_api.schemas.common import MessageResponse, parse_uuid
from procure_api.schemas.department import (
    DepartmentTypeCreate,
    DepartmentTypeResponse,
    DepartmentTypeUpdate,
)
from procure_api.services.access_policy import Actor

logger = structlog.get_logger()
router = APIRouter()


def _to_response(t: DepartmentType, department_count: int = 0) -> DepartmentTypeResponse:
    return DepartmentTypeResponse(
        id=str(t.id),
        code=t.code,
        name=t.name,
        observations=t.observations,
        is_active=t.is_active,
        department_count=department_count,
        created_at=t.created_at.isoformat() if t.created_at else "",
    )


async def _get_type(db: AsyncSession, type_id) -> DepartmentType:
    dept_type = await db.get(DepartmentType, parse_uuid(type_id, "DepartmentType"))
    if not dept_type:
        raise NotFoundError("DepartmentType", type_id)
    return dept_type


async def _department_count(db: AsyncSession, type_id) -> int:
    result = await db.execute(
        select(func.count(Department.id)).where(Department.type_id == type_id)
    )
    return result.scalar() or 0


async def _ensure_unique(db: AsyncSession, code: str, name: str, exclude_id=None) -> None:
    q = select(DepartmentType.code, DepartmentType.name).where(
        or_(DepartmentType.code == code, DepartmentType.name == name)
    )
    if exclude_id is not None:
        q = q.where(DepartmentType.id != exclude_id)
    clash = (await db.execute(q)).first()
    if clash:
        field = "code" if clash[0] == code else "name"
        raise ConflictError(
            f"A department type with this {field} already exists", {"field": field}
        )


@router.get("", response_model=List[DepartmentTypeResponse])
async def list_department_types(
    include_inactive: bool = Query(False),
    search: Optional[str] = Query(None),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    counts = (
        select(Department.type_id, func.count(Department.id).label("departments"))
        .group_by(Department.type_id)
        .subquery()
    )
    q = select(DepartmentType, func.coalesce(counts.c.departments, 0)).outerjoin(
        counts, counts.c.type_id == DepartmentType.id
    )
    if not include_inactive:
        q = q.where(DepartmentType.is_active == True)  # noqa: E712
    if search and search.strip():
        pattern = f"%{search.strip().lower()}%"
        q = q.where(
            or_(
                func.lower(DepartmentType.code).like(pattern),
                func.lower(DepartmentType.name).like(pattern),
                func.lower(DepartmentType.observations).like(pattern),
            )
        )
    result = await db.execute(q.order_by(DepartmentType.code))
    return [_to_response(t, count) for t, count in result.all()]


@router.get("/{type_id}", response_model=DepartmentTypeResponse)
async def get_department_type(
    type_id: str,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    dept_type = await _get_type(db, type_id)
    return _to_response(dept_type, await _department_count(db, dept_type.id))


@router.post("", response_model=DepartmentTypeResponse, status_code=status.HTTP_201_CREATED)
async def create_department_type(
    body: DepartmentTypeCreate,
    actor: Actor = Depends(get_current_actor),
    _auth: None = Depends(require_roles("ADMIN")),
    db: AsyncSession = Depends(get_db),
):
    code = body.code.strip().upper()
    name = body.name.strip()
    await _ensure_unique(db, code, name)

    dept_type = DepartmentType(
        code=code,
        name=name,
        observations=body.observations,
        is_active=body.is_active,
    )
    db.add(dept_type)
    await db.flush()
    await db.commit()
    await db.refresh(dept_type)
    logger.info("department_type_created", type_id=str(dept_type.id), code=code)
    return _to_response(dept_type)


@router.put("/{type_id}", response_model=DepartmentTypeResponse)
async def update_department_type(
    type_id: str,
    body: DepartmentTypeUpdate,
    actor: Actor = Depends(get_current_actor),
    _auth: None = Depends(require_roles("ADMIN")),
    db: AsyncSession = Depends(get_db),
):
    dept_type = await _get_type(db, type_id)
    changes = body.model_dump(exclude_unset=True)

    if "code" in changes:
        changes["code"] = changes["code"].strip().upper()
    if "name" in changes:
        changes["name"] = changes["name"].strip()
    if "code" in changes or "name" in changes:
        await _ensure_unique(
            db,
            changes.get("code", dept_type.code),
            changes.get("name", dept_type.name),
            exclude_id=dept_type.id,
        )

    for field, val in changes.items():
        setattr(dept_type, field, val)
    await db.commit()
    await db.refresh(dept_type)
    return _to_response(dept_type, await _department_count(db, dept_type.id))


@router.delete("/{type_id}", response_model=MessageResponse)
async def deactivate_department_type(
    type_id: str,
    actor: Actor = Depends(get_current_actor),
    _auth: None = Depends(require_roles("ADMIN")),
    db: AsyncSession = Depends(get_db),
):
    dept_type = await _get_type(db, type_id)
    if await _department_count(db, dept_type.id):
        raise ConflictError("Cannot deactivate a department type that departments still use")

    dept_type.is_active = False
    await db.commit()
    logger.info("department_type_deactivated", type_id=str(dept_type.id))
    return MessageResponse(message="Department type deactivated")

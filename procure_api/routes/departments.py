from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import select, func, or_
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from procure_api.database import get_db
from procure_api.exceptions import ConflictError, NotFoundError, ValidationError
from procure_api.middleware.auth import get_current_actor
from procure_api.middleware.authorization import require_roles
from procure_api.models.department import Department, DepartmentType
from procure_api.models.request import Request
from procure_api.models.user import User
from procure_api.schemas.common import (
    MessageResponse,
    PaginatedResponse,
    build_pagination,
    parse_optional_uuid,
    parse_uuid,
)
from procure_api.schemas.department import (
    DepartmentCreate,
    DepartmentResponse,
    DepartmentUpdate,
)
from procure_api.services.access_policy import Actor

logger = structlog.get_logger()
router = APIRouter()


def _to_response(
    d: Department, parent_name: Optional[str] = None, type_name: Optional[str] = None
) -> DepartmentResponse:
    return DepartmentResponse(
        id=str(d.id),
        code=d.code,
        name=d.name,
        acronym=d.acronym,
        parent_id=str(d.parent_id) if d.parent_id else None,
        parent_name=parent_name,
        type_id=str(d.type_id) if d.type_id else None,
        type_name=type_name,
        observations=d.observations,
        is_active=d.is_active,
        created_at=d.created_at.isoformat() if d.created_at else "",
    )


async def _get_department(db: AsyncSession, dept_id) -> Department:
    result = await db.execute(
        select(Department).where(Department.id == parse_uuid(dept_id, "Department"))
    )
    dept = result.scalar_one_or_none()
    if not dept:
        raise NotFoundError("Department", dept_id)
    return dept


async def _ensure_unique(db: AsyncSession, code: str, name: str, exclude_id=None) -> None:
    q = select(Department.id).where(or_(Department.code == code, Department.name == name))
    if exclude_id is not None:
        q = q.where(Department.id != exclude_id)
    if (await db.execute(q)).first():
        raise ConflictError("A department with this code or name already exists")


async def _check_type(db: AsyncSession, type_id) -> Optional[str]:
    """Name of the department type, which must exist and be active."""
    if type_id is None:
        return None
    dept_type = await db.get(DepartmentType, type_id)
    if dept_type is None or not dept_type.is_active:
        raise ValidationError("Department type not found or inactive", {"field": "type_id"})
    return dept_type.name


async def _validate_parent(db: AsyncSession, parent_id, dept_id=None) -> None:
    """Parent must exist and must not be the department itself or one of its descendants."""
    if parent_id is None:
        return
    if dept_id is not None and parent_id == dept_id:
        raise ValidationError("A department cannot be its own parent", {"field": "parent_id"})

    current = await db.get(Department, parent_id)
    if current is None:
        raise ValidationError("Parent department not found", {"field": "parent_id"})

    seen = set()
    while current is not None and current.parent_id is not None:
        if dept_id is not None and current.parent_id == dept_id:
            raise ValidationError(
                "This change would create a loop in the department hierarchy",
                {"field": "parent_id"},
            )
        if current.parent_id in seen:
            break
        seen.add(current.parent_id)
        current = await db.get(Department, current.parent_id)


@router.get("", response_model=PaginatedResponse[DepartmentResponse])
async def list_departments(
    page: int = Query(1, ge=1), limit: int = Query(50, ge=1, le=200),
    active_only: bool = Query(False),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    q = select(Department)
    if active_only:
        q = q.where(Department.is_active == True)  # noqa: E712
    total = (await db.execute(select(func.count()).select_from(q.subquery()))).scalar() or 0
    result = await db.execute(q.order_by(Department.name).offset((page - 1) * limit).limit(limit))
    departments = list(result.scalars().all())

    parent_ids = {d.parent_id for d in departments if d.parent_id}
    parents = {}
    if parent_ids:
        parent_result = await db.execute(
            select(Department.id, Department.name).where(Department.id.in_(parent_ids))
        )
        parents = {row[0]: row[1] for row in parent_result.all()}

    type_ids = {d.type_id for d in departments if d.type_id}
    type_names = {}
    if type_ids:
        type_result = await db.execute(
            select(DepartmentType.id, DepartmentType.name).where(DepartmentType.id.in_(type_ids))
        )
        type_names = {row[0]: row[1] for row in type_result.all()}

    items = [
        _to_response(d, parents.get(d.parent_id), type_names.get(d.type_id))
        for d in departments
    ]
    return PaginatedResponse(data=items, pagination=build_pagination(page, limit, total))


@router.get("/{dept_id}", response_model=DepartmentResponse)
async def get_department(
    dept_id: str,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    dept = await _get_department(db, dept_id)
    parent = await db.get(Department, dept.parent_id) if dept.parent_id else None
    dept_type = await db.get(DepartmentType, dept.type_id) if dept.type_id else None
    return _to_response(
        dept, parent.name if parent else None, dept_type.name if dept_type else None
    )


@router.post("", response_model=DepartmentResponse, status_code=status.HTTP_201_CREATED)
async def create_department(
    body: DepartmentCreate,
    actor: Actor = Depends(get_current_actor),
    _auth: None = Depends(require_roles("ADMIN")),
    db: AsyncSession = Depends(get_db),
):
    code = body.code.strip().upper()
    name = body.name.strip()
    await _ensure_unique(db, code, name)
    parent_id = parse_optional_uuid(body.parent_id, "Department")
    await _validate_parent(db, parent_id)
    type_id = parse_optional_uuid(body.type_id, "DepartmentType")
    type_name = await _check_type(db, type_id)

    dept = Department(
        code=code,
        name=name,
        acronym=body.acronym,
        parent_id=parent_id,
        type_id=type_id,
        observations=body.observations,
        is_active=body.is_active,
    )
    db.add(dept)
    await db.flush()
    await db.commit()
    await db.refresh(dept)
    logger.info("department_created", department_id=str(dept.id), code=dept.code)
    return _to_response(dept, type_name=type_name)


@router.put("/{dept_id}", response_model=DepartmentResponse)
async def update_department(
    dept_id: str, body: DepartmentUpdate,
    actor: Actor = Depends(get_current_actor),
    _auth: None = Depends(require_roles("ADMIN")),
    db: AsyncSession = Depends(get_db),
):
    dept = await _get_department(db, dept_id)
    changes = body.model_dump(exclude_unset=True)

    if "code" in changes:
        changes["code"] = changes["code"].strip().upper()
    if "name" in changes:
        changes["name"] = changes["name"].strip()
    if "code" in changes or "name" in changes:
        await _ensure_unique(
            db, changes.get("code", dept.code), changes.get("name", dept.name), exclude_id=dept.id
        )
    if "parent_id" in changes:
        changes["parent_id"] = parse_optional_uuid(changes["parent_id"], "Department")
        await _validate_parent(db, changes["parent_id"], dept_id=dept.id)
    if "type_id" in changes:
        changes["type_id"] = parse_optional_uuid(changes["type_id"], "DepartmentType")
        await _check_type(db, changes["type_id"])

    for field, val in changes.items():
        setattr(dept, field, val)
    await db.commit()
    await db.refresh(dept)
    dept_type = await db.get(DepartmentType, dept.type_id) if dept.type_id else None
    return _to_response(dept, type_name=dept_type.name if dept_type else None)


@router.delete("/{dept_id}", response_model=MessageResponse)
async def delete_department(
    dept_id: str,
    actor: Actor = Depends(get_current_actor),
    _auth: None = Depends(require_roles("ADMIN")),
    db: AsyncSession = Depends(get_db),
):
    dept = await _get_department(db, dept_id)

    users = (await db.execute(
        select(func.count(User.id)).where(User.department_id == dept.id)
    )).scalar() or 0
    if users:
        raise ConflictError("Cannot delete a department that has users")

    requests = (await db.execute(
        select(func.count(Request.id)).where(Request.department_id == dept.id)
    )).scalar() or 0
    if requests:
        raise ConflictError("Cannot delete a department that has requests")

    children = (await db.execute(
        select(func.count(Department.id)).where(Department.parent_id == dept.id)
    )).scalar() or 0
    if children:
        raise ConflictError(
            "Cannot delete a department that has sub-departments; move or remove them first"
        )

    await db.delete(dept)
    await db.commit()
    logger.info("department_deleted", department_id=str(dept.id))
    return MessageResponse(message="Department deleted")

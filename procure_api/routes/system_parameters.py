from typing import List

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from procure_api.database import get_db
from procure_api.exceptions import ConflictError, NotFoundError
from procure_api.middleware.auth import get_current_actor
from procure_api.middleware.authorization import require_roles
from procure_api.models.enums import ParameterType
from procure_api.models.system_parameter import SystemParameter
from procure_api.schemas.common import MessageResponse, iso, parse_uuid
from procure_api.schemas.system_parameter import (
    SeedResponse,
    SystemParameterCreate,
    SystemParameterResponse,
    SystemParameterUpdate,
)
from procure_api.services.access_policy import Actor

logger = structlog.get_logger()
router = APIRouter()

# Branding / behaviour defaults installed by POST /system-parameters/seed.
DEFAULT_PARAMETERS = [
    ("primary_color", "#2563eb", ParameterType.COLOR, "Primary interface color"),
    ("secondary_color", "#10b981", ParameterType.COLOR, "Secondary interface color"),
    ("accent_color", "#f59e0b", ParameterType.COLOR, "Accent color"),
    ("danger_color", "#ef4444", ParameterType.COLOR, "Color for errors and destructive actions"),
    ("system_logo", "/images/logo.png", ParameterType.IMAGE, "Logo shown in the header"),
    ("system_name", "Plano de Aquisição de TIC", ParameterType.STRING, "System display name"),
    ("session_timeout_minutes", "30", ParameterType.NUMBER, "Idle session timeout in minutes"),
    ("auto_approval_enabled", "false", ParameterType.BOOLEAN, "Enable automatic approval of small requests"),
    ("auto_approval_limit", "1000", ParameterType.NUMBER, "Maximum value for automatic approval"),
    ("email_notifications_enabled", "true", ParameterType.BOOLEAN, "Send e-mail notifications"),
    ("system_theme", "light", ParameterType.STRING, "Interface theme (light or dark)"),
]


def _to_response(p: SystemParameter) -> SystemParameterResponse:
    return SystemParameterResponse(
        id=str(p.id),
        name=p.name,
        value=p.value,
        type=p.type,
        description=p.description,
        is_active=p.is_active,
        updated_at=iso(p.updated_at),
    )


@router.get("", response_model=List[SystemParameterResponse])
async def list_parameters(
    include_inactive: bool = Query(False),
    actor: Actor = Depends(get_current_actor),
    _auth: None = Depends(require_roles("ADMIN")),
    db: AsyncSession = Depends(get_db),
):
    q = select(SystemParameter)
    if not include_inactive:
        q = q.where(SystemParameter.is_active == True)  # noqa: E712
    result = await db.execute(q.order_by(SystemParameter.name))
    return [_to_response(p) for p in result.scalars().all()]


@router.post("", response_model=SystemParameterResponse, status_code=status.HTTP_201_CREATED)
async def create_parameter(
    body: SystemParameterCreate,
    actor: Actor = Depends(get_current_actor),
    _auth: None = Depends(require_roles("ADMIN")),
    db: AsyncSession = Depends(get_db),
):
    existing = await db.execute(
        select(SystemParameter.id).where(SystemParameter.name == body.name)
    )
    if existing.first():
        raise ConflictError(f"Parameter '{body.name}' already exists")

    param = SystemParameter(
        name=body.name,
        value=body.value,
        type=body.type.value,
        description=body.description,
        is_active=body.is_active,
    )
    db.add(param)
    await db.flush()
    await db.commit()
    await db.refresh(param)
    logger.info("system_parameter_created", name=param.name)
    return _to_response(param)


@router.post("/seed", response_model=SeedResponse)
async def seed_parameters(
    actor: Actor = Depends(get_current_actor),
    _auth: None = Depends(require_roles("ADMIN")),
    db: AsyncSession = Depends(get_db),
):
    """Install the default parameters; existing names are left untouched."""
    result = await db.execute(select(SystemParameter.name))
    existing = set(result.scalars().all())

    created = 0
    for name, value, param_type, description in DEFAULT_PARAMETERS:
        if name in existing:
            continue
        db.add(
            SystemParameter(
                name=name,
                value=value,
                type=param_type.value,
                description=description,
                is_active=True,
            )
        )
        created += 1
    await db.commit()

    logger.info("system_parameters_seeded", created=created)
    return SeedResponse(created=created, skipped=len(DEFAULT_PARAMETERS) - created)


@router.put("/{param_id}", response_model=SystemParameterResponse)
async def update_parameter(
    param_id: str,
    body: SystemParameterUpdate,
    actor: Actor = Depends(get_current_actor),
    _auth: None = Depends(require_roles("ADMIN")),
    db: AsyncSession = Depends(get_db),
):
    param = await db.get(SystemParameter, parse_uuid(param_id, "SystemParameter"))
    if not param:
        raise NotFoundError("SystemParameter", param_id)

    changes = body.model_dump(exclude_unset=True)
    if changes.get("type") is not None:
        changes["type"] = changes["type"].value
    for field, val in changes.items():
        setattr(param, field, val)
    await db.commit()
    await db.refresh(param)
    return _to_response(param)


@router.delete("/{param_id}", response_model=MessageResponse)
async def delete_parameter(
    param_id: str,
    actor: Actor = Depends(get_current_actor),
    _auth: None = Depends(require_roles("ADMIN")),
    db: AsyncSession = Depends(get_db),
):
    param = await db.get(SystemParameter, parse_uuid(param_id, "SystemParameter"))
    if not param:
        raise NotFoundError("SystemParameter", param_id)
    await db.delete(param)
    await db.commit()
    return MessageResponse(message="Parameter deleted")

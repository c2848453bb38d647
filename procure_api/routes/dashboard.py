from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select, func, and_, or_
from sqlalchemy.ext.asyncio import AsyncSession

from procure_api.database import get_db
from procure_api.middleware.auth import get_current_actor
from procure_api.middleware.authorization import require_roles
from procure_api.models.department import Department
from procure_api.models.enums import RequestStatus, Role
from procure_api.models.request import Request, RequestItem
from procure_api.routes.requests import to_summaries
from procure_api.schemas.dashboard import (
    ApproverSummary,
    ManagerSummary,
    RecentRequest,
    UserSummary,
)
from procure_api.schemas.common import iso, parse_uuid
from procure_api.schemas.request import RequestSummaryResponse
from procure_api.services import request_service
from procure_api.services.access_policy import Actor
from procure_api.services.state_machine import MANAGER_PENDING_NODES, WorkflowNode

router = APIRouter()

PENDING_MANAGER_FILTER = "pending_manager"
PENDING_FINAL_FILTER = "pending_final"


def _node_clause(node: WorkflowNode):
    return and_(
        Request.status == node.status.value,
        Request.manager_status == (node.manager_status.value if node.manager_status else None),
        Request.approver_status == (node.approver_status.value if node.approver_status else None),
    )


def _manager_pending_clause():
    return or_(*[_node_clause(n) for n in MANAGER_PENDING_NODES])


async def _count(db: AsyncSession, *conditions) -> int:
    q = select(func.count(Request.id))
    for condition in conditions:
        q = q.where(condition)
    return (await db.execute(q)).scalar() or 0


async def _sum_value(db: AsyncSession, *conditions) -> float:
    q = select(func.coalesce(func.sum(Request.total_value), 0))
    for condition in conditions:
        q = q.where(condition)
    return float((await db.execute(q)).scalar() or 0)


def _department_scope(actor: Actor) -> list:
    """MANAGER sees its own department; ADMIN sees every department."""
    if actor.role == Role.MANAGER.value:
        return [Request.department_id == actor.department_id]
    return []


# ---------- USER ----------


@router.get("/user/summary", response_model=UserSummary)
async def user_summary(
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    own = Request.user_id == actor.id
    return UserSummary(
        total_requests=await _count(db, own),
        pending_authorization=await _count(
            db,
            own,
            Request.status.in_(
                [RequestStatus.OPEN.value, RequestStatus.PENDING_MANAGER_APPROVAL.value]
            ),
        ),
        pending_approval=await _count(db, own, Request.status == RequestStatus.PENDING_APPROVAL.value),
        approved=await _count(
            db,
            own,
            Request.status.in_([RequestStatus.APPROVED.value, RequestStatus.COMPLETED.value]),
        ),
        rejected=await _count(db, own, Request.status == RequestStatus.REJECTED.value),
        total_value=await _sum_value(db, own),
    )


@router.get("/user/recent", response_model=List[RecentRequest])
async def user_recent(
    limit: int = Query(5, ge=1, le=20),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(
        select(Request)
        .where(Request.user_id == actor.id)
        .order_by(Request.created_at.desc())
        .limit(limit)
    )
    requests = list(result.scalars().all())
    counts = {}
    if requests:
        count_result = await db.execute(
            select(RequestItem.request_id, func.count(RequestItem.id))
            .where(RequestItem.request_id.in_([r.id for r in requests]))
            .group_by(RequestItem.request_id)
        )
        counts = {row[0]: row[1] for row in count_result.all()}
    return [
        RecentRequest(
            id=str(r.id),
            request_number=r.request_number,
            status=r.status,
            total_value=float(r.total_value),
            request_date=iso(r.request_date),
            item_count=counts.get(r.id, 0),
        )
        for r in requests
    ]


# ---------- MANAGER ----------


@router.get("/manager/summary", response_model=ManagerSummary)
async def manager_summary(
    actor: Actor = Depends(get_current_actor),
    _auth: None = Depends(require_roles(Role.MANAGER.value, Role.ADMIN.value)),
    db: AsyncSession = Depends(get_db),
):
    scope = _department_scope(actor)
    now = datetime.utcnow()
    month_start = datetime(now.year, now.month, 1)

    dept_q = select(func.count(Department.id)).where(Department.is_active == True)  # noqa: E712
    if actor.role == Role.MANAGER.value:
        dept_q = dept_q.where(Department.id == actor.department_id)

    return ManagerSummary(
        total_requests=await _count(db, *scope),
        pending_authorization=await _count(db, *scope, _manager_pending_clause()),
        pending_approval=await _count(db, *scope, _node_clause(WorkflowNode.AWAITING_APPROVER)),
        approved=await _count(db, *scope, Request.status == RequestStatus.APPROVED.value),
        total_departments=(await db.execute(dept_q)).scalar() or 0,
        total_value=await _sum_value(db, *scope),
        monthly_value=await _sum_value(db, *scope, Request.created_at >= month_start),
    )


@router.get("/manager/pending", response_model=List[RequestSummaryResponse])
async def manager_pending(
    actor: Actor = Depends(get_current_actor),
    _auth: None = Depends(require_roles(Role.MANAGER.value, Role.ADMIN.value)),
    db: AsyncSession = Depends(get_db),
):
    q = select(Request).where(_manager_pending_clause())
    for condition in _department_scope(actor):
        q = q.where(condition)
    result = await db.execute(q.order_by(Request.created_at.asc()))
    return await to_summaries(db, list(result.scalars().all()))


# ---------- APPROVER ----------


@router.get("/approver/summary", response_model=ApproverSummary)
async def approver_summary(
    actor: Actor = Depends(get_current_actor),
    _auth: None = Depends(require_roles(Role.APPROVER.value, Role.ADMIN.value)),
    db: AsyncSession = Depends(get_db),
):
    return ApproverSummary(
        total_requests=await _count(db),
        pending_manager_approval=await _count(db, _manager_pending_clause()),
        pending_final_approval=await _count(db, _node_clause(WorkflowNode.AWAITING_APPROVER)),
        approved=await _count(db, Request.status == RequestStatus.APPROVED.value),
        total_value=await _sum_value(db),
    )


@router.get("/approver/pending", response_model=List[RequestSummaryResponse])
async def approver_pending(
    actor: Actor = Depends(get_current_actor),
    _auth: None = Depends(require_roles(Role.APPROVER.value, Role.ADMIN.value)),
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(
        select(Request)
        .where(_node_clause(WorkflowNode.AWAITING_APPROVER))
        .order_by(Request.created_at.asc())
    )
    return await to_summaries(db, list(result.scalars().all()))


@router.get("/approver/all", response_model=List[RequestSummaryResponse])
async def approver_all(
    department_id: Optional[str] = Query(None),
    status: Optional[str] = Query(
        None, description="pending_manager, pending_final or a request status"
    ),
    actor: Actor = Depends(get_current_actor),
    _auth: None = Depends(require_roles(Role.APPROVER.value, Role.ADMIN.value)),
    db: AsyncSession = Depends(get_db),
):
    """Every request across departments, newest first."""
    q = select(Request)
    if department_id:
        q = q.where(Request.department_id == parse_uuid(department_id, "Department"))
    if status == PENDING_MANAGER_FILTER:
        q = q.where(_manager_pending_clause())
    elif status == PENDING_FINAL_FILTER:
        q = q.where(_node_clause(WorkflowNode.AWAITING_APPROVER))
    elif status:
        q = q.where(Request.status == request_service.status_filter(status.upper()))
    result = await db.execute(q.order_by(Request.created_at.desc()))
    return await to_summaries(db, list(result.scalars().all()))

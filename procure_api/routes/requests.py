from datetime import date, datetime, time
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query, status
from sqlalchemy import select, func, or_
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
import structlog

from procure_api.database import get_db, get_session_factory
from procure_api.middleware.auth import get_current_actor
from procure_api.models.department import Department
from procure_api.models.enums import RequestStatus, Role
from procure_api.models.request import Request, RequestItem
from procure_api.models.request_history import RequestHistory
from procure_api.models.user import User
from procure_api.schemas.common import (
    MessageResponse,
    PaginatedResponse,
    build_pagination,
    iso,
    parse_uuid,
)
from procure_api.schemas.request import (
    CommentInput,
    HistoryEntryResponse,
    ReasonInput,
    ReopenInput,
    RequestCreate,
    RequestEdit,
    RequestItemResponse,
    RequestResponse,
    RequestSummaryResponse,
    TransitionResponse,
)
from procure_api.services import request_service
from procure_api.services.access_policy import Actor, permitted_actions
from procure_api.services.history_service import list_history
from procure_api.services.notification_service import dispatch_notifications
from procure_api.services.request_service import TransitionOutcome

logger = structlog.get_logger()
router = APIRouter()


def _item_to_response(item: RequestItem) -> RequestItemResponse:
    return RequestItemResponse(
        id=str(item.id),
        position=item.position,
        item_name=item.item_name,
        item_id=str(item.item_id) if item.item_id else None,
        item_type_id=str(item.item_type_id) if item.item_type_id else None,
        item_category_id=str(item.item_category_id) if item.item_category_id else None,
        contract_type_id=str(item.contract_type_id) if item.contract_type_id else None,
        acquisition_type_id=str(item.acquisition_type_id) if item.acquisition_type_id else None,
        acquisition_type=item.acquisition_type,
        quantity=item.quantity,
        unit_value=float(item.unit_value),
        total_value=float(item.total_value),
        specifications=item.specifications,
        brand=item.brand,
        model=item.model,
    )


async def _history_to_response(
    db: AsyncSession, entries: list[RequestHistory]
) -> list[HistoryEntryResponse]:
    author_ids = {e.created_by_id for e in entries if e.created_by_id}
    names = {}
    if author_ids:
        result = await db.execute(select(User.id, User.name).where(User.id.in_(author_ids)))
        names = {row[0]: row[1] for row in result.all()}
    return [
        HistoryEntryResponse(
            id=str(e.id),
            request_id=str(e.request_id),
            request_number=e.request_number,
            action=e.action,
            old_status=e.old_status,
            new_status=e.new_status,
            created_by_id=str(e.created_by_id) if e.created_by_id else None,
            created_by_name=names.get(e.created_by_id),
            comments=e.comments,
            created_at=e.created_at.isoformat(),
        )
        for e in entries
    ]


async def _to_response(db: AsyncSession, request: Request, actor: Actor) -> RequestResponse:
    items = await request_service.get_items(db, request.id)
    history = await list_history(db, request.id)
    departments = await request_service.department_names(db, {request.department_id})
    node = request.node
    return RequestResponse(
        id=str(request.id),
        request_number=request.request_number,
        user_id=str(request.user_id),
        requester_name=request.requester_name,
        department_id=str(request.department_id),
        department_name=departments.get(request.department_id, (None, None))[0],
        description=request.description,
        justification=request.justification,
        total_value=float(request.total_value),
        request_date=iso(request.request_date),
        status=request.status,
        manager_status=request.manager_status,
        approver_status=request.approver_status,
        node=node.name,
        available_actions=[a.value for a in permitted_actions(actor, request)],
        submitted_at=iso(request.submitted_at),
        manager_approved_by=request.manager_approved_by,
        manager_approved_at=iso(request.manager_approved_at),
        manager_rejection_reason=request.manager_rejection_reason,
        approved_by=request.approved_by,
        approved_at=iso(request.approved_at),
        rejection_reason=request.rejection_reason,
        reopened_by=request.reopened_by,
        reopened_at=iso(request.reopened_at),
        reopen_reason=request.reopen_reason,
        created_at=iso(request.created_at),
        updated_at=iso(request.updated_at),
        items=[_item_to_response(i) for i in items],
        history=await _history_to_response(db, history),
    )


async def to_summaries(
    db: AsyncSession, requests: list[Request]
) -> list[RequestSummaryResponse]:
    ids = [r.id for r in requests]
    counts = {}
    if ids:
        result = await db.execute(
            select(RequestItem.request_id, func.count(RequestItem.id))
            .where(RequestItem.request_id.in_(ids))
            .group_by(RequestItem.request_id)
        )
        counts = {row[0]: row[1] for row in result.all()}
    departments = await request_service.department_names(
        db, {r.department_id for r in requests}
    )
    summaries = []
    for r in requests:
        dept_name, parent_name = departments.get(r.department_id, (None, None))
        summaries.append(
            RequestSummaryResponse(
                id=str(r.id),
                request_number=r.request_number,
                description=r.description,
                requester_name=r.requester_name,
                department_id=str(r.department_id),
                department_name=dept_name,
                parent_department_name=parent_name,
                status=r.status,
                manager_status=r.manager_status,
                approver_status=r.approver_status,
                total_value=float(r.total_value),
                request_date=iso(r.request_date),
                item_count=counts.get(r.id, 0),
            )
        )
    return summaries


async def _finish(
    db: AsyncSession,
    outcome: TransitionOutcome,
    background_tasks: BackgroundTasks,
    session_factory: async_sessionmaker,
    message: str,
) -> TransitionResponse:
    # Commit before scheduling: notifications must never see an uncommitted transition.
    await db.commit()
    if outcome.drafts:
        background_tasks.add_task(dispatch_notifications, outcome.drafts, session_factory)
    request = outcome.request
    return TransitionResponse(
        id=str(request.id),
        request_number=request.request_number,
        status=request.status,
        manager_status=request.manager_status,
        approver_status=request.approver_status,
        node=outcome.node.name,
        message=message,
    )


# ---------- LIST / GET ----------


@router.get("", response_model=PaginatedResponse[RequestSummaryResponse])
async def list_requests(
    page: int = Query(1, ge=1, le=1000),
    limit: int = Query(20, ge=1, le=100),
    request_status: Optional[str] = Query(None, alias="status"),
    department_id: Optional[str] = Query(None),
    parent_department_id: Optional[str] = Query(None),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    contract_type_id: Optional[str] = Query(None),
    acquisition_type_id: Optional[str] = Query(None),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    q = request_service.scope_request_query(select(Request), actor)

    status_value = request_service.status_filter(request_status)
    if status_value:
        q = q.where(Request.status == status_value)

    if department_id:
        q = q.where(Request.department_id == parse_uuid(department_id, "Department"))
    elif parent_department_id and actor.role in (Role.APPROVER.value, Role.ADMIN.value):
        parent_id = parse_uuid(parent_department_id, "Department")
        q = q.where(
            Request.department_id.in_(
                select(Department.id).where(
                    or_(Department.id == parent_id, Department.parent_id == parent_id)
                )
            )
        )

    if start_date:
        q = q.where(Request.request_date >= datetime.combine(start_date, time.min))
    if end_date:
        q = q.where(Request.request_date <= datetime.combine(end_date, time.max))

    if contract_type_id:
        q = q.where(
            Request.id.in_(
                select(RequestItem.request_id).where(
                    RequestItem.contract_type_id == parse_uuid(contract_type_id, "ContractType")
                )
            )
        )
    if acquisition_type_id:
        q = q.where(
            Request.id.in_(
                select(RequestItem.request_id).where(
                    RequestItem.acquisition_type_id
                    == parse_uuid(acquisition_type_id, "AcquisitionType")
                )
            )
        )

    total = (await db.execute(select(func.count()).select_from(q.subquery()))).scalar() or 0
    result = await db.execute(
        q.order_by(Request.created_at.desc()).offset((page - 1) * limit).limit(limit)
    )
    requests = list(result.scalars().all())
    logger.info("request_list_result", count=len(requests), total=total, role=actor.role)

    return PaginatedResponse(
        data=await to_summaries(db, requests),
        pagination=build_pagination(page, limit, total),
    )


@router.get("/approved", response_model=PaginatedResponse[RequestSummaryResponse])
async def list_approved_requests(
    page: int = Query(1, ge=1, le=1000),
    limit: int = Query(20, ge=1, le=100),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    q = request_service.scope_request_query(
        select(Request).where(
            Request.status.in_([RequestStatus.APPROVED.value, RequestStatus.COMPLETED.value])
        ),
        actor,
    )
    total = (await db.execute(select(func.count()).select_from(q.subquery()))).scalar() or 0
    result = await db.execute(
        q.order_by(Request.approved_at.desc(), Request.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    return PaginatedResponse(
        data=await to_summaries(db, list(result.scalars().all())),
        pagination=build_pagination(page, limit, total),
    )


@router.get("/{request_id}", response_model=RequestResponse)
async def get_request(
    request_id: str,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    request = await request_service.get_viewable_request(db, request_id, actor)
    return await _to_response(db, request, actor)


@router.get("/{request_id}/history", response_model=list[HistoryEntryResponse])
async def get_request_history(
    request_id: str,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    request = await request_service.get_viewable_request(db, request_id, actor)
    return await _history_to_response(db, await list_history(db, request.id))


# ---------- CREATE / EDIT / DELETE ----------


@router.post("", response_model=RequestResponse, status_code=status.HTTP_201_CREATED)
async def create_request(
    body: RequestCreate,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    request = await request_service.create_request(db, actor, body)
    await db.commit()
    return await _to_response(db, request, actor)


@router.put("/{request_id}", response_model=RequestResponse)
async def edit_request(
    request_id: str,
    body: RequestEdit,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    outcome = await request_service.edit_request(db, request_id, actor, body)
    await db.commit()
    return await _to_response(db, outcome.request, actor)


@router.delete("/{request_id}", response_model=MessageResponse)
async def delete_request(
    request_id: str,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    outcome = await request_service.delete_request(db, request_id, actor)
    await db.commit()
    return MessageResponse(message=f"Request {outcome.request.request_number} deleted")


# ---------- WORKFLOW ACTIONS ----------


@router.post("/{request_id}/submit", response_model=TransitionResponse)
async def submit_request(
    request_id: str,
    background_tasks: BackgroundTasks,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
    session_factory: async_sessionmaker = Depends(get_session_factory),
):
    outcome = await request_service.submit_request(db, request_id, actor)
    return await _finish(
        db, outcome, background_tasks, session_factory, "Request submitted for manager authorization"
    )


@router.post("/{request_id}/manager-approve", response_model=TransitionResponse)
async def manager_approve(
    request_id: str,
    background_tasks: BackgroundTasks,
    body: Optional[CommentInput] = None,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
    session_factory: async_sessionmaker = Depends(get_session_factory),
):
    outcome = await request_service.manager_approve(
        db, request_id, actor, comments=body.comments if body else None
    )
    return await _finish(
        db, outcome, background_tasks, session_factory, "Request authorized by manager"
    )


@router.post("/{request_id}/manager-reject", response_model=TransitionResponse)
async def manager_reject(
    request_id: str,
    body: ReasonInput,
    background_tasks: BackgroundTasks,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
    session_factory: async_sessionmaker = Depends(get_session_factory),
):
    outcome = await request_service.manager_reject(db, request_id, actor, body.reason)
    return await _finish(
        db, outcome, background_tasks, session_factory, "Request denied by manager"
    )


@router.post("/{request_id}/manager-return", response_model=TransitionResponse)
async def manager_return(
    request_id: str,
    body: ReasonInput,
    background_tasks: BackgroundTasks,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
    session_factory: async_sessionmaker = Depends(get_session_factory),
):
    outcome = await request_service.manager_return(db, request_id, actor, body.reason)
    return await _finish(
        db, outcome, background_tasks, session_factory, "Request returned to requester"
    )


@router.post("/{request_id}/approve", response_model=TransitionResponse)
async def approve_request(
    request_id: str,
    background_tasks: BackgroundTasks,
    body: Optional[CommentInput] = None,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
    session_factory: async_sessionmaker = Depends(get_session_factory),
):
    outcome = await request_service.approve_request(
        db, request_id, actor, comments=body.comments if body else None
    )
    return await _finish(db, outcome, background_tasks, session_factory, "Request approved")


@router.post("/{request_id}/reject", response_model=TransitionResponse)
async def reject_request(
    request_id: str,
    body: ReasonInput,
    background_tasks: BackgroundTasks,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
    session_factory: async_sessionmaker = Depends(get_session_factory),
):
    outcome = await request_service.reject_request(db, request_id, actor, body.reason)
    return await _finish(db, outcome, background_tasks, session_factory, "Request rejected")


@router.post("/{request_id}/return", response_model=TransitionResponse)
async def return_request(
    request_id: str,
    body: ReasonInput,
    background_tasks: BackgroundTasks,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
    session_factory: async_sessionmaker = Depends(get_session_factory),
):
    outcome = await request_service.return_request(db, request_id, actor, body.reason)
    return await _finish(
        db, outcome, background_tasks, session_factory, "Request returned to department"
    )


@router.post("/{request_id}/reopen", response_model=TransitionResponse)
async def reopen_request(
    request_id: str,
    body: ReopenInput,
    background_tasks: BackgroundTasks,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
    session_factory: async_sessionmaker = Depends(get_session_factory),
):
    outcome = await request_service.reopen_request(db, request_id, actor, body.reopen_reason)
    return await _finish(db, outcome, background_tasks, session_factory, "Request reopened")

"""
Request service: one operation per workflow action.

Every action follows the same sequence inside the caller's transaction:

  1. validate the input (reason present, description + items)
  2. re-read the request with SELECT ... FOR UPDATE
  3. access policy: role / ownership / department
  4. state machine guard against the freshly locked row
  5. move to the next node + field side effects
  6. append one history row
  7. plan notifications (returned to the caller, dispatched after commit)

The caller owns the transaction; nothing here commits.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Callable, Iterable, Optional

from sqlalchemy import select, delete, func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from procure_api.exceptions import ConflictError, NotFoundError, ValidationError
from procure_api.models.department import Department
from procure_api.models.enums import RequestStatus, Role
from procure_api.models.request import Request, RequestItem
from procure_api.schemas.common import parse_optional_uuid, parse_uuid
from procure_api.schemas.request import RequestCreate, RequestEdit, RequestItemInput
from procure_api.services.access_policy import (
    Actor,
    authorize,
    ensure_can_create,
    ensure_can_view,
)
from procure_api.services.history_service import last_actor_name, record_history
from procure_api.services.notification_service import (
    NotificationDraft,
    plan_notifications,
    resolve_recipients,
)
from procure_api.services.numbering_service import generate_request_number
from procure_api.services.state_machine import (
    APPROVER_ACTIONS,
    CREATED_LABEL,
    DELETED_STATUS,
    MANAGER_ACTIONS,
    TRANSITIONS,
    Action,
    WorkflowNode,
    check_transition,
)

logger = structlog.get_logger()

CENTS = Decimal("0.01")
NUMBER_ATTEMPTS = 3


@dataclass
class TransitionOutcome:
    request: Request
    previous: WorkflowNode
    # None once the request has been deleted.
    node: Optional[WorkflowNode]
    drafts: list[NotificationDraft] = field(default_factory=list)


# ---------- Validation ----------


def _require_reason(reason: Optional[str], action: Action) -> str:
    text = (reason or "").strip()
    if not text:
        field_name = "reopen_reason" if action == Action.REOPEN else "reason"
        raise ValidationError(
            f"A reason is required to {action.value} a request",
            {"field": field_name},
        )
    return text


def _validate_content(description: Optional[str], item_count: int) -> None:
    if not (description or "").strip():
        raise ValidationError("Description is required", {"field": "description"})
    if item_count < 1:
        raise ValidationError("At least one item is required", {"field": "items"})


def compute_total(items: Iterable) -> Decimal:
    """Sum of quantity × unit_value over ``items``, rounded to cents."""
    total = Decimal("0")
    for item in items:
        total += Decimal(item.quantity) * Decimal(str(item.unit_value))
    return total.quantize(CENTS, rounding=ROUND_HALF_UP)


# ---------- Loading ----------


async def load_request(
    session: AsyncSession, request_id, for_update: bool = False
) -> Request:
    rid = parse_uuid(request_id, "Request")
    q = select(Request).where(Request.id == rid)
    if for_update:
        q = q.with_for_update().execution_options(populate_existing=True)
    request = (await session.execute(q)).scalar_one_or_none()
    if not request:
        raise NotFoundError("Request", request_id)
    return request


async def get_items(session: AsyncSession, request_id) -> list[RequestItem]:
    result = await session.execute(
        select(RequestItem)
        .where(RequestItem.request_id == request_id)
        .order_by(RequestItem.position)
    )
    return list(result.scalars().all())


async def count_items(session: AsyncSession, request_id) -> int:
    result = await session.execute(
        select(func.count(RequestItem.id)).where(RequestItem.request_id == request_id)
    )
    return result.scalar() or 0


async def get_viewable_request(
    session: AsyncSession, request_id, actor: Actor
) -> Request:
    request = await load_request(session, request_id)
    ensure_can_view(actor, request)
    return request


def scope_request_query(q, actor: Actor):
    """Restrict a ``select(Request)`` to what ``actor`` may see."""
    if actor.role in (Role.APPROVER.value, Role.ADMIN.value):
        return q
    if actor.role == Role.MANAGER.value:
        return q.where(
            or_(
                Request.department_id == actor.department_id,
                Request.user_id == actor.id,
            )
        )
    return q.where(Request.user_id == actor.id)


# ---------- Items ----------


def _build_items(request_id: uuid.UUID, items: list[RequestItemInput]) -> list[RequestItem]:
    rows = []
    for position, item in enumerate(items, start=1):
        unit_value = Decimal(str(item.unit_value)).quantize(CENTS, rounding=ROUND_HALF_UP)
        rows.append(
            RequestItem(
                request_id=request_id,
                position=position,
                item_name=item.item_name.strip(),
                item_id=parse_optional_uuid(item.item_id, "Item"),
                item_type_id=parse_optional_uuid(item.item_type_id, "ItemType"),
                item_category_id=parse_optional_uuid(item.item_category_id, "ItemCategory"),
                contract_type_id=parse_optional_uuid(item.contract_type_id, "ContractType"),
                acquisition_type_id=parse_optional_uuid(
                    item.acquisition_type_id, "AcquisitionType"
                ),
                acquisition_type=item.acquisition_type.value,
                quantity=item.quantity,
                unit_value=unit_value,
                total_value=(unit_value * item.quantity).quantize(CENTS),
                specifications=item.specifications,
                brand=item.brand,
                model=item.model,
            )
        )
    return rows


async def _replace_items(
    session: AsyncSession, request: Request, items: list[RequestItemInput]
) -> list[RequestItem]:
    await session.execute(delete(RequestItem).where(RequestItem.request_id == request.id))
    rows = _build_items(request.id, items)
    session.add_all(rows)
    await session.flush()
    request.total_value = compute_total(rows)
    return rows


# ---------- Shared transition path ----------


async def _load_authorized(
    session: AsyncSession, request_id, actor: Actor, action: Action
) -> Request:
    request = await load_request(session, request_id, for_update=True)
    authorize(actor, action, request)
    return request


async def _processed_by(
    session: AsyncSession, request: Request, action: Action
) -> Optional[str]:
    """Name on the newest history entry for a decision of the same kind as ``action``."""
    if action in MANAGER_ACTIONS:
        group = MANAGER_ACTIONS
    elif action in APPROVER_ACTIONS:
        group = APPROVER_ACTIONS
    else:
        return None
    return await last_actor_name(
        session, request.id, [TRANSITIONS[a].label for a in group]
    )


async def _advance(
    session: AsyncSession,
    request: Request,
    actor: Actor,
    action: Action,
    reason: Optional[str] = None,
    comments: Optional[str] = None,
    side_effects: Optional[Callable[[Request, datetime], None]] = None,
) -> TransitionOutcome:
    current = request.node
    processed_by = None
    if current not in TRANSITIONS[action].sources:
        processed_by = await _processed_by(session, request, action)
    transition = check_transition(current, action, processed_by=processed_by)
    target = transition.next_node(current)

    old_status = request.status
    request.move_to(target)
    if side_effects:
        side_effects(request, datetime.utcnow())
    await session.flush()

    await record_history(
        session,
        request,
        transition.label,
        new_status=request.status,
        actor=actor,
        old_status=old_status,
        comments=comments if comments is not None else reason,
    )

    recipients = await resolve_recipients(session, action, request)
    drafts = plan_notifications(action, request, recipients, reason=reason)

    logger.info(
        "request_transitioned",
        request_id=str(request.id),
        request_number=request.request_number,
        action=action.value,
        from_node=current.name,
        to_node=target.name,
        actor_id=str(actor.id),
        notifications=len(drafts),
    )
    return TransitionOutcome(request=request, previous=current, node=target, drafts=drafts)


# ---------- Create / edit / delete ----------


async def _insert_numbered(session: AsyncSession, request: Request) -> None:
    """Insert ``request`` under the next free number.

    A concurrent create can claim the same number between the read and the
    insert; the unique constraint catches it and the number is drawn again
    inside a savepoint so the rest of the transaction is kept.
    """
    for attempt in range(1, NUMBER_ATTEMPTS + 1):
        request.request_number = await generate_request_number(session)
        try:
            async with session.begin_nested():
                session.add(request)
                await session.flush()
            return
        except IntegrityError:
            logger.warning(
                "request_number_taken",
                request_number=request.request_number,
                attempt=attempt,
            )
    raise ConflictError(
        "Could not allocate a request number, please retry",
        {"request_number": request.request_number},
    )


async def create_request(
    session: AsyncSession, actor: Actor, data: RequestCreate
) -> Request:
    _validate_content(data.description, len(data.items))
    ensure_can_create(actor)

    request = Request(
        id=uuid.uuid4(),
        user_id=actor.id,
        requester_name=actor.name,
        department_id=actor.department_id,
        description=data.description.strip(),
        justification=data.justification,
        request_date=datetime.utcnow(),
    )
    request.move_to(WorkflowNode.DRAFT)
    rows = _build_items(request.id, data.items)
    request.total_value = compute_total(rows)
    await _insert_numbered(session, request)
    session.add_all(rows)
    await session.flush()

    await record_history(
        session,
        request,
        CREATED_LABEL,
        new_status=request.status,
        actor=actor,
        comments="Request created",
    )

    logger.info(
        "request_created",
        request_id=str(request.id),
        request_number=request.request_number,
        items=len(rows),
        total_value=str(request.total_value),
        actor_id=str(actor.id),
    )
    return request


async def edit_request(
    session: AsyncSession, request_id, actor: Actor, data: RequestEdit
) -> TransitionOutcome:
    _validate_content(data.description, len(data.items))
    request = await _load_authorized(session, request_id, actor, Action.EDIT)
    current = request.node
    transition = check_transition(current, Action.EDIT)

    request.description = data.description.strip()
    request.justification = data.justification
    await _replace_items(session, request, data.items)
    request.updated_at = datetime.utcnow()
    await session.flush()

    await record_history(
        session,
        request,
        transition.label,
        new_status=request.status,
        actor=actor,
        old_status=request.status,
        comments="Request edited",
    )

    logger.info(
        "request_edited",
        request_id=str(request.id),
        items=len(data.items),
        total_value=str(request.total_value),
        actor_id=str(actor.id),
    )
    return TransitionOutcome(request=request, previous=current, node=current)


async def delete_request(
    session: AsyncSession, request_id, actor: Actor
) -> TransitionOutcome:
    request = await _load_authorized(session, request_id, actor, Action.DELETE)
    current = request.node
    transition = check_transition(current, Action.DELETE)

    # History first: it outlives the request it describes.
    await record_history(
        session,
        request,
        transition.label,
        new_status=DELETED_STATUS,
        actor=actor,
        old_status=request.status,
        comments=f"Request {request.request_number} deleted",
    )
    await session.execute(delete(RequestItem).where(RequestItem.request_id == request.id))
    await session.delete(request)
    await session.flush()

    logger.info(
        "request_deleted",
        request_id=str(request.id),
        request_number=request.request_number,
        actor_id=str(actor.id),
    )
    return TransitionOutcome(request=request, previous=current, node=None)


# ---------- Requester ----------


async def submit_request(
    session: AsyncSession, request_id, actor: Actor
) -> TransitionOutcome:
    request = await _load_authorized(session, request_id, actor, Action.SUBMIT)
    _validate_content(request.description, await count_items(session, request.id))

    def _stamp(r: Request, now: datetime) -> None:
        r.submitted_at = now

    return await _advance(session, request, actor, Action.SUBMIT, side_effects=_stamp)


# ---------- Manager ----------


async def manager_approve(
    session: AsyncSession, request_id, actor: Actor, comments: Optional[str] = None
) -> TransitionOutcome:
    request = await _load_authorized(session, request_id, actor, Action.MANAGER_APPROVE)

    def _authorize(r: Request, now: datetime) -> None:
        r.manager_approved_by = actor.name
        r.manager_approved_by_id = actor.id
        r.manager_approved_at = now
        r.manager_rejection_reason = None

    return await _advance(
        session,
        request,
        actor,
        Action.MANAGER_APPROVE,
        comments=comments or "Authorized by the department manager",
        side_effects=_authorize,
    )


async def manager_reject(
    session: AsyncSession, request_id, actor: Actor, reason: Optional[str]
) -> TransitionOutcome:
    reason = _require_reason(reason, Action.MANAGER_REJECT)
    request = await _load_authorized(session, request_id, actor, Action.MANAGER_REJECT)

    def _deny(r: Request, now: datetime) -> None:
        r.manager_rejection_reason = reason

    return await _advance(
        session, request, actor, Action.MANAGER_REJECT, reason=reason, side_effects=_deny
    )


async def manager_return(
    session: AsyncSession, request_id, actor: Actor, reason: Optional[str]
) -> TransitionOutcome:
    reason = _require_reason(reason, Action.MANAGER_RETURN)
    request = await _load_authorized(session, request_id, actor, Action.MANAGER_RETURN)

    def _return(r: Request, now: datetime) -> None:
        r.manager_rejection_reason = reason

    return await _advance(
        session, request, actor, Action.MANAGER_RETURN, reason=reason, side_effects=_return
    )


# ---------- Approver ----------


async def approve_request(
    session: AsyncSession, request_id, actor: Actor, comments: Optional[str] = None
) -> TransitionOutcome:
    request = await _load_authorized(session, request_id, actor, Action.APPROVE)

    def _approve(r: Request, now: datetime) -> None:
        r.approved_by = actor.name
        r.approved_by_id = actor.id
        r.approved_at = now
        r.rejection_reason = None

    return await _advance(
        session,
        request,
        actor,
        Action.APPROVE,
        comments=comments or "Final approval granted",
        side_effects=_approve,
    )


async def reject_request(
    session: AsyncSession, request_id, actor: Actor, reason: Optional[str]
) -> TransitionOutcome:
    reason = _require_reason(reason, Action.REJECT)
    request = await _load_authorized(session, request_id, actor, Action.REJECT)

    def _reject(r: Request, now: datetime) -> None:
        r.rejection_reason = reason

    return await _advance(
        session, request, actor, Action.REJECT, reason=reason, side_effects=_reject
    )


async def return_request(
    session: AsyncSession, request_id, actor: Actor, reason: Optional[str]
) -> TransitionOutcome:
    reason = _require_reason(reason, Action.RETURN)
    request = await _load_authorized(session, request_id, actor, Action.RETURN)

    def _return(r: Request, now: datetime) -> None:
        r.rejection_reason = reason

    return await _advance(
        session, request, actor, Action.RETURN, reason=reason, side_effects=_return
    )


async def reopen_request(
    session: AsyncSession, request_id, actor: Actor, reopen_reason: Optional[str]
) -> TransitionOutcome:
    reason = _require_reason(reopen_reason, Action.REOPEN)
    request = await _load_authorized(session, request_id, actor, Action.REOPEN)

    def _reopen(r: Request, now: datetime) -> None:
        r.reopened_by = actor.name
        r.reopened_at = now
        r.reopen_reason = reason

    return await _advance(
        session,
        request,
        actor,
        Action.REOPEN,
        reason=reason,
        comments=f"Reopened by {actor.name}. Reason: {reason}",
        side_effects=_reopen,
    )


# ---------- Read helpers ----------


async def department_names(session: AsyncSession, department_ids: set) -> dict:
    """{department_id: (name, parent name)} for rendering lists."""
    if not department_ids:
        return {}
    result = await session.execute(
        select(Department).where(Department.id.in_(department_ids))
    )
    departments = list(result.scalars().all())
    parent_ids = {d.parent_id for d in departments if d.parent_id}
    parents = {}
    if parent_ids:
        parent_result = await session.execute(
            select(Department.id, Department.name).where(Department.id.in_(parent_ids))
        )
        parents = {row[0]: row[1] for row in parent_result.all()}
    return {d.id: (d.name, parents.get(d.parent_id)) for d in departments}


def status_filter(value: Optional[str]):
    """Validated status filter value for list endpoints."""
    if value is None:
        return None
    try:
        return RequestStatus(value).value
    except ValueError:
        raise ValidationError(f"Unknown status '{value}'", {"field": "status"})

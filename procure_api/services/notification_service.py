"""
Notification service: fan-out planning and dispatch into user inboxes.

Recipients are resolved DURING the action (while the request transaction is
open) and the drafts are inserted AFTER commit in a separate session. A
failed insert is logged and dropped; it never undoes the transition.
"""

import uuid
from dataclasses import dataclass
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
import structlog

from procure_api.models.enums import NotificationType, Role
from procure_api.models.notification import Notification
from procure_api.models.user import User
from procure_api.services.state_machine import Action

logger = structlog.get_logger()


@dataclass(frozen=True)
class NotificationDraft:
    user_id: uuid.UUID
    request_id: uuid.UUID
    type: NotificationType
    title: str
    message: str


@dataclass(frozen=True)
class Recipients:
    requester_id: uuid.UUID
    department_manager_ids: tuple = ()
    previous_manager_id: Optional[uuid.UUID] = None


# ---------- Template registry ----------

TEMPLATES = {
    Action.SUBMIT: {
        "type": NotificationType.REQUEST_CREATED,
        "title": "New request awaiting authorization",
        "message": "Request #{request_number} was submitted in your department and awaits your authorization",
    },
    Action.MANAGER_APPROVE: {
        "type": NotificationType.STATUS_CHANGED,
        "title": "Request authorized by manager",
        "message": "Your request #{request_number} was authorized by the manager and now awaits final approval",
    },
    Action.MANAGER_REJECT: {
        "type": NotificationType.REQUEST_REJECTED,
        "title": "Request denied by manager",
        "message": "Your request #{request_number} was denied by the manager: {reason}",
    },
    Action.MANAGER_RETURN: {
        "type": NotificationType.STATUS_CHANGED,
        "title": "Request returned for adjustments",
        "message": "Your request #{request_number} was returned by the manager for adjustments: {reason}",
    },
    Action.APPROVE: {
        "type": NotificationType.REQUEST_APPROVED,
        "title": "Request approved",
        "message": "Your request #{request_number} was approved and is ready for execution",
    },
    Action.REJECT: {
        "type": NotificationType.REQUEST_REJECTED,
        "title": "Request rejected",
        "message": "Your request #{request_number} was rejected by the approver: {reason}",
    },
    Action.RETURN: {
        "type": NotificationType.STATUS_CHANGED,
        "title": "Request returned for adjustments",
        "message": "Your request #{request_number} was returned by the approver for adjustments: {reason}",
    },
    Action.REOPEN: {
        "type": NotificationType.STATUS_CHANGED,
        "title": "Request reopened",
        "message": "Request #{request_number} was reopened by the approver. Reason: {reason}",
    },
}


def _recipient_ids(action: Action, recipients: Recipients) -> list[uuid.UUID]:
    if action == Action.SUBMIT:
        ordered = list(recipients.department_manager_ids)
    elif action == Action.REOPEN:
        ordered = [recipients.requester_id]
        if recipients.previous_manager_id is not None:
            ordered.append(recipients.previous_manager_id)
    else:
        ordered = [recipients.requester_id]

    seen: set[str] = set()
    unique = []
    for user_id in ordered:
        if str(user_id) not in seen:
            seen.add(str(user_id))
            unique.append(user_id)
    return unique


def plan_notifications(
    action: Action,
    request: Any,
    recipients: Recipients,
    reason: Optional[str] = None,
) -> list[NotificationDraft]:
    """Pure fan-out: which users get which notification for this transition.

    Actions without a template (edit, delete) notify nobody.
    """
    template = TEMPLATES.get(action)
    if template is None:
        return []

    context = {"request_number": request.request_number, "reason": reason or ""}
    return [
        NotificationDraft(
            user_id=user_id,
            request_id=request.id,
            type=template["type"],
            title=template["title"].format(**context),
            message=template["message"].format(**context),
        )
        for user_id in _recipient_ids(action, recipients)
    ]


# ---------- Recipient resolution ----------


async def get_department_manager_ids(
    session: AsyncSession, department_id: uuid.UUID
) -> tuple:
    """All active MANAGER users of a department, oldest account first."""
    result = await session.execute(
        select(User.id)
        .where(
            User.department_id == department_id,
            User.role == Role.MANAGER.value,
            User.is_active == True,  # noqa: E712
        )
        .order_by(User.created_at, User.id)
    )
    return tuple(row[0] for row in result.all())


async def find_previous_manager_id(
    session: AsyncSession, request: Any
) -> Optional[uuid.UUID]:
    """The manager who authorized ``request``, by id or else by name."""
    if request.manager_approved_by_id is not None:
        return request.manager_approved_by_id
    if not request.manager_approved_by:
        return None
    result = await session.execute(
        select(User.id).where(
            User.name == request.manager_approved_by,
            User.role == Role.MANAGER.value,
        )
    )
    return result.scalars().first()


async def resolve_recipients(
    session: AsyncSession, action: Action, request: Any
) -> Recipients:
    managers: tuple = ()
    previous_manager = None
    if action == Action.SUBMIT:
        managers = await get_department_manager_ids(session, request.department_id)
    elif action == Action.REOPEN:
        previous_manager = await find_previous_manager_id(session, request)
    return Recipients(
        requester_id=request.user_id,
        department_manager_ids=managers,
        previous_manager_id=previous_manager,
    )


# ---------- Dispatch ----------


async def dispatch_notifications(
    drafts: list[NotificationDraft],
    session_factory: async_sessionmaker,
) -> int:
    """Insert drafts in their own transaction. Returns how many were stored."""
    if not drafts:
        return 0

    try:
        async with session_factory() as session:
            for draft in drafts:
                session.add(
                    Notification(
                        user_id=draft.user_id,
                        request_id=draft.request_id,
                        type=draft.type.value,
                        title=draft.title,
                        message=draft.message,
                    )
                )
            await session.commit()
    except SQLAlchemyError as e:
        logger.error(
            "notification_dispatch_failed",
            request_id=str(drafts[0].request_id),
            recipients=len(drafts),
            error=str(e),
        )
        return 0

    logger.info(
        "notifications_dispatched",
        request_id=str(drafts[0].request_id),
        recipients=[str(d.user_id) for d in drafts],
    )
    return len(drafts)

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select, func, update
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from procure_api.database import get_db
from procure_api.exceptions import NotFoundError
from procure_api.middleware.auth import get_current_actor
from procure_api.models.notification import Notification
from procure_api.schemas.common import parse_uuid
from procure_api.schemas.notification import (
    MarkAllReadResponse,
    NotificationListResponse,
    NotificationResponse,
)
from procure_api.services.access_policy import Actor

logger = structlog.get_logger()
router = APIRouter()


def _to_response(n: Notification) -> NotificationResponse:
    return NotificationResponse(
        id=str(n.id),
        request_id=str(n.request_id) if n.request_id else None,
        type=n.type,
        title=n.title,
        message=n.message,
        is_read=n.is_read,
        created_at=n.created_at.isoformat(),
    )


@router.get("", response_model=NotificationListResponse)
async def list_notifications(
    unread_only: bool = Query(False),
    limit: int = Query(50, ge=1, le=200),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    """Recent notifications of the logged-in user, newest first."""
    q = select(Notification).where(Notification.user_id == actor.id)
    if unread_only:
        q = q.where(Notification.is_read == False)  # noqa: E712
    result = await db.execute(q.order_by(Notification.created_at.desc()).limit(limit))

    unread = await db.execute(
        select(func.count(Notification.id)).where(
            Notification.user_id == actor.id,
            Notification.is_read == False,  # noqa: E712
        )
    )
    return NotificationListResponse(
        data=[_to_response(n) for n in result.scalars().all()],
        unread_count=unread.scalar() or 0,
    )


@router.post("/mark-all-as-read", response_model=MarkAllReadResponse)
async def mark_all_read(
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(
        update(Notification)
        .where(Notification.user_id == actor.id, Notification.is_read == False)  # noqa: E712
        .values(is_read=True)
    )
    await db.commit()
    logger.info("notifications_marked_read", user_id=str(actor.id), count=result.rowcount)
    return MarkAllReadResponse(updated=result.rowcount or 0)


@router.post("/{notification_id}/read", response_model=NotificationResponse)
async def mark_read(
    notification_id: str,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    """Mark a specific notification as read."""
    result = await db.execute(
        select(Notification).where(
            Notification.id == parse_uuid(notification_id, "Notification"),
            Notification.user_id == actor.id,
        )
    )
    notification = result.scalar_one_or_none()
    if not notification:
        raise NotFoundError("Notification", notification_id)

    notification.is_read = True
    await db.commit()
    return _to_response(notification)

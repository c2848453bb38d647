"""History recorder: append-only audit trail of request transitions."""

from datetime import datetime
from typing import Any, Iterable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from procure_api.models.request_history import RequestHistory
from procure_api.models.user import User

logger = structlog.get_logger()


async def record_history(
    session: AsyncSession,
    request: Any,
    action: str,
    new_status: str,
    actor: Any,
    old_status: Optional[str] = None,
    comments: Optional[str] = None,
) -> RequestHistory:
    """
    Append one history row for a transition.

    Uses session.flush(); the caller owns the transaction. There is no update
    or delete counterpart.
    """
    entry = RequestHistory(
        request_id=request.id,
        request_number=request.request_number,
        action=action,
        old_status=old_status,
        new_status=new_status,
        created_by_id=actor.id,
        comments=comments,
        created_at=datetime.utcnow(),
    )
    session.add(entry)
    await session.flush()

    logger.info(
        "request_history_recorded",
        request_id=str(request.id),
        action=action,
        old_status=old_status,
        new_status=new_status,
        actor_id=str(actor.id),
    )
    return entry


async def list_history(session: AsyncSession, request_id) -> list[RequestHistory]:
    result = await session.execute(
        select(RequestHistory)
        .where(RequestHistory.request_id == request_id)
        .order_by(RequestHistory.created_at.desc(), RequestHistory.id)
    )
    return list(result.scalars().all())


async def last_actor_name(
    session: AsyncSession, request_id, actions: Iterable[str]
) -> Optional[str]:
    """Name of whoever recorded the newest entry among ``actions`` for a request."""
    result = await session.execute(
        select(User.name)
        .join(RequestHistory, RequestHistory.created_by_id == User.id)
        .where(
            RequestHistory.request_id == request_id,
            RequestHistory.action.in_(list(actions)),
        )
        .order_by(RequestHistory.created_at.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()

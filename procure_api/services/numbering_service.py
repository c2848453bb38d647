from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from procure_api.config import settings
from procure_api.models.request import Request


def _sequence_of(request_number: str, prefix: str) -> int:
    try:
        return int(request_number[len(prefix):])
    except ValueError:
        return 0


async def generate_request_number(
    session: AsyncSession, now: Optional[datetime] = None
) -> str:
    """Next ``<prefix>-<year>-<seq>`` number; seq restarts every calendar year.

    Built from the highest sequence in use rather than a row count, so
    deleting an older request cannot produce a duplicate.
    """
    year = (now or datetime.utcnow()).year
    prefix = f"{settings.REQUEST_NUMBER_PREFIX}-{year}-"
    result = await session.execute(
        select(Request.request_number).where(Request.request_number.like(f"{prefix}%"))
    )
    highest = max((_sequence_of(n, prefix) for n in result.scalars().all()), default=0)
    return f"{prefix}{highest + 1:03d}"

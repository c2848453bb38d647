import uuid
from typing import Any, Generic, List, TypeVar, Optional
from pydantic import BaseModel, Field

from procure_api.exceptions import NotFoundError

T = TypeVar("T")


class PaginationMeta(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int
    has_next: bool
    has_prev: bool


class PaginatedResponse(BaseModel, Generic[T]):
    data: List[T] = Field(default_factory=list)  # type: ignore[assignment]
    pagination: PaginationMeta


class MessageResponse(BaseModel):
    message: str


def build_pagination(page: int, limit: int, total: int) -> PaginationMeta:
    total_pages = max(1, (total + limit - 1) // limit)
    return PaginationMeta(
        page=page,
        limit=limit,
        total=total,
        total_pages=total_pages,
        has_next=page < total_pages,
        has_prev=page > 1,
    )


def parse_uuid(value: Any, entity: str) -> uuid.UUID:
    """Path/body ids arrive as strings; a malformed one can never match a row."""
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except ValueError:
        raise NotFoundError(entity, value)


def parse_optional_uuid(value: Optional[Any], entity: str) -> Optional[uuid.UUID]:
    if value in (None, ""):
        return None
    return parse_uuid(value, entity)


def iso(value) -> Optional[str]:
    return value.isoformat() if value else None

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import String, DateTime, Text, ForeignKey, Index, Uuid, desc
from sqlalchemy.orm import Mapped, mapped_column

from procure_api.database import Base


class RequestHistory(Base):
    """Append-only audit row, one per workflow transition.

    ``request_id`` has no foreign key: entries survive the
    deletion of the request they describe; ``request_number`` keeps them
    readable afterwards.
    """

    __tablename__ = "request_history"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4
    )
    request_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    request_number: Mapped[str] = mapped_column(String(50), nullable=False)
    action: Mapped[str] = mapped_column(String(100), nullable=False)
    old_status: Mapped[Optional[str]] = mapped_column(String(50))
    new_status: Mapped[str] = mapped_column(String(50), nullable=False)
    created_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL")
    )
    comments: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow
    )

    __table_args__ = (
        Index("idx_history_request", "request_id"),
        Index("idx_history_created", desc("created_at")),
    )

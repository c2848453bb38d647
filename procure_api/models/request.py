import uuid
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Optional

from sqlalchemy import (
    String,
    Integer,
    Numeric,
    DateTime,
    Text,
    ForeignKey,
    CheckConstraint,
    Index,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from procure_api.database import Base

if TYPE_CHECKING:
    from procure_api.services.state_machine import WorkflowNode


class Request(Base):
    __tablename__ = "requests"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4
    )
    request_number: Mapped[str] = mapped_column(
        String(50), unique=True, nullable=False
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id"), nullable=False
    )
    requester_name: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    department_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("departments.id"), nullable=False
    )
    description: Mapped[str] = mapped_column(Text, nullable=False)
    justification: Mapped[Optional[str]] = mapped_column(Text)
    total_value: Mapped[Decimal] = mapped_column(
        Numeric(14, 2), nullable=False, default=Decimal("0")
    )
    request_date: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow
    )

    status: Mapped[str] = mapped_column(String(50), nullable=False, default="OPEN")
    manager_status: Mapped[Optional[str]] = mapped_column(String(50))
    approver_status: Mapped[Optional[str]] = mapped_column(String(50))

    submitted_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    manager_approved_by: Mapped[Optional[str]] = mapped_column(String(200))
    manager_approved_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL")
    )
    manager_approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    manager_rejection_reason: Mapped[Optional[str]] = mapped_column(Text)
    approved_by: Mapped[Optional[str]] = mapped_column(String(200))
    approved_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL")
    )
    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    rejection_reason: Mapped[Optional[str]] = mapped_column(Text)
    reopened_by: Mapped[Optional[str]] = mapped_column(String(200))
    reopened_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    reopen_reason: Mapped[Optional[str]] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    __table_args__ = (
        CheckConstraint("total_value >= 0", name="chk_request_total"),
        Index("idx_requests_status", "status", "manager_status", "approver_status"),
        Index("idx_requests_user", "user_id"),
        Index("idx_requests_department", "department_id"),
    )

    @property
    def node(self) -> "WorkflowNode":
        from procure_api.services.state_machine import WorkflowNode

        return WorkflowNode.from_statuses(
            self.status, self.manager_status, self.approver_status
        )

    def move_to(self, node: "WorkflowNode") -> None:
        """The only place the three status columns are written."""
        self.status = node.status.value
        self.manager_status = node.manager_status.value if node.manager_status else None
        self.approver_status = node.approver_status.value if node.approver_status else None


class RequestItem(Base):
    __tablename__ = "request_items"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4
    )
    request_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("requests.id", ondelete="CASCADE"),
        nullable=False,
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    item_name: Mapped[str] = mapped_column(String(300), nullable=False)
    item_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("items.id", ondelete="SET NULL")
    )
    item_type_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("item_types.id")
    )
    item_category_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("item_categories.id")
    )
    contract_type_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("contract_types.id")
    )
    acquisition_type_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("acquisition_types.id")
    )
    acquisition_type: Mapped[str] = mapped_column(String(20), default="PURCHASE")
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_value: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    total_value: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    specifications: Mapped[Optional[str]] = mapped_column(Text)
    brand: Mapped[Optional[str]] = mapped_column(String(200))
    model: Mapped[Optional[str]] = mapped_column(String(200))
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow
    )

    __table_args__ = (
        CheckConstraint("quantity > 0", name="chk_request_item_qty"),
        CheckConstraint("unit_value >= 0", name="chk_request_item_value"),
        Index("idx_request_items_request", "request_id"),
    )

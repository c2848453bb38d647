"""Item taxonomy and acquisition master data referenced by request items."""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import String, Boolean, DateTime, ForeignKey, Text, Index, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from procure_api.database import Base


class _CodedMasterMixin:
    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4
    )
    code: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )


class ItemType(_CodedMasterMixin, Base):
    __tablename__ = "item_types"


class ItemCategory(_CodedMasterMixin, Base):
    __tablename__ = "item_categories"


class ContractType(_CodedMasterMixin, Base):
    __tablename__ = "contract_types"


class AcquisitionTypeMaster(_CodedMasterMixin, Base):
    __tablename__ = "acquisition_types"


class Item(Base):
    """Catalog entry a request item may be picked from."""

    __tablename__ = "items"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4
    )
    code: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(300), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    specifications: Mapped[Optional[str]] = mapped_column(Text)
    category_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("item_categories.id"), nullable=False
    )
    type_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("item_types.id"), nullable=False
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    __table_args__ = (
        Index("idx_items_category", "category_id"),
        Index("idx_items_type", "type_id"),
    )


class ItemExclusion(Base):
    """Goods or services that must not be requested, with the reason why.

    Returned next to catalog search results whose term matches its code or name.
    """

    __tablename__ = "item_exclusions"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4
    )
    code: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(300), nullable=False)
    justification: Mapped[str] = mapped_column(Text, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

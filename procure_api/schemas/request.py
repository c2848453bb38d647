from decimal import Decimal
from typing import List, Optional
from pydantic import BaseModel, Field

from procure_api.models.enums import AcquisitionKind


class RequestItemInput(BaseModel):
    item_name: str = Field(..., min_length=1, max_length=300)
    item_id: Optional[str] = None
    item_type_id: Optional[str] = None
    item_category_id: Optional[str] = None
    contract_type_id: Optional[str] = None
    acquisition_type_id: Optional[str] = None
    acquisition_type: AcquisitionKind = AcquisitionKind.PURCHASE
    quantity: int = Field(..., ge=1, le=999999)
    unit_value: Decimal = Field(..., ge=0, max_digits=14, decimal_places=2)
    specifications: Optional[str] = Field(None, max_length=2000)
    brand: Optional[str] = Field(None, max_length=200)
    model: Optional[str] = Field(None, max_length=200)


class RequestCreate(BaseModel):
    # Emptiness of description/items is checked by the service so the
    # same rule applies to create, edit and submit.
    description: str = Field("", max_length=2000)
    justification: Optional[str] = Field(None, max_length=2000)
    items: List[RequestItemInput] = Field(default_factory=list, max_length=100)


class RequestEdit(RequestCreate):
    pass


class ReasonInput(BaseModel):
    reason: Optional[str] = Field(None, max_length=1000)


class ReopenInput(BaseModel):
    reopen_reason: Optional[str] = Field(None, max_length=1000)


class CommentInput(BaseModel):
    comments: Optional[str] = Field(None, max_length=1000)


class RequestItemResponse(BaseModel):
    id: str
    position: int
    item_name: str
    item_id: Optional[str] = None
    item_type_id: Optional[str] = None
    item_category_id: Optional[str] = None
    contract_type_id: Optional[str] = None
    acquisition_type_id: Optional[str] = None
    acquisition_type: str
    quantity: int
    unit_value: float
    total_value: float
    specifications: Optional[str] = None
    brand: Optional[str] = None
    model: Optional[str] = None

    model_config = {"from_attributes": True}


class HistoryEntryResponse(BaseModel):
    id: str
    request_id: str
    request_number: Optional[str] = None
    action: str
    old_status: Optional[str] = None
    new_status: str
    created_by_id: Optional[str] = None
    created_by_name: Optional[str] = None
    comments: Optional[str] = None
    created_at: str


class RequestSummaryResponse(BaseModel):
    id: str
    request_number: str
    description: str
    requester_name: str
    department_id: str
    department_name: Optional[str] = None
    parent_department_name: Optional[str] = None
    status: str
    manager_status: Optional[str] = None
    approver_status: Optional[str] = None
    total_value: float
    request_date: Optional[str] = None
    item_count: int = 0


class RequestResponse(BaseModel):
    id: str
    request_number: str
    user_id: str
    requester_name: str
    department_id: str
    department_name: Optional[str] = None
    description: str
    justification: Optional[str] = None
    total_value: float
    request_date: Optional[str] = None
    status: str
    manager_status: Optional[str] = None
    approver_status: Optional[str] = None
    node: str
    available_actions: List[str] = []
    submitted_at: Optional[str] = None
    manager_approved_by: Optional[str] = None
    manager_approved_at: Optional[str] = None
    manager_rejection_reason: Optional[str] = None
    approved_by: Optional[str] = None
    approved_at: Optional[str] = None
    rejection_reason: Optional[str] = None
    reopened_by: Optional[str] = None
    reopened_at: Optional[str] = None
    reopen_reason: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    items: List[RequestItemResponse] = []
    history: List[HistoryEntryResponse] = []


class TransitionResponse(BaseModel):
    id: str
    request_number: str
    status: str
    manager_status: Optional[str] = None
    approver_status: Optional[str] = None
    node: str
    message: str

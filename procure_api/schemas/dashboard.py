from typing import Optional
from pydantic import BaseModel


class UserSummary(BaseModel):
    total_requests: int
    pending_authorization: int
    pending_approval: int
    approved: int
    rejected: int
    total_value: float


class ManagerSummary(BaseModel):
    total_requests: int
    pending_authorization: int
    pending_approval: int
    approved: int
    total_departments: int
    total_value: float
    monthly_value: float


class ApproverSummary(BaseModel):
    total_requests: int
    pending_manager_approval: int
    pending_final_approval: int
    approved: int
    total_value: float


class RecentRequest(BaseModel):
    id: str
    request_number: str
    status: str
    total_value: float
    request_date: Optional[str] = None
    item_count: int

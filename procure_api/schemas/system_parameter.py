from typing import Optional
from pydantic import BaseModel, Field

from procure_api.models.enums import ParameterType


class SystemParameterCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100, pattern=r"^[a-z0-9_]+$")
    value: str = Field(..., max_length=4000)
    type: ParameterType = ParameterType.STRING
    description: Optional[str] = Field(None, max_length=1000)
    is_active: bool = True


class SystemParameterUpdate(BaseModel):
    value: Optional[str] = Field(None, max_length=4000)
    type: Optional[ParameterType] = None
    description: Optional[str] = Field(None, max_length=1000)
    is_active: Optional[bool] = None


class SystemParameterResponse(BaseModel):
    id: str
    name: str
    value: str
    type: str
    description: Optional[str] = None
    is_active: bool
    updated_at: Optional[str] = None


class SeedResponse(BaseModel):
    created: int
    skipped: int

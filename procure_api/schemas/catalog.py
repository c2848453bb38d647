from typing import List, Optional
from pydantic import BaseModel, Field


class CodedEntryCreate(BaseModel):
    """Shared body for item types, item categories, contract and acquisition types."""

    code: str = Field(..., min_length=1, max_length=50)
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=1000)
    is_active: bool = True


class CodedEntryUpdate(BaseModel):
    code: Optional[str] = Field(None, min_length=1, max_length=50)
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=1000)
    is_active: Optional[bool] = None


class CodedEntryResponse(BaseModel):
    id: str
    code: str
    name: str
    description: Optional[str] = None
    is_active: bool
    created_at: str


class ItemCreate(BaseModel):
    code: str = Field(..., min_length=1, max_length=50)
    name: str = Field(..., min_length=1, max_length=300)
    description: Optional[str] = Field(None, max_length=2000)
    specifications: Optional[str] = Field(None, max_length=4000)
    category_id: str
    type_id: str
    is_active: bool = True


class ItemUpdate(BaseModel):
    code: Optional[str] = Field(None, min_length=1, max_length=50)
    name: Optional[str] = Field(None, min_length=1, max_length=300)
    description: Optional[str] = Field(None, max_length=2000)
    specifications: Optional[str] = Field(None, max_length=4000)
    category_id: Optional[str] = None
    type_id: Optional[str] = None
    is_active: Optional[bool] = None


class ItemResponse(BaseModel):
    id: str
    code: str
    name: str
    description: Optional[str] = None
    specifications: Optional[str] = None
    category_id: Optional[str] = None
    type_id: Optional[str] = None
    is_active: bool
    created_at: str


class ExclusionCreate(BaseModel):
    code: str = Field(..., min_length=1, max_length=50)
    name: str = Field(..., min_length=1, max_length=300)
    justification: str = Field(..., min_length=1, max_length=4000)
    is_active: bool = True


class ExclusionUpdate(BaseModel):
    code: Optional[str] = Field(None, min_length=1, max_length=50)
    name: Optional[str] = Field(None, min_length=1, max_length=300)
    justification: Optional[str] = Field(None, min_length=1, max_length=4000)
    is_active: Optional[bool] = None


class ExclusionResponse(BaseModel):
    id: str
    code: str
    name: str
    justification: str
    is_active: bool
    created_at: str


class ItemSearchResponse(BaseModel):
    items: List[ItemResponse]
    exclusions: List[ExclusionResponse]

from typing import Optional
from pydantic import BaseModel, Field


class DepartmentCreate(BaseModel):
    code: str = Field(..., min_length=1, max_length=50)
    name: str = Field(..., min_length=1, max_length=200)
    acronym: Optional[str] = Field(None, max_length=50)
    parent_id: Optional[str] = None
    type_id: Optional[str] = None
    observations: Optional[str] = Field(None, max_length=2000)
    is_active: bool = True


class DepartmentUpdate(BaseModel):
    code: Optional[str] = Field(None, min_length=1, max_length=50)
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    acronym: Optional[str] = Field(None, max_length=50)
    parent_id: Optional[str] = None
    type_id: Optional[str] = None
    observations: Optional[str] = Field(None, max_length=2000)
    is_active: Optional[bool] = None


class DepartmentResponse(BaseModel):
    id: str
    code: str
    name: str
    acronym: Optional[str] = None
    parent_id: Optional[str] = None
    parent_name: Optional[str] = None
    type_id: Optional[str] = None
    type_name: Optional[str] = None
    observations: Optional[str] = None
    is_active: bool
    created_at: str


class DepartmentTypeCreate(BaseModel):
    code: str = Field(..., min_length=1, max_length=50)
    name: str = Field(..., min_length=1, max_length=200)
    observations: Optional[str] = Field(None, max_length=2000)
    is_active: bool = True


class DepartmentTypeUpdate(BaseModel):
    code: Optional[str] = Field(None, min_length=1, max_length=50)
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    observations: Optional[str] = Field(None, max_length=2000)
    is_active: Optional[bool] = None


class DepartmentTypeResponse(BaseModel):
    id: str
    code: str
    name: str
    observations: Optional[str] = None
    is_active: bool
    department_count: int = 0
    created_at: str

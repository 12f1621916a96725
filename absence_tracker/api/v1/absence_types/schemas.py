from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class AbsenceTypeCreate(BaseModel):
    name: str = Field(..., max_length=100)
    code: str = Field(..., max_length=50)
    description: Optional[str] = None
    is_paid: bool = True
    requires_approval: bool = True
    max_days_per_year: Optional[int] = Field(None, ge=0)
    advance_notice_days: int = Field(0, ge=0)
    color: Optional[str] = Field(None, max_length=20)
    is_active: bool = True


class AbsenceTypeUpdate(BaseModel):
    name: Optional[str] = Field(None, max_length=100)
    code: Optional[str] = Field(None, max_length=50)
    description: Optional[str] = None
    is_paid: Optional[bool] = None
    requires_approval: Optional[bool] = None
    max_days_per_year: Optional[int] = Field(None, ge=0)
    advance_notice_days: Optional[int] = Field(None, ge=0)
    color: Optional[str] = Field(None, max_length=20)
    is_active: Optional[bool] = None


class AbsenceTypeResponse(BaseModel):
    id: UUID
    tenant_id: UUID
    name: str
    code: str
    description: Optional[str] = None
    is_paid: bool
    requires_approval: bool
    max_days_per_year: Optional[int] = None
    advance_notice_days: int
    color: Optional[str] = None
    is_active: bool
    created_at: datetime

    class Config:
        from_attributes = True


class AbsenceTypeDeleteResponse(BaseModel):
    id: UUID
    deleted: bool = Field(..., description="True when removed; False when deactivated because records reference it")
    is_active: bool


class AbsenceTypeUsage(BaseModel):
    id: UUID
    name: str
    color: Optional[str] = None
    usage_count: int


class AbsenceTypeStats(BaseModel):
    total_types: int
    active_types: int
    inactive_types: int
    top_used_types: List[AbsenceTypeUsage]

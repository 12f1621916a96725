from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field

from absence_tracker.core.enums import EmployeeStatus


class EmployeeCreate(BaseModel):
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    email: Optional[EmailStr] = None
    employee_code: Optional[str] = Field(None, max_length=50, description="External HR / payroll identifier")
    department: Optional[str] = Field(None, max_length=100)
    status: EmployeeStatus = EmployeeStatus.ACTIVE


class EmployeeResponse(BaseModel):
    id: UUID
    tenant_id: UUID
    first_name: str
    last_name: str
    email: Optional[str] = None
    employee_code: Optional[str] = None
    department: Optional[str] = None
    status: str
    created_at: datetime

    class Config:
        from_attributes = True

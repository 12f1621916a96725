from datetime import date, datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from absence_tracker.core.enums import AbsenceSource


# ----- Create -----
class AbsenceRecordCreate(BaseModel):
    """Manual / import / API creation. ai-extraction records are only created by the pipeline."""

    employee_id: UUID
    absence_type_id: UUID
    start_date: date
    end_date: date
    reason: Optional[str] = Field(None, max_length=2000)
    notes: Optional[str] = Field(None, max_length=2000)
    source: AbsenceSource = AbsenceSource.MANUAL
    source_reference: Optional[str] = Field(None, max_length=100)

    @model_validator(mode="after")
    def validate_source(self) -> "AbsenceRecordCreate":
        if self.source == AbsenceSource.AI_EXTRACTION:
            raise ValueError("ai-extraction records are created by the processing pipeline only")
        return self


# ----- Response -----
class AbsenceRecordResponse(BaseModel):
    id: UUID
    tenant_id: UUID
    employee_id: UUID
    absence_type_id: UUID
    start_date: date
    end_date: date
    total_days: int
    reason: Optional[str] = None
    notes: Optional[str] = None
    status: str
    source: str
    source_reference: Optional[str] = None
    confidence_score: Optional[float] = None
    rejection_reason: Optional[str] = None
    created_by: Optional[UUID] = None
    approved_by: Optional[UUID] = None
    approved_at: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True


# ----- Approve / Reject / Cancel -----
class AbsenceRecordApprove(BaseModel):
    notes: Optional[str] = Field(None, max_length=2000)


class AbsenceRecordReject(BaseModel):
    rejection_reason: Optional[str] = Field(None, max_length=2000)
    notes: Optional[str] = Field(None, max_length=2000)


# ----- Stats -----
class AbsenceRecordStats(BaseModel):
    total_records: int
    pending_records: int
    approved_records: int
    rejected_records: int
    cancelled_records: int
    year_to_date_records: int
    month_to_date_records: int
    avg_days_per_record: float


# ----- Update -----
class AbsenceRecordUpdate(BaseModel):
    """Partial update. Date or type changes are re-validated like a create."""

    absence_type_id: Optional[UUID] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    reason: Optional[str] = Field(None, max_length=2000)
    notes: Optional[str] = Field(None, max_length=2000)

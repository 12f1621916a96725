from datetime import date, datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from absence_tracker.api.v1.absence_records.schemas import AbsenceRecordResponse
from absence_tracker.core.enums import GateOutcome, MatchingMethod


# ----- Input -----
class EmailInput(BaseModel):
    """Plain email as handed over by mailbox sync (or pasted by a user)."""

    subject: str = Field("", max_length=1000)
    body: str = Field(..., max_length=100_000)
    sender: str = Field(..., max_length=320)
    timestamp: Optional[datetime] = None


class ProcessEmailRequest(EmailInput):
    auto_create: bool = Field(False, description="Create the absence record when confidence passes the gate")


# ----- Extraction result -----
class EmployeeMatch(BaseModel):
    id: UUID
    name: Optional[str] = None
    matching_method: Optional[MatchingMethod] = None


class AbsenceTypeMatch(BaseModel):
    id: UUID
    name: Optional[str] = None
    matching_keywords: List[str] = []


class ExtractionMetadata(BaseModel):
    provider: Optional[str] = None
    model: Optional[str] = None
    tokens_used: int = 0
    cost_usd: float = 0.0
    latency_ms: int = 0
    # Failed provider attempts before the one that answered
    attempts: List[Dict[str, Any]] = []


class ParsedAbsenceRequest(BaseModel):
    """Structured guess from an extraction provider. Never persisted as-is."""

    is_absence_request: bool = False
    confidence_score: float = Field(0.0, ge=0.0, le=1.0)
    employee: Optional[EmployeeMatch] = None
    absence_type: Optional[AbsenceTypeMatch] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    reason: Optional[str] = None
    duration: Optional[str] = None
    requires_approval: bool = True
    extracted_data: Dict[str, Any] = {}
    metadata: ExtractionMetadata = Field(default_factory=ExtractionMetadata)


# ----- Pipeline result -----
class GateDecisionResponse(BaseModel):
    outcome: GateOutcome
    reason: Optional[str] = None
    total_days: Optional[int] = None
    conflicting_record_ids: List[str] = []


class ProcessingError(BaseModel):
    kind: str
    message: str
    attempts: List[Dict[str, Any]] = []


class ProcessingResult(BaseModel):
    """success means the pipeline ran to completion, not that a record was created."""

    success: bool
    parsed_request: Optional[ParsedAbsenceRequest] = None
    absence_record: Optional[AbsenceRecordResponse] = None
    processing_log_id: Optional[UUID] = None
    processing_time_ms: int
    auto_created: bool = False
    decision: Optional[GateDecisionResponse] = None
    error: Optional[ProcessingError] = None


# ----- Stats / history / feedback -----
class ProcessingStats(BaseModel):
    total_processed: int
    successful_processed: int
    auto_created_records: int
    avg_confidence_score: float
    total_cost: float
    recent_processing: int
    success_rate: float
    auto_creation_rate: float


class FeedbackRequest(BaseModel):
    processing_log_id: UUID
    is_correct: bool
    corrections: Optional[Dict[str, Any]] = None
    comments: Optional[str] = Field(None, max_length=2000)


class ProcessingLogResponse(BaseModel):
    id: UUID
    tenant_id: UUID
    processing_type: str
    provider: Optional[str] = None
    input_data: Dict[str, Any]
    ai_response: Optional[Dict[str, Any]] = None
    confidence_score: Optional[float] = None
    status: str
    outcome: Optional[str] = None
    error_message: Optional[str] = None
    processing_time_ms: Optional[int] = None
    tokens_used: int
    cost_usd: float
    related_record_id: Optional[UUID] = None
    created_at: datetime

    class Config:
        from_attributes = True

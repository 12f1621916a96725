"""
Decision gate between an extraction and a persisted absence record.

screen()      no I/O: is there a usable employee / type / date range at all?
evaluate()    references still valid, no overlapping absence, confidence and intent
materialize() insert the record

evaluate() and materialize() must run under employee_absence_lock for the candidate employee.
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from absence_tracker.api.v1.absence_records.service import (
    find_overlapping,
    insert_absence_record,
    overlap_rejection,
    resolve_references,
)
from absence_tracker.core.calendar import working_days
from absence_tracker.core.enums import AbsenceSource, GateOutcome
from absence_tracker.core.exceptions import ValidationRejected
from absence_tracker.core.models import AbsenceRecord, AbsenceType

from .schemas import GateDecisionResponse, ParsedAbsenceRequest

logger = logging.getLogger(__name__)

DEFAULT_CONFIDENCE_THRESHOLD = 0.8


@dataclass(frozen=True)
class AbsenceCandidate:
    employee_id: UUID
    absence_type_id: UUID
    start_date: date
    end_date: date
    total_days: int


@dataclass
class GateDecision:
    outcome: GateOutcome
    reason: Optional[str] = None
    candidate: Optional[AbsenceCandidate] = None
    absence_type: Optional[AbsenceType] = None
    conflicting_record_ids: List[str] = field(default_factory=list)

    @property
    def should_create(self) -> bool:
        return self.outcome == GateOutcome.AUTO_CREATE

    def to_response(self) -> GateDecisionResponse:
        return GateDecisionResponse(
            outcome=self.outcome,
            reason=self.reason,
            total_days=self.candidate.total_days if self.candidate else None,
            conflicting_record_ids=self.conflicting_record_ids,
        )


class DecisionGate:
    def __init__(self, confidence_threshold: float = DEFAULT_CONFIDENCE_THRESHOLD) -> None:
        self.confidence_threshold = confidence_threshold

    def screen(self, parsed: ParsedAbsenceRequest) -> Tuple[Optional[AbsenceCandidate], Optional[str]]:
        """Steps 1-2. Returns (candidate, None) or (None, why nothing can be created). Never raises."""
        if not parsed.is_absence_request:
            return None, "not an absence request"
        if parsed.employee is None:
            return None, "no employee matched"
        if parsed.absence_type is None:
            return None, "no absence type matched"
        if parsed.start_date is None or parsed.end_date is None:
            return None, "no usable date range"
        if parsed.start_date > parsed.end_date:
            return None, "start date is after end date"
        return (
            AbsenceCandidate(
                employee_id=parsed.employee.id,
                absence_type_id=parsed.absence_type.id,
                start_date=parsed.start_date,
                end_date=parsed.end_date,
                total_days=working_days(parsed.start_date, parsed.end_date),
            ),
            None,
        )

    async def evaluate(
        self,
        db: AsyncSession,
        tenant_id: UUID,
        parsed: ParsedAbsenceRequest,
        candidate: AbsenceCandidate,
        auto_create: bool,
    ) -> GateDecision:
        """Steps 3-4 without writing anything. Overlap is a rejection, not an error."""
        try:
            _, absence_type = await resolve_references(db, tenant_id, candidate.employee_id, candidate.absence_type_id)
            conflicts = await find_overlapping(db, candidate.employee_id, candidate.start_date, candidate.end_date)
            if conflicts:
                raise overlap_rejection(conflicts)
        except ValidationRejected as e:
            logger.info("gate rejected candidate for employee %s: %s", candidate.employee_id, e.reason)
            return GateDecision(
                outcome=GateOutcome.VALIDATION_REJECTED,
                reason=e.message,
                candidate=candidate,
                conflicting_record_ids=e.conflicting_ids,
            )

        if parsed.confidence_score < self.confidence_threshold:
            return GateDecision(
                outcome=GateOutcome.BELOW_THRESHOLD,
                reason=f"confidence {parsed.confidence_score:.2f} below {self.confidence_threshold:.2f}",
                candidate=candidate,
                absence_type=absence_type,
            )
        if not auto_create:
            return GateDecision(
                outcome=GateOutcome.NOT_REQUESTED,
                reason="auto-create not requested",
                candidate=candidate,
                absence_type=absence_type,
            )
        return GateDecision(outcome=GateOutcome.AUTO_CREATE, candidate=candidate, absence_type=absence_type)

    async def materialize(
        self,
        db: AsyncSession,
        tenant_id: UUID,
        parsed: ParsedAbsenceRequest,
        decision: GateDecision,
        processing_log_id: UUID,
        created_by: Optional[UUID] = None,
        subject: str = "",
    ) -> AbsenceRecord:
        """Step 4 insert. Only valid for an AUTO_CREATE decision."""
        if not decision.should_create or decision.candidate is None or decision.absence_type is None:
            raise ValueError(f"cannot materialize a {decision.outcome.value} decision")
        candidate = decision.candidate
        return await insert_absence_record(
            db,
            tenant_id,
            candidate.employee_id,
            decision.absence_type,
            candidate.start_date,
            candidate.end_date,
            reason=parsed.reason,
            notes=f"Auto-created from email: {subject}" if subject else "Auto-created from email",
            source=AbsenceSource.AI_EXTRACTION.value,
            source_reference=str(processing_log_id),
            confidence_score=parsed.confidence_score,
            created_by=created_by,
        )

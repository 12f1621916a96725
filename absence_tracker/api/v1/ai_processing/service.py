"""
Email-to-absence pipeline entry points and the processing log.

Order inside one run: log created (processing) -> extraction -> gate decision ->
log closed (completed|failed) -> record inserted -> related_record_id set. The
audit row always exists before the record it explains.
"""

import hashlib
import logging
import time
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional
from uuid import UUID

from fastapi import status
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from absence_tracker.api.v1.absence_records.schemas import AbsenceRecordResponse
from absence_tracker.api.v1.absence_records.service import employee_absence_lock
from absence_tracker.core.enums import GateOutcome, ProcessingStatus, ProcessingType
from absence_tracker.core.exceptions import ProviderUnavailable, ServiceError, ValidationRejected
from absence_tracker.core.models import ProcessingLog

from .context import build_request_context
from .gate import DecisionGate, GateDecision
from .orchestrator import ExtractionOrchestrator
from .schemas import (
    EmailInput,
    FeedbackRequest,
    ParsedAbsenceRequest,
    ProcessingError,
    ProcessingLogResponse,
    ProcessingResult,
    ProcessingStats,
)

logger = logging.getLogger(__name__)

DEFAULT_BODY_EXCERPT_CHARS = 500
RECENT_WINDOW = timedelta(days=30)


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)


def redact_email(email: EmailInput, excerpt_chars: int = DEFAULT_BODY_EXCERPT_CHARS) -> Dict[str, Any]:
    """Log-safe copy of the email: full headers, body as digest plus a truncated excerpt."""
    body = email.body or ""
    digest = hashlib.sha256("\n".join([email.sender, email.subject, body]).encode("utf-8")).hexdigest()
    return {
        "subject": email.subject,
        "sender": email.sender,
        "timestamp": email.timestamp.isoformat() if email.timestamp else None,
        "bodyDigest": digest,
        "bodyLength": len(body),
        "bodyExcerpt": body[:excerpt_chars],
    }


async def _close_log(
    db: AsyncSession,
    log: ProcessingLog,
    parsed: ParsedAbsenceRequest,
    decision: GateDecision,
    started: float,
) -> None:
    log.provider = parsed.metadata.provider
    log.ai_response = parsed.model_dump(mode="json")
    log.confidence_score = parsed.confidence_score
    log.status = ProcessingStatus.COMPLETED.value
    log.outcome = decision.outcome.value
    log.error_message = decision.reason if decision.outcome == GateOutcome.VALIDATION_REJECTED else None
    log.processing_time_ms = _elapsed_ms(started)
    log.tokens_used = parsed.metadata.tokens_used
    log.cost_usd = parsed.metadata.cost_usd
    await db.commit()


async def _fail_log(db: AsyncSession, log_id: UUID, message: str, started: float) -> None:
    # The session may hold a broken transaction; start clean and update by id.
    await db.rollback()
    await db.execute(
        update(ProcessingLog)
        .where(ProcessingLog.id == log_id)
        .values(
            status=ProcessingStatus.FAILED.value,
            error_message=message,
            processing_time_ms=_elapsed_ms(started),
        )
    )
    await db.commit()


async def process_email(
    db: AsyncSession,
    tenant_id: UUID,
    email: EmailInput,
    auto_create: bool,
    orchestrator: ExtractionOrchestrator,
    gate: DecisionGate,
    user_id: Optional[UUID] = None,
    body_excerpt_chars: int = DEFAULT_BODY_EXCERPT_CHARS,
) -> ProcessingResult:
    """
    Run one email through extraction and the decision gate.

    success=False only when no provider could be reached. Nothing to create,
    low confidence, malformed provider output and overlap rejections are all
    successful runs; inspect auto_created and decision. Any other error marks
    the log failed and is re-raised.
    """
    started = time.perf_counter()
    log = ProcessingLog(
        tenant_id=tenant_id,
        processing_type=ProcessingType.EMAIL_PARSING.value,
        input_data=redact_email(email, body_excerpt_chars),
        status=ProcessingStatus.PROCESSING.value,
        created_by=user_id,
    )
    db.add(log)
    await db.commit()
    log_id = log.id
    logger.info("processing email run=%s tenant=%s auto_create=%s", log_id, tenant_id, auto_create)

    try:
        context = await build_request_context(db, tenant_id)
        parsed = await orchestrator.extract(email, context)
    except ProviderUnavailable as e:
        log.status = ProcessingStatus.FAILED.value
        log.error_message = e.message
        log.ai_response = {"attempts": e.attempts}
        log.processing_time_ms = _elapsed_ms(started)
        await db.commit()
        return ProcessingResult(
            success=False,
            processing_log_id=log_id,
            processing_time_ms=log.processing_time_ms,
            auto_created=False,
            error=ProcessingError(kind=e.kind, message=e.message, attempts=e.attempts),
        )
    except Exception as e:
        logger.exception("run=%s failed before a decision was reached", log_id)
        await _fail_log(db, log_id, f"{type(e).__name__}: {e}", started)
        raise

    record = None
    candidate, reason = gate.screen(parsed)
    if candidate is None:
        decision = GateDecision(outcome=GateOutcome.NO_ACTION, reason=reason)
        await _close_log(db, log, parsed, decision, started)
    else:
        async with employee_absence_lock(candidate.employee_id):
            try:
                decision = await gate.evaluate(db, tenant_id, parsed, candidate, auto_create)
            except Exception as e:
                logger.exception("run=%s failed while evaluating the extraction", log_id)
                await _fail_log(db, log_id, f"{type(e).__name__}: {e}", started)
                raise
            await _close_log(db, log, parsed, decision, started)
            if decision.should_create:
                try:
                    record = await gate.materialize(
                        db, tenant_id, parsed, decision, log_id, created_by=user_id, subject=email.subject
                    )
                except ValidationRejected as e:
                    # Another process won the row lock after our check; the log stays "completed, not materialized".
                    logger.warning("auto-create for run %s rejected at insert: %s", log_id, e.message)
                    log.error_message = f"rejected at insert: {e.message}"
                    await db.commit()
                    decision = GateDecision(
                        outcome=GateOutcome.VALIDATION_REJECTED,
                        reason=e.message,
                        candidate=candidate,
                        conflicting_record_ids=e.conflicting_ids,
                    )
                else:
                    log.related_record_id = record.id
                    await db.commit()

    logger.info(
        "run=%s outcome=%s confidence=%.2f provider=%s record=%s",
        log_id,
        decision.outcome.value,
        parsed.confidence_score,
        parsed.metadata.provider,
        record.id if record else None,
    )
    return ProcessingResult(
        success=True,
        parsed_request=parsed,
        absence_record=AbsenceRecordResponse.model_validate(record) if record else None,
        processing_log_id=log_id,
        processing_time_ms=_elapsed_ms(started),
        auto_created=record is not None,
        decision=decision.to_response(),
    )


async def test_parsing(
    db: AsyncSession,
    tenant_id: UUID,
    email: EmailInput,
    orchestrator: ExtractionOrchestrator,
) -> ParsedAbsenceRequest:
    """Extraction only: no processing log, no gate, no record."""
    context = await build_request_context(db, tenant_id)
    return await orchestrator.extract(email, context)


async def get_processing_stats(
    db: AsyncSession,
    tenant_id: UUID,
    now: Optional[datetime] = None,
) -> ProcessingStats:
    now = now or datetime.utcnow()
    completed = (ProcessingLog.tenant_id == tenant_id, ProcessingLog.status == ProcessingStatus.COMPLETED.value)

    async def _scalar(stmt):
        return (await db.execute(stmt)).scalar_one()

    total_processed = int(await _scalar(select(func.count(ProcessingLog.id)).where(ProcessingLog.tenant_id == tenant_id)))
    successful_processed = int(await _scalar(select(func.count(ProcessingLog.id)).where(*completed)))
    auto_created_records = int(
        await _scalar(
            select(func.count(ProcessingLog.id)).where(*completed, ProcessingLog.related_record_id.is_not(None))
        )
    )
    avg_confidence = await _scalar(select(func.avg(ProcessingLog.confidence_score)).where(*completed))
    total_cost = await _scalar(select(func.sum(ProcessingLog.cost_usd)).where(ProcessingLog.tenant_id == tenant_id))
    recent_processing = int(
        await _scalar(
            select(func.count(ProcessingLog.id)).where(
                ProcessingLog.tenant_id == tenant_id,
                ProcessingLog.created_at >= now - RECENT_WINDOW,
            )
        )
    )

    return ProcessingStats(
        total_processed=total_processed,
        successful_processed=successful_processed,
        auto_created_records=auto_created_records,
        avg_confidence_score=float(avg_confidence or 0),
        total_cost=float(total_cost or 0),
        recent_processing=recent_processing,
        success_rate=successful_processed / total_processed if total_processed else 0.0,
        auto_creation_rate=auto_created_records / successful_processed if successful_processed else 0.0,
    )


async def get_processing_log(db: AsyncSession, tenant_id: UUID, log_id: UUID) -> Optional[ProcessingLog]:
    return (
        await db.execute(
            select(ProcessingLog).where(ProcessingLog.id == log_id, ProcessingLog.tenant_id == tenant_id)
        )
    ).scalar_one_or_none()


async def get_processing_history(db: AsyncSession, tenant_id: UUID, limit: int = 50) -> List[ProcessingLog]:
    result = await db.execute(
        select(ProcessingLog)
        .where(ProcessingLog.tenant_id == tenant_id)
        .order_by(ProcessingLog.created_at.desc())
        .limit(limit)
    )
    return list(result.scalars().all())


async def submit_feedback(
    db: AsyncSession,
    tenant_id: UUID,
    payload: FeedbackRequest,
    submitted_by: Optional[UUID] = None,
) -> ProcessingLogResponse:
    """Append reviewer feedback to the log's input_data. Absence records are never touched."""
    log = await get_processing_log(db, tenant_id, payload.processing_log_id)
    if not log:
        raise ServiceError("Processing log not found", status.HTTP_404_NOT_FOUND)
    if log.status == ProcessingStatus.PROCESSING.value:
        raise ServiceError("Processing run has not finished yet", status.HTTP_409_CONFLICT)

    input_data = dict(log.input_data or {})
    entries = list(input_data.get("feedback") or [])
    entries.append(
        {
            "isCorrect": payload.is_correct,
            "corrections": payload.corrections,
            "comments": payload.comments,
            "submittedBy": str(submitted_by) if submitted_by else None,
            "submittedAt": datetime.utcnow().isoformat(),
        }
    )
    input_data["feedback"] = entries
    # New dict so the JSON column is flagged dirty
    log.input_data = input_data
    await db.commit()
    await db.refresh(log)
    logger.info("feedback received for processing log %s (correct=%s)", log.id, payload.is_correct)
    return ProcessingLogResponse.model_validate(log)

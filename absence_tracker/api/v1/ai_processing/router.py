from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from absence_tracker.auth.dependencies import get_current_user
from absence_tracker.auth.rbac import check_permission
from absence_tracker.auth.schemas import CurrentUser
from absence_tracker.core.config import ExtractionConfig
from absence_tracker.core.exceptions import ProviderUnavailable, ServiceError
from absence_tracker.db.session import get_db

from .dependencies import get_decision_gate, get_extraction_config, get_orchestrator
from .gate import DecisionGate
from .orchestrator import ExtractionOrchestrator
from .schemas import (
    EmailInput,
    FeedbackRequest,
    ParsedAbsenceRequest,
    ProcessEmailRequest,
    ProcessingLogResponse,
    ProcessingResult,
    ProcessingStats,
)
from . import service

router = APIRouter(prefix="/api/v1/ai", tags=["ai-processing"])


@router.post(
    "/process-email",
    response_model=ProcessingResult,
    dependencies=[Depends(check_permission("ai_processing", "create"))],
)
async def process_email(
    payload: ProcessEmailRequest,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
    orchestrator: ExtractionOrchestrator = Depends(get_orchestrator),
    gate: DecisionGate = Depends(get_decision_gate),
    config: ExtractionConfig = Depends(get_extraction_config),
) -> ProcessingResult:
    """
    Extract an absence request from an email and, when auto_create is set and the
    gate passes, create the absence record.

    Provider outages come back as 200 with success=false and the attempts list so
    mailbox sync can retry the same email later.
    """
    return await service.process_email(
        db,
        current_user.tenant_id,
        payload,
        payload.auto_create,
        orchestrator,
        gate,
        user_id=current_user.id,
        body_excerpt_chars=config.log_body_excerpt_chars,
    )


@router.get(
    "/stats",
    response_model=ProcessingStats,
    dependencies=[Depends(check_permission("ai_processing", "read"))],
)
async def get_processing_stats(
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> ProcessingStats:
    return await service.get_processing_stats(db, current_user.tenant_id)


@router.get(
    "/history",
    response_model=List[ProcessingLogResponse],
    dependencies=[Depends(check_permission("ai_processing", "read"))],
)
async def get_processing_history(
    limit: int = Query(50, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> List[ProcessingLogResponse]:
    rows = await service.get_processing_history(db, current_user.tenant_id, limit=limit)
    return [ProcessingLogResponse.model_validate(r) for r in rows]


@router.post(
    "/feedback",
    response_model=ProcessingLogResponse,
    dependencies=[Depends(check_permission("ai_processing", "update"))],
)
async def submit_feedback(
    payload: FeedbackRequest,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> ProcessingLogResponse:
    try:
        return await service.submit_feedback(db, current_user.tenant_id, payload, submitted_by=current_user.id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post(
    "/test-parsing",
    response_model=ParsedAbsenceRequest,
    dependencies=[Depends(check_permission("ai_processing", "read"))],
)
async def test_parsing(
    payload: EmailInput,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
    orchestrator: ExtractionOrchestrator = Depends(get_orchestrator),
) -> ParsedAbsenceRequest:
    """Dry run of extraction. Nothing is logged or created."""
    try:
        return await service.test_parsing(db, current_user.tenant_id, payload, orchestrator)
    except ProviderUnavailable as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_dict())

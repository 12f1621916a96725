from datetime import date
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from absence_tracker.auth.dependencies import get_current_user
from absence_tracker.auth.rbac import check_permission
from absence_tracker.auth.schemas import CurrentUser
from absence_tracker.core.exceptions import ServiceError
from absence_tracker.db.session import get_db

from .schemas import (
    AbsenceRecordApprove,
    AbsenceRecordCreate,
    AbsenceRecordReject,
    AbsenceRecordResponse,
    AbsenceRecordStats,
    AbsenceRecordUpdate,
)
from . import service

router = APIRouter(prefix="/api/v1/absence-records", tags=["absence-records"])


@router.post(
    "",
    response_model=AbsenceRecordResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(check_permission("absence_records", "create"))],
)
async def create_absence_record(
    payload: AbsenceRecordCreate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> AbsenceRecordResponse:
    """Create an absence record. Overlapping non-rejected/non-cancelled records are refused with 400."""
    try:
        return await service.create_absence_record(db, current_user.tenant_id, payload, created_by=current_user.id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get(
    "",
    response_model=List[AbsenceRecordResponse],
    dependencies=[Depends(check_permission("absence_records", "read"))],
)
async def list_absence_records(
    response: Response,
    employee_id: Optional[UUID] = None,
    absence_type_id: Optional[UUID] = None,
    status_filter: Optional[str] = Query(None, alias="status"),
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> List[AbsenceRecordResponse]:
    """Page of records, newest first. Total count is returned in the X-Total-Count header."""
    rows, total = await service.list_absence_records(
        db,
        current_user.tenant_id,
        employee_id=employee_id,
        absence_type_id=absence_type_id,
        status_filter=status_filter,
        start_date=start_date,
        end_date=end_date,
        page=page,
        limit=limit,
    )
    response.headers["X-Total-Count"] = str(total)
    return [AbsenceRecordResponse.model_validate(r) for r in rows]


@router.get(
    "/stats",
    response_model=AbsenceRecordStats,
    dependencies=[Depends(check_permission("absence_records", "read"))],
)
async def get_absence_record_stats(
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> AbsenceRecordStats:
    return await service.get_absence_record_stats(db, current_user.tenant_id)


@router.get(
    "/upcoming",
    response_model=List[AbsenceRecordResponse],
    dependencies=[Depends(check_permission("absence_records", "read"))],
)
async def list_upcoming_absences(
    limit: int = Query(10, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> List[AbsenceRecordResponse]:
    """Approved absences starting today or later, soonest first."""
    rows = await service.list_upcoming_absences(db, current_user.tenant_id, limit=limit)
    return [AbsenceRecordResponse.model_validate(r) for r in rows]


@router.get(
    "/current",
    response_model=List[AbsenceRecordResponse],
    dependencies=[Depends(check_permission("absence_records", "read"))],
)
async def list_current_absences(
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> List[AbsenceRecordResponse]:
    """Who is out today."""
    rows = await service.list_current_absences(db, current_user.tenant_id)
    return [AbsenceRecordResponse.model_validate(r) for r in rows]


@router.get(
    "/{record_id}",
    response_model=AbsenceRecordResponse,
    dependencies=[Depends(check_permission("absence_records", "read"))],
)
async def get_absence_record(
    record_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> AbsenceRecordResponse:
    record = await service.get_absence_record(db, current_user.tenant_id, record_id)
    if not record:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Absence record not found")
    return AbsenceRecordResponse.model_validate(record)


@router.put(
    "/{record_id}",
    response_model=AbsenceRecordResponse,
    dependencies=[Depends(check_permission("absence_records", "update"))],
)
async def update_absence_record(
    record_id: UUID,
    payload: AbsenceRecordUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> AbsenceRecordResponse:
    try:
        return await service.update_absence_record(
            db, current_user.tenant_id, record_id, payload, updated_by=current_user.id
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post(
    "/{record_id}/approve",
    response_model=AbsenceRecordResponse,
    dependencies=[Depends(check_permission("absence_records", "approve"))],
)
async def approve_absence_record(
    record_id: UUID,
    payload: AbsenceRecordApprove,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> AbsenceRecordResponse:
    try:
        return await service.approve_absence_record(
            db, current_user.tenant_id, record_id, current_user.id, notes=payload.notes
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post(
    "/{record_id}/reject",
    response_model=AbsenceRecordResponse,
    dependencies=[Depends(check_permission("absence_records", "approve"))],
)
async def reject_absence_record(
    record_id: UUID,
    payload: AbsenceRecordReject,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> AbsenceRecordResponse:
    try:
        return await service.reject_absence_record(
            db,
            current_user.tenant_id,
            record_id,
            current_user.id,
            rejection_reason=payload.rejection_reason,
            notes=payload.notes,
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post(
    "/{record_id}/cancel",
    response_model=AbsenceRecordResponse,
    dependencies=[Depends(check_permission("absence_records", "cancel"))],
)
async def cancel_absence_record(
    record_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> AbsenceRecordResponse:
    try:
        return await service.cancel_absence_record(db, current_user.tenant_id, record_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)

from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from absence_tracker.auth.dependencies import get_current_user
from absence_tracker.auth.rbac import check_permission
from absence_tracker.auth.schemas import CurrentUser
from absence_tracker.core.exceptions import ServiceError
from absence_tracker.db.session import get_db

from .schemas import (
    AbsenceTypeCreate,
    AbsenceTypeDeleteResponse,
    AbsenceTypeResponse,
    AbsenceTypeStats,
    AbsenceTypeUpdate,
)
from . import service

router = APIRouter(prefix="/api/v1/absence-types", tags=["absence-types"])


@router.get(
    "",
    response_model=List[AbsenceTypeResponse],
    dependencies=[Depends(check_permission("absence_types", "read"))],
)
async def list_absence_types(
    active_only: bool = True,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> List[AbsenceTypeResponse]:
    rows = await service.list_absence_types(db, current_user.tenant_id, active_only=active_only)
    return [AbsenceTypeResponse.model_validate(r) for r in rows]


@router.post(
    "",
    response_model=AbsenceTypeResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(check_permission("absence_types", "manage"))],
)
async def create_absence_type(
    payload: AbsenceTypeCreate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> AbsenceTypeResponse:
    try:
        return await service.create_absence_type(db, current_user.tenant_id, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post(
    "/default",
    response_model=List[AbsenceTypeResponse],
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(check_permission("absence_types", "manage"))],
)
async def create_default_absence_types(
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> List[AbsenceTypeResponse]:
    """Seed Annual, Sick, Personal, Maternity, Paternity and Emergency leave. Existing codes are kept."""
    return await service.create_default_absence_types(db, current_user.tenant_id)


@router.get(
    "/stats",
    response_model=AbsenceTypeStats,
    dependencies=[Depends(check_permission("absence_types", "read"))],
)
async def get_absence_type_stats(
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> AbsenceTypeStats:
    return await service.get_absence_type_stats(db, current_user.tenant_id)


@router.get(
    "/by-code/{code}",
    response_model=AbsenceTypeResponse,
    dependencies=[Depends(check_permission("absence_types", "read"))],
)
async def get_absence_type_by_code(
    code: str,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> AbsenceTypeResponse:
    at = await service.get_absence_type_by_code(db, current_user.tenant_id, code)
    if not at:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Absence type not found")
    return AbsenceTypeResponse.model_validate(at)


@router.get(
    "/{type_id}",
    response_model=AbsenceTypeResponse,
    dependencies=[Depends(check_permission("absence_types", "read"))],
)
async def get_absence_type(
    type_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> AbsenceTypeResponse:
    at = await service.get_absence_type(db, current_user.tenant_id, type_id)
    if not at:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Absence type not found")
    return AbsenceTypeResponse.model_validate(at)


@router.put(
    "/{type_id}",
    response_model=AbsenceTypeResponse,
    dependencies=[Depends(check_permission("absence_types", "manage"))],
)
async def update_absence_type(
    type_id: UUID,
    payload: AbsenceTypeUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> AbsenceTypeResponse:
    try:
        return await service.update_absence_type(db, current_user.tenant_id, type_id, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.put(
    "/{type_id}/toggle-status",
    response_model=AbsenceTypeResponse,
    dependencies=[Depends(check_permission("absence_types", "manage"))],
)
async def toggle_absence_type_status(
    type_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> AbsenceTypeResponse:
    try:
        return await service.toggle_absence_type_status(db, current_user.tenant_id, type_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.delete(
    "/{type_id}",
    response_model=AbsenceTypeDeleteResponse,
    dependencies=[Depends(check_permission("absence_types", "manage"))],
)
async def delete_absence_type(
    type_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> AbsenceTypeDeleteResponse:
    """Delete the type, or deactivate it when absence records already reference it."""
    try:
        return await service.delete_absence_type(db, current_user.tenant_id, type_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)

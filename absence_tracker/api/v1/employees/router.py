from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from absence_tracker.auth.dependencies import get_current_user
from absence_tracker.auth.rbac import check_permission
from absence_tracker.auth.schemas import CurrentUser
from absence_tracker.core.exceptions import ServiceError
from absence_tracker.db.session import get_db

from .schemas import EmployeeCreate, EmployeeResponse
from . import service

router = APIRouter(prefix="/api/v1/employees", tags=["employees"])


@router.get(
    "",
    response_model=List[EmployeeResponse],
    dependencies=[Depends(check_permission("employees", "read"))],
)
async def list_employees(
    status_filter: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> List[EmployeeResponse]:
    rows = await service.list_employees(db, current_user.tenant_id, status_filter=status_filter)
    return [EmployeeResponse.model_validate(e) for e in rows]


@router.post(
    "",
    response_model=EmployeeResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(check_permission("employees", "create"))],
)
async def create_employee(
    payload: EmployeeCreate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> EmployeeResponse:
    try:
        return await service.create_employee(db, current_user.tenant_id, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get(
    "/{employee_id}",
    response_model=EmployeeResponse,
    dependencies=[Depends(check_permission("employees", "read"))],
)
async def get_employee(
    employee_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> EmployeeResponse:
    emp = await service.get_employee(db, current_user.tenant_id, employee_id)
    if not emp:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Employee not found")
    return EmployeeResponse.model_validate(emp)

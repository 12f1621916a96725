"""Read-mostly employee roster used by absence records and the extraction pipeline."""

from typing import List, Optional
from uuid import UUID

from fastapi import status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from absence_tracker.core.exceptions import ServiceError
from absence_tracker.core.models import Employee

from .schemas import EmployeeCreate, EmployeeResponse


async def list_employees(
    db: AsyncSession,
    tenant_id: UUID,
    status_filter: Optional[str] = None,
) -> List[Employee]:
    q = select(Employee).where(Employee.tenant_id == tenant_id)
    if status_filter:
        q = q.where(Employee.status == status_filter)
    q = q.order_by(Employee.last_name, Employee.first_name)
    result = await db.execute(q)
    return list(result.scalars().all())


async def get_employee(db: AsyncSession, tenant_id: UUID, employee_id: UUID) -> Optional[Employee]:
    emp = await db.get(Employee, employee_id)
    if not emp or emp.tenant_id != tenant_id:
        return None
    return emp


async def create_employee(
    db: AsyncSession,
    tenant_id: UUID,
    payload: EmployeeCreate,
) -> EmployeeResponse:
    code = payload.employee_code.strip() if payload.employee_code else None
    if code:
        existing = (
            await db.execute(
                select(Employee.id).where(
                    Employee.tenant_id == tenant_id,
                    Employee.employee_code == code,
                )
            )
        ).scalar_one_or_none()
        if existing:
            raise ServiceError(
                f"Employee with code '{code}' already exists for this tenant",
                status.HTTP_409_CONFLICT,
            )
    emp = Employee(
        tenant_id=tenant_id,
        first_name=payload.first_name.strip(),
        last_name=payload.last_name.strip(),
        email=payload.email.lower() if payload.email else None,
        employee_code=code,
        department=payload.department.strip() if payload.department else None,
        status=payload.status.value,
    )
    db.add(emp)
    await db.commit()
    await db.refresh(emp)
    return EmployeeResponse.model_validate(emp)

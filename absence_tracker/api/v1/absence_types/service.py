"""Absence type taxonomy per tenant: unique codes, soft deactivation once referenced, default seed."""

import logging
from typing import List, Optional
from uuid import UUID

from fastapi import status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from absence_tracker.core.exceptions import ServiceError
from absence_tracker.core.models import AbsenceRecord, AbsenceType

from .schemas import (
    AbsenceTypeCreate,
    AbsenceTypeDeleteResponse,
    AbsenceTypeResponse,
    AbsenceTypeStats,
    AbsenceTypeUpdate,
    AbsenceTypeUsage,
)

logger = logging.getLogger(__name__)

DEFAULT_ABSENCE_TYPES = [
    dict(name="Annual Leave", code="ANNUAL", description="Paid annual vacation leave", is_paid=True,
         requires_approval=True, max_days_per_year=25, advance_notice_days=7, color="#3b82f6"),
    dict(name="Sick Leave", code="SICK", description="Medical leave for illness", is_paid=True,
         requires_approval=False, max_days_per_year=10, advance_notice_days=0, color="#ef4444"),
    dict(name="Personal Leave", code="PERSONAL", description="Personal time off", is_paid=False,
         requires_approval=True, max_days_per_year=5, advance_notice_days=3, color="#f59e0b"),
    dict(name="Maternity Leave", code="MATERNITY", description="Maternity leave", is_paid=True,
         requires_approval=True, max_days_per_year=90, advance_notice_days=30, color="#ec4899"),
    dict(name="Paternity Leave", code="PATERNITY", description="Paternity leave", is_paid=True,
         requires_approval=True, max_days_per_year=14, advance_notice_days=30, color="#8b5cf6"),
    dict(name="Emergency Leave", code="EMERGENCY", description="Emergency leave", is_paid=False,
         requires_approval=False, max_days_per_year=None, advance_notice_days=0, color="#dc2626"),
]


async def list_absence_types(
    db: AsyncSession,
    tenant_id: UUID,
    active_only: bool = True,
) -> List[AbsenceType]:
    q = select(AbsenceType).where(AbsenceType.tenant_id == tenant_id)
    if active_only:
        q = q.where(AbsenceType.is_active.is_(True))
    q = q.order_by(AbsenceType.name)
    result = await db.execute(q)
    return list(result.scalars().all())


async def get_absence_type(db: AsyncSession, tenant_id: UUID, type_id: UUID) -> Optional[AbsenceType]:
    at = await db.get(AbsenceType, type_id)
    if not at or at.tenant_id != tenant_id:
        return None
    return at


async def get_absence_type_by_code(db: AsyncSession, tenant_id: UUID, code: str) -> Optional[AbsenceType]:
    return (
        await db.execute(
            select(AbsenceType).where(
                AbsenceType.tenant_id == tenant_id,
                AbsenceType.code == code.strip(),
            )
        )
    ).scalar_one_or_none()


async def create_absence_type(
    db: AsyncSession,
    tenant_id: UUID,
    payload: AbsenceTypeCreate,
) -> AbsenceTypeResponse:
    """Create an absence type. Code must be unique per tenant."""
    code = payload.code.strip()
    if await get_absence_type_by_code(db, tenant_id, code):
        raise ServiceError(
            f"Absence type with code '{code}' already exists for this tenant",
            status.HTTP_409_CONFLICT,
        )
    at = AbsenceType(
        tenant_id=tenant_id,
        name=payload.name.strip(),
        code=code,
        description=payload.description,
        is_paid=payload.is_paid,
        requires_approval=payload.requires_approval,
        max_days_per_year=payload.max_days_per_year,
        advance_notice_days=payload.advance_notice_days,
        color=payload.color,
        is_active=payload.is_active,
    )
    db.add(at)
    await db.commit()
    await db.refresh(at)
    return AbsenceTypeResponse.model_validate(at)


async def update_absence_type(
    db: AsyncSession,
    tenant_id: UUID,
    type_id: UUID,
    payload: AbsenceTypeUpdate,
) -> AbsenceTypeResponse:
    at = await get_absence_type(db, tenant_id, type_id)
    if not at:
        raise ServiceError("Absence type not found", status.HTTP_404_NOT_FOUND)
    changes = payload.model_dump(exclude_unset=True)
    new_code = changes.pop("code", None)
    if new_code is not None:
        new_code = new_code.strip()
        if new_code != at.code:
            if await get_absence_type_by_code(db, tenant_id, new_code):
                raise ServiceError(
                    f"Absence type with code '{new_code}' already exists for this tenant",
                    status.HTTP_409_CONFLICT,
                )
            at.code = new_code
    if changes.get("name") is not None:
        changes["name"] = changes["name"].strip()
    for field, value in changes.items():
        setattr(at, field, value)
    await db.commit()
    await db.refresh(at)
    return AbsenceTypeResponse.model_validate(at)


async def toggle_absence_type_status(db: AsyncSession, tenant_id: UUID, type_id: UUID) -> AbsenceTypeResponse:
    at = await get_absence_type(db, tenant_id, type_id)
    if not at:
        raise ServiceError("Absence type not found", status.HTTP_404_NOT_FOUND)
    at.is_active = not at.is_active
    await db.commit()
    await db.refresh(at)
    return AbsenceTypeResponse.model_validate(at)


async def count_references(db: AsyncSession, type_id: UUID) -> int:
    result = await db.execute(
        select(func.count(AbsenceRecord.id)).where(AbsenceRecord.absence_type_id == type_id)
    )
    return int(result.scalar_one())


async def delete_absence_type(db: AsyncSession, tenant_id: UUID, type_id: UUID) -> AbsenceTypeDeleteResponse:
    """Delete an unreferenced type; deactivate a referenced one so record history keeps its id."""
    at = await get_absence_type(db, tenant_id, type_id)
    if not at:
        raise ServiceError("Absence type not found", status.HTTP_404_NOT_FOUND)

    if await count_references(db, type_id) > 0:
        at.is_active = False
        await db.commit()
        logger.info("absence type %s is referenced; deactivated instead of deleted", type_id)
        return AbsenceTypeDeleteResponse(id=type_id, deleted=False, is_active=False)

    await db.delete(at)
    await db.commit()
    return AbsenceTypeDeleteResponse(id=type_id, deleted=True, is_active=False)


async def create_default_absence_types(db: AsyncSession, tenant_id: UUID) -> List[AbsenceTypeResponse]:
    """Seed the standard taxonomy. Codes that already exist are skipped."""
    created: List[AbsenceTypeResponse] = []
    for data in DEFAULT_ABSENCE_TYPES:
        if await get_absence_type_by_code(db, tenant_id, data["code"]):
            logger.info("skipping existing absence type %s for tenant %s", data["code"], tenant_id)
            continue
        created.append(await create_absence_type(db, tenant_id, AbsenceTypeCreate(**data)))
    return created


async def get_absence_type_stats(db: AsyncSession, tenant_id: UUID, top: int = 5) -> AbsenceTypeStats:
    """Type counts plus the most referenced types by number of absence records."""
    counts = (
        await db.execute(
            select(AbsenceType.is_active, func.count(AbsenceType.id))
            .where(AbsenceType.tenant_id == tenant_id)
            .group_by(AbsenceType.is_active)
        )
    ).all()
    by_state = {bool(is_active): int(n) for is_active, n in counts}

    usage = func.count(AbsenceRecord.id).label("usage_count")
    rows = (
        await db.execute(
            select(AbsenceType.id, AbsenceType.name, AbsenceType.color, usage)
            .join(AbsenceRecord, AbsenceRecord.absence_type_id == AbsenceType.id)
            .where(AbsenceType.tenant_id == tenant_id)
            .group_by(AbsenceType.id, AbsenceType.name, AbsenceType.color)
            .order_by(usage.desc(), AbsenceType.name)
            .limit(top)
        )
    ).all()

    return AbsenceTypeStats(
        total_types=sum(by_state.values()),
        active_types=by_state.get(True, 0),
        inactive_types=by_state.get(False, 0),
        top_used_types=[
            AbsenceTypeUsage(id=r.id, name=r.name, color=r.color, usage_count=int(r.usage_count)) for r in rows
        ],
    )

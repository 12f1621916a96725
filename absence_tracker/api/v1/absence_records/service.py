"""Absence record store: creation and updates with overlap protection, approval transitions, listing and stats."""

import asyncio
import logging
import weakref
from contextlib import asynccontextmanager
from datetime import date, datetime
from typing import AsyncIterator, Iterable, List, Optional, Tuple
from uuid import UUID

from fastapi import status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from absence_tracker.core.calendar import InvalidDateRange, overlaps, working_days
from absence_tracker.core.enums import TERMINAL_ABSENCE_STATUSES, AbsenceSource, AbsenceStatus
from absence_tracker.core.exceptions import ServiceError, ValidationRejected
from absence_tracker.core.models import AbsenceRecord, AbsenceType, Employee

from .schemas import AbsenceRecordCreate, AbsenceRecordResponse, AbsenceRecordStats, AbsenceRecordUpdate

logger = logging.getLogger(__name__)

# One lock per employee id, alive only while someone holds or waits on it.
_employee_locks: "weakref.WeakValueDictionary[UUID, asyncio.Lock]" = weakref.WeakValueDictionary()


@asynccontextmanager
async def employee_absence_lock(employee_id: UUID) -> AsyncIterator[None]:
    """Serialize overlap-check-then-insert for one employee within this process."""
    lock = _employee_locks.get(employee_id)
    if lock is None:
        lock = asyncio.Lock()
        _employee_locks[employee_id] = lock
    async with lock:
        yield


async def _lock_employee_row(db: AsyncSession, employee_id: UUID) -> None:
    # Row lock serializes writers across processes on PostgreSQL; a no-op on SQLite.
    await db.execute(select(Employee.id).where(Employee.id == employee_id).with_for_update())


def _status_for(absence_type: AbsenceType) -> str:
    if absence_type.requires_approval:
        return AbsenceStatus.PENDING.value
    return AbsenceStatus.APPROVED.value


async def find_overlapping(
    db: AsyncSession,
    employee_id: UUID,
    start: date,
    end: date,
    exclude_statuses: Iterable[str] = TERMINAL_ABSENCE_STATUSES,
    exclude_record_id: Optional[UUID] = None,
) -> List[AbsenceRecord]:
    """Records of the employee, not in exclude_statuses, whose range intersects [start, end]."""
    q = select(AbsenceRecord).where(
        AbsenceRecord.employee_id == employee_id,
        AbsenceRecord.status.not_in(list(exclude_statuses)),
        AbsenceRecord.start_date <= end,
    )
    if exclude_record_id is not None:
        q = q.where(AbsenceRecord.id != exclude_record_id)
    rows = (await db.execute(q.order_by(AbsenceRecord.start_date))).scalars().all()
    return [r for r in rows if overlaps(r.start_date, r.end_date, start, end)]


def overlap_rejection(conflicts: List[AbsenceRecord]) -> ValidationRejected:
    first = conflicts[0]
    return ValidationRejected(
        f"Employee has overlapping absence records ({first.start_date.isoformat()} to {first.end_date.isoformat()}, {first.status})",
        reason="overlap",
        conflicting_ids=[str(r.id) for r in conflicts],
    )


async def resolve_references(
    db: AsyncSession,
    tenant_id: UUID,
    employee_id: UUID,
    absence_type_id: UUID,
) -> Tuple[Employee, AbsenceType]:
    """Employee and active absence type of this tenant, or ValidationRejected."""
    emp = await db.get(Employee, employee_id)
    if not emp or emp.tenant_id != tenant_id:
        raise ValidationRejected("Employee not found", reason="unknown_employee")
    at = await db.get(AbsenceType, absence_type_id)
    if not at or at.tenant_id != tenant_id:
        raise ValidationRejected("Absence type not found", reason="unknown_absence_type")
    if not at.is_active:
        raise ValidationRejected("Absence type is inactive", reason="inactive_absence_type")
    return emp, at


async def insert_absence_record(
    db: AsyncSession,
    tenant_id: UUID,
    employee_id: UUID,
    absence_type: AbsenceType,
    start_date: date,
    end_date: date,
    *,
    reason: Optional[str] = None,
    notes: Optional[str] = None,
    source: str = AbsenceSource.MANUAL.value,
    source_reference: Optional[str] = None,
    confidence_score: Optional[float] = None,
    created_by: Optional[UUID] = None,
) -> AbsenceRecord:
    """Check overlap and insert in one transaction. Caller must hold employee_absence_lock(employee_id)."""
    try:
        total_days = working_days(start_date, end_date)
    except InvalidDateRange as e:
        raise ValidationRejected(str(e), reason="invalid_date_range")

    await _lock_employee_row(db, employee_id)
    conflicts = await find_overlapping(db, employee_id, start_date, end_date)
    if conflicts:
        raise overlap_rejection(conflicts)

    record = AbsenceRecord(
        tenant_id=tenant_id,
        employee_id=employee_id,
        absence_type_id=absence_type.id,
        start_date=start_date,
        end_date=end_date,
        total_days=total_days,
        reason=reason,
        notes=notes,
        status=_status_for(absence_type),
        source=source,
        source_reference=source_reference,
        confidence_score=confidence_score if source == AbsenceSource.AI_EXTRACTION.value else None,
        created_by=created_by,
    )
    db.add(record)
    await db.commit()
    await db.refresh(record)
    logger.info(
        "absence record %s created employee=%s %s..%s status=%s source=%s",
        record.id, employee_id, start_date, end_date, record.status, source,
    )
    return record


async def create_absence_record(
    db: AsyncSession,
    tenant_id: UUID,
    payload: AbsenceRecordCreate,
    created_by: Optional[UUID] = None,
) -> AbsenceRecordResponse:
    """Create a manual, import or API record; validates references, dates and overlap."""
    if payload.start_date > payload.end_date:
        raise ValidationRejected("start_date must be on or before end_date", reason="invalid_date_range")
    _, absence_type = await resolve_references(db, tenant_id, payload.employee_id, payload.absence_type_id)
    async with employee_absence_lock(payload.employee_id):
        record = await insert_absence_record(
            db,
            tenant_id,
            payload.employee_id,
            absence_type,
            payload.start_date,
            payload.end_date,
            reason=payload.reason,
            notes=payload.notes,
            source=payload.source.value,
            source_reference=payload.source_reference,
            created_by=created_by,
        )
    return AbsenceRecordResponse.model_validate(record)


async def update_absence_record(
    db: AsyncSession,
    tenant_id: UUID,
    record_id: UUID,
    payload: AbsenceRecordUpdate,
    updated_by: Optional[UUID] = None,
) -> AbsenceRecordResponse:
    """
    Change type, dates, reason or notes of a live record.

    Pending records can be edited by anyone allowed to update; approved ones
    only by their creator. New dates are re-counted and checked for overlap
    against every other live record of the employee.
    """
    record = await get_absence_record(db, tenant_id, record_id)
    if not record:
        raise ServiceError("Absence record not found", status.HTTP_404_NOT_FOUND)
    if record.status in TERMINAL_ABSENCE_STATUSES:
        raise ServiceError(f"Absence record is already {record.status}", status.HTTP_400_BAD_REQUEST)
    if record.status != AbsenceStatus.PENDING.value and record.created_by != updated_by:
        raise ServiceError("Cannot update an approved absence record", status.HTTP_403_FORBIDDEN)

    changes = payload.model_dump(exclude_unset=True)
    absence_type_id = changes.get("absence_type_id") or record.absence_type_id
    if absence_type_id != record.absence_type_id:
        await resolve_references(db, tenant_id, record.employee_id, absence_type_id)
    start = changes.get("start_date") or record.start_date
    end = changes.get("end_date") or record.end_date
    if start > end:
        raise ValidationRejected("start_date must be on or before end_date", reason="invalid_date_range")

    async with employee_absence_lock(record.employee_id):
        if (start, end) != (record.start_date, record.end_date):
            await _lock_employee_row(db, record.employee_id)
            conflicts = await find_overlapping(db, record.employee_id, start, end, exclude_record_id=record.id)
            if conflicts:
                raise overlap_rejection(conflicts)
        record.absence_type_id = absence_type_id
        record.start_date = start
        record.end_date = end
        record.total_days = working_days(start, end)
        for name in ("reason", "notes"):
            if name in changes:
                setattr(record, name, changes[name])
        await db.commit()
        await db.refresh(record)
    logger.info("absence record %s updated %s..%s", record.id, start, end)
    return AbsenceRecordResponse.model_validate(record)


async def get_absence_record(db: AsyncSession, tenant_id: UUID, record_id: UUID) -> Optional[AbsenceRecord]:
    return (
        await db.execute(
            select(AbsenceRecord).where(
                AbsenceRecord.id == record_id,
                AbsenceRecord.tenant_id == tenant_id,
            )
        )
    ).scalar_one_or_none()


async def list_absence_records(
    db: AsyncSession,
    tenant_id: UUID,
    employee_id: Optional[UUID] = None,
    absence_type_id: Optional[UUID] = None,
    status_filter: Optional[str] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    page: int = 1,
    limit: int = 10,
) -> Tuple[List[AbsenceRecord], int]:
    """Filtered page of records, newest first, plus the unpaged total."""
    conditions = [AbsenceRecord.tenant_id == tenant_id]
    if employee_id:
        conditions.append(AbsenceRecord.employee_id == employee_id)
    if absence_type_id:
        conditions.append(AbsenceRecord.absence_type_id == absence_type_id)
    if status_filter:
        conditions.append(AbsenceRecord.status == status_filter)
    if start_date:
        conditions.append(AbsenceRecord.start_date >= start_date)
    if end_date:
        conditions.append(AbsenceRecord.start_date <= end_date)

    total = (await db.execute(select(func.count(AbsenceRecord.id)).where(*conditions))).scalar_one()
    result = await db.execute(
        select(AbsenceRecord)
        .where(*conditions)
        .order_by(AbsenceRecord.created_at.desc())
        .offset((max(page, 1) - 1) * limit)
        .limit(limit)
    )
    return list(result.scalars().all()), int(total)


async def list_upcoming_absences(
    db: AsyncSession,
    tenant_id: UUID,
    today: Optional[date] = None,
    limit: int = 10,
) -> List[AbsenceRecord]:
    """Approved absences starting today or later, soonest first."""
    today = today or date.today()
    result = await db.execute(
        select(AbsenceRecord)
        .where(
            AbsenceRecord.tenant_id == tenant_id,
            AbsenceRecord.status == AbsenceStatus.APPROVED.value,
            AbsenceRecord.start_date >= today,
        )
        .order_by(AbsenceRecord.start_date)
        .limit(limit)
    )
    return list(result.scalars().all())


async def list_current_absences(
    db: AsyncSession,
    tenant_id: UUID,
    today: Optional[date] = None,
) -> List[AbsenceRecord]:
    """Approved absences whose range contains today."""
    today = today or date.today()
    result = await db.execute(
        select(AbsenceRecord)
        .where(
            AbsenceRecord.tenant_id == tenant_id,
            AbsenceRecord.status == AbsenceStatus.APPROVED.value,
            AbsenceRecord.start_date <= today,
            AbsenceRecord.end_date >= today,
        )
        .order_by(AbsenceRecord.start_date)
    )
    return list(result.scalars().all())


async def _get_pending(db: AsyncSession, tenant_id: UUID, record_id: UUID, verb: str) -> AbsenceRecord:
    record = await get_absence_record(db, tenant_id, record_id)
    if not record:
        raise ServiceError("Absence record not found", status.HTTP_404_NOT_FOUND)
    if record.status != AbsenceStatus.PENDING.value:
        raise ServiceError(f"Only pending absence records can be {verb}", status.HTTP_400_BAD_REQUEST)
    return record


async def approve_absence_record(
    db: AsyncSession,
    tenant_id: UUID,
    record_id: UUID,
    approved_by: UUID,
    notes: Optional[str] = None,
) -> AbsenceRecordResponse:
    record = await _get_pending(db, tenant_id, record_id, "approved")
    record.status = AbsenceStatus.APPROVED.value
    record.approved_by = approved_by
    record.approved_at = datetime.utcnow()
    if notes:
        record.notes = notes
    await db.commit()
    await db.refresh(record)
    return AbsenceRecordResponse.model_validate(record)


async def reject_absence_record(
    db: AsyncSession,
    tenant_id: UUID,
    record_id: UUID,
    rejected_by: UUID,
    rejection_reason: Optional[str] = None,
    notes: Optional[str] = None,
) -> AbsenceRecordResponse:
    record = await _get_pending(db, tenant_id, record_id, "rejected")
    record.status = AbsenceStatus.REJECTED.value
    record.approved_by = rejected_by
    record.approved_at = datetime.utcnow()
    record.rejection_reason = rejection_reason
    if notes:
        record.notes = notes
    await db.commit()
    await db.refresh(record)
    return AbsenceRecordResponse.model_validate(record)


async def cancel_absence_record(db: AsyncSession, tenant_id: UUID, record_id: UUID) -> AbsenceRecordResponse:
    """Withdraw a pending or approved absence; its date range becomes free again."""
    record = await get_absence_record(db, tenant_id, record_id)
    if not record:
        raise ServiceError("Absence record not found", status.HTTP_404_NOT_FOUND)
    if record.status in TERMINAL_ABSENCE_STATUSES:
        raise ServiceError(f"Absence record is already {record.status}", status.HTTP_400_BAD_REQUEST)
    record.status = AbsenceStatus.CANCELLED.value
    await db.commit()
    await db.refresh(record)
    return AbsenceRecordResponse.model_validate(record)


async def get_absence_record_stats(
    db: AsyncSession,
    tenant_id: UUID,
    today: Optional[date] = None,
) -> AbsenceRecordStats:
    today = today or date.today()
    start_of_year = date(today.year, 1, 1)
    start_of_month = date(today.year, today.month, 1)

    async def _count(*conditions) -> int:
        result = await db.execute(
            select(func.count(AbsenceRecord.id)).where(AbsenceRecord.tenant_id == tenant_id, *conditions)
        )
        return int(result.scalar_one())

    avg_days = (
        await db.execute(select(func.avg(AbsenceRecord.total_days)).where(AbsenceRecord.tenant_id == tenant_id))
    ).scalar_one()

    return AbsenceRecordStats(
        total_records=await _count(),
        pending_records=await _count(AbsenceRecord.status == AbsenceStatus.PENDING.value),
        approved_records=await _count(AbsenceRecord.status == AbsenceStatus.APPROVED.value),
        rejected_records=await _count(AbsenceRecord.status == AbsenceStatus.REJECTED.value),
        cancelled_records=await _count(AbsenceRecord.status == AbsenceStatus.CANCELLED.value),
        year_to_date_records=await _count(AbsenceRecord.start_date >= start_of_year),
        month_to_date_records=await _count(AbsenceRecord.start_date >= start_of_month),
        avg_days_per_record=float(avg_days or 0),
    )

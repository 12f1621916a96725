import uuid
from datetime import date

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from absence_tracker.api.v1.absence_records import service as records_service
from absence_tracker.api.v1.absence_records.schemas import AbsenceRecordCreate
from absence_tracker.api.v1.absence_types import service
from absence_tracker.api.v1.absence_types.schemas import AbsenceTypeCreate, AbsenceTypeUpdate
from absence_tracker.core.exceptions import ServiceError

from conftest import Seed


@pytest.mark.asyncio
async def test_code_is_unique_per_tenant(db_session: AsyncSession, seed: Seed) -> None:
    with pytest.raises(ServiceError) as exc_info:
        await service.create_absence_type(db_session, seed.tenant.id, AbsenceTypeCreate(name="Vacation", code="ANNUAL"))
    assert exc_info.value.status_code == 409

    other = await service.create_absence_type(
        db_session, seed.other_tenant.id, AbsenceTypeCreate(name="Annual Leave", code="ANNUAL")
    )
    assert other.tenant_id == seed.other_tenant.id


@pytest.mark.asyncio
async def test_update_changes_only_given_fields(db_session: AsyncSession, seed: Seed) -> None:
    updated = await service.update_absence_type(
        db_session, seed.tenant.id, seed.annual.id, AbsenceTypeUpdate(max_days_per_year=30)
    )

    assert updated.max_days_per_year == 30
    assert updated.code == "ANNUAL"
    assert updated.requires_approval is True

    with pytest.raises(ServiceError) as exc_info:
        await service.update_absence_type(db_session, seed.tenant.id, seed.annual.id, AbsenceTypeUpdate(code="SICK"))
    assert exc_info.value.status_code == 409


@pytest.mark.asyncio
async def test_toggle_and_active_listing(db_session: AsyncSession, seed: Seed) -> None:
    toggled = await service.toggle_absence_type_status(db_session, seed.tenant.id, seed.sick.id)
    assert toggled.is_active is False

    active = await service.list_absence_types(db_session, seed.tenant.id)
    everything = await service.list_absence_types(db_session, seed.tenant.id, active_only=False)
    assert [t.code for t in active] == ["ANNUAL"]
    assert {t.code for t in everything} == {"ANNUAL", "SICK"}


@pytest.mark.asyncio
async def test_lookup_by_code_is_tenant_scoped(db_session: AsyncSession, seed: Seed) -> None:
    assert (await service.get_absence_type_by_code(db_session, seed.tenant.id, "SICK")).id == seed.sick.id
    assert await service.get_absence_type_by_code(db_session, seed.other_tenant.id, "SICK") is None
    assert await service.get_absence_type(db_session, seed.other_tenant.id, seed.sick.id) is None


@pytest.mark.asyncio
async def test_unreferenced_type_is_deleted(db_session: AsyncSession, seed: Seed) -> None:
    result = await service.delete_absence_type(db_session, seed.tenant.id, seed.sick.id)

    assert result.deleted is True
    assert await service.get_absence_type(db_session, seed.tenant.id, seed.sick.id) is None


@pytest.mark.asyncio
async def test_referenced_type_is_deactivated_instead(db_session: AsyncSession, seed: Seed) -> None:
    await records_service.create_absence_record(
        db_session,
        seed.tenant.id,
        AbsenceRecordCreate(
            employee_id=seed.alice.id,
            absence_type_id=seed.annual.id,
            start_date=date(2024, 3, 4),
            end_date=date(2024, 3, 4),
        ),
    )

    result = await service.delete_absence_type(db_session, seed.tenant.id, seed.annual.id)

    assert result.deleted is False
    assert result.is_active is False
    at = await service.get_absence_type(db_session, seed.tenant.id, seed.annual.id)
    assert at is not None and at.is_active is False


@pytest.mark.asyncio
async def test_delete_unknown_type_is_not_found(db_session: AsyncSession, seed: Seed) -> None:
    with pytest.raises(ServiceError) as exc_info:
        await service.delete_absence_type(db_session, seed.tenant.id, uuid.uuid4())
    assert exc_info.value.status_code == 404


@pytest.mark.asyncio
async def test_default_types_skip_existing_codes(db_session: AsyncSession, seed: Seed) -> None:
    created = await service.create_default_absence_types(db_session, seed.tenant.id)

    assert [t.code for t in created] == ["PERSONAL", "MATERNITY", "PATERNITY", "EMERGENCY"]
    assert await service.create_default_absence_types(db_session, seed.tenant.id) == []

    fresh = await service.create_default_absence_types(db_session, seed.other_tenant.id)
    assert len(fresh) == 6
    by_code = {t.code: t for t in fresh}
    assert by_code["SICK"].requires_approval is False
    assert by_code["EMERGENCY"].max_days_per_year is None


@pytest.mark.asyncio
async def test_type_stats_count_states_and_rank_usage(db_session: AsyncSession, seed: Seed) -> None:
    for employee, start in ((seed.alice, date(2024, 3, 4)), (seed.bob, date(2024, 3, 4)), (seed.alice, date(2024, 4, 1))):
        await records_service.create_absence_record(
            db_session,
            seed.tenant.id,
            AbsenceRecordCreate(employee_id=employee.id, absence_type_id=seed.sick.id, start_date=start, end_date=start),
        )
    await records_service.create_absence_record(
        db_session,
        seed.tenant.id,
        AbsenceRecordCreate(
            employee_id=seed.bob.id, absence_type_id=seed.annual.id, start_date=date(2024, 5, 6), end_date=date(2024, 5, 6)
        ),
    )
    await service.create_absence_type(db_session, seed.tenant.id, AbsenceTypeCreate(name="Training", code="TRAIN", is_active=False))

    stats = await service.get_absence_type_stats(db_session, seed.tenant.id)

    assert (stats.total_types, stats.active_types, stats.inactive_types) == (3, 2, 1)
    assert [(t.name, t.usage_count) for t in stats.top_used_types] == [("Sick Leave", 3), ("Annual Leave", 1)]

    other = await service.get_absence_type_stats(db_session, seed.other_tenant.id)
    assert (other.total_types, other.top_used_types) == (0, [])

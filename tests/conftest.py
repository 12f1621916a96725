import asyncio
import json
import os
import uuid
from dataclasses import dataclass, field
from datetime import date
from typing import Any, AsyncGenerator, Callable, Dict, List, Optional, Union

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./absence_tracker_test.db")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret")

import pytest
from httpx import ASGITransport, AsyncClient
from jose import jwt
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from absence_tracker.api.v1.ai_processing.dependencies import get_decision_gate, get_orchestrator
from absence_tracker.api.v1.ai_processing.gate import DecisionGate
from absence_tracker.api.v1.ai_processing.orchestrator import ExtractionOrchestrator
from absence_tracker.api.v1.ai_processing.providers import (
    ExtractionPrompt,
    ExtractionProvider,
    ProviderError,
    ProviderResponse,
)
from absence_tracker.core.config import ExtractionConfig, settings
from absence_tracker.core.models import AbsenceType, Employee, Tenant
from absence_tracker.db.session import Base, get_db
from absence_tracker.main import app


@pytest.fixture()
async def engine(tmp_path):
    """File-backed SQLite so concurrent sessions share one database."""
    test_engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", future=True)
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture()
def session_factory(engine) -> async_sessionmaker:
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture()
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@dataclass
class Seed:
    tenant: Tenant
    alice: Employee
    bob: Employee
    annual: AbsenceType
    sick: AbsenceType
    other_tenant: Tenant
    outsider: Employee


@pytest.fixture()
async def seed(db_session: AsyncSession) -> Seed:
    """One tenant with two employees, an approval-gated type and a self-approving type."""
    tenant = Tenant(organization_name="Acme Corp")
    other = Tenant(organization_name="Globex")
    db_session.add_all([tenant, other])
    await db_session.flush()

    alice = Employee(
        tenant_id=tenant.id,
        first_name="Alice",
        last_name="Smith",
        email="alice@acme.test",
        employee_code="E001",
        department="Engineering",
    )
    bob = Employee(tenant_id=tenant.id, first_name="Bob", last_name="Jones", email="bob@acme.test", employee_code="E002")
    outsider = Employee(tenant_id=other.id, first_name="Olga", last_name="Outside", email="olga@globex.test")
    annual = AbsenceType(tenant_id=tenant.id, name="Annual Leave", code="ANNUAL", requires_approval=True)
    sick = AbsenceType(tenant_id=tenant.id, name="Sick Leave", code="SICK", requires_approval=False)
    db_session.add_all([alice, bob, outsider, annual, sick])
    await db_session.commit()
    return Seed(tenant=tenant, alice=alice, bob=bob, annual=annual, sick=sick, other_tenant=other, outsider=outsider)


# ----- Extraction fakes -----
Reply = Union[str, Exception, Callable[[], Any]]


@dataclass
class FakeProvider(ExtractionProvider):
    """Scripted provider. A reply is text, an exception to raise, or a coroutine factory."""

    name: str = "fake"
    model: str = "fake-model"
    replies: List[Reply] = field(default_factory=list)
    tokens_used: int = 100
    cost_usd: float = 0.001
    prompts: List[ExtractionPrompt] = field(default_factory=list)

    async def extract(self, prompt: ExtractionPrompt, timeout: float) -> ProviderResponse:
        self.prompts.append(prompt)
        reply = self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]
        if isinstance(reply, Exception):
            raise reply
        if callable(reply):
            reply = await reply()
        return ProviderResponse(text=reply, tokens_used=self.tokens_used, cost_usd=self.cost_usd, latency_ms=5)


def failing_provider(name: str, message: str = "HTTP 500 Internal Server Error") -> FakeProvider:
    return FakeProvider(name=name, replies=[ProviderError(name, message)])


def hanging_provider(name: str, seconds: float = 5.0) -> FakeProvider:
    async def _sleep() -> str:
        await asyncio.sleep(seconds)
        return "{}"

    return FakeProvider(name=name, replies=[_sleep])


def extraction_config(**overrides: Any) -> ExtractionConfig:
    values: Dict[str, Any] = dict(provider_timeout_seconds=1.0, pipeline_timeout_seconds=3.0, confidence_threshold=0.8)
    values.update(overrides)
    return ExtractionConfig(**values)


def make_orchestrator(*providers: ExtractionProvider, **overrides: Any) -> ExtractionOrchestrator:
    return ExtractionOrchestrator(list(providers), extraction_config(**overrides))


def absence_json(
    seed: Seed,
    *,
    employee: Optional[Employee] = None,
    absence_type: Optional[AbsenceType] = None,
    start: date = date(2024, 3, 4),
    end: date = date(2024, 3, 8),
    confidence: float = 0.95,
    is_request: bool = True,
    **extra: Any,
) -> str:
    """Provider answer in the camelCase shape the prompt asks for."""
    employee = employee or seed.alice
    absence_type = absence_type or seed.annual
    payload: Dict[str, Any] = {
        "isAbsenceRequest": is_request,
        "confidenceScore": confidence,
        "employee": {"id": str(employee.id), "name": employee.display_name, "matchingMethod": "email"},
        "absenceType": {"id": str(absence_type.id), "name": absence_type.name, "matchingKeywords": ["vacation"]},
        "startDate": start.isoformat(),
        "endDate": end.isoformat(),
        "reason": "Family vacation",
        "duration": "one week",
        "requiresApproval": True,
        "extractedData": {"originalText": "I'd like to take next week off"},
    }
    payload.update(extra)
    return json.dumps(payload)


# ----- HTTP -----
def make_token(tenant_id: uuid.UUID, role: str = "ADMIN", permissions: Optional[Dict[str, Dict[str, bool]]] = None) -> str:
    claims = {
        "user_id": str(uuid.uuid4()),
        "tenant_id": str(tenant_id),
        "role": role,
        "permissions": permissions or {},
    }
    return jwt.encode(claims, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


@pytest.fixture()
def fake_provider() -> FakeProvider:
    return FakeProvider(name="grok", replies=["{}"])


@pytest.fixture()
async def client(session_factory, seed: Seed, fake_provider: FakeProvider) -> AsyncGenerator[AsyncClient, None]:
    """Admin client for the seeded tenant. Each request gets its own session, extraction goes to fake_provider."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_orchestrator] = lambda: make_orchestrator(fake_provider)
    app.dependency_overrides[get_decision_gate] = lambda: DecisionGate(confidence_threshold=0.8)

    headers = {"Authorization": f"Bearer {make_token(seed.tenant.id)}"}
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test", headers=headers) as ac:
        yield ac
    app.dependency_overrides.clear()

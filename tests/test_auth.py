import uuid
from datetime import datetime, timedelta

import pytest
from fastapi import HTTPException
from jose import jwt

from absence_tracker.auth.dependencies import get_current_user
from absence_tracker.auth.rbac import has_permission
from absence_tracker.auth.schemas import CurrentUser
from absence_tracker.core.config import settings


def user(role: str = "STAFF", permissions=None) -> CurrentUser:
    return CurrentUser(id=uuid.uuid4(), tenant_id=uuid.uuid4(), role=role, permissions=permissions or {})


def test_admin_roles_bypass_module_permissions() -> None:
    assert has_permission(user("ADMIN"), "absence_records", "approve")
    assert has_permission(user("SUPER_ADMIN"), "ai_processing", "create")


def test_permissions_are_module_and_action_specific() -> None:
    manager = user(permissions={"absence_records": {"read": True, "approve": True}, "ai_processing": {"read": False}})

    assert has_permission(manager, "absence_records", "approve")
    assert not has_permission(manager, "absence_records", "cancel")
    assert not has_permission(manager, "ai_processing", "read")
    assert not has_permission(manager, "employees", "read")


@pytest.mark.asyncio
async def test_token_claims_become_current_user() -> None:
    user_id, tenant_id = uuid.uuid4(), uuid.uuid4()
    token = jwt.encode(
        {
            "sub": str(user_id),
            "tenant_id": str(tenant_id),
            "role": "MANAGER",
            "permissions": {"absence_records": {"approve": True}},
            "exp": datetime.utcnow() + timedelta(minutes=5),
        },
        settings.jwt_secret_key,
        algorithm=settings.jwt_algorithm,
    )

    current = await get_current_user(token)

    assert current.id == user_id
    assert current.tenant_id == tenant_id
    assert current.role == "MANAGER"
    assert current.permissions == {"absence_records": {"approve": True}}


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "claims, secret",
    [
        ({"user_id": str(uuid.uuid4()), "tenant_id": str(uuid.uuid4()), "role": "ADMIN"}, "wrong-secret"),
        ({"user_id": str(uuid.uuid4()), "role": "ADMIN"}, None),
        ({"user_id": "not-a-uuid", "tenant_id": str(uuid.uuid4()), "role": "ADMIN"}, None),
        (
            {
                "user_id": str(uuid.uuid4()),
                "tenant_id": str(uuid.uuid4()),
                "role": "ADMIN",
                "exp": datetime.utcnow() - timedelta(minutes=1),
            },
            None,
        ),
    ],
    ids=["bad-signature", "missing-tenant", "malformed-id", "expired"],
)
async def test_invalid_tokens_are_rejected(claims, secret) -> None:
    token = jwt.encode(claims, secret or settings.jwt_secret_key, algorithm=settings.jwt_algorithm)

    with pytest.raises(HTTPException) as exc_info:
        await get_current_user(token)
    assert exc_info.value.status_code == 401

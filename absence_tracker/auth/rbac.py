from fastapi import Depends, HTTPException, status

from absence_tracker.auth.dependencies import get_current_user
from absence_tracker.auth.schemas import CurrentUser

# Tenant administrators; every module and action is allowed
ADMIN_ROLES = ("ADMIN", "SUPER_ADMIN")


def has_permission(user: CurrentUser, module: str, action: str) -> bool:
    """Token permissions look like {"absence_records": {"read": true, "approve": false}}."""
    if user.role in ADMIN_ROLES:
        return True
    return bool((user.permissions or {}).get(module, {}).get(action, False))


def check_permission(module: str, action: str):
    """
    Dependency factory for route-level checks.

    Example:
        @router.post("/{record_id}/approve", dependencies=[Depends(check_permission("absence_records", "approve"))])
    """

    async def _checker(current_user: CurrentUser = Depends(get_current_user)) -> None:
        if not has_permission(current_user, module, action):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Missing permission {module}:{action}",
            )

    return _checker

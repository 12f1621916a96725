from typing import Dict
from uuid import UUID

from pydantic import BaseModel


class CurrentUser(BaseModel):
    """Caller identity decoded from the access token issued by the auth service.
    permissions: {"module": {"action": true}}; ADMIN bypasses checks.
    """

    id: UUID
    tenant_id: UUID
    role: str
    permissions: Dict[str, Dict[str, bool]] = {}

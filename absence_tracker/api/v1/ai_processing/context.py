"""Closed set of employees and absence types an extraction may reference for one tenant."""

from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, List, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from absence_tracker.api.v1.absence_types.service import list_absence_types
from absence_tracker.api.v1.employees.service import list_employees

# Synonyms added when the key occurs in an absence type name
KEYWORD_SYNONYMS: Dict[str, List[str]] = {
    "annual": ["vacation", "holiday", "leave", "pto", "time off"],
    "sick": ["illness", "medical", "doctor", "unwell", "health"],
    "personal": ["family", "emergency", "appointment"],
    "maternity": ["pregnancy", "baby", "birth"],
    "paternity": ["father", "dad", "newborn"],
}


def generate_keywords(name: str, code: str) -> List[str]:
    lowered = name.lower()
    keywords = [lowered, code.lower()]
    for key, synonyms in KEYWORD_SYNONYMS.items():
        if key in lowered:
            keywords.extend(synonyms)
    return list(dict.fromkeys(keywords))


@dataclass(frozen=True)
class RequestContext:
    employees: List[Dict[str, Any]] = field(default_factory=list)
    absence_types: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def employee_ids(self) -> FrozenSet[str]:
        return frozenset(e["id"] for e in self.employees)

    @property
    def absence_type_ids(self) -> FrozenSet[str]:
        return frozenset(t["id"] for t in self.absence_types)

    def find_employee(self, employee_id: str) -> Optional[Dict[str, Any]]:
        return next((e for e in self.employees if e["id"] == employee_id), None)

    def find_absence_type(self, type_id: str) -> Optional[Dict[str, Any]]:
        return next((t for t in self.absence_types if t["id"] == type_id), None)

    def to_prompt_dict(self) -> Dict[str, Any]:
        return {"employees": self.employees, "absenceTypes": self.absence_types}


async def build_request_context(db: AsyncSession, tenant_id: UUID) -> RequestContext:
    employees = await list_employees(db, tenant_id)
    absence_types = await list_absence_types(db, tenant_id, active_only=True)
    return RequestContext(
        employees=[
            {
                "id": str(emp.id),
                "displayName": emp.display_name,
                "email": emp.email,
                "employeeId": emp.employee_code,
                "department": emp.department,
            }
            for emp in employees
        ],
        absence_types=[
            {
                "id": str(at.id),
                "name": at.name,
                "code": at.code,
                "keywords": generate_keywords(at.name, at.code),
            }
            for at in absence_types
        ],
    )

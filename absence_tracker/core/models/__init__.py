from absence_tracker.core.models.tenant import Tenant
from absence_tracker.core.models.employee import Employee
from absence_tracker.core.models.absence_type import AbsenceType
from absence_tracker.core.models.absence_record import AbsenceRecord
from absence_tracker.core.models.processing_log import ProcessingLog

__all__ = [
    "AbsenceRecord",
    "AbsenceType",
    "Employee",
    "ProcessingLog",
    "Tenant",
]

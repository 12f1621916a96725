from enum import Enum


class EmployeeStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    TERMINATED = "terminated"
    ON_LEAVE = "on_leave"


class AbsenceStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


# Records in these states no longer hold their date range
TERMINAL_ABSENCE_STATUSES = (AbsenceStatus.REJECTED.value, AbsenceStatus.CANCELLED.value)


class AbsenceSource(str, Enum):
    MANUAL = "manual"
    AI_EXTRACTION = "ai-extraction"
    IMPORT = "import"
    API = "api"


class ProcessingType(str, Enum):
    EMAIL_PARSING = "email_parsing"


class ProcessingStatus(str, Enum):
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class GateOutcome(str, Enum):
    NO_ACTION = "no_action"
    VALIDATION_REJECTED = "validation_rejected"
    BELOW_THRESHOLD = "below_threshold"
    NOT_REQUESTED = "not_requested"
    AUTO_CREATE = "auto_create"


class MatchingMethod(str, Enum):
    EMAIL = "email"
    NAME = "name"
    EMPLOYEE_ID = "employeeId"

from typing import Any, Dict, List, Optional

from fastapi import status


class ServiceError(Exception):
    """Base exception for service layer errors."""

    kind = "ServiceError"

    def __init__(self, message: str, status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind, "message": self.message}


class ProviderUnavailable(ServiceError):
    """Every configured extraction provider failed or timed out for this run."""

    kind = "ProviderUnavailable"

    def __init__(self, message: str, attempts: Optional[List[Dict[str, Any]]] = None) -> None:
        super().__init__(message, status.HTTP_503_SERVICE_UNAVAILABLE)
        self.attempts = attempts or []

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["attempts"] = self.attempts
        return data


class MalformedExtraction(ServiceError):
    """Provider answered, but the content is not a JSON object. Never leaves the orchestrator."""

    kind = "MalformedExtraction"

    def __init__(self, message: str, raw_response: str = "") -> None:
        super().__init__(message, status.HTTP_422_UNPROCESSABLE_ENTITY)
        self.raw_response = raw_response


class ValidationRejected(ServiceError):
    """Business rule rejection: bad dates, unknown references, overlapping absence."""

    kind = "ValidationRejected"

    def __init__(self, message: str, reason: str = "invalid", conflicting_ids: Optional[List[str]] = None) -> None:
        super().__init__(message, status.HTTP_400_BAD_REQUEST)
        self.reason = reason
        self.conflicting_ids = conflicting_ids or []

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["reason"] = self.reason
        if self.conflicting_ids:
            data["conflicting_ids"] = self.conflicting_ids
        return data


class ConfigurationError(ServiceError):
    """No usable extraction provider credentials are configured."""

    kind = "ConfigurationError"

    def __init__(self, message: str) -> None:
        super().__init__(message, status.HTTP_500_INTERNAL_SERVER_ERROR)

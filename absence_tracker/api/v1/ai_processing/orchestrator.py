"""
Extraction orchestrator.

Builds the prompt, calls providers strictly in priority order with a per-attempt
deadline, then normalizes whatever text came back into a ParsedAbsenceRequest.

    Idle -> Calling(provider) -> Success | ProviderFailed
    ProviderFailed -> Calling(next) | Exhausted (ProviderUnavailable)
    Success -> Normalizing -> Validated | Rejected-malformed

A provider that cannot be reached fails the run. A provider that answers with
garbage yields a valid zero-confidence negative result.
"""

import asyncio
import json
import logging
import math
import time
from datetime import date
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple
from uuid import UUID

from absence_tracker.core.config import ExtractionConfig
from absence_tracker.core.enums import MatchingMethod
from absence_tracker.core.exceptions import ConfigurationError, MalformedExtraction, ProviderUnavailable

from .context import RequestContext
from .providers import ExtractionPrompt, ExtractionProvider, ProviderError, ProviderResponse
from .schemas import AbsenceTypeMatch, EmailInput, EmployeeMatch, ExtractionMetadata, ParsedAbsenceRequest

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are an expert assistant that parses emails to extract absence/leave requests. "
    "Always respond with a single valid JSON object."
)

RESPONSE_SCHEMA = """{
  "isAbsenceRequest": boolean,
  "confidenceScore": number (0-1),
  "employee": {"id": "employee id from the list or null", "name": "employee name", "matchingMethod": "email|name|employeeId"},
  "absenceType": {"id": "absence type id from the list or null", "name": "absence type name", "matchingKeywords": ["keyword"]},
  "startDate": "YYYY-MM-DD",
  "endDate": "YYYY-MM-DD",
  "reason": "extracted reason",
  "duration": "extracted duration description",
  "requiresApproval": boolean,
  "extractedData": {"originalText": "relevant email excerpt"}
}"""

RULES = """Rules:
1. Only return isAbsenceRequest=true if this is actually a leave/absence request
2. Match employees by exact email, similar name, or employee ID, using only ids from Available Employees
3. Match absence types by keywords, using only ids from Available Absence Types
4. Resolve relative dates ("next Monday", "tomorrow") against the email timestamp
5. Set confidenceScore to how certain you are about the whole extraction
6. If there is no clear match, set the field to null and explain in extractedData"""


def build_prompt(email: EmailInput, context: RequestContext) -> ExtractionPrompt:
    timestamp = email.timestamp.isoformat() if email.timestamp else "unknown"
    user = (
        "Parse this email to extract an absence/leave request.\n\n"
        "Email Details:\n"
        f"Subject: {email.subject}\n"
        f"From: {email.sender}\n"
        f"Timestamp: {timestamp}\n"
        f"Body:\n{email.body}\n\n"
        f"Available Employees:\n{json.dumps(context.employees, indent=2)}\n\n"
        f"Available Absence Types:\n{json.dumps(context.absence_types, indent=2)}\n\n"
        f"Respond with JSON in exactly this shape:\n{RESPONSE_SCHEMA}\n\n"
        f"{RULES}\n"
    )
    return ExtractionPrompt(system=SYSTEM_PROMPT, user=user)


def extract_json_object(text: str) -> Dict[str, Any]:
    """Decode the first top-level JSON object embedded in free text."""
    start = text.find("{")
    if start < 0:
        raise MalformedExtraction("No JSON object found in provider response", raw_response=text)
    try:
        value, _ = json.JSONDecoder().raw_decode(text, start)
    except json.JSONDecodeError as e:
        raise MalformedExtraction(f"Invalid JSON in provider response: {e.msg}", raw_response=text)
    if not isinstance(value, dict):
        raise MalformedExtraction("Provider response JSON is not an object", raw_response=text)
    return value


def clamp_confidence(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0.0
    try:
        score = float(value)
    except OverflowError:
        # Integers beyond float range
        return 1.0 if value > 0 else 0.0
    if math.isnan(score):
        return 0.0
    return min(1.0, max(0.0, score))


def parse_iso_date(value: Any) -> Optional[date]:
    if not isinstance(value, str) or len(value) < 10:
        return None
    try:
        return date.fromisoformat(value[:10])
    except ValueError:
        return None


def _canonical_id(value: Any) -> Optional[str]:
    if value is None:
        return None
    try:
        return str(UUID(str(value)))
    except ValueError:
        return None


def _optional_str(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


class ExtractionOrchestrator:
    def __init__(
        self,
        providers: Sequence[ExtractionProvider],
        config: ExtractionConfig,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if not providers:
            raise ConfigurationError("Extraction orchestrator needs at least one provider")
        self._providers = list(providers)
        self._config = config
        self._clock = clock

    @property
    def provider_names(self) -> List[str]:
        return [p.name for p in self._providers]

    async def extract(self, email: EmailInput, context: RequestContext) -> ParsedAbsenceRequest:
        """Run the provider chain and normalize the answer. Raises ProviderUnavailable when exhausted."""
        prompt = build_prompt(email, context)
        provider, response, attempts = await self._call_providers(prompt)
        metadata = ExtractionMetadata(
            provider=provider.name,
            model=provider.model,
            tokens_used=response.tokens_used,
            cost_usd=response.cost_usd,
            latency_ms=response.latency_ms,
            attempts=attempts,
        )
        return self.normalize(response.text, context, metadata)

    async def _call_providers(
        self, prompt: ExtractionPrompt
    ) -> Tuple[ExtractionProvider, ProviderResponse, List[Dict[str, Any]]]:
        deadline = self._clock() + self._config.pipeline_timeout_seconds
        attempts: List[Dict[str, Any]] = []
        for provider in self._providers:
            remaining = deadline - self._clock()
            if remaining <= 0:
                attempts.append({"provider": provider.name, "error": "pipeline deadline exceeded before call"})
                continue
            timeout = min(self._config.provider_timeout_seconds, remaining)
            started = self._clock()
            try:
                response = await asyncio.wait_for(provider.extract(prompt, timeout), timeout=timeout)
            except asyncio.TimeoutError:
                error = f"{provider.name}: deadline of {timeout:.1f}s exceeded"
            except ProviderError as e:
                error = str(e)
            else:
                if attempts:
                    logger.info("extraction served by fallback provider %s after %d failure(s)", provider.name, len(attempts))
                return provider, response, attempts
            elapsed_ms = int((self._clock() - started) * 1000)
            logger.warning("extraction provider failed: %s (%d ms)", error, elapsed_ms)
            attempts.append({"provider": provider.name, "error": error, "elapsed_ms": elapsed_ms})

        logger.error("all extraction providers failed: %s", ", ".join(a["provider"] for a in attempts))
        raise ProviderUnavailable("All extraction providers failed", attempts=attempts)

    def normalize(self, raw_text: str, context: RequestContext, metadata: ExtractionMetadata) -> ParsedAbsenceRequest:
        """Turn provider text into a ParsedAbsenceRequest, trusting only ids present in the context."""
        try:
            parsed = extract_json_object(raw_text)
        except MalformedExtraction as e:
            logger.warning("malformed extraction from %s: %s", metadata.provider, e.message)
            return ParsedAbsenceRequest(
                is_absence_request=False,
                confidence_score=0.0,
                extracted_data={"rawResponse": raw_text, "error": e.message},
                metadata=metadata,
            )

        extracted = dict(parsed["extractedData"]) if isinstance(parsed.get("extractedData"), dict) else {}
        employee = self._match_employee(parsed.get("employee"), context, extracted)
        absence_type = self._match_absence_type(parsed.get("absenceType"), context, extracted)

        start_date = parse_iso_date(parsed.get("startDate"))
        end_date = parse_iso_date(parsed.get("endDate"))
        unparsed = {
            key: parsed.get(key)
            for key, value in (("startDate", start_date), ("endDate", end_date))
            if value is None and parsed.get(key) is not None
        }
        if unparsed:
            # Provider-supplied extractedData may hold anything under this key
            previous = extracted.get("unparsedDates")
            extracted["unparsedDates"] = {**(previous if isinstance(previous, dict) else {}), **unparsed}

        requires_approval = parsed.get("requiresApproval")
        is_absence_request = parsed.get("isAbsenceRequest")
        return ParsedAbsenceRequest(
            is_absence_request=is_absence_request if isinstance(is_absence_request, bool) else False,
            confidence_score=clamp_confidence(parsed.get("confidenceScore")),
            employee=employee,
            absence_type=absence_type,
            start_date=start_date,
            end_date=end_date,
            reason=_optional_str(parsed.get("reason")),
            duration=_optional_str(parsed.get("duration")),
            requires_approval=requires_approval if isinstance(requires_approval, bool) else True,
            extracted_data=extracted,
            metadata=metadata,
        )

    @staticmethod
    def _match_employee(value: Any, context: RequestContext, extracted: Dict[str, Any]) -> Optional[EmployeeMatch]:
        if not isinstance(value, dict):
            return None
        employee_id = _canonical_id(value.get("id"))
        if employee_id is None or employee_id not in context.employee_ids:
            if value.get("id") is not None:
                extracted["rejectedEmployeeId"] = str(value.get("id"))
            return None
        method = value.get("matchingMethod")
        known_methods = {m.value for m in MatchingMethod}
        return EmployeeMatch(
            id=UUID(employee_id),
            name=_optional_str(value.get("name")) or context.find_employee(employee_id)["displayName"],
            matching_method=method if method in known_methods else None,
        )

    @staticmethod
    def _match_absence_type(value: Any, context: RequestContext, extracted: Dict[str, Any]) -> Optional[AbsenceTypeMatch]:
        if not isinstance(value, dict):
            return None
        type_id = _canonical_id(value.get("id"))
        if type_id is None or type_id not in context.absence_type_ids:
            if value.get("id") is not None:
                extracted["rejectedAbsenceTypeId"] = str(value.get("id"))
            return None
        keywords = value.get("matchingKeywords")
        return AbsenceTypeMatch(
            id=UUID(type_id),
            name=_optional_str(value.get("name")) or context.find_absence_type(type_id)["name"],
            matching_keywords=[k for k in keywords if isinstance(k, str)] if isinstance(keywords, list) else [],
        )

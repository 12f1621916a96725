import json
import uuid
from datetime import date, datetime

import pytest

from absence_tracker.api.v1.ai_processing.context import RequestContext
from absence_tracker.api.v1.ai_processing.orchestrator import (
    build_prompt,
    clamp_confidence,
    extract_json_object,
    parse_iso_date,
)
from absence_tracker.api.v1.ai_processing.schemas import EmailInput
from absence_tracker.core.exceptions import ConfigurationError, MalformedExtraction, ProviderUnavailable

from conftest import FakeProvider, failing_provider, hanging_provider, make_orchestrator

ALICE_ID = str(uuid.uuid4())
ANNUAL_ID = str(uuid.uuid4())

CONTEXT = RequestContext(
    employees=[{"id": ALICE_ID, "displayName": "Alice Smith", "email": "alice@acme.test", "employeeId": "E001", "department": None}],
    absence_types=[{"id": ANNUAL_ID, "name": "Annual Leave", "code": "ANNUAL", "keywords": ["annual leave", "vacation"]}],
)
EMAIL = EmailInput(
    subject="Vacation next week",
    body="Hi, I'd like to take next week off for a family trip. Alice",
    sender="alice@acme.test",
    timestamp=datetime(2024, 2, 28, 9, 30),
)


def answer(**overrides) -> str:
    payload = {
        "isAbsenceRequest": True,
        "confidenceScore": 0.9,
        "employee": {"id": ALICE_ID, "name": "Alice Smith", "matchingMethod": "email"},
        "absenceType": {"id": ANNUAL_ID, "name": "Annual Leave", "matchingKeywords": ["vacation"]},
        "startDate": "2024-03-04",
        "endDate": "2024-03-08",
        "reason": "family trip",
        "requiresApproval": True,
    }
    payload.update(overrides)
    return json.dumps(payload)


def test_prompt_carries_email_and_closed_reference_sets() -> None:
    prompt = build_prompt(EMAIL, CONTEXT)

    assert "Vacation next week" in prompt.user
    assert "alice@acme.test" in prompt.user
    assert "2024-02-28T09:30:00" in prompt.user
    assert ALICE_ID in prompt.user
    assert ANNUAL_ID in prompt.user
    assert "JSON" in prompt.system


def test_extract_json_object_ignores_surrounding_prose() -> None:
    text = 'Sure! Here you go:\n```json\n{"a": {"b": 1}, "c": "}"}\n```\nAnything else?'
    assert extract_json_object(text) == {"a": {"b": 1}, "c": "}"}


@pytest.mark.parametrize("text", ["no braces at all", '{"unterminated": ', "[1, 2] {broken"])
def test_extract_json_object_rejects_garbage(text: str) -> None:
    with pytest.raises(MalformedExtraction):
        extract_json_object(text)


@pytest.mark.parametrize(
    "value, expected",
    [
        (0.5, 0.5),
        (1.7, 1.0),
        (-0.2, 0.0),
        ("0.9", 0.0),
        (None, 0.0),
        (True, 0.0),
        (float("nan"), 0.0),
        (10**400, 1.0),
        (-(10**400), 0.0),
    ],
)
def test_clamp_confidence(value, expected) -> None:
    assert clamp_confidence(value) == expected


def test_parse_iso_date() -> None:
    assert parse_iso_date("2024-03-04") == date(2024, 3, 4)
    assert parse_iso_date("2024-03-04T00:00:00Z") == date(2024, 3, 4)
    assert parse_iso_date("next Monday") is None
    assert parse_iso_date("2024-02-30") is None
    assert parse_iso_date(None) is None


@pytest.mark.asyncio
async def test_happy_path_normalizes_answer() -> None:
    provider = FakeProvider(name="grok", replies=[answer()])
    parsed = await make_orchestrator(provider).extract(EMAIL, CONTEXT)

    assert parsed.is_absence_request is True
    assert parsed.confidence_score == 0.9
    assert str(parsed.employee.id) == ALICE_ID
    assert parsed.employee.matching_method.value == "email"
    assert str(parsed.absence_type.id) == ANNUAL_ID
    assert parsed.start_date == date(2024, 3, 4)
    assert parsed.end_date == date(2024, 3, 8)
    assert parsed.metadata.provider == "grok"
    assert parsed.metadata.tokens_used == 100
    assert parsed.metadata.attempts == []
    assert len(provider.prompts) == 1


@pytest.mark.asyncio
async def test_ids_outside_context_are_discarded() -> None:
    stranger = str(uuid.uuid4())
    provider = FakeProvider(
        replies=[answer(employee={"id": stranger, "name": "Mallory"}, absenceType={"id": "ANNUAL", "name": "Annual"})]
    )
    parsed = await make_orchestrator(provider).extract(EMAIL, CONTEXT)

    assert parsed.employee is None
    assert parsed.absence_type is None
    assert parsed.extracted_data["rejectedEmployeeId"] == stranger
    assert parsed.extracted_data["rejectedAbsenceTypeId"] == "ANNUAL"


@pytest.mark.asyncio
async def test_unparseable_dates_and_bad_types_degrade_to_null() -> None:
    provider = FakeProvider(
        replies=[answer(startDate="next Monday", endDate=None, confidenceScore=3, requiresApproval="yes", isAbsenceRequest="true")]
    )
    parsed = await make_orchestrator(provider).extract(EMAIL, CONTEXT)

    assert parsed.start_date is None
    assert parsed.end_date is None
    assert parsed.extracted_data["unparsedDates"] == {"startDate": "next Monday"}
    assert parsed.confidence_score == 1.0
    assert parsed.requires_approval is True
    assert parsed.is_absence_request is False


@pytest.mark.parametrize("bag_value", ["n/a", ["x"], 7, None])
@pytest.mark.asyncio
async def test_provider_extracted_data_cannot_break_date_diagnostics(bag_value) -> None:
    reply = json.dumps({"isAbsenceRequest": True, "startDate": "next monday", "extractedData": {"unparsedDates": bag_value}})
    parsed = await make_orchestrator(FakeProvider(replies=[reply])).extract(EMAIL, CONTEXT)

    assert parsed.start_date is None
    assert parsed.extracted_data["unparsedDates"] == {"startDate": "next monday"}


@pytest.mark.asyncio
async def test_provider_date_notes_are_merged_with_unparsed_dates() -> None:
    reply = answer(endDate="end of month", extractedData={"unparsedDates": {"note": "vague"}})
    parsed = await make_orchestrator(FakeProvider(replies=[reply])).extract(EMAIL, CONTEXT)

    assert parsed.extracted_data["unparsedDates"] == {"note": "vague", "endDate": "end of month"}


@pytest.mark.asyncio
async def test_oversized_integer_confidence_is_clamped() -> None:
    parsed = await make_orchestrator(FakeProvider(replies=[answer(confidenceScore=10**400)])).extract(EMAIL, CONTEXT)

    assert parsed.confidence_score == 1.0
    assert parsed.start_date == date(2024, 3, 4)


@pytest.mark.asyncio
async def test_malformed_answer_is_a_negative_result_not_an_error() -> None:
    provider = FakeProvider(replies=["I think Alice wants a holiday."])
    parsed = await make_orchestrator(provider).extract(EMAIL, CONTEXT)

    assert parsed.is_absence_request is False
    assert parsed.confidence_score == 0.0
    assert parsed.extracted_data["rawResponse"] == "I think Alice wants a holiday."
    assert "error" in parsed.extracted_data
    assert parsed.metadata.provider == "fake"


@pytest.mark.asyncio
async def test_fallback_provider_used_after_primary_fails() -> None:
    grok = failing_provider("grok")
    openai = FakeProvider(name="openai", model="gpt-4", replies=[answer()])
    parsed = await make_orchestrator(grok, openai).extract(EMAIL, CONTEXT)

    assert parsed.metadata.provider == "openai"
    assert parsed.metadata.model == "gpt-4"
    assert [a["provider"] for a in parsed.metadata.attempts] == ["grok"]
    assert len(grok.prompts) == 1
    assert grok.prompts[0] == openai.prompts[0]


@pytest.mark.asyncio
async def test_hung_provider_is_cut_off_and_next_one_tried() -> None:
    slow = hanging_provider("grok")
    openai = FakeProvider(name="openai", replies=[answer()])
    parsed = await make_orchestrator(slow, openai, provider_timeout_seconds=0.05).extract(EMAIL, CONTEXT)

    assert parsed.metadata.provider == "openai"
    assert "deadline" in parsed.metadata.attempts[0]["error"]


@pytest.mark.asyncio
async def test_all_providers_failing_raises_provider_unavailable() -> None:
    orchestrator = make_orchestrator(failing_provider("grok"), failing_provider("openai", "HTTP 401 Unauthorized"))

    with pytest.raises(ProviderUnavailable) as exc_info:
        await orchestrator.extract(EMAIL, CONTEXT)

    attempts = exc_info.value.attempts
    assert [a["provider"] for a in attempts] == ["grok", "openai"]
    assert "401" in attempts[1]["error"]
    assert exc_info.value.status_code == 503


@pytest.mark.asyncio
async def test_pipeline_budget_bounds_every_attempt() -> None:
    orchestrator = make_orchestrator(
        hanging_provider("grok"),
        hanging_provider("openai"),
        provider_timeout_seconds=1.0,
        pipeline_timeout_seconds=0.1,
    )

    with pytest.raises(ProviderUnavailable) as exc_info:
        await orchestrator.extract(EMAIL, CONTEXT)
    assert len(exc_info.value.attempts) == 2


def test_orchestrator_needs_a_provider() -> None:
    with pytest.raises(ConfigurationError):
        make_orchestrator()

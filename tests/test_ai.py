"""Tests for the Gemini client, with the HTTP layer faked by httpx.MockTransport."""

import json

import httpx
import pytest

from dentcare.core import ai
from dentcare.core.exceptions import AIServiceError

PLAN = {
    "treatmentPhases": [
        {
            "phase": 1,
            "title": "Stabilise",
            "description": "Relieve pain and remove infection",
            "estimatedDuration": "1 week",
            "procedures": ["Pulpectomy"],
            "priority": "high",
        }
    ],
    "estimatedCost": {"minimum": 800, "maximum": 1200, "currency": "MYR"},
    "timeline": "4-6 weeks",
    "followUpSchedule": ["Review after 2 weeks"],
    "homeCareTips": ["Soft diet"],
    "warningSignsToWatch": ["Facial swelling"],
}

ANALYSIS = {
    "urgencyLevel": "HIGH",
    "possibleConditions": [{"condition": "Abscess", "likelihood": "MEDIUM", "description": "Infection at the root"}],
    "recommendations": ["See a dentist within 24 hours"],
    "immediateActions": ["Rinse with warm salt water"],
    "whenToSeekCare": "Today if swelling spreads",
    "preventiveMeasures": ["Regular checkups"],
}


def gemini_reply(payload):
    return {"candidates": [{"content": {"parts": [{"text": json.dumps(payload)}]}}]}


def client_returning(status_code=200, body=None, seen=None):
    def handler(request):
        if seen is not None:
            seen.append(request)
        return httpx.Response(status_code, json=body if body is not None else {})

    return httpx.Client(transport=httpx.MockTransport(handler))


@pytest.fixture
def configured(monkeypatch):
    monkeypatch.setattr(ai, "GEMINI_API_KEY", "test-key")


@pytest.fixture
def context():
    return ai.PatientContext(
        name="Alice Tan",
        diagnosis="Irreversible pulpitis, tooth 36",
        symptoms=["throbbing pain", "cold sensitivity"],
        urgency="high",
        available_services=["Root Canal: Endodontics (MYR 900.00)"],
    )


class TestGeneratePlan:
    """Treatment plan generation."""

    def test_returns_parsed_plan(self, configured, context):
        seen = []
        plan = ai.generate_plan(context, client=client_returning(body=gemini_reply(PLAN), seen=seen))

        assert plan.treatmentPhases[0].title == "Stabilise"
        assert plan.estimatedCost.maximum == 1200

        request = seen[0]
        assert request.url.path.endswith(f"/models/{ai.GEMINI_MODEL}:generateContent")
        assert request.url.params["key"] == "test-key"
        sent = json.loads(request.content)
        assert "Alice Tan" in sent["systemInstruction"]["parts"][0]["text"]
        assert sent["generationConfig"]["responseMimeType"] == "application/json"

    def test_missing_key_is_a_service_error(self, monkeypatch, context):
        monkeypatch.setattr(ai, "GEMINI_API_KEY", None)
        with pytest.raises(AIServiceError, match="not configured"):
            ai.generate_plan(context, client=client_returning(body=gemini_reply(PLAN)))

    def test_upstream_error_status(self, configured, context):
        with pytest.raises(AIServiceError, match="returned an error"):
            ai.generate_plan(context, client=client_returning(status_code=503, body={"error": "overloaded"}))

    def test_unreadable_body(self, configured, context):
        with pytest.raises(AIServiceError, match="unreadable"):
            ai.generate_plan(context, client=client_returning(body={"candidates": []}))

    def test_incomplete_plan(self, configured, context):
        with pytest.raises(AIServiceError, match="incomplete"):
            ai.generate_plan(context, client=client_returning(body=gemini_reply({"timeline": "soon"})))

    def test_transport_failure(self, configured, context):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(AIServiceError, match="unreachable"):
            ai.generate_plan(context, client=httpx.Client(transport=httpx.MockTransport(handler)))


class TestCheckSymptoms:
    """Symptom triage."""

    def test_returns_analysis(self, configured):
        analysis = ai.check_symptoms(
            ["swollen gum"], "SEVERE", duration="2 days",
            client=client_returning(body=gemini_reply(ANALYSIS)),
        )
        assert analysis.urgencyLevel == "HIGH"
        assert analysis.possibleConditions[0].condition == "Abscess"

    def test_bad_urgency_value_is_rejected(self, configured):
        with pytest.raises(AIServiceError):
            ai.check_symptoms(
                ["swollen gum"], "SEVERE",
                client=client_returning(body=gemini_reply({**ANALYSIS, "urgencyLevel": "PANIC"})),
            )

"""
Google Gemini calls for treatment plans and symptom checks.

The provider is an opaque dependency: any failure (no key configured, network
error, non-2xx answer, malformed JSON) surfaces as AIServiceError and the
caller shows it to the user. Nothing is retried or cached.
"""

import json
import logging
from typing import Any, List, Literal, Optional

import httpx
from pydantic import BaseModel
from pydantic import ValidationError as SchemaError

from dentcare.config import AI_TIMEOUT_SECONDS, DEFAULT_CURRENCY, GEMINI_API_KEY, GEMINI_API_URL, GEMINI_MODEL
from dentcare.core.exceptions import AIServiceError

logger = logging.getLogger(__name__)


class TreatmentPhase(BaseModel):
    phase: int
    title: str
    description: str
    estimatedDuration: str
    procedures: List[str]
    priority: Literal["low", "medium", "high"]


class EstimatedCost(BaseModel):
    minimum: float
    maximum: float
    currency: str


class GeneratedPlan(BaseModel):
    treatmentPhases: List[TreatmentPhase]
    estimatedCost: EstimatedCost
    timeline: str
    followUpSchedule: List[str]
    homeCareTips: List[str]
    warningSignsToWatch: List[str]


class PossibleCondition(BaseModel):
    condition: str
    likelihood: Literal["LOW", "MEDIUM", "HIGH"]
    description: str


class SymptomAnalysis(BaseModel):
    urgencyLevel: Literal["LOW", "MEDIUM", "HIGH", "EMERGENCY"]
    possibleConditions: List[PossibleCondition]
    recommendations: List[str]
    immediateActions: List[str]
    whenToSeekCare: str
    preventiveMeasures: List[str]


class PatientContext(BaseModel):
    """Everything the plan prompt needs to know about the patient."""

    name: str
    diagnosis: str
    symptoms: List[str]
    urgency: str
    medical_history: Optional[str] = None
    recent_treatments: List[str] = []
    available_services: List[str] = []


def generate_json(system: str, prompt: str, client: Optional[httpx.Client] = None) -> Any:
    """Ask Gemini for a JSON answer and return it decoded."""
    if not GEMINI_API_KEY:
        raise AIServiceError("AI service is not configured")

    url = f"{GEMINI_API_URL}/models/{GEMINI_MODEL}:generateContent"
    payload = {
        "systemInstruction": {"parts": [{"text": system}]},
        "contents": [{"role": "user", "parts": [{"text": prompt}]}],
        "generationConfig": {"responseMimeType": "application/json"},
    }

    owns_client = client is None
    client = client or httpx.Client(timeout=AI_TIMEOUT_SECONDS)
    try:
        response = client.post(url, params={"key": GEMINI_API_KEY}, json=payload)
        response.raise_for_status()
        body = response.json()
        text = body["candidates"][0]["content"]["parts"][0]["text"]
        return json.loads(text)
    except httpx.HTTPStatusError as e:
        logger.error(f"Gemini returned {e.response.status_code}: {e.response.text[:200]}")
        raise AIServiceError("AI service returned an error") from e
    except httpx.HTTPError as e:
        logger.error(f"Gemini request failed: {e}")
        raise AIServiceError("AI service is unreachable") from e
    except (KeyError, IndexError, TypeError, ValueError) as e:
        logger.error(f"Unexpected Gemini response: {e}")
        raise AIServiceError("AI service returned an unreadable answer") from e
    finally:
        if owns_client:
            client.close()


def _bullets(items: List[str], empty: str) -> str:
    return "\n".join(f"- {item}" for item in items) if items else empty


def generate_plan(context: PatientContext, client: Optional[httpx.Client] = None) -> GeneratedPlan:
    system = f"""You are an AI dental treatment planning assistant. Create a comprehensive treatment plan based on the diagnosis and patient information.

Patient: {context.name}
Medical History: {context.medical_history or "None provided"}

Current Diagnosis: {context.diagnosis}
Symptoms: {", ".join(context.symptoms)}
Urgency Level: {context.urgency}

Recent Treatment History:
{_bullets(context.recent_treatments, "No recent treatments")}

Available Services at Clinic:
{_bullets(context.available_services, "No services listed")}

Create a treatment plan with phases starting at 1, realistic cost estimates in {DEFAULT_CURRENCY}, a timeline, a follow-up schedule, home care tips and warning signs to watch.
Answer with JSON keys: treatmentPhases (phase, title, description, estimatedDuration, procedures, priority low|medium|high), estimatedCost (minimum, maximum, currency), timeline, followUpSchedule, homeCareTips, warningSignsToWatch.

All plans must be reviewed and approved by a licensed dentist before implementation."""

    data = generate_json(system, "Generate a comprehensive dental treatment plan based on the provided information.", client)
    try:
        return GeneratedPlan.model_validate(data)
    except SchemaError as e:
        logger.error(f"Generated treatment plan did not match the schema: {e}")
        raise AIServiceError("AI service returned an incomplete treatment plan") from e


def check_symptoms(
    symptoms: List[str],
    severity: str,
    duration: Optional[str] = None,
    additional_info: Optional[str] = None,
    client: Optional[httpx.Client] = None,
) -> SymptomAnalysis:
    system = f"""You are a dental health AI assistant that helps analyze symptoms and provides guidance.
You are NOT providing a medical diagnosis; offer educational information and guidance on when to seek professional care.

Symptoms: {", ".join(symptoms)}
Duration: {duration or "Not specified"}
Severity: {severity}
Additional info: {additional_info or "None"}

Answer with JSON keys: urgencyLevel (LOW|MEDIUM|HIGH|EMERGENCY), possibleConditions (condition, likelihood LOW|MEDIUM|HIGH, description), recommendations, immediateActions, whenToSeekCare, preventiveMeasures."""

    data = generate_json(system, "Analyze these dental symptoms and provide structured guidance.", client)
    try:
        return SymptomAnalysis.model_validate(data)
    except SchemaError as e:
        logger.error(f"Symptom analysis did not match the schema: {e}")
        raise AIServiceError("AI service returned an incomplete analysis") from e

"""
Inference payload decoding - the trust boundary.

Vision model responses are untyped text. Everything crosses into the
domain through these schemas; any shape mismatch fails closed with
UpstreamParseError so the caller can offer "try again".
"""

import json
import re

from pydantic import BaseModel, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from tradeproof.models import (
    Violation,
    SkillDemo,
    Severity,
    ResolutionStatus,
    UpstreamParseError,
    clamp_score,
)


_FENCE_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)```")

# The inference prompt vocabulary predates the three-level scale
_SEVERITY_ALIASES: dict[str, str] = {"major": Severity.MODERATE.value}


def _normalize_severity(value):
    if isinstance(value, str):
        value = value.strip().lower()
        return _SEVERITY_ALIASES.get(value, value)
    return value


# --- Analyze Payload ---

class FindingViolation(Violation):
    """Violation as reported by the inference step, before ids are assigned."""

    @field_validator("severity", mode="before")
    @classmethod
    def _severity(cls, value):
        return _normalize_severity(value)


class FindingsPayload(BaseModel):
    """Photo -> findings response."""
    description: str = ""
    compliance_score: int
    # Reported but never trusted; Analysis derives its own flag
    is_compliant: bool | None = None
    violations: list[FindingViolation] = []
    correct_items: list[str] = []
    skills_demonstrated: list[SkillDemo] = []
    overall_assessment: str = Field(min_length=1)
    work_type_detected: str | None = None

    @field_validator("compliance_score", mode="before")
    @classmethod
    def _clamp_score(cls, value):
        return clamp_score(value)


# --- Recheck Payload ---

class ReconciliationEntry(BaseModel):
    """Upstream verdict for one original violation."""
    original_description: str = Field(min_length=1)
    original_code_section: str | None = None
    violation_id: str | None = None
    status: ResolutionStatus
    notes: str | None = None

    @field_validator("status", mode="before")
    @classmethod
    def _status(cls, value):
        if isinstance(value, str):
            return re.sub(r"[\s-]+", "_", value.strip().lower())
        return value


class NewViolationFinding(BaseModel):
    """Issue seen in the follow-up photo that was not in the original list."""
    description: str = Field(min_length=1)
    code_section: str | None = None
    severity: Severity | None = None
    fix_instruction: str | None = None

    @field_validator("severity", mode="before")
    @classmethod
    def _severity(cls, value):
        return _normalize_severity(value)


class ReconciliationPayload(BaseModel):
    """Recheck -> reconciliation response."""
    description: str = ""
    compliance_score: int
    is_compliant: bool | None = None
    original_violation_status: list[ReconciliationEntry] = []
    new_violations_found: list[NewViolationFinding] = []
    overall_assessment: str | None = None

    @field_validator("compliance_score", mode="before")
    @classmethod
    def _clamp_score(cls, value):
        return clamp_score(value)

    @field_validator("new_violations_found", mode="before")
    @classmethod
    def _plain_strings(cls, value):
        # Some responses list new issues as bare strings
        if isinstance(value, list):
            return [{"description": v} if isinstance(v, str) else v for v in value]
        return value


# --- Public API ---

def decode_findings(raw_text: str) -> FindingsPayload:
    """
    Decodes a photo analysis response.

    Raises:
        UpstreamParseError: If the text is not JSON or does not match the schema.
    """
    data = _extract_json(raw_text)
    try:
        return FindingsPayload.model_validate(data)
    except PydanticValidationError as e:
        raise UpstreamParseError(f"Findings payload has unexpected shape: {e.error_count()} error(s)")


def decode_reconciliation(raw_text: str) -> ReconciliationPayload:
    """
    Decodes a recheck response.

    Raises:
        UpstreamParseError: If the text is not JSON or does not match the schema.
    """
    data = _extract_json(raw_text)
    try:
        return ReconciliationPayload.model_validate(data)
    except PydanticValidationError as e:
        raise UpstreamParseError(f"Reconciliation payload has unexpected shape: {e.error_count()} error(s)")


def _extract_json(raw_text: str) -> dict:
    """Pulls the JSON object out of a response, tolerating a markdown fence."""
    if not raw_text or not raw_text.strip():
        raise UpstreamParseError("Empty response from inference service")

    match = _FENCE_RE.search(raw_text)
    json_string = match.group(1).strip() if match else raw_text.strip()

    try:
        data = json.loads(json_string)
    except json.JSONDecodeError:
        raise UpstreamParseError("Failed to parse inference response as JSON")

    if not isinstance(data, dict):
        raise UpstreamParseError("Inference response must be a JSON object")
    return data

"""
Analysis construction - turns a decoded findings payload into an Analysis.

Assigns identity (analysis id, timestamp, stable violation ids). Score
clamping and the compliance flag are enforced by the Analysis model itself.
"""

import uuid
from datetime import datetime, timezone

from pydantic import ValidationError as PydanticValidationError

from tradeproof.models import (
    Analysis,
    AnalysisMode,
    Severity,
    Violation,
    ValidationError,
)
from tradeproof.payloads import FindingsPayload
from tradeproof.config import DEFAULT_TRADE


def build_analysis(
    findings: FindingsPayload,
    *,
    user_id: str,
    work_type: str,
    jurisdiction: str,
    photo_url: str,
    user_description: str = "",
    before_photo_url: str | None = None,
    trade: str = DEFAULT_TRADE,
    analysis_id: str | None = None,
    created_at: str | None = None,
) -> Analysis:
    """
    Builds a new Analysis from inference findings.

    The upstream is_compliant flag is dropped; the model derives it
    from violation severities.

    Raises:
        ValidationError: If work_type or overall_assessment is blank.
    """
    violations = [
        Violation(**{**v.model_dump(), "violation_id": f"V{i}"})
        for i, v in enumerate(findings.violations, start=1)
    ]

    try:
        return Analysis(
            analysis_id=analysis_id or str(uuid.uuid4()),
            user_id=user_id,
            created_at=created_at or datetime.now(timezone.utc).isoformat(),
            jurisdiction=jurisdiction,
            trade=trade,
            work_type=work_type,
            user_description=user_description,
            mode=AnalysisMode.BEFORE_AFTER if before_photo_url else AnalysisMode.SINGLE,
            photo_url=photo_url,
            before_photo_url=before_photo_url,
            violations=violations,
            correct_items=findings.correct_items,
            skills_demonstrated=findings.skills_demonstrated,
            compliance_score=findings.compliance_score,
            overall_assessment=findings.overall_assessment,
        )
    except PydanticValidationError as e:
        fields = ", ".join(str(err["loc"][0]) for err in e.errors() if err["loc"])
        raise ValidationError(f"Invalid analysis fields: {fields}")


def critical_count(analysis: Analysis) -> int:
    return sum(1 for v in analysis.violations if v.severity == Severity.CRITICAL)


def violation_tuples(violations: list[Violation]) -> list[dict]:
    """Plain description/code/severity/fix tuples sent to the recheck call."""
    return [
        {
            "violation_id": v.violation_id,
            "description": v.description,
            "code_section": v.code_section,
            "severity": v.severity.value,
            "fix_instruction": v.fix_instruction,
        }
        for v in violations
    ]

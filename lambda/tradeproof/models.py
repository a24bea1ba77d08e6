"""
Domain models for the compliance analysis service.

All Pydantic models in one place. Imported by analysis, recheck, metrics,
knowledge, credential, storage, and handler modules. Single source of truth
for data contracts.
"""

import math
from enum import Enum
from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator

from tradeproof.config import SCORE_MIN, SCORE_MAX, DEFAULT_TRADE


# --- Domain Enums ---

class Severity(str, Enum):
    """
    Closed severity scale. Inherits str so Pydantic serializes
    to "critical" / "moderate" / "minor" without extra conversion.
    """
    MINOR = "minor"
    MODERATE = "moderate"
    CRITICAL = "critical"


class Confidence(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class SkillQuality(str, Enum):
    GOOD = "good"
    ACCEPTABLE = "acceptable"
    NEEDS_WORK = "needs_work"


class ResolutionStatus(str, Enum):
    RESOLVED = "resolved"
    UNRESOLVED = "unresolved"
    PARTIALLY_RESOLVED = "partially_resolved"


class AnalysisMode(str, Enum):
    SINGLE = "single"
    BEFORE_AFTER = "before_after"


class Trend(str, Enum):
    """Compliance trend across a history."""
    UP = "up"
    STABLE = "stable"
    DOWN = "down"


class SkillTrend(str, Enum):
    IMPROVING = "improving"
    STABLE = "stable"
    DECLINING = "declining"


class ExperienceLevel(str, Enum):
    APPRENTICE = "apprentice"
    JOURNEYMAN = "journeyman"
    MASTER = "master"


def clamp_score(value) -> int:
    """
    Coerces an untrusted score to an int in [SCORE_MIN, SCORE_MAX].

    Inference payloads may return 100.4 or -1 due to rounding, or an
    overflowed 1e999; those are clamped, not rejected. NaN is rejected.
    """
    if isinstance(value, bool):
        raise ValueError("score must be numeric, not boolean")
    if isinstance(value, int):
        return max(SCORE_MIN, min(SCORE_MAX, value))
    try:
        score = float(value)
    except (TypeError, ValueError):
        raise ValueError(f"score must be numeric, got {value!r}")
    if math.isnan(score):
        raise ValueError("score must be numeric, got NaN")
    if math.isinf(score):
        return SCORE_MAX if score > 0 else SCORE_MIN
    return max(SCORE_MIN, min(SCORE_MAX, int(round(score))))


# --- Photo Validation Context ---

class QualityMetrics(BaseModel):
    """Technical photo quality scores."""
    overall: float = Field(0.0, ge=0.0, le=1.0)
    sharpness: float = Field(0.0, ge=0.0, le=1.0)
    brightness: float = Field(0.0, ge=0.0, le=1.0)
    contrast: float = Field(0.0, ge=0.0, le=1.0)
    issues: list[str] = []


class PhotoCheck(BaseModel):
    """Result of photo validation and quality assessment."""
    is_valid: bool
    error_message: str | None = None

    format: str | None = None
    size_bytes: int | None = Field(None, ge=0)
    resolution: tuple[int, int] | None = None

    quality: QualityMetrics = QualityMetrics()


# --- Analysis Context ---

class Violation(BaseModel):
    """One non-conformance found in a photo. Immutable once created."""
    model_config = ConfigDict(frozen=True)

    description: str = Field(min_length=1)
    code_section: str = Field(min_length=1)
    severity: Severity
    fix_instruction: str = ""

    # Stable id assigned at Analysis creation, echoed through recheck
    violation_id: str | None = None

    confidence: Confidence | None = None
    why_this_matters: str | None = None
    visual_evidence: str | None = None
    local_amendment: str | None = None

    @field_validator("description", "code_section")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be blank")
        return value


class SkillDemo(BaseModel):
    """A skill the worker demonstrated in one photo."""
    model_config = ConfigDict(frozen=True)

    skill: str = Field(min_length=1)
    evidence: str | None = None
    quality: SkillQuality | None = None


# --- Recheck Context ---

class ViolationStatus(BaseModel):
    """Resolution status of one original violation after a recheck."""
    description: str
    status: ResolutionStatus
    notes: str | None = None
    violation_id: str | None = None


class RecheckResult(BaseModel):
    """
    Outcome of reconciling an original Analysis against a follow-up photo.

    original_violation_status has exactly one entry per original
    violation, in the original order.
    """
    original_violation_status: list[ViolationStatus] = []
    new_violations_found: list[str] = []
    compliance_score: int
    is_compliant: bool

    # Engine's own verdict, kept next to the upstream one for auditing
    derived_is_compliant: bool
    discarded_entries: list[str] = []
    overall_assessment: str | None = None
    checked_at: str | None = None

    @field_validator("compliance_score", mode="before")
    @classmethod
    def _clamp_score(cls, value):
        return clamp_score(value)

    @property
    def resolved_count(self) -> int:
        return sum(1 for s in self.original_violation_status if s.status == ResolutionStatus.RESOLVED)


class AnalysisRevision(BaseModel):
    """A superseded recheck round kept for the fix history."""
    fixed_photo_url: str | None = None
    compliance_score: int
    is_compliant: bool
    fix_analysis: RecheckResult
    created_at: str


class Analysis(BaseModel):
    """One compliance assessment event. Persisted in DynamoDB."""
    analysis_id: str
    user_id: str
    created_at: str

    jurisdiction: str
    trade: str = DEFAULT_TRADE
    work_type: str = Field(min_length=1)
    user_description: str = ""
    mode: AnalysisMode = AnalysisMode.SINGLE

    # Opaque references to stored image data
    photo_url: str
    before_photo_url: str | None = None

    # Findings
    violations: list[Violation] = []
    correct_items: list[str] = []
    skills_demonstrated: list[SkillDemo] = []
    compliance_score: int
    overall_assessment: str = Field(min_length=1)

    # Latest recheck only; earlier rounds move to revision_history
    fixed_photo_url: str | None = None
    fix_verified: bool = False
    fix_compliance_score: int | None = None
    fix_analysis: RecheckResult | None = None
    revision_history: list[AnalysisRevision] = []

    @field_validator("compliance_score", "fix_compliance_score", mode="before")
    @classmethod
    def _clamp_score(cls, value):
        if value is None:
            return None
        return clamp_score(value)

    @field_validator("work_type", "overall_assessment")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be blank")
        return value

    @computed_field
    @property
    def is_compliant(self) -> bool:
        """Derived: no critical violation. Never taken from a payload."""
        return not any(v.severity == Severity.CRITICAL for v in self.violations)


# --- Metrics Context ---

class SkillScore(BaseModel):
    """Aggregate proficiency for one skill. Derived from Analysis history."""
    skill_name: str
    score: int = Field(ge=SCORE_MIN, le=SCORE_MAX)
    total_instances: int = Field(ge=0)
    trend: SkillTrend = SkillTrend.STABLE
    last_updated: str | None = None


class TrendPoint(BaseModel):
    date: str
    score: int


class DashboardSummary(BaseModel):
    total_analyses: int = 0
    avg_compliance: int = 0
    trend: Trend = Trend.STABLE
    skills: list[SkillScore] = []
    compliance_series: list[TrendPoint] = []
    recent: list[Analysis] = []


# --- Profile & Credential Context ---

class UserProfile(BaseModel):
    user_id: str
    full_name: str
    trade: str = DEFAULT_TRADE
    experience_level: ExperienceLevel = ExperienceLevel.APPRENTICE
    primary_jurisdiction: str
    created_at: str | None = None


class CredentialSummary(BaseModel):
    """Shareable snapshot of a worker's verified record."""
    user_id: str
    full_name: str
    trade: str
    experience_level: ExperienceLevel
    jurisdiction: str

    total_analyses: int = 0
    avg_compliance: int = 0
    trend: Trend = Trend.STABLE
    strong_skills: list[str] = []
    developing_skills: list[str] = []
    qualified_jurisdictions: list[str] = []
    share_path: str


# --- Knowledge Context ---

class KnowledgeClip(BaseModel):
    """Expert-authored guidance note. Reference data, not user generated."""
    model_config = ConfigDict(frozen=True)

    clip_id: str
    expert_name: str
    expert_years: int
    trade: str
    task_type: str
    trigger_keywords: tuple[str, ...]
    title: str
    content: str
    building_era: str | None = None


# --- Exceptions ---

class ValidationError(Exception):
    """Required input missing or malformed."""
    pass


class UpstreamParseError(Exception):
    """Inference response did not match the expected shape."""
    pass


class ReconciliationMismatch(Exception):
    """Recheck status list does not line up with the original violations."""
    pass


class NotFoundError(Exception):
    """Referenced analysis or profile does not exist."""
    pass


class InferenceError(Exception):
    """Vision model call failed."""
    pass


class StorageError(Exception):
    """Database or object store operation failed."""
    pass


class InternalError(Exception):
    """Anything else."""
    pass

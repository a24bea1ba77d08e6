"""
Metrics aggregation - trend, average compliance, and per-skill scores
derived from an Analysis history.

Everything here is recomputed on read and is the source of truth; any
cached SkillScore list must agree with compute_skill_scores.
"""

import math
from datetime import datetime, timezone
from typing import Sequence

from tradeproof.models import (
    Analysis,
    DashboardSummary,
    SkillScore,
    SkillTrend,
    Trend,
    TrendPoint,
    clamp_score,
)
from tradeproof.config import (
    TREND_WINDOW,
    TREND_MIN_HISTORY,
    TREND_DELTA,
    SKILL_RECENCY_DECAY,
    SKILL_EXPERIENCE_BONUS,
    SKILL_EXPERIENCE_BONUS_CAP,
    STRONG_SKILL_THRESHOLD,
    DASHBOARD_RECENT_COUNT,
)


_SKILL_TRENDS: dict[Trend, SkillTrend] = {
    Trend.UP: SkillTrend.IMPROVING,
    Trend.STABLE: SkillTrend.STABLE,
    Trend.DOWN: SkillTrend.DECLINING,
}


# --- Public API ---

def classify_trend(scores: Sequence[float]) -> Trend:
    """
    Classifies a newest-first score sequence as up / stable / down.

    Compares the mean of the newest TREND_WINDOW scores with the mean of
    the oldest TREND_WINDOW scores. Fewer than TREND_MIN_HISTORY scores
    is always stable. The windows overlap for short histories.
    """
    count = len(scores)
    if count < TREND_MIN_HISTORY:
        return Trend.STABLE

    window = min(TREND_WINDOW, count)
    recent_avg = sum(scores[:window]) / window
    old_avg = sum(scores[count - window:]) / window

    if recent_avg - old_avg > TREND_DELTA:
        return Trend.UP
    if old_avg - recent_avg > TREND_DELTA:
        return Trend.DOWN
    return Trend.STABLE


def average_compliance(analyses: Sequence[Analysis]) -> int:
    """Mean compliance score rounded half up. 0 for an empty history."""
    if not analyses:
        return 0
    mean = sum(a.compliance_score for a in analyses) / len(analyses)
    return math.floor(mean + 0.5)


def sort_newest_first(analyses: Sequence[Analysis]) -> list[Analysis]:
    return sorted(analyses, key=lambda a: _parse_ts(a.created_at), reverse=True)


def compliance_trend(analyses: Sequence[Analysis]) -> Trend:
    """Trend of an already newest-first history."""
    return classify_trend([a.compliance_score for a in analyses])


def history_key(analyses: Sequence[Analysis]) -> str:
    """
    Identifies the history a SkillScore list was computed from.

    A cached list is only valid for the history with the same key, so a
    list computed from a read that raced a new analysis is never served.
    """
    if not analyses:
        return "0"
    newest = max(analyses, key=lambda a: _parse_ts(a.created_at))
    return f"{len(analyses)}:{newest.analysis_id}"


def compute_skill_scores(analyses: Sequence[Analysis]) -> list[SkillScore]:
    """
    Derives one SkillScore per distinct skill in a newest-first history.

    Skill names are grouped case-insensitively; the display name is the
    one first used. A skill listed twice in one analysis counts once.
    Output is in order of first appearance.
    """
    # key -> (display name, [(created_at, score)] oldest first)
    groups: dict[str, tuple[str, list[tuple[str, int]]]] = {}

    for analysis in reversed(analyses):
        seen: set[str] = set()
        for demo in analysis.skills_demonstrated:
            name = demo.skill.strip()
            key = name.casefold()
            if not key or key in seen:
                continue
            seen.add(key)
            if key not in groups:
                groups[key] = (name, [])
            groups[key][1].append((analysis.created_at, analysis.compliance_score))

    skills = []
    for name, instances in groups.values():
        scores = [score for _, score in reversed(instances)]
        skills.append(SkillScore(
            skill_name=name,
            score=skill_score(scores),
            total_instances=len(scores),
            trend=_SKILL_TRENDS[classify_trend(scores)],
            last_updated=instances[-1][0],
        ))
    return skills


def skill_score(scores: Sequence[int]) -> int:
    """
    Recency-weighted mean of newest-first scores plus a capped experience bonus.

    Raising any score or adding an instance at the same level never
    lowers the result.
    """
    if not scores:
        return 0
    weights = [SKILL_RECENCY_DECAY ** age for age in range(len(scores))]
    weighted = sum(w * s for w, s in zip(weights, scores)) / sum(weights)
    bonus = SKILL_EXPERIENCE_BONUS * min(len(scores) - 1, SKILL_EXPERIENCE_BONUS_CAP)
    return clamp_score(weighted + bonus)


def partition_skills(skills: Sequence[SkillScore]) -> tuple[list[str], list[str]]:
    """Splits skill names into (strong, developing) at STRONG_SKILL_THRESHOLD."""
    strong = [s.skill_name for s in skills if s.score >= STRONG_SKILL_THRESHOLD]
    developing = [s.skill_name for s in skills if s.score < STRONG_SKILL_THRESHOLD]
    return strong, developing


def compliance_series(analyses: Sequence[Analysis]) -> list[TrendPoint]:
    """Chronological (oldest first) date/score points for charting."""
    ordered = sorted(analyses, key=lambda a: _parse_ts(a.created_at))
    return [TrendPoint(date=a.created_at, score=a.compliance_score) for a in ordered]


def build_dashboard(analyses: Sequence[Analysis], skills: Sequence[SkillScore] | None = None) -> DashboardSummary:
    """
    Dashboard numbers for one user's history.

    skills may be a cached list; otherwise they are derived here.
    """
    history = sort_newest_first(analyses)
    if skills is None:
        skills = compute_skill_scores(history)

    return DashboardSummary(
        total_analyses=len(history),
        avg_compliance=average_compliance(history),
        trend=compliance_trend(history),
        skills=list(skills),
        compliance_series=compliance_series(history),
        recent=history[:DASHBOARD_RECENT_COUNT],
    )


# --- Internal ---

def _parse_ts(value: str) -> datetime:
    ts = datetime.fromisoformat(value.replace("Z", "+00:00"))
    # Naive timestamps are stored as UTC
    return ts if ts.tzinfo else ts.replace(tzinfo=timezone.utc)

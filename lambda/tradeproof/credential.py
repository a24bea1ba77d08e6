"""
Credential summary - folds profile, history, and skill scores into a
shareable snapshot. Pure function, no state.
"""

from typing import Sequence

from tradeproof.models import Analysis, CredentialSummary, SkillScore, UserProfile
from tradeproof.metrics import (
    average_compliance,
    compliance_trend,
    partition_skills,
    sort_newest_first,
)
from tradeproof.config import CREDENTIAL_PATH_PREFIX


def build_credential(
    profile: UserProfile,
    analyses: Sequence[Analysis],
    skills: Sequence[SkillScore],
) -> CredentialSummary:
    """
    Builds the credential card for one worker.

    Empty history and no skills produce a zeroed summary, not an error.
    """
    history = sort_newest_first(analyses)
    strong, developing = partition_skills(skills)

    return CredentialSummary(
        user_id=profile.user_id,
        full_name=profile.full_name,
        trade=profile.trade,
        experience_level=profile.experience_level,
        jurisdiction=profile.primary_jurisdiction,
        total_analyses=len(history),
        avg_compliance=average_compliance(history),
        trend=compliance_trend(history),
        strong_skills=strong,
        developing_skills=developing,
        qualified_jurisdictions=qualified_jurisdictions(profile),
        share_path=f"{CREDENTIAL_PATH_PREFIX}{profile.user_id}",
    )


def qualified_jurisdictions(profile: UserProfile) -> list[str]:
    """
    Jurisdictions the credential claims.

    Only the declared primary jurisdiction; there is no cross-jurisdiction
    code equivalence.
    """
    return [profile.primary_jurisdiction]

# In lambda/ folder

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

# Add lambda/ directory to Python path
lambda_dir = Path(__file__).parent.parent
sys.path.insert(0, str(lambda_dir))

print(f"[conftest.py] Added to path: {lambda_dir}")

from tradeproof.models import Analysis, SkillDemo  # noqa: E402


BASE_TIME = datetime(2025, 9, 15, 8, 0, tzinfo=timezone.utc)


@pytest.fixture
def make_analysis():
    """Factory for Analysis records. Each call is one day newer than the last."""
    counter = {"n": 0}

    def _make(score=80, skills=(), violations=(), user_id="USER-1", **overrides):
        counter["n"] += 1
        n = counter["n"]
        fields = dict(
            analysis_id=f"AN-{n:03d}",
            user_id=user_id,
            created_at=(BASE_TIME + timedelta(days=n)).isoformat(),
            jurisdiction="California",
            work_type="panel",
            photo_url=f"s3://tradeproof-photos/{user_id}/{n}.jpg",
            violations=list(violations),
            skills_demonstrated=[SkillDemo(skill=s) for s in skills],
            compliance_score=score,
            overall_assessment="Solid work with a few items to correct.",
        )
        fields.update(overrides)
        return Analysis(**fields)

    return _make


@pytest.fixture
def make_history(make_analysis):
    """Newest-first history from newest-first scores."""
    def _make(scores, skills=()):
        created = [make_analysis(score=s, skills=skills) for s in reversed(scores)]
        return list(reversed(created))

    return _make

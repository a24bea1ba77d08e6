"""
Unit tests for inference module

The vision model client is always mocked; no network calls.
"""
import json
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest

from tradeproof.inference import analyze_photo, recheck_photo, clear_client_cache
from tradeproof.models import InferenceError, ResolutionStatus, UpstreamParseError
from tradeproof.payloads import FindingsPayload, ReconciliationPayload
from tradeproof.config import INFERENCE_MODEL


FINDINGS_JSON = json.dumps({
    "description": "Kitchen countertop receptacle",
    "compliance_score": 58,
    "violations": [{
        "description": "Receptacle not GFCI protected",
        "code_section": "NEC 210.8(A)(6)",
        "severity": "critical",
        "fix_instruction": "Install GFCI protection",
    }],
    "correct_items": ["Box flush with finished surface"],
    "skills_demonstrated": [{"skill": "Device Installation"}],
    "overall_assessment": "Needs GFCI protection.",
})

RECONCILIATION_JSON = json.dumps({
    "compliance_score": 96,
    "is_compliant": True,
    "original_violation_status": [{
        "violation_id": "V1",
        "original_description": "Receptacle not GFCI protected",
        "status": "resolved",
    }],
    "new_violations_found": [],
})

ORIGINAL_VIOLATIONS = [{
    "violation_id": "V1",
    "description": "Receptacle not GFCI protected",
    "code_section": "NEC 210.8(A)(6)",
    "severity": "critical",
    "fix_instruction": "Install GFCI protection",
}]


def _completion(text):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=text))])


# ============================================================================
# FIXTURES
# ============================================================================

@pytest.fixture(autouse=True)
def clear_cache_after_test():
    yield
    clear_client_cache()


@pytest.fixture
def mock_client():
    with patch("tradeproof.inference.OpenAI") as mock_openai:
        client = MagicMock()
        mock_openai.return_value = client
        yield client


# ============================================================================
# ANALYZE
# ============================================================================

class TestAnalyzePhoto:

    def test_returns_decoded_findings(self, mock_client):
        mock_client.chat.completions.create.return_value = _completion(FINDINGS_JSON)

        findings = analyze_photo(
            b"after", "image/jpeg",
            work_type="outlet", user_description="Kitchen outlet", jurisdiction="California",
        )

        assert isinstance(findings, FindingsPayload)
        assert findings.compliance_score == 58
        assert findings.violations[0].code_section == "NEC 210.8(A)(6)"

    def test_request_shape(self, mock_client):
        mock_client.chat.completions.create.return_value = _completion(FINDINGS_JSON)

        analyze_photo(
            b"after", "image/png",
            work_type="outlet", user_description="Kitchen outlet", jurisdiction="Texas",
        )

        kwargs = mock_client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == INFERENCE_MODEL
        system, user = kwargs["messages"]
        assert system["role"] == "system"
        assert "Texas" in system["content"]
        images = [part for part in user["content"] if part["type"] == "image_url"]
        assert len(images) == 1
        assert images[0]["image_url"]["url"].startswith("data:image/png;base64,")

    def test_before_after_sends_two_images(self, mock_client):
        mock_client.chat.completions.create.return_value = _completion(FINDINGS_JSON)

        analyze_photo(
            b"after", "image/jpeg",
            work_type="panel", user_description="Panel swap", jurisdiction="California",
            before_image=b"before",
        )

        user = mock_client.chat.completions.create.call_args.kwargs["messages"][1]
        assert sum(1 for part in user["content"] if part["type"] == "image_url") == 2

    def test_client_reused(self, mock_client):
        mock_client.chat.completions.create.return_value = _completion(FINDINGS_JSON)

        with patch("tradeproof.inference.OpenAI", return_value=mock_client) as factory:
            for _ in range(2):
                analyze_photo(
                    b"after", "image/jpeg",
                    work_type="outlet", user_description="", jurisdiction="California",
                )
            assert factory.call_count == 1


# ============================================================================
# RECHECK
# ============================================================================

class TestRecheckPhoto:

    def test_returns_decoded_reconciliation(self, mock_client):
        mock_client.chat.completions.create.return_value = _completion(RECONCILIATION_JSON)

        payload = recheck_photo(
            b"original", "image/jpeg", b"fixed", "image/jpeg",
            ORIGINAL_VIOLATIONS, jurisdiction="California",
        )

        assert isinstance(payload, ReconciliationPayload)
        assert payload.original_violation_status[0].status == ResolutionStatus.RESOLVED

    def test_prompt_lists_original_violations(self, mock_client):
        mock_client.chat.completions.create.return_value = _completion(RECONCILIATION_JSON)

        recheck_photo(
            b"original", "image/jpeg", b"fixed", "image/jpeg",
            ORIGINAL_VIOLATIONS, jurisdiction="California",
        )

        system = mock_client.chat.completions.create.call_args.kwargs["messages"][0]["content"]
        assert "Receptacle not GFCI protected" in system
        assert "V1" in system


# ============================================================================
# FAILURES
# ============================================================================

class TestInferenceFailures:

    def test_api_error_becomes_inference_error(self, mock_client):
        mock_client.chat.completions.create.side_effect = RuntimeError("connection reset")

        with pytest.raises(InferenceError, match="connection reset"):
            analyze_photo(
                b"after", "image/jpeg",
                work_type="outlet", user_description="", jurisdiction="California",
            )

    def test_empty_response(self, mock_client):
        mock_client.chat.completions.create.return_value = _completion(None)

        with pytest.raises(UpstreamParseError, match="No text response"):
            analyze_photo(
                b"after", "image/jpeg",
                work_type="outlet", user_description="", jurisdiction="California",
            )

    def test_non_json_response(self, mock_client):
        mock_client.chat.completions.create.return_value = _completion("I can't tell from this angle.")

        with pytest.raises(UpstreamParseError):
            recheck_photo(
                b"original", "image/jpeg", b"fixed", "image/jpeg",
                ORIGINAL_VIOLATIONS, jurisdiction="California",
            )

    def test_client_creation_failure(self):
        with patch("tradeproof.inference.OpenAI", side_effect=Exception("missing api key")):
            with pytest.raises(InferenceError, match="missing api key"):
                analyze_photo(
                    b"after", "image/jpeg",
                    work_type="outlet", user_description="", jurisdiction="California",
                )

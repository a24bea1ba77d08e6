"""
Unit tests for recheck reconciliation
"""
import logging

import pytest

from tradeproof.models import (
    ResolutionStatus,
    Severity,
    Violation,
    ReconciliationMismatch,
    ValidationError,
)
from tradeproof.payloads import NewViolationFinding, ReconciliationPayload
from tradeproof.recheck import (
    MISSING_VERDICT_NOTE,
    apply_recheck,
    is_critical_finding,
    merge_recheck,
    reconcile,
)


CHECKED_AT = "2025-10-02T09:30:00+00:00"


# ============================================================================
# FIXTURES
# ============================================================================

@pytest.fixture
def gfci():
    return Violation(
        description="Missing GFCI protection on bathroom receptacle",
        code_section="NEC 210.8(A)(1)",
        severity=Severity.CRITICAL,
        violation_id="V1",
    )


@pytest.fixture
def cover():
    return Violation(
        description="Cover plate cracked",
        code_section="NEC 406.6",
        severity=Severity.MINOR,
        violation_id="V2",
    )


def _payload(entries, new=(), score=90, is_compliant=None):
    return ReconciliationPayload(
        compliance_score=score,
        is_compliant=is_compliant,
        original_violation_status=list(entries),
        new_violations_found=list(new),
    )


def _entry(description, status, violation_id=None, notes=None):
    return {
        "original_description": description,
        "status": status,
        "violation_id": violation_id,
        "notes": notes,
    }


# ============================================================================
# RECONCILE
# ============================================================================

class TestReconcile:

    def test_unresolved_critical_not_compliant(self, gfci):
        payload = _payload([_entry(gfci.description, "unresolved")], score=70)

        result = reconcile([gfci], payload, checked_at=CHECKED_AT)

        assert result.original_violation_status[0].status == ResolutionStatus.UNRESOLVED
        assert result.is_compliant is False
        assert result.derived_is_compliant is False
        assert result.compliance_score == 70

    def test_all_resolved_is_compliant(self, gfci, cover):
        payload = _payload([
            _entry(gfci.description, "resolved"),
            _entry(cover.description, "resolved"),
        ])

        result = reconcile([gfci, cover], payload, checked_at=CHECKED_AT)

        assert result.is_compliant is True
        assert result.resolved_count == 2
        assert result.checked_at == CHECKED_AT

    def test_omitted_entry_treated_as_unresolved(self, gfci, cover):
        payload = _payload([_entry(gfci.description, "resolved")])

        result = reconcile([gfci, cover], payload)

        statuses = result.original_violation_status
        assert len(statuses) == 2
        assert statuses[1].description == cover.description
        assert statuses[1].status == ResolutionStatus.UNRESOLVED
        assert statuses[1].notes == MISSING_VERDICT_NOTE
        assert result.derived_is_compliant is False

    def test_output_follows_original_order(self, gfci, cover):
        payload = _payload([
            _entry(cover.description, "resolved"),
            _entry(gfci.description, "partially_resolved"),
        ])

        result = reconcile([gfci, cover], payload)

        assert [s.violation_id for s in result.original_violation_status] == ["V1", "V2"]
        assert result.original_violation_status[0].status == ResolutionStatus.PARTIALLY_RESOLVED

    def test_id_join_beats_reworded_description(self, gfci):
        payload = _payload([_entry("GFCI now installed at vanity", "resolved", violation_id="V1")])

        result = reconcile([gfci], payload)

        assert result.original_violation_status[0].status == ResolutionStatus.RESOLVED
        assert result.discarded_entries == []

    def test_description_fallback_without_ids(self, gfci):
        anonymous = gfci.model_copy(update={"violation_id": None})
        payload = _payload([_entry(gfci.description, "resolved")])

        result = reconcile([anonymous], payload)

        assert result.original_violation_status[0].status == ResolutionStatus.RESOLVED

    def test_duplicate_descriptions_each_claim_one_entry(self, cover):
        first = cover.model_copy(update={"violation_id": None})
        second = cover.model_copy(update={"violation_id": None})
        payload = _payload([_entry(cover.description, "resolved")])

        result = reconcile([first, second], payload)

        assert result.original_violation_status[0].status == ResolutionStatus.RESOLVED
        assert result.original_violation_status[1].status == ResolutionStatus.UNRESOLVED

    def test_unmatched_entries_discarded(self, gfci, caplog):
        payload = _payload([
            _entry(gfci.description, "resolved"),
            _entry("Something the model invented", "resolved"),
        ])

        with caplog.at_level(logging.WARNING, logger="tradeproof.recheck"):
            result = reconcile([gfci], payload)

        assert len(result.original_violation_status) == 1
        assert result.discarded_entries == ["Something the model invented"]
        assert "Discarded 1" in caplog.text

    def test_critical_new_violation_blocks_compliance(self, gfci):
        payload = _payload(
            [_entry(gfci.description, "resolved")],
            new=[{"description": "Exposed live conductor at the box edge"}],
        )

        result = reconcile([gfci], payload)

        assert result.derived_is_compliant is False
        assert result.new_violations_found == ["Exposed live conductor at the box edge"]

    def test_minor_new_violation_keeps_compliance(self, gfci):
        payload = _payload(
            [_entry(gfci.description, "resolved")],
            new=[{"description": "Label faded", "severity": "minor"}],
        )
        assert reconcile([gfci], payload).derived_is_compliant is True

    def test_upstream_flag_is_authoritative(self, gfci):
        payload = _payload([_entry(gfci.description, "partially_resolved")], is_compliant=True)

        result = reconcile([gfci], payload)

        assert result.is_compliant is True
        assert result.derived_is_compliant is False

    def test_empty_violation_list_rejected(self):
        with pytest.raises(ValidationError):
            reconcile([], _payload([]))

    def test_duplicate_violation_ids_rejected(self, gfci, cover):
        clash = cover.model_copy(update={"violation_id": "V1"})
        payload = _payload([
            _entry(gfci.description, "resolved", "V1"),
            _entry(cover.description, "unresolved", "V1"),
        ])

        with pytest.raises(ReconciliationMismatch, match="V1"):
            reconcile([gfci, clash], payload)

    def test_one_status_per_violation_whatever_the_payload(self, gfci, cover):
        payload = _payload([
            _entry(gfci.description, "resolved", "V1"),
            _entry(gfci.description, "resolved", "V1"),
            _entry("Unrelated remark", "resolved", "V9"),
        ])

        result = reconcile([gfci, cover], payload)

        assert [s.violation_id for s in result.original_violation_status] == ["V1", "V2"]
        assert len(result.discarded_entries) == 2


# ============================================================================
# CRITICAL FINDING HEURISTIC
# ============================================================================

class TestIsCriticalFinding:

    @pytest.mark.parametrize("description", [
        "Shock hazard at open splice",
        "Ungrounded receptacle on kitchen counter",
        "Scorch marks on the bus bar",
    ])
    def test_keywords_mark_critical(self, description):
        assert is_critical_finding(NewViolationFinding(description=description)) is True

    def test_plain_description_not_critical(self):
        assert is_critical_finding(NewViolationFinding(description="Staple too close to box")) is False

    def test_explicit_severity_wins(self):
        finding = NewViolationFinding(description="Shock hazard label missing", severity="minor")
        assert is_critical_finding(finding) is False


# ============================================================================
# MERGE
# ============================================================================

class TestMergeRecheck:

    def test_first_recheck(self, make_analysis, gfci):
        analysis = make_analysis(score=55, violations=[gfci])
        result = reconcile([gfci], _payload([_entry(gfci.description, "resolved")], score=95), CHECKED_AT)

        fields = merge_recheck(analysis, result, "s3://tradeproof-photos/USER-1/fixed.jpg")

        assert fields["fix_verified"] is True
        assert fields["fix_compliance_score"] == 95
        assert fields["fix_analysis"] is result
        assert fields["revision_history"] == []

    def test_original_fields_untouched(self, make_analysis, gfci):
        analysis = make_analysis(score=55, violations=[gfci])
        result = reconcile([gfci], _payload([_entry(gfci.description, "resolved")], score=95))

        updated = apply_recheck(analysis, result, None)

        assert updated.compliance_score == 55
        assert updated.violations == analysis.violations
        assert updated.is_compliant is False
        assert updated.fix_verified is True

    def test_second_recheck_moves_first_to_history(self, make_analysis, gfci):
        analysis = make_analysis(score=55, violations=[gfci])
        first = reconcile([gfci], _payload([_entry(gfci.description, "unresolved")], score=60), CHECKED_AT)
        analysis = apply_recheck(analysis, first, "s3://tradeproof-photos/USER-1/fix1.jpg")

        second = reconcile([gfci], _payload([_entry(gfci.description, "resolved")], score=96))
        analysis = apply_recheck(analysis, second, "s3://tradeproof-photos/USER-1/fix2.jpg")

        assert analysis.fix_analysis == second
        assert analysis.fixed_photo_url.endswith("fix2.jpg")
        assert len(analysis.revision_history) == 1

        revision = analysis.revision_history[0]
        assert revision.fix_analysis == first
        assert revision.compliance_score == 60
        assert revision.is_compliant is False
        assert revision.fixed_photo_url.endswith("fix1.jpg")
        assert revision.created_at == CHECKED_AT

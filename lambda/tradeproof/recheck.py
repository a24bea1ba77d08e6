"""
Recheck reconciliation - maps an original violation list plus a follow-up
reconciliation payload into per-violation status and a fresh verdict.

Pure computation. The caller persists the merged fields.
"""

import logging
from datetime import datetime, timezone
from typing import Callable

from tradeproof.models import (
    Analysis,
    AnalysisRevision,
    RecheckResult,
    ResolutionStatus,
    Severity,
    Violation,
    ViolationStatus,
    ReconciliationMismatch,
    ValidationError,
)
from tradeproof.payloads import ReconciliationPayload, ReconciliationEntry, NewViolationFinding
from tradeproof.config import CRITICAL_KEYWORDS


logger = logging.getLogger("tradeproof.recheck")

MISSING_VERDICT_NOTE = "No verdict returned for this violation; treated as unresolved."


# --- Public API ---

def reconcile(
    violations: list[Violation],
    payload: ReconciliationPayload,
    checked_at: str | None = None,
) -> RecheckResult:
    """
    Reconciles the original violations against a recheck payload.

    Join order per violation:
    1. Entry echoing the same violation_id
    2. Entry with the exact same description text
    3. Nothing -> unresolved (absence of evidence is not resolution)

    Entries that match no original violation are discarded and reported
    in discarded_entries.

    Raises:
        ValidationError: If there are no original violations.
        ReconciliationMismatch: If two original violations share an id, so
            the id join cannot tell their verdicts apart.
    """
    if not violations:
        raise ValidationError("Original violation list is empty. Nothing to re-check.")

    ids = [v.violation_id for v in violations if v.violation_id]
    duplicates = sorted({i for i in ids if ids.count(i) > 1})
    if duplicates:
        raise ReconciliationMismatch(f"Duplicate violation ids: {', '.join(duplicates)}")

    entries = payload.original_violation_status
    known_ids = set(ids)
    used: set[int] = set()
    statuses: list[ViolationStatus] = []

    # Exactly one status per violation, in original order
    for violation in violations:
        idx = None
        if violation.violation_id:
            idx = _claim(entries, used, lambda e: e.violation_id == violation.violation_id)
        if idx is None:
            idx = _claim(
                entries,
                used,
                lambda e: e.original_description == violation.description
                and (e.violation_id is None or e.violation_id not in known_ids),
            )
        statuses.append(_status_for(violation, entries[idx] if idx is not None else None))

    discarded = [e.original_description for i, e in enumerate(entries) if i not in used]
    if discarded:
        logger.warning(
            "Discarded %d reconciliation entr%s with no matching original violation",
            len(discarded),
            "y" if len(discarded) == 1 else "ies",
        )

    derived = _derive_compliance(statuses, payload.new_violations_found)

    return RecheckResult(
        original_violation_status=statuses,
        new_violations_found=[f.description for f in payload.new_violations_found],
        compliance_score=payload.compliance_score,
        # Upstream verdict is authoritative when present
        is_compliant=payload.is_compliant if payload.is_compliant is not None else derived,
        derived_is_compliant=derived,
        discarded_entries=discarded,
        overall_assessment=payload.overall_assessment,
        checked_at=checked_at or datetime.now(timezone.utc).isoformat(),
    )


def merge_recheck(analysis: Analysis, result: RecheckResult, fixed_photo_url: str | None) -> dict:
    """
    Complete replacement values for the recheck fields of an Analysis.

    The previous recheck, if any, moves into revision_history. The
    original violations and compliance_score are never touched.
    """
    history = list(analysis.revision_history)
    if analysis.fix_analysis is not None:
        previous = analysis.fix_analysis
        history.append(AnalysisRevision(
            fixed_photo_url=analysis.fixed_photo_url,
            compliance_score=(
                analysis.fix_compliance_score
                if analysis.fix_compliance_score is not None
                else previous.compliance_score
            ),
            is_compliant=analysis.fix_verified,
            fix_analysis=previous,
            created_at=previous.checked_at or analysis.created_at,
        ))

    return {
        "fixed_photo_url": fixed_photo_url,
        "fix_verified": result.is_compliant,
        "fix_compliance_score": result.compliance_score,
        "fix_analysis": result,
        "revision_history": history,
    }


def apply_recheck(analysis: Analysis, result: RecheckResult, fixed_photo_url: str | None) -> Analysis:
    """Returns a copy of the Analysis with the recheck merged in."""
    return analysis.model_copy(update=merge_recheck(analysis, result, fixed_photo_url))


def is_critical_finding(finding: NewViolationFinding) -> bool:
    """
    Whether a new violation counts as critical.

    Severity from the inference step wins; without one, fall back to
    keyword heuristics on the description.
    """
    if finding.severity is not None:
        return finding.severity == Severity.CRITICAL
    text = finding.description.lower()
    return any(keyword in text for keyword in CRITICAL_KEYWORDS)


# --- Internal ---

def _claim(
    entries: list[ReconciliationEntry],
    used: set[int],
    predicate: Callable[[ReconciliationEntry], bool],
) -> int | None:
    """Index of the first unused entry matching predicate, marked as used."""
    for i, entry in enumerate(entries):
        if i not in used and predicate(entry):
            used.add(i)
            return i
    return None


def _status_for(violation: Violation, entry: ReconciliationEntry | None) -> ViolationStatus:
    if entry is None:
        return ViolationStatus(
            description=violation.description,
            status=ResolutionStatus.UNRESOLVED,
            notes=MISSING_VERDICT_NOTE,
            violation_id=violation.violation_id,
        )
    return ViolationStatus(
        description=violation.description,
        status=entry.status,
        notes=entry.notes,
        violation_id=violation.violation_id,
    )


def _derive_compliance(
    statuses: list[ViolationStatus],
    new_findings: list[NewViolationFinding],
) -> bool:
    all_resolved = all(s.status == ResolutionStatus.RESOLVED for s in statuses)
    return all_resolved and not any(is_critical_finding(f) for f in new_findings)

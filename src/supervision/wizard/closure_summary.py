"""
ClosureSummaryCalculator - the read-only end-of-visit summary.

Provides:
- AnomalyFlags / detect_anomalies: Non-blocking attention flags
- ClosureSummary / ClosureSummaryCalculator: Step 5 summary derived from the draft
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from supervision.models import FindingSeverity
from supervision.wizard.config import AnomalyThresholds, settings
from supervision.wizard.draft import VisitDraft


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# Anomaly Flags
# =============================================================================

@dataclass(frozen=True)
class AnomalyFlags:
    """Attention flags. None of them ever blocks a transition."""
    staffing_mismatch: bool = False
    low_rated_guards: List[str] = field(default_factory=list)
    low_compliance: bool = False

    @property
    def any(self) -> bool:
        return self.staffing_mismatch or bool(self.low_rated_guards) or self.low_compliance

    def to_dict(self) -> Dict[str, Any]:
        return {
            "staffingMismatch": self.staffing_mismatch,
            "lowRatedGuards": list(self.low_rated_guards),
            "lowCompliance": self.low_compliance,
        }


def detect_anomalies(draft: VisitDraft, thresholds: Optional[AnomalyThresholds] = None) -> AnomalyFlags:
    """
    Derive anomaly flags purely from draft state.

    Staffing is compared against the frozen expectation after check-in and the
    live roster before it.
    """
    thresholds = thresholds or settings.anomalies

    expected = draft.guards_expected
    staffing_mismatch = (
        expected is not None
        and draft.guards_found is not None
        and expected != draft.guards_found
    )

    low_rated = [
        e.guard_name for e in draft.evaluations
        if e.average is not None and e.average < thresholds.low_guard_rating
    ]

    ratio = draft.compliance().ratio if draft.requirements is not None else None
    low_compliance = ratio is not None and ratio < thresholds.min_compliance_ratio

    return AnomalyFlags(
        staffing_mismatch=staffing_mismatch,
        low_rated_guards=low_rated,
        low_compliance=low_compliance,
    )


# =============================================================================
# Closure Summary
# =============================================================================

@dataclass(frozen=True)
class ClosureSummary:
    """Derived figures shown before checkout."""
    duration_minutes: Optional[int]
    is_express: bool
    guards_expected: Optional[int]
    guards_found: Optional[int]
    guards_evaluated: int
    average_rating: Optional[float]
    compliance_ratio: Optional[float]
    compliance: Dict[str, Any]
    findings_created: int
    findings_by_severity: Dict[str, int]
    findings_resolved: int
    photos_uploaded: int
    photos_pending: int
    client_satisfaction: Optional[float]
    anomalies: AnomalyFlags
    tags: List[str]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "durationMinutes": self.duration_minutes,
            "isExpress": self.is_express,
            "guardsExpected": self.guards_expected,
            "guardsFound": self.guards_found,
            "guardsEvaluated": self.guards_evaluated,
            "averageRating": self.average_rating,
            "complianceRatio": self.compliance_ratio,
            "compliance": dict(self.compliance),
            "findingsCreated": self.findings_created,
            "findingsBySeverity": dict(self.findings_by_severity),
            "findingsResolved": self.findings_resolved,
            "photosUploaded": self.photos_uploaded,
            "photosPending": self.photos_pending,
            "clientSatisfaction": self.client_satisfaction,
            "anomalies": self.anomalies.to_dict(),
            "tags": list(self.tags),
        }


class ClosureSummaryCalculator:
    """
    Derives the end-of-visit summary from the accumulated draft.

    The summary reads the same client satisfaction value that checkout
    submits: the mean of the rated survey sub-scores.
    """

    def __init__(
        self,
        thresholds: Optional[AnomalyThresholds] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.thresholds = thresholds or settings.anomalies
        self._clock = clock

    def _duration_minutes(self, draft: VisitDraft, at: datetime) -> Optional[int]:
        if draft.visit is None or draft.visit.check_in_at is None:
            return None
        end = draft.visit.check_out_at or at
        return int(round((end - draft.visit.check_in_at).total_seconds() / 60))

    def calculate(self, draft: VisitDraft, at: Optional[datetime] = None) -> ClosureSummary:
        at = at or self._clock()
        duration = self._duration_minutes(draft, at)
        is_express = duration is not None and duration < self.thresholds.express_visit_minutes

        averages = [e.average for e in draft.evaluations if e.average is not None]
        average_rating = round(sum(averages) / len(averages), 2) if averages else None

        compliance = draft.compliance()
        anomalies = detect_anomalies(draft, self.thresholds)

        by_severity = {severity.value: 0 for severity in FindingSeverity}
        for finding in draft.findings:
            by_severity[finding.severity.value] += 1

        evidence = draft.evidence_photos()
        uploaded = sum(1 for p in evidence if p.uploaded)

        tags = []
        if is_express:
            tags.append("express_visit")
        if anomalies.staffing_mismatch:
            tags.append("staffing_discrepancy")
        if draft.findings:
            tags.append("new_findings")
        if draft.survey.contacted and draft.survey.urgent_risk:
            tags.append("urgent_risk")
        if anomalies.low_compliance:
            tags.append("low_compliance")
        if anomalies.low_rated_guards:
            tags.append("low_rated_guards")

        return ClosureSummary(
            duration_minutes=duration,
            is_express=is_express,
            guards_expected=draft.guards_expected,
            guards_found=draft.guards_found,
            guards_evaluated=sum(1 for e in draft.evaluations if e.is_fully_rated),
            average_rating=average_rating,
            compliance_ratio=compliance.ratio,
            compliance=compliance.to_dict(),
            findings_created=len(draft.findings),
            findings_by_severity=by_severity,
            findings_resolved=len(draft.resolved_findings),
            photos_uploaded=uploaded,
            photos_pending=len(evidence) - uploaded,
            client_satisfaction=draft.survey.satisfaction(),
            anomalies=anomalies,
            tags=tags,
        )

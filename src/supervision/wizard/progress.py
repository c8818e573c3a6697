"""
WizardProgressIndicator - presentation of step position and anomaly flags.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from supervision.models import WizardStep
from supervision.wizard.closure_summary import AnomalyFlags, detect_anomalies
from supervision.wizard.config import AnomalyThresholds
from supervision.wizard.draft import VisitDraft

STEPS = [
    WizardStep.CHECK_IN,
    WizardStep.EVALUATION,
    WizardStep.CHECKLIST,
    WizardStep.EVIDENCE,
    WizardStep.CLOSURE,
]


@dataclass(frozen=True)
class StepView:
    number: int
    label: str
    is_current: bool
    is_completed: bool
    is_reachable: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "number": self.number,
            "label": self.label,
            "isCurrent": self.is_current,
            "isCompleted": self.is_completed,
            "isReachable": self.is_reachable,
        }


@dataclass(frozen=True)
class ProgressView:
    current_step: int
    max_reached_step: int
    closed: bool
    steps: List[StepView] = field(default_factory=list)
    anomalies: AnomalyFlags = field(default_factory=AnomalyFlags)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "currentStep": self.current_step,
            "maxReachedStep": self.max_reached_step,
            "closed": self.closed,
            "steps": [s.to_dict() for s in self.steps],
            "anomalies": self.anomalies.to_dict(),
        }


class WizardProgressIndicator:
    """Builds a ProgressView from draft state. Holds no business rules."""

    def __init__(self, thresholds: Optional[AnomalyThresholds] = None):
        self.thresholds = thresholds

    def render(self, draft: VisitDraft) -> ProgressView:
        closed = draft.is_closed
        steps = [
            StepView(
                number=int(step),
                label=step.label,
                is_current=not closed and step == draft.current_step,
                is_completed=closed or step < draft.max_reached_step,
                is_reachable=not closed and step <= draft.max_reached_step,
            )
            for step in STEPS
        ]
        return ProgressView(
            current_step=int(draft.current_step),
            max_reached_step=int(draft.max_reached_step),
            closed=closed,
            steps=steps,
            anomalies=detect_anomalies(draft, self.thresholds),
        )

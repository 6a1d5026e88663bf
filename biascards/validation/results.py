"""Result types produced by the stage validator."""

from dataclasses import dataclass, field
from enum import Enum

from biascards.catalog.lifecycle import LifecycleStage


class IssueType(str, Enum):
    """Which validation pass produced an issue."""

    DECK = "deck"
    PROGRESSION = "progression"
    REFERENCE = "reference"
    DATA = "data"


@dataclass(frozen=True)
class ValidationIssue:
    """A single validation finding.

    Attributes:
        type: Pass that produced the finding
        message: Human-readable description
        item_id: Assessed item the finding refers to, if any
        stage: Workflow stage (1-5) whose data is affected, if any
        lifecycle_stage: Lifecycle stage key involved, if any
        mitigation_id: Mitigation id involved, if any
    """

    type: IssueType
    message: str
    item_id: str | None = None
    stage: int | None = None
    lifecycle_stage: LifecycleStage | None = None
    mitigation_id: str | None = None


@dataclass
class ValidationResult:
    """Union of all findings from ``StageValidator.validate``."""

    valid: bool
    errors: list[ValidationIssue] = field(default_factory=list)

    def errors_of_type(self, issue_type: IssueType | str) -> list[ValidationIssue]:
        """Return the findings produced by one pass."""
        issue_type = IssueType(issue_type)
        return [issue for issue in self.errors if issue.type == issue_type]


@dataclass(frozen=True)
class ValidationOptions:
    """Toggles for the individual validation passes."""

    check_deck: bool = True
    check_progression: bool = True
    check_references: bool = True


@dataclass(frozen=True)
class ProgressMetrics:
    """Totals and completeness score for progress displays.

    ``overall_completeness`` is an integer percentage: the mean of five
    equally weighted fractions (assessed, mapped, rationale present,
    mitigated, implemented).
    """

    total_items: int
    assessed_items: int
    mapped_items: int
    items_with_rationale: int
    mitigated_items: int
    selected_mitigations: int
    implemented_mitigations: int
    overall_completeness: int


@dataclass(frozen=True)
class CompletionStatus:
    """Per-stage completion flags."""

    stages: dict[int, bool]
    current_stage: int
    completed_stages: list[int]

    @property
    def completed_count(self) -> int:
        return sum(1 for complete in self.stages.values() if complete)

    @property
    def fraction_complete(self) -> float:
        return self.completed_count / len(self.stages) if self.stages else 0.0

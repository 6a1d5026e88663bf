"""ML project lifecycle stages and the project phases that group them.

Lifecycle stages are distinct from the five workflow stages: they are the
phases of the assessed ML project to which a bias can be mapped.
"""

from dataclasses import dataclass
from enum import Enum


class ProjectPhase(str, Enum):
    """Top-level phases of an ML project."""

    PROJECT_DESIGN = "project-design"
    MODEL_DEVELOPMENT = "model-development"
    SYSTEM_DEPLOYMENT = "system-deployment"


class LifecycleStage(str, Enum):
    """Ordered lifecycle stages of an ML project."""

    # Project Design
    PROJECT_PLANNING = "project-planning"
    PROBLEM_FORMULATION = "problem-formulation"
    DATA_EXTRACTION_PROCUREMENT = "data-extraction-procurement"
    DATA_ANALYSIS = "data-analysis"
    # Model Development
    PREPROCESSING_FEATURE_ENGINEERING = "preprocessing-feature-engineering"
    MODEL_SELECTION_TRAINING = "model-selection-training"
    MODEL_TESTING_VALIDATION = "model-testing-validation"
    MODEL_REPORTING = "model-reporting"
    # System Deployment
    SYSTEM_IMPLEMENTATION = "system-implementation"
    SYSTEM_USE_MONITORING = "system-use-monitoring"
    MODEL_UPDATING_DEPROVISIONING = "model-updating-deprovisioning"
    USER_TRAINING = "user-training"

    @classmethod
    def values(cls) -> list[str]:
        """Return all lifecycle stage identifiers in lifecycle order."""
        return [stage.value for stage in cls]


@dataclass(frozen=True)
class LifecycleStageInfo:
    """Display metadata for a lifecycle stage."""

    stage: LifecycleStage
    name: str
    phase: ProjectPhase
    order: int


_STAGE_INFO: list[LifecycleStageInfo] = [
    LifecycleStageInfo(LifecycleStage.PROJECT_PLANNING, "Project Planning", ProjectPhase.PROJECT_DESIGN, 1),
    LifecycleStageInfo(LifecycleStage.PROBLEM_FORMULATION, "Problem Formulation", ProjectPhase.PROJECT_DESIGN, 2),
    LifecycleStageInfo(
        LifecycleStage.DATA_EXTRACTION_PROCUREMENT,
        "Data Extraction & Procurement",
        ProjectPhase.PROJECT_DESIGN,
        3,
    ),
    LifecycleStageInfo(LifecycleStage.DATA_ANALYSIS, "Data Analysis", ProjectPhase.PROJECT_DESIGN, 4),
    LifecycleStageInfo(
        LifecycleStage.PREPROCESSING_FEATURE_ENGINEERING,
        "Preprocessing & Feature Engineering",
        ProjectPhase.MODEL_DEVELOPMENT,
        5,
    ),
    LifecycleStageInfo(
        LifecycleStage.MODEL_SELECTION_TRAINING,
        "Model Selection & Training",
        ProjectPhase.MODEL_DEVELOPMENT,
        6,
    ),
    LifecycleStageInfo(
        LifecycleStage.MODEL_TESTING_VALIDATION,
        "Model Testing & Validation",
        ProjectPhase.MODEL_DEVELOPMENT,
        7,
    ),
    LifecycleStageInfo(LifecycleStage.MODEL_REPORTING, "Model Reporting", ProjectPhase.MODEL_DEVELOPMENT, 8),
    LifecycleStageInfo(
        LifecycleStage.SYSTEM_IMPLEMENTATION,
        "System Implementation",
        ProjectPhase.SYSTEM_DEPLOYMENT,
        9,
    ),
    LifecycleStageInfo(
        LifecycleStage.SYSTEM_USE_MONITORING,
        "System Use & Monitoring",
        ProjectPhase.SYSTEM_DEPLOYMENT,
        10,
    ),
    LifecycleStageInfo(
        LifecycleStage.MODEL_UPDATING_DEPROVISIONING,
        "Model Updating & Deprovisioning",
        ProjectPhase.SYSTEM_DEPLOYMENT,
        11,
    ),
    LifecycleStageInfo(LifecycleStage.USER_TRAINING, "User Training", ProjectPhase.SYSTEM_DEPLOYMENT, 12),
]

LIFECYCLE_STAGES: dict[LifecycleStage, LifecycleStageInfo] = {info.stage: info for info in _STAGE_INFO}

PHASE_NAMES: dict[ProjectPhase, str] = {
    ProjectPhase.PROJECT_DESIGN: "Project Design",
    ProjectPhase.MODEL_DEVELOPMENT: "Model Development",
    ProjectPhase.SYSTEM_DEPLOYMENT: "System Deployment",
}


def parse_lifecycle_stage(value: "str | LifecycleStage") -> LifecycleStage:
    """Coerce a string into a LifecycleStage.

    Raises:
        ValueError: If the value is not a lifecycle stage identifier
    """
    if isinstance(value, LifecycleStage):
        return value
    try:
        return LifecycleStage(value)
    except ValueError:
        raise ValueError(f"Unknown lifecycle stage: {value}") from None


def get_phase_for_stage(stage: "str | LifecycleStage") -> ProjectPhase:
    """Get the project phase a lifecycle stage belongs to."""
    return LIFECYCLE_STAGES[parse_lifecycle_stage(stage)].phase


def get_stages_for_phase(phase: "str | ProjectPhase") -> list[LifecycleStage]:
    """Get the lifecycle stages of a phase, in lifecycle order."""
    phase = ProjectPhase(phase)
    return [info.stage for info in _STAGE_INFO if info.phase == phase]


def get_stage_order(stage: "str | LifecycleStage") -> int:
    """Get the 1-based lifecycle position of a stage."""
    return LIFECYCLE_STAGES[parse_lifecycle_stage(stage)].order


def get_stage_name(stage: "str | LifecycleStage") -> str:
    """Get the display name of a lifecycle stage."""
    return LIFECYCLE_STAGES[parse_lifecycle_stage(stage)].name

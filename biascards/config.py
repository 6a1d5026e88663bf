"""Centralized configuration for the bias-cards assessment engine.

This module provides a single source of truth for enums, constants and the
tunable stage-completion criteria used by the validator.

Design Principles:
- Enums for type-safe category and status values
- Completion thresholds are configuration, injected into the validator
- Environment-driven engine settings (log level, catalog path, data dir)
"""

import logging
import os
import sys
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

import yaml

from biascards.catalog import Catalog, load_catalog

logger = logging.getLogger(__name__)

# =============================================================================
# Enums for Type Safety
# =============================================================================


class RiskCategory(str, Enum):
    """Risk categories assigned to a bias during Stage 1."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    NEEDS_DISCUSSION = "needs-discussion"

    @classmethod
    def values(cls) -> list[str]:
        """Return all valid risk values as strings."""
        return [risk.value for risk in cls]

    @classmethod
    def from_legacy(cls, value: "str | RiskCategory") -> "RiskCategory":
        """Parse a risk label, accepting the legacy ``*-risk`` spellings.

        Raises:
            ValueError: If the label is not a known risk category
        """
        if isinstance(value, RiskCategory):
            return value
        label = str(value).strip().lower()
        if label.endswith("-risk"):
            label = label[: -len("-risk")]
        return cls(label)


class ImplementationStatus(str, Enum):
    """Status of a mitigation's implementation (Stage 5)."""

    PLANNED = "planned"
    IN_PROGRESS = "in-progress"
    IMPLEMENTED = "implemented"
    DEFERRED = "deferred"

    @classmethod
    def values(cls) -> list[str]:
        """Return all valid status values as strings."""
        return [status.value for status in cls]


class WorkflowStage(int, Enum):
    """The five sequential stages of the assessment workflow."""

    RISK_ASSESSMENT = 1
    LIFECYCLE_MAPPING = 2
    RATIONALE = 3
    MITIGATION_SELECTION = 4
    IMPLEMENTATION_PLANNING = 5

    @property
    def display_name(self) -> str:
        return _WORKFLOW_STAGE_NAMES[self]


_WORKFLOW_STAGE_NAMES = {
    WorkflowStage.RISK_ASSESSMENT: "Risk Assessment",
    WorkflowStage.LIFECYCLE_MAPPING: "Lifecycle Mapping",
    WorkflowStage.RATIONALE: "Rationale",
    WorkflowStage.MITIGATION_SELECTION: "Mitigation Selection",
    WorkflowStage.IMPLEMENTATION_PLANNING: "Implementation Planning",
}

FIRST_STAGE = WorkflowStage.RISK_ASSESSMENT.value
LAST_STAGE = WorkflowStage.IMPLEMENTATION_PLANNING.value


# =============================================================================
# Data Format Constants
# =============================================================================

# Version tag written into export envelopes of the current generation
CURRENT_DATA_VERSION = "2.0"

# Version tag of the catalog-bound flat-array generation
INTERMEDIATE_DATA_VERSION = "1.5"

# Version tag (optional) of the oldest flat-array generation
LEGACY_DATA_VERSION = "1.0"

# Prefix for persistence keys
STORAGE_KEY_PREFIX = "bias-cards"

# Identity of the bundled catalog
DEFAULT_DECK_ID = "bias-deck-v1"

# Effectiveness rating used when a migrated pairing carries only an annotation
DEFAULT_MIGRATED_EFFECTIVENESS = 3

# Effectiveness rating bounds (inclusive)
MIN_EFFECTIVENESS_RATING = 1
MAX_EFFECTIVENESS_RATING = 5


# =============================================================================
# Stage Completion Criteria
# =============================================================================


@dataclass(frozen=True)
class Stage1Criteria:
    """Risk assessment: a minimum number of categorized items."""

    min_categorized_items: int = 10


@dataclass(frozen=True)
class Stage2Criteria:
    """Lifecycle mapping: each touched item maps to enough lifecycle stages."""

    min_mappings_per_item: int = 1
    require_all_items: bool = True


@dataclass(frozen=True)
class Stage3Criteria:
    """Rationale: share of lifecycle-mapped (item, stage) pairs with rationale."""

    min_rationale_fraction: float = 0.6
    min_rationale_length: int = 1


@dataclass(frozen=True)
class Stage4Criteria:
    """Mitigation selection: high-risk coverage and per-item minimum."""

    require_high_risk_mitigated: bool = True
    min_mitigations_per_item: int = 0


@dataclass(frozen=True)
class Stage5Criteria:
    """Implementation planning: share of selected mitigations with a note."""

    min_implementation_fraction: float = 0.8
    min_effectiveness_rating: int = MIN_EFFECTIVENESS_RATING


@dataclass(frozen=True)
class StageCompletionCriteria:
    """Per-stage quorum rules used by ``StageValidator``.

    Every threshold is a fraction or an absolute minimum rather than
    "all items done", so partial completion unblocks progress.
    """

    stage1: Stage1Criteria = field(default_factory=Stage1Criteria)
    stage2: Stage2Criteria = field(default_factory=Stage2Criteria)
    stage3: Stage3Criteria = field(default_factory=Stage3Criteria)
    stage4: Stage4Criteria = field(default_factory=Stage4Criteria)
    stage5: Stage5Criteria = field(default_factory=Stage5Criteria)


DEFAULT_COMPLETION_CRITERIA = StageCompletionCriteria()

_STAGE_CRITERIA_TYPES: dict[str, type] = {
    "stage1": Stage1Criteria,
    "stage2": Stage2Criteria,
    "stage3": Stage3Criteria,
    "stage4": Stage4Criteria,
    "stage5": Stage5Criteria,
}


def criteria_from_mapping(data: dict[str, Any] | None) -> StageCompletionCriteria:
    """Build completion criteria from a partial mapping.

    Stages or fields that are absent keep their defaults, so a mapping only
    needs to name the thresholds it overrides.

    Args:
        data: Mapping like ``{"stage1": {"min_categorized_items": 5}}``

    Returns:
        StageCompletionCriteria with overrides applied

    Raises:
        ValueError: If a stage or field name is unknown
    """
    if not data:
        return DEFAULT_COMPLETION_CRITERIA

    stages: dict[str, Any] = {}
    for stage_key, overrides in data.items():
        criteria_type = _STAGE_CRITERIA_TYPES.get(stage_key)
        if criteria_type is None:
            raise ValueError(f"Unknown completion criteria stage: {stage_key}")
        try:
            stages[stage_key] = criteria_type(**(overrides or {}))
        except TypeError as e:
            raise ValueError(f"Invalid criteria for {stage_key}: {e}") from e

    return StageCompletionCriteria(**stages)


def load_criteria(path: Path) -> StageCompletionCriteria:
    """Load completion criteria overrides from a YAML file.

    Example file:
        stage1:
          min_categorized_items: 5
        stage3:
          min_rationale_fraction: 0.5
    """
    if not path.exists():
        raise FileNotFoundError(f"Criteria file not found: {path}")

    with open(path) as f:
        data = yaml.safe_load(f) or {}

    criteria = criteria_from_mapping(data)
    logger.info(f"Loaded completion criteria overrides from {path}")
    return criteria


# =============================================================================
# Engine Configuration
# =============================================================================


@dataclass
class EngineConfig:
    """Runtime settings for the engine.

    All values are read from environment variables with sensible defaults.
    """

    log_level: str = "INFO"
    catalog_path: Path | None = None  # None means the bundled catalog
    data_dir: Path = Path("session")
    criteria_path: Path | None = None
    strict_validation: bool = False

    @classmethod
    def from_env(cls) -> "EngineConfig":
        """Create config from environment variables."""
        catalog_path = os.getenv("BIASCARDS_CATALOG_PATH")
        criteria_path = os.getenv("BIASCARDS_CRITERIA_PATH")
        strict = os.getenv("BIASCARDS_STRICT", "false").lower() in ("true", "1", "yes")

        return cls(
            log_level=os.getenv("BIASCARDS_LOG_LEVEL", "INFO").upper(),
            catalog_path=Path(catalog_path) if catalog_path else None,
            data_dir=Path(os.getenv("BIASCARDS_DATA_DIR", "session")),
            criteria_path=Path(criteria_path) if criteria_path else None,
            strict_validation=strict,
        )

    def completion_criteria(self) -> StageCompletionCriteria:
        """Return the configured criteria, falling back to the defaults."""
        if self.criteria_path is None:
            return DEFAULT_COMPLETION_CRITERIA
        return load_criteria(self.criteria_path)

    def load_catalog(self) -> Catalog:
        """Load the configured catalog, or the bundled one when none is set."""
        return load_catalog(self.catalog_path)


def configure_logging(config: EngineConfig | None = None) -> None:
    """Install a single stdout handler on the root logger.

    Uses the ``time | level | logger | message`` format at the configured level.
    """
    config = config or EngineConfig.from_env()
    level = logging.getLevelNamesMapping().get(config.log_level, logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        logging.Formatter(
            fmt="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )

    root_logger = logging.getLogger()
    root_logger.handlers[:] = [handler]
    root_logger.setLevel(level)

    logger.info(f"Logging configured: level={config.log_level}")

"""Stage-completion checks and cross-stage integrity validation."""

from .results import (
    CompletionStatus,
    IssueType,
    ProgressMetrics,
    ValidationIssue,
    ValidationOptions,
    ValidationResult,
)
from .validator import StageValidator

__all__ = [
    "StageValidator",
    "CompletionStatus",
    "IssueType",
    "ProgressMetrics",
    "ValidationIssue",
    "ValidationOptions",
    "ValidationResult",
]

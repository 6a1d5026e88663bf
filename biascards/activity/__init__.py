"""Bias activity workflow entity and snapshot models."""

from .bias_activity import BiasActivity
from .models import (
    ActivityMetadata,
    ActivitySnapshot,
    ImplementationNote,
    ItemAssessment,
    WorkflowState,
)

__all__ = [
    "BiasActivity",
    "ActivityMetadata",
    "ActivitySnapshot",
    "ImplementationNote",
    "ItemAssessment",
    "WorkflowState",
]
